"""Pydantic models for workloads, link runs and reports."""
