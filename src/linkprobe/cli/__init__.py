# Copyright (c) Syntropy Systems
"""linkprobe command line interface."""
