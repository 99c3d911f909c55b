"""
linkprobe - Linker nondeterminism probe.

Link the same objects many times, hash what comes out, report divergence.
"""

from linkprobe.detector import analyze, canonicalize_map
from linkprobe.generator import render

__version__ = "0.1.0"
__all__ = ["analyze", "canonicalize_map", "render", "__version__"]
