# shiftshare/core/__init__.py
"""Core computational modules for shiftshare."""
from . import aggregate, cluster, linalg, moments, residualize

__all__ = ["aggregate", "cluster", "linalg", "moments", "residualize"]
