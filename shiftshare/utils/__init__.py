# shiftshare/utils/__init__.py
"""Utility functions module."""
from .helpers import (
    attach_clusters,
    cluster_from_code,
    require_columns,
    require_no_missing,
    require_unique,
)

__all__ = [
    "attach_clusters",
    "cluster_from_code",
    "require_columns",
    "require_no_missing",
    "require_unique",
]
