"""Estimator exports with lazy loading.

Public estimator classes and result containers. Uses lazy imports to avoid
circular dependencies between ``core`` and ``estimators``.
"""
from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = [
    "BaseEstimator",
    "ColumnSpec",
    "EstimationResult",
    "RegionalIV",
    "ShiftShareIV",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "BaseEstimator": ("shiftshare.estimators.base", "BaseEstimator"),
    "ColumnSpec": ("shiftshare.estimators.base", "ColumnSpec"),
    "EstimationResult": ("shiftshare.estimators.base", "EstimationResult"),
    "RegionalIV": ("shiftshare.estimators.iv", "RegionalIV"),
    "ShiftShareIV": ("shiftshare.estimators.shiftshare", "ShiftShareIV"),
}


def __getattr__(name: str) -> Any:
    """Lazily import estimator classes and shared containers."""
    if name in _LAZY_IMPORTS:
        module_name, attr_name = _LAZY_IMPORTS[name]
        module = import_module(module_name)
        attr = getattr(module, attr_name)
        globals()[name] = attr
        return attr
    raise AttributeError(f"module 'shiftshare.estimators' has no attribute '{name}'")


def __dir__() -> list[str]:
    """Expose lazily loaded attributes to ``dir()``."""
    return sorted(set(globals()) | set(__all__))
