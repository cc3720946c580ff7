"""shiftshare: Shift-share IV estimation with exposure-robust inference.

This package aggregates unit-level data to the level of the shocks and
computes the GMM sandwich variance of a shift-share IV estimator, including
interaction of treatment and instrument with a unit-level covariate.
"""
from __future__ import annotations

from importlib import import_module
from typing import Any

__version__ = "0.1.0"

__all__ = [
    "BaseEstimator",
    "ColumnSpec",
    "EquivalenceError",
    "EstimationResult",
    "NumericalDegeneracyError",
    "RegionalIV",
    "SchemaViolationError",
    "ShiftShareError",
    "ShiftShareIV",
    "coef_table",
    "gmm_sandwich",
    "modelsummary",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "BaseEstimator": ("shiftshare.estimators.base", "BaseEstimator"),
    "ColumnSpec": ("shiftshare.estimators.base", "ColumnSpec"),
    "EstimationResult": ("shiftshare.estimators.base", "EstimationResult"),
    "ShiftShareIV": ("shiftshare.estimators.shiftshare", "ShiftShareIV"),
    "gmm_sandwich": ("shiftshare.estimators.shiftshare", "gmm_sandwich"),
    "RegionalIV": ("shiftshare.estimators.iv", "RegionalIV"),
    "EquivalenceError": ("shiftshare.exceptions", "EquivalenceError"),
    "NumericalDegeneracyError": ("shiftshare.exceptions", "NumericalDegeneracyError"),
    "SchemaViolationError": ("shiftshare.exceptions", "SchemaViolationError"),
    "ShiftShareError": ("shiftshare.exceptions", "ShiftShareError"),
    "coef_table": ("shiftshare.output.summary", "coef_table"),
    "modelsummary": ("shiftshare.output.summary", "modelsummary"),
}


def __getattr__(name: str) -> Any:
    """Lazily import public estimators and utilities on first access."""
    if name in _LAZY_IMPORTS:
        module_name, attr_name = _LAZY_IMPORTS[name]
        module = import_module(module_name)
        attr = getattr(module, attr_name)
        globals()[name] = attr
        return attr
    raise AttributeError(f"module 'shiftshare' has no attribute '{name}'")


def __dir__() -> list[str]:
    """Ensure dir() exposes lazily imported names."""
    return sorted(set(globals()) | set(__all__))
