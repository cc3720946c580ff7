# shiftshare/output/__init__.py
"""Output module for estimation results."""
from .summary import coef_table, modelsummary

__all__ = ["coef_table", "modelsummary"]
