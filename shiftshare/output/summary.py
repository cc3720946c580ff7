"""Summary tables for estimation results.

Coefficients are reported with their standard errors and coefficient/SE
ratios only; no analytic p-values or significance stars.
"""

from __future__ import annotations

from collections.abc import Sequence

import pandas as pd
from tabulate import tabulate

from shiftshare.estimators.base import EstimationResult
from shiftshare.utils.helpers import collect_info, format_value

__all__ = ["coef_table", "modelsummary"]

_DEFAULT_FOOTER = ("Estimator", "Shifts", "Clusters", "Unmatched", "Trend")


def coef_table(res: EstimationResult) -> pd.DataFrame:
    """Return a DataFrame with ``coef``, ``se`` and ``t`` per parameter."""
    out = pd.DataFrame({"coef": res.params})
    if res.se is not None:
        out["se"] = res.se.reindex(res.params.index)
        out["t"] = res.tstats
    return out


def modelsummary(
    results: Sequence[EstimationResult] | EstimationResult,
    model_names: Sequence[str] | None = None,
    *,
    footer_keys: Sequence[str] = _DEFAULT_FOOTER,
    coef_format: str = ".6g",
    se_format: str = ".6g",
    output: str = "text",
) -> str:
    """Side-by-side summary of one or more results.

    Each parameter takes two rows: the coefficient and, below it, the standard
    error in parentheses. Footer rows show ``model_info`` entries.
    ``output`` is ``"text"`` (plain grid) or ``"latex"`` (booktabs).
    """
    if isinstance(results, EstimationResult):
        results = [results]
    results = list(results)
    if model_names is None:
        model_names = [f"({i + 1})" for i in range(len(results))]
    if len(model_names) != len(results):
        raise ValueError("model_names must have one entry per result")
    fmt = {"text": "simple", "latex": "latex_booktabs"}.get(output)
    if fmt is None:
        raise ValueError("output must be 'text' or 'latex'")

    index: list[str] = []
    for res in results:
        index.extend(p for p in res.params.index if p not in index)

    rows: list[list[str]] = []
    for name in index:
        coef_row = [str(name)]
        se_row = [""]
        for res in results:
            coef = res.params.get(name)
            se = None if res.se is None else res.se.get(name)
            coef_row.append("" if coef is None else format_value(coef, coef_format))
            se_row.append("" if se is None else f"({format_value(se, se_format)})")
        rows.extend([coef_row, se_row])

    rows.append(["N", *[format_value(r.n_obs) for r in results]])
    for key in footer_keys:
        row = collect_info(results, key)
        if any(cell for cell in row[1:]):
            rows.append(row)
    return tabulate(rows, headers=["", *model_names], tablefmt=fmt, disable_numparse=True)
