"""Shift-level moment terms for the GMM sandwich.

For weight-set ``w`` and endogenous variable ``j`` the per-shift terms are

    sxg_w_j = s_n_w * x_w_j * g_res_w
    sy_w    = s_n_w * y_w   * g_res_w
    psi_w   = s_n_w * eps_w * g_res_w

Zero-fill policy: a shift absent from weight-set ``w`` has NaN aggregates for
that set. Its terms are replaced by zero when the product is formed (via
:func:`coalesce`), so the shift contributes exactly nothing to that set's
sums. The aggregates themselves keep NaN so absence stays visible.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import pandas as pd

from shiftshare.utils.helpers import require_columns

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

__all__ = [
    "SETS",
    "coalesce",
    "build_moments",
    "fill_residuals",
    "moment_sums",
]

# Weight-set labels: original shares, covariate-interacted shares.
SETS = ("1", "2")


def coalesce(values: pd.Series, fill: float = 0.0) -> pd.Series:
    """Replace undefined (NaN) values by ``fill``."""
    return values.fillna(fill)


def _term(shifts: pd.DataFrame, label: str, var: str) -> pd.Series:
    prod = shifts[f"s_n_{label}"] * shifts[f"{var}_{label}"] * shifts[f"g_res_{label}"]
    return coalesce(prod)


def build_moments(
    shifts: pd.DataFrame,
    endog: Sequence[str],
    y: str,
    *,
    eps: str | None = None,
    sets: Sequence[str] = SETS,
) -> pd.DataFrame:
    """Compute the per-shift moment terms for every weight-set.

    Returns a frame aligned with ``shifts`` holding ``sxg_{w}_{j}``
    (``j`` counting ``endog`` from 1), ``sy_{w}`` and, when ``eps`` is given,
    ``psi_{w}``. Every column is NaN-free.
    """
    cols = [f"{c}_{w}" for w in sets for c in ("s_n", "g_res", y, *endog)]
    if eps is not None:
        cols += [f"{eps}_{w}" for w in sets]
    require_columns(shifts, cols, "shift")
    out = pd.DataFrame(index=shifts.index)
    for w in sets:
        for j, var in enumerate(endog, start=1):
            out[f"sxg_{w}_{j}"] = _term(shifts, w, var)
        out[f"sy_{w}"] = _term(shifts, w, y)
        if eps is not None:
            out[f"psi_{w}"] = _term(shifts, w, eps)
    return out


def moment_sums(
    moments: pd.DataFrame,
    *,
    n_endog: int = 2,
    sets: Sequence[str] = SETS,
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Column sums forming Omega[w, j] = sum sxg_w_j and M[w] = sum sy_w."""
    omega = np.empty((len(sets), n_endog), dtype=np.float64)
    m = np.empty(len(sets), dtype=np.float64)
    for r, w in enumerate(sets):
        for j in range(n_endog):
            omega[r, j] = float(moments[f"sxg_{w}_{j + 1}"].sum())
        m[r] = float(moments[f"sy_{w}"].sum())
    return omega, m


def fill_residuals(
    shifts: pd.DataFrame,
    b: NDArray[np.float64],
    endog: Sequence[str],
    y: str,
    *,
    eps: str = "eps",
    sets: Sequence[str] = SETS,
) -> pd.DataFrame:
    """Add ``eps_w = y_w - sum_j b_j x_w_j`` for each weight-set.

    The aggregation is a weighted mean, hence linear, so this equals the
    aggregate of the unit-level structural residuals. Absent shifts stay NaN.
    """
    out = shifts.copy()
    coef = np.asarray(b, dtype=np.float64).reshape(-1)
    if coef.shape[0] != len(endog):
        raise ValueError(f"b has {coef.shape[0]} entries but {len(endog)} endogenous variables")
    for w in sets:
        fitted = sum(coef[j] * out[f"{var}_{w}"] for j, var in enumerate(endog))
        out[f"{eps}_{w}"] = out[f"{y}_{w}"] - fitted
    return out
