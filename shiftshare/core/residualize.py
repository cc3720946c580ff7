"""Shock residualization on period controls.

The shift-level shock ``g`` is regressed on an intercept and a linear time
trend (or period dummies) by weighted least squares, separately for each
weight-set, and replaced by its residual.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np
import pandas as pd

from shiftshare.core import linalg as la
from shiftshare.estimators.base import TREND_CHOICES
from shiftshare.exceptions import NumericalDegeneracyError, SchemaViolationError

if TYPE_CHECKING:
    from numpy.typing import NDArray

LOGGER = logging.getLogger(__name__)

__all__ = ["residualize_shock", "trend_design"]


def trend_design(time: pd.Series, trend: str = "linear") -> NDArray[np.float64]:
    """Build the period-control design for ``trend``.

    ``"linear"`` gives [1, t], ``"fe"`` one dummy per distinct period and
    ``"none"`` a lone intercept.
    """
    n = len(time)
    if trend == "none":
        return np.ones((n, 1), dtype=np.float64)
    if trend == "linear":
        if not pd.api.types.is_numeric_dtype(time):
            raise SchemaViolationError("a linear time trend requires a numeric time column.")
        t = time.to_numpy(dtype=np.float64)
        return np.column_stack([np.ones(n, dtype=np.float64), t])
    if trend == "fe":
        return pd.get_dummies(time, dtype=np.float64).to_numpy()
    raise ValueError(f"trend must be one of {TREND_CHOICES}; got {trend!r}")


def residualize_shock(
    g: pd.Series,
    time: pd.Series,
    weights: pd.Series,
    *,
    trend: str = "linear",
    label: str | None = None,
) -> pd.Series:
    """Return the weighted residual of ``g`` on the period controls.

    Rows with missing ``weights`` are not part of this weight-set; they are
    excluded from the fit and receive NaN residuals.

    Raises
    ------
    NumericalDegeneracyError
        If the weights are negative, non-finite or all zero, or the controls
        are collinear on the weighted sample.

    """
    context = f"weight-set {label}" if label is not None else "shock residualization"
    in_set = weights.notna().to_numpy()
    if g[in_set].isna().any():
        raise SchemaViolationError(
            f"{context}: shock g is missing for {int(g[in_set].isna().sum())} exposed shift(s).",
        )
    if trend == "linear":
        periods = time[in_set][weights[in_set] > 0].nunique()
        if periods == 1:
            raise NumericalDegeneracyError(
                "a linear trend needs at least two periods with exposure; "
                "use trend='fe' or trend='none' for a single period.",
                context=context,
            )
    D = trend_design(time[in_set], trend)
    gv = g[in_set].to_numpy(dtype=np.float64)
    coef = la.solve_wls(D, gv, weights[in_set].to_numpy(dtype=np.float64), context=context)
    name = "g_res" if label is None else f"g_res_{label}"
    resid = pd.Series(np.nan, index=g.index, dtype=np.float64, name=name)
    resid[in_set] = gv - D @ coef
    LOGGER.debug("%s: residualized %d shift(s) on %s controls", context, int(in_set.sum()), trend)
    return resid
