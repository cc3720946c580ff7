"""Regional-level (unit-level) IV estimator.

Solves the weighted IV system directly on the unit panel with shift-share
instruments built from the residualized shocks. Its coefficients must match
the shift-level estimator exactly, which makes it the natural consistency
check; it also reports the conventional unit-clustered variance.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import numpy as np
import pandas as pd
import scipy.linalg as sla

from shiftshare.core import linalg as la
from shiftshare.core.moments import coalesce
from shiftshare.exceptions import NumericalDegeneracyError

from .base import BaseEstimator, ColumnSpec, EstimationResult

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

LOGGER = logging.getLogger(__name__)

ArrayLike = pd.Series | np.ndarray
MatrixLike = pd.DataFrame | np.ndarray

__all__ = ["INSTRUMENT_COLUMNS", "RegionalIV", "regional_instruments"]

# Instrument columns returned by regional_instruments; kept clear of user names.
INSTRUMENT_COLUMNS = ("_z_1", "_z_2")


def regional_instruments(
    frame: pd.DataFrame,
    shifts: pd.DataFrame,
    spec: ColumnSpec,
) -> pd.DataFrame:
    """Build unit-level shift-share instruments from residualized shocks.

    ``_z_1 = sum_n share_ln * g_res_1n`` and
    ``_z_2 = sum_n share_interacted_ln * g_res_2n``, one row per
    (region, time) appearing in ``frame``. Shifts absent from a weight-set
    contribute zero.
    """
    g = shifts[[*spec.keys, "g_res_1", "g_res_2"]]
    work = frame[[*spec.keys, spec.region, spec.share, spec.share_interacted]].merge(
        g, on=spec.keys, how="left", validate="many_to_one",
    )
    z1, z2 = INSTRUMENT_COLUMNS
    work[z1] = coalesce(work[spec.share] * work["g_res_1"])
    work[z2] = coalesce(work[spec.share_interacted] * work["g_res_2"])
    return work.groupby(spec.unit_keys, sort=True)[[z1, z2]].sum().reset_index()


def _as_2d(a: MatrixLike | ArrayLike, n: int, label: str) -> NDArray[np.float64]:
    arr = np.asarray(a, dtype=np.float64)
    arr = arr.reshape(-1, 1) if arr.ndim == 1 else arr
    if arr.shape[0] != n:
        raise ValueError(f"{label} has {arr.shape[0]} rows; expected {n}")
    return arr


class RegionalIV(BaseEstimator):
    """Weighted 2SLS on unit-level data with a cluster-robust sandwich.

    Parameters
    ----------
    y : array-like, shape (n,)
        Outcome.
    X : array-like, shape (n, p)
        Endogenous regressors (no constant is added).
    Z : array-like, shape (n, q)
        Instruments, ``q >= p``.
    weights : array-like, optional
        Nonnegative analytic weights (default: equal weights).
    clusters : array-like, optional
        Cluster ids for the variance; each row is its own cluster when omitted.

    Notes
    -----
    - Coefficients: ``b = (Xhat' W X)^-1 Xhat' W y`` via QR of ``sqrt(W) Z``;
      equal to ``(Z'WX)^-1 Z'Wy`` when just-identified.
    - Variance: ``A^-1 (sum_c s_c s_c') A^-T`` with ``A = Xhat'WX`` and
      ``s_c = sum_{l in c} w_l xhat_l u_l``; no small-sample correction.

    """

    def __init__(  # noqa: PLR0913
        self,
        y: ArrayLike,
        X: MatrixLike,
        Z: MatrixLike,
        *,
        weights: ArrayLike | None = None,
        clusters: ArrayLike | None = None,
        var_names: Sequence[str] | None = None,
    ) -> None:
        super().__init__()
        self.y = np.asarray(y, dtype=np.float64).reshape(-1)
        n = self.y.shape[0]
        self.X = _as_2d(X, n, "X")
        self.Z = _as_2d(Z, n, "Z")
        la._assert_all_finite(self.y, self.X, self.Z)
        if self.Z.shape[1] < self.X.shape[1]:
            raise ValueError(
                f"underidentified: {self.Z.shape[1]} instrument(s) for {self.X.shape[1]} regressor(s)",
            )
        self.weights = (
            np.ones(n, dtype=np.float64)
            if weights is None
            else la._validate_weights(weights, n, context="regional IV")
        )
        self.clusters = np.arange(n) if clusters is None else np.asarray(clusters).reshape(-1)
        if self.clusters.shape[0] != n:
            raise ValueError("clusters length must match y")
        if var_names is None:
            names = list(X.columns) if isinstance(X, pd.DataFrame) else [f"x{i}" for i in range(self.X.shape[1])]
        else:
            names = list(var_names)
        if len(names) != self.X.shape[1]:
            raise ValueError("var_names length must match the number of columns in X")
        self._var_names = names

    def fit(self, **kwargs: Any) -> EstimationResult:
        """Fit 2SLS and compute the cluster-robust variance."""
        keep = self.weights > 0
        sw = np.sqrt(self.weights[keep]).reshape(-1, 1)
        Xw = self.X[keep] * sw
        Zw = self.Z[keep] * sw
        yw = self.y[keep].reshape(-1, 1) * sw

        Q, R, _P = sla.qr(Zw, mode="economic", pivoting=True)
        r = la.rank_from_diag(np.diag(R))
        if r < self.Z.shape[1]:
            raise NumericalDegeneracyError(
                f"instrument matrix is rank-deficient (rank {r} < {self.Z.shape[1]}).",
                context="regional IV",
            )
        Xhat_w = Q @ (Q.T @ Xw)
        b = la.qr_ls_solve(Xhat_w, yw, context="regional IV").reshape(-1)

        u = self.y[keep] - self.X[keep] @ b
        scores = Xhat_w * (sw.reshape(-1) * u).reshape(-1, 1)
        _labels, S = la.group_sum(scores, self.clusters[keep])
        A_inv = la.inv_checked(Xhat_w.T @ Xw, context="regional IV bread")
        V = la.sandwich(A_inv, S.T @ S)

        names = self._var_names
        params = pd.Series(b, index=names, name="coef")
        se = pd.Series(np.sqrt(np.clip(np.diag(V), 0.0, None)), index=names, name="se")
        self._results = EstimationResult(
            params=params,
            se=se,
            vcov=pd.DataFrame(V, index=names, columns=names),
            n_obs=int(keep.sum()),
            model_info={
                "Estimator": "RegionalIV",
                "Clusters": int(S.shape[0]),
                "Instruments": int(self.Z.shape[1]),
            },
            extra={"residuals": u},
        )
        LOGGER.debug("Regional IV: n=%d, clusters=%d", int(keep.sum()), int(S.shape[0]))
        return self._results
