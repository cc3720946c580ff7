"""Shift-share IV with exposure-robust standard errors.

Implements the shift-level GMM sandwich for a two-endogenous-variable
shift-share IV in which the treatment ``x`` and the instrument are both
interacted with a unit-level covariate:

1. aggregate unit data to (industry, time) under the original and the
   covariate-interacted shares (:mod:`shiftshare.core.aggregate`);
2. residualize the shock on period controls per weight-set
   (:mod:`shiftshare.core.residualize`);
3. form the moment terms with zero-fill for unmatched shifts
   (:mod:`shiftshare.core.moments`);
4. sum psi within industry clusters (:mod:`shiftshare.core.cluster`);
5. ``b = Omega^-1 M`` and ``V = Omega^-1 Psi Omega^-T``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import numpy as np
import pandas as pd

from shiftshare.core import linalg as la
from shiftshare.core.aggregate import (
    EXPOSURE_PREFIX,
    JoinMismatch,
    aggregate_weight_sets,
    build_exposure_frame,
)
from shiftshare.core.cluster import cluster_psi, psi_matrix
from shiftshare.core.moments import SETS, build_moments, fill_residuals, moment_sums
from shiftshare.core.residualize import residualize_shock
from shiftshare.exceptions import EquivalenceError
from shiftshare.utils.helpers import (
    attach_clusters,
    require_columns,
    require_no_missing,
    require_unique,
)

from .base import BaseEstimator, ColumnSpec, EstimationResult
from .iv import INSTRUMENT_COLUMNS, RegionalIV, regional_instruments

if TYPE_CHECKING:
    from collections.abc import Mapping

    from numpy.typing import NDArray

LOGGER = logging.getLogger(__name__)

__all__ = ["ShiftShareIV", "gmm_sandwich"]


def _solve_omega(
    omega: NDArray[np.float64], m: NDArray[np.float64],
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Return ``(Omega^-1, b)``; Omega is inverted exactly once."""
    omega_inv = la.inv_checked(omega, context="Omega")
    return omega_inv, omega_inv @ m


def _variance(
    omega_inv: NDArray[np.float64], psi: NDArray[np.float64],
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    V = la.sandwich(omega_inv, psi)
    return V, np.sqrt(np.clip(np.diag(V), 0.0, None))


def gmm_sandwich(
    omega: NDArray[np.float64],
    m: NDArray[np.float64],
    psi: NDArray[np.float64],
) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    """Solve the shift-level moment system and its sandwich variance.

    Returns ``(b, V, se)`` with ``b = Omega^-1 M``,
    ``V = Omega^-1 Psi Omega^-T`` (uncentered, no degrees-of-freedom
    correction) and ``se = sqrt(diag(V))``.

    Raises
    ------
    NumericalDegeneracyError
        If ``Omega`` is singular.

    """
    omega = np.asarray(omega, dtype=np.float64)
    m = np.asarray(m, dtype=np.float64).reshape(-1)
    psi = np.asarray(psi, dtype=np.float64)
    if m.shape[0] != omega.shape[0] or psi.shape != (omega.shape[0], omega.shape[0]):
        raise ValueError(
            f"incompatible shapes: Omega {omega.shape}, M {m.shape}, Psi {psi.shape}",
        )
    omega_inv, b = _solve_omega(omega, m)
    V, se = _variance(omega_inv, psi)
    return b, V, se


class ShiftShareIV(BaseEstimator):
    """Shift-share IV with a covariate interaction and exposure-robust SEs.

    Parameters
    ----------
    units : DataFrame
        Unit panel keyed by (region, time) with ``y``, ``x``, ``weight``,
        ``cluster_id`` and ``covariate``; optional ``x_interacted``/``eps``.
    shares : DataFrame
        Exposure shares keyed by (industry, region, time) with ``share`` and
        optionally ``share_interacted``.
    shocks : DataFrame
        Shocks keyed by (industry, time) with ``g`` and optionally an
        ``industry_cluster`` column.
    crosswalk : mapping or Series, optional
        Fine industry code -> cluster code. Takes precedence over the shock
        table's cluster column; when neither is available clusters are the
        leading ``cluster_digits`` of the industry code.
    spec : ColumnSpec, optional
        Column names and options; keyword ``options`` override its fields.

    Examples
    --------
    >>> from shiftshare import ShiftShareIV
    >>> model = ShiftShareIV(units, shares, shocks, trend="linear")
    >>> res = model.fit()
    >>> res.params, res.se

    """

    def __init__(  # noqa: PLR0913
        self,
        units: pd.DataFrame,
        shares: pd.DataFrame,
        shocks: pd.DataFrame,
        *,
        crosswalk: Mapping | pd.Series | None = None,
        spec: ColumnSpec | None = None,
        **options: Any,
    ) -> None:
        super().__init__()
        self.spec = (spec or ColumnSpec()).with_options(**options)
        self.units = units
        self.shares = shares
        self.shocks = shocks
        self.crosswalk = crosswalk

    @staticmethod
    def _endog(spec: ColumnSpec) -> list[str]:
        return [spec.x, spec.x_interacted]

    @property
    def endog(self) -> list[str]:
        return self._endog(self.spec)

    # -- stages ---------------------------------------------------------
    def _shift_table(
        self, frame: pd.DataFrame, spec: ColumnSpec,
    ) -> tuple[pd.DataFrame, JoinMismatch]:
        variables = [spec.y, *self._endog(spec)]
        if spec.eps in frame.columns:
            variables.append(spec.eps)
        weights = {w: f"{EXPOSURE_PREFIX}{w}" for w in SETS}
        shifts, mismatch = aggregate_weight_sets(
            frame, variables, weights, spec.keys, parallel=spec.parallel,
        )

        shock_cols = [*spec.keys, spec.g]
        require_columns(self.shocks, shock_cols, "shock")
        require_unique(self.shocks, spec.keys, "shock")
        if spec.industry_cluster in self.shocks.columns:
            shock_cols.append(spec.industry_cluster)
        shifts = shifts.merge(
            self.shocks[shock_cols], on=spec.keys, how="left", validate="one_to_one",
        )
        for w in SETS:
            shifts[f"g_res_{w}"] = residualize_shock(
                shifts[spec.g],
                shifts[spec.time],
                shifts[f"s_n_{w}"],
                trend=spec.trend,
                label=w,
            )
        return shifts, mismatch

    def _clusters(self, shifts: pd.DataFrame, spec: ColumnSpec) -> pd.Series:
        if self.crosswalk is None and spec.industry_cluster in shifts.columns:
            require_no_missing(shifts, [spec.industry_cluster], "shock")
            return shifts[spec.industry_cluster].rename("cluster")
        return attach_clusters(shifts[spec.industry], self.crosswalk, digits=spec.cluster_digits)

    def _regional_check(
        self,
        frame: pd.DataFrame,
        shifts: pd.DataFrame,
        b: NDArray[np.float64],
        spec: ColumnSpec,
    ) -> EstimationResult:
        endog = self._endog(spec)
        z_cols = list(INSTRUMENT_COLUMNS)
        z = regional_instruments(frame, shifts, spec)
        panel = self.units.merge(z, on=spec.unit_keys, how="left", validate="one_to_one")
        panel[z_cols] = panel[z_cols].fillna(0.0)
        if spec.x_interacted not in panel.columns:
            panel[spec.x_interacted] = panel[spec.x] * panel[spec.covariate]
        res = RegionalIV(
            panel[spec.y],
            panel[endog],
            panel[z_cols],
            weights=panel[spec.weight],
            clusters=panel[spec.cluster_id],
        ).fit()
        b_iv = res.params.to_numpy()
        scale = max(1.0, float(np.max(np.abs(b))))
        if not np.allclose(b, b_iv, rtol=spec.rtol, atol=spec.rtol * scale):
            raise EquivalenceError(
                f"shift-level coefficients {b} differ from regional IV {b_iv} (rtol={spec.rtol}).",
            )
        return res

    # -- public ---------------------------------------------------------
    def fit(self, **kwargs: Any) -> EstimationResult:
        """Run aggregation, residualization, moments, clustering and the sandwich.

        Keyword arguments override :class:`ColumnSpec` options for this call
        only (e.g. ``fit(check_equivalence=True)``).
        """
        spec = self.spec.with_options(**kwargs)
        endog = self._endog(spec)
        frame = build_exposure_frame(self.units, self.shares, spec)
        shifts, mismatch = self._shift_table(frame, spec)

        moments = build_moments(shifts, endog, spec.y)
        omega, m = moment_sums(moments, n_endog=len(endog))
        omega_inv, b = _solve_omega(omega, m)

        if f"{spec.eps}_1" not in shifts.columns:
            shifts = fill_residuals(shifts, b, endog, spec.y, eps=spec.eps)
        moments = build_moments(shifts, endog, spec.y, eps=spec.eps)

        clusters = self._clusters(shifts, spec)
        cluster_frame = cluster_psi(moments, clusters)
        psi = psi_matrix(cluster_frame)
        V, se = _variance(omega_inv, psi)

        extra: dict[str, Any] = {
            "omega": omega,
            "M": m,
            "psi": psi,
            "shifts": shifts,
            "moments": moments,
            "clusters": cluster_frame,
            "join": mismatch,
        }
        if spec.check_equivalence:
            extra["regional"] = self._regional_check(frame, shifts, b, spec)

        self._results = EstimationResult(
            params=pd.Series(b, index=endog, name="coef"),
            se=pd.Series(se, index=endog, name="se"),
            vcov=pd.DataFrame(V, index=endog, columns=endog),
            n_obs=int(len(self.units)),
            model_info={
                "Estimator": "ShiftShareIV",
                "Shifts": int(len(shifts)),
                "Clusters": int(len(cluster_frame)),
                "Trend": spec.trend,
                "Unmatched": mismatch.n_unmatched,
            },
            extra=extra,
        )
        LOGGER.debug(
            "ShiftShareIV: %d shift(s), %d cluster(s), b=%s", len(shifts), len(cluster_frame), b,
        )
        return self._results
