"""Base classes and estimation configuration.

This module defines the abstract base estimator, the column configuration
shared by the shift-share pipeline, and the standardized results container.
"""

# shiftshare/estimators/base.py
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields, replace
from typing import Any

import numpy as np
import pandas as pd

__all__ = [
    "BaseEstimator",
    "ColumnSpec",
    "EstimationResult",
    "TREND_CHOICES",
]

TREND_CHOICES = ("linear", "fe", "none")


# ---------------------------------------------------------------------
# Column configuration
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ColumnSpec:
    """Column names and options for the shift-share pipeline.

    Notes
    -----
    - Unit panel: keyed by (``region``, ``time``); carries ``y``, ``x``,
      ``weight``, ``cluster_id`` and ``covariate``. ``x_interacted`` and
      ``eps`` are optional and derived when absent.
    - Share table: keyed by (``industry``, ``region``, ``time``); carries
      ``share`` and optionally ``share_interacted`` (else ``share * covariate``).
    - Shock table: keyed by (``industry``, ``time``); carries ``g`` and
      optionally ``industry_cluster``.
    - ``trend`` selects the shock residualization: ``"linear"`` (intercept
      and time trend), ``"fe"`` (period dummies) or ``"none"`` (intercept).

    """

    region: str = "region"
    time: str = "time"
    industry: str = "industry"
    y: str = "y"
    x: str = "x"
    x_interacted: str = "x_interacted"
    weight: str = "weight"
    cluster_id: str = "cluster_id"
    covariate: str = "covariate"
    share: str = "share"
    share_interacted: str = "share_interacted"
    g: str = "g"
    eps: str = "eps"
    industry_cluster: str = "industry_cluster"
    cluster_digits: int = 3
    trend: str = "linear"
    parallel: bool = False
    check_equivalence: bool = False
    rtol: float = 1e-8

    def __post_init__(self) -> None:
        if self.trend not in TREND_CHOICES:
            raise ValueError(f"trend must be one of {TREND_CHOICES}; got {self.trend!r}")
        if int(self.cluster_digits) < 1:
            raise ValueError("cluster_digits must be a positive integer")
        if not (float(self.rtol) > 0.0):
            raise ValueError("rtol must be positive")
        names = [getattr(self, f.name) for f in fields(self) if f.type == "str" and f.name != "trend"]
        if len(set(names)) != len(names):
            raise ValueError("column names in ColumnSpec must be distinct")

    @property
    def keys(self) -> list[str]:
        """Shift-level grouping keys (industry, time)."""
        return [self.industry, self.time]

    @property
    def unit_keys(self) -> list[str]:
        """Unit-level keys (region, time)."""
        return [self.region, self.time]

    def with_options(self, **overrides: Any) -> ColumnSpec:
        """Return a copy with the non-None ``overrides`` applied."""
        clean = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **clean) if clean else self


# ---------------------------------------------------------------------
# Results container
# ---------------------------------------------------------------------
@dataclass
class EstimationResult:
    """Container for estimation results.

    Stores parameter estimates, standard errors, the variance matrix and
    estimator-specific diagnostics.
    """

    params: pd.Series
    se: pd.Series | None = None
    vcov: pd.DataFrame | None = None
    n_obs: int | None = None
    model_info: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)
    """Dictionary for estimator-specific diagnostics and intermediate results."""

    def __repr__(self) -> str:  # pragma: no cover - convenience only
        head = ", ".join(f"{k}={v}" for k, v in self.model_info.items())
        return f"EstimationResult(k={len(self.params)}, n={self.n_obs}, {head})"

    @property
    def tstats(self) -> pd.Series | None:
        """Ratio of coefficient to standard error (no reference distribution)."""
        if self.se is None:
            return None
        with np.errstate(divide="ignore", invalid="ignore"):
            return (self.params / self.se).rename("t")


# ---------------------------------------------------------------------
# Base interface
# ---------------------------------------------------------------------
class BaseEstimator(ABC):
    """Abstract base class for all `shiftshare` estimators.

    Principles
    ----------
    1) All linear algebra goes through `core.linalg`.
    2) Inputs are validated before any computation; nothing is silently dropped.
    3) Results are returned as :class:`EstimationResult` and cached on the instance.
    """

    def __init__(self) -> None:
        self._results: EstimationResult | None = None

    @abstractmethod
    def fit(self, **kwargs: Any) -> EstimationResult:
        """Fit the model and return an :class:`EstimationResult`."""

    @property
    def results(self) -> EstimationResult:
        """Results of the most recent :meth:`fit` call."""
        if self._results is None:
            raise RuntimeError("Model has not been fit yet; call fit() first.")
        return self._results
