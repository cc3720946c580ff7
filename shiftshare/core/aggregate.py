"""Aggregation of unit-level data to shift-level (industry x time) weighted means.

Implements the generalized shift-share aggregation identity: under weight-set
``w`` the shift-level value of a variable is the exposure-weighted mean of the
unit-level values, with exposure weights ``weight_l * share_ln`` and total
exposure ``s_n = sum_l weight_l * share_ln``.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np
import pandas as pd

from shiftshare.exceptions import SchemaViolationError
from shiftshare.utils.helpers import (
    require_columns,
    require_no_missing,
    require_unique,
)

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from shiftshare.estimators.base import ColumnSpec

LOGGER = logging.getLogger(__name__)

__all__ = [
    "EXPOSURE_PREFIX",
    "JoinMismatch",
    "aggregate_shifts",
    "aggregate_weight_sets",
    "build_exposure_frame",
]

# Exposure weight columns in the frame from build_exposure_frame are named
# EXPOSURE_PREFIX + label ("_e1", "_e2").
EXPOSURE_PREFIX = "_e"


@dataclass(frozen=True)
class JoinMismatch:
    """Outcome of the outer join between weight-sets.

    Pairs present under one weight-set only are expected (e.g. all interacted
    shares zero for an industry-time) and are zero-filled downstream.
    """

    matched: int
    only_in: dict[str, int] = field(default_factory=dict)

    @property
    def n_unmatched(self) -> int:
        return int(sum(self.only_in.values()))


def build_exposure_frame(
    units: pd.DataFrame,
    shares: pd.DataFrame,
    spec: ColumnSpec,
) -> pd.DataFrame:
    """Join shares onto the unit panel and form both sets of exposure weights.

    Returns one row per (industry, region, time) with the unit variables
    ``y``, ``x``, ``x_interacted`` (and ``eps`` when supplied), the raw shares
    and exposure weights ``_e1 = weight * share`` and
    ``_e2 = weight * share_interacted``. Rows are sorted by
    (industry, time, region) so downstream sums have a fixed order.
    """
    unit_cols = [spec.region, spec.time, spec.y, spec.x, spec.weight, spec.cluster_id, spec.covariate]
    require_columns(units, unit_cols, "unit")
    require_columns(shares, [spec.industry, spec.region, spec.time, spec.share], "share")
    require_unique(units, spec.unit_keys, "unit")
    require_unique(shares, [spec.industry, spec.region, spec.time], "share")
    require_no_missing(units, unit_cols, "unit")
    require_no_missing(shares, [spec.industry, spec.share], "share")

    keep = list(unit_cols)
    panel = units.copy()
    if spec.x_interacted not in panel.columns:
        panel[spec.x_interacted] = panel[spec.x] * panel[spec.covariate]
    else:
        require_no_missing(panel, [spec.x_interacted], "unit")
    keep.append(spec.x_interacted)
    if spec.eps in panel.columns:
        require_no_missing(panel, [spec.eps], "unit")
        keep.append(spec.eps)

    share_cols = [spec.industry, spec.region, spec.time, spec.share]
    if spec.share_interacted in shares.columns:
        require_no_missing(shares, [spec.share_interacted], "share")
        share_cols.append(spec.share_interacted)

    frame = shares[share_cols].merge(
        panel[keep], on=spec.unit_keys, how="left", validate="many_to_one", indicator=True,
    )
    orphan = frame["_merge"] != "both"
    if bool(orphan.any()):
        raise SchemaViolationError(
            f"{int(orphan.sum())} share row(s) reference (region, time) pairs absent from the unit panel.",
        )
    frame = frame.drop(columns="_merge")
    if spec.share_interacted not in frame.columns:
        frame[spec.share_interacted] = frame[spec.share] * frame[spec.covariate]

    frame[f"{EXPOSURE_PREFIX}1"] = frame[spec.weight] * frame[spec.share]
    frame[f"{EXPOSURE_PREFIX}2"] = frame[spec.weight] * frame[spec.share_interacted]
    frame = frame.sort_values([spec.industry, spec.time, spec.region], kind="mergesort")
    LOGGER.debug(
        "Exposure frame: %d share rows, %d units, %d industries",
        len(frame), len(panel), frame[spec.industry].nunique(),
    )
    return frame.reset_index(drop=True)


def aggregate_shifts(
    frame: pd.DataFrame,
    variables: Sequence[str],
    weight: str,
    keys: Sequence[str],
) -> pd.DataFrame:
    """Aggregate ``variables`` to one row per ``keys`` group under ``weight``.

    Each output row carries ``s_n = sum(weight)`` and, for every variable,
    ``sum(weight * var) / s_n``. Groups with zero total weight do not exist
    under this weight-set and are omitted; output is sorted by ``keys``.
    """
    keys = list(keys)
    variables = list(variables)
    require_columns(frame, [*keys, weight, *variables], "exposure")
    w = frame[weight].to_numpy(dtype=np.float64)
    work = frame[keys].copy()
    work["s_n"] = w
    for var in variables:
        work[var] = w * frame[var].to_numpy(dtype=np.float64)
    out = work.groupby(keys, sort=True, observed=True)[["s_n", *variables]].sum()
    out = out.loc[out["s_n"] != 0.0].copy()
    out[variables] = out[variables].div(out["s_n"], axis=0)
    return out.reset_index()


def aggregate_weight_sets(
    frame: pd.DataFrame,
    variables: Sequence[str],
    weights: Mapping[str, str],
    keys: Sequence[str],
    *,
    parallel: bool = False,
) -> tuple[pd.DataFrame, JoinMismatch]:
    """Aggregate once per weight-set and outer-join the labeled results.

    Parameters
    ----------
    weights
        Mapping ``label -> weight column``; labels become column suffixes
        (``s_n_1``, ``y_1``, ...).
    parallel
        Run the per-set aggregations on a thread pool. Results are joined by
        label, so the output is identical to the serial path.

    Returns
    -------
    (shifts, mismatch)
        ``shifts`` has one row per (industry, time) present in any set, with
        NaN for sets where the pair is absent; ``mismatch`` counts those pairs.

    """
    keys = list(keys)
    labels = list(weights)
    if not labels:
        raise ValueError("at least one weight-set is required")

    def _one(label: str) -> pd.DataFrame:
        agg = aggregate_shifts(frame, variables, weights[label], keys)
        rename = {c: f"{c}_{label}" for c in ["s_n", *variables]}
        return agg.rename(columns=rename)

    if parallel and len(labels) > 1:
        with ThreadPoolExecutor(max_workers=len(labels)) as pool:
            parts = dict(zip(labels, pool.map(_one, labels)))
    else:
        parts = {label: _one(label) for label in labels}

    shifts = parts[labels[0]]
    for label in labels[1:]:
        shifts = shifts.merge(parts[label], on=keys, how="outer", validate="one_to_one")
    shifts = shifts.sort_values(keys, kind="mergesort").reset_index(drop=True)

    present = pd.DataFrame({lab: shifts[f"s_n_{lab}"].notna() for lab in labels})
    n_present = present.sum(axis=1)
    only_in = {
        lab: int((present[lab] & (n_present == 1)).sum()) for lab in labels
    } if len(labels) > 1 else {}
    mismatch = JoinMismatch(matched=int((n_present == len(labels)).sum()), only_in=only_in)
    if mismatch.n_unmatched:
        LOGGER.debug(
            "Weight-set join: %d matched shift(s); unmatched by set %s (zero-filled)",
            mismatch.matched, mismatch.only_in,
        )
    return shifts, mismatch
