"""Cluster-level sums of the psi moment contributions."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import pandas as pd

from shiftshare.core import linalg as la
from shiftshare.exceptions import SchemaViolationError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

__all__ = ["cluster_psi", "psi_matrix"]


def cluster_psi(
    moments: pd.DataFrame,
    clusters: pd.Series,
    *,
    sets: Sequence[str] = ("1", "2"),
) -> pd.DataFrame:
    """Sum ``psi_w`` within clusters; one row per distinct cluster.

    The same partition ``clusters`` (aligned with ``moments``) is used for
    every weight-set, so the cluster totals line up across sets.
    """
    if len(clusters) != len(moments):
        raise ValueError("clusters must align with the moment rows")
    if bool(clusters.isna().any()):
        raise SchemaViolationError(
            f"{int(clusters.isna().sum())} shift row(s) have no cluster assignment.",
        )
    cols = [f"psi_{w}" for w in sets]
    labels, sums = la.group_sum(moments[cols].to_numpy(dtype=np.float64), clusters.to_numpy())
    out = pd.DataFrame(sums, columns=cols)
    out.insert(0, "cluster", labels)
    return out


def psi_matrix(
    cluster_frame: pd.DataFrame,
    *,
    sets: Sequence[str] = ("1", "2"),
) -> NDArray[np.float64]:
    """Psi[i, k] = sum over clusters of psi_i * psi_k (no centering)."""
    P = cluster_frame[[f"psi_{w}" for w in sets]].to_numpy(dtype=np.float64)
    return P.T @ P
