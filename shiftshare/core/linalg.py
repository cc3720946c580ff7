"""Linear algebra routines for shift-share estimation.

This module provides the small set of dense solvers used by the estimator:
weighted least squares through column-pivoted QR, sorted group sums, and a
checked inverse for the fixed-size moment matrices. Rank deficiency is never
papered over: a singular system raises :class:`NumericalDegeneracyError`.
"""

from __future__ import annotations

import warnings
from typing import TYPE_CHECKING

import numpy as np
import scipy.linalg as sla

from shiftshare.exceptions import NumericalDegeneracyError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

__all__ = [
    "COND_WARN",
    "RANK_TOL",
    "group_sum",
    "inv_checked",
    "qr_ls_solve",
    "rank_from_diag",
    "sandwich",
    "solve_wls",
]

# Relative tolerance on |diag(R)| used to declare a column dependent.
RANK_TOL = 1e-10
# Condition number above which a solvable matrix is reported as ill-conditioned.
COND_WARN = 1e8


def _assert_all_finite(*arrays: NDArray[np.float64] | None) -> None:
    """Raise ValueError if any input contains NaN or Inf."""
    for a in arrays:
        if a is None:
            continue
        if not np.all(np.isfinite(np.asarray(a, dtype=np.float64))):
            raise ValueError("Input contains NA/NaN/Inf; clean rows before estimation.")


def _validate_weights(
    weights: Sequence[float],
    n: int,
    *,
    context: str | None = None,
) -> NDArray[np.float64]:
    """Validate nonnegative weights and return a dense float64 array of shape (n,).

    Weights that are non-finite, negative or sum to zero cannot be
    normalized and are reported as a numerical degeneracy for ``context``.
    """
    w = np.asarray(weights, dtype=np.float64).reshape(-1)
    if w.shape[0] != n:
        raise ValueError("weights length must match n.")
    if np.any(~np.isfinite(w)):
        raise NumericalDegeneracyError("weights must be finite.", context=context)
    if np.any(w < 0):
        raise NumericalDegeneracyError("weights must be nonnegative.", context=context)
    wsum = float(np.sum(w))
    if not np.isfinite(wsum) or wsum <= 0.0:
        raise NumericalDegeneracyError(
            "weights must sum to a positive finite value (all-zero weights).",
            context=context,
        )
    return w


def rank_from_diag(diagR: NDArray[np.float64], *, tol: float = RANK_TOL) -> int:
    """Numerical rank from the absolute diagonal of a pivoted R factor."""
    d = np.abs(np.asarray(diagR, dtype=np.float64))
    if d.size == 0 or float(d.max()) == 0.0:
        return 0
    return int(np.sum(d > tol * float(d.max())))


def qr_ls_solve(
    A: NDArray[np.float64],
    B: NDArray[np.float64],
    *,
    context: str | None = None,
) -> NDArray[np.float64]:
    """Least-squares solve ``A x = B`` via pivoted QR, requiring full column rank."""
    Ad = np.asarray(A, dtype=np.float64)
    Bd = np.asarray(B, dtype=np.float64)
    Bd = Bd.reshape(-1, 1) if Bd.ndim == 1 else Bd
    _assert_all_finite(Ad, Bd)
    Q, R, P = sla.qr(Ad, mode="economic", pivoting=True)
    r = rank_from_diag(np.diag(R))
    if r < Ad.shape[1]:
        raise NumericalDegeneracyError(
            f"design is rank-deficient (rank {r} < {Ad.shape[1]} columns).",
            context=context,
        )
    out = np.empty((Ad.shape[1], Bd.shape[1]), dtype=np.float64)
    out[P, :] = sla.solve_triangular(R, Q.T @ Bd)
    return out


def solve_wls(
    X: NDArray[np.float64],
    y: NDArray[np.float64],
    weights: Sequence[float],
    *,
    context: str | None = None,
) -> NDArray[np.float64]:
    """Solve (X' W X) b = X' W y on sqrt(W)-scaled data (never forms X'WX)."""
    Xd = np.asarray(X, dtype=np.float64)
    Xd = Xd.reshape(-1, 1) if Xd.ndim == 1 else Xd
    yd = np.asarray(y, dtype=np.float64).reshape(-1, 1)
    w = _validate_weights(weights, Xd.shape[0], context=context)
    keep = w > 0
    sw = np.sqrt(w[keep]).reshape(-1, 1)
    return qr_ls_solve(Xd[keep] * sw, yd[keep] * sw, context=context).reshape(-1)


def group_sum(
    X: NDArray[np.float64], codes: Sequence,
) -> tuple[np.ndarray, NDArray[np.float64]]:
    """Sum rows of X within groups; groups are returned in sorted label order.

    Returns
    -------
    (labels, sums)
        ``labels`` are the unique sorted codes and ``sums`` the (G x p) totals.

    """
    Xd = np.asarray(X, dtype=np.float64)
    Xd = Xd.reshape(-1, 1) if Xd.ndim == 1 else Xd
    codes_arr = np.asarray(codes).reshape(-1)
    if codes_arr.shape[0] != Xd.shape[0]:
        raise ValueError("codes length must match number of rows in X")
    uniq, inv = np.unique(codes_arr, return_inverse=True)
    out = np.zeros((uniq.shape[0], Xd.shape[1]), dtype=np.float64)
    np.add.at(out, inv.reshape(-1), Xd)
    return uniq, out


def inv_checked(A: NDArray[np.float64], *, context: str = "matrix") -> NDArray[np.float64]:
    """Invert a small square matrix, raising on (numerical) singularity."""
    Ad = np.asarray(A, dtype=np.float64)
    if Ad.ndim != 2 or Ad.shape[0] != Ad.shape[1]:
        raise ValueError(f"{context} must be square; got shape {Ad.shape}.")
    if not np.all(np.isfinite(Ad)):
        raise NumericalDegeneracyError("contains NaN/Inf entries.", context=context)
    _Q, R, _P = sla.qr(Ad, pivoting=True)
    r = rank_from_diag(np.diag(R))
    if r < Ad.shape[0]:
        raise NumericalDegeneracyError(
            f"matrix is singular (rank {r} < {Ad.shape[0]}).", context=context,
        )
    cond = float(np.linalg.cond(Ad))
    if cond > COND_WARN:
        warnings.warn(
            f"{context} is ill-conditioned (condition number {cond:.3g}).",
            RuntimeWarning,
            stacklevel=2,
        )
    return sla.inv(Ad)


def sandwich(A_inv: NDArray[np.float64], B: NDArray[np.float64]) -> NDArray[np.float64]:
    """Return A^-1 B A^-T, symmetrized to remove rounding asymmetry."""
    V = A_inv @ np.asarray(B, dtype=np.float64) @ A_inv.T
    return 0.5 * (V + V.T)
