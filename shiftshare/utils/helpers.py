"""Shared helper utilities.

Input validation for the tables handed to the estimator and derivation of
coarse industry cluster codes.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any

import numpy as np
import pandas as pd

from shiftshare.exceptions import SchemaViolationError

if TYPE_CHECKING:  # pragma: no cover - import only for type checking
    from collections.abc import Iterable, Mapping, Sequence

    from shiftshare.estimators.base import EstimationResult

__all__ = [
    "attach_clusters",
    "cluster_from_code",
    "collect_info",
    "format_value",
    "require_columns",
    "require_no_missing",
    "require_unique",
]


def require_columns(df: pd.DataFrame, columns: Iterable[str], table: str) -> None:
    """Fail fast when ``df`` lacks any of ``columns``."""
    if not isinstance(df, pd.DataFrame):
        raise TypeError(f"{table} must be a pandas DataFrame")
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise SchemaViolationError(
            f"{table} table is missing required column(s): {', '.join(missing)}",
        )


def require_no_missing(df: pd.DataFrame, columns: Iterable[str], table: str) -> None:
    """Reject NA/NaN/Inf in required columns (no silent row dropping)."""
    for col in columns:
        values = df[col]
        bad = values.isna()
        if pd.api.types.is_numeric_dtype(values):
            bad |= ~np.isfinite(values.to_numpy(dtype=np.float64, na_value=np.nan))
        if bool(bad.any()):
            raise SchemaViolationError(
                f"{table}.{col} contains {int(bad.sum())} missing or non-finite value(s).",
            )


def require_unique(df: pd.DataFrame, keys: list[str], table: str) -> None:
    """Each key combination must identify exactly one row."""
    dup = df.duplicated(subset=keys, keep=False)
    if bool(dup.any()):
        first = df.loc[dup, keys].iloc[0].to_dict()
        raise SchemaViolationError(
            f"{table} has duplicate rows for key ({', '.join(keys)}); e.g. {first}",
        )


def cluster_from_code(codes: pd.Series, digits: int = 3) -> pd.Series:
    """Derive a coarse cluster code from the leading ``digits`` of a fine code.

    Codes are zero-padded to a common width first, so 4-digit SIC codes
    ``0111`` and ``111`` both map to ``011``.
    """
    if int(digits) < 1:
        raise ValueError("digits must be a positive integer")
    text = codes.astype(str).str.strip()
    width = int(text.str.len().max()) if len(text) else 0
    if width < digits:
        raise SchemaViolationError(
            f"industry codes have at most {width} characters; cannot take {digits} leading digits.",
        )
    return text.str.zfill(width).str[: int(digits)].rename("cluster")


def attach_clusters(
    industries: pd.Series,
    crosswalk: Mapping | pd.Series | None,
    *,
    digits: int = 3,
) -> pd.Series:
    """Map each industry to its cluster via ``crosswalk`` or code prefixes."""
    if crosswalk is None:
        return cluster_from_code(industries, digits)
    mapper = crosswalk if isinstance(crosswalk, pd.Series) else pd.Series(dict(crosswalk))
    out = industries.map(mapper)
    unmapped = out.isna()
    if bool(unmapped.any()):
        sample = sorted(industries[unmapped].astype(str).unique())[:5]
        raise SchemaViolationError(
            f"{int(unmapped.sum())} industry row(s) have no cluster in the crosswalk: {sample}",
        )
    return out.rename("cluster")


def format_value(val: Any, fmt: str = ".6g") -> str:
    """Render a table cell; floats use ``fmt``, None becomes an empty string."""
    if isinstance(val, (float, np.floating)):
        return format(float(val), fmt)
    return "" if val is None else str(val)


def collect_info(results: Sequence[EstimationResult], key: str, label: str | None = None) -> list[str]:
    """Collect values from ``res.model_info[key]`` across results."""
    row: list[str] = [label or key]
    for res in results:
        info = getattr(res, "model_info", {}) or {}
        row.append(format_value(info.get(key)))
    return row
