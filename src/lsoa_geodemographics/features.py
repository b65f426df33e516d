"""Feature matrix assembly: join, zero-inflation filter and transforms."""

from __future__ import annotations

from typing import Dict, List, Tuple

import numpy as np
import pandas as pd

from .validation import DataValidationError, check_same_area_sets, check_unique_index


SPARSITY_THRESHOLD = 0.25


def join_tables(tables: Dict[str, pd.DataFrame]) -> pd.DataFrame:
    """Left-join wide tables on area code, in the order given."""
    for name, df in tables.items():
        check_unique_index(df, f"table '{name}'")
    check_same_area_sets(tables)

    seen: Dict[str, str] = {}
    for name, df in tables.items():
        for c in df.columns:
            if c in seen:
                raise DataValidationError(f"Column '{c}' appears in both '{seen[c]}' and '{name}'.")
            seen[c] = name

    frames = list(tables.values())
    joined = frames[0]
    for df in frames[1:]:
        joined = joined.join(df, how="left")
    return joined.sort_index()


def zero_fractions(df: pd.DataFrame) -> pd.Series:
    """Share of areas with an exact zero, per column."""
    if len(df) == 0:
        raise DataValidationError("Cannot compute zero fractions on an empty feature matrix.")
    return (df == 0).sum(axis=0) / float(len(df))


def quality_filter(df: pd.DataFrame, threshold: float = SPARSITY_THRESHOLD) -> Tuple[pd.DataFrame, List[str], pd.Series]:
    """Drop columns whose zero fraction is strictly above ``threshold``."""
    zf = zero_fractions(df)
    dropped = sorted(zf[zf > threshold].index.tolist())
    return df.drop(columns=dropped), dropped, zf


def asinh_transform(df: pd.DataFrame) -> pd.DataFrame:
    return pd.DataFrame(np.arcsinh(df.to_numpy(dtype=float)), index=df.index, columns=df.columns)


def rescale(df: pd.DataFrame, mode: str = "minmax") -> pd.DataFrame:
    """Per-column rescale.

    ``minmax`` is ``(x - min) / (max - min)``. ``legacy`` keeps the older
    notebook formula ``x - min / (max - min)`` so earlier cluster runs can be
    reproduced. Constant columns become 0.0 in both modes.
    """
    lo = df.min(axis=0)
    hi = df.max(axis=0)
    span = hi - lo
    constant = span == 0
    span = span.replace(0, np.nan)
    if mode == "minmax":
        out = (df - lo) / span
    elif mode == "legacy":
        out = df - lo / span
    else:
        raise ValueError(f"Unknown rescale mode {mode!r}; expected 'minmax' or 'legacy'.")
    out.loc[:, constant] = 0.0
    return out


def transform_features(df: pd.DataFrame, rescale_mode: str = "minmax") -> pd.DataFrame:
    return rescale(asinh_transform(df), mode=rescale_mode)


def clustering_matrix(proportions: pd.DataFrame, transformed: pd.DataFrame, source: str) -> pd.DataFrame:
    """Pick the frame a clustering step runs on ("proportions" or "transformed")."""
    if source == "proportions":
        return proportions
    if source == "transformed":
        return transformed
    raise ValueError(f"Unknown feature source {source!r}; expected 'proportions' or 'transformed'.")


def columns_by_table(columns: List[str], tables: List[str]) -> Dict[str, List[str]]:
    """Group feature columns by the table prefix they were named with."""
    out: Dict[str, List[str]] = {t: [] for t in tables}
    # Longest prefix first: table names may share a prefix.
    ordered = sorted(tables, key=len, reverse=True)
    for c in columns:
        for t in ordered:
            if c.startswith(t + "_"):
                out[t].append(c)
                break
    return out
