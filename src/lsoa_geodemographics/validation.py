"""Data-quality checks shared by the pipeline steps.

Every check raises DataValidationError (a ValueError) instead of coercing
bad data.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd


SUM_TOL = 1e-9
PREVIEW_N = 10


class DataValidationError(ValueError):
    """Input or intermediate data failed a quality check."""


class ZeroTotalError(DataValidationError):
    """One or more areas have a zero row total in a source table."""

    def __init__(self, table: str, areas: Sequence[str]):
        self.table = table
        self.areas = list(areas)
        super().__init__(
            f"{len(self.areas)} area(s) in table '{table}' have a zero total "
            f"and cannot be normalised: {preview_ids(self.areas)}"
        )


def preview_ids(items: Iterable) -> str:
    items = sorted(str(x) for x in items)
    head = ", ".join(items[:PREVIEW_N])
    if len(items) > PREVIEW_N:
        head += f", ... (+{len(items) - PREVIEW_N} more)"
    return head


def check_unique_index(df: pd.DataFrame, what: str) -> None:
    dup = df.index[df.index.duplicated()]
    if len(dup):
        raise DataValidationError(f"Duplicate area codes in {what}: {preview_ids(set(dup))}")


def check_same_area_sets(tables: Dict[str, pd.DataFrame]) -> None:
    """All wide tables must cover exactly the same areas."""
    if not tables:
        raise DataValidationError("No tables to join.")
    universe = set()
    for df in tables.values():
        universe |= set(df.index)
    problems = []
    for name, df in tables.items():
        missing = universe - set(df.index)
        if missing:
            problems.append(f"'{name}' is missing {len(missing)} area(s): {preview_ids(missing)}")
    if problems:
        raise DataValidationError("Area codes differ between tables; " + "; ".join(problems))


def check_proportions(df: pd.DataFrame, what: str = "feature matrix") -> None:
    """Every cell must be numeric, finite and inside [0, 1]."""
    non_numeric = [c for c in df.columns if not pd.api.types.is_numeric_dtype(df[c])]
    if non_numeric:
        raise DataValidationError(f"Non-numeric columns in {what}: {non_numeric}")
    values = df.to_numpy(dtype=float)
    bad = ~np.isfinite(values)
    if bad.any():
        rows = df.index[bad.any(axis=1)]
        raise DataValidationError(f"Missing or non-finite values in {what} for area(s): {preview_ids(rows)}")
    out = (values < -SUM_TOL) | (values > 1 + SUM_TOL)
    if out.any():
        cols = df.columns[out.any(axis=0)].tolist()
        raise DataValidationError(f"Values outside [0, 1] in {what}, column(s): {cols}")


def check_table_sums(
    df: pd.DataFrame,
    columns_by_table: Dict[str, List[str]],
    exact: bool = True,
    tol: float = 1e-6,
) -> None:
    """Per table, an area's proportions sum to 1 (exact) or at most 1."""
    for table, cols in columns_by_table.items():
        cols = [c for c in cols if c in df.columns]
        if not cols:
            continue
        sums = df[cols].sum(axis=1)
        if exact:
            bad = sums[(sums - 1.0).abs() > tol]
            rule = "== 1"
        else:
            bad = sums[sums > 1.0 + tol]
            rule = "<= 1"
        if len(bad):
            raise DataValidationError(
                f"Proportions for table '{table}' must sum {rule}; offending area(s): {preview_ids(bad.index)}"
            )


def check_id_match(table_ids: Iterable, geom_ids: Iterable, what: Optional[str] = None) -> None:
    """Tabular and geometric area codes must be the same set."""
    table_ids = set(map(str, table_ids))
    geom_ids = set(map(str, geom_ids))
    only_geom = geom_ids - table_ids
    only_table = table_ids - geom_ids
    if only_geom or only_table:
        parts = []
        if only_geom:
            parts.append(f"{len(only_geom)} only in polygons: {preview_ids(only_geom)}")
        if only_table:
            parts.append(f"{len(only_table)} only in table: {preview_ids(only_table)}")
        label = f" ({what})" if what else ""
        raise DataValidationError(f"Area codes do not match between table and polygons{label}; " + "; ".join(parts))


def check_unique_pairs(df: pd.DataFrame, area_col: str, category_col: str, what: str) -> None:
    """Each (area, category) pair may appear at most once in a long table."""
    dup = df.duplicated([area_col, category_col], keep=False)
    if dup.any():
        pairs = df.loc[dup, [area_col, category_col]].drop_duplicates()
        sample = [f"{a}/{c}" for a, c in pairs.itertuples(index=False)]
        raise DataValidationError(f"{what} repeats (area, category) pairs: {preview_ids(sample)}")
