"""Long-to-wide pivot and within-area proportions for one source table."""

from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from .loader import AREA_COL, CATEGORY_COL, COUNT_COL
from .validation import DataValidationError, check_unique_pairs


# Aggregate rows ("Total: All usual residents") and the Nomis placeholder
# category are not categories of the classification.
AGGREGATE_PREFIXES = ("total",)
PLACEHOLDER_LABELS = ("does not apply",)

_SLUG_RE = re.compile(r"[^0-9a-z]+")


def slugify(label: str) -> str:
    return _SLUG_RE.sub("_", str(label).lower()).strip("_")


def feature_name(table: str, label: str) -> str:
    return f"{table}_{slugify(label)}"


def widen(long_df: pd.DataFrame, table: str = "table") -> pd.DataFrame:
    """Pivot (area_code, category, count) rows to one row per area.

    Categories an area never reports are filled with zero counts. A repeated
    (area, category) pair is an error.
    """
    check_unique_pairs(long_df, AREA_COL, CATEGORY_COL, f"Table '{table}'")
    wide = long_df.pivot_table(
        index=AREA_COL,
        columns=CATEGORY_COL,
        values=COUNT_COL,
        aggfunc="sum",
        fill_value=0,
        sort=True,
    )
    wide.columns = [str(c) for c in wide.columns]
    wide.columns.name = None
    return wide.astype(float)


def drop_aggregate_columns(wide: pd.DataFrame, extra: Optional[Iterable[str]] = None) -> Tuple[pd.DataFrame, List[str]]:
    """Drop totals, placeholders and any explicitly listed labels."""
    extra_l = {str(x).strip().lower() for x in (extra or [])}
    dropped = []
    for c in wide.columns:
        lc = c.strip().lower()
        if lc.startswith(AGGREGATE_PREFIXES) or lc in PLACEHOLDER_LABELS or lc in extra_l:
            dropped.append(c)
    return wide.drop(columns=dropped), dropped


def to_proportions(wide: pd.DataFrame) -> Tuple[pd.DataFrame, pd.Series, List[str]]:
    """Divide each row by its total.

    Rows with a zero total come back as NaN and are listed separately so the
    caller can decide what to do with them.
    """
    totals = wide.sum(axis=1)
    zero = totals[totals <= 0].index.tolist()
    props = wide.div(totals.replace(0, np.nan), axis=0)
    return props, totals, zero


def widen_and_normalize(
    long_df: pd.DataFrame,
    table: str,
    drop: Optional[Iterable[str]] = None,
) -> Tuple[pd.DataFrame, Dict[str, Any]]:
    """Run the widening steps for one table.

    Returns the proportion frame (index = area code, columns named
    ``<table>_<slug>``) and a metadata dict with ``totals``,
    ``zero_total_areas``, ``dropped_columns`` and ``labels``.
    """
    wide = widen(long_df, table)

    wide, dropped = drop_aggregate_columns(wide, drop)
    if wide.shape[1] == 0:
        raise DataValidationError(f"Table '{table}' has no categories left after dropping aggregates.")

    labels: Dict[str, str] = {}
    for label in wide.columns:
        col = feature_name(table, label)
        if col in labels:
            raise DataValidationError(
                f"Categories '{labels[col]}' and '{label}' in table '{table}' both map to column '{col}'."
            )
        labels[col] = label

    props, totals, zero = to_proportions(wide)
    props.columns = list(labels.keys())
    props.index.name = AREA_COL

    meta = {
        "table": table,
        "totals": totals.rename(f"{table}_total"),
        "zero_total_areas": zero,
        "dropped_columns": dropped,
        "labels": labels,
    }
    return props, meta
