"""Read the long-format census count tables."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Union

import pandas as pd

from .validation import DataValidationError, check_unique_pairs, preview_ids


AREA_COL = "area_code"
CATEGORY_COL = "category"
COUNT_COL = "count"

NOMIS_AREA_COL = "Lower layer Super Output Areas Code"
NOMIS_COUNT_COL = "Observation"

# Census 2021 topic summaries as downloaded from Nomis (one CSV per table).
DEFAULT_TABLES: Dict[str, Dict[str, Any]] = {
    "age": {
        "path": "ts007a_age.csv",
        "area_col": NOMIS_AREA_COL,
        "category_col": "Age (6 categories)",
        "count_col": NOMIS_COUNT_COL,
        "drop": [],
    },
    "birth": {
        "path": "ts004_country_of_birth.csv",
        "area_col": NOMIS_AREA_COL,
        "category_col": "Country of birth (12 categories)",
        "count_col": NOMIS_COUNT_COL,
        "drop": [],
    },
    "ethnicity": {
        "path": "ts021_ethnic_group.csv",
        "area_col": NOMIS_AREA_COL,
        "category_col": "Ethnic group (20 categories)",
        "count_col": NOMIS_COUNT_COL,
        "drop": [],
    },
    "language": {
        "path": "ts024_main_language.csv",
        "area_col": NOMIS_AREA_COL,
        "category_col": "Main language (11 categories)",
        "count_col": NOMIS_COUNT_COL,
        "drop": [],
    },
}


def _clean_label(x: Any) -> str:
    if x is None or (isinstance(x, float) and pd.isna(x)):
        return ""
    return str(x).strip()


def read_long_table(
    src: Union[str, Path, pd.DataFrame],
    area_col: str = NOMIS_AREA_COL,
    category_col: str = CATEGORY_COL,
    count_col: str = NOMIS_COUNT_COL,
    name: str = "table",
    **_ignored: Any,
) -> pd.DataFrame:
    """Read one long table and return it with canonical column names.

    ``src`` may be a CSV path or an already loaded DataFrame. The result has
    exactly the columns ``area_code``, ``category`` and ``count``.
    """
    if isinstance(src, pd.DataFrame):
        raw = src.copy()
    else:
        path = Path(src)
        if not path.exists():
            raise FileNotFoundError(f"Missing input table '{name}': {path}")
        raw = pd.read_csv(path, dtype=str)

    missing = [c for c in (area_col, category_col, count_col) if c not in raw.columns]
    if missing:
        raise DataValidationError(
            f"Table '{name}' is missing column(s) {missing}; found {list(raw.columns)}"
        )

    df = pd.DataFrame({
        AREA_COL: raw[area_col].map(_clean_label),
        CATEGORY_COL: raw[category_col].map(_clean_label),
        COUNT_COL: pd.to_numeric(raw[count_col], errors="coerce"),
    })

    blank = df[AREA_COL].str.len() == 0
    if blank.any():
        raise DataValidationError(f"Table '{name}' has {int(blank.sum())} row(s) with an empty area code.")

    blank = df[CATEGORY_COL].str.len() == 0
    if blank.any():
        raise DataValidationError(f"Table '{name}' has {int(blank.sum())} row(s) with an empty category.")

    bad_counts = df[COUNT_COL].isna() | (df[COUNT_COL] < 0)
    if bad_counts.any():
        rows = df.loc[bad_counts, AREA_COL]
        raise DataValidationError(
            f"Table '{name}' has non-numeric or negative counts for area(s): {preview_ids(set(rows))}"
        )

    check_unique_pairs(df, AREA_COL, CATEGORY_COL, f"Table '{name}'")

    return df.reset_index(drop=True)


def load_tables(tables: Dict[str, Dict[str, Any]]) -> Dict[str, pd.DataFrame]:
    """Read every configured table; keys of ``tables`` become table names."""
    out: Dict[str, pd.DataFrame] = {}
    for name, spec in tables.items():
        print(f"📥 Loading '{name}' from {spec['path']}")
        out[name] = read_long_table(spec["path"], name=name, **{k: v for k, v in spec.items() if k != "path"})
        print(f"   {out[name][AREA_COL].nunique():,} areas x {out[name][CATEGORY_COL].nunique()} categories")
    return out
