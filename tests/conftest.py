import matplotlib

matplotlib.use("Agg")

import geopandas as gpd
import numpy as np
import pandas as pd
import pytest
from shapely.geometry import box

from lsoa_geodemographics.loader import AREA_COL, CATEGORY_COL, COUNT_COL


N_AREAS = 30

# Three planted groups with different category mixes per table.
CATEGORY_WEIGHTS = {
    "age": {
        "Aged 15 years and under": (0.30, 0.10, 0.20),
        "Aged 16 to 24 years": (0.10, 0.40, 0.10),
        "Aged 25 to 49 years": (0.35, 0.40, 0.30),
        "Aged 50 to 64 years": (0.15, 0.05, 0.20),
        "Aged 65 years and over": (0.10, 0.05, 0.20),
    },
    "birth": {
        "Europe: United Kingdom": (0.85, 0.55, 0.70),
        "Europe: EU countries": (0.05, 0.15, 0.10),
        "Africa": (0.05, 0.10, 0.10),
        "Middle East and Asia": (0.05, 0.20, 0.10),
    },
    "ethnicity": {
        "White: English, Welsh, Scottish, Northern Irish or British": (0.80, 0.40, 0.60),
        "Asian, Asian British or Asian Welsh: Indian": (0.10, 0.30, 0.20),
        "Black, Black British, Black Welsh, Caribbean or African: African": (0.10, 0.30, 0.20),
    },
    "language": {
        "English or Welsh": (0.95, 0.75, 0.85),
        "Other European language (EU)": (0.03, 0.10, 0.10),
        "South Asian language": (0.02, 0.15, 0.05),
    },
}


def area_codes(n=N_AREAS):
    return [f"E01{i:06d}" for i in range(1, n + 1)]


def make_long_tables(n=N_AREAS, seed=7):
    """Four long tables with planted structure and one sparse category."""
    rng = np.random.default_rng(seed)
    codes = area_codes(n)
    out = {}
    for table, cats in CATEGORY_WEIGHTS.items():
        rows = []
        for i, code in enumerate(codes):
            g = i % 3
            pop = int(rng.integers(1200, 1800))
            for label, weights in cats.items():
                rows.append((code, label, int(round(pop * weights[g] * rng.uniform(0.9, 1.1))) + 1))
            if table == "language":
                # Zero in two thirds of areas: dropped by the sparsity filter.
                rows.append((code, "Sign language", 3 if g == 0 else 0))
            if table == "ethnicity":
                rows.append((code, "Total: All usual residents", pop))
        out[table] = pd.DataFrame(rows, columns=[AREA_COL, CATEGORY_COL, COUNT_COL])
    return out


@pytest.fixture
def long_tables():
    return make_long_tables()


@pytest.fixture
def toy_long():
    rows = [
        ("A", "cat1", 10), ("A", "cat2", 10),
        ("B", "cat1", 5), ("B", "cat2", 15),
        ("C", "cat1", 0), ("C", "cat2", 0),
        ("D", "cat1", 20), ("D", "cat2", 0),
    ]
    return pd.DataFrame(rows, columns=[AREA_COL, CATEGORY_COL, COUNT_COL])


def make_boundaries(codes):
    geoms = [box(530000 + 100 * (i % 6), 180000 + 100 * (i // 6), 530100 + 100 * (i % 6), 180100 + 100 * (i // 6)) for i in range(len(codes))]
    return gpd.GeoDataFrame({"LSOA21CD": codes, "LSOA21NM": [f"Area {c[-3:]}" for c in codes]}, geometry=geoms, crs=27700)


@pytest.fixture
def boundaries():
    return make_boundaries(area_codes())


@pytest.fixture
def clean_env(monkeypatch):
    for key in (
        "CONFIG_PATH", "DATA_DIR", "OUTPUTS_DIR", "BOUNDARIES_PATH", "BOUNDARY_ID_COL",
        "SPARSITY_THRESHOLD", "ZERO_TOTAL_POLICY", "RESCALE_MODE", "K_VALUES", "ELBOW_FEATURES",
        "N_CLUSTERS", "RANDOM_SEED", "N_INIT", "MAX_ITER", "CLUSTER_FEATURES", "MAP_TITLE", "REPO_ROOT",
        "MAX_LINKAGE_AREAS",
    ):
        # teardown restores the unset state
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    return monkeypatch
