import numpy as np
import pandas as pd
import pytest

from lsoa_geodemographics.features import (
    asinh_transform,
    clustering_matrix,
    columns_by_table,
    join_tables,
    quality_filter,
    rescale,
    transform_features,
    zero_fractions,
)
from lsoa_geodemographics.normalize import widen_and_normalize
from lsoa_geodemographics.validation import DataValidationError


def _wide(long_tables):
    return {name: widen_and_normalize(df, name)[0] for name, df in long_tables.items()}


def test_join_one_row_per_area(long_tables):
    joined = join_tables(_wide(long_tables))
    assert not joined.index.duplicated().any()
    assert len(joined) == 30
    groups = columns_by_table(list(joined.columns), list(long_tables))
    for cols in groups.values():
        np.testing.assert_allclose(joined[cols].sum(axis=1).to_numpy(), 1.0)


def test_join_rejects_area_mismatch(long_tables):
    wide = _wide(long_tables)
    wide["age"] = wide["age"].drop(index="E01000003")
    with pytest.raises(DataValidationError, match="'age' is missing 1 area"):
        join_tables(wide)


def test_join_rejects_duplicate_column_names():
    a = pd.DataFrame({"x_a": [1.0]}, index=["A"])
    with pytest.raises(DataValidationError, match="appears in both"):
        join_tables({"x": a, "y": a.copy()})


def test_quality_filter_threshold_boundaries():
    n = 10
    df = pd.DataFrame({
        "thirty": [0.0] * 3 + [0.5] * 7,
        "twenty": [0.0] * 2 + [0.5] * 8,
        "dense": [0.2] * 10,
    }, index=[f"a{i}" for i in range(n)])

    kept, dropped, zf = quality_filter(df, 0.25)
    assert dropped == ["thirty"]
    assert list(kept.columns) == ["twenty", "dense"]
    assert zf["thirty"] == pytest.approx(0.3)
    assert zf["twenty"] == pytest.approx(0.2)


def test_quality_filter_keeps_exact_threshold():
    df = pd.DataFrame({"c": [0.0, 1.0, 1.0, 1.0]})
    assert zero_fractions(df)["c"] == 0.25
    kept, dropped, _ = quality_filter(df, 0.25)
    assert dropped == []


def test_quality_filter_is_idempotent(long_tables):
    joined = join_tables(_wide(long_tables))
    once, dropped1, _ = quality_filter(joined)
    twice, dropped2, _ = quality_filter(once)
    assert dropped1 == ["language_sign_language"]
    assert dropped2 == []
    assert quality_filter(joined)[1] == dropped1
    pd.testing.assert_frame_equal(once, twice)


def test_filtered_table_sums_at_most_one(long_tables):
    joined = join_tables(_wide(long_tables))
    kept, _, _ = quality_filter(joined)
    for cols in columns_by_table(list(kept.columns), list(long_tables)).values():
        assert (kept[cols].sum(axis=1) <= 1.0 + 1e-9).all()


def test_asinh_matches_numpy():
    df = pd.DataFrame({"a": [0.0, 0.5, 1.0]})
    np.testing.assert_allclose(asinh_transform(df)["a"].to_numpy(), np.arcsinh([0.0, 0.5, 1.0]))


def test_rescale_minmax_and_legacy():
    df = pd.DataFrame({"a": [1.0, 2.0, 3.0], "flat": [0.4, 0.4, 0.4]})

    mm = rescale(df, "minmax")
    assert mm["a"].tolist() == [0.0, 0.5, 1.0]
    assert mm["flat"].tolist() == [0.0, 0.0, 0.0]

    # x - min / (max - min) = x - 1 / 2
    legacy = rescale(df, "legacy")
    assert legacy["a"].tolist() == [0.5, 1.5, 2.5]
    assert legacy["flat"].tolist() == [0.0, 0.0, 0.0]

    with pytest.raises(ValueError):
        rescale(df, "zscore")


def test_transform_features_range(long_tables):
    joined = join_tables(_wide(long_tables))
    t = transform_features(joined)
    assert t.min().min() == pytest.approx(0.0)
    assert t.max().max() == pytest.approx(1.0)


def test_clustering_matrix_source():
    p = pd.DataFrame({"a": [1.0]})
    t = pd.DataFrame({"a": [2.0]})
    assert clustering_matrix(p, t, "proportions") is p
    assert clustering_matrix(p, t, "transformed") is t
    with pytest.raises(ValueError):
        clustering_matrix(p, t, "scaled")


def test_columns_by_table_longest_prefix():
    groups = columns_by_table(["birth_x", "birth_region_y"], ["birth", "birth_region"])
    assert groups == {"birth": ["birth_x"], "birth_region": ["birth_region_y"]}
