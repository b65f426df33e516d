from pathlib import Path

import pytest

from lsoa_geodemographics._config import (
    cfg_get,
    env_or_cfg_int,
    env_or_cfg_int_list,
    load_repo_config,
    load_settings,
)


def test_defaults_without_config(tmp_path, clean_env):
    s = load_settings(tmp_path, {})
    assert s["k"] == 6
    assert s["random_seed"] == 999
    assert s["n_init"] == 100
    assert s["max_iter"] == 100
    assert s["sparsity_threshold"] == 0.25
    assert s["k_values"] == list(range(1, 11))
    assert s["rescale_mode"] == "minmax"
    assert s["cluster_features"] == "proportions"
    assert s["elbow_features"] == "transformed"
    assert s["max_linkage_areas"] == 5000
    assert s["zero_total_policy"] == "error"
    assert s["data_dir"] == tmp_path / "data"
    assert s["tables"]["ethnicity"]["path"] == tmp_path / "data" / "ts021_ethnic_group.csv"
    assert s["tables"]["age"]["area_col"] == "Lower layer Super Output Areas Code"


def test_yaml_then_env_precedence(tmp_path, clean_env):
    (tmp_path / "config.yaml").write_text(
        "cluster:\n  k: 8\n  random_seed: 1\n"
        "transform:\n  rescale_mode: legacy\n"
        "tables:\n  age:\n    path: other_age.csv\n    drop: [Aged 4 years and under]\n",
        encoding="utf-8",
    )
    cfg = load_repo_config(tmp_path)
    clean_env.setenv("N_CLUSTERS", "5")
    s = load_settings(tmp_path, cfg)
    assert s["k"] == 5
    assert s["random_seed"] == 1
    assert s["rescale_mode"] == "legacy"
    assert s["tables"]["age"]["path"] == tmp_path / "data" / "other_age.csv"
    assert s["tables"]["age"]["drop"] == ["Aged 4 years and under"]
    assert s["tables"]["age"]["category_col"] == "Age (6 categories)"


def test_explicit_config_path(tmp_path, clean_env):
    p = tmp_path / "custom.yaml"
    p.write_text("quality:\n  sparsity_threshold: 0.4\n", encoding="utf-8")
    clean_env.setenv("CONFIG_PATH", "custom.yaml")
    assert load_settings(tmp_path)["sparsity_threshold"] == 0.4

    clean_env.setenv("CONFIG_PATH", "absent.yaml")
    with pytest.raises(FileNotFoundError):
        load_repo_config(tmp_path)


def test_bad_values_raise(tmp_path, clean_env):
    clean_env.setenv("RESCALE_MODE", "zscore")
    with pytest.raises(ValueError, match="transform.rescale_mode"):
        load_settings(tmp_path, {})
    clean_env.delenv("RESCALE_MODE")

    with pytest.raises(ValueError, match="cluster.k"):
        env_or_cfg_int(None, {"cluster": {"k": "six"}}, "cluster.k", 6)
    with pytest.raises(ValueError, match="cluster.k"):
        env_or_cfg_int(None, {"cluster": {"k": 6.5}}, "cluster.k", 6)


def test_int_list_from_env(clean_env):
    clean_env.setenv("K_VALUES", "2-5")
    assert env_or_cfg_int_list("K_VALUES", {}, "elbow.k_values", [1]) == [2, 3, 4, 5]
    clean_env.setenv("K_VALUES", "3, 6,9")
    assert env_or_cfg_int_list("K_VALUES", {}, "elbow.k_values", [1]) == [3, 6, 9]


def test_cfg_get_dotted():
    cfg = {"a": {"b": {"c": 1}}}
    assert cfg_get(cfg, "a.b.c") == 1
    assert cfg_get(cfg, "a.x", "d") == "d"


def test_repo_config_yaml_parses(clean_env):
    root = Path(__file__).resolve().parents[1]
    s = load_settings(root, load_repo_config(root))
    assert s["k"] == 6
    assert set(s["tables"]) == {"age", "birth", "ethnicity", "language"}
