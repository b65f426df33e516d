"""Config helpers for the classification pipeline.

Every tunable can be set in three ways (highest priority wins):
1) Environment variables (quick one-off runs)
2) config.yaml at the repo root, or the file named by CONFIG_PATH
3) Code defaults

A value that is present but cannot be parsed raises ValueError naming the
key.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from .loader import DEFAULT_TABLES


RESCALE_MODES = ("minmax", "legacy")
FEATURE_SOURCES = ("proportions", "transformed")
ZERO_TOTAL_POLICIES = ("error", "drop")


def cfg_get(cfg: Dict[str, Any], dotted_key: str, default: Any = None) -> Any:
    cur: Any = cfg
    for part in dotted_key.split("."):
        if not isinstance(cur, dict) or part not in cur:
            return default
        cur = cur[part]
    return cur


def resolve_repo_path(repo_root: Path, p: Any, default: Optional[Path] = None) -> Optional[Path]:
    """Resolve a repo-relative path from config/env into an absolute Path."""
    if p is None:
        return default
    s = str(p).strip()
    if not s:
        return default
    path = Path(s)
    if not path.is_absolute():
        path = repo_root / path
    return path


def load_repo_config(repo_root: Path, config_path: Optional[Any] = None) -> Dict[str, Any]:
    """Load config.yaml from repo root unless CONFIG_PATH (or config_path) is set.

    A missing default file yields an empty config. An explicitly requested
    file that does not exist is an error.
    """
    explicit = config_path or os.environ.get("CONFIG_PATH", "").strip()
    if explicit:
        p = Path(explicit)
        if not p.is_absolute():
            p = repo_root / p
        if not p.exists():
            raise FileNotFoundError(f"Config file not found: {p}")
    else:
        p = repo_root / "config.yaml"
        if not p.exists():
            return {}
    with open(p, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {p} must contain a mapping at the top level.")
    return data


def _env_set(env_key: Optional[str]) -> bool:
    return bool(env_key) and str(os.environ.get(env_key, "")).strip() != ""


def env_or_cfg(env_key: Optional[str], cfg: Dict[str, Any], cfg_key: str, default: Any = None) -> Any:
    """Return env var if set, else cfg value if present, else default."""
    if _env_set(env_key):
        return os.environ.get(env_key)
    v = cfg_get(cfg, cfg_key, None)
    return default if v is None else v


def env_or_cfg_float(env_key: Optional[str], cfg: Dict[str, Any], cfg_key: str, default: float) -> float:
    v = env_or_cfg(env_key, cfg, cfg_key, default)
    try:
        return float(v)
    except (TypeError, ValueError):
        raise ValueError(f"{cfg_key} must be a number, got {v!r}") from None


def env_or_cfg_int(env_key: Optional[str], cfg: Dict[str, Any], cfg_key: str, default: int) -> int:
    v = env_or_cfg(env_key, cfg, cfg_key, default)
    try:
        f = float(v)
    except (TypeError, ValueError):
        raise ValueError(f"{cfg_key} must be an integer, got {v!r}") from None
    if not f.is_integer():
        raise ValueError(f"{cfg_key} must be an integer, got {v!r}")
    return int(f)


def env_or_cfg_int_list(env_key: Optional[str], cfg: Dict[str, Any], cfg_key: str, default: Sequence[int]) -> List[int]:
    """Read a list of ints. Env vars accept CSV ("1,2,3") or a range ("1-10")."""
    if _env_set(env_key):
        raw = str(os.environ.get(env_key)).strip()
        if "-" in raw and "," not in raw:
            lo, hi = raw.split("-", 1)
            items: List[Any] = list(range(int(lo), int(hi) + 1))
        else:
            items = [x.strip() for x in raw.split(",") if x.strip() != ""]
    else:
        v = cfg_get(cfg, cfg_key, None)
        if v is None:
            return [int(x) for x in default]
        if not isinstance(v, (list, tuple)):
            raise ValueError(f"{cfg_key} must be a list, got {v!r}")
        items = list(v)
    try:
        return [int(x) for x in items]
    except (TypeError, ValueError):
        raise ValueError(f"{cfg_key} must be a list of integers, got {items!r}") from None


def env_or_cfg_choice(env_key: Optional[str], cfg: Dict[str, Any], cfg_key: str, default: str, choices: Sequence[str]) -> str:
    v = str(env_or_cfg(env_key, cfg, cfg_key, default)).strip().lower()
    if v not in choices:
        raise ValueError(f"{cfg_key} must be one of {list(choices)}, got {v!r}")
    return v


def load_settings(repo_root: Path, cfg: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Collect every pipeline parameter into one flat dict.

    Most keys match keyword arguments of ``pipeline.run_pipeline``.
    """
    if cfg is None:
        cfg = load_repo_config(repo_root)

    data_dir = resolve_repo_path(repo_root, env_or_cfg("DATA_DIR", cfg, "paths.data_dir", "data"), repo_root / "data")
    outputs_dir = resolve_repo_path(repo_root, env_or_cfg("OUTPUTS_DIR", cfg, "paths.outputs_dir", "outputs"), repo_root / "outputs")
    boundaries = resolve_repo_path(
        repo_root,
        env_or_cfg("BOUNDARIES_PATH", cfg, "paths.boundaries", None),
        data_dir / "lsoa_boundaries.geojson",
    )

    tables = {}
    for name, spec in DEFAULT_TABLES.items():
        table_cfg = cfg_get(cfg, f"tables.{name}", {}) or {}
        if not isinstance(table_cfg, dict):
            raise ValueError(f"tables.{name} must be a mapping, got {table_cfg!r}")
        merged = dict(spec)
        merged.update(table_cfg)
        merged["path"] = resolve_repo_path(data_dir, merged["path"])
        merged["drop"] = list(merged.get("drop") or [])
        tables[name] = merged

    return {
        "data_dir": data_dir,
        "outputs_dir": outputs_dir,
        "boundaries_path": boundaries,
        "boundary_id_col": str(env_or_cfg("BOUNDARY_ID_COL", cfg, "boundaries.id_col", "LSOA21CD")),
        "tables": tables,
        "sparsity_threshold": env_or_cfg_float("SPARSITY_THRESHOLD", cfg, "quality.sparsity_threshold", 0.25),
        "zero_total_policy": env_or_cfg_choice("ZERO_TOTAL_POLICY", cfg, "quality.zero_total_policy", "error", ZERO_TOTAL_POLICIES),
        "rescale_mode": env_or_cfg_choice("RESCALE_MODE", cfg, "transform.rescale_mode", "minmax", RESCALE_MODES),
        "k_values": env_or_cfg_int_list("K_VALUES", cfg, "elbow.k_values", list(range(1, 11))),
        "elbow_features": env_or_cfg_choice("ELBOW_FEATURES", cfg, "elbow.features", "transformed", FEATURE_SOURCES),
        "max_linkage_areas": env_or_cfg_int("MAX_LINKAGE_AREAS", cfg, "elbow.max_linkage_areas", 5000),
        "k": env_or_cfg_int("N_CLUSTERS", cfg, "cluster.k", 6),
        "random_seed": env_or_cfg_int("RANDOM_SEED", cfg, "cluster.random_seed", 999),
        "n_init": env_or_cfg_int("N_INIT", cfg, "cluster.n_init", 100),
        "max_iter": env_or_cfg_int("MAX_ITER", cfg, "cluster.max_iter", 100),
        "cluster_features": env_or_cfg_choice("CLUSTER_FEATURES", cfg, "cluster.features", "proportions", FEATURE_SOURCES),
        "map_title": str(env_or_cfg("MAP_TITLE", cfg, "map.title", "LSOA Geodemographic Clusters")).strip(),
    }
