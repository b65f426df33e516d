"""Run the classification end-to-end.

Default folders (relative to the working directory, or REPO_ROOT if set):
  - DATA_DIR:    data
  - OUTPUTS_DIR: outputs

Usage:
  python -m lsoa_geodemographics
  python -m lsoa_geodemographics --steps elbow charts
  python -m lsoa_geodemographics --data-dir path/to/data --outputs-dir path/to/outputs --k 7
"""

from __future__ import annotations

import argparse
import os
from pathlib import Path
from typing import Optional, Sequence

import matplotlib

from ._config import load_repo_config, load_settings
from .loader import load_tables
from .pipeline import ALL_STEPS, run_pipeline, write_outputs
from .spatial import load_boundaries


def _repo_root() -> Path:
    return Path(os.environ.get("REPO_ROOT", "") or Path.cwd()).resolve()


def _set_env(args: argparse.Namespace) -> None:
    if args.data_dir:
        os.environ["DATA_DIR"] = str(Path(args.data_dir).resolve())
    if args.outputs_dir:
        os.environ["OUTPUTS_DIR"] = str(Path(args.outputs_dir).resolve())
    if args.k is not None:
        os.environ["N_CLUSTERS"] = str(args.k)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lsoa_geodemographics", description="LSOA geodemographic classification")
    parser.add_argument("--data-dir", default=None, help="Path to input data folder (default: data)")
    parser.add_argument("--outputs-dir", default=None, help="Path to outputs folder (default: outputs)")
    parser.add_argument("--config", default=None, help="Path to a YAML config (default: config.yaml, or CONFIG_PATH)")
    parser.add_argument("--k", type=int, default=None, help="Number of clusters (default: 6)")
    parser.add_argument(
        "--steps",
        nargs="+",
        default=list(ALL_STEPS),
        choices=list(ALL_STEPS),
        help="Which steps to run (default: elbow cluster charts map)",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    matplotlib.use("Agg")
    root = _repo_root()
    _set_env(args)

    cfg = load_repo_config(root, args.config)
    settings = load_settings(root, cfg)

    long_tables = load_tables(settings["tables"])

    boundaries = None
    if "map" in args.steps and "cluster" in args.steps:
        print(f"🗺️ Loading boundaries: {settings['boundaries_path']}")
        boundaries = load_boundaries(settings["boundaries_path"], id_col=settings["boundary_id_col"])

    results = run_pipeline(
        long_tables,
        boundaries=boundaries,
        drop={name: spec["drop"] for name, spec in settings["tables"].items()},
        sparsity_threshold=settings["sparsity_threshold"],
        zero_total_policy=settings["zero_total_policy"],
        rescale_mode=settings["rescale_mode"],
        k_values=settings["k_values"],
        elbow_features=settings["elbow_features"],
        max_linkage_areas=settings["max_linkage_areas"],
        k=settings["k"],
        random_seed=settings["random_seed"],
        n_init=settings["n_init"],
        max_iter=settings["max_iter"],
        cluster_features=settings["cluster_features"],
        steps=args.steps,
    )
    write_outputs(results, settings["outputs_dir"], steps=args.steps, map_title=settings["map_title"])
    print("\n✅ Done.")


if __name__ == "__main__":
    main()
