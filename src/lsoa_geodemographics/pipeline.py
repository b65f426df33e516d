"""End-to-end classification: tables in, labelled areas and figures out."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from . import plots
from .clustering import (
    K_VALUES, MAX_ITER, MAX_LINKAGE_AREAS, N_CLUSTERS, N_INIT, RANDOM_SEED,
    cluster_sizes, elbow_curve, fit_kmeans, profile_clusters, representative_areas, ward_linkage,
)
from .features import (
    SPARSITY_THRESHOLD,
    clustering_matrix, columns_by_table, join_tables, quality_filter, transform_features,
)
from .loader import AREA_COL
from .normalize import widen_and_normalize
from .spatial import CLUSTER_COL, attach_clusters, folium_cluster_map
from .validation import ZeroTotalError, check_proportions, check_table_sums


ALL_STEPS = ("elbow", "cluster", "charts", "map")


def prepare_features(
    long_tables: Dict[str, pd.DataFrame],
    drop: Optional[Dict[str, Sequence[str]]] = None,
    sparsity_threshold: float = SPARSITY_THRESHOLD,
    zero_total_policy: str = "error",
    rescale_mode: str = "minmax",
) -> Dict[str, Any]:
    """Widen, normalise, join, filter and transform the four tables."""
    drop = drop or {}
    wide: Dict[str, pd.DataFrame] = {}
    metas: Dict[str, Dict[str, Any]] = {}
    for name, long_df in long_tables.items():
        wide[name], metas[name] = widen_and_normalize(long_df, name, drop=drop.get(name))
        if metas[name]["dropped_columns"]:
            print(f"🧹 '{name}': dropped aggregate categories {metas[name]['dropped_columns']}")

    zero_total = {n: m["zero_total_areas"] for n, m in metas.items() if m["zero_total_areas"]}
    if zero_total:
        if zero_total_policy == "error":
            name, areas = next(iter(zero_total.items()))
            raise ZeroTotalError(name, areas)
        flagged = sorted(set().union(*zero_total.values()))
        print(f"⚠️ Dropping {len(flagged)} zero-total area(s) from every table: {flagged[:10]}")
        wide = {n: df.drop(index=flagged, errors="ignore") for n, df in wide.items()}

    table_names = list(wide)
    proportions = join_tables(wide)
    print(f"🧩 Joined {len(table_names)} tables: {proportions.shape[0]:,} areas x {proportions.shape[1]} categories")

    check_proportions(proportions, "joined proportions")
    check_table_sums(proportions, columns_by_table(list(proportions.columns), table_names), exact=True)

    features, dropped, zf = quality_filter(proportions, sparsity_threshold)
    print(f"🧹 Quality filter (zero fraction > {sparsity_threshold:.2f}) dropped {len(dropped)} column(s); {features.shape[1]} kept")
    check_table_sums(features, columns_by_table(list(features.columns), table_names), exact=False)

    transformed = transform_features(features, rescale_mode=rescale_mode)

    totals = pd.concat([m["totals"] for m in metas.values()], axis=1).reindex(features.index)
    labels: Dict[str, str] = {}
    for m in metas.values():
        labels.update(m["labels"])

    return {
        "tables": table_names,
        "proportions": proportions,
        "features": features,
        "transformed": transformed,
        "zero_fractions": zf,
        "quality_dropped": dropped,
        "aggregate_dropped": {n: m["dropped_columns"] for n, m in metas.items()},
        "zero_total_areas": zero_total,
        "totals": totals,
        "labels": labels,
        "rescale_mode": rescale_mode,
        "sparsity_threshold": float(sparsity_threshold),
    }


def run_pipeline(
    long_tables: Dict[str, pd.DataFrame],
    boundaries=None,
    drop: Optional[Dict[str, Sequence[str]]] = None,
    sparsity_threshold: float = SPARSITY_THRESHOLD,
    zero_total_policy: str = "error",
    rescale_mode: str = "minmax",
    k_values: Iterable[int] = K_VALUES,
    elbow_features: str = "transformed",
    max_linkage_areas: int = MAX_LINKAGE_AREAS,
    k: int = N_CLUSTERS,
    random_seed: int = RANDOM_SEED,
    n_init: int = N_INIT,
    max_iter: int = MAX_ITER,
    cluster_features: str = "proportions",
    steps: Sequence[str] = ALL_STEPS,
) -> Dict[str, Any]:
    """Run every requested step and return the in-memory results.

    ``boundaries`` is a GeoDataFrame already passed through
    ``spatial.load_boundaries``; without it the map step is skipped.
    ``max_linkage_areas`` caps the dendrogram input; below 2 it is not built.
    """
    results = prepare_features(
        long_tables,
        drop=drop,
        sparsity_threshold=sparsity_threshold,
        zero_total_policy=zero_total_policy,
        rescale_mode=rescale_mode,
    )
    results.update({
        "k": int(k),
        "random_seed": int(random_seed),
        "n_init": int(n_init),
        "max_iter": int(max_iter),
        "elbow_features": elbow_features,
        "cluster_features": cluster_features,
    })
    proportions = results["features"]
    transformed = results["transformed"]

    if "cluster" in steps and "elbow" in steps and elbow_features != cluster_features:
        print(
            f"⚠️ Elbow curve uses {elbow_features} features but k-means runs on {cluster_features}; "
            "the chosen k may not match the clustered space."
        )

    if "elbow" in steps:
        X_elbow = clustering_matrix(proportions, transformed, elbow_features)
        results["elbow"] = elbow_curve(X_elbow, k_values, seed=random_seed, n_init=n_init, max_iter=max_iter)
        print(f"📉 Elbow curve over k={list(results['elbow']['k'])}")
        if max_linkage_areas >= 2:
            n = len(X_elbow)
            if n > max_linkage_areas:
                print(f"⚠️ Dendrogram uses a random sample of {max_linkage_areas:,} of {n:,} areas (seed {random_seed}).")
            results["linkage"] = ward_linkage(X_elbow, max_areas=max_linkage_areas, seed=random_seed)
            results["linkage_areas"] = min(n, max_linkage_areas)
        else:
            print("⏭️ Dendrogram skipped (max_linkage_areas < 2).")

    if "cluster" in steps:
        X = clustering_matrix(proportions, transformed, cluster_features)
        labels, km = fit_kmeans(X, k=k, seed=random_seed, n_init=n_init, max_iter=max_iter)
        results["labels_by_area"] = pd.Series(labels, index=X.index, name=CLUSTER_COL)
        results["inertia"] = float(km.inertia_)
        results["sizes"] = cluster_sizes(labels)
        results["profiles"], results["diff_from_mean"] = profile_clusters(proportions, labels)
        results["representatives"] = representative_areas(X, labels, km.cluster_centers_, X.index)
        print(f"✅ k-means (k={k}, seed={random_seed}, n_init={n_init}, max_iter={max_iter}) inertia={km.inertia_:.4f}")
        print("   cluster sizes:", results["sizes"].to_dict())

        if "map" in steps and boundaries is not None:
            results["clustered_geo"] = attach_clusters(boundaries, results["labels_by_area"])
            print(f"🧩 Attached cluster labels to {len(results['clustered_geo']):,} polygons")

    return results


def build_manifest(results: Dict[str, Any]) -> Dict[str, Any]:
    manifest = {
        "unit": "lsoa",
        "tables": results["tables"],
        "n_areas": int(results["features"].shape[0]),
        "features": list(results["features"].columns),
        "sparsity_threshold": results["sparsity_threshold"],
        "quality_dropped": results["quality_dropped"],
        "aggregate_dropped": results["aggregate_dropped"],
        "zero_total_areas": results["zero_total_areas"],
        "rescale_mode": results["rescale_mode"],
        "elbow_features": results.get("elbow_features"),
        "linkage_areas": results.get("linkage_areas"),
        "cluster_features": results.get("cluster_features"),
        "k": results.get("k"),
        "random_seed": results.get("random_seed"),
        "n_init": results.get("n_init"),
        "max_iter": results.get("max_iter"),
    }
    if "sizes" in results:
        manifest["inertia"] = results["inertia"]
        manifest["cluster_sizes"] = {str(c): int(n) for c, n in results["sizes"].items()}
        manifest["representative_areas"] = results["representatives"].to_dict(orient="records")
    return manifest


def write_outputs(
    results: Dict[str, Any],
    outputs_dir: Union[str, Path],
    steps: Sequence[str] = ALL_STEPS,
    map_title: Optional[str] = None,
) -> List[Path]:
    """Write tables, figures and manifest.json for one run."""
    out = Path(outputs_dir)
    out.mkdir(parents=True, exist_ok=True)
    written: List[Path] = []

    def _csv(df, name, **kw):
        p = out / name
        df.to_csv(p, **kw)
        written.append(p)

    _csv(results["zero_fractions"].rename("zero_fraction").to_frame(), "zero_fractions.csv", index_label="feature")

    if "elbow" in results:
        _csv(results["elbow"], "elbow_curve.csv", index=False)

    if "labels_by_area" in results:
        areas = results["totals"].copy()
        areas.insert(0, CLUSTER_COL, results["labels_by_area"])
        _csv(areas, "area_clusters.csv", index_label=AREA_COL)
        _csv(results["profiles"], "cluster_profiles.csv", index_label=CLUSTER_COL)
        _csv(results["diff_from_mean"], "cluster_diff_from_mean.csv", index_label=CLUSTER_COL)

    if "charts" in steps:
        plots.plot_boxplots(results["transformed"], out / "boxplots.png")
        plots.plot_correlation(results["features"], out / "correlation.png")
        written += [out / "boxplots.png", out / "correlation.png"]
        if "elbow" in results:
            plots.plot_elbow(results["elbow"], out / "elbow.png", chosen_k=results.get("k"))
            written.append(out / "elbow.png")
        if "linkage" in results:
            plots.plot_dendrogram(results["linkage"], out / "dendrogram.png")
            written.append(out / "dendrogram.png")
        if "diff_from_mean" in results:
            plots.plot_radial_profiles(
                results["diff_from_mean"], out / "radial_profiles.png",
                tables=results["tables"], labels=results["labels"],
            )
            written.append(out / "radial_profiles.png")

    if "clustered_geo" in results:
        gdf = results["clustered_geo"]
        plots.plot_cluster_map(gdf, out / "cluster_map.png", title=map_title or "LSOA clusters")
        written.append(out / "cluster_map.png")
        out_html = out / "cluster_map.html"
        try:
            folium_cluster_map(gdf, out_html, title=map_title)
            written.append(out_html)
        except Exception as e:
            print("⚠️ Could not write folium map:", repr(e))

    manifest_path = out / "manifest.json"
    with open(manifest_path, "w", encoding="utf-8") as f:
        json.dump(build_manifest(results), f, indent=2, default=_json_default)
    written.append(manifest_path)

    print("✅ Saved:")
    for p in written:
        print("  -", p)
    return written


def _json_default(o: Any) -> Any:
    if isinstance(o, (np.integer,)):
        return int(o)
    if isinstance(o, (np.floating,)):
        return float(o)
    raise TypeError(f"Object of type {type(o).__name__} is not JSON serializable")
