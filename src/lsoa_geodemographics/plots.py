"""Static figures for inspecting features and clusters."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Union

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from matplotlib.patches import Patch
from scipy.cluster.hierarchy import dendrogram

from .features import columns_by_table
from .spatial import CLUSTER_COL, UNLABELLED_COLOR, cluster_to_color


PathLike = Union[str, Path]

TABLE_PALETTE = {
    "age": "#1b9e77",
    "birth": "#d95f02",
    "ethnicity": "#7570b3",
    "language": "#e7298a",
}


def _finish(fig, out_path: Optional[PathLike]):
    fig.tight_layout()
    if out_path is not None:
        fig.savefig(out_path, dpi=200)
        plt.close(fig)
        print("✅ Saved figure:", out_path)
    return fig


def plot_boxplots(df: pd.DataFrame, out_path: Optional[PathLike] = None, title: str = "Feature distributions"):
    long = df.melt(var_name="feature", value_name="value")
    fig, ax = plt.subplots(figsize=(max(8, 0.35 * df.shape[1]), 6))
    sns.boxplot(data=long, x="feature", y="value", ax=ax, color="#80b1d3")
    ax.set_title(title)
    ax.set_xlabel("")
    ax.tick_params(axis="x", rotation=90)
    return _finish(fig, out_path)


def plot_correlation(df: pd.DataFrame, out_path: Optional[PathLike] = None):
    corr = df.corr()
    mask = np.triu(np.ones_like(corr, dtype=bool))
    side = max(8, 0.3 * df.shape[1])
    fig, ax = plt.subplots(figsize=(side, side * 0.85))
    sns.heatmap(corr, cmap="coolwarm", center=0, vmin=-1, vmax=1, mask=mask, ax=ax)
    ax.set_title("Feature correlation matrix")
    return _finish(fig, out_path)


def plot_elbow(curve: pd.DataFrame, out_path: Optional[PathLike] = None, chosen_k: Optional[int] = None):
    fig, ax = plt.subplots(figsize=(7, 5))
    ax.plot(curve["k"], curve["inertia"], marker="o")
    if chosen_k is not None and chosen_k in set(curve["k"]):
        ax.axvline(chosen_k, color="#fb8072", linestyle="--", label=f"k = {chosen_k}")
        ax.legend()
    ax.set_xlabel("Number of clusters (k)")
    ax.set_ylabel("Inertia (within-cluster sum of squares)")
    ax.set_title("K-means elbow plot")
    ax.set_xticks(list(curve["k"]))
    return _finish(fig, out_path)


def plot_dendrogram(Z: np.ndarray, out_path: Optional[PathLike] = None, truncate: int = 30):
    fig, ax = plt.subplots(figsize=(10, 5))
    dendrogram(Z, ax=ax, truncate_mode="lastp", p=truncate, no_labels=True, color_threshold=None)
    ax.set_title("Ward dendrogram")
    ax.set_ylabel("Merge distance")
    return _finish(fig, out_path)


def plot_radial_profiles(
    diff: pd.DataFrame,
    out_path: Optional[PathLike] = None,
    tables: Optional[List[str]] = None,
    labels: Optional[Dict[str, str]] = None,
    ncols: int = 3,
):
    """One polar bar chart per cluster of its difference from the global mean.

    Bars point outward for over-represented categories and inward for
    under-represented ones; colour gives the source table.
    """
    tables = tables or list(TABLE_PALETTE)
    cols = list(diff.columns)
    n = len(cols)
    angles = np.linspace(0, 2 * np.pi, n, endpoint=False)
    width = 2 * np.pi / max(n, 1) * 0.9
    table_of = {c: t for t, cs in columns_by_table(cols, tables).items() for c in cs}
    colors = [TABLE_PALETTE.get(table_of.get(c), "#999999") for c in cols]

    lim = float(np.nanmax(np.abs(diff.to_numpy()))) if diff.size else 1.0
    lim = lim if lim > 0 else 1.0

    nrows = int(np.ceil(len(diff) / float(ncols)))
    fig, axes = plt.subplots(nrows, ncols, figsize=(5 * ncols, 5 * nrows), subplot_kw=dict(polar=True), squeeze=False)
    for ax in axes.ravel()[len(diff):]:
        ax.set_visible(False)

    for ax, (cluster, row) in zip(axes.ravel(), diff.iterrows()):
        ax.set_theta_offset(np.pi / 2)
        ax.set_theta_direction(-1)
        ax.bar(angles, row.to_numpy(), width=width, bottom=0.0, color=colors, edgecolor="white", linewidth=0.3)
        ax.set_ylim(-lim, lim)
        ax.plot(np.linspace(0, 2 * np.pi, 200), np.zeros(200), color="#333333", linewidth=0.6)
        ax.set_xticks(angles)
        ax.set_xticklabels([(labels or {}).get(c, c) for c in cols], fontsize=5)
        ax.set_yticklabels([])
        ax.set_title(f"Cluster {cluster}", pad=14, color=cluster_to_color(cluster), fontweight="bold")

    handles = [Patch(facecolor=TABLE_PALETTE[t], label=t) for t in tables if t in TABLE_PALETTE]
    if handles:
        fig.legend(handles=handles, loc="lower center", ncol=len(handles), frameon=False)
    fig.suptitle("Cluster profiles: difference from the mean")
    return _finish(fig, out_path)


def plot_cluster_map(gdf, out_path: Optional[PathLike] = None, title: str = "LSOA clusters"):
    fig, ax = plt.subplots(figsize=(8, 8))
    present = sorted(int(c) for c in gdf[CLUSTER_COL].dropna().unique())
    for c in present:
        gdf[gdf[CLUSTER_COL] == c].plot(ax=ax, color=cluster_to_color(c), linewidth=0.1, edgecolor="white")
    handles = [Patch(facecolor=cluster_to_color(c), edgecolor="none", label=f"Cluster {c}") for c in present]
    missing = gdf[CLUSTER_COL].isna()
    if missing.any():
        gdf[missing].plot(ax=ax, color=UNLABELLED_COLOR, linewidth=0.1, edgecolor="white")
        handles.append(Patch(facecolor=UNLABELLED_COLOR, edgecolor="none", label="No cluster"))
    ax.legend(handles=handles, title="Cluster", bbox_to_anchor=(1.02, 1), loc="upper left")
    ax.set_axis_off()
    ax.set_title(title)
    return _finish(fig, out_path)
