"""k selection aids, k-means fit and cluster profiles."""

from __future__ import annotations

from typing import Iterable, Optional, Tuple

import numpy as np
import pandas as pd
from scipy.cluster.hierarchy import linkage
from scipy.spatial.distance import cdist
from sklearn.cluster import KMeans


N_CLUSTERS = 6
RANDOM_SEED = 999
N_INIT = 100
MAX_ITER = 100
K_VALUES = tuple(range(1, 11))
# Ward linkage holds n(n-1)/2 pairwise distances in memory.
MAX_LINKAGE_AREAS = 5000


def _as_array(X) -> np.ndarray:
    if isinstance(X, pd.DataFrame):
        return X.to_numpy(dtype=float)
    return np.asarray(X, dtype=float)


def _kmeans(k: int, seed: int, n_init: int, max_iter: int) -> KMeans:
    return KMeans(n_clusters=k, n_init=n_init, max_iter=max_iter, random_state=seed)


def elbow_curve(
    X,
    k_values: Iterable[int] = K_VALUES,
    seed: int = RANDOM_SEED,
    n_init: int = N_INIT,
    max_iter: int = MAX_ITER,
) -> pd.DataFrame:
    """Within-cluster sum of squares for each candidate k.

    Candidates outside ``1..n_areas`` are skipped with a warning. The curve is
    for a human to read; nothing here picks k.
    """
    A = _as_array(X)
    rows = []
    for k in k_values:
        k = int(k)
        if k < 1 or k > A.shape[0]:
            print(f"⚠️ Skipping k={k} for the elbow curve ({A.shape[0]} areas).")
            continue
        km = _kmeans(k, seed, n_init, max_iter).fit(A)
        rows.append({"k": k, "inertia": float(km.inertia_)})
    return pd.DataFrame(rows, columns=["k", "inertia"])


def ward_linkage(X, max_areas: Optional[int] = None, seed: int = RANDOM_SEED) -> np.ndarray:
    """Ward linkage matrix, for the dendrogram view of the same data.

    With more than ``max_areas`` rows, a random subset of ``max_areas`` rows
    drawn with ``seed`` is linked instead.
    """
    A = _as_array(X)
    if A.shape[0] < 2:
        raise ValueError("Ward linkage needs at least two areas.")
    if max_areas is not None and A.shape[0] > max_areas:
        if max_areas < 2:
            raise ValueError(f"max_areas must be at least 2, got {max_areas}")
        rows = np.sort(np.random.default_rng(seed).choice(A.shape[0], size=max_areas, replace=False))
        A = A[rows]
    return linkage(A, method="ward")


def fit_kmeans(
    X,
    k: int = N_CLUSTERS,
    seed: int = RANDOM_SEED,
    n_init: int = N_INIT,
    max_iter: int = MAX_ITER,
) -> Tuple[np.ndarray, KMeans]:
    """Fit k-means and return labels numbered 1..k with the fitted model.

    The best of ``n_init`` restarts (lowest inertia) is kept; restarts that hit
    ``max_iter`` before converging are not an error.
    """
    A = _as_array(X)
    if k < 1 or k > A.shape[0]:
        raise ValueError(f"k must be between 1 and the number of areas ({A.shape[0]}), got {k}.")
    km = _kmeans(k, seed, n_init, max_iter)
    labels = km.fit_predict(A).astype(int) + 1
    return labels, km


def cluster_sizes(labels) -> pd.Series:
    return pd.Series(labels, name="cluster").value_counts().sort_index().rename("n_areas")


def profile_clusters(features: pd.DataFrame, labels) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Per-cluster mean vectors and their difference from the global mean."""
    labels = np.asarray(labels)
    if len(labels) != len(features):
        raise ValueError(f"Got {len(labels)} labels for {len(features)} areas.")
    grouped = features.groupby(pd.Series(labels, index=features.index, name="cluster"))
    means = grouped.mean().sort_index()
    diff = means - features.mean(axis=0)
    return means, diff


def representative_areas(X, labels, centers, index) -> pd.DataFrame:
    """The area nearest to each cluster centre, with its distance."""
    A = _as_array(X)
    labels = np.asarray(labels)
    index = pd.Index(index)
    rows = []
    for i, c in enumerate(np.asarray(centers)):
        label = i + 1
        members = np.flatnonzero(labels == label)
        if len(members) == 0:
            continue
        d = cdist(A[members], c.reshape(1, -1)).ravel()
        j = int(np.argmin(d))
        rows.append({"cluster": label, "area_code": str(index[members[j]]), "distance": float(d[j])})
    return pd.DataFrame(rows, columns=["cluster", "area_code", "distance"])
