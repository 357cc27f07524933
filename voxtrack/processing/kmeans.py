"""K-means clustering of intensities for automatic thresholding."""

from typing import Optional
import logging

import numpy as np
from sklearn.cluster import MiniBatchKMeans

from ..exceptions import InvalidConfiguration


def kmeans_threshold(
    volume: np.ndarray,
    n_clusters: int = 3,
    target_cluster: int = 0,
    random_seed: Optional[int] = None,
    batch_size: int = 4096,
    max_samples: int = 1_000_000
) -> float:
    """Derive a threshold from k-means clusters of the voxel intensities.

    Clusters are sorted by centre intensity. The threshold is the midpoint
    between the target cluster (0 = darkest) and the next brighter one, so
    the target cluster and everything darker end up as background.

    Args:
        volume: Scalar volume
        n_clusters: Number of clusters for K-means
        target_cluster: Index of the brightest background cluster
        random_seed: Random seed for reproducibility
        batch_size: Batch size for MiniBatchKMeans
        max_samples: Maximum number of voxels used for fitting

    Returns:
        Intensity threshold
    """
    if n_clusters < 2 or not 0 <= target_cluster < n_clusters - 1:
        raise InvalidConfiguration(
            f"Invalid k-means setup: {n_clusters} clusters, target {target_cluster}"
        )

    samples = np.asarray(volume, dtype=np.float64).reshape(-1, 1)
    n_samples = samples.shape[0]

    if n_samples > max_samples:
        rng = np.random.RandomState(random_seed)
        subset_idx = rng.choice(n_samples, size=max_samples, replace=False)
        samples = samples[subset_idx]
        logging.debug(f"Fitting k-means on {max_samples:,} of {n_samples:,} voxels")

    if np.unique(samples).size < n_clusters:
        raise InvalidConfiguration(
            f"Volume has fewer distinct intensities than {n_clusters} clusters"
        )

    kmeans = MiniBatchKMeans(
        n_clusters=n_clusters,
        random_state=random_seed,
        batch_size=batch_size,
        n_init=3,
        max_iter=100,
        max_no_improvement=10
    )
    kmeans.fit(samples)

    centers = np.sort(kmeans.cluster_centers_.ravel())
    threshold = float((centers[target_cluster] + centers[target_cluster + 1]) / 2.0)

    logging.info(f"K-means cluster centres: {np.round(centers, 2).tolist()}, threshold {threshold:.2f}")
    return threshold
