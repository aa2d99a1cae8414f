"""NaN-tolerant distance functions over normalized feature vectors.

Only features that are present on both sides take part in a comparison. When
no feature is comparable the distance is +inf, so an all-missing pair never
looks like a perfect match.
"""

import numpy as np

from src.pipeline.knn_restoration.errors import ValidationError
from src.pipeline.knn_restoration.records import to_number

COSINE_EPS = 1e-10


def _valid_pairs(x, y):
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    mask = ~np.isnan(x) & ~np.isnan(y)
    return x[mask], y[mask]


def euclidean(x, y):
    x, y = _valid_pairs(x, y)
    if x.size == 0:
        return np.inf
    return float(np.sqrt(np.mean((x - y) ** 2)))


def manhattan(x, y):
    x, y = _valid_pairs(x, y)
    if x.size == 0:
        return np.inf
    return float(np.mean(np.abs(x - y)))


def cosine(x, y):
    x, y = _valid_pairs(x, y)
    if x.size == 0:
        return np.inf
    denominator = np.sqrt(np.sum(x ** 2)) * np.sqrt(np.sum(y ** 2)) + COSINE_EPS
    return float(1 - np.dot(x, y) / denominator)


DISTANCE_FUNCTIONS = {
    'Euclidean': euclidean,
    'Manhattan': manhattan,
    'Cosine': cosine,
}


def record_distance(a, b, feature_names, metric='Euclidean'):
    """Distance between two (already normalized) records."""
    if metric not in DISTANCE_FUNCTIONS:
        raise ValidationError(f"Unknown distance metric {metric!r}.")
    x = [to_number(a.features.get(name)) for name in feature_names]
    y = [to_number(b.features.get(name)) for name in feature_names]
    return DISTANCE_FUNCTIONS[metric](x, y)


def distances_to(target, candidates, metric='Euclidean'):
    """
    Vectorized distance from one vector to every row of a matrix.

    Parameters:
    -----------
    target : array-like of shape (n_features,)
    candidates : array-like of shape (n_candidates, n_features)
    metric : str
        'Euclidean', 'Manhattan' or 'Cosine'

    Returns:
    --------
    np.ndarray : distances of shape (n_candidates,), +inf where no feature is comparable
    """
    if metric not in DISTANCE_FUNCTIONS:
        raise ValidationError(f"Unknown distance metric {metric!r}.")
    target = np.asarray(target, dtype=np.float64)
    candidates = np.asarray(candidates, dtype=np.float64).reshape(-1, target.size)

    mask = ~np.isnan(candidates) & ~np.isnan(target)[np.newaxis, :]
    valid_counts = mask.sum(axis=1)
    x = np.where(mask, target[np.newaxis, :], 0.0)
    y = np.where(mask, candidates, 0.0)

    with np.errstate(divide='ignore', invalid='ignore'):
        if metric == 'Euclidean':
            result = np.sqrt(np.sum((x - y) ** 2, axis=1) / valid_counts)
        elif metric == 'Manhattan':
            result = np.sum(np.abs(x - y), axis=1) / valid_counts
        else:
            norms = np.sqrt(np.sum(x ** 2, axis=1)) * np.sqrt(np.sum(y ** 2, axis=1))
            result = 1 - np.sum(x * y, axis=1) / (norms + COSINE_EPS)
    return np.where(valid_counts > 0, result, np.inf)
