"""K-nearest-neighbor search over a candidate pool."""

from dataclasses import dataclass

import numpy as np

from src.pipeline.knn_restoration.distance import distances_to
from src.pipeline.knn_restoration.normalization import normalize_matrices
from src.pipeline.knn_restoration.records import Record, clean_label, feature_matrix


@dataclass
class Neighbor:
    record: Record
    distance: float
    label: object


def find_knn(target, candidate_pool, feature_names, config):
    """
    Find the k candidates closest to the target.

    The pool is normalized as a training set and the target as a singleton
    test set with ``config.normalization``. Candidates are ordered by
    ``config.distance_metric`` with a stable sort, so equal distances keep
    pool order. Fewer than k candidates means all of them are returned.

    Parameters:
    -----------
    target : Record
        Query record (raw values, NaN/None for unknown features)
    candidate_pool : list of Record
        Records the neighbors are drawn from
    feature_names : sequence of str
        Features compared
    config : KNNConfig

    Returns:
    --------
    list of Neighbor : original (denormalized) records with distance and cleaned label
    """
    candidate_pool = list(candidate_pool)
    if not candidate_pool:
        return []
    feature_names = list(feature_names)

    pool_matrix = feature_matrix(candidate_pool, feature_names)
    target_matrix = feature_matrix([target], feature_names)
    norm_pool, norm_target = normalize_matrices(pool_matrix, target_matrix, config.normalization, feature_names)

    distances = distances_to(norm_target[0], norm_pool, config.distance_metric)
    order = np.argsort(distances, kind='stable')[:config.k]
    return [
        Neighbor(record=candidate_pool[i], distance=float(distances[i]), label=clean_label(candidate_pool[i].label))
        for i in order
    ]
