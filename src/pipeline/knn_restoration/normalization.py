"""Per-feature scaling fitted on a training partition and applied to any partition."""

import logging
from dataclasses import dataclass

import numpy as np

from src.pipeline.knn_restoration.errors import ValidationError
from src.pipeline.knn_restoration.records import feature_matrix

logger = logging.getLogger(__name__)


@dataclass
class NormalizationStats:
    """Fitted statistics.

    For 'Min-Max' ``first``/``second`` hold min/max, for 'Z-Score' mean/std.
    ``has_values`` is False for features with no valid training value.
    """
    method: str
    first: np.ndarray
    second: np.ndarray
    has_values: np.ndarray


def fit_normalizer(train_matrix, method, feature_names=None):
    """
    Compute scaling statistics from training data only.

    Parameters:
    -----------
    train_matrix : array-like of shape (n_samples, n_features)
        Training values, NaN where a value is missing
    method : str
        'Min-Max' or 'Z-Score'
    feature_names : sequence of str, optional
        Used for log messages only

    Returns:
    --------
    NormalizationStats
    """
    if method not in ('Min-Max', 'Z-Score'):
        raise ValidationError(f"Unknown normalization method {method!r}.")
    train_matrix = np.asarray(train_matrix, dtype=np.float64)
    n_features = train_matrix.shape[1]
    first = np.zeros(n_features)
    second = np.zeros(n_features)
    has_values = np.zeros(n_features, dtype=bool)

    for j in range(n_features):
        column = train_matrix[:, j]
        values = column[~np.isnan(column)]
        if values.size == 0:
            name = feature_names[j] if feature_names is not None else j
            logger.warning(f"Feature {name} has no valid values")
            continue
        has_values[j] = True
        if method == 'Min-Max':
            first[j] = values.min()
            second[j] = values.max()
        else:
            first[j] = values.mean()
            # Population std: sqrt of the mean squared deviation
            second[j] = np.sqrt(np.mean((values - first[j]) ** 2))

    return NormalizationStats(method=method, first=first, second=second, has_values=has_values)


def apply_normalizer(stats, matrix):
    """Scale a matrix with fitted statistics.

    Features without statistics become 0 everywhere, zero-range features
    become 0, missing (NaN) cells of other features stay NaN.
    """
    matrix = np.asarray(matrix, dtype=np.float64)
    normalized = np.zeros_like(matrix)
    missing = np.isnan(matrix)

    for j in range(matrix.shape[1]):
        if not stats.has_values[j]:
            continue
        if stats.method == 'Min-Max':
            scale = stats.second[j] - stats.first[j]
        else:
            scale = stats.second[j]
        if scale > 0:
            normalized[:, j] = (matrix[:, j] - stats.first[j]) / scale
        else:
            normalized[:, j] = np.where(missing[:, j], np.nan, 0.0)
    return normalized


def normalize_matrices(train_matrix, test_matrix, method, feature_names=None):
    stats = fit_normalizer(train_matrix, method, feature_names)
    return apply_normalizer(stats, train_matrix), apply_normalizer(stats, test_matrix)


def _with_features(records, matrix, feature_names):
    normalized = []
    for record, row in zip(records, matrix):
        features = dict(record.features)
        features.update({name: float(value) for name, value in zip(feature_names, row)})
        normalized.append(record.copy(features=features))
    return normalized


def fit_and_apply(train_records, test_records, method, feature_names):
    """
    Normalize train and test records with statistics from the train records.

    Parameters:
    -----------
    train_records : list of Record
    test_records : list of Record
    method : str
        'Min-Max' or 'Z-Score'
    feature_names : sequence of str

    Returns:
    --------
    tuple : (normalized_train, normalized_test) lists of record copies
    """
    feature_names = list(feature_names)
    train_matrix = feature_matrix(train_records, feature_names)
    test_matrix = feature_matrix(test_records, feature_names)
    norm_train, norm_test = normalize_matrices(train_matrix, test_matrix, method, feature_names)
    return (_with_features(train_records, norm_train, feature_names),
            _with_features(test_records, norm_test, feature_names))
