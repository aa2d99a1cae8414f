"""Combining neighbor labels into a prediction and neighbor values into an imputation."""

import logging
import math
from collections import Counter

import numpy as np

from src.pipeline.knn_restoration.records import to_number

logger = logging.getLogger(__name__)


def mode(values):
    """
    Most frequent value; ties go to the value encountered first.

    [4, 2, 2, 4] gives 4. A count-as-you-go scan would give 2, the value that
    first reaches the top count. The two only differ for even k.
    """
    values = list(values)
    if not values:
        return None
    return Counter(values).most_common(1)[0][0]


def mean(values):
    return sum(values) / len(values)


def median(values):
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2


def aggregate(labels, method='Mode'):
    """
    Reduce neighbor labels to one predicted label.

    Parameters:
    -----------
    labels : sequence
        Neighbor labels (numeric class codes for 'Mean' and 'Median')
    method : str
        'Mode', 'Mean' (rounded half up), 'Median' or 'Weighted'.
        'Weighted' is currently an alias of 'Mode' and unknown methods also
        fall back to 'Mode'.

    Returns:
    --------
    Predicted label, or None when there are no labels
    """
    labels = list(labels)
    if not labels:
        return None
    if method == 'Mean':
        return math.floor(mean(labels) + 0.5)
    if method == 'Median':
        return median(labels)
    if method not in ('Mode', 'Weighted'):
        logger.debug(f"Unknown aggregation {method!r}, using Mode")
    return mode(labels)


def confidence(neighbors):
    """Share of neighbors voting for the majority label, 0.0 without neighbors."""
    if not neighbors:
        return 0.0
    counts = Counter(n.label for n in neighbors)
    return counts.most_common(1)[0][1] / len(neighbors)


def impute_value(values, imputation_rule=None):
    """Mean (or median, per the rule) of the numeric values, None if there are none."""
    numbers = np.array([to_number(v) for v in values], dtype=np.float64)
    numbers = numbers[~np.isnan(numbers)]
    if numbers.size == 0:
        return None
    if imputation_rule is not None and imputation_rule.uses_median:
        return float(np.median(numbers))
    return float(np.mean(numbers))
