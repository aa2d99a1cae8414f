"""Data generation for restoration studies."""

import numpy as np
import pandas as pd
from numpy.random import default_rng

from src.pipeline.knn_restoration.records import CLASS_LABELS, FEATURE_NAMES

# Cytology scores are integers between 1 and 10; malignant cells score higher
SCORE_RANGE = (1, 10)
CLASS_MEANS = {2: 2.5, 4: 6.5}
CLASS_SPREADS = {2: 1.5, 4: 2.2}


def generate_data(n=100, class_balance=0.5, feature_names=FEATURE_NAMES, class_labels=CLASS_LABELS, rng=None):
    """
    Generate a two-class table shaped like the breast cancer (Wisconsin) data.

    Parameters:
    - n: Number of rows
    - class_balance: Proportion of rows in the first (benign) class
    - feature_names: Feature columns to generate
    - class_labels: (benign, malignant) label codes
    - rng: numpy Generator; defaults to default_rng(123)

    Returns:
    - data: DataFrame with one column per feature and a 'decision' column
    """
    if rng is None:
        rng = default_rng(123)
    if n < 2:
        raise ValueError(f"n must be at least 2. Got {n}.")
    if not (0 < class_balance < 1):
        raise ValueError(f"class_balance must be between 0 and 1 (exclusive). Got {class_balance}.")

    benign, malignant = class_labels
    n_benign = min(max(int(round(n * class_balance)), 1), n - 1)
    labels = np.array([benign] * n_benign + [malignant] * (n - n_benign))
    labels = labels[rng.permutation(n)]

    means = np.where(labels == benign, CLASS_MEANS[2], CLASS_MEANS[4])
    spreads = np.where(labels == benign, CLASS_SPREADS[2], CLASS_SPREADS[4])

    data = {}
    for name in feature_names:
        scores = np.round(rng.normal(means, spreads))
        data[name] = np.clip(scores, *SCORE_RANGE).astype(float)
    data['decision'] = labels.astype(int)

    return pd.DataFrame(data)
