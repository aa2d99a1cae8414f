"""KNN configuration values and engine-wide constants."""

import logging
import numbers
from dataclasses import dataclass, replace

from src.pipeline.knn_restoration.errors import ValidationError

logger = logging.getLogger(__name__)

# More than this many requested attributes removes the whole row instead
FULL_DELETION_THRESHOLD = 6
MAX_ATTRIBUTES_PER_DELETION = 6
MIN_ROWS_TO_DELETE = 1

DISTANCE_METRICS = ('Euclidean', 'Manhattan', 'Cosine')
NORMALIZATION_METHODS = ('Min-Max', 'Z-Score')
AGGREGATION_METHODS = ('Mode', 'Mean', 'Median', 'Weighted')

MEAN_VALUE = 'Mean Value'
MEDIAN_VALUE = 'Median Value'


@dataclass(frozen=True)
class KNNConfig:
    """Neighbor count, distance, normalization and label aggregation.

    Unknown aggregation names are accepted and behave as 'Mode'; unknown
    distance metrics or normalization methods are rejected by validate().
    """
    k: int = 3
    distance_metric: str = 'Euclidean'
    normalization: str = 'Min-Max'
    aggregation: str = 'Mode'

    def validate(self):
        if isinstance(self.k, bool) or not isinstance(self.k, numbers.Integral) or self.k < 1:
            raise ValidationError(f"k must be a positive integer. Got {self.k!r}.")
        if self.distance_metric not in DISTANCE_METRICS:
            raise ValidationError(f"Unknown distance metric {self.distance_metric!r}. Expected one of {DISTANCE_METRICS}.")
        if self.normalization not in NORMALIZATION_METHODS:
            raise ValidationError(f"Unknown normalization {self.normalization!r}. Expected one of {NORMALIZATION_METHODS}.")
        if self.aggregation not in AGGREGATION_METHODS:
            logger.warning(f"Unknown aggregation {self.aggregation!r}, falling back to Mode")
        return self

    def with_overrides(self, k=None, distance_metric=None, normalization=None, aggregation=None):
        """Return a copy with every non-None argument applied."""
        changes = {
            'k': k,
            'distance_metric': distance_metric,
            'normalization': normalization,
            'aggregation': aggregation,
        }
        changes = {key: value for key, value in changes.items() if value is not None}
        return replace(self, **changes).validate()

    @property
    def name(self):
        return f"k{self.k}_{self.distance_metric}_{self.normalization}_{self.aggregation}"


@dataclass(frozen=True)
class ImputationRule:
    type: str = MEAN_VALUE

    @property
    def uses_median(self):
        return self.type == MEDIAN_VALUE
