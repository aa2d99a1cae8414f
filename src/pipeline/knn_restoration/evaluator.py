"""Evaluation of KNN classification quality.

This module scores the KNN classifier on the active records with stratified
k-fold cross-validation and derives confusion-matrix metrics from
(actual, predicted) label pairs.
"""

import logging
import numbers
from dataclasses import dataclass, field

import numpy as np
from sklearn.metrics import confusion_matrix, mean_absolute_error, mean_squared_error
from tqdm import tqdm

from src.pipeline.knn_restoration.aggregation import aggregate, confidence
from src.pipeline.knn_restoration.config import DISTANCE_METRICS
from src.pipeline.knn_restoration.errors import DataQualityError, ValidationError
from src.pipeline.knn_restoration.knn_search import find_knn
from src.pipeline.knn_restoration.normalization import fit_and_apply
from src.pipeline.knn_restoration.records import RecordSchema, clean_label, clean_value, to_number
from src.pipeline.knn_restoration.sampling import as_sampler

logger = logging.getLogger(__name__)

METRIC_EPS = 1e-10

# ============================================================================
# NUMERICAL STABILITY FUNCTIONS
# ============================================================================

def stable_variance(values, ddof=0):
    """
    Compute variance with numerical stability using two-pass algorithm.

    Parameters:
    -----------
    values : array-like
        Array of values
    ddof : int
        Delta degrees of freedom (0 for population variance, 1 for sample)

    Returns:
    --------
    float : Variance value
    """
    if len(values) <= 1:
        return 0.0

    values = np.asarray(values, dtype=np.float64)
    mean_val = np.mean(values)
    variance = np.mean((values - mean_val) ** 2)

    if ddof > 0 and len(values) > ddof:
        variance = variance * len(values) / (len(values) - ddof)

    return float(variance)


def stable_std(values, ddof=0):
    """Standard deviation built on stable_variance."""
    variance = stable_variance(values, ddof=ddof)
    return float(np.sqrt(max(0.0, variance)))

# ============================================================================
# DATA PREPARATION
# ============================================================================

def recognized_records(records, schema):
    return [record for record in records if schema.is_recognized(record.label)]


def prepare_data(records, schema):
    """Clean labels and coerce features to numbers (non-numeric -> 0), dropping unlabeled rows."""
    prepared = []
    for record in recognized_records(records, schema):
        features = {name: clean_value(record.features.get(name)) for name in schema.feature_names}
        prepared.append(record.copy(label=clean_label(record.label), features=features))
    return prepared


def inspect_data(records, schema):
    """
    Count classes and list features holding non-numeric values.

    Returns:
    --------
    dict : {'class_counts': {label: count}, 'issues': [str, ...]}
    """
    data = recognized_records(records, schema)
    class_counts = {label: 0 for label in schema.class_labels}
    for record in data:
        class_counts[clean_label(record.label)] += 1

    issues = []
    for name in schema.feature_names:
        invalid_count = sum(1 for record in data if np.isnan(to_number(record.features.get(name))))
        if invalid_count > 0:
            issues.append(f"{name} has {invalid_count} invalid values")
    return {'class_counts': class_counts, 'issues': issues}


def stratified_interleave(records, schema):
    """Alternate class A and class B records; the longer class fills the tail."""
    class_a = [r for r in records if clean_label(r.label) == schema.positive_label]
    class_b = [r for r in records if clean_label(r.label) == schema.negative_label]
    interleaved = []
    for i in range(max(len(class_a), len(class_b))):
        if i < len(class_a):
            interleaved.append(class_a[i])
        if i < len(class_b):
            interleaved.append(class_b[i])
    return interleaved


def fold_boundaries(n, folds):
    """(start, end) slices with floor(i*n/folds) boundaries; sizes differ by at most one."""
    return [((i * n) // folds, ((i + 1) * n) // folds) for i in range(folds)]

# ============================================================================
# METRICS
# ============================================================================

def calculate_performance_metrics(pairs, positive_label=2, negative_label=4):
    """
    Confusion-matrix metrics over (actual, predicted) label pairs.

    Pairs where either label is not one of the two classes are skipped and
    counted in ``skipped``. Precision, recall and F1 add a 1e-10 epsilon to
    every denominator. Rates are percentages.

    Parameters:
    -----------
    pairs : iterable of (actual, predicted)
    positive_label : int
        Class counted as positive (benign, 2, in the reference data)
    negative_label : int

    Returns:
    --------
    dict : accuracy, precision, recall, f1, confusion_matrix, total_samples, skipped
    """
    labels = [positive_label, negative_label]
    pairs = list(pairs)
    evaluated = [(clean_label(a), clean_label(p)) for a, p in pairs]
    evaluated = [(a, p) for a, p in evaluated if a in labels and p in labels]

    tp = fp = tn = fn = 0
    if evaluated:
        actual, predicted = zip(*evaluated)
        cm = confusion_matrix(actual, predicted, labels=labels)
        tp, fn, fp, tn = (int(v) for v in cm.ravel())

    total = len(evaluated)
    accuracy = (tp + tn) / total if total else 0.0
    precision = tp / (tp + fp + METRIC_EPS)
    recall = tp / (tp + fn + METRIC_EPS)
    f1 = 2 * (precision * recall) / (precision + recall + METRIC_EPS)

    return {
        'accuracy': accuracy * 100,
        'precision': precision * 100,
        'recall': recall * 100,
        'f1': f1 * 100,
        'confusion_matrix': {
            'true_positive': tp,
            'false_positive': fp,
            'true_negative': tn,
            'false_negative': fn,
        },
        'total_samples': total,
        'skipped': len(pairs) - total,
    }


def imputation_error(deleted_records, current_records, true_records, feature_names):
    """
    RMSE and MAE of restored values against the values before deletion.

    Only cells that were actually deleted are scored: every feature of a
    fully deleted row, the recorded attributes of a partial deletion.
    Records still in the deleted partition are not scored.

    Parameters:
    -----------
    deleted_records : list of Record
        Deleted-partition snapshots taken before restoration
    current_records : list of Record
        Table rows after restoration
    true_records : list of Record
        Rows as originally loaded
    feature_names : sequence of str

    Returns:
    --------
    dict : rmse, mae (NaN when nothing was scored), n_values
    """
    current = {record.id: record for record in current_records}
    truth = {record.id: record for record in true_records}
    y_true, y_pred = [], []
    for record in deleted_records:
        restored = current.get(record.id)
        original = truth.get(record.id)
        if restored is None or original is None or restored.restored_at is None:
            continue
        attributes = feature_names if record.full_row_deleted else record.deleted_attributes
        for name in attributes:
            predicted = to_number(restored.features.get(name))
            actual = to_number(original.features.get(name))
            if np.isnan(predicted) or np.isnan(actual):
                continue
            y_true.append(actual)
            y_pred.append(predicted)

    if not y_true:
        return {'rmse': np.nan, 'mae': np.nan, 'n_values': 0}
    return {
        'rmse': float(np.sqrt(mean_squared_error(y_true, y_pred))),
        'mae': float(mean_absolute_error(y_true, y_pred)),
        'n_values': len(y_true),
    }

# ============================================================================
# CROSS-VALIDATION
# ============================================================================

@dataclass
class CrossValidationResult:
    per_fold_accuracy: list
    fold_sizes: list
    average_accuracy: float
    accuracy_std: float
    predictions: list = field(default_factory=list)
    metrics: dict = field(default_factory=dict)
    class_counts: dict = field(default_factory=dict)
    mean_confidence: float = 0.0


def predict_label(target, train_records, feature_names, config):
    """Predicted label for one record plus the neighbors it was voted from."""
    neighbors = find_knn(target, train_records, feature_names, config)
    if not neighbors:
        return None, neighbors
    return aggregate([n.label for n in neighbors], config.aggregation), neighbors


class CrossValidationEvaluator:
    def __init__(self, schema=None, sampler=None, rng=None, seed=None):
        self.schema = schema or RecordSchema()
        self.sampler = as_sampler(sampler if sampler is not None else rng, seed=seed)

    def shuffled_data(self, active_records, folds):
        """
        Validate the records and fold count, then return the shuffled fold order.

        Returns:
        --------
        tuple : (shuffled records, inspection dict from ``inspect_data``)
        """
        active_records = [record for record in active_records if record.is_active]
        inspection = inspect_data(active_records, self.schema)
        if inspection['issues']:
            logger.error(f"Data issues: {inspection['issues']}")
            raise DataQualityError("Records contain non-numeric feature values", inspection['issues'])

        data = prepare_data(active_records, self.schema)
        if not data:
            raise DataQualityError("No records with a recognized label", ["no labeled records"])
        if isinstance(folds, bool) or not isinstance(folds, numbers.Integral) or folds < 2 or folds > len(data):
            raise ValidationError(f"folds must be between 2 and {len(data)}. Got {folds!r}.")

        return self.sampler.shuffle(stratified_interleave(data, self.schema)), inspection

    def evaluate(self, active_records, config, folds=10):
        """
        Stratified k-fold cross-validation of the KNN classifier.

        Parameters:
        -----------
        active_records : list of Record
        config : KNNConfig
        folds : int, default=10
            Must be between 2 and the number of labeled records

        Returns:
        --------
        CrossValidationResult : accuracies are percentages
        """
        config.validate()
        shuffled, inspection = self.shuffled_data(active_records, folds)
        return self._evaluate_order(shuffled, config, folds, inspection['class_counts'])

    def _evaluate_order(self, shuffled, config, folds, class_counts):
        features = list(self.schema.feature_names)
        accuracies = []
        fold_sizes = []
        predictions = []
        confidences = []

        for i, (start, end) in enumerate(tqdm(fold_boundaries(len(shuffled), folds),
                                              desc="Cross-validation folds", leave=False)):
            test_data = shuffled[start:end]
            train_data = shuffled[:start] + shuffled[end:]
            norm_train, norm_test = fit_and_apply(train_data, test_data, config.normalization, features)

            correct = 0
            for test_row in norm_test:
                predicted, neighbors = predict_label(test_row, norm_train, features, config)
                confidences.append(confidence(neighbors))
                predictions.append((test_row.label, predicted))
                if predicted is not None and predicted == test_row.label:
                    correct += 1

            accuracy = correct / len(norm_test) * 100
            logger.info(f"Fold {i + 1}: {accuracy:.2f}% accuracy")
            accuracies.append(accuracy)
            fold_sizes.append(len(norm_test))

        average_accuracy = float(np.mean(accuracies))
        logger.info(f"Average accuracy: {average_accuracy:.2f}%")
        return CrossValidationResult(
            per_fold_accuracy=accuracies,
            fold_sizes=fold_sizes,
            average_accuracy=average_accuracy,
            accuracy_std=stable_std(accuracies),
            predictions=predictions,
            metrics=calculate_performance_metrics(
                predictions, self.schema.positive_label, self.schema.negative_label),
            class_counts=class_counts,
            mean_confidence=float(np.mean(confidences)) if confidences else 0.0,
        )

    def analyze_distance_metrics(self, active_records, config, folds=10):
        """Cross-validate every distance metric on one shared fold split, other settings unchanged."""
        config.validate()
        shuffled, inspection = self.shuffled_data(active_records, folds)
        results = {}
        for metric in DISTANCE_METRICS:
            result = self._evaluate_order(
                shuffled, config.with_overrides(distance_metric=metric), folds, inspection['class_counts'])
            results[metric] = {
                'accuracy': result.average_accuracy,
                'precision': result.metrics['precision'],
                'recall': result.metrics['recall'],
                'f1': result.metrics['f1'],
                'per_fold_accuracy': result.per_fold_accuracy,
                'predictions': result.predictions,
            }
        return results
