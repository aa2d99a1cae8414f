"""Data quality, deletion impact and algorithm performance reporting.

All functions are read-only: they take the table, the deleted partition and
the deletion statistics and return plain dictionaries.
"""

import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone

from src.pipeline.knn_restoration.config import FULL_DELETION_THRESHOLD, MAX_ATTRIBUTES_PER_DELETION

logger = logging.getLogger(__name__)

BYTES_PER_RECORD = 512
TOP_ATTRIBUTES = 5


def data_quality_metrics(table, deleted_records):
    """
    Completeness of the table relative to everything ever loaded.

    Parameters:
    -----------
    table : list of Record
        Rows currently in the table (zeroed partial deletions included)
    deleted_records : list of Record
        The deleted partition

    Returns:
    --------
    dict : total_records, active_records, deleted_records, data_completeness (%)
    """
    active = sum(1 for record in table if record.is_active)
    total = len(table) + len(deleted_records)
    return {
        'total_records': total,
        'active_records': active,
        'deleted_records': len(deleted_records),
        'data_completeness': active / total * 100 if total > 0 else 0.0,
    }


def _attributes_by_count(statistics):
    return sorted(statistics.attributes_deleted.items(), key=lambda item: item[1], reverse=True)


def analyze_data_impact(statistics, table, deleted_records):
    """Most affected attributes, integrity score and the full/partial deletion mix."""
    quality = data_quality_metrics(table, deleted_records)
    total_deleted = statistics.total_deleted
    attribute_total = sum(statistics.attributes_deleted.values())

    return {
        'most_affected_attributes': [
            {'attribute': attr, 'deletion_count': count}
            for attr, count in _attributes_by_count(statistics)[:TOP_ATTRIBUTES]
        ],
        'data_integrity_score': (quality['active_records'] / quality['total_records'] * 100
                                 if quality['total_records'] > 0 else 100.0),
        'deletion_pattern': {
            'full_deletion_rate': statistics.full_deletions / total_deleted * 100 if total_deleted else 0.0,
            'partial_deletion_rate': statistics.partial_deletions / total_deleted * 100 if total_deleted else 0.0,
            'average_attributes_per_deletion': (attribute_total / statistics.partial_deletions
                                                if statistics.partial_deletions else 0.0),
        },
    }


def generate_recommendations(statistics, quality):
    recommendations = []
    if statistics.full_deletions > statistics.partial_deletions:
        recommendations.append(
            f"Consider raising the full-row deletion threshold above {FULL_DELETION_THRESHOLD} attributes")
    if quality['data_completeness'] < 70:
        recommendations.append(
            "Data completeness dropped below 70% - consider a more conservative deletion strategy")
    if statistics.attributes_deleted:
        attr, count = _attributes_by_count(statistics)[0]
        recommendations.append(
            f"Attribute '{attr}' is deleted most often ({count} times) - check its relevance")
    return recommendations


def predict_deletion_impact(request, quality):
    """
    Completeness the table would have after applying ``request``.

    Partial deletions keep their rows active, so only full deletions lower
    the predicted completeness.
    """
    rows = request.row_count
    will_delete_full_rows = request.is_full_deletion
    predicted_active = quality['active_records'] - rows if will_delete_full_rows else quality['active_records']
    total = quality['total_records']
    predicted = predicted_active / total * 100 if total > 0 else 100.0

    return {
        'current_completeness': quality['data_completeness'],
        'predicted_completeness': predicted,
        'completeness_change': predicted - quality['data_completeness'],
        'will_delete_full_rows': will_delete_full_rows,
        'affected_rows': rows,
        'recommended_action': ("WARNING: this operation may significantly lower data quality"
                               if predicted < 50 else "Operation should be safe"),
    }


def suggest_optimal_parameters(quality, available_attributes):
    suggestions = {
        'max_safe_rows': int(quality['active_records'] * 0.2),
        'max_safe_attributes': min(3, available_attributes),
        'reasoning': [],
    }
    if quality['data_completeness'] < 80:
        suggestions['max_safe_rows'] = int(quality['active_records'] * 0.1)
        suggestions['reasoning'].append("Row limit lowered because of low data completeness")
    if available_attributes <= 5:
        suggestions['max_safe_attributes'] = 1
        suggestions['reasoning'].append("Attribute limit lowered because few features are available")
    suggestions['reasoning'].append(f"Full deletion threshold: {FULL_DELETION_THRESHOLD} attributes")
    return suggestions


def export_deletion_report(statistics, table, deleted_records, request=None, available_attributes=None):
    """Timestamped bundle of statistics, quality, impact and recommendations."""
    quality = data_quality_metrics(table, deleted_records)
    report = {
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'statistics': statistics.as_dict(),
        'data_quality': quality,
        'impact': analyze_data_impact(statistics, table, deleted_records),
        'recommendations': generate_recommendations(statistics, quality),
        'thresholds': {
            'max_attributes': MAX_ATTRIBUTES_PER_DELETION,
            'full_deletion_threshold': FULL_DELETION_THRESHOLD,
        },
    }
    if request is not None:
        report['current_parameters'] = {
            'mode': request.mode,
            'rows_to_delete': request.row_count,
            'attributes_to_delete': request.attributes_per_row,
        }
        report['predicted_impact'] = predict_deletion_impact(request, quality)
    if available_attributes is not None:
        report['suggestions'] = suggest_optimal_parameters(quality, available_attributes)
    return report


class AlgorithmAnalysis:
    """Wall-clock timing of named operations (milliseconds) and a memory estimate."""

    def __init__(self):
        self.operations = {}
        self.total_time = 0.0
        self.memory_usage = 0

    def record_operation(self, operation, elapsed_ms, data_size):
        op = self.operations.setdefault(operation, {
            'total_time': 0.0, 'calls': 0, 'avg_time': 0.0, 'max_time': 0.0, 'data_size': 0,
        })
        op['total_time'] += elapsed_ms
        op['calls'] += 1
        op['avg_time'] = op['total_time'] / op['calls']
        op['max_time'] = max(op['max_time'], elapsed_ms)
        op['data_size'] = max(op['data_size'], data_size)
        self.total_time += elapsed_ms

    @contextmanager
    def measure(self, operation, data_size):
        start_time = time.time()
        try:
            yield
        finally:
            elapsed_ms = (time.time() - start_time) * 1000
            self.record_operation(operation, elapsed_ms, data_size)
            logger.debug(f"{operation} took {elapsed_ms:.2f} ms for {data_size} records")

    def estimate_memory_usage(self, active_count, deleted_count, restored_count):
        self.memory_usage = (active_count + deleted_count + restored_count) * BYTES_PER_RECORD
        return self.memory_usage

    def generate_conclusions(self, config, performance=None):
        """
        Summarize complexity, efficiency and general tuning advice.

        Parameters:
        -----------
        config : KNNConfig
            Configuration that produced ``performance``
        performance : dict, optional
            Output of calculate_performance_metrics (uses 'accuracy')
        """
        search = self.operations.get('knn_search', {})
        accuracy = (performance or {}).get('accuracy', 0.0)
        if accuracy > 85:
            efficiency = 'High'
        elif accuracy > 70:
            efficiency = 'Medium'
        else:
            efficiency = 'Low'

        return {
            'algorithm_analysis': {
                'description': ("KNN runs in O(n*d*k) time, where n is the number of samples, "
                                "d the number of features and k the number of neighbors."),
                'time_complexity': f"Average execution time: {search.get('avg_time', 0.0):.2f} ms",
                'space_complexity': f"Estimated memory usage: {self.memory_usage} bytes",
                'scalability': ("Scales well to large datasets" if search.get('data_size', 0) > 1000
                                else "Best suited to small and medium datasets"),
            },
            'algorithm_efficiency': {
                'best_distance_metric': config.distance_metric,
                'best_normalization': config.normalization,
                'recommended_k': config.k,
                'overall_efficiency': efficiency,
            },
            'recommendations': [
                "Use Min-Max normalization for most cases",
                "Try several values of k (3, 5, 7) to find the best result",
                "Euclidean distance works well for numeric data",
                "Cross-validate regularly to track model quality",
            ],
        }
