import pytest
import sys
import os
import logging
import pandas as pd
from numpy.random import default_rng

# Add parent directory to path to import from src
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.pipeline.knn_restoration.config import KNNConfig
from src.pipeline.knn_restoration.data_generators import generate_data
from src.pipeline.knn_restoration.deletion import DeletionEngine, DeletionRequest, DeletionStatistics
from src.pipeline.knn_restoration.records import FEATURE_NAMES, Record
from src.pipeline.knn_restoration.reporter import (
    AlgorithmAnalysis, analyze_data_impact, data_quality_metrics, export_deletion_report,
    generate_recommendations, predict_deletion_impact, suggest_optimal_parameters
)
from src.pipeline.knn_restoration.store import DataStore


def rows(count, start=1, status='active'):
    return [Record(id=start + i, label=2, features={'a': 1.0}, status=status) for i in range(count)]


def statistics(full=0, partial=0, attributes=None):
    stats = DeletionStatistics(total_deleted=full + partial, partial_deletions=partial, full_deletions=full)
    stats.attributes_deleted = dict(attributes or {})
    return stats


@pytest.fixture
def store():
    store = DataStore()
    store.add_records(generate_data(n=20, rng=default_rng(1)))
    return store

# ----------------------------------------------------------------------
# Data quality and impact
# ----------------------------------------------------------------------

class TestDataQuality:
    def test_completeness(self):
        quality = data_quality_metrics(rows(8), rows(2, start=9, status='deleted'))
        assert quality == {'total_records': 10, 'active_records': 8, 'deleted_records': 2, 'data_completeness': 80.0}

    def test_empty_table(self):
        assert data_quality_metrics([], [])['data_completeness'] == 0.0

    def test_impact(self):
        stats = statistics(full=1, partial=3, attributes={'a': 4, 'b': 1, 'c': 2, 'd': 1, 'e': 3, 'f': 1})
        impact = analyze_data_impact(stats, rows(6), rows(4, start=7, status='deleted'))
        assert [a['attribute'] for a in impact['most_affected_attributes']] == ['a', 'e', 'c', 'b', 'd']
        assert impact['data_integrity_score'] == pytest.approx(60.0)
        assert impact['deletion_pattern']['full_deletion_rate'] == pytest.approx(25.0)
        assert impact['deletion_pattern']['partial_deletion_rate'] == pytest.approx(75.0)
        assert impact['deletion_pattern']['average_attributes_per_deletion'] == pytest.approx(12 / 3)

    def test_impact_without_data(self):
        impact = analyze_data_impact(DeletionStatistics(), [], [])
        assert impact['data_integrity_score'] == 100.0
        assert impact['most_affected_attributes'] == []
        assert impact['deletion_pattern']['full_deletion_rate'] == 0.0


class TestRecommendations:
    def test_all_recommendations(self):
        stats = statistics(full=3, partial=1, attributes={'texture': 1})
        quality = data_quality_metrics(rows(6), rows(4, start=7, status='deleted'))
        recommendations = generate_recommendations(stats, quality)
        assert len(recommendations) == 3
        assert "threshold" in recommendations[0]
        assert "below 70%" in recommendations[1]
        assert "'texture'" in recommendations[2]

    def test_no_recommendations_for_healthy_table(self):
        quality = data_quality_metrics(rows(10), [])
        assert generate_recommendations(DeletionStatistics(), quality) == []

    def test_predict_full_deletion_impact(self):
        quality = data_quality_metrics(rows(10), [])
        impact = predict_deletion_impact(DeletionRequest(target_row_count=6, attributes_per_row=7), quality)
        assert impact['predicted_completeness'] == pytest.approx(40.0)
        assert impact['completeness_change'] == pytest.approx(-60.0)
        assert impact['will_delete_full_rows']
        assert impact['recommended_action'].startswith("WARNING")

    def test_predict_partial_deletion_impact(self):
        quality = data_quality_metrics(rows(10), [])
        impact = predict_deletion_impact(DeletionRequest(target_row_count=6, attributes_per_row=2), quality)
        assert impact['predicted_completeness'] == pytest.approx(100.0)
        assert impact['recommended_action'] == "Operation should be safe"

    @pytest.mark.parametrize("active, deleted, attributes, expected_rows, expected_attributes", [
        (50, 0, 10, 10, 3),
        (45, 15, 10, 4, 3),
        (50, 0, 4, 10, 1),
        (50, 0, 2, 10, 1),
    ])
    def test_suggest_optimal_parameters(self, active, deleted, attributes, expected_rows, expected_attributes):
        quality = data_quality_metrics(rows(active), rows(deleted, start=1000, status='deleted'))
        suggestions = suggest_optimal_parameters(quality, attributes)
        assert suggestions['max_safe_rows'] == expected_rows
        assert suggestions['max_safe_attributes'] == expected_attributes
        assert suggestions['reasoning'][-1] == "Full deletion threshold: 6 attributes"

    def test_export_report(self, store):
        request = DeletionRequest(target_row_count=4, attributes_per_row=2)
        plan = DeletionEngine(rng=default_rng(2)).plan_deletion(store.get_active_records(), request)
        store.apply_deletion_result(plan)
        report = export_deletion_report(store.statistics, store.table, store.deleted_records,
                                        request=request, available_attributes=len(FEATURE_NAMES))
        assert report['statistics']['partial_deletions'] == 4
        assert report['data_quality']['total_records'] == 24
        assert report['current_parameters'] == {'mode': 'random', 'rows_to_delete': 4, 'attributes_to_delete': 2}
        assert report['thresholds'] == {'max_attributes': 6, 'full_deletion_threshold': 6}
        assert {'timestamp', 'impact', 'recommendations', 'predicted_impact', 'suggestions'} <= set(report)
        pd.Timestamp(report['timestamp'])

# ----------------------------------------------------------------------
# Algorithm analysis
# ----------------------------------------------------------------------

class TestAlgorithmAnalysis:
    def test_record_operation(self):
        analysis = AlgorithmAnalysis()
        analysis.record_operation('knn_search', 10.0, 100)
        analysis.record_operation('knn_search', 30.0, 50)
        op = analysis.operations['knn_search']
        assert op == {'total_time': 40.0, 'calls': 2, 'avg_time': 20.0, 'max_time': 30.0, 'data_size': 100}
        assert analysis.total_time == 40.0

    def test_measure_context_manager(self):
        analysis = AlgorithmAnalysis()
        with analysis.measure('data_restoration', 12):
            sum(range(1000))
        op = analysis.operations['data_restoration']
        assert op['calls'] == 1
        assert op['total_time'] >= 0.0
        assert op['data_size'] == 12

    def test_memory_estimate(self):
        analysis = AlgorithmAnalysis()
        assert analysis.estimate_memory_usage(10, 5, 3) == 18 * 512
        assert analysis.memory_usage == 18 * 512

    @pytest.mark.parametrize("accuracy, efficiency", [(90.0, 'High'), (85.0, 'Medium'), (71.0, 'Medium'), (70.0, 'Low')])
    def test_conclusions(self, accuracy, efficiency):
        analysis = AlgorithmAnalysis()
        analysis.record_operation('knn_search', 5.0, 2000)
        conclusions = analysis.generate_conclusions(KNNConfig(k=5), {'accuracy': accuracy})
        assert conclusions['algorithm_efficiency']['overall_efficiency'] == efficiency
        assert conclusions['algorithm_efficiency']['recommended_k'] == 5
        assert conclusions['algorithm_analysis']['time_complexity'] == "Average execution time: 5.00 ms"
        assert conclusions['algorithm_analysis']['scalability'] == "Scales well to large datasets"
        assert len(conclusions['recommendations']) == 4

    def test_conclusions_without_performance(self):
        conclusions = AlgorithmAnalysis().generate_conclusions(KNNConfig())
        assert conclusions['algorithm_efficiency']['overall_efficiency'] == 'Low'

# ----------------------------------------------------------------------
# Store
# ----------------------------------------------------------------------

class TestDataStore:
    def test_ids_are_assigned_and_never_reused(self, caplog):
        store = DataStore()
        with caplog.at_level(logging.INFO):
            first = store.add_records(generate_data(n=5, rng=default_rng(0)))
        second = store.add_records(generate_data(n=3, rng=default_rng(1)))
        assert [r.id for r in first] == [1, 2, 3, 4, 5]
        assert [r.id for r in second] == [6, 7, 8]
        assert len(store.get_table_items()) == 3
        assert all(r.status == 'active' for r in second)
        assert "Loaded 5 records" in caplog.text

    def test_accessors_return_copies(self, store):
        record = store.get_active_records()[0]
        record.features['radius'] = -1
        assert store.get_active_records()[0].features['radius'] != -1

    def test_restore_full_record_with_original_values(self, store):
        original = {r.id: r for r in store.get_active_records()}
        plan = DeletionEngine(rng=default_rng(3)).plan_deletion(
            store.get_active_records(), DeletionRequest(target_row_count=3, attributes_per_row=7))
        store.apply_deletion_result(plan)
        target = plan.removed_record_ids[0]

        assert store.restore_record(target)
        restored = next(r for r in store.get_active_records() if r.id == target)
        assert restored.features == original[target].features
        assert restored.status == 'restored'
        assert store.statistics.total_deleted == 2
        assert store.statistics.full_deletions == 2
        assert len(store.get_full_deletions()) == 2

    def test_restore_partial_record_puts_attributes_back(self, store):
        original = {r.id: r for r in store.get_active_records()}
        plan = DeletionEngine(rng=default_rng(4)).plan_deletion(
            store.get_active_records(), DeletionRequest(target_row_count=1, attributes_per_row=2))
        store.apply_deletion_result(plan)
        snapshot = plan.deleted_records[0]

        assert sum(store.statistics.attributes_deleted.values()) == 2
        assert store.restore_record(snapshot.id)
        restored = next(r for r in store.get_active_records() if r.id == snapshot.id)
        assert restored.features == original[snapshot.id].features
        assert store.statistics.attributes_deleted == {}
        assert store.statistics.partial_deletions == 0
        assert store.get_deleted_records() == []

    def test_restore_unknown_record(self, store):
        assert store.restore_record(12345) is False

    def test_update_row(self, store):
        assert store.update_row(1, {'radius': 3.0, 'not_a_feature': 1})
        row = store.get_table_items()[0]
        assert row.features['radius'] == 3.0
        assert 'not_a_feature' not in row.features
        assert row.status == 'updated'
        assert store.update_row(999, {'radius': 1.0}) is False

    def test_clear_deleted_records(self, store):
        plan = DeletionEngine(rng=default_rng(5)).plan_deletion(
            store.get_active_records(), DeletionRequest(target_row_count=2, attributes_per_row=9))
        store.apply_deletion_result(plan)
        store.clear_deleted_records()
        assert store.get_deleted_records() == []
        assert store.get_full_deletions() == []
        assert store.statistics.total_deleted == 0
        assert store.data_quality_metrics()['total_records'] == 18

    def test_to_frame(self, store):
        frame = store.to_frame()
        assert len(frame) == 20
        assert list(frame.columns[:2]) == ['id', 'decision']
        assert set(frame['decision']) <= {2, 4}
