"""
Demo script for the KNN deletion and restoration project.

This script walks through one deletion/restoration cycle on a generated
table, then compares KNN configurations on the same scenario.
"""

import sys
from pathlib import Path

# Add project root to path for imports
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from src.pipeline.knn_restoration.config import ImputationRule, KNNConfig, MEDIAN_VALUE
from src.pipeline.knn_restoration.data_generators import generate_data
from src.pipeline.knn_restoration.deletion import DeletionEngine, DeletionRequest
from src.pipeline.knn_restoration.evaluator import CrossValidationEvaluator
from src.pipeline.knn_restoration.reporter import export_deletion_report
from src.pipeline.knn_restoration.restoration import RestorationEngine
from src.pipeline.knn_restoration.simulator import RestorationStudy
from src.pipeline.knn_restoration.store import DataStore
from numpy.random import default_rng


def demo_delete_and_restore():
    """
    Run a single deletion and restoration cycle.

    This demonstrates:
    - Loading records into the store
    - Planning and applying a partial deletion
    - Restoring the deleted attributes with KNN
    - Evaluating the classifier on the restored table
    """
    print("=" * 70)
    print("DEMO: Delete and Restore")
    print("=" * 70)
    print()

    rng = default_rng(42)
    store = DataStore()
    store.add_records(generate_data(n=120, rng=rng))

    request = DeletionRequest(mode='random', target_row_count=15, attributes_per_row=3)
    plan = DeletionEngine(store.schema, rng=rng).plan_deletion(store.get_active_records(), request)
    store.apply_deletion_result(plan)

    report = export_deletion_report(store.statistics, store.table, store.deleted_records,
                                    request=request, available_attributes=len(store.schema.feature_names))
    print(f"Deleted rows: {report['statistics']['total_deleted']}")
    print(f"Completeness: {report['data_quality']['data_completeness']:.1f}%")
    for recommendation in report['recommendations']:
        print(f"  - {recommendation}")
    print()

    config = KNNConfig(k=5)
    result = RestorationEngine(config).restore(
        store.get_deleted_records(), store.get_active_records(), imputation_rule=ImputationRule(MEDIAN_VALUE))
    store.apply_restoration_result(result)
    print(f"Restored: {result.restored_count}, failed: {result.failed_count}")

    cv = CrossValidationEvaluator(store.schema, rng=rng).evaluate(store.get_active_records(), config, folds=5)
    print(f"Cross-validated accuracy: {cv.average_accuracy:.2f}% (+/- {cv.accuracy_std:.2f})")
    print()
    return cv


def demo_multiple_configs():
    """
    Compare KNN configurations on the same deletion scenario.
    """
    print("=" * 70)
    print("DEMO: Comparing KNN Configurations")
    print("=" * 70)
    print()

    study = RestorationStudy(n=100, num_runs=1, folds=5, seed=42)
    request = DeletionRequest(mode='random', target_row_count=10, attributes_per_row=7)
    configs = [
        KNNConfig(k=3),
        KNNConfig(k=5, distance_metric='Manhattan'),
        KNNConfig(k=7, distance_metric='Cosine', normalization='Z-Score'),
    ]

    results_comparison = {}
    for config in configs:
        print(f"  Running {config.name}...")
        results_comparison[config.name] = study.run_scenario(request, config, rng=default_rng(42))

    print()
    print("Comparison Results (accuracy_mean - higher is better):")
    print("-" * 70)
    for name, results in results_comparison.items():
        print(f"  {name:40s}: {results['accuracy_mean']:.2f}%  rmse={results['imputation_rmse']:.3f}")
    print()

    return results_comparison


def main():
    print()
    print("KNN Restoration - Demo Script")
    print()
    print("For full-scale studies, use 'run_restoration.py'.")
    print()

    try:
        demo_delete_and_restore()

        print("\n" + "=" * 70 + "\n")

        demo_multiple_configs()

        print("=" * 70)
        print("Demo complete!")
        print("=" * 70)

    except Exception as e:
        print(f"\nError during demo: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
