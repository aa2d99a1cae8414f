"""Restoration study orchestration."""

import logging

from numpy.random import default_rng
from tqdm import tqdm

from src.pipeline.knn_restoration.config import ImputationRule, KNNConfig
from src.pipeline.knn_restoration.data_generators import generate_data
from src.pipeline.knn_restoration.deletion import DeletionEngine
from src.pipeline.knn_restoration.evaluator import CrossValidationEvaluator, imputation_error
from src.pipeline.knn_restoration.records import RecordSchema
from src.pipeline.knn_restoration.reporter import AlgorithmAnalysis, analyze_data_impact
from src.pipeline.knn_restoration.restoration import RestorationEngine
from src.pipeline.knn_restoration.sampling import RandomSubsetSampler
from src.pipeline.knn_restoration.store import DataStore

logger = logging.getLogger(__name__)


class RestorationStudy:
    def __init__(self, n=100, num_runs=1, class_balance=0.5, folds=10, schema=None, rng=None, seed=None):
        if rng is not None:
            self.rng = rng
        else:
            self.rng = default_rng(seed)
        self.n = n
        self.num_runs = num_runs
        self.class_balance = class_balance
        self.folds = folds
        self.schema = schema or RecordSchema()
        self.seed = seed

        if n < 2:
            raise ValueError(f"n must be at least 2. Got {n}.")
        if not (0 < class_balance < 1):
            raise ValueError(f"class_balance must be between 0 and 1 (exclusive). Got {class_balance}.")

    def run_scenario(self, deletion_request, knn_config=None, imputation_rule=None, rng=None):
        """
        Runs one scenario: generates a complete table, deletes from it,
        restores with KNN, and scores both the restored values and the
        classifier trained on the restored table.
        """
        knn_config = (knn_config or KNNConfig()).validate()
        imputation_rule = imputation_rule or ImputationRule()
        rng = rng if rng is not None else self.rng.spawn(1)[0]
        data_rng, deletion_rng, cv_rng = rng.spawn(3)
        analysis = AlgorithmAnalysis()

        # 1. Generate TRUE data and load it
        data_true = generate_data(self.n, self.class_balance, self.schema.feature_names,
                                  self.schema.class_labels, rng=data_rng)
        store = DataStore(self.schema)
        true_records = store.add_records(data_true)

        # 2. Delete
        deletion_engine = DeletionEngine(self.schema, sampler=RandomSubsetSampler(rng=deletion_rng))
        active = store.get_active_records()
        with analysis.measure('data_deletion', len(active)):
            plan = deletion_engine.plan_deletion(active, deletion_request)
        store.apply_deletion_result(plan)
        quality_deleted = store.data_quality_metrics()
        impact = analyze_data_impact(store.get_deletion_statistics(), store.table, store.deleted_records)

        # 3. Restore
        deleted = store.get_deleted_records()
        restoration_engine = RestorationEngine(knn_config, self.schema)
        with analysis.measure('data_restoration', len(deleted)):
            restoration = restoration_engine.restore(deleted, store.get_active_records(), knn_config, imputation_rule)
        store.apply_restoration_result(restoration)
        quality_restored = store.data_quality_metrics()
        errors = imputation_error(deleted, store.get_table_items(), true_records, self.schema.feature_names)

        # 4. Evaluate the classifier on the restored table
        evaluator = CrossValidationEvaluator(self.schema, rng=cv_rng)
        active = store.get_active_records()
        with analysis.measure('knn_search', len(active)):
            cv = evaluator.evaluate(active, knn_config, folds=self.folds)

        analysis.estimate_memory_usage(len(active), len(store.deleted_records), restoration.restored_count)
        conclusions = analysis.generate_conclusions(knn_config, cv.metrics)

        return {
            'accuracy_mean': cv.average_accuracy,
            'accuracy_std': cv.accuracy_std,
            'precision': cv.metrics['precision'],
            'recall': cv.metrics['recall'],
            'f1': cv.metrics['f1'],
            'mean_confidence': cv.mean_confidence,
            'restored_count': restoration.restored_count,
            'failed_count': restoration.failed_count,
            'imputation_rmse': errors['rmse'],
            'imputation_mae': errors['mae'],
            'completeness_after_deletion': quality_deleted['data_completeness'],
            'completeness_after_restoration': quality_restored['data_completeness'],
            'data_integrity_score': impact['data_integrity_score'],
            'deletion_ms': analysis.operations['data_deletion']['total_time'],
            'restoration_ms': analysis.operations['data_restoration']['total_time'],
            'cross_validation_ms': analysis.operations['knn_search']['total_time'],
            'memory_usage': analysis.memory_usage,
            'efficiency': conclusions['algorithm_efficiency']['overall_efficiency'],
        }

    def run_all(self, deletion_requests, knn_configs, imputation_rules=None):
        """
        Runs every (deletion, config, rule) combination once per run.

        Returns a dict keyed by (run_idx, deletion name, config name, rule type).
        """
        imputation_rules = imputation_rules or [ImputationRule()]
        results = {}

        # We spawn a single RNG to manage the sequence of scenarios
        scenario_rng = self.rng.spawn(1)[0]
        scenarios = [(run_idx, request, config, rule)
                     for run_idx in range(self.num_runs)
                     for request in deletion_requests
                     for config in knn_configs
                     for rule in imputation_rules]

        for run_idx, request, config, rule in tqdm(scenarios, desc=f"Scenarios (n={self.n})", leave=False):
            run_rng = scenario_rng.spawn(1)[0]
            logger.info(f"Run {run_idx}: {request.name} with {config.name} and {rule.type}")
            results[(run_idx, request.name, config.name, rule.type)] = self.run_scenario(
                request, config, rule, rng=run_rng
            )

        return results
