"""Deletion simulation and KNN-based restoration of tabular records.

This package removes attributes (or whole rows) from a labeled two-class
table, restores them from same-class nearest neighbors, and scores the KNN
classifier with stratified cross-validation.

Basic Usage
-----------
>>> from src.pipeline.knn_restoration import RestorationStudy, DeletionRequest, KNNConfig
>>>
>>> study = RestorationStudy(n=100, num_runs=1, seed=123)
>>> request = DeletionRequest(mode='random', target_row_count=10, attributes_per_row=2)
>>> results = study.run_scenario(request, KNNConfig(k=5))
>>> print(results['accuracy_mean'])

Modules
-------
records : Record model and value cleaning
config : KNN configuration and constants
sampling : Injectable random subset strategies
normalization : Min-Max and Z-Score scaling
distance : Euclidean, Manhattan and Cosine distances
knn_search : Nearest neighbor search
aggregation : Label voting and value imputation
deletion : Deletion planning
restoration : KNN restoration of deleted records
evaluator : Cross-validation and metrics
reporter : Data quality and performance reporting
store : In-memory table owner
data_generators : Synthetic two-class data
simulator : Study orchestration
"""

from .errors import DataQualityError, PerRecordFailure, ValidationError
from .records import Record, RecordSchema, infer_schema, records_from_frame, records_to_frame
from .config import ImputationRule, KNNConfig
from .sampling import RandomSubsetSampler, SubsetSampler
from .normalization import fit_normalizer, apply_normalizer
from .distance import record_distance
from .knn_search import Neighbor, find_knn
from .aggregation import aggregate
from .deletion import DeletionEngine, DeletionPlan, DeletionRequest, DeletionStatistics
from .restoration import RestorationEngine, RestorationResult
from .evaluator import CrossValidationEvaluator, CrossValidationResult, calculate_performance_metrics
from .reporter import AlgorithmAnalysis, data_quality_metrics, export_deletion_report
from .store import DataStore
from .data_generators import generate_data
from .simulator import RestorationStudy

__version__ = '1.0.0'

__all__ = [
    # Errors
    'ValidationError',
    'DataQualityError',
    'PerRecordFailure',

    # Records and configuration
    'Record',
    'RecordSchema',
    'infer_schema',
    'records_from_frame',
    'records_to_frame',
    'KNNConfig',
    'ImputationRule',

    # Abstract base classes
    'SubsetSampler',
    'RandomSubsetSampler',

    # KNN building blocks
    'fit_normalizer',
    'apply_normalizer',
    'record_distance',
    'Neighbor',
    'find_knn',
    'aggregate',

    # Engines
    'DeletionEngine',
    'DeletionPlan',
    'DeletionRequest',
    'DeletionStatistics',
    'RestorationEngine',
    'RestorationResult',
    'CrossValidationEvaluator',
    'CrossValidationResult',
    'calculate_performance_metrics',

    # Reporting, storage and simulation
    'AlgorithmAnalysis',
    'data_quality_metrics',
    'export_deletion_report',
    'DataStore',
    'generate_data',
    'RestorationStudy',
]
