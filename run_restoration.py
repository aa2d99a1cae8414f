import os
import json
import logging
from tqdm import tqdm
import pandas as pd
import numpy as np
from itertools import product
from pathlib import Path
from numpy.random import default_rng
from src.pipeline.knn_restoration.config import ImputationRule, KNNConfig
from src.pipeline.knn_restoration.deletion import DeletionRequest
from src.pipeline.knn_restoration.simulator import RestorationStudy

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler('restoration.log.txt'),
        logging.StreamHandler()
    ]
)
logger = logging.getLogger()

REQUIRED_KEYS = ['n', 'num_runs', 'rows_to_delete', 'attributes_per_row', 'k', 'distance_metric',
                 'normalization', 'aggregation', 'imputation_rule', 'folds', 'seed']
LIST_PARAMS = ['n', 'rows_to_delete', 'attributes_per_row', 'k', 'distance_metric',
               'normalization', 'aggregation', 'imputation_rule']
GROUPBY_KEYS = ['n', 'rows_to_delete', 'attributes_per_row', 'full_row',
                'k', 'distance_metric', 'normalization', 'aggregation', 'imputation_rule']
METRIC_COLS = ['accuracy_mean', 'accuracy_std', 'precision', 'recall', 'f1', 'mean_confidence',
               'restored_count', 'failed_count', 'imputation_rmse', 'imputation_mae',
               'completeness_after_deletion', 'completeness_after_restoration',
               'data_integrity_score', 'deletion_ms', 'restoration_ms', 'cross_validation_ms',
               'memory_usage']


def load_config(config_path):
    """
    Load restoration study configuration from a JSON file.

    Parameters:
    -----------
    config_path : str or Path
        Path to the JSON configuration file

    Returns:
    --------
    dict : Configuration dictionary with study parameters

    Example JSON structure:
    {
        "n": [100, 200],
        "num_runs": 2,
        "rows_to_delete": [10],
        "attributes_per_row": [2, 7],
        "k": [3, 5],
        "distance_metric": ["Euclidean", "Manhattan"],
        "normalization": ["Min-Max"],
        "aggregation": ["Mode"],
        "imputation_rule": ["Mean Value"],
        "folds": 10,
        "seed": 123
    }
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        config = json.load(f)

    # Validate required keys
    missing_keys = [key for key in REQUIRED_KEYS if key not in config]
    if missing_keys:
        raise ValueError(f"Missing required configuration keys: {missing_keys}")

    # Ensure list types for parameters that should be lists
    for param in LIST_PARAMS:
        if not isinstance(config[param], list):
            config[param] = [config[param]]

    logger.info(f"Loaded configuration from {config_path}")
    return config


def run_single_combination(n, num_runs, requests, knn_configs, rules, folds, class_balance, rng):
    """Run every scenario for one sample size and return a DataFrame of all runs."""
    study = RestorationStudy(n=n, num_runs=num_runs, class_balance=class_balance, folds=folds, rng=rng)
    results = study.run_all(requests, knn_configs, rules)

    request_lookup = {request.name: request for request in requests}
    config_lookup = {config.name: config for config in knn_configs}

    rows = []
    for (run_idx, request_name, config_name, rule_type), metrics in results.items():
        request = request_lookup[request_name]
        config = config_lookup[config_name]
        result_dict = {key: metrics.get(key, np.nan) for key in METRIC_COLS}
        result_dict.update({
            'n': n,
            'run_idx': run_idx,
            'rows_to_delete': request.target_row_count,
            'attributes_per_row': request.attributes_per_row,
            'full_row': request.is_full_deletion,
            'k': config.k,
            'distance_metric': config.distance_metric,
            'normalization': config.normalization,
            'aggregation': config.aggregation,
            'imputation_rule': rule_type,
            'efficiency': metrics.get('efficiency'),
        })
        rows.append(result_dict)
    return pd.DataFrame(rows)


def average_results(results_all):
    """Mean of every metric per parameter set, plus the spread of the means across runs."""
    results_mean = results_all.groupby(GROUPBY_KEYS, sort=False)[METRIC_COLS].mean().reset_index()
    mean_cols = ['accuracy_mean', 'imputation_rmse', 'imputation_mae']
    results_std_runs = results_all.groupby(GROUPBY_KEYS, sort=False)[mean_cols].std().reset_index()
    results_std_runs = results_std_runs.rename(columns={col: f'{col}_std_runs' for col in mean_cols})
    return pd.merge(results_mean, results_std_runs, on=GROUPBY_KEYS, how='left')


def run_restoration(
    config_file=None,
    n=[100],
    num_runs=1,
    rows_to_delete=[10],
    attributes_per_row=[2],
    k=[3],
    distance_metric=['Euclidean'],
    normalization=['Min-Max'],
    aggregation=['Mode'],
    imputation_rule=['Mean Value'],
    folds=10,
    class_balance=0.5,
    seed=123,
    output_dir='results/report'
):
    """
    Run the restoration study with a full factorial design.

    Parameters can be provided either via a JSON config file or directly as function arguments.
    If config_file is provided, it takes precedence over direct arguments.

    Parameters:
    -----------
    config_file : str or Path, optional
        Path to JSON configuration file. If provided, other grid parameters are ignored.
    n : list, default=[100]
        Table sizes to test
    num_runs : int, default=1
        Number of runs per parameter combination
    rows_to_delete : list, default=[10]
        Rows deleted per scenario
    attributes_per_row : list, default=[2]
        Attributes deleted per row (more than 6 deletes the whole row)
    k, distance_metric, normalization, aggregation : list
        KNN configuration grid
    imputation_rule : list, default=['Mean Value']
        'Mean Value' or 'Median Value'
    folds : int, default=10
        Cross-validation folds
    class_balance : float, default=0.5
        Share of the first class in generated data
    seed : int, default=123
        Random seed
    output_dir : str or None, default='results/report'
        Base directory for CSV reports; None keeps results in memory only

    Returns:
    --------
    results_all : DataFrame
        DataFrame with all results from all runs
    results_averaged : DataFrame
        DataFrame with averaged metrics across runs

    Example:
    --------
    # Using JSON config file
    results_all, results_avg = run_restoration(config_file='config.json')

    # Using direct parameters
    results_all, results_avg = run_restoration(n=[100, 200], k=[3, 5], num_runs=2)
    """
    # Load configuration from JSON file if provided
    if config_file is not None:
        config = load_config(config_file)
        n = config['n']
        num_runs = config['num_runs']
        rows_to_delete = config['rows_to_delete']
        attributes_per_row = config['attributes_per_row']
        k = config['k']
        distance_metric = config['distance_metric']
        normalization = config['normalization']
        aggregation = config['aggregation']
        imputation_rule = config['imputation_rule']
        folds = config['folds']
        seed = config['seed']
        class_balance = config.get('class_balance', class_balance)

    # Validate row counts for all combinations
    for size, rows in product(n, rows_to_delete):
        if rows > size:
            raise ValueError(f"rows_to_delete={rows} > n={size}. Cannot delete more rows than generated.")

    logger.info(f"Starting full factorial restoration study with seed={seed}")

    requests = [DeletionRequest(mode='random', target_row_count=rows, attributes_per_row=attrs)
                for rows, attrs in product(rows_to_delete, attributes_per_row)]
    knn_configs = [KNNConfig(k=kv, distance_metric=metric, normalization=norm, aggregation=agg).validate()
                   for kv, metric, norm, agg in product(k, distance_metric, normalization, aggregation)]
    rules = [ImputationRule(rule) for rule in imputation_rule]

    parent_rng = default_rng(seed)
    size_rngs = parent_rng.spawn(len(n))

    all_results = []
    for size, size_rng in tqdm(list(zip(n, size_rngs)), desc="Parameter Combinations"):
        logger.info(f"Running {num_runs} runs for n={size}")
        all_results.append(run_single_combination(
            size, num_runs, requests, knn_configs, rules, folds, class_balance, size_rng))

    results_all = pd.concat(all_results, ignore_index=True)
    results_averaged = average_results(results_all)

    if output_dir is not None:
        param_base = (f'n_{min(n)}_{max(n)}_runs_{num_runs}_rows_{min(rows_to_delete)}_{max(rows_to_delete)}_'
                      f'attrs_{min(attributes_per_row)}_{max(attributes_per_row)}_k_{min(k)}_{max(k)}_folds_{folds}')
        report_dir = os.path.join(output_dir, param_base)
        os.makedirs(report_dir, exist_ok=True)

        results_all.to_csv(os.path.join(report_dir, 'results_all_runs.csv'), index=False)
        logger.info(f"Saved all runs results to {os.path.join(report_dir, 'results_all_runs.csv')}")
        results_averaged.to_csv(os.path.join(report_dir, 'results_averaged.csv'), index=False)
        logger.info(f"Saved averaged results to {os.path.join(report_dir, 'results_averaged.csv')}")
        logger.info(f"Full factorial restoration study complete. Results saved in {report_dir}")
    else:
        logger.info("Full factorial restoration study complete")

    return results_all, results_averaged


if __name__ == "__main__":
    results_all, results_averaged = run_restoration(
        num_runs=2, n=[100], rows_to_delete=[10], attributes_per_row=[2, 7],
        k=[3, 5], distance_metric=['Euclidean', 'Manhattan', 'Cosine'])
