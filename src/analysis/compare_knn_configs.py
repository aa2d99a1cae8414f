import os
import pandas as pd
from scipy import stats
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

# Metric tested for each configuration factor
FACTOR_METRICS = [
    ('distance_metric', 'accuracy_mean'),
    ('normalization', 'accuracy_mean'),
    ('aggregation', 'accuracy_mean'),
    ('k', 'accuracy_mean'),
    ('imputation_rule', 'imputation_rmse'),
]

# --- Helper Functions ---

def discover_report_dirs(base_dir='results/report/', use_latest_only=False):
    """
    Dynamically find all report directories.

    Parameters:
    -----------
    base_dir : str
        Base directory to search for report directories
    use_latest_only : bool, default=False
        If True, return only the most recently modified directory.
        If False, return all directories matching the pattern.

    Returns:
    --------
    list : List of report directory paths
    """
    base_path = Path(base_dir)
    if not base_path.exists():
        logger.error(f"Base directory does not exist: {base_dir}")
        return []

    # Report directories hold a non-empty results_averaged.csv and are named n_<min>_<max>_...
    report_dirs = []
    for d in base_path.iterdir():
        results_file = d / 'results_averaged.csv'
        if d.is_dir() and 'n_' in d.name and results_file.exists() and results_file.stat().st_size > 0:
            report_dirs.append(d)

    if not report_dirs:
        logger.error(f"No valid report directories found in {base_dir} (all are empty or missing results_averaged.csv)")
        return []

    if use_latest_only:
        report_dirs = sorted(report_dirs, key=lambda p: (p / 'results_averaged.csv').stat().st_mtime, reverse=True)
        latest_dir = report_dirs[0]
        logger.info(f"Using only the most recent directory: {latest_dir.name}")
        return [str(latest_dir)]

    logger.info(f"Found {len(report_dirs)} report directories: {sorted(d.name for d in report_dirs)}")
    return sorted(str(d) for d in report_dirs)

def load_results(report_dir):
    """Load results_all_runs.csv and results_averaged.csv from a report directory."""
    results_all_path = os.path.join(report_dir, 'results_all_runs.csv')
    results_avg_path = os.path.join(report_dir, 'results_averaged.csv')
    if not os.path.exists(results_all_path):
        logger.warning(f"Missing results_all_runs.csv in {report_dir}")
        return None, None
    results_all = pd.read_csv(results_all_path)
    results_avg = pd.read_csv(results_avg_path) if os.path.exists(results_avg_path) else None

    if not all(col in results_all.columns for col in ['n', 'k', 'distance_metric']):
        logger.warning(f"Results file in {report_dir} seems to be missing parameter columns.")

    return results_all, results_avg

# --- Statistical Tests ---

def perform_statistical_tests(results):
    """
    One-way ANOVA per configuration factor.

    Each level of the factor (e.g. every distance metric) is one group of
    run-level observations. Factors with fewer than two non-empty levels are
    skipped with a warning.

    Returns:
    --------
    dict : '<metric>_by_<factor>' -> {'f_stat', 'p_value', 'groups'}
    """
    tests = {}
    if 'run_idx' not in results.columns:
        logger.warning("Using averaged results - ANOVA may be limited without run-level data")

    for factor, metric in FACTOR_METRICS:
        if factor not in results.columns or metric not in results.columns:
            continue
        levels = results[factor].dropna().unique()
        data_to_test = [results.loc[results[factor] == level, metric].dropna() for level in levels]
        data_to_test = [data for data in data_to_test if len(data) > 0]

        if len(data_to_test) >= 2:
            f_stat, p_value = stats.f_oneway(*data_to_test)
            tests[f'{metric}_by_{factor}'] = {'f_stat': f_stat, 'p_value': p_value, 'groups': len(data_to_test)}
            logger.info(f"ANOVA for {metric} by {factor}: F={f_stat:.2f}, p={p_value:.3f}")
        else:
            logger.warning(f"Not enough groups to run ANOVA for {metric} by {factor}.")

    return tests

# --- Main Comparison Function ---

def compare_configs(report_dirs, tables_dir='results/tables/'):
    """
    Combine run-level results of several reports and test configuration effects.

    Returns:
    --------
    tuple : (combined DataFrame, tests dict), or (None, None) when nothing valid was found
    """
    all_results = []
    for report_dir in report_dirs:
        results_all, _ = load_results(report_dir)
        if results_all is not None:
            results_all['source'] = os.path.basename(os.path.normpath(report_dir))
            all_results.append(results_all)
        else:
            logger.warning(f"Skipping {report_dir} due to missing or invalid data")

    if not all_results:
        logger.error("No valid results found.")
        return None, None

    combined = pd.concat(all_results, ignore_index=True)
    logger.info(f"Combined results shape: {combined.shape}")

    tests = perform_statistical_tests(combined)

    summary_keys = [col for col in ['k', 'distance_metric', 'normalization', 'aggregation', 'imputation_rule']
                    if col in combined.columns]
    summary = combined.groupby(summary_keys)[['accuracy_mean', 'imputation_rmse']].agg(['mean', 'std'])
    summary.columns = [f'{metric}_{stat}' for metric, stat in summary.columns]
    summary = summary.reset_index().sort_values('accuracy_mean_mean', ascending=False)

    os.makedirs(tables_dir, exist_ok=True)
    combined.to_csv(os.path.join(tables_dir, 'combined_results_all_runs.csv'), index=False)
    summary.to_csv(os.path.join(tables_dir, 'config_summary.csv'), index=False)
    pd.DataFrame(tests).to_csv(os.path.join(tables_dir, 'statistical_tests.csv'))

    logger.info(f"Analysis complete. Tables in {tables_dir}")
    return combined, tests

if __name__ == "__main__":
    import sys
    import argparse

    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    parser = argparse.ArgumentParser(description='Compare KNN configurations across restoration study results')
    parser.add_argument('--latest', '-l', action='store_true',
                        help='Analyze only the most recent report directory')
    parser.add_argument('--dir', '-d', type=str, default=None, nargs='+',
                        help='Analyze specific report directory(ies) (relative to results/report/ or absolute path).')
    parser.add_argument('--base-dir', type=str, default='results/report/',
                        help='Base directory to search for report directories (default: results/report/)')

    args = parser.parse_args()

    if args.dir:
        report_dirs = []
        for dir_arg in args.dir:
            if os.path.isabs(dir_arg):
                report_dir = dir_arg
            elif os.path.exists(os.path.join(args.base_dir, dir_arg)):
                report_dir = os.path.join(args.base_dir, dir_arg)
            elif os.path.exists(dir_arg):
                report_dir = dir_arg
            else:
                logger.error(f"Directory not found: {dir_arg}")
                sys.exit(1)
            report_dirs.append(report_dir)
    else:
        report_dirs = discover_report_dirs(args.base_dir, use_latest_only=args.latest)

    if report_dirs:
        compare_configs(report_dirs)
    else:
        logger.error("Analysis aborted: No report directories found")
