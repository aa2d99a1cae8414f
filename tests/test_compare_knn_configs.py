import os
import sys
import pytest
import logging
import pandas as pd

# Add parent directory to path to import from src
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.analysis.compare_knn_configs import (
    discover_report_dirs, load_results, perform_statistical_tests, compare_configs
)

DIR_A = "n_30_30_runs_3_rows_3_3_attrs_2_2_k_3_3_folds_3"
DIR_B = "n_50_50_runs_3_rows_3_3_attrs_2_2_k_3_3_folds_3"


def run_level_results(n):
    rows = []
    for run_idx, (euclidean, manhattan) in enumerate([(80.0, 70.0), (82.0, 71.0), (81.0, 73.0)]):
        for metric, accuracy in (('Euclidean', euclidean), ('Manhattan', manhattan)):
            rows.append({
                'n': n, 'run_idx': run_idx, 'k': 3, 'distance_metric': metric,
                'normalization': 'Min-Max', 'aggregation': 'Mode', 'imputation_rule': 'Mean Value',
                'accuracy_mean': accuracy, 'imputation_rmse': 1.0 + run_idx / 10,
            })
    return pd.DataFrame(rows)

# Fixture to set up a report directory structure
@pytest.fixture
def report_base(tmp_path):
    base = tmp_path / "results" / "report"
    base.mkdir(parents=True)
    (base / DIR_A).mkdir()
    (base / DIR_B).mkdir()
    return base


def write_report(directory, n, with_all_runs=True):
    results = run_level_results(n)
    if with_all_runs:
        results.to_csv(directory / 'results_all_runs.csv', index=False)
    results.groupby(['distance_metric'])['accuracy_mean'].mean().reset_index().to_csv(
        directory / 'results_averaged.csv', index=False)

# Test directory discovery
def test_discover_report_dirs(report_base, caplog):
    write_report(report_base / DIR_A, 30)
    with caplog.at_level(logging.INFO):
        dirs = discover_report_dirs(str(report_base))
    # DIR_B has no results_averaged.csv
    assert [os.path.basename(d) for d in dirs] == [DIR_A]
    assert "Found 1 report directories" in caplog.text

def test_discover_latest_only(report_base):
    write_report(report_base / DIR_A, 30)
    write_report(report_base / DIR_B, 50)
    os.utime(report_base / DIR_A / 'results_averaged.csv', (0, 0))
    dirs = discover_report_dirs(str(report_base), use_latest_only=True)
    assert [os.path.basename(d) for d in dirs] == [DIR_B]

def test_missing_base_dir(tmp_path, caplog):
    with caplog.at_level(logging.ERROR):
        assert discover_report_dirs(str(tmp_path / 'nowhere')) == []
    assert "Base directory does not exist" in caplog.text

# Test warning for missing results_all_runs.csv
def test_missing_results_all_runs_csv(report_base, caplog):
    write_report(report_base / DIR_A, 30, with_all_runs=False)
    with caplog.at_level(logging.WARNING):
        results_all, results_avg = load_results(str(report_base / DIR_A))
    assert results_all is None and results_avg is None
    assert any("Missing results_all_runs.csv in" in record.message for record in caplog.records)

# Test error when no valid results are found
def test_no_valid_results(report_base, tmp_path, caplog):
    with caplog.at_level(logging.ERROR):
        combined, tests = compare_configs([str(report_base / DIR_A)], tables_dir=str(tmp_path / 'tables'))
    assert combined is None and tests is None
    assert any("No valid" in record.message for record in caplog.records)

# Test statistical tests on run-level data
def test_statistical_tests(caplog):
    results = run_level_results(30)
    with caplog.at_level(logging.WARNING):
        tests = perform_statistical_tests(results)
    assert set(tests) == {'accuracy_mean_by_distance_metric'}
    assert tests['accuracy_mean_by_distance_metric']['groups'] == 2
    assert tests['accuracy_mean_by_distance_metric']['p_value'] < 0.05
    assert "Not enough groups to run ANOVA for accuracy_mean by normalization." in caplog.text

# Test full comparison
def test_compare_configs_writes_tables(report_base, tmp_path):
    write_report(report_base / DIR_A, 30)
    write_report(report_base / DIR_B, 50)
    tables_dir = tmp_path / 'tables'
    combined, tests = compare_configs(discover_report_dirs(str(report_base)), tables_dir=str(tables_dir))

    assert len(combined) == 12
    assert set(combined['source']) == {DIR_A, DIR_B}
    assert 'accuracy_mean_by_distance_metric' in tests
    assert (tables_dir / 'combined_results_all_runs.csv').exists()
    assert (tables_dir / 'statistical_tests.csv').exists()
    summary = pd.read_csv(tables_dir / 'config_summary.csv')
    assert summary['distance_metric'].iloc[0] == 'Euclidean'
