"""
End-to-end tests of the command-line experiment on a synthetic housing CSV.
"""

import json
import os

from knn_housing.main import main, parse_args, run_knn_boston


def test_parse_args_from_yaml_config(tmp_path, housing_csv):
  config = tmp_path / 'knn.yaml'
  config.write_text(
    f"data_path: {housing_csv}\n"
    "kernel: triangular\n"
    "illustrative_ks: [1, 3]\n"
    "n_folds: 5\n"
    "final_run: false\n"
  )
  args = parse_args(['-c', str(config), '--n_repeats', '2'])
  assert args.data_path == housing_csv
  assert args.kernel == 'triangular'
  assert args.illustrative_ks == [1, 3]
  assert args.n_folds == 5
  assert args.n_repeats == 2
  assert args.final_run is False


def test_main_writes_artifacts(tmp_path, housing_csv):
  main([
    '--data_path', housing_csv,
    '--project_root', str(tmp_path),
    '--experiment_name', 'smoke',
    '--k_max', '12',
    '--n_folds', '5',
    '--n_repeats', '2',
    '--illustrative_ks', '1', '5', '20',
    '--skip_framework'
  ])
  results_dir = tmp_path / 'experiments' / 'smoke'
  for name in ['cv_rmse_by_k.csv', 'fit_curves.csv', 'summary.json', 'knn_fits.png', 'cv_rmse_by_k.png']:
    assert (results_dir / name).exists()

  summary = json.loads((results_dir / 'summary.json').read_text())
  assert 1 <= summary['best_k'] <= 12
  assert summary['n_samples'] == 60
  assert set(summary['curve_variance']) == {'1', '5', '20'}
  assert summary['curve_variance']['1'] > summary['curve_variance']['20']


def test_run_with_framework_comparison(tmp_path, housing_csv):
  args = parse_args([
    '--data_path', housing_csv,
    '--project_root', str(tmp_path),
    '--k_max', '6',
    '--n_folds', '4',
    '--n_repeats', '1',
    '--illustrative_ks', '1', '6'
  ])
  summary = run_knn_boston(args)

  assert summary['best_k'] in range(1, 7)
  assert summary['framework']['best_k'] in range(1, 7)
  assert summary['framework']['best_weights'] == 'uniform'
  assert os.path.exists(tmp_path / 'models' / 'knn_boston' / 'knn_regressor_model.joblib')

  # a second run reuses the saved results
  again = run_knn_boston(args)
  assert again['best_k'] == summary['best_k']
  assert again['best_cv_rmse'] == summary['best_cv_rmse']


def test_rerun_with_new_settings_recomputes(tmp_path, housing_csv):
  common = ['--data_path', housing_csv, '--project_root', str(tmp_path),
            '--experiment_name', 'rerun', '--n_folds', '5', '--n_repeats', '2',
            '--illustrative_ks', '1', '5']
  first = run_knn_boston(parse_args(common + ['--k_max', '30', '--skip_framework']))
  assert first['run_config']['k_max'] == 30

  second = run_knn_boston(parse_args(common + [
    '--k_max', '2', '--kernel', 'gaussian', '--seed', '9', '--skip_framework'
  ]))
  assert second['best_k'] <= 2
  assert second['kernel'] == 'gaussian'
  assert second['seed'] == 9

  results_dir = tmp_path / 'experiments' / 'rerun'
  summary = json.loads((results_dir / 'summary.json').read_text())
  assert summary['run_config']['k_max'] == 2
  assert summary['run_config']['kernel'] == 'gaussian'
  cv_rows = (results_dir / 'cv_rmse_by_k.csv').read_text().strip().splitlines()
  assert [row.split(',')[0] for row in cv_rows[1:]] == ['1', '2']


def test_summary_file_holds_framework_comparison(tmp_path, housing_csv):
  args = parse_args([
    '--data_path', housing_csv,
    '--project_root', str(tmp_path),
    '--experiment_name', 'with_framework',
    '--k_max', '4',
    '--n_folds', '4',
    '--n_repeats', '1',
    '--illustrative_ks', '1', '4'
  ])
  summary = run_knn_boston(args)

  saved = json.loads((tmp_path / 'experiments' / 'with_framework' / 'summary.json').read_text())
  assert saved['framework'] == summary['framework']
  assert saved['framework']['best_k'] in range(1, 5)
  assert list(saved['framework']['rmse_by_weights']['uniform']) == ['1', '2', '3', '4']

  # a framework rerun over a smaller grid stays inside that grid
  args.k_max = 2
  smaller = run_knn_boston(args)
  assert smaller['framework']['best_k'] in (1, 2)
  saved = json.loads((tmp_path / 'experiments' / 'with_framework' / 'summary.json').read_text())
  assert list(saved['framework']['rmse_by_weights']['uniform']) == ['1', '2']

  # skipping the comparison on a cached rerun drops the old framework block
  args.skip_framework = True
  skipped = run_knn_boston(args)
  assert 'framework' not in skipped
  saved = json.loads((tmp_path / 'experiments' / 'with_framework' / 'summary.json').read_text())
  assert 'framework' not in saved
