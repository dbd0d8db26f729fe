"""
main.py (kNN on Boston Housing)

Runs the kNN regression experiment end to end:
- Parse CLI/config file (via -c/--config) and configure logging
- Load the housing data and sort it by the feature
- Fit illustrative k values to show the bias-variance trade-off
- Select k by repeated k-fold cross-validation and refit on all data
- Compare with the scikit-learn/Optuna repeated CV grid search
- Save tables, figures and a JSON summary

Outputs:
- <project_root>/experiments/<experiment_name>/ with cv_rmse_by_k.csv,
  fit_curves.csv, summary.json, knn_fits.png and cv_rmse_by_k.png
- <project_root>/models/<experiment_name>/ and studies/<experiment_name>/
  with the framework model and Optuna study
"""

import logging

import configargparse
import joblib
import matplotlib

from knn_housing.data.load_boston import load_boston
from knn_housing.models.kernel_knn import KERNELS
from knn_housing.training.cross_validation import repeated_cv_knn, select_best_k
from knn_housing.training.train_knn_regressor import train_knn_regressor
from knn_housing.utils_prediction.eval_metrics import (
    load_results,
    log_results_wandb,
    result_paths,
    save_results,
    save_summary
)
from knn_housing.utils_prediction.plots import plot_cv_curve, plot_knn_fits
from knn_housing.utils_prediction.reporting import (
    build_fit_curves,
    curve_variance,
    refit_best_knn
)


def parse_args(argv=None):
  """
  Build and parse command-line/config arguments for the kNN experiment.

  Groups:
    Run options:
      project_root, experiment_name, seed, log_level, wandb settings
    Data options:
      data_path, feature, target
    Model options:
      kernel, illustrative_ks
    Cross-validation options:
      k_min, k_max, n_folds, n_repeats
    Framework options:
      skip_framework, framework_weights, final_run

  Returns:
    argparse.Namespace with all runtime options (supports -c/--config file).
  """
  parser = configargparse.ArgumentParser(
    config_file_parser_class=configargparse.YAMLConfigFileParser
  )
  parser.add_argument('-c', '--config', required=False, is_config_file=True, help='config file path')

  ## Run options
  parser.add_argument('--project_root', type=str, default='.', help='root folder for experiment outputs')
  parser.add_argument('--experiment_name', type=str, default='knn_boston', help='name of the output subfolders')
  parser.add_argument('--seed', type=int, default=1, help='seed of the fold assignment')
  parser.add_argument('--log_level', type=str, default='INFO', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
  parser.add_argument('--wandb', action='store_true', help='log results to Weights & Biases')
  parser.add_argument('--project_name', type=str, default='knn_boston', help='Weights & Biases project name')

  ## Data options
  parser.add_argument('--data_path', type=str, required=True, help='path or URL of the Boston Housing CSV')
  parser.add_argument('--feature', type=str, default='lstat', help='predictor column')
  parser.add_argument('--target', type=str, default='medv', help='response column')

  ## Model options
  parser.add_argument('--kernel', type=str, default='rectangular', choices=list(KERNELS),
                      help='neighbor weighting kernel of the manual kNN')
  parser.add_argument('--illustrative_ks', type=int, nargs='+', default=[1, 5, 25, 100],
                      help='k values plotted to show the bias-variance trade-off')

  ## Cross-validation options
  parser.add_argument('--k_min', type=int, default=1, help='smallest candidate k')
  parser.add_argument('--k_max', type=int, default=100, help='largest candidate k')
  parser.add_argument('--n_folds', type=int, default=10, help='folds per repetition')
  parser.add_argument('--n_repeats', type=int, default=5, help='independent repetitions')

  ## Framework options
  parser.add_argument('--skip_framework', action='store_true',
                      help='skip the scikit-learn/Optuna comparison')
  parser.add_argument('--framework_weights', type=str, nargs='+', default=['uniform'],
                      choices=['uniform', 'distance'], help='weights tried by the framework grid search')
  parser.add_argument('--final_run', action='store_true',
                      help='distribute framework CV folds over all CPU cores')

  return parser.parse_args(argv)


def run_config(args, dict_data: dict) -> dict:
  """Settings that determine the cached results of a run.

  Args:
    args (argparse.Namespace): Options from parse_args.
    dict_data (dict): Loaded data from load_boston.

  Returns:
    dict: JSON-serializable settings plus a hash of the loaded data.
  """
  return {
    'data_path': str(args.data_path),
    'data_hash': joblib.hash((dict_data['X'], dict_data['y'])),
    'feature': args.feature,
    'target': args.target,
    'kernel': args.kernel,
    'illustrative_ks': [int(k) for k in args.illustrative_ks],
    'k_min': args.k_min,
    'k_max': args.k_max,
    'n_folds': args.n_folds,
    'n_repeats': args.n_repeats,
    'seed': args.seed
  }


def run_knn_boston(args) -> dict:
  """Run the experiment described by the parsed arguments.

  Args:
    args (argparse.Namespace): Options from parse_args.

  Returns:
    dict: Run summary with the selected k, CV settings, final metrics,
      curve variances and the framework comparison.
  """
  if args.k_min < 1 or args.k_max < args.k_min:
    logging.error(f"Invalid k range: {args.k_min=} {args.k_max=}")
    raise ValueError(f"Invalid k range: k_min={args.k_min}, k_max={args.k_max}")

  dict_data = load_boston(args.data_path, args.feature, args.target)
  X, y = dict_data['X'], dict_data['y']
  k_values = list(range(args.k_min, args.k_max + 1))

  config = run_config(args, dict_data)
  paths = result_paths(args.project_root, args.experiment_name)
  cached = load_results(paths, config)

  if cached is not None:
    cv_table, fit_curves, summary = cached
    best_k = summary['best_k']
    summary.pop('framework', None)
  else:
    # Bias-variance illustration
    fit_curves = build_fit_curves(X, y, args.illustrative_ks, args.kernel, args.feature, args.target)
    variances = curve_variance(fit_curves, args.target)
    for k, var in variances.items():
      logging.info(f"Variance of the fitted curve at k={k}: {var:.3f}")

    cv_table = repeated_cv_knn(
      X, y, k_values,
      n_folds=args.n_folds,
      n_repeats=args.n_repeats,
      kernel=args.kernel,
      seed=args.seed
    )
    best_k = select_best_k(cv_table)
    final = refit_best_knn(X, y, best_k, args.kernel, args.feature, args.target)

    summary = {
      'best_k': best_k,
      'best_cv_rmse': float(cv_table.loc[best_k, 'rmse_mean']),
      'kernel': args.kernel,
      'n_samples': int(y.shape[0]),
      'n_folds': args.n_folds,
      'n_repeats': args.n_repeats,
      'seed': args.seed,
      'run_config': config,
      'final_metrics': final['metrics'],
      'curve_variance': {str(k): float(v) for k, v in variances.items()}
    }
    save_results(cv_table, fit_curves, summary, paths)

  plot_knn_fits(fit_curves, paths['fits_figure_path'], args.feature, args.target)
  plot_cv_curve(cv_table, best_k, paths['cv_figure_path'])

  if args.wandb:
    log_results_wandb(cv_table, summary, paths, args.project_name, args.experiment_name)

  if not args.skip_framework:
    framework = train_knn_regressor(
      dict_data,
      args.project_name,
      args.experiment_name,
      args.wandb,
      k_values,
      args.framework_weights,
      args.n_folds,
      args.n_repeats,
      args.seed,
      args.final_run,
      args.project_root
    )
    summary['framework'] = {
      'best_k': int(framework['best_params']['n_neighbors']),
      'best_weights': framework['best_params']['weights'],
      'best_rmse': float(framework['best_rmse']),
      'rmse_by_weights': {
        w: {str(k): rmse for k, rmse in rows.items()}
        for w, rows in framework['rmse_by_weights'].items()
      }
    }
    logging.info(
      f"Manual CV selected k={best_k} (RMSE {summary['best_cv_rmse']:.4f}); "
      f"framework selected k={summary['framework']['best_k']} "
      f"(RMSE {summary['framework']['best_rmse']:.4f})"
    )

  save_summary(summary, paths)
  return summary


def main(argv=None) -> None:
  args = parse_args(argv)
  # Figures are only written to disk
  matplotlib.use('Agg')
  logging.basicConfig(
    level=getattr(logging, args.log_level),
    format='%(asctime)s - %(levelname)s - %(message)s'
  )
  run_knn_boston(args)


if __name__ == '__main__':
  main()
