"""
eval_metrics.py

Provides evaluation metrics and result persistence for the kNN experiments.
- Compute MAE, MSE, RMSE, R-squared and residual spread of a fit
- Save CV tables, fit curves and the JSON run summary
- Optional Weights & Biases logging (one run per evaluation)
"""

import json
import logging
import os

import numpy as np
import pandas as pd
from sklearn.metrics import (
    mean_absolute_error,
    mean_squared_error,
    r2_score
)
import wandb


def calc_rmse(y_true: np.ndarray, y_pred: np.ndarray) -> float:
  """Calculate Root Mean Square Error.

  Args:
    y_true (np.ndarray): Ground truth values.
    y_pred (np.ndarray): Predicted values.

  Returns:
    float: RMSE value.
  """
  return float(np.sqrt(mean_squared_error(y_true, y_pred)))


def calc_error_metrics(y_true: np.ndarray, y_pred: np.ndarray) -> dict:
  """Calculate a set of error metrics for model evaluation.

  This function computes:
    - MAE, MSE, RMSE
    - R-squared
    - Residual Std, Standard Deviation of ground truth

  Args:
    y_true (np.ndarray): Ground truth values.
    y_pred (np.ndarray): Predicted values.

  Returns:
    dict: Metrics rounded to 4 decimals.
  """
  y_true = np.asarray(y_true, dtype=float)
  y_pred = np.asarray(y_pred, dtype=float)

  if y_true.shape != y_pred.shape:
    logging.error(f"Shape mismatch: y_pred {y_pred.shape} vs y_true {y_true.shape}")
    raise ValueError(f"Shape mismatch: y_pred {y_pred.shape} vs y_true {y_true.shape}")

  # Core metrics
  mae = mean_absolute_error(y_true, y_pred)
  mse = mean_squared_error(y_true, y_pred)
  rmse = np.sqrt(mse)
  r2 = r2_score(y_true, y_pred) if y_true.size > 1 else float('nan')

  # standard deviations
  residual_std = float(np.std(y_true - y_pred, ddof=1)) if y_true.size > 1 else 0.0
  standard_std = float(np.std(y_true, ddof=1)) if y_true.size > 1 else 0.0

  return {
    'mae': round(float(mae), 4),
    'mse': round(float(mse), 4),
    'rmse': round(float(rmse), 4),
    'r2': round(float(r2), 4),
    'residual_std': round(residual_std, 4),
    'standard_std': round(standard_std, 4)
  }


def result_paths(project_root: str, experiment_name: str) -> dict:
  """Build the artifact paths of one experiment and create its folder."""
  results_dir = os.path.join(project_root, 'experiments', experiment_name)
  os.makedirs(results_dir, exist_ok=True)
  return {
    'results_dir': results_dir,
    'cv_table_path': os.path.join(results_dir, 'cv_rmse_by_k.csv'),
    'fit_curves_path': os.path.join(results_dir, 'fit_curves.csv'),
    'summary_path': os.path.join(results_dir, 'summary.json'),
    'fits_figure_path': os.path.join(results_dir, 'knn_fits.png'),
    'cv_figure_path': os.path.join(results_dir, 'cv_rmse_by_k.png')
  }


def save_summary(summary: dict, paths: dict) -> None:
  """Write the JSON run summary, replacing any previous one."""
  with open(paths['summary_path'], 'w') as f:
    json.dump(summary, f, indent=2)
  logging.info(f"Summary saved: {paths['summary_path']}")


def save_results(
    cv_table: pd.DataFrame,
    fit_curves: pd.DataFrame,
    summary: dict,
    paths: dict
) -> None:
  """Save the CV table, fit curves and run summary.

  Args:
    cv_table (pd.DataFrame): RMSE per k (index 'k').
    fit_curves (pd.DataFrame): Long table of fitted values per k.
    summary (dict): JSON-serializable run summary.
    paths (dict): Output paths from result_paths.
  """
  cv_table.to_csv(paths['cv_table_path'], index=True)
  fit_curves.to_csv(paths['fit_curves_path'], index=False)
  save_summary(summary, paths)
  logging.info(
    f"Results saved: {paths['cv_table_path']}, {paths['fit_curves_path']}, {paths['summary_path']}"
  )


def load_results(
    paths: dict,
    run_config: dict
) -> tuple[pd.DataFrame, pd.DataFrame, dict] | None:
  """Load cached results of a previous run with the same configuration.

  Args:
    paths (dict): Output paths from result_paths.
    run_config (dict): JSON-serializable settings of the current run.

  Returns:
    tuple | None: CV table, fit curves and summary, or None if a file is
      missing or the cached run used different settings.
  """
  if not all([os.path.exists(paths[p]) for p in [
    'cv_table_path', 'fit_curves_path', 'summary_path'
  ]]):
    return None

  with open(paths['summary_path'], 'r') as f:
    summary = json.load(f)
  if summary.get('run_config') != run_config:
    logging.info(f"Cached results in {paths['results_dir']} used other settings, recomputing...")
    return None

  logging.info(f"Found cached results in {paths['results_dir']}, loading...")
  cv_table = pd.read_csv(paths['cv_table_path'], index_col='k')
  fit_curves = pd.read_csv(paths['fit_curves_path'])
  return cv_table, fit_curves, summary


def log_results_wandb(
    cv_table: pd.DataFrame,
    summary: dict,
    paths: dict,
    project_name: str,
    experiment_name: str
) -> None:
  """Log the CV curve, final metrics and artifacts to Weights & Biases."""
  run_name = f"{experiment_name}__knn_cv__eval"
  with wandb.init(
    project=project_name,
    group=experiment_name,
    name=run_name,
    job_type='evaluate model',
    tags=[project_name, 'knn_cv', 'model_results'],
    notes=f"Cross-validated k selection for experiment {experiment_name}.",
    reinit=True
  ) as run:
    wandb.define_metric('k')
    wandb.define_metric('cv/*', step_metric='k')

    for k, row in cv_table.iterrows():
      wandb.log({'k': int(k), 'cv/rmse_mean': float(row['rmse_mean'])})

    wandb.run.log({f"final/{k}": v for k, v in summary['final_metrics'].items()})
    wandb.run.log({'best_k': summary['best_k']})

    table = wandb.Table(dataframe=cv_table.reset_index())
    wandb.log({'cv_rmse_table': table})

    art = wandb.Artifact(f"{experiment_name}_knn_cv_results", type='results')
    for key in ['cv_table_path', 'fit_curves_path', 'summary_path']:
      art.add_file(paths[key])
    run.log_artifact(art)
