"""
reporting.py

Builds the presentation data of the kNN experiments: fitted curves for a set of
illustrative k values, their spread, and the final refit at the selected k.
"""

import logging

import numpy as np
import pandas as pd

from knn_housing.models.kernel_knn import knn_predict_path
from knn_housing.utils_prediction.eval_metrics import calc_error_metrics


def build_fit_curves(
  X: np.ndarray,
  y: np.ndarray,
  k_values: list[int],
  kernel: str = 'rectangular',
  feature: str = 'lstat',
  target: str = 'medv'
) -> pd.DataFrame:
  """Fit on all data and predict every training point for each k.

  Args:
    X (np.ndarray): Feature vector.
    y (np.ndarray): Targets.
    k_values (list[int]): Neighborhood sizes to illustrate.
    kernel (str): Kernel passed to the predictor.
    feature (str): Name of the feature column in the output.
    target (str): Name of the target column in the output.

  Returns:
    pd.DataFrame: Long table with columns 'k', feature, target and
      '<target>_pred', rows ordered by k then by feature.
  """
  X = np.asarray(X, dtype=float).ravel()
  y = np.asarray(y, dtype=float).ravel()
  order = np.argsort(X, kind='stable')
  X, y = X[order], y[order]

  y_pred = knn_predict_path(X, y, X, k_values, kernel)

  frames = []
  for k, pred in zip(k_values, y_pred):
    frames.append(pd.DataFrame({
      'k': int(k),
      feature: X,
      target: y,
      f"{target}_pred": pred
    }))
  return pd.concat(frames, ignore_index=True)


def curve_variance(fit_curves: pd.DataFrame, target: str = 'medv') -> pd.Series:
  """Variance of the fitted curve for each k; it shrinks as k grows."""
  return fit_curves.groupby('k')[f"{target}_pred"].var(ddof=0).rename('pred_variance')


def refit_best_knn(
  X: np.ndarray,
  y: np.ndarray,
  best_k: int,
  kernel: str = 'rectangular',
  feature: str = 'lstat',
  target: str = 'medv'
) -> dict:
  """Refit the predictor on all data at the selected k.

  Args:
    X (np.ndarray): Feature vector.
    y (np.ndarray): Targets.
    best_k (int): Selected number of neighbors.
    kernel (str): Kernel passed to the predictor.
    feature (str): Feature column name.
    target (str): Target column name.

  Returns:
    dict: 'fit' with the (feature, predicted target) pairs and in-sample
      'metrics'.
  """
  fit = build_fit_curves(X, y, [best_k], kernel, feature, target)
  metrics = calc_error_metrics(fit[target].to_numpy(), fit[f"{target}_pred"].to_numpy())

  logging.info(f"Final refit with k={best_k}: {metrics}")
  return {'fit': fit, 'metrics': metrics}
