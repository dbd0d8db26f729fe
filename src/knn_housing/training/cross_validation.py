"""
cross_validation.py

Repeated k-fold cross-validation for choosing the number of neighbors.

Main tasks:
  - Partition record indices into random folds
  - Sum held-out squared errors per k over the folds of one repetition
  - Average the per-repetition RMSE curves with a running mean
  - Select the k with the smallest mean RMSE

Fold assignment is random; pass a seed to make a sweep reproducible.
"""

import logging
import math
import time
from typing import Optional

import numpy as np
import pandas as pd

from knn_housing.models.kernel_knn import as_feature_matrix, knn_predict_path


def make_folds(
  n_samples: int,
  n_folds: int,
  rng: np.random.Generator
) -> list[np.ndarray]:
  """Shuffle record indices and split them into folds.

  Fold sizes differ by at most one and every index appears in exactly one fold.

  Args:
    n_samples (int): Number of records.
    n_folds (int): Number of folds.
    rng (np.random.Generator): Source of randomness.

  Returns:
    list[np.ndarray]: Index arrays, one per fold.
  """
  if n_folds < 2 or n_folds > n_samples:
    logging.error(f"n_folds must be in [2, {n_samples}], got {n_folds}.")
    raise ValueError(f"n_folds must be in [2, {n_samples}], got {n_folds}.")

  return np.array_split(rng.permutation(n_samples), n_folds)


def validate_k_values(k_values: list[int], n_samples: int, n_folds: int) -> list[int]:
  """Check candidate k values against the smallest cross-validation training set.

  Args:
    k_values (list[int]): Candidate neighborhood sizes.
    n_samples (int): Number of records.
    n_folds (int): Number of folds.

  Returns:
    list[int]: Unique k values in ascending order.

  Raises:
    ValueError: If the list is empty, holds a non-positive or non-integer k,
      or its largest k exceeds the smallest training set.
  """
  if len(k_values) == 0:
    logging.error("No candidate k values given.")
    raise ValueError("At least one candidate k value is required.")

  for k in k_values:
    if isinstance(k, (bool, np.bool_)) or not isinstance(k, (int, np.integer)) or k < 1:
      logging.error(f"k must be a positive integer, got {k!r}.")
      raise ValueError(f"k must be a positive integer, got {k!r}.")

  k_values = sorted({int(k) for k in k_values})

  # The largest held-out fold leaves the smallest training set
  min_train = n_samples - math.ceil(n_samples / n_folds)
  if k_values[-1] > min_train:
    logging.error(
      f"k={k_values[-1]} exceeds the smallest cross-validation training set "
      f"({min_train} of {n_samples} samples with {n_folds} folds)."
    )
    raise ValueError(
      f"k={k_values[-1]} exceeds the smallest cross-validation training set "
      f"({min_train} of {n_samples} samples with {n_folds} folds)."
    )
  return k_values


def fold_sse(
  X: np.ndarray,
  y: np.ndarray,
  k_values: list[int],
  folds: list[np.ndarray],
  kernel: str = 'rectangular'
) -> np.ndarray:
  """Sum held-out squared errors per k over all folds of one repetition.

  Args:
    X (np.ndarray): Features.
    y (np.ndarray): Targets.
    k_values (list[int]): Candidate neighborhood sizes.
    folds (list[np.ndarray]): Disjoint index arrays covering all records.
    kernel (str): Kernel passed to the predictor.

  Returns:
    np.ndarray: Sum of squared errors, one entry per k.
  """
  X = as_feature_matrix(X)
  y = np.asarray(y, dtype=float).ravel()
  sse = np.zeros(len(k_values))

  for fold_idx, val_idx in enumerate(folds):
    train_mask = np.ones(y.shape[0], dtype=bool)
    train_mask[val_idx] = False

    y_pred = knn_predict_path(X[train_mask], y[train_mask], X[val_idx], k_values, kernel)
    sse += ((y_pred - y[val_idx][None, :]) ** 2).sum(axis=1)

  return sse


def repeated_cv_knn(
  X: np.ndarray,
  y: np.ndarray,
  k_values: list[int],
  n_folds: int = 10,
  n_repeats: int = 5,
  kernel: str = 'rectangular',
  seed: Optional[int] = None
) -> pd.DataFrame:
  """Estimate out-of-sample RMSE per k with repeated k-fold cross-validation.

  Steps:
  - Validate k values against the smallest training fold
  - For each repetition draw new folds and compute RMSE = sqrt(SSE / n) per k
  - Keep a running mean of the RMSE curves

  Args:
    X (np.ndarray): Features.
    y (np.ndarray): Targets.
    k_values (list[int]): Candidate neighborhood sizes.
    n_folds (int): Number of folds. Defaults to 10.
    n_repeats (int): Number of independent repetitions. Defaults to 5.
    kernel (str): Kernel passed to the predictor. Defaults to 'rectangular'.
    seed (Optional[int]): Seed for fold assignment. None gives a fresh draw.

  Returns:
    pd.DataFrame: Indexed by 'k' with columns 'rmse_rep_1'..'rmse_rep_R'
      and 'rmse_mean'.
  """
  X = as_feature_matrix(X)
  y = np.asarray(y, dtype=float).ravel()
  n_samples = y.shape[0]

  if X.shape[0] != n_samples:
    logging.error(f"Length mismatch: {X.shape[0]} features vs {n_samples} targets")
    raise ValueError(f"Length mismatch: {X.shape[0]} features vs {n_samples} targets")
  if n_repeats < 1:
    logging.error(f"n_repeats must be at least 1, got {n_repeats}.")
    raise ValueError(f"n_repeats must be at least 1, got {n_repeats}.")
  if n_folds < 2 or n_folds > n_samples:
    logging.error(f"n_folds must be in [2, {n_samples}], got {n_folds}.")
    raise ValueError(f"n_folds must be in [2, {n_samples}], got {n_folds}.")

  k_values = validate_k_values(k_values, n_samples, n_folds)

  logging.info(
    f"Starting repeated cross-validation: "
    f"{n_folds=}, {n_repeats=}, {kernel=}, {seed=}, "
    f"k from {k_values[0]} to {k_values[-1]} ({len(k_values)} values)"
  )

  rng = np.random.default_rng(seed)
  table = pd.DataFrame(index=pd.Index(k_values, name='k'))
  rmse_mean = np.zeros(len(k_values))

  start_time = time.time()
  for rep in range(1, n_repeats + 1):
    folds = make_folds(n_samples, n_folds, rng)
    rmse = np.sqrt(fold_sse(X, y, k_values, folds, kernel) / n_samples)

    table[f"rmse_rep_{rep}"] = rmse
    rmse_mean += (rmse - rmse_mean) / rep

    best_pos = int(np.argmin(rmse))
    logging.info(
      f"Repetition {rep}/{n_repeats}: best k={k_values[best_pos]} "
      f"with RMSE {rmse[best_pos]:.4f}"
    )

  table['rmse_mean'] = rmse_mean
  logging.info(f"Cross-validation took {time.time() - start_time:.2f} seconds.")

  return table


def select_best_k(cv_table: pd.DataFrame, column: str = 'rmse_mean') -> int:
  """Return the k with the smallest RMSE, the smallest such k on ties.

  Args:
    cv_table (pd.DataFrame): Table produced by repeated_cv_knn.
    column (str): RMSE column to minimize. Defaults to 'rmse_mean'.

  Returns:
    int: Selected number of neighbors.
  """
  if column not in cv_table.columns:
    logging.error(f"Column '{column}' not in CV table.")
    raise ValueError(f"Column '{column}' not in CV table.")

  # idxmin returns the first occurrence, so ties go to the smallest k
  best_k = int(cv_table.sort_index()[column].idxmin())
  logging.info(f"Selected k={best_k} with {column} {cv_table.loc[best_k, column]:.4f}")
  return best_k
