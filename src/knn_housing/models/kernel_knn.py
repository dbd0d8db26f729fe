"""
kernel_knn.py

This module implements k-nearest-neighbor regression with kernel weighting.

Main tasks:
  - Rank training points by Euclidean distance to each query (stable order)
  - Weight the k nearest targets with a kernel on the scaled distances
  - Predict a single k or a whole path of k values from one distance computation

Neighbors at equal distance are ranked by their row order in the training data.
"""

import logging

import numpy as np

KERNELS = ('rectangular', 'triangular', 'epanechnikov', 'gaussian', 'inv')
MIN_SCALED_DISTANCE = 1e-6


def as_feature_matrix(x: np.ndarray) -> np.ndarray:
  """Convert a 1D feature vector or 2D feature matrix to a float 2D array.

  Args:
    x (np.ndarray): Feature values, shape (n,) or (n, d).

  Returns:
    np.ndarray: Feature matrix of shape (n, d).
  """
  x = np.asarray(x, dtype=float)
  if x.ndim == 1:
    return x.reshape(-1, 1)
  if x.ndim != 2:
    logging.error(f"Features must be 1D or 2D, got {x.ndim} dimensions.")
    raise ValueError(f"Features must be 1D or 2D, got {x.ndim} dimensions.")
  return x


def check_k(k: int, n_train: int) -> int:
  """Validate a neighborhood size against the number of training points.

  Args:
    k (int): Number of neighbors.
    n_train (int): Number of available training points.

  Returns:
    int: The validated k.

  Raises:
    ValueError: If k is not a positive integer or exceeds n_train.
  """
  if isinstance(k, (bool, np.bool_)) or not isinstance(k, (int, np.integer)) or k < 1:
    logging.error(f"k must be a positive integer, got {k!r}.")
    raise ValueError(f"k must be a positive integer, got {k!r}.")
  if k > n_train:
    logging.error(f"k={k} exceeds the number of training points ({n_train}).")
    raise ValueError(f"k={k} exceeds the number of training points ({n_train}).")
  return int(k)


def kernel_weights(scaled_distances: np.ndarray, kernel: str) -> np.ndarray:
  """Apply a kernel to distances scaled into the open interval (0, 1).

  Args:
    scaled_distances (np.ndarray): Neighbor distances divided by the distance
      of the first neighbor outside the neighborhood.
    kernel (str): One of KERNELS.

  Returns:
    np.ndarray: Strictly positive weights with the same shape as the input.
  """
  u = np.clip(scaled_distances, MIN_SCALED_DISTANCE, 1.0 - MIN_SCALED_DISTANCE)

  if kernel == 'rectangular':
    return np.full_like(u, 0.5)
  if kernel == 'triangular':
    return 1.0 - u
  if kernel == 'epanechnikov':
    return 0.75 * (1.0 - u ** 2)
  if kernel == 'gaussian':
    return np.exp(-0.5 * u ** 2) / np.sqrt(2.0 * np.pi)
  if kernel == 'inv':
    return 1.0 / u

  logging.error(f"Unknown kernel: {kernel}")
  raise ValueError(f"Unknown kernel: {kernel}. Choose one of {KERNELS}.")


def rank_neighbors(
  x_train: np.ndarray,
  x_query: np.ndarray,
) -> tuple[np.ndarray, np.ndarray]:
  """Order all training points by distance to every query point.

  Args:
    x_train (np.ndarray): Training features, shape (n_train,) or (n_train, d).
    x_query (np.ndarray): Query features, shape (n_query,) or (n_query, d).

  Returns:
    tuple[np.ndarray, np.ndarray]:
    - Neighbor indices of shape (n_query, n_train), nearest first
    - Matching sorted distances of shape (n_query, n_train)
  """
  x_train = as_feature_matrix(x_train)
  x_query = as_feature_matrix(x_query)
  if x_train.shape[1] != x_query.shape[1]:
    logging.error(
      f"Feature dimension mismatch: train {x_train.shape[1]} vs query {x_query.shape[1]}"
    )
    raise ValueError(
      f"Feature dimension mismatch: train {x_train.shape[1]} vs query {x_query.shape[1]}"
    )

  distances = np.sqrt(((x_query[:, None, :] - x_train[None, :, :]) ** 2).sum(axis=2))
  order = np.argsort(distances, axis=1, kind='stable')
  return order, np.take_along_axis(distances, order, axis=1)


def _weighted_mean_at_k(
  sorted_y: np.ndarray,
  sorted_distances: np.ndarray,
  k: int,
  kernel: str
) -> np.ndarray:
  """Kernel-weighted mean of the first k sorted targets for every query."""
  n_train = sorted_y.shape[1]
  scale_col = k if k < n_train else n_train - 1
  scale = np.maximum(sorted_distances[:, scale_col], MIN_SCALED_DISTANCE)

  weights = kernel_weights(sorted_distances[:, :k] / scale[:, None], kernel)
  return (weights * sorted_y[:, :k]).sum(axis=1) / weights.sum(axis=1)


def knn_predict_path(
  x_train: np.ndarray,
  y_train: np.ndarray,
  x_query: np.ndarray,
  k_values: list[int],
  kernel: str = 'rectangular'
) -> np.ndarray:
  """Predict query targets for several neighborhood sizes at once.

  The distance ranking is computed once and shared by every k. With the
  rectangular kernel all k are read off one cumulative sum of sorted targets.

  Args:
    x_train (np.ndarray): Training features.
    y_train (np.ndarray): Training targets, shape (n_train,).
    x_query (np.ndarray): Query features.
    k_values (list[int]): Neighborhood sizes.
    kernel (str): One of KERNELS. Defaults to 'rectangular'.

  Returns:
    np.ndarray: Predictions of shape (len(k_values), n_query).

  Raises:
    ValueError: On empty or mismatched training data, an unknown kernel,
      or a k that is not in [1, n_train].
  """
  y_train = np.asarray(y_train, dtype=float).ravel()
  n_train = as_feature_matrix(x_train).shape[0]

  if n_train == 0:
    logging.error("Training set is empty.")
    raise ValueError("Training set is empty.")
  if n_train != y_train.shape[0]:
    logging.error(f"Length mismatch: {n_train} features vs {y_train.shape[0]} targets")
    raise ValueError(f"Length mismatch: {n_train} features vs {y_train.shape[0]} targets")
  if kernel not in KERNELS:
    logging.error(f"Unknown kernel: {kernel}")
    raise ValueError(f"Unknown kernel: {kernel}. Choose one of {KERNELS}.")

  k_values = [check_k(k, n_train) for k in k_values]

  order, sorted_distances = rank_neighbors(x_train, x_query)
  sorted_y = y_train[order]

  if kernel == 'rectangular':
    cumulative = np.cumsum(sorted_y, axis=1)
    return np.stack([cumulative[:, k - 1] / k for k in k_values])

  return np.stack([
    _weighted_mean_at_k(sorted_y, sorted_distances, k, kernel) for k in k_values
  ])


def knn_predict(
  x_train: np.ndarray,
  y_train: np.ndarray,
  x_query: np.ndarray,
  k: int,
  kernel: str = 'rectangular'
) -> np.ndarray:
  """Predict query targets as the kernel-weighted mean of the k nearest targets.

  Args:
    x_train (np.ndarray): Training features.
    y_train (np.ndarray): Training targets.
    x_query (np.ndarray): Query features.
    k (int): Number of neighbors, 1 <= k <= n_train.
    kernel (str): One of KERNELS. Defaults to 'rectangular' (simple mean).

  Returns:
    np.ndarray: Predictions of shape (n_query,).
  """
  return knn_predict_path(x_train, y_train, x_query, [k], kernel)[0]
