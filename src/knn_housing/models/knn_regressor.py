"""
knn_regressor.py

Builds the scikit-learn kNN regressor that the Optuna grid search scores with
repeated k-fold CV, as a cross-check of the hand-written sweep in
training/cross_validation.py. Neighbors are found by brute-force Euclidean
search on the single housing feature.
"""

import logging
from sklearn.neighbors import KNeighborsRegressor


def knn_regressor(
  n_neighbors: int,
  weights: str,
  final_run: bool,
) -> KNeighborsRegressor:
  """Builds the framework kNN regressor for one grid point.

  'uniform' weights match the rectangular kernel of models/kernel_knn.py up to
  tie-breaking; 'distance' weights by inverse distance.

  Args:
    n_neighbors (int): Candidate k from the CV grid.
    weights (str): 'uniform' or 'distance'.
    final_run (bool): If True, the refit on all housing records uses all CPU cores.

  Returns:
    KNeighborsRegressor: Unfitted regressor with Euclidean metric.

  Raises:
    ValueError: If weights is not 'uniform' or 'distance'.
  """
  if weights not in ['uniform', 'distance']:
    logging.error(f"Unknown weights: {weights}")
    raise ValueError(f"Unknown weights: {weights}")

  logging.info(
    f"Building framework kNN regressor: "
    f"{n_neighbors=}, {weights=}, {final_run=}"
  )

  return KNeighborsRegressor(
    n_neighbors=n_neighbors,
    weights=weights,
    algorithm='brute',
    metric='euclidean',
    n_jobs=(-1 if final_run else 1)
  )
