"""
load_boston.py

This script loads the Boston Housing table and prepares the single-feature
regression problem used by the kNN experiments.

Main tasks:
  - Read the CSV from a local path or URL
  - Validate the feature and target columns
  - Sort records by the feature for plotting
  - Return the feature vector, target vector and the sorted data frame
"""

import logging
import os
from urllib.parse import urlparse

import numpy as np
import pandas as pd


def is_url(path: str) -> bool:
  """Return True if the path is an http(s) or ftp URL."""
  return urlparse(str(path)).scheme in ('http', 'https', 'ftp')


def prepare_housing_frame(
    df: pd.DataFrame,
    feature: str = 'lstat',
    target: str = 'medv'
) -> pd.DataFrame:
  """Validate the feature/target columns and sort records by the feature.

  Args:
    df (pd.DataFrame): Raw housing table.
    feature (str): Predictor column. Defaults to 'lstat'.
    target (str): Response column. Defaults to 'medv'.

  Returns:
    pd.DataFrame: Two-column frame sorted by the feature with a fresh index.

  Raises:
    ValueError: If a column is missing, non-numeric, has missing values,
      or the table is empty.
  """
  for col in [feature, target]:
    if col not in df.columns:
      logging.error(f"Housing data is missing the '{col}' column.")
      raise ValueError(f"Housing data must have a '{col}' column.")

  df = df[[feature, target]].copy()
  for col in [feature, target]:
    if not pd.api.types.is_numeric_dtype(df[col]):
      logging.error(f"Column '{col}' is not numeric.")
      raise ValueError(f"Column '{col}' must be numeric, got {df[col].dtype}.")
    n_missing = int(df[col].isna().sum())
    if n_missing > 0:
      logging.error(f"Column '{col}' has {n_missing} missing values.")
      raise ValueError(f"Column '{col}' has {n_missing} missing values.")

  if df.shape[0] == 0:
    logging.error("Housing data is empty.")
    raise ValueError("Housing data is empty.")

  # Sorting only affects plotting, not the fitted models
  return df.sort_values(feature, kind='mergesort').reset_index(drop=True)


def load_boston(
    data_path: str,
    feature: str = 'lstat',
    target: str = 'medv'
) -> dict:
  """Loads the Boston Housing data for single-feature kNN regression.

  Args:
    data_path (str): Local CSV path or URL.
    feature (str): Predictor column. Defaults to 'lstat'.
    target (str): Response column. Defaults to 'medv'.

  Returns:
    dict: Feature vector 'X', target vector 'y', the sorted 'data_frame'
      and the column names.

  Raises:
    FileNotFoundError: If a local data file does not exist.
    ValueError: If the table fails validation.
  """
  logging.info(f"Loading housing data from {data_path}")

  if not is_url(data_path) and not os.path.exists(data_path):
    logging.error(f"Missing required file: {data_path}")
    raise FileNotFoundError(f"File does not exist: {data_path}")

  raw_df = pd.read_csv(data_path)
  logging.info(f"Read {raw_df.shape[0]} rows and {raw_df.shape[1]} columns.")

  df = prepare_housing_frame(raw_df, feature, target)

  X = df[feature].to_numpy(dtype=np.float64)
  y = df[target].to_numpy(dtype=np.float64)

  logging.info(f"Loaded data: X={X.shape}, y={y.shape}, {feature=}, {target=}")

  return {
    'X': X,
    'y': y,
    'data_frame': df,
    'feature': feature,
    'target': target
  }
