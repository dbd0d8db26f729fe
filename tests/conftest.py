import matplotlib
import numpy as np
import pandas as pd
import pytest

matplotlib.use('Agg')


@pytest.fixture
def linear_data():
  """Ten noise-free points with x = 1..10 and y = x."""
  x = np.arange(1, 11, dtype=float)
  return x, x.copy()


@pytest.fixture
def noisy_data():
  """Sorted, distinct x in [0, 10] with a smooth signal plus Gaussian noise."""
  rng = np.random.default_rng(598)
  x = np.sort(rng.uniform(0, 10, size=200))
  y = np.sin(x) + rng.normal(0, 0.5, size=200)
  return x, y


@pytest.fixture
def housing_csv(tmp_path):
  """Small Boston-like CSV with unsorted lstat and an extra column."""
  rng = np.random.default_rng(42)
  lstat = rng.uniform(2, 35, size=60)
  medv = 35 - 0.9 * lstat + 0.01 * lstat ** 2 + rng.normal(0, 2, size=60)
  df = pd.DataFrame({'crim': rng.uniform(0, 1, size=60), 'lstat': lstat, 'medv': medv})
  path = tmp_path / 'Boston.csv'
  df.to_csv(path, index=False)
  return str(path)
