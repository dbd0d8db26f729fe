"""
Tests for fold assignment, the repeated CV sweep and k selection.
"""

import numpy as np
import pandas as pd
import pytest

from knn_housing.models.kernel_knn import knn_predict
from knn_housing.training.cross_validation import (
    fold_sse,
    make_folds,
    repeated_cv_knn,
    select_best_k,
    validate_k_values
)


class TestMakeFolds:

  @pytest.mark.parametrize('n_samples, n_folds', [(10, 2), (10, 3), (506, 10), (7, 7)])
  def test_partition_covers_every_index_once(self, n_samples, n_folds):
    folds = make_folds(n_samples, n_folds, np.random.default_rng(0))
    assert len(folds) == n_folds
    np.testing.assert_array_equal(np.sort(np.concatenate(folds)), np.arange(n_samples))
    sizes = [len(f) for f in folds]
    assert max(sizes) - min(sizes) <= 1

  def test_same_seed_same_folds(self):
    a = make_folds(50, 5, np.random.default_rng(3))
    b = make_folds(50, 5, np.random.default_rng(3))
    for fa, fb in zip(a, b):
      np.testing.assert_array_equal(fa, fb)

  @pytest.mark.parametrize('n_folds', [0, 1, 11])
  def test_invalid_fold_count(self, n_folds):
    with pytest.raises(ValueError, match='n_folds'):
      make_folds(10, n_folds, np.random.default_rng(0))


class TestValidateKValues:

  def test_sorted_and_deduplicated(self):
    assert validate_k_values([5, 1, 3, 1], n_samples=10, n_folds=5) == [1, 3, 5]

  def test_k_exceeding_smallest_training_fold(self):
    # 10 samples in 5 folds leave 8 training points
    assert validate_k_values([8], n_samples=10, n_folds=5) == [8]
    with pytest.raises(ValueError, match=r"k=9 exceeds .*\(8 of 10 samples"):
      validate_k_values(list(range(1, 10)), n_samples=10, n_folds=5)

  def test_uneven_folds_use_largest_fold(self):
    # folds of 4, 3, 3 leave at least 6 training points
    assert validate_k_values([6], n_samples=10, n_folds=3) == [6]
    with pytest.raises(ValueError, match='k=7'):
      validate_k_values([7], n_samples=10, n_folds=3)

  @pytest.mark.parametrize('k_values', [[], [0], [2, -1], [1.5]])
  def test_invalid_candidates(self, k_values):
    with pytest.raises(ValueError):
      validate_k_values(k_values, n_samples=10, n_folds=5)


class TestFoldSSE:

  def test_matches_direct_computation(self, noisy_data):
    x, y = noisy_data
    k_values = [1, 4, 9]
    folds = make_folds(len(y), 5, np.random.default_rng(1))

    expected = np.zeros(len(k_values))
    for val_idx in folds:
      train_idx = np.setdiff1d(np.arange(len(y)), val_idx)
      for i, k in enumerate(k_values):
        pred = knn_predict(x[train_idx], y[train_idx], x[val_idx], k)
        expected[i] += np.sum((pred - y[val_idx]) ** 2)

    np.testing.assert_allclose(fold_sse(x, y, k_values, folds), expected)

  def test_leave_one_out_on_linear_data(self, linear_data):
    x, y = linear_data
    folds = make_folds(10, 10, np.random.default_rng(0))
    sse = fold_sse(x, y, [1, 2], folds)
    # k=1: every point is predicted by an adjacent point, error 1
    # k=2: interior points are exact, both ends are off by 1.5
    np.testing.assert_allclose(sse, [10.0, 4.5])


class TestRepeatedCV:

  def test_table_layout(self, noisy_data):
    x, y = noisy_data
    table = repeated_cv_knn(x, y, [10, 1, 5], n_folds=5, n_repeats=3, seed=0)
    assert table.index.name == 'k'
    assert list(table.index) == [1, 5, 10]
    assert list(table.columns) == ['rmse_rep_1', 'rmse_rep_2', 'rmse_rep_3', 'rmse_mean']

  def test_running_mean_equals_direct_mean(self, noisy_data):
    x, y = noisy_data
    table = repeated_cv_knn(x, y, list(range(1, 40)), n_folds=10, n_repeats=7, seed=11)
    rep_cols = [c for c in table.columns if c.startswith('rmse_rep_')]
    np.testing.assert_allclose(table['rmse_mean'], table[rep_cols].mean(axis=1), rtol=1e-12)

  def test_rmse_is_root_of_mean_sse(self, noisy_data):
    x, y = noisy_data
    k_values = [1, 3, 8]
    table = repeated_cv_knn(x, y, k_values, n_folds=4, n_repeats=1, seed=5)

    folds = make_folds(len(y), 4, np.random.default_rng(5))
    expected = np.sqrt(fold_sse(x, y, k_values, folds) / len(y))
    np.testing.assert_allclose(table['rmse_rep_1'], expected)

  def test_seed_reproducibility(self, noisy_data):
    x, y = noisy_data
    a = repeated_cv_knn(x, y, [1, 5, 20], n_folds=5, n_repeats=2, seed=123)
    b = repeated_cv_knn(x, y, [1, 5, 20], n_folds=5, n_repeats=2, seed=123)
    c = repeated_cv_knn(x, y, [1, 5, 20], n_folds=5, n_repeats=2, seed=124)
    pd.testing.assert_frame_equal(a, b)
    assert not np.allclose(a['rmse_mean'], c['rmse_mean'])

  def test_leave_one_out_is_seed_independent(self, linear_data):
    x, y = linear_data
    table = repeated_cv_knn(x, y, [1, 2], n_folds=10, n_repeats=3, seed=None)
    np.testing.assert_allclose(table['rmse_mean'], [1.0, np.sqrt(0.45)])

  def test_smoothing_beats_single_neighbor_on_noisy_data(self, noisy_data):
    x, y = noisy_data
    table = repeated_cv_knn(x, y, list(range(1, 60)), n_folds=10, n_repeats=3, seed=7)
    best_k = select_best_k(table)
    assert best_k > 1
    assert table.loc[best_k, 'rmse_mean'] < table.loc[1, 'rmse_mean']

  def test_k_too_large_fails_before_fitting(self, linear_data):
    x, y = linear_data
    with pytest.raises(ValueError, match='k=10 exceeds'):
      repeated_cv_knn(x, y, list(range(1, 11)), n_folds=5, n_repeats=2, seed=0)

  def test_invalid_repeats(self, linear_data):
    x, y = linear_data
    with pytest.raises(ValueError, match='n_repeats'):
      repeated_cv_knn(x, y, [1], n_folds=5, n_repeats=0)

  def test_invalid_folds(self, linear_data):
    x, y = linear_data
    with pytest.raises(ValueError, match='n_folds'):
      repeated_cv_knn(x, y, [1], n_folds=11, n_repeats=1)


class TestSelectBestK:

  def test_ties_go_to_smallest_k(self):
    table = pd.DataFrame({'rmse_mean': [0.5, 0.5, 0.7]}, index=pd.Index([3, 1, 2], name='k'))
    assert select_best_k(table) == 1

  def test_minimum(self):
    table = pd.DataFrame({'rmse_mean': [0.9, 0.4, 0.6]}, index=pd.Index([1, 2, 3], name='k'))
    assert select_best_k(table) == 2

  def test_other_column(self):
    table = pd.DataFrame(
      {'rmse_rep_1': [0.3, 0.4], 'rmse_mean': [0.5, 0.2]},
      index=pd.Index([1, 2], name='k')
    )
    assert select_best_k(table, column='rmse_rep_1') == 1

  def test_missing_column(self):
    table = pd.DataFrame({'rmse_mean': [0.5]}, index=pd.Index([1], name='k'))
    with pytest.raises(ValueError, match='not in CV table'):
      select_best_k(table, column='rmse_rep_9')
