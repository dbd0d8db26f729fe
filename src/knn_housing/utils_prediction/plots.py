"""
plots.py

Figures for the kNN experiments: fitted curves over the data for several k,
and the cross-validated RMSE curves with the selected k.
"""

import logging

import matplotlib.pyplot as plt
import pandas as pd


def plot_knn_fits(
  fit_curves: pd.DataFrame,
  figure_path: str,
  feature: str = 'lstat',
  target: str = 'medv'
) -> str:
  """Plot one panel per k with the data and the fitted kNN curve.

  Args:
    fit_curves (pd.DataFrame): Output of build_fit_curves.
    figure_path (str): Where to save the PNG.
    feature (str): Feature column.
    target (str): Target column.

  Returns:
    str: The saved figure path.
  """
  k_values = sorted(fit_curves['k'].unique())
  fig, axes = plt.subplots(1, len(k_values), figsize=(4 * len(k_values), 4), sharey=True, squeeze=False)

  for ax, k in zip(axes[0], k_values):
    curve = fit_curves[fit_curves['k'] == k]
    ax.scatter(curve[feature], curve[target], s=8, alpha=0.4, color='grey')
    ax.plot(curve[feature], curve[f"{target}_pred"], color='tab:red')
    ax.set_title(f"k = {k}")
    ax.set_xlabel(feature)
  axes[0][0].set_ylabel(target)

  fig.tight_layout()
  fig.savefig(figure_path, dpi=120)
  plt.close(fig)
  logging.info(f"Saved fit curves figure to {figure_path}")
  return figure_path


def plot_cv_curve(cv_table: pd.DataFrame, best_k: int, figure_path: str) -> str:
  """Plot RMSE against k for every repetition and their mean.

  Args:
    cv_table (pd.DataFrame): Output of repeated_cv_knn.
    best_k (int): Selected k, marked with a vertical line.
    figure_path (str): Where to save the PNG.

  Returns:
    str: The saved figure path.
  """
  fig, ax = plt.subplots(figsize=(7, 4))

  for col in [c for c in cv_table.columns if c.startswith('rmse_rep_')]:
    ax.plot(cv_table.index, cv_table[col], color='grey', alpha=0.3, linewidth=0.8)
  ax.plot(cv_table.index, cv_table['rmse_mean'], color='tab:blue', linewidth=2, label='mean')
  ax.axvline(best_k, color='tab:red', linestyle='--', label=f"best k = {best_k}")

  ax.set_xlabel('k')
  ax.set_ylabel('CV RMSE')
  ax.legend()

  fig.tight_layout()
  fig.savefig(figure_path, dpi=120)
  plt.close(fig)
  logging.info(f"Saved CV curve figure to {figure_path}")
  return figure_path
