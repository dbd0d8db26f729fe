"""
train_knn_regressor.py

This script runs the framework version of the k selection: scikit-learn does
the repeated k-fold cross-validation and Optuna walks the grid of neighbors.
Main tasks:
  - Define Optuna objective returning the repeated CV RMSE of one configuration
  - Grid search over the number of neighbors and weights
  - Train a final kNN model with the best parameters on all data
  - Save the trained model and study for future use
"""

import logging
import os
import time

import joblib
import numpy as np
import optuna
from optuna.samplers import GridSampler
from sklearn.model_selection import RepeatedKFold, cross_val_score
from typing import Optional
import wandb

from knn_housing.models.knn_regressor import knn_regressor


def knn_objective(
  trial: optuna.Trial,
  X: np.ndarray,
  y: np.ndarray,
  k_values: list[int],
  weights: list[str],
  n_folds: int,
  n_repeats: int,
  cv_seed: Optional[int],
  final_run: bool
) -> float:
  """Objective function for Optuna returning the repeated CV RMSE of a trial.

  Args:
    trial (optuna.Trial): Current Optuna trial.
    X (np.ndarray): Feature matrix.
    y (np.ndarray): Targets.
    k_values (list[int]): Numbers of neighbors to try.
    weights (list[str]): Weight functions to try.
    n_folds (int): Number of folds per repetition.
    n_repeats (int): Number of repetitions.
    cv_seed (Optional[int]): Seed of the fold splitter.
    final_run (bool): If True, distribute folds over all CPU cores.

  Returns:
    float: Mean RMSE over all folds and repetitions.
  """
  n_neighbors = trial.suggest_categorical('n_neighbors', k_values)
  chosen_weights = trial.suggest_categorical('weights', weights)

  model = knn_regressor(n_neighbors, chosen_weights, final_run=False)
  splitter = RepeatedKFold(n_splits=n_folds, n_repeats=n_repeats, random_state=cv_seed)

  scores = cross_val_score(
    model, X, y,
    scoring='neg_root_mean_squared_error',
    cv=splitter,
    n_jobs=(-1 if final_run else 1)
  )
  rmse = float(-np.mean(scores))

  trial.set_user_attr('n_neighbors', int(n_neighbors))
  trial.set_user_attr('weights', str(chosen_weights))
  trial.set_user_attr('rmse_std', float(np.std(scores)))
  trial.report(rmse, step=0)

  return rmse


def run_gridsearch_knn(
  X: np.ndarray,
  y: np.ndarray,
  k_values: list[int],
  weights: list[str],
  n_folds: int,
  n_repeats: int,
  cv_seed: Optional[int],
  final_run: bool
) -> optuna.Study:
  """Run exhaustive grid search for kNN regressor using Optuna.

  Args:
    X (np.ndarray): Feature matrix.
    y (np.ndarray): Targets.
    k_values (list[int]): Numbers of neighbors to try.
    weights (list[str]): Weight functions to try.
    n_folds (int): Number of folds per repetition.
    n_repeats (int): Number of repetitions.
    cv_seed (Optional[int]): Seed of the fold splitter.
    final_run (bool): If True, distribute folds over all CPU cores.

  Returns:
    optuna.Study: The completed Optuna study with optimization results.
  """
  logging.info("Starting grid search for kNN regressor hyperparameters.")

  search_space = {
    'n_neighbors': list(k_values),
    'weights': list(weights)
  }
  total_trials = len(search_space['n_neighbors']) * len(search_space['weights'])
  sampler = GridSampler(search_space, seed=cv_seed)
  study = optuna.create_study(direction='minimize', sampler=sampler)

  objective_func = lambda trial: knn_objective(
    trial, X, y, search_space['n_neighbors'], search_space['weights'],
    n_folds, n_repeats, cv_seed, final_run
  )

  try:
    study.optimize(objective_func, n_trials=total_trials, show_progress_bar=False)
  except KeyboardInterrupt:
      logging.warning('Optimization interruption by user. Returning current best study.')
  except Exception as e:
      logging.error(f'An error occurred during optimization: {e}')
      raise e

  return study


def study_rmse_table(study: optuna.Study) -> dict:
  """Collect the trial RMSE per (weights, n_neighbors) from a finished study.

  Args:
    study (optuna.Study): Completed grid search.

  Returns:
    dict: Maps weights to a dict of n_neighbors -> RMSE, sorted by n_neighbors.
  """
  table = {}
  for trial in study.trials:
    if trial.state != optuna.trial.TrialState.COMPLETE:
      continue
    table.setdefault(trial.params['weights'], {})[int(trial.params['n_neighbors'])] = float(trial.value)
  return {w: dict(sorted(rows.items())) for w, rows in table.items()}


def train_knn_regressor(
  dict_data: dict,
  project_name: str,
  experiment_name: str,
  wandb_bool: bool,
  k_values: list[int],
  weights: list[str],
  n_folds: int,
  n_repeats: int,
  cv_seed: Optional[int],
  final_run: bool,
  project_root: str,
) -> dict:
  """Select and train a scikit-learn kNN regressor with repeated CV grid search.

  Steps:
  - Load the feature vector and targets
  - Run Optuna grid search scored by repeated k-fold CV RMSE
  - Train a final model with the best hyperparameters on all data
  - Save model and study artifacts for reuse

  Args:
    dict_data (dict): Dataset dictionary with 'X' and 'y'.
    project_name (str): Name of the W&B project.
    experiment_name (str): Name of the experiment.
    wandb_bool (bool): Whether to use Weights & Biases for logging.
    k_values (list[int]): Numbers of neighbors to try.
    weights (list[str]): Weight functions to try ('uniform', 'distance').
    n_folds (int): Number of folds per repetition.
    n_repeats (int): Number of repetitions.
    cv_seed (Optional[int]): Seed of the fold splitter.
    final_run (bool): If True, use all CPU cores.
    project_root (str): Root directory of the project.

  Returns:
    dict: Paths to saved model/study, best hyperparameters and RMSE.
  """
  for w in weights:
    if w not in ['uniform', 'distance']:
      logging.error(f"Unknown weights: {w}")
      raise ValueError(f"Unknown weights: {w}")

  # Directories for saving
  model_dir = os.path.join(project_root, 'models', experiment_name)
  study_dir = os.path.join(project_root, 'studies', experiment_name)
  os.makedirs(model_dir, exist_ok=True)
  os.makedirs(study_dir, exist_ok=True)

  model_path = os.path.join(model_dir, 'knn_regressor_model.joblib')
  study_path = os.path.join(study_dir, 'knn_regressor_study.joblib')

  X = dict_data['X'].reshape(-1, 1) if dict_data['X'].ndim == 1 else dict_data['X']
  y = dict_data['y']
  cv_config = {
    'k_values': [int(k) for k in k_values],
    'weights': list(weights),
    'n_folds': int(n_folds),
    'n_repeats': int(n_repeats),
    'cv_seed': cv_seed,
    'data_hash': joblib.hash((X, y))
  }

  # Load existing model/study if they were built with the same settings
  study = None
  if os.path.exists(model_path) and os.path.exists(study_path):
    study = joblib.load(study_path)
    if study.user_attrs.get('cv_config') != cv_config:
      logging.info(f"Existing study {study_path} used other settings, rerunning the search.")
      study = None

  if study is not None:
    logging.info(f"Using existing kNN regressor model: {model_path}")
    logging.info(f"Using existing Optuna study: {study_path}")
    time_hyperparameter_search = 0.0
    time_final_training = 0.0

  else:
    logging.info(f"Starting hyperparameter search for knn regressor...")
    start_time_hyperparameter_search = time.time()

    study = run_gridsearch_knn(
      X,
      y,
      k_values,
      weights,
      n_folds,
      n_repeats,
      cv_seed,
      final_run
    )
    study.set_user_attr('cv_config', cv_config)

    time_hyperparameter_search = time.time() - start_time_hyperparameter_search
    logging.info(f"Hyperparameter search took {time_hyperparameter_search:.2f} seconds.")
    logging.info(f"Best parameters: "
      f"{study.best_params['n_neighbors']=} {study.best_params['weights']=}"
    )
    logging.info(f"Best RMSE: {study.best_value}")

    logging.info(f"Starting final model training with best parameters: "
      f"{study.best_params['n_neighbors']=} {study.best_params['weights']=}"
    )
    model = knn_regressor(
      study.best_params['n_neighbors'],
      study.best_params['weights'],
      final_run=final_run
    )

    start_time_final_training = time.time()
    model.fit(X, y)
    time_final_training = time.time() - start_time_final_training

    logging.info(f"Final training took {time_final_training:.2f} seconds.")
    logging.info(f"Saving final kNN model to {model_path} and study to {study_path}.")

    joblib.dump(model, model_path)
    joblib.dump(study, study_path)

    # Log results in WandB
    if wandb_bool:
      run_name = f"{experiment_name}_knn_regressor_model_configs"
      with wandb.init(
          project = project_name,
          group = experiment_name,
          name = run_name,
          job_type = 'model configs',
          tags = [project_name, 'knn_regressor_model', 'model_configs', 'framework_cv'],
          notes = f"Configurations of the framework kNN regressor for {experiment_name}.",
          reinit=True
      ) as run:
        run.log({
        'knn_regressor_configs': {
          'best_n_neighbors': study.best_params['n_neighbors'],
          'best_weights': study.best_params['weights'],
          'best_rmse': study.best_value,
          'n_folds': n_folds,
          'n_repeats': n_repeats,
          'time_hyperparameter_search': time_hyperparameter_search,
          'time_final_training': time_final_training
          }
        })

        model_artefact = wandb.Artifact(
            name = f"{experiment_name}_knn_regressor_model",
            type='model',
            description='Final framework kNN regressor model',
            metadata = {
                'best_n_neighbors': study.best_params['n_neighbors'],
                'best_weights': study.best_params['weights'],
                'best_rmse': study.best_value
            }
        )
        model_artefact.add_file(model_path)
        run.log_artifact(model_artefact)

        study_artefact = wandb.Artifact(
            name = f"{experiment_name}_knn_regressor_study",
            type='study',
            description='Optuna Study for kNN regressor',
            metadata = {
                'best_n_neighbors': study.best_params['n_neighbors'],
                'best_weights': study.best_params['weights'],
                'best_rmse': study.best_value
            }
          )
        study_artefact.add_file(study_path)
        run.log_artifact(study_artefact)

  return {
    'model_path': model_path,
    'study_path': study_path,
    'best_params': study.best_params,
    'best_rmse': study.best_value,
    'rmse_by_weights': study_rmse_table(study),
    'training_time': {
        'time_hyperparameter_search': time_hyperparameter_search,
        'time_final_training': time_final_training
    }
  }
