"""
Tracking accuracy metrics.

Compare a sequence of joint estimates against emulator ground truth.
Errors of continuous joints are wrapped to [-pi, pi].
"""

import numpy as np
import pandas as pd

from ..common.residuals import state_residual


def _errors(estimates, ground_truth, continuous=None):
    return state_residual(np.asarray(estimates, dtype=float),
                          np.asarray(ground_truth, dtype=float), continuous)


def rmse(estimates, ground_truth, axis=0, continuous=None):
    """
    Root Mean Square Error.

    Parameters
    ----------
    estimates : np.ndarray
        Estimated states (N, joint_count) or (N,)
    ground_truth : np.ndarray
        True states, same shape
    axis : int, optional
        Axis along which to compute RMSE
    continuous : np.ndarray of bool, optional
        Joints whose errors wrap around

    Returns
    -------
    float or np.ndarray
        RMSE value(s)
    """
    errors = _errors(estimates, ground_truth, continuous)
    return np.sqrt(np.mean(errors**2, axis=axis))


def mae(estimates, ground_truth, axis=0, continuous=None):
    """Mean Absolute Error."""
    errors = _errors(estimates, ground_truth, continuous)
    return np.mean(np.abs(errors), axis=axis)


def max_abs_error(estimates, ground_truth, axis=0, continuous=None):
    """Largest absolute error along ``axis``."""
    errors = _errors(estimates, ground_truth, continuous)
    return np.max(np.abs(errors), axis=axis)


def compute_all_metrics(estimates, ground_truth, continuous=None, settle_index=0):
    """
    Compute all tracking metrics.

    Parameters
    ----------
    estimates : np.ndarray
        Estimated joint angles (N, joint_count)
    ground_truth : np.ndarray
        True joint angles (N, joint_count)
    continuous : np.ndarray of bool, optional
        Joints whose errors wrap around
    settle_index : int, optional
        Samples before this index are excluded (convergence transient)

    Returns
    -------
    dict
        Per-joint and total metrics
    """
    estimates = np.asarray(estimates, dtype=float)[settle_index:]
    ground_truth = np.asarray(ground_truth, dtype=float)[settle_index:]
    if estimates.ndim == 1:
        estimates = estimates[:, None]
        ground_truth = ground_truth[:, None]

    metrics = {}
    metrics['rmse'] = rmse(estimates, ground_truth, continuous=continuous)
    metrics['mae'] = mae(estimates, ground_truth, continuous=continuous)
    metrics['max_abs_error'] = max_abs_error(estimates, ground_truth, continuous=continuous)
    metrics['rmse_total'] = float(np.mean(metrics['rmse']))
    metrics['mae_total'] = float(np.mean(metrics['mae']))
    metrics['final_error'] = np.abs(_errors(estimates[-1], ground_truth[-1], continuous))

    return metrics


def print_metrics(metrics, tracker_name="Tracker"):
    """
    Print metrics in a formatted way.

    Parameters
    ----------
    metrics : dict
        Dictionary of metrics from compute_all_metrics
    tracker_name : str, optional
        Name of the tracker for display
    """
    print(f"\n{tracker_name} Tracking Metrics")
    print("=" * 50)

    if 'rmse' in metrics:
        print(f"RMSE per joint (rad): {metrics['rmse']}")
    if 'rmse_total' in metrics:
        print(f"Total RMSE: {metrics['rmse_total']:.6f}")

    if 'mae' in metrics:
        print(f"MAE per joint (rad): {metrics['mae']}")
    if 'max_abs_error' in metrics:
        print(f"Max |error| per joint (rad): {metrics['max_abs_error']}")
    if 'final_error' in metrics:
        print(f"Final |error| per joint (rad): {metrics['final_error']}")

    print("=" * 50)


def tracking_table(times, estimates, ground_truth, joint_names=None, continuous=None):
    """
    Tabulate estimates against ground truth.

    Parameters
    ----------
    times : np.ndarray
        Sample times (N,)
    estimates : np.ndarray
        Estimated joint angles (N, joint_count)
    ground_truth : np.ndarray
        True joint angles (N, joint_count)
    joint_names : list of str, optional
        Column prefixes, defaults to joint_1, joint_2, ...
    continuous : np.ndarray of bool, optional
        Joints whose errors wrap around

    Returns
    -------
    pd.DataFrame
        Columns ``time`` and, per joint, ``<name>_estimate``,
        ``<name>_truth`` and ``<name>_error``
    """
    estimates = np.atleast_2d(np.asarray(estimates, dtype=float).T).T
    ground_truth = np.atleast_2d(np.asarray(ground_truth, dtype=float).T).T
    if joint_names is None:
        joint_names = [f'joint_{i + 1}' for i in range(estimates.shape[1])]

    errors = _errors(estimates, ground_truth, continuous)
    columns = {'time': np.asarray(times, dtype=float)}
    for i, name in enumerate(joint_names):
        columns[f'{name}_estimate'] = estimates[:, i]
        columns[f'{name}_truth'] = ground_truth[:, i]
        columns[f'{name}_error'] = errors[:, i]

    return pd.DataFrame(columns)
