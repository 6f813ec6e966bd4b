"""
Plots of joint tracking results and of the range sensor model.
"""

import numpy as np
import matplotlib.pyplot as plt


def plot_joint_tracks(time, estimates, ground_truth=None, visual=None, joint_names=None,
                      title="Joint Tracking", figsize=(12, 8), save_path=None, show=True):
    """
    Plot estimated joint angles over time, one subplot per joint.

    Parameters
    ----------
    time : np.ndarray
        Time vector (N,)
    estimates : np.ndarray
        Fused joint estimates (N, joint_count)
    ground_truth : np.ndarray, optional
        True joint angles (N, joint_count)
    visual : tuple of (np.ndarray, np.ndarray), optional
        Times (M,) and visual tracker estimates (M, joint_count), drawn as markers
    joint_names : list of str, optional
        Subplot labels
    title : str, optional
        Main title for figure
    figsize : tuple, optional
        Figure size
    save_path : str, optional
        Path to save figure
    show : bool, optional
        Whether to display the plot

    Returns
    -------
    fig, axes
        Matplotlib figure and axes array (joint_count, 2)
    """
    estimates = np.asarray(estimates)
    n_joints = estimates.shape[1]
    if joint_names is None:
        joint_names = [f'Joint {i + 1}' for i in range(n_joints)]

    # Left column: angles, right column: errors
    fig, axes = plt.subplots(n_joints, 2, figsize=figsize, squeeze=False)

    for i in range(n_joints):
        ax = axes[i, 0]
        ax.plot(time, estimates[:, i], 'b-', linewidth=2, label='Fused', alpha=0.8)
        if visual is not None:
            visual_time, visual_states = visual
            ax.plot(visual_time, np.asarray(visual_states)[:, i], 'g.', markersize=4,
                    label='Visual', alpha=0.7)
        if ground_truth is not None:
            ax.plot(time, ground_truth[:, i], 'k--', linewidth=1.5,
                    label='Ground Truth', alpha=0.6)
        ax.set_xlabel('Time (s)', fontsize=10)
        ax.set_ylabel(f'{joint_names[i]} (rad)', fontsize=10)
        ax.grid(True, alpha=0.3)
        ax.legend(fontsize=8)

        ax = axes[i, 1]
        if ground_truth is not None:
            ax.plot(time, estimates[:, i] - ground_truth[:, i], 'r-', linewidth=1.5)
            ax.axhline(0.0, color='k', linewidth=0.8, alpha=0.5)
        ax.set_xlabel('Time (s)', fontsize=10)
        ax.set_ylabel('Error (rad)', fontsize=10)
        ax.grid(True, alpha=0.3)

    fig.suptitle(title, fontsize=14)
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=300, bbox_inches='tight')

    if show:
        plt.show()

    return fig, axes


def plot_sensor_model(model, predicted_range, max_range=None, samples=2000,
                      title="Range Sensor Model", figsize=(10, 6), save_path=None, show=True):
    """
    Plot visible and occluded densities over observed range for one prediction.

    Parameters
    ----------
    model : RangeLikelihoodModel
        Sensor model to profile
    predicted_range : float
        Rendered range (may be ``np.inf``)
    max_range : float, optional
        Right end of the plotted range (default: model's max_range)
    samples : int, optional
        Number of evaluation points

    Returns
    -------
    fig, ax
        Matplotlib figure and axes
    """
    if max_range is None:
        max_range = model.parameters.max_range
    observed = np.linspace(0.0, max_range, samples)

    fig, ax = plt.subplots(figsize=figsize)
    ax.plot(observed, model.probability(predicted_range, observed, False),
            'b-', linewidth=2, label='Visible')
    ax.plot(observed, model.probability(predicted_range, observed, True),
            'r-', linewidth=2, label='Occluded')
    ax.axhline(model.tail_density, color='k', linestyle=':', label='Tail')
    if np.isfinite(predicted_range):
        ax.axvline(predicted_range, color='gray', linestyle='--', alpha=0.6, label='Prediction')

    ax.set_yscale('log')
    ax.set_xlabel('Observed range (m)', fontsize=12)
    ax.set_ylabel('Density', fontsize=12)
    ax.set_title(title, fontsize=14)
    ax.legend(fontsize=10)
    ax.grid(True, alpha=0.3)

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=300, bbox_inches='tight')

    if show:
        plt.show()

    return fig, ax
