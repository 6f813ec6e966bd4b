"""
Range Sensor Model Profile

Plots the visible and occluded densities of the depth sensor model for a
few predicted ranges, including a pixel where the model has no surface.
"""

from pathlib import Path

import numpy as np
from scipy.integrate import trapezoid

from robot_tracking.models import RangeLikelihoodModel
from robot_tracking.visualization import plot_sensor_model

RESULTS_PATH = Path(__file__).parent.parent / 'results' / 'sensor_model'
PREDICTED_RANGES = [1.0, 2.5, np.inf]


def run_profile():
    print("\n" + "="*60)
    print("Range Sensor Model Profile")
    print("="*60 + "\n")

    model = RangeLikelihoodModel()
    params = model.parameters
    print(f"tail_weight={params.tail_weight}, model_sigma={params.model_sigma}, "
          f"sigma_factor={params.sigma_factor}, half_life={params.occlusion_half_life}, "
          f"max_range={params.max_range}")

    r = np.linspace(0.0, params.max_range, 120001)
    RESULTS_PATH.mkdir(parents=True, exist_ok=True)

    for predicted in PREDICTED_RANGES:
        visible = trapezoid(model.probability(predicted, r, False), r)
        occluded = trapezoid(model.probability(predicted, r, True), r)
        print(f"Prediction {predicted:>5}: mass visible={visible:.4f}, occluded={occluded:.4f}")

        name = 'inf' if np.isinf(predicted) else f'{predicted:.1f}'
        fig_path = RESULTS_PATH / f'sensor_model_{name}.png'
        plot_sensor_model(model, predicted, title=f"Sensor Model (prediction {name} m)",
                          save_path=fig_path, show=False)
        print(f"  Saved: {fig_path}")

    print("\n" + "="*60)


if __name__ == "__main__":
    run_profile()
