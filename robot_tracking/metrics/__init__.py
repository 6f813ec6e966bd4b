"""
Evaluation metrics for joint tracking.
"""

from .performance import (
    rmse,
    mae,
    max_abs_error,
    compute_all_metrics,
    print_metrics,
    tracking_table,
)

__all__ = [
    'rmse',
    'mae',
    'max_abs_error',
    'compute_all_metrics',
    'print_metrics',
    'tracking_table',
]
