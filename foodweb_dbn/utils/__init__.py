"""
Utility functions for temporal network models.

This package provides diagnostics for training runs and metrics for
evaluating posterior estimates.

Modules
-------
diagnostics
    Convergence checks and printed summaries of runs and restarts.
metrics
    Error, correlation and coverage metrics.

Quick Import
------------
>>> from foodweb_dbn.utils import (
...     check_monotonic,
...     print_run_summary,
...     pearson_correlation
... )

Author: Sean Plummer
Date: October 2026
"""

# Diagnostics
from .diagnostics import (
    check_monotonic,
    track_convergence,
    log_likelihood_gap,
    print_run_summary,
    print_restart_summary
)

# Metrics
from .metrics import (
    mean_squared_error,
    root_mean_squared_error,
    pearson_correlation,
    compute_coverage,
    relative_error
)

__all__ = [
    # Diagnostics
    'check_monotonic',
    'track_convergence',
    'log_likelihood_gap',
    'print_run_summary',
    'print_restart_summary',
    # Metrics
    'mean_squared_error',
    'root_mean_squared_error',
    'pearson_correlation',
    'compute_coverage',
    'relative_error'
]
