"""
Diagnostic utilities for EM training runs.

Functions
---------
check_monotonic
    Find iterations where the log-likelihood decreased.
track_convergence
    Check whether a trace has flattened out over a window.
log_likelihood_gap
    Spread between the best and worst restarts.
print_run_summary
    Print formatted summary of one training run.
print_restart_summary
    Print formatted summary of a multi-restart fit.

Author: Sean Plummer
Date: October 2026
"""

from typing import List, Optional, Sequence

import torch
import numpy as np

from ..learning.em import TrainingRun
from ..learning.restarts import RestartResult
from .metrics import mean_squared_error, pearson_correlation


def check_monotonic(
    trace: Sequence[float],
    epsilon: float = 1e-6
) -> List[int]:
    """
    Indices ``i`` where ``trace[i + 1] < trace[i] - epsilon``.

    An EM trace should return an empty list.
    """
    return [
        i for i in range(len(trace) - 1)
        if trace[i + 1] < trace[i] - epsilon
    ]


def track_convergence(
    trace: Sequence[float],
    window_size: int = 10,
    tolerance: float = 1e-4
) -> bool:
    """
    Check whether a trace has flattened out.

    Returns True if every relative change over the last ``window_size``
    iterations is below ``tolerance``.
    """
    if len(trace) < window_size + 1:
        return False

    recent = trace[-(window_size + 1):]
    rel_changes = [
        abs(recent[i] - recent[i - 1]) / abs(recent[i - 1])
        for i in range(1, len(recent))
        if abs(recent[i - 1]) > 1e-8
    ]
    if not rel_changes:
        return False
    return max(rel_changes) < tolerance


def log_likelihood_gap(result: RestartResult) -> float:
    """Difference between the best and the worst final log-likelihood."""
    finals = result.final_log_likelihoods
    if not finals:
        return 0.0
    return max(finals) - min(finals)


def print_run_summary(
    name: str,
    run: TrainingRun,
    X_true: Optional[torch.Tensor] = None,
    X_est: Optional[torch.Tensor] = None
) -> None:
    """
    Print formatted diagnostic summary for one training run.

    Parameters
    ----------
    name : str
        Label of the run.
    run : TrainingRun
    X_true : torch.Tensor, optional
        True values of the nodes of interest, shape (T, k).
    X_est : torch.Tensor, optional
        Posterior means of the same nodes.
    """
    trace = run.log_likelihoods
    print("\n" + "=" * 70)
    print(f"Diagnostic Summary: {name}")
    print("=" * 70)

    print(f"Number of iterations: {len(trace)}")
    print(f"Converged: {run.converged}")
    if trace:
        print(f"Initial log-lik: {trace[0]:12.4f}")
        print(f"Final log-lik:   {trace[-1]:12.4f}")
        decreases = check_monotonic(trace)
        if decreases:
            print(f"WARNING: log-likelihood decreased at iterations {decreases}")

    if X_true is not None and X_est is not None:
        X_true = torch.as_tensor(X_true, dtype=torch.float64)
        X_est = torch.as_tensor(X_est, dtype=torch.float64)
        print(f"\nState MSE: {mean_squared_error(X_true, X_est):.6f}")
        if X_true.ndim == 2:
            for k in range(X_true.shape[1]):
                corr = pearson_correlation(X_true[:, k], X_est[:, k])
                print(f"  column {k}: |corr| = {abs(corr):.3f}")

    print("=" * 70)


def print_restart_summary(result: RestartResult, top: int = 5) -> None:
    """Print the best restarts and the failure count of a multi-restart fit."""
    print("\n" + "=" * 70)
    print("Restart Summary")
    print("=" * 70)
    print(f"Seed: {result.seed}")
    print(f"Successful restarts: {len(result.runs)}")
    print(f"Failed restarts:     {len(result.failures)}")

    ranked = sorted(result.runs, key=lambda run: -run.final_log_likelihood)
    print(f"\nTop {min(top, len(ranked))} restarts:")
    for rank, run in enumerate(ranked[:top], 1):
        status = "converged" if run.converged else "max iter"
        print(f"  {rank}. restart {run.restart:4d}: {run.final_log_likelihood:12.4f} "
              f"({run.n_iter} iters, {status})")

    if result.runs:
        finals = np.array(result.final_log_likelihoods)
        print(f"\nFinal log-lik spread: {log_likelihood_gap(result):.4f} "
              f"(median {np.median(finals):.4f})")
    print("=" * 70)
