"""
Utility functions for experiments.

Helpers for creating output directories, writing run summaries and printing
experiment headers.

Functions
---------
setup_experiment_dir
    Create a timestamped output directory with a marginals subdirectory.
save_summary
    Write a JSON summary of a fit.
save_restart_traces
    Write every restart's log-likelihood trace as one long CSV table.
print_experiment_header
    Print the experiment name, its settings and the template size.

Author: Sean Plummer
Date: October 2026
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict

import numpy as np
import pandas as pd
import torch


def setup_experiment_dir(
    experiment_name: str,
    base_dir: str = "results"
) -> Path:
    """
    Create a timestamped directory for one experiment.

    Parameters
    ----------
    experiment_name : str
        Name of the experiment.
    base_dir : str, default="results"
        Base directory for all results.

    Returns
    -------
    exp_dir : Path
        ``<base_dir>/<experiment_name>_<YYYYmmdd_HHMMSS>``, containing an
        empty ``marginals`` directory.
    """
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    exp_dir = Path(base_dir) / f"{experiment_name}_{stamp}"
    (exp_dir / "marginals").mkdir(parents=True, exist_ok=True)
    return exp_dir


def _to_builtin(obj: Any) -> Any:
    """Turn tensors, arrays and numpy scalars into plain Python values."""
    if isinstance(obj, dict):
        return {str(key): _to_builtin(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_to_builtin(item) for item in obj]
    if isinstance(obj, (torch.Tensor, np.ndarray)):
        return obj.tolist()
    if isinstance(obj, np.generic):
        return obj.item()
    if isinstance(obj, float) and not np.isfinite(obj):
        # JSON has no infinities
        return str(obj)
    if obj is None or isinstance(obj, (bool, int, float, str)):
        return obj
    return str(obj)


def save_summary(
    summary: Dict[str, Any],
    exp_dir: Path,
    filename: str = "summary.json"
) -> Path:
    """Write ``summary`` as indented JSON and return the file path."""
    path = Path(exp_dir) / filename
    with open(path, 'w') as f:
        json.dump(_to_builtin(summary), f, indent=2)
    print(f"Summary saved to: {path}")
    return path


def save_restart_traces(result, exp_dir: Path, filename: str = "traces.csv") -> Path:
    """
    Write the log-likelihood trace of every successful restart.

    Parameters
    ----------
    result : RestartResult
        Output of ``MultiRestartOptimizer.fit``.
    exp_dir : Path
        Target directory.

    Returns
    -------
    path : Path
        CSV with columns ``restart``, ``iteration``, ``log_likelihood``.
    """
    rows = [
        {'restart': run.restart, 'iteration': i, 'log_likelihood': value}
        for run in result.runs
        for i, value in enumerate(run.log_likelihoods)
    ]
    frame = pd.DataFrame(rows, columns=['restart', 'iteration', 'log_likelihood'])
    path = Path(exp_dir) / filename
    frame.to_csv(path, index=False)
    return path


def print_experiment_header(
    experiment_name: str,
    params: Dict[str, Any],
    template=None
) -> None:
    """
    Print the experiment banner.

    Parameters
    ----------
    experiment_name : str
        Name of the experiment.
    params : dict
        Settings to list under the banner.
    template : TemplateGraph, optional
        If given, its node and edge counts are printed too.
    """
    print("\n" + "="*70)
    print(f"EXPERIMENT: {experiment_name}")
    print("="*70)
    print("\nSettings:")
    for key, value in params.items():
        print(f"  {key:20s}: {value}")
    if template is not None:
        print(f"\nTemplate: {template.n_nodes} nodes "
              f"({len(template.observed)} observed, "
              f"{template.n_nodes - len(template.observed)} hidden), "
              f"{len(template.intra_edges)} intra / {len(template.inter_edges)} inter edges")
