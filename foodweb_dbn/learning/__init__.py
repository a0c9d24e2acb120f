"""
Parameter learning by Expectation-Maximization with random restarts.

Classes
-------
EMTrainer
    EM from a single initialization.
TrainingRun
    Parameters and log-likelihood trace of one run.
MultiRestartOptimizer
    K independent restarts, best run kept.
BestRunReducer
    Thread-safe best-run fold.

Quick Import
------------
>>> from foodweb_dbn.learning import EMTrainer, MultiRestartOptimizer

Examples
--------
>>> optimizer = MultiRestartOptimizer(graph, data, n_restarts=100)
>>> result = optimizer.fit(seed=42)
>>> result.best.log_likelihoods[-1]

Author: Sean Plummer
Date: October 2026
"""

from .em import EMTrainer, TrainerState, TrainingRun, em_converged, m_step
from .restarts import (
    BestRunReducer,
    MultiRestartOptimizer,
    RestartResult,
    select_best,
    spawn_generators,
    wall_clock_seed
)

__all__ = [
    'EMTrainer',
    'TrainerState',
    'TrainingRun',
    'em_converged',
    'm_step',
    'BestRunReducer',
    'MultiRestartOptimizer',
    'RestartResult',
    'select_best',
    'spawn_generators',
    'wall_clock_seed'
]
