"""
Exact inference for linear-Gaussian temporal networks.

Classes
-------
ExactInferenceEngine
    Forward filter / backward smoother over an unrolled network.
Posterior
    Smoothed moments of every slice and the data log-likelihood.
SufficientStatistics
    Expected regression statistics of one parameter group.
MarginalExtractor
    Per-time-step posterior marginals of chosen nodes.

Quick Import
------------
>>> from foodweb_dbn.inference import ExactInferenceEngine, extract_marginals

Examples
--------
>>> engine = ExactInferenceEngine(graph)
>>> posterior = engine.infer(params, data)
>>> posterior.variances.shape  # (T, N)

Author: Sean Plummer
Date: October 2026
"""

from .smoother import (
    ExactInferenceEngine,
    Posterior,
    SufficientStatistics,
    collect_statistics,
    family_statistics
)
from .marginals import MarginalExtractor, extract_marginals, export_marginals

__all__ = [
    'ExactInferenceEngine',
    'Posterior',
    'SufficientStatistics',
    'collect_statistics',
    'family_statistics',
    'MarginalExtractor',
    'extract_marginals',
    'export_marginals'
]
