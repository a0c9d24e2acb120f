"""
Food-web DBN: latent-state linear-Gaussian temporal networks

This package estimates dynamic Bayesian networks with continuous
linear-Gaussian conditionals, some nodes always hidden and others partially
observed, from short multivariate time series with missing values.

Modules
-------
models
    Template graph, unrolling, parameter store and generative network.
inference
    Exact forward-backward inference and posterior marginals.
learning
    EM parameter learning and multi-restart optimization.
utils
    Diagnostics and evaluation metrics.
data
    Datasets with explicitly missing cells, CSV loading, text export.
errors
    Exception types.

Quick Start
-----------
>>> from foodweb_dbn import (
...     build_template, unroll, Dataset,
...     MultiRestartOptimizer, extract_marginals
... )
>>>
>>> template = build_template(
...     3, intra_edges=[("A", "B"), ("A", "C")], inter_edges=[("A", "A")],
...     observed=["B", "C"], names=["A", "B", "C"]
... )
>>> data = Dataset.from_rows(rows, n_nodes=3)
>>> graph = unroll(template, horizon=data.n_time)
>>>
>>> # Fit with 20 random restarts
>>> result = MultiRestartOptimizer(graph, data, n_restarts=20).fit(seed=0)
>>>
>>> # Posterior of the hidden driver at every time step
>>> marginals = extract_marginals(graph, result.parameters, data, ["A"])

Author: Sean Plummer
Date: October 2026
"""

__version__ = '0.1.0'

# Make key classes available at package level
from .data import MISSING, Dataset, read_csv, write_column
from .errors import (
    DBNError,
    StructureError,
    ConfigError,
    DataShapeError,
    SingularityError,
    NoViableRunError
)
from .models import (
    NodeRole,
    TemplateGraph,
    build_template,
    UnrolledGraph,
    unroll,
    ParameterStore,
    LinearGaussianDBN
)
from .inference import ExactInferenceEngine, extract_marginals, export_marginals
from .learning import EMTrainer, MultiRestartOptimizer

__all__ = [
    'MISSING',
    'Dataset',
    'read_csv',
    'write_column',
    'DBNError',
    'StructureError',
    'ConfigError',
    'DataShapeError',
    'SingularityError',
    'NoViableRunError',
    'NodeRole',
    'TemplateGraph',
    'build_template',
    'UnrolledGraph',
    'unroll',
    'ParameterStore',
    'LinearGaussianDBN',
    'ExactInferenceEngine',
    'extract_marginals',
    'export_marginals',
    'EMTrainer',
    'MultiRestartOptimizer'
]
