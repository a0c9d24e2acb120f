"""
Temporal network models.

This package defines the two-slice template, its unrolling over a time
horizon, the linear-Gaussian parameter store and the generative network.

Classes
-------
TemplateGraph
    Validated intra/inter slice structure with observed and hidden nodes.
UnrolledGraph
    Template repeated over T time slices.
ParameterStore
    Tied linear-Gaussian parameters, one set per parameter group.
LinearGaussianDBN
    Generative model used for sampling synthetic data.

Quick Import
------------
>>> from foodweb_dbn.models import build_template, unroll, ParameterStore

Examples
--------
>>> template = build_template(
...     3, intra_edges=[("A", "B"), ("A", "C")], inter_edges=[("A", "A")],
...     observed=["B", "C"], names=["A", "B", "C"]
... )
>>> graph = unroll(template, horizon=10)
>>> params = ParameterStore(template).initialize(0)

Author: Sean Plummer
Date: October 2026
"""

from .template import NodeRole, TemplateNode, TemplateGraph, build_template
from .unrolled import UnrolledNode, UnrolledGraph, unroll
from .parameters import ParameterGroup, ParameterStore
from .dbn import LinearGaussianDBN
from .presets import foodweb_all_hidden, foodweb_fish_hidden, get_preset

__all__ = [
    'NodeRole',
    'TemplateNode',
    'TemplateGraph',
    'build_template',
    'UnrolledNode',
    'UnrolledGraph',
    'unroll',
    'ParameterGroup',
    'ParameterStore',
    'LinearGaussianDBN',
    'foodweb_all_hidden',
    'foodweb_fish_hidden',
    'get_preset'
]
