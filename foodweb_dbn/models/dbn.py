"""
Linear-Gaussian dynamic Bayesian network.

This module ties a template to a parameter store and provides ancestral
sampling of synthetic datasets, used for testing and for the demo.

Classes
-------
LinearGaussianDBN
    Generative temporal network with linear-Gaussian conditionals.

Author: Sean Plummer
Date: October 2026
"""

from typing import Optional, Tuple, Union

import torch

from ..data import Dataset
from .parameters import DTYPE, ParameterStore
from .template import TemplateGraph
from .unrolled import UnrolledGraph, unroll


class LinearGaussianDBN:
    """
    Temporal network with linear-Gaussian conditionals.

    Each node at time t is

        x_{t,i} = b_g + sum_k w_{g,k} z_k + e,    e ~ N(0, v_g)

    where z are its intra parents at time t and (for t >= 1) its inter
    parents at time t-1, and g is its parameter group.

    Parameters
    ----------
    template : TemplateGraph
        Two-slice structure.
    parameters : ParameterStore, optional
        Conditional parameters. If None, a store with zero weights and unit
        variances is created.

    Examples
    --------
    >>> dbn = LinearGaussianDBN(template, parameters)
    >>> data, X = dbn.generate_data(horizon=20, return_latents=True)
    >>> X.shape  # (20, N)
    """

    def __init__(
        self,
        template: TemplateGraph,
        parameters: Optional[ParameterStore] = None
    ):
        self.template = template
        self.parameters = parameters if parameters is not None else ParameterStore(template)
        self.N = template.n_nodes

    def unroll(self, horizon: int) -> UnrolledGraph:
        return unroll(self.template, horizon)

    def generate_data(
        self,
        horizon: int,
        generator: Optional[torch.Generator] = None,
        return_latents: bool = False,
        missing_rate: float = 0.0
    ) -> Union[Dataset, Tuple[Dataset, torch.Tensor]]:
        """
        Sample a trajectory and the dataset an observer would see.

        Parameters
        ----------
        horizon : int
            Number of time steps T.
        generator : torch.Generator, optional
            RNG handle; a fresh, randomly seeded one is used if None.
        return_latents : bool, default=False
            If True, also return the complete sampled values (T, N),
            including hidden nodes.
        missing_rate : float, default=0.0
            Probability that an observed-role cell is dropped.

        Returns
        -------
        data : Dataset
            Hidden columns are missing everywhere.
        X : torch.Tensor, optional
            Complete trajectory. Only returned if ``return_latents=True``.
        """
        graph = self.unroll(horizon)
        if generator is None:
            generator = torch.Generator()
            generator.seed()

        X = torch.zeros(graph.T, self.N, dtype=DTYPE)
        for t in range(graph.T):
            for position in self.template.topological_order:
                node = graph.node_at(t, position)
                group = self.parameters.group(node.group)
                parent_values = torch.stack(
                    [X[p // self.N, p % self.N] for p in node.parents]
                ) if node.parents else torch.zeros(0, dtype=DTYPE)
                mean = group.intercept + torch.dot(group.weights, parent_values)
                noise = torch.randn((), generator=generator, dtype=DTYPE)
                X[t, position] = mean + noise * group.variance ** 0.5

        mask = torch.zeros(graph.T, self.N, dtype=torch.bool)
        for node in self.template.observed_nodes():
            mask[:, node.index] = True
        if missing_rate > 0:
            drop = torch.rand(graph.T, self.N, generator=generator, dtype=DTYPE) < missing_rate
            mask &= ~drop

        data = Dataset(X, mask)
        if return_latents:
            return data, X
        return data
