"""
Parameter store for linear-Gaussian conditional distributions.

Every unrolled node x with parents z_1..z_k has the conditional

    x | z ~ N(w' z + b, v)

and all nodes of the same parameter group share (w, b, v).

Classes
-------
ParameterGroup
    Regression weights, intercept and noise variance of one group.
ParameterStore
    One ParameterGroup per group id of a template.

Author: Sean Plummer
Date: October 2026
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple, Union

import torch

from .template import TemplateGraph


DTYPE = torch.float64


@dataclass(frozen=True, eq=False)
class ParameterGroup:
    """
    Parameters shared by all unrolled nodes of one group.

    Attributes
    ----------
    group_id : int
    weights : torch.Tensor
        One weight per parent, in the parent order of the group's nodes.
    intercept : float
    variance : float
        Noise variance, strictly positive.
    """
    group_id: int
    weights: torch.Tensor
    intercept: float
    variance: float

    def as_dict(self) -> dict:
        return {
            'group_id': self.group_id,
            'weights': self.weights.tolist(),
            'intercept': float(self.intercept),
            'variance': float(self.variance)
        }


class ParameterStore:
    """
    Linear-Gaussian parameters for every group of a template.

    Parameters
    ----------
    template : TemplateGraph
        Template that fixes the number of groups and their arities.
    default_variance : float, default=1.0
        Noise variance given to every group by :meth:`initialize`.

    Examples
    --------
    >>> store = ParameterStore(template)
    >>> store.initialize(torch.Generator().manual_seed(0))
    >>> B, A, c, v = store.slice_system(first_slice=False)
    """

    def __init__(self, template: TemplateGraph, default_variance: float = 1.0):
        if not default_variance > 0:
            raise ValueError(f"Default variance must be positive, got {default_variance}")
        self.template = template
        self.default_variance = float(default_variance)
        self._groups: Dict[int, ParameterGroup] = {
            g: ParameterGroup(
                group_id=g,
                weights=torch.zeros(template.group_arity(g), dtype=DTYPE),
                intercept=0.0,
                variance=self.default_variance
            )
            for g in range(template.n_groups)
        }

    def initialize(
        self,
        generator: Union[torch.Generator, int, None] = None
    ) -> "ParameterStore":
        """
        Draw fresh random parameters.

        Every weight and intercept is drawn independently from N(0, 1) and
        every variance is set to ``default_variance``.

        Parameters
        ----------
        generator : torch.Generator or int, optional
            RNG handle, or a seed used to create one.

        Returns
        -------
        self : ParameterStore
        """
        if generator is None or isinstance(generator, int):
            seed = generator
            generator = torch.Generator()
            if seed is None:
                generator.seed()
            else:
                generator.manual_seed(seed)

        for g in range(self.template.n_groups):
            k = self.template.group_arity(g)
            draws = torch.randn(k + 1, generator=generator, dtype=DTYPE)
            self._groups[g] = ParameterGroup(
                group_id=g,
                weights=draws[:k].clone(),
                intercept=float(draws[k]),
                variance=self.default_variance
            )
        return self

    def update(
        self,
        group_id: int,
        weights: Union[torch.Tensor, Iterable[float]],
        intercept: float,
        variance: float
    ) -> None:
        """
        Replace the parameters of one group.

        Raises
        ------
        KeyError
            If the group id is unknown.
        ValueError
            If the weight vector has the wrong length or the variance is not
            strictly positive.
        """
        if group_id not in self._groups:
            raise KeyError(f"Unknown parameter group {group_id}")
        weights = torch.as_tensor(weights, dtype=DTYPE).reshape(-1).clone()
        arity = self.template.group_arity(group_id)
        if weights.numel() != arity:
            raise ValueError(
                f"Group {group_id} expects {arity} weights, got {weights.numel()}"
            )
        variance = float(variance)
        if not variance > 0:
            raise ValueError(f"Variance of group {group_id} must be positive, got {variance}")
        self._groups[group_id] = ParameterGroup(
            group_id=group_id,
            weights=weights,
            intercept=float(intercept),
            variance=variance
        )

    def group(self, group_id: int) -> ParameterGroup:
        return self._groups[group_id]

    def groups(self) -> List[ParameterGroup]:
        return [self._groups[g] for g in sorted(self._groups)]

    def copy(self) -> "ParameterStore":
        """Snapshot; groups are immutable so they can be shared."""
        other = ParameterStore.__new__(ParameterStore)
        other.template = self.template
        other.default_variance = self.default_variance
        other._groups = dict(self._groups)
        return other

    @classmethod
    def from_groups(
        cls,
        template: TemplateGraph,
        groups: Dict[int, Tuple[Iterable[float], float, float]],
        default_variance: float = 1.0
    ) -> "ParameterStore":
        """
        Build a store from explicit ``{group_id: (weights, intercept, variance)}``.

        Groups not listed keep zero weights and ``default_variance``.
        """
        store = cls(template, default_variance=default_variance)
        for group_id, (weights, intercept, variance) in groups.items():
            store.update(group_id, weights, intercept, variance)
        return store

    def as_dict(self) -> Dict[str, dict]:
        """Plain-Python view keyed by ``"<name>@first"`` / ``"<name>@rest"``."""
        out = {}
        for group in self.groups():
            position, first_slice = self.template.group_position(group.group_id)
            key = f"{self.template.nodes[position].name}@{'first' if first_slice else 'rest'}"
            out[key] = group.as_dict()
        return out

    def slice_system(
        self,
        first_slice: bool
    ) -> Tuple[torch.Tensor, torch.Tensor, torch.Tensor, torch.Tensor]:
        """
        Collect the parameters of one slice as a linear system.

        For slice t the conditionals read, in vector form,

            x_t = B x_t + A x_{t-1} + c + e,    e ~ N(0, diag(v))

        Parameters
        ----------
        first_slice : bool
            Use the first-slice groups (``A`` is then all zeros).

        Returns
        -------
        B : torch.Tensor
            Intra-slice weights (N, N); ``B[i, p]`` is the weight of parent p.
        A : torch.Tensor
            Inter-slice weights (N, N).
        c : torch.Tensor
            Intercepts (N,).
        v : torch.Tensor
            Noise variances (N,).
        """
        N = self.template.n_nodes
        B = torch.zeros(N, N, dtype=DTYPE)
        A = torch.zeros(N, N, dtype=DTYPE)
        c = torch.zeros(N, dtype=DTYPE)
        v = torch.zeros(N, dtype=DTYPE)

        for node in self.template.nodes:
            group = self._groups[node.first_group if first_slice else node.rest_group]
            n_intra = len(node.intra_parents)
            for k, p in enumerate(node.intra_parents):
                B[node.index, p] = group.weights[k]
            if not first_slice:
                for k, p in enumerate(node.inter_parents):
                    A[node.index, p] = group.weights[n_intra + k]
            c[node.index] = group.intercept
            v[node.index] = group.variance

        return B, A, c, v
