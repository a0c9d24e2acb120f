"""
Unrolling of a two-slice template over a fixed time horizon.

Classes
-------
UnrolledNode
    One instantiated node (template position at a time step).
UnrolledGraph
    The full temporal DAG with T * N nodes.

Functions
---------
unroll
    Expand a TemplateGraph across T time slices.

Author: Sean Plummer
Date: October 2026
"""

from dataclasses import dataclass
from typing import Dict, List, Tuple

import networkx as nx

from ..errors import ConfigError
from .template import NodeRole, NodeRef, TemplateGraph


@dataclass(frozen=True)
class UnrolledNode:
    """
    A template node instantiated at one time step.

    Attributes
    ----------
    index : int
        ``time * N + position``.
    time : int
        0-based time slice.
    position : int
        Template node index.
    name : str
        Template name with the time step appended, e.g. ``"SSBCod[3]"``.
    parents : tuple of int
        Unrolled indices of the parents: intra parents from the same slice,
        then inter parents from the previous slice. The order matches the
        weight vector of the node's parameter group.
    group : int
        Parameter group id.
    role : NodeRole
    """
    index: int
    time: int
    position: int
    name: str
    parents: Tuple[int, ...]
    group: int
    role: NodeRole


class UnrolledGraph:
    """
    Temporal network obtained by repeating a template T times.

    Parameters
    ----------
    template : TemplateGraph
        The validated template.
    horizon : int
        Number of time slices (T >= 1).

    Attributes
    ----------
    nodes : list of UnrolledNode
        All T * N nodes, slice by slice.
    edges : list of (int, int)
        Parent -> child pairs between unrolled indices.

    Examples
    --------
    >>> graph = unroll(template, horizon=5)
    >>> graph.n_nodes == 5 * template.n_nodes
    True
    """

    def __init__(self, template: TemplateGraph, horizon: int):
        if isinstance(horizon, bool) or int(horizon) != horizon or horizon < 1:
            raise ConfigError(f"Horizon must be an integer >= 1, got {horizon!r}")

        self.template = template
        self.T = int(horizon)
        self.N = template.n_nodes

        self.nodes: List[UnrolledNode] = []
        self.edges: List[Tuple[int, int]] = []
        self._members: Dict[int, List[int]] = {g: [] for g in range(template.n_groups)}

        for t in range(self.T):
            first_slice = t == 0
            for tnode in template.nodes:
                index = t * self.N + tnode.index
                intra = tuple(t * self.N + p for p in tnode.intra_parents)
                inter = () if first_slice else tuple(
                    (t - 1) * self.N + p for p in tnode.inter_parents
                )
                group = tnode.first_group if first_slice else tnode.rest_group
                self.nodes.append(UnrolledNode(
                    index=index,
                    time=t,
                    position=tnode.index,
                    name=f"{tnode.name}[{t}]",
                    parents=intra + inter,
                    group=group,
                    role=tnode.role
                ))
                self.edges.extend((p, index) for p in intra + inter)
                self._members[group].append(index)

    @property
    def horizon(self) -> int:
        return self.T

    @property
    def n_nodes(self) -> int:
        return len(self.nodes)

    def node_at(self, t: int, position: NodeRef) -> UnrolledNode:
        """Unrolled node of a template position at time ``t``."""
        if not 0 <= t < self.T:
            raise IndexError(f"Time index {t} out of bounds [0, {self.T}).")
        return self.nodes[t * self.N + self.template.index_of(position)]

    def group_members(self, group_id: int) -> List[UnrolledNode]:
        """Unrolled nodes sharing a parameter group, in time order."""
        return [self.nodes[i] for i in self._members[group_id]]

    def to_networkx(self) -> nx.DiGraph:
        """Return the unrolled network as a networkx DiGraph keyed by index."""
        graph = nx.DiGraph()
        for node in self.nodes:
            graph.add_node(
                node.index,
                name=node.name,
                time=node.time,
                position=node.position,
                group=node.group,
                observed=node.role is NodeRole.OBSERVED
            )
        graph.add_edges_from(self.edges)
        return graph

    def __repr__(self) -> str:
        return (f"UnrolledGraph(T={self.T}, N={self.N}, "
                f"nodes={self.n_nodes}, edges={len(self.edges)})")


def unroll(template: TemplateGraph, horizon: int) -> UnrolledGraph:
    """
    Expand a template across ``horizon`` time slices.

    Raises
    ------
    ConfigError
        If ``horizon < 1``.
    """
    return UnrolledGraph(template, horizon)
