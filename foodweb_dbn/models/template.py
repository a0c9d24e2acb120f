"""
Two-slice template graph for linear-Gaussian temporal networks.

This module defines the repeated structure of the temporal network: the
dependencies within one time slice (intra edges), the dependencies from slice
t to slice t+1 (inter edges), and which nodes are observed or always hidden.

Classes
-------
NodeRole
    Observed or hidden role of a template node.
TemplateNode
    One node of the template with its parameter-group ids.
TemplateGraph
    Validated template structure.

Functions
---------
build_template
    Validate edge lists and construct a TemplateGraph.

Author: Sean Plummer
Date: October 2026
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import networkx as nx

from ..errors import StructureError


NodeRef = Union[int, str]
Edge = Tuple[NodeRef, NodeRef]


class NodeRole(Enum):
    """Role of a template node in every time slice."""
    OBSERVED = "observed"
    HIDDEN = "hidden"


@dataclass(frozen=True)
class TemplateNode:
    """
    A node of the two-slice template.

    Attributes
    ----------
    index : int
        Position of the node within a slice (0..N-1).
    name : str
        Human-readable name.
    role : NodeRole
        Observed or hidden.
    first_group : int
        Parameter group used by the node in the first slice.
    rest_group : int
        Parameter group shared by the node in all later slices.
    intra_parents : tuple of int
        Parents in the same slice, sorted.
    inter_parents : tuple of int
        Parents in the previous slice, sorted.
    """
    index: int
    name: str
    role: NodeRole
    first_group: int
    rest_group: int
    intra_parents: Tuple[int, ...]
    inter_parents: Tuple[int, ...]

    @property
    def observed(self) -> bool:
        return self.role is NodeRole.OBSERVED

    def parents(self, first_slice: bool) -> Tuple[int, ...]:
        """Template parents, intra first; first-slice nodes have no inter parents."""
        if first_slice:
            return self.intra_parents
        return self.intra_parents + self.inter_parents


@dataclass(frozen=True)
class TemplateGraph:
    """
    Validated two-slice template.

    Use :func:`build_template` rather than constructing this directly.

    Attributes
    ----------
    n_nodes : int
        Number of nodes per slice (N).
    nodes : tuple of TemplateNode
        Nodes in index order.
    intra_edges : tuple of (int, int)
        Parent -> child edges within a slice.
    inter_edges : tuple of (int, int)
        Parent in slice t -> child in slice t+1.
    topological_order : tuple of int
        An order of the slice nodes consistent with the intra edges.

    Notes
    -----
    Parameter groups are fixed at construction: node i uses group ``i`` in
    the first slice and group ``N + i`` in every later slice. First-slice
    nodes never share a group with later slices because they lack the inter
    parents, so their regression has a different arity.
    """
    n_nodes: int
    nodes: Tuple[TemplateNode, ...]
    intra_edges: Tuple[Tuple[int, int], ...]
    inter_edges: Tuple[Tuple[int, int], ...]
    topological_order: Tuple[int, ...]

    @property
    def n_groups(self) -> int:
        return 2 * self.n_nodes

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(node.name for node in self.nodes)

    @property
    def observed(self) -> frozenset:
        return frozenset(node.index for node in self.nodes if node.observed)

    def index_of(self, ref: NodeRef) -> int:
        """Resolve a node name or index to an index."""
        return _resolve(ref, self.n_nodes, {n.name: n.index for n in self.nodes})

    def node(self, ref: NodeRef) -> TemplateNode:
        return self.nodes[self.index_of(ref)]

    def hidden_nodes(self) -> List[TemplateNode]:
        return [node for node in self.nodes if not node.observed]

    def observed_nodes(self) -> List[TemplateNode]:
        return [node for node in self.nodes if node.observed]

    def group_position(self, group_id: int) -> Tuple[int, bool]:
        """
        Map a group id back to its template position.

        Returns
        -------
        position : int
            Template node index.
        first_slice : bool
            True if the group belongs to the first slice.
        """
        if not 0 <= group_id < self.n_groups:
            raise KeyError(f"Unknown parameter group {group_id}")
        return group_id % self.n_nodes, group_id < self.n_nodes

    def group_parents(self, group_id: int) -> Tuple[int, ...]:
        position, first_slice = self.group_position(group_id)
        return self.nodes[position].parents(first_slice)

    def group_arity(self, group_id: int) -> int:
        """Number of regression weights of a parameter group."""
        return len(self.group_parents(group_id))

    def describe(self) -> str:
        """One line per node listing its parents, for printing."""
        lines = []
        for node in self.nodes:
            intra = [self.nodes[p].name for p in node.intra_parents]
            inter = [self.nodes[p].name + "[t-1]" for p in node.inter_parents]
            parents = ", ".join(intra + inter) or "-"
            lines.append(f"  {node.name:>10s} ({node.role.value}) <- {parents}")
        return "\n".join(lines)


def _resolve(ref: NodeRef, n_nodes: int, lookup: dict) -> int:
    if isinstance(ref, str):
        if ref not in lookup:
            raise StructureError(f"Unknown node name '{ref}'")
        return lookup[ref]
    index = int(ref)
    if index != ref or not 0 <= index < n_nodes:
        raise StructureError(
            f"Node index {ref!r} out of range [0, {n_nodes})"
        )
    return index


def _resolve_edges(
    edges: Iterable[Edge],
    n_nodes: int,
    lookup: dict,
    kind: str
) -> Tuple[Tuple[int, int], ...]:
    resolved = []
    seen = set()
    for edge in edges:
        try:
            parent, child = edge
        except (TypeError, ValueError):
            raise StructureError(f"Malformed {kind} edge {edge!r}") from None
        try:
            pair = (_resolve(parent, n_nodes, lookup), _resolve(child, n_nodes, lookup))
        except StructureError as exc:
            raise StructureError(f"Invalid {kind} edge {edge!r}: {exc}") from None
        if pair not in seen:
            seen.add(pair)
            resolved.append(pair)
    return tuple(sorted(resolved))


def build_template(
    n_nodes: int,
    intra_edges: Iterable[Edge],
    inter_edges: Iterable[Edge],
    observed: Iterable[NodeRef],
    names: Optional[Sequence[str]] = None
) -> TemplateGraph:
    """
    Validate a two-slice structure and build a TemplateGraph.

    Parameters
    ----------
    n_nodes : int
        Number of nodes per slice.
    intra_edges : iterable of (parent, child)
        Edges within a slice; must form a DAG. Nodes may be given by index
        or, when ``names`` is given, by name.
    inter_edges : iterable of (parent, child)
        Edges from slice t to slice t+1. Self-persistence edges such as
        ``(i, i)`` are allowed.
    observed : iterable
        Nodes that are observed (possibly with missing cells). All other
        nodes are hidden at every time step.
    names : sequence of str, optional
        Node names. Defaults to ``X0, X1, ...``.

    Returns
    -------
    template : TemplateGraph

    Raises
    ------
    StructureError
        On out-of-range references, unknown names, self-loops or cycles in
        the intra edges, or duplicate/miscounted names.

    Examples
    --------
    >>> template = build_template(
    ...     3, intra_edges=[(0, 1), (0, 2)], inter_edges=[(0, 0)],
    ...     observed=[1, 2], names=["A", "B", "C"]
    ... )
    >>> template.node("A").rest_group
    3
    """
    if isinstance(n_nodes, bool) or int(n_nodes) != n_nodes or n_nodes < 1:
        raise StructureError(f"Number of nodes must be a positive integer, got {n_nodes!r}")
    n_nodes = int(n_nodes)

    if names is None:
        names = [f"X{i}" for i in range(n_nodes)]
    names = [str(name) for name in names]
    if len(names) != n_nodes:
        raise StructureError(f"Expected {n_nodes} node names, got {len(names)}")
    if len(set(names)) != n_nodes:
        raise StructureError("Node names must be unique")
    lookup = {name: i for i, name in enumerate(names)}

    intra = _resolve_edges(intra_edges, n_nodes, lookup, "intra")
    inter = _resolve_edges(inter_edges, n_nodes, lookup, "inter")

    self_loops = [names[p] for p, c in intra if p == c]
    if self_loops:
        raise StructureError(f"Intra-slice self-loop on node(s) {self_loops}")

    graph = nx.DiGraph()
    graph.add_nodes_from(range(n_nodes))
    graph.add_edges_from(intra)
    if not nx.is_directed_acyclic_graph(graph):
        cycle = nx.find_cycle(graph)
        path = " -> ".join(names[p] for p, _ in cycle) + f" -> {names[cycle[0][0]]}"
        raise StructureError(f"Intra-slice edges contain a cycle: {path}")
    order = tuple(nx.lexicographical_topological_sort(graph))

    try:
        observed_set = {_resolve(ref, n_nodes, lookup) for ref in observed}
    except StructureError as exc:
        raise StructureError(f"Invalid observed node: {exc}") from None

    nodes = []
    for i in range(n_nodes):
        nodes.append(TemplateNode(
            index=i,
            name=names[i],
            role=NodeRole.OBSERVED if i in observed_set else NodeRole.HIDDEN,
            first_group=i,
            rest_group=n_nodes + i,
            intra_parents=tuple(p for p, c in intra if c == i),
            inter_parents=tuple(p for p, c in inter if c == i)
        ))

    return TemplateGraph(
        n_nodes=n_nodes,
        nodes=tuple(nodes),
        intra_edges=intra,
        inter_edges=inter,
        topological_order=order
    )
