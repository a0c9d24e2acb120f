"""
Posterior marginals of selected nodes after training.

Classes
-------
MarginalExtractor
    Per-time-step (mean, variance) of chosen template nodes.

Functions
---------
extract_marginals
    One inference pass, returning marginal sequences per node.
export_marginals
    Write mean and variance sequences to text files.

Author: Sean Plummer
Date: October 2026
"""

from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

import numpy as np

from ..data import Dataset, write_column
from ..models.parameters import ParameterStore
from ..models.template import NodeRef
from ..models.unrolled import UnrolledGraph
from .smoother import ExactInferenceEngine


Marginals = Dict[str, List[Tuple[float, float]]]


class MarginalExtractor:
    """
    Extract posterior marginals of template nodes at every time step.

    Parameters
    ----------
    graph : UnrolledGraph
        Unrolled network the parameters were trained on.

    Notes
    -----
    Each call runs one fresh inference pass; nothing is cached between
    calls.
    """

    def __init__(self, graph: UnrolledGraph):
        self.graph = graph
        self.engine = ExactInferenceEngine(graph)

    def extract(
        self,
        parameters: ParameterStore,
        dataset: Dataset,
        nodes: Iterable[NodeRef]
    ) -> Marginals:
        """
        Posterior (mean, variance) of each requested node at every time.

        Parameters
        ----------
        parameters : ParameterStore
            Trained parameters.
        dataset : Dataset
            The data the parameters were trained on.
        nodes : iterable of int or str
            Template positions or names.

        Returns
        -------
        marginals : dict
            Node name -> list of T ``(mean, variance)`` pairs in time order.
            Present observed cells have variance exactly 0.
        """
        template = self.graph.template
        positions = [template.index_of(node) for node in nodes]
        posterior = self.engine.infer(parameters, dataset)
        means = posterior.means
        variances = posterior.variances

        marginals: Marginals = {}
        for position in positions:
            name = template.nodes[position].name
            marginals[name] = [
                (float(means[t, position]), float(variances[t, position]))
                for t in range(self.graph.T)
            ]
        return marginals

    def to_columns(
        self,
        parameters: ParameterStore,
        dataset: Dataset,
        nodes: Iterable[NodeRef]
    ) -> Dict[str, Tuple[np.ndarray, np.ndarray]]:
        """Like :meth:`extract`, as ``name -> (means, variances)`` arrays."""
        return {
            name: (np.array([m for m, _ in pairs]), np.array([v for _, v in pairs]))
            for name, pairs in self.extract(parameters, dataset, nodes).items()
        }


def extract_marginals(
    graph: UnrolledGraph,
    parameters: ParameterStore,
    dataset: Dataset,
    nodes: Iterable[NodeRef]
) -> Marginals:
    """Functional form of :meth:`MarginalExtractor.extract`."""
    return MarginalExtractor(graph).extract(parameters, dataset, nodes)


def export_marginals(
    marginals: Marginals,
    out_dir: Union[str, Path],
    stems: Optional[Mapping[str, str]] = None,
    suffix: str = ""
) -> List[Path]:
    """
    Write each node's means and variances as one-value-per-line text files.

    Files are named ``<stem>Mu<suffix>.txt`` and ``<stem>Sig<suffix>.txt``;
    the ``Sig`` file holds variances.

    Parameters
    ----------
    marginals : dict
        Output of :func:`extract_marginals`.
    out_dir : str or Path
        Target directory, created if needed.
    stems : mapping, optional
        Node name -> file stem. Defaults to the node name.
    suffix : str, default=""
        Appended to every file stem, e.g. ``"_allHVsModel"``.

    Returns
    -------
    paths : list of Path
    """
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    stems = dict(stems or {})

    paths = []
    for name, pairs in marginals.items():
        stem = stems.get(name, name)
        means = [m for m, _ in pairs]
        variances = [v for _, v in pairs]
        paths.append(write_column(out_dir / f"{stem}Mu{suffix}.txt", means))
        paths.append(write_column(out_dir / f"{stem}Sig{suffix}.txt", variances))
    return paths
