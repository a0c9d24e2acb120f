"""
Exact inference for linear-Gaussian temporal networks.

Every conditional is linear-Gaussian on an acyclic structure, so the joint
distribution of all T * N variables is multivariate normal. Each slice only
depends on itself and the previous slice, which turns the network into a
linear state-space model over the slice vector x_t:

    (I - B) x_t = c + A x_{t-1} + e_t,       e_t ~ N(0, diag(v))
    x_t = F x_{t-1} + d + L e_t,             L = (I - B)^{-1}

with F = L A and d = L c. Because B follows a DAG it is nilpotent, so
I - B is always invertible. Observed cells are noise-free evidence on single
components of x_t.

Inference runs a forward filter (predict, then condition exactly on the
present observed cells) and a Rauch-Tung-Striebel backward pass, which gives
the smoothed mean and covariance of every slice and the lag-one
cross-covariances needed by the M-step. Time is O(T N^3) and memory
O(T N^2); the TN x TN joint covariance is never formed.

Classes
-------
Posterior
    Smoothed moments of every slice plus the data log-likelihood.
SufficientStatistics
    Expected regression statistics aggregated over one parameter group.
ExactInferenceEngine
    Forward filter / backward smoother over an UnrolledGraph.

Functions
---------
collect_statistics
    Aggregate expected sufficient statistics per parameter group.

Author: Sean Plummer
Date: October 2026
"""

import math
from dataclasses import dataclass
from typing import Dict, List, Tuple

import torch

from ..data import Dataset
from ..errors import DataShapeError, SingularityError
from ..models.parameters import DTYPE, ParameterStore
from ..models.unrolled import UnrolledGraph, UnrolledNode


LOG_2PI = math.log(2 * math.pi)


@dataclass
class Posterior:
    """
    Posterior moments of an unrolled network given a dataset.

    Attributes
    ----------
    means : torch.Tensor
        Smoothed means, shape (T, N).
    covariances : torch.Tensor
        Smoothed within-slice covariances, shape (T, N, N).
    cross_covariances : torch.Tensor
        ``cross_covariances[t] = Cov(x_t, x_{t-1} | data)``, shape (T, N, N);
        entry 0 is all zeros.
    log_likelihood : float
        Log density of the observed cells under the current parameters.
    evidence : torch.Tensor
        Boolean (T, N) mask of the cells used as evidence.

    Notes
    -----
    Evidence cells have their observed value as mean and exactly zero
    variance and covariance.
    """
    means: torch.Tensor
    covariances: torch.Tensor
    cross_covariances: torch.Tensor
    log_likelihood: float
    evidence: torch.Tensor

    @property
    def T(self) -> int:
        return self.means.shape[0]

    @property
    def N(self) -> int:
        return self.means.shape[1]

    @property
    def variances(self) -> torch.Tensor:
        """Marginal variances, shape (T, N), clipped at zero."""
        return torch.diagonal(self.covariances, dim1=-2, dim2=-1).clamp_min(0.0)

    def marginal(self, t: int, position: int) -> Tuple[float, float]:
        """Posterior (mean, variance) of one template position at time t."""
        return float(self.means[t, position]), float(self.variances[t, position])

    def _pair_covariance(self, a: int, b: int) -> torch.Tensor:
        ta, ia = divmod(a, self.N)
        tb, ib = divmod(b, self.N)
        if ta == tb:
            return self.covariances[ta, ia, ib]
        if ta == tb + 1:
            return self.cross_covariances[ta, ia, ib]
        if tb == ta + 1:
            return self.cross_covariances[tb, ib, ia]
        raise ValueError(f"Nodes {a} and {b} are more than one slice apart")

    def family_moments(self, node: UnrolledNode) -> Tuple[torch.Tensor, torch.Tensor]:
        """
        Posterior moments of ``[parents..., child]`` for one unrolled node.

        Returns
        -------
        mean : torch.Tensor
            Posterior mean vector, shape (k + 1,).
        second_moment : torch.Tensor
            ``E[u u']`` for ``u = [parents..., child]``, shape (k + 1, k + 1).
        """
        family = list(node.parents) + [node.index]
        mean = torch.stack([self.means[i // self.N, i % self.N] for i in family])
        cov = torch.stack([
            torch.stack([self._pair_covariance(a, b) for b in family])
            for a in family
        ])
        return mean, cov + torch.outer(mean, mean)


@dataclass
class SufficientStatistics:
    """
    Expected regression statistics of one parameter group.

    With ``z = [parents..., 1]`` and child ``x``, summed over every unrolled
    node of the group:

    Attributes
    ----------
    zz : torch.Tensor
        ``sum E[z z']``, shape (k + 1, k + 1).
    zx : torch.Tensor
        ``sum E[z x]``, shape (k + 1,).
    xx : float
        ``sum E[x^2]``.
    count : int
        Number of unrolled nodes aggregated.
    """
    zz: torch.Tensor
    zx: torch.Tensor
    xx: float
    count: int


def _symmetrize(M: torch.Tensor) -> torch.Tensor:
    return 0.5 * (M + M.transpose(-1, -2))


class ExactInferenceEngine:
    """
    Exact posterior inference by forward filtering and backward smoothing.

    Parameters
    ----------
    graph : UnrolledGraph
        Unrolled network to run inference on.

    Examples
    --------
    >>> engine = ExactInferenceEngine(unroll(template, horizon=data.n_time))
    >>> posterior = engine.infer(parameters, data)
    >>> mean, var = posterior.marginal(t=3, position=0)
    """

    def __init__(self, graph: UnrolledGraph):
        self.graph = graph
        self.template = graph.template
        self.T = graph.T
        self.N = graph.N

    def check_dataset(self, dataset: Dataset) -> None:
        """Raise DataShapeError unless the dataset is T x N."""
        if dataset.n_nodes != self.N:
            raise DataShapeError(
                f"Dataset has {dataset.n_nodes} columns, network has {self.N} nodes per slice"
            )
        if dataset.n_time != self.T:
            raise DataShapeError(
                f"Dataset has {dataset.n_time} rows, network horizon is {self.T}"
            )

    @staticmethod
    def transition(
        parameters: ParameterStore,
        first_slice: bool
    ) -> Tuple[torch.Tensor, torch.Tensor, torch.Tensor]:
        """
        Reduce one slice's conditionals to ``x_t ~ N(F x_{t-1} + d, Q)``.

        Returns
        -------
        F, d, Q : torch.Tensor
            Transition matrix (zero for the first slice), offset and noise
            covariance of the slice vector.
        """
        B, A, c, v = parameters.slice_system(first_slice)
        N = B.shape[0]
        L = torch.linalg.solve(torch.eye(N, dtype=DTYPE) - B, torch.eye(N, dtype=DTYPE))
        F = L @ A
        d = L @ c
        Q = _symmetrize(L @ torch.diag(v) @ L.T)
        return F, d, Q

    def infer(self, parameters: ParameterStore, dataset: Dataset) -> Posterior:
        """
        Compute posterior moments of every slice.

        Parameters
        ----------
        parameters : ParameterStore
            Current conditional parameters.
        dataset : Dataset
            T x N data; only present cells of observed-role nodes are used.

        Returns
        -------
        posterior : Posterior

        Raises
        ------
        DataShapeError
            If the dataset does not match the network.
        SingularityError
            If an innovation covariance (filter) or a one-step predictive
            covariance (smoother) is not positive definite.
        """
        self.check_dataset(dataset)
        T, N = self.T, self.N
        evidence = dataset.observed_mask(self.template)
        values = dataset.values

        F0, d0, Q0 = self.transition(parameters, first_slice=True)
        F, d, Q = self.transition(parameters, first_slice=False)

        m_pred = torch.zeros(T, N, dtype=DTYPE)
        P_pred = torch.zeros(T, N, N, dtype=DTYPE)
        m_filt = torch.zeros(T, N, dtype=DTYPE)
        P_filt = torch.zeros(T, N, N, dtype=DTYPE)
        log_lik = 0.0

        # Forward pass
        for t in range(T):
            if t == 0:
                m, P = d0, Q0
            else:
                m = F @ m_filt[t - 1] + d
                P = _symmetrize(F @ P_filt[t - 1] @ F.T) + Q
            m_pred[t], P_pred[t] = m, P

            obs = evidence[t]
            k = int(obs.sum())
            if k > 0:
                y = values[t, obs]
                S = P[obs][:, obs]
                chol, info = torch.linalg.cholesky_ex(S)
                if int(info) != 0:
                    raise SingularityError(
                        f"Innovation covariance of {k} observed cells is not positive definite",
                        time=t, phase="filter"
                    )
                resid = y - m[obs]
                P_xo = P[:, obs]
                alpha = torch.linalg.solve_triangular(chol, resid.unsqueeze(-1), upper=False)
                gain_t = torch.cholesky_solve(P_xo.T, chol)

                m = m + P_xo @ torch.cholesky_solve(resid.unsqueeze(-1), chol).squeeze(-1)
                P = _symmetrize(P - P_xo @ gain_t)
                m[obs] = y
                P[obs, :] = 0.0
                P[:, obs] = 0.0

                log_lik += -0.5 * (
                    k * LOG_2PI
                    + 2.0 * torch.log(torch.diagonal(chol)).sum().item()
                    + float((alpha ** 2).sum())
                )
            m_filt[t], P_filt[t] = m, P

        # Backward pass
        m_s = m_filt.clone()
        P_s = P_filt.clone()
        C_s = torch.zeros(T, N, N, dtype=DTYPE)
        for t in range(T - 2, -1, -1):
            chol, info = torch.linalg.cholesky_ex(P_pred[t + 1])
            if int(info) != 0:
                raise SingularityError(
                    "One-step predictive covariance is not positive definite",
                    time=t + 1, phase="smoother"
                )
            J = torch.cholesky_solve(F @ P_filt[t], chol).T
            m_s[t] = m_filt[t] + J @ (m_s[t + 1] - m_pred[t + 1])
            P_s[t] = _symmetrize(P_filt[t] + J @ (P_s[t + 1] - P_pred[t + 1]) @ J.T)
            C_s[t + 1] = P_s[t + 1] @ J.T

        # Evidence cells are exact
        for t in range(T):
            obs = evidence[t]
            m_s[t, obs] = values[t, obs]
            P_s[t][obs, :] = 0.0
            P_s[t][:, obs] = 0.0
            C_s[t][obs, :] = 0.0
            if t + 1 < T:
                C_s[t + 1][:, obs] = 0.0

        return Posterior(
            means=m_s,
            covariances=P_s,
            cross_covariances=C_s,
            log_likelihood=log_lik,
            evidence=evidence
        )

    def log_likelihood(self, parameters: ParameterStore, dataset: Dataset) -> float:
        """Log-likelihood of the observed cells; runs a full inference pass."""
        return self.infer(parameters, dataset).log_likelihood


def _slice_second_moments(posterior: Posterior) -> Tuple[torch.Tensor, torch.Tensor]:
    """
    Second moments of ``u_t = [x_{t-1}; x_t; 1]``.

    Returns
    -------
    first : torch.Tensor
        ``E[u_0 u_0']`` with the previous-slice block set to zero,
        shape (2N + 1, 2N + 1).
    rest : torch.Tensor
        ``sum_{t >= 1} E[u_t u_t']``, shape (2N + 1, 2N + 1).
    """
    T, N = posterior.T, posterior.N
    m, P, C = posterior.means, posterior.covariances, posterior.cross_covariances
    size = 2 * N + 1

    first = torch.zeros(size, size, dtype=DTYPE)
    first[N:2 * N, N:2 * N] = P[0] + torch.outer(m[0], m[0])
    first[N:2 * N, 2 * N] = m[0]
    first[2 * N, N:2 * N] = m[0]
    first[2 * N, 2 * N] = 1.0

    rest = torch.zeros(size, size, dtype=DTYPE)
    if T > 1:
        U = torch.cat([m[:-1], m[1:], torch.ones(T - 1, 1, dtype=DTYPE)], dim=1)
        rest += U.T @ U
        rest[:N, :N] += P[:-1].sum(dim=0)
        rest[N:2 * N, N:2 * N] += P[1:].sum(dim=0)
        cross = C[1:].sum(dim=0)
        rest[N:2 * N, :N] += cross
        rest[:N, N:2 * N] += cross.T
    return first, rest


def collect_statistics(
    graph: UnrolledGraph,
    posterior: Posterior
) -> Dict[int, SufficientStatistics]:
    """
    Aggregate expected sufficient statistics for every parameter group.

    All slices after the first share their groups, so their second moments
    are summed once and each group's statistics are read off as sub-blocks.

    Parameters
    ----------
    graph : UnrolledGraph
    posterior : Posterior
        Output of :meth:`ExactInferenceEngine.infer` on ``graph``.

    Returns
    -------
    stats : dict
        Group id -> SufficientStatistics. Groups with no members (the
        later-slice groups when T = 1) are omitted.
    """
    N = graph.N
    first, rest = _slice_second_moments(posterior)
    const = 2 * N
    stats: Dict[int, SufficientStatistics] = {}

    for node in graph.template.nodes:
        child = N + node.index
        intra = [N + p for p in node.intra_parents]

        index = intra + [const]
        stats[node.first_group] = SufficientStatistics(
            zz=first[index][:, index].clone(),
            zx=first[index, child].clone(),
            xx=float(first[child, child]),
            count=1
        )

        if graph.T > 1:
            index = intra + list(node.inter_parents) + [const]
            stats[node.rest_group] = SufficientStatistics(
                zz=rest[index][:, index].clone(),
                zx=rest[index, child].clone(),
                xx=float(rest[child, child]),
                count=graph.T - 1
            )
    return stats


def family_statistics(
    graph: UnrolledGraph,
    posterior: Posterior,
    group_id: int
) -> SufficientStatistics:
    """
    Statistics of one group accumulated node by node.

    Slower than :func:`collect_statistics`; it reads each node's family
    moments individually and is kept as a cross-check.
    """
    members: List[UnrolledNode] = graph.group_members(group_id)
    k = graph.template.group_arity(group_id)
    zz = torch.zeros(k + 1, k + 1, dtype=DTYPE)
    zx = torch.zeros(k + 1, dtype=DTYPE)
    xx = 0.0
    for node in members:
        mean, second = posterior.family_moments(node)
        # reorder [parents, child] into z = [parents, 1] and x = child
        zz[:k, :k] += second[:k, :k]
        zz[:k, k] += mean[:k]
        zz[k, :k] += mean[:k]
        zz[k, k] += 1.0
        zx[:k] += second[:k, k]
        zx[k] += mean[k]
        xx += float(second[k, k])
    return SufficientStatistics(zz=zz, zx=zx, xx=xx, count=len(members))
