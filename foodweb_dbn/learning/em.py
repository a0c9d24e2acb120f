"""
Expectation-Maximization for linear-Gaussian temporal networks.

Each iteration runs exact inference (E-step) to obtain expected regression
statistics for every parameter group, then re-estimates each group's
weights, intercept and variance in closed form (M-step).

Classes
-------
TrainerState
    Lifecycle of one training run.
TrainingRun
    Parameters and log-likelihood trace produced by one run.
EMTrainer
    Runs EM from a given parameter initialization.

Functions
---------
em_converged
    Relative-change convergence test on consecutive log-likelihoods.
m_step
    Closed-form re-estimation of every parameter group.

Author: Sean Plummer
Date: October 2026
"""

import warnings
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

import numpy as np
import torch

from ..data import Dataset
from ..errors import ConfigError, SingularityError
from ..inference.smoother import (
    ExactInferenceEngine,
    SufficientStatistics,
    collect_statistics
)
from ..models.parameters import ParameterStore
from ..models.unrolled import UnrolledGraph


class TrainerState(Enum):
    INITIALIZING = "initializing"
    ITERATING = "iterating"
    CONVERGED = "converged"
    FAILED = "failed"


@dataclass
class TrainingRun:
    """
    Result of one EM run.

    Attributes
    ----------
    parameters : ParameterStore
        Parameters whose log-likelihood is the last entry of the trace.
    log_likelihoods : list of float
        Log-likelihood after each E-step.
    converged : bool
        False if the iteration cap was reached first.
    restart : int, optional
        Restart index within a multi-restart fit.
    state : TrainerState
    error : str, optional
        Failure message for failed runs.
    """
    parameters: Optional[ParameterStore]
    log_likelihoods: List[float] = field(default_factory=list)
    converged: bool = False
    restart: Optional[int] = None
    state: TrainerState = TrainerState.CONVERGED
    error: Optional[str] = None

    @property
    def n_iter(self) -> int:
        return len(self.log_likelihoods)

    @property
    def final_log_likelihood(self) -> float:
        if not self.log_likelihoods:
            return -np.inf
        return self.log_likelihoods[-1]

    @property
    def failed(self) -> bool:
        return self.state is TrainerState.FAILED


def em_converged(
    current: float,
    previous: float,
    tolerance: float = 1e-4
) -> bool:
    """
    Test convergence by the relative change of the log-likelihood.

    Converged when ``|current - previous| / avg(|current|, |previous|)`` is
    below ``tolerance``.
    """
    if not np.isfinite(previous):
        return False
    delta = abs(current - previous)
    avg = (abs(current) + abs(previous) + np.finfo(float).eps) / 2
    return delta / avg < tolerance


def m_step(
    stats: Dict[int, SufficientStatistics],
    parameters: ParameterStore,
    min_variance: float = 1e-6
) -> None:
    """
    Re-estimate every parameter group from expected statistics.

    Solves the normal equations ``E[z z'] beta = E[z x]`` with
    ``z = [parents..., 1]`` and sets the variance to the expected residual
    ``E[(x - beta' z)^2]`` per member, floored at ``min_variance``.

    Notes
    -----
    Collinear parents make ``E[z z']`` singular; the minimum-norm solution
    (pseudo-inverse) is still a maximizer of the expected complete-data
    log-likelihood, so EM monotonicity is preserved.
    """
    for group_id, s in stats.items():
        if s.count == 0:
            continue
        beta = torch.linalg.pinv(s.zz, hermitian=True, rtol=1e-10) @ s.zx
        residual = s.xx - 2.0 * float(beta @ s.zx) + float(beta @ s.zz @ beta)
        variance = max(residual / s.count, min_variance)
        parameters.update(group_id, beta[:-1], float(beta[-1]), variance)


class EMTrainer:
    """
    EM parameter learning for one unrolled network and dataset.

    Parameters
    ----------
    graph : UnrolledGraph
        Unrolled network; its horizon must match the dataset.
    dataset : Dataset
        T x N data with missing cells.
    max_iter : int, default=500
        Maximum number of E-steps.
    tolerance : float, default=1e-4
        Relative log-likelihood change below which the run has converged.
    min_variance : float, default=1e-6
        Lower bound on re-estimated noise variances.
    verbose : bool, default=False
        Print progress.
    check_every : int, default=10
        Print progress every this many iterations.

    Attributes
    ----------
    state : TrainerState
    history : dict
        ``{'log_likelihood': [...]}`` of the most recent run.

    Examples
    --------
    >>> trainer = EMTrainer(graph, data, max_iter=200)
    >>> params = ParameterStore(graph.template).initialize(0)
    >>> run = trainer.fit(params)
    >>> run.final_log_likelihood
    """

    def __init__(
        self,
        graph: UnrolledGraph,
        dataset: Dataset,
        max_iter: int = 500,
        tolerance: float = 1e-4,
        min_variance: float = 1e-6,
        verbose: bool = False,
        check_every: int = 10
    ):
        if int(max_iter) != max_iter or max_iter < 1:
            raise ConfigError(f"max_iter must be an integer >= 1, got {max_iter!r}")
        if not tolerance >= 0:
            raise ConfigError(f"tolerance must be non-negative, got {tolerance!r}")
        if not min_variance > 0:
            raise ConfigError(f"min_variance must be positive, got {min_variance!r}")
        if int(check_every) != check_every or check_every < 1:
            raise ConfigError(f"check_every must be an integer >= 1, got {check_every!r}")

        self.graph = graph
        self.dataset = dataset
        self.engine = ExactInferenceEngine(graph)
        self.engine.check_dataset(dataset)

        self.max_iter = int(max_iter)
        self.tolerance = tolerance
        self.min_variance = min_variance
        self.verbose = verbose
        self.check_every = int(check_every)

        self.state = TrainerState.INITIALIZING
        self.history: Dict[str, List[float]] = {'log_likelihood': []}

    def fit(
        self,
        parameters: ParameterStore,
        restart: Optional[int] = None
    ) -> TrainingRun:
        """
        Run EM from the given initial parameters.

        Parameters
        ----------
        parameters : ParameterStore
            Initial parameters; not modified (a copy is trained).
        restart : int, optional
            Restart index, attached to progress lines and errors.

        Returns
        -------
        run : TrainingRun

        Raises
        ------
        SingularityError
            If an E-step fails; the trainer is left in the FAILED state.
        """
        self.state = TrainerState.INITIALIZING
        self.history = {'log_likelihood': []}
        params = parameters.copy()
        trace = self.history['log_likelihood']
        converged = False

        if self.verbose:
            label = "" if restart is None else f" (restart {restart})"
            print(f"Starting EM{label}...")
            print("=" * 60)

        self.state = TrainerState.ITERATING
        for iteration in range(self.max_iter):
            # E-step
            try:
                posterior = self.engine.infer(params, self.dataset)
            except SingularityError as exc:
                self.state = TrainerState.FAILED
                raise exc.with_context(iteration=iteration, restart=restart) from exc

            log_lik = posterior.log_likelihood
            previous = trace[-1] if trace else -np.inf
            trace.append(log_lik)

            if log_lik < previous - 1e-6 * max(1.0, abs(previous)):
                warnings.warn(
                    f"Log-likelihood decreased from {previous:.6f} to {log_lik:.6f} "
                    f"at iteration {iteration}",
                    RuntimeWarning
                )

            if self.verbose and (iteration % self.check_every == 0):
                self._print_progress(iteration, log_lik)

            if em_converged(log_lik, previous, self.tolerance):
                converged = True
                break
            if iteration == self.max_iter - 1:
                break

            # M-step
            m_step(collect_statistics(self.graph, posterior), params, self.min_variance)

        self.state = TrainerState.CONVERGED
        if self.verbose:
            if converged:
                print(f"\nConverged at iteration {len(trace) - 1}")
            else:
                print("\nReached maximum iterations without convergence")

        return TrainingRun(
            parameters=params,
            log_likelihoods=list(trace),
            converged=converged,
            restart=restart,
            state=self.state
        )

    def _print_progress(self, iteration: int, log_lik: float) -> None:
        print(f"Iter {iteration:4d} | log-lik: {log_lik:12.4f}")

    def get_log_likelihood_history(self) -> List[float]:
        return self.history['log_likelihood']
