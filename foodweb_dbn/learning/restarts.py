"""
Multi-restart EM to escape poor local optima.

EM on models with hidden variables converges to a local optimum that depends
on the starting point. The optimizer runs K independent restarts, each from a
fresh random initialization with its own RNG stream, and keeps the run with
the highest final log-likelihood.

Classes
-------
BestRunReducer
    Thread-safe fold that keeps the best completed run.
RestartResult
    Outcome of a multi-restart fit.
MultiRestartOptimizer
    Runs K EM restarts, sequentially or on worker threads.

Functions
---------
select_best
    Pick the best run from a sequence of runs.
spawn_generators
    Independent torch.Generator streams from one seed.

Author: Sean Plummer
Date: October 2026
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

import numpy as np
import torch
from joblib import Parallel, delayed

from ..data import Dataset
from ..errors import ConfigError, NoViableRunError, SingularityError
from ..models.parameters import ParameterStore
from ..models.unrolled import UnrolledGraph
from .em import EMTrainer, TrainerState, TrainingRun


def _score(run: TrainingRun) -> float:
    value = run.final_log_likelihood
    # NaN or +inf traces come from a numerical blow-up and never win
    return value if np.isfinite(value) else -np.inf


def _better(candidate: TrainingRun, incumbent: Optional[TrainingRun]) -> bool:
    if incumbent is None:
        return True
    a, b = _score(candidate), _score(incumbent)
    if a != b:
        return a > b
    # tie: the earlier restart wins
    ca = candidate.restart if candidate.restart is not None else np.inf
    cb = incumbent.restart if incumbent.restart is not None else np.inf
    return ca < cb


def select_best(runs: Iterable[TrainingRun]) -> TrainingRun:
    """
    Return the non-failed run with the maximum final log-likelihood.

    Ties go to the lowest restart index, whatever the input order. A run
    whose final log-likelihood is not finite ranks below every finite one.

    Raises
    ------
    NoViableRunError
        If there is no non-failed run.
    """
    best = None
    failures = {}
    for position, run in enumerate(runs):
        if run.failed:
            failures[run.restart if run.restart is not None else position] = run.error or "failed"
            continue
        if _better(run, best):
            best = run
    if best is None:
        raise NoViableRunError(failures)
    return best


class BestRunReducer:
    """
    Fold completed runs into the best one under a single lock.

    Runs may be offered from several worker threads in any completion order.
    The result is the same as a sequential scan in restart order: highest
    final log-likelihood, ties broken by the lowest restart index.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._best: Optional[TrainingRun] = None
        self.runs: List[TrainingRun] = []
        self.failures: Dict[int, str] = {}

    def offer(self, run: TrainingRun) -> bool:
        """Record a completed run; return True if it became the best."""
        with self._lock:
            if run.failed:
                self.failures[run.restart] = run.error or "failed"
                return False
            self.runs.append(run)
            if _better(run, self._best):
                self._best = run
                return True
            return False

    @property
    def best(self) -> Optional[TrainingRun]:
        with self._lock:
            return self._best


@dataclass
class RestartResult:
    """
    Outcome of a multi-restart fit.

    Attributes
    ----------
    best : TrainingRun
        Winning run.
    runs : list of TrainingRun
        All non-failed runs in restart order.
    failures : dict
        Restart index -> failure message for excluded restarts.
    seed : int
        Seed the restart streams were spawned from.
    """
    best: TrainingRun
    runs: List[TrainingRun] = field(default_factory=list)
    failures: Dict[int, str] = field(default_factory=dict)
    seed: Optional[int] = None

    @property
    def parameters(self) -> ParameterStore:
        return self.best.parameters

    @property
    def log_likelihoods(self) -> List[float]:
        return self.best.log_likelihoods

    @property
    def final_log_likelihoods(self) -> List[float]:
        return [run.final_log_likelihood for run in self.runs]


def spawn_generators(n: int, seed: Optional[int] = None) -> List[torch.Generator]:
    """
    Create ``n`` independent torch generators from one seed.

    Streams are derived with ``numpy.random.SeedSequence.spawn`` so that
    restart ``k`` always gets the same stream for a given seed, whichever
    worker runs it.
    """
    children = np.random.SeedSequence(seed).spawn(n)
    generators = []
    for child in children:
        generator = torch.Generator()
        generator.manual_seed(int(child.generate_state(1, dtype=np.uint64)[0] >> np.uint64(1)))
        generators.append(generator)
    return generators


def wall_clock_seed() -> int:
    """Seed taken from the wall clock, for production runs."""
    return time.time_ns() % (2 ** 63)


class MultiRestartOptimizer:
    """
    Run EM from K random initializations and keep the best run.

    Parameters
    ----------
    graph : UnrolledGraph
        Unrolled network shared by all restarts.
    dataset : Dataset
        Data shared by all restarts (read only).
    n_restarts : int, default=100
        Number of restarts K.
    max_iter : int, default=500
        EM iteration cap per restart.
    tolerance : float, default=1e-4
        EM convergence tolerance.
    min_variance : float, default=1e-6
        Variance floor of the M-step.
    default_variance : float, default=1.0
        Variance of every group at initialization.
    n_workers : int, default=1
        Number of worker threads; 1 runs restarts sequentially.
    verbose : bool, default=False
        Print one line per completed restart.

    Examples
    --------
    >>> optimizer = MultiRestartOptimizer(graph, data, n_restarts=20)
    >>> result = optimizer.fit(seed=0)
    >>> result.best.final_log_likelihood
    """

    def __init__(
        self,
        graph: UnrolledGraph,
        dataset: Dataset,
        n_restarts: int = 100,
        max_iter: int = 500,
        tolerance: float = 1e-4,
        min_variance: float = 1e-6,
        default_variance: float = 1.0,
        n_workers: int = 1,
        verbose: bool = False
    ):
        if isinstance(n_restarts, bool) or int(n_restarts) != n_restarts or n_restarts < 1:
            raise ConfigError(f"n_restarts must be an integer >= 1, got {n_restarts!r}")
        if int(n_workers) != n_workers or n_workers < 1:
            raise ConfigError(f"n_workers must be an integer >= 1, got {n_workers!r}")
        if not default_variance > 0:
            raise ConfigError(f"default_variance must be positive, got {default_variance!r}")

        self.graph = graph
        self.dataset = dataset
        self.n_restarts = int(n_restarts)
        self.n_workers = int(n_workers)
        self.default_variance = default_variance
        self.verbose = verbose
        self.trainer_kwargs = dict(
            max_iter=max_iter,
            tolerance=tolerance,
            min_variance=min_variance
        )
        # validates the EM settings and the dataset shape up front
        EMTrainer(graph, dataset, **self.trainer_kwargs)

    def run_restart(self, restart: int, generator: torch.Generator) -> TrainingRun:
        """
        Run one restart to a terminal state.

        A SingularityError is turned into a failed TrainingRun carrying the
        error message; any other exception propagates.
        """
        params = ParameterStore(
            self.graph.template, default_variance=self.default_variance
        ).initialize(generator)
        trainer = EMTrainer(self.graph, self.dataset, **self.trainer_kwargs)
        try:
            return trainer.fit(params, restart=restart)
        except SingularityError as exc:
            return TrainingRun(
                parameters=None,
                log_likelihoods=list(trainer.history['log_likelihood']),
                converged=False,
                restart=restart,
                state=TrainerState.FAILED,
                error=str(exc)
            )

    def fit(self, seed: Optional[int] = None) -> RestartResult:
        """
        Run all restarts and return the best run.

        Parameters
        ----------
        seed : int, optional
            Seed of the restart streams. If None, a wall-clock seed is used
            and recorded on the result.

        Returns
        -------
        result : RestartResult

        Raises
        ------
        NoViableRunError
            If every restart failed.
        """
        if seed is None:
            seed = wall_clock_seed()
        generators = spawn_generators(self.n_restarts, seed)
        reducer = BestRunReducer()

        if self.verbose:
            print(f"Running {self.n_restarts} EM restarts "
                  f"({self.n_workers} worker(s), seed={seed})")
            print("=" * 60)

        if self.n_workers != 1:
            # threads share the dataset; each worker reports as it finishes
            Parallel(n_jobs=self.n_workers, prefer="threads", verbose=0)(
                delayed(self._run_and_report)(reducer, restart, generator)
                for restart, generator in enumerate(generators)
            )
        else:
            for restart, generator in enumerate(generators):
                self._run_and_report(reducer, restart, generator)

        if reducer.best is None:
            raise NoViableRunError(dict(sorted(reducer.failures.items())))

        runs = sorted(reducer.runs, key=lambda run: run.restart)
        if self.verbose:
            best = reducer.best
            print(f"\nBest restart: {best.restart} | log-lik: {best.final_log_likelihood:.4f} "
                  f"| failed: {len(reducer.failures)}")

        return RestartResult(
            best=reducer.best,
            runs=runs,
            failures=dict(sorted(reducer.failures.items())),
            seed=seed
        )

    def _run_and_report(
        self,
        reducer: BestRunReducer,
        restart: int,
        generator: torch.Generator
    ) -> None:
        run = self.run_restart(restart, generator)
        improved = reducer.offer(run)
        if not self.verbose:
            return
        if run.failed:
            print(f"Restart {run.restart:4d} | FAILED: {run.error}")
        else:
            status = "converged" if run.converged else "max iter"
            marker = " *" if improved else ""
            print(f"Restart {run.restart:4d} | log-lik: {run.final_log_likelihood:12.4f} "
                  f"| iters: {run.n_iter:4d} | {status}{marker}")
