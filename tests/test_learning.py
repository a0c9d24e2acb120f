"""
Tests for EM learning and the multi-restart optimizer.

Author: Sean Plummer
Date: October 2026
"""

import pytest
import torch
import numpy as np

from foodweb_dbn import (
    Dataset,
    build_template,
    unroll,
    ParameterStore,
    ExactInferenceEngine,
    LinearGaussianDBN,
    EMTrainer,
    MultiRestartOptimizer,
    ConfigError,
    DataShapeError,
    SingularityError,
    NoViableRunError
)
from foodweb_dbn.inference import collect_statistics
from foodweb_dbn.learning import (
    TrainerState,
    TrainingRun,
    BestRunReducer,
    em_converged,
    m_step,
    select_best,
    spawn_generators
)
from foodweb_dbn.utils import check_monotonic


def make_run(restart, log_lik, failed=False):
    if failed:
        return TrainingRun(parameters=None, restart=restart,
                           state=TrainerState.FAILED, error="singular")
    return TrainingRun(parameters=None, log_likelihoods=[log_lik - 1.0, log_lik],
                       converged=True, restart=restart)


class TestEMHelpers:
    """Tests for the convergence test and the M-step."""

    def test_em_converged(self):
        assert em_converged(-100.0, -100.001, tolerance=1e-4)
        assert not em_converged(-100.0, -110.0, tolerance=1e-4)
        assert not em_converged(-100.0, -np.inf)

    def test_m_step_is_least_squares(self):
        """With every node observed, the M-step is ordinary least squares."""
        template = build_template(
            2, intra_edges=[(0, 1)], inter_edges=[(1, 1)], observed=[0, 1]
        )
        T = 30
        rows = torch.randn(T, 2, dtype=torch.float64).tolist()
        data = Dataset.from_rows(rows, n_nodes=2)
        graph = unroll(template, T)
        params = ParameterStore(template).initialize(0)

        posterior = ExactInferenceEngine(graph).infer(params, data)
        m_step(collect_statistics(graph, posterior), params)

        X = data.values.numpy()
        # rest group of node 1: x1[t] ~ x0[t] + x1[t-1] + 1
        Z = np.column_stack([X[1:, 0], X[:-1, 1], np.ones(T - 1)])
        beta, *_ = np.linalg.lstsq(Z, X[1:, 1], rcond=None)
        residual = X[1:, 1] - Z @ beta

        group = params.group(3)
        assert np.allclose(group.weights.numpy(), beta[:2])
        assert group.intercept == pytest.approx(beta[2])
        assert group.variance == pytest.approx(np.mean(residual ** 2))

    def test_collinear_parents_do_not_fail(self):
        """Duplicate parents get the minimum-norm split of the weight."""
        template = build_template(
            3, intra_edges=[(0, 1), (0, 2), (1, 2)], inter_edges=[], observed=[0, 1, 2]
        )
        T = 20
        a = torch.randn(T, dtype=torch.float64)
        c = 2.0 * a + 0.1 * torch.randn(T, dtype=torch.float64)
        data = Dataset.from_rows(torch.stack([a, a, c], dim=1).tolist(), n_nodes=3)
        graph = unroll(template, T)

        run = EMTrainer(graph, data, max_iter=5).fit(ParameterStore(template).initialize(0))

        assert all(np.isfinite(run.log_likelihoods))
        weights = run.parameters.group(5).weights
        assert weights[0].item() == pytest.approx(weights[1].item(), abs=1e-6)
        assert (weights[0] + weights[1]).item() == pytest.approx(2.0, abs=0.2)

    def test_m_step_variance_floor(self):
        """A group fitted exactly gets the minimum variance."""
        template = build_template(2, intra_edges=[(0, 1)], inter_edges=[], observed=[0, 1])
        data = Dataset.from_rows([[1.0, 2.0]], n_nodes=2)
        graph = unroll(template, 1)
        params = ParameterStore(template).initialize(0)
        posterior = ExactInferenceEngine(graph).infer(params, data)
        m_step(collect_statistics(graph, posterior), params, min_variance=1e-3)
        assert params.group(1).variance == pytest.approx(1e-3)
        assert params.group(0).variance == pytest.approx(1e-3)


class TestEMTrainer:
    """Tests for single-run EM."""

    def test_log_likelihood_non_decreasing(self, synthetic_data):
        graph, data = synthetic_data['graph'], synthetic_data['data']
        trainer = EMTrainer(graph, data, max_iter=40)
        run = trainer.fit(ParameterStore(graph.template).initialize(1))

        trace = run.log_likelihoods
        assert all(np.isfinite(trace))
        scale = max(1.0, max(abs(x) for x in trace))
        assert check_monotonic(trace, epsilon=1e-6 * scale) == []

    def test_parameters_match_last_entry(self, synthetic_data):
        """Returned parameters have the last recorded log-likelihood."""
        graph, data = synthetic_data['graph'], synthetic_data['data']
        run = EMTrainer(graph, data, max_iter=15).fit(
            ParameterStore(graph.template).initialize(2)
        )
        log_lik = ExactInferenceEngine(graph).log_likelihood(run.parameters, data)
        assert log_lik == pytest.approx(run.final_log_likelihood)

    def test_iteration_cap(self, synthetic_data):
        graph, data = synthetic_data['graph'], synthetic_data['data']
        trainer = EMTrainer(graph, data, max_iter=3, tolerance=0.0)
        run = trainer.fit(ParameterStore(graph.template).initialize(0))
        assert run.n_iter == 3
        assert not run.converged
        assert trainer.state is TrainerState.CONVERGED
        assert trainer.get_log_likelihood_history() == run.log_likelihoods

    def test_converges(self, synthetic_data):
        graph, data = synthetic_data['graph'], synthetic_data['data']
        run = EMTrainer(graph, data, max_iter=500, tolerance=1e-3).fit(
            ParameterStore(graph.template).initialize(0)
        )
        assert run.converged
        assert run.n_iter < 500
        assert em_converged(run.log_likelihoods[-1], run.log_likelihoods[-2], 1e-3)

    def test_recovers_hidden_parent_from_truth(self):
        """Training from the true parameters tracks the latent parent of B and C."""
        template = build_template(
            3, [("A", "B"), ("A", "C")], [], ["B", "C"], names=["A", "B", "C"]
        )
        truth = ParameterStore.from_groups(template, {
            0: ([], 0.0, 1.0),
            1: ([1.0], 0.5, 1e-3),
            2: ([-0.5], 1.0, 1e-3),
            3: ([], 0.0, 1.0),
            4: ([1.0], 0.5, 1e-3),
            5: ([-0.5], 1.0, 1e-3),
        })
        data, X = LinearGaussianDBN(template, truth).generate_data(
            5, generator=torch.Generator().manual_seed(7), return_latents=True
        )
        graph = unroll(template, 5)

        run = EMTrainer(graph, data).fit(truth)
        posterior = ExactInferenceEngine(graph).infer(run.parameters, data)

        assert torch.allclose(posterior.means[:, 0], X[:, 0], atol=0.2)
        assert torch.all(posterior.variances[:, 1:] == 0.0)
        assert torch.equal(posterior.means[:, 1:], data.values[:, 1:])

    def test_initial_parameters_untouched(self, synthetic_data):
        graph, data = synthetic_data['graph'], synthetic_data['data']
        params = ParameterStore(graph.template).initialize(0)
        before = params.as_dict()
        EMTrainer(graph, data, max_iter=5).fit(params)
        assert params.as_dict() == before

    def test_invalid_settings(self, synthetic_data):
        graph, data = synthetic_data['graph'], synthetic_data['data']
        with pytest.raises(ConfigError):
            EMTrainer(graph, data, max_iter=0)
        with pytest.raises(ConfigError):
            EMTrainer(graph, data, min_variance=0.0)
        with pytest.raises(ConfigError):
            EMTrainer(graph, data, tolerance=-1.0)
        with pytest.raises(ConfigError):
            EMTrainer(graph, data, verbose=True, check_every=0)

    def test_dataset_mismatch(self, abc_template, synthetic_data):
        with pytest.raises(DataShapeError):
            EMTrainer(unroll(abc_template, 4), synthetic_data['data'])

    def test_singular_step_fails_run(self, synthetic_data, monkeypatch):
        graph, data = synthetic_data['graph'], synthetic_data['data']
        trainer = EMTrainer(graph, data, max_iter=5)

        def fail(parameters, dataset):
            raise SingularityError("not positive definite", time=2, phase="filter")

        monkeypatch.setattr(trainer.engine, "infer", fail)
        with pytest.raises(SingularityError) as info:
            trainer.fit(ParameterStore(graph.template), restart=4)
        assert info.value.iteration == 0
        assert info.value.restart == 4
        assert info.value.time == 2
        assert "restart=4" in str(info.value)
        assert trainer.state is TrainerState.FAILED

    def test_verbose_output(self, synthetic_data, capsys):
        graph, data = synthetic_data['graph'], synthetic_data['data']
        EMTrainer(graph, data, max_iter=3, tolerance=0.0, verbose=True, check_every=1).fit(
            ParameterStore(graph.template).initialize(0)
        )
        out = capsys.readouterr().out
        assert "Iter    0" in out
        assert "maximum iterations" in out


class TestSelection:
    """Tests for picking the best run."""

    def test_select_best(self):
        runs = [make_run(0, -10.0), make_run(1, -5.0), make_run(2, -7.0)]
        assert select_best(runs).restart == 1

    def test_select_best_tie(self):
        runs = [make_run(0, -5.0), make_run(1, -5.0)]
        assert select_best(runs).restart == 0

    def test_select_best_tie_ignores_input_order(self):
        """Ties go to the lowest restart index, as in the reducer."""
        runs = [make_run(2, -5.0), make_run(0, -9.0), make_run(1, -5.0)]
        assert select_best(runs).restart == 1
        reducer = BestRunReducer()
        for run in runs:
            reducer.offer(run)
        assert reducer.best.restart == 1

    def test_non_finite_log_likelihood_never_wins(self):
        nan_run = TrainingRun(parameters=None, log_likelihoods=[np.nan],
                              converged=False, restart=0)
        runs = [nan_run, make_run(1, -5.0)]
        assert select_best(runs).restart == 1

        reducer = BestRunReducer()
        for run in runs:
            reducer.offer(run)
        assert reducer.best.restart == 1

        inf_run = TrainingRun(parameters=None, log_likelihoods=[np.inf],
                              converged=False, restart=2)
        assert select_best([make_run(3, -100.0), inf_run]).restart == 3

    def test_select_best_skips_failures(self):
        runs = [make_run(0, 0.0, failed=True), make_run(1, -50.0)]
        assert select_best(runs).restart == 1

    def test_select_best_all_failed(self):
        with pytest.raises(NoViableRunError) as info:
            select_best([make_run(0, 0.0, failed=True), make_run(1, 0.0, failed=True)])
        assert set(info.value.failures) == {0, 1}

    def test_reducer_order_independent(self):
        """Out-of-order offers give the same best as a sequential scan."""
        runs = [make_run(0, -5.0), make_run(1, -3.0), make_run(2, -3.0), make_run(3, -9.0)]
        for order in ([3, 2, 1, 0], [2, 0, 3, 1], [0, 1, 2, 3]):
            reducer = BestRunReducer()
            for i in order:
                reducer.offer(runs[i])
            assert reducer.best.restart == 1

    def test_reducer_records_failures(self):
        reducer = BestRunReducer()
        assert not reducer.offer(make_run(0, 0.0, failed=True))
        assert reducer.offer(make_run(1, -2.0))
        assert reducer.failures == {0: "singular"}
        assert len(reducer.runs) == 1


class TestMultiRestartOptimizer:
    """Tests for multi-restart EM."""

    def test_spawn_generators(self):
        a = [torch.randn(3, generator=g) for g in spawn_generators(3, seed=1)]
        b = [torch.randn(3, generator=g) for g in spawn_generators(3, seed=1)]
        for x, y in zip(a, b):
            assert torch.equal(x, y)
        assert not torch.equal(a[0], a[1])

    def test_fit(self, synthetic_data):
        graph, data = synthetic_data['graph'], synthetic_data['data']
        result = MultiRestartOptimizer(graph, data, n_restarts=3, max_iter=20).fit(seed=0)

        assert len(result.runs) == 3
        assert [run.restart for run in result.runs] == [0, 1, 2]
        assert result.failures == {}
        assert result.seed == 0
        assert result.best.final_log_likelihood == max(result.final_log_likelihoods)
        assert result.parameters is result.best.parameters

    def test_reproducible(self, synthetic_data):
        graph, data = synthetic_data['graph'], synthetic_data['data']
        a = MultiRestartOptimizer(graph, data, n_restarts=2, max_iter=10).fit(seed=11)
        b = MultiRestartOptimizer(graph, data, n_restarts=2, max_iter=10).fit(seed=11)
        assert a.final_log_likelihoods == b.final_log_likelihoods
        assert a.best.restart == b.best.restart

    def test_wall_clock_seed_recorded(self, synthetic_data):
        graph, data = synthetic_data['graph'], synthetic_data['data']
        result = MultiRestartOptimizer(graph, data, n_restarts=1, max_iter=2).fit()
        assert isinstance(result.seed, int)

    def test_parallel_matches_sequential(self, synthetic_data):
        graph, data = synthetic_data['graph'], synthetic_data['data']
        sequential = MultiRestartOptimizer(
            graph, data, n_restarts=4, max_iter=10
        ).fit(seed=5)
        parallel = MultiRestartOptimizer(
            graph, data, n_restarts=4, max_iter=10, n_workers=3
        ).fit(seed=5)
        assert [run.restart for run in parallel.runs] == [0, 1, 2, 3]
        assert parallel.final_log_likelihoods == pytest.approx(sequential.final_log_likelihoods)
        assert parallel.best.final_log_likelihood == pytest.approx(
            sequential.best.final_log_likelihood
        )

    def test_failed_restarts_excluded(self, synthetic_data, monkeypatch):
        graph, data = synthetic_data['graph'], synthetic_data['data']
        original_fit = EMTrainer.fit

        def flaky_fit(self, parameters, restart=None):
            if restart in (0, 2):
                self.state = TrainerState.FAILED
                raise SingularityError("not positive definite", restart=restart)
            return original_fit(self, parameters, restart=restart)

        monkeypatch.setattr(EMTrainer, "fit", flaky_fit)
        result = MultiRestartOptimizer(graph, data, n_restarts=4, max_iter=5).fit(seed=0)

        assert sorted(result.failures) == [0, 2]
        assert [run.restart for run in result.runs] == [1, 3]
        assert result.best.restart in (1, 3)

    def test_all_restarts_failed(self, synthetic_data, monkeypatch):
        graph, data = synthetic_data['graph'], synthetic_data['data']

        def always_fail(self, parameters, restart=None):
            raise SingularityError("not positive definite", restart=restart)

        monkeypatch.setattr(EMTrainer, "fit", always_fail)
        optimizer = MultiRestartOptimizer(graph, data, n_restarts=3, max_iter=5)
        with pytest.raises(NoViableRunError) as info:
            optimizer.fit(seed=0)
        assert set(info.value.failures) == {0, 1, 2}

    def test_invalid_settings(self, synthetic_data):
        graph, data = synthetic_data['graph'], synthetic_data['data']
        with pytest.raises(ConfigError):
            MultiRestartOptimizer(graph, data, n_restarts=0)
        with pytest.raises(ConfigError):
            MultiRestartOptimizer(graph, data, n_workers=0)
        with pytest.raises(ConfigError):
            MultiRestartOptimizer(graph, data, max_iter=0)

    def test_verbose_output(self, synthetic_data, capsys):
        graph, data = synthetic_data['graph'], synthetic_data['data']
        MultiRestartOptimizer(graph, data, n_restarts=2, max_iter=3, verbose=True).fit(seed=0)
        out = capsys.readouterr().out
        assert "Restart    0" in out
        assert "Best restart" in out
