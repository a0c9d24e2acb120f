"""
Tests for exact inference and marginal extraction.

The forward-backward results are checked against brute-force conditioning
of the full joint Gaussian on small networks.

Author: Sean Plummer
Date: October 2026
"""

import pytest
import torch
import numpy as np
from scipy.stats import multivariate_normal

from foodweb_dbn import (
    Dataset,
    ParameterStore,
    LinearGaussianDBN,
    ExactInferenceEngine,
    unroll,
    extract_marginals,
    export_marginals,
    DataShapeError,
    SingularityError,
    StructureError
)
from foodweb_dbn.inference import (
    MarginalExtractor,
    collect_statistics,
    family_statistics
)


def dense_joint(graph, params):
    """Mean and covariance of all T*N unrolled variables."""
    n = graph.n_nodes
    W = torch.zeros(n, n, dtype=torch.float64)
    c = torch.zeros(n, dtype=torch.float64)
    v = torch.zeros(n, dtype=torch.float64)
    for node in graph.nodes:
        group = params.group(node.group)
        for weight, parent in zip(group.weights, node.parents):
            W[node.index, parent] = weight
        c[node.index] = group.intercept
        v[node.index] = group.variance
    L = torch.linalg.inv(torch.eye(n, dtype=torch.float64) - W)
    return L @ c, L @ torch.diag(v) @ L.T


def dense_posterior(graph, params, data):
    """Log-likelihood, posterior means and variances by direct conditioning."""
    mean, cov = dense_joint(graph, params)
    mean, cov = mean.numpy(), cov.numpy()
    obs = data.observed_mask(graph.template).reshape(-1).numpy()
    y = data.values.reshape(-1).numpy()[obs]

    log_lik = multivariate_normal(mean[obs], cov[np.ix_(obs, obs)]).logpdf(y)
    gain = cov[:, obs] @ np.linalg.inv(cov[np.ix_(obs, obs)])
    post_mean = mean + gain @ (y - mean[obs])
    post_cov = cov - gain @ cov[obs, :]
    T, N = data.shape
    return log_lik, post_mean.reshape(T, N), np.diag(post_cov).reshape(T, N)


class TestExactInferenceEngine:
    """Tests for forward filtering and backward smoothing."""

    def test_matches_dense_conditioning(self, synthetic_data):
        """Log-likelihood and marginals agree with the full joint Gaussian."""
        graph, data = synthetic_data['graph'], synthetic_data['data']
        params = synthetic_data['params']

        posterior = ExactInferenceEngine(graph).infer(params, data)
        log_lik, means, variances = dense_posterior(graph, params, data)

        assert posterior.log_likelihood == pytest.approx(log_lik, rel=1e-8)
        assert np.allclose(posterior.means.numpy(), means, atol=1e-7)
        assert np.allclose(posterior.variances.numpy(), np.clip(variances, 0, None), atol=1e-7)

    def test_cross_covariances_match_dense(self, abc_template, true_params):
        """Lag-one covariances agree with the full joint Gaussian."""
        graph = unroll(abc_template, 4)
        data = Dataset.from_rows(
            [[None, 1.0, 0.5], [None, None, 0.2], [None, 0.3, None], [None, 1.2, 0.9]],
            n_nodes=3
        )
        posterior = ExactInferenceEngine(graph).infer(true_params, data)

        mean, cov = dense_joint(graph, true_params)
        obs = data.observed_mask(abc_template).reshape(-1)
        gain = cov[:, obs] @ torch.linalg.inv(cov[obs][:, obs])
        post_cov = cov - gain @ cov[obs, :]
        N = 3
        for t in range(1, 4):
            block = post_cov[t * N:(t + 1) * N, (t - 1) * N:t * N]
            assert torch.allclose(posterior.cross_covariances[t], block, atol=1e-8)

    def test_observed_cells_exact(self, synthetic_data):
        """Present observed cells have their value as mean and zero variance."""
        graph, data = synthetic_data['graph'], synthetic_data['data']
        posterior = ExactInferenceEngine(graph).infer(synthetic_data['params'], data)
        evidence = data.observed_mask(graph.template)

        assert torch.equal(posterior.means[evidence], data.values[evidence])
        assert torch.all(posterior.variances[evidence] == 0.0)
        assert torch.all(posterior.variances[~evidence] > 0.0)

    def test_missing_observed_cell_has_variance(self, abc_template, true_params):
        graph = unroll(abc_template, 3)
        data = Dataset.from_rows(
            [[None, 1.0, 0.5], [None, None, 0.2], [None, 0.3, 0.1]], n_nodes=3
        )
        posterior = ExactInferenceEngine(graph).infer(true_params, data)
        mean, var = posterior.marginal(1, 1)
        assert var > 0.0
        assert posterior.marginal(1, 2) == (pytest.approx(0.2), 0.0)

    def test_hidden_column_values_ignored(self, abc_template, true_params):
        """Values placed in a hidden column do not change the result."""
        graph = unroll(abc_template, 3)
        rows = [[None, 1.0, 0.5], [None, 0.4, 0.2], [None, 0.3, 0.1]]
        with_hidden = [[9.0] + row[1:] for row in rows]
        engine = ExactInferenceEngine(graph)
        a = engine.infer(true_params, Dataset.from_rows(rows, 3))
        b = engine.infer(true_params, Dataset.from_rows(with_hidden, 3))
        assert a.log_likelihood == pytest.approx(b.log_likelihood)
        assert torch.allclose(a.means, b.means)

    def test_recovers_hidden_driver(self, abc_template, seed):
        """With nearly noise-free children the hidden driver is pinned down."""
        params = ParameterStore.from_groups(abc_template, {
            0: ([], 0.0, 1.0),
            1: ([1.0], 0.0, 1e-4),
            2: ([-0.5], 0.0, 1e-4),
            3: ([0.8], 0.0, 1.0),
            4: ([1.0], 0.0, 1e-4),
            5: ([-0.5], 0.0, 1e-4),
        })
        data, X = LinearGaussianDBN(abc_template, params).generate_data(
            20, generator=torch.Generator().manual_seed(seed), return_latents=True
        )
        posterior = ExactInferenceEngine(unroll(abc_template, 20)).infer(params, data)

        assert torch.allclose(posterior.means[:, 0], X[:, 0], atol=0.1)
        assert torch.all(posterior.variances[:, 0] < 1e-3)
        assert torch.all(posterior.variances[:, 1:] == 0.0)

    def test_single_time_step(self, abc_template, true_params):
        graph = unroll(abc_template, 1)
        data = Dataset.from_rows([[None, 1.0, 0.5]], n_nodes=3)
        posterior = ExactInferenceEngine(graph).infer(true_params, data)
        log_lik, means, _ = dense_posterior(graph, true_params, data)
        assert posterior.log_likelihood == pytest.approx(log_lik)
        assert posterior.means[0, 0].item() == pytest.approx(means[0, 0])

    def test_no_evidence(self, abc_template, true_params):
        """An all-missing dataset has log-likelihood 0 and prior marginals."""
        graph = unroll(abc_template, 2)
        data = Dataset.from_rows([[None] * 3, [None] * 3], n_nodes=3)
        posterior = ExactInferenceEngine(graph).infer(true_params, data)
        assert posterior.log_likelihood == 0.0
        assert posterior.means[0, 1].item() == pytest.approx(0.5)

    def test_shape_mismatch(self, abc_template, true_params):
        engine = ExactInferenceEngine(unroll(abc_template, 3))
        with pytest.raises(DataShapeError):
            engine.infer(true_params, Dataset.from_rows([[1.0, 2.0, 3.0]] * 2, 3))
        with pytest.raises(DataShapeError):
            engine.infer(true_params, Dataset.from_rows([[1.0, 2.0]] * 3, 2))

    def test_singular_innovation(self, synthetic_data, monkeypatch):
        """A degenerate predictive covariance raises SingularityError."""
        original = ExactInferenceEngine.transition

        def degenerate(parameters, first_slice):
            F, d, Q = original(parameters, first_slice)
            return F, d, torch.zeros_like(Q)

        monkeypatch.setattr(ExactInferenceEngine, "transition", staticmethod(degenerate))
        engine = ExactInferenceEngine(synthetic_data['graph'])
        with pytest.raises(SingularityError) as info:
            engine.infer(synthetic_data['params'], synthetic_data['data'])
        assert info.value.phase == "filter"
        assert info.value.time is not None

    def test_deterministic(self, synthetic_data):
        engine = ExactInferenceEngine(synthetic_data['graph'])
        a = engine.infer(synthetic_data['params'], synthetic_data['data'])
        b = engine.infer(synthetic_data['params'], synthetic_data['data'])
        assert a.log_likelihood == b.log_likelihood
        assert torch.equal(a.means, b.means)


class TestSufficientStatistics:
    """Tests for expected sufficient statistics."""

    def test_vectorized_matches_node_by_node(self, synthetic_data):
        graph, data = synthetic_data['graph'], synthetic_data['data']
        params = ParameterStore(graph.template, default_variance=0.5).initialize(5)
        # keep the persistence weight stable
        params.update(3, [0.5], 0.0, 0.5)
        posterior = ExactInferenceEngine(graph).infer(params, data)

        stats = collect_statistics(graph, posterior)
        assert set(stats) == set(range(graph.template.n_groups))
        for group_id, s in stats.items():
            reference = family_statistics(graph, posterior, group_id)
            assert s.count == reference.count
            assert torch.allclose(s.zz, reference.zz, atol=1e-9)
            assert torch.allclose(s.zx, reference.zx, atol=1e-9)
            assert s.xx == pytest.approx(reference.xx)

    def test_single_slice_omits_later_groups(self, abc_template, true_params):
        graph = unroll(abc_template, 1)
        data = Dataset.from_rows([[None, 1.0, 0.5]], n_nodes=3)
        posterior = ExactInferenceEngine(graph).infer(true_params, data)
        assert set(collect_statistics(graph, posterior)) == {0, 1, 2}

    def test_counts(self, synthetic_data):
        graph = synthetic_data['graph']
        posterior = ExactInferenceEngine(graph).infer(
            synthetic_data['params'], synthetic_data['data']
        )
        stats = collect_statistics(graph, posterior)
        assert stats[0].count == 1
        assert stats[3].count == graph.T - 1


class TestMarginals:
    """Tests for marginal extraction and export."""

    def test_extract(self, synthetic_data):
        graph, data = synthetic_data['graph'], synthetic_data['data']
        marginals = extract_marginals(graph, synthetic_data['params'], data, ["A", 1])
        assert list(marginals) == ["A", "B"]
        assert len(marginals["A"]) == graph.T
        for t, (mean, var) in enumerate(marginals["B"]):
            if data.is_present(t, 1):
                assert mean == data.cell(t, 1)
                assert var == 0.0
            else:
                assert var > 0.0

    def test_to_columns(self, synthetic_data):
        extractor = MarginalExtractor(synthetic_data['graph'])
        columns = extractor.to_columns(synthetic_data['params'], synthetic_data['data'], ["A"])
        means, variances = columns["A"]
        assert means.shape == (synthetic_data['graph'].T,)
        assert np.all(variances > 0)

    def test_unknown_node(self, synthetic_data):
        with pytest.raises(StructureError):
            extract_marginals(
                synthetic_data['graph'], synthetic_data['params'],
                synthetic_data['data'], ["Z"]
            )

    def test_export(self, synthetic_data, tmp_path):
        marginals = extract_marginals(
            synthetic_data['graph'], synthetic_data['params'], synthetic_data['data'], ["A"]
        )
        paths = export_marginals(marginals, tmp_path / "out", stems={"A": "DriverHV"},
                                 suffix="_test")
        names = sorted(path.name for path in paths)
        assert names == ["DriverHVMu_test.txt", "DriverHVSig_test.txt"]

        means = np.loadtxt(tmp_path / "out" / "DriverHVMu_test.txt")
        variances = np.loadtxt(tmp_path / "out" / "DriverHVSig_test.txt")
        assert np.allclose(means, [m for m, _ in marginals["A"]])
        assert np.allclose(variances, [v for _, v in marginals["A"]])
