"""
Shared fixtures for all tests.

This module provides a small template with one hidden driver, known
parameters for it, and synthetic data sampled from them.

Author: Sean Plummer
Date: October 2026
"""

import pytest
import torch
import numpy as np

from foodweb_dbn import build_template, unroll, ParameterStore, LinearGaussianDBN


@pytest.fixture
def seed():
    """Standard random seed for reproducibility."""
    return 42


@pytest.fixture
def abc_template():
    """Hidden driver A with persistence; B and C observed children of A."""
    return build_template(
        3,
        intra_edges=[("A", "B"), ("A", "C")],
        inter_edges=[("A", "A")],
        observed=["B", "C"],
        names=["A", "B", "C"]
    )


@pytest.fixture
def true_params(abc_template):
    """Known parameters for the A/B/C template."""
    return ParameterStore.from_groups(abc_template, {
        0: ([], 0.0, 1.0),
        1: ([1.0], 0.5, 0.2),
        2: ([-0.5], 1.0, 0.3),
        3: ([0.8], 0.1, 0.5),
        4: ([1.0], 0.5, 0.2),
        5: ([-0.5], 1.0, 0.3),
    })


@pytest.fixture
def synthetic_data(abc_template, true_params, seed):
    """Data sampled from the true parameters, with some observed cells dropped."""
    dbn = LinearGaussianDBN(abc_template, true_params)
    generator = torch.Generator().manual_seed(seed)
    data, X = dbn.generate_data(
        horizon=15,
        generator=generator,
        return_latents=True,
        missing_rate=0.2
    )
    return {
        'data': data,
        'X': X,
        'graph': unroll(abc_template, horizon=15),
        'params': true_params
    }


@pytest.fixture
def mock_trace():
    """Mock log-likelihood trace for testing diagnostics."""
    return [-120.0, -100.0, -95.0, -94.0, -93.99]


@pytest.fixture(autouse=True)
def set_random_seeds(seed):
    """Automatically set random seeds before each test."""
    torch.manual_seed(seed)
    np.random.seed(seed)
