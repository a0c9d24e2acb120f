"""
Metric utilities for evaluating posterior estimates.

This module provides metrics for comparing posterior means with known values
(synthetic experiments) and for checking the calibration of posterior
variances.

Functions
---------
mean_squared_error
    Compute MSE between estimates and true values.
root_mean_squared_error
    Compute RMSE.
pearson_correlation
    Correlation of estimates with true values.
compute_coverage
    Empirical coverage of Gaussian posterior intervals.
relative_error
    Mean relative error.

Author: Sean Plummer
Date: October 2026
"""

from typing import Optional

import torch
import numpy as np
from scipy.stats import norm, pearsonr


def mean_squared_error(
    y_true: torch.Tensor,
    y_pred: torch.Tensor,
    mask: Optional[torch.Tensor] = None
) -> float:
    """
    Compute mean squared error.

    Parameters
    ----------
    y_true : torch.Tensor
        True values.
    y_pred : torch.Tensor
        Predicted values.
    mask : torch.Tensor, optional
        Binary mask for selecting elements (1 = include, 0 = exclude).

    Returns
    -------
    mse : float
        Mean squared error.
    """
    squared_error = (torch.as_tensor(y_true) - torch.as_tensor(y_pred)) ** 2

    if mask is not None:
        mask = torch.as_tensor(mask, dtype=squared_error.dtype)
        squared_error = squared_error * mask
        n_elements = mask.sum().item()
    else:
        n_elements = squared_error.numel()

    if n_elements == 0:
        return 0.0

    return squared_error.sum().item() / n_elements


def root_mean_squared_error(
    y_true: torch.Tensor,
    y_pred: torch.Tensor,
    mask: Optional[torch.Tensor] = None
) -> float:
    """Compute root mean squared error."""
    return float(np.sqrt(mean_squared_error(y_true, y_pred, mask)))


def pearson_correlation(
    y_true: torch.Tensor,
    y_pred: torch.Tensor,
    mask: Optional[torch.Tensor] = None
) -> float:
    """
    Compute Pearson correlation coefficient.

    Parameters
    ----------
    y_true : torch.Tensor
        True values.
    y_pred : torch.Tensor
        Predicted values.
    mask : torch.Tensor, optional
        Binary mask for selecting elements.

    Returns
    -------
    corr : float
        Pearson correlation coefficient, 0.0 if fewer than two elements.

    Notes
    -----
    A hidden variable learned by EM is only identified up to sign and
    scale, so recovery is usually judged by the absolute correlation.
    """
    y_true = torch.as_tensor(y_true)
    y_pred = torch.as_tensor(y_pred)
    if mask is not None:
        keep = torch.as_tensor(mask) > 0
        y_true, y_pred = y_true[keep], y_pred[keep]
    else:
        y_true, y_pred = y_true.flatten(), y_pred.flatten()

    if len(y_true) < 2:
        return 0.0

    corr, _ = pearsonr(y_true.cpu().numpy(), y_pred.cpu().numpy())
    return float(corr)


def compute_coverage(
    means: torch.Tensor,
    variances: torch.Tensor,
    targets: torch.Tensor,
    level: float = 0.95
) -> float:
    """
    Empirical coverage of central Gaussian posterior intervals.

    Parameters
    ----------
    means : torch.Tensor
        Posterior means.
    variances : torch.Tensor
        Posterior variances.
    targets : torch.Tensor
        True values.
    level : float, default=0.95
        Nominal coverage of each interval.

    Returns
    -------
    coverage : float
        Fraction of targets inside ``mean +/- z * sd``.

    Examples
    --------
    >>> coverage = compute_coverage(post_mean, post_var, X_true[:, 0])
    """
    means = torch.as_tensor(means, dtype=torch.float64)
    sd = torch.as_tensor(variances, dtype=torch.float64).clamp_min(0.0).sqrt()
    targets = torch.as_tensor(targets, dtype=torch.float64)
    z = float(norm.ppf(0.5 + level / 2))
    inside = (targets >= means - z * sd) & (targets <= means + z * sd)
    return inside.double().mean().item()


def relative_error(
    y_true: torch.Tensor,
    y_pred: torch.Tensor,
    epsilon: float = 1e-8
) -> float:
    """
    Compute mean relative error.

    Returns
    -------
    rel_error : float
        Mean relative error: mean(|y_true - y_pred| / (|y_true| + epsilon))
    """
    y_true = torch.as_tensor(y_true)
    abs_error = torch.abs(y_true - torch.as_tensor(y_pred))
    denominator = torch.abs(y_true) + epsilon
    return (abs_error / denominator).mean().item()
