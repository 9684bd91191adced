# src/viral_dynamics/model/likelihood.py
"""
Priors, likelihood and total log-density of the viral-load model.

    sigma          ~ Exponential(1)
    a0, b0, g0, e0 ~ Normal(mu, sd)          per individual
    V0             ~ Normal(V0_mu, V0_sd)    per dose group
    outcome[n]     ~ Normal(virus_pred[n], sigma)
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np
from scipy.stats import expon, norm

from .dataset import ViralLoadData
from .parameters import ModelParameters
from .priors import PriorConfig
from .trajectory import ODESolveError, SolverConfig, predict_virus_load

logger = logging.getLogger(__name__)


def log_prior(params: ModelParameters, priors: PriorConfig) -> float:
    if not params.sigma > 0:
        return -np.inf
    lp = float(expon.logpdf(params.sigma))
    for group in ("a0", "b0", "g0", "e0", "V0"):
        mu, sd = priors.normal(group)
        lp += float(np.sum(norm.logpdf(getattr(params, group), loc=mu, scale=sd)))
    return lp


def pointwise_log_likelihood(outcome, virus_pred, sigma) -> np.ndarray:
    """Normal log-density of each observation given its prediction."""
    return norm.logpdf(np.asarray(outcome, dtype=float), loc=np.asarray(virus_pred, dtype=float), scale=sigma)


def log_likelihood(params: ModelParameters, data: ViralLoadData, virus_pred) -> float:
    return float(np.sum(pointwise_log_likelihood(data.outcome, virus_pred, params.sigma)))


def log_density(
    params: ModelParameters,
    data: ViralLoadData,
    priors: PriorConfig,
    solver: Optional[SolverConfig] = None,
) -> float:
    """Unnormalised log posterior at ``params``.

    A failed ODE solve makes the point invalid: the result is -inf so the
    calling sampler rejects the proposal.
    """
    lp = log_prior(params, priors)
    if not np.isfinite(lp):
        return -np.inf
    try:
        virus_pred = predict_virus_load(params, data, solver)
    except ODESolveError as exc:
        logger.debug("Rejecting proposal: %s", exc)
        return -np.inf
    return lp + log_likelihood(params, data, virus_pred)
