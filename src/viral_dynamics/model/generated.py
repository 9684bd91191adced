# src/viral_dynamics/model/generated.py
# Quantities computed after the fit for plotting and model comparison. They only
# read virus_pred and sigma, never feed back into the density.

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np
from numpy.random import Generator, default_rng

from .dataset import ViralLoadData
from .likelihood import pointwise_log_likelihood
from .parameters import ModelParameters
from .priors import GROUPS, PriorConfig
from .trajectory import SolverConfig, predict_virus_load


@dataclass
class GeneratedQuantities:
    virus_pred: np.ndarray
    log_lik: np.ndarray
    ypred: np.ndarray
    # one draw per hyperparameter group: a0_prior, ..., V0_prior, sigma_prior
    prior: Dict[str, np.ndarray]


def draw_prior(priors: PriorConfig, rng: Generator, size=None) -> Dict[str, np.ndarray]:
    """One prior draw per hyperparameter group (``size`` draws of each)."""
    out = {}
    for group in GROUPS:
        mu, sd = priors.normal(group)
        out[f"{group}_prior"] = rng.normal(mu, sd, size=size)
    out["sigma_prior"] = rng.exponential(1.0, size=size)
    return out


def generated_from_draws(outcome, virus_pred, sigma, priors: PriorConfig, rng=None) -> GeneratedQuantities:
    """Vectorised generated quantities.

    ``virus_pred`` has shape (..., Ntot) and ``sigma`` the leading shape (...),
    e.g. (chain, draw) from a posterior.
    """
    if rng is None:
        rng = default_rng()
    virus_pred = np.asarray(virus_pred, dtype=float)
    sigma = np.asarray(sigma, dtype=float)
    if sigma.shape != virus_pred.shape[:-1]:
        raise ValueError(
            f"sigma shape {sigma.shape} does not match virus_pred leading shape {virus_pred.shape[:-1]}"
        )
    scale = sigma[..., np.newaxis]

    log_lik = pointwise_log_likelihood(outcome, virus_pred, scale)
    ypred = rng.normal(virus_pred, scale)
    prior = draw_prior(priors, rng, size=sigma.shape if sigma.ndim else None)
    return GeneratedQuantities(virus_pred=virus_pred, log_lik=log_lik, ypred=ypred, prior=prior)


def generated_quantities(
    params: ModelParameters,
    data: ViralLoadData,
    priors: PriorConfig,
    rng: Optional[Generator] = None,
    solver: Optional[SolverConfig] = None,
) -> GeneratedQuantities:
    """Generated quantities for a single parameter draw."""
    virus_pred = predict_virus_load(params, data, solver)
    return generated_from_draws(data.outcome, virus_pred, params.sigma, priors, rng)
