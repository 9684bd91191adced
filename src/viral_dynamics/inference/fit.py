# src/viral_dynamics/inference/fit.py
"""
Fit the viral-load model with PyMC's NUTS sampler and export the draws.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import numpy as np
import pandas as pd
from numpy.random import default_rng

from ..model.dataset import ViralLoadData
from ..model.generated import GeneratedQuantities, generated_from_draws
from ..model.priors import GROUPS, PriorConfig
from ..model.trajectory import SolverConfig

logger = logging.getLogger(__name__)

PARAM_NAMES = ("sigma", "a0", "b0", "g0", "e0", "V0")


def _require_pymc():
    try:
        import pymc as pm  # type: ignore
        import arviz as az  # type: ignore
    except Exception as e:  # noqa: BLE001
        raise ImportError(
            "PyMC/ArviZ is required for sampling. "
            "Install with: pip install 'viral_dynamics[inference]'"
        ) from e
    return pm, az


@dataclass
class FitConfig:
    draws: int = 1000
    tune: int = 1000
    chains: int = 4
    # one process per chain when None
    cores: Optional[int] = 1
    target_accept: float = 0.8
    seed: Optional[int] = 42
    progressbar: bool = False
    out_dir: str = "output"

    def __post_init__(self) -> None:
        if self.draws < 1 or self.chains < 1:
            raise ValueError("draws and chains must be >= 1")
        if self.tune < 0:
            raise ValueError("tune must be >= 0")
        if not 0.0 < self.target_accept < 1.0:
            raise ValueError("target_accept must lie in (0, 1)")


def build_model(data: ViralLoadData, priors: PriorConfig, solver: Optional[SolverConfig] = None):
    """PyMC model with the ODE solve as the mean of the Normal likelihood."""
    pm, _ = _require_pymc()
    from .pytensor_ops import VirusLoadOp

    virus_load = VirusLoadOp(data, solver)
    coords = {
        "individual": np.arange(1, data.n_individuals + 1),
        "dose": np.arange(1, data.n_dose + 1),
        "obs": np.arange(1, data.n_total + 1),
    }

    with pm.Model(coords=coords) as model:
        sigma = pm.Exponential("sigma", lam=1.0)
        latent = {}
        for group in ("a0", "b0", "g0", "e0"):
            mu, sd = priors.normal(group)
            latent[group] = pm.Normal(group, mu=mu, sigma=sd, dims="individual")
        V0 = pm.Normal("V0", mu=priors.V0_mu, sigma=priors.V0_sd, dims="dose")

        virus_pred = pm.Deterministic(
            "virus_pred",
            virus_load(latent["a0"], latent["b0"], latent["g0"], latent["e0"], V0),
            dims="obs",
        )
        pm.Normal("outcome", mu=virus_pred, sigma=sigma, observed=data.outcome, dims="obs")

    return model


def fit_model(
    data: ViralLoadData,
    priors: PriorConfig,
    cfg: Optional[FitConfig] = None,
    solver: Optional[SolverConfig] = None,
):
    """Sample the posterior. Returns (model, inference data)."""
    pm, _ = _require_pymc()
    cfg = cfg or FitConfig()

    model = build_model(data, priors, solver)
    logger.info(
        "Sampling %d chains x %d draws (%d tuning) for %d individuals, %d observations",
        cfg.chains, cfg.draws, cfg.tune, data.n_individuals, data.n_total,
    )
    with model:
        idata = pm.sample(
            draws=cfg.draws,
            tune=cfg.tune,
            chains=cfg.chains,
            cores=cfg.cores,
            target_accept=cfg.target_accept,
            random_seed=cfg.seed,
            progressbar=cfg.progressbar,
        )

    n_div = int(np.sum(idata.sample_stats["diverging"].values))
    if n_div:
        logger.warning("%d divergent transitions (includes rejected ODE solves)", n_div)
    return model, idata


def posterior_arrays(idata) -> Dict[str, np.ndarray]:
    """Posterior draws as plain arrays with leading (chain, draw) dims."""
    post = idata.posterior
    return {name: np.asarray(post[name].values) for name in PARAM_NAMES + ("virus_pred",)}


def posterior_generated(
    posterior: Mapping[str, np.ndarray],
    data: ViralLoadData,
    priors: PriorConfig,
    seed: Optional[int] = None,
) -> GeneratedQuantities:
    """log_lik, ypred and prior draws for every posterior draw."""
    return generated_from_draws(
        data.outcome, posterior["virus_pred"], posterior["sigma"], priors, default_rng(seed)
    )


def draws_to_frame(posterior: Mapping[str, np.ndarray], gq: GeneratedQuantities) -> pd.DataFrame:
    """One row per draw, Stan-style column names (``a0.1``, ``log_lik.12``)."""
    n_chain, n_draw = np.shape(posterior["sigma"])
    n_rows = n_chain * n_draw
    columns = {
        "chain": np.repeat(np.arange(n_chain), n_draw),
        "draw": np.tile(np.arange(n_draw), n_chain),
    }

    def add(name, values):
        values = np.asarray(values)
        if values.ndim == 2:
            columns[name] = values.reshape(n_rows)
            return
        flat = values.reshape(n_rows, -1)
        for j in range(flat.shape[1]):
            columns[f"{name}.{j + 1}"] = flat[:, j]

    for name in PARAM_NAMES:
        add(name, posterior[name])
    for group in GROUPS + ("sigma",):
        add(f"{group}_prior", gq.prior[f"{group}_prior"])
    add("ypred", gq.ypred)
    add("log_lik", gq.log_lik)

    return pd.DataFrame(columns)


def write_outputs(idata, data: ViralLoadData, priors: PriorConfig, out_dir, seed=None) -> Tuple[Path, Path]:
    """Write summary.csv (arviz) and draws.csv (draws + generated quantities)."""
    _, az = _require_pymc()
    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)

    summary_path = out / "summary.csv"
    az.summary(idata, var_names=list(PARAM_NAMES)).to_csv(summary_path)

    posterior = posterior_arrays(idata)
    gq = posterior_generated(posterior, data, priors, seed=seed)
    draws_path = out / "draws.csv"
    draws_to_frame(posterior, gq).to_csv(draws_path, index=False)

    logger.info("Summary written to: %s", summary_path)
    logger.info("Draws written to: %s", draws_path)
    return summary_path, draws_path
