# src/viral_dynamics/simulate/simulate_dataset.py
"""
Synthetic viral-load datasets drawn from the model itself.

Parameters are drawn from the prior (or given), trajectories solved on a shared
observation grid and Normal noise added. Handy for checking that a fit
recovers known values, and for the tests.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence, Tuple
import logging

import numpy as np
from numpy.random import Generator, default_rng

from ..model.dataset import ViralLoadData
from ..model.parameters import ModelParameters
from ..model.priors import PriorConfig
from ..model.trajectory import SolverConfig, predict_virus_load

# Start logger
logger = logging.getLogger(__name__)


@dataclass
class SimConfig:
    n_individuals: int = 6
    n_dose: int = 2
    times: Sequence[float] = (1.0, 2.0, 3.0, 4.0, 5.0, 6.0, 7.0)
    tstart: float = 0.0
    sigma: Optional[float] = 0.5
    priors: PriorConfig = field(default_factory=PriorConfig)
    seed: Optional[int] = None
    out_path: str = "data/simulated_viral_load.csv"

    def __post_init__(self) -> None:
        if self.n_individuals < 1 or self.n_dose < 1:
            raise ValueError("n_individuals and n_dose must be >= 1")
        if len(self.times) == 0:
            raise ValueError("at least one observation time is required")
        if min(self.times) < self.tstart:
            raise ValueError("observation times must be >= tstart")
        if self.sigma is not None and self.sigma <= 0:
            raise ValueError("sigma must be > 0")


def assign_doses(n_individuals: int, n_dose: int) -> np.ndarray:
    """Round-robin dose levels 1..n_dose."""
    return np.arange(n_individuals) % n_dose + 1


def draw_parameters(priors: PriorConfig, n_individuals: int, n_dose: int, rng: Generator, sigma=None) -> ModelParameters:
    """Prior draw of every latent parameter; ``sigma`` fixed when given."""
    draws = {}
    for group in ("a0", "b0", "g0", "e0"):
        mu, sd = priors.normal(group)
        draws[group] = rng.normal(mu, sd, size=n_individuals)
    draws["V0"] = rng.normal(priors.V0_mu, priors.V0_sd, size=n_dose)
    draws["sigma"] = rng.exponential(1.0) if sigma is None else sigma
    return ModelParameters(**draws)


def simulate_dataset(
    cfg: SimConfig,
    params: Optional[ModelParameters] = None,
    solver: Optional[SolverConfig] = None,
) -> Tuple[ViralLoadData, ModelParameters]:
    """Simulate one dataset; returns the data and the parameters that made it."""
    rng = default_rng(cfg.seed)
    if params is None:
        params = draw_parameters(cfg.priors, cfg.n_individuals, cfg.n_dose, rng, sigma=cfg.sigma)

    times = np.asarray(cfg.times, dtype=float)
    n_obs = np.full(cfg.n_individuals, times.size)
    dose_level = assign_doses(cfg.n_individuals, cfg.n_dose)

    # outcome is filled in after the noiseless trajectories are known
    skeleton = ViralLoadData.from_arrays(
        outcome=np.zeros(n_obs.sum()),
        time=np.tile(times, cfg.n_individuals),
        n_obs=n_obs,
        dose_level=dose_level,
        n_dose=cfg.n_dose,
        tstart=cfg.tstart,
    )
    virus_pred = predict_virus_load(params, skeleton, solver)
    outcome = rng.normal(virus_pred, params.sigma)

    data = ViralLoadData.from_arrays(
        outcome=outcome,
        time=skeleton.time,
        n_obs=n_obs,
        dose_level=dose_level,
        n_dose=cfg.n_dose,
        tstart=cfg.tstart,
    )
    logger.debug("Simulated %d observations for %d individuals", data.n_total, data.n_individuals)
    return data, params


def write_dataset(data: ViralLoadData, out_path) -> Path:
    csv_path = Path(out_path)
    csv_path.parent.mkdir(parents=True, exist_ok=True)
    data.to_frame().to_csv(csv_path, index=False)
    logger.info("CSV written to: %s", csv_path)
    return csv_path
