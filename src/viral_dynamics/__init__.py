"""
Target-cell-limited viral dynamics fitted as a Bayesian ODE model.

The model layer (``viral_dynamics.model``) only needs numpy/scipy. Sampling
lives in ``viral_dynamics.inference`` and needs the ``inference`` extra.
"""

from .version_info import VERSION as __version__
from .model import (
    IndexTable,
    ModelParameters,
    ODESolveError,
    PriorConfig,
    SolverConfig,
    ViralLoadData,
    generated_quantities,
    log_density,
    observation_windows,
    predict_virus_load,
    viral_rhs,
)
