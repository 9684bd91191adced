from .indexing import IndexTable, observation_windows
from .ode import viral_rhs, sensitivity_rhs
from .priors import PriorConfig
from .dataset import ViralLoadData
from .parameters import ModelParameters, initial_state, positive_rate
from .trajectory import ODESolveError, SolverConfig, predict_virus_load, solve_individual
from .likelihood import log_density, log_likelihood, log_prior, pointwise_log_likelihood
from .generated import GeneratedQuantities, draw_prior, generated_from_draws, generated_quantities
