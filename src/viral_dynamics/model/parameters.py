# src/viral_dynamics/model/parameters.py
from __future__ import annotations

from dataclasses import dataclass

import numpy as np

# log(1e8) target cells at tstart
LOG_TARGET_CELLS0 = float(np.log(1e8))

_TINY = np.finfo(float).tiny


def positive_rate(x):
    """exp map from the unconstrained scale, floored so it never underflows to 0."""
    return np.maximum(np.exp(np.asarray(x, dtype=float)), _TINY)


@dataclass
class ModelParameters:
    """One point in parameter space.

    a0, b0, g0, e0 have one entry per individual, V0 one per dose group.
    """

    a0: np.ndarray
    b0: np.ndarray
    g0: np.ndarray
    e0: np.ndarray
    V0: np.ndarray
    sigma: float

    def __post_init__(self) -> None:
        for name in ("a0", "b0", "g0", "e0", "V0"):
            setattr(self, name, np.atleast_1d(np.asarray(getattr(self, name), dtype=float)))
        n = self.a0.size
        if any(getattr(self, name).shape != (n,) for name in ("b0", "g0", "e0")):
            raise ValueError("a0, b0, g0 and e0 must be 1D with one entry per individual")
        if self.V0.ndim != 1:
            raise ValueError("V0 must be 1D with one entry per dose group")
        self.sigma = float(self.sigma)

    @property
    def n_individuals(self) -> int:
        return int(self.a0.size)

    def rates(self) -> np.ndarray:
        """(Nind, 4) matrix of alpha, beta, gamma, eta."""
        return positive_rate(np.column_stack([self.a0, self.b0, self.g0, self.e0]))

    @classmethod
    def constant(cls, n_individuals, n_dose, a0=0.0, b0=0.0, g0=0.0, e0=0.0, V0=0.0, sigma=1.0):
        """Same latent values for every individual / dose group."""
        return cls(
            a0=np.full(n_individuals, a0, dtype=float),
            b0=np.full(n_individuals, b0, dtype=float),
            g0=np.full(n_individuals, g0, dtype=float),
            e0=np.full(n_individuals, e0, dtype=float),
            V0=np.full(n_dose, V0, dtype=float),
            sigma=sigma,
        )


def initial_state(V0):
    """[log(1e8), 0, V0]: fixed target cells, no infected cells."""
    return np.array([LOG_TARGET_CELLS0, 0.0, float(V0)])
