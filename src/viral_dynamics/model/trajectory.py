# src/viral_dynamics/model/trajectory.py
"""
Per-individual trajectories of the viral dynamics ODE.

Each individual is solved independently from ``tstart`` over its own
observation times with scipy's RK45 (Dormand-Prince 5(4), adaptive step).
With ``sensitivities=True`` the forward sensitivity system is integrated
alongside the state, which gives the Jacobian of the predicted virus load with
respect to the latent parameters (a0, b0, g0, e0, V0) needed by gradient-based
samplers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple, Union

import numpy as np
from scipy.integrate import solve_ivp

from .dataset import ViralLoadData
from .ode import N_SENS, N_STATES, VIRUS, initial_sensitivities, sensitivity_rhs, viral_rhs
from .parameters import ModelParameters, initial_state


class ODESolveError(RuntimeError):
    """The solver failed or produced non-finite states for one individual."""


@dataclass
class SolverConfig:
    rtol: float = 1e-6
    atol: float = 1e-8
    method: str = "RK45"
    # None lets solve_ivp choose
    max_step: Optional[float] = None
    # stiff excursions make RK45 crawl; give up after roughly this many
    # steps, counted as right-hand-side evaluations (rejected steps included)
    max_num_steps: int = 100_000

    def __post_init__(self) -> None:
        if self.rtol <= 0 or self.atol <= 0:
            raise ValueError("rtol and atol must be > 0")
        if self.max_step is not None and self.max_step <= 0:
            raise ValueError("max_step must be > 0")
        if self.max_num_steps < 1:
            raise ValueError("max_num_steps must be >= 1")

    def solve_ivp_kwargs(self) -> dict:
        kwargs = {"method": self.method, "rtol": self.rtol, "atol": self.atol}
        if self.max_step is not None:
            kwargs["max_step"] = self.max_step
        return kwargs


class _StepBudgetExceeded(Exception):
    pass


class _BudgetedRHS:
    """Counts right-hand-side evaluations and aborts past the budget."""

    # RK45 evaluates the rhs 6 times per step (FSAL)
    EVALS_PER_STEP = 6

    def __init__(self, fun, max_num_steps):
        self.fun = fun
        self.max_evals = self.EVALS_PER_STEP * max_num_steps + 2
        self.n_evals = 0

    def __call__(self, t, y, *args):
        self.n_evals += 1
        if self.n_evals > self.max_evals:
            raise _StepBudgetExceeded
        return self.fun(t, y, *args)


def solve_individual(times, y0, rates, tstart=0.0, solver=None, sensitivities=False):
    """Solve one individual's ODE at its observation times.

    Args:
        times: observation times (any order, repeats allowed), all >= tstart
        y0: initial state at tstart, length 3
        rates: (alpha, beta, gamma, eta)
        tstart: start of integration
        solver: SolverConfig, defaults used when None
        sensitivities: also integrate dS/dt, S = d state / d(alpha, beta, gamma, eta, V0)
    Returns:
        array (len(times), 3), or (len(times), 3 + 15) with the flattened
        sensitivities appended when ``sensitivities`` is set
    Raises:
        ODESolveError
        ValueError: empty times or a time before tstart
    """
    solver = solver or SolverConfig()
    times = np.asarray(times, dtype=float)
    alpha, beta, gamma, eta = (float(r) for r in rates)

    state0 = np.asarray(y0, dtype=float)
    fun = viral_rhs
    if sensitivities:
        state0 = np.concatenate([state0, initial_sensitivities().ravel()])
        fun = sensitivity_rhs

    grid, inverse = np.unique(times, return_inverse=True)
    if grid.size == 0:
        raise ValueError("at least one observation time is required")
    if grid[0] < tstart:
        raise ValueError(f"observation time {grid[0]} is before tstart={tstart}")
    out = np.empty((grid.size, state0.size))
    after = grid > tstart
    # times equal to tstart are the initial state itself
    out[~after] = state0

    if np.any(after):
        budget = _BudgetedRHS(fun, solver.max_num_steps)
        try:
            with np.errstate(over="raise", invalid="raise"):
                sol = solve_ivp(
                    budget,
                    (tstart, grid[-1]),
                    state0,
                    t_eval=grid[after],
                    args=(alpha, beta, gamma, eta),
                    **solver.solve_ivp_kwargs(),
                )
        except FloatingPointError as exc:
            raise ODESolveError(f"numerical overflow during integration: {exc}") from exc
        except _StepBudgetExceeded:
            raise ODESolveError(
                f"exceeded {budget.max_evals} right-hand-side evaluations "
                f"(max_num_steps={solver.max_num_steps}) before t={grid[-1]}"
            ) from None
        if not sol.success:
            raise ODESolveError(sol.message)
        out[after] = sol.y.T

    if not np.all(np.isfinite(out)):
        raise ODESolveError("solver returned non-finite states")

    return out[inverse.ravel()]


def predict_virus_load(
    params: ModelParameters,
    data: ViralLoadData,
    solver: Optional[SolverConfig] = None,
    sensitivities: bool = False,
) -> Union[np.ndarray, Tuple[np.ndarray, np.ndarray]]:
    """Predicted virus load (third state) at every observation.

    Returns ``virus_pred`` of length Ntot, or ``(virus_pred, jac)`` when
    ``sensitivities`` is set, where ``jac[n]`` holds d virus_pred[n] /
    d(a0, b0, g0, e0, V0) for the individual and dose group owning row n.
    """
    if params.n_individuals != data.n_individuals:
        raise ValueError(
            f"parameters cover {params.n_individuals} individuals, data has {data.n_individuals}"
        )
    if params.V0.size != data.n_dose:
        raise ValueError(f"V0 has {params.V0.size} entries, data has {data.n_dose} dose groups")

    solver = solver or SolverConfig()
    rates = params.rates()
    virus_pred = np.empty(data.n_total)
    jac = np.empty((data.n_total, N_SENS)) if sensitivities else None

    for i, window in enumerate(data.index):
        y0 = initial_state(params.V0[data.dose_level[i] - 1])
        try:
            states = solve_individual(
                data.time[window], y0, rates[i], data.tstart, solver, sensitivities=sensitivities
            )
        except ODESolveError as exc:
            raise ODESolveError(f"individual {i + 1}: {exc}") from exc

        virus_pred[window] = states[:, VIRUS]
        if sensitivities:
            S = states[:, N_STATES:].reshape(-1, N_STATES, N_SENS)[:, VIRUS, :]
            # chain rule through rate = exp(latent); V0 enters directly
            jac[window, :4] = S[:, :4] * rates[i]
            jac[window, 4] = S[:, 4]

    if sensitivities:
        return virus_pred, jac
    return virus_pred
