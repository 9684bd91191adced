# src/viral_dynamics/analytic/closed_form.py
"""
Closed-form limits of the viral dynamics ODE, used to check the numerical solver.
"""

from __future__ import annotations

import numpy as np


def no_infection_solution(t, y0, alpha, gamma, eta, tstart=0.0):
    """Exact solution when beta = 0.

    Target cells stay constant, infected cells decay at rate gamma and the
    virus is driven by alpha*I - eta*V:

        V(s) = V0 exp(-eta s) + alpha I0 (exp(-gamma s) - exp(-eta s)) / (eta - gamma)

    with the limit alpha I0 s exp(-gamma s) when eta == gamma.

    Returns:
        array (len(t), 3)
    """
    s = np.asarray(t, dtype=float) - tstart
    T0, I0, V0 = (float(v) for v in y0)

    target = np.full_like(s, T0)
    infected = I0 * np.exp(-gamma * s)
    # exact equality only; near-equal rates keep the general formula
    if eta == gamma:
        driven = alpha * I0 * s * np.exp(-gamma * s)
    else:
        driven = alpha * I0 * (np.exp(-gamma * s) - np.exp(-eta * s)) / (eta - gamma)
    virus = V0 * np.exp(-eta * s) + driven

    return np.column_stack([target, infected, virus])


def is_fixed_point(y, alpha, beta, gamma, eta, rhs, atol=0.0):
    """True when rhs vanishes at y."""
    return bool(np.all(np.abs(rhs(0.0, np.asarray(y, dtype=float), alpha, beta, gamma, eta)) <= atol))
