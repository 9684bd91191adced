# src/viral_dynamics/model/ode.py
# Target-cell-limited viral dynamics:
#   T' = -beta*T*V
#   I' =  beta*T*V - gamma*I
#   V' =  alpha*I - eta*V
# The system is autonomous; t is accepted only to match solve_ivp's signature.

import numpy as np

N_STATES = 3
# alpha, beta, gamma, eta, V0
N_SENS = 5
TARGET, INFECTED, VIRUS = 0, 1, 2


def viral_rhs(t, y, alpha, beta, gamma, eta):
    """Derivative of (target, infected, virus).

    No domain check on y: the adaptive solver may probe negative states while
    it searches for a step size.
    """
    y1, y2, y3 = y[0], y[1], y[2]
    infection = beta * y1 * y3
    return np.array([
        -infection,
        infection - gamma * y2,
        alpha * y2 - eta * y3,
    ])


def jacobian(y, alpha, beta, gamma, eta):
    """df/dy of viral_rhs, shape (3, 3)."""
    y1, y3 = y[0], y[2]
    return np.array([
        [-beta * y3, 0.0, -beta * y1],
        [beta * y3, -gamma, beta * y1],
        [0.0, alpha, -eta],
    ])


def parameter_jacobian(y, alpha, beta, gamma, eta):
    """df/d(alpha, beta, gamma, eta, V0), shape (3, 5).

    V0 only enters through the initial state, so its column is zero.
    """
    y1, y2, y3 = y[0], y[1], y[2]
    out = np.zeros((N_STATES, N_SENS))
    out[VIRUS, 0] = y2
    out[TARGET, 1] = -y1 * y3
    out[INFECTED, 1] = y1 * y3
    out[INFECTED, 2] = -y2
    out[VIRUS, 3] = -y3
    return out


def sensitivity_rhs(t, z, alpha, beta, gamma, eta):
    """Forward sensitivity system dS/dt = J S + F stacked under the state.

    z = [y (3), S (3x5 row-major)].
    """
    y = z[:N_STATES]
    S = z[N_STATES:].reshape(N_STATES, N_SENS)
    dy = viral_rhs(t, y, alpha, beta, gamma, eta)
    dS = jacobian(y, alpha, beta, gamma, eta) @ S + parameter_jacobian(y, alpha, beta, gamma, eta)
    return np.concatenate([dy, dS.ravel()])


def initial_sensitivities():
    """S(tstart): only V0 moves the initial virus load."""
    S0 = np.zeros((N_STATES, N_SENS))
    S0[VIRUS, 4] = 1.0
    return S0
