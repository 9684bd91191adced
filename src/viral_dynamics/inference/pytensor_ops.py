# src/viral_dynamics/inference/pytensor_ops.py
"""
Pytensor Ops that put the ODE solve inside a PyMC graph.

``VirusLoadOp`` maps (a0, b0, g0, e0, V0) to the predicted virus load at every
observation. Its gradient is ``VirusLoadGradOp``, a vector-Jacobian product
built from the forward sensitivities, so NUTS can differentiate through the
solver. Both Ops share one sensitivity solve per point: NUTS asks for the
log-density and its gradient at the same inputs, so the forward pass solves
with sensitivities and the gradient pass reuses the cached Jacobian.

A failed solve yields NaN: the log-density becomes NaN, NUTS flags the
transition as divergent and rejects it instead of aborting the chain.
"""

import logging

import numpy as np
import pytensor.tensor as pt
from pytensor.graph.basic import Apply
from pytensor.graph.op import Op

from ..model.dataset import ViralLoadData
from ..model.ode import N_SENS
from ..model.parameters import ModelParameters
from ..model.trajectory import ODESolveError, SolverConfig, predict_virus_load

logger = logging.getLogger(__name__)


def _latent(inputs):
    a0, b0, g0, e0, V0 = inputs
    # sigma does not enter the trajectory
    return ModelParameters(a0=a0, b0=b0, g0=g0, e0=e0, V0=V0, sigma=1.0)


class SensitivitySolveCache:
    """Remembers the last (virus_pred, jac) solve, keyed on the latent values."""

    def __init__(self, data: ViralLoadData, solver: SolverConfig):
        self.data = data
        self.solver = solver
        self.n_solves = 0
        self._key = None
        self._value = None

    def solve(self, latent):
        key = tuple(np.asarray(x, dtype=float).tobytes() for x in latent)
        if key != self._key:
            self.n_solves += 1
            try:
                value = predict_virus_load(_latent(latent), self.data, self.solver, sensitivities=True)
            except ODESolveError as exc:
                logger.debug("Rejecting proposal: %s", exc)
                value = (
                    np.full(self.data.n_total, np.nan),
                    np.full((self.data.n_total, N_SENS), np.nan),
                )
            self._key, self._value = key, value
        return self._value


class VirusLoadGradOp(Op):
    """Vector-Jacobian product of VirusLoadOp: (latents, g) -> 5 gradients."""

    def __init__(self, data: ViralLoadData, cache: SensitivitySolveCache):
        self.data = data
        self.cache = cache
        self._owner = data.index.owner()
        self._dose = data.observation_dose()

    def make_node(self, a0, b0, g0, e0, V0, g_out):
        inputs = [pt.as_tensor_variable(x) for x in (a0, b0, g0, e0, V0, g_out)]
        # gradients share the type (and static shape) of the latent inputs
        outputs = [x.type() for x in inputs[:N_SENS]]
        return Apply(self, inputs, outputs)

    def perform(self, node, inputs, output_storage):
        *latent, g_out = inputs
        _, jac = self.cache.solve(latent)

        weighted = jac * np.asarray(g_out, dtype=float)[:, np.newaxis]
        n_ind = self.data.n_individuals
        for k in range(4):
            output_storage[k][0] = np.bincount(self._owner, weights=weighted[:, k], minlength=n_ind)
        output_storage[4][0] = np.bincount(self._dose, weights=weighted[:, 4], minlength=self.data.n_dose)


class VirusLoadOp(Op):
    """(a0, b0, g0, e0, V0) -> virus_pred[Ntot]."""

    def __init__(self, data: ViralLoadData, solver: SolverConfig = None):
        self.data = data
        self.solver = solver or SolverConfig()
        self.cache = SensitivitySolveCache(data, self.solver)
        self.grad_op = VirusLoadGradOp(data, self.cache)

    def make_node(self, a0, b0, g0, e0, V0):
        inputs = [pt.as_tensor_variable(x) for x in (a0, b0, g0, e0, V0)]
        return Apply(self, inputs, [pt.dvector()])

    def perform(self, node, inputs, output_storage):
        virus_pred, _ = self.cache.solve(inputs)
        # downstream ops may work in place; keep the cached copy intact
        output_storage[0][0] = virus_pred.copy()

    def grad(self, inputs, output_grads):
        return list(self.grad_op(*inputs, output_grads[0]))
