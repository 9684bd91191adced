import math

import numpy as np
import pytest
from numpy.random import default_rng

from viral_dynamics.model.dataset import ViralLoadData
from viral_dynamics.model.generated import generated_from_draws, generated_quantities
from viral_dynamics.model.likelihood import (
    log_density,
    log_likelihood,
    log_prior,
    pointwise_log_likelihood,
)
from viral_dynamics.model.parameters import ModelParameters
from viral_dynamics.model.priors import PriorConfig
from viral_dynamics.model.trajectory import SolverConfig, predict_virus_load


def reference_data():
    return ViralLoadData.from_arrays(
        outcome=[2.3, 3.1, 1.0, 2.0, 2.5],
        time=[0.0, 1.0, 2.0, 0.5, 1.5],
        n_obs=[3, 2],
        dose_level=[1, 2],
        n_dose=2,
    )


def test_pointwise_log_likelihood_is_normal_density():
    """
    log_lik[i] = -0.5*log(2*pi*sigma^2) - (outcome[i]-pred[i])^2/(2*sigma^2)
    """
    outcome = np.array([1.0, -0.5, 3.2])
    pred = np.array([0.8, 0.1, 3.2])
    sigma = 0.7

    ll = pointwise_log_likelihood(outcome, pred, sigma)

    for i in range(3):
        expected = -0.5 * math.log(2 * math.pi * sigma ** 2) - (outcome[i] - pred[i]) ** 2 / (2 * sigma ** 2)
        assert ll[i] == pytest.approx(expected)


def test_log_prior_adds_up_components():
    priors = PriorConfig(a0_mu=1.0, a0_sd=2.0)
    params = ModelParameters.constant(2, 1, a0=1.0, sigma=0.5)

    lp = log_prior(params, priors)

    def normal(x, mu, sd):
        return -0.5 * math.log(2 * math.pi * sd ** 2) - (x - mu) ** 2 / (2 * sd ** 2)

    expected = -0.5  # Exponential(1) at sigma=0.5
    expected += 2 * normal(1.0, 1.0, 2.0)
    expected += 3 * 2 * normal(0.0, 0.0, 1.0)  # b0, g0, e0
    expected += normal(0.0, 2.0, 2.0)  # V0 with default V0_mu=2, V0_sd=2
    assert lp == pytest.approx(expected)


def test_non_positive_sigma_has_zero_prior_mass():
    params = ModelParameters.constant(1, 1, sigma=0.0)
    assert log_prior(params, PriorConfig()) == -np.inf


def test_log_density_is_prior_plus_likelihood():
    data = reference_data()
    priors = PriorConfig()
    params = ModelParameters.constant(2, 2, b0=-2.0, V0=np.log(10.0), sigma=0.8)

    pred = predict_virus_load(params, data)
    expected = log_prior(params, priors) + log_likelihood(params, data, pred)

    assert log_density(params, data, priors) == pytest.approx(expected)


def test_failed_solve_is_rejected_not_raised():
    """An unusable trajectory turns into -inf instead of an exception."""
    data = reference_data()
    params = ModelParameters.constant(2, 2, b0=20.0, V0=5.0)

    lp = log_density(params, data, PriorConfig(), SolverConfig(max_num_steps=50))

    assert lp == -np.inf


def test_generated_quantities_single_draw():
    data = reference_data()
    priors = PriorConfig()
    params = ModelParameters.constant(2, 2, b0=-2.0, V0=1.0, sigma=0.3)

    gq = generated_quantities(params, data, priors, rng=default_rng(1))

    pred = predict_virus_load(params, data)
    assert np.allclose(gq.virus_pred, pred)
    assert np.allclose(gq.log_lik, pointwise_log_likelihood(data.outcome, pred, 0.3))
    assert gq.ypred.shape == (data.n_total,)
    assert set(gq.prior) == {"a0_prior", "b0_prior", "g0_prior", "e0_prior", "V0_prior", "sigma_prior"}
    assert gq.prior["sigma_prior"] > 0


def test_generated_quantities_do_not_touch_inputs():
    outcome = np.array([1.0, 2.0])
    virus_pred = np.array([[[1.1, 1.9]], [[0.9, 2.2]]])  # (chain=2, draw=1, Ntot=2)
    sigma = np.array([[0.5], [0.25]])
    before = virus_pred.copy()

    gq = generated_from_draws(outcome, virus_pred, sigma, PriorConfig(), default_rng(0))

    assert np.array_equal(virus_pred, before)
    assert gq.log_lik.shape == (2, 1, 2)
    assert gq.ypred.shape == (2, 1, 2)
    assert gq.prior["a0_prior"].shape == (2, 1)
    assert gq.log_lik[1, 0, 1] == pytest.approx(pointwise_log_likelihood([2.0], [2.2], 0.25)[0])


def test_posterior_predictive_spread_follows_sigma():
    rng = default_rng(7)
    virus_pred = np.zeros((1, 20000, 1))
    sigma = np.full((1, 20000), 2.0)

    gq = generated_from_draws([0.0], virus_pred, sigma, PriorConfig(), rng)

    assert np.std(gq.ypred) == pytest.approx(2.0, rel=0.05)
    assert np.mean(gq.ypred) == pytest.approx(0.0, abs=0.1)


def test_generated_quantities_shape_mismatch_raises():
    with pytest.raises(ValueError):
        generated_from_draws([0.0], np.zeros((2, 3, 1)), np.ones(3), PriorConfig())
