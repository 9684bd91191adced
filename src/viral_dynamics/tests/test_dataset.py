import json

import numpy as np
import pandas as pd
import pytest

from viral_dynamics.model.dataset import ViralLoadData
from viral_dynamics.model.priors import PriorConfig


def make_data(**overrides):
    kwargs = dict(
        outcome=[1.0, 2.0, 3.0, 4.0, 5.0],
        time=[1.0, 2.0, 3.0, 1.0, 2.0],
        individual=[1, 1, 1, 2, 2],
        n_obs=[3, 2],
        dose_level=[1, 2],
        n_dose=2,
        tstart=0.0,
    )
    kwargs.update(overrides)
    return ViralLoadData(**kwargs)


def test_valid_record_exposes_sizes_and_windows():
    data = make_data()
    assert data.n_total == 5
    assert data.n_individuals == 2
    assert np.array_equal(data.index.start, [0, 3])
    assert np.array_equal(data.observation_dose(), [0, 0, 0, 1, 1])


def test_counts_not_summing_to_total_raise():
    with pytest.raises(ValueError):
        make_data(n_obs=[3, 3])


def test_non_positive_counts_raise():
    with pytest.raises(ValueError):
        make_data(n_obs=[5, 0], dose_level=[1, 1])


@pytest.mark.parametrize("dose_level", [[0, 1], [1, 3], [1.5, 1]])
def test_dose_level_out_of_range_raises(dose_level):
    with pytest.raises(ValueError):
        make_data(dose_level=dose_level)


def test_id_column_inconsistent_with_counts_raises():
    with pytest.raises(ValueError):
        make_data(individual=[1, 1, 2, 2, 2])


def test_time_before_tstart_raises():
    with pytest.raises(ValueError):
        make_data(tstart=1.5)


def test_mismatched_lengths_raise():
    with pytest.raises(ValueError):
        make_data(time=[1.0, 2.0, 3.0])


def test_non_finite_outcome_raises():
    with pytest.raises(ValueError):
        make_data(outcome=[1.0, np.nan, 3.0, 4.0, 5.0])


def test_from_frame_groups_and_relabels():
    """
    Rows may arrive interleaved and with arbitrary ids; they are grouped by
    id, ordered by time and relabelled 1..Nind.
    """
    df = pd.DataFrame({
        "id": ["b", "a", "b", "a", "a"],
        "time": [2.0, 3.0, 1.0, 1.0, 2.0],
        "outcome": [20.0, 13.0, 21.0, 11.0, 12.0],
        "dose_level": [2, 1, 2, 1, 1],
    })

    data = ViralLoadData.from_frame(df)

    assert np.array_equal(data.n_obs, [3, 2])
    assert np.array_equal(data.individual, [1, 1, 1, 2, 2])
    assert np.array_equal(data.time, [1.0, 2.0, 3.0, 1.0, 2.0])
    assert np.array_equal(data.outcome, [11.0, 12.0, 13.0, 21.0, 20.0])
    assert np.array_equal(data.dose_level, [1, 2])
    assert data.n_dose == 2


def test_from_frame_rejects_mixed_doses():
    df = pd.DataFrame({"id": [1, 1], "time": [1.0, 2.0], "outcome": [0.0, 0.0], "dose_level": [1, 2]})
    with pytest.raises(ValueError):
        ViralLoadData.from_frame(df)


def test_from_frame_rejects_fractional_dose():
    df = pd.DataFrame({"id": [1, 1], "time": [1.0, 2.0], "outcome": [0.0, 0.0], "dose_level": [1.5, 1.5]})
    with pytest.raises(ValueError, match="whole numbers"):
        ViralLoadData.from_frame(df, n_dose=2)


def test_from_frame_missing_column_raises():
    with pytest.raises(ValueError):
        ViralLoadData.from_frame(pd.DataFrame({"id": [1], "time": [1.0]}))


def test_to_frame_round_trips_through_from_frame():
    data = make_data()
    again = ViralLoadData.from_frame(data.to_frame(), n_dose=2)
    assert np.array_equal(again.outcome, data.outcome)
    assert np.array_equal(again.dose_level, data.dose_level)


def test_prior_sd_must_be_positive():
    with pytest.raises(ValueError):
        PriorConfig(g0_sd=0.0)
    with pytest.raises(ValueError):
        PriorConfig(V0_sd=-1.0)


def test_prior_from_json(tmp_path):
    path = tmp_path / "priors.json"
    path.write_text(json.dumps({"a0_mu": 1.5, "V0_sd": 0.5}))

    priors = PriorConfig.from_json(path)

    assert priors.normal("a0") == (1.5, 1.0)
    assert priors.V0_sd == 0.5


def test_prior_from_json_rejects_unknown_keys(tmp_path):
    path = tmp_path / "priors.json"
    path.write_text(json.dumps({"alpha_mu": 1.0}))
    with pytest.raises(ValueError):
        PriorConfig.from_json(path)
