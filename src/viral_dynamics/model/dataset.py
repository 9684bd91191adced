# src/viral_dynamics/model/dataset.py
"""
Input record for the viral-load model.

The flat observation table is grouped contiguously by individual. Individual
labels and dose levels are 1-based, as they are written in data files; every
inconsistency is rejected here, before any ODE solve is attempted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import numpy as np
import pandas as pd

from .indexing import IndexTable, observation_windows


@dataclass(frozen=True, eq=False)
class ViralLoadData:
    outcome: np.ndarray
    time: np.ndarray
    individual: np.ndarray
    n_obs: np.ndarray
    dose_level: np.ndarray
    n_dose: int
    tstart: float = 0.0
    index: IndexTable = field(init=False, repr=False)

    def __post_init__(self) -> None:
        # frozen dataclass: normalise through object.__setattr__
        outcome = np.asarray(self.outcome, dtype=float)
        time = np.asarray(self.time, dtype=float)
        individual = np.asarray(self.individual)
        dose_level = np.asarray(self.dose_level)
        n_dose = int(self.n_dose)
        tstart = float(self.tstart)

        if outcome.ndim != 1 or time.ndim != 1 or individual.ndim != 1:
            raise ValueError("outcome, time and individual must be 1D")
        n_total = outcome.size
        if time.size != n_total or individual.size != n_total:
            raise ValueError(
                f"outcome ({n_total}), time ({time.size}) and individual ({individual.size}) "
                "must have the same length"
            )
        if n_total == 0:
            raise ValueError("at least one observation is required")
        if not np.all(np.isfinite(outcome)) or not np.all(np.isfinite(time)):
            raise ValueError("outcome and time must be finite")
        if not np.isfinite(tstart):
            raise ValueError("tstart must be finite")

        index = observation_windows(self.n_obs, n_total=n_total)
        n_ind = len(index)

        if n_dose < 1:
            raise ValueError("n_dose must be >= 1")
        if dose_level.ndim != 1 or dose_level.size != n_ind:
            raise ValueError(f"dose_level must have one entry per individual ({n_ind})")
        if np.any(np.mod(dose_level, 1) != 0):
            raise ValueError("dose_level entries must be whole numbers")
        if np.any(dose_level < 1) or np.any(dose_level > n_dose):
            raise ValueError(f"dose_level entries must lie in 1..{n_dose}")

        expected = index.owner() + 1
        if not np.array_equal(individual, expected):
            bad = int(np.flatnonzero(individual != expected)[0])
            raise ValueError(
                f"id column is inconsistent with n_obs at row {bad}: "
                f"got {individual[bad]}, expected {expected[bad]}"
            )

        if np.any(time < tstart):
            bad = int(np.flatnonzero(time < tstart)[0])
            raise ValueError(f"observation time {time[bad]} at row {bad} is before tstart={tstart}")

        object.__setattr__(self, "outcome", outcome)
        object.__setattr__(self, "time", time)
        object.__setattr__(self, "individual", expected)
        object.__setattr__(self, "n_obs", index.stop - index.start)
        object.__setattr__(self, "dose_level", dose_level.astype(np.int64))
        object.__setattr__(self, "n_dose", n_dose)
        object.__setattr__(self, "tstart", tstart)
        object.__setattr__(self, "index", index)

    @property
    def n_total(self) -> int:
        return int(self.outcome.size)

    @property
    def n_individuals(self) -> int:
        return len(self.index)

    def observation_dose(self) -> np.ndarray:
        """0-based dose group of every observation."""
        return self.dose_level[self.index.owner()] - 1

    @classmethod
    def from_arrays(cls, outcome, time, n_obs, dose_level, n_dose=None, tstart=0.0, individual=None):
        """Build from flat arrays; ``individual`` is derived from ``n_obs`` when omitted."""
        n_obs = np.asarray(n_obs)
        if individual is None:
            individual = observation_windows(n_obs).owner() + 1
        if n_dose is None:
            n_dose = int(np.max(dose_level))
        return cls(
            outcome=outcome,
            time=time,
            individual=individual,
            n_obs=n_obs,
            dose_level=dose_level,
            n_dose=n_dose,
            tstart=tstart,
        )

    @classmethod
    def from_frame(
        cls,
        df: pd.DataFrame,
        tstart: float = 0.0,
        n_dose: Optional[int] = None,
        id_col: str = "id",
        time_col: str = "time",
        outcome_col: str = "outcome",
        dose_col: str = "dose_level",
    ) -> "ViralLoadData":
        """Build from a long table with one row per observation.

        Individuals are relabelled 1..Nind in sorted order of their id and rows
        are ordered by (id, time), so the table does not need to be grouped.
        """
        missing = [c for c in (id_col, time_col, outcome_col, dose_col) if c not in df.columns]
        if missing:
            raise ValueError(f"data frame is missing columns: {missing}")

        codes, _ = pd.factorize(df[id_col], sort=True)
        work = pd.DataFrame({
            "code": codes,
            "time": df[time_col].astype(float).to_numpy(),
            "outcome": df[outcome_col].astype(float).to_numpy(),
            "dose": df[dose_col].to_numpy(),
        }).sort_values(["code", "time"], kind="mergesort")

        per_individual = work.groupby("code", sort=True)["dose"]
        if (per_individual.nunique() > 1).any():
            raise ValueError("each individual must belong to exactly one dose level")
        # left as float so fractional labels fail the whole-number check
        dose_level = per_individual.first().to_numpy(dtype=float)
        n_obs = work.groupby("code", sort=True).size().to_numpy()

        return cls.from_arrays(
            outcome=work["outcome"].to_numpy(),
            time=work["time"].to_numpy(),
            n_obs=n_obs,
            dose_level=dose_level,
            n_dose=n_dose,
            tstart=tstart,
            individual=work["code"].to_numpy() + 1,
        )

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            "id": self.individual,
            "time": self.time,
            "outcome": self.outcome,
            "dose_level": self.dose_level[self.individual - 1],
        })
