# src/viral_dynamics/model/priors.py
from __future__ import annotations

import json
import math
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Dict, Tuple, Union

GROUPS = ("a0", "b0", "g0", "e0", "V0")


@dataclass
class PriorConfig:
    """Fixed hyperparameters of the population prior.

    a0, b0, g0, e0 are the log rates (alpha, beta, gamma, eta) of each
    individual, all individuals sharing one Normal(mu, sd). V0 is the initial
    log virus load of each dose group.
    """

    a0_mu: float = 0.0
    a0_sd: float = 1.0
    b0_mu: float = 0.0
    b0_sd: float = 1.0
    g0_mu: float = 0.0
    g0_sd: float = 1.0
    e0_mu: float = 0.0
    e0_sd: float = 1.0
    V0_mu: float = 2.0
    V0_sd: float = 2.0

    def __post_init__(self) -> None:
        for f in fields(self):
            value = float(getattr(self, f.name))
            if not math.isfinite(value):
                raise ValueError(f"{f.name} must be finite, got {value}")
            if f.name.endswith("_sd") and value <= 0:
                raise ValueError(f"{f.name} must be > 0, got {value}")
            setattr(self, f.name, value)

    def normal(self, group: str) -> Tuple[float, float]:
        """(mu, sd) of one prior group, e.g. ``normal("g0")``."""
        if group not in GROUPS:
            raise ValueError(f"unknown prior group {group!r}; expected one of {GROUPS}")
        return getattr(self, f"{group}_mu"), getattr(self, f"{group}_sd")

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "PriorConfig":
        with Path(path).open("r") as fh:
            raw = json.load(fh)
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(raw) - known)
        if unknown:
            raise ValueError(f"unknown prior keys in {path}: {unknown}")
        return cls(**raw)
