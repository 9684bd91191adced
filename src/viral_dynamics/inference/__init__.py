# PyMC and pytensor are imported lazily, so the model layer works without them.
from .fit import (
    FitConfig,
    build_model,
    draws_to_frame,
    fit_model,
    posterior_arrays,
    posterior_generated,
    write_outputs,
)
