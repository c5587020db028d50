# %% [markdown]
"""# Example for fluence map optimization with dose-volume constraints."""

# %%
# Necessary imports
import logging

import numpy as np

from pyFluenceOpt import (
    compose_beam_dijs,
    create_dij,
    fluence_optimization,
    validate_cst,
)

logging.basicConfig(level=logging.INFO)

# Synthetic phantom: 200 voxels, 5 beams with 8 beamlets each
rng = np.random.default_rng(0)
angles = [0.0, 72.0, 144.0, 216.0, 288.0]
dij = compose_beam_dijs(
    [
        create_dij(physical_dose=rng.exponential(0.05, size=(200, 8)), gantry_angles=[a])
        for a in angles
    ]
)

# Structures in priority order: PTV first, it keeps shared voxels
cst = validate_cst(
    [
        {
            "name": "PTV",
            "voxels": np.arange(0, 60),
            "terms": [
                {"type": "unif", "dose": 81.0},
                {"type": "ldvc", "dose": 76.0, "percent": 5.0},
            ],
        },
        {
            "name": "Rectum",
            "voxels": np.arange(50, 130),
            "terms": [{"type": "udvc", "dose": 50.0, "percent": 50.0}],
        },
        {
            "name": "Bladder",
            "voxels": np.arange(130, 200),
            "terms": [{"type": "udvc", "dose": 30.0, "percent": 30.0}],
        },
    ]
)

# Fluence Optimization on a subset of the beams
x, result = fluence_optimization(dij, cst, angles=[0.0, 144.0, 288.0], max_iterations=100)

# Result
print(f"Iterations: {result.n_iter}, converged: {result.converged}, time: {result.time:.2f} s")
print(f"Objective: {result.obj[0]:.4e} -> {result.obj[-1]:.4e}")
