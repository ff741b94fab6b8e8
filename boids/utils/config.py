"""
Configuration Module
--------------------

This module contains all the configuration parameters of the simulation.
Every other module receives these values through a `config` object: either this
module itself or a namespace returned by make_config().
"""

import logging
import sys
from types import SimpleNamespace

logger = logging.getLogger(__name__)

# --- SIMULATION PARAMETERS ---
N_BOIDS = 50_000            # Number of boids in the simulation
N_STEPS = 600               # Number of simulation steps
DT = 0.2                    # Time step
SCENE_SCALE = 100.0         # Half extent of the scene cube [-SCENE_SCALE, SCENE_SCALE]^3
SEED_FRAME = 1              # Frame counter used to seed the initial layout
INITIAL_SPEED = 0.0         # Max initial velocity component (0 = boids start at rest)

# --- FLOCKING RULES ---
RULE1_DISTANCE = 5.0        # Cohesion radius
RULE2_DISTANCE = 3.0        # Separation radius
RULE3_DISTANCE = 5.0        # Alignment radius
RULE1_SCALE = 0.01
RULE2_SCALE = 0.1
RULE3_SCALE = 0.1
MAX_SPEED = 1.0
SPEED_LIMIT = "rescale"     # "rescale" keeps the direction, "clamp" clamps each component

# --- UNIFORM GRID ---
STRATEGY = "coherent"       # "naive", "scattered" or "coherent"
CELL_WIDTH_MULT = 1.0       # Cell width in units of the largest rule distance (>= 1)
NEIGHBOR_SEARCH = "octant"  # "octant" scans the cells touched by the search radius, "full" the 3x3x3 block
CELL_SKIP = False           # Skip cells whose box lies outside the search radius
CHECK_GRID_BOUNDS = False   # Host side check of the cell coordinates every frame (slow)

# --- RENDER SETTINGS ---
RENDER = True
ROTATION_SPEED = 0.002      # Rotation speed for the camera
CAM_DIST_MULT = 2.5         # Multiplier for camera distance from the center
FOV = 60.0                  # Field of view for rendering
RES = 512                   # Resolution of the output images
OUTPUT_DIR = "render_output"
VIDEO_NAME = "boids.mp4"

# --- CUDA CONFIG ---
TPB = 128                   # Threads per block for CUDA kernels
BATCH_SIZE = 20_000         # Boids per launch for the brute force kernel

STRATEGIES = ("naive", "scattered", "coherent")
NEIGHBOR_SEARCHES = ("octant", "full")
SPEED_LIMITS = ("rescale", "clamp")


def make_config(**overrides):

    """
    Builds a standalone copy of the module constants.

    Param:

    :overrides: upper-case names to replace, e.g. make_config(N_BOIDS=64, CELL_SKIP=True)
    """

    module = sys.modules[__name__]
    values = {name: getattr(module, name) for name in dir(module) if name.isupper()}

    unknown = set(overrides) - set(values)
    if unknown:
        raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")

    values.update(overrides)
    return SimpleNamespace(**values)


def _fail(msg):
    logger.critical(msg)
    raise ValueError(msg)


def validate(config):

    """
    Checks the settings the kernels rely on. Raises ValueError on the first
    invalid value.

    Param:

    :config: Configuration object containing simulation parameters.
    """

    if config.N_BOIDS <= 0:
        _fail(f"Configuration error: N_BOIDS must be positive, got {config.N_BOIDS}.")

    if config.SCENE_SCALE <= 0:
        _fail(f"Configuration error: SCENE_SCALE must be positive, got {config.SCENE_SCALE}.")

    for name in ("RULE1_DISTANCE", "RULE2_DISTANCE", "RULE3_DISTANCE", "MAX_SPEED"):
        if getattr(config, name) <= 0:
            _fail(f"Configuration error: {name} must be positive, got {getattr(config, name)}.")

    if config.CELL_WIDTH_MULT < 1.0:
        _fail(
            f"Configuration error: CELL_WIDTH_MULT={config.CELL_WIDTH_MULT} is below 1, "
            f"neighbors could lie outside the scanned cells."
        )

    if config.TPB <= 0 or config.BATCH_SIZE <= 0:
        _fail(f"Configuration error: TPB and BATCH_SIZE must be positive ({config.TPB}, {config.BATCH_SIZE}).")

    if config.STRATEGY not in STRATEGIES:
        _fail(f"Configuration error: STRATEGY must be one of {STRATEGIES}, got {config.STRATEGY!r}.")

    if config.NEIGHBOR_SEARCH not in NEIGHBOR_SEARCHES:
        _fail(f"Configuration error: NEIGHBOR_SEARCH must be one of {NEIGHBOR_SEARCHES}, got {config.NEIGHBOR_SEARCH!r}.")

    if config.SPEED_LIMIT not in SPEED_LIMITS:
        _fail(f"Configuration error: SPEED_LIMIT must be one of {SPEED_LIMITS}, got {config.SPEED_LIMIT!r}.")

    return config
