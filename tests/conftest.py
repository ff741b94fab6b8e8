import os

# Kernels run on the CPU through numba's CUDA simulator; must be set before numba is imported.
os.environ.setdefault("NUMBA_ENABLE_CUDASIM", "1")

import numpy as np
import pytest

from boids.core.engine import BoidsEngine
from boids.core.state import BoidState
from boids.utils.config import make_config


SMALL = dict(
    N_BOIDS=96,
    SCENE_SCALE=20.0,
    TPB=32,
    BATCH_SIZE=40,
    N_STEPS=2,
    RES=16,
    RENDER=False,
    INITIAL_SPEED=0.5,
)


def small_config(**overrides):
    values = dict(SMALL)
    values.update(overrides)
    return make_config(**values)


@pytest.fixture
def config():
    return small_config()


@pytest.fixture
def make_engine():

    def _make(cfg=None, pos=None, vel=None, frame=None):
        cfg = small_config() if cfg is None else cfg
        n = cfg.N_BOIDS if pos is None else len(pos)
        state = BoidState(n, cfg)
        if pos is None:
            state.initialize(frame)
        else:
            state.load(np.asarray(pos, dtype=np.float32), None if vel is None else np.asarray(vel, dtype=np.float32))
        return BoidsEngine(cfg, state)

    return _make
