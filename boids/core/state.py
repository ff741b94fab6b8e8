import logging
import numpy as np
from boids.kernels.physics_kernels import generate_random_vectors
from boids.kernels.rule_kernels import N_RULE_PARAMS
from boids.utils import config as Config
from boids.utils.backend import get_array_module, to_host, free_device_memory

logger = logging.getLogger(__name__)


class BoidState:

    """
    Owns every per boid buffer of the simulation.

    Buffer roles:

    - pos: canonical positions, what a renderer reads after a step.
    - pos_scratch: destination of the cell ordered gather (coherent strategy only).
    - vel_current: velocities of the last completed frame, read by the velocity pass.
    - vel_next: written by the velocity pass, never read during it.
    - vel_scratch: current velocities gathered in cell order (coherent strategy only).

    swap_velocities() makes the freshly written velocities current at the end of every
    frame. swap_positions() promotes the cell ordered positions to canonical in coherent
    mode: slot i then holds another boid than in the previous frame.
    """

    def __init__(self, n_boids, config=Config):

        Config.validate(config)

        if n_boids <= 0:
            msg = f"Cannot allocate a simulation of {n_boids} boids."
            logger.critical(msg)
            raise ValueError(msg)

        self.n = n_boids
        self.config = config
        self.tpb = config.TPB
        self.bpg = (self.n + self.tpb - 1) // self.tpb
        self.xp = get_array_module()

        xp = self.xp
        self.pos = xp.zeros((self.n, 3), dtype=xp.float32)
        self.pos_scratch = xp.zeros((self.n, 3), dtype=xp.float32)
        self.vel_current = xp.zeros((self.n, 3), dtype=xp.float32)
        self.vel_next = xp.zeros((self.n, 3), dtype=xp.float32)
        self.vel_scratch = xp.zeros((self.n, 3), dtype=xp.float32)

        self.rules = xp.zeros(N_RULE_PARAMS, dtype=xp.float32)
        self.set_rules(config)

        self.released = False
        logger.info("Allocated buffers for %d boids", self.n)

    def set_rules(self, config):

        """
        Uploads the rule distances, scales and max speed read by the velocity kernels.
        """

        self.rules[:] = self.xp.asarray([
            config.RULE1_DISTANCE,
            config.RULE2_DISTANCE,
            config.RULE3_DISTANCE,
            config.RULE1_SCALE,
            config.RULE2_SCALE,
            config.RULE3_SCALE,
            config.MAX_SPEED,
        ], dtype=self.xp.float32)

    def initialize(self, frame=None):

        """
        Fills positions with the deterministic layout of `frame` and velocities with zeros
        (or a random draw of at most INITIAL_SPEED per component).

        Param:

        :frame: int, seed frame (defaults to config.SEED_FRAME)
        """

        frame = self.config.SEED_FRAME if frame is None else frame

        generate_random_vectors[self.bpg, self.tpb](self.pos, frame, 0, self.config.SCENE_SCALE, self.n)

        if self.config.INITIAL_SPEED > 0:
            generate_random_vectors[self.bpg, self.tpb](self.vel_current, frame, 1, self.config.INITIAL_SPEED, self.n)
        else:
            self.vel_current.fill(0)

        self.vel_next.fill(0)

    def load(self, pos, vel=None):

        """
        Replaces the canonical state with the given (N, 3) arrays (host or device).
        """

        pos = np.asarray(to_host(pos), dtype=np.float32)
        if pos.shape != (self.n, 3):
            raise ValueError(f"Expected positions of shape {(self.n, 3)}, got {pos.shape}")

        self.pos[:] = self.xp.asarray(pos)

        if vel is None:
            self.vel_current.fill(0)
        else:
            vel = np.asarray(to_host(vel), dtype=np.float32)
            if vel.shape != (self.n, 3):
                raise ValueError(f"Expected velocities of shape {(self.n, 3)}, got {vel.shape}")
            self.vel_current[:] = self.xp.asarray(vel)

        self.vel_next.fill(0)

    def swap_velocities(self):
        self.vel_current, self.vel_next = self.vel_next, self.vel_current

    def swap_positions(self):
        self.pos, self.pos_scratch = self.pos_scratch, self.pos

    def positions(self):
        """Host copy of the canonical positions."""
        return to_host(self.pos)

    def velocities(self):
        """Host copy of the current velocities."""
        return to_host(self.vel_current)

    def free(self):

        """
        Drops every buffer. Calling it again does nothing.
        """

        if self.released:
            logger.warning("BoidState buffers were already released")
            return

        self.pos = self.pos_scratch = None
        self.vel_current = self.vel_next = self.vel_scratch = None
        self.rules = None
        self.released = True

        free_device_memory()
