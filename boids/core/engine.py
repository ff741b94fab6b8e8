import logging
import numpy as np
from numba import cuda
from tqdm import tqdm
import pynvml as nvml
from boids.core.grid import UniformGrid
from boids.core.state import BoidState
from boids.kernels.physics_kernels import integrate
from boids.kernels.render_kernels import copy_positions_to_vbo, copy_velocities_to_vbo
from boids.kernels.rule_kernels import (
    SPEED_CLAMP,
    SPEED_RESCALE,
    update_velocity_brute_force,
    update_velocity_neighbor_coherent,
    update_velocity_neighbor_scattered,
)
from boids.utils import config as Config
from boids.utils.backend import simulator_enabled, to_host

"""

Simulation Engine module
-------------------------

This module sequences the stages of a frame for the three neighbor search strategies
and manages the buffer roles between frames.

Every stage is a separate kernel launch on the same stream, so a stage only starts once
the previous one has fully written its output (sorted keys, cell ranges, ...).
"""

logger = logging.getLogger(__name__)


class BoidsEngine:

    def __init__(self, config, state=None, camera=None):

        """
        Main simulation engine.
        Contains the step logic and simulation loop.

        - step_naive(dt), step_scattered_grid(dt), step_coherent_grid(dt) to compute a single frame
        - step(dt, strategy) to dispatch on a strategy name
        - copy_to_vbo() to export display ready buffers
        - run() to loop over steps (and capture frames when a camera is attached)
        - save() to write the captured frames and make the video
        """

        Config.validate(config)

        self.config = config
        self.state = state if state is not None else BoidState(config.N_BOIDS, config)
        # The grid geometry below comes from this config, so the rules must as well
        self.state.set_rules(config)
        self.n = self.state.n
        self.tpb = config.TPB
        self.bpg = (self.n + self.tpb - 1) // self.tpb

        self.grid = UniformGrid(self.n, config, self.tpb)
        self.camera = camera

        self.speed_mode = SPEED_CLAMP if config.SPEED_LIMIT == "clamp" else SPEED_RESCALE
        self.search_full = config.NEIGHBOR_SEARCH == "full"
        self.cell_skip = bool(config.CELL_SKIP)

        xp = self.state.xp
        self.vbo_pos = xp.zeros(4 * self.n, dtype=xp.float32)
        self.vbo_vel = xp.zeros(4 * self.n, dtype=xp.float32)

        # Reordering applied by the last frame (slot i <- previous slot last_permutation[i]), None if order was kept.
        # Points to self.permutation, overwritten by the next coherent frame.
        self.permutation = xp.zeros(self.n, dtype=xp.int32)
        self.last_permutation = None
        self.frame = 0

        self._strategies = {
            "naive": self.step_naive,
            "scattered": self.step_scattered_grid,
            "coherent": self.step_coherent_grid,
        }

        self._nvml = None

    def _grid_args(self):
        g = self.grid
        return (
            g.side_count,
            *g.minimum,
            g.cell_width,
            g.inverse_cell_width,
            self.search_full,
            self.cell_skip,
            self.state.rules,
            self.speed_mode,
            self.n,
        )

    def _build_grid(self):
        self.grid.build(self.state.pos)
        if self.config.CHECK_GRID_BOUNDS:
            self.grid.check_bounds(self.state.pos)

    def _integrate(self, pos, dt):
        integrate[self.bpg, self.tpb](
            pos, self.state.vel_next, dt, self.config.SCENE_SCALE, self.n
        )

    def step_naive(self, dt):

        """
        Brute force frame: every boid tests every other boid. O(N^2).
        """

        s = self.state

        for offset in range(0, self.n, self.config.BATCH_SIZE):

            c = min(self.config.BATCH_SIZE, self.n - offset)

            update_velocity_brute_force[(c + self.tpb - 1) // self.tpb, self.tpb](
                s.pos,
                s.vel_current,
                s.vel_next,
                s.rules,
                self.speed_mode,
                self.n,
                offset
            )

        self._integrate(s.pos, dt)
        s.swap_velocities()
        self._end_frame()

    def step_scattered_grid(self, dt):

        """
        Uniform grid frame. The buffers stay in boid order and the velocity kernel reaches
        the members of each cell through the sorted permutation.
        """

        s = self.state
        self._build_grid()

        update_velocity_neighbor_scattered[self.bpg, self.tpb](
            s.pos,
            s.vel_current,
            s.vel_next,
            self.grid.particle_array_index,
            self.grid.cell_start,
            self.grid.cell_end,
            *self._grid_args()
        )

        self._integrate(s.pos, dt)
        s.swap_velocities()
        self._end_frame()

    def step_coherent_grid(self, dt):

        """
        Uniform grid frame on buffers gathered in cell order.

        Positions and velocities are copied into the scratch buffers following the sorted
        permutation, updated there, and the scratch buffers become canonical.
        Slot identity is NOT preserved: after this call slot i holds the boid that was in
        slot last_permutation[i] before it. Callers tracking individual boids across
        frames have to compose these permutations.
        """

        s = self.state
        self._build_grid()

        self.grid.reorder(s.pos, s.vel_current, s.pos_scratch, s.vel_scratch)

        update_velocity_neighbor_coherent[self.bpg, self.tpb](
            s.pos_scratch,
            s.vel_scratch,
            s.vel_next,
            self.grid.particle_array_index,
            self.grid.cell_start,
            self.grid.cell_end,
            *self._grid_args()
        )

        self._integrate(s.pos_scratch, dt)

        s.swap_positions()
        s.swap_velocities()

        self.permutation[:] = self.grid.particle_array_index
        self._end_frame(self.permutation)

    def step(self, dt=None, strategy=None):

        """
        Computes a single frame with the given strategy ("naive", "scattered" or "coherent").
        """

        dt = self.config.DT if dt is None else dt
        strategy = self.config.STRATEGY if strategy is None else strategy

        if strategy not in self._strategies:
            raise ValueError(f"Unknown strategy {strategy!r}, expected one of {tuple(self._strategies)}")

        self._strategies[strategy](dt)

    def _end_frame(self, permutation=None):
        cuda.synchronize()
        self.last_permutation = permutation
        self.frame += 1

    def copy_to_vbo(self):

        """
        Copies the canonical positions and velocities into the flat vertex buffers.
        Does not modify the simulation state.

        Returns:

        :(vbo_pos, vbo_vel): flat float32 arrays of size 4 * N (x, y, z, w per boid)
        """

        copy_positions_to_vbo[self.bpg, self.tpb](self.state.pos, self.vbo_pos, self.config.SCENE_SCALE, self.n)
        copy_velocities_to_vbo[self.bpg, self.tpb](self.state.vel_current, self.vbo_vel, self.n)
        return self.vbo_pos, self.vbo_vel

    def snapshot(self):
        """Host copies of the exported vertex buffers."""
        vbo_pos, vbo_vel = self.copy_to_vbo()
        return to_host(vbo_pos), to_host(vbo_vel)

    def run(self, n_steps=None, strategy=None):

        """
        Loops over simulation steps and captures a frame after each one if a camera is attached.
        """

        n_steps = self.config.N_STEPS if n_steps is None else n_steps

        with tqdm(range(n_steps)) as pbar:
            for i in pbar:

                if i % 20 == 0:
                    util = self.get_gpu_util()
                    if util is not None:
                        gpu, mem = util
                        pbar.set_postfix(GPU=f"{gpu}%", MEM=f"{mem}%")

                self.step(strategy=strategy)

                if self.camera is not None:
                    vbo_pos, _ = self.copy_to_vbo()
                    frame = self.camera.capture(i, vbo_pos, self.n)
                    self.camera.video_buffer[i] = (to_host(frame) * 255).astype(np.uint8)

    def save(self):

        """
        Writes the captured frames into OUTPUT_DIR and makes the video.
        """

        if self.camera is not None:
            self.camera.get_frames()
            self.camera.make_video()

    def get_gpu_util(self):

        """
        Get current GPU utilization and memory usage using NVML. None in the simulator.
        """

        if simulator_enabled():
            return None

        if self._nvml is None:
            nvml.nvmlInit()
            self._nvml = nvml.nvmlDeviceGetHandleByIndex(0)

        util = nvml.nvmlDeviceGetUtilizationRates(self._nvml)
        return util.gpu, util.memory

    def shutdown(self):

        """
        Releases every buffer. Safe to call once per engine; later calls do nothing.
        """

        if self.state.released:
            logger.warning("Engine already shut down")
            return

        if self._nvml is not None:
            nvml.nvmlShutdown()
            self._nvml = None

        self.grid.free()
        self.vbo_pos = self.vbo_vel = None
        self.permutation = self.last_permutation = None
        self.state.free()
        logger.info("Simulation buffers released after %d frames", self.frame)
