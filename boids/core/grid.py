import logging
import numpy as np
from boids.kernels.grid_kernels import EMPTY_CELL, compute_indices, reset_int_buffer, identify_cell_start_end, reorder_by_index
from boids.utils.backend import get_array_module, to_host

"""
Uniform Grid Manager
--------------------

This module contains the UniformGrid class which rebuilds the spatial index of the boids
on the GPU every frame: cell labelling, key sort, and per cell [start, end) ranges.
"""

logger = logging.getLogger(__name__)


def sort_by_key(keys, values, xp=None):

    """
    Sorts `values` by `keys` ascending, both in place. Order among equal keys is unspecified.

    Param:

    :keys: DeviceArray\\
        int keys (cell indices)
    :values: DeviceArray\\
        payload moved along with the keys (boid indices)
    """

    xp = get_array_module() if xp is None else xp

    order = xp.argsort(keys)
    keys[:] = keys[order]
    values[:] = values[order]
    return keys, values


class UniformGrid:
    def __init__(self, n_boids, config, tpb=None):

        """
        Derives the grid geometry from the rule distances and allocates the index buffers.

        The grid is a cube of side_count^3 cells of width CELL_WIDTH_MULT * max rule distance,
        centered on the origin and at least one cell wider than the scene on every side.

        Param:

        :n_boids: int\\
            Total number of boids in the simulation.
        :config: Configuration object containing simulation parameters.
        :tpb: int\\
            Threads Per Block for CUDA kernels.
        """

        self.n = n_boids
        self.tpb = config.TPB if tpb is None else tpb
        self.bpg = (self.n + self.tpb - 1) // self.tpb
        self.xp = get_array_module()
        xp = self.xp

        max_distance = max(config.RULE1_DISTANCE, config.RULE2_DISTANCE, config.RULE3_DISTANCE)
        self.cell_width = config.CELL_WIDTH_MULT * max_distance
        self.inverse_cell_width = 1.0 / self.cell_width

        half_side = int(config.SCENE_SCALE / self.cell_width) + 1
        self.side_count = 2 * half_side
        self.cell_count = self.side_count ** 3

        half_width = self.cell_width * half_side
        self.minimum = (-half_width, -half_width, -half_width)

        # Sort key / value pairs
        self.particle_grid_index = xp.zeros(self.n, dtype=xp.int32)
        self.particle_array_index = xp.zeros(self.n, dtype=xp.int32)

        # Per cell ranges into the sorted arrays
        self.cell_start = xp.full(self.cell_count, EMPTY_CELL, dtype=xp.int32)
        self.cell_end = xp.full(self.cell_count, EMPTY_CELL, dtype=xp.int32)

        logger.info(
            "Uniform grid: %d^3 cells of width %.2f (%d cells)",
            self.side_count, self.cell_width, self.cell_count
        )

    def assign_cells(self, pos):

        """
        Labels every boid with its cell and resets the permutation to identity.
        """

        compute_indices[self.bpg, self.tpb](
            pos,
            self.particle_grid_index,
            self.particle_array_index,
            self.n,
            self.side_count,
            *self.minimum,
            self.inverse_cell_width
        )

    def sort_by_cell_key(self):
        sort_by_key(self.particle_grid_index, self.particle_array_index, self.xp)

    def reset_ranges(self):

        """
        Marks every cell empty. Must run every frame before derive_ranges() so that the
        ranges of the previous frame do not leak into the current one.
        """

        bpg_cells = (self.cell_count + self.tpb - 1) // self.tpb
        reset_int_buffer[bpg_cells, self.tpb](self.cell_start, EMPTY_CELL)
        reset_int_buffer[bpg_cells, self.tpb](self.cell_end, EMPTY_CELL)

    def derive_ranges(self):
        identify_cell_start_end[self.bpg, self.tpb](
            self.particle_grid_index, self.cell_start, self.cell_end, self.n
        )

    def build(self, pos):

        """
        Rebuilds the whole index from the current positions.

        Param:

        :pos: DeviceArray\\
            (N, 3) positions in their current order.
        """

        self.assign_cells(pos)
        self.sort_by_cell_key()
        self.reset_ranges()
        self.derive_ranges()

    def reorder(self, pos, vel, pos_sorted, vel_sorted):

        """
        Gathers positions and velocities in cell order following the last sort.
        """

        reorder_by_index[self.bpg, self.tpb](
            self.particle_array_index, pos, vel, pos_sorted, vel_sorted, self.n
        )

    def cell_coordinates(self, pos):

        """
        Host side cell coordinates of every boid, same arithmetic as compute_indices.
        """

        pos = np.asarray(to_host(pos), dtype=np.float32).astype(np.float64)
        minimum = np.asarray(self.minimum, dtype=np.float64)
        return np.floor((pos - minimum) * self.inverse_cell_width).astype(np.int64)

    def check_bounds(self, pos):

        """
        Raises AssertionError if a boid falls outside the grid, which means the grid
        geometry does not enclose the scene.
        """

        coords = self.cell_coordinates(pos)
        outside = np.any((coords < 0) | (coords >= self.side_count), axis=1)
        if np.any(outside):
            first = int(np.argmax(outside))
            raise AssertionError(
                f"{int(outside.sum())} boids outside the grid, e.g. boid {first} "
                f"in cell {tuple(coords[first])} of a {self.side_count}^3 grid"
            )

    def free(self):
        self.particle_grid_index = None
        self.particle_array_index = None
        self.cell_start = None
        self.cell_end = None
