import numpy as np
import pytest
from numba import cuda

from boids.core.grid import UniformGrid
from boids.core.state import BoidState
from boids.kernels.grid_kernels import EMPTY_CELL
from boids.kernels.rule_kernels import SPEED_RESCALE, cell_distance_sq, update_velocity_neighbor_scattered

from conftest import small_config


@cuda.jit
def cell_distances(points, cells, out, minimum, cell_width):
    i = cuda.grid(1)
    if i < out.shape[0]:
        out[i] = cell_distance_sq(
            points[i, 0], points[i, 1], points[i, 2],
            cells[i, 0], cells[i, 1], cells[i, 2],
            minimum, minimum, minimum, cell_width
        )


def test_cell_distance_is_zero_inside_and_exact_outside():
    # grid from -30 with cells of width 10: cell 3 spans [0, 10), cell 4 spans [10, 20)
    points = np.array([
        [0.5, 0.5, 0.5],
        [0.5, 0.5, 0.5],
        [0.5, 0.5, 0.5],
        [0.5, 0.5, 0.5],
    ], dtype=np.float32)
    cells = np.array([
        [3, 3, 3],
        [2, 2, 2],
        [4, 3, 3],
        [4, 4, 4],
    ], dtype=np.int32)
    out = np.zeros(len(points), dtype=np.float32)

    cell_distances[1, 32](points, cells, out, -30.0, 10.0)

    assert out[0] == 0.0
    assert out[1] == pytest.approx(3 * 0.5 ** 2)
    assert out[2] == pytest.approx(9.5 ** 2)
    assert out[3] == pytest.approx(3 * 9.5 ** 2)
    # the far corner lies beyond the largest rule distance of 5
    assert out[3] > 5.0 ** 2


@pytest.mark.parametrize("cell_skip", [False, True])
def test_cell_skip_never_reads_far_corner_cell(cell_skip):
    # Two boids one unit apart in cell (3, 3, 3). The ranges are rigged so that only the
    # corner cell (4, 4, 4) of the 3x3x3 block claims them: a scan that reads that cell
    # finds the neighbor, a scan that skips it finds nobody.
    cfg = small_config(CELL_WIDTH_MULT=2.0, NEIGHBOR_SEARCH="full", CELL_SKIP=cell_skip)
    state = BoidState(2, cfg)
    state.load(np.array([[0.5, 0.5, 0.5], [1.5, 0.5, 0.5]], dtype=np.float32))
    grid = UniformGrid(2, cfg)
    assert grid.side_count == 6 and grid.minimum == (-30.0, -30.0, -30.0)

    corner = 4 + 4 * grid.side_count + 4 * grid.side_count ** 2
    array_index = np.arange(2, dtype=np.int32)
    cell_start = np.full(grid.cell_count, EMPTY_CELL, dtype=np.int32)
    cell_end = np.full(grid.cell_count, EMPTY_CELL, dtype=np.int32)
    cell_start[corner] = 0
    cell_end[corner] = 2

    update_velocity_neighbor_scattered[1, 32](
        state.pos, state.vel_current, state.vel_next,
        array_index, cell_start, cell_end,
        grid.side_count, *grid.minimum, grid.cell_width, grid.inverse_cell_width,
        True, cell_skip, state.rules, SPEED_RESCALE, 2
    )

    vel = np.asarray(state.vel_next)
    if cell_skip:
        np.testing.assert_array_equal(vel[0], 0.0)
    else:
        # cohesion 0.01 towards the neighbor, separation 0.1 away from it
        assert vel[0, 0] == pytest.approx(cfg.RULE1_SCALE - cfg.RULE2_SCALE)
