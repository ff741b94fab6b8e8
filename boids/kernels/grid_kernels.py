import math
from numba import cuda

"""
Uniform Grid Kernels
--------------------

The scene is cut into a cube of side_count^3 cells. Each boid is labelled with the
flattened index of its cell, the (cell, boid) pairs are sorted by cell, and every
cell gets a [start, end) range into the sorted arrays.

Flattening is x + y * side + z * side^2, x varying fastest.
"""

EMPTY_CELL = -1


@cuda.jit(device=True)
def cell_coordinate(p, minimum, inv_width):

    """
    Integer cell coordinate along one axis. floor() keeps boids sitting exactly on a
    cell face in the upper cell, whatever their sign.
    """

    return int(math.floor((p - minimum) * inv_width))


@cuda.jit(device=True)
def flatten_cell(x, y, z, side):
    return x + y * side + z * side * side


@cuda.jit
def compute_indices(pos, grid_index, array_index, n_boids, side, min_x, min_y, min_z, inv_width):

    """
    CUDA kernel labelling every boid with its cell and resetting the permutation to identity.

    Param:

    :pos : DeviceArray\\
        (N, 3) float positions
    :grid_index : DeviceArray\\
        Output int32 cell index of each boid (sort key)
    :array_index : DeviceArray\\
        Output int32 boid index paired with each key (sort value)
    :n_boids : int\\
        The number of boids to process
    :side : int\\
        Number of cells along each axis
    :min_x, min_y, min_z : float\\
        Lower corner of the grid
    :inv_width : float\\
        Inverse of the cell width
    """

    i = cuda.grid(1)
    if i < n_boids:

        cx = cell_coordinate(pos[i, 0], min_x, inv_width)
        cy = cell_coordinate(pos[i, 1], min_y, inv_width)
        cz = cell_coordinate(pos[i, 2], min_z, inv_width)

        grid_index[i] = flatten_cell(cx, cy, cz, side)
        array_index[i] = i


@cuda.jit
def reset_int_buffer(buffer, value):

    """
    CUDA kernel filling an int buffer with a constant. Used to mark every cell as empty
    before the ranges of the current frame are written.
    """

    i = cuda.grid(1)
    if i < buffer.shape[0]:
        buffer[i] = value


@cuda.jit
def identify_cell_start_end(grid_index, cell_start, cell_end, n_boids):

    """
    CUDA kernel writing the [start, end) range of every populated cell.

    Each thread looks at one slot of the sorted keys and its left neighbor: a change of
    key closes the previous cell and opens the next one. Cells that no boid falls into
    keep the value written by reset_int_buffer.

    Param:

    :grid_index : DeviceArray\\
        Sorted cell keys
    :cell_start, cell_end : DeviceArray\\
        Output int32 arrays of size cell_count
    :n_boids : int\\
        The number of boids
    """

    i = cuda.grid(1)
    if i >= n_boids:
        return

    key = grid_index[i]

    if i == 0:
        cell_start[key] = 0
    else:
        prev = grid_index[i - 1]
        if prev != key:
            cell_end[prev] = i
            cell_start[key] = i

    if i == n_boids - 1:
        cell_end[key] = n_boids


@cuda.jit
def reorder_by_index(array_index, pos, vel, pos_sorted, vel_sorted, n_boids):

    """
    CUDA kernel gathering positions and velocities in cell order, so that slot i of the
    output holds the boid sitting at slot i of the sorted permutation.

    Param:

    :array_index : DeviceArray\\
        Sorted permutation (boid index for each sorted slot)
    :pos, vel : DeviceArray\\
        (N, 3) buffers in their current order
    :pos_sorted, vel_sorted : DeviceArray\\
        (N, 3) output buffers
    """

    i = cuda.grid(1)
    if i < n_boids:
        src = array_index[i]
        pos_sorted[i, 0] = pos[src, 0]
        pos_sorted[i, 1] = pos[src, 1]
        pos_sorted[i, 2] = pos[src, 2]
        vel_sorted[i, 0] = vel[src, 0]
        vel_sorted[i, 1] = vel[src, 1]
        vel_sorted[i, 2] = vel[src, 2]
