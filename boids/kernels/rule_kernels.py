import math
from numba import cuda, float32
from boids.kernels.grid_kernels import EMPTY_CELL, cell_coordinate, flatten_cell

"""
Flocking Rule Kernels
---------------------

Velocity update for the three flocking rules:

- rule 1, cohesion: steer towards the center of mass of the neighbors
- rule 2, separation: steer away from neighbors that are too close
- rule 3, alignment: match the average velocity of the neighbors

The same device functions are shared by the brute force kernel and the two grid kernels,
which only differ in how candidate neighbors are enumerated.
Velocities are read from one buffer and written to another so that no boid sees a
velocity computed during the same pass.
"""

# Layout of the `rules` parameter array
RULE1_DISTANCE = 0
RULE2_DISTANCE = 1
RULE3_DISTANCE = 2
RULE1_SCALE = 3
RULE2_SCALE = 4
RULE3_SCALE = 5
MAX_SPEED = 6
N_RULE_PARAMS = 7

SPEED_RESCALE = 0
SPEED_CLAMP = 1

# Layout of the per boid accumulator
ACC_COHESION = 0    # x, y, z sum of neighbor positions
ACC_N_COHESION = 3
ACC_SEPARATION = 4  # x, y, z
ACC_ALIGNMENT = 7   # x, y, z sum of neighbor velocities
ACC_N_ALIGNMENT = 10
N_ACC = 11


@cuda.jit(device=True)
def clear_accumulator(acc):
    for k in range(N_ACC):
        acc[k] = 0.0


@cuda.jit(device=True)
def accumulate_neighbor(px, py, pz, qx, qy, qz, ux, uy, uz, rules, acc):

    """
    Adds the contribution of one neighbor to the accumulator. The three radii are tested
    independently so a neighbor may count for several rules.

    Param:

    :px, py, pz : float\\
        Position of the boid being updated
    :qx, qy, qz : float\\
        Position of the neighbor
    :ux, uy, uz : float\\
        Velocity of the neighbor
    :rules : DeviceArray\\
        Rule parameters
    :acc : LocalArray\\
        Running sums
    """

    dx = qx - px
    dy = qy - py
    dz = qz - pz
    d = math.sqrt(dx * dx + dy * dy + dz * dz)

    if d < rules[RULE1_DISTANCE]:
        acc[ACC_COHESION] += qx
        acc[ACC_COHESION + 1] += qy
        acc[ACC_COHESION + 2] += qz
        acc[ACC_N_COHESION] += 1.0

    if d < rules[RULE2_DISTANCE]:
        acc[ACC_SEPARATION] -= dx
        acc[ACC_SEPARATION + 1] -= dy
        acc[ACC_SEPARATION + 2] -= dz

    if d < rules[RULE3_DISTANCE]:
        acc[ACC_ALIGNMENT] += ux
        acc[ACC_ALIGNMENT + 1] += uy
        acc[ACC_ALIGNMENT + 2] += uz
        acc[ACC_N_ALIGNMENT] += 1.0


@cuda.jit(device=True)
def accumulate_range(self_slot, px, py, pz, pos, vel, array_index, start, end, remap, rules, acc):

    """
    Accumulates the neighbors stored in slots [start, end). With remap the slots are
    positions in the sorted permutation and go through array_index to reach the data.
    """

    for k in range(start, end):
        if remap:
            j = array_index[k]
        else:
            j = k
        if j == self_slot:
            continue
        accumulate_neighbor(
            px, py, pz,
            pos[j, 0], pos[j, 1], pos[j, 2],
            vel[j, 0], vel[j, 1], vel[j, 2],
            rules, acc
        )


@cuda.jit(device=True)
def velocity_change(px, py, pz, rules, acc):

    """
    Turns the accumulated sums into the velocity delta. A rule with no neighbor in range
    contributes nothing.
    """

    dvx = 0.0
    dvy = 0.0
    dvz = 0.0

    n1 = acc[ACC_N_COHESION]
    if n1 > 0:
        dvx += (acc[ACC_COHESION] / n1 - px) * rules[RULE1_SCALE]
        dvy += (acc[ACC_COHESION + 1] / n1 - py) * rules[RULE1_SCALE]
        dvz += (acc[ACC_COHESION + 2] / n1 - pz) * rules[RULE1_SCALE]

    dvx += acc[ACC_SEPARATION] * rules[RULE2_SCALE]
    dvy += acc[ACC_SEPARATION + 1] * rules[RULE2_SCALE]
    dvz += acc[ACC_SEPARATION + 2] * rules[RULE2_SCALE]

    n3 = acc[ACC_N_ALIGNMENT]
    if n3 > 0:
        dvx += acc[ACC_ALIGNMENT] / n3 * rules[RULE3_SCALE]
        dvy += acc[ACC_ALIGNMENT + 1] / n3 * rules[RULE3_SCALE]
        dvz += acc[ACC_ALIGNMENT + 2] / n3 * rules[RULE3_SCALE]

    return dvx, dvy, dvz


@cuda.jit(device=True)
def limit_speed(vx, vy, vz, max_speed, speed_mode):

    """
    Rescale mode shrinks the vector to max_speed keeping its direction,
    clamp mode clamps each component to [-max_speed, max_speed].
    """

    if speed_mode == SPEED_CLAMP:
        vx = min(max(vx, -max_speed), max_speed)
        vy = min(max(vy, -max_speed), max_speed)
        vz = min(max(vz, -max_speed), max_speed)
        return vx, vy, vz

    speed = math.sqrt(vx * vx + vy * vy + vz * vz)
    if speed > max_speed:
        f = max_speed / speed
        vx *= f
        vy *= f
        vz *= f
    return vx, vy, vz


@cuda.jit(device=True)
def store_velocity(i, px, py, pz, vel_in, vel_out, rules, speed_mode, acc):

    dvx, dvy, dvz = velocity_change(px, py, pz, rules, acc)

    vx, vy, vz = limit_speed(
        vel_in[i, 0] + dvx,
        vel_in[i, 1] + dvy,
        vel_in[i, 2] + dvz,
        rules[MAX_SPEED],
        speed_mode
    )

    vel_out[i, 0] = vx
    vel_out[i, 1] = vy
    vel_out[i, 2] = vz


@cuda.jit(device=True)
def cell_distance_sq(px, py, pz, x, y, z, min_x, min_y, min_z, cell_width):

    """
    Squared distance from a point to the box of cell (x, y, z), zero inside the box.
    """

    d2 = 0.0

    lo = min_x + x * cell_width
    if px < lo:
        d2 += (lo - px) * (lo - px)
    elif px > lo + cell_width:
        d2 += (px - lo - cell_width) * (px - lo - cell_width)

    lo = min_y + y * cell_width
    if py < lo:
        d2 += (lo - py) * (lo - py)
    elif py > lo + cell_width:
        d2 += (py - lo - cell_width) * (py - lo - cell_width)

    lo = min_z + z * cell_width
    if pz < lo:
        d2 += (lo - pz) * (lo - pz)
    elif pz > lo + cell_width:
        d2 += (pz - lo - cell_width) * (pz - lo - cell_width)

    return d2


@cuda.jit(device=True)
def scan_neighbor_cells(self_slot, px, py, pz, pos, vel, array_index, cell_start, cell_end, remap,
                        side, min_x, min_y, min_z, cell_width, inv_width, search_full, cell_skip, rules, acc):

    """
    Enumerates the cells that may hold a neighbor of the boid at (px, py, pz) and
    accumulates their members.

    With search_full the 3x3x3 block around the boid's cell is scanned. Otherwise only
    the cells overlapped by the cube of half side `radius` centered on the boid: with a
    cell twice as wide as the radius this is the own cell plus one cell per axis towards
    the side the boid is offset to (8 cells at most).
    With cell_skip, cells whose box is farther than the radius are not read at all.

    Param:

    :self_slot : int\\
        Slot of the boid in `pos`/`vel` (after remapping), excluded from its own neighbors
    :pos, vel : DeviceArray\\
        (N, 3) buffers the candidate slots point into
    :array_index : DeviceArray\\
        Sorted permutation, only read when remap is set
    :cell_start, cell_end : DeviceArray\\
        Per cell [start, end) ranges, EMPTY_CELL for empty cells
    """

    radius = max(max(rules[RULE1_DISTANCE], rules[RULE2_DISTANCE]), rules[RULE3_DISTANCE])
    n = pos.shape[0]

    if search_full:
        cx = cell_coordinate(px, min_x, inv_width)
        cy = cell_coordinate(py, min_y, inv_width)
        cz = cell_coordinate(pz, min_z, inv_width)
        x0, x1 = cx - 1, cx + 1
        y0, y1 = cy - 1, cy + 1
        z0, z1 = cz - 1, cz + 1
    else:
        x0 = cell_coordinate(px - radius, min_x, inv_width)
        x1 = cell_coordinate(px + radius, min_x, inv_width)
        y0 = cell_coordinate(py - radius, min_y, inv_width)
        y1 = cell_coordinate(py + radius, min_y, inv_width)
        z0 = cell_coordinate(pz - radius, min_z, inv_width)
        z1 = cell_coordinate(pz + radius, min_z, inv_width)

    x0 = max(x0, 0)
    y0 = max(y0, 0)
    z0 = max(z0, 0)
    x1 = min(x1, side - 1)
    y1 = min(y1, side - 1)
    z1 = min(z1, side - 1)

    r2 = radius * radius

    # x innermost: consecutive cells are adjacent in memory
    for z in range(z0, z1 + 1):
        for y in range(y0, y1 + 1):
            for x in range(x0, x1 + 1):

                if cell_skip:
                    if cell_distance_sq(px, py, pz, x, y, z, min_x, min_y, min_z, cell_width) > r2:
                        continue

                c = flatten_cell(x, y, z, side)
                start = cell_start[c]
                end = cell_end[c]
                if start == EMPTY_CELL or start < 0 or end > n or start >= end:
                    continue

                accumulate_range(self_slot, px, py, pz, pos, vel, array_index, start, end, remap, rules, acc)


@cuda.jit
def update_velocity_brute_force(pos, vel_in, vel_out, rules, speed_mode, n_boids, off):

    """
    CUDA kernel updating velocities by testing every other boid.

    Param:

    :pos : DeviceArray\\
        (N, 3) positions
    :vel_in : DeviceArray\\
        (N, 3) velocities of the current frame (read only)
    :vel_out : DeviceArray\\
        (N, 3) velocities of the next frame (write only)
    :rules : DeviceArray\\
        Rule distances, scales and max speed
    :speed_mode : int\\
        SPEED_RESCALE or SPEED_CLAMP
    :n_boids : int\\
        Number of boids
    :off : int\\
        Offset of the first boid handled by this launch
    """

    i = cuda.grid(1) + off
    if i >= n_boids:
        return

    acc = cuda.local.array(N_ACC, dtype=float32)
    clear_accumulator(acc)

    px, py, pz = pos[i, 0], pos[i, 1], pos[i, 2]

    for j in range(n_boids):
        if j == i:
            continue
        accumulate_neighbor(
            px, py, pz,
            pos[j, 0], pos[j, 1], pos[j, 2],
            vel_in[j, 0], vel_in[j, 1], vel_in[j, 2],
            rules, acc
        )

    store_velocity(i, px, py, pz, vel_in, vel_out, rules, speed_mode, acc)


@cuda.jit
def update_velocity_neighbor_scattered(pos, vel_in, vel_out, array_index, cell_start, cell_end,
                                       side, min_x, min_y, min_z, cell_width, inv_width,
                                       search_full, cell_skip, rules, speed_mode, n_boids):

    """
    CUDA kernel updating velocities through the uniform grid. Buffers keep their original
    order, every candidate goes through array_index to reach its data.
    One thread per boid, in original order.
    """

    i = cuda.grid(1)
    if i >= n_boids:
        return

    acc = cuda.local.array(N_ACC, dtype=float32)
    clear_accumulator(acc)

    px, py, pz = pos[i, 0], pos[i, 1], pos[i, 2]

    scan_neighbor_cells(
        i, px, py, pz, pos, vel_in, array_index, cell_start, cell_end, True,
        side, min_x, min_y, min_z, cell_width, inv_width, search_full, cell_skip, rules, acc
    )

    store_velocity(i, px, py, pz, vel_in, vel_out, rules, speed_mode, acc)


@cuda.jit
def update_velocity_neighbor_coherent(pos_sorted, vel_sorted, vel_out, array_index, cell_start, cell_end,
                                      side, min_x, min_y, min_z, cell_width, inv_width,
                                      search_full, cell_skip, rules, speed_mode, n_boids):

    """
    CUDA kernel updating velocities through the uniform grid on buffers already gathered
    in cell order: the members of a cell are contiguous and read directly.
    One thread per sorted slot, vel_out is written in sorted order.
    """

    i = cuda.grid(1)
    if i >= n_boids:
        return

    acc = cuda.local.array(N_ACC, dtype=float32)
    clear_accumulator(acc)

    px, py, pz = pos_sorted[i, 0], pos_sorted[i, 1], pos_sorted[i, 2]

    scan_neighbor_cells(
        i, px, py, pz, pos_sorted, vel_sorted, array_index, cell_start, cell_end, False,
        side, min_x, min_y, min_z, cell_width, inv_width, search_full, cell_skip, rules, acc
    )

    store_velocity(i, px, py, pz, vel_sorted, vel_out, rules, speed_mode, acc)
