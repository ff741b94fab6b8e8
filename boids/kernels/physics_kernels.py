from numba import cuda

"""
Physics kernels
---------------

Initial layout generation and position integration.
"""

MASK32 = 0xFFFFFFFF


@cuda.jit(device=True)
def hash32(a):

    """
    Bob Jenkins' 32 bit integer hash. The arithmetic is done on 64 bit integers and
    masked back to 32 bits after every step so the simulator and the device agree.
    """

    a = a & MASK32
    a = ((a + 0x7ed55d16) + (a << 12)) & MASK32
    a = ((a ^ 0xc761c23c) ^ (a >> 19)) & MASK32
    a = ((a + 0x165667b1) + (a << 5)) & MASK32
    a = ((a + 0xd3a2646c) ^ (a << 9)) & MASK32
    a = ((a + 0xfd7046c5) + (a << 3)) & MASK32
    a = ((a ^ 0xb55a4f09) ^ (a >> 16)) & MASK32
    return a


@cuda.jit
def generate_random_vectors(out, frame, stream, scale, n_boids):

    """
    CUDA kernel filling out[i] with a vector uniform in [-scale, scale)^3.
    The draw only depends on (frame, stream, i): the same frame always gives the same layout.

    Param:

    :out : DeviceArray\\
        (N, 3) float output
    :frame : int\\
        Frame counter used as seed
    :stream : int\\
        Independent sequence id (0 for positions, 1 for velocities)
    :scale : float\\
        Half extent of the generated values
    :n_boids : int\\
        The number of boids to process
    """

    i = cuda.grid(1)
    if i < n_boids:

        seed = hash32(frame * 0x27d4eb2d + stream * 0x165667b1)
        state = hash32(i * 0x9e3779b1 + seed)

        for axis in range(3):
            state = hash32(state + axis)
            u = (state & 0xFFFFFF) / 16777216.0
            out[i, axis] = (2.0 * u - 1.0) * scale


@cuda.jit
def integrate(pos, vel, dt, scene_scale, n_boids):

    """
    CUDA kernel advancing positions by one step and wrapping them inside the scene.
    A coordinate leaving through one face reappears on the opposite one; a coordinate
    exactly on a face stays where it is.

    Param:

    :pos : DeviceArray\\
        (N, 3) positions, updated in place
    :vel : DeviceArray\\
        (N, 3) velocities of the new frame, in the same order as pos
    :dt : float\\
        Time step
    :scene_scale : float\\
        Half extent of the scene
    :n_boids : int\\
        The number of boids to process
    """

    i = cuda.grid(1)
    if i < n_boids:
        for axis in range(3):
            p = pos[i, axis] + vel[i, axis] * dt
            if p < -scene_scale:
                p = scene_scale
            elif p > scene_scale:
                p = -scene_scale
            pos[i, axis] = p
