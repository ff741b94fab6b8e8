from numba import cuda

"""
Render Kernels
--------------

Export of the simulation buffers into flat, display ready vertex buffers
(x, y, z, w per boid) and the density splatting used by the Camera.
"""


@cuda.jit
def copy_positions_to_vbo(pos, vbo, scene_scale, n_boids):

    """
    CUDA kernel copying positions into a flat vertex buffer, scaled into [-1, 1].

    Param:

    :pos : DeviceArray\\
        (N, 3) positions
    :vbo : DeviceArray\\
        Flat float32 output of size 4 * N
    :scene_scale : float\\
        Half extent of the scene
    """

    i = cuda.grid(1)
    if i < n_boids:
        c_scale = -1.0 / scene_scale
        vbo[4 * i + 0] = pos[i, 0] * c_scale
        vbo[4 * i + 1] = pos[i, 1] * c_scale
        vbo[4 * i + 2] = pos[i, 2] * c_scale
        vbo[4 * i + 3] = 1.0


@cuda.jit
def copy_velocities_to_vbo(vel, vbo, n_boids):

    """
    CUDA kernel copying velocities into a flat vertex buffer, shifted by 0.3 so that
    boids at rest still get a visible color.
    """

    i = cuda.grid(1)
    if i < n_boids:
        vbo[4 * i + 0] = vel[i, 0] + 0.3
        vbo[4 * i + 1] = vel[i, 1] + 0.3
        vbo[4 * i + 2] = vel[i, 2] + 0.3
        vbo[4 * i + 3] = 1.0


@cuda.jit
def render_density(vbo, grid, mvp, res, n_boids):

    """
    CUDA kernel splatting every boid of a position vertex buffer onto a 2D density grid
    using a model-view-projection (MVP) matrix. Closer boids weigh more.

    Param:

    :vbo : DeviceArray\\
        Flat position buffer written by copy_positions_to_vbo.
    :grid : DeviceArray\\
        (res, res) float32 density grid, accumulated with atomics.
    :mvp : DeviceArray\\
        4x4 model-view-projection matrix.
    :res : int\\
        Resolution of the output grid
    """

    i = cuda.grid(1)
    if i < n_boids:
        x, y, z = vbo[4 * i], vbo[4 * i + 1], vbo[4 * i + 2]

        xc = mvp[0, 0] * x + mvp[0, 1] * y + mvp[0, 2] * z + mvp[0, 3]
        yc = mvp[1, 0] * x + mvp[1, 1] * y + mvp[1, 2] * z + mvp[1, 3]
        wc = mvp[3, 0] * x + mvp[3, 1] * y + mvp[3, 2] * z + mvp[3, 3]

        if wc > 0.01:
            inv = 1.0 / wc
            sx = (xc * inv + 1.0) * 0.5 * res
            sy = (1.0 - yc * inv) * 0.5 * res

            if 0 <= sx < res and 0 <= sy < res:
                cuda.atomic.add(grid, (int(sy), int(sx)), inv)
