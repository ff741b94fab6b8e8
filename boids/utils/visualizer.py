import numpy as np
from numpy.typing import NDArray
from boids.utils.backend import get_array_module


def normalize(v : NDArray[np.float32]) -> NDArray[np.float32]:
    norm = np.linalg.norm(v)
    return v if norm == 0 else v / norm


def look_at(eye : NDArray[np.float32], target : NDArray[np.float32], up : NDArray[np.float32]) -> NDArray[np.float32]:
    """
    Creates a View Matrix for projection.

    Param:

    :eye: Array\\
        Position of the camera
    :target: Array\\
        Position of the target
    :up: Array\\
        Upward direction
    """
    z = normalize(eye - target)
    x = normalize(np.cross(up, z))
    y = np.cross(z, x)

    view = np.identity(4, dtype=np.float32)
    view[0, :3] = x
    view[1, :3] = y
    view[2, :3] = z
    view[:3, 3] = -view[:3, :3] @ eye

    return view


def perspective(fov_deg : float, aspect : float, near : float, far : float) -> NDArray[np.float32]:
    """
    Creates a Perspective Projection Matrix mapping view space into clip space.
    """
    f = 1.0 / np.tan(np.radians(fov_deg) / 2.0)

    proj = np.zeros((4, 4), dtype=np.float32)
    proj[0, 0] = f / aspect
    proj[1, 1] = f
    proj[2, 2] = (far + near) / (near - far)
    proj[2, 3] = (2 * far * near) / (near - far)
    proj[3, 2] = -1.0

    return proj


def get_mvp_matrix(step : int, config) -> NDArray[np.float32]:
    """
    MVP matrix of a camera orbiting around the exported scene, which spans [-1, 1]^3.

    Param:

    :step: int\\
        Frame number, drives the orbit angle
    :config: Configuration object containing the render settings.
    """

    angle = step * config.ROTATION_SPEED
    radius = config.CAM_DIST_MULT

    eye = np.array([radius * np.cos(angle), 0.4, radius * np.sin(angle)], dtype=np.float32)
    target = np.zeros(3, dtype=np.float32)
    up = np.array([0, 1, 0], dtype=np.float32)

    view = look_at(eye, target, up)
    proj = perspective(config.FOV, 1.0, 0.05, radius * 3.0)

    return (proj @ view).astype(np.float32)


def colorize_frame(grid_d):

    """
    Maps a density grid to an RGB frame in [0, 1]: dark blue for sparse regions up to
    white in the densest part of the flocks.

    Param:

    :grid_d: DeviceArray\\
        (res, res) density grid
    """

    xp = get_array_module()

    img = xp.log1p(grid_d * 4.0)
    img /= xp.max(img) + 1e-9
    val = xp.power(img, 0.6)

    r = xp.clip(val * 1.6 - 0.6, 0, 1)
    g = xp.clip(val * 1.3 - 0.2, 0, 1)
    b = xp.clip(val * 1.5 + 0.05 * (val > 0), 0, 1)

    return xp.stack([r, g, b], axis=-1)
