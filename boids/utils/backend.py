import numpy as np
from numba import config as numba_config

"""
Array Backend
-------------

Buffers live in CuPy device arrays on the GPU. When numba runs its CUDA simulator
(NUMBA_ENABLE_CUDASIM=1) the same kernels execute on the CPU and take NumPy arrays.
"""


def simulator_enabled():
    return bool(numba_config.ENABLE_CUDASIM)


def get_array_module():

    """
    Returns the array module matching the kernel target (cupy on device, numpy in the simulator).
    """

    if simulator_enabled():
        return np

    import cupy as cp
    return cp


def to_host(arr):
    """Copies a device array back into a NumPy array."""
    xp = get_array_module()
    if xp is np:
        return np.array(arr, copy=True)
    return xp.asnumpy(arr)


def free_device_memory():
    """Releases cached blocks held by the CuPy memory pools."""
    if simulator_enabled():
        return

    import cupy as cp
    cp.get_default_memory_pool().free_all_blocks()
    cp.get_default_pinned_memory_pool().free_all_blocks()
