# SPDX-FileCopyrightText: Copyright (c) 2025, NVIDIA CORPORATION. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

import cupy as cp
import numpy as np

from ._median_kernels import (
    get_histogram_kernel,
    get_select_kernel,
    histogram_grid_block,
    select_grid_block,
)

__all__ = [
    "SELECT_AUTO_MAX_KERNEL_SIZE",
    "SELECT_MAX_KERNEL_SIZE",
    "median_filter",
    "median_filter_reference",
]

# 'auto' uses the selection kernel up to 7x7 (49 samples)
SELECT_AUTO_MAX_KERNEL_SIZE = 7
# largest window the selection kernel keeps in local memory (225 samples)
SELECT_MAX_KERNEL_SIZE = 15

_valid_algorithms = {"auto", "select", "histogram"}


def _check_kernel_size(kernel_size):
    if isinstance(kernel_size, bool) or not isinstance(
        kernel_size, (int, np.integer)
    ):
        raise TypeError("kernel_size must be an integer")
    kernel_size = int(kernel_size)
    if kernel_size < 1 or kernel_size % 2 == 0:
        raise ValueError(
            f"kernel_size must be a positive odd integer, got {kernel_size}"
        )
    return kernel_size


def _choose_algorithm(algorithm, kernel_size):
    if algorithm not in _valid_algorithms:
        raise ValueError(
            f"unknown algorithm: {algorithm}. "
            f"Valid options are: {sorted(_valid_algorithms)}"
        )
    if algorithm == "auto":
        if kernel_size <= SELECT_AUTO_MAX_KERNEL_SIZE:
            return "select"
        return "histogram"
    if algorithm == "select" and kernel_size > SELECT_MAX_KERNEL_SIZE:
        raise ValueError(
            "The select algorithm was requested, but it supports kernel "
            f"sizes up to {SELECT_MAX_KERNEL_SIZE} (got {kernel_size})."
        )
    return algorithm


def median_filter(
    image, kernel_size=3, out=None, *, algorithm="auto", stream=None
):
    """Return the local median of a 2D uint8 image.

    Every output pixel is the median of the ``kernel_size x kernel_size``
    neighborhood centered on it. Neighbors outside the image are replaced by
    the nearest pixel inside it (equivalent to ``mode='nearest'`` in
    :func:`scipy.ndimage.median_filter`).

    Parameters
    ----------
    image : cupy.ndarray
        Input image, 2D with dtype uint8. Any shape is supported, including
        single-row and single-column images.
    kernel_size : int, optional
        Side length of the square neighborhood. Must be a positive odd
        integer. Default is 3.
    out : cupy.ndarray, optional
        C-contiguous uint8 array with the same shape as ``image`` to write
        the result to. Must not share memory with ``image``. If None, a new
        array is allocated.

    Other Parameters
    ----------------
    algorithm : {'auto', 'select', 'histogram'}
        How the median of each window is found.

        - 'select': tiled shared-memory kernel with a partial selection sort
          per pixel. Fastest for small windows; supports kernel sizes up to
          ``SELECT_MAX_KERNEL_SIZE``.
        - 'histogram': sliding-window 256-bin histogram per thread. Run time
          grows only linearly with ``kernel_size``.
        - 'auto': 'select' for kernel sizes up to
          ``SELECT_AUTO_MAX_KERNEL_SIZE``, 'histogram' above.

        Both algorithms give identical results.
    stream : cupy.cuda.Stream, optional
        Stream to launch the kernel on. Defaults to the current stream.

    Returns
    -------
    out : cupy.ndarray
        Median-filtered image, same shape and dtype as ``image``.

    Notes
    -----
    The window always holds ``kernel_size**2`` samples, an odd number, so
    the median is always one of the input values and never an average.

    Examples
    --------
    >>> import cupy as cp
    >>> from cumedian.filters import median_filter
    >>> img = cp.full((64, 64), 10, dtype=cp.uint8)
    >>> img[32, 32] = 255
    >>> int(median_filter(img, 3)[32, 32])
    10
    """
    if not isinstance(image, cp.ndarray):
        raise TypeError("image must be a cupy.ndarray")
    if image.ndim != 2:
        raise ValueError("Only 2D images are supported")
    if image.dtype != cp.uint8:
        raise ValueError(f"image dtype must be uint8, got {image.dtype}")
    kernel_size = _check_kernel_size(kernel_size)
    algorithm = _choose_algorithm(algorithm, kernel_size)

    # kernels assume row-major order
    image = cp.ascontiguousarray(image)
    height, width = image.shape

    if out is None:
        out = cp.empty_like(image)
    else:
        if not isinstance(out, cp.ndarray):
            raise TypeError("out must be a cupy.ndarray")
        if out.shape != image.shape or out.dtype != cp.uint8:
            raise ValueError("out must be uint8 with the same shape as image")
        if not out.flags.c_contiguous:
            raise ValueError("out must be C-contiguous")
        if cp.shares_memory(out, image):
            raise NotImplementedError("Cannot perform median filter in place.")

    if image.size == 0:
        return out
    if kernel_size == 1:
        out[...] = image
        return out

    if algorithm == "select":
        kernel = get_select_kernel(kernel_size)
        grid, block = select_grid_block(height, width)
        args = (image, out, np.int32(width), np.int32(height))
    else:
        kernel = get_histogram_kernel()
        grid, block = histogram_grid_block(height, width)
        args = (
            image,
            out,
            np.int32(width),
            np.int32(height),
            np.int32(kernel_size // 2),
        )
    if stream is None:
        kernel(grid, block, args)
    else:
        with stream:
            kernel(grid, block, args)
    return out


def median_filter_reference(image, kernel_size):
    """Simple NumPy reference implementation of :func:`median_filter`.

    Used to validate the CUDA kernels. Accepts a NumPy or CuPy array and
    returns a NumPy array.
    """
    image = np.asarray(cp.asnumpy(image))
    radius = kernel_size // 2
    padded = np.pad(image, radius, mode="edge")
    windows = np.lib.stride_tricks.sliding_window_view(
        padded, (kernel_size, kernel_size)
    )
    flat = windows.reshape(image.shape + (kernel_size * kernel_size,))
    mid = (kernel_size * kernel_size) // 2
    return np.partition(flat, mid, axis=-1)[..., mid].astype(image.dtype)
