# SPDX-FileCopyrightText: Copyright (c) 2025, NVIDIA CORPORATION. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Status-code entry points for median filtering with an optional pool.

These four functions keep the names, argument order and return conventions
of the C interface of the native library: a pool handle (or ``None`` on
failure) from :func:`cuda_init_buffer_pool` and an integer
:class:`~cumedian.Status` from the others. None of them raise for the
failure classes described by :class:`~cumedian.Status`.

Examples
--------
>>> import numpy as np
>>> from cumedian import api
>>> pool = api.cuda_init_buffer_pool(640, 480)
>>> src = np.zeros((480, 640), dtype=np.uint8)
>>> dst = np.empty_like(src)
>>> api.cuda_median_filter_with_pool(pool, src, 640, 480, 5, dst)
<Status.SUCCESS: 0>
>>> api.cuda_cleanup_buffer_pool(pool)
<Status.SUCCESS: 0>
"""

from warnings import warn

from cumedian._pipeline import filter_with_pool, filter_without_pool
from cumedian._shared._errors import (
    InvalidHandleError,
    MedianFilterError,
    Status,
)
from cumedian.pool import BufferPool

__all__ = [
    "cuda_cleanup_buffer_pool",
    "cuda_init_buffer_pool",
    "cuda_median_filter",
    "cuda_median_filter_with_pool",
]

# failures whose cause is not already obvious from the status code
_reported_statuses = {
    Status.ALLOCATION_FAILURE,
    Status.DEVICE_FAILURE,
    Status.BUFFERS_IN_USE,
}


def _status_from_error(func_name, error):
    status = error.status
    if status in _reported_statuses:
        warn(f"{func_name} failed: {error}", RuntimeWarning, stacklevel=3)
    return status


def cuda_init_buffer_pool(max_width, max_height):
    """Create a buffer pool for images up to ``max_width x max_height``.

    Returns
    -------
    pool : BufferPool or None
        Opaque pool handle, or None if the bounds are not positive or the
        initial device reservation could not be made.
    """
    try:
        return BufferPool(max_width, max_height)
    except MedianFilterError as e:
        _status_from_error("cuda_init_buffer_pool", e)
        return None


def cuda_cleanup_buffer_pool(pool):
    """Free all device memory held by ``pool`` and invalidate the handle.

    Returns ``Status.BUFFERS_IN_USE`` without freeing anything while a
    filter call using the pool is still in flight, and
    ``Status.INVALID_HANDLE`` for None or an already cleaned up handle.
    """
    try:
        if not isinstance(pool, BufferPool):
            raise InvalidHandleError(f"not a buffer pool handle: {pool!r}")
        pool.close()
    except MedianFilterError as e:
        return _status_from_error("cuda_cleanup_buffer_pool", e)
    return Status.SUCCESS


def cuda_median_filter_with_pool(pool, src, width, height, kernel_size, dst):
    """Median filter ``src`` into ``dst`` using device buffers from ``pool``.

    Parameters
    ----------
    pool : BufferPool
        Handle returned by :func:`cuda_init_buffer_pool`.
    src : numpy.ndarray or bytes-like
        Row-major uint8 pixels, at least ``width * height`` bytes.
    width, height : int
        Image dimensions; must not exceed the pool bounds.
    kernel_size : int
        Odd window side length, at least 3 and smaller than
        ``min(width, height)``.
    dst : numpy.ndarray or writable bytes-like
        Receives the filtered pixels. Only written on success.

    Returns
    -------
    status : Status
    """
    try:
        filter_with_pool(pool, src, width, height, kernel_size, dst)
    except MedianFilterError as e:
        return _status_from_error("cuda_median_filter_with_pool", e)
    return Status.SUCCESS


def cuda_median_filter(src, width, height, kernel_size, dst):
    """Median filter ``src`` into ``dst`` without a pool.

    Device memory is allocated and freed within the call. Arguments and
    return value are as for :func:`cuda_median_filter_with_pool`.
    """
    try:
        filter_without_pool(src, width, height, kernel_size, dst)
    except MedianFilterError as e:
        return _status_from_error("cuda_median_filter", e)
    return Status.SUCCESS
