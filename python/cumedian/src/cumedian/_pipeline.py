# SPDX-FileCopyrightText: Copyright (c) 2025, NVIDIA CORPORATION. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""End-to-end handling of one median filter request on host buffers.

Both paths validate the request before touching the device, move the source
image to the device, run :func:`cumedian.filters.median_filter`, and copy the
result back. The destination buffer is written only after the whole device
round trip succeeded.
"""

import contextlib

import numpy as np
from cupy.cuda import runtime

from cumedian._shared._context import DeviceContext
from cumedian._shared._errors import (
    DimensionError,
    InvalidArgumentError,
    InvalidHandleError,
    translate_device_errors,
)
from cumedian._shared.utils import as_host_bytes, as_positive_int
from cumedian.filters import median_filter
from cumedian.pool import BufferPool

__all__ = [
    "filter_with_pool",
    "filter_without_pool",
    "validate_request",
]


def validate_request(src, width, height, kernel_size, dst):
    """Check a filter request and return flat host views of ``src``/``dst``.

    Raises
    ------
    InvalidArgumentError
        For missing or short buffers, a read-only ``dst``, non-positive
        dimensions, or a kernel size that is even, smaller than 3, or not
        smaller than ``min(width, height)``.
    """
    width = as_positive_int(width, "width")
    height = as_positive_int(height, "height")
    kernel_size = as_positive_int(kernel_size, "kernel_size")
    if kernel_size % 2 == 0 or kernel_size < 3:
        raise InvalidArgumentError(
            f"kernel_size must be an odd integer >= 3, got {kernel_size}"
        )
    if kernel_size >= min(width, height):
        raise InvalidArgumentError(
            f"kernel_size={kernel_size} must be smaller than "
            f"min(width, height)={min(width, height)}"
        )
    nbytes = width * height
    src_view = as_host_bytes(src, "src", nbytes)
    dst_view = as_host_bytes(dst, "dst", nbytes, writable=True)
    return src_view, dst_view, width, height, kernel_size


def _round_trip(
    context, src_buffer, dst_buffer, src_view, shape, kernel_size, algorithm
):
    """Upload, filter and download on a private stream.

    Returns the filtered image in a host staging array.
    """
    stream = context.stream()
    with context.device, translate_device_errors("median filter request"):
        try:
            d_src = src_buffer.view(shape)
            d_dst = dst_buffer.view(shape)
            d_src.set(src_view.reshape(shape), stream=stream)
            median_filter(
                d_src,
                kernel_size,
                out=d_dst,
                algorithm=algorithm,
                stream=stream,
            )
            result = d_dst.get(stream=stream)
        except BaseException:
            # queued copies may still target the buffers about to be
            # released; the original error takes precedence
            with contextlib.suppress(runtime.CUDARuntimeError):
                stream.synchronize()
            raise
        stream.synchronize()
    return result


def filter_with_pool(
    pool, src, width, height, kernel_size, dst, *, algorithm="auto"
):
    """Median filter ``src`` into ``dst`` using buffers drawn from ``pool``.

    Raises the :mod:`cumedian` exception matching the first failure;
    ``dst`` is left untouched in that case.
    """
    src_view, dst_view, width, height, kernel_size = validate_request(
        src, width, height, kernel_size, dst
    )
    if not isinstance(pool, BufferPool):
        raise InvalidHandleError(f"not a buffer pool handle: {pool!r}")
    if pool.closed:
        raise InvalidHandleError("buffer pool has been cleaned up")
    if width > pool.max_width or height > pool.max_height:
        raise DimensionError(
            f"image of {width}x{height} exceeds the pool bounds of "
            f"{pool.max_width}x{pool.max_height}"
        )

    nbytes = width * height
    src_buffer = pool.acquire(nbytes)
    try:
        dst_buffer = pool.acquire(nbytes)
        try:
            result = _round_trip(
                pool.context,
                src_buffer,
                dst_buffer,
                src_view,
                (height, width),
                kernel_size,
                algorithm,
            )
        finally:
            pool.release(dst_buffer)
    finally:
        pool.release(src_buffer)

    np.copyto(dst_view, result.reshape(-1))


def filter_without_pool(
    src, width, height, kernel_size, dst, *, device_id=0, algorithm="auto"
):
    """Median filter ``src`` into ``dst`` with buffers allocated for this call.

    Same contract as :func:`filter_with_pool`, but device memory is
    allocated on entry and freed before returning.
    """
    src_view, dst_view, width, height, kernel_size = validate_request(
        src, width, height, kernel_size, dst
    )
    nbytes = width * height
    with DeviceContext(device_id) as context:
        src_buffer = context.allocate(nbytes)
        try:
            dst_buffer = context.allocate(nbytes)
            try:
                result = _round_trip(
                    context,
                    src_buffer,
                    dst_buffer,
                    src_view,
                    (height, width),
                    kernel_size,
                    algorithm,
                )
            finally:
                dst_buffer.free()
        finally:
            src_buffer.free()

    np.copyto(dst_view, result.reshape(-1))
