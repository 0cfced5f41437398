# SPDX-FileCopyrightText: Copyright (c) 2025, NVIDIA CORPORATION. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Status codes and exception types shared by the pool and filter layers.

Internally, failures are raised as exceptions. Only the functions in
:mod:`cumedian.api` convert them into the integer status codes returned to
callers.
"""

import enum

from cupy.cuda import compiler, driver, memory, runtime

__all__ = [
    "AllocationError",
    "BufferReleaseError",
    "BuffersInUseError",
    "DeviceError",
    "DimensionError",
    "InvalidArgumentError",
    "InvalidHandleError",
    "MedianFilterError",
    "PoolExhaustedError",
    "Status",
    "translate_device_errors",
]


class Status(enum.IntEnum):
    """Integer status codes returned by the :mod:`cumedian.api` functions."""

    SUCCESS = 0
    INVALID_ARGUMENT = 1
    DIMENSION_EXCEEDS_POOL = 2
    ALLOCATION_FAILURE = 3
    DEVICE_FAILURE = 4
    INVALID_HANDLE = 5
    BUFFERS_IN_USE = 6


class MedianFilterError(Exception):
    status = Status.DEVICE_FAILURE


class InvalidArgumentError(MedianFilterError, ValueError):
    status = Status.INVALID_ARGUMENT


class DimensionError(MedianFilterError, ValueError):
    """Request larger than the bounds a pool was created for."""

    status = Status.DIMENSION_EXCEEDS_POOL


class AllocationError(MedianFilterError, MemoryError):
    status = Status.ALLOCATION_FAILURE


class PoolExhaustedError(AllocationError):
    """No free entry and no headroom left to grow the pool."""


class DeviceError(MedianFilterError, RuntimeError):
    """Transfer, compilation or launch failure reported by the runtime."""

    status = Status.DEVICE_FAILURE


class InvalidHandleError(MedianFilterError):
    status = Status.INVALID_HANDLE


class BuffersInUseError(MedianFilterError):
    """Pool cleanup requested while buffers are still checked out."""

    status = Status.BUFFERS_IN_USE


class BufferReleaseError(MedianFilterError):
    """Release of a buffer that is already free or owned elsewhere."""

    status = Status.INVALID_ARGUMENT


class translate_device_errors:
    """Context manager mapping CuPy runtime failures onto our error types.

    Out-of-memory conditions become :class:`AllocationError`; CUDA runtime
    and driver errors as well as kernel compilation failures become
    :class:`DeviceError`. Errors already deriving from
    :class:`MedianFilterError` pass through untouched.
    """

    def __init__(self, what):
        self.what = what

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc is None or isinstance(exc, MedianFilterError):
            return False
        if isinstance(exc, memory.OutOfMemoryError):
            raise AllocationError(f"{self.what}: {exc}") from exc
        if isinstance(
            exc,
            (
                runtime.CUDARuntimeError,
                driver.CUDADriverError,
                compiler.CompileException,
            ),
        ):
            # cudaMalloc outside of CuPy's memory pool reports OOM as a
            # runtime error status
            if (
                isinstance(exc, runtime.CUDARuntimeError)
                and exc.status == runtime.errorMemoryAllocation
            ):
                raise AllocationError(f"{self.what}: {exc}") from exc
            raise DeviceError(f"{self.what}: {exc}") from exc
        return False
