# SPDX-FileCopyrightText: Copyright (c) 2025, NVIDIA CORPORATION. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

import threading

import cupy as cp

from cumedian.pool._device_buffer import DeviceBuffer

from ._errors import (
    InvalidArgumentError,
    InvalidHandleError,
    translate_device_errors,
)

__all__ = ["DeviceContext"]


class DeviceContext:
    """Explicitly scoped state for one CUDA device.

    A context is created once, shared by everything that works on behalf of
    a single pool (or a single unpooled request) and torn down once with
    :meth:`close`. Several contexts, on the same or on different devices,
    may coexist in one process.

    Parameters
    ----------
    device_id : int, optional
        Ordinal of the CUDA device to use. Default is 0.

    Examples
    --------
    >>> with DeviceContext(0) as ctx:
    ...     buf = ctx.allocate(1024)
    """

    def __init__(self, device_id=0):
        device_id = int(device_id)
        with translate_device_errors("device query"):
            count = cp.cuda.runtime.getDeviceCount()
        if device_id < 0 or device_id >= count:
            raise InvalidArgumentError(
                f"device_id={device_id} out of range for {count} device(s)"
            )
        self.device = cp.cuda.Device(device_id)
        self._closed = False
        self._lock = threading.Lock()

    @property
    def device_id(self):
        return self.device.id

    @property
    def closed(self):
        return self._closed

    def _check_open(self):
        if self._closed:
            raise InvalidHandleError("device context is closed")

    def allocate(self, nbytes):
        """Allocate ``nbytes`` of device memory directly from the driver.

        Returns a :class:`cumedian.pool.DeviceBuffer` that is not attached to
        any pool. CuPy's own memory pool is bypassed on purpose so that
        freeing the buffer returns memory to the device right away.
        """
        self._check_open()
        nbytes = int(nbytes)
        if nbytes <= 0:
            raise InvalidArgumentError("allocation size must be positive")
        with self.device, translate_device_errors(
            f"allocating {nbytes} bytes"
        ):
            memory = cp.cuda.Memory(nbytes)
        return DeviceBuffer(memory, nbytes)

    def stream(self):
        """Create a new non-blocking stream on this context's device."""
        self._check_open()
        with self.device, translate_device_errors("stream creation"):
            return cp.cuda.Stream(non_blocking=True)

    def synchronize(self):
        self._check_open()
        with translate_device_errors("device synchronization"):
            self.device.synchronize()

    def close(self):
        """Wait for outstanding device work and invalidate the context."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        with translate_device_errors("device synchronization"):
            self.device.synchronize()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def __repr__(self):
        state = "closed" if self._closed else "open"
        return f"DeviceContext(device_id={self.device_id}, {state})"
