# SPDX-FileCopyrightText: Copyright (c) 2025, NVIDIA CORPORATION. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

import math
import weakref

import cupy as cp

__all__ = ["DeviceBuffer"]


class DeviceBuffer:
    """A single device allocation plus the bookkeeping a pool needs.

    Parameters
    ----------
    memory : cupy.cuda.Memory
        The underlying device allocation. Ownership moves to the buffer.
    capacity : int
        Usable size of ``memory`` in bytes.
    pool : BufferPool, optional
        Owning pool. Only a weak reference is kept so that a buffer never
        keeps its pool alive.
    """

    __slots__ = ("capacity", "in_use", "_memory", "_weak_pool")

    def __init__(self, memory, capacity, pool=None):
        self._memory = memory
        self.capacity = int(capacity)
        self.in_use = False
        self._weak_pool = weakref.ref(pool) if pool is not None else None

    @property
    def pool(self):
        return self._weak_pool() if self._weak_pool is not None else None

    @property
    def freed(self):
        return self._memory is None

    def _attach(self, pool):
        self._weak_pool = weakref.ref(pool)

    def view(self, shape):
        """Return a C-contiguous ``uint8`` array over the start of the buffer.

        Parameters
        ----------
        shape : tuple of int
            Shape of the view. ``prod(shape)`` must not exceed ``capacity``.
        """
        if self._memory is None:
            raise ValueError("buffer has been freed")
        shape = tuple(int(s) for s in shape)
        nbytes = math.prod(shape)
        if nbytes > self.capacity:
            raise ValueError(
                f"view of {nbytes} bytes exceeds capacity {self.capacity}"
            )
        memptr = cp.cuda.MemoryPointer(self._memory, 0)
        return cp.ndarray(shape, dtype=cp.uint8, memptr=memptr)

    def free(self):
        """Drop the device allocation.

        The memory is returned to the device once the last array viewing it
        is garbage collected.
        """
        self._memory = None
        self.in_use = False

    def __repr__(self):
        state = "in_use" if self.in_use else "free"
        if self._memory is None:
            state = "freed"
        return f"DeviceBuffer(capacity={self.capacity}, {state})"
