# SPDX-FileCopyrightText: Copyright (c) 2025, NVIDIA CORPORATION. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Reusable pool of device buffers for repeated median filter requests.

Allocation policy
-----------------
- Eager: ``initial_buffers`` slots of ``max_width * max_height`` bytes are
  allocated when the pool is created, enough for one source and one
  destination image at the maximum size.
- Best-fit: ``acquire`` hands out the smallest free entry whose capacity
  covers the request. Ties go to the entry allocated first.
- Lazy growth: when no free entry fits, one new entry sized to the request
  (rounded up to ``ALLOCATION_GRANULARITY``) is allocated as long as the pool
  holds fewer than ``max_buffers`` entries.
- Replacement: at ``max_buffers`` entries, the smallest idle entry that is
  too small for the request is freed and re-allocated at the needed size.
- Saturation: otherwise ``acquire`` waits up to ``wait_timeout`` seconds for
  a release and then raises :class:`PoolExhaustedError`.
"""

import time
from collections import namedtuple
from threading import Condition

from cumedian._shared._context import DeviceContext
from cumedian._shared._errors import (
    BufferReleaseError,
    BuffersInUseError,
    DimensionError,
    InvalidArgumentError,
    InvalidHandleError,
    PoolExhaustedError,
)
from cumedian._shared.utils import as_positive_int

__all__ = [
    "ALLOCATION_GRANULARITY",
    "DEFAULT_MAX_BUFFERS",
    "BufferPool",
    "PoolStats",
]

DEFAULT_MAX_BUFFERS = 16
ALLOCATION_GRANULARITY = 512

PoolStats = namedtuple(
    "PoolStats",
    [
        "hits",  # acquisitions served by an existing entry
        "misses",  # acquisitions that had to grow the pool
        "replacements",  # idle undersized entries re-allocated at capacity
        "allocations",  # device allocations, including the eager ones
        "waits",  # acquisitions that blocked on a saturated pool
        "in_use",
        "available",
        "reserved_bytes",
    ],
)


def _round_up(n, multiple):
    return -(-n // multiple) * multiple


class BufferPool:
    """Thread-safe pool of device buffers sized for bounded images.

    Parameters
    ----------
    max_width, max_height : int
        Upper bounds on the images this pool will serve. Both must be
        positive.
    context : DeviceContext, optional
        Device context to allocate from. If None, a context for device 0 is
        created. Either way the pool owns the context and closes it in
        :meth:`close`.
    max_buffers : int, optional
        Maximum number of entries the pool may hold.
    initial_buffers : int, optional
        Number of full-size entries allocated up front. Default is 2 (one
        source and one destination image).
    wait_timeout : float, optional
        Seconds ``acquire`` waits for a release when the pool is saturated.
        The default of 0 reports failure immediately.
    """

    def __init__(
        self,
        max_width,
        max_height,
        *,
        context=None,
        max_buffers=DEFAULT_MAX_BUFFERS,
        initial_buffers=2,
        wait_timeout=0.0,
    ):
        max_width = as_positive_int(max_width, "max_width")
        max_height = as_positive_int(max_height, "max_height")
        if max_buffers < 1:
            raise InvalidArgumentError("max_buffers must be >= 1")
        if not 0 <= initial_buffers <= max_buffers:
            raise InvalidArgumentError(
                "initial_buffers must be between 0 and max_buffers"
            )
        if wait_timeout < 0:
            raise InvalidArgumentError("wait_timeout must be non-negative")

        self.max_width = max_width
        self.max_height = max_height
        self.slot_bytes = self.max_width * self.max_height
        self.max_buffers = int(max_buffers)
        self.wait_timeout = float(wait_timeout)
        self.context = context if context is not None else DeviceContext()

        self._cond = Condition()
        self._entries = []
        self._closed = False
        self._hits = 0
        self._misses = 0
        self._replacements = 0
        self._allocations = 0
        self._waits = 0

        try:
            for _ in range(initial_buffers):
                self._entries.append(self._allocate(self.slot_bytes))
        except Exception:
            self._free_all()
            self.context.close()
            raise

    @property
    def closed(self):
        return self._closed

    def _allocate(self, nbytes):
        buffer = self.context.allocate(nbytes)
        buffer._attach(self)
        self._allocations += 1
        return buffer

    def _best_fit(self, required_bytes):
        best = None
        for entry in self._entries:
            if entry.in_use or entry.capacity < required_bytes:
                continue
            if best is None or entry.capacity < best.capacity:
                best = entry
        return best

    def _smallest_idle(self):
        idle = [entry for entry in self._entries if not entry.in_use]
        if not idle:
            return None
        return min(idle, key=lambda entry: entry.capacity)

    def acquire(self, required_bytes):
        """Check out a buffer with at least ``required_bytes`` of capacity.

        Raises
        ------
        InvalidHandleError
            If the pool has been closed.
        DimensionError
            If ``required_bytes`` exceeds a full-size slot.
        PoolExhaustedError
            If no entry frees up within ``wait_timeout`` seconds.
        AllocationError
            If growing the pool fails on the device.
        """
        required_bytes = int(required_bytes)
        if required_bytes <= 0:
            raise InvalidArgumentError("required_bytes must be positive")
        if required_bytes > self.slot_bytes:
            raise DimensionError(
                f"request of {required_bytes} bytes exceeds the pool slot "
                f"size of {self.slot_bytes} bytes"
            )

        deadline = None
        with self._cond:
            while True:
                if self._closed:
                    raise InvalidHandleError("buffer pool has been cleaned up")

                entry = self._best_fit(required_bytes)
                if entry is not None:
                    self._hits += 1
                    entry.in_use = True
                    return entry

                nbytes = min(
                    _round_up(required_bytes, ALLOCATION_GRANULARITY),
                    self.slot_bytes,
                )
                if len(self._entries) < self.max_buffers:
                    entry = self._allocate(nbytes)
                    self._misses += 1
                    entry.in_use = True
                    self._entries.append(entry)
                    return entry

                # every idle entry is too small here; trade one for a
                # larger allocation
                victim = self._smallest_idle()
                if victim is not None:
                    self._entries.remove(victim)
                    victim.free()
                    self._replacements += 1
                    entry = self._allocate(nbytes)
                    self._misses += 1
                    entry.in_use = True
                    self._entries.append(entry)
                    return entry

                if deadline is None:
                    deadline = time.monotonic() + self.wait_timeout
                    self._waits += 1
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise PoolExhaustedError(
                        f"all {len(self._entries)} pool buffers are in use"
                    )
                self._cond.wait(remaining)

    def release(self, buffer):
        """Return ``buffer`` to the pool.

        Releasing a buffer twice indicates a bug in the caller and raises
        :class:`BufferReleaseError` rather than being ignored.
        """
        with self._cond:
            if buffer.pool is not self:
                raise BufferReleaseError("buffer does not belong to this pool")
            if not buffer.in_use:
                raise BufferReleaseError("buffer released twice")
            buffer.in_use = False
            self._cond.notify_all()

    def _free_all(self):
        for entry in self._entries:
            entry.free()
        self._entries.clear()

    def close(self):
        """Free every entry and invalidate the pool.

        Raises
        ------
        BuffersInUseError
            If any buffer is still checked out. Nothing is freed in that case
            and the pool stays usable.
        InvalidHandleError
            If the pool was already closed.
        """
        with self._cond:
            if self._closed:
                raise InvalidHandleError("buffer pool has been cleaned up")
            in_use = sum(1 for entry in self._entries if entry.in_use)
            if in_use:
                raise BuffersInUseError(
                    f"{in_use} buffer(s) still in use; release them before "
                    "cleaning up the pool"
                )
            self._closed = True
            self._free_all()
            # wake waiters so they observe the closed state
            self._cond.notify_all()
        self.context.close()

    def stats_snapshot(self):
        with self._cond:
            in_use = sum(1 for entry in self._entries if entry.in_use)
            return PoolStats(
                hits=self._hits,
                misses=self._misses,
                replacements=self._replacements,
                allocations=self._allocations,
                waits=self._waits,
                in_use=in_use,
                available=len(self._entries) - in_use,
                reserved_bytes=sum(e.capacity for e in self._entries),
            )

    def __len__(self):
        with self._cond:
            return len(self._entries)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        if not self._closed:
            self.close()

    def __repr__(self):
        state = "closed" if self._closed else f"{len(self._entries)} entries"
        return (
            f"BufferPool(max_width={self.max_width}, "
            f"max_height={self.max_height}, {state})"
        )
