# SPDX-FileCopyrightText: Copyright (c) 2025, NVIDIA CORPORATION. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

import cupy as cp
import pytest
from cupy.testing import assert_array_equal

from cumedian._shared._context import DeviceContext
from cumedian._shared._errors import InvalidArgumentError, InvalidHandleError
from cumedian.pool import BufferPool

pytestmark = pytest.mark.gpu


@pytest.fixture
def context():
    ctx = DeviceContext()
    yield ctx
    ctx.close()


def test_allocate_and_view(context):
    buffer = context.allocate(1000)
    assert buffer.capacity == 1000
    assert buffer.pool is None
    view = buffer.view((20, 30))
    assert view.shape == (20, 30)
    assert view.dtype == cp.uint8
    assert view.flags.c_contiguous
    view[...] = 7
    # a second view aliases the same memory
    assert_array_equal(buffer.view((600,)), cp.full((600,), 7, cp.uint8))


def test_view_exceeds_capacity(context):
    buffer = context.allocate(100)
    with pytest.raises(ValueError):
        buffer.view((11, 10))


def test_view_after_free(context):
    buffer = context.allocate(100)
    buffer.free()
    assert buffer.freed
    with pytest.raises(ValueError):
        buffer.view((10, 10))


@pytest.mark.parametrize("nbytes", [0, -1])
def test_allocate_non_positive(context, nbytes):
    with pytest.raises(InvalidArgumentError):
        context.allocate(nbytes)


def test_closed_context(context):
    context.close()
    assert context.closed
    with pytest.raises(InvalidHandleError):
        context.allocate(16)
    with pytest.raises(InvalidHandleError):
        context.stream()
    # closing again is harmless
    context.close()


def test_invalid_device_id():
    with pytest.raises(InvalidArgumentError):
        DeviceContext(cp.cuda.runtime.getDeviceCount())
    with pytest.raises(InvalidArgumentError):
        DeviceContext(-1)


def test_pool_on_device():
    with BufferPool(32, 16) as pool:
        buffer = pool.acquire(32 * 16)
        assert buffer.pool is pool
        buffer.view((16, 32))[...] = 3
        pool.release(buffer)
        assert pool.stats_snapshot().allocations == 2
    assert pool.closed
    assert pool.context.closed


def test_independent_pools():
    with BufferPool(8, 8) as first, BufferPool(8, 8) as second:
        assert first.context is not second.context
        a = first.acquire(64)
        b = second.acquire(64)
        a.view((64,))[...] = 1
        b.view((64,))[...] = 2
        assert int(a.view((64,)).sum()) == 64
        assert int(b.view((64,)).sum()) == 128
        first.release(a)
        second.release(b)
