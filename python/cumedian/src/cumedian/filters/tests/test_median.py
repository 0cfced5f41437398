# SPDX-FileCopyrightText: Copyright (c) 2025, NVIDIA CORPORATION. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

import cupy as cp
import numpy as np
import pytest
from cupy.testing import assert_array_equal
from scipy import ndimage as ndi_cpu
from skimage import data

from cumedian.filters import (
    SELECT_MAX_KERNEL_SIZE,
    median_filter,
    median_filter_reference,
)

pytestmark = pytest.mark.gpu


def _random_image(shape, seed=5):
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=shape, dtype=np.uint8)


def _cpu_median(image, kernel_size):
    return ndi_cpu.median_filter(image, size=kernel_size, mode="nearest")


@pytest.mark.parametrize("algorithm", ["select", "histogram"])
@pytest.mark.parametrize("shape", [(1, 1), (5, 5), (31, 17), (64, 128)])
@pytest.mark.parametrize("value", [0, 73, 255])
def test_flat_image(algorithm, shape, value):
    img = cp.full(shape, value, dtype=cp.uint8)
    out = median_filter(img, 5, algorithm=algorithm)
    assert_array_equal(out, img)
    # filtering twice keeps a constant image constant
    assert_array_equal(median_filter(out, 5, algorithm=algorithm), img)


@pytest.mark.parametrize("algorithm", ["select", "histogram"])
@pytest.mark.parametrize("kernel_size", [3, 5, 7, 9, 15])
@pytest.mark.parametrize("shape", [(37, 53), (16, 16), (100, 33)])
def test_random_vs_scipy(algorithm, kernel_size, shape):
    img = _random_image(shape)
    expected = _cpu_median(img, kernel_size)
    out = median_filter(cp.asarray(img), kernel_size, algorithm=algorithm)
    assert out.dtype == cp.uint8
    assert out.shape == img.shape
    assert_array_equal(out, expected)


@pytest.mark.parametrize("kernel_size", [17, 21, 31])
def test_large_kernel_histogram_vs_scipy(kernel_size):
    img = data.camera()[128:256, 200:360]
    expected = _cpu_median(img, kernel_size)
    out = median_filter(cp.asarray(img), kernel_size)
    assert_array_equal(out, expected)


@pytest.mark.parametrize("kernel_size", [9, 11, 13, SELECT_MAX_KERNEL_SIZE])
def test_select_and_histogram_agree(kernel_size):
    img = cp.asarray(data.camera()[::2, ::2])
    select = median_filter(img, kernel_size, algorithm="select")
    hist = median_filter(img, kernel_size, algorithm="histogram")
    assert_array_equal(select, hist)


@pytest.mark.parametrize("algorithm", ["select", "histogram"])
@pytest.mark.parametrize("shape", [(40, 1), (1, 40), (2, 3)])
@pytest.mark.parametrize("kernel_size", [3, 7, 11])
def test_thin_images_edge_clamped(algorithm, shape, kernel_size):
    # windows much larger than the image only see replicated edge pixels
    img = _random_image(shape, seed=11)
    out = median_filter(cp.asarray(img), kernel_size, algorithm=algorithm)
    assert_array_equal(out, _cpu_median(img, kernel_size))
    assert_array_equal(out, median_filter_reference(img, kernel_size))


@pytest.mark.parametrize("kernel_size", [3, 5, 9])
@pytest.mark.parametrize("algorithm", ["auto", "select", "histogram"])
def test_salt_and_pepper_removed(kernel_size, algorithm):
    img = np.full((64, 80), 100, dtype=np.uint8)
    # isolated impulses, further apart than the window
    step = kernel_size + 2
    img[2::step, 3::step] = 255
    img[5::step, 9::step] = 0
    out = median_filter(cp.asarray(img), kernel_size, algorithm=algorithm)
    assert_array_equal(out, cp.full(img.shape, 100, dtype=cp.uint8))


def test_impulse_on_gradient():
    img = np.tile(np.arange(0, 200, 4, dtype=np.uint8), (30, 1))
    noisy = img.copy()
    noisy[15, 25] = 255
    out = cp.asnumpy(median_filter(cp.asarray(noisy), 3))
    # the noisy pixel takes a value from its neighborhood
    assert out[15, 25] == img[15, 25]
    # a horizontal ramp is a fixed point of the filter, edges included
    assert_array_equal(out, img)


def test_kernel_size_one_copies():
    img = cp.asarray(_random_image((10, 12)))
    out = median_filter(img, 1)
    assert out is not img
    assert_array_equal(out, img)


def test_output_argument():
    img = cp.asarray(_random_image((20, 30)))
    out = cp.zeros_like(img)
    result = median_filter(img, 3, out=out)
    assert result is out
    assert_array_equal(out, _cpu_median(cp.asnumpy(img), 3))


def test_non_contiguous_input():
    img = _random_image((40, 60))
    view = cp.asarray(img)[::2, ::3]
    out = median_filter(view, 3)
    assert_array_equal(out, _cpu_median(img[::2, ::3], 3))


def test_on_stream():
    img = cp.asarray(_random_image((50, 50)))
    stream = cp.cuda.Stream(non_blocking=True)
    out = median_filter(img, 5, stream=stream)
    stream.synchronize()
    assert_array_equal(out, _cpu_median(cp.asnumpy(img), 5))


@pytest.mark.parametrize("kernel_size", [0, 2, 4, -3])
def test_invalid_kernel_size(kernel_size):
    img = cp.zeros((10, 10), dtype=cp.uint8)
    with pytest.raises(ValueError):
        median_filter(img, kernel_size)


@pytest.mark.parametrize("kernel_size", [3.0, "3", True])
def test_kernel_size_type(kernel_size):
    img = cp.zeros((10, 10), dtype=cp.uint8)
    with pytest.raises(TypeError):
        median_filter(img, kernel_size)


def test_invalid_algorithm():
    img = cp.zeros((10, 10), dtype=cp.uint8)
    with pytest.raises(ValueError):
        median_filter(img, 3, algorithm="sorting")
    with pytest.raises(ValueError):
        median_filter(img, SELECT_MAX_KERNEL_SIZE + 2, algorithm="select")


@pytest.mark.parametrize(
    "shape, dtype",
    [
        ((10, 10), cp.uint16),
        ((10, 10), cp.float32),
        ((4, 10, 10), cp.uint8),
        ((10,), cp.uint8),
    ],
)
def test_unsupported_images(shape, dtype):
    img = cp.zeros(shape, dtype=dtype)
    with pytest.raises(ValueError):
        median_filter(img, 3)


def test_host_array_rejected():
    with pytest.raises(TypeError):
        median_filter(np.zeros((10, 10), dtype=np.uint8), 3)


def test_invalid_output():
    img = cp.zeros((10, 10), dtype=cp.uint8)
    with pytest.raises(ValueError):
        median_filter(img, 3, out=cp.zeros((10, 11), dtype=cp.uint8))
    with pytest.raises(ValueError):
        median_filter(img, 3, out=cp.zeros((10, 10), dtype=cp.int32))
    with pytest.raises(NotImplementedError):
        median_filter(img, 3, out=img)


@pytest.mark.parametrize("kernel_size", [1, 3, 5, 9])
def test_reference_matches_scipy(kernel_size):
    img = _random_image((23, 31), seed=3)
    assert_array_equal(
        median_filter_reference(img, kernel_size),
        _cpu_median(img, kernel_size),
    )
