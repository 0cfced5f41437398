# SPDX-FileCopyrightText: Copyright (c) 2025, NVIDIA CORPORATION. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""CUDA kernels for 2D median filtering of uint8 images.

Two strategies are provided. Both clamp out-of-bounds neighbors to the
nearest row/column (edge replication), so no padded copy of the input is
made and the output has the same shape as the input.

- Selection: each block cooperatively loads a clamped tile of the input
  (block size plus a ``radius`` halo on every side) into shared memory.
  Every thread then copies its ``k x k`` window into registers/local memory
  and runs a partial selection sort that stops at the middle element.
  Cost grows with ``k**4 / 2`` comparisons, so this is only used for small
  kernels.
- Histogram: each thread owns a run of ``HIST_RUN`` consecutive pixels on a
  row and keeps a 256-bin histogram (plus a 16-bin coarse histogram) of its
  current window in shared memory. Moving one pixel to the right removes
  one column and adds one column (``2 * k`` updates). The median is found by
  scanning the coarse bins and then at most 16 fine bins, so the cost per
  pixel is independent of the pixel values.
"""

import cupy as cp

__all__ = [
    "HIST_RUN",
    "HIST_THREADS",
    "SELECT_BLOCK_H",
    "SELECT_BLOCK_W",
    "get_histogram_kernel",
    "get_select_kernel",
    "histogram_grid_block",
    "select_grid_block",
]

# Block shape for the tiled selection kernel
SELECT_BLOCK_W = 16
SELECT_BLOCK_H = 16

# Threads per block and pixels per thread for the histogram kernel.
# Shared memory use: HIST_THREADS * (256 + 16) * 4 bytes = 34816 bytes.
HIST_THREADS = 32
HIST_RUN = 32


def _div_ceil(a, b):
    return (a + b - 1) // b


_select_source = r"""
#define CLAMP(v, lo, hi) (min(max((v), (lo)), (hi)))

extern "C" __global__
void median_select(
    const unsigned char* __restrict__ src,
    unsigned char* __restrict__ dst,
    int width,
    int height
) {
    __shared__ unsigned char tile[TILE_H * TILE_W];

    const int x0 = blockIdx.x * BLOCK_W;
    const int y0 = blockIdx.y * BLOCK_H;
    const int tid = threadIdx.y * BLOCK_W + threadIdx.x;

    // cooperative, edge-clamped load of the tile and its halo
    for (int i = tid; i < TILE_H * TILE_W; i += BLOCK_W * BLOCK_H) {
        int ty = i / TILE_W;
        int tx = i - ty * TILE_W;
        int yy = CLAMP(y0 + ty - RADIUS, 0, height - 1);
        int xx = CLAMP(x0 + tx - RADIUS, 0, width - 1);
        tile[i] = src[(size_t)yy * width + xx];
    }
    __syncthreads();

    const int x = x0 + threadIdx.x;
    const int y = y0 + threadIdx.y;
    if (x >= width || y >= height) return;

    unsigned char window[KSIZE * KSIZE];
    int n = 0;
    for (int dy = 0; dy < KSIZE; dy++) {
        const unsigned char* row = &tile[(threadIdx.y + dy) * TILE_W + threadIdx.x];
        for (int dx = 0; dx < KSIZE; dx++) {
            window[n++] = row[dx];
        }
    }

    // partial selection sort: positions 0..MEDIAN end up in sorted order
    for (int i = 0; i <= MEDIAN; i++) {
        int m = i;
        for (int j = i + 1; j < KSIZE * KSIZE; j++) {
            if (window[j] < window[m]) m = j;
        }
        unsigned char tmp = window[i];
        window[i] = window[m];
        window[m] = tmp;
    }

    dst[(size_t)y * width + x] = window[MEDIAN];
}
"""


@cp.memoize(for_each_device=True)
def get_select_kernel(kernel_size):
    """Get the tiled selection kernel for a given odd ``kernel_size``.

    The kernel size is baked in at compile time so the window and tile
    buffers have static sizes.
    """
    radius = kernel_size // 2
    preamble = f"""
#define KSIZE {kernel_size}
#define RADIUS {radius}
#define MEDIAN {(kernel_size * kernel_size) // 2}
#define BLOCK_W {SELECT_BLOCK_W}
#define BLOCK_H {SELECT_BLOCK_H}
#define TILE_W {SELECT_BLOCK_W + 2 * radius}
#define TILE_H {SELECT_BLOCK_H + 2 * radius}
"""
    return cp.RawKernel(preamble + _select_source, "median_select")


def select_grid_block(height, width):
    grid = (
        _div_ceil(width, SELECT_BLOCK_W),
        _div_ceil(height, SELECT_BLOCK_H),
        1,
    )
    block = (SELECT_BLOCK_W, SELECT_BLOCK_H, 1)
    return grid, block


_histogram_source = r"""
#define CLAMP(v, lo, hi) (min(max((v), (lo)), (hi)))

// bins are interleaved across threads: bin b of thread t is at b * THREADS + t
#define FINE(b) fine[(b) * THREADS + threadIdx.x]
#define COARSE(b) coarse[(b) * THREADS + threadIdx.x]

__device__ __forceinline__ void hist_add(
    unsigned int* fine, unsigned int* coarse, unsigned char v
) {
    FINE(v) += 1;
    COARSE(v >> 4) += 1;
}

__device__ __forceinline__ void hist_remove(
    unsigned int* fine, unsigned int* coarse, unsigned char v
) {
    FINE(v) -= 1;
    COARSE(v >> 4) -= 1;
}

extern "C" __global__
void median_histogram(
    const unsigned char* __restrict__ src,
    unsigned char* __restrict__ dst,
    int width,
    int height,
    int radius
) {
    __shared__ unsigned int fine[256 * THREADS];
    __shared__ unsigned int coarse[16 * THREADS];

    const int runs_per_row = (width + RUN - 1) / RUN;
    const long long run = (long long)blockIdx.x * THREADS + threadIdx.x;
    if (run >= (long long)runs_per_row * height) return;

    const int y = (int)(run / runs_per_row);
    const int x_start = (int)(run - (long long)y * runs_per_row) * RUN;
    const int x_stop = min(x_start + RUN, width);
    const unsigned int median_rank = ((2 * radius + 1) * (2 * radius + 1)) / 2;

    for (int b = 0; b < 256; b++) FINE(b) = 0;
    for (int b = 0; b < 16; b++) COARSE(b) = 0;

    // full window for the first pixel of the run
    for (int dy = -radius; dy <= radius; dy++) {
        const unsigned char* row = src + (size_t)CLAMP(y + dy, 0, height - 1) * width;
        for (int dx = -radius; dx <= radius; dx++) {
            hist_add(fine, coarse, row[CLAMP(x_start + dx, 0, width - 1)]);
        }
    }

    for (int x = x_start; x < x_stop; x++) {
        if (x > x_start) {
            // slide right: drop column x - 1 - radius, add column x + radius
            const int x_out = CLAMP(x - 1 - radius, 0, width - 1);
            const int x_in = CLAMP(x + radius, 0, width - 1);
            for (int dy = -radius; dy <= radius; dy++) {
                const unsigned char* row = src + (size_t)CLAMP(y + dy, 0, height - 1) * width;
                hist_remove(fine, coarse, row[x_out]);
                hist_add(fine, coarse, row[x_in]);
            }
        }

        // first bin at which the running count exceeds the median rank
        unsigned int count = 0;
        int c = 0;
        while (count + COARSE(c) <= median_rank) {
            count += COARSE(c);
            c++;
        }
        int b = c << 4;
        while (count + FINE(b) <= median_rank) {
            count += FINE(b);
            b++;
        }
        dst[(size_t)y * width + x] = (unsigned char)b;
    }
}
"""


@cp.memoize(for_each_device=True)
def get_histogram_kernel():
    """Get the sliding-window histogram kernel (any odd kernel size)."""
    preamble = f"""
#define THREADS {HIST_THREADS}
#define RUN {HIST_RUN}
"""
    return cp.RawKernel(preamble + _histogram_source, "median_histogram")


def histogram_grid_block(height, width):
    runs = _div_ceil(width, HIST_RUN) * height
    grid = (_div_ceil(runs, HIST_THREADS), 1, 1)
    block = (HIST_THREADS, 1, 1)
    return grid, block
