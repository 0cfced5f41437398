#!/usr/bin/env python
# SPDX-FileCopyrightText: Copyright (c) 2025, NVIDIA CORPORATION. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Benchmark: pooled vs. unpooled median filtering

Times repeated calls of ``cuda_median_filter_with_pool`` against
``cuda_median_filter`` for a range of kernel sizes, so the cost of per-call
device allocation can be compared with the kernel itself.

Usage:
    python benchmark_pool.py [--shape 1080 1920] [--kernel-sizes 3 5 9 15]
                             [--n-repeat 50] [--output-format markdown|json]
"""

import argparse
import json
import sys
import time

import numpy as np

from cumedian import Status, api


def _time_calls(func, n_repeat):
    # first call compiles the kernels
    status = func()
    if status != Status.SUCCESS:
        raise RuntimeError(f"median filter failed with status {status!r}")
    start = time.perf_counter()
    for _ in range(n_repeat):
        func()
    return (time.perf_counter() - start) / n_repeat


def run_benchmark(shape, kernel_sizes, n_repeat):
    height, width = shape
    rng = np.random.default_rng(0)
    src = rng.integers(0, 256, size=shape, dtype=np.uint8)
    dst = np.empty_like(src)

    pool = api.cuda_init_buffer_pool(width, height)
    if pool is None:
        raise RuntimeError("could not create a buffer pool")
    results = []
    try:
        for kernel_size in kernel_sizes:
            pooled = _time_calls(
                lambda: api.cuda_median_filter_with_pool(
                    pool, src, width, height, kernel_size, dst
                ),
                n_repeat,
            )
            unpooled = _time_calls(
                lambda: api.cuda_median_filter(
                    src, width, height, kernel_size, dst
                ),
                n_repeat,
            )
            results.append(
                {
                    "kernel_size": kernel_size,
                    "pooled_ms": 1e3 * pooled,
                    "unpooled_ms": 1e3 * unpooled,
                    "speedup": unpooled / pooled,
                }
            )
    finally:
        api.cuda_cleanup_buffer_pool(pool)
    return results


def format_markdown(shape, results):
    lines = [
        f"## Median filter, {shape[1]}x{shape[0]} uint8",
        "",
        "| kernel | pooled (ms) | unpooled (ms) | speedup |",
        "|---|---|---|---|",
    ]
    for r in results:
        lines.append(
            f"| {r['kernel_size']} | {r['pooled_ms']:.3f} | "
            f"{r['unpooled_ms']:.3f} | {r['speedup']:.2f} |"
        )
    return "\n".join(lines) + "\n"


def main(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.split("\n\n")[0])
    parser.add_argument(
        "--shape",
        type=int,
        nargs=2,
        default=(1080, 1920),
        metavar=("HEIGHT", "WIDTH"),
    )
    parser.add_argument(
        "--kernel-sizes", type=int, nargs="+", default=[3, 5, 9, 15]
    )
    parser.add_argument("--n-repeat", type=int, default=50)
    parser.add_argument(
        "--output-format", choices=["markdown", "json"], default="markdown"
    )
    parser.add_argument("--output-file", default=None)
    args = parser.parse_args(argv)

    results = run_benchmark(tuple(args.shape), args.kernel_sizes, args.n_repeat)
    if args.output_format == "json":
        report = json.dumps(results, indent=2)
    else:
        report = format_markdown(args.shape, results)

    if args.output_file:
        with open(args.output_file, "w") as f:
            f.write(report)
    else:
        sys.stdout.write(report)


if __name__ == "__main__":
    main()
