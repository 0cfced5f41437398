# SPDX-FileCopyrightText: Copyright (c) 2025, NVIDIA CORPORATION. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

import cupy as cp
import pytest


def _cuda_available():
    try:
        return cp.cuda.runtime.getDeviceCount() > 0
    except RuntimeError:
        # CUDARuntimeError derives from RuntimeError
        return False


def pytest_configure(config):
    config.addinivalue_line("markers", "gpu: test requires a CUDA device")


def pytest_collection_modifyitems(config, items):
    if _cuda_available():
        return
    skip_gpu = pytest.mark.skip(reason="no CUDA device available")
    for item in items:
        if "gpu" in item.keywords:
            item.add_marker(skip_gpu)
