# SPDX-FileCopyrightText: Copyright (c) 2025, NVIDIA CORPORATION. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

import operator

import numpy as np

from ._errors import InvalidArgumentError

__all__ = ["as_host_bytes", "as_positive_int"]


def as_positive_int(value, name):
    """Return ``value`` as a Python int, requiring it to be positive.

    Booleans and non-integral values (floats, strings, None) are rejected.
    """
    if isinstance(value, (bool, np.bool_)):
        raise InvalidArgumentError(f"{name} must be an integer, got {value!r}")
    try:
        value = operator.index(value)
    except TypeError:
        raise InvalidArgumentError(
            f"{name} must be an integer, got {value!r}"
        ) from None
    if value <= 0:
        raise InvalidArgumentError(f"{name} must be positive, got {value}")
    return value


def as_host_bytes(buffer, name, nbytes, writable=False):
    """View the first ``nbytes`` of a host buffer as a flat uint8 array.

    Parameters
    ----------
    buffer : numpy.ndarray or buffer-protocol object
        A C-contiguous uint8 NumPy array, or anything
        :func:`numpy.frombuffer` accepts (``bytes``, ``bytearray``,
        ``memoryview``, ...).
    name : str
        Argument name used in error messages.
    nbytes : int
        Number of bytes the caller needs.
    writable : bool, optional
        Require the buffer to be writable.

    Returns
    -------
    view : numpy.ndarray
        1D uint8 array sharing memory with ``buffer``.
    """
    if buffer is None:
        raise InvalidArgumentError(f"{name} must not be None")
    if isinstance(buffer, np.ndarray):
        if buffer.dtype != np.uint8:
            raise InvalidArgumentError(
                f"{name} must have dtype uint8, got {buffer.dtype}"
            )
        if not buffer.flags.c_contiguous:
            raise InvalidArgumentError(f"{name} must be C-contiguous")
        flat = buffer.reshape(-1)
    else:
        try:
            flat = np.frombuffer(buffer, dtype=np.uint8)
        except (TypeError, ValueError) as e:
            raise InvalidArgumentError(
                f"{name} must be a host byte buffer: {e}"
            ) from e
    if flat.size < nbytes:
        raise InvalidArgumentError(
            f"{name} holds {flat.size} bytes, {nbytes} required"
        )
    if writable and not flat.flags.writeable:
        raise InvalidArgumentError(f"{name} must be writable")
    return flat[:nbytes]
