from __future__ import annotations

from typing import Any

import numpy as np

from .errors import HostAllocationError


ArrayLike = Any


def alloc_layer(n: int) -> np.ndarray:
    """Allocate a zeroed flat float32 buffer of ``n`` elements."""

    try:
        return np.zeros(int(n), dtype=np.float32)
    except MemoryError as e:
        raise HostAllocationError(f"failed to allocate {int(n)} floats") from e


def as_float_buffer(data: ArrayLike) -> np.ndarray:
    """Flat, C-contiguous float32 view of ``data`` (copies only if needed)."""

    arr = np.ascontiguousarray(data, dtype=np.float32)
    return arr.reshape(-1)


def chw_view(buf: np.ndarray, channels: int, height: int, width: int | None = None) -> np.ndarray:
    # Shape is a convention, not metadata: the first c*h*w floats are used.
    w = height if width is None else width
    n = int(channels) * int(height) * int(w)
    return buf.reshape(-1)[:n].reshape(int(channels), int(height), int(w))
