from __future__ import annotations

from typing import Optional

import numpy as np

from .tensor import alloc_layer, as_float_buffer, chw_view


# Buffers passed as ``outputs`` must be float32 ndarrays: results are written in place.


def convolution3x3(input: np.ndarray, output: np.ndarray, filter: np.ndarray, n: int) -> np.ndarray:
    """Accumulate one zero-padded 3x3 cross-correlation of an NxN plane into ``output``."""

    x = chw_view(input, 1, n)[0]
    out = chw_view(output, 1, n)[0]
    f = as_float_buffer(filter)

    padded = np.zeros((n + 2, n + 2), dtype=np.float32)
    padded[1:-1, 1:-1] = x
    acc = np.zeros((n, n), dtype=np.float32)
    for k in range(3):
        for l in range(3):
            acc += padded[k : k + n, l : l + n] * f[k * 3 + l]
    out += acc
    return output


def conv_scratch_len(d2: int, d1: int, n: int) -> int:
    """Floats of scratch ``convolution_layer`` needs for a D1 -> D2 layer on NxN planes."""

    return int(d1) * (int(n) + 2) * (int(n) + 2) + 2 * int(d2) * int(n) * int(n)


def convolution_layer(
    inputs: np.ndarray,
    outputs: np.ndarray,
    filters: np.ndarray,
    biases: np.ndarray,
    d2: int,
    d1: int,
    n: int,
    scratch: Optional[np.ndarray] = None,
) -> np.ndarray:
    """3x3 convolution (stride 1, zero padding 1) followed by bias and ReLU.

    - inputs: (D1, N, N)
    - filters: D2*D1 kernels of 3x3, kernel (j, i) at offset 9*(j*D1 + i)
    - outputs: (D2, N, N), zeroed before accumulation
    - scratch: flat float32 buffer of at least ``conv_scratch_len(d2, d1, n)``
      floats holding the padded input, the per-channel partial sums and the
      tap products. With it the layer allocates nothing; without it one is
      allocated for this call.

    Each output pixel sums its 9 taps row-major per input channel, then adds
    that partial into the accumulator in ascending input-channel order. The
    loop is vectorized over output channels and pixels only, so the float32
    summation order per pixel is the same as a scalar implementation.
    """

    x = chw_view(inputs, d1, n)
    out = chw_view(outputs, d2, n)
    w = as_float_buffer(filters)[: d2 * d1 * 9].reshape(d2, d1, 3, 3)
    b = as_float_buffer(biases)[:d2]

    need = conv_scratch_len(d2, d1, n)
    if scratch is None:
        scratch = alloc_layer(need)
    s = as_float_buffer(scratch)
    if s.size < need:
        raise ValueError(f"convolution scratch holds {s.size} floats, need {need}")
    pad_len = d1 * (n + 2) * (n + 2)
    plane_len = d2 * n * n
    padded = s[:pad_len].reshape(d1, n + 2, n + 2)
    acc = s[pad_len : pad_len + plane_len].reshape(d2, n, n)
    prod = s[pad_len + plane_len : pad_len + 2 * plane_len].reshape(d2, n, n)

    out[...] = 0.0

    # Scratch is shared between layers, so the border is cleared every call.
    padded.fill(0.0)
    padded[:, 1:-1, 1:-1] = x
    for i in range(d1):
        acc.fill(0.0)
        plane = padded[i]
        for k in range(3):
            for l in range(3):
                np.multiply(plane[k : k + n, l : l + n][None, :, :], w[:, i, k, l][:, None, None], out=prod)
                acc += prod
        out += acc

    out += b[:, None, None]
    np.maximum(out, 0.0, out=out)
    return outputs


def fc_layer(
    inputs: np.ndarray,
    outputs: np.ndarray,
    weights: np.ndarray,
    biases: np.ndarray,
    m: int,
    n: int,
) -> np.ndarray:
    """Dense layer with ReLU: out[j] = max(0, sum_i in[i] * W[j, i] + b[j]).

    W is row-major (M, N). The dot product is accumulated left to right
    starting from 0 and the bias is added last.
    """

    x = as_float_buffer(inputs)[:n]
    w = as_float_buffer(weights)[: m * n].reshape(m, n)
    b = as_float_buffer(biases)[:m]

    acc = np.zeros((m,), dtype=np.float32)
    for i in range(n):
        acc += x[i] * w[:, i]
    acc += b
    np.maximum(acc, 0.0, out=outputs[:m])
    return outputs


def softmax(x: np.ndarray, n: Optional[int] = None) -> np.ndarray:
    """In-place softmax over the first ``n`` entries (max-subtracted)."""

    v = x[: x.size if n is None else n]
    e = np.exp(v - v.max())
    v[...] = e / e.sum()
    return x


def find_max(x: np.ndarray, n: Optional[int] = None) -> tuple[int, float]:
    """Return (label, confidence) of the largest entry.

    The running maximum starts at 0 and only moves on a strict ``>``, so an
    all non-positive vector gives (0, 0.0) and ties keep the lowest index.
    """

    v = as_float_buffer(x)
    count = v.size if n is None else int(n)
    maxid = 0
    maxval = np.float32(0.0)
    for i in range(count):
        if maxval < v[i]:
            maxval = v[i]
            maxid = i
    return maxid, float(maxval)


def max_pool2x2(inputs: np.ndarray, outputs: np.ndarray, d: int, n: int) -> np.ndarray:
    """CPU reference 2x2/stride-2 max pooling: (D, 2N, 2N) -> (D, N, N)."""

    x = chw_view(inputs, d, 2 * n).reshape(d, n, 2, n, 2)
    out = chw_view(outputs, d, n)
    out[...] = x.max(axis=(2, 4))
    return outputs
