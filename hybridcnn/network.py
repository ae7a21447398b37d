from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

import numpy as np

from .tensor import ArrayLike, as_float_buffer


CONV = "conv"
POOL = "pool"
FC = "fc"


@dataclass(frozen=True)
class StageSpec:
    """One step of the fixed topology.

    - conv: (in_channels, size, size) -> (out_channels, size, size)
    - pool: (in_channels, 2*size, 2*size) -> (out_channels, size, size); channels unchanged
    - fc: in_channels -> out_channels; size is 1
    """

    kind: str
    name: str
    in_channels: int
    out_channels: int
    size: int
    param_index: Optional[int] = None  # learnable layer k: weights at 2k, bias at 2k+1

    @property
    def output_len(self) -> int:
        return self.out_channels * self.size * self.size

    @property
    def weight_len(self) -> int:
        if self.kind == CONV:
            return self.out_channels * self.in_channels * 9
        if self.kind == FC:
            return self.out_channels * self.in_channels
        return 0

    @property
    def bias_len(self) -> int:
        return self.out_channels if self.kind in (CONV, FC) else 0


def _conv(name: str, d1: int, d2: int, n: int, k: int) -> StageSpec:
    return StageSpec(CONV, name, d1, d2, n, k)


def _pool(name: str, d: int, n: int) -> StageSpec:
    return StageSpec(POOL, name, d, d, n)


def _fc(name: str, n: int, m: int, k: int) -> StageSpec:
    return StageSpec(FC, name, n, m, 1, k)


# VGG-16 for 3x32x32 inputs and 10 classes.
VGG16_STAGES: tuple[StageSpec, ...] = (
    _conv("c1_1", 3, 64, 32, 0),
    _conv("c1_2", 64, 64, 32, 1),
    _pool("p1", 64, 16),
    _conv("c2_1", 64, 128, 16, 2),
    _conv("c2_2", 128, 128, 16, 3),
    _pool("p2", 128, 8),
    _conv("c3_1", 128, 256, 8, 4),
    _conv("c3_2", 256, 256, 8, 5),
    _conv("c3_3", 256, 256, 8, 6),
    _pool("p3", 256, 4),
    _conv("c4_1", 256, 512, 4, 7),
    _conv("c4_2", 512, 512, 4, 8),
    _conv("c4_3", 512, 512, 4, 9),
    _pool("p4", 512, 2),
    _conv("c5_1", 512, 512, 2, 10),
    _conv("c5_2", 512, 512, 2, 11),
    _conv("c5_3", 512, 512, 2, 12),
    _pool("p5", 512, 1),
    _fc("fc1", 512, 512, 13),
    _fc("fc2", 512, 512, 14),
    _fc("fc3", 512, 10, 15),
)

INPUT_CHANNELS = 3
INPUT_SIZE = 32
NUM_CLASSES = 10


def learnable_stages(stages: Iterable[StageSpec]) -> List[StageSpec]:
    return sorted((s for s in stages if s.param_index is not None), key=lambda s: s.param_index)


class Network:
    """Positional weight/bias buffers: ``buffers[2k]`` is W_k, ``buffers[2k+1]`` is b_k.

    Shapes are not checked; a network that does not match the topology
    produces garbage results rather than an error.
    """

    def __init__(self, buffers: Sequence[ArrayLike]) -> None:
        self.buffers: List[np.ndarray] = [as_float_buffer(b) for b in buffers]

    def __len__(self) -> int:
        return len(self.buffers)

    def __getitem__(self, index: int) -> np.ndarray:
        return self.buffers[index]

    def weight(self, k: int) -> np.ndarray:
        return self.buffers[2 * k]

    def bias(self, k: int) -> np.ndarray:
        return self.buffers[2 * k + 1]

    @staticmethod
    def expected_sizes(stages: Sequence[StageSpec] = VGG16_STAGES) -> List[int]:
        """Flat buffer lengths in positional order, for loaders to check against."""

        sizes: List[int] = []
        for s in learnable_stages(stages):
            sizes.append(s.weight_len)
            sizes.append(s.bias_len)
        return sizes

    @classmethod
    def zeros(cls, stages: Sequence[StageSpec] = VGG16_STAGES) -> "Network":
        return cls([np.zeros((n,), dtype=np.float32) for n in cls.expected_sizes(stages)])

    @classmethod
    def random(cls, seed: int = 0, stages: Sequence[StageSpec] = VGG16_STAGES) -> "Network":
        """He-initialized weights and small biases, for demos and tests."""

        rng = np.random.default_rng(seed)
        buffers: List[np.ndarray] = []
        for s in learnable_stages(stages):
            fan_in = s.in_channels * 9 if s.kind == CONV else s.in_channels
            scale = np.sqrt(2.0 / max(1, fan_in))
            buffers.append((rng.standard_normal((s.weight_len,)) * scale).astype(np.float32))
            buffers.append((0.01 * rng.standard_normal((s.bias_len,))).astype(np.float32))
        return cls(buffers)
