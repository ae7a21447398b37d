from __future__ import annotations

from typing import Dict, Optional, Sequence

import numpy as np

from . import functional as F
from .errors import DeviceError, InferenceError
from .network import CONV, FC, INPUT_CHANNELS, INPUT_SIZE, POOL, VGG16_STAGES, Network, StageSpec
from .tensor import ArrayLike, alloc_layer, as_float_buffer


# Key of the shared convolution scratch in the activation buffer dict.
SCRATCH = "_conv_scratch"


class InferencePipeline:
    """Runs the stage table image by image.

    Convolution and fully-connected stages run on the CPU; pooling stages go
    through ``backend.pool`` (a ``VulkanPoolingBackend`` or any object with
    the same ``pool(input, output, channels, output_size)`` method). The
    final stage's output is softmaxed and reduced with ``find_max``.

    One set of activation buffers is allocated per batch and reused for
    every image, so stages must overwrite their output completely.
    """

    def __init__(
        self,
        backend,
        stages: Sequence[StageSpec] = VGG16_STAGES,
        *,
        input_channels: int = INPUT_CHANNELS,
        input_size: int = INPUT_SIZE,
    ) -> None:
        if not stages:
            raise ValueError("stages must not be empty")
        self.backend = backend
        self.stages = tuple(stages)
        self.input_channels = int(input_channels)
        self.input_size = int(input_size)
        self.image_len = self.input_channels * self.input_size * self.input_size
        self.num_classes = self.stages[-1].output_len
        self.scratch_len = max(
            (F.conv_scratch_len(s.out_channels, s.in_channels, s.size) for s in self.stages if s.kind == CONV),
            default=0,
        )

    def allocate_buffers(self) -> Dict[str, np.ndarray]:
        """One output buffer per stage plus the convolution scratch under ``SCRATCH``."""

        buffers = {s.name: alloc_layer(s.output_len) for s in self.stages}
        buffers[SCRATCH] = alloc_layer(self.scratch_len)
        return buffers

    def _run_stage(
        self,
        stage: StageSpec,
        src: np.ndarray,
        dst: np.ndarray,
        network: Network,
        scratch: Optional[np.ndarray] = None,
    ) -> None:
        if stage.kind == CONV:
            k = stage.param_index
            F.convolution_layer(
                src, dst, network.weight(k), network.bias(k), stage.out_channels, stage.in_channels, stage.size, scratch
            )
        elif stage.kind == POOL:
            self.backend.pool(src, dst, stage.out_channels, stage.size)
        elif stage.kind == FC:
            k = stage.param_index
            F.fc_layer(src, dst, network.weight(k), network.bias(k), stage.out_channels, stage.in_channels)
        else:
            raise ValueError(f"unknown stage kind {stage.kind!r} in {stage.name}")

    def forward(
        self,
        image: np.ndarray,
        network: Network,
        buffers: Dict[str, np.ndarray],
        *,
        image_index: int = 0,
    ) -> tuple[int, float]:
        """Run one image through every stage; returns (label, confidence)."""

        src = image
        scratch = buffers.get(SCRATCH)
        for stage in self.stages:
            dst = buffers[stage.name]
            try:
                self._run_stage(stage, src, dst, network, scratch)
            except DeviceError as e:
                raise InferenceError(image_index, stage.name, completed=image_index) from e
            src = dst

        F.softmax(src, self.num_classes)
        return F.find_max(src, self.num_classes)

    def run(
        self,
        images: ArrayLike,
        network: Network | Sequence[ArrayLike],
        labels: np.ndarray,
        confidences: np.ndarray,
        num_images: int,
    ) -> None:
        """Classify ``num_images`` flat CHW images into ``labels``/``confidences``.

        On a device failure the batch stops with ``InferenceError``; only the
        first ``error.completed`` output slots hold results.
        """

        flat = as_float_buffer(images)
        count = int(num_images)
        if flat.size < count * self.image_len:
            raise ValueError(
                f"expected {count} images of {self.image_len} floats, got {flat.size} floats"
            )
        if len(labels) < count or len(confidences) < count:
            raise ValueError("labels and confidences must hold at least num_images entries")

        net = network if isinstance(network, Network) else Network(network)
        buffers = self.allocate_buffers()
        try:
            for i in range(count):
                image = flat[i * self.image_len : (i + 1) * self.image_len]
                label, confidence = self.forward(image, net, buffers, image_index=i)
                labels[i] = label
                confidences[i] = confidence
        finally:
            buffers.clear()

    def infer(
        self,
        images: ArrayLike,
        network: Network | Sequence[ArrayLike],
        num_images: Optional[int] = None,
    ) -> tuple[np.ndarray, np.ndarray]:
        flat = as_float_buffer(images)
        count = flat.size // self.image_len if num_images is None else int(num_images)
        labels = np.zeros((count,), dtype=np.int32)
        confidences = np.zeros((count,), dtype=np.float32)
        self.run(flat, network, labels, confidences, count)
        return labels, confidences


def cnn(
    images: ArrayLike,
    network: Network | Sequence[ArrayLike],
    labels: np.ndarray,
    confidences: np.ndarray,
    num_images: int,
    backend,
) -> None:
    """Batch entry point: VGG-16 over ``num_images`` 3x32x32 images."""

    InferencePipeline(backend).run(images, network, labels, confidences, num_images)
