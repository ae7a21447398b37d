import argparse
import time

import numpy as np

from hybridcnn import InferencePipeline, Network
from hybridcnn.errors import DeviceError, InferenceError
from hybridcnn.network import INPUT_CHANNELS, INPUT_SIZE
from hybridcnn.vulkan_backend import NumpyPoolingBackend, VulkanPoolingBackend


def main() -> None:
    parser = argparse.ArgumentParser(description="hybridcnn demo: VGG-16 inference with GPU pooling")
    parser.add_argument("--backend", choices=["vulkan", "numpy"], default="vulkan")
    parser.add_argument("--num-images", type=int, default=4)
    parser.add_argument("--seed", type=int, default=0)
    parser.add_argument(
        "--allow-cpu-device",
        action="store_true",
        help="Accept non-GPU Vulkan implementations (e.g. lavapipe)",
    )
    args = parser.parse_args()

    # Random weights and images: this demo exercises the pipeline, not accuracy.
    rng = np.random.default_rng(args.seed)
    images = rng.random((args.num_images, INPUT_CHANNELS, INPUT_SIZE, INPUT_SIZE), dtype=np.float32)
    network = Network.random(seed=args.seed)

    if args.backend == "vulkan":
        backend = VulkanPoolingBackend(require_gpu=not args.allow_cpu_device)
    else:
        backend = NumpyPoolingBackend()

    try:
        backend.initialize()
    except DeviceError as e:
        print("Vulkan GPU mode failed:")
        print(f"  {e}")
        print(
            "Tip: ensure Vulkan is installed and working, the Python 'vulkan' package is available, "
            "and 'glslc' (shader compiler) is installed on the system."
        )
        raise SystemExit(1) from e
    print(f"Pooling backend: {backend.name}")

    pipeline = InferencePipeline(backend)
    start = time.perf_counter()
    try:
        labels, confidences = pipeline.infer(images, network, args.num_images)
    except InferenceError as e:
        print(f"Inference failed: {e}")
        print(f"  cause: {e.__cause__}")
        raise SystemExit(1) from e
    finally:
        backend.close()
    elapsed = time.perf_counter() - start

    for i, (label, confidence) in enumerate(zip(labels, confidences)):
        print(f"Image {i:04d}: label {int(label)}, confidence {float(confidence):.5f}")
    print(f"Elapsed time: {elapsed:.3f} sec ({args.num_images / max(elapsed, 1e-9):.2f} images/sec)")


if __name__ == "__main__":
    main()
