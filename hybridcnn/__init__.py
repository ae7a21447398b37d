from importlib.metadata import PackageNotFoundError, version

from .errors import (
	BackendNotInitializedError,
	BackendStateError,
	DeviceBufferError,
	DeviceError,
	DeviceNotFoundError,
	DispatchError,
	HostAllocationError,
	InferenceError,
	ProgramBuildError,
)
from .network import Network, StageSpec, VGG16_STAGES
from .pipeline import InferencePipeline, cnn
from .vulkan_backend import NumpyPoolingBackend, VulkanPoolingBackend, create_backend, vulkan_available
from . import functional, network, pipeline, tensor, vulkan_backend

try:
	__version__ = version("hybridcnn")
except PackageNotFoundError:  # pragma: no cover
	__version__ = "0.1.0"

__all__ = [
	"BackendNotInitializedError",
	"BackendStateError",
	"DeviceBufferError",
	"DeviceError",
	"DeviceNotFoundError",
	"DispatchError",
	"HostAllocationError",
	"InferenceError",
	"ProgramBuildError",
	"Network",
	"StageSpec",
	"VGG16_STAGES",
	"InferencePipeline",
	"cnn",
	"NumpyPoolingBackend",
	"VulkanPoolingBackend",
	"create_backend",
	"vulkan_available",
	"__version__",
	"functional",
	"network",
	"pipeline",
	"tensor",
	"vulkan_backend",
]
