# pyright: reportUndefinedVariable=false
# pyright: reportGeneralTypeIssues=false

"""Vulkan compute backend for the pooling stages of hybridcnn.

The CPU runs convolution, fully-connected, softmax and argmax. 2x2 max pooling
is offloaded to a GPU through Vulkan: every ``pool()`` call allocates device
buffers, uploads the activation, dispatches ``shaders/pooling.comp``, waits on
a fence, reads the result back and frees the buffers.

``NumpyPoolingBackend`` implements the same ``initialize/pool/close``
interface on the CPU so the pipeline can run (and be tested) without Vulkan.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, TYPE_CHECKING

import ctypes
import subprocess

import numpy as np


try:
    # python package: "vulkan" (ctypes bindings)
    from vulkan import *  # type: ignore

    _HAS_VULKAN = True
except Exception:
    _HAS_VULKAN = False

# Help type checkers know the Vulkan symbols exist when installed.
if TYPE_CHECKING:  # pragma: no cover
    from vulkan import *  # type: ignore

if not _HAS_VULKAN:
    VK_NULL_HANDLE = 0  # type: ignore[assignment]

# After the star import so Vulkan names cannot shadow ours.
from . import functional as F  # noqa: E402
from .errors import (  # noqa: E402
    BackendNotInitializedError,
    BackendStateError,
    DeviceBufferError,
    DeviceError,
    DeviceNotFoundError,
    DispatchError,
    ProgramBuildError,
)
from .tensor import as_float_buffer  # noqa: E402


SHADERS_DIR = Path(__file__).parent / "shaders"
KERNEL_NAME = "pooling"
ENTRY_POINT = b"main"

# Must match local_size_x in pooling.comp.
WORKGROUP_SIZE = (64, 1, 1)

# UINT64_MAX: wait for the dispatch to finish however long it takes.
_FENCE_TIMEOUT_NS = 0xFFFFFFFFFFFFFFFF


def vulkan_available() -> bool:
    return _HAS_VULKAN


def _result_code(exc: BaseException) -> Optional[int]:
    # python-vulkan raises KeyError(code) for results it has no exception class for.
    if isinstance(exc, KeyError) and exc.args and isinstance(exc.args[0], int):
        return int(exc.args[0])
    return None


@contextmanager
def _vk_call(operation: str, error: type[DeviceError] = DeviceError) -> Iterator[None]:
    try:
        yield
    except DeviceError:
        raise
    except Exception as e:
        raise error(operation, str(e) or type(e).__name__, code=_result_code(e)) from e


@dataclass
class VulkanBuffer:
    """A host-visible Vulkan buffer holding float32 data."""

    nbytes: int
    buffer: int
    memory: int


class _VulkanContext:
    def __init__(self, *, shader_dir: Path, glslc: str, require_gpu: bool) -> None:
        if not _HAS_VULKAN:
            raise DeviceNotFoundError("import vulkan", "Python package 'vulkan' not installed")

        self.shader_dir = shader_dir
        self.glslc = glslc
        self.require_gpu = require_gpu

        self.instance: Optional[VkInstance] = None
        self.physical_device: Optional[VkPhysicalDevice] = None
        self.device: Optional[VkDevice] = None
        self.queue: Optional[VkQueue] = None
        self.queue_family_index: Optional[int] = None

        self.command_pool: Optional[VkCommandPool] = None
        self.command_buffer: Optional[VkCommandBuffer] = None
        self._fence: Optional[VkFence] = None

        self.pipeline: Optional[VkPipeline] = None
        self.pipeline_layout: Optional[VkPipelineLayout] = None
        self.descriptor_set_layout: Optional[VkDescriptorSetLayout] = None
        self.descriptor_pool: Optional[VkDescriptorPool] = None
        self.descriptor_set: Optional[VkDescriptorSet] = None

    # ------------------------------
    # Init
    # ------------------------------
    def init(self) -> None:
        app_info = VkApplicationInfo(
            sType=VK_STRUCTURE_TYPE_APPLICATION_INFO,
            pApplicationName=b"hybridcnn",
            applicationVersion=VK_MAKE_VERSION(0, 1, 0),
            pEngineName=b"hybridcnn",
            engineVersion=VK_MAKE_VERSION(0, 1, 0),
            apiVersion=VK_API_VERSION_1_0,
        )
        create_info = VkInstanceCreateInfo(
            sType=VK_STRUCTURE_TYPE_INSTANCE_CREATE_INFO,
            pApplicationInfo=app_info,
        )
        with _vk_call("vkCreateInstance", DeviceNotFoundError):
            self.instance = vkCreateInstance(create_info, None)

        self._select_device()

        queue_priorities = [1.0]
        qci = VkDeviceQueueCreateInfo(
            sType=VK_STRUCTURE_TYPE_DEVICE_QUEUE_CREATE_INFO,
            queueFamilyIndex=self.queue_family_index,
            queueCount=1,
            pQueuePriorities=queue_priorities,
        )
        dci = VkDeviceCreateInfo(
            sType=VK_STRUCTURE_TYPE_DEVICE_CREATE_INFO,
            queueCreateInfoCount=1,
            pQueueCreateInfos=[qci],
        )
        with _vk_call("vkCreateDevice", DeviceNotFoundError):
            self.device = vkCreateDevice(self.physical_device, dci, None)
            # A single queue: submissions complete in order.
            self.queue = vkGetDeviceQueue(self.device, self.queue_family_index, 0)

        cpci = VkCommandPoolCreateInfo(
            sType=VK_STRUCTURE_TYPE_COMMAND_POOL_CREATE_INFO,
            queueFamilyIndex=self.queue_family_index,
            flags=VK_COMMAND_POOL_CREATE_RESET_COMMAND_BUFFER_BIT,
        )
        with _vk_call("vkCreateCommandPool"):
            self.command_pool = vkCreateCommandPool(self.device, cpci, None)
        cbai = VkCommandBufferAllocateInfo(
            sType=VK_STRUCTURE_TYPE_COMMAND_BUFFER_ALLOCATE_INFO,
            commandPool=self.command_pool,
            level=VK_COMMAND_BUFFER_LEVEL_PRIMARY,
            commandBufferCount=1,
        )
        with _vk_call("vkAllocateCommandBuffers"):
            self.command_buffer = vkAllocateCommandBuffers(self.device, cbai)[0]

        fence_ci = VkFenceCreateInfo(sType=VK_STRUCTURE_TYPE_FENCE_CREATE_INFO)
        with _vk_call("vkCreateFence"):
            self._fence = vkCreateFence(self.device, fence_ci, None)

        self._create_pooling_pipeline()

    def _select_device(self) -> None:
        with _vk_call("vkEnumeratePhysicalDevices", DeviceNotFoundError):
            devices = vkEnumeratePhysicalDevices(self.instance)
        if not devices:
            raise DeviceNotFoundError("vkEnumeratePhysicalDevices", "no Vulkan physical devices found")

        gpu_types = (
            VK_PHYSICAL_DEVICE_TYPE_INTEGRATED_GPU,
            VK_PHYSICAL_DEVICE_TYPE_DISCRETE_GPU,
            VK_PHYSICAL_DEVICE_TYPE_VIRTUAL_GPU,
        )

        # Pick the first (GPU-class) device with a compute queue.
        with _vk_call("query physical devices", DeviceNotFoundError):
            for pd in devices:
                if self.require_gpu:
                    props = vkGetPhysicalDeviceProperties(pd)
                    if props.deviceType not in gpu_types:
                        continue
                qprops = vkGetPhysicalDeviceQueueFamilyProperties(pd)
                for i, qp in enumerate(qprops):
                    if qp.queueFlags & VK_QUEUE_COMPUTE_BIT:
                        self.physical_device = pd
                        self.queue_family_index = int(i)
                        break
                if self.physical_device is not None:
                    break

        if self.physical_device is None or self.queue_family_index is None:
            kind = "GPU device" if self.require_gpu else "device"
            raise DeviceNotFoundError("vkGetPhysicalDeviceQueueFamilyProperties", f"no Vulkan {kind} with a compute queue")

    # ------------------------------
    # Shader / pipeline
    # ------------------------------
    def _ensure_spv(self, name: str) -> bytes:
        spv_path = self.shader_dir / f"{name}.spv"
        comp_path = self.shader_dir / f"{name}.comp"

        if spv_path.exists() and comp_path.exists():
            if spv_path.stat().st_mtime >= comp_path.stat().st_mtime:
                return spv_path.read_bytes()

        if spv_path.exists() and not comp_path.exists():
            return spv_path.read_bytes()

        if not comp_path.exists():
            raise ProgramBuildError("load shader source", f"missing shader source: {comp_path}")

        try:
            subprocess.run(
                [self.glslc, "-O", str(comp_path), "-o", str(spv_path)],
                check=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ProgramBuildError("glslc", f"{self.glslc} not found; install shader compiler tools") from e
        except subprocess.CalledProcessError as e:
            build_log = e.stderr.decode("utf-8", errors="replace")
            print(f"Build log for {comp_path.name}:")
            print(build_log)
            raise ProgramBuildError(f"compile {comp_path.name}", build_log) from e

        return spv_path.read_bytes()

    def _create_shader_module(self, spv: bytes) -> VkShaderModule:
        # Vulkan expects uint32 words.
        if len(spv) % 4 != 0:
            raise ProgramBuildError("vkCreateShaderModule", "SPIR-V bytecode length must be multiple of 4")

        code_u32 = (ctypes.c_uint32 * (len(spv) // 4)).from_buffer_copy(spv)
        smci = VkShaderModuleCreateInfo(
            sType=VK_STRUCTURE_TYPE_SHADER_MODULE_CREATE_INFO,
            codeSize=len(spv),
            pCode=code_u32,
        )
        with _vk_call("vkCreateShaderModule", ProgramBuildError):
            return vkCreateShaderModule(self.device, smci, None)

    def _create_pooling_pipeline(self) -> None:
        """Compute pipeline with 2 storage buffers and push constants (channels, size)."""
        assert self.device is not None

        bindings = [
            VkDescriptorSetLayoutBinding(
                binding=binding,
                descriptorType=VK_DESCRIPTOR_TYPE_STORAGE_BUFFER,
                descriptorCount=1,
                stageFlags=VK_SHADER_STAGE_COMPUTE_BIT,
            )
            for binding in (0, 1)
        ]
        dsci = VkDescriptorSetLayoutCreateInfo(
            sType=VK_STRUCTURE_TYPE_DESCRIPTOR_SET_LAYOUT_CREATE_INFO,
            bindingCount=len(bindings),
            pBindings=bindings,
        )
        pcr = VkPushConstantRange(
            stageFlags=VK_SHADER_STAGE_COMPUTE_BIT,
            offset=0,
            size=8,
        )
        with _vk_call("vkCreatePipelineLayout"):
            self.descriptor_set_layout = vkCreateDescriptorSetLayout(self.device, dsci, None)
            plci = VkPipelineLayoutCreateInfo(
                sType=VK_STRUCTURE_TYPE_PIPELINE_LAYOUT_CREATE_INFO,
                setLayoutCount=1,
                pSetLayouts=[self.descriptor_set_layout],
                pushConstantRangeCount=1,
                pPushConstantRanges=[pcr],
            )
            self.pipeline_layout = vkCreatePipelineLayout(self.device, plci, None)

        pool_sizes = [
            VkDescriptorPoolSize(
                type=VK_DESCRIPTOR_TYPE_STORAGE_BUFFER,
                descriptorCount=2,
            )
        ]
        dpci = VkDescriptorPoolCreateInfo(
            sType=VK_STRUCTURE_TYPE_DESCRIPTOR_POOL_CREATE_INFO,
            maxSets=1,
            poolSizeCount=len(pool_sizes),
            pPoolSizes=pool_sizes,
        )
        with _vk_call("vkAllocateDescriptorSets"):
            self.descriptor_pool = vkCreateDescriptorPool(self.device, dpci, None)
            dsai = VkDescriptorSetAllocateInfo(
                sType=VK_STRUCTURE_TYPE_DESCRIPTOR_SET_ALLOCATE_INFO,
                descriptorPool=self.descriptor_pool,
                descriptorSetCount=1,
                pSetLayouts=[self.descriptor_set_layout],
            )
            # One set, rewritten by every dispatch (dispatches never overlap).
            self.descriptor_set = vkAllocateDescriptorSets(self.device, dsai)[0]

        spv = self._ensure_spv(KERNEL_NAME)
        sm = self._create_shader_module(spv)
        stage = VkPipelineShaderStageCreateInfo(
            sType=VK_STRUCTURE_TYPE_PIPELINE_SHADER_STAGE_CREATE_INFO,
            stage=VK_SHADER_STAGE_COMPUTE_BIT,
            module=sm,
            pName=ENTRY_POINT,
        )
        cpci = VkComputePipelineCreateInfo(
            sType=VK_STRUCTURE_TYPE_COMPUTE_PIPELINE_CREATE_INFO,
            stage=stage,
            layout=self.pipeline_layout,
        )
        try:
            with _vk_call("vkCreateComputePipelines", ProgramBuildError):
                self.pipeline = vkCreateComputePipelines(self.device, VK_NULL_HANDLE, 1, [cpci], None)[0]
        finally:
            vkDestroyShaderModule(self.device, sm, None)

    # ------------------------------
    # Buffers
    # ------------------------------
    def _find_memory_type(self, type_bits: int, props: int) -> int:
        assert self.physical_device is not None
        mem_props = vkGetPhysicalDeviceMemoryProperties(self.physical_device)
        for i in range(mem_props.memoryTypeCount):
            if (type_bits & (1 << i)) and (mem_props.memoryTypes[i].propertyFlags & props) == props:
                return i
        raise DeviceBufferError("vkGetPhysicalDeviceMemoryProperties", "no host-visible coherent memory type")

    def alloc_buffer(self, nbytes: int) -> VulkanBuffer:
        assert self.device is not None

        bci = VkBufferCreateInfo(
            sType=VK_STRUCTURE_TYPE_BUFFER_CREATE_INFO,
            size=nbytes,
            usage=VK_BUFFER_USAGE_STORAGE_BUFFER_BIT,
            sharingMode=VK_SHARING_MODE_EXCLUSIVE,
        )
        with _vk_call("vkCreateBuffer", DeviceBufferError):
            buf = vkCreateBuffer(self.device, bci, None)
        try:
            req = vkGetBufferMemoryRequirements(self.device, buf)
            mem_type = self._find_memory_type(
                req.memoryTypeBits,
                VK_MEMORY_PROPERTY_HOST_VISIBLE_BIT | VK_MEMORY_PROPERTY_HOST_COHERENT_BIT,
            )
            mai = VkMemoryAllocateInfo(
                sType=VK_STRUCTURE_TYPE_MEMORY_ALLOCATE_INFO,
                allocationSize=req.size,
                memoryTypeIndex=mem_type,
            )
            with _vk_call("vkAllocateMemory", DeviceBufferError):
                mem = vkAllocateMemory(self.device, mai, None)
        except DeviceError:
            vkDestroyBuffer(self.device, buf, None)
            raise
        try:
            with _vk_call("vkBindBufferMemory", DeviceBufferError):
                vkBindBufferMemory(self.device, buf, mem, 0)
        except DeviceError:
            vkDestroyBuffer(self.device, buf, None)
            vkFreeMemory(self.device, mem, None)
            raise
        return VulkanBuffer(nbytes=int(nbytes), buffer=buf, memory=mem)

    def free_buffer(self, buf: VulkanBuffer) -> None:
        assert self.device is not None
        vkDestroyBuffer(self.device, buf.buffer, None)
        vkFreeMemory(self.device, buf.memory, None)

    def _map(self, buf: VulkanBuffer):
        with _vk_call("vkMapMemory", DeviceBufferError):
            mapped = vkMapMemory(self.device, buf.memory, 0, buf.nbytes, 0)
        if isinstance(mapped, (tuple, list)):
            mapped = mapped[1]
        return mapped

    def write_buffer(self, buf: VulkanBuffer, data: np.ndarray) -> None:
        arr = np.ascontiguousarray(data, dtype=np.float32)
        mapped = self._map(buf)
        try:
            mapped[: arr.nbytes] = arr.tobytes()
        finally:
            vkUnmapMemory(self.device, buf.memory)

    def read_buffer(self, buf: VulkanBuffer) -> np.ndarray:
        mapped = self._map(buf)
        try:
            raw = bytes(mapped[: buf.nbytes])
        finally:
            vkUnmapMemory(self.device, buf.memory)
        return np.frombuffer(raw, dtype=np.float32)

    # ------------------------------
    # Dispatch
    # ------------------------------
    def dispatch_pooling(self, src: VulkanBuffer, dst: VulkanBuffer, channels: int, size: int) -> None:
        assert self.device is not None
        assert self.command_buffer is not None
        assert self.pipeline is not None

        ds = self.descriptor_set
        infos = [
            VkDescriptorBufferInfo(buffer=src.buffer, offset=0, range=src.nbytes),
            VkDescriptorBufferInfo(buffer=dst.buffer, offset=0, range=dst.nbytes),
        ]
        writes = [
            VkWriteDescriptorSet(
                sType=VK_STRUCTURE_TYPE_WRITE_DESCRIPTOR_SET,
                dstSet=ds,
                dstBinding=binding,
                descriptorCount=1,
                descriptorType=VK_DESCRIPTOR_TYPE_STORAGE_BUFFER,
                pBufferInfo=[info],
            )
            for binding, info in enumerate(infos)
        ]

        import vulkan as _vk  # type: ignore

        pc = _vk.ffi.new("uint32_t[2]", [int(channels), int(size)])

        # Grid is (channels, 2*size, 2*size) invocations in groups of WORKGROUP_SIZE.
        group_count_x = (int(channels) + WORKGROUP_SIZE[0] - 1) // WORKGROUP_SIZE[0]
        group_count_y = 2 * int(size)
        group_count_z = 2 * int(size)

        with _vk_call("record pooling dispatch", DispatchError):
            vkUpdateDescriptorSets(self.device, len(writes), writes, 0, None)

            vkResetCommandBuffer(self.command_buffer, 0)
            begin = VkCommandBufferBeginInfo(
                sType=VK_STRUCTURE_TYPE_COMMAND_BUFFER_BEGIN_INFO,
                flags=VK_COMMAND_BUFFER_USAGE_ONE_TIME_SUBMIT_BIT,
            )
            vkBeginCommandBuffer(self.command_buffer, begin)
            vkCmdBindPipeline(self.command_buffer, VK_PIPELINE_BIND_POINT_COMPUTE, self.pipeline)
            vkCmdBindDescriptorSets(
                self.command_buffer,
                VK_PIPELINE_BIND_POINT_COMPUTE,
                self.pipeline_layout,
                0,
                1,
                [ds],
                0,
                None,
            )
            vkCmdPushConstants(
                self.command_buffer,
                self.pipeline_layout,
                VK_SHADER_STAGE_COMPUTE_BIT,
                0,
                8,
                pc,
            )
            vkCmdDispatch(self.command_buffer, group_count_x, group_count_y, group_count_z)

            # Make shader writes visible to the host readback.
            barrier = VkMemoryBarrier(
                sType=VK_STRUCTURE_TYPE_MEMORY_BARRIER,
                srcAccessMask=VK_ACCESS_SHADER_WRITE_BIT,
                dstAccessMask=VK_ACCESS_HOST_READ_BIT,
            )
            vkCmdPipelineBarrier(
                self.command_buffer,
                VK_PIPELINE_STAGE_COMPUTE_SHADER_BIT,
                VK_PIPELINE_STAGE_HOST_BIT,
                0,
                1,
                [barrier],
                0,
                None,
                0,
                None,
            )
            vkEndCommandBuffer(self.command_buffer)

        self._submit_and_wait()

    def _submit_and_wait(self) -> None:
        assert self.device is not None
        assert self.queue is not None
        assert self.command_buffer is not None

        submit = VkSubmitInfo(
            sType=VK_STRUCTURE_TYPE_SUBMIT_INFO,
            commandBufferCount=1,
            pCommandBuffers=[self.command_buffer],
        )
        with _vk_call("vkQueueSubmit", DispatchError):
            vkResetFences(self.device, 1, [self._fence])
            vkQueueSubmit(self.queue, 1, [submit], self._fence)
        with _vk_call("vkWaitForFences", DispatchError):
            vkWaitForFences(self.device, 1, [self._fence], VK_TRUE, _FENCE_TIMEOUT_NS)

    # ------------------------------
    # Teardown
    # ------------------------------
    def destroy(self) -> None:
        if self.device is not None:
            vkDeviceWaitIdle(self.device)
            if self.pipeline is not None:
                vkDestroyPipeline(self.device, self.pipeline, None)
            if self.pipeline_layout is not None:
                vkDestroyPipelineLayout(self.device, self.pipeline_layout, None)
            if self.descriptor_pool is not None:
                vkDestroyDescriptorPool(self.device, self.descriptor_pool, None)
            if self.descriptor_set_layout is not None:
                vkDestroyDescriptorSetLayout(self.device, self.descriptor_set_layout, None)
            if self._fence is not None:
                vkDestroyFence(self.device, self._fence, None)
            if self.command_pool is not None:
                vkDestroyCommandPool(self.device, self.command_pool, None)
            vkDestroyDevice(self.device, None)
        if self.instance is not None:
            vkDestroyInstance(self.instance, None)

        self.pipeline = None
        self.pipeline_layout = None
        self.descriptor_pool = None
        self.descriptor_set = None
        self.descriptor_set_layout = None
        self._fence = None
        self.command_buffer = None
        self.command_pool = None
        self.queue = None
        self.device = None
        self.physical_device = None
        self.instance = None


def _check_pool_args(channels: int, output_size: int) -> tuple[int, int]:
    c, s = int(channels), int(output_size)
    if c <= 0 or s <= 0:
        raise ValueError(f"pool expects positive channels and output_size, got {channels} and {output_size}")
    return c, s


class VulkanPoolingBackend:
    """GPU execution manager for 2x2 max pooling.

    Owns the Vulkan instance, device, queue, compiled pipeline and descriptor
    resources. ``initialize()`` is called once; afterwards the object is
    read-only and every ``pool()`` call pays the full
    allocate/upload/dispatch/download/free cost.
    """

    name = "vulkan"

    def __init__(
        self,
        *,
        shader_dir: Optional[Path | str] = None,
        glslc: str = "glslc",
        require_gpu: bool = True,
    ) -> None:
        self.shader_dir = Path(shader_dir) if shader_dir is not None else SHADERS_DIR
        self.glslc = glslc
        self.require_gpu = require_gpu
        self._ctx: Optional[_VulkanContext] = None

    @property
    def initialized(self) -> bool:
        return self._ctx is not None

    def initialize(self) -> None:
        if self._ctx is not None:
            raise BackendStateError("initialize", "Vulkan backend is already initialized")

        ctx = _VulkanContext(shader_dir=self.shader_dir, glslc=self.glslc, require_gpu=self.require_gpu)
        try:
            ctx.init()
        except Exception:
            try:
                ctx.destroy()
            except Exception as cleanup_error:
                # The init failure is the one raised.
                print(f"Vulkan cleanup after failed initialize also failed: {cleanup_error}")
            raise
        self._ctx = ctx

    def pool(self, input: np.ndarray, output: np.ndarray, channels: int, output_size: int) -> np.ndarray:
        """Max-pool ``input`` (channels, 2s, 2s) into ``output`` (channels, s, s) on the GPU."""

        ctx = self._ctx
        if ctx is None:
            raise BackendNotInitializedError("pool")

        c, s = _check_pool_args(channels, output_size)
        n_in = c * (2 * s) * (2 * s)
        n_out = c * s * s
        src = as_float_buffer(input)[:n_in]

        in_buf: Optional[VulkanBuffer] = None
        out_buf: Optional[VulkanBuffer] = None
        try:
            in_buf = ctx.alloc_buffer(src.nbytes)
            ctx.write_buffer(in_buf, src)
            out_buf = ctx.alloc_buffer(n_out * 4)
            ctx.dispatch_pooling(in_buf, out_buf, c, s)
            result = ctx.read_buffer(out_buf)
        finally:
            if out_buf is not None:
                ctx.free_buffer(out_buf)
            if in_buf is not None:
                ctx.free_buffer(in_buf)

        output.reshape(-1)[:n_out] = result[:n_out]
        return output

    def close(self) -> None:
        if self._ctx is not None:
            self._ctx.destroy()
            self._ctx = None

    def __enter__(self) -> "VulkanPoolingBackend":
        if self._ctx is None:
            self.initialize()
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class NumpyPoolingBackend:
    """CPU stand-in for ``VulkanPoolingBackend`` with the same lifecycle rules."""

    name = "numpy"

    def __init__(self) -> None:
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        if self._initialized:
            raise BackendStateError("initialize", "NumPy backend is already initialized")
        self._initialized = True

    def pool(self, input: np.ndarray, output: np.ndarray, channels: int, output_size: int) -> np.ndarray:
        if not self._initialized:
            raise BackendNotInitializedError("pool")
        c, s = _check_pool_args(channels, output_size)
        return F.max_pool2x2(as_float_buffer(input), output, c, s)

    def close(self) -> None:
        self._initialized = False

    def __enter__(self) -> "NumpyPoolingBackend":
        if not self._initialized:
            self.initialize()
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def create_backend(name: str = "vulkan", **kwargs) -> VulkanPoolingBackend | NumpyPoolingBackend:
    """Build and initialize a pooling backend by name ("vulkan" or "numpy")."""

    if name == "vulkan":
        backend: VulkanPoolingBackend | NumpyPoolingBackend = VulkanPoolingBackend(**kwargs)
    elif name == "numpy":
        backend = NumpyPoolingBackend()
    else:
        raise ValueError(f"unknown pooling backend: {name!r}")
    backend.initialize()
    return backend
