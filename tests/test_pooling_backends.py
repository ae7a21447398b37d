import os
import sys

import numpy as np
import pytest

from hybridcnn import functional as F
from hybridcnn import vulkan_backend as vk
from hybridcnn.errors import (
    BackendNotInitializedError,
    BackendStateError,
    DeviceError,
    DeviceNotFoundError,
    ProgramBuildError,
)
from hybridcnn.tensor import alloc_layer


@pytest.fixture(scope="module")
def gpu_backend():
    """A live Vulkan backend, or skip when this machine cannot provide one."""
    backend = vk.VulkanPoolingBackend(require_gpu=False)
    try:
        backend.initialize()
    except DeviceError as e:
        pytest.skip(f"Vulkan pooling backend unavailable: {e}")
    yield backend
    backend.close()


def _reference_pool(x: np.ndarray, d: int, n: int) -> np.ndarray:
    out = alloc_layer(d * n * n)
    F.max_pool2x2(x, out, d, n)
    return out


def test_numpy_backend_matches_reference() -> None:
    rng = np.random.default_rng(0)
    d, n = 5, 3
    x = rng.standard_normal((d * 2 * n * 2 * n,), dtype=np.float32)

    with vk.NumpyPoolingBackend() as backend:
        out = alloc_layer(d * n * n)
        ret = backend.pool(x, out, d, n)
        assert ret is out

    np.testing.assert_array_equal(out, _reference_pool(x, d, n))


def test_numpy_backend_lifecycle_errors() -> None:
    backend = vk.NumpyPoolingBackend()
    out = alloc_layer(1)
    with pytest.raises(BackendNotInitializedError):
        backend.pool(np.zeros((4,), dtype=np.float32), out, 1, 1)

    backend.initialize()
    with pytest.raises(BackendStateError):
        backend.initialize()


def test_pool_rejects_non_positive_sizes() -> None:
    with vk.NumpyPoolingBackend() as backend:
        with pytest.raises(ValueError):
            backend.pool(np.zeros((4,), dtype=np.float32), alloc_layer(1), 0, 1)


def test_vulkan_pool_before_initialize_raises() -> None:
    backend = vk.VulkanPoolingBackend()
    assert not backend.initialized
    with pytest.raises(BackendNotInitializedError):
        backend.pool(np.zeros((4,), dtype=np.float32), alloc_layer(1), 1, 1)


def test_vulkan_initialize_succeeds_or_fails_with_device_error() -> None:
    """Non-skipping: either a working backend or a typed, informative failure."""

    backend = vk.VulkanPoolingBackend()
    try:
        backend.initialize()
    except DeviceError as e:
        assert str(e)
        assert not backend.initialized
        if not vk.vulkan_available():
            assert isinstance(e, DeviceNotFoundError)
        return

    try:
        assert backend.initialized
        with pytest.raises(BackendStateError):
            backend.initialize()
    finally:
        backend.close()
    assert not backend.initialized


def test_create_backend_by_name() -> None:
    backend = vk.create_backend("numpy")
    assert backend.initialized
    assert backend.name == "numpy"
    with pytest.raises(ValueError):
        vk.create_backend("opencl")


def test_vk_call_wraps_errors_with_result_code() -> None:
    with pytest.raises(DeviceError) as excinfo:
        with vk._vk_call("vkAllocateMemory", vk.DeviceBufferError):
            raise KeyError(-2)
    err = excinfo.value
    assert isinstance(err, vk.DeviceBufferError)
    assert err.operation == "vkAllocateMemory"
    assert err.code == -2
    assert isinstance(err.__cause__, KeyError)


def _bare_context(monkeypatch, tmp_path, glslc: str):
    # Only the shader toolchain is exercised; no Vulkan calls are made.
    monkeypatch.setattr(vk, "_HAS_VULKAN", True)
    return vk._VulkanContext(shader_dir=tmp_path, glslc=glslc, require_gpu=True)


def test_missing_shader_source_is_a_build_error(monkeypatch, tmp_path) -> None:
    ctx = _bare_context(monkeypatch, tmp_path, "glslc")
    with pytest.raises(ProgramBuildError):
        ctx._ensure_spv("pooling")


def test_missing_compiler_is_a_build_error(monkeypatch, tmp_path) -> None:
    (tmp_path / "pooling.comp").write_text("#version 450\nvoid main() {}\n")
    ctx = _bare_context(monkeypatch, tmp_path, str(tmp_path / "no-such-glslc"))
    with pytest.raises(ProgramBuildError) as excinfo:
        ctx._ensure_spv("pooling")
    assert "not found" in str(excinfo.value)


@pytest.mark.skipif(sys.platform == "win32", reason="uses a shell script as the compiler")
def test_compile_failure_prints_build_log(monkeypatch, tmp_path, capsys) -> None:
    (tmp_path / "pooling.comp").write_text("#version 450\nthis does not compile\n")
    fake = tmp_path / "fake-glslc"
    fake.write_text("#!/bin/sh\necho 'pooling.comp:2: error: syntax error' >&2\nexit 1\n")
    os.chmod(fake, 0o755)

    ctx = _bare_context(monkeypatch, tmp_path, str(fake))
    with pytest.raises(ProgramBuildError) as excinfo:
        ctx._ensure_spv("pooling")

    assert "syntax error" in excinfo.value.build_log
    assert "syntax error" in capsys.readouterr().out


def test_fresh_spv_is_reused_without_compiling(monkeypatch, tmp_path) -> None:
    comp = tmp_path / "pooling.comp"
    comp.write_text("#version 450\nvoid main() {}\n")
    spv = tmp_path / "pooling.spv"
    spv.write_bytes(b"\x03\x02\x23\x07")
    os.utime(spv, (comp.stat().st_mtime + 10, comp.stat().st_mtime + 10))

    ctx = _bare_context(monkeypatch, tmp_path, str(tmp_path / "no-such-glslc"))
    assert ctx._ensure_spv("pooling") == b"\x03\x02\x23\x07"


def test_submit_waits_on_the_fence_without_timeout(monkeypatch, tmp_path) -> None:
    ctx = _bare_context(monkeypatch, tmp_path, "glslc")
    ctx.device, ctx.queue, ctx.command_buffer, ctx._fence = "device", "queue", "cmd", "fence"

    waits = []
    monkeypatch.setattr(vk, "VK_TRUE", 1, raising=False)
    monkeypatch.setattr(vk, "VK_STRUCTURE_TYPE_SUBMIT_INFO", 4, raising=False)
    monkeypatch.setattr(vk, "VkSubmitInfo", lambda **kw: kw, raising=False)
    monkeypatch.setattr(vk, "vkResetFences", lambda *a: None, raising=False)
    monkeypatch.setattr(vk, "vkQueueSubmit", lambda *a: None, raising=False)
    monkeypatch.setattr(vk, "vkWaitForFences", lambda *a: waits.append(a[-1]), raising=False)

    ctx._submit_and_wait()
    assert waits == [2**64 - 1]


class _BrokenContext:
    def __init__(self, **kwargs) -> None:
        pass

    def init(self) -> None:
        raise DeviceNotFoundError("vkEnumeratePhysicalDevices", "no devices")

    def destroy(self) -> None:
        raise RuntimeError("device lost during teardown")


def test_initialize_reports_init_failure_when_cleanup_also_fails(monkeypatch, capsys) -> None:
    monkeypatch.setattr(vk, "_VulkanContext", _BrokenContext)
    backend = vk.VulkanPoolingBackend()

    with pytest.raises(DeviceNotFoundError) as excinfo:
        backend.initialize()

    assert excinfo.value.operation == "vkEnumeratePhysicalDevices"
    assert not backend.initialized
    assert "device lost during teardown" in capsys.readouterr().out


def test_gpu_pool_constant_field(gpu_backend) -> None:
    for n in (1, 2, 8):
        x = np.full((1 * 2 * n * 2 * n,), 0.75, dtype=np.float32)
        out = alloc_layer(n * n)
        gpu_backend.pool(x, out, 1, n)
        np.testing.assert_array_equal(out, 0.75)


@pytest.mark.parametrize("d,n", [(1, 1), (3, 5), (64, 16), (130, 2), (512, 1)])
def test_gpu_pool_matches_cpu_reference(gpu_backend, d: int, n: int) -> None:
    rng = np.random.default_rng(d * 100 + n)
    x = rng.standard_normal((d * 2 * n * 2 * n,), dtype=np.float32)

    out = alloc_layer(d * n * n)
    gpu_backend.pool(x, out, d, n)

    np.testing.assert_allclose(out, _reference_pool(x, d, n), rtol=1e-6, atol=1e-6)


def test_gpu_pool_repeated_calls_do_not_leak_state(gpu_backend) -> None:
    rng = np.random.default_rng(7)
    a = rng.standard_normal((4 * 8 * 8,), dtype=np.float32)
    b = rng.standard_normal((4 * 8 * 8,), dtype=np.float32)

    out_a = alloc_layer(4 * 4 * 4)
    out_b = alloc_layer(4 * 4 * 4)
    out_a2 = alloc_layer(4 * 4 * 4)
    gpu_backend.pool(a, out_a, 4, 4)
    gpu_backend.pool(b, out_b, 4, 4)
    gpu_backend.pool(a, out_a2, 4, 4)

    np.testing.assert_array_equal(out_a, out_a2)
    np.testing.assert_array_equal(out_b, _reference_pool(b, 4, 4))
