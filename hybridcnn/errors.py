from __future__ import annotations

from typing import Optional


class DeviceError(RuntimeError):
    """A Vulkan call (or the shader toolchain) failed."""

    def __init__(self, operation: str, message: str = "", *, code: Optional[int] = None) -> None:
        self.operation = operation
        self.code = code
        text = f"{operation} failed"
        if code is not None:
            text += f" (VkResult {code})"
        if message:
            text += f": {message}"
        super().__init__(text)


class DeviceNotFoundError(DeviceError):
    pass


class ProgramBuildError(DeviceError):
    def __init__(self, operation: str, build_log: str, *, code: Optional[int] = None) -> None:
        self.build_log = build_log
        super().__init__(operation, build_log.strip(), code=code)


class DeviceBufferError(DeviceError):
    pass


class DispatchError(DeviceError):
    pass


class BackendStateError(DeviceError):
    pass


class BackendNotInitializedError(BackendStateError):
    def __init__(self, operation: str = "pool") -> None:
        super().__init__(operation, "backend is not initialized; call initialize() first")


class HostAllocationError(RuntimeError):
    pass


class InferenceError(RuntimeError):
    """First failure of a batch run. Outputs are valid only for ``completed`` images."""

    def __init__(self, image_index: int, stage: str, completed: int) -> None:
        self.image_index = image_index
        self.stage = stage
        self.completed = completed
        super().__init__(f"inference aborted at image {image_index}, stage {stage!r}")
