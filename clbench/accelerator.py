"""Thin OpenCL layer over pyopencl.

Exposes exactly what the harness consumes: device enumeration and selection,
a context handle with its command queue, typed device buffers sized in
elements, and kernels compiled from a source blob and bound by entry point.
Every backend fault is re-raised as ``AcceleratorError``.
"""

from __future__ import annotations

from dataclasses import dataclass
from importlib import resources
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pyopencl as cl

from clbench.exceptions import AcceleratorError, ConfigurationError, DeviceSelectionError
from clbench.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class WorkSize:
    """Work-group shape and global extent; the extent must be tiled evenly by the group."""

    group: Tuple[int, ...]
    global_size: Tuple[int, ...]

    def __post_init__(self):
        if len(self.group) != len(self.global_size) or not 1 <= len(self.group) <= 3:
            raise ConfigurationError(
                f"work size dimensions differ: group {self.group}, global {self.global_size}",
                config_key="work_size",
                config_value=(self.group, self.global_size),
                reason="dimension mismatch",
            )
        for g, total in zip(self.group, self.global_size):
            if g <= 0 or total <= 0 or total % g != 0:
                raise ConfigurationError(
                    f"global size {self.global_size} is not evenly tiled by group {self.group}",
                    config_key="work_size",
                    config_value=(self.group, self.global_size),
                    reason="uneven tiling",
                )

    @classmethod
    def covering(cls, group: Sequence[int], extent: Sequence[int]) -> WorkSize:
        """Round each extent up to the next multiple of the group size."""
        rounded = tuple((int(e) + int(g) - 1) // int(g) * int(g) for g, e in zip(group, extent))
        return cls(group=tuple(int(g) for g in group), global_size=rounded)


@dataclass(frozen=True)
class DeviceInfo:
    index: int
    name: str
    platform: str
    is_gpu: bool
    device: cl.Device


def list_devices() -> List[DeviceInfo]:
    """Enumerate devices across all platforms; empty when no ICD is installed."""
    try:
        platforms = cl.get_platforms()
    except cl.Error as exc:
        logger.debug(f"OpenCL platform query failed: {exc}")
        return []
    devices: List[DeviceInfo] = []
    for platform in platforms:
        try:
            platform_devices = platform.get_devices()
        except cl.Error as exc:
            logger.debug(f"no devices on platform {platform.name}: {exc}")
            continue
        for device in platform_devices:
            devices.append(
                DeviceInfo(
                    index=len(devices),
                    name=device.name.strip(),
                    platform=platform.name.strip(),
                    is_gpu=bool(device.type & cl.device_type.GPU),
                    device=device,
                )
            )
    return devices


def choose_device(index: Optional[int] = None) -> DeviceInfo:
    """Pick the device at ``index``; without one, the first GPU, else the first device."""
    devices = list_devices()
    if not devices:
        raise DeviceSelectionError("No OpenCL devices found", requested=index)
    logger.info(f"OpenCL devices: {len(devices)}")
    for info in devices:
        kind = "GPU" if info.is_gpu else "CPU/other"
        logger.info(f"  Device #{info.index}: {kind}. {info.name} ({info.platform})")
    if index is None:
        chosen = next((info for info in devices if info.is_gpu), devices[0])
    elif 0 <= index < len(devices):
        chosen = devices[index]
    else:
        raise DeviceSelectionError(
            f"Device index {index} out of range (found {len(devices)} devices)", requested=index
        )
    logger.info(f"Using device #{chosen.index}: {chosen.name}")
    return chosen


def load_kernel_source(program: str) -> str:
    """Read an OpenCL source blob shipped in ``clbench.kernels``."""
    return resources.files("clbench.kernels").joinpath(program).read_text()


class AcceleratorContext:
    """Explicit context handle: one OpenCL context plus an in-order queue.

    Use as a context manager; buffers created through it are released on exit.
    """

    def __init__(self, device: DeviceInfo):
        self.device = device
        try:
            self.context = cl.Context([device.device])
            self.queue = cl.CommandQueue(self.context, device=device.device)
        except cl.Error as exc:
            raise AcceleratorError(
                f"Failed to create context on {device.name}: {exc}", stage="context", original_error=exc
            ) from exc
        self._buffers: List[DeviceBuffer] = []
        self._closed = False

    def __enter__(self) -> AcceleratorContext:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def buffer(self, dtype) -> DeviceBuffer:
        buf = DeviceBuffer(self, dtype)
        self._buffers.append(buf)
        return buf

    def kernel(self, source: str, entry_point: str, options: Sequence[str] = ()) -> Kernel:
        return Kernel(self, source, entry_point, options)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for buf in self._buffers:
            buf.release()
        self._buffers.clear()
        try:
            self.queue.finish()
        except cl.Error as exc:
            logger.warning(f"queue did not drain cleanly on close: {exc}")


class DeviceBuffer:
    """Device allocation holding ``size`` elements of ``dtype``."""

    def __init__(self, ctx: AcceleratorContext, dtype):
        self._ctx = ctx
        self.dtype = np.dtype(dtype)
        self.size = 0
        self.mem: Optional[cl.Buffer] = None

    def resize_n(self, n: int) -> None:
        """(Re)allocate only when the element count changes."""
        if n == self.size and self.mem is not None:
            return
        self.release()
        try:
            self.mem = cl.Buffer(self._ctx.context, cl.mem_flags.READ_WRITE, size=int(n) * self.dtype.itemsize)
        except cl.Error as exc:
            raise AcceleratorError(
                f"Failed to allocate {n} x {self.dtype} on device: {exc}", stage="transfer", original_error=exc
            ) from exc
        self.size = int(n)

    def write_n(self, host: np.ndarray) -> None:
        host = np.ascontiguousarray(host, dtype=self.dtype).reshape(-1)
        if self.mem is None or host.size != self.size:
            raise ConfigurationError(
                f"write of {host.size} elements into buffer of {self.size}",
                config_key="buffer",
                config_value=host.size,
                reason="size mismatch",
            )
        try:
            cl.enqueue_copy(self._ctx.queue, self.mem, host, is_blocking=True)
        except cl.Error as exc:
            raise AcceleratorError(f"Host to device copy failed: {exc}", stage="transfer", original_error=exc) from exc

    def read_n(self) -> np.ndarray:
        if self.mem is None:
            raise ConfigurationError(
                "read from unallocated buffer", config_key="buffer", config_value=None, reason="not allocated"
            )
        host = np.empty(self.size, dtype=self.dtype)
        try:
            cl.enqueue_copy(self._ctx.queue, host, self.mem, is_blocking=True)
        except cl.Error as exc:
            raise AcceleratorError(f"Device to host copy failed: {exc}", stage="transfer", original_error=exc) from exc
        return host

    def release(self) -> None:
        if self.mem is not None:
            self.mem.release()
            self.mem = None
            self.size = 0


class Kernel:
    """Kernel bound by source blob and entry point; compiled on first use."""

    def __init__(self, ctx: AcceleratorContext, source: str, entry_point: str, options: Sequence[str] = ()):
        self._ctx = ctx
        self.source = source
        self.entry_point = entry_point
        self.options = list(options)
        self._kernel: Optional[cl.Kernel] = None

    def compile(self) -> None:
        if self._kernel is not None:
            return
        try:
            program = cl.Program(self._ctx.context, self.source).build(options=self.options)
            self._kernel = cl.Kernel(program, self.entry_point)
        except cl.Error as exc:
            raise AcceleratorError(
                f"Failed to compile kernel '{self.entry_point}': {exc}",
                stage="compile",
                kernel_name=self.entry_point,
                original_error=exc,
            ) from exc
        logger.debug(f"compiled {self.entry_point} with options {self.options}")

    def exec(self, work_size: WorkSize, *args) -> None:
        """Launch and block until the device has finished."""
        self.compile()
        device_args = [a.mem if isinstance(a, DeviceBuffer) else a for a in args]
        try:
            self._kernel.set_args(*device_args)
            cl.enqueue_nd_range_kernel(self._ctx.queue, self._kernel, work_size.global_size, work_size.group)
            self._ctx.queue.finish()
        except cl.Error as exc:
            raise AcceleratorError(
                f"Failed to launch kernel '{self.entry_point}' with {work_size}: {exc}",
                stage="launch",
                kernel_name=self.entry_point,
                original_error=exc,
            ) from exc

    def release(self) -> None:
        self._kernel = None
