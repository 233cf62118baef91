"""Accelerator executor: one upload/launch contract for every variant.

Every trial first uploads the workload into device buffers (untimed), then
launches the variant's kernel with its geometry, waits for completion and
reads the output back (timed). Buffers are allocated once per workload shape
and reused; the compiled kernel is cached only for the variant currently
being benchmarked.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import ContextManager, Dict, Iterator, Optional, Protocol, Union

import numpy as np

from clbench.accelerator import AcceleratorContext, DeviceBuffer, Kernel, load_kernel_source
from clbench.exceptions import ConfigurationError
from clbench.logger import get_logger
from clbench.variants import LaunchPolicy, VariantDescriptor, Workload
from clbench.workloads import MatMulWorkload, SumWorkload

logger = get_logger(__name__)

ExecutionOutput = Union[np.ndarray, int]


class Executor(Protocol):
    """What the harness needs from anything that can run a variant."""

    def variant_session(self, variant: VariantDescriptor) -> ContextManager[None]:
        """Context manager scoping per-variant state (compiled kernel)."""
        ...

    def upload(self, variant: VariantDescriptor, workload: Workload) -> None:
        """Copy the trial's inputs to the device; runs outside the timed region."""
        ...

    def launch(self, variant: VariantDescriptor, workload: Workload) -> ExecutionOutput:
        """Run the kernel on the uploaded inputs and return the host copy of the output."""
        ...


class AcceleratorExecutor:
    """Runs variants on an OpenCL device through an explicit context handle."""

    def __init__(self, ctx: AcceleratorContext, policy: Optional[LaunchPolicy] = None):
        self.ctx = ctx
        self.policy = policy or LaunchPolicy.from_defaults()
        self._buffers: Dict[str, DeviceBuffer] = {}
        self._sources: Dict[str, str] = {}
        self._active: Optional[tuple] = None  # (VariantDescriptor, Kernel)

    def _buffer(self, name: str, dtype, n: int) -> DeviceBuffer:
        buf = self._buffers.get(name)
        if buf is None:
            buf = self.ctx.buffer(dtype)
            self._buffers[name] = buf
        buf.resize_n(n)
        return buf

    def _uploaded(self, name: str) -> DeviceBuffer:
        buf = self._buffers.get(name)
        if buf is None or buf.mem is None:
            raise ConfigurationError(
                f"launch before upload: no device input '{name}'",
                config_key="buffer",
                config_value=name,
                reason="not uploaded",
            )
        return buf

    def _kernel(self, variant: VariantDescriptor) -> Kernel:
        if self._active is not None and self._active[0] == variant:
            return self._active[1]
        self._drop_kernel()
        if variant.program not in self._sources:
            self._sources[variant.program] = load_kernel_source(variant.program)
        kernel = self.ctx.kernel(self._sources[variant.program], variant.entry_point, variant.options(self.policy))
        kernel.compile()
        self._active = (variant, kernel)
        return kernel

    def _drop_kernel(self) -> None:
        if self._active is not None:
            self._active[1].release()
            self._active = None

    @contextmanager
    def variant_session(self, variant: VariantDescriptor) -> Iterator[None]:
        kernel = self._kernel(variant)
        logger.debug(f"{variant.label}: bound {kernel.entry_point} from {variant.program}")
        try:
            yield
        finally:
            self._drop_kernel()

    def _check_kind(self, variant: VariantDescriptor, workload: Workload) -> None:
        if isinstance(workload, MatMulWorkload) and variant.kind == "matmul":
            return
        if isinstance(workload, SumWorkload) and variant.kind == "sum":
            return
        raise ConfigurationError(
            f"variant {variant.name} ({variant.kind}) cannot run {workload.name}",
            config_key="variant",
            config_value=variant.name,
            reason="workload kind mismatch",
        )

    def upload(self, variant: VariantDescriptor, workload: Workload) -> None:
        self._check_kind(variant, workload)
        if isinstance(workload, MatMulWorkload):
            self._buffer("a", np.float32, workload.m * workload.k).write_n(workload.a)
            self._buffer("b", np.float32, workload.k * workload.n).write_n(workload.b)
        else:
            self._buffer("as", np.uint32, workload.n).write_n(workload.values)

    def launch(self, variant: VariantDescriptor, workload: Workload) -> ExecutionOutput:
        self._check_kind(variant, workload)
        if isinstance(workload, MatMulWorkload):
            return self._launch_matmul(variant, workload)
        return self._launch_sum(variant, workload)

    def execute(self, variant: VariantDescriptor, workload: Workload) -> ExecutionOutput:
        """Upload then launch: one complete trial."""
        self.upload(variant, workload)
        return self.launch(variant, workload)

    def _launch_matmul(self, variant: VariantDescriptor, workload: MatMulWorkload) -> np.ndarray:
        kernel = self._kernel(variant)
        c_gpu = self._buffer("c", np.float32, workload.m * workload.n)
        kernel.exec(
            variant.work_size(workload, self.policy),
            self._uploaded("a"), self._uploaded("b"), c_gpu,
            np.uint32(workload.m), np.uint32(workload.k), np.uint32(workload.n),
        )
        return c_gpu.read_n().reshape(workload.m, workload.n)

    def _launch_sum(self, variant: VariantDescriptor, workload: SumWorkload) -> int:
        kernel = self._kernel(variant)
        result_gpu = self._buffer("result", np.uint32, 1)
        result_gpu.write_n(np.zeros(1, dtype=np.uint32))
        kernel.exec(variant.work_size(workload, self.policy), self._uploaded("as"), np.uint32(workload.n), result_gpu)
        return int(result_gpu.read_n()[0])
