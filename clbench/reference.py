"""Host reference implementations.

The reference result for a workload is computed once and shared read-only by
every variant's validation. The host-parallel reduction is only trusted after
it has been checked against the sequential one.
"""

from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Union

import numpy as np

from clbench.logger import get_logger
from clbench.validation import check_exact_sum
from clbench.workloads import MatMulWorkload, SumWorkload

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReferenceResult:
    """Trusted host answer for one workload."""

    workload: str
    value: Union[int, np.ndarray]
    method: str

    def __post_init__(self):
        if isinstance(self.value, np.ndarray):
            frozen = np.array(self.value, copy=True)
            frozen.setflags(write=False)
            object.__setattr__(self, "value", frozen)


def matmul_reference(workload: MatMulWorkload) -> np.ndarray:
    """Sequential product with a float32 accumulator per output element.

    Every output element accumulates its inner-product terms one by one in
    float32, in increasing k order; the k loop is shared by all elements.
    """
    a = workload.a
    b = workload.b
    out = np.zeros((workload.m, workload.n), dtype=np.float32)
    for k in range(workload.k):
        out += a[:, k:k + 1] * b[k]
    return out


def sum_reference(workload: SumWorkload) -> int:
    """Single sequential accumulation in uint32."""
    return int(np.add.reduce(workload.values, dtype=np.uint32))


def _chunk_sum(chunk: np.ndarray) -> int:
    return int(chunk.sum(dtype=np.uint64))


def parallel_sum_reference(workload: SumWorkload, workers: Optional[int] = None) -> int:
    """Fork-join sum: each worker owns one contiguous chunk, partials combined after join."""
    workers = workers or os.cpu_count() or 1
    chunks = np.array_split(workload.values, min(workers, workload.n))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        partials: List[int] = list(pool.map(_chunk_sum, chunks))
    return sum(partials) & 0xFFFFFFFF


def build_matmul_reference(workload: MatMulWorkload) -> ReferenceResult:
    return ReferenceResult(workload=workload.name, value=matmul_reference(workload), method="sequential")


def build_sum_reference(workload: SumWorkload, host_parallel: bool = True, workers: Optional[int] = None) -> ReferenceResult:
    """Sequential sum, cross-checked by the host-parallel sum when enabled.

    Raises:
        ExactMismatchError: if the host-parallel sum disagrees with the sequential one
    """
    expected = sum_reference(workload)
    if host_parallel:
        actual = parallel_sum_reference(workload, workers=workers)
        check_exact_sum("CPU OMP", expected, actual, workload=workload.name)
        logger.debug(f"host-parallel sum agrees with sequential sum ({expected})")
    return ReferenceResult(workload=workload.name, value=expected, method="sequential")
