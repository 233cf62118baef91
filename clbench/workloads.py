"""Deterministic workload generation.

Both workloads are immutable: dimensions are fixed at construction and the
backing numpy arrays are flagged read-only so no stage of the harness can
mutate inputs shared between variants.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from clbench.exceptions import ConfigurationError
from clbench.logger import get_logger

logger = get_logger(__name__)

U32_MAX = int(np.iinfo(np.uint32).max)


def _check_positive(name: str, value: int) -> None:
    if int(value) <= 0:
        raise ConfigurationError(
            f"{name} must be positive, got {value}",
            config_key=name,
            config_value=value,
            reason="non-positive dimension",
        )


def _check_seed(seed: int) -> int:
    if not 0 <= int(seed) <= U32_MAX:
        raise ConfigurationError(
            f"seed must be a 32-bit unsigned integer, got {seed}",
            config_key="seed",
            config_value=seed,
            reason="out of range",
        )
    return int(seed)


def _frozen(array: np.ndarray) -> np.ndarray:
    array = np.ascontiguousarray(array)
    array.setflags(write=False)
    return array


def make_rng(seed: int) -> np.random.Generator:
    """Seeded generator; identical seeds give identical streams."""
    return np.random.Generator(np.random.PCG64(_check_seed(seed)))


@dataclass(frozen=True)
class MatMulWorkload:
    """C[M, N] = A[M, K] @ B[K, N], row-major float32."""

    m: int
    k: int
    n: int
    a: np.ndarray
    b: np.ndarray
    seed: Optional[int] = None

    def __post_init__(self):
        for name in ("m", "k", "n"):
            _check_positive(name, getattr(self, name))
        a = np.asarray(self.a, dtype=np.float32).reshape(-1)
        b = np.asarray(self.b, dtype=np.float32).reshape(-1)
        if a.size != self.m * self.k:
            raise ConfigurationError(
                f"A has {a.size} elements, expected {self.m}x{self.k}",
                config_key="a",
                config_value=a.size,
                reason="length does not match dimensions",
            )
        if b.size != self.k * self.n:
            raise ConfigurationError(
                f"B has {b.size} elements, expected {self.k}x{self.n}",
                config_key="b",
                config_value=b.size,
                reason="length does not match dimensions",
            )
        object.__setattr__(self, "a", _frozen(a.reshape(self.m, self.k)))
        object.__setattr__(self, "b", _frozen(b.reshape(self.k, self.n)))

    @property
    def name(self) -> str:
        return f"matmul M={self.m} K={self.k} N={self.n}"

    @property
    def shape(self) -> tuple:
        return (self.m, self.k, self.n)

    @property
    def flops(self) -> int:
        # one multiply and one add per inner-product term
        return 2 * self.m * self.k * self.n


@dataclass(frozen=True)
class SumWorkload:
    """Flat uint32 array whose exact sum fits in uint32."""

    values: np.ndarray
    seed: Optional[int] = None

    def __post_init__(self):
        values = np.asarray(self.values)
        if values.ndim != 1 or values.size == 0:
            raise ConfigurationError(
                "reduction input must be a non-empty flat sequence",
                config_key="values",
                config_value=values.shape,
                reason="bad shape",
            )
        if values.size and (int(values.min()) < 0 or int(values.max()) > U32_MAX):
            raise ConfigurationError(
                "reduction input must be non-negative 32-bit values",
                config_key="values",
                config_value=(int(values.min()), int(values.max())),
                reason="out of range",
            )
        total = int(values.sum(dtype=np.uint64))
        if total > U32_MAX:
            raise ConfigurationError(
                f"exact sum {total} overflows the 32-bit accumulator",
                config_key="values",
                config_value=total,
                reason="accumulator overflow",
            )
        object.__setattr__(self, "values", _frozen(values.astype(np.uint32, copy=False)))

    @property
    def n(self) -> int:
        return int(self.values.size)

    @property
    def name(self) -> str:
        return f"sum n={self.n}"

    @property
    def shape(self) -> tuple:
        return (self.n,)


def generate_matmul_workload(m: int, k: int, n: int, seed: Optional[int] = None) -> MatMulWorkload:
    """Random A and B in [0, 1). The seed defaults to M + K + N."""
    for name, value in (("m", m), ("k", k), ("n", n)):
        _check_positive(name, value)
    if seed is None:
        seed = m + k + n
    rng = make_rng(seed)
    a = rng.random(m * k, dtype=np.float32)
    b = rng.random(k * n, dtype=np.float32)
    logger.info(f"Data generated for M={m}, K={k}, N={n}")
    return MatMulWorkload(m=m, k=k, n=n, a=a, b=b, seed=seed)


def generate_sum_workload(n: int, seed: int = 42) -> SumWorkload:
    """Values drawn uniformly from [0, U32_MAX // n] so the sum cannot overflow."""
    _check_positive("n", n)
    rng = make_rng(seed)
    values = rng.integers(0, U32_MAX // n, size=n, dtype=np.uint32, endpoint=True)
    logger.info(f"Data generated for n={n}")
    return SumWorkload(values=values, seed=seed)


def matmul_workload_from_arrays(a: Sequence, b: Sequence) -> MatMulWorkload:
    """Build a workload from explicit 2-D matrices."""
    a_arr = np.asarray(a, dtype=np.float32)
    b_arr = np.asarray(b, dtype=np.float32)
    if a_arr.ndim != 2 or b_arr.ndim != 2 or a_arr.shape[1] != b_arr.shape[0]:
        raise ConfigurationError(
            f"incompatible shapes {a_arr.shape} @ {b_arr.shape}",
            config_key="shape",
            config_value=(a_arr.shape, b_arr.shape),
            reason="inner dimensions differ",
        )
    m, k = a_arr.shape
    n = b_arr.shape[1]
    return MatMulWorkload(m=m, k=k, n=n, a=a_arr, b=b_arr)


def sum_workload_from_values(values: Sequence[int], seed: Optional[int] = None) -> SumWorkload:
    return SumWorkload(values=np.asarray(values, dtype=np.int64), seed=seed)
