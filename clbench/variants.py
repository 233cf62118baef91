"""Strategy tables binding variant names to kernels and launch geometry.

Adding a variant means adding a row here; the runner and executor never
branch on variant names.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, Union

from clbench.accelerator import WorkSize
from clbench.defaults import BenchmarkDefaults, get_defaults
from clbench.exceptions import ConfigurationError
from clbench.workloads import MatMulWorkload, SumWorkload

Workload = Union[MatMulWorkload, SumWorkload]

MATMUL_PROGRAM = "matrix_multiplication.cl"
SUM_PROGRAM = "sum.cl"


def _ceil_div(a: int, b: int) -> int:
    return (a + b - 1) // b


@dataclass(frozen=True)
class LaunchPolicy:
    """Work-group sizes and per-item work shared by all variants of a run."""

    matmul_group_size: int = 16
    matmul_outputs_per_item: int = 4
    sum_group_size: int = 128
    sum_values_per_item: int = 64

    def __post_init__(self):
        if self.matmul_group_size <= 0 or self.matmul_outputs_per_item <= 0:
            raise ConfigurationError(
                "matmul group size and outputs per item must be positive",
                config_key="matmul_group_size",
                config_value=(self.matmul_group_size, self.matmul_outputs_per_item),
                reason="non-positive",
            )
        if self.matmul_group_size % self.matmul_outputs_per_item != 0:
            raise ConfigurationError(
                f"group size {self.matmul_group_size} is not divisible by "
                f"{self.matmul_outputs_per_item} outputs per item",
                config_key="matmul_outputs_per_item",
                config_value=self.matmul_outputs_per_item,
                reason="uneven split",
            )
        wg = self.sum_group_size
        # sum_tree halves the group on every step
        if wg <= 0 or wg & (wg - 1) != 0:
            raise ConfigurationError(
                f"sum group size must be a power of two, got {wg}",
                config_key="sum_group_size",
                config_value=wg,
                reason="not a power of two",
            )
        if self.sum_values_per_item <= 0:
            raise ConfigurationError(
                "values per work item must be positive",
                config_key="sum_values_per_item",
                config_value=self.sum_values_per_item,
                reason="non-positive",
            )

    @classmethod
    def from_defaults(cls, defaults: Optional[BenchmarkDefaults] = None) -> LaunchPolicy:
        defaults = defaults or get_defaults()
        return cls(
            matmul_group_size=defaults.matmul_group_size,
            matmul_outputs_per_item=defaults.matmul_outputs_per_item,
            sum_group_size=defaults.sum_group_size,
            sum_values_per_item=defaults.sum_values_per_item,
        )


def _matmul_tiled(workload: MatMulWorkload, policy: LaunchPolicy) -> WorkSize:
    g = policy.matmul_group_size
    return WorkSize.covering((g, g), (workload.n, workload.m))


def _matmul_many(workload: MatMulWorkload, policy: LaunchPolicy) -> WorkSize:
    # a group covers g x g outputs with g / w rows of work items
    g = policy.matmul_group_size
    rows = g // policy.matmul_outputs_per_item
    return WorkSize(
        group=(g, rows),
        global_size=(_ceil_div(workload.n, g) * g, _ceil_div(workload.m, g) * rows),
    )


def _sum_one_per_item(workload: SumWorkload, policy: LaunchPolicy) -> WorkSize:
    return WorkSize.covering((policy.sum_group_size,), (workload.n,))


def _sum_run_per_item(workload: SumWorkload, policy: LaunchPolicy) -> WorkSize:
    items = _ceil_div(workload.n, policy.sum_values_per_item)
    return WorkSize.covering((policy.sum_group_size,), (items,))


def _matmul_options(policy: LaunchPolicy) -> List[str]:
    return [
        f"-DTILE_SIZE={policy.matmul_group_size}",
        f"-DWORK_PER_THREAD={policy.matmul_outputs_per_item}",
    ]


def _sum_options(policy: LaunchPolicy) -> List[str]:
    return [
        f"-DWORKGROUP_SIZE={policy.sum_group_size}",
        f"-DVALUES_PER_WORK_ITEM={policy.sum_values_per_item}",
    ]


@dataclass(frozen=True)
class VariantDescriptor:
    """One accelerator strategy: which kernel to bind and how to launch it."""

    name: str
    label: str
    kind: str  # "matmul" or "sum"
    program: str
    entry_point: str
    geometry: Callable[[Workload, LaunchPolicy], WorkSize]
    build_options: Callable[[LaunchPolicy], List[str]]

    def work_size(self, workload: Workload, policy: LaunchPolicy) -> WorkSize:
        return self.geometry(workload, policy)

    def options(self, policy: LaunchPolicy) -> List[str]:
        return self.build_options(policy)


MATMUL_VARIANTS: Tuple[VariantDescriptor, ...] = (
    VariantDescriptor("naive", "GPU naive", "matmul", MATMUL_PROGRAM,
                      "matrix_multiplication_naive", _matmul_tiled, _matmul_options),
    VariantDescriptor("block", "GPU block", "matmul", MATMUL_PROGRAM,
                      "matrix_multiplication_block", _matmul_tiled, _matmul_options),
    VariantDescriptor("many", "GPU many", "matmul", MATMUL_PROGRAM,
                      "matrix_multiplication_many", _matmul_many, _matmul_options),
)

SUM_VARIANTS: Tuple[VariantDescriptor, ...] = (
    VariantDescriptor("naive", "GPU naive", "sum", SUM_PROGRAM,
                      "sum_naive", _sum_one_per_item, _sum_options),
    VariantDescriptor("loop", "GPU loop", "sum", SUM_PROGRAM,
                      "sum_loop", _sum_run_per_item, _sum_options),
    VariantDescriptor("loop_coalesced", "GPU loop coalesced", "sum", SUM_PROGRAM,
                      "sum_loop_coalesced", _sum_run_per_item, _sum_options),
    VariantDescriptor("local", "GPU local", "sum", SUM_PROGRAM,
                      "sum_local", _sum_one_per_item, _sum_options),
    VariantDescriptor("tree", "GPU tree", "sum", SUM_PROGRAM,
                      "sum_tree", _sum_one_per_item, _sum_options),
)


def select_variants(
    table: Sequence[VariantDescriptor], names: Optional[Iterable[str]] = None
) -> List[VariantDescriptor]:
    """Variants of ``table`` in table order, restricted to ``names`` when given."""
    if not names:
        return list(table)
    wanted = list(names)
    known = {v.name for v in table}
    unknown = [name for name in wanted if name not in known]
    if unknown:
        raise ConfigurationError(
            f"unknown variant(s): {', '.join(unknown)} (known: {', '.join(sorted(known))})",
            config_key="variant",
            config_value=unknown,
            reason="not in variant table",
        )
    return [v for v in table if v.name in wanted]
