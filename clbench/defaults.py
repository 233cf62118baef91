"""Centralized default values for benchmark configuration.

This module provides a single source of truth for the default values used by
the harness, the variant geometry policies and the CLI. Values can be
overridden per run by passing them to ``BenchmarkConfig`` or via CLI flags.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass


@dataclass
class BenchmarkDefaults:
    """Centralized default values for benchmark configuration.

    All defaults can be overridden by passing values directly to BenchmarkConfig
    or via CLI flags (e.g., --iterations, --warmup, -m/-k/-n).
    """

    # Execution defaults
    iterations: int = 10
    warmup: int = 0

    # Matrix multiplication workload
    matmul_m: int = 1024
    matmul_k: int = 1024
    matmul_n: int = 1024
    matmul_tolerance: float = 0.01

    # Reduction workload
    sum_n: int = 100 * 1000 * 1000
    sum_seed: int = 42
    host_parallel: bool = True
    host_workers: int = 0  # 0 means os.cpu_count()

    # Launch geometry
    matmul_group_size: int = 16
    matmul_outputs_per_item: int = 4
    sum_group_size: int = 128
    sum_values_per_item: int = 64

    @classmethod
    def from_env(cls) -> BenchmarkDefaults:
        """Create BenchmarkDefaults with default values.

        Environment variables are not consulted. Use CLI flags instead.
        """
        return cls()

    def to_dict(self) -> dict:
        """Convert defaults to dictionary."""
        return asdict(self)


# Global instance - can be overridden for testing or custom configurations
_defaults = BenchmarkDefaults.from_env()


def get_defaults() -> BenchmarkDefaults:
    """Get the global BenchmarkDefaults instance."""
    return _defaults


def set_defaults(defaults: BenchmarkDefaults) -> None:
    """Set the global BenchmarkDefaults instance (useful for testing)."""
    global _defaults
    _defaults = defaults
