"""Benchmark runner and the per-workload benchmarking pass.

One control thread runs the host baselines, then every variant strictly in
sequence, each for a fixed number of timed trials. Fatal errors (accelerator
faults, exact-sum mismatches) propagate out of the pass immediately; tolerance
failures on matrix products are recorded and decide the exit status later.
"""

from __future__ import annotations

import statistics
import time
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, List, Optional, Sequence, Tuple

from clbench.defaults import get_defaults
from clbench.exceptions import BenchmarkError, ConfigurationError
from clbench.executor import Executor
from clbench.logger import get_logger, log_benchmark_complete, log_benchmark_error, log_benchmark_start
from clbench.models import HarnessReport, ThroughputStats, TimingStats, ValidationVerdict, VariantResult
from clbench.reference import (
    ReferenceResult,
    build_matmul_reference,
    build_sum_reference,
    matmul_reference,
    parallel_sum_reference,
    sum_reference,
)
from clbench.report import ReportEmitter
from clbench.validation import check_exact_sum, validate_matmul
from clbench.variants import MATMUL_VARIANTS, SUM_VARIANTS, LaunchPolicy, VariantDescriptor
from clbench.workloads import MatMulWorkload, SumWorkload

logger = get_logger(__name__)

GFLOPS = ("GFlops", 1e9)
MILLIONS_PER_S = ("millions/s", 1e6)


def _get_default_value(attr_name: str, fallback):
    """Get default value from BenchmarkDefaults, with fallback."""
    return getattr(get_defaults(), attr_name, fallback)


@dataclass
class BenchmarkConfig:
    """Configuration for a benchmarking pass.

    Default values are loaded from BenchmarkDefaults at instance creation time,
    so ``set_defaults()`` affects every config created afterwards.
    """
    iterations: int = field(default_factory=lambda: _get_default_value("iterations", 10))
    warmup: int = field(default_factory=lambda: _get_default_value("warmup", 0))
    tolerance: float = field(default_factory=lambda: _get_default_value("matmul_tolerance", 0.01))
    host_baselines: bool = True
    host_parallel: bool = field(default_factory=lambda: _get_default_value("host_parallel", True))
    host_workers: Optional[int] = field(default_factory=lambda: _get_default_value("host_workers", 0) or None)
    policy: LaunchPolicy = field(default_factory=LaunchPolicy.from_defaults)

    def __post_init__(self):
        if self.iterations < 1:
            raise ConfigurationError(
                f"iterations must be >= 1, got {self.iterations}",
                config_key="iterations",
                config_value=self.iterations,
                reason="no trials to measure",
            )
        if self.warmup < 0:
            raise ConfigurationError(
                f"warmup must be >= 0, got {self.warmup}",
                config_key="warmup",
                config_value=self.warmup,
                reason="negative",
            )
        if not 0.0 <= self.tolerance < 1.0:
            raise ConfigurationError(
                f"tolerance must be in [0, 1), got {self.tolerance}",
                config_key="tolerance",
                config_value=self.tolerance,
                reason="out of range",
            )
        if self.host_workers is not None and self.host_workers < 1:
            raise ConfigurationError(
                f"host_workers must be >= 1, got {self.host_workers}",
                config_key="host_workers",
                config_value=self.host_workers,
                reason="no host threads",
            )


def compute_timing_stats(times_s: Sequence[float], warmup: int = 0) -> TimingStats:
    """Mean, sample standard deviation, median and extremes of trial durations."""
    if not times_s:
        raise ValueError("No timing data collected")
    samples = [float(t) for t in times_s]
    return TimingStats(
        mean_s=statistics.mean(samples),
        std_s=statistics.stdev(samples) if len(samples) > 1 else 0.0,
        median_s=statistics.median(samples),
        min_s=min(samples),
        max_s=max(samples),
        iterations=len(samples),
        warmup_iterations=warmup,
        raw_times_s=samples,
    )


def compute_throughput(timing: TimingStats, operations: float, unit: Tuple[str, float]) -> Optional[ThroughputStats]:
    """Operations per trial divided by mean latency, in ``unit``."""
    if timing.mean_s <= 0:
        return None
    name, scale = unit
    return ThroughputStats(
        value=operations / scale / timing.mean_s,
        unit=name,
        operations_per_trial=float(operations),
    )


class BenchmarkRunner:
    """Times repeated trials of a single callable."""

    def __init__(self, config: BenchmarkConfig, clock: Callable[[], float] = time.perf_counter):
        self.config = config
        self._clock = clock

    def time_trials(
        self,
        fn: Callable[[], Any],
        on_trial: Optional[Callable[[Any], Any]] = None,
        setup: Optional[Callable[[], Any]] = None,
    ) -> Tuple[TimingStats, Any]:
        """Run ``fn`` for the configured trials; return stats and the last output.

        ``setup`` runs before every call (warmup included) and ``on_trial`` sees
        every output; both stay outside the timed region. An exception from
        either aborts the remaining trials.
        """
        output = None
        for _ in range(self.config.warmup):
            if setup is not None:
                setup()
            output = fn()
            if on_trial is not None:
                on_trial(output)

        times_s: List[float] = []
        for _ in range(self.config.iterations):
            if setup is not None:
                setup()
            start = self._clock()
            output = fn()
            times_s.append(self._clock() - start)
            if on_trial is not None:
                on_trial(output)
        return compute_timing_stats(times_s, self.config.warmup), output


class Harness:
    """Runs host baselines and accelerator variants for one workload at a time."""

    def __init__(
        self,
        executor: Executor,
        config: Optional[BenchmarkConfig] = None,
        emitter: Optional[ReportEmitter] = None,
        runner: Optional[BenchmarkRunner] = None,
    ):
        self.executor = executor
        self.config = config or BenchmarkConfig()
        self.emitter = emitter or ReportEmitter()
        self.runner = runner or BenchmarkRunner(self.config)

    def _record(
        self,
        report: HarnessReport,
        label: str,
        entry_point: Optional[str],
        timing: TimingStats,
        throughput: Optional[ThroughputStats],
        verdict: Optional[ValidationVerdict],
    ) -> VariantResult:
        result = VariantResult(
            label=label,
            workload=report.workload,
            entry_point=entry_point,
            timing=timing,
            throughput=throughput,
            verdict=verdict,
        )
        report.results.append(result)
        self.emitter.timing(label, timing, throughput)
        if verdict is not None:
            self.emitter.verdict(label, report.workload, verdict)
        if verdict is not None and not verdict.passed:
            log_benchmark_error(logger, label, verdict.message or "validation failed", report.workload)
        else:
            log_benchmark_complete(logger, label, timing.mean_s, report.workload)
        return result

    def _time_variant(
        self,
        variant: VariantDescriptor,
        workload,
        on_trial: Optional[Callable[[Any], Any]] = None,
    ) -> Tuple[TimingStats, Any]:
        log_benchmark_start(logger, variant.label, workload.name)
        try:
            with self.executor.variant_session(variant):
                return self.runner.time_trials(
                    partial(self.executor.launch, variant, workload),
                    on_trial=on_trial,
                    setup=partial(self.executor.upload, variant, workload),
                )
        except BenchmarkError as exc:
            log_benchmark_error(logger, variant.label, str(exc), workload.name)
            raise

    def run_matmul(
        self,
        workload: MatMulWorkload,
        variants: Sequence[VariantDescriptor] = MATMUL_VARIANTS,
    ) -> HarnessReport:
        report = HarnessReport(workload=workload.name)
        if self.config.host_baselines:
            log_benchmark_start(logger, "CPU", workload.name)
            timing, product = self.runner.time_trials(partial(matmul_reference, workload))
            self._record(report, "CPU", None, timing, compute_throughput(timing, workload.flops, GFLOPS), None)
            reference = ReferenceResult(workload=workload.name, value=product, method="sequential")
        else:
            reference = build_matmul_reference(workload)

        for variant in variants:
            timing, output = self._time_variant(variant, workload)
            verdict = validate_matmul(output, reference.value, self.config.tolerance, label=variant.label)
            self._record(
                report,
                variant.label,
                variant.entry_point,
                timing,
                compute_throughput(timing, workload.flops, GFLOPS),
                verdict,
            )
        return report

    def run_sum(
        self,
        workload: SumWorkload,
        variants: Sequence[VariantDescriptor] = SUM_VARIANTS,
    ) -> HarnessReport:
        report = HarnessReport(workload=workload.name)
        reference = build_sum_reference(
            workload, host_parallel=self.config.host_parallel, workers=self.config.host_workers
        )
        expected = int(reference.value)

        def exact(label: str) -> Callable[[Any], ValidationVerdict]:
            return partial(check_exact_sum, label, expected, workload=workload.name)

        baselines = []
        if self.config.host_baselines:
            baselines.append(("CPU", partial(sum_reference, workload)))
            if self.config.host_parallel:
                baselines.append(("CPU OMP", partial(parallel_sum_reference, workload, self.config.host_workers)))
        for label, fn in baselines:
            log_benchmark_start(logger, label, workload.name)
            timing, _ = self.runner.time_trials(fn, on_trial=exact(label))
            verdict = ValidationVerdict(passed=True, rule="exact", error=0.0)
            self._record(report, label, None, timing, compute_throughput(timing, workload.n, MILLIONS_PER_S), verdict)

        for variant in variants:
            timing, output = self._time_variant(variant, workload, on_trial=exact(variant.label))
            verdict = check_exact_sum(variant.label, expected, output, workload=workload.name)
            self._record(
                report,
                variant.label,
                variant.entry_point,
                timing,
                compute_throughput(timing, workload.n, MILLIONS_PER_S),
                verdict,
            )
        return report
