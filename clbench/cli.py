#!/usr/bin/env python3
"""
clbench - OpenCL matrix multiplication and reduction benchmarks (Typer)

    clbench devices
    clbench matmul [DEVICE] [-m 1024 -k 1024 -n 1024] [--variant block]
    clbench sum [DEVICE] [--size 100000000] [--no-host-parallel]

DEVICE is the index printed by ``clbench devices``; without it the first GPU
is used.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import List, Optional

import typer

from clbench.accelerator import AcceleratorContext, choose_device, list_devices
from clbench.defaults import get_defaults
from clbench.exceptions import BenchmarkError
from clbench.executor import AcceleratorExecutor
from clbench.harness import BenchmarkConfig, Harness
from clbench.logger import get_logger, setup_logging
from clbench.report import ReportEmitter
from clbench.variants import MATMUL_VARIANTS, SUM_VARIANTS, LaunchPolicy, select_variants
from clbench.workloads import generate_matmul_workload, generate_sum_workload

logger = get_logger(__name__)


class LogFormat(str, Enum):
    text = "text"
    json = "json"


app = typer.Typer(
    name="clbench",
    help="Correctness-checked OpenCL kernel benchmarks",
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)


@app.callback()
def _root(
    log_level: str = typer.Option("INFO", "--log-level", help="DEBUG, INFO, WARNING or ERROR"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Also write logs to this file"),
    log_format: LogFormat = typer.Option(LogFormat.text, "--log-format", help="File log format"),
) -> None:
    setup_logging(level=log_level, log_file=log_file, log_format=log_format.value)
    logger.debug(f"Effective defaults: {get_defaults().to_dict()}")


def _run(run_pass) -> None:
    """Run a benchmarking pass and turn its outcome into the exit status."""
    emitter = ReportEmitter()
    try:
        report = run_pass(emitter)
    except BenchmarkError as exc:
        emitter.fatal(exc)
        raise typer.Exit(code=1)
    raise typer.Exit(code=emitter.summary(report))


@app.command()
def devices() -> None:
    """List OpenCL devices and their indices."""
    found = list_devices()
    if not found:
        typer.echo("No OpenCL devices found", err=True)
        raise typer.Exit(code=1)
    for info in found:
        kind = "GPU" if info.is_gpu else "CPU/other"
        typer.echo(f"Device #{info.index}: {kind}. {info.name} ({info.platform})")


@app.command()
def matmul(
    device: Optional[int] = typer.Argument(None, help="Device index (see `clbench devices`)"),
    m: int = typer.Option(get_defaults().matmul_m, "-m", help="Rows of A and C"),
    k: int = typer.Option(get_defaults().matmul_k, "-k", help="Columns of A, rows of B"),
    n: int = typer.Option(get_defaults().matmul_n, "-n", help="Columns of B and C"),
    seed: Optional[int] = typer.Option(None, "--seed", help="Generator seed (default M+K+N)"),
    iterations: int = typer.Option(get_defaults().iterations, "--iterations", help="Timed trials per variant"),
    warmup: int = typer.Option(get_defaults().warmup, "--warmup", help="Untimed calls before the trials"),
    tolerance: float = typer.Option(get_defaults().matmul_tolerance, "--tolerance", help="Max average relative error"),
    variant: Optional[List[str]] = typer.Option(None, "--variant", help="Run only these variants (repeatable)"),
    host_baseline: bool = typer.Option(True, "--host-baseline/--no-host-baseline", help="Benchmark the CPU reference"),
) -> None:
    """Benchmark the matrix multiplication variants."""

    def run_pass(emitter: ReportEmitter):
        config = BenchmarkConfig(
            iterations=iterations,
            warmup=warmup,
            tolerance=tolerance,
            host_baselines=host_baseline,
            policy=LaunchPolicy.from_defaults(),
        )
        selected = select_variants(MATMUL_VARIANTS, variant)
        workload = generate_matmul_workload(m, k, n, seed=seed)
        with AcceleratorContext(choose_device(device)) as ctx:
            harness = Harness(AcceleratorExecutor(ctx, config.policy), config=config, emitter=emitter)
            return harness.run_matmul(workload, selected)

    _run(run_pass)


@app.command("sum")
def sum_command(
    device: Optional[int] = typer.Argument(None, help="Device index (see `clbench devices`)"),
    size: int = typer.Option(get_defaults().sum_n, "--size", help="Number of values to sum"),
    seed: int = typer.Option(get_defaults().sum_seed, "--seed", help="Generator seed"),
    iterations: int = typer.Option(get_defaults().iterations, "--iterations", help="Timed trials per variant"),
    warmup: int = typer.Option(get_defaults().warmup, "--warmup", help="Untimed calls before the trials"),
    variant: Optional[List[str]] = typer.Option(None, "--variant", help="Run only these variants (repeatable)"),
    host_baseline: bool = typer.Option(True, "--host-baseline/--no-host-baseline", help="Benchmark the CPU sums"),
    host_parallel: bool = typer.Option(
        get_defaults().host_parallel, "--host-parallel/--no-host-parallel", help="Use the multi-threaded host sum"
    ),
    workers: int = typer.Option(get_defaults().host_workers, "--workers", help="Host threads (0 = all cores)"),
) -> None:
    """Benchmark the reduction variants."""

    def run_pass(emitter: ReportEmitter):
        config = BenchmarkConfig(
            iterations=iterations,
            warmup=warmup,
            host_baselines=host_baseline,
            host_parallel=host_parallel,
            host_workers=workers or None,
            policy=LaunchPolicy.from_defaults(),
        )
        selected = select_variants(SUM_VARIANTS, variant)
        workload = generate_sum_workload(size, seed=seed)
        with AcceleratorContext(choose_device(device)) as ctx:
            harness = Harness(AcceleratorExecutor(ctx, config.policy), config=config, emitter=emitter)
            return harness.run_sum(workload, selected)

    _run(run_pass)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
