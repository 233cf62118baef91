"""Tests for the trial runner and the per-workload benchmarking pass."""

import io

import numpy as np
import pytest

from clbench.defaults import BenchmarkDefaults, get_defaults, set_defaults
from clbench.exceptions import AcceleratorError, ConfigurationError, ExactMismatchError, ToleranceExceededError
from clbench.harness import (
    GFLOPS,
    MILLIONS_PER_S,
    BenchmarkConfig,
    BenchmarkRunner,
    Harness,
    compute_throughput,
    compute_timing_stats,
)
from clbench.report import ReportEmitter
from clbench.variants import SUM_VARIANTS, select_variants
from clbench.workloads import generate_matmul_workload, matmul_workload_from_arrays, sum_workload_from_values


def _harness(executor, clock, **config):
    out, err = io.StringIO(), io.StringIO()
    cfg = BenchmarkConfig(**config)
    harness = Harness(
        executor,
        config=cfg,
        emitter=ReportEmitter(out=out, err=err),
        runner=BenchmarkRunner(cfg, clock=clock),
    )
    return harness, out, err


class TestBenchmarkConfig:

    def setup_method(self):
        self._original_defaults = get_defaults()

    def teardown_method(self):
        set_defaults(self._original_defaults)

    def test_uses_defaults(self):
        config = BenchmarkConfig()
        assert config.iterations == 10
        assert config.warmup == 0
        assert config.tolerance == 0.01
        assert config.host_workers is None

    def test_set_defaults_applies_to_new_configs(self):
        set_defaults(BenchmarkDefaults(iterations=3, host_workers=2))
        config = BenchmarkConfig()
        assert config.iterations == 3
        assert config.host_workers == 2

    @pytest.mark.parametrize("kwargs", [{"iterations": 0}, {"warmup": -1}, {"tolerance": 1.5}])
    def test_invalid_values(self, kwargs):
        with pytest.raises(ConfigurationError):
            BenchmarkConfig(**kwargs)


class TestStats:

    def test_constant_durations(self):
        stats = compute_timing_stats([0.25] * 4)
        assert stats.mean_s == pytest.approx(0.25)
        assert stats.std_s == pytest.approx(0.0)
        assert stats.iterations == 4

    def test_single_sample_has_zero_std(self):
        assert compute_timing_stats([1.0]).std_s == 0.0

    def test_empty_rejected(self):
        with pytest.raises(ValueError):
            compute_timing_stats([])

    def test_throughput(self):
        stats = compute_timing_stats([0.5, 0.5])
        tp = compute_throughput(stats, 2e9, GFLOPS)
        assert tp.unit == "GFlops"
        assert tp.value == pytest.approx(4.0)

    def test_zero_latency_has_no_throughput(self):
        assert compute_throughput(compute_timing_stats([0.0]), 100, MILLIONS_PER_S) is None


class TestRunner:

    def test_mean_is_total_over_iterations(self, fake_clock):
        runner = BenchmarkRunner(BenchmarkConfig(iterations=4, warmup=2), clock=fake_clock)
        calls = []
        stats, output = runner.time_trials(lambda: calls.append(1) or len(calls))
        assert len(calls) == 6
        assert output == 6
        assert stats.iterations == 4
        assert stats.warmup_iterations == 2
        assert stats.mean_s == pytest.approx(fake_clock.step)
        assert stats.std_s == pytest.approx(0.0)

    def test_on_trial_sees_every_output(self, fake_clock):
        runner = BenchmarkRunner(BenchmarkConfig(iterations=3, warmup=1), clock=fake_clock)
        seen = []
        runner.time_trials(lambda: 7, on_trial=seen.append)
        assert seen == [7, 7, 7, 7]

    def test_on_trial_failure_stops_trials(self, fake_clock):
        runner = BenchmarkRunner(BenchmarkConfig(iterations=5), clock=fake_clock)
        calls = []

        def check(value):
            if value == 2:
                raise ExactMismatchError("bad", label="x", expected=1, actual=2)

        with pytest.raises(ExactMismatchError):
            runner.time_trials(lambda: calls.append(1) or len(calls), on_trial=check)
        assert len(calls) == 2


class TestMatMulPass:

    def test_two_by_two_all_pass(self, fake_executor, fake_clock):
        harness, out, _ = _harness(fake_executor, fake_clock, iterations=2)
        workload = matmul_workload_from_arrays([[1, 2], [3, 4]], [[5, 6], [7, 8]])
        report = harness.run_matmul(workload)
        assert [r.label for r in report.results] == ["CPU", "GPU naive", "GPU block", "GPU many"]
        assert report.exit_code() == 0
        assert report.results[0].verdict is None
        assert all(r.verdict.error == 0.0 for r in report.results[1:])
        lines = out.getvalue().splitlines()
        assert "CPU: 0.5+-0 s" in lines
        assert "GPU block: Average difference: 0%" in lines

    def test_tolerance_failure_is_recorded_not_raised(self, make_executor, fake_clock):
        executor = make_executor(corrupt={"block": 0.5})
        harness, _, err = _harness(executor, fake_clock, iterations=1)
        report = harness.run_matmul(generate_matmul_workload(8, 8, 8))
        # later variants still run
        assert executor.sessions == ["naive", "block", "many"]
        assert [r.label for r in report.failed_variants()] == ["GPU block"]
        assert report.exit_code() == 1
        assert "Too big difference!" in err.getvalue()
        with pytest.raises(ToleranceExceededError) as exc_info:
            report.raise_for_failures()
        assert list(exc_info.value.failures) == ["GPU block"]

    def test_without_host_baseline(self, fake_executor, fake_clock):
        harness, _, _ = _harness(fake_executor, fake_clock, iterations=1, host_baselines=False)
        report = harness.run_matmul(generate_matmul_workload(4, 4, 4))
        assert report.results[0].label == "GPU naive"

    def test_gflops_from_flop_count(self, fake_executor, fake_clock):
        harness, _, _ = _harness(fake_executor, fake_clock, iterations=3)
        workload = generate_matmul_workload(4, 4, 4)
        report = harness.run_matmul(workload)
        tp = report.results[1].throughput
        assert tp.operations_per_trial == 2 * 4 * 4 * 4
        assert tp.value == pytest.approx(128 / 1e9 / fake_clock.step)


class TestSumPass:

    def test_all_variants_agree(self, fake_executor, fake_clock):
        harness, out, _ = _harness(fake_executor, fake_clock, iterations=2, host_workers=2)
        report = harness.run_sum(sum_workload_from_values([1, 2, 3, 4, 5]))
        assert [r.label for r in report.results] == [
            "CPU", "CPU OMP", "GPU naive", "GPU loop", "GPU loop coalesced", "GPU local", "GPU tree",
        ]
        assert report.passed
        assert all(r.verdict.rule == "exact" for r in report.results)
        assert "GPU tree: 1e-05 millions/s" in out.getvalue().splitlines()
        assert "GPU tree: Exact match, difference 0" in out.getvalue().splitlines()

    def test_no_parallel_baseline(self, fake_executor, fake_clock):
        harness, _, _ = _harness(fake_executor, fake_clock, iterations=1, host_parallel=False)
        report = harness.run_sum(sum_workload_from_values([1, 2]))
        assert "CPU OMP" not in [r.label for r in report.results]

    def test_mismatch_aborts_pass(self, make_executor, fake_clock):
        executor = make_executor(corrupt={"loop": 1})
        harness, _, _ = _harness(executor, fake_clock, iterations=3)
        with pytest.raises(ExactMismatchError) as exc_info:
            harness.run_sum(sum_workload_from_values([1, 2, 3, 4, 5]))
        assert exc_info.value.label == "GPU loop"
        assert (exc_info.value.expected, exc_info.value.actual) == (15, 16)
        # first trial fails, nothing after it runs
        assert executor.calls.count("loop") == 1
        assert "loop_coalesced" not in executor.sessions
        assert executor.active is None

    def test_variant_filter(self, fake_executor, fake_clock):
        harness, _, _ = _harness(fake_executor, fake_clock, iterations=1, host_baselines=False)
        variants = select_variants(SUM_VARIANTS, ["tree"])
        report = harness.run_sum(sum_workload_from_values(np.arange(100)), variants)
        assert [r.entry_point for r in report.results] == ["sum_tree"]


class TestTimedRegion:

    def test_uploads_are_not_timed(self, make_executor, fake_clock):
        executor = make_executor(clock=fake_clock, upload_s=10.0)
        harness, _, _ = _harness(executor, fake_clock, iterations=3, warmup=1, host_baselines=False)
        report = harness.run_sum(sum_workload_from_values([1, 2, 3, 4, 5]), select_variants(SUM_VARIANTS, ["naive"]))
        timing = report.results[0].timing
        assert timing.mean_s == pytest.approx(fake_clock.step)
        assert timing.max_s < executor.upload_s
        # every trial, warmup included, re-uploads its inputs
        assert executor.uploads == ["naive"] * 4
        assert executor.calls == ["naive"] * 4

    def test_matmul_uploads_are_not_timed(self, make_executor, fake_clock):
        executor = make_executor(clock=fake_clock, upload_s=10.0)
        harness, _, _ = _harness(executor, fake_clock, iterations=2, host_baselines=False)
        report = harness.run_matmul(generate_matmul_workload(4, 4, 4))
        assert all(r.timing.mean_s == pytest.approx(fake_clock.step) for r in report.results)

    def test_setup_runs_before_every_trial(self, fake_clock):
        runner = BenchmarkRunner(BenchmarkConfig(iterations=3, warmup=2), clock=fake_clock)
        events = []
        runner.time_trials(lambda: events.append("run"), setup=lambda: events.append("setup"))
        assert events == ["setup", "run"] * 5


class TestAcceleratorFaults:

    def test_fault_unwinds_matmul_pass(self, make_executor, fake_clock):
        executor = make_executor(faults={"block"})
        harness, out, _ = _harness(executor, fake_clock, iterations=3)
        with pytest.raises(AcceleratorError) as exc_info:
            harness.run_matmul(generate_matmul_workload(4, 4, 4))
        assert exc_info.value.stage == "launch"
        assert exc_info.value.kernel_name == "matrix_multiplication_block"
        # first failing trial stops the variant, later variants never start
        assert executor.calls.count("block") == 1
        assert executor.sessions == ["naive", "block"]
        assert executor.active is None
        assert "GPU block:" not in out.getvalue()

    def test_fault_unwinds_sum_pass(self, make_executor, fake_clock):
        executor = make_executor(faults={"naive"})
        harness, _, _ = _harness(executor, fake_clock, iterations=2, host_parallel=False)
        with pytest.raises(AcceleratorError):
            harness.run_sum(sum_workload_from_values([1, 2, 3]))
        assert executor.sessions == ["naive"]
        assert executor.active is None


class TestHostWorkers:

    @pytest.mark.parametrize("workers", [0, -1])
    def test_rejects_non_positive(self, workers):
        with pytest.raises(ConfigurationError) as exc_info:
            BenchmarkConfig(host_workers=workers)
        assert exc_info.value.config_key == "host_workers"

    def test_none_means_all_cores(self):
        assert BenchmarkConfig(host_workers=None).host_workers is None
