"""Human-readable report lines and final completion status."""

from __future__ import annotations

import sys
from typing import Optional, TextIO

from clbench.exceptions import BenchmarkError
from clbench.models import HarnessReport, ThroughputStats, TimingStats, ValidationVerdict


class ReportEmitter:
    """Writes ``<Label>: <mean>+-<std> s`` / ``<Label>: <tp> <unit>`` lines to ``out``
    and validation diagnostics to ``err``."""

    def __init__(self, out: Optional[TextIO] = None, err: Optional[TextIO] = None):
        self._out = out
        self._err = err

    @property
    def out(self) -> TextIO:
        return self._out if self._out is not None else sys.stdout

    @property
    def err(self) -> TextIO:
        return self._err if self._err is not None else sys.stderr

    def timing(self, label: str, timing: TimingStats, throughput: Optional[ThroughputStats]) -> None:
        print(f"{label}: {timing.mean_s:g}+-{timing.std_s:g} s", file=self.out)
        if throughput is not None:
            print(f"{label}: {throughput.value:g} {throughput.unit}", file=self.out)
        self.out.flush()

    def verdict(self, label: str, workload: str, verdict: ValidationVerdict) -> None:
        if verdict.rule == "relative":
            print(f"{label}: Average difference: {verdict.error * 100.0:g}%", file=self.out)
            self.out.flush()
        elif verdict.passed:
            print(f"{label}: Exact match, difference {verdict.error:g}", file=self.out)
            self.out.flush()
        if not verdict.passed:
            detail = verdict.message or f"error {verdict.error:g} exceeds {verdict.tolerance:g}"
            print(f"[{workload}] Too big difference! {detail}", file=self.err)
            self.err.flush()

    def fatal(self, exc: BenchmarkError) -> None:
        print(f"FATAL: {exc}", file=self.err)
        self.err.flush()

    def summary(self, report: HarnessReport) -> int:
        """Print failing variants (if any) and return the completion status."""
        failed = report.failed_variants()
        if failed:
            names = ", ".join(r.label for r in failed)
            print(f"[{report.workload}] validation failed for: {names}", file=self.err)
            self.err.flush()
        return report.exit_code()
