"""Pydantic models for benchmark data structures.

Provides type-safe, validated data models for timing statistics, throughput,
validation verdicts and per-run reports.
"""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from clbench.exceptions import ToleranceExceededError


class TimingStats(BaseModel):
    """Timing statistics for one variant's trials (seconds)."""

    mean_s: float = Field(..., description="Mean trial time in seconds")
    std_s: float = Field(..., description="Sample standard deviation in seconds")
    median_s: float = Field(..., description="Median trial time in seconds")
    min_s: float = Field(..., description="Minimum trial time in seconds")
    max_s: float = Field(..., description="Maximum trial time in seconds")
    iterations: int = Field(..., description="Number of timed trials")
    warmup_iterations: int = Field(0, description="Number of untimed warmup calls")
    raw_times_s: Optional[List[float]] = Field(default=None, description="Raw trial durations")

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "mean_s": 0.0123,
                "std_s": 0.0004,
                "median_s": 0.0121,
                "min_s": 0.0119,
                "max_s": 0.0131,
                "iterations": 10,
                "warmup_iterations": 0,
            }
        }
    )

    @field_validator('raw_times_s', mode='before')
    @classmethod
    def validate_raw_times_s(cls, v):
        """Flatten and clean raw trial durations."""
        if v is None:
            return None
        if isinstance(v, (int, float)):
            return [float(v)]
        cleaned = [float(item) for item in v if isinstance(item, (int, float))]
        return cleaned or None


class ThroughputStats(BaseModel):
    """Throughput derived from a fixed operation count and mean latency."""

    value: float = Field(..., description="Throughput in `unit`")
    unit: str = Field(..., description="'GFlops' or 'millions/s'")
    operations_per_trial: float = Field(..., description="Operation count for one trial")

    model_config = ConfigDict(frozen=True)


class ValidationVerdict(BaseModel):
    """Outcome of comparing a candidate result with the reference."""

    passed: bool
    rule: Literal["exact", "relative"]
    error: float = Field(..., description="Average relative error, or absolute difference for exact checks")
    tolerance: float = Field(0.0, description="Largest error that still passes")
    message: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class VariantResult(BaseModel):
    """Everything recorded for one benchmarked configuration."""

    label: str
    workload: str
    entry_point: Optional[str] = Field(None, description="Kernel entry point; None for host baselines")
    timing: TimingStats
    throughput: Optional[ThroughputStats] = None
    verdict: Optional[ValidationVerdict] = None


class HarnessReport(BaseModel):
    """All variant results of one benchmarking pass."""

    workload: str
    results: List[VariantResult] = Field(default_factory=list)

    def failed_variants(self) -> List[VariantResult]:
        return [r for r in self.results if r.verdict is not None and not r.verdict.passed]

    @property
    def passed(self) -> bool:
        return not self.failed_variants()

    def exit_code(self) -> int:
        """Process completion status: non-zero if any variant failed validation."""
        return 0 if self.passed else 1

    def raise_for_failures(self) -> None:
        """Escalate deferred validation failures."""
        failed = self.failed_variants()
        if not failed:
            return
        failures = {r.label: r.verdict.error for r in failed if r.verdict is not None}
        names = ", ".join(failures)
        raise ToleranceExceededError(
            f"{self.workload}: {len(failures)} variant(s) failed validation: {names}",
            failures=failures,
        )
