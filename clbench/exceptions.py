"""Custom exception hierarchy for benchmark execution.

Fatal conditions (accelerator faults, exact-sum mismatches) are raised and
unwind out of the trial loop. Tolerance failures on floating-point results are
recorded as verdicts instead and only surface through
``HarnessReport.raise_for_failures()``.
"""

from __future__ import annotations

from typing import Any, Optional


class BenchmarkError(Exception):
    """Base exception for all benchmark-related errors."""
    pass


class AcceleratorError(BenchmarkError):
    """Raised when the OpenCL backend fails to compile, launch or transfer.

    Attributes:
        stage: Stage where the fault occurred ('compile', 'launch', 'transfer', 'context')
        kernel_name: Entry point involved, if any
        original_error: The backend exception that caused the failure
    """

    def __init__(
        self,
        message: str,
        stage: str,
        kernel_name: Optional[str] = None,
        original_error: Exception | None = None,
    ):
        super().__init__(message)
        self.stage = stage
        self.kernel_name = kernel_name
        self.original_error = original_error


class DeviceSelectionError(BenchmarkError):
    """Raised when no usable OpenCL device matches the requested selection."""

    def __init__(self, message: str, requested: Optional[int] = None):
        super().__init__(message)
        self.requested = requested


class ExactMismatchError(BenchmarkError):
    """Raised when an exact-integer result differs from the reference.

    Attributes:
        label: Variant (or baseline) whose result was checked
        expected: Reference value
        actual: Observed value
    """

    def __init__(self, message: str, label: str, expected: int, actual: int):
        super().__init__(message)
        self.label = label
        self.expected = expected
        self.actual = actual


class ToleranceExceededError(BenchmarkError):
    """Raised when deferred tolerance failures are escalated at the end of a run.

    Attributes:
        failures: Mapping of variant label to average relative error
    """

    def __init__(self, message: str, failures: dict[str, float]):
        super().__init__(message)
        self.failures = failures


class ConfigurationError(BenchmarkError):
    """Raised when benchmark configuration is invalid.

    Attributes:
        config_key: Configuration key that is invalid
        config_value: Invalid value
        reason: Reason for invalidity
    """

    def __init__(
        self,
        message: str,
        config_key: str,
        config_value: Any,
        reason: str,
    ):
        super().__init__(message)
        self.config_key = config_key
        self.config_value = config_value
        self.reason = reason
