"""Correctness checks for candidate results.

Integer reductions must match exactly and a mismatch is fatal. Floating-point
products are compared by average relative error; exceeding the tolerance
produces a failing verdict but does not interrupt the run.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from clbench.exceptions import ConfigurationError, ExactMismatchError
from clbench.models import ValidationVerdict

DEFAULT_RELATIVE_TOLERANCE = 0.01


def relative_error_average(candidate: np.ndarray, reference: np.ndarray) -> float:
    """Mean of |a-b| / max(|a|,|b|) over all elements; pairs of zeros count as 0."""
    a = np.asarray(candidate, dtype=np.float64).reshape(-1)
    b = np.asarray(reference, dtype=np.float64).reshape(-1)
    if a.shape != b.shape:
        raise ConfigurationError(
            f"candidate has {a.size} elements, reference has {b.size}",
            config_key="candidate",
            config_value=a.size,
            reason="shape mismatch",
        )
    if a.size == 0:
        return 0.0
    denom = np.maximum(np.abs(a), np.abs(b))
    nonzero = denom != 0.0
    diff = np.zeros_like(a)
    diff[nonzero] = np.abs(a[nonzero] - b[nonzero]) / denom[nonzero]
    # NaN/inf in the candidate must never pass
    diff[~np.isfinite(diff)] = np.inf
    return float(diff.sum() / a.size)


def validate_matmul(
    candidate: np.ndarray,
    reference: np.ndarray,
    tolerance: float = DEFAULT_RELATIVE_TOLERANCE,
    label: Optional[str] = None,
) -> ValidationVerdict:
    error = relative_error_average(candidate, reference)
    passed = error <= tolerance
    message = None
    if not passed:
        message = (
            f"{label or 'candidate'}: too big difference, average relative error "
            f"{error * 100.0:.4f}% exceeds {tolerance * 100.0:.2f}%"
        )
    return ValidationVerdict(passed=passed, rule="relative", error=error, tolerance=tolerance, message=message)


def check_exact_sum(label: str, expected: int, actual: int, workload: Optional[str] = None) -> ValidationVerdict:
    """Exact equality for integer sums.

    Raises:
        ExactMismatchError: immediately, on any difference
    """
    expected = int(expected)
    actual = int(actual)
    if expected != actual:
        context = f"[{workload}] " if workload else ""
        message = (
            f"{context}{label} result must be equal to the reference! "
            f"But {expected} != {actual} (difference {abs(expected - actual)})"
        )
        raise ExactMismatchError(message, label=label, expected=expected, actual=actual)
    return ValidationVerdict(passed=True, rule="exact", error=0.0)
