"""
Result verification by maximum relative error.

``rel_error[i] = |ref[i] - cand[i]| / max(|ref[i]|, |cand[i]|)``. Entries that
are both exactly zero, or bit-identical, have zero error. Any other entry whose
relative error is not a finite number (NaN or infinite inputs) is flagged and
fails the comparison.
"""

from dataclasses import dataclass
from typing import List, Optional

import numpy as np
import structlog

from spmv_dispatch.dispatch import RunResult
from spmv_dispatch.errors import VerificationFailure

logger = structlog.get_logger()


@dataclass
class VerifyReport:
    """Outcome of comparing a candidate vector with its reference."""
    passed: bool
    tolerance: float
    max_rel_error: float
    index: Optional[int]
    reference_value: Optional[float]
    candidate_value: Optional[float]
    error_count: int
    num_mismatches: int
    num_undefined: int
    num_elements: int
    label: str = ""

    def describe(self) -> str:
        prefix = f"{self.label}: " if self.label else ""
        if self.passed:
            return f"{prefix}max rel error {self.max_rel_error:.6g} <= {self.tolerance:g}"
        if self.num_undefined:
            return (
                f"{prefix}undefined relative error at index {self.index} "
                f"(ref={self.reference_value}, res={self.candidate_value}, "
                f"{self.num_undefined} undefined entries)"
            )
        return (
            f"{prefix}max rel error {self.max_rel_error:.6g} > {self.tolerance:g} "
            f"at index {self.index} (ref={self.reference_value}, res={self.candidate_value}, "
            f"error count={self.error_count})"
        )

    def raise_for_failure(self) -> None:
        """Raise VerificationFailure if the comparison failed."""
        if not self.passed:
            raise VerificationFailure(self)


def relative_errors(reference: np.ndarray, candidate: np.ndarray) -> np.ndarray:
    """Element-wise relative error; NaN where it is undefined."""
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        diff = np.abs(reference - candidate)
        scale = np.maximum(np.abs(reference), np.abs(candidate))
        rel = diff / scale
    rel[~np.isfinite(rel)] = np.nan
    rel[(reference == 0) & (candidate == 0)] = 0
    rel[reference.view(np.uint32) == candidate.view(np.uint32)] = 0
    return rel


def compare(reference, candidate, tolerance: float, label: str = "") -> VerifyReport:
    """Compare ``candidate`` with ``reference`` by maximum relative error.

    Args:
        reference: Expected values.
        candidate: Values under test, same length as ``reference``.
        tolerance: Largest acceptable relative error (inclusive).
        label: Name used in log events and messages.

    Returns:
        VerifyReport; the worst entry is the first index reaching the maximum.
    """
    reference = np.ascontiguousarray(reference, dtype=np.float32)
    candidate = np.ascontiguousarray(candidate, dtype=np.float32)

    if reference.shape != candidate.shape:
        raise ValueError(f"Shape mismatch: reference {reference.shape}, candidate {candidate.shape}")
    if tolerance < 0:
        raise ValueError(f"tolerance must be non-negative, got {tolerance}")

    rel = relative_errors(reference, candidate)
    undefined = np.isnan(rel)
    num_undefined = int(undefined.sum())

    if num_undefined:
        index = int(np.argmax(undefined))
        max_rel_error = float("inf")
        error_count = num_undefined
        num_mismatches = num_undefined + int((rel[~undefined] > tolerance).sum())
        passed = False
    elif rel.size:
        index = int(np.argmax(rel))
        max_rel_error = float(rel[index])
        # Times the running maximum strictly increased during a left-to-right scan
        running = np.maximum.accumulate(rel)
        previous = np.concatenate(([0.0], running[:-1]))
        error_count = int((rel > previous).sum())
        num_mismatches = int((rel > tolerance).sum())
        passed = max_rel_error <= tolerance
    else:
        index, max_rel_error, error_count, num_mismatches, passed = None, 0.0, 0, 0, True

    if index is not None and max_rel_error == 0:
        index = None

    report = VerifyReport(
        passed=passed,
        tolerance=tolerance,
        max_rel_error=max_rel_error,
        index=index,
        reference_value=None if index is None else float(reference[index]),
        candidate_value=None if index is None else float(candidate[index]),
        error_count=error_count,
        num_mismatches=num_mismatches,
        num_undefined=num_undefined,
        num_elements=int(reference.size),
        label=label,
    )

    if passed:
        logger.debug("verification_passed", label=label, max_rel_error=max_rel_error)
    else:
        logger.warning(
            "verification_failed",
            label=label,
            max_rel_error=max_rel_error,
            index=report.index,
            reference_value=report.reference_value,
            candidate_value=report.candidate_value,
            error_count=error_count,
        )
    return report


def check_determinism(runs: RunResult, tolerance: float = 0.002) -> List[VerifyReport]:
    """Compare the first run against every later run."""
    baseline = runs.logical(0)
    return [
        compare(baseline, runs.logical(run), tolerance, label=f"run {run}")
        for run in range(1, len(runs))
    ]


def check_reference(reference: np.ndarray, runs: RunResult, tolerance: float = 0.02) -> VerifyReport:
    """Compare the first run against the CPU reference."""
    return compare(reference[: runs.num_rows], runs.logical(0), tolerance, label="reference")
