"""Exception hierarchy for loading, dispatching and verifying SpMV runs."""

from typing import Optional


class SpmvError(Exception):
    """Base exception for spmv_dispatch errors."""
    pass


class IoError(SpmvError):
    """Raised when a CSR file cannot be opened."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Error opening file {path}: {reason}")


class CorruptInputError(SpmvError):
    """Raised when a CSR file is short or structurally invalid."""

    def __init__(self, path: str, field: str, expected: Optional[int] = None, actual: Optional[int] = None):
        self.path = path
        self.field = field
        self.expected = expected
        self.actual = actual
        if expected is None:
            message = f"Invalid {field} in {path}"
        else:
            message = f"Error reading {field} from {path}: expected {expected}, got {actual}"
        super().__init__(message)


class KernelError(SpmvError):
    """Raised when the kernel collaborator fails to execute a batch.

    Always fatal: a missing batch leaves its rows untouched, which cannot be
    told apart from rows with no nonzeros.
    """

    def __init__(self, message: str, run: Optional[int] = None, row_start: Optional[int] = None):
        self.run = run
        self.row_start = row_start
        super().__init__(message)


class VerificationFailure(SpmvError):
    """Raised when a candidate vector differs from its reference beyond tolerance."""

    def __init__(self, report):
        self.report = report
        super().__init__(report.describe())
