"""
spmv_dispatch: batched CSR sparse matrix-vector multiply orchestration.

Partitions matrix rows into batches that fit a bounded accelerator thread
grid, replays the plan over independent output buffers through a kernel
collaborator, and verifies the results against a CPU reference.

Example:
    >>> from spmv_dispatch import load, run_check, Config
    >>>
    >>> csr = load("Protein_csr.dat")
    >>> result = run_check(csr, Config(num_iter=4))
    >>> print(result.passed, result.correctness.max_rel_error)
"""

__version__ = "0.1.0"

from spmv_dispatch.config import Config, get_default_config, set_default_config
from spmv_dispatch.csr import CsrMatrix, load, save
from spmv_dispatch.dispatch import Dispatcher, RunResult
from spmv_dispatch.errors import (
    CorruptInputError,
    IoError,
    KernelError,
    SpmvError,
    VerificationFailure,
)
from spmv_dispatch.harness import CheckResult, run_check
from spmv_dispatch.planner import Batch, BatchPlan, GridShape, plan_batches, stride_table
from spmv_dispatch.reference import compute_reference
from spmv_dispatch.verify import VerifyReport, compare

__all__ = [
    "Batch",
    "BatchPlan",
    "CheckResult",
    "Config",
    "CorruptInputError",
    "CsrMatrix",
    "Dispatcher",
    "GridShape",
    "IoError",
    "KernelError",
    "RunResult",
    "SpmvError",
    "VerificationFailure",
    "VerifyReport",
    "compare",
    "compute_reference",
    "get_default_config",
    "load",
    "plan_batches",
    "run_check",
    "save",
    "set_default_config",
    "stride_table",
]
