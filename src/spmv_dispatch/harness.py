"""
End-to-end check: seeded workload, CPU reference, batched dispatch, verification.

Equation: ``Y = Y + A * X``, run ``num_iter`` times from the same initial ``Y``.
Every run must agree with the first (determinism), and the first must agree
with the CPU reference (correctness).
"""

from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
import structlog

from spmv_dispatch.backends import KernelBackend, get_backend
from spmv_dispatch.config import Config, get_default_config
from spmv_dispatch.csr import CsrMatrix
from spmv_dispatch.dispatch import Dispatcher, RunResult
from spmv_dispatch.planner import plan_batches
from spmv_dispatch.reference import compute_reference
from spmv_dispatch.verify import VerifyReport, check_determinism, check_reference
from spmv_dispatch.workload import build_device_csr, make_vectors

logger = structlog.get_logger()


@dataclass
class CheckResult:
    """Reports from one end-to-end check."""

    reference: np.ndarray
    runs: RunResult
    determinism: List[VerifyReport] = field(default_factory=list)
    correctness: Optional[VerifyReport] = None

    @property
    def passed(self) -> bool:
        return all(r.passed for r in self.determinism) and (
            self.correctness is None or self.correctness.passed
        )

    @property
    def failures(self) -> List[VerifyReport]:
        reports = list(self.determinism)
        if self.correctness is not None:
            reports.append(self.correctness)
        return [r for r in reports if not r.passed]


def backend_from_config(config: Config) -> KernelBackend:
    if config.backend == "torch":
        return get_backend("torch", device=config.device)
    return get_backend(config.backend)


def run_check(csr: CsrMatrix, config: Optional[Config] = None,
              backend: Optional[KernelBackend] = None) -> CheckResult:
    """Run the batched SpMV check for ``csr``.

    Raises:
        KernelError: If the backend fails any batch.
    """
    config = config or get_default_config()
    backend = backend or backend_from_config(config)

    x, y = make_vectors(csr, seed=config.seed, alignment=config.alignment,
                        column_offset=config.column_offset)
    reference = compute_reference(csr, x.data, y.data, column_offset=config.column_offset)

    device_csr = build_device_csr(csr, alignment=config.alignment, column_offset=config.column_offset)
    plan = plan_batches(csr.num_rows, config.grid)

    logger.info(
        "check_started",
        num_rows=csr.num_rows,
        num_cols=csr.num_cols,
        num_nonzeros=csr.num_nonzeros,
        batches=len(plan),
        num_iter=config.num_iter,
        backend=backend.name,
    )

    runs = Dispatcher(backend).run(device_csr, x, y, plan, config.num_iter)

    result = CheckResult(
        reference=reference,
        runs=runs,
        determinism=check_determinism(runs, config.determinism_tolerance),
        correctness=check_reference(reference, runs, config.reference_tolerance),
    )
    logger.info("check_finished", passed=result.passed, failures=len(result.failures))
    return result
