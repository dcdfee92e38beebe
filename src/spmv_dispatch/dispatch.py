"""
Dispatch orchestrator: replays a batch plan over independent output buffers.

The dispatcher does no arithmetic. It uploads inputs once, gives every run its
own copy of the initial ``y``, enqueues one kernel call per batch, and reads
each run back after waiting on that run's last completion handle.
"""

from dataclasses import dataclass
from typing import Any, List

import numpy as np
import structlog

from spmv_dispatch.backends.base import CompletionHandle, KernelBackend
from spmv_dispatch.errors import KernelError
from spmv_dispatch.planner import BatchPlan, stride_table
from spmv_dispatch.workload import DenseVector, DeviceCsr


@dataclass
class RunResult:
    """Output vector of every run, indexed by run."""

    outputs: List[np.ndarray]
    num_rows: int

    def __len__(self) -> int:
        return len(self.outputs)

    def __getitem__(self, run: int) -> np.ndarray:
        return self.outputs[run]

    def logical(self, run: int) -> np.ndarray:
        """Run output without alignment padding."""
        return self.outputs[run][: self.num_rows]


@dataclass
class _DeviceInputs:
    nonzeros: Any
    col_idx: Any
    row_ptr: Any
    x: Any


class Dispatcher:
    """Drive ``num_iter`` SpMV runs through a kernel collaborator."""

    def __init__(self, backend: KernelBackend):
        self.backend = backend
        self.logger = structlog.get_logger().bind(backend=backend.name)

    def _upload_inputs(self, device_csr: DeviceCsr, x: DenseVector) -> _DeviceInputs:
        # Shared read-only by every run and batch
        return _DeviceInputs(
            nonzeros=self.backend.upload(device_csr.values),
            col_idx=self.backend.upload(device_csr.col_idx),
            row_ptr=self.backend.upload(device_csr.row_ptr),
            x=self.backend.upload(x.data),
        )

    def enqueue_run(self, run: int, inputs: _DeviceInputs, y_buffer: Any, plan: BatchPlan,
                    strides: np.ndarray) -> CompletionHandle:
        """Enqueue every batch of ``plan`` for one run; return the last batch's handle."""
        handle = None
        for batch in plan:
            try:
                handle = self.backend.execute_batch(
                    inputs.nonzeros,
                    inputs.col_idx,
                    inputs.row_ptr,
                    inputs.x,
                    y_buffer,
                    row_start=batch.row_start,
                    grid_width=plan.grid.grid_width,
                    thread_count=batch.thread_count,
                    max_rows=plan.num_rows,
                    stride_table=strides,
                )
            except KernelError as e:
                if e.run is None:
                    e.run = run
                if e.row_start is None:
                    e.row_start = batch.row_start
                self.logger.error(
                    "batch_failed",
                    run=run,
                    row_start=batch.row_start,
                    thread_space=plan.thread_space(batch),
                    error=str(e),
                )
                raise

        self.logger.debug("run_enqueued", run=run, batches=len(plan))
        return handle

    def run(
        self,
        device_csr: DeviceCsr,
        x: DenseVector,
        y_initial: DenseVector,
        plan: BatchPlan,
        num_iter: int,
    ) -> RunResult:
        """Run ``y = y + A * x`` ``num_iter`` times from the same initial ``y``.

        Args:
            device_csr: Aligned matrix arrays.
            x: Input vector, shared by all runs.
            y_initial: Initial output vector; each run gets its own copy.
            plan: Batch plan for ``device_csr.num_rows`` rows.
            num_iter: Number of independent runs.

        Returns:
            RunResult with one read-back vector per run.

        Raises:
            KernelError: If any batch of any run fails. No partial results.
        """
        if num_iter < 1:
            raise ValueError(f"num_iter must be positive, got {num_iter}")
        if plan.num_rows != device_csr.num_rows:
            raise ValueError(
                f"Plan covers {plan.num_rows} rows, matrix has {device_csr.num_rows}"
            )

        strides = stride_table(plan.grid)
        inputs = self._upload_inputs(device_csr, x)

        y_buffers = [self.backend.upload(y_initial.data) for _ in range(num_iter)]
        sync_events: List[CompletionHandle] = []

        for run in range(num_iter):
            sync_events.append(self.enqueue_run(run, inputs, y_buffers[run], plan, strides))

        outputs = []
        for run, (handle, buffer) in enumerate(zip(sync_events, y_buffers)):
            try:
                if handle is not None:
                    self.backend.wait(handle)
                outputs.append(self.backend.read_back(buffer))
            except KernelError as e:
                if e.run is None:
                    e.run = run
                self.logger.error("run_failed", run=run, row_start=e.row_start, error=str(e))
                raise
            if handle is not None:
                self.backend.release(handle)
            self.logger.debug("run_read_back", run=run)

        self.logger.info("dispatch_complete", runs=num_iter, batches_per_run=len(plan), num_rows=plan.num_rows)
        return RunResult(outputs=outputs, num_rows=plan.num_rows)
