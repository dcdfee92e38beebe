"""
PyTorch backend: runs each batch as tensor ops on a CPU or CUDA device.

On CUDA every batch is issued on one stream (in-order) and records an event;
``wait`` blocks on the event instead of synchronizing the whole device.
Row reductions use ``index_add_``, whose float atomics on CUDA make repeated
runs differ in the last bits, which is what the determinism check tolerates.
"""

from typing import Optional

import numpy as np
import torch

from spmv_dispatch.backends.base import CompletionHandle, KernelBackend
from spmv_dispatch.errors import KernelError
from spmv_dispatch.planner import thread_rows


class TorchBackend(KernelBackend):
    """SpMV batches on a torch device."""

    name = "torch"

    def __init__(self, device: Optional[str] = None):
        super().__init__()
        if device is None:
            device = "cuda" if torch.cuda.is_available() else "cpu"
        self.device = torch.device(device)

        if self.device.type == "cuda":
            if not torch.cuda.is_available():
                raise KernelError(f"CUDA device requested but not available: {device}")
            self.stream = torch.cuda.Stream(device=self.device)
        else:
            self.stream = None

        self.logger.info("torch_backend_ready", device=str(self.device), torch_version=torch.__version__)

    def upload(self, array: np.ndarray) -> torch.Tensor:
        array = np.ascontiguousarray(array)
        if array.dtype == np.uint32:
            array = array.astype(np.int64)
        return torch.from_numpy(array.copy()).to(self.device)

    def _run_batch(self, nonzeros, col_idx, row_ptr, x, y_io, rows: torch.Tensor) -> None:
        starts = row_ptr[rows]
        lengths = row_ptr[rows + 1] - starts
        total = int(lengths.sum().item())
        if total == 0:
            return

        segment = torch.repeat_interleave(torch.arange(len(rows), device=self.device), lengths)
        segment_offsets = torch.cumsum(lengths, dim=0) - lengths
        positions = torch.repeat_interleave(starts - segment_offsets, lengths) + torch.arange(
            total, device=self.device
        )

        products = nonzeros[positions] * x[col_idx[positions]]
        sums = torch.zeros(len(rows), dtype=y_io.dtype, device=self.device)
        sums.index_add_(0, segment, products)
        y_io.index_add_(0, rows, sums)

    def execute_batch(self, nonzeros, col_idx, row_ptr, x, y_io, row_start, grid_width,
                      thread_count, max_rows, stride_table) -> CompletionHandle:
        self._check_thread_space(thread_count, grid_width, stride_table)
        if max_rows > len(row_ptr) - 1 or max_rows > len(y_io):
            raise KernelError(f"max_rows {max_rows} exceeds buffer extents", row_start=row_start)

        rows = torch.from_numpy(
            thread_rows(row_start, thread_count, grid_width, stride_table, max_rows)
        )

        try:
            if self.stream is not None:
                # Uploads were issued on the default stream
                self.stream.wait_stream(torch.cuda.current_stream(self.device))
                with torch.cuda.stream(self.stream):
                    rows = rows.to(self.device, non_blocking=True)
                    self._run_batch(nonzeros, col_idx, row_ptr, x, y_io, rows)
                    event = torch.cuda.Event()
                    event.record(self.stream)
                return self._next_handle(row_start, event)

            self._run_batch(nonzeros, col_idx, row_ptr, x, y_io, rows.to(self.device))
        except RuntimeError as e:
            raise KernelError(f"SpMV batch failed: {e}", row_start=row_start) from e

        return self._next_handle(row_start)

    def wait(self, handle: CompletionHandle) -> None:
        if handle.released:
            raise KernelError("Wait on a released handle", row_start=handle.row_start)
        if handle.event is not None:
            try:
                handle.event.synchronize()
            except RuntimeError as e:
                # Asynchronous CUDA faults surface here
                raise KernelError(f"SpMV batch failed: {e}", row_start=handle.row_start) from e

    def read_back(self, buffer: torch.Tensor) -> np.ndarray:
        try:
            if self.stream is not None:
                torch.cuda.current_stream(self.device).wait_stream(self.stream)
            return buffer.detach().cpu().numpy().copy()
        except RuntimeError as e:
            raise KernelError(f"Read back failed: {e}") from e
