"""Host backend that emulates the kernel with the CPU reference reduction."""

from collections import deque
from typing import Callable, Deque, Tuple

import numpy as np

from spmv_dispatch.backends.base import CompletionHandle, KernelBackend
from spmv_dispatch.errors import KernelError
from spmv_dispatch.planner import thread_rows
from spmv_dispatch.reference import row_sums


class HostBuffer:
    """Host-side stand-in for a device buffer."""

    def __init__(self, array: np.ndarray):
        self.data = np.array(array, copy=True)
        self.pending = 0  # batches enqueued but not yet executed

    def __len__(self) -> int:
        return len(self.data)


class ReferenceBackend(KernelBackend):
    """In-order queue executed lazily on ``wait``.

    Each batch walks the thread grid exactly like the kernel would (see
    :func:`~spmv_dispatch.planner.thread_rows`) and adds the CPU row sums to
    ``y_io``. Reading a buffer that still has queued writes raises.
    """

    name = "reference"

    def __init__(self):
        super().__init__()
        self._queue: Deque[Tuple[CompletionHandle, Callable[[], None]]] = deque()

    def upload(self, array: np.ndarray) -> HostBuffer:
        return HostBuffer(array)

    def execute_batch(self, nonzeros, col_idx, row_ptr, x, y_io, row_start, grid_width,
                      thread_count, max_rows, stride_table) -> CompletionHandle:
        self._check_thread_space(thread_count, grid_width, stride_table)
        if max_rows > len(row_ptr) - 1 or max_rows > len(y_io):
            raise KernelError(f"max_rows {max_rows} exceeds buffer extents", row_start=row_start)

        rows = thread_rows(row_start, thread_count, grid_width, stride_table, max_rows)

        def run():
            sums = row_sums(row_ptr.data, col_idx.data, nonzeros.data, x.data, rows)
            y_io.data[rows] += sums
            y_io.pending -= 1

        handle = self._next_handle(row_start)
        y_io.pending += 1
        self._queue.append((handle, run))
        return handle

    def wait(self, handle: CompletionHandle) -> None:
        if handle.released:
            raise KernelError("Wait on a released handle", row_start=handle.row_start)
        while self._queue and self._queue[0][0].sequence <= handle.sequence:
            queued, run = self._queue.popleft()
            try:
                run()
            except (RuntimeError, ValueError, IndexError) as e:
                raise KernelError(f"SpMV batch failed: {e}", row_start=queued.row_start) from e

    def read_back(self, buffer: HostBuffer) -> np.ndarray:
        if buffer.pending:
            raise KernelError(f"Read back with {buffer.pending} batches still queued")
        return buffer.data.copy()
