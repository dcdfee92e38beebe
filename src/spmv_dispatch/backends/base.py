"""Kernel collaborator interface.

The dispatcher drives an accelerator only through this interface, so planning
and orchestration can be tested without any device present.
"""

import itertools
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

import numpy as np
import structlog

from spmv_dispatch.errors import KernelError


@dataclass
class CompletionHandle:
    """Opaque completion signal for one enqueued batch."""

    sequence: int
    row_start: int
    event: Optional[Any] = None
    released: bool = field(default=False, compare=False)


class KernelBackend(ABC):
    """Abstract base class for SpMV kernel collaborators.

    Batches submitted to one backend execute strictly in submission order.
    A buffer's contents are only defined after ``wait`` has returned for the
    last batch that wrote it.
    """

    name = "abstract"

    def __init__(self):
        self._sequence = itertools.count()
        self.logger = structlog.get_logger().bind(backend=self.name)

    def _next_handle(self, row_start: int, event: Any = None) -> CompletionHandle:
        return CompletionHandle(sequence=next(self._sequence), row_start=row_start, event=event)

    @staticmethod
    def _check_thread_space(thread_count: int, grid_width: int, stride_table: np.ndarray) -> None:
        if grid_width < 1 or thread_count < 1 or thread_count % grid_width:
            raise KernelError(
                f"Invalid thread space: {thread_count} threads with width {grid_width}"
            )
        if len(stride_table) == 0:
            raise KernelError("Empty stride table")

    @abstractmethod
    def upload(self, array: np.ndarray) -> Any:
        """Copy a host array into a new device buffer."""
        pass

    @abstractmethod
    def execute_batch(
        self,
        nonzeros: Any,
        col_idx: Any,
        row_ptr: Any,
        x: Any,
        y_io: Any,
        row_start: int,
        grid_width: int,
        thread_count: int,
        max_rows: int,
        stride_table: np.ndarray,
    ) -> CompletionHandle:
        """Enqueue ``y_io += A * x`` for the rows one batch's thread grid covers.

        Returns:
            Handle that completes once the batch's writes to ``y_io`` are visible.

        Raises:
            KernelError: If the batch cannot be executed.
        """
        pass

    @abstractmethod
    def wait(self, handle: CompletionHandle) -> None:
        """Block until ``handle`` (and everything enqueued before it) completes."""
        pass

    @abstractmethod
    def read_back(self, buffer: Any) -> np.ndarray:
        """Blocking copy of a device buffer into host memory."""
        pass

    def release(self, handle: CompletionHandle) -> None:
        """Destroy a completion handle once its run has been read back."""
        handle.event = None
        handle.released = True
