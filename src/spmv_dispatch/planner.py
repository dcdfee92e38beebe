"""
Batch partition planner.

Splits matrix rows into batches sized to a fixed 2-D accelerator thread grid.
A full batch runs ``grid_width * grid_height_multiplier`` threads and covers
``grid_width * grid_height_multiplier * rows_per_thread`` rows; each thread
reads ``rows_per_thread`` rows spaced ``grid_width`` apart. The last batch may
need fewer grid rows.
"""

from dataclasses import dataclass
from typing import Iterator, Tuple

import numpy as np
import structlog

logger = structlog.get_logger()


def round_up(value: int, unit: int) -> int:
    """Round ``value`` up to the nearest multiple of ``unit``."""
    return -(-value // unit) * unit


@dataclass(frozen=True)
class GridShape:
    """Accelerator thread grid constants."""

    grid_width: int = 60
    grid_height_multiplier: int = 16
    rows_per_thread: int = 16

    def __post_init__(self):
        for name in ("grid_width", "grid_height_multiplier", "rows_per_thread"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")

    @property
    def batch_thread_count(self) -> int:
        return self.grid_width * self.grid_height_multiplier

    @property
    def batch_row_size(self) -> int:
        return self.batch_thread_count * self.rows_per_thread


@dataclass(frozen=True)
class Batch:
    """One enqueue: starting matrix row and number of threads launched."""

    row_start: int
    thread_count: int


@dataclass(frozen=True)
class BatchPlan:
    """Ordered, immutable sequence of batches for a given row count."""

    num_rows: int
    grid: GridShape
    batches: Tuple[Batch, ...]

    def __len__(self) -> int:
        return len(self.batches)

    def __iter__(self) -> Iterator[Batch]:
        return iter(self.batches)

    def __getitem__(self, index: int) -> Batch:
        return self.batches[index]

    def row_ranges(self) -> Iterator[Tuple[int, int]]:
        """Half-open row range ``[start, end)`` of each batch."""
        for batch in self.batches:
            yield batch.row_start, min(batch.row_start + self.grid.batch_row_size, self.num_rows)

    def thread_space(self, batch: Batch) -> Tuple[int, int]:
        """Thread grid ``(width, height)`` for ``batch``."""
        return self.grid.grid_width, batch.thread_count // self.grid.grid_width


def last_batch_thread_count(num_rows: int, grid: GridShape) -> int:
    """Threads needed for the final batch, rounded up to whole grid rows.

    Threads are counted grid row by grid row until one would start at or past
    ``num_rows``. Returns 0 for an empty matrix.
    """
    if num_rows == 0:
        return 0

    batch_row_start = (num_rows // grid.batch_row_size) * grid.batch_row_size
    if batch_row_start == num_rows:
        return grid.batch_thread_count

    count = 0
    done = False
    for k in range(grid.grid_height_multiplier):
        for j in range(grid.grid_width):
            thread_start_row = batch_row_start + k * grid.grid_width * grid.rows_per_thread + j
            if thread_start_row >= num_rows:
                done = True
                break
            count += 1
        if done:
            break

    return round_up(count, grid.grid_width)


def plan_batches(num_rows: int, grid: GridShape) -> BatchPlan:
    """Partition ``num_rows`` rows into grid-sized batches."""
    if num_rows < 0:
        raise ValueError(f"num_rows must be non-negative, got {num_rows}")

    batch_count = -(-num_rows // grid.batch_row_size)
    last_count = last_batch_thread_count(num_rows, grid)

    batches = []
    for index in range(batch_count):
        row_start = index * grid.batch_row_size
        thread_count = last_count if index == batch_count - 1 else grid.batch_thread_count
        batches.append(Batch(row_start=row_start, thread_count=thread_count))

    plan = BatchPlan(num_rows=num_rows, grid=grid, batches=tuple(batches))
    logger.debug(
        "batch_plan_built",
        num_rows=num_rows,
        batch_count=batch_count,
        batch_row_size=grid.batch_row_size,
        last_batch_thread_count=last_count,
    )
    return plan


def stride_table(grid: GridShape) -> np.ndarray:
    """Per-thread scatter offsets: ``stride[k] = k * grid_width``."""
    table = np.arange(grid.rows_per_thread, dtype=np.uint32) * np.uint32(grid.grid_width)
    table.setflags(write=False)
    return table


def thread_rows(
    row_start: int,
    thread_count: int,
    grid_width: int,
    strides: np.ndarray,
    max_rows: int,
) -> np.ndarray:
    """Matrix rows touched by a batch's thread grid, in thread order.

    Thread ``(tx, ty)`` handles ``row_start + ty * grid_width * len(strides) + tx + strides[k]``
    for every ``k``; rows at or past ``max_rows`` are skipped.
    """
    height = thread_count // grid_width
    rows_per_thread = len(strides)

    ty = np.arange(height, dtype=np.int64)[:, None, None]
    tx = np.arange(grid_width, dtype=np.int64)[None, :, None]
    offsets = np.asarray(strides, dtype=np.int64)[None, None, :]

    rows = (row_start + ty * grid_width * rows_per_thread + tx + offsets).ravel()
    return rows[rows < max_rows]
