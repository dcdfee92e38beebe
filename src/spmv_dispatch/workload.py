"""
Workload preparation: aligned vectors and the padded CSR copy sent to the device.

Device buffers are padded to an OWORD alignment. Column indices are shifted so
that slot 0 of ``x`` is reserved (always zero) and padding never contributes.
"""

from dataclasses import dataclass
from typing import Tuple

import numpy as np
import structlog

from spmv_dispatch.csr import CsrMatrix
from spmv_dispatch.planner import round_up

logger = structlog.get_logger()

OWORD_BUF_ALIGNMENT = 4


@dataclass(frozen=True, eq=False)
class DenseVector:
    """Float32 vector padded with zeros to an alignment boundary."""

    data: np.ndarray
    length: int

    def __post_init__(self):
        if self.length > len(self.data):
            raise ValueError(f"Logical length {self.length} exceeds storage {len(self.data)}")

    @classmethod
    def padded(cls, values: np.ndarray, alignment: int = OWORD_BUF_ALIGNMENT, lead: int = 0) -> "DenseVector":
        """Place ``values`` after ``lead`` zero slots and zero-pad to ``alignment``."""
        values = np.asarray(values, dtype=np.float32)
        length = lead + len(values)
        data = np.zeros(round_up(length, alignment), dtype=np.float32)
        data[lead:length] = values
        return cls(data=data, length=length)

    @property
    def logical(self) -> np.ndarray:
        return self.data[: self.length]

    def copy(self) -> "DenseVector":
        return DenseVector(data=self.data.copy(), length=self.length)


@dataclass(frozen=True, eq=False)
class DeviceCsr:
    """Aligned CSR arrays in the layout the kernel consumes."""

    num_rows: int
    row_ptr: np.ndarray
    col_idx: np.ndarray
    values: np.ndarray


def make_vectors(csr: CsrMatrix, seed: int = 1, alignment: int = OWORD_BUF_ALIGNMENT,
                 column_offset: int = 1) -> Tuple[DenseVector, DenseVector]:
    """Seeded ``x`` and ``y`` vectors, uniform in ``[0, 1)``.

    ``x`` is drawn first, then ``y``, so the same seed always reproduces both.
    The first ``column_offset`` slots of ``x`` are zero.
    """
    rng = np.random.default_rng(seed)
    x_values = rng.random(csr.num_cols, dtype=np.float32)
    y_values = rng.random(csr.num_rows, dtype=np.float32)

    x = DenseVector.padded(x_values, alignment, lead=column_offset)
    y = DenseVector.padded(y_values, alignment)

    logger.debug("vectors_initialized", seed=seed, x_len=len(x.data), y_len=len(y.data))
    return x, y


def build_device_csr(csr: CsrMatrix, alignment: int = OWORD_BUF_ALIGNMENT, column_offset: int = 1) -> DeviceCsr:
    """Aligned copy of ``csr`` with shifted column indices.

    Row extents cover ``round_up(num_rows, alignment)`` rows; the extra rows
    are empty.
    """
    rounded_num_rows = round_up(csr.num_rows, alignment)

    row_ptr = np.full(rounded_num_rows + 1, csr.num_nonzeros, dtype=np.uint32)
    row_ptr[: csr.num_rows + 1] = csr.row_ptr

    col_idx = csr.col_idx.astype(np.uint32) + np.uint32(column_offset)
    values = csr.values.astype(np.float32, copy=True)

    for array in (row_ptr, col_idx, values):
        array.setflags(write=False)

    return DeviceCsr(num_rows=csr.num_rows, row_ptr=row_ptr, col_idx=col_idx, values=values)
