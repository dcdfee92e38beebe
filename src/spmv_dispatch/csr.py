"""
Compressed sparse row matrix model and its binary file format.

File layout (native little-endian, no header magic):

    u32 num_cols
    u32 num_rows
    u32 num_nonzeros
    u32[num_nonzeros]  col_idx
    u32[num_rows+1]    row_ptr
    f32[num_nonzeros]  values
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Union

import numpy as np
import structlog
from scipy import sparse

from spmv_dispatch.errors import CorruptInputError, IoError

logger = structlog.get_logger()

INDEX_DTYPE = np.dtype("<u4")
VALUE_DTYPE = np.dtype("<f4")


@dataclass(frozen=True, eq=False)
class CsrMatrix:
    """Immutable CSR matrix: row extents, column indices and nonzero values."""

    num_rows: int
    num_cols: int
    num_nonzeros: int
    row_ptr: np.ndarray
    col_idx: np.ndarray
    values: np.ndarray

    def __post_init__(self):
        # Own read-only copies so callers cannot mutate a loaded matrix
        for name, dtype in (("row_ptr", np.uint32), ("col_idx", np.uint32), ("values", np.float32)):
            array = np.array(getattr(self, name), dtype=dtype, copy=True)
            array.setflags(write=False)
            object.__setattr__(self, name, array)

    @classmethod
    def from_arrays(cls, row_ptr, col_idx, values, num_cols: int) -> "CsrMatrix":
        row_ptr = np.asarray(row_ptr)
        return cls(
            num_rows=len(row_ptr) - 1,
            num_cols=int(num_cols),
            num_nonzeros=len(values),
            row_ptr=row_ptr,
            col_idx=col_idx,
            values=values,
        )

    @classmethod
    def from_scipy(cls, matrix: sparse.spmatrix) -> "CsrMatrix":
        """Build from any scipy sparse matrix (converted to CSR)."""
        csr = sparse.csr_matrix(matrix)
        csr.sort_indices()
        return cls.from_arrays(csr.indptr, csr.indices, csr.data, num_cols=csr.shape[1])

    def to_scipy(self) -> sparse.csr_matrix:
        return sparse.csr_matrix(
            (self.values, self.col_idx, self.row_ptr),
            shape=(self.num_rows, self.num_cols),
        )

    def row_lengths(self) -> np.ndarray:
        """Number of nonzeros in each row."""
        return np.diff(self.row_ptr.astype(np.int64))

    def validate(self, source: str = "<memory>") -> None:
        """Check CSR structural invariants.

        Raises:
            CorruptInputError: If any invariant does not hold.
        """
        if len(self.row_ptr) != self.num_rows + 1:
            raise CorruptInputError(source, "row_ptr length", self.num_rows + 1, len(self.row_ptr))
        if len(self.col_idx) != self.num_nonzeros:
            raise CorruptInputError(source, "col_idx length", self.num_nonzeros, len(self.col_idx))
        if len(self.values) != self.num_nonzeros:
            raise CorruptInputError(source, "values length", self.num_nonzeros, len(self.values))
        if self.row_ptr[0] != 0:
            raise CorruptInputError(source, "row_ptr[0]", 0, int(self.row_ptr[0]))
        if self.row_ptr[-1] != self.num_nonzeros:
            raise CorruptInputError(source, "row_ptr[num_rows]", self.num_nonzeros, int(self.row_ptr[-1]))
        if np.any(self.row_lengths() < 0):
            raise CorruptInputError(source, "row_ptr ordering")
        if self.num_nonzeros and int(self.col_idx.max()) >= self.num_cols:
            raise CorruptInputError(source, "column index")

    def __repr__(self) -> str:
        return (
            f"CsrMatrix({self.num_rows}x{self.num_cols}, "
            f"nnz={self.num_nonzeros})"
        )


def _read(f, dtype: np.dtype, count: int, path: str, field: str) -> np.ndarray:
    # Check the declared size against the file before fromfile allocates it
    available = os.fstat(f.fileno()).st_size - f.tell()
    if count * dtype.itemsize > available:
        raise CorruptInputError(path, field, count, max(available, 0) // dtype.itemsize)
    data = np.fromfile(f, dtype=dtype, count=count)
    if data.size != count:
        raise CorruptInputError(path, field, count, int(data.size))
    return data


def load(path: Union[str, Path]) -> CsrMatrix:
    """Read a CSR matrix from a binary file.

    Args:
        path: File in the layout described in the module docstring.

    Returns:
        Validated, read-only CsrMatrix.

    Raises:
        IoError: If the file cannot be opened.
        CorruptInputError: If any section is shorter than its declared size,
            or the loaded arrays violate CSR invariants.
    """
    path = str(path)
    try:
        f = open(path, "rb")
    except OSError as e:
        raise IoError(path, e.strerror or str(e)) from e

    with f:
        num_cols = int(_read(f, INDEX_DTYPE, 1, path, "num_cols")[0])
        num_rows = int(_read(f, INDEX_DTYPE, 1, path, "num_rows")[0])
        num_nonzeros = int(_read(f, INDEX_DTYPE, 1, path, "num_nonzeros")[0])
        col_idx = _read(f, INDEX_DTYPE, num_nonzeros, path, "column indices")
        row_ptr = _read(f, INDEX_DTYPE, num_rows + 1, path, "extent of rows")
        values = _read(f, VALUE_DTYPE, num_nonzeros, path, "non-zeros")

    csr = CsrMatrix(
        num_rows=num_rows,
        num_cols=num_cols,
        num_nonzeros=num_nonzeros,
        row_ptr=row_ptr,
        col_idx=col_idx,
        values=values,
    )
    csr.validate(path)

    logger.info("csr_loaded", path=path, num_rows=num_rows, num_cols=num_cols, num_nonzeros=num_nonzeros)
    return csr


def save(csr: CsrMatrix, path: Union[str, Path]) -> None:
    """Write a CSR matrix in the layout read by :func:`load`."""
    header = np.array([csr.num_cols, csr.num_rows, csr.num_nonzeros], dtype=INDEX_DTYPE)
    with open(path, "wb") as f:
        header.tofile(f)
        csr.col_idx.astype(INDEX_DTYPE).tofile(f)
        csr.row_ptr.astype(INDEX_DTYPE).tofile(f)
        csr.values.astype(VALUE_DTYPE).tofile(f)
