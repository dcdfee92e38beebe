"""CPU reference SpMV used as ground truth for accelerator runs."""

import numpy as np

from spmv_dispatch.csr import CsrMatrix


def row_sums(
    row_ptr: np.ndarray,
    col_idx: np.ndarray,
    values: np.ndarray,
    x: np.ndarray,
    rows: np.ndarray,
    column_offset: int = 0,
) -> np.ndarray:
    """Return ``sum(values[k] * x[col_idx[k] + column_offset])`` for each row in ``rows``.

    Products are float32 and each row is reduced left to right, so the result
    depends only on the inputs.
    """
    rows = np.asarray(rows, dtype=np.int64)
    sums = np.zeros(len(rows), dtype=np.float32)
    if len(rows) == 0:
        return sums

    row_ptr = np.asarray(row_ptr, dtype=np.int64)
    starts = row_ptr[rows]
    lengths = row_ptr[rows + 1] - starts
    total = int(lengths.sum())
    if total == 0:
        return sums

    # Flat nonzero positions of the selected rows, row after row
    segment_offsets = np.concatenate(([0], np.cumsum(lengths)[:-1]))
    positions = np.repeat(starts - segment_offsets, lengths) + np.arange(total)

    columns = col_idx[positions].astype(np.int64) + column_offset
    products = values[positions].astype(np.float32) * x[columns].astype(np.float32)

    nonempty = lengths > 0
    sums[nonempty] = np.add.reduceat(products, segment_offsets[nonempty])
    return sums


def compute_reference(
    csr: CsrMatrix,
    x: np.ndarray,
    y_initial: np.ndarray,
    column_offset: int = 0,
) -> np.ndarray:
    """Compute ``y_initial + A @ x`` row by row.

    Args:
        csr: Input matrix.
        x: Dense input vector; must cover ``num_cols + column_offset`` entries.
        y_initial: Initial output vector of at least ``num_rows`` entries.
            Entries past ``num_rows`` (alignment padding) are copied unchanged.
        column_offset: Added to every column index before reading ``x``.

    Returns:
        New float32 array the length of ``y_initial``. Inputs are not modified.
    """
    x = np.asarray(x, dtype=np.float32)
    y_out = np.array(y_initial, dtype=np.float32, copy=True)

    if len(y_out) < csr.num_rows:
        raise ValueError(f"y_initial has {len(y_out)} entries, matrix has {csr.num_rows} rows")
    if len(x) < csr.num_cols + column_offset:
        raise ValueError(f"x has {len(x)} entries, need {csr.num_cols + column_offset}")

    rows = np.arange(csr.num_rows)
    y_out[: csr.num_rows] += row_sums(csr.row_ptr, csr.col_idx, csr.values, x, rows, column_offset)
    return y_out
