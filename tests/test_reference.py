"""Tests for the CPU reference SpMV."""

import numpy as np
import pytest

from conftest import random_csr
from spmv_dispatch.csr import CsrMatrix
from spmv_dispatch.reference import compute_reference, row_sums


def test_identity_matrix(identity_csr):
    """Identity times x plus zero is x."""
    x = np.array([2, 3, 4, 5], dtype=np.float32)
    y = np.zeros(4, dtype=np.float32)

    result = compute_reference(identity_csr, x, y)

    np.testing.assert_array_equal(result, [2, 3, 4, 5])


def test_accumulates_into_initial(identity_csr):
    """Result is y_initial + A @ x."""
    x = np.array([2, 3, 4, 5], dtype=np.float32)
    y = np.array([1, 1, 1, 1], dtype=np.float32)

    np.testing.assert_array_equal(compute_reference(identity_csr, x, y), [3, 4, 5, 6])


def test_inputs_not_modified(identity_csr):
    """The reference is pure."""
    x = np.array([2, 3, 4, 5], dtype=np.float32)
    y = np.array([1, 1, 1, 1], dtype=np.float32)

    compute_reference(identity_csr, x, y)

    np.testing.assert_array_equal(y, [1, 1, 1, 1])
    np.testing.assert_array_equal(x, [2, 3, 4, 5])


def test_bit_identical_repeats(small_csr):
    """Two calls with identical inputs give bit-identical results."""
    rng = np.random.default_rng(3)
    x = rng.random(small_csr.num_cols, dtype=np.float32)
    y = rng.random(small_csr.num_rows, dtype=np.float32)

    first = compute_reference(small_csr, x, y)
    second = compute_reference(small_csr, x, y)

    assert first.tobytes() == second.tobytes()


def test_matches_scipy(small_csr):
    """Agrees with scipy's CSR product."""
    rng = np.random.default_rng(11)
    x = rng.random(small_csr.num_cols, dtype=np.float32)
    y = rng.random(small_csr.num_rows, dtype=np.float32)

    expected = y + small_csr.to_scipy() @ x

    np.testing.assert_allclose(compute_reference(small_csr, x, y), expected, rtol=1e-5)


def test_column_offset_reads_shifted_slot(identity_csr):
    """column_offset=1 reads x[col + 1]; x[0] is never used."""
    x = np.array([100, 2, 3, 4, 5], dtype=np.float32)
    y = np.zeros(4, dtype=np.float32)

    result = compute_reference(identity_csr, x, y, column_offset=1)

    np.testing.assert_array_equal(result, [2, 3, 4, 5])


def test_padding_passes_through(identity_csr):
    """Entries of y beyond num_rows are copied unchanged."""
    x = np.array([2, 3, 4, 5], dtype=np.float32)
    y = np.zeros(8, dtype=np.float32)

    result = compute_reference(identity_csr, x, y)

    assert len(result) == 8
    np.testing.assert_array_equal(result[4:], 0)


def test_empty_matrix_returns_initial():
    """With no rows the result equals y_initial."""
    csr = CsrMatrix.from_arrays([0], [], [], num_cols=3)
    y = np.array([0.5, 0.25, 0.0, 0.0], dtype=np.float32)

    result = compute_reference(csr, np.ones(3, dtype=np.float32), y)

    np.testing.assert_array_equal(result, y)


def test_empty_rows_contribute_nothing():
    """Rows without nonzeros keep their initial value."""
    csr = CsrMatrix.from_arrays([0, 0, 2, 2, 3], [0, 2, 1], [1.0, 2.0, 3.0], num_cols=3)
    x = np.array([1, 10, 100], dtype=np.float32)
    y = np.array([7, 0, 8, 0], dtype=np.float32)

    np.testing.assert_array_equal(compute_reference(csr, x, y), [7, 201, 8, 30])


def test_short_vectors_rejected(identity_csr):
    with pytest.raises(ValueError):
        compute_reference(identity_csr, np.ones(3, dtype=np.float32), np.zeros(4, dtype=np.float32))
    with pytest.raises(ValueError):
        compute_reference(identity_csr, np.ones(4, dtype=np.float32), np.zeros(2, dtype=np.float32))


def test_row_sums_arbitrary_row_order():
    """row_sums follows the requested row order."""
    csr = random_csr(30, 20, density=0.2, seed=5)
    x = np.arange(20, dtype=np.float32)
    rows = np.array([17, 3, 29, 0])

    sums = row_sums(csr.row_ptr, csr.col_idx, csr.values, x, rows)
    full = row_sums(csr.row_ptr, csr.col_idx, csr.values, x, np.arange(30))

    np.testing.assert_allclose(sums, full[rows], rtol=1e-6)
