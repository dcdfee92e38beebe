from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest
from scipy import sparse

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from spmv_dispatch.csr import CsrMatrix, save  # noqa: E402
from spmv_dispatch.planner import GridShape  # noqa: E402


@pytest.fixture
def identity_csr() -> CsrMatrix:
    """4x4 identity matrix."""
    return CsrMatrix.from_arrays(
        row_ptr=[0, 1, 2, 3, 4],
        col_idx=[0, 1, 2, 3],
        values=[1.0, 1.0, 1.0, 1.0],
        num_cols=4,
    )


def random_csr(num_rows: int, num_cols: int, density: float = 0.05, seed: int = 0) -> CsrMatrix:
    """Random CSR matrix with positive values and some empty rows."""
    rng = np.random.default_rng(seed)
    mask = rng.random((num_rows, num_cols)) < density
    dense = np.where(mask, rng.random((num_rows, num_cols)) + 0.5, 0.0).astype(np.float32)
    return CsrMatrix.from_scipy(sparse.csr_matrix(dense))


@pytest.fixture
def small_csr() -> CsrMatrix:
    return random_csr(203, 97, density=0.08, seed=7)


@pytest.fixture
def tiny_grid() -> GridShape:
    """Small grid so modest matrices span several batches: 4x2 threads, 3 rows each."""
    return GridShape(grid_width=4, grid_height_multiplier=2, rows_per_thread=3)


@pytest.fixture
def csr_file(tmp_path, small_csr) -> Path:
    path = tmp_path / "small_csr.dat"
    save(small_csr, path)
    return path
