"""Tests for the PyTorch kernel backend (CPU always, CUDA when present)."""

import numpy as np
import pytest

torch = pytest.importorskip("torch")

from spmv_dispatch.backends import get_backend  # noqa: E402
from spmv_dispatch.backends.torch_backend import TorchBackend  # noqa: E402
from spmv_dispatch.dispatch import Dispatcher  # noqa: E402
from spmv_dispatch.errors import KernelError  # noqa: E402
from spmv_dispatch.planner import plan_batches, stride_table  # noqa: E402
from spmv_dispatch.reference import compute_reference  # noqa: E402
from spmv_dispatch.verify import check_determinism, check_reference  # noqa: E402
from spmv_dispatch.workload import build_device_csr, make_vectors  # noqa: E402

DEVICES = ["cpu"] + (["cuda"] if torch.cuda.is_available() else [])


@pytest.mark.parametrize("device", DEVICES)
def test_matches_reference(small_csr, tiny_grid, device):
    """Torch runs agree with the CPU reference and with each other."""
    x, y = make_vectors(small_csr, seed=1)
    reference = compute_reference(small_csr, x.data, y.data, column_offset=1)
    plan = plan_batches(small_csr.num_rows, tiny_grid)

    runs = Dispatcher(TorchBackend(device)).run(build_device_csr(small_csr), x, y, plan, num_iter=3)

    assert check_reference(reference, runs, 1e-5).passed
    assert all(report.passed for report in check_determinism(runs, 0.002))
    np.testing.assert_array_equal(runs[0][small_csr.num_rows:], 0)


def test_identity(identity_csr, tiny_grid):
    x, y = make_vectors(identity_csr, seed=4)
    plan = plan_batches(identity_csr.num_rows, tiny_grid)

    runs = Dispatcher(TorchBackend("cpu")).run(build_device_csr(identity_csr), x, y, plan, num_iter=1)

    np.testing.assert_allclose(runs.logical(0), y.logical + x.data[1:5], rtol=1e-6)


def test_upload_converts_indices():
    backend = TorchBackend("cpu")
    tensor = backend.upload(np.array([1, 2, 3], dtype=np.uint32))
    assert tensor.dtype == torch.int64


def test_invalid_thread_space(small_csr, tiny_grid):
    backend = TorchBackend("cpu")
    device_csr = build_device_csr(small_csr)
    x, y = make_vectors(small_csr)

    with pytest.raises(KernelError):
        backend.execute_batch(
            backend.upload(device_csr.values), backend.upload(device_csr.col_idx),
            backend.upload(device_csr.row_ptr), backend.upload(x.data), backend.upload(y.data),
            row_start=0, grid_width=4, thread_count=6, max_rows=small_csr.num_rows,
            stride_table=stride_table(tiny_grid),
        )


def test_registry_builds_torch_backend():
    backend = get_backend("torch", device="cpu")
    assert isinstance(backend, TorchBackend)
    assert backend.device.type == "cpu"


class _FaultingEvent:
    def synchronize(self):
        raise RuntimeError("CUDA error: an illegal memory access was encountered")


def test_wait_fault_becomes_kernel_error():
    backend = TorchBackend("cpu")
    handle = backend._next_handle(32, _FaultingEvent())

    with pytest.raises(KernelError) as exc_info:
        backend.wait(handle)

    assert exc_info.value.row_start == 32
    assert "illegal memory access" in str(exc_info.value)


def test_read_back_fault_becomes_kernel_error():
    class BrokenTensor:
        def detach(self):
            raise RuntimeError("CUDA error: launch failure")

    with pytest.raises(KernelError):
        TorchBackend("cpu").read_back(BrokenTensor())
