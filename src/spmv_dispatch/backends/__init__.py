"""Kernel collaborators for the SpMV dispatcher."""

from spmv_dispatch.backends.base import CompletionHandle, KernelBackend
from spmv_dispatch.backends.reference import ReferenceBackend

_BACKENDS = {
    "reference": ReferenceBackend,
}


def get_backend(name: str, **kwargs) -> KernelBackend:
    """Instantiate a backend by name (``reference`` or ``torch``)."""
    if name == "torch":
        # Imported lazily so torch is only loaded when selected
        from spmv_dispatch.backends.torch_backend import TorchBackend
        return TorchBackend(**kwargs)

    if name not in _BACKENDS:
        raise ValueError(f"Unknown backend: {name}. Available: {sorted(list(_BACKENDS) + ['torch'])}")
    return _BACKENDS[name](**kwargs)


__all__ = [
    "CompletionHandle",
    "KernelBackend",
    "ReferenceBackend",
    "get_backend",
]
