"""Configuration management for spmv_dispatch."""

import os
from dataclasses import dataclass
from typing import Optional

from spmv_dispatch.planner import GridShape


@dataclass
class Config:
    """Batched SpMV check configuration."""

    # Thread grid: GRID_WIDTH * GRID_HEIGHT_MULTIPLIER threads per enqueue,
    # each covering ROWS_PER_THREAD rows via strided scatter reads
    grid_width: int = 60
    grid_height_multiplier: int = 16
    rows_per_thread: int = 16

    # Workload
    num_iter: int = 10
    seed: int = 1
    alignment: int = 4  # OWORD buffer alignment
    column_offset: int = 1  # x[0] is reserved

    # Verification
    determinism_tolerance: float = 0.002
    reference_tolerance: float = 0.02

    # Kernel collaborator
    backend: str = "reference"
    device: str = "cpu"

    matrix_path: str = "Protein_csr.dat"
    log_level: str = "INFO"

    def __post_init__(self):
        """Validate settings."""
        for name in ("grid_width", "grid_height_multiplier", "rows_per_thread", "num_iter", "alignment"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")

        if self.column_offset < 0:
            raise ValueError(f"column_offset must be non-negative, got {self.column_offset}")

        if self.determinism_tolerance < 0 or self.reference_tolerance < 0:
            raise ValueError("Tolerances must be non-negative")

    @property
    def grid(self) -> GridShape:
        return GridShape(self.grid_width, self.grid_height_multiplier, self.rows_per_thread)

    @classmethod
    def from_env(cls, matrix_path: Optional[str] = None) -> "Config":
        """Create config from environment variables."""
        defaults = cls()
        return cls(
            grid_width=int(os.environ.get("SPMV_GRID_WIDTH", defaults.grid_width)),
            grid_height_multiplier=int(
                os.environ.get("SPMV_GRID_HEIGHT_MULTIPLIER", defaults.grid_height_multiplier)
            ),
            rows_per_thread=int(os.environ.get("SPMV_ROWS_PER_THREAD", defaults.rows_per_thread)),
            num_iter=int(os.environ.get("SPMV_NUM_ITER", defaults.num_iter)),
            seed=int(os.environ.get("SPMV_SEED", defaults.seed)),
            alignment=int(os.environ.get("SPMV_ALIGNMENT", defaults.alignment)),
            column_offset=int(os.environ.get("SPMV_COLUMN_OFFSET", defaults.column_offset)),
            determinism_tolerance=float(
                os.environ.get("SPMV_DETERMINISM_TOLERANCE", defaults.determinism_tolerance)
            ),
            reference_tolerance=float(
                os.environ.get("SPMV_REFERENCE_TOLERANCE", defaults.reference_tolerance)
            ),
            backend=os.environ.get("SPMV_BACKEND", defaults.backend),
            device=os.environ.get("SPMV_DEVICE", defaults.device),
            matrix_path=(
                matrix_path if matrix_path is not None
                else os.environ.get("SPMV_MATRIX", defaults.matrix_path)
            ),
            log_level=os.environ.get("SPMV_LOG_LEVEL", defaults.log_level),
        )


# Global config instance
_default_config = None


def get_default_config() -> Config:
    """Get the default global configuration."""
    global _default_config
    if _default_config is None:
        _default_config = Config.from_env()
    return _default_config


def set_default_config(config: Optional[Config]):
    """Set the default global configuration (None resets to environment)."""
    global _default_config
    _default_config = config
