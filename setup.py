"""
Setup script for spmv-dispatch.

Install with: pip install -e .
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text() if readme_file.exists() else ""

setup(
    name="spmv-dispatch",
    version="0.1.0",
    description="Batched CSR sparse matrix-vector multiply orchestration and verification",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="Autonomous R&D Team",
    author_email="team@autonomousrd.ai",
    url="https://github.com/your-org/spmv-dispatch",

    packages=find_packages(where="src"),
    package_dir={"": "src"},

    python_requires=">=3.10",

    install_requires=[
        "numpy>=1.26.2",
        "scipy>=1.11.4",
        "torch>=2.1.1",
        "structlog>=23.2.0",
        "click>=8.1.0",
    ],

    extras_require={
        "test": [
            "pytest>=7.4.3",
        ],
        "dev": [
            "pytest>=7.4.3",
            "pytest-cov>=4.1.0",
            "mypy>=1.7.1",
            "black>=23.11.0",
            "ruff>=0.1.6",
        ],
    },

    entry_points={
        "console_scripts": [
            "spmv-check=spmv_dispatch.cli:main",
        ]
    },

    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "Topic :: Scientific/Engineering :: Mathematics",
        "Programming Language :: Python :: 3",
    ],
)
