from __future__ import annotations

from setuptools import find_packages, setup

setup(
    name="icpt2",
    version="0.1.0",
    description="Symmetry-blocked internally contracted CASPT2 operators",
    packages=find_packages(include=["icpt2", "icpt2.*"]),
    python_requires=">=3.9",
    install_requires=[
        "numpy",
        "scipy",
    ],
    extras_require={
        "test": ["pytest"],
    },
)
