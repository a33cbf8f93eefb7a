"""icpt2: symmetry-blocked internally contracted CASPT2 operators."""

from importlib.metadata import PackageNotFoundError, version as _dist_version

from icpt2.caspt2 import CASPT2, ExcitationClass, compute_layout
from icpt2.integrals import DenseERI, IrrepBlockMatrix
from icpt2.orbitals import OrbitalSpacePartition
from icpt2.rdm import ReducedDensityMatrices

try:
    __version__ = _dist_version("icpt2")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.1.0"

__all__ = [
    "__version__",
    "CASPT2",
    "DenseERI",
    "ExcitationClass",
    "IrrepBlockMatrix",
    "OrbitalSpacePartition",
    "ReducedDensityMatrices",
    "compute_layout",
]
