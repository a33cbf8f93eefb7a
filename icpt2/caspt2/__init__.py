"""Internally contracted CASPT2 with abelian point-group symmetry.

Builds the block layout, overlap and Fock metrics and the right-hand side of
the first-order equations, and exposes the overlap and shifted-Fock
operators for an external iterative solver.
"""

from icpt2.caspt2.cases import COUPLING_BLOCKS, NUM_CASES, DSubBlock, ExcitationClass
from icpt2.caspt2.fock import FockContractions, build_faa_fcc, build_fock_contractions
from icpt2.caspt2.helpers import OverlapHelperTable
from icpt2.caspt2.layout import BlockLayout, compute_layout, total_vector_length
from icpt2.caspt2.operator import CASPT2
from icpt2.caspt2.overlap import MetricBlocks, build_metric_blocks
from icpt2.caspt2.result import SelfCheckResult
from icpt2.caspt2.rhs import build_closed_shell_hamiltonian, build_rhs

__all__ = [
    "CASPT2",
    "COUPLING_BLOCKS",
    "NUM_CASES",
    "BlockLayout",
    "DSubBlock",
    "ExcitationClass",
    "FockContractions",
    "MetricBlocks",
    "OverlapHelperTable",
    "SelfCheckResult",
    "build_closed_shell_hamiltonian",
    "build_faa_fcc",
    "build_fock_contractions",
    "build_metric_blocks",
    "build_rhs",
    "compute_layout",
    "total_vector_length",
]
