"""Double-counting factors for triangularly packed orbital pairs."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from icpt2.orbitals import OrbitalSpacePartition
from icpt2.symmetry import iter_pairs


def _pair_helper(counts: tuple[int, ...]) -> np.ndarray:
    """2 for a diagonal pair (i == j), 1 otherwise, over irrep-concatenated i <= j pairs."""
    out = []
    for n in counts:
        out.extend(2 if i == j else 1 for i, j in iter_pairs(n, triplet=False))
    return np.asarray(out, dtype=np.int64)


@dataclass(frozen=True)
class OverlapHelperTable:
    """Factors for the totally symmetric occupied and virtual pair spaces."""

    occ: np.ndarray
    vir: np.ndarray

    @classmethod
    def build(cls, partition: OrbitalSpacePartition) -> "OverlapHelperTable":
        return cls(occ=_pair_helper(partition.nocc), vir=_pair_helper(partition.nvirt))


__all__ = ["OverlapHelperTable"]
