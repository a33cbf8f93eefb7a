"""Excitation classes of the internally contracted first-order space.

The enumeration order fixes the block order of the flat amplitude vector:
block ``(case, irrep)`` sits at flat position ``irrep + num_irreps * case``.

    A  : E_ti E_uv           (one occupied hole, active only otherwise)
    B  : E_ti E_uj           (two occupied holes)
    C  : E_at E_uv           (one virtual particle)
    D  : E_ai E_tu, E_ti E_au (D1 / D2 sub-blocks)
    E  : E_ti E_aj
    F  : E_at E_bu
    G  : E_ai E_bt
    H  : E_ai E_bj
"""

from __future__ import annotations

from enum import IntEnum


class ExcitationClass(IntEnum):
    A = 0
    B_SINGLET = 1
    B_TRIPLET = 2
    C = 3
    D = 4
    E_SINGLET = 5
    E_TRIPLET = 6
    F_SINGLET = 7
    F_TRIPLET = 8
    G_SINGLET = 9
    G_TRIPLET = 10
    H_SINGLET = 11
    H_TRIPLET = 12

    @property
    def label(self) -> str:
        return _LABELS[self]

    @property
    def is_triplet(self) -> bool:
        return self.name.endswith("_TRIPLET")


class DSubBlock(IntEnum):
    """Halves of a D block: D1 occupies the first ``size_d/2`` rows, D2 the rest."""

    D1 = 0
    D2 = 1


_LABELS = {
    ExcitationClass.A: "A",
    ExcitationClass.B_SINGLET: "B singlet",
    ExcitationClass.B_TRIPLET: "B triplet",
    ExcitationClass.C: "C",
    ExcitationClass.D: "D",
    ExcitationClass.E_SINGLET: "E singlet",
    ExcitationClass.E_TRIPLET: "E triplet",
    ExcitationClass.F_SINGLET: "F singlet",
    ExcitationClass.F_TRIPLET: "F triplet",
    ExcitationClass.G_SINGLET: "G singlet",
    ExcitationClass.G_TRIPLET: "G triplet",
    ExcitationClass.H_SINGLET: "H singlet",
    ExcitationClass.H_TRIPLET: "H triplet",
}

NUM_CASES = len(ExcitationClass)

# Diagonal blocks of the class-coupling table: every class once, D split.
COUPLING_BLOCKS = (
    "A", "B singlet", "B triplet", "C", "D1", "D2",
    "E singlet", "E triplet", "F singlet", "F triplet",
    "G singlet", "G triplet", "H singlet", "H triplet",
)

__all__ = ["COUPLING_BLOCKS", "DSubBlock", "ExcitationClass", "NUM_CASES"]
