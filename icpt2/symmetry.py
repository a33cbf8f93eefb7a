"""Abelian point-group helpers and orbital-pair packing.

Irreps follow the bit-coded convention of PySCF/CheMPS2 for the abelian
point groups up to D2h, so the direct product is a bitwise XOR and irrep 0
is totally symmetric.
"""

from __future__ import annotations

_VALID_NUM_IRREPS = (1, 2, 4, 8)


def direct_prod(a: int, b: int) -> int:
    return int(a) ^ int(b)


def is_valid_num_irreps(n: int) -> bool:
    return int(n) in _VALID_NUM_IRREPS


def tri_index(i: int, j: int) -> int:
    """Packed index of the pair (i, j) with i <= j (diagonal included)."""
    return i + (j * (j + 1)) // 2


def strict_tri_index(i: int, j: int) -> int:
    """Packed index of the pair (i, j) with i < j."""
    return i + (j * (j - 1)) // 2


def n_sym_pairs(n: int) -> int:
    return (n * (n + 1)) // 2


def n_asym_pairs(n: int) -> int:
    return (n * (n - 1)) // 2


def n_pairs(n: int, triplet: bool) -> int:
    """Number of same-irrep pairs: i <= j for singlet, i < j for triplet."""
    return n_asym_pairs(n) if triplet else n_sym_pairs(n)


def pair_index(i: int, j: int, triplet: bool) -> int:
    return strict_tri_index(i, j) if triplet else tri_index(i, j)


def iter_pairs(n: int, triplet: bool):
    """Yield ``(i, j)`` in packed order (j outer, i inner)."""
    for j in range(n):
        for i in range(j if triplet else j + 1):
            yield i, j


def cross_irrep_pairs(num_irreps: int, irrep_prod: int):
    """Yield ``(Ii, Ij)`` with ``Ii < Ij`` and ``Ii x Ij == irrep_prod``.

    Only meaningful for a non-trivial ``irrep_prod``; same-irrep pairs are
    packed triangularly instead.
    """
    for irrep_i in range(num_irreps):
        irrep_j = direct_prod(irrep_i, irrep_prod)
        if irrep_i < irrep_j:
            yield irrep_i, irrep_j


__all__ = [
    "cross_irrep_pairs",
    "direct_prod",
    "is_valid_num_irreps",
    "iter_pairs",
    "n_asym_pairs",
    "n_pairs",
    "n_sym_pairs",
    "pair_index",
    "strict_tri_index",
    "tri_index",
]
