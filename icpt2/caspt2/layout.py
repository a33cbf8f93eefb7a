"""Block layout of the flat first-order vector.

Every (excitation class, irrep) pair owns one contiguous segment. The
segment length is ``n_external * n_active_basis``; blocks are stored
external-index-major, i.e. the active superindex runs fastest.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from icpt2.caspt2.cases import NUM_CASES, DSubBlock, ExcitationClass
from icpt2.orbitals import OrbitalSpacePartition
from icpt2.symmetry import cross_irrep_pairs, direct_prod, n_pairs


def pair_count(counts: tuple[int, ...], irrep_prod: int, triplet: bool) -> int:
    """Number of unordered orbital pairs whose product irrep is ``irrep_prod``."""
    if irrep_prod == 0:
        return int(sum(n_pairs(n, triplet) for n in counts))
    return int(sum(counts[a] * counts[b] for a, b in cross_irrep_pairs(len(counts), irrep_prod)))


@dataclass(frozen=True)
class BlockLayout:
    """Sizes and offsets of every (class, irrep) block."""

    partition: OrbitalSpacePartition
    size_ac: tuple[int, ...]
    size_d: tuple[int, ...]
    size_bf_singlet: tuple[int, ...]
    size_bf_triplet: tuple[int, ...]
    sizes: np.ndarray  # (NUM_CASES, num_irreps)
    jump: np.ndarray   # (NUM_CASES * num_irreps + 1,), exclusive prefix sum

    @property
    def num_irreps(self) -> int:
        return self.partition.num_irreps

    @property
    def total_size(self) -> int:
        return int(self.jump[-1])

    def offset(self, case: ExcitationClass, irrep: int) -> int:
        return int(self.jump[irrep + self.num_irreps * int(case)])

    def size(self, case: ExcitationClass, irrep: int) -> int:
        return int(self.sizes[int(case), irrep])

    def block_slice(self, case: ExcitationClass, irrep: int) -> slice:
        start = self.offset(case, irrep)
        return slice(start, start + self.size(case, irrep))

    def segment(self, vector: np.ndarray, case: ExcitationClass, irrep: int) -> np.ndarray:
        """View of ``vector`` restricted to block ``(case, irrep)``."""
        return vector[self.block_slice(case, irrep)]

    def d_subblock(self, vector: np.ndarray, irrep: int, sub: DSubBlock) -> np.ndarray:
        """``(n_ai, size_d/2)`` view of the D1 or D2 half of block ``(D, irrep)``.

        Rows run over the (i, a) external pairs; within a row the D1 active
        pairs come first, then the D2 pairs.
        """
        size_d = self.size_d[irrep]
        half = size_d // 2
        rows = self.segment(vector, ExcitationClass.D, irrep).reshape(self.n_ai(irrep), size_d)
        start = int(sub) * half
        return rows[:, start : start + half]

    def size_bf(self, irrep: int, triplet: bool) -> int:
        return self.size_bf_triplet[irrep] if triplet else self.size_bf_singlet[irrep]

    def occ_pair_count(self, irrep_prod: int, triplet: bool) -> int:
        return pair_count(self.partition.nocc, irrep_prod, triplet)

    def vir_pair_count(self, irrep_prod: int, triplet: bool) -> int:
        return pair_count(self.partition.nvirt, irrep_prod, triplet)

    def n_ai(self, irrep: int) -> int:
        """Number of (occupied i, virtual a) pairs with ``Ii x Ia == irrep``."""
        p = self.partition
        return int(sum(p.nocc[h] * p.nvirt[direct_prod(h, irrep)] for h in range(p.num_irreps)))


def _active_triple_size(partition: OrbitalSpacePartition, irrep: int) -> int:
    nact = partition.nact
    total = 0
    for it in range(partition.num_irreps):
        for iu in range(partition.num_irreps):
            iv = partition.prod(irrep, it, iu)
            total += nact[it] * nact[iu] * nact[iv]
    return total


def _block_size(partition: OrbitalSpacePartition, case: ExcitationClass, irrep: int,
                size_ac, size_d, size_bf_singlet, size_bf_triplet) -> int:
    nocc, nact, nvirt = partition.nocc, partition.nact, partition.nvirt
    nirrep = partition.num_irreps
    triplet = case.is_triplet
    if case == ExcitationClass.A:
        return nocc[irrep] * size_ac[irrep]
    if case == ExcitationClass.C:
        return nvirt[irrep] * size_ac[irrep]
    if case == ExcitationClass.D:
        n_ai = sum(nocc[h] * nvirt[direct_prod(h, irrep)] for h in range(nirrep))
        return n_ai * size_d[irrep]
    size_bf = size_bf_triplet if triplet else size_bf_singlet
    if case in (ExcitationClass.B_SINGLET, ExcitationClass.B_TRIPLET):
        return pair_count(nocc, irrep, triplet) * size_bf[irrep]
    if case in (ExcitationClass.F_SINGLET, ExcitationClass.F_TRIPLET):
        return pair_count(nvirt, irrep, triplet) * size_bf[irrep]
    if case in (ExcitationClass.E_SINGLET, ExcitationClass.E_TRIPLET):
        n_ext = sum(nvirt[ia] * pair_count(nocc, direct_prod(irrep, ia), triplet) for ia in range(nirrep))
        return nact[irrep] * n_ext
    if case in (ExcitationClass.G_SINGLET, ExcitationClass.G_TRIPLET):
        n_ext = sum(nocc[ii] * pair_count(nvirt, direct_prod(irrep, ii), triplet) for ii in range(nirrep))
        return nact[irrep] * n_ext
    if case in (ExcitationClass.H_SINGLET, ExcitationClass.H_TRIPLET):
        return pair_count(nocc, irrep, triplet) * pair_count(nvirt, irrep, triplet)
    raise RuntimeError(f"Unhandled case: {case}")


def total_vector_length(partition: OrbitalSpacePartition) -> int:
    """Closed-form dimension of the first-order space.

    Enumerates ordered irrep triples ``(i1, i2, i3)`` with
    ``i4 = i1 x i2 x i3`` and counts the excitation operators directly,
    independently of the per-block bookkeeping in :func:`compute_layout`.
    """
    nocc, nact, nvirt = partition.nocc, partition.nact, partition.nvirt
    nirrep = partition.num_irreps
    length = 0
    for i1 in range(nirrep):
        for i2 in range(nirrep):
            for i3 in range(nirrep):
                i4 = partition.prod(i1, i2, i3)
                length += nocc[i1] * nact[i2] * nact[i3] * nact[i4]       # A
                length += nact[i1] * nact[i2] * nact[i3] * nvirt[i4]      # C
                length += 2 * nocc[i1] * nact[i2] * nact[i3] * nvirt[i4]  # D
                length += nocc[i1] * nocc[i2] * nact[i3] * nvirt[i4]      # E
                length += nocc[i1] * nact[i2] * nvirt[i3] * nvirt[i4]     # G
                if i2 < i4:
                    length += nact[i1] * nact[i3] * nocc[i2] * nocc[i4]    # B
                    length += nvirt[i1] * nvirt[i3] * nocc[i2] * nocc[i4]  # H
                    length += nvirt[i1] * nvirt[i3] * nact[i2] * nact[i4]  # F
                if i2 == i4:
                    length += (nact[i1] * nact[i3] * nocc[i2] * (nocc[i2] - 1)) // 2    # B
                    length += (nvirt[i1] * nvirt[i3] * nocc[i2] * (nocc[i2] - 1)) // 2  # H
                    length += (nvirt[i1] * nvirt[i3] * nact[i2] * (nact[i2] - 1)) // 2  # F
                    length += (nact[i1] * (nact[i3] + 1) * nocc[i2]) // 2    # B
                    length += (nvirt[i1] * (nvirt[i3] + 1) * nact[i2]) // 2  # F
                    length += (nvirt[i1] * (nvirt[i3] + 1) * nocc[i2]) // 2  # H
    return int(length)


def compute_layout(partition: OrbitalSpacePartition, *, verbose: int = 0) -> BlockLayout:
    """Compute block sizes and offsets, cross-checked against the closed form.

    Raises
    ------
    RuntimeError
        If the incremental total disagrees with :func:`total_vector_length`.
    """
    nirrep = partition.num_irreps
    nact = partition.nact

    size_ac = tuple(_active_triple_size(partition, h) for h in range(nirrep))
    size_d = tuple(
        2 * sum(nact[it] * nact[direct_prod(h, it)] for it in range(nirrep)) for h in range(nirrep)
    )
    size_bf_singlet = tuple(pair_count(nact, h, False) for h in range(nirrep))
    size_bf_triplet = tuple(pair_count(nact, h, True) for h in range(nirrep))

    sizes = np.zeros((NUM_CASES, nirrep), dtype=np.int64)
    for case in ExcitationClass:
        for h in range(nirrep):
            sizes[int(case), h] = _block_size(
                partition, case, h, size_ac, size_d, size_bf_singlet, size_bf_triplet
            )

    jump = np.zeros(NUM_CASES * nirrep + 1, dtype=np.int64)
    jump[1:] = np.cumsum(sizes.reshape(-1))

    total = int(jump[-1])
    if verbose >= 1:
        print(f"[CASPT2] Total size of the V_SD space = {total}")
    if verbose >= 2:
        for case in ExcitationClass:
            dims = ", ".join(str(int(x)) for x in sizes[int(case)])
            print(f"[CASPT2]   {case.label:<10s} per irrep: [{dims}]")

    closed = total_vector_length(partition)
    if closed != total:
        raise RuntimeError(
            f"internal error: V_SD size mismatch (block sum {total} vs closed form {closed})"
        )

    return BlockLayout(
        partition=partition,
        size_ac=size_ac,
        size_d=size_d,
        size_bf_singlet=size_bf_singlet,
        size_bf_triplet=size_bf_triplet,
        sizes=sizes,
        jump=jump,
    )


__all__ = ["BlockLayout", "compute_layout", "pair_count", "total_vector_length"]
