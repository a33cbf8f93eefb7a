"""Superindex enumerations for the symmetry-blocked IC-CASPT2 basis.

Each (class, irrep) block pairs an *active superindex* (a triple or pair of
active orbitals) with an *external superindex* (occupied and/or virtual
orbitals). Blocks are stored external-major, so a block segment reshapes to
``(n_external, n_active)``.

Active orbitals are reported by their global active index (``act_offset +
local``); a Kronecker delta between two active labels therefore reduces to
equality of global indices. Occupied and virtual orbitals are reported by
their global MO index.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from icpt2.orbitals import OrbitalSpacePartition
from icpt2.symmetry import cross_irrep_pairs, direct_prod, iter_pairs


def active_triples(partition: OrbitalSpacePartition, irrep: int) -> np.ndarray:
    """(n, 3) global active indices ``(t, u, v)`` of the A/C basis of ``irrep``.

    Irrep loops run ``It`` then ``Iu`` (``Iv`` fixed by symmetry); within a
    sub-block ``t`` is fastest.
    """
    rows = []
    for it in range(partition.num_irreps):
        for iu in range(partition.num_irreps):
            iv = partition.prod(irrep, it, iu)
            nt, nu, nv = partition.nact[it], partition.nact[iu], partition.nact[iv]
            if nt * nu * nv == 0:
                continue
            dt, du, dv = partition.act_offset(it), partition.act_offset(iu), partition.act_offset(iv)
            v, u, t = np.meshgrid(np.arange(nv), np.arange(nu), np.arange(nt), indexing="ij")
            rows.append(np.stack([dt + t.ravel(), du + u.ravel(), dv + v.ravel()], axis=1))
    if not rows:
        return np.empty((0, 3), dtype=np.int64)
    return np.concatenate(rows).astype(np.int64)


def active_pairs_d(partition: OrbitalSpacePartition, irrep: int) -> np.ndarray:
    """(n, 2) global active indices ``(t, u)`` with ``It x Iu == irrep``; ``t`` fastest."""
    rows = []
    for it in range(partition.num_irreps):
        iu = direct_prod(irrep, it)
        nt, nu = partition.nact[it], partition.nact[iu]
        if nt * nu == 0:
            continue
        dt, du = partition.act_offset(it), partition.act_offset(iu)
        u, t = np.meshgrid(np.arange(nu), np.arange(nt), indexing="ij")
        rows.append(np.stack([dt + t.ravel(), du + u.ravel()], axis=1))
    if not rows:
        return np.empty((0, 2), dtype=np.int64)
    return np.concatenate(rows).astype(np.int64)


def _local_pairs(counts, irrep_prod: int, triplet: bool):
    """Yield ``(Ii, i, Ij, j)`` over unordered pairs in packed order."""
    if irrep_prod == 0:
        for h, n in enumerate(counts):
            for i, j in iter_pairs(n, triplet):
                yield h, i, h, j
    else:
        for hi, hj in cross_irrep_pairs(len(counts), irrep_prod):
            for j in range(counts[hj]):
                for i in range(counts[hi]):
                    yield hi, i, hj, j


def active_pairs_bf(partition: OrbitalSpacePartition, irrep: int, triplet: bool) -> np.ndarray:
    """(n, 2) global active indices ``(t, u)`` of the B/F basis of ``irrep``."""
    out = [
        (partition.act_offset(ht) + t, partition.act_offset(hu) + u)
        for ht, t, hu, u in _local_pairs(partition.nact, irrep, triplet)
    ]
    return np.asarray(out, dtype=np.int64).reshape(-1, 2)


@dataclass(frozen=True)
class OrbitalPairs:
    """Unordered occupied (or virtual) pairs in packed order.

    ``first``/``second`` are global MO indices; ``groups`` lists the
    ``(irrep_first, irrep_second, start, stop)`` sub-ranges in storage order.
    """

    first: np.ndarray
    second: np.ndarray
    diagonal: np.ndarray
    groups: tuple[tuple[int, int, int, int], ...]

    def __len__(self) -> int:
        return int(self.first.size)


def orbital_pairs(partition: OrbitalSpacePartition, space: str, irrep_prod: int, triplet: bool) -> OrbitalPairs:
    """Occupied (``space="occ"``) or virtual (``space="vir"``) pairs of product ``irrep_prod``."""
    if space == "occ":
        counts = partition.nocc
        start = [partition.orb_offset(h) for h in range(partition.num_irreps)]
    elif space == "vir":
        counts = partition.nvirt
        start = [partition.orb_offset(h) + partition.n_oa(h) for h in range(partition.num_irreps)]
    else:
        raise ValueError(f"Invalid orbital space: {space}")

    first, second, groups = [], [], []
    current = None
    for hi, i, hj, j in _local_pairs(counts, irrep_prod, triplet):
        if current is None or current[:2] != (hi, hj):
            if current is not None:
                groups.append((current[0], current[1], current[2], len(first)))
            current = (hi, hj, len(first))
        first.append(start[hi] + i)
        second.append(start[hj] + j)
    if current is not None:
        groups.append((current[0], current[1], current[2], len(first)))

    first_arr = np.asarray(first, dtype=np.int64)
    second_arr = np.asarray(second, dtype=np.int64)
    return OrbitalPairs(
        first=first_arr,
        second=second_arr,
        diagonal=first_arr == second_arr,
        groups=tuple(groups),
    )


def occ_mo(partition: OrbitalSpacePartition, irrep: int) -> np.ndarray:
    o = partition.orb_offset(irrep)
    return np.arange(o, o + partition.nocc[irrep], dtype=np.int64)


def vir_mo(partition: OrbitalSpacePartition, irrep: int) -> np.ndarray:
    o = partition.orb_offset(irrep) + partition.n_oa(irrep)
    return np.arange(o, o + partition.nvirt[irrep], dtype=np.int64)


def act_mo(partition: OrbitalSpacePartition) -> np.ndarray:
    """Global MO index of every active orbital, in global active order."""
    out = []
    for h in range(partition.num_irreps):
        o = partition.orb_offset(h) + partition.nocc[h]
        out.extend(range(o, o + partition.nact[h]))
    return np.asarray(out, dtype=np.int64)


def occ_vir_pairs(partition: OrbitalSpacePartition, irrep: int) -> tuple[np.ndarray, np.ndarray]:
    """Global MO indices ``(i, a)`` of the D-class external basis; ``i`` fastest.

    Loops run over ``Ii`` with ``Ia = Ii x irrep``.
    """
    occ, vir = [], []
    for hi in range(partition.num_irreps):
        ha = direct_prod(hi, irrep)
        oi, va = occ_mo(partition, hi), vir_mo(partition, ha)
        if oi.size * va.size == 0:
            continue
        a, i = np.meshgrid(va, oi, indexing="ij")
        occ.append(i.ravel())
        vir.append(a.ravel())
    if not occ:
        empty = np.empty(0, dtype=np.int64)
        return empty, empty
    return np.concatenate(occ), np.concatenate(vir)


__all__ = [
    "OrbitalPairs",
    "act_mo",
    "active_pairs_bf",
    "active_pairs_d",
    "active_triples",
    "occ_mo",
    "occ_vir_pairs",
    "orbital_pairs",
    "vir_mo",
]
