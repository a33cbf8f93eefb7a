"""Dense, irrep-blocked integral accessors.

Orbital indices passed to the accessors are local to their irrep
(occupied, then active, then virtual). ``DenseERI`` keeps the full
chemist-notation tensor ``(pq|rs)`` over the global MO index and translates
local indices through the per-irrep orbital offsets.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from icpt2.orbitals import OrbitalSpacePartition


@dataclass(frozen=True)
class IrrepBlockMatrix:
    """Symmetric one-electron matrix stored as one dense block per irrep."""

    blocks: tuple[np.ndarray, ...]

    @classmethod
    def from_blocks(cls, partition: OrbitalSpacePartition, blocks) -> "IrrepBlockMatrix":
        blocks = list(blocks)
        if len(blocks) != partition.num_irreps:
            raise ValueError(f"expected {partition.num_irreps} irrep blocks, got {len(blocks)}")
        out = []
        for h, blk in enumerate(blocks):
            arr = np.asarray(blk, dtype=np.float64)
            n = partition.norb(h)
            if arr.shape != (n, n):
                raise ValueError(f"irrep {h} block shape mismatch: got {arr.shape}, expected {(n, n)}")
            out.append(np.ascontiguousarray(arr))
        return cls(blocks=tuple(out))

    @classmethod
    def from_full(cls, partition: OrbitalSpacePartition, mat) -> "IrrepBlockMatrix":
        """Cut the irrep-diagonal blocks out of a full ``(nmo, nmo)`` matrix."""
        mat = np.asarray(mat, dtype=np.float64)
        nmo = partition.nmo
        if mat.shape != (nmo, nmo):
            raise ValueError(f"matrix shape mismatch: got {mat.shape}, expected {(nmo, nmo)}")
        blocks = []
        for h in range(partition.num_irreps):
            o = partition.orb_offset(h)
            n = partition.norb(h)
            blocks.append(mat[o : o + n, o : o + n])
        return cls.from_blocks(partition, blocks)

    def block(self, irrep: int) -> np.ndarray:
        return self.blocks[irrep]

    def get(self, irrep: int, row: int, col: int) -> float:
        return float(self.blocks[irrep][row, col])


@dataclass(frozen=True)
class DenseERI:
    """Two-electron integrals ``(pq|rs)`` in chemist notation."""

    eri: np.ndarray
    offsets: tuple[int, ...]

    @classmethod
    def from_array(cls, partition: OrbitalSpacePartition, eri) -> "DenseERI":
        nmo = partition.nmo
        arr = np.asarray(eri, dtype=np.float64)
        if arr.shape != (nmo,) * 4:
            raise ValueError(f"eri shape mismatch: got {arr.shape}, expected {(nmo,) * 4}")
        offsets = tuple(partition.orb_offset(h) for h in range(partition.num_irreps))
        return cls(eri=np.ascontiguousarray(arr), offsets=offsets)

    def get_coulomb(self, i1: int, i2: int, i3: int, i4: int, p: int, q: int, r: int, s: int) -> float:
        """``(pq|rs)``."""
        o = self.offsets
        return float(self.eri[o[i1] + p, o[i2] + q, o[i3] + r, o[i4] + s])

    def get_exchange(self, i1: int, i2: int, i3: int, i4: int, p: int, q: int, r: int, s: int) -> float:
        """``(pr|qs)``."""
        o = self.offsets
        return float(self.eri[o[i1] + p, o[i3] + r, o[i2] + q, o[i4] + s])

    def four_index(self, i1: int, i2: int, i3: int, i4: int, p: int, q: int, r: int, s: int) -> float:
        """Physicist-notation ``<pq|rs> = (pr|qs)``."""
        return self.get_exchange(i1, i2, i3, i4, p, q, r, s)

    def mo(self, p, q, r, s) -> np.ndarray:
        """``(pq|rs)`` for broadcastable arrays of global MO indices."""
        return self.eri[p, q, r, s]


__all__ = ["DenseERI", "IrrepBlockMatrix"]
