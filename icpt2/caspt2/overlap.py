"""Overlap (S) matrices of the symmetry-blocked IC-CASPT2 basis.

All blocks are dense ``S[row, col]`` arrays over the active superindex of one
irrep, with rows and columns enumerated as in :mod:`icpt2.caspt2.superindex`.
Kronecker deltas compare global active indices, which implies equal irreps.

RDM conventions (normal ordered, spin summed):
    dm1[p,q]         = <a+_p a_q>
    dm2[i,j,k,l]     = <a+_i a+_j a_l a_k>
    dm3[i,j,k,l,m,n] = <a+_i a+_j a+_k a_n a_m a_l>
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from icpt2.caspt2.cases import DSubBlock
from icpt2.caspt2.layout import BlockLayout
from icpt2.caspt2.superindex import active_pairs_bf, active_pairs_d, active_triples
from icpt2.orbitals import OrbitalSpacePartition
from icpt2.rdm import ReducedDensityMatrices


@dataclass(frozen=True)
class MetricBlocks:
    """Per-irrep overlap blocks; tuple position is the irrep."""

    saa: tuple[np.ndarray, ...]
    scc: tuple[np.ndarray, ...]
    sdd: tuple[np.ndarray, ...]
    see: tuple[np.ndarray, ...]
    sgg: tuple[np.ndarray, ...]
    sbb_singlet: tuple[np.ndarray, ...]
    sbb_triplet: tuple[np.ndarray, ...]
    sff_singlet: tuple[np.ndarray, ...]
    sff_triplet: tuple[np.ndarray, ...]

    def sbb(self, irrep: int, triplet: bool) -> np.ndarray:
        return self.sbb_triplet[irrep] if triplet else self.sbb_singlet[irrep]

    def sff(self, irrep: int, triplet: bool) -> np.ndarray:
        return self.sff_triplet[irrep] if triplet else self.sff_singlet[irrep]

    def sdd_block(self, irrep: int, row: DSubBlock, col: DSubBlock) -> np.ndarray:
        """SD1D1, SD1D2, SD2D1 or SD2D2 of ``irrep``."""
        sdd = self.sdd[irrep]
        half = sdd.shape[0] // 2
        r, c = int(row) * half, int(col) * half
        return sdd[r : r + half, c : c + half]


def _delta(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Outer Kronecker delta ``a[row] == b[col]`` as float."""
    return (a[:, None] == b[None, :]).astype(np.float64)


# ---------------------------------------------------------------------------
# Class A and C: three active indices
# ---------------------------------------------------------------------------

def build_saa(rdms: ReducedDensityMatrices, triples: np.ndarray) -> np.ndarray:
    """SAA[xyz, tuv]:

        - G3[z,t,u,y,x,v]
        + 2 d_tx G2[z,u,y,v] - d_uy G2[t,z,x,v] - d_ty G2[z,u,x,v] - d_ux G2[z,t,y,v]
        + 2 d_tx d_uy G1[z,v] - d_ux d_ty G1[z,v]
    """
    n = triples.shape[0]
    if n == 0:
        return np.empty((0, 0), dtype=np.float64)
    dm1, dm2, dm3 = rdms.dm1, rdms.dm2, rdms.dm3
    x, y, z = (triples[:, k][:, None] for k in range(3))
    t, u, v = (triples[:, k][None, :] for k in range(3))
    d_tx = _delta(triples[:, 0], triples[:, 0])
    d_uy = _delta(triples[:, 1], triples[:, 1])
    d_ty = _delta(triples[:, 1], triples[:, 0])
    d_ux = _delta(triples[:, 0], triples[:, 1])

    smat = -dm3[z, t, u, y, x, v]
    smat += 2.0 * d_tx * dm2[z, u, y, v]
    smat -= d_uy * dm2[t, z, x, v]
    smat -= d_ty * dm2[z, u, x, v]
    smat -= d_ux * dm2[z, t, y, v]
    smat += (2.0 * d_tx * d_uy - d_ux * d_ty) * dm1[z, v]
    return smat


def build_scc(rdms: ReducedDensityMatrices, triples: np.ndarray) -> np.ndarray:
    """SCC[xyz, tuv] = G3[z,x,u,y,t,v] + d_uy G2[x,z,t,v] + d_xy G2[z,u,t,v]
    + d_ut G2[z,x,y,v] + d_ut d_xy G1[z,v]."""
    n = triples.shape[0]
    if n == 0:
        return np.empty((0, 0), dtype=np.float64)
    dm1, dm2, dm3 = rdms.dm1, rdms.dm2, rdms.dm3
    x, y, z = (triples[:, k][:, None] for k in range(3))
    t, u, v = (triples[:, k][None, :] for k in range(3))
    d_uy = _delta(triples[:, 1], triples[:, 1])
    d_xy = (x == y).astype(np.float64)
    d_ut = (u == t).astype(np.float64)

    smat = dm3[z, x, u, y, t, v]
    smat += d_uy * dm2[x, z, t, v]
    smat += d_xy * dm2[z, u, t, v]
    smat += d_ut * dm2[z, x, y, v]
    smat += d_ut * d_xy * dm1[z, v]
    return smat


# ---------------------------------------------------------------------------
# Class D: two active indices, D1/D2 halves
# ---------------------------------------------------------------------------

def build_sdd(rdms: ReducedDensityMatrices, pairs: np.ndarray) -> np.ndarray:
    """SDD with D1 rows/cols first and D2 second; pairs ``(t, u)`` per half.

        SD1D1 = 2 G2[y,t,x,u] + 2 d_tx G1[y,u]
        SD1D2 = SD2D1 = - G2[y,t,x,u] - d_tx G1[y,u]
        SD2D2 = - G2[y,t,u,x] + 2 d_tx G1[y,u]
    """
    half = pairs.shape[0]
    if half == 0:
        return np.empty((0, 0), dtype=np.float64)
    dm1, dm2 = rdms.dm1, rdms.dm2
    x, y = pairs[:, 0][:, None], pairs[:, 1][:, None]
    t, u = pairs[:, 0][None, :], pairs[:, 1][None, :]
    d_tx = _delta(pairs[:, 0], pairs[:, 0])

    g_ytxu = dm2[y, t, x, u]
    g1 = d_tx * dm1[y, u]

    smat = np.empty((2 * half, 2 * half), dtype=np.float64)
    smat[:half, :half] = 2.0 * g_ytxu + 2.0 * g1
    smat[:half, half:] = -g_ytxu - g1
    smat[half:, :half] = -g_ytxu - g1
    smat[half:, half:] = -dm2[y, t, u, x] + 2.0 * g1
    return smat


# ---------------------------------------------------------------------------
# Class E and G: one active index
# ---------------------------------------------------------------------------

def build_see(rdms: ReducedDensityMatrices, act: slice) -> np.ndarray:
    """SEE[u,t] = 2 d_ut - G1[u,t]."""
    g1 = rdms.dm1[act, act]
    return 2.0 * np.eye(g1.shape[0], dtype=np.float64) - g1


def build_sgg(rdms: ReducedDensityMatrices, act: slice) -> np.ndarray:
    """SGG[u,t] = G1[u,t]."""
    return np.array(rdms.dm1[act, act], dtype=np.float64)


# ---------------------------------------------------------------------------
# Class B and F: two active indices, singlet (+) / triplet (-) pairs
# ---------------------------------------------------------------------------

def build_sff(rdms: ReducedDensityMatrices, pairs: np.ndarray, triplet: bool) -> np.ndarray:
    """SFF[xy, tu] = G2[x,y,t,u] +/- G2[x,y,u,t]."""
    if pairs.shape[0] == 0:
        return np.empty((0, 0), dtype=np.float64)
    dm2 = rdms.dm2
    x, y = pairs[:, 0][:, None], pairs[:, 1][:, None]
    t, u = pairs[:, 0][None, :], pairs[:, 1][None, :]
    if triplet:
        return dm2[x, y, t, u] - dm2[x, y, u, t]
    return dm2[x, y, t, u] + dm2[x, y, u, t]


def build_sbb(rdms: ReducedDensityMatrices, pairs: np.ndarray, triplet: bool) -> np.ndarray:
    """SBB = SFF plus the hole-hole delta terms.

    Singlet:
        + 2 d_tx d_uy + 2 d_ux d_ty
        - d_uy G1[t,x] - d_tx G1[u,y] - d_ux G1[t,y] - d_ty G1[u,x]
    Triplet:
        + 6 d_tx d_uy - 6 d_ux d_ty
        - 3 d_uy G1[t,x] - 3 d_tx G1[u,y] + 3 d_ux G1[t,y] + 3 d_ty G1[u,x]

    With packed pairs (t <= u, x <= y) the exchange deltas only fire for
    same-irrep pairs, and never for strictly ordered triplet pairs.
    """
    smat = build_sff(rdms, pairs, triplet)
    if smat.size == 0:
        return smat
    dm1 = rdms.dm1
    x, y = pairs[:, 0][:, None], pairs[:, 1][:, None]
    t, u = pairs[:, 0][None, :], pairs[:, 1][None, :]
    d_tx = _delta(pairs[:, 0], pairs[:, 0])
    d_uy = _delta(pairs[:, 1], pairs[:, 1])
    d_ux = _delta(pairs[:, 0], pairs[:, 1])
    d_ty = _delta(pairs[:, 1], pairs[:, 0])

    if triplet:
        smat += 6.0 * (d_tx * d_uy - d_ux * d_ty)
        smat -= 3.0 * (d_uy * dm1[t, x] + d_tx * dm1[u, y])
        smat += 3.0 * (d_ux * dm1[t, y] + d_ty * dm1[u, x])
    else:
        smat += 2.0 * (d_tx * d_uy + d_ux * d_ty)
        smat -= d_uy * dm1[t, x] + d_tx * dm1[u, y]
        smat -= d_ux * dm1[t, y] + d_ty * dm1[u, x]
    return smat


# ---------------------------------------------------------------------------
# All blocks
# ---------------------------------------------------------------------------

def build_metric_blocks(
    partition: OrbitalSpacePartition,
    layout: BlockLayout,
    rdms: ReducedDensityMatrices,
    *,
    verbose: int = 0,
) -> MetricBlocks:
    """Build every overlap block for every irrep.

    Parameters
    ----------
    partition : OrbitalSpacePartition
        Orbital counts per irrep.
    layout : BlockLayout
        Block dimensions; every matrix is checked against it.
    rdms : ReducedDensityMatrices
        Active-space 1/2/3-RDMs.

    Returns
    -------
    MetricBlocks
    """
    if rdms.las != partition.las:
        raise ValueError(f"RDM size mismatch: LAS={rdms.las}, partition has {partition.las} active orbitals")

    out: dict[str, list[np.ndarray]] = {name: [] for name in MetricBlocks.__dataclass_fields__}
    for h in range(partition.num_irreps):
        triples = active_triples(partition, h)
        d_pairs = active_pairs_d(partition, h)
        sing = active_pairs_bf(partition, h, triplet=False)
        trip = active_pairs_bf(partition, h, triplet=True)
        act = partition.act_slice(h)

        out["saa"].append(build_saa(rdms, triples))
        out["scc"].append(build_scc(rdms, triples))
        out["sdd"].append(build_sdd(rdms, d_pairs))
        out["see"].append(build_see(rdms, act))
        out["sgg"].append(build_sgg(rdms, act))
        out["sbb_singlet"].append(build_sbb(rdms, sing, triplet=False))
        out["sbb_triplet"].append(build_sbb(rdms, trip, triplet=True))
        out["sff_singlet"].append(build_sff(rdms, sing, triplet=False))
        out["sff_triplet"].append(build_sff(rdms, trip, triplet=True))

        expected = {
            "saa": layout.size_ac[h],
            "scc": layout.size_ac[h],
            "sdd": layout.size_d[h],
            "see": partition.nact[h],
            "sgg": partition.nact[h],
            "sbb_singlet": layout.size_bf_singlet[h],
            "sbb_triplet": layout.size_bf_triplet[h],
            "sff_singlet": layout.size_bf_singlet[h],
            "sff_triplet": layout.size_bf_triplet[h],
        }
        for name, dim in expected.items():
            if out[name][h].shape != (dim, dim):
                raise RuntimeError(
                    f"internal error: {name}[{h}] has shape {out[name][h].shape}, expected {(dim, dim)}"
                )
        if verbose >= 2:
            print(
                f"[CASPT2] irrep {h}: size_AC={layout.size_ac[h]} size_D={layout.size_d[h]} "
                f"size_BF=({layout.size_bf_singlet[h]}, {layout.size_bf_triplet[h]})"
            )

    return MetricBlocks(**{name: tuple(blocks) for name, blocks in out.items()})


__all__ = [
    "MetricBlocks",
    "build_metric_blocks",
    "build_saa",
    "build_sbb",
    "build_scc",
    "build_sdd",
    "build_see",
    "build_sff",
    "build_sgg",
]
