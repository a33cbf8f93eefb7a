"""Fock-weighted density contractions and the FAA/FCC blocks.

The Fock matrix is block diagonal in irreps and diagonal in its
occupied-occupied and virtual-virtual sub-blocks, so only its active-active
part enters here. The occupied/virtual orbital energies of the external
index are added by the operator at apply time.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from icpt2.caspt2.layout import BlockLayout
from icpt2.caspt2.overlap import MetricBlocks
from icpt2.caspt2.superindex import active_triples
from icpt2.integrals import IrrepBlockMatrix
from icpt2.orbitals import OrbitalSpacePartition
from icpt2.rdm import ReducedDensityMatrices


@dataclass(frozen=True)
class FockContractions:
    """Fock matrix contracted into one index pair of the 2-/3-RDM.

    f_dot_2dm[r,c]         = sum_xy f_xy G2[r,x,c,y]
    f_dot_3dm[i,j,k,l]     = sum_xy f_xy G3[i,j,x,k,l,y]
    """

    f_act: np.ndarray      # (LAS, LAS) active-active Fock, zero across irreps
    f_dot_2dm: np.ndarray  # (LAS, LAS)
    f_dot_3dm: np.ndarray  # (LAS, LAS, LAS, LAS)
    sum_f_kk: float        # 2 * sum of occupied orbital energies
    e_fock: float          # <0|F|0>


def active_fock(partition: OrbitalSpacePartition, fock: IrrepBlockMatrix) -> np.ndarray:
    """Active-active Fock block over global active indices."""
    las = partition.las
    f_act = np.zeros((las, las), dtype=np.float64)
    for h in range(partition.num_irreps):
        n = partition.nact[h]
        if n == 0:
            continue
        o = partition.nocc[h]
        s = partition.act_slice(h)
        f_act[s, s] = fock.block(h)[o : o + n, o : o + n]
    return f_act


def build_fock_contractions(
    partition: OrbitalSpacePartition,
    fock: IrrepBlockMatrix,
    rdms: ReducedDensityMatrices,
    *,
    verbose: int = 0,
) -> FockContractions:
    """Contract the active Fock block into the RDMs and evaluate ``<F>``."""
    if rdms.las != partition.las:
        raise ValueError(f"RDM size mismatch: LAS={rdms.las}, partition has {partition.las} active orbitals")

    f_act = active_fock(partition, fock)
    irr = partition.act_irreps()

    same_irrep = irr[:, None] == irr[None, :]
    f_dot_2dm = np.einsum("xy,rxcy->rc", f_act, rdms.dm2, optimize=True) * same_irrep

    total_irrep = (
        irr[:, None, None, None] ^ irr[None, :, None, None] ^ irr[None, None, :, None] ^ irr[None, None, None, :]
    )
    f_dot_3dm = np.einsum("xy,ijxkly->ijkl", f_act, rdms.dm3, optimize=True) * (total_irrep == 0)

    sum_f_kk = 0.0
    for h in range(partition.num_irreps):
        diag = np.diag(fock.block(h))[: partition.nocc[h]]
        sum_f_kk += 2.0 * float(np.sum(diag))
    e_fock = sum_f_kk + float(np.sum(rdms.dm1 * f_act))

    if verbose >= 1:
        print(f"[CASPT2] < F > = {e_fock:.12f}")

    return FockContractions(
        f_act=f_act,
        f_dot_2dm=f_dot_2dm,
        f_dot_3dm=f_dot_3dm,
        sum_f_kk=sum_f_kk,
        e_fock=e_fock,
    )


def _transfer(f_act: np.ndarray, moved: np.ndarray, fixed_a: np.ndarray, fixed_b: np.ndarray) -> np.ndarray:
    """M[p, q] = f[moved_p, moved_q] * d(fixed_a) * d(fixed_b) over one superindex.

    ``S @ M`` applies the Fock matrix to one label of the column superindex,
    ``M @ S`` to the same label of the row superindex.
    """
    return (
        f_act[moved[:, None], moved[None, :]]
        * (fixed_a[:, None] == fixed_a[None, :])
        * (fixed_b[:, None] == fixed_b[None, :])
    )


def build_faa(
    fdots: FockContractions,
    rdms: ReducedDensityMatrices,
    triples: np.ndarray,
    saa: np.ndarray,
) -> np.ndarray:
    """FAA[xyz, tuv].

        - f4[z,t,u,y,x,v] + sum_k 2 f_kk SAA
        + sum_r f_rt SAA[xyz,(ruv)] + sum_r f_ru SAA[xyz,(trv)]
        + sum_s f_xs SAA[(syz),tuv] + sum_s f_ys SAA[(xsz),tuv]
        + 2 d_tx f3[z,u,y,v] - d_uy f3[t,z,x,v] - d_ty f3[z,u,x,v] - d_ux f3[z,t,y,v]
        - 2 f_xt G2[z,u,y,v] + f_yu G2[z,t,v,x] + f_yt G2[z,u,x,v] + f_xu G2[z,t,y,v]
        + (2 d_tx d_uy - d_ux d_ty) f2[z,v]
        - 2 f_xt d_yu G1[z,v] - 2 f_yu d_xt G1[z,v] + f_xu d_yt G1[z,v] + f_yt d_xu G1[z,v]
    """
    n = triples.shape[0]
    if n == 0:
        return np.empty((0, 0), dtype=np.float64)
    f = fdots.f_act
    f2, f3, f4 = fdots.f_dot_2dm, fdots.f_dot_3dm, rdms.f_dot_4dm
    dm1, dm2 = rdms.dm1, rdms.dm2
    tt, uu, vv = triples[:, 0], triples[:, 1], triples[:, 2]
    x, y, z = tt[:, None], uu[:, None], vv[:, None]
    t, u, v = tt[None, :], uu[None, :], vv[None, :]
    d_tx = (x == t).astype(np.float64)
    d_uy = (y == u).astype(np.float64)
    d_ty = (y == t).astype(np.float64)
    d_ux = (x == u).astype(np.float64)

    m = _transfer(f, tt, uu, vv) + _transfer(f, uu, tt, vv)

    fmat = -f4[z, t, u, y, x, v] + fdots.sum_f_kk * saa
    fmat += saa @ m + m @ saa
    fmat += 2.0 * d_tx * f3[z, u, y, v]
    fmat -= d_uy * f3[t, z, x, v]
    fmat -= d_ty * f3[z, u, x, v]
    fmat -= d_ux * f3[z, t, y, v]
    fmat -= 2.0 * f[x, t] * dm2[z, u, y, v]
    fmat += f[y, u] * dm2[z, t, v, x]
    fmat += f[y, t] * dm2[z, u, x, v]
    fmat += f[x, u] * dm2[z, t, y, v]
    fmat += (2.0 * d_tx * d_uy - d_ux * d_ty) * f2[z, v]
    fmat -= 2.0 * (f[x, t] * d_uy + f[y, u] * d_tx) * dm1[z, v]
    fmat += (f[x, u] * d_ty + f[y, t] * d_ux) * dm1[z, v]
    return fmat


def build_fcc(
    fdots: FockContractions,
    rdms: ReducedDensityMatrices,
    triples: np.ndarray,
    scc: np.ndarray,
) -> np.ndarray:
    """FCC[xyz, tuv].

        f4[z,x,u,y,t,v] + sum_k 2 f_kk SCC
        + sum_s f_ys SCC[(xsz),tuv] + sum_r f_ru SCC[xyz,(trv)]
        + d_uy f3[x,z,t,v] + d_xy f3[z,u,t,v] + d_ut f3[z,x,y,v]
        - f_yx G2[z,u,t,v] - f_tu G2[z,x,y,v] - f_yu G2[z,x,v,t]
        + d_ut d_xy f2[z,v] - f_tu d_yx G1[z,v] - f_yx d_ut G1[z,v]
    """
    n = triples.shape[0]
    if n == 0:
        return np.empty((0, 0), dtype=np.float64)
    f = fdots.f_act
    f2, f3, f4 = fdots.f_dot_2dm, fdots.f_dot_3dm, rdms.f_dot_4dm
    dm1, dm2 = rdms.dm1, rdms.dm2
    tt, uu, vv = triples[:, 0], triples[:, 1], triples[:, 2]
    x, y, z = tt[:, None], uu[:, None], vv[:, None]
    t, u, v = tt[None, :], uu[None, :], vv[None, :]
    d_uy = (y == u).astype(np.float64)
    d_xy = (x == y).astype(np.float64)
    d_ut = (u == t).astype(np.float64)

    m = _transfer(f, uu, tt, vv)

    fmat = f4[z, x, u, y, t, v] + fdots.sum_f_kk * scc
    fmat += m @ scc + scc @ m
    fmat += d_uy * f3[x, z, t, v]
    fmat += d_xy * f3[z, u, t, v]
    fmat += d_ut * f3[z, x, y, v]
    fmat -= f[y, x] * dm2[z, u, t, v]
    fmat -= f[t, u] * dm2[z, x, y, v]
    fmat -= f[y, u] * dm2[z, x, v, t]
    fmat += d_ut * d_xy * f2[z, v]
    fmat -= (f[t, u] * d_xy + f[y, x] * d_ut) * dm1[z, v]
    return fmat


def build_faa_fcc(
    partition: OrbitalSpacePartition,
    layout: BlockLayout,
    fdots: FockContractions,
    rdms: ReducedDensityMatrices,
    metrics: MetricBlocks,
) -> tuple[tuple[np.ndarray, ...], tuple[np.ndarray, ...]]:
    """FAA and FCC for every irrep; requires the SAA/SCC blocks."""
    faa, fcc = [], []
    for h in range(partition.num_irreps):
        triples = active_triples(partition, h)
        faa.append(build_faa(fdots, rdms, triples, metrics.saa[h]))
        fcc.append(build_fcc(fdots, rdms, triples, metrics.scc[h]))
        if faa[h].shape != (layout.size_ac[h],) * 2:
            raise RuntimeError(f"internal error: FAA[{h}] has shape {faa[h].shape}")
    return tuple(faa), tuple(fcc)


__all__ = [
    "FockContractions",
    "active_fock",
    "build_faa",
    "build_faa_fcc",
    "build_fcc",
    "build_fock_contractions",
]
