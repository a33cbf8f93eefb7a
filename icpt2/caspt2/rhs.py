"""Right-hand side V_P = <P|H|0> of the first-order equations.

All integrals are in chemists' notation, ``(pq|rs)``. For the classes whose
active superindex is contracted (A, B, C, D, F) the integral workspace is
multiplied by the corresponding overlap block, so the metric blocks must be
built first.

    VA: <H E_ti E_uv> = sum_w MAT[i,w] [2 d_tw G1[u,v] - G2[t,u,w,v] - d_wu G1[t,v]]
                        + sum_xyz (ix|zy) SAA[xyz,tuv]
    VC: <H E_at E_uv> = sum_w MAT[w,a] [G2[w,u,t,v] + d_ut G1[w,v]]
                        + sum_xyz (zy|xa) SCC[xyz,tuv]
    VD: <H E_ai E_tu>, <H E_ti E_au> = MAT[i,a] [2 G1[t,u], -G1[t,u]]
                        + sum_xy [(ia|yx), (ix|ya)] SDD[xy,tu]
    VB: sum_xy (ix|jy) SBB[xy,tu]
    VF: sum_xy (ax|by) SFF[xy,tu]
    VE: sum_w [(iw|ja) +/- (jw|ia)] (1 | 3) SEE[w,t]
    VG: sum_u [(ai|bu) +/- (bi|au)] (1 | 3) SGG[u,t]
    VH: (2 | 6) [(ai|bj) +/- (aj|bi)]

with MAT[p,q] = h_pq + sum_k [2 (pq|kk) - (pk|kq)].
"""

from __future__ import annotations

import numpy as np

from icpt2.caspt2.cases import DSubBlock, ExcitationClass
from icpt2.caspt2.layout import BlockLayout
from icpt2.caspt2.overlap import MetricBlocks
from icpt2.caspt2.superindex import (
    act_mo,
    active_pairs_bf,
    active_pairs_d,
    active_triples,
    occ_mo,
    occ_vir_pairs,
    orbital_pairs,
    vir_mo,
)
from icpt2.integrals import DenseERI, IrrepBlockMatrix
from icpt2.orbitals import OrbitalSpacePartition
from icpt2.rdm import ReducedDensityMatrices
from icpt2.symmetry import direct_prod


def build_closed_shell_hamiltonian(
    partition: OrbitalSpacePartition,
    oei: IrrepBlockMatrix,
    eri: DenseERI,
) -> np.ndarray:
    """MAT[p,q] = h_pq + sum_k [2 (pq|kk) - (pk|kq)] over global MO indices.

    Only the irrep-diagonal blocks are filled.
    """
    nmo = partition.nmo
    occ = np.concatenate([occ_mo(partition, h) for h in range(partition.num_irreps)])
    mat = np.zeros((nmo, nmo), dtype=np.float64)
    for h in range(partition.num_irreps):
        o = partition.orb_offset(h)
        idx = np.arange(o, o + partition.norb(h), dtype=np.int64)
        if idx.size == 0:
            continue
        block = np.array(oei.block(h), dtype=np.float64)
        if occ.size:
            coul = np.einsum("pqkk->pq", eri.eri[np.ix_(idx, idx, occ, occ)])
            exch = np.einsum("pkkq->pq", eri.eri[np.ix_(idx, occ, occ, idx)])
            block += 2.0 * coul - exch
        upper = np.triu(block)
        mat[np.ix_(idx, idx)] = upper + np.triu(upper, 1).T
    return mat


def _store(rhs: np.ndarray, layout: BlockLayout, case: ExcitationClass, irrep: int, values) -> None:
    if isinstance(values, list):
        values = np.concatenate([np.ravel(v) for v in values]) if values else np.empty(0)
    values = np.ravel(values)
    size = layout.size(case, irrep)
    if values.size != size:
        raise RuntimeError(
            f"internal error: {case.label} irrep {irrep} filled {values.size} elements, layout has {size}"
        )
    rhs[layout.block_slice(case, irrep)] = values


# ---------------------------------------------------------------------------
# Classes with a contracted active superindex
# ---------------------------------------------------------------------------

def _rhs_a(partition, layout, mat, eri, rdms, metrics, irrep):
    triples = active_triples(partition, irrep)
    i_mo = occ_mo(partition, irrep)
    am = act_mo(partition)
    x, y, z = triples[:, 0], triples[:, 1], triples[:, 2]
    if i_mo.size == 0 or triples.shape[0] == 0:
        return np.zeros((i_mo.size, triples.shape[0]), dtype=np.float64)

    # (ix|zy)
    work = eri.mo(i_mo[:, None], am[x][None, :], am[z][None, :], am[y][None, :])
    m_iw = mat[np.ix_(i_mo, am)]
    target = -m_iw @ rdms.dm2[x, y, :, z].T
    target += 2.0 * m_iw[:, x] * rdms.dm1[y, z][None, :]
    target -= m_iw[:, y] * rdms.dm1[x, z][None, :]
    target += work @ metrics.saa[irrep]
    return target


def _rhs_c(partition, layout, mat, eri, rdms, metrics, irrep):
    triples = active_triples(partition, irrep)
    a_mo = vir_mo(partition, irrep)
    am = act_mo(partition)
    x, y, z = triples[:, 0], triples[:, 1], triples[:, 2]
    if a_mo.size == 0 or triples.shape[0] == 0:
        return np.zeros((a_mo.size, triples.shape[0]), dtype=np.float64)

    # (zy|xa)
    work = eri.mo(am[z][None, :], am[y][None, :], am[x][None, :], a_mo[:, None])
    m_wa = mat[np.ix_(am, a_mo)]
    target = m_wa.T @ rdms.dm2[:, y, x, z]
    target += (x == y)[None, :] * (m_wa.T @ rdms.dm1[:, z])
    target += work @ metrics.scc[irrep]
    return target


def _rhs_d(rhs, partition, layout, mat, eri, rdms, metrics, irrep):
    """Fill the D1 and D2 halves of block ``(D, irrep)`` in place."""
    pairs = active_pairs_d(partition, irrep)
    i_mo, a_mo = occ_vir_pairs(partition, irrep)
    am = act_mo(partition)
    half = pairs.shape[0]
    if layout.size(ExcitationClass.D, irrep) != i_mo.size * 2 * half:
        raise RuntimeError(
            f"internal error: D irrep {irrep} has {i_mo.size} x {2 * half} elements, "
            f"layout has {layout.size(ExcitationClass.D, irrep)}"
        )
    if i_mo.size == 0 or half == 0:
        return
    x, y = pairs[:, 0], pairs[:, 1]
    xm, ym = am[x][None, :], am[y][None, :]
    ii, aa = i_mo[:, None], a_mo[:, None]

    work = {
        DSubBlock.D1: eri.mo(ym, xm, ii, aa),  # (ia|yx)
        DSubBlock.D2: eri.mo(ii, xm, ym, aa),  # (ix|ya)
    }
    # MAT[i,a] only survives for Ii == Ia
    if irrep == 0:
        value = np.outer(mat[i_mo, a_mo], rdms.dm1[x, y])
    else:
        value = np.zeros((i_mo.size, half), dtype=np.float64)
    prefactor = {DSubBlock.D1: 2.0, DSubBlock.D2: -1.0}

    for sub in DSubBlock:
        target = layout.d_subblock(rhs, irrep, sub)
        target[:] = prefactor[sub] * value
        for col in DSubBlock:
            target += work[col] @ metrics.sdd_block(irrep, col, sub)


def _rhs_b(partition, layout, mat, eri, rdms, metrics, irrep, triplet):
    pairs = active_pairs_bf(partition, irrep, triplet)
    occ = orbital_pairs(partition, "occ", irrep, triplet)
    am = act_mo(partition)
    xm, ym = am[pairs[:, 0]][None, :], am[pairs[:, 1]][None, :]
    # (ix|jy)
    work = eri.mo(occ.first[:, None], xm, occ.second[:, None], ym)
    return work @ metrics.sbb(irrep, triplet)


def _rhs_f(partition, layout, mat, eri, rdms, metrics, irrep, triplet):
    pairs = active_pairs_bf(partition, irrep, triplet)
    vir = orbital_pairs(partition, "vir", irrep, triplet)
    am = act_mo(partition)
    xm, ym = am[pairs[:, 0]][None, :], am[pairs[:, 1]][None, :]
    # (xa|yb)
    work = eri.mo(xm, vir.first[:, None], ym, vir.second[:, None])
    return work @ metrics.sff(irrep, triplet)


# ---------------------------------------------------------------------------
# Classes with an explicit active index (E, G) and the external class H
# ---------------------------------------------------------------------------

def _rhs_e(partition, layout, mat, eri, rdms, metrics, irrep, triplet):
    w_mo = act_mo(partition)[partition.act_slice(irrep)][None, None, :]
    see = metrics.see[irrep]
    out = []
    for irrep_a in range(partition.num_irreps):
        a_mo = vir_mo(partition, irrep_a)
        occ = orbital_pairs(partition, "occ", direct_prod(irrep_a, irrep), triplet)
        if a_mo.size == 0 or len(occ) == 0:
            continue
        i = occ.first[:, None, None]
        j = occ.second[:, None, None]
        a = a_mo[None, :, None]
        aj_wi = eri.mo(i, w_mo, j, a)
        ai_wj = eri.mo(j, w_mo, i, a)
        if triplet:
            out.append(3.0 * ((aj_wi - ai_wj) @ see))
        else:
            out.append((aj_wi + ai_wj) @ see)
    return out


def _rhs_g(partition, layout, mat, eri, rdms, metrics, irrep, triplet):
    u_mo = act_mo(partition)[partition.act_slice(irrep)][None, None, :]
    sgg = metrics.sgg[irrep]
    out = []
    for irrep_i in range(partition.num_irreps):
        i_mo = occ_mo(partition, irrep_i)
        vir = orbital_pairs(partition, "vir", direct_prod(irrep_i, irrep), triplet)
        if i_mo.size == 0 or len(vir) == 0:
            continue
        a = vir.first[:, None, None]
        b = vir.second[:, None, None]
        i = i_mo[None, :, None]
        ai_bu = eri.mo(i, a, u_mo, b)
        bi_au = eri.mo(i, b, u_mo, a)
        if triplet:
            out.append(3.0 * ((ai_bu - bi_au) @ sgg))
        else:
            out.append((ai_bu + bi_au) @ sgg)
    return out


def _rhs_h(partition, layout, mat, eri, rdms, metrics, irrep, triplet):
    occ = orbital_pairs(partition, "occ", irrep, triplet)
    vir = orbital_pairs(partition, "vir", irrep, triplet)
    out = []
    for _, _, o_start, o_stop in occ.groups:
        i = occ.first[o_start:o_stop][None, :]
        j = occ.second[o_start:o_stop][None, :]
        for _, _, v_start, v_stop in vir.groups:
            a = vir.first[v_start:v_stop][:, None]
            b = vir.second[v_start:v_stop][:, None]
            ai_bj = eri.mo(i, a, j, b)
            aj_bi = eri.mo(j, a, i, b)
            if triplet:
                out.append(6.0 * (ai_bj - aj_bi))
            else:
                out.append(2.0 * (ai_bj + aj_bi))
    return out


_PAIR_BUILDERS = {
    ExcitationClass.B_SINGLET: (_rhs_b, False),
    ExcitationClass.B_TRIPLET: (_rhs_b, True),
    ExcitationClass.E_SINGLET: (_rhs_e, False),
    ExcitationClass.E_TRIPLET: (_rhs_e, True),
    ExcitationClass.F_SINGLET: (_rhs_f, False),
    ExcitationClass.F_TRIPLET: (_rhs_f, True),
    ExcitationClass.G_SINGLET: (_rhs_g, False),
    ExcitationClass.G_TRIPLET: (_rhs_g, True),
    ExcitationClass.H_SINGLET: (_rhs_h, False),
    ExcitationClass.H_TRIPLET: (_rhs_h, True),
}


def build_rhs(
    partition: OrbitalSpacePartition,
    layout: BlockLayout,
    oei: IrrepBlockMatrix,
    eri: DenseERI,
    rdms: ReducedDensityMatrices,
    metrics: MetricBlocks,
) -> np.ndarray:
    """Assemble the full right-hand-side vector.

    Parameters
    ----------
    oei : IrrepBlockMatrix
        One-electron integrals per irrep.
    eri : DenseERI
        Two-electron integrals ``(pq|rs)``.
    metrics : MetricBlocks
        Overlap blocks; the A/B/C/D/F workspaces are contracted with them.

    Returns
    -------
    rhs : (total_size,) array
    """
    mat = build_closed_shell_hamiltonian(partition, oei, eri)
    rhs = np.zeros(layout.total_size, dtype=np.float64)
    args = (partition, layout, mat, eri, rdms, metrics)

    for h in range(partition.num_irreps):
        _store(rhs, layout, ExcitationClass.A, h, _rhs_a(*args, h))
        _store(rhs, layout, ExcitationClass.C, h, _rhs_c(*args, h))
        _rhs_d(rhs, *args, h)
        for case, (builder, triplet) in _PAIR_BUILDERS.items():
            _store(rhs, layout, case, h, builder(*args, h, triplet))
    return rhs


__all__ = ["build_closed_shell_hamiltonian", "build_rhs"]
