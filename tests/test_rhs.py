from __future__ import annotations

import itertools

import numpy as np
import pytest

from icpt2.caspt2 import DSubBlock, ExcitationClass, build_closed_shell_hamiltonian, build_metric_blocks, build_rhs, compute_layout
from icpt2.integrals import DenseERI, IrrepBlockMatrix
from icpt2.symmetry import iter_pairs


def _rhs(system):
    part = system["partition"]
    layout = compute_layout(part)
    metrics = build_metric_blocks(part, layout, system["rdms"])
    rhs = build_rhs(part, layout, system["oei"], system["eri"], system["rdms"], metrics)
    return layout, metrics, rhs


def test_closed_shell_hamiltonian_c1(make_system, c1_partition):
    system = make_system(c1_partition)
    eri, oei = system["eri"], system["oei"]
    nocc, nmo = c1_partition.nocc[0], c1_partition.nmo
    expected = np.array(oei.block(0))
    for p in range(nmo):
        for q in range(nmo):
            for k in range(nocc):
                expected[p, q] += 2.0 * eri.get_coulomb(0, 0, 0, 0, p, q, k, k)
                expected[p, q] -= eri.get_coulomb(0, 0, 0, 0, p, k, k, q)
    mat = build_closed_shell_hamiltonian(c1_partition, oei, eri)
    assert np.allclose(mat, expected)


def test_closed_shell_hamiltonian_is_irrep_blocked(make_system, c2v_partition):
    system = make_system(c2v_partition)
    mat = build_closed_shell_hamiltonian(c2v_partition, system["oei"], system["eri"])
    assert np.allclose(mat, mat.T)
    for h in range(4):
        o, n = c2v_partition.orb_offset(h), c2v_partition.norb(h)
        off = mat[o : o + n].copy()
        off[:, o : o + n] = 0.0
        assert np.all(off == 0.0)


def test_a_block_c1(make_system, c1_partition):
    system = make_system(c1_partition)
    layout, metrics, rhs = _rhs(system)
    eri, rdms = system["eri"], system["rdms"]
    mat = build_closed_shell_hamiltonian(c1_partition, system["oei"], eri)
    nocc, las = c1_partition.nocc[0], c1_partition.las
    triples = [(t, u, v) for v in range(las) for u in range(las) for t in range(las)]

    work = np.zeros((nocc, len(triples)))
    for i in range(nocc):
        for col, (x, y, z) in enumerate(triples):
            work[i, col] = eri.get_coulomb(0, 0, 0, 0, i, nocc + x, nocc + z, nocc + y)
    expected = work @ metrics.saa[0]
    for i in range(nocc):
        for col, (t, u, v) in enumerate(triples):
            for w in range(las):
                m_iw = mat[i, nocc + w]
                expected[i, col] += m_iw * (
                    2.0 * (t == w) * rdms.dm1[u, v] - rdms.dm2[t, u, w, v] - (w == u) * rdms.dm1[t, v]
                )
    block = layout.segment(rhs, ExcitationClass.A, 0).reshape(nocc, -1)
    assert np.allclose(block, expected)


def test_e_and_h_singlet_blocks_c1(make_system, c1_partition):
    system = make_system(c1_partition)
    layout, metrics, rhs = _rhs(system)
    eri = system["eri"]
    o, a_ = c1_partition.nocc[0], c1_partition.nact[0]
    v0 = c1_partition.n_oa(0)
    nvirt = c1_partition.nvirt[0]

    def g(p, q, r, s):
        return eri.get_coulomb(0, 0, 0, 0, p, q, r, s)

    expected_e = []
    for i, j in iter_pairs(o, triplet=False):
        for a in range(nvirt):
            work = np.array([g(i, o + w, j, v0 + a) + g(j, o + w, i, v0 + a) for w in range(a_)])
            expected_e.append(work @ metrics.see[0])
    block_e = layout.segment(rhs, ExcitationClass.E_SINGLET, 0)
    assert np.allclose(block_e, np.concatenate(expected_e))

    expected_h = []
    for a, b in iter_pairs(nvirt, triplet=False):
        for i, j in iter_pairs(o, triplet=False):
            expected_h.append(2.0 * (g(v0 + a, i, v0 + b, j) + g(v0 + a, j, v0 + b, i)))
    assert np.allclose(layout.segment(rhs, ExcitationClass.H_SINGLET, 0), expected_h)

    expected_ht = []
    for a, b in iter_pairs(nvirt, triplet=True):
        for i, j in iter_pairs(o, triplet=True):
            expected_ht.append(6.0 * (g(v0 + a, i, v0 + b, j) - g(v0 + a, j, v0 + b, i)))
    assert np.allclose(layout.segment(rhs, ExcitationClass.H_TRIPLET, 0), expected_ht)


def test_zero_integrals_give_zero_rhs(make_system, c2v_partition):
    system = make_system(c2v_partition)
    nmo = c2v_partition.nmo
    system["oei"] = IrrepBlockMatrix.from_full(c2v_partition, np.zeros((nmo, nmo)))
    system["eri"] = DenseERI.from_array(c2v_partition, np.zeros((nmo,) * 4))
    layout, _, rhs = _rhs(system)
    assert rhs.shape == (layout.total_size,)
    assert np.all(rhs == 0.0)


def test_rhs_is_linear_in_integrals(make_system, c2v_partition):
    system = make_system(c2v_partition)
    _, _, rhs = _rhs(system)
    system["oei"] = IrrepBlockMatrix(blocks=tuple(2.0 * b for b in system["oei"].blocks))
    system["eri"] = DenseERI.from_array(c2v_partition, 2.0 * system["eri"].eri)
    _, _, rhs2 = _rhs(system)
    assert np.allclose(rhs2, 2.0 * rhs)
    assert np.any(rhs != 0.0)


# ---------------------------------------------------------------------------
# Loop-by-loop references on a four-irrep partition
# ---------------------------------------------------------------------------


def _flat(rows) -> np.ndarray:
    return np.concatenate([np.ravel(r) for r in rows]) if rows else np.empty(0)


def _packed_pairs(counts, h, triplet):
    """((Ii, i), (Ij, j)) in packed order for the pair irrep ``h``."""
    out = []
    if h == 0:
        for irrep, n in enumerate(counts):
            out.extend(((irrep, i), (irrep, j)) for i, j in iter_pairs(n, triplet))
    else:
        for hi in range(len(counts)):
            hj = hi ^ h
            if hi < hj:
                out.extend(((hi, i), (hj, j)) for j in range(counts[hj]) for i in range(counts[hi]))
    return out


def _active_triples(p, h):
    out = []
    for it in range(p.num_irreps):
        for iu in range(p.num_irreps):
            iv = h ^ it ^ iu
            for v in range(p.nact[iv]):
                for u in range(p.nact[iu]):
                    for t in range(p.nact[it]):
                        out.append(((it, t), (iu, u), (iv, v)))
    return out


def _active_d_pairs(p, h):
    out = []
    for it in range(p.num_irreps):
        iu = h ^ it
        out.extend(((it, t), (iu, u)) for u in range(p.nact[iu]) for t in range(p.nact[it]))
    return out


class _Orbitals:
    """Local (per-irrep) and global indices of occupied, active and virtual orbitals."""

    def __init__(self, p):
        self.p = p

    def act(self, label):
        irrep, t = label
        return self.p.nocc[irrep] + t

    def vir(self, label):
        irrep, a = label
        return self.p.n_oa(irrep) + a

    def gact(self, label):
        return self.p.act_offset(label[0]) + label[1]

    def mo(self, irrep, local):
        return self.p.orb_offset(irrep) + local


def _setup(make_system, partition):
    system = make_system(partition, seed=21)
    layout, metrics, rhs = _rhs(system)
    mat = build_closed_shell_hamiltonian(partition, system["oei"], system["eri"])
    eri = system["eri"]

    def g(i1, p, i2, q, i3, r, i4, s):
        return eri.get_coulomb(i1, i2, i3, i4, p, q, r, s)

    return system["rdms"], layout, metrics, rhs, mat, g, _Orbitals(partition)


def test_a_and_c_blocks_c2v(make_system, c2v_partition):
    p = c2v_partition
    rdms, layout, metrics, rhs, mat, g, orb = _setup(make_system, p)
    acts = [(irrep, t) for irrep in range(p.num_irreps) for t in range(p.nact[irrep])]
    for h in range(p.num_irreps):
        triples = _active_triples(p, h)

        ref_a = []
        for i in range(p.nocc[h]):
            work = np.array([g(h, i, x[0], orb.act(x), z[0], orb.act(z), y[0], orb.act(y)) for x, y, z in triples])
            row = work @ metrics.saa[h] if triples else work
            for col, (t, u, v) in enumerate(triples):
                gt, gu, gv = orb.gact(t), orb.gact(u), orb.gact(v)
                for w in acts:
                    gw = orb.gact(w)
                    m_iw = mat[orb.mo(h, i), orb.mo(w[0], orb.act(w))]
                    row[col] += m_iw * (
                        2.0 * (gt == gw) * rdms.dm1[gu, gv] - rdms.dm2[gt, gu, gw, gv] - (gw == gu) * rdms.dm1[gt, gv]
                    )
            ref_a.append(row)
        assert np.allclose(layout.segment(rhs, ExcitationClass.A, h), _flat(ref_a))

        ref_c = []
        for a in range(p.nvirt[h]):
            al = orb.vir((h, a))
            work = np.array([g(z[0], orb.act(z), y[0], orb.act(y), x[0], orb.act(x), h, al) for x, y, z in triples])
            row = work @ metrics.scc[h] if triples else work
            for col, (t, u, v) in enumerate(triples):
                gt, gu, gv = orb.gact(t), orb.gact(u), orb.gact(v)
                for w in acts:
                    gw = orb.gact(w)
                    m_wa = mat[orb.mo(w[0], orb.act(w)), orb.mo(h, al)]
                    row[col] += m_wa * (rdms.dm2[gw, gu, gt, gv] + (gt == gu) * rdms.dm1[gw, gv])
            ref_c.append(row)
        assert np.allclose(layout.segment(rhs, ExcitationClass.C, h), _flat(ref_c))


def test_d_block_halves_c2v(make_system, c2v_partition):
    p = c2v_partition
    rdms, layout, metrics, rhs, mat, g, orb = _setup(make_system, p)
    checked = 0
    for h in range(p.num_irreps):
        pairs = _active_d_pairs(p, h)
        half = len(pairs)
        rows = []
        for hi in range(p.num_irreps):
            ha = hi ^ h
            for a in range(p.nvirt[ha]):
                al = orb.vir((ha, a))
                for i in range(p.nocc[hi]):
                    ia_yx = [g(hi, i, ha, al, y[0], orb.act(y), x[0], orb.act(x)) for x, y in pairs]
                    ix_ya = [g(hi, i, x[0], orb.act(x), y[0], orb.act(y), ha, al) for x, y in pairs]
                    row = np.array(ia_yx + ix_ya) @ metrics.sdd[h] if pairs else np.empty(0)
                    m_ia = mat[orb.mo(hi, i), orb.mo(ha, al)]
                    d = np.array([rdms.dm1[orb.gact(x), orb.gact(y)] for x, y in pairs])
                    if half:
                        row[:half] += 2.0 * m_ia * d
                        row[half:] -= m_ia * d
                    rows.append(row)
        ref = np.array(rows).reshape(len(rows), 2 * half)
        assert np.allclose(layout.d_subblock(rhs, h, DSubBlock.D1), ref[:, :half])
        assert np.allclose(layout.d_subblock(rhs, h, DSubBlock.D2), ref[:, half:])
        checked += ref.size
    assert checked > 0


@pytest.mark.parametrize("triplet", [False, True])
def test_b_and_f_blocks_c2v(make_system, c2v_partition, triplet):
    p = c2v_partition
    _, layout, metrics, rhs, _, g, orb = _setup(make_system, p)
    case_b = ExcitationClass.B_TRIPLET if triplet else ExcitationClass.B_SINGLET
    case_f = ExcitationClass.F_TRIPLET if triplet else ExcitationClass.F_SINGLET
    for h in range(p.num_irreps):
        act_pairs = _packed_pairs(p.nact, h, triplet)

        ref_b = []
        for (hi, i), (hj, j) in _packed_pairs(p.nocc, h, triplet):
            work = np.array([g(hi, i, x[0], orb.act(x), hj, j, y[0], orb.act(y)) for x, y in act_pairs])
            ref_b.append(work @ metrics.sbb(h, triplet) if act_pairs else work)
        assert np.allclose(layout.segment(rhs, case_b, h), _flat(ref_b))

        ref_f = []
        for a, b in _packed_pairs(p.nvirt, h, triplet):
            work = np.array(
                [g(x[0], orb.act(x), a[0], orb.vir(a), y[0], orb.act(y), b[0], orb.vir(b)) for x, y in act_pairs]
            )
            ref_f.append(work @ metrics.sff(h, triplet) if act_pairs else work)
        assert np.allclose(layout.segment(rhs, case_f, h), _flat(ref_f))


@pytest.mark.parametrize("triplet", [False, True])
def test_e_and_g_blocks_c2v(make_system, c2v_partition, triplet):
    p = c2v_partition
    _, layout, metrics, rhs, _, g, orb = _setup(make_system, p)
    sign, scale = (-1.0, 3.0) if triplet else (1.0, 1.0)
    case_e = ExcitationClass.E_TRIPLET if triplet else ExcitationClass.E_SINGLET
    case_g = ExcitationClass.G_TRIPLET if triplet else ExcitationClass.G_SINGLET
    for h in range(p.num_irreps):
        acts = [(h, w) for w in range(p.nact[h])]

        ref_e = []
        for ha in range(p.num_irreps):
            for (hi, i), (hj, j) in _packed_pairs(p.nocc, ha ^ h, triplet):
                for a in range(p.nvirt[ha]):
                    al = orb.vir((ha, a))
                    work = np.array(
                        [
                            g(hi, i, h, orb.act(w), hj, j, ha, al) + sign * g(hj, j, h, orb.act(w), hi, i, ha, al)
                            for w in acts
                        ]
                    )
                    ref_e.append(scale * (work @ metrics.see[h]) if acts else work)
        assert np.allclose(layout.segment(rhs, case_e, h), _flat(ref_e))

        ref_g = []
        for hi in range(p.num_irreps):
            for a, b in _packed_pairs(p.nvirt, hi ^ h, triplet):
                for i in range(p.nocc[hi]):
                    # (ai|bu) +/- (bi|au)
                    work = np.array(
                        [
                            g(a[0], orb.vir(a), hi, i, b[0], orb.vir(b), h, orb.act(u))
                            + sign * g(b[0], orb.vir(b), hi, i, a[0], orb.vir(a), h, orb.act(u))
                            for u in acts
                        ]
                    )
                    ref_g.append(scale * (work @ metrics.sgg[h]) if acts else work)
        assert np.allclose(layout.segment(rhs, case_g, h), _flat(ref_g))


@pytest.mark.parametrize("triplet", [False, True])
def test_h_blocks_c2v(make_system, c2v_partition, triplet):
    p = c2v_partition
    _, layout, _, rhs, _, g, orb = _setup(make_system, p)
    case = ExcitationClass.H_TRIPLET if triplet else ExcitationClass.H_SINGLET
    sign, scale = (-1.0, 6.0) if triplet else (1.0, 2.0)
    nonzero = False
    for h in range(p.num_irreps):
        occ = _packed_pairs(p.nocc, h, triplet)
        vir = _packed_pairs(p.nvirt, h, triplet)
        occ_groups = [list(grp) for _, grp in itertools.groupby(occ, key=lambda pr: (pr[0][0], pr[1][0]))]
        vir_groups = [list(grp) for _, grp in itertools.groupby(vir, key=lambda pr: (pr[0][0], pr[1][0]))]
        ref = []
        for og in occ_groups:
            for vg in vir_groups:
                for a, b in vg:
                    al, bl = orb.vir(a), orb.vir(b)
                    for (hi, i), (hj, j) in og:
                        ai_bj = g(a[0], al, hi, i, b[0], bl, hj, j)
                        aj_bi = g(a[0], al, hj, j, b[0], bl, hi, i)
                        ref.append(scale * (ai_bj + sign * aj_bi))
        got = layout.segment(rhs, case, h)
        assert np.allclose(got, ref)
        nonzero = nonzero or (h != 0 and np.any(got != 0.0))
    assert nonzero
