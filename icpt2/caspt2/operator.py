"""Linear operators of the symmetry-blocked IC-CASPT2 first-order equations.

:class:`CASPT2` assembles, once, every block an external iterative solver
needs to solve

    (F - E_0 S) t = -V

and exposes ``apply_overlap`` (S v) and ``matvec`` (the shifted Fock
operator). The second-order energy is ``t . V``.

Class couplings of the Fock operator (OK: applied, x: non-zero but not
applied, GRAD: only through the gradient of the Fock matrix, 0: vanishes):

             A   Bs  Bt  C   D1  D2  Es   Et   Fs  Ft  Gs   Gt   Hs   Ht
    A        OK  x   x   0   x   x   GRAD GRAD 0   0   0    0    0    0
    Bs       x   x   x   0   0   0   x    x    0   0   0    0    0    0
    Bt       x   x   x   0   0   0   x    x    0   0   0    0    0    0
    C        0   0   0   OK  x   x   0    0    x   x   GRAD GRAD 0    0
    D1       x   0   0   x   x   x   x    x    0   0   x    x    GRAD GRAD
    D2       x   0   0   x   x   x   x    x    0   0   x    x    GRAD GRAD
    Es       GRAD x  x   0   x   x   x    x    0   0   0    0    x    x
    Et       GRAD x  x   0   x   x   x    x    0   0   0    0    x    x
    Fs       0   0   0   x   0   0   0    0    x   x   x    x    0    0
    Ft       0   0   0   x   0   0   0    0    x   x   x    x    0    0
    Gs       0   0   0   GRAD x  x   0    0    x   x   x    x    x    x
    Gt       0   0   0   GRAD x  x   0    0    x   x   x    x    x    x
    Hs       0   0   0   0   GRAD GRAD x  x    0   0   x    x    x    x
    Ht       0   0   0   0   GRAD GRAD x  x    0   0   x    x    x    x

Only the A-A and C-C blocks are applied by :meth:`CASPT2.matvec`; every
other block of its result is zero.
"""

from __future__ import annotations

import os

import numpy as np
from scipy.sparse.linalg import LinearOperator

from icpt2.caspt2.cases import DSubBlock, ExcitationClass
from icpt2.caspt2.fock import build_faa_fcc, build_fock_contractions
from icpt2.caspt2.helpers import OverlapHelperTable
from icpt2.caspt2.layout import BlockLayout, compute_layout
from icpt2.caspt2.overlap import build_metric_blocks
from icpt2.caspt2.result import SelfCheckResult
from icpt2.caspt2.rhs import build_rhs
from icpt2.caspt2.superindex import orbital_pairs
from icpt2.integrals import DenseERI, IrrepBlockMatrix
from icpt2.orbitals import OrbitalSpacePartition
from icpt2.rdm import ReducedDensityMatrices
from icpt2.symmetry import direct_prod


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name, None)
    if raw is None:
        return bool(default)
    return str(raw).strip().lower() not in ("0", "false", "no", "off")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, None)
    if raw is None or str(raw).strip() == "":
        return int(default)
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got: {raw!r}") from e


_B_CASES = (ExcitationClass.B_SINGLET, ExcitationClass.B_TRIPLET)
_F_CASES = (ExcitationClass.F_SINGLET, ExcitationClass.F_TRIPLET)
_E_CASES = (ExcitationClass.E_SINGLET, ExcitationClass.E_TRIPLET)
_G_CASES = (ExcitationClass.G_SINGLET, ExcitationClass.G_TRIPLET)


class CASPT2:
    """Overlap and shifted-Fock operators over the flat first-order vector.

    Parameters
    ----------
    partition : OrbitalSpacePartition
        Occupied/active/virtual counts per irrep.
    fock : IrrepBlockMatrix
        Fock matrix; diagonal in its occupied and virtual sub-blocks.
    oei : IrrepBlockMatrix
        One-electron integrals.
    eri : DenseERI
        Two-electron integrals ``(pq|rs)``.
    rdms : ReducedDensityMatrices
        Active 1/2/3-RDMs and the Fock-contracted 4-RDM.
    verbose : int | None
        Print level; defaults to ``$ICPT2_VERBOSE`` (0).
    self_check : bool | None
        Evaluate :meth:`self_check` at construction; defaults to
        ``$ICPT2_SELF_CHECK`` (on).
    """

    def __init__(
        self,
        partition: OrbitalSpacePartition,
        fock: IrrepBlockMatrix,
        oei: IrrepBlockMatrix,
        eri: DenseERI,
        rdms: ReducedDensityMatrices,
        *,
        verbose: int | None = None,
        self_check: bool | None = None,
    ) -> None:
        if verbose is None:
            verbose = _env_int("ICPT2_VERBOSE", 0)
        if self_check is None:
            self_check = _env_bool("ICPT2_SELF_CHECK", True)
        if rdms.las != partition.las:
            raise ValueError(f"RDM size mismatch: LAS={rdms.las}, partition has {partition.las} active orbitals")
        for name, mat in (("fock", fock), ("oei", oei)):
            if len(mat.blocks) != partition.num_irreps:
                raise ValueError(f"{name} has {len(mat.blocks)} irrep blocks, expected {partition.num_irreps}")
        if eri.eri.shape != (partition.nmo,) * 4:
            raise ValueError(f"eri shape mismatch: got {eri.eri.shape}, expected {(partition.nmo,) * 4}")

        self.partition = partition
        self.fock = fock
        self.verbose = int(verbose)

        self.fdots = build_fock_contractions(partition, fock, rdms, verbose=self.verbose)
        self.e_fock = self.fdots.e_fock
        self.layout: BlockLayout = compute_layout(partition, verbose=self.verbose)
        self.metrics = build_metric_blocks(partition, self.layout, rdms, verbose=self.verbose)
        self.vector_rhs = build_rhs(partition, self.layout, oei, eri, rdms, self.metrics)
        self.helpers = OverlapHelperTable.build(partition)
        self.faa, self.fcc = build_faa_fcc(partition, self.layout, self.fdots, rdms, self.metrics)
        self._h0_weight = self._build_h0_weight()

        self.self_check_result: SelfCheckResult | None = None
        if self_check:
            self.self_check_result = self.self_check()

    @property
    def total_size(self) -> int:
        return self.layout.total_size

    def segment(self, vector: np.ndarray, case: ExcitationClass, irrep: int) -> np.ndarray:
        return self.layout.segment(vector, ExcitationClass(case), irrep)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_vector(self, vector, name: str) -> np.ndarray:
        arr = np.asarray(vector, dtype=np.float64).reshape(-1)
        if arr.size != self.total_size:
            raise ValueError(f"{name} length mismatch: got {arr.size}, expected {self.total_size}")
        return arr

    def _prepare_out(self, out, vector: np.ndarray) -> np.ndarray:
        if out is None:
            return np.zeros(self.total_size, dtype=np.float64)
        if not isinstance(out, np.ndarray) or out.dtype != np.float64 or out.shape != (self.total_size,):
            raise ValueError(f"out must be a float64 array of shape ({self.total_size},)")
        # out is zeroed before vector is read
        if np.shares_memory(out, vector):
            raise ValueError("out must not overlap the input vector")
        out[:] = 0.0
        return out

    def _build_h0_weight(self) -> np.ndarray:
        """Elementwise H-singlet overlap of the totally symmetric irrep."""
        occ = orbital_pairs(self.partition, "occ", 0, False)
        vir = orbital_pairs(self.partition, "vir", 0, False)
        pieces = []
        for _, _, o0, o1 in occ.groups:
            for _, _, v0, v1 in vir.groups:
                pieces.append(4.0 * np.outer(self.helpers.vir[v0:v1], self.helpers.occ[o0:o1]).ravel())
        weight = np.concatenate(pieces) if pieces else np.empty(0, dtype=np.float64)
        size = self.layout.size(ExcitationClass.H_SINGLET, 0)
        if weight.size != size:
            raise RuntimeError(f"internal error: H singlet irrep 0 weights {weight.size} != block size {size}")
        return weight

    # ------------------------------------------------------------------
    # Overlap
    # ------------------------------------------------------------------

    def apply_overlap(self, vector, out: np.ndarray | None = None) -> np.ndarray:
        """Return S @ vector, block by block.

        Pair classes carry the normalization of their spin coupling: 2 for
        singlet B/E/F/G (4 for H), doubled again on diagonal pairs of the
        totally symmetric pair space; 2 for triplet B/F, 6 for triplet E/G
        and 12 for triplet H.
        """
        v = self._check_vector(vector, "vector")
        res = self._prepare_out(out, v)
        p, lay, m, hlp = self.partition, self.layout, self.metrics, self.helpers

        for h in range(p.num_irreps):
            for case, nrow, smat in (
                (ExcitationClass.A, p.nocc[h], m.saa[h]),
                (ExcitationClass.C, p.nvirt[h], m.scc[h]),
            ):
                if lay.size(case, h) == 0:
                    continue
                x = lay.segment(v, case, h).reshape(nrow, -1)
                lay.segment(res, case, h)[:] = (x @ smat.T).ravel()

            if lay.size(ExcitationClass.D, h) > 0:
                for sub in DSubBlock:
                    target = lay.d_subblock(res, h, sub)
                    for col in DSubBlock:
                        target += lay.d_subblock(v, h, col) @ m.sdd_block(h, sub, col).T

            for cases, smats, counts, helper in (
                (_B_CASES, (m.sbb_singlet[h], m.sbb_triplet[h]), lay.occ_pair_count, hlp.occ),
                (_F_CASES, (m.sff_singlet[h], m.sff_triplet[h]), lay.vir_pair_count, hlp.vir),
            ):
                for case, smat, triplet in zip(cases, smats, (False, True)):
                    if lay.size(case, h) == 0:
                        continue
                    x = lay.segment(v, case, h).reshape(counts(h, triplet), -1)
                    if h == 0 and not triplet:
                        alpha = 2.0 * helper
                    else:
                        alpha = np.full(x.shape[0], 2.0)
                    lay.segment(res, case, h)[:] = (alpha[:, None] * (x @ smat.T)).ravel()

            for case, triplet in zip(_E_CASES, (False, True)):
                self._apply_one_active(v, res, case, h, triplet, m.see[h], "occ")
            for case, triplet in zip(_G_CASES, (False, True)):
                self._apply_one_active(v, res, case, h, triplet, m.sgg[h], "vir")

            x = lay.segment(v, ExcitationClass.H_SINGLET, h)
            if h == 0:
                lay.segment(res, ExcitationClass.H_SINGLET, h)[:] = self._h0_weight * x
            else:
                lay.segment(res, ExcitationClass.H_SINGLET, h)[:] = 4.0 * x
            x = lay.segment(v, ExcitationClass.H_TRIPLET, h)
            lay.segment(res, ExcitationClass.H_TRIPLET, h)[:] = 12.0 * x

        return res

    def _apply_one_active(self, v, res, case, irrep, triplet, smat, pair_space):
        """E (occupied pairs x virtual) and G (virtual pairs x occupied) blocks."""
        p, lay = self.partition, self.layout
        nt = p.nact[irrep]
        if lay.size(case, irrep) == 0:
            return
        origin = lay.segment(v, case, irrep)
        target = lay.segment(res, case, irrep)
        helper = self.helpers.occ if pair_space == "occ" else self.helpers.vir
        start = 0
        for h_ext in range(p.num_irreps):
            pair_irrep = direct_prod(h_ext, irrep)
            if pair_space == "occ":
                npair = lay.occ_pair_count(pair_irrep, triplet)
                next_ = p.nvirt[h_ext]
            else:
                npair = lay.vir_pair_count(pair_irrep, triplet)
                next_ = p.nocc[h_ext]
            stop = start + npair * next_ * nt
            if stop == start:
                continue
            x = origin[start:stop].reshape(npair, next_, nt)
            if triplet:
                alpha = np.full(npair, 6.0)
            elif pair_irrep == 0:
                alpha = 2.0 * helper
            else:
                alpha = np.full(npair, 2.0)
            target[start:stop] = (alpha[:, None, None] * (x @ smat.T)).ravel()
            start = stop
        if start != origin.size:
            raise RuntimeError(
                f"internal error: {ExcitationClass(case).label} irrep {irrep} covered {start} of {origin.size}"
            )

    # ------------------------------------------------------------------
    # Shifted Fock operator
    # ------------------------------------------------------------------

    def matvec(self, vector, shift: float, out: np.ndarray | None = None) -> np.ndarray:
        """Apply the Fock operator plus ``shift`` times the overlap.

        On the A and C blocks this gives ``(F + shift S) v`` with the
        external orbital energy folded in: ``FAA v + (shift - f_ii) SAA v``
        and ``FCC v + (shift + f_aa) SCC v``. Use ``shift = -E_0`` for
        ``(F - E_0 S) v``. All other blocks are returned as zero.
        """
        v = self._check_vector(vector, "vector")
        res = self._prepare_out(out, v)
        p, lay, m = self.partition, self.layout, self.metrics
        shift = float(shift)

        for h in range(p.num_irreps):
            diag = np.diag(self.fock.block(h))
            if lay.size(ExcitationClass.A, h) > 0:
                x = lay.segment(v, ExcitationClass.A, h).reshape(p.nocc[h], -1)
                f_ii = diag[: p.nocc[h]]
                y = x @ self.faa[h].T + (shift - f_ii)[:, None] * (x @ m.saa[h].T)
                lay.segment(res, ExcitationClass.A, h)[:] = y.ravel()
            if lay.size(ExcitationClass.C, h) > 0:
                x = lay.segment(v, ExcitationClass.C, h).reshape(p.nvirt[h], -1)
                f_aa = diag[p.n_oa(h) :]
                y = x @ self.fcc[h].T + (shift + f_aa)[:, None] * (x @ m.scc[h].T)
                lay.segment(res, ExcitationClass.C, h)[:] = y.ravel()
        return res

    # ------------------------------------------------------------------
    # Solver-facing extras
    # ------------------------------------------------------------------

    def self_check(self) -> SelfCheckResult:
        """Norms of v, S v and (F - <F> S) v for v = vector_rhs."""
        v = self.vector_rhs
        sv = self.apply_overlap(v)
        fv = self.matvec(v, -self.e_fock)
        result = SelfCheckResult(
            v_dot_v=float(v @ v),
            v_s2_v=float(sv @ sv),
            v_f2_v=float(fv @ fv),
        )
        if self.verbose >= 1:
            print(f"[CASPT2] v^T * v         = {result.v_dot_v:.12e}")
            print(f"[CASPT2] v^T * S * S * v = {result.v_s2_v:.12e}")
            print(f"[CASPT2] v^T * F * F * v = {result.v_f2_v:.12e}")
        return result

    def overlap_operator(self) -> LinearOperator:
        n = self.total_size
        return LinearOperator((n, n), matvec=self.apply_overlap, rmatvec=self.apply_overlap, dtype=np.float64)

    def shifted_fock_operator(self, shift: float) -> LinearOperator:
        """``x -> matvec(x, shift)`` for scipy Krylov solvers."""
        n = self.total_size

        def _mv(x):
            return self.matvec(x, shift)

        return LinearOperator((n, n), matvec=_mv, rmatvec=_mv, dtype=np.float64)

    def second_order_energy(self, amplitudes) -> float:
        t = self._check_vector(amplitudes, "amplitudes")
        return float(t @ self.vector_rhs)


__all__ = ["CASPT2"]
