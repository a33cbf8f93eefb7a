"""Shared fixtures: quasi-free reference states and random symmetry-adapted integrals."""

from __future__ import annotations

import itertools

import numpy as np
import pytest

from icpt2.integrals import DenseERI, IrrepBlockMatrix
from icpt2.orbitals import OrbitalSpacePartition
from icpt2.rdm import ReducedDensityMatrices

_LETTERS = "abcdefgh"


def _perm_sign_and_cycles(perm: tuple[int, ...]) -> tuple[int, int]:
    seen = [False] * len(perm)
    cycles = 0
    for start in range(len(perm)):
        if seen[start]:
            continue
        cycles += 1
        k = start
        while not seen[k]:
            seen[k] = True
            k = perm[k]
    sign = -1 if (len(perm) - cycles) % 2 else 1
    return sign, cycles


def spin_summed_rdm(gamma: np.ndarray, k: int) -> np.ndarray:
    """k-RDM of the quasi-free state with spatial 1-body matrix ``gamma``.

    Wick's theorem gives a determinant of ``gamma`` per spin assignment;
    summing spins weights each permutation by 2**(number of cycles).
    """
    las = gamma.shape[0]
    out = np.zeros((las,) * (2 * k), dtype=np.float64)
    cre = _LETTERS[:k]
    ann = _LETTERS[k : 2 * k]
    for perm in itertools.permutations(range(k)):
        sign, cycles = _perm_sign_and_cycles(perm)
        subs = ",".join(cre[i] + ann[perm[i]] for i in range(k)) + "->" + cre + ann
        out += sign * (2.0**cycles) * np.einsum(subs, *([gamma] * k))
    return out


def _random_symmetric(rng: np.random.Generator, n: int, scale: float = 1.0) -> np.ndarray:
    a = rng.normal(size=(n, n)) * scale
    return 0.5 * (a + a.T)


def _quasi_free_gamma(rng: np.random.Generator, partition: OrbitalSpacePartition, occupations=None) -> np.ndarray:
    las = partition.las
    gamma = np.zeros((las, las), dtype=np.float64)
    for h in range(partition.num_irreps):
        n = partition.nact[h]
        if n == 0:
            continue
        s = partition.act_slice(h)
        if occupations is None:
            q, _ = np.linalg.qr(rng.normal(size=(n, n)))
            occ = rng.uniform(0.05, 0.95, size=n)
            gamma[s, s] = (q * occ) @ q.T
        else:
            gamma[s, s] = np.diag(np.asarray(occupations[h], dtype=np.float64))
    return gamma


def _make_system(partition: OrbitalSpacePartition, seed: int = 7, occupations=None):
    rng = np.random.default_rng(seed)
    nmo = partition.nmo
    gamma = _quasi_free_gamma(rng, partition, occupations)

    fock_blocks = []
    oei_blocks = []
    for h in range(partition.num_irreps):
        n = partition.norb(h)
        o, a = partition.nocc[h], partition.nact[h]
        f = _random_symmetric(rng, n, 0.1)
        f[:o, :o] = np.diag(np.sort(rng.uniform(-2.0, -0.5, size=o)))
        f[o : o + a, o : o + a] = _random_symmetric(rng, a, 0.3)
        f[o + a :, o + a :] = np.diag(np.sort(rng.uniform(0.5, 2.0, size=n - o - a)))
        fock_blocks.append(f)
        oei_blocks.append(_random_symmetric(rng, n))
    fock = IrrepBlockMatrix.from_blocks(partition, fock_blocks)
    oei = IrrepBlockMatrix.from_blocks(partition, oei_blocks)

    eri = rng.normal(size=(nmo,) * 4) * 0.1
    eri = eri + eri.transpose(1, 0, 2, 3)
    eri = eri + eri.transpose(0, 1, 3, 2)
    eri = eri + eri.transpose(2, 3, 0, 1)
    irr = np.repeat(np.arange(partition.num_irreps), [partition.norb(h) for h in range(partition.num_irreps)])
    allowed = (irr[:, None, None, None] ^ irr[None, :, None, None] ^ irr[None, None, :, None] ^ irr[None, None, None, :]) == 0
    eri = DenseERI.from_array(partition, eri * allowed)

    f_act = np.zeros((partition.las, partition.las))
    for h in range(partition.num_irreps):
        s = partition.act_slice(h)
        o, a = partition.nocc[h], partition.nact[h]
        f_act[s, s] = fock_blocks[h][o : o + a, o : o + a]

    dm1 = spin_summed_rdm(gamma, 1)
    dm2 = spin_summed_rdm(gamma, 2)
    dm3 = spin_summed_rdm(gamma, 3)
    dm4 = spin_summed_rdm(gamma, 4)
    f4 = np.einsum("rc,ijkrlmnc->ijklmn", f_act, dm4, optimize=True)
    rdms = ReducedDensityMatrices.from_arrays(partition.las, dm1, dm2, dm3, f4)

    return {"partition": partition, "fock": fock, "oei": oei, "eri": eri, "rdms": rdms, "f_act": f_act}


@pytest.fixture
def make_system():
    return _make_system


@pytest.fixture
def c2v_partition() -> OrbitalSpacePartition:
    # Four irreps with one empty active irrep.
    return OrbitalSpacePartition(nocc=(2, 1, 1, 0), nact=(1, 1, 0, 1), nvirt=(2, 1, 1, 1))


@pytest.fixture
def c1_partition() -> OrbitalSpacePartition:
    return OrbitalSpacePartition(nocc=(2,), nact=(3,), nvirt=(2,))
