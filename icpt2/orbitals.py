"""Per-irrep orbital-space partition (occupied / active / virtual)."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from icpt2.symmetry import direct_prod, is_valid_num_irreps


@dataclass(frozen=True)
class OrbitalSpacePartition:
    """Orbital counts per irrep.

    Within an irrep, orbitals are ordered occupied, active, virtual. The
    global index concatenates irreps in increasing order.
    """

    nocc: tuple[int, ...]
    nact: tuple[int, ...]
    nvirt: tuple[int, ...]

    def __post_init__(self) -> None:
        nocc = tuple(int(x) for x in self.nocc)
        nact = tuple(int(x) for x in self.nact)
        nvirt = tuple(int(x) for x in self.nvirt)
        if not (len(nocc) == len(nact) == len(nvirt)):
            raise ValueError(
                f"nocc/nact/nvirt length mismatch: {len(nocc)}, {len(nact)}, {len(nvirt)}"
            )
        if not is_valid_num_irreps(len(nocc)):
            raise ValueError(f"number of irreps must be 1, 2, 4 or 8, got {len(nocc)}")
        for name, counts in (("nocc", nocc), ("nact", nact), ("nvirt", nvirt)):
            if any(c < 0 for c in counts):
                raise ValueError(f"{name} must be non-negative, got {counts}")
        object.__setattr__(self, "nocc", nocc)
        object.__setattr__(self, "nact", nact)
        object.__setattr__(self, "nvirt", nvirt)

    @property
    def num_irreps(self) -> int:
        return len(self.nocc)

    @property
    def las(self) -> int:
        """Total number of active orbitals."""
        return int(sum(self.nact))

    @property
    def nmo(self) -> int:
        return int(sum(self.norb(h) for h in range(self.num_irreps)))

    def norb(self, irrep: int) -> int:
        return self.nocc[irrep] + self.nact[irrep] + self.nvirt[irrep]

    def n_oa(self, irrep: int) -> int:
        """Local index of the first virtual orbital of ``irrep``."""
        return self.nocc[irrep] + self.nact[irrep]

    def act_offset(self, irrep: int) -> int:
        """Number of active orbitals in irreps below ``irrep``."""
        return int(sum(self.nact[:irrep]))

    def orb_offset(self, irrep: int) -> int:
        """Global index of the first orbital of ``irrep``."""
        return int(sum(self.norb(h) for h in range(irrep)))

    def act_slice(self, irrep: int) -> slice:
        d = self.act_offset(irrep)
        return slice(d, d + self.nact[irrep])

    def act_irreps(self) -> np.ndarray:
        """Irrep label of every active orbital, in global active order."""
        return np.repeat(np.arange(self.num_irreps, dtype=np.int64), self.nact)

    def prod(self, *irreps: int) -> int:
        out = 0
        for h in irreps:
            out = direct_prod(out, h)
        return out


__all__ = ["OrbitalSpacePartition"]
