"""Active-space reduced density matrices.

Conventions (spin-summed, normal ordered):
    dm1[p,q]            = sum_s <a+_ps a_qs>
    dm2[i,j,k,l]        = sum_st <a+_is a+_jt a_lt a_ks>
    dm3[i,j,k,l,m,n]    = sum_stu <a+_is a+_jt a+_ku a_nu a_mt a_ls>
    f_dot_4dm[i,j,k,l,m,n] = sum_xy f_xy dm4[i,j,k,x,l,m,n,y]

Creator ``p`` pairs with annihilator ``p + k`` for a k-body tensor. Flat
input buffers are read in Fortran (first-index-fastest) order, i.e.
``flat[a + L*(b + L*(c + L*d))] == dm2[a, b, c, d]``.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


def _as_tensor(name: str, arr, las: int, rank: int) -> np.ndarray:
    a = np.asarray(arr, dtype=np.float64)
    shape = (las,) * rank
    if a.ndim == 1:
        if a.size != las**rank:
            raise ValueError(f"{name} has {a.size} elements, expected {las**rank} (LAS={las})")
        return np.ascontiguousarray(a.reshape(shape, order="F"))
    if a.shape != shape:
        raise ValueError(f"{name} shape mismatch: got {a.shape}, expected {shape}")
    return np.ascontiguousarray(a)


@dataclass(frozen=True)
class ReducedDensityMatrices:
    """Read-only 1/2/3-RDMs plus the externally contracted Fock-4-RDM."""

    dm1: np.ndarray
    dm2: np.ndarray
    dm3: np.ndarray
    f_dot_4dm: np.ndarray

    @property
    def las(self) -> int:
        return int(self.dm1.shape[0])

    @classmethod
    def from_arrays(cls, las: int, dm1, dm2, dm3, f_dot_4dm) -> "ReducedDensityMatrices":
        """Validate and reshape flat or shaped tensors for ``las`` active orbitals."""
        las = int(las)
        if las < 0:
            raise ValueError(f"las must be non-negative, got {las}")
        return cls(
            dm1=_as_tensor("dm1", dm1, las, 2),
            dm2=_as_tensor("dm2", dm2, las, 4),
            dm3=_as_tensor("dm3", dm3, las, 6),
            f_dot_4dm=_as_tensor("f_dot_4dm", f_dot_4dm, las, 6),
        )


__all__ = ["ReducedDensityMatrices"]
