"""Result containers returned by the CASPT2 operator."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SelfCheckResult:
    """Diagnostics evaluated on the right-hand-side vector v."""

    v_dot_v: float   # v^T v
    v_s2_v: float    # v^T S S v
    v_f2_v: float    # v^T (F - <F> S)^2 v, A/C blocks only


__all__ = ["SelfCheckResult"]
