"""Linear-algebra building blocks shared by the trait and perturbation modules.

  - fundamental_matrix: N = (I - U)^-1, expected visits to each stage
  - dominant_eigen:     lambda, stable distribution w, reproductive value v
  - growth_rate / stable_dist / repro_value: convenience accessors

Uses scipy.linalg so left and right eigenvectors come out of one call.
"""

from __future__ import annotations

import logging

import numpy as np
import scipy.linalg

from mpmdemog.errors import (
    DegenerateModelError,
    NonErgodicError,
    SingularMatrixError,
)
from mpmdemog.types import EigenSystem
from mpmdemog.validation import check_matA, check_matU, resolve_stage

logger = logging.getLogger(__name__)

# Above this condition number (I - U) is treated as singular.
MAX_CONDITION = 1e12
# Relative tolerance for "equal modulus" when checking dominance.
EIG_RTOL = 1e-8


def fundamental_matrix(matU) -> np.ndarray:
    """Fundamental matrix N = (I - U)^-1.

    N[i, j] is the expected number of time steps spent in stage i by an
    individual starting in stage j, before death.

    Raises:
        SingularMatrixError: if (I - U) is singular or numerically so, which
            happens when some stage (or set of stages) never dies.
    """
    U = check_matU(matU)
    M = np.eye(U.shape[0]) - U
    cond = np.linalg.cond(M)
    if not np.isfinite(cond) or cond > MAX_CONDITION:
        raise SingularMatrixError(
            f"(I - U) is singular (condition number {cond:.3g}); "
            "some stages have no mortality"
        )
    try:
        N = scipy.linalg.inv(M)
    except np.linalg.LinAlgError as e:
        raise SingularMatrixError(f"(I - U) could not be inverted: {e}") from e
    if not np.all(np.isfinite(N)):
        raise SingularMatrixError("fundamental matrix has non-finite entries")
    return N


def dominant_eigen(matA, rtol: float = EIG_RTOL) -> EigenSystem:
    """Dominant eigenvalue with its right and left eigenvectors.

    Args:
        matA: (N, N) non-negative projection matrix.
        rtol: Relative tolerance for two eigenvalues having equal modulus.

    Returns:
        EigenSystem(lam, w, v) with sum(w) == 1 and <v, w> == 1.

    Raises:
        NonErgodicError: if more than one eigenvalue attains the maximal
            modulus (imprimitive or reducible with a repeated root), or the
            dominant eigenvalue is not real and positive.
    """
    A = check_matA(matA)
    vals, vl, vr = scipy.linalg.eig(A, left=True, right=True)
    mods = np.abs(vals)
    imax = int(np.argmax(mods))
    lam_max = mods[imax]
    if lam_max <= 0:
        raise NonErgodicError("all eigenvalues of A are zero")

    n_dominant = int(np.sum(np.isclose(mods, lam_max, rtol=rtol, atol=0.0)))
    if n_dominant > 1:
        raise NonErgodicError(
            f"{n_dominant} eigenvalues share the maximal modulus {lam_max:.6g}; "
            "dominant eigenvalue is not unique"
        )
    lam = vals[imax]
    if abs(lam.imag) > rtol * lam_max or lam.real <= 0:
        raise NonErgodicError(f"dominant eigenvalue {lam} is not real positive")

    w = np.real(vr[:, imax])
    w = np.abs(w / w.sum())
    v = np.real(vl[:, imax])
    v = np.abs(v / v.sum())
    vw = float(v @ w)
    if vw <= 0:
        raise DegenerateModelError("left and right eigenvectors are orthogonal")
    v = v / vw

    logger.debug("dominant eigenvalue %.6g (n=%d)", lam.real, A.shape[0])
    return EigenSystem(lam=float(lam.real), w=w, v=v)


def growth_rate(matA) -> float:
    """Asymptotic population growth rate lambda."""
    return dominant_eigen(matA).lam


def stable_dist(matA) -> np.ndarray:
    """Stable stage distribution w (sums to 1)."""
    return dominant_eigen(matA).w


def repro_value(matA, start=0, stages=None) -> np.ndarray:
    """Reproductive value v, scaled so that v[start] == 1."""
    eig = dominant_eigen(matA)
    j = resolve_stage(start, eig.v.size, stages)
    if eig.v[j] <= 0:
        raise DegenerateModelError(
            f"reproductive value of stage {j} is zero; choose another start"
        )
    return eig.v / eig.v[j]
