"""Sensitivity and elasticity of population growth rate.

Element-wise (Caswell 2001, ch. 9):

    s_ij = v_i w_j / <v, w>        e_ij = s_ij a_ij / lambda

with w, v the right and left dominant eigenvectors of A. Elasticities sum
to 1 over all elements.

Aggregations:
  - perturb_trans: sums of s_ij (or e_ij) over transition types: stasis
    (diagonal of U), retrogression (U above the diagonal), progression (U
    below the diagonal), fecundity (F) and clonality (C). Sensitivities
    sum over the positions where that component is positive; elasticities
    split an element shared by several components in proportion to each
    component's share of a_ij.
  - perturb_vr: chain rule from elements to vital rates. With survival
    sigma_j and survival-conditional fates p_ij = U_ij / sigma_j,

        d lambda / d sigma_j = sum_i s_ij p_ij

    Growth gamma_j (probability of moving to a later stage given survival)
    is perturbed at the expense of stasis, spreading the change over the
    growth destinations in proportion to their current share:

        d lambda / d gamma_j = sigma_j (sum_{i>j} s_ij g_ij - s_jj)

    and likewise for shrinkage (i < j). Fecundity and clonality spread
    over offspring stages in proportion to the current column of F / C.
    Elasticities are (rate_j / lambda) * d lambda / d rate_j. Both are summed
    over stages.

Every routine requires a unique dominant eigenvalue (NonErgodicError
otherwise).
"""

from __future__ import annotations

from typing import Callable, Optional

import numpy as np

from mpmdemog.errors import DegenerateModelError
from mpmdemog.linalg import dominant_eigen
from mpmdemog.types import PerturbType, TransitionPerturbation, VitalRatePerturbation
from mpmdemog.validation import check_matA, check_mpm, stage_mask

DEFAULT_PERT = 1e-6


def _ratio(num: np.ndarray, den: np.ndarray) -> np.ndarray:
    return np.divide(num, den, out=np.zeros_like(num), where=den > 0)


# ═══════════════════════════════════════════════════════════════════════
# ELEMENT-WISE
# ═══════════════════════════════════════════════════════════════════════

def perturb_matrix(matA, type=PerturbType.SENSITIVITY,
                   demog_stat: Optional[Callable[[np.ndarray], float]] = None,
                   pert: float = DEFAULT_PERT) -> np.ndarray:
    """Sensitivity or elasticity of a demographic statistic to each a_ij.

    Args:
        matA: (N, N) projection matrix.
        type: PerturbType.SENSITIVITY or PerturbType.ELASTICITY.
        demog_stat: Statistic of A to perturb. None means lambda, computed
            analytically from the eigenvectors. A callable is differentiated
            by forward differences of size `pert`.
        pert: Finite-difference step for a callable `demog_stat`.

    Returns:
        (N, N) matrix of sensitivities or elasticities.

    Raises:
        NonErgodicError: if the dominant eigenvalue of A is not unique.
    """
    ptype = PerturbType(type)
    A = check_matA(matA)

    if demog_stat is None:
        eig = dominant_eigen(A)
        stat = eig.lam
        sens = np.outer(eig.v, eig.w) / float(eig.v @ eig.w)
    else:
        if pert <= 0:
            raise ValueError(f"pert must be positive, got {pert}")
        stat = float(demog_stat(A))
        sens = np.empty_like(A)
        for i in range(A.shape[0]):
            for j in range(A.shape[1]):
                A_pert = A.copy()
                A_pert[i, j] += pert
                sens[i, j] = (float(demog_stat(A_pert)) - stat) / pert

    if ptype is PerturbType.ELASTICITY:
        if stat == 0:
            raise DegenerateModelError("statistic is zero; elasticity undefined")
        return sens * A / stat
    return sens


# ═══════════════════════════════════════════════════════════════════════
# TRANSITION TYPES
# ═══════════════════════════════════════════════════════════════════════

def _components(matU, matF, matC):
    U, F, C = check_mpm(matU, matF, matC)
    if C is None:
        C = np.zeros_like(U)
    return U, F, C


def perturb_trans(matU, matF, matC=None, exclude=None,
                  type=PerturbType.SENSITIVITY,
                  stages=None) -> TransitionPerturbation:
    """Sensitivity or elasticity of lambda summed by transition type.

    Args:
        matU, matF, matC: Model components (matC optional).
        exclude: Stages whose transitions (to or from) are left out.
        type: PerturbType.

    Returns:
        TransitionPerturbation with stasis, retrogression, progression,
        fecundity and clonality totals.
    """
    ptype = PerturbType(type)
    U, F, C = _components(matU, matF, matC)
    A = U + F + C
    n = A.shape[0]
    eig = dominant_eigen(A)
    sens = np.outer(eig.v, eig.w)

    out = stage_mask(exclude, n, "exclude", stages)
    keep = np.outer(~out, ~out)
    diag = np.eye(n, dtype=bool)
    upper = np.triu(np.ones((n, n), dtype=bool), k=1)
    lower = np.tril(np.ones((n, n), dtype=bool), k=-1)

    def total(X: np.ndarray, region: np.ndarray) -> float:
        sel = region & keep & (X > 0)
        if ptype is PerturbType.ELASTICITY:
            return float((sens * X)[sel].sum() / eig.lam)
        return float(sens[sel].sum())

    everywhere = np.ones((n, n), dtype=bool)
    return TransitionPerturbation(
        stasis=total(U, diag),
        retrogression=total(U, upper),
        progression=total(U, lower),
        fecundity=total(F, everywhere),
        clonality=total(C, everywhere),
        type=ptype,
    )


# ═══════════════════════════════════════════════════════════════════════
# VITAL RATES
# ═══════════════════════════════════════════════════════════════════════

def perturb_vr(matU, matF, matC=None, exclude=None,
               type=PerturbType.SENSITIVITY,
               stages=None) -> VitalRatePerturbation:
    """Sensitivity or elasticity of lambda to vital-rate types.

    Args:
        matU, matF, matC: Model components (matC optional).
        exclude: Stages (columns) left out of the sums.
        type: PerturbType.

    Returns:
        VitalRatePerturbation with survival, growth, shrinkage, fecundity
        and clonality totals.
    """
    ptype = PerturbType(type)
    U, F, C = _components(matU, matF, matC)
    A = U + F + C
    n = A.shape[0]
    eig = dominant_eigen(A)
    sens = np.outer(eig.v, eig.w)
    s_diag = np.diag(sens)

    lower = np.tril(np.ones((n, n)), k=-1)
    upper = np.triu(np.ones((n, n)), k=1)
    sigma = U.sum(axis=0)
    grow = (U * lower).sum(axis=0)
    shrink = (U * upper).sum(axis=0)
    phi = F.sum(axis=0)
    kappa = C.sum(axis=0)

    d_surv = _ratio((sens * U).sum(axis=0), sigma)
    d_grow = np.where(grow > 0,
                      sigma * (_ratio((sens * U * lower).sum(axis=0), grow) - s_diag),
                      0.0)
    d_shrink = np.where(shrink > 0,
                        sigma * (_ratio((sens * U * upper).sum(axis=0), shrink) - s_diag),
                        0.0)
    d_fec = _ratio((sens * F).sum(axis=0), phi)
    d_clo = _ratio((sens * C).sum(axis=0), kappa)

    if ptype is PerturbType.ELASTICITY:
        d_surv = sigma * d_surv / eig.lam
        d_grow = _ratio(grow, sigma) * d_grow / eig.lam
        d_shrink = _ratio(shrink, sigma) * d_shrink / eig.lam
        d_fec = phi * d_fec / eig.lam
        d_clo = kappa * d_clo / eig.lam

    keep = ~stage_mask(exclude, n, "exclude", stages)
    return VitalRatePerturbation(
        survival=float(d_surv[keep].sum()),
        growth=float(d_grow[keep].sum()),
        shrinkage=float(d_shrink[keep].sum()),
        fecundity=float(d_fec[keep].sum()),
        clonality=float(d_clo[keep].sum()),
        type=ptype,
    )
