"""Stage-specific vital rates decomposed from U and F.

Each column j of U is the fate distribution of an individual in stage j.
Its mass is split by comparing the destination row i with j, assuming
stages are ordered by developmental rank:

    survival   sum_i U[i, j]
    growth     rows i > j        (conditional on survival)
    shrinkage  rows i < j        (conditional on survival)
    stasis     row  i == j       (conditional on survival)
    dorm_enter active j -> dormant rows   (conditional on survival)
    dorm_exit  dormant j -> active rows   (conditional on survival)

vr_vec_* return one rate per stage as a numpy masked array. Excluded
stages, and stages where a survival-conditional rate is undefined (zero
survival), are masked rather than set to NaN.

vr_* reduce the vectors to one number with weighted_mean(); excluded stages
drop out of both the numerator and the weight normalisation.

vr_mat_U / vr_mat_R give the survival-conditional transition and
reproduction matrices.
"""

from __future__ import annotations

import warnings

import numpy as np

from mpmdemog.errors import (
    DegenerateModelError,
    DimensionMismatchError,
    InvalidMatrixError,
    StageOverlapWarning,
)
from mpmdemog.validation import check_matR, check_matU, stage_mask


# ═══════════════════════════════════════════════════════════════════════
# WEIGHTED REDUCTION
# ═══════════════════════════════════════════════════════════════════════

def weighted_mean(values, weights=None, exclude=None) -> float:
    """Weighted mean of stage-specific values.

    Args:
        values: Length-N vector; masked entries are ignored.
        weights: Optional non-negative length-N weights (e.g. the stable
            stage distribution). Renormalised over the stages kept.
        exclude: Optional stages to drop from numerator and weights.

    Raises:
        DegenerateModelError: if no stage is left, or the kept weights sum
            to zero.
    """
    vals = np.ma.asarray(values, dtype=np.float64)
    n = vals.size
    drop = np.ma.getmaskarray(vals).copy()
    drop |= stage_mask(exclude, n, "exclude")
    if weights is None:
        w = np.ones(n)
    else:
        w = np.asarray(weights, dtype=np.float64)
        if w.shape != (n,):
            raise DimensionMismatchError(
                f"weights must have length {n}, got shape {w.shape}"
            )
        if np.any(w < 0) or not np.all(np.isfinite(w)):
            raise InvalidMatrixError("weights must be non-negative and finite")
    keep = ~drop
    if not keep.any():
        raise DegenerateModelError("every stage is excluded or undefined")
    wsum = w[keep].sum()
    if wsum <= 0:
        raise DegenerateModelError("weights of the kept stages sum to zero")
    return float((vals.data[keep] * w[keep]).sum() / wsum)


# ═══════════════════════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════════════════════

def _conditional(U: np.ndarray, numer: np.ndarray,
                 mask: np.ndarray) -> np.ma.MaskedArray:
    """numer / survival, masked where survival is zero or `mask` is set."""
    surv = U.sum(axis=0)
    rate = np.divide(numer, surv, out=np.zeros_like(numer), where=surv > 0)
    return np.ma.masked_array(rate, mask=mask | (surv <= 0))


def _transition_rate(matU, region, exclude_col, exclude_row,
                     stages) -> np.ma.MaskedArray:
    """Survival-conditional mass of each column falling in `region(n)`."""
    U = check_matU(matU)
    n = U.shape[0]
    rows_out = stage_mask(exclude_row, n, "exclude_row", stages)
    cols_out = stage_mask(exclude_col, n, "exclude_col", stages)
    kept = U * region(n)
    kept[rows_out, :] = 0.0
    return _conditional(U, kept.sum(axis=0), cols_out)


def _dormancy_sets(n: int, dorm_stages, exclude_col, stages):
    # An excluded dormant stage loses its own column only; as a destination
    # it still counts as dormant.
    dorm = stage_mask(dorm_stages, n, "dorm_stages", stages)
    excl = stage_mask(exclude_col, n, "exclude_col", stages)
    overlap = dorm & excl
    if overlap.any():
        warnings.warn(
            f"stage(s) {np.flatnonzero(overlap).tolist()} are both excluded "
            "and dormant; their own rates are left out",
            StageOverlapWarning,
            stacklevel=3,
        )
    return dorm, excl


# ═══════════════════════════════════════════════════════════════════════
# STAGE-SPECIFIC VECTORS
# ═══════════════════════════════════════════════════════════════════════

def vr_vec_survival(matU, exclude_col=None, stages=None) -> np.ma.MaskedArray:
    """Survival of each stage: column sums of U."""
    U = check_matU(matU)
    cols_out = stage_mask(exclude_col, U.shape[0], "exclude_col", stages)
    return np.ma.masked_array(U.sum(axis=0), mask=cols_out)


def vr_vec_growth(matU, exclude_col=None, exclude_row=None,
                  stages=None) -> np.ma.MaskedArray:
    """Probability of moving to a later stage, conditional on survival."""
    return _transition_rate(matU, lambda n: np.tril(np.ones((n, n)), k=-1),
                            exclude_col, exclude_row, stages)


def vr_vec_shrinkage(matU, exclude_col=None, exclude_row=None,
                     stages=None) -> np.ma.MaskedArray:
    """Probability of moving to an earlier stage, conditional on survival."""
    return _transition_rate(matU, lambda n: np.triu(np.ones((n, n)), k=1),
                            exclude_col, exclude_row, stages)


def vr_vec_stasis(matU, exclude_col=None, exclude_row=None,
                  stages=None) -> np.ma.MaskedArray:
    """Probability of remaining in the same stage, conditional on survival."""
    return _transition_rate(matU, np.eye, exclude_col, exclude_row, stages)


def vr_vec_dorm_enter(matU, dorm_stages, exclude_col=None,
                      stages=None) -> np.ma.MaskedArray:
    """Probability of an active stage entering dormancy, given survival.

    Dormant stages are masked.
    """
    U = check_matU(matU)
    dorm, excl = _dormancy_sets(U.shape[0], dorm_stages, exclude_col, stages)
    numer = U[dorm, :].sum(axis=0)
    return _conditional(U, numer, excl | dorm)


def vr_vec_dorm_exit(matU, dorm_stages, exclude_col=None,
                     stages=None) -> np.ma.MaskedArray:
    """Probability of a dormant stage becoming active, given survival.

    Active stages are masked.
    """
    U = check_matU(matU)
    dorm, excl = _dormancy_sets(U.shape[0], dorm_stages, exclude_col, stages)
    numer = U[~dorm, :].sum(axis=0)
    return _conditional(U, numer, excl | ~dorm)


def vr_vec_reproduction(matU, matR, exclude_col=None, weights_row=None,
                        stages=None) -> np.ma.MaskedArray:
    """Per-capita reproduction of each stage: column sums of R.

    Args:
        weights_row: Optional weights for offspring types (e.g. reproductive
            value of each offspring stage).
    """
    U = check_matU(matU)
    R = check_matR(matR, U, "matR")
    n = U.shape[0]
    if weights_row is not None:
        wr = np.asarray(weights_row, dtype=np.float64)
        if wr.shape != (n,):
            raise DimensionMismatchError(
                f"weights_row must have length {n}, got shape {wr.shape}"
            )
        R = R * wr[:, None]
    cols_out = stage_mask(exclude_col, n, "exclude_col", stages)
    return np.ma.masked_array(R.sum(axis=0), mask=cols_out)


# ═══════════════════════════════════════════════════════════════════════
# SCALAR SUMMARIES
# ═══════════════════════════════════════════════════════════════════════

def vr_survival(matU, exclude_col=None, weights_col=None, stages=None) -> float:
    return weighted_mean(vr_vec_survival(matU, exclude_col, stages), weights_col)


def vr_growth(matU, exclude_col=None, exclude_row=None, weights_col=None,
              stages=None) -> float:
    return weighted_mean(
        vr_vec_growth(matU, exclude_col, exclude_row, stages), weights_col
    )


def vr_shrinkage(matU, exclude_col=None, exclude_row=None, weights_col=None,
                 stages=None) -> float:
    return weighted_mean(
        vr_vec_shrinkage(matU, exclude_col, exclude_row, stages), weights_col
    )


def vr_stasis(matU, exclude_col=None, exclude_row=None, weights_col=None,
              stages=None) -> float:
    return weighted_mean(
        vr_vec_stasis(matU, exclude_col, exclude_row, stages), weights_col
    )


def vr_dorm_enter(matU, dorm_stages, exclude_col=None, weights_col=None,
                  stages=None) -> float:
    return weighted_mean(
        vr_vec_dorm_enter(matU, dorm_stages, exclude_col, stages), weights_col
    )


def vr_dorm_exit(matU, dorm_stages, exclude_col=None, weights_col=None,
                 stages=None) -> float:
    return weighted_mean(
        vr_vec_dorm_exit(matU, dorm_stages, exclude_col, stages), weights_col
    )


def vr_fecundity(matU, matR, exclude_col=None, weights_row=None,
                 weights_col=None, stages=None) -> float:
    """Mean per-capita reproduction over the reproductive stages.

    Stages with no reproduction are left out of the mean.
    """
    vec = vr_vec_reproduction(matU, matR, exclude_col, weights_row, stages)
    vec = np.ma.masked_where(vec.filled(0.0) <= 0, vec)
    return weighted_mean(vec, weights_col)


# ═══════════════════════════════════════════════════════════════════════
# CONDITIONAL MATRICES
# ═══════════════════════════════════════════════════════════════════════

def vr_mat_U(matU) -> np.ma.MaskedArray:
    """U with each column divided by its survival.

    Entry (i, j) is the probability of moving to stage i given that an
    individual of stage j survives. Zero-survival columns are masked.
    """
    U = check_matU(matU)
    return _conditional_matrix(U, U)


def vr_mat_R(matU, matR) -> np.ma.MaskedArray:
    """Reproduction per surviving individual: R with columns divided by survival.

    Zero-survival columns are masked.
    """
    U = check_matU(matU)
    return _conditional_matrix(U, check_matR(matR, U, "matR"))


def _conditional_matrix(U: np.ndarray, X: np.ndarray) -> np.ma.MaskedArray:
    surv = U.sum(axis=0)
    out = np.divide(X, surv[None, :], out=np.zeros_like(X),
                    where=surv[None, :] > 0)
    mask = np.broadcast_to(surv <= 0, X.shape).copy()
    return np.ma.masked_array(out, mask=mask)
