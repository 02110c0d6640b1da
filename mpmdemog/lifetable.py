"""Age trajectories and life tables from a matrix population model.

A cohort starting in one stage is projected forward with U:

    n_0 = e_start,   n_{x+1} = U n_x,   lx[x] = sum(n_x)

and its per-capita fecundity is mx[x] = sum(F n_x) / lx[x]. Trajectories
run over ages 0..omega, where omega is the last age with lx >= lx_crit (and
at most xmax).

Conversions between survivorship (lx), survival probability (px) and
hazard (hx) are exact inverses of each other:

    px[x] = lx[x+1] / lx[x]      (length omega, one shorter than lx)
    hx[x] = -log(px[x])
    lx    = cumprod([1, *px])

Also here: qsd_converge, the age at which a cohort's stage distribution
settles to its quasi-stationary distribution.
"""

from __future__ import annotations

import logging
import warnings
from typing import Optional

import numpy as np
import pandas as pd

from mpmdemog.errors import ConvergenceWarning, DegenerateModelError
from mpmdemog.validation import (
    check_hx,
    check_lx,
    check_lx_crit,
    check_matR,
    check_matU,
    check_px,
    combine_repro,
    start_vector,
)

logger = logging.getLogger(__name__)

DEFAULT_XMAX = 1000
DEFAULT_LX_CRIT = 0.01
DEFAULT_QSD_CONV = 1e-3
DEFAULT_QSD_MAX_ITER = 1000


# ═══════════════════════════════════════════════════════════════════════
# COHORT PROJECTION
# ═══════════════════════════════════════════════════════════════════════

def project_cohort(U: np.ndarray, n0: np.ndarray, xmax: int,
                   lx_crit: float) -> np.ndarray:
    """Stage vectors of a cohort at ages 0..omega, shape (omega + 1, N).

    Stops at the last age with total survivorship >= lx_crit, or at xmax.
    """
    if xmax < 0:
        raise ValueError(f"xmax must be >= 0, got {xmax}")
    cohort = [n0]
    n = n0
    for _ in range(int(xmax)):
        n = U @ n
        if n.sum() < lx_crit:
            break
        cohort.append(n)
    else:
        if xmax > 0:
            logger.debug("cohort trajectory truncated at xmax=%d", xmax)
    return np.vstack(cohort)


def _cohort_from_args(matU, start, xmax, lx_crit, stages):
    U = check_matU(matU)
    lx_crit = check_lx_crit(lx_crit)
    n0 = start_vector(start, U.shape[0], stages)
    return U, project_cohort(U, n0, xmax, lx_crit)


# ═══════════════════════════════════════════════════════════════════════
# MPM → TRAJECTORIES
# ═══════════════════════════════════════════════════════════════════════

def mpm_to_lx(matU, start=0, xmax: int = DEFAULT_XMAX,
              lx_crit: float = DEFAULT_LX_CRIT, stages=None) -> np.ndarray:
    """Age-specific survivorship lx of a cohort starting in `start`.

    Args:
        matU: (N, N) survival/growth matrix.
        start: Start stage (0-based index, stage name, or a length-N
            start distribution).
        xmax: Maximum age.
        lx_crit: Survivorship threshold in (0, 1); ages with lx below it
            are dropped.
        stages: Optional stage names, to resolve `start` by name.

    Returns:
        lx for ages 0..omega, lx[0] == 1.
    """
    _, cohort = _cohort_from_args(matU, start, xmax, lx_crit, stages)
    return cohort.sum(axis=1)


def mpm_to_px(matU, start=0, xmax: int = DEFAULT_XMAX,
              lx_crit: float = DEFAULT_LX_CRIT, stages=None) -> np.ndarray:
    """Age-specific survival probability px (one shorter than lx)."""
    return lx_to_px(mpm_to_lx(matU, start, xmax, lx_crit, stages))


def mpm_to_hx(matU, start=0, xmax: int = DEFAULT_XMAX,
              lx_crit: float = DEFAULT_LX_CRIT, stages=None) -> np.ndarray:
    """Age-specific mortality hazard hx = -log(px)."""
    return px_to_hx(mpm_to_px(matU, start, xmax, lx_crit, stages))


def mpm_to_mx(matU, matF, start=0, xmax: int = DEFAULT_XMAX,
              lx_crit: float = DEFAULT_LX_CRIT, matC=None,
              stages=None) -> np.ndarray:
    """Age-specific per-capita fecundity mx of a cohort (same length as lx).

    With matC given, clonal offspring are counted too.
    """
    U, cohort = _cohort_from_args(matU, start, xmax, lx_crit, stages)
    R = combine_repro(check_matR(matF, U, "matF"),
                      None if matC is None else check_matR(matC, U, "matC"))
    lx = cohort.sum(axis=1)
    offspring = (cohort @ R.T).sum(axis=1)
    return offspring / lx


# ═══════════════════════════════════════════════════════════════════════
# TRAJECTORY CONVERSIONS
# ═══════════════════════════════════════════════════════════════════════

def lx_to_px(lx) -> np.ndarray:
    """px[x] = lx[x+1] / lx[x]; length len(lx) - 1."""
    lx = check_lx(lx)
    if np.any(lx[:-1] == 0):
        raise DegenerateModelError(
            "lx reaches zero before the final age; px is undefined after it"
        )
    return lx[1:] / lx[:-1]


def lx_to_hx(lx) -> np.ndarray:
    return px_to_hx(lx_to_px(lx))


def px_to_lx(px) -> np.ndarray:
    """lx = cumprod([1, *px]); length len(px) + 1."""
    px = check_px(px)
    return np.concatenate([[1.0], np.cumprod(px)])


def px_to_hx(px) -> np.ndarray:
    """hx = -log(px); px == 0 gives an infinite hazard."""
    px = check_px(px)
    with np.errstate(divide='ignore'):
        return -np.log(px)


def hx_to_px(hx) -> np.ndarray:
    return np.exp(-check_hx(hx))


def hx_to_lx(hx) -> np.ndarray:
    return px_to_lx(hx_to_px(hx))


# ═══════════════════════════════════════════════════════════════════════
# LIFE TABLE
# ═══════════════════════════════════════════════════════════════════════

def mpm_to_table(matU, matF=None, start=0, xmax: int = DEFAULT_XMAX,
                 lx_crit: float = DEFAULT_LX_CRIT, matC=None,
                 stages=None) -> pd.DataFrame:
    """Life table for a cohort starting in `start`.

    Columns:
        x     age
        lx    survivorship to age x
        dx    deaths between x and x+1 (fraction of the initial cohort)
        qx    probability of dying between x and x+1
        px    probability of surviving from x to x+1
        hx    hazard, -log(px)
        Lx    person-years lived between x and x+1 (trapezoid)
        Tx    person-years lived beyond age x
        ex    remaining life expectancy at age x
        mx    per-capita fecundity (only when matF is given)
        lxmx  lx * mx (only when matF is given)

    The quantities for the final age use the cohort projected one step past
    it, so every column is defined.
    """
    U, cohort = _cohort_from_args(matU, start, xmax, lx_crit, stages)
    lx = cohort.sum(axis=1)
    lx_next = np.append(lx[1:], (U @ cohort[-1]).sum())
    px = lx_next / lx
    with np.errstate(divide='ignore'):
        hx = -np.log(px)
    Lx = (lx + lx_next) / 2.0
    Tx = np.cumsum(Lx[::-1])[::-1]

    table = pd.DataFrame({
        'x': np.arange(lx.size),
        'lx': lx,
        'dx': lx - lx_next,
        'qx': 1.0 - px,
        'px': px,
        'hx': hx,
        'Lx': Lx,
        'Tx': Tx,
        'ex': Tx / lx,
    })
    if matF is not None:
        R = combine_repro(check_matR(matF, U, "matF"),
                          None if matC is None else check_matR(matC, U, "matC"))
        mx = (cohort @ R.T).sum(axis=1) / lx
        table['mx'] = mx
        table['lxmx'] = lx * mx
    return table


# ═══════════════════════════════════════════════════════════════════════
# QUASI-STATIONARY DISTRIBUTION
# ═══════════════════════════════════════════════════════════════════════

def qsd_converge(matU, start=0, conv: float = DEFAULT_QSD_CONV,
                 max_iter: int = DEFAULT_QSD_MAX_ITER,
                 stages: Optional[list] = None) -> int:
    """Age at which a cohort's stage distribution converges.

    The cohort distribution d_x = n_x / sum(n_x) is projected until the
    total-variation distance between successive ages,
    0.5 * sum(|d_x - d_{x-1}|), falls below `conv`.

    Returns:
        The first age x >= 1 at which the distance is below `conv`, or
        `max_iter` (with a ConvergenceWarning) if that never happens.

    Raises:
        DegenerateModelError: if the cohort dies out before converging.
    """
    if conv <= 0:
        raise ValueError(f"conv must be positive, got {conv}")
    if max_iter < 1:
        raise ValueError(f"max_iter must be >= 1, got {max_iter}")
    U = check_matU(matU)
    d_prev = start_vector(start, U.shape[0], stages)

    for x in range(1, int(max_iter) + 1):
        n = U @ d_prev
        total = n.sum()
        if total <= 0:
            raise DegenerateModelError(
                f"cohort is extinct at age {x}, before its stage "
                "distribution converged"
            )
        d = n / total
        if 0.5 * np.abs(d - d_prev).sum() < conv:
            logger.debug("QSD reached at age %d", x)
            return x
        d_prev = d

    warnings.warn(
        f"stage distribution did not converge within {max_iter} iterations "
        f"(conv={conv}); returning {max_iter}",
        ConvergenceWarning,
        stacklevel=2,
    )
    return int(max_iter)
