"""Life-history traits derived from a matrix population model.

Two families of calculation:

  Fundamental-matrix traits (Markov chain with death as absorbing state):
    - life_expect_mean / life_expect_var: moments of longevity
    - mature_prob / mature_age / mature_distrib: reaching reproduction,
      computed on U with reproductive stages made absorbing
    - net_repro_rate: R0 from the next-generation matrix R N

  Trajectory traits (computed on lx / mx age schedules):
    - longevity: age at which survivorship drops below lx_crit
    - gen_time: three definitions (GenTimeMethod)
    - entropy_k / entropy_d: Keyfitz and Demetrius entropies
    - shape_surv / shape_rep: pace-independent shape of survivorship and of
      reproduction, on a rescaled [0, 1] age axis

All stage arguments are 0-based indices or stage names (with `stages`).

References:
  - Caswell (2001) Matrix Population Models, ch. 5
  - Keyfitz (1977); Demetrius (1974)
  - Baudisch & Stott (2019) pace and shape of life histories
  - Bienvenu & Legendre (2015) generation time in matrix models
"""

from __future__ import annotations

import warnings
from typing import Optional

import numpy as np
import scipy.linalg
from scipy.integrate import cumulative_trapezoid, trapezoid

from mpmdemog.errors import (
    ConvergenceWarning,
    DegenerateModelError,
    DimensionMismatchError,
    InvalidMatrixError,
)
from mpmdemog.lifetable import (
    DEFAULT_LX_CRIT,
    DEFAULT_XMAX,
    mpm_to_lx,
    mpm_to_mx,
    project_cohort,
)
from mpmdemog.linalg import dominant_eigen, fundamental_matrix
from mpmdemog.types import GenTimeMethod, R0Method
from mpmdemog.validation import (
    check_lx,
    check_lx_crit,
    check_matR,
    check_matU,
    check_mx,
    combine_repro,
    resolve_stage,
    stage_mask,
    start_vector,
)


# ═══════════════════════════════════════════════════════════════════════
# LONGEVITY
# ═══════════════════════════════════════════════════════════════════════

def _check_mixdist(mixdist, n: int) -> np.ndarray:
    mix = np.asarray(mixdist, dtype=np.float64)
    if mix.shape != (n,):
        raise DimensionMismatchError(
            f"mixdist must have length {n}, got shape {mix.shape}"
        )
    if np.any(mix < 0) or not np.isclose(mix.sum(), 1.0):
        raise InvalidMatrixError("mixdist must be non-negative and sum to 1")
    return mix


def life_expect_mean(matU, start=0, mixdist=None, stages=None) -> float:
    """Mean life expectancy (in projection intervals) from `start`.

    The column sum of the fundamental matrix: time steps an individual
    starting in `start` is expected to be alive, counting the first. With
    `mixdist`, the expectation over a mixture of starting stages.

    Raises:
        SingularMatrixError: if some stages never die.
    """
    N = fundamental_matrix(matU)
    tau = N.sum(axis=0)
    if mixdist is not None:
        return float(_check_mixdist(mixdist, tau.size) @ tau)
    return float(tau[resolve_stage(start, tau.size, stages)])


def life_expect_var(matU, start=0, mixdist=None, stages=None) -> float:
    """Variance of longevity from `start`.

    var = colSums(2 N^2 - N) - colSums(N)^2 (Caswell 2001, eq. 5.12). With
    `mixdist`, the variance of the mixture (law of total variance).
    """
    N = fundamental_matrix(matU)
    tau = N.sum(axis=0)
    var = (2 * N @ N - N).sum(axis=0) - tau ** 2
    if mixdist is not None:
        mix = _check_mixdist(mixdist, tau.size)
        return float(mix @ (var + tau ** 2) - (mix @ tau) ** 2)
    return float(var[resolve_stage(start, tau.size, stages)])


def longevity(matU, start=0, x_max: int = DEFAULT_XMAX,
              lx_crit: float = DEFAULT_LX_CRIT, stages=None) -> int:
    """First age at which survivorship falls below `lx_crit`.

    If survivorship is still >= lx_crit at `x_max`, a ConvergenceWarning is
    issued and `x_max` returned.
    """
    U = check_matU(matU)
    lx_crit = check_lx_crit(lx_crit)
    n0 = start_vector(start, U.shape[0], stages)
    cohort = project_cohort(U, n0, x_max, lx_crit)
    omega = cohort.shape[0] - 1
    if omega >= x_max:
        warnings.warn(
            f"survivorship still >= {lx_crit} at x_max={x_max}; "
            f"returning {x_max}",
            ConvergenceWarning,
            stacklevel=2,
        )
        return int(x_max)
    return omega + 1


# ═══════════════════════════════════════════════════════════════════════
# MATURITY
# ═══════════════════════════════════════════════════════════════════════

def _maturity_chain(U: np.ndarray, repro: np.ndarray):
    """Fundamental matrix with reproductive stages absorbing.

    Returns (N_prime, prob) where prob[j] is the probability that an
    individual in stage j ever enters a reproductive stage.
    """
    if not repro.any():
        raise DegenerateModelError("model has no reproductive stages")
    U_prime = U.copy()
    U_prime[:, repro] = 0.0
    N_prime = fundamental_matrix(U_prime)
    return N_prime, N_prime[repro, :].sum(axis=0)


def _repro_mask(U, matF, matC) -> np.ndarray:
    R = combine_repro(check_matR(matF, U, "matF"),
                      None if matC is None else check_matR(matC, U, "matC"))
    return R.sum(axis=0) > 0


def mature_prob(matU, matF, matC=None, start=0, stages=None) -> float:
    """Probability of reaching a reproductive stage before death.

    A stage is reproductive if its column of F (+ C) has positive sum.
    """
    U = check_matU(matU)
    _, prob = _maturity_chain(U, _repro_mask(U, matF, matC))
    return float(prob[resolve_stage(start, U.shape[0], stages)])


def mature_age(matU, matF, matC=None, start=0, stages=None) -> float:
    """Mean age at first entry into a reproductive stage.

    Conditional on maturing; age 0 is the start, so an individual starting
    in a reproductive stage has mature_age 0. The conditional chain is the
    h-transform of the absorbing chain by the maturation probability,
    whose fundamental matrix is diag(B) N' diag(B)^-1.

    Raises:
        DegenerateModelError: if maturity is unreachable from `start`.
    """
    U = check_matU(matU)
    j = resolve_stage(start, U.shape[0], stages)
    N_prime, prob = _maturity_chain(U, _repro_mask(U, matF, matC))
    if prob[j] <= 0:
        raise DegenerateModelError(
            f"stage {j} never reaches a reproductive stage"
        )
    steps = float(prob @ N_prime[:, j]) / prob[j]
    return steps - 1.0


def mature_distrib(matU, repro_stages, start=0, stages=None) -> np.ndarray:
    """Distribution of the stage in which reproduction is first reached.

    Args:
        matU: Survival/growth matrix.
        repro_stages: Reproductive stages (indices, names or boolean mask).
        start: Start stage.

    Returns:
        Length-N vector summing to 1, zero at non-reproductive stages.
    """
    U = check_matU(matU)
    n = U.shape[0]
    j = resolve_stage(start, n, stages)
    repro = stage_mask(repro_stages, n, "repro_stages", stages)
    N_prime, prob = _maturity_chain(U, repro)
    if prob[j] <= 0:
        raise DegenerateModelError(
            f"stage {j} never reaches a reproductive stage"
        )
    distrib = np.where(repro, N_prime[:, j], 0.0)
    return distrib / prob[j]


# ═══════════════════════════════════════════════════════════════════════
# REPRODUCTION & GENERATION TIME
# ═══════════════════════════════════════════════════════════════════════

def net_repro_rate(matU, matF, start=0, method=R0Method.GENERATION,
                   matC=None, stages=None) -> float:
    """Net reproductive rate R0.

    GENERATION: dominant eigenvalue of the next-generation matrix R N
    START:      column sum of R N at `start`, the lifetime offspring of an
                individual starting there
    """
    method = R0Method(method)
    U = check_matU(matU)
    R = combine_repro(check_matR(matF, U, "matF"),
                      None if matC is None else check_matR(matC, U, "matC"))
    RN = R @ fundamental_matrix(U)
    if method is R0Method.START:
        return float(RN[:, resolve_stage(start, U.shape[0], stages)].sum())
    return float(np.max(np.abs(scipy.linalg.eigvals(RN))))


def gen_time(matU, matF, method=GenTimeMethod.R0, start=0,
             xmax: int = DEFAULT_XMAX, lx_crit: float = DEFAULT_LX_CRIT,
             matC=None, stages=None) -> float:
    """Generation time.

    R0:       log(R0) / log(lambda); undefined when lambda == 1
    AGE_DIFF: lambda <v, w> / <v, R w>, the mean age of parents of
              offspring in the stable population
    COHORT:   sum(x lx mx) / sum(lx mx) for a cohort from `start`
    """
    method = GenTimeMethod(method)
    U = check_matU(matU)
    F = check_matR(matF, U, "matF")
    C = None if matC is None else check_matR(matC, U, "matC")
    R = combine_repro(F, C)

    if method is GenTimeMethod.COHORT:
        lx = mpm_to_lx(U, start, xmax, lx_crit, stages)
        mx = mpm_to_mx(U, F, start, xmax, lx_crit, matC=C, stages=stages)
        lxmx = lx * mx
        if lxmx.sum() <= 0:
            raise DegenerateModelError("cohort produces no offspring")
        return float(np.arange(lx.size) @ lxmx / lxmx.sum())

    eig = dominant_eigen(U + R)
    if method is GenTimeMethod.AGE_DIFF:
        vRw = float(eig.v @ R @ eig.w)
        if vRw <= 0:
            raise DegenerateModelError("no reproduction in the stable population")
        return eig.lam * float(eig.v @ eig.w) / vRw

    R0 = net_repro_rate(U, F, method=R0Method.GENERATION, matC=C)
    if R0 <= 0:
        raise DegenerateModelError("R0 is zero; generation time undefined")
    if np.isclose(eig.lam, 1.0, rtol=0, atol=1e-12):
        raise DegenerateModelError(
            "lambda == 1 so log(R0)/log(lambda) is undefined; "
            "use GenTimeMethod.AGE_DIFF or COHORT"
        )
    return float(np.log(R0) / np.log(eig.lam))


# ═══════════════════════════════════════════════════════════════════════
# ENTROPY
# ═══════════════════════════════════════════════════════════════════════

def _xlogx(a: np.ndarray) -> np.ndarray:
    out = np.zeros_like(a)
    pos = a > 0
    out[pos] = a[pos] * np.log(a[pos])
    return out


def entropy_k(lx, trapeze: bool = False) -> float:
    """Keyfitz's entropy of a survivorship trajectory.

    H = -sum(lx log lx) / sum(lx), with 0 log 0 = 0. With `trapeze`, the
    sums are replaced by trapezoidal integrals over age.
    """
    lx = check_lx(lx)
    if trapeze:
        if lx.size < 2:
            raise DegenerateModelError("trapezoidal entropy needs at least 2 ages")
        num, den = trapezoid(_xlogx(lx)), trapezoid(lx)
    else:
        num, den = _xlogx(lx).sum(), lx.sum()
    return float(-num / den)


def entropy_d(lx, mx) -> float:
    """Demetrius' entropy of the distribution of reproduction over age.

    H = -sum(p log p), p = lx mx / sum(lx mx).
    """
    lx = check_lx(lx)
    mx = check_mx(mx, length=lx.size)
    lxmx = lx * mx
    total = lxmx.sum()
    if total <= 0:
        raise DegenerateModelError("sum(lx * mx) is zero; entropy undefined")
    return float(-_xlogx(lxmx / total).sum())


# ═══════════════════════════════════════════════════════════════════════
# SHAPE
# ═══════════════════════════════════════════════════════════════════════

def _age_window(values: np.ndarray, xmin: Optional[int], xmax: Optional[int]):
    x = np.arange(values.size)
    lo = 0 if xmin is None else xmin
    hi = x[-1] if xmax is None else xmax
    keep = (x >= lo) & (x <= hi)
    if keep.sum() < 2:
        raise DegenerateModelError(
            f"shape needs at least 2 ages in [{lo}, {hi}]"
        )
    x = x[keep]
    return (x - x[0]) / (x[-1] - x[0]), values[keep]


def shape_surv(surv, start=0, xmin: Optional[int] = None,
               xmax: Optional[int] = None, trunc: bool = False,
               lx_crit: float = DEFAULT_LX_CRIT, stages=None) -> float:
    """Shape of survivorship, between -0.5 and 0.5.

    Age and log-survivorship are both rescaled to [0, 1] over the age
    window; shape is 0.5 minus the area under the rescaled curve.
    0 means constant mortality, positive values increasing mortality with
    age (senescence), negative values decreasing mortality.

    Args:
        surv: lx trajectory, or a U matrix (projected from `start`).
        trunc: Drop ages with lx below `lx_crit` from an lx trajectory.
            A trajectory projected from U is always truncated.
    """
    arr = np.asarray(surv, dtype=np.float64)
    if arr.ndim == 2:
        lx = mpm_to_lx(arr, start=start, lx_crit=lx_crit, stages=stages)
    else:
        lx = check_lx(arr)
        if trunc:
            lx = lx[lx >= check_lx_crit(lx_crit)]
    x, lx = _age_window(lx, xmin, xmax)
    if lx[-1] <= 0:
        raise DegenerateModelError("lx must be positive across the age window")
    log_drop = np.log(lx[-1] / lx[0])
    if log_drop == 0:
        raise DegenerateModelError("no mortality across the age window")
    y = np.log(lx / lx[0]) / log_drop
    return float(0.5 - trapezoid(y, x))


def shape_rep(rep, matU=None, start=0, xmin: Optional[int] = None,
              xmax: Optional[int] = None, lx_crit: float = DEFAULT_LX_CRIT,
              stages=None) -> float:
    """Shape of reproduction over age, between -0.5 and 0.5.

    Cumulative reproduction and age are rescaled to [0, 1]; shape is 0.5
    minus the area under the rescaled curve. 0 means constant reproduction,
    positive values reproduction increasing with age.

    Args:
        rep: mx trajectory, or an F matrix (then `matU` is required).
    """
    arr = np.asarray(rep, dtype=np.float64)
    if arr.ndim == 2:
        if matU is None:
            raise ValueError("matU is required when rep is a matrix")
        mx = mpm_to_mx(matU, arr, start=start, lx_crit=lx_crit, stages=stages)
    else:
        mx = check_mx(arr)
    x, mx = _age_window(mx, xmin, xmax)
    cum = cumulative_trapezoid(mx, x, initial=0.0)
    if cum[-1] <= 0:
        raise DegenerateModelError("no reproduction across the age window")
    return float(0.5 - trapezoid(cum / cum[-1], x))
