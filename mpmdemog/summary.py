"""Trait summaries for one or many matrix population models.

life_history_summary() computes the standard set of life-history traits,
vital rates and elasticities of one MPM with options from an
AnalysisConfig; summarize_mpms() does it for a batch and returns a
pandas DataFrame with one row per model.

Each model is independent, so a batch can equally be split across
processes by the caller.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Optional, Sequence

import numpy as np
import pandas as pd

from mpmdemog import lifehistory as lh
from mpmdemog import vitalrates as vr
from mpmdemog.config import AnalysisConfig, default_config
from mpmdemog.errors import DegenerateModelError, MPMError
from mpmdemog.lifetable import mpm_to_lx, mpm_to_mx, qsd_converge
from mpmdemog.linalg import dominant_eigen
from mpmdemog.perturb import perturb_trans, perturb_vr
from mpmdemog.types import MPM, GenTimeMethod, PerturbType, R0Method

logger = logging.getLogger(__name__)


def life_history_summary(mpm: MPM, config: Optional[AnalysisConfig] = None,
                         start=None) -> Dict[str, float]:
    """Life-history traits, mean vital rates and perturbation totals.

    Args:
        mpm: The model.
        config: Analysis options (defaults if None).
        start: Start stage; overrides config.traits.start.

    Returns:
        Flat dict of trait name -> value. 'qsd_age' is omitted when the
        cohort dies out before its stage distribution converges, maturity
        traits when the start stage never reaches reproduction, dormancy
        rates unless dormant stages are configured.
    """
    config = config or default_config()
    lt, tr = config.life_table, config.traits
    start = tr.start if start is None else start
    U, F, C = mpm.matU, mpm.matF, mpm.matC
    R = mpm.matR

    eig = dominant_eigen(mpm.matA)
    lx = mpm_to_lx(U, start, lt.xmax, lt.lx_crit, stages=mpm.stages)
    mx = mpm_to_mx(U, F, start, lt.xmax, lt.lx_crit, matC=C, stages=mpm.stages)

    out: Dict[str, float] = {
        'lambda': eig.lam,
        'life_expect_mean': lh.life_expect_mean(U, start, stages=mpm.stages),
        'life_expect_var': lh.life_expect_var(U, start, stages=mpm.stages),
        'longevity': lh.longevity(U, start, lt.xmax, lt.lx_crit, stages=mpm.stages),
        'net_repro_rate': lh.net_repro_rate(
            U, F, start, method=R0Method(tr.r0_method), matC=C, stages=mpm.stages
        ),
        'gen_time': lh.gen_time(
            U, F, method=GenTimeMethod(tr.gen_time_method), start=start,
            xmax=lt.xmax, lx_crit=lt.lx_crit, matC=C, stages=mpm.stages,
        ),
        'entropy_k': lh.entropy_k(lx),
    }

    try:
        out['qsd_age'] = qsd_converge(U, start, config.convergence.qsd_conv,
                                      config.convergence.qsd_max_iter,
                                      stages=mpm.stages)
    except DegenerateModelError as e:
        # Age-classified cohorts die out before their distribution settles
        logger.debug("qsd_age omitted: %s", e)

    if (lx * mx).sum() > 0:
        out['entropy_d'] = lh.entropy_d(lx, mx)
    if lx.size >= 2 and lx[-1] < lx[0]:
        out['shape_surv'] = lh.shape_surv(lx)
    if mx.size >= 2 and mx.sum() > 0:
        out['shape_rep'] = lh.shape_rep(mx)

    mat_prob = lh.mature_prob(U, F, C, start, stages=mpm.stages)
    out['mature_prob'] = mat_prob
    if mat_prob > 0:
        out['mature_age'] = lh.mature_age(U, F, C, start, stages=mpm.stages)

    weights = eig.w if tr.weights == "stable" else None
    exclude = tr.exclude_stages or None
    out['vr_survival'] = vr.vr_survival(U, exclude, weights)
    out['vr_growth'] = vr.vr_growth(U, exclude, weights_col=weights)
    out['vr_shrinkage'] = vr.vr_shrinkage(U, exclude, weights_col=weights)
    out['vr_stasis'] = vr.vr_stasis(U, exclude, weights_col=weights)
    if np.any(R > 0):
        out['vr_fecundity'] = vr.vr_fecundity(U, R, exclude, weights_col=weights)
    if tr.dorm_stages:
        out['vr_dorm_enter'] = vr.vr_dorm_enter(U, tr.dorm_stages, exclude, weights)
        out['vr_dorm_exit'] = vr.vr_dorm_exit(U, tr.dorm_stages, exclude, weights)

    ptype = PerturbType(config.perturbation.type)
    for key, value in perturb_trans(U, F, C, exclude, ptype).as_dict().items():
        out[f'trans_{key}'] = value
    for key, value in perturb_vr(U, F, C, exclude, ptype).as_dict().items():
        out[f'pert_{key}'] = value
    return out


def summarize_mpms(mpms: Iterable[MPM],
                   config: Optional[AnalysisConfig] = None,
                   names: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """Summaries of many models, one row each.

    Errors for a model propagate unless config.traits.skip_failures is set;
    then the failure is logged and the row holds only its 'error' message.
    """
    config = config or default_config()
    mpms = list(mpms)
    if names is not None and len(names) != len(mpms):
        raise ValueError(f"got {len(names)} names for {len(mpms)} models")

    rows = []
    for i, mpm in enumerate(mpms):
        try:
            row = life_history_summary(mpm, config)
            row['error'] = None
        except MPMError as e:
            if not config.traits.skip_failures:
                raise
            logger.warning("model %d skipped: %s: %s", i, type(e).__name__, e)
            row = {'error': f"{type(e).__name__}: {e}"}
        rows.append(row)

    logger.info("summarised %d models", len(rows))
    index = pd.Index(names if names is not None else range(len(rows)), name='model')
    return pd.DataFrame(rows, index=index)
