"""Transformations of matrix population models.

  - mpm_collapse:     merge groups of stages, preserving lambda
  - mpm_split:        split A into U and F by offspring rows
  - mpm_rearrange:    move non-reproductive stages that follow the first
                      reproductive stage to the end
  - mpm_standardize:  collapse into propagule / pre-reproductive /
                      reproductive / post-reproductive stages
  - repro_stages / standard_stages: the stage sets these work on

Collapsing uses the stable stage distribution w of A (Salguero-Gomez &
Plotkin 2010; Bienvenu et al. 2017). With P the (k, N) group indicator and
Q the (N, k) matrix Q[i, g] = w_i / sum_{j in g} w_j, each component is
mapped to X' = P X Q. Since Q P w = w, A' (P w) = lambda (P w): the
collapsed model has the same growth rate.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

import numpy as np

from mpmdemog.errors import (
    DegenerateModelError,
    DimensionMismatchError,
    InvalidPartitionError,
)
from mpmdemog.linalg import stable_dist
from mpmdemog.types import MPM, RearrangedMPM, StageClass, as_stage_classes
from mpmdemog.validation import (
    check_matA,
    check_matU,
    check_mpm,
    combine_repro,
    resolve_stage,
    stage_mask,
)

logger = logging.getLogger(__name__)

STANDARD_STAGES = ("prop", "pre-rep", "rep", "post-rep")


# ═══════════════════════════════════════════════════════════════════════
# STAGE SETS
# ═══════════════════════════════════════════════════════════════════════

def repro_stages(matF, matC=None) -> np.ndarray:
    """Boolean mask of stages with any sexual (or clonal) reproduction."""
    F = check_matA(matF)
    if matC is not None:
        C = check_matA(matC)
        if C.shape != F.shape:
            raise DimensionMismatchError(
                f"matC shape {C.shape} does not match matF shape {F.shape}"
            )
        F = combine_repro(F, C)
    return F.sum(axis=0) > 0


def standard_stages(repro_stages, matrix_stages) -> List[List[int]]:
    """Groups of stages for [propagule, pre-rep, rep, post-rep].

    Propagule stages are those classed StageClass.PROP. The remaining stages
    are split by the first and last reproductive stage: before the first,
    from first to last inclusive, after the last. Groups may be empty.
    """
    classes = as_stage_classes(matrix_stages)
    n = len(classes)
    repro = stage_mask(repro_stages, n, "repro_stages")
    if not repro.any():
        raise DegenerateModelError("model has no reproductive stages")
    idx = np.flatnonzero(repro)
    first, last = int(idx[0]), int(idx[-1])

    groups: List[List[int]] = [[], [], [], []]
    for i, cls in enumerate(classes):
        if cls is StageClass.PROP:
            groups[0].append(i)
        elif i < first:
            groups[1].append(i)
        elif i <= last:
            groups[2].append(i)
        else:
            groups[3].append(i)
    return groups


# ═══════════════════════════════════════════════════════════════════════
# COLLAPSE
# ═══════════════════════════════════════════════════════════════════════

def _check_partition(collapse: Sequence[Sequence], n: int,
                     stages: Optional[Sequence[str]]) -> List[List[int]]:
    groups = []
    seen = np.zeros(n, dtype=int)
    for g, members in enumerate(collapse):
        members = list(np.atleast_1d(np.asarray(members)).tolist())
        if not members:
            raise InvalidPartitionError(f"collapse group {g} is empty")
        resolved = [resolve_stage(m, n, stages, name=f"collapse[{g}]")
                    for m in members]
        for i in resolved:
            seen[i] += 1
        groups.append(resolved)
    dup = np.flatnonzero(seen > 1)
    if dup.size:
        raise InvalidPartitionError(
            f"stage(s) {dup.tolist()} appear in more than one collapse group"
        )
    missing = np.flatnonzero(seen == 0)
    if missing.size:
        raise InvalidPartitionError(
            f"stage(s) {missing.tolist()} are not in any collapse group"
        )
    return groups


def mpm_collapse(matU, matF, collapse, matC=None, stages=None) -> MPM:
    """Collapse groups of stages into single stages.

    Args:
        matU, matF, matC: Model components (matC optional).
        collapse: Sequence of groups; each group lists stage indices (or
            names) to merge. The groups must partition all stages.
        stages: Optional stage names; merged names are joined with '-'.

    Returns:
        MPM with one stage per group, in group order.

    Raises:
        InvalidPartitionError: if groups are empty, overlap or leave a stage
            out.
        InvalidIndexError: if a stage index is out of range.
        DegenerateModelError: if a group has zero weight in the stable
            distribution.
    """
    U, F, C = check_mpm(matU, matF, matC)
    n = U.shape[0]
    groups = _check_partition(collapse, n, stages)
    A = combine_repro(U + F, C)
    w = stable_dist(A)

    k = len(groups)
    P = np.zeros((k, n))
    Q = np.zeros((n, k))
    for g, members in enumerate(groups):
        weight = w[members].sum()
        if weight <= 0:
            raise DegenerateModelError(
                f"collapse group {g} {members} has zero stable-stage weight"
            )
        P[g, members] = 1.0
        Q[members, g] = w[members] / weight

    names = None
    if stages is not None:
        names = tuple("-".join(str(stages[i]) for i in members) for members in groups)
    logger.debug("collapsed %d stages into %d", n, k)
    return MPM(
        matU=P @ U @ Q,
        matF=P @ F @ Q,
        matC=None if C is None else P @ C @ Q,
        stages=names,
    )


# ═══════════════════════════════════════════════════════════════════════
# SPLIT
# ═══════════════════════════════════════════════════════════════════════

def mpm_split(matA, repro_rows=(0,), repro_cols=None, stages=None) -> MPM:
    """Split a projection matrix A into U and F.

    Entries in the offspring rows `repro_rows` (from the columns
    `repro_cols`, default all) are taken as reproduction, except the
    diagonal: an offspring stage's own stasis stays in U.

    Raises:
        InvalidMatrixError: if the remaining U has a column sum above 1.
    """
    A = check_matA(matA)
    n = A.shape[0]
    rows = stage_mask(repro_rows, n, "repro_rows", stages)
    if repro_cols is None:
        cols = np.ones(n, dtype=bool)
    else:
        cols = stage_mask(repro_cols, n, "repro_cols", stages)
    is_repro = np.outer(rows, cols) & ~np.eye(n, dtype=bool)
    F = np.where(is_repro, A, 0.0)
    U = check_matU(A - F)
    return MPM(matU=U, matF=F, stages=stages)


# ═══════════════════════════════════════════════════════════════════════
# REARRANGE & STANDARDIZE
# ═══════════════════════════════════════════════════════════════════════

def mpm_rearrange(matU, matF, repro_stages, matrix_stages, matC=None,
                  stages=None) -> RearrangedMPM:
    """Move inactive stages to the end of the model.

    Inactive stages are non-reproductive stages that come after the first
    reproductive stage (e.g. a dormant or post-reproductive stage placed
    between reproductive ones). They keep their relative order.

    Returns:
        RearrangedMPM with the reordered model, stage classes, reproductive
        mask and the permutation `order` (new position -> old index).
    """
    U, F, C = check_mpm(matU, matF, matC)
    n = U.shape[0]
    classes = as_stage_classes(matrix_stages)
    if len(classes) != n:
        raise DimensionMismatchError(
            f"matrix_stages has {len(classes)} entries, model has {n} stages"
        )
    repro = stage_mask(repro_stages, n, "repro_stages", stages)
    if not repro.any():
        raise DegenerateModelError("model has no reproductive stages")
    first = int(np.flatnonzero(repro)[0])

    inactive = [i for i in range(first + 1, n) if not repro[i]]
    active = [i for i in range(n) if i not in inactive]
    order = np.array(active + inactive, dtype=int)
    ix = np.ix_(order, order)

    mpm = MPM(
        matU=U[ix],
        matF=F[ix],
        matC=None if C is None else C[ix],
        stages=None if stages is None else tuple(stages[i] for i in order),
    )
    return RearrangedMPM(
        mpm=mpm,
        matrix_stages=tuple(classes[i] for i in order),
        repro_stages=repro[order],
        order=order,
    )


def mpm_standardize(matU, matF, repro_stages, matrix_stages, matC=None,
                    stages=None) -> MPM:
    """Collapse a model into four standard stages.

    The stages are propagule, pre-reproductive, reproductive and
    post-reproductive (STANDARD_STAGES). The model is first rearranged, then
    collapsed with standard_stages(). A standard stage with no member keeps
    zero rows and columns, so the result is always 4 x 4.
    """
    rearranged = mpm_rearrange(matU, matF, repro_stages, matrix_stages,
                               matC=matC, stages=stages)
    groups = standard_stages(rearranged.repro_stages, rearranged.matrix_stages)
    present = [g for g, members in enumerate(groups) if members]
    collapsed = mpm_collapse(
        rearranged.mpm.matU,
        rearranged.mpm.matF,
        [groups[g] for g in present],
        matC=rearranged.mpm.matC,
    )

    def embed(X: Optional[np.ndarray]) -> Optional[np.ndarray]:
        if X is None:
            return None
        out = np.zeros((len(STANDARD_STAGES), len(STANDARD_STAGES)))
        out[np.ix_(present, present)] = X
        return out

    return MPM(
        matU=embed(collapsed.matU),
        matF=embed(collapsed.matF),
        matC=embed(collapsed.matC),
        stages=STANDARD_STAGES,
    )
