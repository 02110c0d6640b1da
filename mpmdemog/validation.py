"""Input validation shared by every public function.

Each check either returns a cleaned value (float array, integer index,
sorted index set) or raises one of the errors in mpmdemog.errors with a
message naming the offending argument.
"""

from __future__ import annotations

from typing import Iterable, Optional, Sequence, Union

import numpy as np

from mpmdemog.errors import (
    DegenerateModelError,
    DimensionMismatchError,
    InvalidIndexError,
    InvalidMatrixError,
)

# Tolerance on U column sums (floating-point slack above 1).
COLSUM_TOL = 1e-10


def frozen_copy(mat) -> np.ndarray:
    """Float copy of `mat` with the write flag cleared."""
    out = np.array(mat, dtype=np.float64, copy=True)
    out.setflags(write=False)
    return out


# ═══════════════════════════════════════════════════════════════════════
# MATRICES
# ═══════════════════════════════════════════════════════════════════════

def as_square(mat, name: str) -> np.ndarray:
    """Coerce to a finite, square float matrix."""
    arr = np.asarray(mat, dtype=np.float64)
    if arr.ndim != 2 or arr.shape[0] != arr.shape[1]:
        raise DimensionMismatchError(
            f"{name} must be a square matrix, got shape {arr.shape}"
        )
    if arr.shape[0] == 0:
        raise DimensionMismatchError(f"{name} must have at least one stage")
    if not np.all(np.isfinite(arr)):
        raise InvalidMatrixError(f"{name} contains NaN or infinite values")
    return arr


def check_nonnegative(arr: np.ndarray, name: str) -> None:
    if np.any(arr < 0):
        raise InvalidMatrixError(f"{name} must be non-negative")


def check_same_shape(ref: np.ndarray, other: np.ndarray,
                     ref_name: str, other_name: str) -> None:
    if ref.shape != other.shape:
        raise DimensionMismatchError(
            f"{other_name} shape {other.shape} does not match "
            f"{ref_name} shape {ref.shape}"
        )


def check_matU(matU) -> np.ndarray:
    """Validate a survival/growth matrix: square, non-negative, colsums <= 1."""
    U = as_square(matU, "matU")
    check_nonnegative(U, "matU")
    colsums = U.sum(axis=0)
    bad = np.flatnonzero(colsums > 1.0 + COLSUM_TOL)
    if bad.size:
        raise InvalidMatrixError(
            f"matU column sums must not exceed 1; stage(s) {bad.tolist()} "
            f"have survival {colsums[bad].round(6).tolist()}"
        )
    return U


def check_matR(matR, matU: np.ndarray, name: str = "matF") -> np.ndarray:
    """Validate a reproduction matrix against an already-checked U."""
    R = as_square(matR, name)
    check_same_shape(matU, R, "matU", name)
    check_nonnegative(R, name)
    return R


def check_matA(matA) -> np.ndarray:
    A = as_square(matA, "matA")
    check_nonnegative(A, "matA")
    return A


def check_mpm(matU, matF, matC=None):
    """Validate U, F and optional C together. Returns the float arrays."""
    U = check_matU(matU)
    F = check_matR(matF, U, "matF")
    C = None if matC is None else check_matR(matC, U, "matC")
    return U, F, C


def combine_repro(matF: np.ndarray, matC: Optional[np.ndarray]) -> np.ndarray:
    """R = F + C (C optional)."""
    return matF if matC is None else matF + matC


# ═══════════════════════════════════════════════════════════════════════
# STAGE INDICES
# ═══════════════════════════════════════════════════════════════════════

StageRef = Union[int, str]


def resolve_stage(stage: StageRef, n: int,
                  stages: Optional[Sequence[str]] = None,
                  name: str = "start") -> int:
    """Resolve a 0-based index or a stage name to an index in [0, n)."""
    if isinstance(stage, str):
        if stages is None:
            raise InvalidIndexError(
                f"{name}={stage!r} is a stage name but no stage names were given"
            )
        try:
            return list(stages).index(stage)
        except ValueError:
            raise InvalidIndexError(
                f"{name}={stage!r} is not one of the stages {list(stages)}"
            ) from None
    if isinstance(stage, (bool, np.bool_)) or not isinstance(stage, (int, np.integer)):
        raise InvalidIndexError(f"{name} must be an integer index, got {stage!r}")
    if not 0 <= stage < n:
        raise InvalidIndexError(
            f"{name}={stage} out of range for {n} stages (valid: 0..{n - 1})"
        )
    return int(stage)


def start_vector(start, n: int,
                 stages: Optional[Sequence[str]] = None) -> np.ndarray:
    """Initial cohort: indicator at `start`, or a normalised start distribution.

    `start` may be an index, a stage name, or a length-n non-negative vector.
    """
    if isinstance(start, (list, tuple, np.ndarray)):
        vec = np.asarray(start, dtype=np.float64)
        if vec.shape != (n,):
            raise DimensionMismatchError(
                f"start distribution must have length {n}, got shape {vec.shape}"
            )
        if np.any(vec < 0) or not np.all(np.isfinite(vec)):
            raise InvalidMatrixError("start distribution must be non-negative and finite")
        total = vec.sum()
        if total <= 0:
            raise DegenerateModelError("start distribution sums to zero")
        return vec / total
    vec = np.zeros(n)
    vec[resolve_stage(start, n, stages)] = 1.0
    return vec


def stage_set(indices: Optional[Iterable], n: int, name: str,
              stages: Optional[Sequence[str]] = None) -> np.ndarray:
    """Sorted unique stage indices from indices, names or a boolean mask.

    None gives an empty set.
    """
    if indices is None:
        return np.zeros(0, dtype=int)
    arr = np.asarray(indices)
    if arr.dtype == bool:
        if arr.shape != (n,):
            raise DimensionMismatchError(
                f"{name} boolean mask must have length {n}, got shape {arr.shape}"
            )
        return np.flatnonzero(arr)
    if arr.ndim == 0:
        arr = arr.reshape(1)
    out = [resolve_stage(i, n, stages, name) for i in arr.tolist()]
    return np.unique(np.asarray(out, dtype=int))


def stage_mask(indices: Optional[Iterable], n: int, name: str,
               stages: Optional[Sequence[str]] = None) -> np.ndarray:
    """Boolean mask of length n with True at the given stages."""
    mask = np.zeros(n, dtype=bool)
    mask[stage_set(indices, n, name, stages)] = True
    return mask


# ═══════════════════════════════════════════════════════════════════════
# TRAJECTORIES
# ═══════════════════════════════════════════════════════════════════════

def check_lx(lx) -> np.ndarray:
    """Survivorship: 1-D, starts at 1, within [0, 1], non-increasing."""
    arr = np.asarray(lx, dtype=np.float64)
    if arr.ndim != 1 or arr.size == 0:
        raise DimensionMismatchError(f"lx must be a non-empty vector, got shape {arr.shape}")
    if not np.all(np.isfinite(arr)):
        raise InvalidMatrixError("lx contains NaN or infinite values")
    if not np.isclose(arr[0], 1.0):
        raise InvalidMatrixError(f"lx must start at 1, got {arr[0]}")
    if np.any(arr < 0) or np.any(arr > 1 + COLSUM_TOL):
        raise InvalidMatrixError("lx values must lie in [0, 1]")
    if np.any(np.diff(arr) > COLSUM_TOL):
        raise InvalidMatrixError("lx must be non-increasing")
    return arr


def check_px(px) -> np.ndarray:
    arr = np.asarray(px, dtype=np.float64)
    if arr.ndim != 1:
        raise DimensionMismatchError(f"px must be a vector, got shape {arr.shape}")
    if not np.all(np.isfinite(arr)) or np.any(arr < 0) or np.any(arr > 1 + COLSUM_TOL):
        raise InvalidMatrixError("px values must lie in [0, 1]")
    return arr


def check_hx(hx) -> np.ndarray:
    arr = np.asarray(hx, dtype=np.float64)
    if arr.ndim != 1:
        raise DimensionMismatchError(f"hx must be a vector, got shape {arr.shape}")
    if np.any(np.isnan(arr)) or np.any(arr < 0):
        raise InvalidMatrixError("hx values must be non-negative (inf allowed)")
    return arr


def check_mx(mx, length: Optional[int] = None) -> np.ndarray:
    arr = np.asarray(mx, dtype=np.float64)
    if arr.ndim != 1:
        raise DimensionMismatchError(f"mx must be a vector, got shape {arr.shape}")
    if not np.all(np.isfinite(arr)) or np.any(arr < 0):
        raise InvalidMatrixError("mx values must be non-negative and finite")
    if length is not None and arr.size != length:
        raise DimensionMismatchError(
            f"mx has length {arr.size}, expected {length} (same as lx)"
        )
    return arr


def check_lx_crit(lx_crit: float) -> float:
    if not 0 < lx_crit < 1:
        raise ValueError(f"lx_crit must lie in (0, 1), got {lx_crit}")
    return float(lx_crit)
