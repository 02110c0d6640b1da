"""Core data types for mpmdemog.

This module is the single source of truth for:
  - Closed enumerations selecting a method at the call site (PerturbType,
    R0Method, GenTimeMethod) and the stage classes used to standardize
    models (StageClass)
  - The MPM container (U, F, optional C, optional stage names)
  - Result objects returned by the eigen and perturbation routines

Enumerations carry string values so they can be read from YAML config.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from mpmdemog.errors import DimensionMismatchError
from mpmdemog.validation import check_mpm, frozen_copy


# ═══════════════════════════════════════════════════════════════════════
# ENUMERATIONS
# ═══════════════════════════════════════════════════════════════════════

class PerturbType(str, Enum):
    """Absolute (sensitivity) or proportional (elasticity) perturbation."""
    SENSITIVITY = "sensitivity"
    ELASTICITY = "elasticity"


class R0Method(str, Enum):
    """Net reproductive rate definitions.

    GENERATION: dominant eigenvalue of the next-generation matrix F N
    START:      expected lifetime offspring of an individual in `start`
    """
    GENERATION = "generation"
    START = "start"


class GenTimeMethod(str, Enum):
    """Generation time definitions.

    R0:       log(R0) / log(lambda)
    AGE_DIFF: mean age of parents of offspring in the stable population
    COHORT:   mean age of reproduction of a cohort (sum x lx mx / sum lx mx)
    """
    R0 = "R0"
    AGE_DIFF = "age_diff"
    COHORT = "cohort"


class StageClass(str, Enum):
    """Broad class of a stage, used by mpm_rearrange / mpm_standardize."""
    PROP = "prop"       # Propagule (seed bank, eggs)
    ACTIVE = "active"   # Active, non-dormant
    DORM = "dorm"       # Dormant


# ═══════════════════════════════════════════════════════════════════════
# MODEL CONTAINER
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class MPM:
    """A matrix population model A = U + F (+ C).

    Matrices are validated and stored as read-only copies and the fields
    cannot be reassigned, so an MPM can be shared freely between calls.

    Attributes:
        matU: (N, N) survival/growth transitions; column sums <= 1.
        matF: (N, N) sexual reproduction.
        matC: Optional (N, N) clonal reproduction.
        stages: Optional stage names (length N).
    """
    matU: np.ndarray
    matF: np.ndarray
    matC: Optional[np.ndarray] = None
    stages: Optional[Tuple[str, ...]] = None

    def __post_init__(self):
        check_mpm(self.matU, self.matF, self.matC)
        object.__setattr__(self, "matU", frozen_copy(self.matU))
        object.__setattr__(self, "matF", frozen_copy(self.matF))
        if self.matC is not None:
            object.__setattr__(self, "matC", frozen_copy(self.matC))
        if self.stages is not None:
            object.__setattr__(self, "stages", tuple(str(s) for s in self.stages))
            if len(self.stages) != self.n_stages:
                raise DimensionMismatchError(
                    f"stages has {len(self.stages)} names, "
                    f"matrices have {self.n_stages} stages"
                )

    @property
    def n_stages(self) -> int:
        return self.matU.shape[0]

    @property
    def matR(self) -> np.ndarray:
        """Total reproduction F (+ C)."""
        if self.matC is None:
            return self.matF.copy()
        return self.matF + self.matC

    @property
    def matA(self) -> np.ndarray:
        """Full projection matrix U + F (+ C)."""
        return self.matU + self.matR


# ═══════════════════════════════════════════════════════════════════════
# RESULT OBJECTS
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class EigenSystem:
    """Dominant eigen-system of a projection matrix.

    lam: dominant eigenvalue (population growth rate)
    w:   right eigenvector, sums to 1 (stable stage distribution)
    v:   left eigenvector, scaled so that <v, w> = 1 (reproductive value)
    """
    lam: float
    w: np.ndarray
    v: np.ndarray


@dataclass(frozen=True)
class TransitionPerturbation:
    """Sensitivities or elasticities of lambda summed by transition type."""
    stasis: float
    retrogression: float
    progression: float
    fecundity: float
    clonality: float
    type: PerturbType = PerturbType.SENSITIVITY

    def as_dict(self) -> Dict[str, float]:
        return {
            'stasis': self.stasis,
            'retrogression': self.retrogression,
            'progression': self.progression,
            'fecundity': self.fecundity,
            'clonality': self.clonality,
        }


@dataclass(frozen=True)
class VitalRatePerturbation:
    """Sensitivities or elasticities of lambda to vital-rate types."""
    survival: float
    growth: float
    shrinkage: float
    fecundity: float
    clonality: float
    type: PerturbType = PerturbType.SENSITIVITY

    def as_dict(self) -> Dict[str, float]:
        return {
            'survival': self.survival,
            'growth': self.growth,
            'shrinkage': self.shrinkage,
            'fecundity': self.fecundity,
            'clonality': self.clonality,
        }


@dataclass
class RearrangedMPM:
    """Output of mpm_rearrange: reordered model plus reordered metadata."""
    mpm: MPM
    matrix_stages: Tuple[StageClass, ...]
    repro_stages: np.ndarray
    order: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=int))


def as_stage_classes(matrix_stages: Sequence) -> Tuple[StageClass, ...]:
    """Coerce strings or StageClass members to a tuple of StageClass."""
    return tuple(StageClass(s) for s in matrix_stages)
