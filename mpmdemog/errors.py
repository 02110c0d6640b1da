"""Error and warning taxonomy for mpmdemog.

Every public function validates its inputs and raises one of these at the
offending call. Nothing is retried: all computations are deterministic.

Fatal (exceptions, all subclasses of ValueError via MPMError):
  - DimensionMismatchError: U/F/C not square or shapes disagree
  - InvalidIndexError: start/exclude/dormant/collapse index out of range
  - InvalidMatrixError: negative entries, U column sums > 1, non-finite values
  - SingularMatrixError: (I - U) not invertible (fundamental matrix undefined)
  - NonErgodicError: dominant eigenvalue of A not unique
  - InvalidPartitionError: collapse groups do not partition the stages
  - DegenerateModelError: input that would otherwise produce NaN

Non-fatal (warnings.warn categories):
  - ConvergenceWarning: iteration cap reached, best estimate returned
  - StageOverlapWarning: a stage is both excluded and dormant
"""


class MPMError(ValueError):
    """Base class for matrix population model errors."""


class DimensionMismatchError(MPMError):
    """Matrices are not square or their shapes disagree."""


class InvalidIndexError(MPMError):
    """A stage index (or stage name) is out of range or disallowed."""


class InvalidMatrixError(MPMError):
    """A matrix violates the MPM invariants (non-negative, U column sums <= 1)."""


class SingularMatrixError(MPMError):
    """(I - U) is singular, so the fundamental matrix is undefined."""


class NonErgodicError(MPMError):
    """The dominant eigenvalue of A is not simple and unique."""


class InvalidPartitionError(MPMError):
    """Collapse groups do not form a partition of all stage indices."""


class DegenerateModelError(MPMError):
    """Model is degenerate for the requested quantity (would yield NaN)."""


class ConvergenceWarning(UserWarning):
    """An iterative method hit its cap; the returned value is the cap."""


class StageOverlapWarning(UserWarning):
    """A stage appears in both the excluded and the dormant set."""
