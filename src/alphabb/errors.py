"""Exception and warning types raised by alphabb."""


class AlphaBBError(Exception):
    """Base class for alphabb errors."""


class RelaxationConstructionError(AlphaBBError, ValueError):
    """Problem data cannot be turned into a valid relaxation (e.g. non-square Q)."""


class LowerSolveFailure(AlphaBBError, RuntimeError):
    """The convex solve on a node did not end with a trustworthy status."""


class UpperSolveFailure(AlphaBBError, RuntimeError):
    """No point feasible for the original problem was found on a node."""


class NumericalDegeneracy(RuntimeWarning):
    """A degenerate numerical case was handled with a looser fallback."""
