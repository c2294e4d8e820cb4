__all__ = [
    "Problem",
    "QuadraticFunction",
    "BranchAndBoundTree",
    "BBOptions",
    "BBResult",
    "solve",
    "SLSQP",
    "TRUST_CONSTR",
    "IPOPT",
    "BEST_FIRST",
    "DEPTH_FIRST",
    "HYBRID",
    "NodeSelection",
    "BranchingRule",
    "BranchPoint",
    "TreeState",
    "AlphaBBError",
    "RelaxationConstructionError",
    "LowerSolveFailure",
    "UpperSolveFailure",
    "NumericalDegeneracy",
    "ProgressRecord",
    "LoggingProgressObserver",
    "RecordingProgressObserver",
]

from .problem import Problem, QuadraticFunction
from .constants import Solver, NodeSelection, BranchingRule, BranchPoint, TreeState
from .errors import (
    AlphaBBError,
    RelaxationConstructionError,
    LowerSolveFailure,
    UpperSolveFailure,
    NumericalDegeneracy,
)
from .reporting import ProgressRecord, LoggingProgressObserver, RecordingProgressObserver
from .bnb import BranchAndBoundTree, BBOptions, BBResult, solve

SLSQP = Solver.SLSQP
TRUST_CONSTR = Solver.TRUST_CONSTR
IPOPT = Solver.IPOPT

BEST_FIRST = NodeSelection.BEST_FIRST
DEPTH_FIRST = NodeSelection.DEPTH_FIRST
HYBRID = NodeSelection.HYBRID
