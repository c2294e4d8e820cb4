from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple

import autograd.numpy as anp  # type: ignore

from ..constants import LowerStatus
from ..problem import QuadraticFunction


ArrayLike = anp.ndarray


class TerminationStatus(StrEnum):
    OPTIMAL = "optimal"
    LOCALLY_SOLVED = "locally_solved"
    INFEASIBLE = "infeasible"
    ITERATION_LIMIT = "iteration_limit"
    TIME_LIMIT = "time_limit"
    NUMERICAL_ERROR = "numerical_error"
    OTHER_ERROR = "other_error"


class PrimalStatus(StrEnum):
    FEASIBLE_POINT = "feasible_point"
    NEARLY_FEASIBLE_POINT = "nearly_feasible_point"
    INFEASIBILITY_CERTIFICATE = "infeasibility_certificate"
    NO_SOLUTION = "no_solution"
    UNKNOWN = "unknown"


_SOLVED = {TerminationStatus.OPTIMAL, TerminationStatus.LOCALLY_SOLVED}
_TRUSTED_POINTS = {PrimalStatus.FEASIBLE_POINT, PrimalStatus.NEARLY_FEASIBLE_POINT}


def classify_lower_status(
    termination: TerminationStatus, primal: PrimalStatus
) -> LowerStatus:
    """
    Map a convex solve outcome onto FEASIBLE / INFEASIBLE / SOLVER_FAILURE.

    Total over both enums. Only a solved termination with a trusted point is
    FEASIBLE, and only an infeasible termination is INFEASIBLE; every other
    pair is a SOLVER_FAILURE.
    """
    if termination in _SOLVED and primal in _TRUSTED_POINTS:
        return LowerStatus.FEASIBLE
    if termination == TerminationStatus.INFEASIBLE and primal in (
        PrimalStatus.INFEASIBILITY_CERTIFICATE,
        PrimalStatus.NO_SOLUTION,
    ):
        return LowerStatus.INFEASIBLE
    return LowerStatus.SOLVER_FAILURE


@dataclass
class ConvexProblem:
    """A convex QCQP: minimize ``objective`` s.t. ``constraints <= 0`` on a box."""

    objective: QuadraticFunction
    constraints: List[QuadraticFunction]
    lower: ArrayLike
    upper: ArrayLike

    @property
    def size(self) -> int:
        return self.lower.shape[0]

    def midpoint(self) -> ArrayLike:
        return 0.5 * (self.lower + self.upper)


@dataclass
class SolverStats:
    solver_name: str
    solve_time: Optional[float] = None
    num_iters: Optional[int] = None


@dataclass
class ConvexSolveResult:
    termination_status: TerminationStatus
    primal_status: PrimalStatus
    objective_value: float
    x: Optional[ArrayLike]
    stats: SolverStats
    raw_result: Optional[object] = None

    @property
    def status(self) -> LowerStatus:
        return classify_lower_status(self.termination_status, self.primal_status)


@dataclass
class LocalSolveResult:
    x: Optional[ArrayLike]
    objective_value: float
    success: bool
    stats: SolverStats
    message: str = ""
    raw_result: Optional[object] = field(default=None, repr=False)


class ConvexSolver(Protocol):
    def solve(
        self, problem: ConvexProblem, x0: ArrayLike | None = None
    ) -> ConvexSolveResult:
        ...


class LocalSolver(Protocol):
    def solve(
        self,
        objective: Callable[[ArrayLike], float],
        constraints: Sequence[Callable[[ArrayLike], float]],
        bounds: Sequence[Tuple[float, float]],
        x0: ArrayLike,
        equalities: Sequence[Callable[[ArrayLike], float]] = (),
    ) -> LocalSolveResult:
        ...


ConvexSolverFactory = Callable[[Dict[str, object]], ConvexSolver]
LocalSolverFactory = Callable[[Dict[str, object]], LocalSolver]
