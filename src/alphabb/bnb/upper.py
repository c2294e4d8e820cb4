"""
Upper Bounding

Looks for a point feasible for the original (nonconvex) problem on a node:

- The relaxation point itself, evaluated on the true functions
- A local NLP solve over the node box, seeded at the relaxation point
  (or the box midpoint when the relaxation gave no point)

The best feasible candidate is returned; when there is none,
`UpperSolveFailure` is raised and the caller carries on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Protocol, Tuple

import autograd.numpy as np

from ..constants import DEFAULT_FEASIBILITY_TOL
from ..errors import UpperSolveFailure
from ..problem import Problem
from ..solvers.base import LocalSolver
from .node import BBNode

logger = logging.getLogger(__name__)


@dataclass
class UpperBoundResult:
    x: np.ndarray  # optimized-variable space
    value: float
    source: str


class UpperBoundSolver(Protocol):
    def solve(self, node: BBNode, problem: Problem) -> UpperBoundResult:
        ...


class LocalSearchUpperBoundSolver:
    def __init__(
        self,
        local_solver: LocalSolver,
        feasibility_tol: float = DEFAULT_FEASIBILITY_TOL,
        use_local_search: bool = True,
    ):
        self.local_solver = local_solver
        self.feasibility_tol = float(feasibility_tol)
        self.use_local_search = use_local_search

    def solve(self, node: BBNode, problem: Problem) -> UpperBoundResult:
        lower = problem.restrict(node.lower_bounds)
        upper = problem.restrict(node.upper_bounds)

        if node.lower_solution is not None:
            seed = np.clip(problem.restrict(node.lower_solution), lower, upper)
        else:
            seed = 0.5 * (lower + upper)

        candidates: List[Tuple[np.ndarray, str]] = [(seed, "relaxation")]

        if self.use_local_search:
            bounds = [(float(lo), float(hi)) for lo, hi in zip(lower, upper)]
            result = self.local_solver.solve(
                problem.objective,
                problem.constraints,
                bounds,
                seed,
                equalities=problem.equalities,
            )
            if result.x is not None:
                candidates.append((np.clip(result.x, lower, upper), "local"))
            else:
                logger.debug(f"Node {node.node_id}: local solve failed: {result.message}")

        best: UpperBoundResult | None = None
        for x, source in candidates:
            if not self._is_feasible(problem, x, lower, upper):
                continue
            value = problem.evaluate(x)
            if not np.isfinite(value):
                continue
            if best is None or value < best.value:
                best = UpperBoundResult(x=x, value=value, source=source)

        if best is None:
            raise UpperSolveFailure(f"No feasible point found on node {node.node_id}")
        return best

    def _is_feasible(self, problem: Problem, x, lower, upper) -> bool:
        tol = self.feasibility_tol
        if np.any(x < lower - tol) or np.any(x > upper + tol):
            return False
        return problem.max_violation(x) <= tol
