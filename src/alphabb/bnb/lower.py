"""
Lower Bounding

Solves the node relaxation with a convex solver and records the outcome on
the node. Only the node passed in is mutated, and only its
`lower_bound_value`, `lower_solution` and `lower_status` fields.
"""

from __future__ import annotations

import logging
from typing import Protocol

import autograd.numpy as np

from ..constants import LowerStatus
from ..errors import LowerSolveFailure
from ..problem import Problem
from ..solvers.base import ConvexSolver, ConvexSolveResult
from .node import BBNode
from .relaxation import Relaxation

logger = logging.getLogger(__name__)


class LowerBoundSolver(Protocol):
    def solve(self, node: BBNode, problem: Problem, relaxation: Relaxation) -> LowerStatus:
        ...


def write_relaxed_solution(
    node: BBNode, problem: Problem, x_relaxed: np.ndarray
) -> np.ndarray:
    """
    Scatter a relaxation solution into the node's stored-length vector.

    Only the positions in ``problem.variable_indices`` are written; auxiliary
    positions keep their previous value (or the box midpoint). A length
    mismatch raises instead of truncating.
    """
    x_relaxed = np.asarray(x_relaxed, dtype=float).ravel()
    indices = problem.variable_indices
    if x_relaxed.shape[0] != indices.shape[0]:
        raise LowerSolveFailure(
            f"Relaxation returned {x_relaxed.shape[0]} values for "
            f"{indices.shape[0]} optimized variables"
        )
    n_stored = node.lower_bounds.shape[0]
    if n_stored != problem.n_stored:
        raise LowerSolveFailure(
            f"Node stores {n_stored} variables, problem stores {problem.n_stored}"
        )

    if node.lower_solution is not None and node.lower_solution.shape[0] == n_stored:
        out = node.lower_solution.copy()
    else:
        out = node.midpoint()
    out[indices] = x_relaxed
    return np.clip(out, node.lower_bounds, node.upper_bounds)


class RelaxationLowerBoundSolver:
    """
    Lower bounding with an injected convex solver.

    Retry policy: a SOLVER_FAILURE is retried (up to ``retries`` times) from
    the box midpoint. A node whose relaxation still fails keeps its inherited
    bound and is never pruned on that basis.
    """

    def __init__(self, convex_solver: ConvexSolver, retries: int = 1):
        self.convex_solver = convex_solver
        self.retries = int(retries)

    def solve(self, node: BBNode, problem: Problem, relaxation: Relaxation) -> LowerStatus:
        convex_problem = relaxation.to_convex_problem()

        x0 = None
        if node.lower_solution is not None:
            x0 = problem.restrict(node.lower_solution)

        result = self.convex_solver.solve(convex_problem, x0)
        attempts = 0
        while result.status == LowerStatus.SOLVER_FAILURE and attempts < self.retries:
            attempts += 1
            logger.debug(
                f"Node {node.node_id}: lower solve failed "
                f"({result.termination_status}), retrying from midpoint"
            )
            result = self.convex_solver.solve(convex_problem, convex_problem.midpoint())

        return self._record(node, problem, result)

    @staticmethod
    def _record(node: BBNode, problem: Problem, result: ConvexSolveResult) -> LowerStatus:
        status = result.status

        if status == LowerStatus.INFEASIBLE:
            node.mark_infeasible()
            return status

        if status == LowerStatus.FEASIBLE:
            if result.x is None or not np.isfinite(result.objective_value):
                status = LowerStatus.SOLVER_FAILURE
            else:
                try:
                    solution = write_relaxed_solution(node, problem, result.x)
                except LowerSolveFailure as e:
                    logger.debug(f"Node {node.node_id}: {e}")
                    status = LowerStatus.SOLVER_FAILURE
                else:
                    node.lower_solution = solution
                    node.lower_bound_value = max(
                        float(result.objective_value), node.priority
                    )
                    node.lower_status = status
                    return status

        # Cannot bound: keep the inherited bound, which is still valid
        node.lower_status = LowerStatus.SOLVER_FAILURE
        node.lower_bound_value = node.priority
        return LowerStatus.SOLVER_FAILURE
