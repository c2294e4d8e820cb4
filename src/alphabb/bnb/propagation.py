"""
Bound Propagation

Tightens a node box before its relaxation is built. Every propagator is
conservative: it only ever intersects the box with a region that contains
all feasible points whose objective does not exceed the incumbent, and any
failure leaves the box unchanged.

Propagators:
- NoPropagation: no-op
- FeasibilityBasedPropagator: interval reasoning on each quadratic constraint
- OptimalityBasedPropagator: min/max of each variable over the relaxation
- CompositePropagator: runs several in sequence
"""

from __future__ import annotations

import logging
from typing import List, Protocol, Sequence, Tuple

import autograd.numpy as np

from .. import interval as iv
from ..constants import (
    DEFAULT_FEASIBILITY_TOL,
    DEFAULT_MIN_WIDTH,
    DEFAULT_OBBT_BACKOFF,
    LowerStatus,
)
from ..problem import Problem, QuadraticFunction
from ..solvers.base import ConvexProblem, ConvexSolver
from .node import BBNode, GlobalState
from .relaxation import AlphaBBRelaxationBuilder, RelaxationBuilder

logger = logging.getLogger(__name__)


class BoundsPropagator(Protocol):
    def propagate(self, node: BBNode, problem: Problem, state: GlobalState) -> bool:
        """Tighten ``node`` in place. Returns False if the node holds no useful point."""
        ...


class NoPropagation:
    def propagate(self, node: BBNode, problem: Problem, state: GlobalState) -> bool:
        return True


def tighten_epigraph(node: BBNode, problem: Problem, state: GlobalState) -> None:
    """Clamp the epigraph variable to ``[inherited bound, incumbent]``."""
    idx = problem.epigraph_index
    if idx is None:
        return
    lo = max(node.lower_bounds[idx], node.priority)
    hi = min(node.upper_bounds[idx], state.incumbent_value)
    if lo <= hi:
        node.lower_bounds[idx] = lo
        node.upper_bounds[idx] = hi


def _variable_range(
    fn: QuadraticFunction, i: int, box: List[iv.Interval]
) -> Tuple[float, iv.Interval, iv.Interval]:
    """Split ``fn`` as ``a*x_i**2 + B*x_i + R`` with interval ``B`` and ``R``."""
    n = fn.size
    Q, c = fn.Q, fn.c
    a = 0.5 * Q[i, i]
    B: iv.Interval = (c[i], c[i])
    R: iv.Interval = (fn.constant, fn.constant)
    for j in range(n):
        if j == i:
            continue
        if Q[i, j] != 0.0:
            B = iv.add(B, iv.scale(box[j], Q[i, j]))
        if Q[j, j] != 0.0:
            R = iv.add(R, iv.scale(iv.square(box[j]), 0.5 * Q[j, j]))
        if c[j] != 0.0:
            R = iv.add(R, iv.scale(box[j], c[j]))
        for k in range(j + 1, n):
            if k != i and Q[j, k] != 0.0:
                R = iv.add(R, iv.scale(iv.mul(box[j], box[k]), Q[j, k]))
    return a, B, R


def fbbt_constraint(
    fn: QuadraticFunction, box: List[iv.Interval], tol: float
) -> List[iv.Interval] | None:
    """
    One pass of interval tightening for ``fn(x) <= tol`` over ``box``.

    Returns the tightened box, or None if the constraint cannot hold on it.
    """
    box = list(box)
    for i in range(fn.size):
        a, B, R = _variable_range(fn, i, box)
        if a == 0.0 and B == (0.0, 0.0):
            continue
        r = R[0] - tol
        lo, hi = box[i]
        # min over b in B of b*x is B.hi*x for x <= 0 and B.lo*x for x >= 0
        negative = iv.solve_quadratic_le(a, B[1], r, (lo, min(hi, 0.0)))
        positive = iv.solve_quadratic_le(a, B[0], r, (max(lo, 0.0), hi))
        feasible = iv.hull([negative, positive])
        if iv.is_empty(feasible):
            return None
        box[i] = (max(lo, feasible[0]), min(hi, feasible[1]))
    return box


class FeasibilityBasedPropagator:
    """
    Feasibility-based bound tightening (FBBT) on quadratic constraints.

    Each constraint ``g(x) <= 0`` is rewritten, per variable, as
    ``a*x_i**2 + B*x_i + R <= 0`` with interval ``B`` and ``R`` taken over the
    rest of the box; the set of ``x_i`` admitting some choice in ``B`` and
    ``R`` is a hull of at most two intervals. Equalities are used as two
    inequalities, and the objective cut ``f(x) <= incumbent`` is added once an
    incumbent exists. Sweeps repeat until no bound moves by more than
    ``min_improvement``.
    """

    def __init__(
        self,
        max_passes: int = 5,
        feasibility_tol: float = DEFAULT_FEASIBILITY_TOL,
        min_improvement: float = DEFAULT_MIN_WIDTH,
        use_objective_cut: bool = True,
    ):
        self.max_passes = int(max_passes)
        self.feasibility_tol = float(feasibility_tol)
        self.min_improvement = float(min_improvement)
        self.use_objective_cut = use_objective_cut

    def _functions(self, problem: Problem, state: GlobalState) -> List[QuadraticFunction]:
        fns = list(problem.constraints)
        for h in problem.equalities:
            fns.append(h)
            fns.append(h.negate())
        if self.use_objective_cut and state.has_incumbent:
            f = problem.objective
            fns.append(QuadraticFunction(f.Q, f.c, f.constant - state.incumbent_value))
        return fns

    def propagate(self, node: BBNode, problem: Problem, state: GlobalState) -> bool:
        tighten_epigraph(node, problem, state)
        fns = self._functions(problem, state)
        if not fns:
            return True

        lower = problem.restrict(node.lower_bounds)
        upper = problem.restrict(node.upper_bounds)
        box = [(float(lo), float(hi)) for lo, hi in zip(lower, upper)]

        for _ in range(self.max_passes):
            before = list(box)
            for fn in fns:
                tightened = fbbt_constraint(fn, box, self.feasibility_tol)
                if tightened is None:
                    logger.debug(f"Node {node.node_id}: FBBT proved infeasibility")
                    node.mark_infeasible()
                    return False
                box = tightened
            moved = max(
                max(b[0] - a[0], a[1] - b[1]) for a, b in zip(before, box)
            )
            if moved <= self.min_improvement:
                break

        new_lower = node.lower_bounds.copy()
        new_upper = node.upper_bounds.copy()
        new_lower[problem.variable_indices] = [b[0] for b in box]
        new_upper[problem.variable_indices] = [b[1] for b in box]
        if not node.tighten(new_lower, new_upper):
            # Rounding produced a crossed bound; keep the box as it was
            logger.debug(f"Node {node.node_id}: FBBT result discarded")
        return True


class OptimalityBasedPropagator:
    """
    Optimality-based bound tightening (OBBT) over the αBB relaxation.

    Minimizes and maximizes each branching variable subject to the relaxed
    constraints and, once an incumbent exists, ``cv_f(x) <= incumbent``. Only
    FEASIBLE solves move a bound, backed off by ``backoff``; an INFEASIBLE
    solve proves the node holds no point better than the incumbent. Runs on
    nodes up to ``max_depth``.
    """

    def __init__(
        self,
        convex_solver: ConvexSolver,
        relaxation_builder: RelaxationBuilder | None = None,
        max_depth: int = 0,
        backoff: float = DEFAULT_OBBT_BACKOFF,
        min_width: float = DEFAULT_MIN_WIDTH,
    ):
        self.convex_solver = convex_solver
        self.relaxation_builder = relaxation_builder or AlphaBBRelaxationBuilder()
        self.max_depth = int(max_depth)
        self.backoff = float(backoff)
        self.min_width = float(min_width)

    def propagate(self, node: BBNode, problem: Problem, state: GlobalState) -> bool:
        tighten_epigraph(node, problem, state)
        if node.depth > self.max_depth:
            return True

        relaxation = self.relaxation_builder.build(
            problem, node.lower_bounds, node.upper_bounds
        )
        constraints = list(relaxation.constraints)
        if state.has_incumbent:
            cv_f = relaxation.objective
            constraints.append(
                QuadraticFunction(cv_f.Q, cv_f.c, cv_f.constant - state.incumbent_value)
            )

        n = problem.n_vars
        lower = relaxation.lower.copy()
        upper = relaxation.upper.copy()
        branchable = problem.branch_mask[problem.variable_indices]

        for i in range(n):
            if not branchable[i] or upper[i] - lower[i] <= self.min_width:
                continue
            for sign in (1.0, -1.0):
                c = np.zeros(n)
                c[i] = sign
                probe = ConvexProblem(
                    objective=QuadraticFunction(np.zeros((n, n)), c),
                    constraints=constraints,
                    lower=lower,
                    upper=upper,
                )
                result = self.convex_solver.solve(probe)
                if result.status == LowerStatus.INFEASIBLE:
                    logger.debug(f"Node {node.node_id}: OBBT proved infeasibility")
                    node.mark_infeasible()
                    return False
                if result.status != LowerStatus.FEASIBLE:
                    continue
                if sign > 0:
                    lower[i] = max(lower[i], result.objective_value - self.backoff)
                else:
                    upper[i] = min(upper[i], -result.objective_value + self.backoff)
                if lower[i] > upper[i]:
                    lower[i], upper[i] = relaxation.lower[i], relaxation.upper[i]

        new_lower = node.lower_bounds.copy()
        new_upper = node.upper_bounds.copy()
        new_lower[problem.variable_indices] = lower
        new_upper[problem.variable_indices] = upper
        node.tighten(new_lower, new_upper)
        return True


class CompositePropagator:
    def __init__(self, propagators: Sequence[BoundsPropagator]):
        self.propagators = list(propagators)

    def propagate(self, node: BBNode, problem: Problem, state: GlobalState) -> bool:
        for propagator in self.propagators:
            if not propagator.propagate(node, problem, state):
                return False
        return True
