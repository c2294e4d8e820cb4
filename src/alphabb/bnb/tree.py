"""
Spatial Branch-and-Bound Tree

Owns the open node pool and the per-solve `GlobalState`, and drives the
search loop:

    pop node -> propagate bounds -> build αBB relaxation -> lower bound
    -> prune? -> upper bound -> branch (two children) -> update global bound
    -> check termination

Pruning: a node is discarded when its relaxation is infeasible or its
bound is at least `incumbent - max(abs_gap, rel_gap * |incumbent|)`.
Node-local solver failures never abort the search; a node whose relaxation
cannot be solved keeps its inherited bound and is branched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

import autograd.numpy as np

from ..constants import LowerStatus, TreeState
from ..errors import UpperSolveFailure
from ..problem import Problem
from ..reporting import ProgressObserver, ProgressRecord
from ..solvers import get_convex_solver, get_local_solver
from ..solvers.base import ConvexSolver, LocalSolver
from .branching import create_child_nodes, select_branch_point, select_branching_variable
from .lower import LowerBoundSolver, RelaxationLowerBoundSolver
from .node import BBNode, GlobalState
from .options import BBOptions
from .pool import NodePool
from .propagation import (
    BoundsPropagator,
    CompositePropagator,
    FeasibilityBasedPropagator,
    NoPropagation,
    OptimalityBasedPropagator,
)
from .relaxation import AlphaBBRelaxationBuilder, RelaxationBuilder
from .upper import LocalSearchUpperBoundSolver, UpperBoundSolver

logger = logging.getLogger(__name__)

_TERMINAL_STATES = {
    TreeState.CONVERGED,
    TreeState.TIME_LIMIT,
    TreeState.NODE_LIMIT,
    TreeState.ITERATION_LIMIT,
    TreeState.INTERRUPTED,
    TreeState.INFEASIBLE,
    TreeState.RESOLUTION_LIMIT,
}


@dataclass
class BBResult:
    status: TreeState
    objective_value: Optional[float]
    x: Optional[np.ndarray]  # optimized variables
    x_stored: Optional[np.ndarray]  # all stored variables, auxiliary included
    lower_bound: float
    gap: float
    relative_gap: float
    state: GlobalState

    @property
    def converged(self) -> bool:
        return self.status == TreeState.CONVERGED

    @property
    def solve_time(self) -> float:
        return self.state.elapsed


class BranchAndBoundTree:
    """
    Spatial branch-and-bound over αBB relaxations.

    Every component is injected; unspecified ones default to the αBB builder,
    FBBT/OBBT per ``options.propagation``, the registered convex and local
    solvers named in ``options``.
    """

    def __init__(
        self,
        problem: Problem,
        options: BBOptions | None = None,
        relaxation_builder: RelaxationBuilder | None = None,
        propagator: BoundsPropagator | None = None,
        lower_solver: LowerBoundSolver | None = None,
        upper_solver: UpperBoundSolver | None = None,
        convex_solver: ConvexSolver | None = None,
        local_solver: LocalSolver | None = None,
        observer: ProgressObserver | None = None,
        should_stop: Callable[[], bool] | None = None,
    ):
        if not isinstance(problem, Problem):
            raise TypeError(f"Expected a Problem, got {type(problem).__name__}")
        self.problem = problem
        self.options = options or BBOptions()
        self.abs_gap, self.rel_gap = self.options.gaps(problem.abs_tol, problem.rel_tol)

        if convex_solver is None:
            convex_options = dict(self.options.convex_options)
            convex_options.setdefault("feasibility_tol", self.options.feasibility_tol)
            convex_solver = get_convex_solver(self.options.convex_solver, convex_options)
        if local_solver is None:
            local_solver = get_local_solver(
                self.options.local_solver, self.options.local_options
            )

        self.relaxation_builder = relaxation_builder or AlphaBBRelaxationBuilder()
        self.propagator = propagator or self._default_propagator(convex_solver)
        self.lower_solver = lower_solver or RelaxationLowerBoundSolver(
            convex_solver, retries=self.options.lower_retries
        )
        self.upper_solver = upper_solver or LocalSearchUpperBoundSolver(
            local_solver, feasibility_tol=self.options.feasibility_tol
        )
        self.observer = observer
        self.should_stop = should_stop

        self.status = TreeState.INITIALIZED
        self.state: GlobalState | None = None
        self.pool: NodePool | None = None

        # Fail on malformed data before any search starts
        self.relaxation_builder.build(problem, problem.lower_bounds, problem.upper_bounds)

    @property
    def finished(self) -> bool:
        return self.status in _TERMINAL_STATES

    def _default_propagator(self, convex_solver: ConvexSolver) -> BoundsPropagator:
        mode = self.options.propagation
        fbbt = FeasibilityBasedPropagator(
            feasibility_tol=self.options.feasibility_tol,
            min_improvement=self.options.min_width,
        )
        obbt = OptimalityBasedPropagator(
            convex_solver,
            self.relaxation_builder,
            max_depth=self.options.obbt_depth,
            min_width=self.options.min_width,
        )
        if mode == "fbbt":
            return fbbt
        if mode == "obbt":
            return obbt
        if mode == "both":
            return CompositePropagator([fbbt, obbt])
        return NoPropagation()

    # =========================================================================
    # Main loop
    # =========================================================================

    def solve(self) -> BBResult:
        if self.status != TreeState.INITIALIZED:
            raise RuntimeError("A BranchAndBoundTree can only be solved once")

        problem = self.problem
        state = GlobalState()
        pool = NodePool(self.options.node_selection, self.options.hybrid_interval)
        self.state = state
        self.pool = pool

        root = BBNode(
            priority=float("-inf"),
            node_id=0,
            depth=0,
            lower_bounds=problem.lower_bounds.copy(),
            upper_bounds=problem.upper_bounds.copy(),
        )
        pool.push(root)
        state.nodes_created = 1
        root_widths = problem.upper_bounds - problem.lower_bounds

        self.status = TreeState.RUNNING
        logger.debug(f"Branch-and-bound started on {problem}")

        while True:
            state.tick()
            terminal = self._check_termination(state, pool)
            if terminal is not None:
                self.status = terminal
                break

            node = pool.pop()
            state.iterations += 1
            self._process_node(node, state, pool, root_widths)
            self._update_lower_bound(state, pool)

            interval = self.options.report_interval
            if interval and state.iterations % interval == 0:
                self._report(state, pool)

        state.tick()
        self._report(state, pool, marker=str(self.status))
        logger.info(
            f"Branch-and-bound finished: {self.status} after {state.iterations} "
            f"iterations, {state.nodes_created} nodes, {state.elapsed:.2f}s"
        )
        return self._result(state)

    def _process_node(
        self, node: BBNode, state: GlobalState, pool: NodePool, root_widths: np.ndarray
    ) -> None:
        problem = self.problem

        if node.priority >= self._prune_threshold(state):
            state.nodes_pruned += 1
            return

        if not self.propagator.propagate(node, problem, state):
            state.nodes_infeasible += 1
            return

        relaxation = self.relaxation_builder.build(
            problem, node.lower_bounds, node.upper_bounds
        )
        status = self.lower_solver.solve(node, problem, relaxation)
        state.lower_solves += 1

        if status == LowerStatus.INFEASIBLE:
            state.nodes_infeasible += 1
            return
        if status == LowerStatus.SOLVER_FAILURE:
            state.lower_failures += 1
            logger.debug(f"Node {node.node_id}: relaxation could not be bounded")

        if node.bound >= self._prune_threshold(state):
            state.nodes_pruned += 1
            return

        if self._upper_due(node, state):
            self._upper_bound(node, state, pool)
            if node.bound >= self._prune_threshold(state):
                state.nodes_pruned += 1
                return

        branch_idx = select_branching_variable(
            node, problem, self.options.branching, root_widths, self.options.min_width
        )
        if branch_idx is None:
            # Too narrow to split; its bound stays in the global bound
            state.resolution_bound = min(state.resolution_bound, node.bound)
            state.resolution_nodes += 1
            return

        branch_val = select_branch_point(node, branch_idx, self.options.branch_point)
        left, right = create_child_nodes(node, branch_idx, branch_val, state.nodes_created)
        state.nodes_created += 2
        pool.push(left)
        pool.push(right)

    def _upper_due(self, node: BBNode, state: GlobalState) -> bool:
        if node.depth == 0 or not state.has_incumbent:
            return True
        return state.iterations % self.options.upper_interval == 0

    def _upper_bound(self, node: BBNode, state: GlobalState, pool: NodePool) -> None:
        problem = self.problem
        try:
            candidate = self.upper_solver.solve(node, problem)
        except UpperSolveFailure as e:
            logger.debug(str(e))
            return
        finally:
            state.upper_solves += 1

        stored = node.midpoint()
        stored[problem.variable_indices] = candidate.x
        if problem.epigraph_index is not None:
            stored[problem.epigraph_index] = candidate.value

        if state.update_incumbent(candidate.value, stored):
            removed = pool.prune(self._prune_threshold(state))
            state.nodes_pruned += removed
            logger.debug(
                f"Node {node.node_id}: new incumbent {candidate.value:.6e} "
                f"({candidate.source}), pruned {removed} open nodes"
            )
            self._report(state, pool, marker="*")

    # =========================================================================
    # Bounds and termination
    # =========================================================================

    def _prune_threshold(self, state: GlobalState) -> float:
        if not state.has_incumbent:
            return float("inf")
        inc = state.incumbent_value
        return inc - max(self.abs_gap, self.rel_gap * abs(inc))

    def _update_lower_bound(self, state: GlobalState, pool: NodePool) -> None:
        candidate = min(pool.min_bound(), state.resolution_bound)
        if not np.isfinite(candidate) and candidate > 0:
            # Nothing open: the bound is the incumbent, or unchanged if there is none
            if not state.has_incumbent:
                return
            candidate = state.incumbent_value
        candidate = min(candidate, state.incumbent_value)
        state.global_lower_bound = max(state.global_lower_bound, candidate)

    def _gap_closed(self, state: GlobalState) -> bool:
        if not state.has_incumbent or not np.isfinite(state.global_lower_bound):
            return False
        gap = state.absolute_gap
        return gap <= self.abs_gap or gap <= self.rel_gap * abs(state.incumbent_value)

    def _check_termination(self, state: GlobalState, pool: NodePool) -> TreeState | None:
        if not pool:
            if state.resolution_nodes and not self._gap_closed(state):
                return TreeState.RESOLUTION_LIMIT
            return TreeState.CONVERGED if state.has_incumbent else TreeState.INFEASIBLE
        if self._gap_closed(state):
            return TreeState.CONVERGED
        if self.should_stop is not None and self.should_stop():
            return TreeState.INTERRUPTED
        if state.elapsed >= self.options.max_time:
            return TreeState.TIME_LIMIT
        if state.nodes_created > self.options.max_nodes:
            return TreeState.NODE_LIMIT
        max_iterations = self.options.max_iterations
        if max_iterations is not None and state.iterations >= max_iterations:
            return TreeState.ITERATION_LIMIT
        return None

    # =========================================================================
    # Reporting
    # =========================================================================

    def _report(self, state: GlobalState, pool: NodePool, marker: str = "") -> None:
        if self.observer is None:
            return
        record = ProgressRecord(
            iteration=state.iterations,
            nodes=state.nodes_created,
            open_nodes=len(pool),
            lower_bound=state.global_lower_bound,
            upper_bound=state.incumbent_value,
            gap=state.absolute_gap,
            ratio=state.relative_gap,
            elapsed=state.elapsed,
            remaining=max(0.0, self.options.max_time - state.elapsed),
            marker=marker,
        )
        self.observer.on_progress(record)

    def _result(self, state: GlobalState) -> BBResult:
        problem = self.problem
        if state.has_incumbent:
            x_stored = state.incumbent_solution.copy()
            x = x_stored[problem.variable_indices]
            value = state.incumbent_value
        else:
            x_stored = None
            x = None
            value = None
        lower_bound = state.global_lower_bound
        if self.status == TreeState.INFEASIBLE:
            lower_bound = float("-inf")
        return BBResult(
            status=self.status,
            objective_value=value,
            x=x,
            x_stored=x_stored,
            lower_bound=lower_bound,
            gap=state.absolute_gap,
            relative_gap=state.relative_gap,
            state=state,
        )


def solve(
    problem: Problem,
    options: BBOptions | dict | None = None,
    **components,
) -> BBResult:
    """Solve ``problem`` to global optimality; ``components`` go to the tree."""
    if not isinstance(options, BBOptions):
        options = BBOptions.from_dict(options)
    return BranchAndBoundTree(problem, options, **components).solve()

