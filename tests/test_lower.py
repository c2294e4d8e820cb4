"""Tests for lower bounding and the relaxed-solution write-back."""

import numpy as np
import pytest

from alphabb import LowerSolveFailure
from alphabb.bnb import (
    AlphaBBRelaxationBuilder,
    BBNode,
    RelaxationLowerBoundSolver,
    write_relaxed_solution,
)
from alphabb.constants import LowerStatus
from alphabb.solvers import (
    ConvexSolveResult,
    PrimalStatus,
    ScipyConvexSolver,
    SolverStats,
    TerminationStatus,
)


def _root(problem, priority=float("-inf")):
    return BBNode(
        priority=priority,
        node_id=0,
        depth=0,
        lower_bounds=problem.lower_bounds.copy(),
        upper_bounds=problem.upper_bounds.copy(),
    )


class FakeConvexSolver:
    """Returns canned results in order; the last one repeats."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    def solve(self, problem, x0=None):
        self.calls.append(None if x0 is None else np.array(x0))
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]


def _result(termination, primal, x=None, value=np.inf):
    return ConvexSolveResult(
        termination_status=termination,
        primal_status=primal,
        objective_value=value,
        x=None if x is None else np.asarray(x, dtype=float),
        stats=SolverStats("fake"),
    )


def _optimal(x, value):
    return _result(TerminationStatus.OPTIMAL, PrimalStatus.FEASIBLE_POINT, x, value)


FAILURE = _result(TerminationStatus.NUMERICAL_ERROR, PrimalStatus.UNKNOWN)
INFEASIBLE = _result(
    TerminationStatus.INFEASIBLE, PrimalStatus.INFEASIBILITY_CERTIFICATE
)


def _relax(problem, node):
    return AlphaBBRelaxationBuilder().build(problem, node.lower_bounds, node.upper_bounds)


class TestWriteRelaxedSolution:
    def test_writes_only_optimized_indices(self, qcqp):
        problem = qcqp.with_epigraph()
        node = _root(problem)
        out = write_relaxed_solution(node, problem, [0.5, -1.0])
        assert out.shape == (3,)
        assert np.allclose(out[:2], [0.5, -1.0])
        assert out[2] == pytest.approx(node.midpoint()[2])

    def test_keeps_previous_auxiliary_value(self, qcqp):
        problem = qcqp.with_epigraph()
        node = _root(problem)
        node.lower_solution = np.array([0.0, 0.0, -12.5])
        out = write_relaxed_solution(node, problem, [0.5, -1.0])
        assert out[2] == pytest.approx(-12.5)

    def test_length_mismatch_raises(self, qcqp):
        problem = qcqp.with_epigraph()
        node = _root(problem)
        with pytest.raises(LowerSolveFailure):
            write_relaxed_solution(node, problem, [0.5, -1.0, 3.0])
        with pytest.raises(LowerSolveFailure):
            write_relaxed_solution(node, problem, [0.5])

    def test_clips_into_box(self, qcqp):
        node = _root(qcqp)
        out = write_relaxed_solution(node, qcqp, [1.0 + 1e-9, -5.0 - 1e-9])
        assert np.all(out <= node.upper_bounds)
        assert np.all(out >= node.lower_bounds)


class TestRelaxationLowerBoundSolver:
    def test_feasible_records_bound_and_solution(self, qcqp):
        node = _root(qcqp)
        solver = RelaxationLowerBoundSolver(FakeConvexSolver(_optimal([0.0, -1.0], -80.0)))
        status = solver.solve(node, qcqp, _relax(qcqp, node))
        assert status == LowerStatus.FEASIBLE
        assert node.lower_status == LowerStatus.FEASIBLE
        assert node.lower_bound_value == -80.0
        assert np.allclose(node.lower_solution, [0.0, -1.0])

    def test_bound_never_below_inherited(self, qcqp):
        node = _root(qcqp, priority=-50.0)
        solver = RelaxationLowerBoundSolver(FakeConvexSolver(_optimal([0.0, -1.0], -80.0)))
        solver.solve(node, qcqp, _relax(qcqp, node))
        assert node.lower_bound_value == -50.0

    def test_infeasible_marks_node(self, qcqp):
        node = _root(qcqp)
        solver = RelaxationLowerBoundSolver(FakeConvexSolver(INFEASIBLE))
        assert solver.solve(node, qcqp, _relax(qcqp, node)) == LowerStatus.INFEASIBLE
        assert node.lower_bound_value == np.inf
        assert not node.is_feasible_lower_problem

    def test_failure_keeps_inherited_bound(self, qcqp):
        node = _root(qcqp, priority=-70.0)
        solver = RelaxationLowerBoundSolver(FakeConvexSolver(FAILURE), retries=0)
        status = solver.solve(node, qcqp, _relax(qcqp, node))
        assert status == LowerStatus.SOLVER_FAILURE
        assert node.lower_status == LowerStatus.SOLVER_FAILURE
        assert node.lower_bound_value == -70.0
        assert node.bound == -70.0
        assert node.lower_solution is None

    def test_failure_is_retried_from_midpoint(self, qcqp):
        node = _root(qcqp)
        fake = FakeConvexSolver(FAILURE, FAILURE, _optimal([0.0, 0.0], -60.0))
        status = RelaxationLowerBoundSolver(fake, retries=2).solve(
            node, qcqp, _relax(qcqp, node)
        )
        assert status == LowerStatus.FEASIBLE
        assert len(fake.calls) == 3
        assert np.allclose(fake.calls[1], [-1.0, -1.5])

    def test_retries_are_bounded(self, qcqp):
        node = _root(qcqp)
        fake = FakeConvexSolver(FAILURE)
        RelaxationLowerBoundSolver(fake, retries=2).solve(node, qcqp, _relax(qcqp, node))
        assert len(fake.calls) == 3

    def test_wrong_length_solution_is_failure(self, qcqp):
        problem = qcqp.with_epigraph()
        node = _root(problem, priority=-90.0)
        fake = FakeConvexSolver(_optimal([0.0, -1.0, 4.0], -80.0))
        status = RelaxationLowerBoundSolver(fake, retries=0).solve(
            node, problem, _relax(problem, node)
        )
        assert status == LowerStatus.SOLVER_FAILURE
        assert node.lower_solution is None
        assert node.lower_bound_value == -90.0

    def test_feasible_without_point_is_failure(self, qcqp):
        node = _root(qcqp)
        fake = FakeConvexSolver(_optimal(None, -80.0))
        status = RelaxationLowerBoundSolver(fake, retries=0).solve(
            node, qcqp, _relax(qcqp, node)
        )
        assert status == LowerStatus.SOLVER_FAILURE

    def test_warm_start_from_node_solution(self, qcqp):
        problem = qcqp.with_epigraph()
        node = _root(problem)
        node.lower_solution = np.array([0.25, -2.0, -30.0])
        fake = FakeConvexSolver(_optimal([0.0, -1.0], -80.0))
        RelaxationLowerBoundSolver(fake).solve(node, problem, _relax(problem, node))
        assert np.allclose(fake.calls[0], [0.25, -2.0])

    def test_real_solver_bounds_the_optimum(self, qcqp, qcqp_solution):
        _, optimum = qcqp_solution
        node = _root(qcqp)
        solver = RelaxationLowerBoundSolver(ScipyConvexSolver())
        assert solver.solve(node, qcqp, _relax(qcqp, node)) == LowerStatus.FEASIBLE
        assert node.lower_bound_value <= optimum + 1e-6

    def test_epigraph_problem_keeps_stored_length(self, qcqp):
        problem = qcqp.with_epigraph()
        node = _root(problem)
        solver = RelaxationLowerBoundSolver(ScipyConvexSolver())
        assert solver.solve(node, problem, _relax(problem, node)) == LowerStatus.FEASIBLE
        assert node.lower_solution.shape == (3,)
