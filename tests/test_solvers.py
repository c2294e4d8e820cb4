"""Tests for the convex and local solver backends."""

import itertools
from types import SimpleNamespace

import numpy as np
import pytest

from alphabb import QuadraticFunction
from alphabb.constants import LowerStatus
from alphabb.solvers import (
    ConvexProblem,
    PrimalStatus,
    ScipyConvexSolver,
    ScipyLocalSolver,
    TerminationStatus,
    classify_lower_status,
    get_convex_solver,
    get_local_solver,
    register_convex_solver,
    register_local_solver,
)


def _disk(radius_sq: float, center=(0.0, 0.0)) -> QuadraticFunction:
    """(x - c)^T (x - c) - radius_sq <= 0"""
    c = np.asarray(center, dtype=float)
    return QuadraticFunction(2.0 * np.eye(2), -2.0 * c, float(c @ c) - radius_sq)


class TestStatusClassification:
    def test_mapping_is_total(self):
        for termination, primal in itertools.product(TerminationStatus, PrimalStatus):
            assert classify_lower_status(termination, primal) in {
                LowerStatus.FEASIBLE,
                LowerStatus.INFEASIBLE,
                LowerStatus.SOLVER_FAILURE,
            }

    def test_only_solved_with_point_is_feasible(self):
        feasible = [
            (t, p)
            for t, p in itertools.product(TerminationStatus, PrimalStatus)
            if classify_lower_status(t, p) == LowerStatus.FEASIBLE
        ]
        assert set(feasible) == {
            (TerminationStatus.OPTIMAL, PrimalStatus.FEASIBLE_POINT),
            (TerminationStatus.OPTIMAL, PrimalStatus.NEARLY_FEASIBLE_POINT),
            (TerminationStatus.LOCALLY_SOLVED, PrimalStatus.FEASIBLE_POINT),
            (TerminationStatus.LOCALLY_SOLVED, PrimalStatus.NEARLY_FEASIBLE_POINT),
        }

    def test_infeasible(self):
        status = classify_lower_status(
            TerminationStatus.INFEASIBLE, PrimalStatus.INFEASIBILITY_CERTIFICATE
        )
        assert status == LowerStatus.INFEASIBLE

    @pytest.mark.parametrize(
        "termination, primal",
        [
            (TerminationStatus.ITERATION_LIMIT, PrimalStatus.FEASIBLE_POINT),
            (TerminationStatus.NUMERICAL_ERROR, PrimalStatus.UNKNOWN),
            (TerminationStatus.OPTIMAL, PrimalStatus.UNKNOWN),
            (TerminationStatus.OPTIMAL, PrimalStatus.NO_SOLUTION),
            (TerminationStatus.INFEASIBLE, PrimalStatus.FEASIBLE_POINT),
            (TerminationStatus.TIME_LIMIT, PrimalStatus.NO_SOLUTION),
        ],
    )
    def test_untrusted_outcomes_are_failures(self, termination, primal):
        assert classify_lower_status(termination, primal) == LowerStatus.SOLVER_FAILURE


class TestScipyConvexSolver:
    def test_box_constrained_qp(self):
        f = QuadraticFunction(2.0 * np.eye(2), [-2.0, -4.0])  # min at (1, 2)
        problem = ConvexProblem(f, [], np.array([-5.0, -5.0]), np.array([5.0, 5.0]))
        result = ScipyConvexSolver().solve(problem)
        assert result.status == LowerStatus.FEASIBLE
        assert np.allclose(result.x, [1.0, 2.0], atol=1e-5)
        assert result.objective_value == pytest.approx(-5.0, abs=1e-6)

    def test_active_constraint(self):
        f = QuadraticFunction(np.zeros((2, 2)), [1.0, 1.0])
        problem = ConvexProblem(
            f, [_disk(1.0)], np.array([-2.0, -2.0]), np.array([2.0, 2.0])
        )
        result = ScipyConvexSolver().solve(problem)
        assert result.status == LowerStatus.FEASIBLE
        assert result.objective_value == pytest.approx(-np.sqrt(2.0), abs=1e-5)

    def test_infeasible_relaxation_is_certified(self):
        f = QuadraticFunction(np.eye(2), [0.0, 0.0])
        problem = ConvexProblem(
            f,
            [_disk(1.0, center=(0.0, 0.0)), _disk(1.0, center=(5.0, 0.0))],
            np.array([-10.0, -10.0]),
            np.array([10.0, 10.0]),
        )
        result = ScipyConvexSolver().solve(problem)
        assert result.termination_status == TerminationStatus.INFEASIBLE
        assert result.status == LowerStatus.INFEASIBLE
        assert result.x is None

    def test_box_outside_constraint(self):
        f = QuadraticFunction(np.eye(2), [0.0, 0.0])
        problem = ConvexProblem(
            f, [_disk(1.0)], np.array([3.0, 3.0]), np.array([4.0, 4.0])
        )
        assert ScipyConvexSolver().solve(problem).status == LowerStatus.INFEASIBLE

    def test_all_fixed_variables(self):
        f = QuadraticFunction(np.eye(2), [1.0, 0.0])
        box = np.array([0.5, -0.5])
        feasible = ConvexProblem(f, [_disk(1.0)], box, box.copy())
        result = ScipyConvexSolver().solve(feasible)
        assert result.status == LowerStatus.FEASIBLE
        assert result.objective_value == pytest.approx(f(box))

        infeasible = ConvexProblem(f, [_disk(0.1)], box, box.copy())
        assert ScipyConvexSolver().solve(infeasible).status == LowerStatus.INFEASIBLE

    def test_zero_width_dimension(self):
        f = QuadraticFunction(2.0 * np.eye(2), [0.0, -2.0])
        problem = ConvexProblem(f, [], np.array([0.3, -3.0]), np.array([0.3, 3.0]))
        result = ScipyConvexSolver().solve(problem)
        assert result.status == LowerStatus.FEASIBLE
        assert np.allclose(result.x, [0.3, 1.0], atol=1e-5)

    def test_solver_exception_is_numerical_error(self, monkeypatch):
        from alphabb.solvers import scipy_backend

        def broken(*args, **kwargs):
            raise ValueError("bad input")

        monkeypatch.setattr(scipy_backend, "minimize", broken)
        f = QuadraticFunction(np.eye(2), [0.0, 0.0])
        problem = ConvexProblem(f, [], np.array([-1.0, -1.0]), np.array([1.0, 1.0]))
        result = ScipyConvexSolver().solve(problem)
        assert result.termination_status == TerminationStatus.NUMERICAL_ERROR
        assert result.status == LowerStatus.SOLVER_FAILURE

    def test_trust_constr_box_constrained_qp(self):
        f = QuadraticFunction(2.0 * np.eye(2), [-2.0, -4.0])
        problem = ConvexProblem(f, [], np.array([-5.0, -5.0]), np.array([5.0, 5.0]))
        result = ScipyConvexSolver(method="trust-constr", maxiter=2000).solve(problem)
        assert result.status == LowerStatus.FEASIBLE
        assert np.allclose(result.x, [1.0, 2.0], atol=1e-3)
        assert result.stats.solver_name == "scipy-trust-constr"

    @pytest.mark.parametrize(
        "method, code, expected",
        [
            ("SLSQP", 9, TerminationStatus.ITERATION_LIMIT),
            ("SLSQP", 8, TerminationStatus.NUMERICAL_ERROR),
            ("SLSQP", 4, TerminationStatus.OTHER_ERROR),
            ("trust-constr", 0, TerminationStatus.ITERATION_LIMIT),
            ("trust-constr", 3, TerminationStatus.OTHER_ERROR),
            ("trust-constr", 9, TerminationStatus.OTHER_ERROR),
        ],
    )
    def test_exit_codes_follow_method(self, method, code, expected):
        solver = ScipyConvexSolver(method=method)
        assert solver._interpret_status(SimpleNamespace(status=code)) == expected

    def test_unsupported_method(self):
        with pytest.raises(ValueError):
            ScipyConvexSolver(method="Nelder-Mead")


class TestRegistry:
    def test_default_solver(self):
        solver = get_convex_solver("SLSQP", {"maxiter": 50})
        assert isinstance(solver, ScipyConvexSolver)
        assert solver.maxiter == 50

    def test_unknown_solver(self):
        with pytest.raises(ValueError):
            get_convex_solver("does-not-exist")

    def test_register(self):
        sentinel = object()
        register_convex_solver("custom", lambda options: sentinel)
        assert get_convex_solver("custom") is sentinel


class TestScipyLocalSolver:
    def test_nonconvex_local_solve(self):
        f = QuadraticFunction([[3.0, 1.5], [1.5, -5.0]], [3.0, 2.0])
        g2 = QuadraticFunction([[-6.0, 3.0], [3.0, 2.0]], [2.0, 1.0])
        result = ScipyLocalSolver().solve(
            f, [g2], [(-3.0, 1.0), (-5.0, 2.0)], np.array([0.9, -4.0])
        )
        # SLSQP may stop at the optimum on a failed line search; only the
        # point matters to the upper bounder
        assert g2(result.x) <= 1e-6
        assert result.objective_value <= f(np.array([0.9, -4.0]))
        assert result.objective_value == pytest.approx(f(result.x))

    def test_equality_constraint(self):
        f = QuadraticFunction(np.zeros((2, 2)), [1.0, 0.0])
        h = QuadraticFunction(2.0 * np.eye(2), [0.0, 0.0], -1.0)  # unit circle
        result = ScipyLocalSolver().solve(
            f, [], [(-2.0, 2.0), (-2.0, 2.0)], np.array([-0.5, 0.5]), equalities=[h]
        )
        assert abs(h(result.x)) <= 1e-6
        assert result.x[0] == pytest.approx(-1.0, abs=1e-4)


class TestLocalRegistry:
    def test_scipy_methods(self):
        solver = get_local_solver("trust-constr", {"maxiter": 20})
        assert isinstance(solver, ScipyLocalSolver)
        assert solver.method == "trust-constr"
        assert solver.maxiter == 20

    def test_unknown_solver(self):
        with pytest.raises(ValueError):
            get_local_solver("does-not-exist")

    def test_register(self):
        sentinel = object()
        register_local_solver("custom-local", lambda options: sentinel)
        assert get_local_solver("custom-local") is sentinel


class TestIpoptLocalSolver:
    def test_nonconvex_local_solve(self):
        try:
            import cyipopt  # noqa: F401
        except ImportError:
            pytest.skip("cyipopt not installed")

        f = QuadraticFunction([[3.0, 1.5], [1.5, -5.0]], [3.0, 2.0])
        g2 = QuadraticFunction([[-6.0, 3.0], [3.0, 2.0]], [2.0, 1.0])
        solver = get_local_solver("IPOPT")
        result = solver.solve(f, [g2], [(0.5, 1.0), (-4.5, -4.0)], np.array([0.75, -4.1]))
        assert result.success
        assert g2(result.x) <= 1e-5
        assert result.objective_value == pytest.approx(f(result.x))
