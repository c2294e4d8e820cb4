"""Tests for QuadraticFunction and Problem."""

import autograd.numpy as anp
import numpy as np
import pytest
from autograd import grad

from alphabb import Problem, QuadraticFunction, RelaxationConstructionError


class TestQuadraticFunction:
    def test_value_and_gradient(self):
        f = QuadraticFunction([[2.0, 1.0], [1.0, 4.0]], [1.0, -1.0], 0.5)
        x = np.array([1.0, 2.0])
        # 1/2 * (2 + 4 + 16) + (1 - 2) + 0.5
        assert f(x) == pytest.approx(10.5)
        assert np.allclose(f.gradient(x), [5.0, 8.0])

    def test_autograd_matches_analytic_gradient(self):
        f = QuadraticFunction([[3.0, 1.5], [1.5, -5.0]], [3.0, 2.0])
        x = anp.array([0.3, -1.2])
        assert np.allclose(grad(f)(x), f.gradient(x))

    def test_symmetrises_q(self):
        f = QuadraticFunction([[1.0, 4.0], [0.0, 1.0]], [0.0, 0.0])
        assert np.allclose(f.Q, [[1.0, 2.0], [2.0, 1.0]])

    def test_hessian_is_symmetric_q(self):
        f = QuadraticFunction([[1.0, 4.0], [0.0, -3.0]], [0.0, 0.0])
        assert np.allclose(f.hessian, f.hessian.T)
        assert np.allclose(f.hessian, [[1.0, 2.0], [2.0, -3.0]])

    @pytest.mark.parametrize(
        "Q, c",
        [
            (np.zeros((2, 3)), np.zeros(2)),
            (np.zeros(3), np.zeros(3)),
            (np.eye(2), np.zeros(3)),
            (np.array([[np.nan, 0.0], [0.0, 1.0]]), np.zeros(2)),
        ],
    )
    def test_malformed_data_rejected(self, Q, c):
        with pytest.raises(RelaxationConstructionError):
            QuadraticFunction(Q, c)

    def test_negate(self):
        f = QuadraticFunction([[1.0, 0.0], [0.0, -2.0]], [1.0, 2.0], 3.0)
        x = np.array([0.5, -0.25])
        assert f.negate()(x) == pytest.approx(-f(x))

    def test_embed(self):
        f = QuadraticFunction([[1.0, 2.0], [2.0, 3.0]], [1.0, -1.0], 2.0)
        lifted = f.embed([0, 2], 3)
        assert lifted(np.array([1.0, 99.0, 2.0])) == pytest.approx(f(np.array([1.0, 2.0])))
        with pytest.raises(RelaxationConstructionError):
            f.embed([0], 3)

    def test_interval_contains_samples(self, rng):
        f = QuadraticFunction([[3.0, 1.5], [1.5, -5.0]], [3.0, 2.0], 1.0)
        lower, upper = np.array([-3.0, -5.0]), np.array([1.0, 2.0])
        lo, hi = f.interval(lower, upper)
        for x in lower + rng.random((1000, 2)) * (upper - lower):
            assert lo - 1e-9 <= f(x) <= hi + 1e-9


class TestProblem:
    def test_defaults(self, qcqp):
        assert qcqp.n_vars == 2
        assert qcqp.n_stored == 2
        assert qcqp.branch_mask.tolist() == [True, True]
        assert qcqp.auxiliary_indices == []

    def test_requires_finite_ordered_box(self):
        f = QuadraticFunction(np.eye(1), [0.0])
        with pytest.raises(RelaxationConstructionError):
            Problem(f, [], [0.0], [np.inf])
        with pytest.raises(RelaxationConstructionError):
            Problem(f, [], [1.0], [0.0])
        with pytest.raises(RelaxationConstructionError):
            Problem(f, [], None, None)

    def test_function_size_must_match(self):
        f = QuadraticFunction(np.eye(2), [0.0, 0.0])
        g = QuadraticFunction(np.eye(3), [0.0, 0.0, 0.0])
        with pytest.raises(RelaxationConstructionError):
            Problem(f, [g], [0.0, 0.0], [1.0, 1.0])

    def test_objective_type_checked(self):
        with pytest.raises(TypeError):
            Problem(lambda x: 0.0, [], [0.0], [1.0])

    def test_branch_mask_length(self):
        f = QuadraticFunction(np.eye(2), [0.0, 0.0])
        with pytest.raises(RelaxationConstructionError):
            Problem(f, [], [0.0, 0.0], [1.0, 1.0], branch_mask=[True])

    def test_negative_tolerance_rejected(self):
        f = QuadraticFunction(np.eye(1), [0.0])
        with pytest.raises(ValueError):
            Problem(f, [], [0.0], [1.0], abs_tol=-1.0)

    def test_feasibility(self, qcqp, qcqp_solution):
        x, _ = qcqp_solution
        assert qcqp.is_feasible(x, 1e-6)
        assert not qcqp.is_feasible(np.array([5.0, 0.0]), 1e-6)
        assert qcqp.max_violation(np.array([0.0, 0.0])) == 0.0

    def test_with_epigraph(self, qcqp):
        problem = qcqp.with_epigraph()
        assert problem.n_stored == 3
        assert problem.n_vars == 2
        assert problem.epigraph_index == 2
        assert problem.auxiliary_indices == [2]
        assert problem.branch_mask.tolist() == [True, True, False]

        f_lo, f_hi = qcqp.objective.interval(qcqp.lower_bounds, qcqp.upper_bounds)
        assert problem.lower_bounds[2] == pytest.approx(f_lo)
        assert problem.upper_bounds[2] == pytest.approx(f_hi)
        assert problem.with_epigraph() is problem

    def test_restrict(self, qcqp):
        problem = qcqp.with_epigraph()
        assert np.allclose(problem.restrict([1.0, 2.0, 3.0]), [1.0, 2.0])
