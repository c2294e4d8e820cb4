"""
αBB Convex Relaxations

For a quadratic ``f(x) = 1/2 x^T Q x + c^T x + k`` on the box ``[xL, xU]``
the αBB underestimator is

    cv(x) = f(x) + α (xL - x)^T (xU - x),    α = max(0, -λ_min(Q) / 2).

The added term is non-positive on the box and contributes ``2αI`` to the
Hessian, so ``cv`` is convex and ``cv <= f`` on the box. For PSD ``Q``,
``α = 0`` and ``cv == f``. The result is again a quadratic:
``Q + 2αI``, ``c - α(xL + xU)``, ``k + α Σ xL_i xU_i``.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import List, Protocol

import autograd.numpy as np
from scipy.linalg import LinAlgError, eigvalsh

from ..errors import NumericalDegeneracy, RelaxationConstructionError
from ..problem import Problem, QuadraticFunction
from ..solvers.base import ConvexProblem

logger = logging.getLogger(__name__)


def gershgorin_lower_bound(Q: np.ndarray) -> float:
    """Lower bound on the smallest eigenvalue of symmetric ``Q`` (Gershgorin discs)."""
    diag = np.diag(Q)
    radii = np.sum(np.abs(Q), axis=1) - np.abs(diag)
    return float(np.min(diag - radii))


def min_eigenvalue(Q: np.ndarray) -> float:
    """
    Smallest eigenvalue of symmetric ``Q``.

    Falls back to the Gershgorin bound (never larger than the true value)
    when the eigensolver fails, emitting a ``NumericalDegeneracy`` warning.
    """
    Q = np.asarray(Q, dtype=float)
    if Q.ndim != 2 or Q.shape[0] != Q.shape[1]:
        raise RelaxationConstructionError(f"Q must be square, got shape {Q.shape}")
    if Q.shape[0] == 0:
        return 0.0
    try:
        eigs = eigvalsh(Q)
    except (LinAlgError, ValueError) as e:
        warnings.warn(
            f"Eigenvalue computation failed ({e}); using Gershgorin bound",
            NumericalDegeneracy,
            stacklevel=2,
        )
        return gershgorin_lower_bound(Q)
    lam = float(eigs[0])
    if not np.isfinite(lam):
        warnings.warn(
            "Non-finite eigenvalue; using Gershgorin bound",
            NumericalDegeneracy,
            stacklevel=2,
        )
        return gershgorin_lower_bound(Q)
    return lam


def alpha_value(Q: np.ndarray) -> float:
    return max(0.0, -min_eigenvalue(Q) / 2.0)


def alpha_bb(
    fn: QuadraticFunction, lower, upper, alpha: float | None = None
) -> QuadraticFunction:
    """αBB convex underestimator of ``fn`` on ``[lower, upper]``."""
    lower = np.asarray(lower, dtype=float)
    upper = np.asarray(upper, dtype=float)
    if lower.shape[0] != fn.size or upper.shape[0] != fn.size:
        raise RelaxationConstructionError(
            f"Box has {lower.shape[0]} dimensions, function has {fn.size}"
        )
    if alpha is None:
        alpha = alpha_value(fn.hessian)
    if alpha == 0.0:
        return fn
    Q = fn.hessian + 2.0 * alpha * np.eye(fn.size)
    c = fn.c - alpha * (lower + upper)
    constant = fn.constant + alpha * float(np.dot(lower, upper))
    return QuadraticFunction(Q, c, constant)


def alpha_bb_overestimator(
    fn: QuadraticFunction, lower, upper
) -> QuadraticFunction:
    """Concave overestimator ``-αBB(-fn)``."""
    return alpha_bb(fn.negate(), lower, upper).negate()


@dataclass
class Relaxation:
    """A convex relaxation on one box: every constraint reads ``cv_j(x) <= 0``."""

    objective: QuadraticFunction
    constraints: List[QuadraticFunction]
    lower: np.ndarray
    upper: np.ndarray

    def to_convex_problem(self) -> ConvexProblem:
        return ConvexProblem(
            objective=self.objective,
            constraints=list(self.constraints),
            lower=self.lower,
            upper=self.upper,
        )


class RelaxationBuilder(Protocol):
    def build(self, problem: Problem, lower, upper) -> Relaxation:
        ...


class AlphaBBRelaxationBuilder:
    """
    Builds αBB relaxations of the objective and all constraints.

    ``lower``/``upper`` are stored-length node bounds; the relaxation lives in
    the optimized variable space (``problem.variable_indices``). Each
    equality ``h == 0`` contributes ``αBB(h) <= 0`` and ``αBB(-h) <= 0``.
    The per-function α only depends on ``Q`` and is cached per problem.
    """

    def __init__(self):
        self._alphas: dict = {}

    def _alpha(self, fn: QuadraticFunction, sign: float = 1.0) -> float:
        key = (id(fn), sign)
        if key not in self._alphas:
            self._alphas[key] = (fn, alpha_value(sign * fn.hessian))
        return self._alphas[key][1]

    def build(self, problem: Problem, lower, upper) -> Relaxation:
        xl = problem.restrict(lower)
        xu = problem.restrict(upper)

        objective = alpha_bb(problem.objective, xl, xu, self._alpha(problem.objective))
        constraints = [alpha_bb(g, xl, xu, self._alpha(g)) for g in problem.constraints]
        for h in problem.equalities:
            constraints.append(alpha_bb(h, xl, xu, self._alpha(h)))
            constraints.append(alpha_bb(h.negate(), xl, xu, self._alpha(h, -1.0)))

        return Relaxation(objective=objective, constraints=constraints, lower=xl, upper=xu)
