from __future__ import annotations

import logging
import time
from typing import Callable, Dict, List, Sequence, Tuple

import autograd.numpy as np  # type: ignore
from autograd import grad  # type: ignore
from scipy.optimize import minimize  # type: ignore

from ..constants import (
    DEFAULT_CONVEX_FTOL,
    DEFAULT_CONVEX_MAXITER,
    DEFAULT_FEASIBILITY_TOL,
    DEFAULT_LOCAL_FTOL,
    DEFAULT_LOCAL_MAXITER,
    DEFAULT_NEAR_ZERO,
)
from ..problem import QuadraticFunction
from .base import (
    ArrayLike,
    ConvexProblem,
    ConvexSolveResult,
    LocalSolveResult,
    PrimalStatus,
    SolverStats,
    TerminationStatus,
)

logger = logging.getLogger(__name__)

# SLSQP exit modes
_SLSQP_INCOMPATIBLE = 4
_SLSQP_ITERATION_LIMIT = 9
_SLSQP_NUMERICAL = {5, 6, 7, 8}

# trust-constr exit statuses
_TRUST_CONSTR_ITERATION_LIMIT = 0


class _FixedVariableMap:
    """Optimize only the free coordinates of a box; fixed ones stay at their bound."""

    def __init__(self, lower: ArrayLike, upper: ArrayLike, tol: float):
        self.lower = np.asarray(lower, dtype=float)
        self.upper = np.asarray(upper, dtype=float)
        self.free = np.nonzero(self.upper - self.lower > tol)[0]
        self.base = 0.5 * (self.lower + self.upper)

    @property
    def n_free(self) -> int:
        return self.free.shape[0]

    def full(self, z: ArrayLike) -> ArrayLike:
        x = self.base.copy()
        x[self.free] = z
        return x

    def reduce(self, x: ArrayLike) -> ArrayLike:
        return np.clip(np.asarray(x, dtype=float), self.lower, self.upper)[self.free]

    def bounds(self) -> List[Tuple[float, float]]:
        return [(float(self.lower[i]), float(self.upper[i])) for i in self.free]

    def function(self, fn: QuadraticFunction, sign: float = 1.0):
        def fun(z):
            return sign * float(fn(self.full(z)))

        def jac(z):
            return sign * fn.gradient(self.full(z))[self.free]

        return fun, jac


class ScipyConvexSolver:
    """
    Convex QCQP solver built on ``scipy.optimize.minimize``.

    A converged SLSQP point of a convex problem is globally optimal, so the
    objective value is used as the lower bound. When the main solve fails to
    reach a feasible point, a phase-one problem ``min s s.t. g_j(x) <= s``
    decides between a certified infeasibility (``s* > feasibility_tol``) and
    a solver failure; in the latter case the main solve is retried once from
    the phase-one point.
    """

    SUPPORTED_METHODS = {"SLSQP", "trust-constr"}

    def __init__(
        self,
        method: str = "SLSQP",
        maxiter: int = DEFAULT_CONVEX_MAXITER,
        ftol: float = DEFAULT_CONVEX_FTOL,
        feasibility_tol: float = DEFAULT_FEASIBILITY_TOL,
        options: Dict[str, object] | None = None,
    ):
        if method not in self.SUPPORTED_METHODS:
            raise ValueError(f"Solver '{method}' is not supported by the SciPy backend")
        self.method = method
        self.maxiter = int(maxiter)
        self.ftol = float(ftol)
        self.feasibility_tol = float(feasibility_tol)
        self.options = dict(options or {})

    @property
    def name(self) -> str:
        return f"scipy-{self.method}"

    def solve(
        self, problem: ConvexProblem, x0: ArrayLike | None = None
    ) -> ConvexSolveResult:
        start = time.time()
        fmap = _FixedVariableMap(problem.lower, problem.upper, DEFAULT_NEAR_ZERO)
        if x0 is None:
            x0 = problem.midpoint()

        if fmap.n_free == 0:
            return self._evaluate_point(problem, fmap.base, start)

        try:
            result = self._minimize(problem, fmap, fmap.reduce(x0))
        except (ValueError, ArithmeticError, np.linalg.LinAlgError) as e:
            logger.debug(f"Convex solve raised: {e}")
            return self._result(
                TerminationStatus.NUMERICAL_ERROR,
                PrimalStatus.UNKNOWN,
                None,
                np.inf,
                start,
            )

        x = fmap.full(result.x)
        violation = self._violation(problem, x)
        if result.success and violation <= self.feasibility_tol:
            return self._result(
                TerminationStatus.OPTIMAL,
                PrimalStatus.FEASIBLE_POINT,
                x,
                float(problem.objective(x)),
                start,
                result,
            )
        if result.success and violation <= 10 * self.feasibility_tol:
            return self._result(
                TerminationStatus.OPTIMAL,
                PrimalStatus.NEARLY_FEASIBLE_POINT,
                x,
                float(problem.objective(x)),
                start,
                result,
            )

        if problem.constraints and (
            violation > self.feasibility_tol
            or (self.method == "SLSQP" and result.status == _SLSQP_INCOMPATIBLE)
        ):
            return self._phase_one(problem, fmap, result, start)

        return self._result(
            self._interpret_status(result),
            PrimalStatus.UNKNOWN,
            x,
            np.inf,
            start,
            result,
        )

    def _minimize(self, problem: ConvexProblem, fmap: _FixedVariableMap, z0):
        fun, jac = fmap.function(problem.objective)
        cons = []
        for g in problem.constraints:
            g_fun, g_jac = fmap.function(g, sign=-1.0)
            cons.append({"type": "ineq", "fun": g_fun, "jac": g_jac})
        return minimize(
            fun,
            z0,
            jac=jac,
            method=self.method,
            bounds=fmap.bounds(),
            constraints=cons,
            options=self._solver_options(),
        )

    def _phase_one(self, problem, fmap, main_result, start) -> ConvexSolveResult:
        n = fmap.n_free
        z0 = np.asarray(main_result.x, dtype=float)
        s0 = max(float(g(fmap.full(z0))) for g in problem.constraints)

        def fun(zs):
            return zs[-1]

        def jac(zs):
            out = np.zeros(n + 1)
            out[-1] = 1.0
            return out

        def make_con(g):
            def con(zs):
                return zs[-1] - float(g(fmap.full(zs[:-1])))

            def con_jac(zs):
                out = np.zeros(n + 1)
                out[:-1] = -g.gradient(fmap.full(zs[:-1]))[fmap.free]
                out[-1] = 1.0
                return out

            return {"type": "ineq", "fun": con, "jac": con_jac}

        try:
            p1 = minimize(
                fun,
                np.concatenate((z0, [s0])),
                jac=jac,
                method="SLSQP",
                bounds=fmap.bounds() + [(None, None)],
                constraints=[make_con(g) for g in problem.constraints],
                options=self._solver_options(),
            )
        except (ValueError, ArithmeticError, np.linalg.LinAlgError) as e:
            logger.debug(f"Phase-one solve raised: {e}")
            return self._result(
                TerminationStatus.NUMERICAL_ERROR, PrimalStatus.UNKNOWN, None, np.inf, start
            )

        if not p1.success:
            return self._result(
                self._interpret_status(main_result),
                PrimalStatus.UNKNOWN,
                None,
                np.inf,
                start,
                main_result,
            )

        z_feas = p1.x[:-1]
        if self._violation(problem, fmap.full(z_feas)) > self.feasibility_tol:
            return self._result(
                TerminationStatus.INFEASIBLE,
                PrimalStatus.INFEASIBILITY_CERTIFICATE,
                None,
                np.inf,
                start,
                p1,
            )

        # The relaxation is feasible; retry the main solve from a feasible start
        try:
            retry = self._minimize(problem, fmap, z_feas)
        except (ValueError, ArithmeticError, np.linalg.LinAlgError) as e:
            logger.debug(f"Convex retry raised: {e}")
            retry = None
        if retry is not None and retry.success:
            x = fmap.full(retry.x)
            if self._violation(problem, x) <= self.feasibility_tol:
                return self._result(
                    TerminationStatus.OPTIMAL,
                    PrimalStatus.FEASIBLE_POINT,
                    x,
                    float(problem.objective(x)),
                    start,
                    retry,
                )
        return self._result(
            self._interpret_status(retry if retry is not None else main_result),
            PrimalStatus.UNKNOWN,
            None,
            np.inf,
            start,
            retry,
        )

    def _evaluate_point(self, problem, x, start) -> ConvexSolveResult:
        if self._violation(problem, x) <= self.feasibility_tol:
            return self._result(
                TerminationStatus.OPTIMAL,
                PrimalStatus.FEASIBLE_POINT,
                x,
                float(problem.objective(x)),
                start,
            )
        return self._result(
            TerminationStatus.INFEASIBLE,
            PrimalStatus.INFEASIBILITY_CERTIFICATE,
            None,
            np.inf,
            start,
        )

    def _solver_options(self) -> Dict[str, object]:
        options = {"maxiter": self.maxiter}
        if self.method == "SLSQP":
            options["ftol"] = self.ftol
        else:
            options["gtol"] = self.ftol
        options.update(self.options)
        return options

    @staticmethod
    def _violation(problem: ConvexProblem, x) -> float:
        worst = 0.0
        for g in problem.constraints:
            worst = max(worst, float(g(x)))
        return worst

    def _interpret_status(self, result) -> TerminationStatus:
        status_code = getattr(result, "status", None)
        if status_code is None:
            return TerminationStatus.OTHER_ERROR
        if self.method == "trust-constr":
            if status_code == _TRUST_CONSTR_ITERATION_LIMIT:
                return TerminationStatus.ITERATION_LIMIT
            return TerminationStatus.OTHER_ERROR
        if status_code == _SLSQP_ITERATION_LIMIT:
            return TerminationStatus.ITERATION_LIMIT
        if status_code in _SLSQP_NUMERICAL:
            return TerminationStatus.NUMERICAL_ERROR
        return TerminationStatus.OTHER_ERROR

    def _result(
        self, termination, primal, x, objective_value, start, raw=None
    ) -> ConvexSolveResult:
        stats = SolverStats(
            solver_name=self.name,
            solve_time=time.time() - start,
            num_iters=getattr(raw, "nit", None),
        )
        return ConvexSolveResult(
            termination_status=termination,
            primal_status=primal,
            objective_value=float(objective_value),
            x=x,
            stats=stats,
            raw_result=raw,
        )


class ScipyLocalSolver:
    """Local NLP solver for the original (nonconvex) problem, gradients by autograd."""

    GRADIENT_METHODS = {"SLSQP", "trust-constr"}

    def __init__(
        self,
        method: str = "SLSQP",
        maxiter: int = DEFAULT_LOCAL_MAXITER,
        ftol: float = DEFAULT_LOCAL_FTOL,
        options: Dict[str, object] | None = None,
    ):
        if method not in self.GRADIENT_METHODS:
            raise ValueError(f"Solver '{method}' is not supported by the SciPy backend")
        self.method = method
        self.maxiter = int(maxiter)
        self.ftol = float(ftol)
        self.options = dict(options or {})

    @property
    def name(self) -> str:
        return f"scipy-{self.method}"

    def solve(
        self,
        objective: Callable[[ArrayLike], float],
        constraints: Sequence[Callable[[ArrayLike], float]],
        bounds: Sequence[Tuple[float, float]],
        x0: ArrayLike,
        equalities: Sequence[Callable[[ArrayLike], float]] = (),
    ) -> LocalSolveResult:
        start = time.time()
        cons = []
        for g in constraints:
            neg_g = _negated(g)
            cons.append({"type": "ineq", "fun": neg_g, "jac": grad(neg_g)})
        for h in equalities:
            cons.append({"type": "eq", "fun": h, "jac": grad(h)})

        options = {"maxiter": self.maxiter}
        if self.method == "SLSQP":
            options["ftol"] = self.ftol
        options.update(self.options)

        x0 = np.clip(
            np.asarray(x0, dtype=float),
            [lo for lo, _ in bounds],
            [hi for _, hi in bounds],
        )
        try:
            result = minimize(
                objective,
                x0,
                jac=grad(objective),
                method=self.method,
                bounds=list(bounds),
                constraints=cons,
                options=options,
            )
        except (ValueError, ArithmeticError, np.linalg.LinAlgError) as e:
            logger.debug(f"Local solve raised: {e}")
            return LocalSolveResult(
                x=None,
                objective_value=np.inf,
                success=False,
                stats=SolverStats(self.name, time.time() - start),
                message=str(e),
            )

        return LocalSolveResult(
            x=np.asarray(result.x, dtype=float),
            objective_value=float(result.fun),
            success=bool(result.success),
            stats=SolverStats(
                self.name, time.time() - start, getattr(result, "nit", None)
            ),
            message=str(getattr(result, "message", "")),
            raw_result=result,
        )


def _negated(fn: Callable[[ArrayLike], float]) -> Callable[[ArrayLike], float]:
    def neg(x):
        return -fn(x)

    return neg
