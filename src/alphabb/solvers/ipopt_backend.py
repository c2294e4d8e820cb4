"""Local NLP solver backed by IPOPT through cyipopt."""

from __future__ import annotations

import time
from typing import Callable, Dict, Sequence, Tuple

import autograd.numpy as np
from autograd import grad, jacobian

from .base import ArrayLike, LocalSolveResult, SolverStats

# IPOPT ApplicationReturnStatus codes that leave a usable point
_ACCEPTED = {0, 1, 6}


class IpoptLocalSolver:
    """
    Local solver for the original problem using IPOPT.

    Inequalities ``g(x) <= 0`` are passed with ``cl = -inf, cu = 0`` and
    equalities with ``cl = cu = 0``. Derivatives come from autograd.
    """

    def __init__(
        self,
        maxiter: int = 1000,
        tol: float = 1e-8,
        print_level: int = 0,
        options: Dict[str, object] | None = None,
    ):
        try:
            import cyipopt
        except ImportError as exc:
            raise ImportError(
                "IPOPT backend requires 'cyipopt' to be installed. "
                "Install with: pip install cyipopt"
            ) from exc
        self._cyipopt = cyipopt
        self.maxiter = int(maxiter)
        self.tol = float(tol)
        self.print_level = int(print_level)
        self.options = dict(options or {})

    @property
    def name(self) -> str:
        return "IPOPT"

    def solve(
        self,
        objective: Callable[[ArrayLike], float],
        constraints: Sequence[Callable[[ArrayLike], float]],
        bounds: Sequence[Tuple[float, float]],
        x0: ArrayLike,
        equalities: Sequence[Callable[[ArrayLike], float]] = (),
    ) -> LocalSolveResult:
        lb = np.array([lo for lo, _ in bounds], dtype=float)
        ub = np.array([hi for _, hi in bounds], dtype=float)
        x0 = np.clip(np.asarray(x0, dtype=float), lb, ub)
        n = x0.shape[0]

        all_constraints = list(equalities) + list(constraints)
        m = len(all_constraints)
        cl = np.concatenate((np.zeros(len(equalities)), np.full(len(constraints), -np.inf)))
        cu = np.zeros(m)

        if m > 0:
            def con_func(x):
                return np.array([fn(x) for fn in all_constraints])

            con_jac = jacobian(con_func)
        else:
            def con_func(x):
                return np.array([])

            def con_jac(x):
                return np.zeros((0, n))

        nlp = self._cyipopt.Problem(
            n=n,
            m=m,
            problem_obj=_IpoptProblem(objective, grad(objective), con_func, con_jac),
            lb=lb,
            ub=ub,
            cl=cl,
            cu=cu,
        )
        nlp.add_option("print_level", self.print_level)
        nlp.add_option("max_iter", self.maxiter)
        nlp.add_option("tol", self.tol)
        for key, value in self.options.items():
            nlp.add_option(key, value)

        start = time.time()
        x_sol, info = nlp.solve(x0)
        solve_time = time.time() - start

        status = info.get("status", -100)
        success = status in _ACCEPTED
        return LocalSolveResult(
            x=np.asarray(x_sol, dtype=float) if success else None,
            objective_value=float(info.get("obj_val", np.inf)) if success else np.inf,
            success=success,
            stats=SolverStats(self.name, solve_time),
            message=str(info.get("status_msg", "")),
            raw_result=info,
        )


class _IpoptProblem:
    """Wrapper class that provides the interface expected by cyipopt."""

    def __init__(self, objective, gradient, constraints, jacobian):
        self._objective = objective
        self._gradient = gradient
        self._constraints = constraints
        self._jacobian = jacobian

    def objective(self, x):
        return self._objective(x)

    def gradient(self, x):
        return self._gradient(x)

    def constraints(self, x):
        return self._constraints(x)

    def jacobian(self, x):
        return np.asarray(self._jacobian(x)).flatten()
