from __future__ import annotations

from typing import Dict

from ..constants import Solver
from .base import (
    ConvexProblem,
    ConvexSolver,
    ConvexSolverFactory,
    ConvexSolveResult,
    LocalSolver,
    LocalSolverFactory,
    LocalSolveResult,
    PrimalStatus,
    SolverStats,
    TerminationStatus,
    classify_lower_status,
)
from .scipy_backend import ScipyConvexSolver, ScipyLocalSolver


def _scipy_factory(method: str) -> ConvexSolverFactory:
    def factory(options: Dict[str, object]) -> ConvexSolver:
        return ScipyConvexSolver(method=method, **options)

    return factory


def _scipy_local_factory(method: str) -> LocalSolverFactory:
    def factory(options: Dict[str, object]) -> LocalSolver:
        return ScipyLocalSolver(method=method, **options)

    return factory


def _ipopt_factory(options: Dict[str, object]) -> LocalSolver:
    from .ipopt_backend import IpoptLocalSolver

    return IpoptLocalSolver(**options)


_CONVEX_SOLVERS: Dict[str, ConvexSolverFactory] = {
    Solver.SLSQP.value: _scipy_factory(Solver.SLSQP.value),
    Solver.TRUST_CONSTR.value: _scipy_factory(Solver.TRUST_CONSTR.value),
}

_LOCAL_SOLVERS: Dict[str, LocalSolverFactory] = {
    Solver.SLSQP.value: _scipy_local_factory(Solver.SLSQP.value),
    Solver.TRUST_CONSTR.value: _scipy_local_factory(Solver.TRUST_CONSTR.value),
    Solver.IPOPT.value: _ipopt_factory,
}


def register_convex_solver(solver_name: str, factory: ConvexSolverFactory) -> None:
    _CONVEX_SOLVERS[solver_name] = factory


def register_local_solver(solver_name: str, factory: LocalSolverFactory) -> None:
    _LOCAL_SOLVERS[solver_name] = factory


def _lookup(registry, kind: str, solver: Solver | str):
    solver_name = solver.value if isinstance(solver, Solver) else str(solver)
    if solver_name not in registry:
        raise ValueError(f"No {kind} solver registered for solver '{solver_name}'")
    return registry[solver_name]


def get_convex_solver(
    solver: Solver | str = Solver.SLSQP, options: Dict[str, object] | None = None
) -> ConvexSolver:
    return _lookup(_CONVEX_SOLVERS, "convex", solver)(dict(options or {}))


def get_local_solver(
    solver: Solver | str = Solver.SLSQP, options: Dict[str, object] | None = None
) -> LocalSolver:
    return _lookup(_LOCAL_SOLVERS, "local", solver)(dict(options or {}))


__all__ = [
    "ConvexProblem",
    "ConvexSolver",
    "ConvexSolveResult",
    "LocalSolver",
    "LocalSolveResult",
    "PrimalStatus",
    "SolverStats",
    "TerminationStatus",
    "ScipyConvexSolver",
    "ScipyLocalSolver",
    "classify_lower_status",
    "get_convex_solver",
    "get_local_solver",
    "register_convex_solver",
    "register_local_solver",
]
