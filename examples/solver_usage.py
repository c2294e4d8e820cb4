"""Examples demonstrating alphabb on small nonconvex QCQPs.

Each helper builds a problem and solves it with a particular configuration.
Execute this module directly to run every example in sequence, or import the
helper functions elsewhere to experiment interactively.
"""

from __future__ import annotations

import logging

import autograd.numpy as np  # type: ignore

import alphabb as abb  # type: ignore


def _qcqp() -> abb.Problem:
    objective = abb.QuadraticFunction([[3.0, 1.5], [1.5, -5.0]], [3.0, 2.0])
    constraints = [
        abb.QuadraticFunction([[-2.0, 5.0], [5.0, -2.0]], [1.0, 3.0]),
        abb.QuadraticFunction([[-6.0, 3.0], [3.0, 2.0]], [2.0, 1.0]),
    ]
    return abb.Problem(objective, constraints, [-3.0, -5.0], [1.0, 2.0])


def _circle() -> abb.Problem:
    # minimize x + y on the unit circle
    objective = abb.QuadraticFunction(np.zeros((2, 2)), [1.0, 1.0])
    circle = abb.QuadraticFunction(2.0 * np.eye(2), [0.0, 0.0], -1.0)
    return abb.Problem(objective, [], [-2.0, -2.0], [2.0, 2.0], equalities=[circle])


def _solve(problem: abb.Problem, *, options=None, label: str = "", **components):
    try:
        result = abb.solve(problem, options or {}, **components)
    except (ValueError, ImportError) as exc:
        print(f"{label}: failed -> {exc}")
        return

    print(f"{label}: status={result.status}")
    if result.x is not None:
        print(f"  x = {result.x}")
        print(f"  f = {result.objective_value:.6f}  (lower bound {result.lower_bound:.6f})")
    state = result.state
    print(
        f"  {state.iterations} iterations, {state.nodes_created} nodes, "
        f"{state.nodes_pruned} pruned, {state.elapsed:.2f}s"
    )
    if not result.converged:
        print("  Warning: search stopped before the gap closed")


def solve_default():
    _solve(_qcqp(), label="best-first + FBBT")


def solve_with_progress_table():
    _solve(
        _qcqp(),
        options={"report_interval": 25},
        label="progress table",
        observer=abb.LoggingProgressObserver(),
    )


def solve_depth_first_obbt():
    _solve(
        _qcqp(),
        options={"node_selection": "depth_first", "propagation": "both", "obbt_depth": 2},
        label="depth-first + FBBT/OBBT",
    )


def solve_with_epigraph():
    _solve(_qcqp().with_epigraph(), label="epigraph form")


def solve_equality_constrained():
    _solve(_circle(), options={"rel_gap": 1e-3}, label="equality constrained")


def solve_with_ipopt():
    _solve(_qcqp(), options={"local_solver": "IPOPT"}, label="IPOPT upper bounding")


def solve_with_node_budget():
    _solve(_qcqp(), options={"max_nodes": 25}, label="node budget")


def main():
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    solve_default()
    solve_with_progress_table()
    solve_depth_first_obbt()
    solve_with_epigraph()
    solve_equality_constrained()
    solve_with_ipopt()
    solve_with_node_budget()


if __name__ == "__main__":
    main()
