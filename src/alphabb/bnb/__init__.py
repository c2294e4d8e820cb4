"""
Spatial Branch-and-Bound Solver

This package implements deterministic global optimization of nonconvex
QCQPs by spatial branch-and-bound over αBB convex relaxations.

Modules:
- tree: BranchAndBoundTree main loop, BBResult and the solve() entry point
- node: BBNode and GlobalState dataclasses
- pool: Open node pool and node selection
- relaxation: αBB underestimators and the relaxation builder
- lower: Lower bounding via a convex solver
- upper: Upper bounding via local search on the original problem
- propagation: Feasibility- and optimality-based bound tightening
- branching: Branching variable and branch point selection
- options: BBOptions configuration
"""

from .branching import create_child_nodes, select_branch_point, select_branching_variable
from .lower import LowerBoundSolver, RelaxationLowerBoundSolver, write_relaxed_solution
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
from .relaxation import (
    AlphaBBRelaxationBuilder,
    Relaxation,
    RelaxationBuilder,
    alpha_bb,
    alpha_bb_overestimator,
    alpha_value,
)
from .tree import BBResult, BranchAndBoundTree, solve
from .upper import LocalSearchUpperBoundSolver, UpperBoundResult, UpperBoundSolver

__all__ = [
    "AlphaBBRelaxationBuilder",
    "BBNode",
    "BBOptions",
    "BBResult",
    "BoundsPropagator",
    "BranchAndBoundTree",
    "CompositePropagator",
    "FeasibilityBasedPropagator",
    "GlobalState",
    "LocalSearchUpperBoundSolver",
    "LowerBoundSolver",
    "NoPropagation",
    "NodePool",
    "OptimalityBasedPropagator",
    "Relaxation",
    "RelaxationBuilder",
    "RelaxationLowerBoundSolver",
    "UpperBoundResult",
    "UpperBoundSolver",
    "alpha_bb",
    "alpha_bb_overestimator",
    "alpha_value",
    "create_child_nodes",
    "select_branch_point",
    "select_branching_variable",
    "solve",
    "write_relaxed_solution",
]
