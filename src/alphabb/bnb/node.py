"""
Branch-and-Bound Node and Global State Dataclasses

This module contains the core data structures used by the spatial
branch-and-bound solver: the search node (one sub-box) and the per-solve
global state that the tree loop threads through every iteration.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

import autograd.numpy as np

from ..constants import LowerStatus


@dataclass(order=True)
class BBNode:
    """
    A node in the branch-and-bound tree.

    Bound semantics:
    - `priority` is the bound inherited from the parent's relaxation (−inf
      for the root). It orders the pool and enters the global lower bound
      while the node is open.
    - `lower_bound_value` is −inf until the node's own relaxation is solved;
      then it is the proven bound on this box, or +inf if the relaxation
      is infeasible.
    - Ties in `priority` are broken by `node_id`, i.e. creation order.
    """

    # Inherited bound for heap ordering
    priority: float

    # Creation order, the tie breaker
    node_id: int

    # Node data (not used for comparison)
    depth: int = field(compare=False)
    lower_bounds: np.ndarray = field(compare=False, repr=False)
    upper_bounds: np.ndarray = field(compare=False, repr=False)

    lower_bound_value: float = field(compare=False, default=float("-inf"))
    lower_solution: np.ndarray | None = field(compare=False, default=None, repr=False)
    lower_status: LowerStatus = field(compare=False, default=LowerStatus.UNSOLVED)

    def __post_init__(self):
        self.lower_bounds = np.array(self.lower_bounds, dtype=float)
        self.upper_bounds = np.array(self.upper_bounds, dtype=float)
        if self.lower_bounds.shape != self.upper_bounds.shape:
            raise ValueError("Node bound vectors must have the same length")
        if np.any(self.lower_bounds > self.upper_bounds):
            raise ValueError("Node box must satisfy lower <= upper")

    @property
    def is_feasible_lower_problem(self) -> bool:
        return self.lower_status == LowerStatus.FEASIBLE

    @property
    def widths(self) -> np.ndarray:
        return self.upper_bounds - self.lower_bounds

    @property
    def bound(self) -> float:
        """Best valid bound known for this node."""
        return max(self.priority, self.lower_bound_value)

    def midpoint(self) -> np.ndarray:
        return 0.5 * (self.lower_bounds + self.upper_bounds)

    def tighten(self, lower, upper) -> bool:
        """
        Intersect the box with ``[lower, upper]``; never widens.

        Returns False (leaving the box untouched) if the intersection is empty.
        """
        new_lower = np.maximum(self.lower_bounds, np.asarray(lower, dtype=float))
        new_upper = np.minimum(self.upper_bounds, np.asarray(upper, dtype=float))
        if np.any(new_lower > new_upper):
            return False
        self.lower_bounds = new_lower
        self.upper_bounds = new_upper
        return True

    def mark_infeasible(self) -> None:
        self.lower_status = LowerStatus.INFEASIBLE
        self.lower_bound_value = float("inf")


@dataclass
class GlobalState:
    """Per-solve state shared by the tree loop; not a module-level global."""

    incumbent_value: float = float("inf")
    incumbent_solution: np.ndarray | None = None
    global_lower_bound: float = float("-inf")

    iterations: int = 0
    nodes_created: int = 0
    nodes_pruned: int = 0
    nodes_infeasible: int = 0
    lower_failures: int = 0
    lower_solves: int = 0
    upper_solves: int = 0
    incumbent_updates: int = 0

    # Bound of nodes too narrow to branch further
    resolution_bound: float = float("inf")
    resolution_nodes: int = 0

    start_time: float = field(default_factory=time.time)
    elapsed: float = 0.0

    def tick(self) -> float:
        self.elapsed = time.time() - self.start_time
        return self.elapsed

    def update_incumbent(self, value: float, solution: np.ndarray) -> bool:
        """Accept ``value`` only if it improves the incumbent."""
        if value < self.incumbent_value:
            self.incumbent_value = float(value)
            self.incumbent_solution = np.array(solution, dtype=float)
            self.incumbent_updates += 1
            return True
        return False

    @property
    def has_incumbent(self) -> bool:
        return self.incumbent_solution is not None

    @property
    def absolute_gap(self) -> float:
        return self.incumbent_value - self.global_lower_bound

    @property
    def relative_gap(self) -> float:
        if not self.has_incumbent or not np.isfinite(self.global_lower_bound):
            return float("inf")
        return self.absolute_gap / max(abs(self.incumbent_value), 1e-10)
