"""
Branching Variable Selection

This module implements the rules for picking which variable of a node box
to bisect and where.

Rules:
- LARGEST_WIDTH: Branch on the widest eligible variable, width measured
  relative to the root box (simple, always converges)
- RELAXATION_GAP: Branch on the variable with the largest αBB separation
  (x_i - xL_i)(xU_i - x_i) at the relaxation point; falls back to the widest
  variable when the separation vanishes or the pick is much narrower than
  the widest one

Eligible variables are those in the branching mask whose width exceeds
`min_width`. Ties go to the lowest index.
"""

from __future__ import annotations

import logging
from typing import Tuple

import autograd.numpy as np

from ..constants import BranchingRule, BranchPoint, DEFAULT_NEAR_ZERO
from ..problem import Problem
from .node import BBNode

logger = logging.getLogger(__name__)

# Fraction of the range kept on each side of a relaxation-informed branch point
_BRANCH_POINT_MARGIN = 0.1

# A gap-based pick narrower than this fraction of the widest variable is overridden
_GAP_WIDTH_RATIO = 0.1


def eligible_variables(node: BBNode, problem: Problem, min_width: float) -> np.ndarray:
    widths = node.widths
    return np.nonzero(problem.branch_mask & (widths > min_width))[0]


def _relative_widths(node: BBNode, root_widths: np.ndarray) -> np.ndarray:
    scale = np.where(root_widths > DEFAULT_NEAR_ZERO, root_widths, 1.0)
    return node.widths / scale


def largest_width_branching(
    node: BBNode, candidates: np.ndarray, root_widths: np.ndarray
) -> int:
    rel = _relative_widths(node, root_widths)
    # argmax returns the first maximum, so ties go to the lowest index
    return int(candidates[np.argmax(rel[candidates])])


def relaxation_gap_branching(
    node: BBNode, candidates: np.ndarray, root_widths: np.ndarray
) -> int:
    widest = largest_width_branching(node, candidates, root_widths)
    if node.lower_solution is None:
        return widest

    x = np.clip(node.lower_solution, node.lower_bounds, node.upper_bounds)
    separation = (x - node.lower_bounds) * (node.upper_bounds - x)
    scores = separation[candidates]
    if np.max(scores) <= DEFAULT_NEAR_ZERO:
        return widest

    best = int(candidates[np.argmax(scores)])
    rel = _relative_widths(node, root_widths)
    if rel[best] < _GAP_WIDTH_RATIO * rel[widest]:
        return widest
    return best


def select_branching_variable(
    node: BBNode,
    problem: Problem,
    rule: BranchingRule,
    root_widths: np.ndarray,
    min_width: float,
) -> int | None:
    """Index (stored space) of the variable to bisect, or None if none is eligible."""
    candidates = eligible_variables(node, problem, min_width)
    if candidates.shape[0] == 0:
        return None
    if rule == BranchingRule.RELAXATION_GAP:
        return relaxation_gap_branching(node, candidates, root_widths)
    return largest_width_branching(node, candidates, root_widths)


def select_branch_point(node: BBNode, idx: int, rule: BranchPoint) -> float:
    lo = node.lower_bounds[idx]
    hi = node.upper_bounds[idx]
    mid = 0.5 * (lo + hi)
    if rule == BranchPoint.MIDPOINT or node.lower_solution is None:
        return float(mid)
    margin = _BRANCH_POINT_MARGIN * (hi - lo)
    return float(np.clip(node.lower_solution[idx], lo + margin, hi - margin))


def create_child_nodes(
    parent: BBNode,
    branch_idx: int,
    branch_val: float,
    node_counter: int,
) -> Tuple[BBNode, BBNode]:
    """Bisect ``parent`` at ``x[branch_idx] = branch_val`` into two children."""
    bound = parent.bound

    left_upper = parent.upper_bounds.copy()
    left_upper[branch_idx] = branch_val
    right_lower = parent.lower_bounds.copy()
    right_lower[branch_idx] = branch_val

    warm = None if parent.lower_solution is None else parent.lower_solution.copy()

    left_node = BBNode(
        priority=bound,
        node_id=node_counter,
        depth=parent.depth + 1,
        lower_bounds=parent.lower_bounds.copy(),
        upper_bounds=left_upper,
        lower_solution=warm,
    )
    right_node = BBNode(
        priority=bound,
        node_id=node_counter + 1,
        depth=parent.depth + 1,
        lower_bounds=right_lower,
        upper_bounds=parent.upper_bounds.copy(),
        lower_solution=None if warm is None else warm.copy(),
    )
    return left_node, right_node
