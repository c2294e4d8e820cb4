from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Dict, Tuple

from ..constants import (
    BranchingRule,
    BranchPoint,
    DEFAULT_FEASIBILITY_TOL,
    DEFAULT_MIN_WIDTH,
    NodeSelection,
    Solver,
)

PROPAGATION_MODES = ("none", "fbbt", "obbt", "both")


@dataclass
class BBOptions:
    """
    Branch-and-bound settings.

    B&B options:
        abs_gap: Absolute gap tolerance (default: the problem's ``abs_tol``)
        rel_gap: Relative gap tolerance (default: the problem's ``rel_tol``)
        max_nodes: Maximum nodes created (default: 100000)
        max_iterations: Maximum nodes processed (default: no limit)
        max_time: Maximum time in seconds (default: 300)
        min_width: Variables narrower than this are not branched on (default: 1e-7)
        feasibility_tol: Constraint tolerance for incumbents (default: 1e-6)
        node_selection: "best_first", "depth_first", "hybrid" (default: "best_first")
        hybrid_interval: Best-first pick every N pops in hybrid mode (default: 10)
        branching: "largest_width", "relaxation_gap" (default: "largest_width")
        branch_point: "midpoint", "relaxation" (default: "midpoint")
        propagation: "none", "fbbt", "obbt", "both" (default: "fbbt")
        obbt_depth: Deepest node OBBT runs on (default: 0, root only)
        upper_interval: Run upper bounding every N iterations (default: 1)
        lower_retries: Retries for a failed lower solve (default: 1)
        report_interval: Progress record every N iterations, 0 disables (default: 100)

    Solver options:
        convex_solver: Registered convex solver name (default: "SLSQP")
        convex_options: Keyword options for the convex solver
        local_solver: Registered local solver name, "SLSQP", "trust-constr"
            or "IPOPT" (default: "SLSQP")
        local_options: Keyword options for the local solver
    """

    abs_gap: float | None = None
    rel_gap: float | None = None
    max_nodes: int = 100000
    max_iterations: int | None = None
    max_time: float = 300.0
    min_width: float = DEFAULT_MIN_WIDTH
    feasibility_tol: float = DEFAULT_FEASIBILITY_TOL
    node_selection: NodeSelection = NodeSelection.BEST_FIRST
    hybrid_interval: int = 10
    branching: BranchingRule = BranchingRule.LARGEST_WIDTH
    branch_point: BranchPoint = BranchPoint.MIDPOINT
    propagation: str = "fbbt"
    obbt_depth: int = 0
    upper_interval: int = 1
    lower_retries: int = 1
    report_interval: int = 100
    convex_solver: str = Solver.SLSQP.value
    convex_options: Dict[str, object] = field(default_factory=dict)
    local_solver: str = Solver.SLSQP.value
    local_options: Dict[str, object] = field(default_factory=dict)

    def __post_init__(self):
        self.node_selection = NodeSelection(self.node_selection)
        self.branching = BranchingRule(self.branching)
        self.branch_point = BranchPoint(self.branch_point)
        if self.propagation not in PROPAGATION_MODES:
            raise ValueError(
                f"propagation must be one of {PROPAGATION_MODES}, got '{self.propagation}'"
            )
        if self.abs_gap is not None and self.abs_gap < 0:
            raise ValueError(f"abs_gap must be non-negative, got {self.abs_gap}")
        if self.rel_gap is not None and self.rel_gap < 0:
            raise ValueError(f"rel_gap must be non-negative, got {self.rel_gap}")
        if self.max_time <= 0:
            raise ValueError(f"max_time must be positive, got {self.max_time}")
        if self.max_nodes <= 0:
            raise ValueError(f"max_nodes must be positive, got {self.max_nodes}")
        if self.max_iterations is not None and self.max_iterations <= 0:
            raise ValueError(
                f"max_iterations must be positive, got {self.max_iterations}"
            )
        if self.min_width < 0:
            raise ValueError(f"min_width must be non-negative, got {self.min_width}")
        if self.upper_interval <= 0:
            raise ValueError(
                f"upper_interval must be positive, got {self.upper_interval}"
            )
        if self.report_interval < 0:
            raise ValueError(
                f"report_interval must be non-negative, got {self.report_interval}"
            )

    @classmethod
    def from_dict(cls, solver_options: Dict[str, object] | None) -> "BBOptions":
        """
        Build options from a flat dict.

        Keys prefixed ``convex_`` or ``local_`` that are not fields themselves
        are forwarded (prefix stripped) to the convex or local solver; any
        other unknown key is an error.
        """
        options = dict(solver_options or {})
        names = {f.name for f in fields(cls)}
        kwargs: Dict[str, object] = {}
        convex_options = dict(options.pop("convex_options", None) or {})
        local_options = dict(options.pop("local_options", None) or {})

        for key, value in options.items():
            if key in names:
                kwargs[key] = value
            elif key.startswith("convex_"):
                convex_options[key[len("convex_"):]] = value
            elif key.startswith("local_"):
                local_options[key[len("local_"):]] = value
            else:
                raise ValueError(f"Unknown branch-and-bound option '{key}'")

        return cls(convex_options=convex_options, local_options=local_options, **kwargs)

    def gaps(self, abs_default: float, rel_default: float) -> Tuple[float, float]:
        abs_gap = abs_default if self.abs_gap is None else self.abs_gap
        rel_gap = rel_default if self.rel_gap is None else self.rel_gap
        return float(abs_gap), float(rel_gap)
