from enum import StrEnum, Enum, auto


class Solver(StrEnum):
    SLSQP = "SLSQP"
    TRUST_CONSTR = "trust-constr"
    IPOPT = "IPOPT"


class NodeSelection(StrEnum):
    """Node selection strategy."""

    BEST_FIRST = "best_first"  # Lowest inherited bound, then earliest node
    DEPTH_FIRST = "depth_first"  # Deepest node, then earliest node
    HYBRID = "hybrid"  # Depth-first with a periodic best-first pick


class BranchingRule(StrEnum):
    """Branching variable selection rule."""

    LARGEST_WIDTH = "largest_width"
    RELAXATION_GAP = "relaxation_gap"


class BranchPoint(StrEnum):
    MIDPOINT = "midpoint"
    RELAXATION = "relaxation"


class LowerStatus(Enum):
    UNSOLVED = auto()
    FEASIBLE = auto()
    INFEASIBLE = auto()
    SOLVER_FAILURE = auto()


class TreeState(StrEnum):
    INITIALIZED = "initialized"
    RUNNING = "running"
    CONVERGED = "converged"
    TIME_LIMIT = "time_limit"
    NODE_LIMIT = "node_limit"
    ITERATION_LIMIT = "iteration_limit"
    INTERRUPTED = "interrupted"
    INFEASIBLE = "infeasible"
    RESOLUTION_LIMIT = "resolution_limit"  # Pool exhausted, gap held by unbranchable nodes


DEFAULT_ABS_GAP = 1e-4
DEFAULT_REL_GAP = 1e-4
DEFAULT_FEASIBILITY_TOL = 1e-6
DEFAULT_MIN_WIDTH = 1e-7
DEFAULT_NEAR_ZERO = 1e-12
DEFAULT_CONVEX_FTOL = 1e-10
DEFAULT_CONVEX_MAXITER = 500
DEFAULT_LOCAL_FTOL = 1e-9
DEFAULT_LOCAL_MAXITER = 500
DEFAULT_OBBT_BACKOFF = 1e-6
