from __future__ import annotations

from typing import List, Sequence, Tuple

import autograd.numpy as np

from . import interval as iv
from .constants import DEFAULT_ABS_GAP, DEFAULT_REL_GAP
from .errors import RelaxationConstructionError


class QuadraticFunction:
    """
    A scalar quadratic ``f(x) = 1/2 x^T Q x + c^T x + constant``.

    ``Q`` is stored symmetrised; only the symmetric part of a quadratic form
    contributes to its value. Instances are callable on autograd arrays, so
    ``autograd.grad`` can differentiate them like any other black-box callable.
    """

    def __init__(self, Q, c, constant: float = 0.0):
        Q = np.asarray(Q, dtype=float)
        c = np.asarray(c, dtype=float)

        if Q.ndim != 2 or Q.shape[0] != Q.shape[1]:
            raise RelaxationConstructionError(
                f"Q must be a square matrix, got shape {Q.shape}"
            )
        if c.ndim != 1 or c.shape[0] != Q.shape[0]:
            raise RelaxationConstructionError(
                f"c must be a vector of length {Q.shape[0]}, got shape {c.shape}"
            )
        if not (np.all(np.isfinite(Q)) and np.all(np.isfinite(c))):
            raise RelaxationConstructionError("Q and c must have finite entries")
        if not np.isfinite(constant):
            raise RelaxationConstructionError(f"constant must be finite, got {constant}")

        self.Q = 0.5 * (Q + Q.T)
        self.c = c
        self.constant = float(constant)

    @property
    def size(self) -> int:
        return self.c.shape[0]

    @property
    def hessian(self) -> np.ndarray:
        return self.Q

    def __call__(self, x):
        return 0.5 * np.dot(x, np.dot(self.Q, x)) + np.dot(self.c, x) + self.constant

    def gradient(self, x) -> np.ndarray:
        return np.dot(self.Q, x) + self.c

    def negate(self) -> "QuadraticFunction":
        return QuadraticFunction(-self.Q, -self.c, -self.constant)

    def embed(self, indices: Sequence[int], size: int) -> "QuadraticFunction":
        """Lift this function into a ``size``-dimensional space at ``indices``."""
        idx = np.asarray(indices, dtype=int)
        if idx.shape[0] != self.size:
            raise RelaxationConstructionError(
                f"Cannot embed a {self.size}-variable function at {idx.shape[0]} indices"
            )
        Q = np.zeros((size, size))
        c = np.zeros(size)
        Q[np.ix_(idx, idx)] = self.Q
        c[idx] = self.c
        return QuadraticFunction(Q, c, self.constant)

    def interval(self, lower, upper) -> iv.Interval:
        """Natural interval extension of the function over the box."""
        n = self.size
        box = [(float(lower[i]), float(upper[i])) for i in range(n)]
        total: iv.Interval = (self.constant, self.constant)
        for i in range(n):
            if self.Q[i, i] != 0.0:
                total = iv.add(total, iv.scale(iv.square(box[i]), 0.5 * self.Q[i, i]))
            if self.c[i] != 0.0:
                total = iv.add(total, iv.scale(box[i], self.c[i]))
            for j in range(i + 1, n):
                if self.Q[i, j] != 0.0:
                    total = iv.add(total, iv.scale(iv.mul(box[i], box[j]), self.Q[i, j]))
        return total

    def __repr__(self) -> str:
        return f"QuadraticFunction(n={self.size}, constant={self.constant})"


class Problem:
    """
    A nonconvex QCQP over a finite box.

        minimize    f(x)
        subject to  g_j(x) <= 0
                    h_k(x) == 0
                    lower <= x <= upper

    The box covers every *stored* variable. ``variable_indices`` lists the
    stored positions the functions act on; any other stored position is an
    auxiliary variable (e.g. the epigraph variable added by ``with_epigraph``)
    which is tracked in node boxes but not optimized by the relaxation.
    """

    def __init__(
        self,
        objective: QuadraticFunction,
        constraints: Sequence[QuadraticFunction] | None = None,
        lower_bounds=None,
        upper_bounds=None,
        equalities: Sequence[QuadraticFunction] | None = None,
        branch_mask: Sequence[bool] | None = None,
        variable_indices: Sequence[int] | None = None,
        abs_tol: float = DEFAULT_ABS_GAP,
        rel_tol: float = DEFAULT_REL_GAP,
        epigraph_index: int | None = None,
    ):
        if not isinstance(objective, QuadraticFunction):
            raise TypeError(
                f"Objective must be a QuadraticFunction, got {type(objective).__name__}"
            )
        if lower_bounds is None or upper_bounds is None:
            raise RelaxationConstructionError("A finite variable box is required")

        self.objective = objective
        self.constraints: Tuple[QuadraticFunction, ...] = tuple(constraints or ())
        self.equalities: Tuple[QuadraticFunction, ...] = tuple(equalities or ())

        lower = np.array(lower_bounds, dtype=float).ravel()
        upper = np.array(upper_bounds, dtype=float).ravel()
        if lower.shape != upper.shape:
            raise RelaxationConstructionError(
                f"Bound vectors differ in length: {lower.shape[0]} vs {upper.shape[0]}"
            )
        if not (np.all(np.isfinite(lower)) and np.all(np.isfinite(upper))):
            raise RelaxationConstructionError("Variable bounds must be finite")
        if np.any(lower > upper):
            bad = [int(i) for i in np.nonzero(lower > upper)[0]]
            raise RelaxationConstructionError(f"lower > upper for variables {bad}")
        self.lower_bounds = lower
        self.upper_bounds = upper

        n_stored = lower.shape[0]
        if variable_indices is None:
            variable_indices = range(n_stored)
        self.variable_indices = np.array(list(variable_indices), dtype=int)
        if len(set(self.variable_indices.tolist())) != self.variable_indices.shape[0]:
            raise RelaxationConstructionError("variable_indices must be unique")
        if np.any(self.variable_indices < 0) or np.any(self.variable_indices >= n_stored):
            raise RelaxationConstructionError(
                f"variable_indices must lie in [0, {n_stored})"
            )

        n_vars = self.variable_indices.shape[0]
        for name, fns in (
            ("objective", (objective,)),
            ("constraint", self.constraints),
            ("equality", self.equalities),
        ):
            for fn in fns:
                if fn.size != n_vars:
                    raise RelaxationConstructionError(
                        f"{name} acts on {fn.size} variables, expected {n_vars}"
                    )

        if branch_mask is None:
            mask = np.zeros(n_stored, dtype=bool)
            mask[self.variable_indices] = True
        else:
            mask = np.array(branch_mask, dtype=bool).ravel()
            if mask.shape[0] != n_stored:
                raise RelaxationConstructionError(
                    f"branch_mask must have length {n_stored}, got {mask.shape[0]}"
                )
        self.branch_mask = mask

        if abs_tol < 0 or rel_tol < 0:
            raise ValueError("Tolerances must be non-negative")
        self.abs_tol = float(abs_tol)
        self.rel_tol = float(rel_tol)
        self.epigraph_index = epigraph_index

    @property
    def n_stored(self) -> int:
        return self.lower_bounds.shape[0]

    @property
    def n_vars(self) -> int:
        return self.variable_indices.shape[0]

    @property
    def auxiliary_indices(self) -> List[int]:
        relaxed = set(self.variable_indices.tolist())
        return [i for i in range(self.n_stored) if i not in relaxed]

    def restrict(self, vector) -> np.ndarray:
        """Project a stored-length vector onto the optimized variables."""
        return np.asarray(vector, dtype=float)[self.variable_indices]

    def evaluate(self, x) -> float:
        return float(self.objective(np.asarray(x, dtype=float)))

    def max_violation(self, x) -> float:
        """Largest violation of the original constraints at ``x`` (0 if feasible)."""
        x = np.asarray(x, dtype=float)
        worst = 0.0
        for g in self.constraints:
            worst = max(worst, float(g(x)))
        for h in self.equalities:
            worst = max(worst, abs(float(h(x))))
        return worst

    def is_feasible(self, x, tol: float) -> bool:
        x = np.asarray(x, dtype=float)
        lower = self.restrict(self.lower_bounds)
        upper = self.restrict(self.upper_bounds)
        if np.any(x < lower - tol) or np.any(x > upper + tol):
            return False
        return self.max_violation(x) <= tol

    def with_epigraph(self) -> "Problem":
        """
        Append an auxiliary epigraph variable ``eta`` for the objective value.

        ``eta`` is stored in every node box but is neither branched on nor
        optimized by the relaxation; its initial range is the interval
        extension of the objective over the box.
        """
        if self.epigraph_index is not None:
            return self
        f_lo, f_hi = self.objective.interval(
            self.restrict(self.lower_bounds), self.restrict(self.upper_bounds)
        )
        lower = np.concatenate((self.lower_bounds, [f_lo]))
        upper = np.concatenate((self.upper_bounds, [f_hi]))
        mask = np.concatenate((self.branch_mask, [False]))
        return Problem(
            self.objective,
            self.constraints,
            lower,
            upper,
            equalities=self.equalities,
            branch_mask=mask,
            variable_indices=self.variable_indices,
            abs_tol=self.abs_tol,
            rel_tol=self.rel_tol,
            epigraph_index=self.n_stored,
        )

    def __repr__(self) -> str:
        return (
            f"Problem(n_vars={self.n_vars}, n_stored={self.n_stored}, "
            f"constraints={len(self.constraints)}, equalities={len(self.equalities)})"
        )
