"""
Interval Arithmetic Helpers

Closed intervals are plain ``(lo, hi)`` float tuples. The operations below are
the natural (outward) interval extensions used by the quadratic interval
evaluation and by feasibility-based bound tightening.
"""

from __future__ import annotations

import math
from typing import List, Tuple

Interval = Tuple[float, float]

EMPTY: Interval = (math.inf, -math.inf)


def is_empty(a: Interval) -> bool:
    return a[0] > a[1]


def add(a: Interval, b: Interval) -> Interval:
    return (a[0] + b[0], a[1] + b[1])


def scale(a: Interval, k: float) -> Interval:
    if k >= 0:
        return (k * a[0], k * a[1])
    return (k * a[1], k * a[0])


def mul(a: Interval, b: Interval) -> Interval:
    products = [a[0] * b[0], a[0] * b[1], a[1] * b[0], a[1] * b[1]]
    return (min(products), max(products))


def square(a: Interval) -> Interval:
    lo, hi = a
    if lo >= 0:
        return (lo * lo, hi * hi)
    if hi <= 0:
        return (hi * hi, lo * lo)
    return (0.0, max(lo * lo, hi * hi))


def hull(pieces: List[Interval]) -> Interval:
    pieces = [p for p in pieces if not is_empty(p)]
    if not pieces:
        return EMPTY
    return (min(p[0] for p in pieces), max(p[1] for p in pieces))


def intersect(a: Interval, b: Interval) -> Interval:
    return (max(a[0], b[0]), min(a[1], b[1]))


def solve_quadratic_le(a: float, b: float, r: float, domain: Interval) -> Interval:
    """
    Hull of ``{x in domain : a*x**2 + b*x + r <= 0}``.

    Returns ``EMPTY`` when no point of ``domain`` satisfies the inequality.
    """
    lo, hi = domain
    if lo > hi:
        return EMPTY

    if a == 0.0:
        if b == 0.0:
            return domain if r <= 0.0 else EMPTY
        root = -r / b
        if b > 0:
            return intersect(domain, (-math.inf, root))
        return intersect(domain, (root, math.inf))

    disc = b * b - 4.0 * a * r
    if a > 0:
        if disc < 0:
            return EMPTY
        sq = math.sqrt(disc)
        r1, r2 = sorted(((-b - sq) / (2.0 * a), (-b + sq) / (2.0 * a)))
        return intersect(domain, (r1, r2))

    # Concave parabola: feasible outside the roots
    if disc < 0:
        return domain
    sq = math.sqrt(disc)
    r1, r2 = sorted(((-b - sq) / (2.0 * a), (-b + sq) / (2.0 * a)))
    left = intersect(domain, (-math.inf, r1))
    right = intersect(domain, (r2, math.inf))
    return hull([left, right])
