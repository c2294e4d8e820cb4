import numpy as np
import pytest

from alphabb import Problem, QuadraticFunction


# g2 is active at the optimum with x1 = 1: x2**2 + 4*x2 - 1 = 0
QCQP_X2 = -2.0 - np.sqrt(5.0)
QCQP_X = np.array([1.0, QCQP_X2])
QCQP_OPTIMUM = 0.5 * (3.0 + 3.0 * QCQP_X2 - 5.0 * QCQP_X2**2) + 3.0 + 2.0 * QCQP_X2


def make_qcqp(**kwargs) -> Problem:
    """Two-variable nonconvex QCQP with optimum ~ -55.19 at ~ (1.0, -4.24)."""
    objective = QuadraticFunction([[3.0, 1.5], [1.5, -5.0]], [3.0, 2.0])
    g1 = QuadraticFunction([[-2.0, 5.0], [5.0, -2.0]], [1.0, 3.0])
    g2 = QuadraticFunction([[-6.0, 3.0], [3.0, 2.0]], [2.0, 1.0])
    return Problem(objective, [g1, g2], [-3.0, -5.0], [1.0, 2.0], **kwargs)


@pytest.fixture
def qcqp():
    return make_qcqp()


@pytest.fixture
def qcqp_solution():
    return QCQP_X.copy(), float(QCQP_OPTIMUM)


@pytest.fixture
def rng():
    return np.random.default_rng(0)
