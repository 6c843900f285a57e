import numpy as np
import pytest
from proxsolver.algorithms.quasi_newton.lbfgs import Noaccel
from proxsolver.algorithms.quasi_newton.drls import DRLSIteration
from proxsolver.algorithms.quasi_newton.panoc import PANOCIteration
from proxsolver.algorithms.splitting.douglas_rachford import DouglasRachfordIteration
from proxsolver.algorithms.splitting.forward_backward import ForwardBackwardIteration
from proxsolver.function_generators.lasso import small_lasso_problem
from proxsolver.function_generators.prox_terms import LeastSquares, NormL1
from proxsolver.iteration_tools import take


def isapprox(a, b):
    rtol = np.sqrt(np.finfo(a.dtype).eps)
    return np.linalg.norm(a - b) <= rtol * max(np.linalg.norm(a), np.linalg.norm(b))


@pytest.mark.parametrize("dtype", [np.float32, np.float64])
def test_douglas_rachford_drls_equivalence(dtype):
    problem = small_lasso_problem(dtype)
    f = LeastSquares(problem.A, problem.b)
    g = NormL1(problem.lam)
    x0 = np.zeros(problem.n_cols, dtype=dtype)
    gamma = 10 / problem.Lf

    dr_iter = DouglasRachfordIteration(x0, f=f, g=g, gamma=gamma)
    drls_iter = DRLSIteration(x0, f=f, g=g, gamma=gamma, lambda_=1.0, c=-np.inf,
                              max_backtracks=1, H=Noaccel())

    steps = 0
    for dr_state, drls_state in take(zip(dr_iter, drls_iter), 10):
        assert dr_state.x.dtype == dtype
        assert drls_state.xbar.dtype == dtype
        assert isapprox(dr_state.x, drls_state.xbar)
        steps += 1
    assert steps == 10


@pytest.mark.parametrize("dtype", [np.float32, np.float64])
def test_forward_backward_panoc_equivalence(dtype):
    problem = small_lasso_problem(dtype)
    f = LeastSquares(problem.A, problem.b)
    g = NormL1(problem.lam)
    x0 = np.zeros(problem.n_cols, dtype=dtype)
    gamma = 0.95 / problem.Lf

    fb_iter = ForwardBackwardIteration(x0, f=f, g=g, gamma=gamma)
    panoc_iter = PANOCIteration(x0, f=f, g=g, gamma=gamma, max_backtracks=1, H=Noaccel())

    steps = 0
    for fb_state, panoc_state in take(zip(fb_iter, panoc_iter), 10):
        assert fb_state.z.dtype == dtype
        assert panoc_state.z.dtype == dtype
        assert isapprox(fb_state.z, panoc_state.z)
        steps += 1
    assert steps == 10


@pytest.mark.parametrize("dtype", [np.float32, np.float64])
def test_forward_backward_panoc_norms_after_ten_steps(dtype):
    problem = small_lasso_problem(dtype)
    terms = problem.terms(ForwardBackwardIteration)
    x0 = np.zeros(problem.n_cols, dtype=dtype)
    gamma = 0.95 / problem.Lf

    fb_iter = ForwardBackwardIteration(x0, gamma=gamma, **terms)
    panoc_iter = PANOCIteration(x0, gamma=gamma, max_backtracks=1, H=Noaccel(), **terms)

    for fb_state, panoc_state in take(zip(fb_iter, panoc_iter), 11):
        pass
    assert abs(np.linalg.norm(fb_state.x) - np.linalg.norm(panoc_state.x)) <= 1e-5
    assert abs(np.linalg.norm(fb_state.z) - np.linalg.norm(panoc_state.z)) <= 1e-5


def test_iteration_restarts_from_scratch():
    problem = small_lasso_problem()
    iteration = ForwardBackwardIteration(np.zeros(problem.n_cols), gamma=0.95 / problem.Lf,
                                         **problem.terms(ForwardBackwardIteration))
    first = [np.copy(state.z) for state in take(iteration, 5)]
    second = [np.copy(state.z) for state in take(iteration, 5)]
    for a, b in zip(first, second):
        assert np.array_equal(a, b)
