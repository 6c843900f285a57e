import numpy as np
import pytest
from proxsolver.algorithms import SOLVERS
from proxsolver.function_generators.lasso import small_lasso_problem
from proxsolver.function_generators.prox_terms import LeastSquares, NormL1, SqrNormL2, Translate
from proxsolver.solver import resume

PROBLEM = small_lasso_problem()
A, b, LAM = PROBLEM.A, PROBLEM.b, PROBLEM.lam
X_STAR = PROBLEM.x_star
L = PROBLEM.Lf

COMPOSITE = dict(f=Translate(SqrNormL2(), -b), A=A, g=NormL1(LAM))

CASES = [
    ('minimize_forward_backward', dict(COMPOSITE, gamma=1 / L)),
    ('minimize_forward_backward', dict(COMPOSITE, adaptive=True)),
    ('minimize_forward_backward', dict(fq=Translate(SqrNormL2(), -b), Aq=A, g=NormL1(LAM), gamma=1 / L)),
    ('minimize_fast_forward_backward', dict(COMPOSITE, gamma=1 / L)),
    ('minimize_fast_forward_backward', dict(COMPOSITE, adaptive=True)),
    ('minimize_panoc', dict(COMPOSITE, gamma=1 / L)),
    ('minimize_panoc', dict(COMPOSITE, adaptive=True)),
    ('minimize_panoc', dict(fq=Translate(SqrNormL2(), -b), Aq=A, g=NormL1(LAM))),
    ('minimize_zerofpr', dict(COMPOSITE, gamma=1 / L)),
    ('minimize_zerofpr', dict(COMPOSITE, adaptive=True)),
    ('minimize_zerofpr', dict(fs=Translate(SqrNormL2(), -b), As=A, g=NormL1(LAM))),
    ('minimize_douglas_rachford', dict(f=LeastSquares(A, b), g=NormL1(LAM), gamma=10 / L, maxit=10_000)),
    ('minimize_drls', dict(f=LeastSquares(A, b), g=NormL1(LAM), Lf=L, maxit=10_000)),
    ('minimize_lilin', dict(COMPOSITE, Lf=L)),
    ('minimize_lilin', dict(COMPOSITE, adaptive=True)),
]


@pytest.mark.parametrize("name, kwargs", CASES)
def test_reaches_known_solution(name, kwargs):
    result = SOLVERS[name](np.zeros(5), **kwargs)
    assert result.converged
    assert result.residual <= 1e-8
    assert np.linalg.norm(result.x - X_STAR, np.inf) <= 1e-4


@pytest.mark.parametrize("name, kwargs", CASES)
def test_resume_at_solution_takes_no_steps(name, kwargs):
    result = SOLVERS[name](np.zeros(5), **kwargs)
    again = resume(result)
    assert again.iterations == 0
    assert again.converged
    assert np.array_equal(again.x, result.x)


def test_resume_continues_unfinished_run():
    first = SOLVERS['minimize_forward_backward'](np.zeros(5), gamma=1 / L, maxit=5, **COMPOSITE)
    assert not first.converged
    assert first.iterations == 5
    second = resume(first, maxit=10_000)
    assert second.converged
    assert np.linalg.norm(second.x - X_STAR, np.inf) <= 1e-4


def test_stops_at_first_converged_step():
    result = SOLVERS['minimize_forward_backward'](np.zeros(5), gamma=1 / L, **COMPOSITE)
    assert result.converged
    assert result.iterations > 0
    shorter = SOLVERS['minimize_forward_backward'](np.zeros(5), gamma=1 / L, maxit=result.iterations - 1, **COMPOSITE)
    assert not shorter.converged
    assert shorter.iterations == result.iterations - 1


def test_max_iterations_reached():
    result = SOLVERS['minimize_panoc'](np.zeros(5), gamma=1 / L, maxit=3, tol=0.0, **COMPOSITE)
    assert not result.converged
    assert result.iterations == 3


def test_zero_max_iterations_returns_initial_point():
    result = SOLVERS['minimize_forward_backward'](np.zeros(5), gamma=1 / L, maxit=0, **COMPOSITE)
    assert result.iterations == 0
    assert not result.converged


def test_negative_max_iterations_rejected():
    with pytest.raises(ValueError, match="maxit"):
        SOLVERS['minimize_forward_backward'](np.zeros(5), gamma=1 / L, maxit=-1, **COMPOSITE)


def test_integer_initial_point_is_promoted():
    result = SOLVERS['minimize_forward_backward'](np.zeros(5, dtype=int), gamma=1 / L, **COMPOSITE)
    assert result.x.dtype == np.float64
    assert np.linalg.norm(result.x - X_STAR, np.inf) <= 1e-4


def test_verbose_prints_sampled_rows(capsys):
    SOLVERS['minimize_forward_backward'](np.zeros(5), gamma=1 / L, maxit=12, tol=0.0,
                                         verbose=True, freq=5, **COMPOSITE)
    rows = capsys.readouterr().out.strip().splitlines()
    assert [int(row.split('|')[0]) for row in rows] == [0, 5, 10, 12]


def test_float32_run_stays_float32():
    problem = small_lasso_problem(np.float32)
    result = SOLVERS['minimize_panoc'](np.zeros(5, dtype=np.float32), tol=1e-4,
                                       **problem.terms(SOLVERS['minimize_panoc']))
    assert result.x.dtype == np.float32
    assert np.linalg.norm(result.x - X_STAR, np.inf) <= 1e-3
