import matplotlib
matplotlib.use("Agg")

import numpy as np
from click.testing import CliRunner
from proxsolver.evaluator import cli, make_optuna_objective, multivariate_model_runner, pareto_frontier, trace_solver
from proxsolver.algorithms import SOLVERS
from proxsolver.function_generators.lasso import generate_lasso_problem


def test_list_solvers():
    result = CliRunner().invoke(cli, ['list-solvers'])
    assert result.exit_code == 0
    assert f"Total: {len(SOLVERS)} solvers" in result.output


def test_solve_command():
    result = CliRunner().invoke(cli, ['solve', '--solver', 'minimize_panoc', '--n-rows', '10',
                                      '--n-cols', '20', '--seed', '1', '--freq', '5'])
    assert result.exit_code == 0, result.output
    assert "minimize_panoc:" in result.output


def test_trace_solver_records_every_state():
    problem = generate_lasso_problem(n_rows=10, n_cols=20, seed=2)
    residuals = trace_solver('minimize_forward_backward', problem, maxit=30)
    assert 1 <= len(residuals) <= 31
    assert all(r >= 0 for r in residuals)


def test_model_runner_and_objective():
    problems = [generate_lasso_problem(n_rows=10, n_cols=20, seed=4)]
    log_rel_error, time_elapsed = multivariate_model_runner(SOLVERS['minimize_zerofpr'], problems, maxit=200)
    assert np.isfinite(log_rel_error)
    assert time_elapsed >= 0

    import optuna
    study = optuna.create_study(direction="minimize")
    study.optimize(make_optuna_objective(SOLVERS['minimize_panoc'], problems), n_trials=2)
    assert set(study.best_params) == {'alpha', 'sigma', 'memory'}


def test_pareto_frontier():
    points = pareto_frontier([1.0, 2.0, 3.0], [-3.0, -4.0, -2.0])
    assert points == [(1.0, -3.0), (2.0, -4.0)]
