from inspect import signature
from typing import Annotated, Callable, get_origin, get_args
from proxsolver.utils import Interval
from proxsolver.function_generators import lasso as problem_generator
from proxsolver.function_generators.lasso import LassoProblem
from proxsolver.iteration_tools import halt, loop, take, tee
import optuna
import time
import numpy as np
import click
import matplotlib.pyplot as plt
from proxsolver.algorithms import ITERATIONS, SOLVERS  # Import the mappings

# Problem-description arguments, supplied by LassoProblem.terms rather than tuned
PROBLEM_ARGUMENTS = ['initial_guess', 'f', 'A', 'fs', 'As', 'fq', 'Aq', 'g', 'Lf', 'gamma', 'H']


def generate_test_problems(n_samples: int, n_rows: int, n_cols: int, seed: int | None = None) -> list[LassoProblem]:
    # Generate lasso instances together with their reference solutions
    rng = np.random.default_rng(seed)
    problems = []
    while len(problems) < n_samples:
        problem = problem_generator.get_problem('lasso', n_rows=n_rows, n_cols=n_cols,
                                                seed=int(rng.integers(2**31)))
        x_star = problem.reference_solution()
        if problem.objective(x_star) < 1e-6:
            print("Skipping problem because its optimal value is near-zero")
            continue
        problems.append(problem)
    return problems


def multivariate_model_runner(solver: Callable, problems: list[LassoProblem], maxit: int = 500, **kwargs) -> tuple[float, float]:
    """
    Return the mean log relative objective error of ``solver`` over ``problems``,
    and the time taken to solve them all.

    Kwargs are hyperparameters of the solver, for instance Optuna trial.suggest_* values.
    """
    log_rel_errors = []
    time_start = time.time()

    for problem in problems:
        optimal_value = problem.objective(problem.reference_solution())
        result = solver(initial_guess=np.zeros(problem.n_cols), maxit=maxit, **problem.terms(solver), **kwargs)
        rel_error = abs(problem.objective(result.x) - optimal_value) / optimal_value
        if not np.isfinite(rel_error):
            log_rel_errors.append(np.inf)
        elif rel_error <= 1e-12:
            log_rel_errors.append(-12)  # Avoid log-zero issues when very small numbers
        else:
            log_rel_errors.append(np.log10(rel_error))

    time_elapsed = time.time() - time_start
    print(f"Trial with params {kwargs} took {time_elapsed:.2f}s, mean log rel errors: {np.mean(log_rel_errors):.3f}")

    return float(np.mean(log_rel_errors)), time_elapsed


def univariate_model_runner(**kwargs):
    log_rel_error, time_elapsed = multivariate_model_runner(**kwargs)
    total_loss = log_rel_error + time_elapsed
    return total_loss


def make_optuna_objective(solver_to_test: Callable, problems: list[LassoProblem]) -> Callable:
    sig = signature(solver_to_test)

    # The term "trial" is magic used by Optuna
    def optuna_loss(trial):
        kwargs = {'solver': solver_to_test, 'problems': problems}
        for name, param in sig.parameters.items():
            if name in PROBLEM_ARGUMENTS:
                continue
            anno = param.annotation
            if get_origin(anno) is not Annotated:
                continue
            base_type, meta = get_args(anno)
            if not isinstance(meta, Interval):
                raise ValueError(f"Unsupported metadata for {name}: {meta}")
            if base_type is int:
                step = None if meta.log else (meta.step if meta.step is not None else 1)
                kwargs[name] = trial.suggest_int(name, meta.low, meta.high, step=step, log=meta.log)
            else:
                if meta.log:
                    step = None
                else:
                    step = meta.step if meta.step is not None else (meta.high - meta.low) / 100
                kwargs[name] = trial.suggest_float(name, meta.low, meta.high, step=step, log=meta.log)

        return univariate_model_runner(**kwargs)

    return optuna_loss


def tune_solver(solver_to_test: Callable, problems: list[LassoProblem], n_trials: int = 50):
    """
    Tune the annotated hyperparameters of a solver using Optuna.

    :param solver_to_test: The solver function to tune.
    :param problems: Problems the loss is averaged over.
    :param n_trials: Number of trials for tuning.
    :return: The best parameters found by Optuna.
    """
    objective = make_optuna_objective(solver_to_test, problems=problems)
    study = optuna.create_study(direction="minimize")
    study.optimize(objective, n_trials=n_trials)
    return study.best_params


def trace_solver(solver_name: str, problem: LassoProblem, tol: float = 1e-8, maxit: int = 1000) -> list[float]:
    """Residual measure of every state of one run of ``solver_name`` on ``problem``."""
    iteration_class = ITERATIONS[solver_name]
    iteration = iteration_class(np.zeros(problem.n_cols), **problem.terms(iteration_class))
    residuals = []

    def record(state):
        residuals.append(iteration.residual_norm(state))

    def stop(state):
        return iteration.residual_norm(state) <= tol

    loop(take(halt(tee(iteration, record), stop), maxit + 1))
    return residuals


def create_trace_plot(traces: dict[str, list[float]], save_path: str | None = None):
    """Plot residual histories on a log scale."""
    plt.figure(figsize=(12, 8))
    for name, residuals in traces.items():
        plt.semilogy(residuals, label=name.replace('minimize_', ''))
    plt.xlabel('Iteration')
    plt.ylabel('Fixed-point residual')
    plt.title('Convergence of the fixed-point residual')
    plt.grid(True, alpha=0.3)
    plt.legend()
    plt.tight_layout()
    if save_path is not None:
        plt.savefig(save_path, dpi=300, bbox_inches='tight')
        print(f"Plot saved as '{save_path}'")
    plt.show()


def benchmark_all_solvers(n_tune_problems: int = 2, n_test_problems: int = 2,
                          n_tuning_trials: int = 10, n_rows: int = 50, n_cols: int = 100,
                          save_path: str | None = None, solver_names: list[str] | None = None,
                          seed: int | None = None):
    """
    Benchmark solvers and create a scatter plot.

    Args:
        n_tune_problems: Number of problems to use for tuning
        n_test_problems: Number of problems to use for testing
        n_tuning_trials: Number of trials for hyperparameter tuning
        n_rows, n_cols: Shape of the lasso matrices
        save_path: Path to save the plot
        solver_names: List of solver names to test. If None, test all solvers.
        seed: Seed of the problem generator
    """
    rng = np.random.default_rng(seed)
    tune_problems = generate_test_problems(n_tune_problems, n_rows, n_cols, seed=int(rng.integers(2**31)))
    test_problems = generate_test_problems(n_test_problems, n_rows, n_cols, seed=int(rng.integers(2**31)))

    if solver_names is None:
        solver_names = list(SOLVERS.keys())
    else:
        valid_names = []
        for name in solver_names:
            if name in SOLVERS:
                valid_names.append(name)
            else:
                print(f"Warning: Solver '{name}' not found, skipping...")
        solver_names = valid_names

    print(f"Benchmarking {len(solver_names)} solvers...")
    print(f"Tune problems: {n_tune_problems}, Test problems: {n_test_problems}")
    print(f"Tuning trials: {n_tuning_trials}, Size: {n_rows}x{n_cols}")
    print("-" * 60)

    results = []

    for i, name in enumerate(solver_names):
        print(f"[{i+1}/{len(solver_names)}] Testing {name}...")
        solver = SOLVERS[name]

        try:
            best_params = tune_solver(solver, problems=tune_problems, n_trials=n_tuning_trials)

            log_rel_error, time_elapsed = multivariate_model_runner(
                solver=solver,
                problems=test_problems,
                **best_params
            )

            results.append({
                'name': name,
                'log_rel_error': log_rel_error,
                'time_elapsed': time_elapsed,
                'best_params': best_params
            })

            print(f"  ✓ {name}: log_rel_error={log_rel_error:.3f}, time={time_elapsed:.2f}s")

        except (ArithmeticError, ValueError) as e:
            print(f"  ✗ {name}: Failed - {str(e)}")
            continue

    if results:
        create_benchmark_plot(results, save_path=save_path)

        print("BENCHMARK SUMMARY")
        for result in sorted(results, key=lambda x: x['log_rel_error']):
            print(f"{result['name']:32} | log_rel_error: {result['log_rel_error']:8.3f} | time: {result['time_elapsed']:6.2f}s")

    return results


def pareto_frontier(times: list[float], errors: list[float]) -> list[tuple[float, float]]:
    pareto_points = []
    for i, (time_i, error_i) in enumerate(zip(times, errors)):
        is_pareto = True
        for j, (other_time, other_error) in enumerate(zip(times, errors)):
            if i != j and other_time <= time_i and other_error <= error_i:
                is_pareto = False
                break
        if is_pareto:
            pareto_points.append((time_i, error_i))
    return sorted(pareto_points)


def create_benchmark_plot(results, save_path: str | None = None):
    """Create a scatter plot of solver performance."""
    names = [r['name'] for r in results]
    log_errors = [r['log_rel_error'] for r in results]
    times = [r['time_elapsed'] for r in results]

    plt.figure(figsize=(12, 8))
    plt.scatter(times, log_errors, s=100, alpha=0.7)

    for i, name in enumerate(names):
        plt.annotate(name.replace('minimize_', ''),
                     (times[i], log_errors[i]),
                     xytext=(5, 5), textcoords='offset points',
                     fontsize=9, alpha=0.8)

    plt.xlabel('Time Elapsed (seconds)')
    plt.ylabel('Log Relative Objective Error')
    plt.title('Solver Performance Comparison\n(Lower and Left is Better)')
    plt.grid(True, alpha=0.3)

    pareto_points = pareto_frontier(times, log_errors)
    if pareto_points:
        pareto_times, pareto_errors = zip(*pareto_points)
        plt.plot(pareto_times, pareto_errors, 'r--', alpha=0.7, label='Pareto Frontier')
        plt.legend()

    plt.tight_layout()
    if save_path is not None:
        plt.savefig(save_path, dpi=300, bbox_inches='tight')
        print(f"Plot saved as '{save_path}'")
    plt.show()


@click.group()
def cli():
    pass


@cli.command()
def list_solvers():
    """List all available solvers."""
    click.echo("Available solvers:")
    click.echo("-" * 40)
    for i, name in enumerate(sorted(SOLVERS.keys()), 1):
        algo_name = name.replace('minimize_', '').replace('_', ' ').title()
        click.echo(f"{i:2d}. {name:32} ({algo_name})")
    click.echo(f"\nTotal: {len(SOLVERS)} solvers")


@cli.command()
@click.option('--solver', type=click.Choice(list(SOLVERS.keys())),
              default='minimize_panoc', help='Which solver to run')
@click.option('--n-rows', default=50, help='Rows of the lasso matrix')
@click.option('--n-cols', default=100, help='Columns of the lasso matrix')
@click.option('--maxit', default=1000, help='Maximum number of iterations')
@click.option('--tol', default=1e-8, help='Tolerance on the fixed-point residual')
@click.option('--freq', default=10, help='Print every freq iterations')
@click.option('--seed', default=None, type=int, help='Random seed for reproducibility')
def solve(solver, n_rows, n_cols, maxit, tol, freq, seed):
    """Solve a random lasso problem, printing the iterations."""
    problem = problem_generator.get_problem('lasso', n_rows=n_rows, n_cols=n_cols, seed=seed)
    solver_func = SOLVERS[solver]
    result = solver_func(initial_guess=np.zeros(n_cols), maxit=maxit, tol=tol, verbose=True, freq=freq,
                         **problem.terms(solver_func))
    x_star = problem.reference_solution()
    click.echo(f"{solver}: {result.iterations} iterations, converged={result.converged}")
    click.echo(f"  objective: {problem.objective(result.x):.6e} (reference {problem.objective(x_star):.6e})")
    click.echo(f"  distance to reference: {np.linalg.norm(result.x - x_star, np.inf):.3e}")


@cli.command()
@click.option('--solvers', multiple=True, type=click.Choice(list(SOLVERS.keys())),
              help='Solvers to trace (can specify multiple times). If not specified, trace all solvers.')
@click.option('--n-rows', default=50, help='Rows of the lasso matrix')
@click.option('--n-cols', default=100, help='Columns of the lasso matrix')
@click.option('--maxit', default=1000, help='Maximum number of iterations')
@click.option('--seed', default=None, type=int, help='Random seed for reproducibility')
@click.option('--save-path', default=None, help='Path to save the plot')
def trace(solvers, n_rows, n_cols, maxit, seed, save_path):
    """Plot the residual history of solvers on one random lasso problem."""
    problem = problem_generator.get_problem('lasso', n_rows=n_rows, n_cols=n_cols, seed=seed)
    traces = {}
    for name in (solvers or SOLVERS.keys()):
        traces[name] = trace_solver(name, problem, maxit=maxit)
        click.echo(f"{name:32} | {len(traces[name]) - 1:6d} iterations | residual {traces[name][-1]:.3e}")
    create_trace_plot(traces, save_path=save_path)


@cli.command()
@click.option('--n-trials', default=50, help='Number of trials for hyperparameter tuning')
@click.option('--solver', type=click.Choice(list(SOLVERS.keys())),
              default='minimize_panoc', help='Which solver to tune')
@click.option('--n-rows', default=50, help='Rows of the lasso matrices')
@click.option('--n-cols', default=100, help='Columns of the lasso matrices')
@click.option('--seed', default=None, type=int, help='Random seed for reproducibility')
def tune(n_trials, solver, n_rows, n_cols, seed):
    """Tune hyperparameters for a specific solver, then evaluate them on fresh problems."""
    rng = np.random.default_rng(seed)
    tune_problems = generate_test_problems(2, n_rows, n_cols, seed=int(rng.integers(2**31)))
    test_problems = generate_test_problems(2, n_rows, n_cols, seed=int(rng.integers(2**31)))
    solver_func = SOLVERS[solver]
    best_params = tune_solver(solver_func, problems=tune_problems, n_trials=n_trials)

    click.echo(f"Best parameters found for {solver}:")
    for param, value in best_params.items():
        click.echo(f"  {param}: {value}")

    log_rel_error, time_elapsed = multivariate_model_runner(solver=solver_func, problems=test_problems, **best_params)
    click.echo(f"Test results: time elapsed = {time_elapsed:.2f}s, mean log rel errors = {log_rel_error:.3f}")


@cli.command()
@click.option('--n-tune-problems', default=3, help='Number of problems to use for tuning')
@click.option('--n-test-problems', default=3, help='Number of problems to use for testing')
@click.option('--n-tuning-trials', default=20, help='Number of trials for hyperparameter tuning')
@click.option('--save-path', default=None, help='Path to save the plot')
@click.option('--n-rows', default=50, help='Rows of the lasso matrices')
@click.option('--n-cols', default=100, help='Columns of the lasso matrices')
@click.option('--seed', default=None, type=int, help='Random seed for reproducibility')
@click.option('--solvers', multiple=True, type=click.Choice(list(SOLVERS.keys())),
              help='Specific solvers to test (can specify multiple times). If not specified, test all solvers.')
def benchmark(n_tune_problems, n_test_problems, n_tuning_trials, save_path, n_rows, n_cols, seed, solvers):
    """Benchmark solvers and create a scatter plot."""
    solver_list = list(solvers) if solvers else None

    benchmark_all_solvers(n_tune_problems=n_tune_problems,
                          n_test_problems=n_test_problems,
                          n_tuning_trials=n_tuning_trials,
                          n_rows=n_rows,
                          n_cols=n_cols,
                          save_path=save_path,
                          seed=seed,
                          solver_names=solver_list)


if __name__ == '__main__':
    cli()
