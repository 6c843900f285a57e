import numpy as np
from typing import Callable, Annotated, get_origin, get_args
from proxsolver.function_generators import lasso as problem_generator


def check_solver_annotations(solver: Callable):
    import inspect
    sig = inspect.signature(solver)

    has_annotated_param = False
    for param_name, param in sig.parameters.items():
        if param_name in ['initial_guess', 'f', 'A', 'g']:
            continue

        anno = param.annotation
        if get_origin(anno) is Annotated:
            args = get_args(anno)
            if len(args) >= 2 and isinstance(args[1], Interval):
                has_annotated_param = True
                break

    if not has_annotated_param:
        raise ValueError(f"No Annotated parameters with Interval")


def check_solver_function(solver: Callable):
    problem = problem_generator.get_problem('lasso', n_rows=20, n_cols=30, seed=0)
    n_dims = problem.n_cols
    result = solver(initial_guess=np.zeros(n_dims), maxit=200, **problem.terms(solver))
    assert result is not None, f"Returned None"
    result_x = result.x
    assert isinstance(result_x, np.ndarray), f"Didn't return numpy array"
    assert result_x.shape == (n_dims,), f"Returned wrong shape"
    assert result.iterations <= 200, f"Took more steps than allowed"

    # Check for inf values in result
    assert not np.any(np.isinf(result_x)), f"Returned inf values in x estimate"
    assert not np.any(np.isnan(result_x)), f"Returned NaN values in x estimate"

    # Check objective value at result
    result_f = problem.objective(result_x)
    assert not np.isinf(result_f), f"Produced solution with inf objective value"
    assert not np.isnan(result_f), f"Produced solution with NaN objective value"


def check_stepsize(gamma):
    if gamma is not None and not gamma > 0:
        raise ValueError(f"Stepsize gamma must be positive, got {gamma}")


def check_open_unit(name: str, value: float):
    if not 0 < value < 1:
        raise ValueError(f"{name} must lie in (0, 1), got {value}")


class Interval:
    """
    Optuna metadata class for use with parameter annotations using typing.Annotated
    Low and high are required, and must be numeric.
    Step is optional, and should be None if log=True.
    """
    def __init__(self, low: int | float, high: int | float, step: int | float | None=None, log: bool=False):
        self.low = low
        self.high = high
        self.step = step
        self.log = log
