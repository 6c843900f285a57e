"""
Douglas-Rachford splitting for minimize f(x) + g(x), with both terms
accessed through their proximal mappings:

    y = prox_{gamma f}(x),  r = 2y - x,  z = prox_{gamma g}(r),
    x <- x - lambda (y - z).
"""
import numpy as np
from dataclasses import dataclass
from typing import Annotated

from proxsolver.oracles import as_float_array, or_zero, prox_into
from proxsolver.solver import Iteration, SolverResult, solve
from proxsolver.utils import Interval


@dataclass
class DouglasRachfordState:
    x: np.ndarray
    y: np.ndarray
    r: np.ndarray
    z: np.ndarray
    res: np.ndarray
    gamma: float
    f_y: float = 0.0
    g_z: float = 0.0


def check_relaxation(lambda_: float):
    if not 0 < lambda_ < 2:
        raise ValueError(f"Relaxation lambda must lie in (0, 2), got {lambda_}")


class DouglasRachfordIteration(Iteration):
    """
    The first yielded state already holds the once-updated x, so that the
    x sequence of this iteration is the sequence of Douglas-Rachford points.
    """

    def __init__(self, x0, f=None, g=None, gamma: float = None, lambda_: float = 1.0):
        if gamma is None:
            raise ValueError("Douglas-Rachford needs a stepsize gamma")
        if not gamma > 0:
            raise ValueError(f"Stepsize gamma must be positive, got {gamma}")
        check_relaxation(lambda_)
        self.x0 = as_float_array(x0)
        self.f = or_zero(f)
        self.g = or_zero(g)
        self.gamma = float(gamma)
        self.lambda_ = lambda_

    def initial_state(self) -> DouglasRachfordState:
        x = np.copy(self.x0)
        state = DouglasRachfordState(
            x=x, y=np.empty_like(x), r=np.empty_like(x), z=np.empty_like(x),
            res=np.empty_like(x), gamma=self.gamma
        )
        self.step(state)
        return state

    def step(self, state: DouglasRachfordState) -> None:
        state.f_y = prox_into(state.y, self.f, state.x, state.gamma)
        np.multiply(state.y, 2, out=state.r)
        state.r -= state.x
        state.g_z = prox_into(state.z, self.g, state.r, state.gamma)
        np.subtract(state.y, state.z, out=state.res)
        state.x -= self.lambda_ * state.res

    def solution(self, state: DouglasRachfordState) -> np.ndarray:
        return state.y


def minimize(
    initial_guess: np.ndarray,
    f=None,
    g=None,
    gamma: float = None,
    lambda_: Annotated[float, Interval(low=0.5, high=1.9)] = 1.0,
    maxit: int = 1000,
    tol: float = 1e-8,
    verbose: bool = False,
    freq: int = 100
) -> SolverResult:
    """
    Douglas-Rachford splitting.

    Parameters
    ----------
    initial_guess : np.ndarray
        Starting point.
    f, g : optional
        Proximable terms.
    gamma : float
        Stepsize (required).
    lambda_ : float in (0, 2)
        Relaxation parameter.
    maxit : int
        Maximum number of iterations.
    tol : float
        Tolerance on ||prox_f(x) - prox_g(2 prox_f(x) - x)||_inf / gamma.
    verbose : bool
        Print diagnostics every ``freq`` iterations.
    freq : int
        Display period.

    Returns
    -------
    SolverResult
        ``x`` is prox_{gamma f} of the last iterate.
    """
    iteration = DouglasRachfordIteration(initial_guess, f=f, g=g, gamma=gamma, lambda_=lambda_)
    return solve(iteration, tol=tol, maxit=maxit, verbose=verbose, freq=freq)
