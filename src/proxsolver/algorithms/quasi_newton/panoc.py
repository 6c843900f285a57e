"""
PANOC: proximal averaged Newton-type method for optimal control, for

    minimize fs(As x) + fq(Aq x) + f(Ax) + g(x).

Every step computes a quasi-Newton direction d = H(-res) on the fixed-point
residual and searches along the segment between the plain forward-backward
point (tau = 0) and x + d (tau = 1) for a sufficient decrease of the
forward-backward envelope (FBE). With ``H = Noaccel()`` and ``max_backtracks=1``
the z sequence is the forward-backward one.

Stella, Themelis, Sopasakis, Patrinos, "A simple and efficient algorithm for
nonlinear model predictive control", 56th IEEE Conference on Decision and
Control (2017).
"""
import numpy as np
from dataclasses import dataclass
from typing import Annotated, Optional

from proxsolver.algorithms.quasi_newton.lbfgs import LBFGS
from proxsolver.algorithms.splitting.forward_backward import ForwardBackwardIteration, ForwardBackwardState
from proxsolver.oracles import real_dot
from proxsolver.solver import SolverResult, solve
from proxsolver.stepsize import quadratic_upper_bound
from proxsolver.utils import Interval, check_open_unit


@dataclass
class PANOCState(ForwardBackwardState):
    H: object = None
    tau: float = 1.0
    FBE: float = 0.0
    x_prev: Optional[np.ndarray] = None
    res_prev: Optional[np.ndarray] = None
    z_prev: Optional[np.ndarray] = None
    d: Optional[np.ndarray] = None
    x_d: Optional[np.ndarray] = None
    linesearch_exhausted: bool = False


def fbe_tolerance(FBE: float, dtype) -> float:
    return 10 * np.finfo(dtype).eps * (1 + abs(FBE))


def check_direction_settings(memory: int, max_backtracks: int, sigma: float):
    if memory < 1:
        raise ValueError(f"L-BFGS memory must be at least 1, got {memory}")
    if max_backtracks < 1:
        raise ValueError(f"max_backtracks must be at least 1, got {max_backtracks}")
    check_open_unit("sigma", sigma)


class PANOCIteration(ForwardBackwardIteration):
    """
    Same problem arguments as ``ForwardBackwardIteration``, plus

    sigma : float in (0, 1)
        Sufficient decrease parameter of the line search.
    memory : int
        L-BFGS history size, used when ``H`` is not given.
    max_backtracks : int
        Halvings of tau before falling back to tau = 0.
    H : optional
        Direction engine (``LBFGS``, ``Noaccel``); each run starts from an
        empty copy of it.
    """

    def __init__(
        self,
        x0,
        f=None,
        A=None,
        fs=None,
        As=None,
        fq=None,
        Aq=None,
        g=None,
        gamma: Optional[float] = None,
        adaptive: bool = False,
        alpha: float = 0.95,
        sigma: float = 0.5,
        memory: int = 5,
        max_backtracks: int = 10,
        H=None
    ):
        super().__init__(x0, f=f, A=A, fs=fs, As=As, fq=fq, Aq=Aq, g=g,
                         gamma=gamma, adaptive=adaptive, alpha=alpha)
        check_direction_settings(memory, max_backtracks, sigma)
        self.sigma = sigma
        self.max_backtracks = max_backtracks
        self.H = LBFGS(memory) if H is None else H

    def initial_state(self) -> PANOCState:
        state = super().initial_state()
        x = state.x
        state = PANOCState(
            **vars(state), H=self.H.empty_copy(),
            x_prev=np.empty_like(x), res_prev=np.empty_like(x), z_prev=np.empty_like(x),
            d=np.empty_like(x), x_d=np.empty_like(x)
        )
        state.FBE = quadratic_upper_bound(state.f_Ax, state.At_grad_f_Ax, state.res, state.gamma) + state.g_z
        return state

    def step(self, state: PANOCState) -> None:
        if state.adaptive:
            gamma = state.gamma
            self.backtrack(state)
            if state.gamma != gamma:
                state.H.reset()

        FBE_x = quadratic_upper_bound(state.f_Ax, state.At_grad_f_Ax, state.res, state.gamma) + state.g_z

        state.H.apply(-state.res, out=state.d)
        np.copyto(state.x_prev, state.x)
        np.copyto(state.res_prev, state.res)
        np.copyto(state.z_prev, state.z)
        np.add(state.x_prev, state.d, out=state.x_d)

        C = self.sigma * state.gamma * (1 - self.alpha)
        threshold = FBE_x - C / 2 * real_dot(state.res_prev, state.res_prev)
        threshold += fbe_tolerance(FBE_x, state.x.real.dtype)

        state.tau = 1.0
        state.linesearch_exhausted = False
        backtracks = 0
        while True:
            if state.tau == 0:
                np.copyto(state.x, state.z_prev)
            else:
                np.multiply(state.x_d, state.tau, out=state.x)
                state.x += (1 - state.tau) * state.z_prev
            self.evaluate_smooth(state)
            self.forward_backward(state)
            state.FBE = quadratic_upper_bound(state.f_Ax, state.At_grad_f_Ax, state.res, state.gamma) + state.g_z
            if state.tau == 0 or state.FBE <= threshold:
                break
            backtracks += 1
            if backtracks >= self.max_backtracks:
                state.tau = 0.0
                state.linesearch_exhausted = True
            else:
                state.tau /= 2

        state.H.update(state.x, state.x_prev, state.res, state.res_prev)

    def display(self, index: int, state: PANOCState) -> None:
        print(f"{index:6d} | {state.gamma:.3e} | {self.residual_norm(state):.3e} | {state.tau:.3e} | {state.FBE:.3e}")


def minimize(
    initial_guess: np.ndarray,
    f=None,
    A=None,
    fs=None,
    As=None,
    fq=None,
    Aq=None,
    g=None,
    gamma: Optional[float] = None,
    adaptive: bool = False,
    alpha: Annotated[float, Interval(low=0.5, high=0.99)] = 0.95,
    sigma: Annotated[float, Interval(low=0.05, high=0.95)] = 0.5,
    memory: Annotated[int, Interval(low=1, high=20)] = 5,
    max_backtracks: int = 10,
    H=None,
    maxit: int = 1000,
    tol: float = 1e-8,
    verbose: bool = False,
    freq: int = 10
) -> SolverResult:
    """
    PANOC with L-BFGS directions.

    Parameters
    ----------
    initial_guess : np.ndarray
        Starting point.
    f, A, fs, As, fq, Aq : optional
        Smooth terms and the linear maps they are composed with.
    g : optional
        Proximable term.
    gamma : float, optional
        Stepsize; estimated (and the run made adaptive) if omitted.
    adaptive : bool
        Backtrack the stepsize at every step.
    alpha : float
        Safety factor on the stepsize, also enters the line search constant.
    sigma : float
        Sufficient decrease parameter.
    memory : int
        L-BFGS history size.
    max_backtracks : int
        Line search budget before the plain forward-backward fallback.
    H : optional
        Direction engine overriding ``memory``.
    maxit : int
        Maximum number of iterations.
    tol : float
        Tolerance on ||x - z||_inf / gamma.
    verbose : bool
        Print diagnostics every ``freq`` iterations.
    freq : int
        Display period.

    Returns
    -------
    SolverResult
        ``x`` is the last forward-backward point.
    """
    iteration = PANOCIteration(
        initial_guess, f=f, A=A, fs=fs, As=As, fq=fq, Aq=Aq, g=g,
        gamma=gamma, adaptive=adaptive, alpha=alpha, sigma=sigma,
        memory=memory, max_backtracks=max_backtracks, H=H
    )
    return solve(iteration, tol=tol, maxit=maxit, verbose=verbose, freq=freq)
