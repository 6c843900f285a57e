"""
Douglas-Rachford line-search (DRLS) for minimize f(x) + g(x).

Quasi-Newton directions are computed on the Douglas-Rachford fixed-point
residual x - xbar, and a line search on the Douglas-Rachford envelope

    DRE(x) = f(u) + g(v) - <x - u, u - v> / gamma + ||u - v||^2 / (2 gamma),
    u = prox_{gamma f}(x),  v = prox_{gamma g}(2u - x),

decides how far to follow them. The final fallback trial tau = 0 is the plain
(relaxed) Douglas-Rachford step, so with ``H = Noaccel()``, ``lambda_ = 1``,
``c = -inf`` and ``max_backtracks = 1`` the xbar sequence is the x sequence of
Douglas-Rachford splitting.

Themelis, Stella, Patrinos, "Douglas-Rachford splitting and ADMM for nonconvex
optimization: Accelerated and Newton-type linesearch algorithms",
arXiv:2005.10230 (2020).
"""
import numpy as np
from dataclasses import dataclass
from typing import Annotated, Optional

from proxsolver.algorithms.quasi_newton.lbfgs import LBFGS
from proxsolver.algorithms.splitting.douglas_rachford import check_relaxation
from proxsolver.oracles import as_float_array, or_zero, prox_into, real_dot
from proxsolver.solver import Iteration, SolverResult, solve
from proxsolver.utils import Interval, check_open_unit


def default_stepsize(Lf: float, alpha: float, lambda_: float) -> float:
    return alpha * (2 - lambda_) / (2 * Lf)


def default_decrease(Lf: float, gamma: float, lambda_: float, beta: float) -> float:
    gamma_Lf = gamma * Lf
    c = beta * lambda_ * (2 - lambda_ - 2 * gamma_Lf) / (2 * (1 + gamma_Lf) ** 2)
    return max(c, 0.0)


@dataclass
class DRLSState:
    x: np.ndarray
    u: np.ndarray            # prox_{gamma f}(x)
    w: np.ndarray            # reflected point 2u - x
    v: np.ndarray            # prox_{gamma g}(w)
    res: np.ndarray          # u - v
    xbar: np.ndarray         # x - lambda res, the Douglas-Rachford point
    gamma: float
    H: object
    f_u: float = 0.0
    g_v: float = 0.0
    DRE: float = 0.0
    tau: float = 1.0
    x_prev: Optional[np.ndarray] = None
    xbar_prev: Optional[np.ndarray] = None
    res_prev: Optional[np.ndarray] = None
    d: Optional[np.ndarray] = None
    x_d: Optional[np.ndarray] = None
    linesearch_exhausted: bool = False


class DRLSIteration(Iteration):
    """
    Parameters
    ----------
    x0 : np.ndarray
        Initial point.
    f, g : optional
        Proximable terms; f is assumed smooth with gradient Lipschitz
        constant ``Lf`` when the defaults below are derived from it.
    Lf : float, optional
        Smoothness constant of f, used for the default gamma and c.
    gamma : float, optional
        Stepsize, defaults to alpha (2 - lambda_) / (2 Lf).
    lambda_ : float in (0, 2)
        Relaxation parameter.
    c : float, optional
        Sufficient decrease parameter; ``-inf`` accepts every trial. Derived
        from ``Lf`` and ``beta`` by default, or 0 without ``Lf``.
    alpha, beta : float in (0, 1)
        Safety factors for the default gamma and c.
    memory : int
        L-BFGS history size, used when ``H`` is not given.
    max_backtracks : int
        Halvings of tau before falling back to tau = 0.
    H : optional
        Direction engine; each run starts from an empty copy.
    """

    def __init__(
        self,
        x0,
        f=None,
        g=None,
        Lf: Optional[float] = None,
        gamma: Optional[float] = None,
        lambda_: float = 1.0,
        c: Optional[float] = None,
        alpha: float = 0.95,
        beta: float = 0.5,
        memory: int = 5,
        max_backtracks: int = 20,
        H=None
    ):
        check_relaxation(lambda_)
        check_open_unit("alpha", alpha)
        check_open_unit("beta", beta)
        if memory < 1:
            raise ValueError(f"L-BFGS memory must be at least 1, got {memory}")
        if max_backtracks < 1:
            raise ValueError(f"max_backtracks must be at least 1, got {max_backtracks}")
        if gamma is None:
            if Lf is None:
                raise ValueError("DRLS needs either a stepsize gamma or the smoothness constant Lf")
            gamma = default_stepsize(Lf, alpha, lambda_)
        if not gamma > 0:
            raise ValueError(f"Stepsize gamma must be positive, got {gamma}")
        if c is None:
            c = 0.0 if Lf is None else default_decrease(Lf, gamma, lambda_, beta)

        self.x0 = as_float_array(x0)
        self.f = or_zero(f)
        self.g = or_zero(g)
        self.gamma = float(gamma)
        self.lambda_ = lambda_
        self.c = c
        self.max_backtracks = max_backtracks
        self.H = LBFGS(memory) if H is None else H

    def evaluate(self, state: DRLSState) -> None:
        """Douglas-Rachford points and envelope at state.x."""
        state.f_u = prox_into(state.u, self.f, state.x, state.gamma)
        np.multiply(state.u, 2, out=state.w)
        state.w -= state.x
        state.g_v = prox_into(state.v, self.g, state.w, state.gamma)
        np.subtract(state.u, state.v, out=state.res)
        np.subtract(state.x, self.lambda_ * state.res, out=state.xbar)
        state.DRE = (
            state.f_u + state.g_v
            - real_dot(state.x - state.u, state.res) / state.gamma
            + real_dot(state.res, state.res) / (2 * state.gamma)
        )

    def initial_state(self) -> DRLSState:
        x = np.copy(self.x0)
        state = DRLSState(
            x=x, u=np.empty_like(x), w=np.empty_like(x), v=np.empty_like(x),
            res=np.empty_like(x), xbar=np.empty_like(x), gamma=self.gamma,
            H=self.H.empty_copy(),
            x_prev=np.empty_like(x), xbar_prev=np.empty_like(x), res_prev=np.empty_like(x),
            d=np.empty_like(x), x_d=np.empty_like(x)
        )
        self.evaluate(state)
        return state

    def step(self, state: DRLSState) -> None:
        DRE_x = state.DRE

        state.H.apply(state.xbar - state.x, out=state.d)
        np.copyto(state.x_prev, state.x)
        np.copyto(state.xbar_prev, state.xbar)
        np.copyto(state.res_prev, state.res)
        np.add(state.x_prev, state.d, out=state.x_d)

        unconditional = np.isneginf(self.c)
        if not unconditional:
            threshold = DRE_x - self.c / state.gamma * real_dot(state.res_prev, state.res_prev)

        state.tau = 1.0
        state.linesearch_exhausted = False
        backtracks = 0
        while True:
            if state.tau == 0:
                np.copyto(state.x, state.xbar_prev)
            else:
                np.multiply(state.x_d, state.tau, out=state.x)
                state.x += (1 - state.tau) * state.xbar_prev
            self.evaluate(state)
            if unconditional or state.tau == 0 or state.DRE <= threshold:
                break
            backtracks += 1
            if backtracks >= self.max_backtracks:
                state.tau = 0.0
                state.linesearch_exhausted = True
            else:
                state.tau /= 2

        state.H.update(state.x, state.x_prev, state.x - state.xbar, state.x_prev - state.xbar_prev)

    def solution(self, state: DRLSState) -> np.ndarray:
        return state.v

    def display(self, index: int, state: DRLSState) -> None:
        print(f"{index:6d} | {state.gamma:.3e} | {self.residual_norm(state):.3e} | {state.tau:.3e} | {state.DRE:.3e}")


def minimize(
    initial_guess: np.ndarray,
    f=None,
    g=None,
    Lf: Optional[float] = None,
    gamma: Optional[float] = None,
    lambda_: Annotated[float, Interval(low=0.5, high=1.5)] = 1.0,
    c: Optional[float] = None,
    alpha: Annotated[float, Interval(low=0.5, high=0.99)] = 0.95,
    beta: Annotated[float, Interval(low=0.05, high=0.95)] = 0.5,
    memory: Annotated[int, Interval(low=1, high=20)] = 5,
    max_backtracks: int = 20,
    H=None,
    maxit: int = 1000,
    tol: float = 1e-8,
    verbose: bool = False,
    freq: int = 10
) -> SolverResult:
    """
    Douglas-Rachford line-search with L-BFGS directions.

    Parameters
    ----------
    initial_guess : np.ndarray
        Starting point.
    f, g : optional
        Proximable terms.
    Lf : float, optional
        Smoothness constant of f; gamma and c default from it.
    gamma : float, optional
        Stepsize; required when ``Lf`` is not given.
    lambda_ : float
        Relaxation parameter in (0, 2).
    c : float, optional
        Sufficient decrease parameter.
    alpha, beta : float
        Safety factors for the default gamma and c.
    memory : int
        L-BFGS history size.
    max_backtracks : int
        Line search budget before the plain Douglas-Rachford fallback.
    H : optional
        Direction engine overriding ``memory``.
    maxit : int
        Maximum number of iterations.
    tol : float
        Tolerance on ||u - v||_inf / gamma.
    verbose : bool
        Print diagnostics every ``freq`` iterations.
    freq : int
        Display period.

    Returns
    -------
    SolverResult
        ``x`` is prox_{gamma g} of the reflected point.
    """
    iteration = DRLSIteration(
        initial_guess, f=f, g=g, Lf=Lf, gamma=gamma, lambda_=lambda_, c=c,
        alpha=alpha, beta=beta, memory=memory, max_backtracks=max_backtracks, H=H
    )
    return solve(iteration, tol=tol, maxit=maxit, verbose=verbose, freq=freq)
