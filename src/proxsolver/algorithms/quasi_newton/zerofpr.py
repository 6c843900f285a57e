"""
ZeroFPR: nonsmooth optimization as smooth Newton-type root finding of the
fixed-point residual, for

    minimize fs(As x) + fq(Aq x) + f(Ax) + g(x).

Unlike PANOC, the quasi-Newton direction is computed at the forward-backward
point xbar = z, and the line search moves from xbar along d:

    x+ = xbar + tau * d,   d = H(-res(xbar)),

accepting the first tau (halved from 1) that decreases the FBE enough. Since
the maps are linear, A(xbar + tau d) = A xbar + tau A d, so each trial costs
one gradient and one prox but no extra matrix products.

Themelis, Stella, Patrinos, "Forward-backward envelope for the sum of two
nonconvex functions: Further properties and nonmonotone line-search
algorithms", SIAM Journal on Optimization (2018).
"""
import numpy as np
from dataclasses import dataclass
from typing import Annotated, Optional

from proxsolver.algorithms.quasi_newton.lbfgs import LBFGS
from proxsolver.algorithms.quasi_newton.panoc import check_direction_settings, fbe_tolerance
from proxsolver.algorithms.splitting.forward_backward import ForwardBackwardIteration, ForwardBackwardState
from proxsolver.oracles import prox_into, real_dot
from proxsolver.solver import SolverResult, solve
from proxsolver.stepsize import quadratic_upper_bound
from proxsolver.utils import Interval


@dataclass
class ZeroFPRState(ForwardBackwardState):
    H: object = None
    tau: float = 1.0
    FBE: float = 0.0
    xbar: Optional[np.ndarray] = None             # base point of the line search (the previous z)
    xbar_prev: Optional[np.ndarray] = None
    res_xbar: Optional[np.ndarray] = None         # fixed-point residual at xbar
    res_xbar_prev: Optional[np.ndarray] = None
    xbarbar: Optional[np.ndarray] = None          # forward-backward point from xbar
    At_grad_f_Axbar: Optional[np.ndarray] = None
    d: Optional[np.ndarray] = None
    has_prev: bool = False
    linesearch_exhausted: bool = False


class ZeroFPRIteration(ForwardBackwardIteration):
    """Same arguments as ``PANOCIteration``."""

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

    def initial_state(self) -> ZeroFPRState:
        state = super().initial_state()
        x = state.x
        state = ZeroFPRState(
            **vars(state), H=self.H.empty_copy(),
            xbar=np.empty_like(x), xbar_prev=np.empty_like(x),
            res_xbar=np.empty_like(x), res_xbar_prev=np.empty_like(x),
            xbarbar=np.empty_like(x), At_grad_f_Axbar=np.empty_like(x), d=np.empty_like(x)
        )
        state.FBE = quadratic_upper_bound(state.f_Ax, state.At_grad_f_Ax, state.res, state.gamma) + state.g_z
        return state

    def step(self, state: ZeroFPRState) -> None:
        if state.adaptive:
            gamma = state.gamma
            self.backtrack(state)
            if state.gamma != gamma:
                # stored pairs were measured with another gamma
                state.H.reset()
                state.has_prev = False

        FBE_x = quadratic_upper_bound(state.f_Ax, state.At_grad_f_Ax, state.res, state.gamma) + state.g_z

        # residual at the forward-backward point, and direction from there
        np.copyto(state.xbar, state.z)
        Axbar = self.smooth.images(state.xbar)
        self.smooth.gradient_into(state.At_grad_f_Axbar, Axbar)
        np.subtract(state.xbar, state.gamma * state.At_grad_f_Axbar, out=state.y)
        prox_into(state.xbarbar, self.g, state.y, state.gamma)
        np.subtract(state.xbar, state.xbarbar, out=state.res_xbar)

        if state.has_prev:
            state.H.update(state.xbar, state.xbar_prev, state.res_xbar, state.res_xbar_prev)
        state.H.apply(-state.res_xbar, out=state.d)
        Ad = self.smooth.images(state.d)

        C = self.sigma * state.gamma * (1 - self.alpha)
        threshold = FBE_x - C / 2 * real_dot(state.res, state.res)
        threshold += fbe_tolerance(FBE_x, state.x.real.dtype)

        state.tau = 1.0
        state.linesearch_exhausted = False
        backtracks = 0
        while True:
            if state.tau == 0:
                np.copyto(state.x, state.xbar)
                state.Ax = [np.copy(a) for a in Axbar]
            else:
                np.multiply(state.d, state.tau, out=state.x)
                state.x += state.xbar
                state.Ax = [a + state.tau * b for a, b in zip(Axbar, Ad)]
            state.f_Ax = self.smooth.gradient_into(state.At_grad_f_Ax, state.Ax)
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

        state.xbar, state.xbar_prev = state.xbar_prev, state.xbar
        state.res_xbar, state.res_xbar_prev = state.res_xbar_prev, state.res_xbar
        state.has_prev = True

    def display(self, index: int, state: ZeroFPRState) -> None:
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
    ZeroFPR with L-BFGS directions. Arguments as for PANOC.

    Returns
    -------
    SolverResult
        ``x`` is the last forward-backward point.
    """
    iteration = ZeroFPRIteration(
        initial_guess, f=f, A=A, fs=fs, As=As, fq=fq, Aq=Aq, g=g,
        gamma=gamma, adaptive=adaptive, alpha=alpha, sigma=sigma,
        memory=memory, max_backtracks=max_backtracks, H=H
    )
    return solve(iteration, tol=tol, maxit=maxit, verbose=verbose, freq=freq)
