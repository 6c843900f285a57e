"""
Forward-backward splitting (proximal gradient) and its fast, FISTA-like,
variant for

    minimize fs(As x) + fq(Aq x) + f(Ax) + g(x).

Each step takes x to the forward-backward point

    z = prox_{gamma g}(x - gamma * grad(x)),

optionally halving gamma first until the smooth part lies below its quadratic
model at z (``adaptive=True``, or whenever gamma has to be estimated).
"""
import numpy as np
from dataclasses import dataclass
from typing import Annotated, List, Optional

from proxsolver.oracles import SmoothSum, as_float_array, check_feasible, or_zero, value
from proxsolver.solver import Iteration, SolverResult, solve
from proxsolver.stepsize import backtrack_stepsize, forward_backward_into, initial_stepsize
from proxsolver.utils import Interval, check_open_unit, check_stepsize


@dataclass
class ForwardBackwardState:
    x: np.ndarray                # iterate
    Ax: List[np.ndarray]         # images of x under the smooth terms' maps
    f_Ax: float                  # smooth part at x
    At_grad_f_Ax: np.ndarray     # gradient of the smooth part at x
    gamma: float                 # stepsize
    y: np.ndarray                # forward point
    z: np.ndarray                # forward-backward point
    g_z: float                   # nonsmooth term at z
    res: np.ndarray              # fixed-point residual x - z
    adaptive: bool = False


@dataclass
class FastForwardBackwardState(ForwardBackwardState):
    theta: float = 1.0
    z_prev: Optional[np.ndarray] = None


class ForwardBackwardIteration(Iteration):
    """
    Parameters
    ----------
    x0 : np.ndarray
        Initial point; integer arrays are promoted to float.
    f, fs, fq : optional
        Smooth terms (``__call__`` and ``gradient``); unset terms are Zero.
    A, As, Aq : optional
        Linear maps composed with f, fs and fq; unset maps are the identity.
    g : optional
        Proximable term (``__call__`` and ``prox``).
    gamma : float, optional
        Stepsize. When omitted it is estimated from the gradient at x0 and
        the run is made adaptive.
    adaptive : bool
        Backtrack gamma at every step.
    alpha : float in (0, 1)
        Safety factor applied to the estimated 1/L.
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
        alpha: float = 0.95
    ):
        check_stepsize(gamma)
        check_open_unit("alpha", alpha)
        self.x0 = as_float_array(x0)
        self.smooth = SmoothSum((f, A), (fs, As), (fq, Aq))
        self.g = or_zero(g)
        self.gamma = None if gamma is None else float(gamma)
        self.adaptive = adaptive
        self.alpha = alpha

    def evaluate_smooth(self, state) -> None:
        """Refresh the cached images, value and gradient of the smooth part at state.x."""
        state.Ax = self.smooth.images(state.x)
        state.f_Ax = self.smooth.gradient_into(state.At_grad_f_Ax, state.Ax)

    def initial_state(self) -> ForwardBackwardState:
        x = np.copy(self.x0)
        Ax = self.smooth.images(x)
        At_grad_f_Ax = np.empty_like(x)
        f_Ax = self.smooth.gradient_into(At_grad_f_Ax, Ax)
        check_feasible(f_Ax + value(self.g, x))

        if self.gamma is None:
            gamma = initial_stepsize(self.smooth, x, At_grad_f_Ax, self.alpha)
            adaptive = True
        else:
            gamma, adaptive = self.gamma, self.adaptive

        state = ForwardBackwardState(
            x=x, Ax=Ax, f_Ax=f_Ax, At_grad_f_Ax=At_grad_f_Ax, gamma=gamma,
            y=np.empty_like(x), z=np.empty_like(x), g_z=0.0, res=np.empty_like(x),
            adaptive=adaptive
        )
        state.g_z = forward_backward_into(state.y, state.z, state.res, self.g, x, At_grad_f_Ax, gamma)
        return state

    def backtrack(self, state) -> None:
        state.gamma, state.g_z, _ = backtrack_stepsize(
            self.smooth, self.g, state.x, state.f_Ax, state.At_grad_f_Ax, state.gamma,
            state.y, state.z, state.g_z, state.res
        )

    def forward_backward(self, state) -> None:
        state.g_z = forward_backward_into(
            state.y, state.z, state.res, self.g, state.x, state.At_grad_f_Ax, state.gamma
        )

    def step(self, state: ForwardBackwardState) -> None:
        if state.adaptive:
            self.backtrack(state)
        state.x, state.z = state.z, state.x
        self.evaluate_smooth(state)
        self.forward_backward(state)


class FastForwardBackwardIteration(ForwardBackwardIteration):
    """
    Forward-backward with Nesterov extrapolation: the next point is
    x = z + ((theta - 1) / theta_next) (z - z_prev).
    """

    def initial_state(self) -> FastForwardBackwardState:
        state = super().initial_state()
        return FastForwardBackwardState(**vars(state), theta=1.0, z_prev=np.copy(state.x))

    def step(self, state: FastForwardBackwardState) -> None:
        if state.adaptive:
            self.backtrack(state)
        theta1 = (1 + np.sqrt(1 + 4 * state.theta ** 2)) / 2
        extr = (state.theta - 1) / theta1
        np.subtract(state.z, state.z_prev, out=state.x)
        state.x *= extr
        state.x += state.z
        state.theta = float(theta1)
        state.z_prev, state.z = state.z, state.z_prev
        self.evaluate_smooth(state)
        self.forward_backward(state)


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
    maxit: int = 10_000,
    tol: float = 1e-8,
    verbose: bool = False,
    freq: int = 100
) -> SolverResult:
    """
    Forward-backward splitting (proximal gradient method).

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
        Safety factor on the estimated stepsize.
    maxit : int
        Maximum number of iterations.
    tol : float
        Tolerance on ||x - z||_inf / gamma.
    verbose : bool
        Print a row of diagnostics every ``freq`` iterations.
    freq : int
        Display period.

    Returns
    -------
    SolverResult
        ``x`` is the last forward-backward point.
    """
    iteration = ForwardBackwardIteration(
        initial_guess, f=f, A=A, fs=fs, As=As, fq=fq, Aq=Aq, g=g,
        gamma=gamma, adaptive=adaptive, alpha=alpha
    )
    return solve(iteration, tol=tol, maxit=maxit, verbose=verbose, freq=freq)


def minimize_fast(
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
    maxit: int = 10_000,
    tol: float = 1e-8,
    verbose: bool = False,
    freq: int = 100
) -> SolverResult:
    """Fast forward-backward splitting (FISTA). Same arguments as ``minimize``."""
    iteration = FastForwardBackwardIteration(
        initial_guess, f=f, A=A, fs=fs, As=As, fq=fq, Aq=Aq, g=g,
        gamma=gamma, adaptive=adaptive, alpha=alpha
    )
    return solve(iteration, tol=tol, maxit=maxit, verbose=verbose, freq=freq)
