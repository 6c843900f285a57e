"""
Nonconvex accelerated proximal gradient method for minimize f(Ax) + g(x).

Li, Lin, "Accelerated Proximal Gradient Methods for Nonconvex Programming",
Proceedings of NIPS 2015 (2015), Algorithm 2.

The extrapolated step is kept when it decreases the objective enough compared
to a moving average of past objective values; otherwise a plain
forward-backward step from the last iterate is computed and the better of the
two points is taken.
"""
import numpy as np
from dataclasses import dataclass
from typing import Annotated, List, Optional

from proxsolver.oracles import SmoothSum, as_float_array, check_feasible, or_zero, prox_into, real_dot, value
from proxsolver.solver import Iteration, SolverResult, solve
from proxsolver.stepsize import backtrack_stepsize, forward_backward_into, initial_stepsize
from proxsolver.utils import Interval, check_open_unit, check_stepsize


@dataclass
class LiLinState:
    x: np.ndarray                # iterate
    y: np.ndarray                # extrapolated point
    Ay: List[np.ndarray]
    f_Ay: float
    At_grad_f_Ay: np.ndarray
    gamma: float
    y_forward: np.ndarray        # forward point at y
    z: np.ndarray                # forward-backward point at y
    g_z: float
    res: np.ndarray              # y - z
    theta: float                 # extrapolation sequence
    F_average: float             # moving average of objective values
    q: float                     # weight of the moving average
    adaptive: bool = False
    case: int = 0                # which update the last step took (0 before any step)


class LiLinIteration(Iteration):
    """
    Parameters
    ----------
    x0 : np.ndarray
        Initial point.
    f : optional
        Smooth term.
    A : optional
        Linear map composed with f.
    g : optional
        Proximable term.
    Lf : float, optional
        Lipschitz constant of the gradient of x -> f(Ax).
    gamma : float, optional
        Stepsize; defaults to 1/Lf, or to an estimate (making the run adaptive).
    adaptive : bool
        Backtrack gamma at the extrapolated point at every step.
    delta : float
        Sufficient decrease parameter for accepting the extrapolated step.
    eta : float in (0, 1)
        Decay of the moving average of objective values.
    """

    def __init__(
        self,
        x0,
        f=None,
        A=None,
        g=None,
        Lf: Optional[float] = None,
        gamma: Optional[float] = None,
        adaptive: bool = False,
        delta: float = 1e-3,
        eta: float = 0.8,
        alpha: float = 0.95
    ):
        if Lf is not None and not Lf > 0:
            raise ValueError(f"Lipschitz constant Lf must be positive, got {Lf}")
        if gamma is None and Lf is not None:
            gamma = 1 / Lf
        check_stepsize(gamma)
        check_open_unit("eta", eta)
        check_open_unit("alpha", alpha)
        if delta < 0:
            raise ValueError(f"delta must be non-negative, got {delta}")
        self.x0 = as_float_array(x0)
        self.smooth = SmoothSum((f, A))
        self.g = or_zero(g)
        self.gamma = None if gamma is None else float(gamma)
        self.adaptive = adaptive
        self.delta = delta
        self.eta = eta
        self.alpha = alpha

    def objective(self, x: np.ndarray, g_x: float) -> float:
        return self.smooth.value(self.smooth.images(x)) + g_x

    def evaluate_at_y(self, state: LiLinState) -> None:
        state.Ay = self.smooth.images(state.y)
        state.f_Ay = self.smooth.gradient_into(state.At_grad_f_Ay, state.Ay)
        state.g_z = forward_backward_into(
            state.y_forward, state.z, state.res, self.g, state.y, state.At_grad_f_Ay, state.gamma
        )

    def initial_state(self) -> LiLinState:
        y = np.copy(self.x0)
        Ay = self.smooth.images(y)
        At_grad_f_Ay = np.empty_like(y)
        f_Ay = self.smooth.gradient_into(At_grad_f_Ay, Ay)
        Fy = f_Ay + value(self.g, y)
        check_feasible(Fy)

        if self.gamma is None:
            gamma = initial_stepsize(self.smooth, y, At_grad_f_Ay, self.alpha)
            adaptive = True
        else:
            gamma, adaptive = self.gamma, self.adaptive

        state = LiLinState(
            x=np.copy(self.x0), y=y, Ay=Ay, f_Ay=f_Ay, At_grad_f_Ay=At_grad_f_Ay, gamma=gamma,
            y_forward=np.empty_like(y), z=np.empty_like(y), g_z=0.0, res=np.empty_like(y),
            theta=1.0, F_average=Fy, q=1.0, adaptive=adaptive
        )
        state.g_z = forward_backward_into(
            state.y_forward, state.z, state.res, self.g, y, At_grad_f_Ay, gamma
        )
        return state

    def forward_backward_from_x(self, state: LiLinState):
        Ax = self.smooth.images(state.x)
        At_grad_f_Ax = np.empty_like(state.x)
        self.smooth.gradient_into(At_grad_f_Ax, Ax)
        v = np.empty_like(state.x)
        g_v = prox_into(v, self.g, state.x - state.gamma * At_grad_f_Ax, state.gamma)
        return v, self.objective(v, g_v)

    def step(self, state: LiLinState) -> None:
        if state.adaptive:
            state.gamma, state.g_z, _ = backtrack_stepsize(
                self.smooth, self.g, state.y, state.f_Ay, state.At_grad_f_Ay, state.gamma,
                state.y_forward, state.z, state.g_z, state.res
            )

        Fz = self.objective(state.z, state.g_z)
        theta1 = (1 + np.sqrt(1 + 4 * state.theta ** 2)) / 2

        if Fz <= state.F_average - self.delta * real_dot(state.res, state.res):
            case = 1
        else:
            v, Fv = self.forward_backward_from_x(state)
            case = 1 if Fz <= Fv else 2

        state.case = case
        if case == 1:
            # y = z + (theta - 1) / theta1 (z - x)
            np.subtract(state.z, state.x, out=state.y)
            state.y *= (state.theta - 1) / theta1
            state.y += state.z
            state.x, state.z = state.z, state.x
            Fx = Fz
        else:
            # y = v + theta / theta1 (z - v) + (theta - 1) / theta1 (v - x)
            state.y[...] = (
                v + (state.theta / theta1) * (state.z - v)
                + ((state.theta - 1) / theta1) * (v - state.x)
            )
            state.x = v
            Fx = Fv

        self.evaluate_at_y(state)
        state.theta = float(theta1)

        q1 = self.eta * state.q + 1
        state.F_average = (self.eta * state.q * state.F_average + Fx) / q1
        state.q = q1


def minimize(
    initial_guess: np.ndarray,
    f=None,
    A=None,
    g=None,
    Lf: Optional[float] = None,
    gamma: Optional[float] = None,
    adaptive: bool = False,
    delta: Annotated[float, Interval(low=1e-6, high=1e-1, log=True)] = 1e-3,
    eta: Annotated[float, Interval(low=0.1, high=0.95)] = 0.8,
    maxit: int = 10_000,
    tol: float = 1e-8,
    verbose: bool = False,
    freq: int = 100
) -> SolverResult:
    """
    Nonconvex accelerated proximal gradient method (Li-Lin).

    Parameters
    ----------
    initial_guess : np.ndarray
        Starting point.
    f, A : optional
        Smooth term and its linear map.
    g : optional
        Proximable term.
    Lf : float, optional
        Lipschitz constant of the gradient of x -> f(Ax).
    gamma : float, optional
        Stepsize, defaults to 1/Lf.
    adaptive : bool
        Backtrack the stepsize at every step.
    delta : float
        Sufficient decrease parameter.
    eta : float
        Moving average decay.
    maxit : int
        Maximum number of iterations.
    tol : float
        Tolerance on ||y - z||_inf / gamma.
    verbose : bool
        Print diagnostics every ``freq`` iterations.
    freq : int
        Display period.

    Returns
    -------
    SolverResult
        ``x`` is the last forward-backward point.
    """
    iteration = LiLinIteration(
        initial_guess, f=f, A=A, g=g, Lf=Lf, gamma=gamma,
        adaptive=adaptive, delta=delta, eta=eta
    )
    return solve(iteration, tol=tol, maxit=maxit, verbose=verbose, freq=freq)
