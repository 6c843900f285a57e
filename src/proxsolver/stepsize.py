"""
Stepsize selection shared by the forward-backward family.

Two mechanisms:
    - estimate_lipschitz / initial_stepsize: a single finite-difference probe of
      the gradient at the initial point. This is a heuristic lower estimate of
      the Lipschitz constant, not a certified bound, which is why runs that use
      it are switched to adaptive mode.
    - backtrack_stepsize: halve gamma until the smooth term at the
      forward-backward point lies below its quadratic model around x.
"""
import numpy as np
from typing import Tuple

from proxsolver.errors import LipschitzEstimationFailure
from proxsolver.oracles import SmoothSum, prox_into, real_dot

MAX_STEPSIZE_BACKTRACKS = 100
MAJORIZATION_RTOL = 1e-6
MIN_LIPSCHITZ = 1e-12


def estimate_lipschitz(smooth: SmoothSum, x: np.ndarray, At_grad_f_Ax: np.ndarray) -> float:
    """
    Finite-difference estimate of the Lipschitz constant of the gradient of the
    smooth part, from its gradient ``At_grad_f_Ax`` at ``x`` and at
    ``x + sqrt(eps)``.
    """
    eps = np.finfo(x.real.dtype).eps
    x_eps = x + np.sqrt(eps)
    At_grad_f_Ax_eps = np.empty_like(At_grad_f_Ax)
    smooth.gradient_into(At_grad_f_Ax_eps, smooth.images(x_eps))
    L = np.linalg.norm(At_grad_f_Ax - At_grad_f_Ax_eps) / np.sqrt(eps * x.size)
    if not np.isfinite(L):
        raise LipschitzEstimationFailure(f"Lipschitz estimate at the initial point is not finite ({L})")
    return max(float(L), MIN_LIPSCHITZ)


def initial_stepsize(smooth: SmoothSum, x: np.ndarray, At_grad_f_Ax: np.ndarray, alpha: float) -> float:
    return alpha / estimate_lipschitz(smooth, x, At_grad_f_Ax)


def forward_backward_into(
    y: np.ndarray,
    z: np.ndarray,
    res: np.ndarray,
    g,
    x: np.ndarray,
    At_grad_f_Ax: np.ndarray,
    gamma: float
) -> float:
    """
    Forward-backward step from x, written into the caller's buffers:
        y = x - gamma * grad,  z = prox_{gamma g}(y),  res = x - z.
    Returns g(z).
    """
    np.subtract(x, gamma * At_grad_f_Ax, out=y)
    g_z = prox_into(z, g, y, gamma)
    np.subtract(x, z, out=res)
    return g_z


def quadratic_upper_bound(f_Ax: float, At_grad_f_Ax: np.ndarray, res: np.ndarray, gamma: float) -> float:
    """Quadratic model of the smooth part around x, evaluated at z = x - res."""
    return f_Ax - real_dot(At_grad_f_Ax, res) + 0.5 / gamma * real_dot(res, res)


def majorization_holds(f_Az: float, f_Ax: float, At_grad_f_Ax: np.ndarray, res: np.ndarray, gamma: float) -> bool:
    upper_bound = quadratic_upper_bound(f_Ax, At_grad_f_Ax, res, gamma)
    # written so that a NaN value at z counts as a violation
    return bool(f_Az <= upper_bound + MAJORIZATION_RTOL * abs(f_Ax))


def backtrack_stepsize(
    smooth: SmoothSum,
    g,
    x: np.ndarray,
    f_Ax: float,
    At_grad_f_Ax: np.ndarray,
    gamma: float,
    y: np.ndarray,
    z: np.ndarray,
    g_z: float,
    res: np.ndarray,
    max_backtracks: int = MAX_STEPSIZE_BACKTRACKS
) -> Tuple[float, float, float]:
    """
    Halve gamma until f(Az) <= f(Ax) - <grad, res> + ||res||^2 / (2 gamma),
    up to a small tolerance relative to |f(Ax)|.

    ``y``, ``z`` and ``res`` must hold the forward-backward step from ``x`` at
    ``gamma``; they are recomputed in place whenever gamma shrinks.

    Returns
    -------
    gamma : float
        Accepted stepsize, never larger than the input one.
    g_z : float
        Nonsmooth term at the accepted forward-backward point.
    f_Az : float
        Smooth part at the accepted forward-backward point.
    """
    f_Az = smooth.value(smooth.images(z))
    for _ in range(max_backtracks):
        if majorization_holds(f_Az, f_Ax, At_grad_f_Ax, res, gamma):
            return gamma, g_z, f_Az
        gamma = gamma / 2
        g_z = forward_backward_into(y, z, res, g, x, At_grad_f_Ax, gamma)
        f_Az = smooth.value(smooth.images(z))
    if majorization_holds(f_Az, f_Ax, At_grad_f_Ax, res, gamma):
        return gamma, g_z, f_Az
    raise LipschitzEstimationFailure(
        f"Quadratic upper bound still violated after {max_backtracks} stepsize halvings (gamma={gamma:.3e})"
    )
