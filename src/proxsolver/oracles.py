"""
Uniform access to the terms and linear maps of a composite problem

    minimize f(Ax) + g(x)

Every iteration talks to its terms only through the adapters in this module:

    value(h, x)                 -> h(x)
    gradient(h, x)              -> (grad h(x), h(x))
    gradient_into(out, h, x)    -> h(x), grad h(x) written into ``out``
    prox(h, x, gamma)           -> (prox_{gamma h}(x), h(prox_{gamma h}(x)))
    prox_into(out, h, x, gamma) -> h(prox), the proximal point written into ``out``

A term only has to implement ``__call__`` plus ``gradient`` (smooth terms) or
``prox`` (proximable terms); the ``*_into`` methods are optional fast paths.

Linear maps can be numpy arrays, scipy sparse matrices, scipy LinearOperators
or the ``IDENTITY`` placeholder, which is applied without copying.
"""
import numpy as np
from typing import Any, List, Optional, Protocol, Sequence, Tuple, Union
from scipy.sparse.linalg import LinearOperator

from proxsolver.errors import InfeasibleStart


class SmoothTerm(Protocol):
    def __call__(self, x: np.ndarray) -> float: ...

    def gradient(self, x: np.ndarray) -> Tuple[np.ndarray, float]: ...


class ProximableTerm(Protocol):
    def __call__(self, x: np.ndarray) -> float: ...

    def prox(self, x: np.ndarray, gamma: float) -> Tuple[np.ndarray, float]: ...


class Zero:
    """
    Null term used wherever a smooth or nonsmooth term is left unset: its value
    is zero everywhere, its gradient vanishes and its proximal map is the
    identity.
    """

    def __call__(self, x):
        return 0.0

    def gradient(self, x):
        return np.zeros_like(x), 0.0

    def gradient_into(self, out, x):
        out.fill(0)
        return 0.0

    def prox(self, x, gamma):
        return np.copy(x), 0.0

    def prox_into(self, out, x, gamma):
        np.copyto(out, x)
        return 0.0

    def __repr__(self):
        return "Zero()"


class Identity:
    """Identity linear map; applying it returns the argument itself."""

    def __matmul__(self, x):
        return x

    @property
    def T(self):
        return self

    def __repr__(self):
        return "IDENTITY"


IDENTITY = Identity()


def or_zero(h):
    return Zero() if h is None else h


def or_identity(A):
    return IDENTITY if A is None else A


def is_zero(h) -> bool:
    return isinstance(h, Zero)


# --- term oracles ---

def value(h: Union[SmoothTerm, ProximableTerm], x: np.ndarray) -> float:
    return h(x)


def gradient(h: SmoothTerm, x: np.ndarray) -> Tuple[np.ndarray, float]:
    return h.gradient(x)


def gradient_into(out: np.ndarray, h: SmoothTerm, x: np.ndarray) -> float:
    if hasattr(h, "gradient_into"):
        return h.gradient_into(out, x)
    grad, h_x = h.gradient(x)
    np.copyto(out, grad)
    return h_x


def prox(h: ProximableTerm, x: np.ndarray, gamma: float) -> Tuple[np.ndarray, float]:
    return h.prox(x, gamma)


def prox_into(out: np.ndarray, h: ProximableTerm, x: np.ndarray, gamma: float) -> float:
    if hasattr(h, "prox_into"):
        return h.prox_into(out, x, gamma)
    p, h_p = h.prox(x, gamma)
    np.copyto(out, p)
    return h_p


# --- linear maps ---

def apply(A, x: np.ndarray) -> np.ndarray:
    if isinstance(A, Identity):
        return x
    if isinstance(A, LinearOperator):
        return A.matvec(x)
    return A @ x


def adjoint(A, y: np.ndarray) -> np.ndarray:
    if isinstance(A, Identity):
        return y
    if isinstance(A, LinearOperator):
        return A.rmatvec(y)
    if np.iscomplexobj(A):
        return A.conj().T @ y
    return A.T @ y


# --- helpers shared by the iterations ---

def as_float_array(x0, copy: bool = True) -> np.ndarray:
    x = np.array(x0, copy=copy)
    if not np.issubdtype(x.dtype, np.inexact):
        x = x.astype(float)
    return x


def real_dot(a: np.ndarray, b: np.ndarray) -> float:
    return np.vdot(a, b).real


def norm_inf(v: np.ndarray) -> float:
    return float(np.max(np.abs(v))) if v.size else 0.0


def check_feasible(objective: float, where: str = "initial point") -> None:
    if not np.isfinite(objective):
        raise InfeasibleStart(f"Objective is not finite at the {where} (got {objective})")


class SmoothSum:
    """
    Smooth part of the objective as a sum of compositions, x -> sum_i f_i(A_i x).

    Pairs whose term is ``Zero`` are dropped, so an iteration with no smooth
    term at all pays nothing for it. Images ``[A_i x]`` are returned as fresh
    arrays (or x itself under the identity) so the iterations can cache them
    and combine them linearly.

    Gradients of the f_i are written into buffers owned by the sum, allocated
    on first use; a single term under the identity writes straight into the
    caller's buffer.
    """

    def __init__(self, *pairs: Sequence[Any]):
        self.pairs: List[Tuple[SmoothTerm, Any]] = [
            (f, or_identity(A)) for f, A in pairs if f is not None and not is_zero(f)
        ]
        self.gradient_buffers: Optional[List[np.ndarray]] = None

    def __bool__(self):
        return bool(self.pairs)

    def images(self, x: np.ndarray) -> List[np.ndarray]:
        return [apply(A, x) for _, A in self.pairs]

    def value(self, images: List[np.ndarray]) -> float:
        return sum((value(f, Ax) for (f, _), Ax in zip(self.pairs, images)), 0.0)

    def _buffers_for(self, images: List[np.ndarray]) -> List[np.ndarray]:
        buffers = self.gradient_buffers
        if buffers is None or any(
            buf.shape != Ax.shape or buf.dtype != Ax.dtype for buf, Ax in zip(buffers, images)
        ):
            buffers = self.gradient_buffers = [np.empty_like(Ax) for Ax in images]
        return buffers

    def gradient_into(self, out: np.ndarray, images: List[np.ndarray]) -> float:
        """Write sum_i A_i' grad f_i(A_i x) into ``out`` and return the value at x."""
        if len(self.pairs) == 1 and isinstance(self.pairs[0][1], Identity):
            return gradient_into(out, self.pairs[0][0], images[0])
        out.fill(0)
        total = 0.0
        for (f, A), Ax, buf in zip(self.pairs, images, self._buffers_for(images)):
            total += gradient_into(buf, f, Ax)
            out += adjoint(A, buf)
        return total

    def __repr__(self):
        return f"SmoothSum({self.pairs!r})"
