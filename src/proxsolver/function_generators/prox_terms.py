"""
A handful of concrete terms for building test problems.

Smooth terms implement ``__call__`` and ``gradient``, proximable ones
``__call__`` and ``prox``; some also provide the in-place ``*_into`` variants.
Scaling factors are stored as Python floats so that float32 inputs give
float32 outputs.
"""
import numpy as np
from scipy.linalg import cho_factor, cho_solve

from proxsolver.oracles import gradient_into


class LeastSquares:
    """f(x) = lam/2 ||Ax - b||^2, smooth and proximable."""

    def __init__(self, A: np.ndarray, b: np.ndarray, lam: float = 1.0):
        self.A = np.asarray(A)
        self.b = np.asarray(b)
        self.lam = float(lam)
        self.AtA = self.A.T @ self.A
        self.Atb = self.A.T @ self.b
        self._factor_gamma = None
        self._factor = None

    def __call__(self, x):
        r = self.A @ x - self.b
        return 0.5 * self.lam * np.vdot(r, r).real

    def gradient(self, x):
        r = self.A @ x - self.b
        return self.lam * (self.A.T @ r), 0.5 * self.lam * np.vdot(r, r).real

    def gradient_into(self, out, x):
        r = self.A @ x - self.b
        np.matmul(self.A.T, r, out=out)
        out *= self.lam
        return 0.5 * self.lam * np.vdot(r, r).real

    def prox(self, x, gamma):
        # (I + lam gamma A'A) p = x + lam gamma A'b
        if self._factor_gamma != gamma:
            M = self.lam * gamma * self.AtA + np.eye(self.AtA.shape[0], dtype=self.AtA.dtype)
            self._factor = cho_factor(M)
            self._factor_gamma = gamma
        p = cho_solve(self._factor, x + self.lam * gamma * self.Atb)
        return p, self(p)


class SqrNormL2:
    """f(x) = lam/2 ||x||^2."""

    def __init__(self, lam: float = 1.0):
        self.lam = float(lam)

    def __call__(self, x):
        return 0.5 * self.lam * np.vdot(x, x).real

    def gradient(self, x):
        return self.lam * x, self(x)

    def gradient_into(self, out, x):
        np.multiply(x, self.lam, out=out)
        return self(x)

    def prox(self, x, gamma):
        p = x / (1 + self.lam * gamma)
        return p, self(p)


class NormL1:
    """g(x) = lam ||x||_1, prox is soft thresholding."""

    def __init__(self, lam: float = 1.0):
        if lam < 0:
            raise ValueError(f"lam must be non-negative, got {lam}")
        self.lam = float(lam)

    def __call__(self, x):
        return self.lam * float(np.sum(np.abs(x)))

    def prox(self, x, gamma):
        p = np.empty_like(x)
        return p, self.prox_into(p, x, gamma)

    def prox_into(self, out, x, gamma):
        threshold = self.lam * gamma
        np.abs(x, out=out)
        out -= threshold
        np.maximum(out, 0, out=out)
        out *= np.sign(x)
        return self(out)


class NormL0:
    """g(x) = lam * nnz(x), prox is hard thresholding (nonconvex)."""

    def __init__(self, lam: float = 1.0):
        if lam < 0:
            raise ValueError(f"lam must be non-negative, got {lam}")
        self.lam = float(lam)

    def __call__(self, x):
        return self.lam * float(np.count_nonzero(x))

    def prox(self, x, gamma):
        threshold = np.sqrt(2 * self.lam * gamma)
        p = np.where(np.abs(x) > threshold, x, 0)
        return p.astype(x.dtype, copy=False), self(p)


class IndBox:
    """Indicator of {x : low <= x <= high}; infinite outside."""

    def __init__(self, low=-np.inf, high=np.inf):
        self.low = low
        self.high = high

    def __call__(self, x):
        if np.all(x >= self.low) and np.all(x <= self.high):
            return 0.0
        return np.inf

    def prox(self, x, gamma):
        return np.clip(x, self.low, self.high).astype(x.dtype, copy=False), 0.0


class Translate:
    """x -> f(x + b), for any term f."""

    def __init__(self, f, b: np.ndarray):
        self.f = f
        self.b = np.asarray(b)

    def __call__(self, x):
        return self.f(x + self.b)

    def gradient(self, x):
        return self.f.gradient(x + self.b)

    def gradient_into(self, out, x):
        return gradient_into(out, self.f, x + self.b)

    def prox(self, x, gamma):
        p, f_p = self.f.prox(x + self.b, gamma)
        return p - self.b, f_p
