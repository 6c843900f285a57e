import inspect
import numpy as np
from dataclasses import dataclass
from typing import Callable, Optional

from proxsolver.function_generators.prox_terms import LeastSquares, NormL1, SqrNormL2, Translate


@dataclass
class LassoProblem:
    """
    minimize 1/2 ||Ax - b||^2 + lam ||x||_1
    """
    A: np.ndarray
    b: np.ndarray
    lam: float
    x_star: Optional[np.ndarray] = None

    @property
    def n_rows(self) -> int:
        return self.A.shape[0]

    @property
    def n_cols(self) -> int:
        return self.A.shape[1]

    @property
    def Lf(self) -> float:
        return float(np.linalg.norm(self.A, 2) ** 2)

    def objective(self, x: np.ndarray) -> float:
        r = self.A @ x - self.b
        return 0.5 * float(np.dot(r, r)) + self.lam * float(np.sum(np.abs(x)))

    def terms(self, solver: Callable) -> dict:
        """
        Keyword arguments describing this problem to ``solver``.

        Solvers taking a linear map get f(Ax) with f = 1/2 ||. - b||^2; the
        others get the least-squares term itself, to be used through its
        proximal mapping, plus a stepsize when they cannot derive one from Lf.
        """
        params = inspect.signature(solver).parameters
        if 'A' in params:
            kwargs = {'f': Translate(SqrNormL2(), -self.b), 'A': self.A}
        else:
            kwargs = {'f': LeastSquares(self.A, self.b)}
            if 'Lf' not in params:
                kwargs['gamma'] = 10 / self.Lf
        kwargs['g'] = NormL1(self.lam)
        if 'Lf' in params:
            kwargs['Lf'] = self.Lf
        return kwargs

    def reference_solution(self, tol: float = 1e-12, maxit: int = 100_000) -> np.ndarray:
        """Solution computed by plain forward-backward with gamma = 1/Lf, cached in x_star."""
        if self.x_star is None:
            from proxsolver.algorithms.splitting.forward_backward import minimize as minimize_forward_backward
            result = minimize_forward_backward(
                np.zeros(self.n_cols, dtype=self.A.dtype), gamma=1 / self.Lf,
                maxit=maxit, tol=tol, **self.terms(minimize_forward_backward)
            )
            self.x_star = result.x
        return self.x_star


def generate_lasso_problem(
    n_rows: int = 50,
    n_cols: int = 100,
    density: float = 0.1,
    noise: float = 0.01,
    seed: int = None,
    dtype=np.float64
) -> LassoProblem:
    """Random lasso instance with a sparse planted signal and lam = 0.1 ||A'b||_inf."""
    rng = np.random.default_rng(seed)
    A = rng.standard_normal((n_rows, n_cols))
    x_true = np.zeros(n_cols)
    support = rng.choice(n_cols, size=max(1, int(density * n_cols)), replace=False)
    x_true[support] = rng.standard_normal(support.size)
    b = A @ x_true + noise * rng.standard_normal(n_rows)
    lam = 0.1 * np.linalg.norm(A.T @ b, np.inf)
    return LassoProblem(A=A.astype(dtype), b=b.astype(dtype), lam=float(lam))


def small_lasso_problem(dtype=np.float64) -> LassoProblem:
    A = np.array([
        [1.0, -2.0, 3.0, -4.0, 5.0],
        [2.0, -1.0, 0.0, -1.0, 3.0],
        [-1.0, 0.0, 4.0, -3.0, 2.0],
        [-1.0, -1.0, -1.0, 1.0, 3.0],
    ], dtype=dtype)
    b = np.array([1.0, 2.0, 3.0, 4.0], dtype=dtype)
    lam = 0.1 * np.linalg.norm(A.T @ b, np.inf)
    x_star = np.array([-3.877278911564627e-01, 0, 0, 2.174149659863943e-02, 6.168435374149660e-01])
    return LassoProblem(A=A, b=b, lam=float(lam), x_star=x_star)


PROBLEMS = {
    'lasso': generate_lasso_problem,
    'lasso_small': small_lasso_problem,
}


def get_problem(problem_name: str, **kwargs) -> LassoProblem:
    return PROBLEMS[problem_name](**kwargs)
