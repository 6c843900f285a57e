import numpy as np
from typing import List, Optional


class LBFGS:
    """
    Limited-memory BFGS approximation of an inverse Jacobian.

    Stores up to ``memory`` curvature pairs (s_k, y_k), where s_k is a
    difference of points and y_k the difference of the corresponding
    residuals. The oldest pair is evicted first. Pairs with non-positive
    curvature are skipped, leaving the history untouched.

    Parameters
    ----------
    memory : int
        History size (number of (s, y) pairs to keep).
    """

    def __init__(self, memory: int = 5):
        if memory < 1:
            raise ValueError(f"L-BFGS memory must be at least 1, got {memory}")
        self.memory = memory
        self.s_list: List[np.ndarray] = []
        self.y_list: List[np.ndarray] = []
        self.rho_list: List[float] = []
        self.H0 = 1.0

    def empty_copy(self) -> "LBFGS":
        """A fresh engine with the same configuration, used to start a new run."""
        return LBFGS(self.memory)

    def reset(self) -> None:
        self.s_list.clear()
        self.y_list.clear()
        self.rho_list.clear()
        self.H0 = 1.0

    def __len__(self) -> int:
        return len(self.s_list)

    def update(
        self,
        x_new: np.ndarray,
        x_prev: np.ndarray,
        res_new: np.ndarray,
        res_prev: np.ndarray
    ) -> bool:
        """
        Push s = x_new - x_prev, y = res_new - res_prev if the curvature
        condition holds. Returns whether the pair was stored.
        """
        s = x_new - x_prev
        y = res_new - res_prev
        sy = np.vdot(s, y).real
        eps = np.finfo(s.dtype).eps
        if not sy > eps * np.linalg.norm(s) * np.linalg.norm(y):
            return False
        if len(self.s_list) == self.memory:
            self.s_list.pop(0); self.y_list.pop(0); self.rho_list.pop(0)
        self.s_list.append(s)
        self.y_list.append(y)
        self.rho_list.append(1.0 / sy)
        self.H0 = sy / np.vdot(y, y).real
        return True

    def apply(self, v: np.ndarray, out: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Inverse-Jacobian approximation times ``v`` via the two-loop recursion.
        With an empty history this is an exact copy of ``v``.
        """
        if out is None:
            out = np.empty_like(v)
        np.copyto(out, v)
        if not self.s_list:
            return out

        # first loop, newest pair first
        alphas = []
        for s, y, rho in zip(reversed(self.s_list), reversed(self.y_list), reversed(self.rho_list)):
            alpha = rho * np.vdot(s, out)
            alphas.append(alpha)
            out -= alpha * y

        out *= self.H0

        # second loop, oldest pair first
        for (s, y, rho), alpha in zip(zip(self.s_list, self.y_list, self.rho_list), reversed(alphas)):
            beta = rho * np.vdot(y, out)
            out += (alpha - beta) * s
        return out

    def __matmul__(self, v: np.ndarray) -> np.ndarray:
        return self.apply(v)

    def __repr__(self):
        return f"LBFGS(memory={self.memory}, pairs={len(self)})"


class Noaccel:
    """Direction engine that never accelerates: apply() is the identity."""

    def empty_copy(self) -> "Noaccel":
        return self

    def reset(self) -> None:
        pass

    def __len__(self) -> int:
        return 0

    def update(self, x_new, x_prev, res_new, res_prev) -> bool:
        return False

    def apply(self, v: np.ndarray, out: Optional[np.ndarray] = None) -> np.ndarray:
        if out is None:
            return np.copy(v)
        np.copyto(out, v)
        return out

    def __matmul__(self, v: np.ndarray) -> np.ndarray:
        return self.apply(v)

    def __repr__(self):
        return "Noaccel()"
