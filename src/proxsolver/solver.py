"""
Driving an iteration to completion.

An ``Iteration`` is a problem description plus a state-transition function.
Iterating over it yields the initial state and then the same state object
after every step, forever. ``solve`` turns that infinite sequence into a run:

    take(halt(iteration, stop), maxit + 1)  ->  enumerate  ->  [sample -> tee(display)]  ->  loop

and returns a ``SolverResult`` that can be handed back to ``resume`` to keep
going from where the run stopped.
"""
import numpy as np
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional

from proxsolver.iteration_tools import enumerate, halt, loop, sample, take, tee
from proxsolver.oracles import norm_inf


class Iteration:
    """
    Base class for the algorithm state machines.

    Subclasses implement ``initial_state`` (one full oracle evaluation at x0)
    and ``step`` (advance a state in place). The defaults for the stopping
    measure and the solution assume the forward-backward naming: a residual
    ``res`` and a forward-backward point ``z``.
    """

    def initial_state(self) -> Any:
        raise NotImplementedError

    def step(self, state: Any) -> None:
        raise NotImplementedError

    def iterate(self, state: Optional[Any] = None) -> Iterator[Any]:
        """Yield ``state`` (a fresh initial state if None), then the same object after each step."""
        if state is None:
            state = self.initial_state()
        yield state
        while True:
            self.step(state)
            yield state

    def __iter__(self) -> Iterator[Any]:
        return self.iterate()

    def residual_norm(self, state: Any) -> float:
        return norm_inf(state.res) / state.gamma

    def solution(self, state: Any) -> np.ndarray:
        return state.z

    def display(self, index: int, state: Any) -> None:
        print(f"{index:6d} | {state.gamma:.3e} | {self.residual_norm(state):.3e}")


@dataclass
class SolverResult:
    """
    Outcome of a run.

    Attributes
    ----------
    x : np.ndarray
        Final iterate (a copy, safe to keep).
    iterations : int
        Number of steps taken in this run (0 if the starting state already met the tolerance).
    converged : bool
        Whether the stopping criterion holds at ``x``; False means the step cap was hit.
    residual : float
        Stopping measure at the final state.
    state : Any
        Final state of the iteration; resuming mutates it further.
    iteration : Iteration
        The iteration that produced ``state``.
    """
    x: np.ndarray
    iterations: int
    converged: bool
    residual: float
    state: Any = field(repr=False)
    iteration: Iteration = field(repr=False)
    tol: float = 1e-8
    maxit: int = 1000
    verbose: bool = False
    freq: int = 100


def solve(
    iteration: Iteration,
    tol: float = 1e-8,
    maxit: int = 1000,
    verbose: bool = False,
    freq: int = 100,
    state: Optional[Any] = None
) -> SolverResult:
    """
    Run ``iteration`` until its residual measure drops to ``tol`` or ``maxit``
    steps have been taken.

    Parameters
    ----------
    iteration : Iteration
        State machine to drive.
    tol : float
        Tolerance on ``iteration.residual_norm``.
    maxit : int
        Maximum number of steps.
    verbose : bool
        Print a diagnostics row every ``freq`` states (and for the final one).
    freq : int
        Display period.
    state : optional
        Start from this state instead of a fresh one (no re-initialization).

    Returns
    -------
    SolverResult
    """
    if maxit < 0:
        raise ValueError(f"maxit must be non-negative, got {maxit}")

    def stop(state):
        return iteration.residual_norm(state) <= tol

    def disp(item):
        iteration.display(*item)

    iterator = take(halt(iteration.iterate(state), stop), maxit + 1)
    iterator = enumerate(iterator)
    if verbose:
        iterator = tee(sample(iterator, freq), disp)
    _, (index, final_state) = loop(iterator)

    residual = iteration.residual_norm(final_state)
    return SolverResult(
        x=np.copy(iteration.solution(final_state)),
        iterations=index,
        converged=bool(residual <= tol),
        residual=residual,
        state=final_state,
        iteration=iteration,
        tol=tol,
        maxit=maxit,
        verbose=verbose,
        freq=freq
    )


def resume(result: SolverResult, maxit: Optional[int] = None, tol: Optional[float] = None) -> SolverResult:
    """
    Continue a previous run from its final state, without re-initializing.
    A run that already meets the tolerance takes zero further steps.
    """
    return solve(
        result.iteration,
        tol=result.tol if tol is None else tol,
        maxit=result.maxit if maxit is None else maxit,
        verbose=result.verbose,
        freq=result.freq,
        state=result.state
    )
