class ProxSolverError(Exception):
    """Base class for errors raised by the iteration engine."""


class InfeasibleStart(ProxSolverError, ValueError):
    """The objective is not finite at the initial point, so no step is taken."""


class LipschitzEstimationFailure(ProxSolverError, ArithmeticError):
    """
    The stepsize could not be made to satisfy the quadratic upper bound of the
    smooth term: either the initial Lipschitz estimate is not finite, or the
    backtracking budget ran out. The smooth term is then not locally
    Lipschitz-smooth around the iterates.
    """
