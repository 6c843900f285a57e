# Import all solvers from subdirectories
from .splitting import *
from .quasi_newton import *
from .nonconvex import *

# Combine all __all__ lists from subdirectories
__all__ = []

from proxsolver.algorithms.splitting import __all__ as splitting_all
__all__.extend(splitting_all)

from proxsolver.algorithms.quasi_newton import __all__ as quasi_newton_all
__all__.extend(quasi_newton_all)

from proxsolver.algorithms.nonconvex import __all__ as nonconvex_all
__all__.extend(nonconvex_all)

# Create a mapping of solver names to functions
SOLVERS = {}

for name in __all__:
    if name.startswith('minimize_'):
        SOLVERS[name] = globals()[name]

# State machines behind each solver, for driving them step by step
from proxsolver.algorithms.splitting.forward_backward import ForwardBackwardIteration, FastForwardBackwardIteration
from proxsolver.algorithms.splitting.douglas_rachford import DouglasRachfordIteration
from proxsolver.algorithms.quasi_newton.panoc import PANOCIteration
from proxsolver.algorithms.quasi_newton.zerofpr import ZeroFPRIteration
from proxsolver.algorithms.quasi_newton.drls import DRLSIteration
from proxsolver.algorithms.nonconvex.lilin import LiLinIteration

ITERATIONS = {
    'minimize_forward_backward': ForwardBackwardIteration,
    'minimize_fast_forward_backward': FastForwardBackwardIteration,
    'minimize_douglas_rachford': DouglasRachfordIteration,
    'minimize_panoc': PANOCIteration,
    'minimize_zerofpr': ZeroFPRIteration,
    'minimize_drls': DRLSIteration,
    'minimize_lilin': LiLinIteration,
}
