from .lbfgs import LBFGS, Noaccel
from .panoc import minimize as minimize_panoc
from .zerofpr import minimize as minimize_zerofpr
from .drls import minimize as minimize_drls

__all__ = [
    'minimize_panoc',
    'minimize_zerofpr',
    'minimize_drls'
]
