from .forward_backward import minimize as minimize_forward_backward
from .forward_backward import minimize_fast as minimize_fast_forward_backward
from .douglas_rachford import minimize as minimize_douglas_rachford

__all__ = [
    'minimize_forward_backward',
    'minimize_fast_forward_backward',
    'minimize_douglas_rachford'
]
