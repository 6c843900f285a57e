from .lilin import minimize as minimize_lilin

__all__ = [
    'minimize_lilin'
]
