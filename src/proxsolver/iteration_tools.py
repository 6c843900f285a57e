"""
Lazy combinators over anything that yields iteration states.

None of these know which algorithm produced the states. Each wrapper is
re-iterable: iterating it again re-iterates whatever it wraps, so a pipeline
built on an Iteration object starts a fresh run every time it is looped over.

States are mutated in place by the iterations, so an item yielded here is only
guaranteed to hold its values until the next item is requested.

Example:
    >>> iterator = take(halt(iteration, stop), maxit)
    >>> iterator = tee(sample(enumerate(iterator), freq), display)
    >>> count, (index, state) = loop(iterator)
"""
import builtins
from typing import Any, Callable, Iterable, Iterator, Tuple

_MISSING = object()


class Halt:
    def __init__(self, iterable: Iterable, predicate: Callable[[Any], bool]):
        self.iterable = iterable
        self.predicate = predicate

    def __iter__(self) -> Iterator:
        for item in self.iterable:
            stop = self.predicate(item)
            yield item
            if stop:
                return


class Take:
    def __init__(self, iterable: Iterable, n: int):
        self.iterable = iterable
        self.n = n

    def __iter__(self) -> Iterator:
        if self.n <= 0:
            return
        # Stop right after the n-th item so the (n+1)-th step is never computed
        for count, item in builtins.enumerate(self.iterable, start=1):
            yield item
            if count >= self.n:
                return


class Sample:
    def __init__(self, iterable: Iterable, period: int):
        if period < 1:
            raise ValueError(f"Sampling period must be positive, got {period}")
        self.iterable = iterable
        self.period = period

    def __iter__(self) -> Iterator:
        pending = _MISSING
        for index, item in builtins.enumerate(self.iterable):
            if index % self.period == 0:
                pending = _MISSING
                yield item
            else:
                pending = item
        if pending is not _MISSING:
            yield pending


class Tee:
    def __init__(self, iterable: Iterable, effect: Callable[[Any], Any]):
        self.iterable = iterable
        self.effect = effect

    def __iter__(self) -> Iterator:
        for item in self.iterable:
            self.effect(item)
            yield item


class Enumerate:
    def __init__(self, iterable: Iterable):
        self.iterable = iterable

    def __iter__(self) -> Iterator[Tuple[int, Any]]:
        return builtins.enumerate(self.iterable)


def halt(iterable: Iterable, predicate: Callable[[Any], bool]) -> Halt:
    """Stop right after the first item for which ``predicate`` is true; that item is yielded."""
    return Halt(iterable, predicate)


def take(iterable: Iterable, n: int) -> Take:
    """Yield at most ``n`` items."""
    return Take(iterable, n)


def sample(iterable: Iterable, period: int) -> Sample:
    """
    Yield items 0, period, 2*period, ... of ``iterable``.

    The last item is also yielded when it does not fall on the grid, so a
    consumer draining a sampled sequence always ends on the true final item.
    """
    return Sample(iterable, period)


def tee(iterable: Iterable, effect: Callable[[Any], Any]) -> Tee:
    """Yield the items of ``iterable`` unchanged, calling ``effect`` on each first."""
    return Tee(iterable, effect)


def enumerate(iterable: Iterable) -> Enumerate:
    """Pair each item with its 0-based position."""
    return Enumerate(iterable)


def loop(iterable: Iterable) -> Tuple[int, Any]:
    """Drain ``iterable``; return the number of items seen and the last one (None if empty)."""
    count, last = 0, None
    for last in iterable:
        count += 1
    return count, last
