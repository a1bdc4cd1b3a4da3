"""Actions and transactions: batched state mutations.

Wrapping mutations in an @action or `with transaction()` defers change
notifications until the outermost scope exits, so watchers see every
change at once instead of one at a time. Both are thin shells over the
same batching scope postpone() uses.
"""

from __future__ import annotations

import functools
from typing import Callable, ParamSpec, TypeVar

from monitorable._tracking import batch

P = ParamSpec("P")
R = TypeVar("R")


def action(fn: Callable[P, R]) -> Callable[P, R]:
    """Decorator: batch all change notifications raised inside fn.

    Usage:
        a = value(0)
        b = value(0)

        @action
        def swap():
            x, y = a(), b()
            a(y)
            b(x)
            # watchers run after swap() returns, once per changed cell
    """

    @functools.wraps(fn)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        with batch():
            return fn(*args, **kwargs)

    return wrapper


def transaction(priority: bool = False):
    """Context manager for batching mutations.

    priority=True opens an independent batch that flushes on its own exit,
    even when nested inside another one.

    Usage:
        with transaction():
            a(1)
            b(2)
            # watchers fire here, after both are set
    """
    return batch(priority)
