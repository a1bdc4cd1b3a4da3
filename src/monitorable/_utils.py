"""Small shared helpers: error reporting, safe calls, key normalisation.

Listener callbacks never raise into the engine. Anything they throw is
handed to the error hook, which logs by default and can be replaced with
set_print_error().
"""

from __future__ import annotations

import functools
import logging
import math
import numbers
from typing import Any, Callable, Hashable, TypeVar

logger = logging.getLogger("monitorable")

K = TypeVar("K")
V = TypeVar("V")

Key = Hashable

# Class-level attribute an unwrappable wrapper type exposes. Looked up on the
# type so that reading it never goes through an instance's tracking traps.
RECOVER = "__monitorable_recover__"

_PRIMITIVES = (str, bytes, int, float, complex)

_print_error_hook: Callable[[BaseException], None] | None = None


def print_error(error: BaseException) -> None:
    """Report an error raised by a listener."""
    if _print_error_hook is not None:
        _print_error_hook(error)
        return
    logger.error("Unhandled error in monitorable callback", exc_info=error)


def set_print_error(hook: Callable[[BaseException], None] | None = None) -> None:
    """Install a global error hook. None (or a non-callable) restores logging."""
    global _print_error_hook
    _print_error_hook = hook if callable(hook) else None


def safeify(fn: Callable[..., Any]) -> Callable[..., None]:
    """Wrap fn so that anything it raises is reported instead of propagated."""

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> None:
        try:
            fn(*args, **kwargs)
        except Exception as e:
            print_error(e)

    return wrapper


def safe_call(fn: Callable[[], Any]) -> None:
    try:
        fn()
    except Exception as e:
        print_error(e)


def encashable(v: Any) -> bool:
    """Can v be tracked as a target (i.e. is it not a primitive)?"""
    # type() rather than isinstance(): isinstance() falls back to reading
    # v.__class__, which a tracking wrapper records.
    return v is not None and not issubclass(type(v), _PRIMITIVES)


def recover(v: V) -> V:
    """Return the original object behind a tracking wrapper, or v itself."""
    if not encashable(v):
        return v
    unwrap = getattr(type(v), RECOVER, None)
    if unwrap is None:
        return v
    return unwrap(v)


def equal(a: Any, b: Any) -> bool:
    return recover(a) is recover(b)


def get_indexes(target: Any, prop: Any) -> tuple[Any, Key] | None:
    """Normalise a (target, prop) pair, or return None if it can't be tracked.

    False stands for the target's class, True for its shape (membership and
    key set). Real numbers become their string form so list indices and dict
    keys match between reads and writes; 2.0 and 2 share the key "2".
    """
    if not encashable(target):
        return None
    target = recover(target)
    if isinstance(prop, bool) or isinstance(prop, str):
        return target, prop
    if isinstance(prop, numbers.Integral):
        return target, str(int(prop))
    if isinstance(prop, numbers.Real):
        if math.isfinite(prop) and prop == int(prop):
            return target, str(int(prop))
        return target, str(prop)
    if prop is None:
        return None
    try:
        hash(prop)
    except TypeError:
        return None
    return target, prop


def get_map_value(mapping: dict[K, V], key: K, default: Callable[[], V]) -> V:
    """dict get-or-create."""
    if key in mapping:
        return mapping[key]
    value = default()
    mapping[key] = value
    return value
