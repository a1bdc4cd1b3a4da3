"""Computed values: derived cells with automatic dependency tracking.

A computed cell wraps a getter in a Monitored. The first read runs it and
caches the result; the cache stays valid until something the getter read
changes. Reads are lazy, except that a watched cell re-evaluates right after
an invalidation so its dependencies stay watched.
"""

from __future__ import annotations

from typing import Any, Callable, TypeVar

from monitorable._tracking import Postpone, mark_change
from monitorable._utils import recover, safe_call
from monitorable.encase import encase
from monitorable.monitor import Monitored
from monitorable.value import Value

T = TypeVar("T")


def computed(
    getter: Callable[[], T],
    setter: Callable[[T], Any] | None = None,
    *,
    postpone: Postpone = False,
    deferable: bool = False,
    proxy: bool = False,
) -> Value[T]:
    """Create a cell whose value is getter(), recomputed when its inputs change.

    setter, if given, receives writes; it is expected to update whatever the
    getter reads. Without it writes are ignored. deferable=True lets the
    getter's invalidation wait for an enclosing batch instead of happening
    immediately. proxy=True unwraps the getter's result and hands out
    encase() of it.

    Usage:
        count = value(5)
        doubled = computed(lambda: count() * 2)
        doubled()   # 10
        count(10)
        doubled()   # 20
    """
    if not callable(getter):
        raise TypeError("getter needs to be a function")
    if setter is not None and not callable(setter):
        raise TypeError("setter needs to be a function")

    result: Any = None
    is_computed = False
    stopped = False
    cell: Value[T] | None = None

    def on_change(changed: bool) -> None:
        nonlocal is_computed
        is_computed = not changed
        if not changed or cell is None:
            return
        mark_change(cell, "value")
        if cell.watched and not is_computed and not stopped:
            run()

    executable = Monitored(on_change, getter, postpone=postpone, disdeferable=not deferable)

    def run() -> T:
        nonlocal result, is_computed
        is_computed = True
        try:
            result = executable()
            if proxy:
                result = encase(recover(result))
        except Exception:
            if not stopped:
                is_computed = False
            raise
        return result

    def get() -> T:
        if is_computed or stopped:
            return result
        return run()

    def on_stop() -> None:
        nonlocal stopped
        stopped = True
        if not is_computed:
            safe_call(run)
        executable.stop()

    def on_watch() -> None:
        if cell is not None and cell.watched and not is_computed and not stopped:
            safe_call(run)

    write = None
    if setter is not None:
        write = lambda v, mark: setter(v)  # noqa: E731

    def peek() -> tuple[bool, T]:
        return is_computed or stopped, result

    cell = Value(get, write, on_stop, on_watch, peek)
    return cell
