"""Value cells: callable state that records its readers.

A cell is read with cell() or cell.value and written with cell(v) or
cell.value = v. Reading inside an observed function records a read of
(cell, "value"); a write that actually changes something marks that key
changed, which reaches both monitors and cell.watch() subscribers.
"""

from __future__ import annotations

from typing import Any, Callable, Generic, TypeVar

from monitorable._tracking import mark_change, mark_read
from monitorable._utils import recover, safe_call
from monitorable.encase import encase
from monitorable.watch import Disposer, watch_prop

T = TypeVar("T")

WatchCallback = Callable[["Value[T]", bool], Any]
Setter = Callable[[T, Callable[[], None]], None]

_UNSET = object()


def _noop() -> None:
    pass


def _unchanged(old: Any, new: Any) -> bool:
    return old is new or old == new


class Value(Generic[T]):
    """A readable, writable, watchable cell.

    getter produces the current value. setter(v, mark) stores a new one and
    calls mark() if anything changed; without a setter writes are ignored.
    on_stop runs once when the cell is stopped, on_change after every watcher
    is added or removed. peek, if given, returns (ready, current) without
    evaluating anything; repr() uses it.
    """

    __slots__ = (
        "_getter",
        "_setter",
        "_on_stop",
        "_on_change",
        "_peek",
        "_stop_list",
        "_stopped",
    )

    def __init__(
        self,
        getter: Callable[[], T],
        setter: Setter | None = None,
        on_stop: Callable[[], None] = _noop,
        on_change: Callable[[], None] = _noop,
        peek: Callable[[], tuple[bool, T]] | None = None,
    ) -> None:
        self._getter = getter
        self._setter = setter
        self._on_stop = on_stop
        self._on_change = on_change
        self._peek = peek
        # stopper -> None, in subscription order. None once stopped.
        self._stop_list: dict[Callable[[], None], None] | None = {}
        self._stopped = False

    def _get(self) -> T:
        mark_read(self, "value")
        return self._getter()

    def _set(self, v: T, mark: bool = False) -> None:
        if self._setter is None:
            return
        marked = mark

        def _mark() -> None:
            nonlocal marked
            marked = True

        try:
            self._setter(v, _mark)
        finally:
            if marked:
                self._trigger()

    def _trigger(self) -> None:
        mark_change(self, "value")

    def __call__(self, *args: T, mark: bool = False) -> T:
        if not args:
            return self._get()
        if len(args) > 1:
            raise TypeError(f"expected at most 1 value, got {len(args)}")
        self._set(args[0], mark)
        return args[0]

    @property
    def value(self) -> T:
        return self._get()

    @value.setter
    def value(self, v: T) -> None:
        self._set(v)

    @property
    def watched(self) -> bool:
        """Does anything watch this cell right now?"""
        return bool(self._stop_list)

    @property
    def stopped(self) -> bool:
        return self._stopped

    def watch(self, cb: WatchCallback, disdeferable: bool = False) -> Disposer:
        """Call cb(cell, False) on every change and cb(cell, True) once on stop.

        Returns a function that removes the subscription.
        """
        stop_list = self._stop_list
        if stop_list is None:
            return _noop
        cancel = watch_prop(self, "value", lambda: cb(self, False), disdeferable)
        cancelled = False

        def stop() -> None:
            nonlocal cancelled
            if cancelled:
                return
            cancelled = True
            if self._stop_list is not None:
                self._stop_list.pop(stop, None)
            cancel()
            safe_call(lambda: cb(self, True))

        def unwatch() -> None:
            nonlocal cancelled
            if cancelled:
                return
            cancelled = True
            if self._stop_list is not None:
                self._stop_list.pop(stop, None)
            cancel()
            self._on_change()

        stop_list[stop] = None
        self._on_change()
        return unwatch

    def stop(self) -> None:
        """End the cell. Watchers are told once, with stopped=True."""
        if self._stopped:
            return
        self._stopped = True
        self._on_stop()
        stop_list = self._stop_list
        self._stop_list = None
        for stop in list(stop_list or ()):
            stop()

    # --- Coercion: delegate to the current value ---

    def __str__(self) -> str:
        return str(self())

    def __format__(self, format_spec: str) -> str:
        return format(self(), format_spec)

    def __int__(self) -> int:
        return int(self())

    def __float__(self) -> float:
        return float(self())

    def __bool__(self) -> bool:
        return bool(self())

    def __repr__(self) -> str:
        state = ", stopped" if self._stopped else ""
        if self._peek is None:
            shown = repr(self._getter())
        else:
            ready, current = self._peek()
            shown = repr(current) if ready else "<pending>"
        return f"Value({shown}{state})"


def is_value(x: Any) -> bool:
    return isinstance(x, Value)


def value(initial: T, *, proxy: bool = False) -> Value[T]:
    """Create a plain mutable cell.

    With proxy=True the cell stores the unwrapped object and reads hand out
    encase() of it, so writes through the result are tracked.

    Usage:
        count = value(1)
        count()        # 1
        count(2)       # writes, notifies watchers
        count.value    # 2
        count(2)       # same value, nobody is notified
    """
    source: Any = _UNSET
    proxied: Any = None

    def setter(v: T, mark: Callable[[], None]) -> None:
        nonlocal source, proxied
        if proxy:
            v = recover(v)
        if source is not _UNSET and _unchanged(source, v):
            return
        source = v
        proxied = encase(v) if proxy else v
        mark()

    cell: Value[T] = Value(lambda: proxied, setter)
    cell(initial)
    return cell


def merge(cb: WatchCallback) -> WatchCallback:
    """Wrap a watch callback so it skips notifications that leave the value as it was."""
    last: Any = _UNSET

    def merged(cell: Value[T], stopped: bool) -> Any:
        nonlocal last
        if stopped:
            return cb(cell, stopped)
        current = recover(cell())
        if last is not _UNSET and _unchanged(last, current):
            return None
        last = current
        return cb(cell, stopped)

    return merged
