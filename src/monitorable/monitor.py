"""Monitored functions: run a function, watch what it read, report changes.

A Monitored wraps fn and a callback cb(changed). After each run the keys fn
read become watches; the first change to any of them cancels all of them and
calls cb(True). A run that read nothing, or raised, calls cb(False)
straight away. Nothing re-runs fn automatically except autorun();
callers decide what a change means.
"""

from __future__ import annotations

from typing import Any, Callable, Generic, NamedTuple, TypeVar

from monitorable._tracking import Postpone, ReadMap, observe
from monitorable._utils import safeify
from monitorable.watch import watch_prop

T = TypeVar("T")


class Monitored(Generic[T]):
    """A callable that tracks the reads of each run and watches them."""

    __slots__ = ("_fn", "_cb", "_postpone", "_disdeferable", "_cancel_list", "_stopped")

    def __init__(
        self,
        cb: Callable[[bool], Any],
        fn: Callable[..., T],
        *,
        postpone: Postpone = False,
        disdeferable: bool = False,
    ) -> None:
        if not callable(cb):
            raise TypeError("cb needs to be a function")
        if not callable(fn):
            raise TypeError("fn needs to be a function")
        self._fn = fn
        self._cb = safeify(cb)
        self._postpone = postpone
        self._disdeferable = disdeferable
        self._cancel_list: list[Callable[[], None]] | None = None
        self._stopped = False

    @property
    def watching(self) -> bool:
        return self._cancel_list is not None

    @property
    def stopped(self) -> bool:
        return self._stopped

    def __call__(self, *args: Any, **kwargs: Any) -> T:
        if self._stopped:
            return self._fn(*args, **kwargs)
        self._cancel()
        read_map = ReadMap()
        try:
            return observe(read_map, lambda: self._fn(*args, **kwargs), postpone=self._postpone)
        except Exception:
            # Partial reads of a failed run are not worth watching: settle.
            read_map.clear()
            raise
        finally:
            self._watch(read_map)

    def _cancel(self) -> bool:
        if self._cancel_list is None:
            return False
        cancel_list = self._cancel_list
        self._cancel_list = None
        for cancel in cancel_list:
            cancel()
        return True

    def _trigger(self) -> None:
        if not self._cancel():
            return
        self._cb(True)

    def _watch(self, read_map: ReadMap) -> None:
        if not read_map:
            self._cb(False)
            return
        pairs = []
        for target, props in read_map.items():
            for prop, changed in props.items():
                if changed:
                    # Changed during its own run: already stale.
                    self._cb(True)
                    return
                pairs.append((target, prop))
        self._cancel_list = [
            watch_prop(target, prop, self._trigger, self._disdeferable)
            for target, prop in pairs
        ]

    def stop(self) -> None:
        """Cancel all watches for good. Calls cb(False) if anything was watched."""
        self._stopped = True
        if not self._cancel():
            return
        self._cb(False)

    def __repr__(self) -> str:
        if self._stopped:
            state = "stopped"
        elif self._cancel_list is not None:
            state = f"watching {len(self._cancel_list)}"
        else:
            state = "idle"
        name = getattr(self._fn, "__name__", repr(self._fn))
        return f"Monitored({name}, {state})"


def monitor(
    cb: Callable[[bool], Any],
    fn: Callable[..., T],
    *,
    postpone: Postpone = False,
    disdeferable: bool = False,
) -> Monitored[T]:
    """Wrap fn so every call tracks its reads; cb(changed) reports the outcome.

    Usage:
        count = value(0)
        log = []

        doubled = monitor(lambda changed: log.append(changed), lambda: count() * 2)
        doubled()   # 0, count is now watched
        count(1)    # log == [True]
        doubled()   # 2, watching again
        doubled.stop()  # log == [True, False]
    """
    return Monitored(cb, fn, postpone=postpone, disdeferable=disdeferable)


def create_executable(fn: Callable[[], T], cb: Callable[[bool], Any]) -> Monitored[T]:
    """Zero-argument monitor with the function first."""
    return Monitored(cb, fn)


class ExecResult(NamedTuple):
    result: Any
    stop: Callable[[], None]


def execute(
    fn: Callable[[], T],
    cb: Callable[[bool], Any],
    *,
    postpone: Postpone = False,
    disdeferable: bool = False,
    result_only: bool = False,
) -> ExecResult | T:
    """Run fn once, watching its reads until the first change or stop().

    Returns ExecResult(result, stop), or just the result with result_only=True.
    """
    monitored = Monitored(cb, fn, postpone=postpone, disdeferable=disdeferable)
    result = monitored()
    if result_only:
        return result
    return ExecResult(result, monitored.stop)


def autorun(fn: Callable[[], Any]) -> Monitored[Any]:
    """Run fn immediately, then again whenever anything it read changes.

    Returns the Monitored (call .stop() to end).

    Usage:
        name = value("a")
        log = []
        runner = autorun(lambda: log.append(name()))
        # log == ["a"]
        name("b")
        # log == ["a", "b"]
        runner.stop()
    """
    if not callable(fn):
        raise TypeError("fn needs to be a function")
    monitored: Monitored[Any]

    def on_change(changed: bool) -> None:
        if changed and not monitored.stopped:
            monitored()

    monitored = Monitored(on_change, fn)
    monitored()
    return monitored
