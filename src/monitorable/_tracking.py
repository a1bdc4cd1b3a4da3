"""Dependency tracking engine: the heart of monitorable.

Uses contextvars to hold the ReadMap of the function currently being
observed. Every mark_read() call while a map is active records the
(target, key) pair it was given; the executable layer later turns those
pairs into watches.

Batching: mark_change() calls inside postpone() accumulate in a wait list
and are flushed once when the owning scope exits. Watchers registered as
disdeferable are the exception and still fire immediately.
"""

from __future__ import annotations

import contextvars
from contextlib import contextmanager
from typing import Any, Callable, Hashable, Iterator, Literal, TypeVar

from monitorable import _anchor
from monitorable._utils import get_indexes, get_map_value

T = TypeVar("T")

Postpone = bool | Literal["priority"]


class ReadMap:
    """Ordered target -> {key: already_changed} accumulator.

    Targets are keyed by identity, so unhashable objects (dicts, lists) can be
    recorded. The bool for a key starts False on first read and is set True
    when a deferred flush reports that key changed while this map was active.
    """

    __slots__ = ("_entries",)

    def __init__(self) -> None:
        self._entries: dict[int, tuple[object, dict[Hashable, bool]]] = {}

    def add(self, target: object, prop: Hashable) -> None:
        _, props = get_map_value(self._entries, id(target), lambda: (target, {}))
        if prop not in props:
            props[prop] = False

    def get(self, target: object) -> dict[Hashable, bool] | None:
        entry = self._entries.get(id(target))
        if entry is None or entry[0] is not target:
            return None
        return entry[1]

    def items(self) -> Iterator[tuple[object, dict[Hashable, bool]]]:
        return iter(list(self._entries.values()))

    def clear(self) -> None:
        self._entries.clear()

    def __getitem__(self, target: object) -> dict[Hashable, bool]:
        props = self.get(target)
        if props is None:
            raise KeyError(target)
        return props

    def __contains__(self, target: object) -> bool:
        return self.get(target) is not None

    def __iter__(self) -> Iterator[object]:
        return (target for target, _ in self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        inner = ", ".join(f"{t!r}: {list(p)!r}" for t, p in self._entries.values())
        return f"ReadMap({{{inner}}})"


# The recording map of the function currently being observed.
current_read: contextvars.ContextVar[ReadMap | None] = contextvars.ContextVar(
    "current_read", default=None
)

# Changes waiting for the owning postpone() scope to exit.
current_wait: contextvars.ContextVar[ReadMap | None] = contextvars.ContextVar(
    "current_wait", default=None
)


def mark_read(target: Any, prop: Any) -> None:
    """Record a read of target[prop] in the active ReadMap, if any."""
    read = current_read.get()
    if read is None:
        return
    indexes = get_indexes(target, prop)
    if indexes is None:
        return
    read.add(*indexes)


def observe(read_map: ReadMap, fn: Callable[[], T], *, postpone: Postpone = False) -> T:
    """Run fn with read_map recording its reads. Restores the previous map on exit.

    postpone=True runs fn inside a batching scope; "priority" forces a fresh
    one even when a batch is already open.
    """
    if not callable(fn):
        raise TypeError("fn needs to be a function")
    token = current_read.set(read_map)
    try:
        if not postpone:
            return fn()
        with batch(postpone == "priority"):
            return fn()
    finally:
        current_read.reset(token)


def _exec_watch(target: object, prop: Hashable, disdeferable_only: bool = False) -> None:
    for watcher in _anchor.get_watchers(target, prop):
        if watcher.removed:
            continue
        if disdeferable_only and not watcher.disdeferable:
            continue
        watcher.callback()


def _run_deferred(wait_list: ReadMap) -> None:
    # Snapshot every key first: a watcher that re-runs during the flush
    # has already seen all of this batch's changes.
    read = current_read.get()
    pending = []
    for target, props in wait_list.items():
        read_props = read.get(target) if read is not None else None
        for prop in props:
            pending.append((_anchor.get_watchers(target, prop), read_props, prop))
    for watchers, read_props, prop in pending:
        for watcher in watchers:
            if not watcher.removed and not watcher.disdeferable:
                watcher.callback()
        if read_props is not None and prop in read_props:
            read_props[prop] = True


@contextmanager
def batch(priority: bool = False):
    """Batching scope. Non-priority scopes join an enclosing batch."""
    enclosing = current_wait.get()
    wait_list = enclosing if enclosing is not None and not priority else ReadMap()
    token = current_wait.set(wait_list)
    try:
        yield
    finally:
        current_wait.reset(token)
        if wait_list is not enclosing:
            _run_deferred(wait_list)


def postpone(fn: Callable[[], T], priority: bool = False) -> T:
    """Run fn, deferring change notifications until the outermost scope exits."""
    if not callable(fn):
        raise TypeError("fn needs to be a function")
    with batch(priority):
        return fn()


def mark_change(target: Any, prop: Any) -> None:
    """Report that target[prop] changed and notify whoever watches it."""
    indexes = get_indexes(target, prop)
    if indexes is None:
        return
    target, prop = indexes
    wait_list = current_wait.get()
    if wait_list is not None:
        wait_list.add(target, prop)
        _exec_watch(target, prop, disdeferable_only=True)
        return
    _exec_watch(target, prop)
