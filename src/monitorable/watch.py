"""watch_prop(): subscribe a callback to one (target, key) pair.

The registry itself lives in _anchor. Each call creates a fresh
registration, so the same callback registered twice is cancelled twice.
"""

from __future__ import annotations

from typing import Any, Callable

from monitorable import _anchor
from monitorable._utils import get_indexes, get_map_value, safeify

Disposer = Callable[[], None]


def _noop() -> None:
    pass


def watch_prop(
    target: Any,
    prop: Any,
    cb: Callable[[], Any],
    disdeferable: bool = False,
) -> Disposer:
    """Call cb whenever mark_change(target, prop) happens. Returns a canceller.

    prop follows the usual key rules: False watches the target's class, True
    its shape. Invalid targets or keys give back a canceller that does
    nothing.
    """
    if not callable(cb):
        return _noop
    indexes = get_indexes(target, prop)
    if indexes is None:
        return _noop
    target, key = indexes

    entry = _anchor.watch_list.get(id(target))
    if entry is None or entry.target is not target:
        entry = _anchor.Watched(target)
        _anchor.watch_list[id(target)] = entry
    watchers = get_map_value(entry.props, key, dict)
    watcher = _anchor.Watcher(safeify(cb), bool(disdeferable))
    watchers[watcher] = None

    def cancel() -> None:
        if watcher.removed:
            return
        watcher.removed = True
        watchers.pop(watcher, None)
        if watchers:
            return
        if entry.props.get(key) is watchers:
            del entry.props[key]
        if entry.props:
            return
        if _anchor.watch_list.get(id(target)) is entry:
            del _anchor.watch_list[id(target)]

    return cancel
