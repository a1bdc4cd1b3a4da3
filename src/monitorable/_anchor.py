"""Data anchor: plain Python structures that hold the watch registry.

watch_list maps id(target) to the target itself plus its per-key watcher
sets. Holding the target keeps its id from being reused while anything
watches it; the whole entry is dropped as soon as its last watcher is.
"""

from __future__ import annotations

from typing import Callable, Hashable


class Watcher:
    """One registration: compared by identity, never by callback."""

    __slots__ = ("callback", "disdeferable", "removed")

    def __init__(self, callback: Callable[[], None], disdeferable: bool) -> None:
        self.callback = callback
        self.disdeferable = disdeferable
        self.removed = False

    def __repr__(self) -> str:
        state = "removed" if self.removed else "active"
        return f"Watcher({self.callback!r}, disdeferable={self.disdeferable}, {state})"


class Watched:
    __slots__ = ("target", "props")

    def __init__(self, target: object) -> None:
        self.target = target
        # key -> ordered set of watchers (dict used for insertion order)
        self.props: dict[Hashable, dict[Watcher, None]] = {}


watch_list: dict[int, Watched] = {}


def get_watchers(target: object, prop: Hashable) -> list[Watcher]:
    """Snapshot of the watchers registered on (target, prop)."""
    entry = watch_list.get(id(target))
    if entry is None or entry.target is not target:
        return []
    watchers = entry.props.get(prop)
    if not watchers:
        return []
    return list(watchers)
