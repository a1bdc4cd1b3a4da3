"""encase(): transparent tracking wrappers over ordinary objects.

An Encased wrapper forwards attribute access, item access and the container
protocol to the object it wraps, marking a read or a change for each
operation. Code that was never written against cells can then be observed
as is:

    state = encase({"count": 0})
    doubled = computed(lambda: state["count"] * 2)
    state["count"] = 3      # doubled is invalidated

Key conventions: attribute names and item keys are property keys, True
stands for the shape of the object (which keys exist, its length), False
for its class. Methods and properties defined in Python run with the
wrapper as self, so reads inside them are tracked too. Builtin list, dict
and set methods are wrapped: readers record the whole contents, mutators
compare before and after and mark what changed.

Only the operations listed above are intercepted. Arithmetic, comparison
(other than ==) and context-manager protocols go to the wrapper itself and
are not supported.
"""

from __future__ import annotations

import functools
import types
from collections.abc import Mapping
from typing import Any, Callable, TypeVar

from monitorable._tracking import mark_change, mark_read
from monitorable._utils import encashable, equal, recover

T = TypeVar("T")

_UNSET = object()
_INF = float("inf")

_METHOD_TYPES = (types.MethodType, types.BuiltinMethodType, types.MethodWrapperType)

_MUTATORS: dict[type, frozenset[str]] = {
    list: frozenset({"append", "extend", "insert", "pop", "remove", "clear", "sort", "reverse"}),
    dict: frozenset({"update", "pop", "popitem", "clear", "setdefault"}),
    set: frozenset({
        "add", "discard", "remove", "pop", "clear", "update",
        "difference_update", "intersection_update", "symmetric_difference_update",
    }),
}

# Reader methods whose result is an element of the container.
_ITEM_GETTERS = frozenset({"get", "pop", "setdefault", "__getitem__"})

__all__ = ["Encased", "encase", "recover", "equal"]


def _state(proxy: Encased) -> tuple[Any, float, bool]:
    get = object.__getattribute__
    return get(proxy, "_target"), get(proxy, "_layer"), get(proxy, "_tracked")


def _nested(value: Any, layer: float) -> Any:
    if layer <= 0:
        return value
    return encase(value, True if layer == _INF else int(layer) - 1)


def _differs(old: Any, new: Any) -> bool:
    old, new = recover(old), recover(new)
    if old is new:
        return False
    if encashable(old) or encashable(new):
        return True
    return old != new


def _container_type(target: Any) -> type | None:
    for kind in (list, dict, set):
        if isinstance(target, kind):
            return kind
    return None


def _index(target: Any, key: Any) -> Any:
    """Negative sequence indices are recorded as the position they refer to."""
    if (
        isinstance(target, (list, tuple))
        and isinstance(key, int)
        and not isinstance(key, bool)
        and key < 0
    ):
        return key + len(target)
    return key


def _lookup_item(target: Any, key: Any) -> tuple[bool, Any]:
    if isinstance(target, (list, tuple)):
        if isinstance(key, int) and -len(target) <= key < len(target):
            return True, target[key]
        return False, _UNSET
    if isinstance(target, Mapping):
        if key in target:
            return True, target[key]
        return False, _UNSET
    try:
        return True, target[key]
    except (KeyError, IndexError):
        return False, _UNSET


def _lookup_class_attr(cls: type, name: str) -> Any:
    for klass in cls.__mro__:
        if name in klass.__dict__:
            return klass.__dict__[name]
    return _UNSET


def _get_attribute(target: Any, name: str, receiver: Encased) -> Any:
    """getattr(target, name), with Python-level methods and properties bound to receiver."""
    attr = _lookup_class_attr(type(target), name)
    if isinstance(attr, property):
        if attr.fget is None:
            raise AttributeError(f"property {name!r} has no getter")
        return attr.fget(receiver)
    if isinstance(attr, types.FunctionType):
        instance_dict = getattr(target, "__dict__", None)
        if not isinstance(instance_dict, dict) or name not in instance_dict:
            return types.MethodType(attr, receiver)
    return getattr(target, name)


def _set_attribute(target: Any, name: str, value: Any, receiver: Encased) -> None:
    attr = _lookup_class_attr(type(target), name)
    if isinstance(attr, property) and attr.fset is not None:
        attr.fset(receiver, value)
        return
    setattr(target, name, value)


def _delete_attribute(target: Any, name: str, receiver: Encased) -> None:
    attr = _lookup_class_attr(type(target), name)
    if isinstance(attr, property) and attr.fdel is not None:
        attr.fdel(receiver)
        return
    delattr(target, name)


def _mark_contents(target: Any) -> None:
    mark_read(target, True)
    if isinstance(target, (list, tuple)):
        for i in range(len(target)):
            mark_read(target, i)
    elif isinstance(target, dict):
        for key in list(target):
            mark_read(target, key)


def _snapshot(target: Any) -> Any:
    kind = _container_type(target)
    return kind(target) if kind is not None else None


def _mark_diff(target: Any, before: Any) -> None:
    if isinstance(target, list):
        if len(before) != len(target):
            mark_change(target, True)
        for i in range(max(len(before), len(target))):
            if i >= len(before) or i >= len(target) or _differs(before[i], target[i]):
                mark_change(target, i)
    elif isinstance(target, dict):
        if before.keys() != target.keys():
            mark_change(target, True)
        for key in [*before, *(k for k in target if k not in before)]:
            if (key in before) != (key in target) or _differs(before[key], target[key]):
                mark_change(target, key)
    elif isinstance(target, set):
        if before != target:
            mark_change(target, True)


def _container_method(target: Any, name: str, method: Any, layer: float) -> Any:
    kind = _container_type(target)
    if kind is None or getattr(method, "__self__", None) is not target:
        return method
    if name in _MUTATORS[kind]:

        @functools.wraps(method)
        def mutate(*args: Any, **kwargs: Any) -> Any:
            before = _snapshot(target)
            try:
                return method(*args, **kwargs)
            finally:
                _mark_diff(target, before)

        return mutate

    @functools.wraps(method)
    def read(*args: Any, **kwargs: Any) -> Any:
        _mark_contents(target)
        result = method(*args, **kwargs)
        if name in _ITEM_GETTERS:
            return _nested(result, layer)
        return result

    return read


class Encased:
    """Tracking wrapper around a single object. Build it with encase()."""

    __slots__ = ("_target", "_layer", "_tracked")

    def __init__(self, target: Any, nest: bool | float = 0) -> None:
        if nest is True:
            layer = _INF
        elif nest is False or not nest:
            layer = 0
        else:
            layer = nest
        object.__setattr__(self, "_target", target)
        object.__setattr__(self, "_layer", layer)
        object.__setattr__(self, "_tracked", nest is not False)

    def __monitorable_recover__(self) -> Any:
        return object.__getattribute__(self, "_target")

    # --- Attributes ---

    def __getattribute__(self, name: str) -> Any:
        target, layer, tracked = _state(self)
        if not tracked:
            return getattr(target, name)
        if name == "__class__":
            mark_read(target, False)
            return type(target)
        mark_read(target, name)
        attr = _get_attribute(target, name, self)
        if isinstance(attr, _METHOD_TYPES):
            return _container_method(target, name, attr, layer)
        return _nested(attr, layer)

    def __setattr__(self, name: str, value: Any) -> None:
        target, _, tracked = _state(self)
        if not tracked:
            setattr(target, name, value)
            return
        if name == "__class__":
            old = type(target)
            target.__class__ = value
            if type(target) is not old:
                mark_change(target, False)
            return
        old = getattr(target, name, _UNSET)
        _set_attribute(target, name, value, self)
        new = getattr(target, name, _UNSET)
        if (old is _UNSET) != (new is _UNSET):
            mark_change(target, True)
        if _differs(old, new):
            mark_change(target, name)

    def __delattr__(self, name: str) -> None:
        target, _, tracked = _state(self)
        if not tracked:
            delattr(target, name)
            return
        old = getattr(target, name, _UNSET)
        _delete_attribute(target, name, self)
        new = getattr(target, name, _UNSET)
        if _differs(old, new):
            mark_change(target, name)
        if old is not _UNSET and new is _UNSET:
            mark_change(target, True)

    def __dir__(self) -> list[str]:
        target, _, tracked = _state(self)
        if tracked:
            mark_read(target, True)
        return dir(target)

    # --- Items ---

    def __getitem__(self, key: Any) -> Any:
        target, layer, tracked = _state(self)
        if not tracked:
            return target[key]
        if isinstance(key, slice):
            mark_read(target, True)
            for i in range(len(target))[key]:
                mark_read(target, i)
        else:
            mark_read(target, _index(target, key))
        return _nested(target[key], layer)

    def __setitem__(self, key: Any, value: Any) -> None:
        target, _, tracked = _state(self)
        if not tracked:
            target[key] = value
            return
        if isinstance(key, slice):
            before = _snapshot(target)
            target[key] = value
            _mark_diff(target, before)
            return
        has, old = _lookup_item(target, key)
        target[key] = value
        _, new = _lookup_item(target, key)
        if not has:
            mark_change(target, True)
        if _differs(old, new):
            mark_change(target, _index(target, key))

    def __delitem__(self, key: Any) -> None:
        target, _, tracked = _state(self)
        if not tracked:
            del target[key]
            return
        if isinstance(key, slice) or isinstance(target, list):
            before = _snapshot(target)
            del target[key]
            _mark_diff(target, before)
            return
        has, _ = _lookup_item(target, key)
        del target[key]
        if has and not _lookup_item(target, key)[0]:
            mark_change(target, key)
            mark_change(target, True)

    # --- Shape ---

    def __contains__(self, item: Any) -> bool:
        target, _, tracked = _state(self)
        if tracked:
            mark_read(target, True)
        return item in target

    def __len__(self) -> int:
        target, _, tracked = _state(self)
        if tracked:
            mark_read(target, True)
        return len(target)

    def __iter__(self):
        target, layer, tracked = _state(self)
        if not tracked:
            return iter(target)
        mark_read(target, True)
        if isinstance(target, (list, tuple)):
            for i in range(len(target)):
                mark_read(target, i)
        return (_nested(item, layer) for item in target)

    def __bool__(self) -> bool:
        target, _, tracked = _state(self)
        if tracked:
            mark_read(target, True)
        return bool(target)

    # --- Plumbing ---

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        target, _, _ = _state(self)
        return target(*args, **kwargs)

    def __eq__(self, other: Any) -> bool:
        target, _, _ = _state(self)
        return target == recover(other)

    def __hash__(self) -> int:
        target, _, _ = _state(self)
        return hash(target)

    def __str__(self) -> str:
        target, _, _ = _state(self)
        return str(target)

    def __repr__(self) -> str:
        target, _, _ = _state(self)
        return f"encase({target!r})"


def encase(value: T, nest: bool | float = 0) -> T:
    """Wrap value so that reads and writes through the wrapper are tracked.

    nest is how many levels of returned values get wrapped as well: 0 (the
    default) wraps only value itself, True wraps everything reachable. False
    returns a wrapper that tracks nothing at all.
    Primitives are returned unchanged; wrapping a wrapper wraps its original.
    """
    if not encashable(value):
        return value
    return Encased(recover(value), nest)  # type: ignore[return-value]
