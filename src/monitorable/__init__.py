"""monitorable: fine-grained dependency tracking for Python objects."""

from importlib.metadata import version as _version

__version__ = _version("monitorable")

from monitorable._utils import (
    encashable,
    get_indexes,
    print_error,
    safe_call,
    safeify,
    set_print_error,
)
from monitorable._tracking import ReadMap, mark_change, mark_read, observe, postpone
from monitorable.watch import watch_prop
from monitorable.action import action, transaction
from monitorable.monitor import (
    ExecResult,
    Monitored,
    autorun,
    create_executable,
    execute,
    monitor,
)
from monitorable.value import Value, is_value, merge, value
from monitorable.computed import computed
from monitorable.encase import Encased, encase, equal, recover
# textual NOT auto-imported, opt-in only

__all__ = [
    "mark_read",
    "mark_change",
    "observe",
    "ReadMap",
    "postpone",
    "transaction",
    "action",
    "watch_prop",
    "Monitored",
    "monitor",
    "create_executable",
    "execute",
    "ExecResult",
    "autorun",
    "Value",
    "value",
    "computed",
    "is_value",
    "merge",
    "Encased",
    "encase",
    "recover",
    "equal",
    "print_error",
    "set_print_error",
    "safeify",
    "safe_call",
    "get_indexes",
    "encashable",
]
