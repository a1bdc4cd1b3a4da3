"""Textual integration for monitorable. Opt-in, requires textual.

Widget callbacks are guarded here, not at call sites: they are skipped
while the app is paused or not running, marshalled onto the app thread when
a change arrives from another thread, and NoMatches from widget queries is
swallowed because the widget being updated may simply not be mounted yet.
"""

import logging
import threading
from contextlib import contextmanager

from textual.css.query import NoMatches

from monitorable import autorun as _autorun

logger = logging.getLogger("monitorable.textual")

# Module-owned pause state, keyed by id(app) so multiple apps work in tests.
_paused_apps: set[int] = set()


@contextmanager
def pause(app):
    """Suspend guarded callbacks during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


def _guard(app, fn):
    main = threading.get_ident()

    def _safe(*args):
        try:
            fn(*args)
        except NoMatches:
            logger.debug("Widget query found nothing; skipped %r", fn)

    def _guarded(*args):
        if not is_safe(app):
            return
        if threading.get_ident() != main:
            app.call_from_thread(_safe, *args)
        else:
            _safe(*args)

    return _guarded


def watch(app, cell, effect):
    """cell.watch() that calls effect(current_value) safely for Textual widgets.

    Returns the canceller from cell.watch(). The final stop notification is
    not forwarded.
    """
    guarded = _guard(app, effect)

    def _on_change(v, stopped):
        if not stopped:
            guarded(v())

    return cell.watch(_on_change)


def autorun(app, fn):
    """autorun() that safely bridges to Textual widgets.

    A run skipped by the guard reads nothing, so the runner stops watching
    until it is called again.
    """
    return _autorun(_guard(app, fn))
