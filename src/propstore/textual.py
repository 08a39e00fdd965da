"""Textual integration for propstore. Opt-in, requires textual.

Guarded reactions that are safe to point at widgets: they skip while the
app is not running or its widget tree is being replaced, ignore
NoMatches from widget queries, and marshal calls made off the app's
thread through call_from_thread.
"""

import threading
from contextlib import contextmanager

from textual.css.query import NoMatches

from propstore._anchor import get_engine
from propstore.reaction import autorun as _autorun
from propstore.reaction import reaction as _reaction

# Apps whose widget tree is being rebuilt, by identity.
_paused_apps: set[int] = set()


@contextmanager
def pause(app):
    """Hold back guarded effects for app while its widgets are swapped out.

    Effects skipped while paused are not replayed.
    """
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """True when guarded effects may touch app's widgets."""
    return app.is_running and id(app) not in _paused_apps


def _guard(app, fn):
    main = threading.get_ident()

    def safe(*args):
        try:
            fn(*args)
        except NoMatches:
            pass

    def guarded(*args):
        if not is_safe(app):
            return
        if threading.get_ident() != main:
            app.call_from_thread(safe, *args)
        else:
            safe(*args)

    return guarded


def reaction(app, data_fn, effect_fn, *, fire_immediately=False):
    """reaction() whose effect is guarded for app."""
    return _reaction(data_fn, _guard(app, effect_fn), fire_immediately=fire_immediately)


def autorun(app, fn):
    """autorun() whose function is guarded for app.

    The function's reads are only tracked on runs that are not skipped.
    """
    return _autorun(_guard(app, fn))


def use_batch_update(app, engine=None):
    """Fire each pass's callbacks inside app.batch_update(), one repaint."""

    def batched_updates(fire):
        with app.batch_update():
            fire()

    (engine or get_engine()).batched_updates = batched_updates
