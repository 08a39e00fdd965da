"""Tests for propstore.textual — Textual integration layer."""

import logging
import threading
from contextlib import contextmanager

import pytest
from textual.css.query import NoMatches

from propstore import create_store
from propstore import textual as stx


class _MockApp:
    """Minimal mock matching the Textual App interface stx needs."""

    def __init__(self, *, is_running=True):
        self.is_running = is_running
        self._call_from_thread_log = []
        self._batch_log = []

    def call_from_thread(self, fn, *args):
        self._call_from_thread_log.append((fn, args))
        fn(*args)

    @contextmanager
    def batch_update(self):
        self._batch_log.append("enter")
        yield
        self._batch_log.append("exit")


class Status:
    text = "idle"
    level = 1

    def set(self, **values):
        for key, value in values.items():
            setattr(self, key, value)


class TestReaction:
    def test_skips_when_not_running(self):
        app = _MockApp(is_running=False)
        status = create_store(Status())
        effects = []
        stx.reaction(app, lambda: status.text, effects.append)
        status.set(text="busy")
        assert effects == []

    def test_skips_during_pause(self):
        app = _MockApp()
        status = create_store(Status())
        effects = []
        stx.reaction(app, lambda: status.text, effects.append)
        with stx.pause(app):
            status.set(text="busy")
        assert effects == []

    def test_fires_when_safe(self):
        app = _MockApp()
        status = create_store(Status())
        effects = []
        stx.reaction(app, lambda: status.text, effects.append)
        status.set(text="busy")
        assert effects == ["busy"]

    def test_catches_nomatch(self):
        """NoMatches from widget queries are silently swallowed."""
        app = _MockApp()
        status = create_store(Status())

        def _raise_nomatch(v):
            raise NoMatches("StatusFooter")

        r = stx.reaction(app, lambda: status.text, _raise_nomatch)
        status.set(text="busy")
        r.dispose()

    def test_real_errors_are_logged(self, caplog):
        """Non-NoMatches exceptions reach the finalize pass, which logs them."""
        app = _MockApp()
        status = create_store(Status())

        def _raise_value_error(v):
            raise ValueError("boom")

        stx.reaction(app, lambda: status.text, _raise_value_error)
        with caplog.at_level(logging.ERROR, logger="propstore"):
            status.set(text="busy")
        assert "ValueError: boom" in caplog.text

    def test_dispose_stops_reaction(self):
        app = _MockApp()
        status = create_store(Status())
        effects = []
        r = stx.reaction(app, lambda: status.text, effects.append)
        status.set(text="busy")
        assert effects == ["busy"]
        r.dispose()
        status.set(text="idle")
        assert effects == ["busy"]

    def test_thread_marshal(self):
        """Triggers from background thread use call_from_thread."""
        app = _MockApp()
        status = create_store(Status())
        effects = []
        stx.reaction(app, lambda: status.text, effects.append)

        t = threading.Thread(target=lambda: status.set(text="busy"))
        t.start()
        t.join()

        assert effects == ["busy"]
        assert len(app._call_from_thread_log) >= 1


class TestAutorun:
    def test_skips_during_pause(self):
        app = _MockApp()
        status = create_store(Status())
        log = []

        stx.autorun(app, lambda: log.append(status.level))
        # autorun fires immediately on setup
        assert log == [1]

        with stx.pause(app):
            status.set(level=2)
        # Skipped during pause
        assert log == [1]

    def test_catches_nomatch(self):
        app = _MockApp()
        status = create_store(Status())
        call_count = [0]

        def _fn():
            call_count[0] += 1
            status.level  # track dependency
            if call_count[0] > 1:
                raise NoMatches("Widget")

        stx.autorun(app, _fn)
        assert call_count[0] == 1

        # Second run raises NoMatches, silently caught
        status.set(level=2)
        assert call_count[0] == 2

    def test_fires_when_safe(self):
        app = _MockApp()
        status = create_store(Status())
        log = []
        stx.autorun(app, lambda: log.append(status.level))
        status.set(level=2)
        assert log == [1, 2]


class TestPause:
    def test_pause_restores_on_exception(self):
        app = _MockApp()
        assert stx.is_safe(app)

        with pytest.raises(RuntimeError):
            with stx.pause(app):
                assert not stx.is_safe(app)
                raise RuntimeError("oops")

        assert stx.is_safe(app)

    def test_pause_does_not_mutate_app(self):
        app = _MockApp()
        attrs_before = set(vars(app))
        with stx.pause(app):
            attrs_during = set(vars(app))
        assert attrs_before == attrs_during
        assert attrs_before == set(vars(app))

    def test_multiple_apps_independent(self):
        app_a = _MockApp()
        app_b = _MockApp()
        with stx.pause(app_a):
            assert not stx.is_safe(app_a)
            assert stx.is_safe(app_b)


class TestBatchUpdate:
    def test_one_batch_per_pass(self):
        app = _MockApp()
        stx.use_batch_update(app)
        status = create_store(Status())
        log = []
        stx.autorun(app, lambda: log.append((status.text, status.level)))

        status.set(text="busy", level=3)
        assert log == [("idle", 1), ("busy", 3)]
        assert app._batch_log == ["enter", "exit"]
