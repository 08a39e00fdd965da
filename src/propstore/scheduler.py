"""Batched commit scheduler — one deferred finalize pass per turn.

Writes go to drafts immediately; committing them and notifying
consumers is deferred. All writes of one synchronous turn are coalesced
into a single finalize pass, and writes that net out to no change
notify nobody.

Where the pass runs:
- through the engine's `scheduler` callable, if one is configured;
- else on the running asyncio loop via call_soon;
- else when the outermost action / transaction exits (or immediately
  for a write made outside any batch).
"""

from __future__ import annotations

import asyncio
import itertools
from contextlib import contextmanager
from typing import TYPE_CHECKING, Callable

from propstore._anchor import get_engine, logger
from propstore.computed import computed_changed, get_computed_value
from propstore.prop import get_store_prop
from propstore.state import MISSING, State, is_state_changed, is_state_keys_changed

if TYPE_CHECKING:
    from propstore._anchor import Engine, StoreAdmin
    from propstore.prop import Prop, Subscriber


def begin_batch(engine: Engine) -> None:
    """Enter a batching scope. Nested batches are supported."""
    engine.batch_depth += 1


def end_batch(engine: Engine) -> None:
    """Exit a batching scope. The outermost exit runs a deferred pass."""
    engine.batch_depth -= 1
    if engine.batch_depth == 0 and engine.deferred and not engine.finalizing:
        run_finalize(engine)


@contextmanager
def batch(engine: Engine):
    begin_batch(engine)
    try:
        yield
    finally:
        end_batch(engine)


def schedule_finalize(engine: Engine) -> None:
    """Ask for a finalize pass. Only the first call per turn enqueues one."""
    if engine.scheduled:
        return
    engine.scheduled = True

    if engine.scheduler is not None:
        engine.scheduler(lambda: run_finalize(engine))
        return

    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        engine.deferred = True
        if engine.batch_depth == 0 and not engine.finalizing:
            run_finalize(engine)
        return

    loop.call_soon(run_finalize, engine)


def run_finalize(engine: Engine) -> None:
    """Run the pass. The flag is cleared first so writes made while
    notifying start a fresh pass instead of re-entering this one."""
    while True:
        engine.scheduled = False
        engine.deferred = False
        engine.finalizing = True
        try:
            finalize(engine)
        finally:
            engine.finalizing = False
        if not (engine.deferred and engine.batch_depth == 0):
            break


def flush(engine: Engine | None = None) -> None:
    """Run a scheduled pass now instead of waiting for it."""
    engine = engine or get_engine()
    if engine.scheduled and not engine.finalizing:
        run_finalize(engine)


def get_pending_count(engine: Engine | None = None) -> int:
    """Number of writes waiting for the next pass. Useful for testing."""
    engine = engine or get_engine()
    return len(engine.pending_changed)


# ─── Finalize ────────────────────────────────────────────────────────────────


def _commit_chain(
    state: State,
    changed_all: set[Prop],
    callbacks: dict[Subscriber, None],
    committed: set[State],
) -> None:
    """Commit a changed node and every ancestor, expiring their views."""
    while state is not None and state not in committed:
        committed.add(state)
        state.expired = True
        if state.copy is not None:
            state.base = state.copy
            state.copy = None

        admin = state.admin
        prop = get_store_prop(admin.engine, admin.name, state.name)
        callbacks.update(dict.fromkeys(prop.deep_subscribers))
        changed_all.add(prop)

        state = state.parent


def _settle(drafts: list[State]) -> None:
    """Commit drafts whose writes netted out. Nobody is notified."""
    for state in drafts:
        if state.copy is not None:
            state.base = state.copy
            state.copy = None


def _collect(prop: Prop, callbacks: dict[Subscriber, None], seen: set[Prop]) -> None:
    """Gather subscribers of a changed prop and of computeds downstream.

    A computed's subscribers are only gathered when its value really
    changed during this pass.
    """
    if prop in seen:
        return
    seen.add(prop)

    if prop.subscribers:
        changed = True
        computed = prop.computed
        if computed is not None:
            pending = computed.admin.engine.pending_changed_computed
            try:
                if computed.changed:
                    get_computed_value(prop)
                changed = pending.pop(prop, MISSING) is not MISSING
            except Exception:
                logger.exception("Computed %s failed while finalizing", prop.name)
        if changed:
            callbacks.update(dict.fromkeys(prop.subscribers))

    for computer in list(prop.subscribe_computers):
        _collect(computer, callbacks, seen)


def _fire(callbacks: list[Callable[[], None]]) -> None:
    for callback in callbacks:
        try:
            callback()
        except Exception:
            logger.exception("Subscriber %r failed", callback)


def finalize(engine: Engine) -> None:
    """Commit all pending writes and notify, once."""
    if not engine.pending_changed:
        return

    pending = list(engine.pending_changed.values())
    engine.pending_changed.clear()
    drafts = engine.drafts
    engine.drafts = []

    changed_direct: dict[Prop, State | None] = {}
    changed_all: set[Prop] = set()
    listener_names: dict[StoreAdmin, set[str]] = {}

    for change in pending:
        prop, state = change.prop, change.state
        if not is_state_changed(state, change.key):
            continue

        changed_direct[prop] = state
        changed_all.add(prop)

        if prop.keys_prop is not None and is_state_keys_changed(state, change.key):
            changed_direct[prop.keys_prop] = None
            changed_all.add(prop.keys_prop)

        if change.admin.subscribe_listeners:
            listener_names.setdefault(change.admin, set()).add(prop.name)

    if not changed_direct:
        _settle(drafts)
        engine.pending_changed_computed.clear()
        return

    logger.debug("finalize... %s", ", ".join(sorted({c.admin.name for c in pending})))

    callbacks: dict[Subscriber, None] = {}
    committed: set[State] = set()
    for prop, state in changed_direct.items():
        # The value at this path was replaced: its whole subtree changed.
        callbacks.update(dict.fromkeys(prop.deep_subscribers))
        if state is not None:
            _commit_chain(state, changed_all, callbacks, committed)
    _settle(drafts)

    # Computeds returning store views depend on those whole subtrees.
    revalidate = [
        computed_prop
        for computed_prop, props in engine.computed_observed.items()
        if not props.isdisjoint(changed_all)
    ]
    for computed_prop in revalidate:
        computed_changed(computed_prop)

    seen: set[Prop] = set()
    for prop in itertools.chain(changed_direct, revalidate):
        _collect(prop, callbacks, seen)
    engine.pending_changed_computed.clear()

    for admin, names in listener_names.items():
        for listener in list(admin.subscribe_listeners):
            try:
                listener(set(names))
            except Exception:
                logger.exception("Store listener of %s failed", admin.name)

    if callbacks:
        batch_list = list(callbacks)
        try:
            engine.batched_updates(lambda: _fire(batch_list))
        except Exception:
            logger.exception("Batched update failed")
