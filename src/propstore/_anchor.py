"""Data anchor — the engine object that holds all reactive bookkeeping.

Every store belongs to exactly one Engine. The engine owns the property
registry, the pending-change maps, the drafted-node list and the flag
for the deferred finalize pass. Behavior lives in the other modules;
this one only holds the data.

A default engine exists from import time. reset_store() swaps it for a
fresh one so tests stay isolated.
"""

from __future__ import annotations

import itertools
import logging
from typing import TYPE_CHECKING, Callable

from propstore.errors import StoreError

if TYPE_CHECKING:
    from propstore.prop import Prop
    from propstore.state import State

logger = logging.getLogger("propstore")

# Store ordinals are process-wide and never reused, not even after a reset.
_store_counter = itertools.count(0)


def next_store_ordinal() -> int:
    return next(_store_counter)


def _run_now(fn: Callable[[], None]) -> None:
    fn()


class PendingChange:
    """A write recorded against a Prop, checked for net change at finalize."""

    __slots__ = ("prop", "state", "admin", "key")

    def __init__(self, prop: Prop, state: State, admin: StoreAdmin, key) -> None:
        self.prop = prop
        self.state = state
        self.admin = admin
        self.key = key


class Engine:
    """Registry and scheduling state shared by a group of stores.

    scheduler: optional callable taking a zero-arg function; used to defer
        the finalize pass. Without one, a running asyncio loop is used, and
        outside a loop the pass runs when the outermost action exits.
    batched_updates: callable taking a zero-arg function that fires all
        collected subscriber callbacks as one UI update.
    """

    def __init__(
        self,
        *,
        scheduler: Callable[[Callable[[], None]], object] | None = None,
        batched_updates: Callable[[Callable[[], None]], object] | None = None,
    ) -> None:
        self.scheduler = scheduler
        self.batched_updates = batched_updates or _run_now

        # store name -> outer root view
        self.stores: dict[str, object] = {}
        # store name -> {path: Prop}; "<path>.keys()" entries are keys-props
        self.props: dict[str, dict[str, Prop]] = {}

        self.pending_changed: dict[Prop, PendingChange] = {}
        # computed prop -> value it had before this pass started changing it
        self.pending_changed_computed: dict[Prop, object] = {}
        # computed prop -> node props of store views it returned
        self.computed_observed: dict[Prop, set[Prop]] = {}
        self.drafts: list[State] = []

        self.scheduled = False
        self.finalizing = False
        self.deferred = False
        self.batch_depth = 0

    def __repr__(self) -> str:
        return f"Engine(stores={len(self.stores)}, scheduled={self.scheduled})"


class StoreAdmin:
    """Per-store bookkeeping: listeners, the inner store and the root node."""

    __slots__ = ("name", "engine", "subscribe_listeners", "root", "inner_store", "outer_store")

    def __init__(self, name: str, engine: Engine) -> None:
        self.name = name
        self.engine = engine
        self.subscribe_listeners: set[Callable[[set[str]], None]] = set()
        self.root: State | None = None
        self.inner_store = None
        self.outer_store = None

    def die(self, msg: str) -> StoreError:
        """Build the error for a protocol violation. Callers raise it."""
        return StoreError(f"[{self.name}] {msg}")

    def __repr__(self) -> str:
        return f"StoreAdmin({self.name})"


_engine = Engine()


def get_engine() -> Engine:
    """The default engine used by create_store() without an explicit one."""
    return _engine


def reset_engine() -> Engine:
    """Replace the default engine with a fresh one. Used for test isolation."""
    global _engine
    _engine = Engine()
    return _engine


def configure(
    *,
    debug: bool | None = None,
    scheduler: Callable[[Callable[[], None]], object] | None = None,
    batched_updates: Callable[[Callable[[], None]], object] | None = None,
) -> None:
    """Configure logging and the default engine's collaborators.

    Usage:
        configure_store(debug=True)
        configure_store(batched_updates=lambda fn: fn())
    """
    if debug is not None:
        logger.setLevel(logging.DEBUG if debug else logging.WARNING)
    if scheduler is not None:
        _engine.scheduler = scheduler
    if batched_updates is not None:
        _engine.batched_updates = batched_updates
