"""Store — wraps a plain object into a reactive store.

create_store() returns the outer (read-only) root view. Consumers read
through it; its methods are actions bound to the inner view, which is
the only place writes are allowed.

Usage:
    class Counter:
        count = 0

        def increment(self):
            self.count += 1

        @computed
        def double(self):
            return self.count * 2

    counter = create_store(Counter())
    counter.increment()
    counter.double  # 2
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, TypeVar

from propstore._anchor import (
    StoreAdmin,
    configure,
    get_engine,
    logger,
    next_store_ordinal,
    reset_engine,
)
from propstore.errors import StoreError
from propstore.members import fill_defaults
from propstore.scheduler import batch
from propstore.state import State, StateView, kind_of
from propstore.views import view_of

if TYPE_CHECKING:
    from propstore._anchor import Engine

T = TypeVar("T")
R = TypeVar("R")

configure_store = configure


def _scan(admin: StoreAdmin, value) -> None:
    """Reject private attribute names and non-string dict keys anywhere."""
    stack = [(value, admin.name)]
    seen: set[int] = set()
    while stack:
        value, path = stack.pop()
        kind = kind_of(value)
        if kind is None or id(value) in seen:
            continue
        seen.add(id(value))

        if kind == "list":
            stack.extend((item, f"{path}.{index}") for index, item in enumerate(value))
            continue

        items = value.items() if kind == "dict" else vars(value).items()
        for key, item in items:
            if not isinstance(key, str):
                raise admin.die(f"Non-string key {key!r} in {path} is not supported!")
            if kind == "object" and key.startswith("_"):
                raise admin.die(f"Private props({path}.{key}) are not supported in Store!")
            stack.append((item, f"{path}.{key}"))


def create_store(target: T, *, store_name: str | None = None, engine: Engine | None = None) -> T:
    """Wrap `target` (a plain object) and return its outer root view.

    The store name is `<store_name or ClassName>@S<ordinal>`. Class-level
    plain fields missing on the instance are deep-copied onto it.
    """
    prefix = store_name or type(target).__name__
    if kind_of(target) != "object":
        raise StoreError(f"[{prefix}] Store target must be a plain object, got {target!r}")
    if "." in prefix:
        raise StoreError(f"[{prefix}] Store name must not contain '.'")

    fill_defaults(target)

    engine = engine or get_engine()
    name = f"{prefix}@S{next_store_ordinal()}"
    admin = StoreAdmin(name, engine)
    _scan(admin, target)

    engine.props[name] = {}
    admin.root = State(name, admin, target, is_root=True)
    admin.inner_store = view_of(admin.root, True)
    admin.outer_store = view_of(admin.root, False)
    engine.stores[name] = admin.outer_store

    logger.debug("create store: %s", name)
    return admin.outer_store


def admin_of(store) -> StoreAdmin:
    if not isinstance(store, StateView):
        raise TypeError(f"{store!r} is not a store")
    return store._node.admin


def subscribe_store(store, listener: Callable[[set[str]], None]) -> Callable[[], None]:
    """Call listener(names) after every pass that changed the store.

    `names` are the full dotted paths written in that pass. Returns a
    zero-arg function that removes the listener.
    """
    admin = admin_of(store)
    admin.subscribe_listeners.add(listener)

    def unsubscribe() -> None:
        admin.subscribe_listeners.discard(listener)

    return unsubscribe


def inner_produce(store, fn: Callable[..., R]) -> R:
    """Run fn(inner_store) as an action.

    Usage:
        inner_produce(settings, lambda s: setattr(s, "theme", "dark"))
    """
    admin = admin_of(store)
    with batch(admin.engine):
        return fn(admin.inner_store)


def reset_store() -> Engine:
    """Start over with a fresh default engine. Meant for tests."""
    return reset_engine()
