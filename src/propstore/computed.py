"""Computed values — derived state with automatic dependency tracking.

A computed member of a store class wraps a getter. When read through a
view, the getter runs with the owning object's outer view as `self`,
tracking every prop it reads, and the result is cached. Writes to any of
those props mark the computed (and every computed reading it) dirty
immediately; the next read re-evaluates.

Computed values are lazy: they only recompute when read.
"""

from __future__ import annotations

import functools
from collections.abc import Mapping
from typing import TYPE_CHECKING, Callable, Generic, TypeVar

from propstore._tracking import computed_target, report_depend, untracked
from propstore.prop import get_store_prop
from propstore.state import StateView, same

if TYPE_CHECKING:
    from propstore._anchor import Engine, StoreAdmin
    from propstore.prop import Prop

T = TypeVar("T")


class _Unset:
    __slots__ = ()

    def __repr__(self) -> str:
        return "UNSET"


UNSET = _Unset()


class computed(Generic[T]):
    """Descriptor marking a derived member of a store class.

    Usage:
        class Cart:
            price = 1
            qty = 10

            @computed
            def total(self):
                return self.price * self.qty

        cart = create_store(Cart())
        cart.total  # 10, cached until price or qty changes

    Read on a plain (unwrapped) instance, the getter simply runs.
    """

    def __init__(self, fn: Callable[..., T]) -> None:
        self.fn = fn
        self.name = fn.__name__
        functools.update_wrapper(self, fn)

    def __set_name__(self, owner, name: str) -> None:
        self.name = name

    def __get__(self, obj, objtype=None):
        if obj is None:
            return self
        return self.fn(obj)

    def __set__(self, obj, value) -> None:
        raise AttributeError(f"computed property {self.name!r} is read-only")

    def __repr__(self) -> str:
        return f"computed({self.name})"


class Computed:
    """Cache and dependency edges of one computed prop."""

    __slots__ = ("getter", "admin", "value", "changed", "dependencies", "observed")

    def __init__(self, getter: Callable, admin: StoreAdmin) -> None:
        self.getter = getter
        self.admin = admin
        self.value = UNSET
        self.changed = True
        self.dependencies: set[Prop] = set()
        # engines holding a computed_observed entry for this computed
        self.observed: list[Engine] = []

    def __repr__(self) -> str:
        state = "dirty" if self.changed else f"cached={self.value!r}"
        return f"Computed({self.getter.__name__}, {state})"


def computed_changed(prop: Prop) -> None:
    """Mark a computed and everything downstream of it dirty."""
    stack = [prop]
    seen: set[Prop] = set()
    while stack:
        current = stack.pop()
        if current in seen:
            continue
        seen.add(current)
        if current.computed is not None:
            current.computed.changed = True
        stack.extend(current.subscribe_computers)


def _teardown(prop: Prop) -> None:
    """Drop all edges collected by the previous evaluation."""
    computed = prop.computed
    for dep in computed.dependencies:
        dep.subscribe_computers.discard(prop)
    computed.dependencies.clear()
    for engine in computed.observed:
        engine.computed_observed.pop(prop, None)
    computed.observed.clear()


def _step(owner, part: str):
    if isinstance(owner, Mapping):
        return owner.get(part)
    if isinstance(owner, list):
        index = int(part)
        return owner[index] if index < len(owner) else None
    return getattr(owner, part, None)


def resolve_owner(engine: Engine, name: str):
    """Outer view of the object owning the computed at path `name`.

    Returns None when some segment of the path no longer resolves, e.g.
    the owning subtree was deleted.
    """
    parts = name.split(".")
    owner = engine.stores.get(parts[0])
    for part in parts[1:-1]:
        if owner is None:
            return None
        owner = _step(owner, part)
    return owner


def _observe_views(prop: Prop, value) -> None:
    """Register deep edges on store views returned by a getter."""
    if isinstance(value, StateView):
        views = [value]
    elif isinstance(value, (list, tuple)):
        views = [v for v in value if isinstance(v, StateView)]
    elif isinstance(value, dict):
        views = [v for v in value.values() if isinstance(v, StateView)]
    else:
        return

    computed = prop.computed
    for view in views:
        node = view._node
        engine = node.admin.engine
        node_prop = get_store_prop(engine, node.admin.name, node.name)
        engine.computed_observed.setdefault(prop, set()).add(node_prop)
        if engine not in computed.observed:
            computed.observed.append(engine)


def get_computed_value(prop: Prop):
    """Read a computed prop, re-evaluating it if dirty."""
    computed = prop.computed
    if not computed.changed:
        return computed.value

    engine = computed.admin.engine
    with untracked():
        that = resolve_owner(engine, prop.name)
    if that is None:
        # Owning subtree is gone; serve the last value.
        return None if computed.value is UNSET else computed.value

    _teardown(prop)

    target_token = computed_target.set(prop)
    # Consumers depend on the computed prop itself, not on what it reads.
    report_token = report_depend.set(None)
    try:
        new_value = computed.getter(that)
    finally:
        report_depend.reset(report_token)
        computed_target.reset(target_token)

    old_value = computed.value
    if old_value is not UNSET and not same(new_value, old_value):
        pending = engine.pending_changed_computed
        if prop in pending:
            if same(pending[prop], new_value):
                # Restored to the value it had when the pass began.
                del pending[prop]
        else:
            pending[prop] = old_value

    computed.value = new_value
    computed.changed = False
    _observe_views(prop, new_value)
    return new_value
