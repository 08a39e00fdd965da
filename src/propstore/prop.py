"""Property registry — one Prop per (store, dotted path, is_keys).

A Prop is the unit of dependency tracking. It records who depends on a
path: render-hook subscribers, deep subscribers ("anything under this
subtree changed") and the computed props that read it. Props are created
on first access and live as long as the engine.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from propstore._anchor import Engine
    from propstore.computed import Computed

KEYS_SUFFIX = ".keys()"

Subscriber = Callable[[], None]


class Prop:
    __slots__ = (
        "name",
        "is_keys",
        "subscribers",
        "deep_subscribers",
        "subscribe_computers",
        "keys_prop",
        "computed",
    )

    def __init__(self, name: str, is_keys: bool = False) -> None:
        self.name = name
        self.is_keys = is_keys
        self.subscribers: set[Subscriber] = set()
        self.deep_subscribers: set[Subscriber] = set()
        self.subscribe_computers: set[Prop] = set()
        self.keys_prop: Prop | None = None
        self.computed: Computed | None = None

    def __repr__(self) -> str:
        kind = "computed" if self.computed is not None else "keys" if self.is_keys else "prop"
        return f"Prop({self.name}, {kind})"


def get_store_prop(
    engine: Engine,
    store_name: str,
    name: str,
    is_keys: bool = False,
    init: Callable[[Prop], None] | None = None,
) -> Prop:
    """Look up or create the Prop for a path.

    init runs once, right after a non-keys Prop is created; it is how a
    computed gets attached to the prop of its member name.
    """
    props = engine.props[store_name]

    if is_keys:
        name += KEYS_SUFFIX
        prop = props.get(name)
        if prop is None:
            prop = props[name] = Prop(name, is_keys=True)
        return prop

    prop = props.get(name)
    if prop is None:
        prop = props[name] = Prop(name)
        if init is not None:
            init(prop)
    return prop


def keys_name(name: str) -> str:
    """Keys-prop path of the node owning a property path: a.b.c -> a.b.keys()."""
    return name.rsplit(".", 1)[0] + KEYS_SUFFIX


def get_keys_prop(engine: Engine, store_name: str, prop: Prop) -> Prop | None:
    """Link a property Prop to its parent's keys-prop, if anyone enumerated it."""
    if prop.keys_prop is not None:
        return prop.keys_prop

    keys_prop = engine.props[store_name].get(keys_name(prop.name))
    if keys_prop is not None:
        prop.keys_prop = keys_prop
    return keys_prop
