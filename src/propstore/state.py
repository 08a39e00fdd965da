"""State-node tree — copy-on-write nodes mirroring the wrapped data.

Each container reachable from a store root (dict, list or plain object)
gets a State node the first time it is read through a view. A node keeps
the committed value in `base` and, after the first write since the last
finalize pass, an uncommitted clone in `copy`. Drafting a node also
drafts its ancestors so that latest(root) always reflects every write.
"""

from __future__ import annotations

import copy as _copy
import enum
import types
from typing import TYPE_CHECKING

from propstore._anchor import logger

if TYPE_CHECKING:
    from propstore._anchor import StoreAdmin


class _Missing:
    __slots__ = ()

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()

_NOT_DATA = (
    type,
    types.ModuleType,
    types.FunctionType,
    types.MethodType,
    types.BuiltinFunctionType,
    enum.Enum,
)


class StateView:
    """Base of the views handed out for a node. See propstore.views."""

    __slots__ = ("_node", "_inner")

    def __init__(self, node: State, inner: bool) -> None:
        object.__setattr__(self, "_node", node)
        object.__setattr__(self, "_inner", inner)

    @property
    def __class__(self):
        # isinstance(view, Count), isinstance(view, dict) and
        # isinstance(view, list) answer for the wrapped value.
        return type(latest(self._node))


def kind_of(value) -> str | None:
    """Container kind of a raw value: "dict", "list", "object" or None."""
    if isinstance(value, StateView):
        return None
    if isinstance(value, dict):
        return "dict"
    if isinstance(value, list):
        return "list"
    if isinstance(value, _NOT_DATA) or callable(value):
        return None
    if hasattr(value, "__dict__"):
        return "object"
    return None


def same(a, b) -> bool:
    """Identity for containers and views, type + equality for scalars."""
    if a is b:
        return True
    if isinstance(a, StateView) or isinstance(b, StateView):
        return False
    if kind_of(a) is not None or kind_of(b) is not None:
        return False
    return type(a) is type(b) and a == b


def unwrap(value):
    """Plain latest value of a view; anything else is returned as is."""
    if isinstance(value, StateView):
        return latest(value._node)
    return value


# ─── Container access ────────────────────────────────────────────────────────


def get_item(source, key, default=MISSING):
    if isinstance(source, dict):
        return source.get(key, default)
    if isinstance(source, list):
        if key == "length":
            return len(source)
        return source[key] if 0 <= key < len(source) else default
    return vars(source).get(key, default)


def has_key(source, key) -> bool:
    if isinstance(source, dict):
        return key in source
    if isinstance(source, list):
        return key == "length" or (isinstance(key, int) and 0 <= key < len(source))
    return key in vars(source)


def write(target, key, value) -> None:
    if isinstance(target, list):
        if key == "length":
            del target[value:]
            target.extend([None] * (value - len(target)))
        elif key == len(target):
            target.append(value)
        else:
            target[key] = value
    elif isinstance(target, dict):
        target[key] = value
    else:
        vars(target)[key] = value


def remove(target, key) -> None:
    if isinstance(target, (dict, list)):
        del target[key]
    else:
        del vars(target)[key]


def clone(value):
    return _copy.copy(value)


# ─── Nodes ───────────────────────────────────────────────────────────────────


class State:
    """One node of the tree. `name` is the dotted path, unique per store."""

    __slots__ = (
        "name",
        "admin",
        "parent",
        "key",
        "base",
        "copy",
        "expired",
        "is_root",
        "children",
        "views",
        "actions",
    )

    def __init__(
        self,
        name: str,
        admin: StoreAdmin,
        base,
        parent: State | None = None,
        key=None,
        is_root: bool = False,
    ) -> None:
        self.name = name
        self.admin = admin
        self.parent = parent
        self.key = key
        self.base = base
        self.copy = None
        self.expired = False
        self.is_root = is_root
        self.children: dict = {}
        self.views: dict[bool, StateView] = {}
        self.actions: dict = {}

    def __repr__(self) -> str:
        state = "drafted" if self.copy is not None else "committed"
        return f"State({self.name}, {state})"


def latest(state: State):
    return state.copy if state.copy is not None else state.base


def ensure_copy(state: State):
    """Draft a node (and its ancestors) on first write since the last commit."""
    if state.copy is not None:
        return state.copy

    state.copy = clone(state.base)
    state.admin.engine.drafts.append(state)

    parent = state.parent
    # An abandoned node (parent key replaced since) does not draft its parent.
    if parent is not None and get_item(latest(parent), state.key) is state.base:
        ensure_copy(parent)
        write(parent.copy, state.key, state.copy)

    return state.copy


def child_state(state: State, key, value, on_create=None) -> State:
    """Node for the container `value` found at `key`, created lazily.

    on_create(value) runs once, before the node is made.
    """
    child = state.children.get(key)
    if child is not None and (child.base is value or child.copy is value):
        return child

    if on_create is not None:
        on_create(value)
    name = f"{state.name}.{key}"
    logger.debug("create state: %s", name)
    child = state.children[key] = State(name, state.admin, value, parent=state, key=key)
    return child


def is_state_changed(state: State, key) -> bool:
    """Did `key` net-change between the committed base and the draft?"""
    if state.copy is None:
        return False
    return not same(get_item(state.base, key), get_item(state.copy, key))


def is_state_keys_changed(state: State, key) -> bool:
    """Did `key` appear or disappear between the committed base and the draft?"""
    if state.copy is None:
        return False
    return has_key(state.base, key) != has_key(state.copy, key)
