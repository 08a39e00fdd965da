"""Interception layer — the views a store hands out for its nodes.

Every node has two views: the inner view (mutable, used by actions) and
the outer view (read-only, handed to consumers). Reads through either
report the resolved path to the dependency collector; writes through the
inner view go through set_data(), which drafts the node, records the
pending change and dirties the computeds reading it.

- ObjectView wraps plain objects (store roots, nested instances).
- DictView is a MutableMapping over a dict node.
- ListView is a MutableSequence over a list node. Every list mutation is
  decomposed into per-index writes plus a write of the synthetic
  "length" key, so implied length changes are tracked.
"""

from __future__ import annotations

import operator
from collections.abc import MutableMapping, MutableSequence
from typing import TYPE_CHECKING, Callable

from propstore._anchor import PendingChange, logger
from propstore._tracking import report_subscribe
from propstore.action import bind_action
from propstore.computed import Computed, computed_changed, get_computed_value
from propstore.members import RESERVED, fill_defaults, resolve_members
from propstore.prop import get_keys_prop, get_store_prop
from propstore.scheduler import schedule_finalize
from propstore.state import (
    MISSING,
    State,
    StateView,
    child_state,
    ensure_copy,
    get_item,
    has_key,
    is_state_keys_changed,
    kind_of,
    latest,
    remove,
    same,
    unwrap,
    write,
)

if TYPE_CHECKING:
    from propstore._anchor import StoreAdmin
    from propstore.prop import Prop


def view_of(state: State, inner: bool) -> StateView:
    """The inner or outer view of a node. Expired nodes get fresh views."""
    if state.expired:
        state.expired = False
        if not state.is_root:
            state.views.clear()

    view = state.views.get(inner)
    if view is None:
        view_type = _VIEW_TYPES.get(kind_of(state.base), ObjectView)
        view = state.views[inner] = view_type(state, inner)
    return view


def _computed_init(state: State, source, key) -> Callable[[Prop], None] | None:
    if kind_of(source) != "object" or not isinstance(key, str):
        return None
    getter = resolve_members(type(source)).computeds.get(key)
    if getter is None:
        return None

    admin = state.admin

    def init(prop: Prop) -> None:
        prop.computed = Computed(getter, admin)

    return init


def _fill_object(value) -> None:
    if kind_of(value) == "object":
        fill_defaults(value)


def read(view: StateView, key):
    """Tracked read of `key`. Returns MISSING when the key does not exist.

    The dependency is reported even for a missing key, so adding the key
    later is observed.
    """
    state = view._node
    admin = state.admin
    source = latest(state)
    name = f"{state.name}.{key}"
    prop = get_store_prop(admin.engine, admin.name, name, init=_computed_init(state, source, key))

    if prop.computed is not None:
        value = get_computed_value(prop)
    else:
        value = get_item(source, key)

    if not callable(value):
        report_subscribe(admin, name)

    if value is MISSING or prop.computed is not None or kind_of(value) is None:
        return value

    child = child_state(state, key, value, on_create=_fill_object)
    return view_of(child, view._inner)


def _report_keys(view: StateView) -> None:
    state = view._node
    report_subscribe(state.admin, state.name, is_keys=True)


def own_keys(view: StateView) -> list:
    """Keys of a node, reported as a dependency on its keys-prop."""
    _report_keys(view)
    source = latest(view._node)
    if isinstance(source, dict):
        return list(source)
    if isinstance(source, list):
        return list(range(len(source)))
    return [key for key in vars(source) if not key.startswith("_")]


# ─── Writes ──────────────────────────────────────────────────────────────────


def _guard(view: StateView, key) -> None:
    """Only the inner view may write."""
    if not view._inner:
        state = view._node
        raise state.admin.die(
            f"Do not allowed modify data({state.name}.{key}) directly, "
            "you should do it in store actions!"
        )


def _check_key(state: State, source, key) -> None:
    if isinstance(source, list):
        return
    admin = state.admin
    if not isinstance(key, str):
        raise admin.die(f"You should not set or delete non-string props({state.name}.{key!r})!")
    if not isinstance(source, dict) and key.startswith("_"):
        raise admin.die(f"You should not set or delete private props({state.name}.{key})!")


def check_data(admin: StoreAdmin, value, path: str) -> None:
    """Reject non-string dict keys anywhere in dict/list data."""
    stack = [(value, path)]
    seen: set[int] = set()
    while stack:
        value, path = stack.pop()
        if isinstance(value, dict):
            if id(value) in seen:
                continue
            seen.add(id(value))
            for key, item in value.items():
                if not isinstance(key, str):
                    raise admin.die(f"Non-string key {key!r} in {path} is not supported!")
                stack.append((item, f"{path}.{key}"))
        elif isinstance(value, list):
            if id(value) in seen:
                continue
            seen.add(id(value))
            stack.extend((item, f"{path}.{index}") for index, item in enumerate(value))


def set_data(is_delete: bool, state: State, key, value=None) -> None:
    """Apply one write or delete to a node's draft and record it."""
    admin = state.admin
    engine = admin.engine
    source = latest(state)

    _check_key(state, source, key)

    name = f"{state.name}.{key}"
    logger.debug("%s %s", "delete" if is_delete else "set", name)

    prop = get_store_prop(engine, admin.name, name, init=_computed_init(state, source, key))
    if prop.computed is not None:
        raise admin.die(f"You should not set or delete computed props({name})!")

    if is_delete:
        changed = has_key(source, key)
    else:
        value = unwrap(value)
        check_data(admin, value, name)
        # A list's length changes implicitly with its items: always a write.
        changed = (isinstance(source, list) and key == "length") or not same(
            get_item(source, key), value
        )

    if not changed:
        return

    logger.debug("%s changed", name)

    draft = ensure_copy(state)
    if is_delete:
        remove(draft, key)
    else:
        write(draft, key, value)

    engine.pending_changed[prop] = PendingChange(prop, state, admin, key)

    # Computeds must see the write right away, before the pass commits it.
    for computer in list(prop.subscribe_computers):
        computed_changed(computer)

    if is_state_keys_changed(state, key):
        keys_prop = get_keys_prop(engine, admin.name, prop)
        if keys_prop is not None:
            for computer in list(keys_prop.subscribe_computers):
                computed_changed(computer)

    schedule_finalize(engine)


def _action(state: State, name: str, fn: Callable) -> Callable:
    bound = state.actions.get(name)
    if bound is None:
        admin = state.admin
        target = admin.inner_store if state.is_root else view_of(state, True)
        bound = state.actions[name] = bind_action(admin.engine, state.name, name, fn, target)
    return bound


# ─── Views ───────────────────────────────────────────────────────────────────


class ObjectView(StateView):
    """Attribute access over an object node."""

    __slots__ = ()

    def __getattr__(self, name: str):
        if name.startswith("__") or name in RESERVED:
            raise AttributeError(name)

        state = self._node
        source = latest(state)
        members = resolve_members(type(source))

        if name not in vars(source) and name not in members.computeds:
            fn = members.actions.get(name)
            if fn is not None:
                return _action(state, name, fn)
            if hasattr(type(source), name):
                # class constants, static and class methods: not state
                return getattr(source, name)

        if name.startswith("_"):
            # private attributes are not tracked
            return getattr(source, name)

        value = read(self, name)
        if value is MISSING:
            raise AttributeError(f"{type(source).__name__!r} object has no attribute {name!r}")
        return value

    def __setattr__(self, name: str, value) -> None:
        _guard(self, name)
        set_data(False, self._node, name, value)

    def __delattr__(self, name: str) -> None:
        _guard(self, name)
        state = self._node
        if not has_key(latest(state), name):
            raise AttributeError(name)
        set_data(True, state, name)

    def __contains__(self, name: str) -> bool:
        _report_keys(self)
        source = latest(self._node)
        return name in vars(source) or hasattr(type(source), name)

    def __dir__(self):
        source = latest(self._node)
        members = resolve_members(type(source))
        return sorted({*vars(source), *members.computeds, *members.actions})

    def __str__(self) -> str:
        return self._node.admin.name

    def __repr__(self) -> str:
        return f"<{type(latest(self._node)).__name__} view {self._node.name}>"


class DictView(StateView, MutableMapping):
    """MutableMapping over a dict node."""

    __slots__ = ()

    def __getitem__(self, key):
        value = read(self, key)
        if value is MISSING:
            raise KeyError(key)
        return value

    def get(self, key, default=None):
        value = read(self, key)
        return default if value is MISSING else value

    def __setitem__(self, key, value) -> None:
        _guard(self, key)
        set_data(False, self._node, key, value)

    def __delitem__(self, key) -> None:
        _guard(self, key)
        state = self._node
        if key not in latest(state):
            raise KeyError(key)
        set_data(True, state, key)

    def __iter__(self):
        return iter(own_keys(self))

    def __len__(self) -> int:
        _report_keys(self)
        return len(latest(self._node))

    def __contains__(self, key) -> bool:
        _report_keys(self)
        return key in latest(self._node)

    def clear(self) -> None:
        _guard(self, "clear()")
        state = self._node
        for key in list(latest(state)):
            set_data(True, state, key)

    def __str__(self) -> str:
        return self._node.admin.name

    def __repr__(self) -> str:
        return f"DictView({self._node.name}, {latest(self._node)!r})"


class ListView(StateView, MutableSequence):
    """MutableSequence over a list node."""

    __slots__ = ()

    __hash__ = None

    def _position(self, index) -> int:
        index = operator.index(index)
        if index < 0:
            # counted from the end: depends on the length too
            index += len(self)
        if index < 0:
            raise IndexError("list index out of range")
        return index

    def _replace(self, items: list) -> None:
        """Turn a whole-list edit into per-index writes plus a length write."""
        state = self._node
        old = list(latest(state))

        for index, item in enumerate(items):
            if index >= len(old) or not same(old[index], item):
                set_data(False, state, index, item)
        for index in reversed(range(len(items), len(old))):
            set_data(True, state, index)
        if len(items) != len(old):
            set_data(False, state, "length", len(items))

    def __len__(self) -> int:
        state = self._node
        report_subscribe(state.admin, f"{state.name}.length")
        return len(latest(state))

    def __getitem__(self, index):
        if isinstance(index, slice):
            return [self[i] for i in range(*index.indices(len(self)))]
        value = read(self, self._position(index))
        if value is MISSING:
            raise IndexError("list index out of range")
        return value

    def __iter__(self):
        return iter([self[index] for index in range(len(self))])

    def __contains__(self, value) -> bool:
        return value in list(self)

    def __eq__(self, other) -> bool:
        if not isinstance(other, list):
            return NotImplemented
        return list(self) == list(other)

    def __setitem__(self, index, value) -> None:
        _guard(self, index)
        state = self._node
        if isinstance(index, slice):
            items = list(latest(state))
            items[index] = [unwrap(item) for item in value]
            self._replace(items)
            return
        position = self._position(index)
        if position >= len(latest(state)):
            raise IndexError("list assignment index out of range")
        set_data(False, state, position, value)

    def __delitem__(self, index) -> None:
        _guard(self, index)
        items = list(latest(self._node))
        del items[index]
        self._replace(items)

    def insert(self, index, value) -> None:
        _guard(self, "insert()")
        items = list(latest(self._node))
        items.insert(index, unwrap(value))
        self._replace(items)

    def append(self, value) -> None:
        _guard(self, "append()")
        self._replace([*latest(self._node), unwrap(value)])

    def extend(self, values) -> None:
        _guard(self, "extend()")
        self._replace([*latest(self._node), *(unwrap(value) for value in values)])

    def pop(self, index=-1):
        """Remove and return the plain item at index."""
        _guard(self, "pop()")
        items = list(latest(self._node))
        value = items.pop(index)
        self._replace(items)
        return value

    def remove(self, value) -> None:
        _guard(self, "remove()")
        items = list(latest(self._node))
        items.remove(unwrap(value))
        self._replace(items)

    def clear(self) -> None:
        _guard(self, "clear()")
        self._replace([])

    def sort(self, *, key=None, reverse: bool = False) -> None:
        """Sort in place. `key` receives the plain items."""
        _guard(self, "sort()")
        self._replace(sorted(latest(self._node), key=key, reverse=reverse))

    def reverse(self) -> None:
        _guard(self, "reverse()")
        self._replace(list(reversed(latest(self._node))))

    def __iadd__(self, values):
        self.extend(values)
        return self

    def __str__(self) -> str:
        return self._node.admin.name

    def __repr__(self) -> str:
        return f"ListView({self._node.name}, {latest(self._node)!r})"


_VIEW_TYPES: dict[str | None, type[StateView]] = {
    "object": ObjectView,
    "dict": DictView,
    "list": ListView,
}


def to_json(value):
    """Plain nested data for a view, read through the view.

    Every value read is reported, so a computed serializing a subtree
    recomputes when any part of it changes. Also usable as the `default`
    hook of json.dumps.
    """
    if isinstance(value, ObjectView):
        return {key: to_json(getattr(value, key)) for key in own_keys(value)}
    if isinstance(value, DictView):
        return {key: to_json(value[key]) for key in value}
    if isinstance(value, ListView):
        return [to_json(item) for item in value]
    if isinstance(value, dict):
        return {key: to_json(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json(item) for item in value]
    if kind_of(value) == "object":
        return {key: to_json(item) for key, item in vars(value).items() if not key.startswith("_")}
    return value
