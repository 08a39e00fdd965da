"""Member resolution — what each class-level name of a store class is.

Resolved once per class: computed derivations (@computed or read-only
property), actions (@action or plain methods) and plain field defaults.
"""

from __future__ import annotations

import copy
import functools
import inspect
import types
from typing import Callable

from propstore.computed import computed
from propstore.errors import StoreError

# Internal slots of every view; user members may not use these names.
RESERVED = frozenset({"_node", "_inner"})

_SKIPPED = (
    staticmethod,
    classmethod,
    type,
    types.MemberDescriptorType,
    types.GetSetDescriptorType,
)


class Members:
    __slots__ = ("fields", "computeds", "actions")

    def __init__(self) -> None:
        self.fields: dict[str, object] = {}
        self.computeds: dict[str, Callable] = {}
        self.actions: dict[str, Callable] = {}

    def __repr__(self) -> str:
        return (
            f"Members(fields={sorted(self.fields)}, computeds={sorted(self.computeds)}, "
            f"actions={sorted(self.actions)})"
        )


@functools.cache
def resolve_members(cls: type) -> Members:
    """Classify the members of `cls` (and its bases).

    Subclasses override base members of any kind. Raises StoreError for a
    property with a setter or a member using a reserved name.
    """
    members = Members()
    for klass in reversed(cls.__mro__):
        if klass is object:
            continue
        for name, attr in vars(klass).items():
            if name.startswith("__") and name.endswith("__"):
                continue
            if name in RESERVED:
                raise StoreError(f"[{cls.__name__}] Member name '{name}' is reserved!")

            members.fields.pop(name, None)
            members.computeds.pop(name, None)
            members.actions.pop(name, None)

            if isinstance(attr, computed):
                members.computeds[name] = attr.fn
            elif isinstance(attr, property):
                if attr.fset is not None:
                    raise StoreError(f"[{cls.__name__}] Do not allow setter({name}) in Store!")
                if attr.fget is not None:
                    members.computeds[name] = attr.fget
            elif isinstance(attr, _SKIPPED):
                continue
            elif inspect.isfunction(attr):
                # @action-wrapped methods are rebound by the store itself.
                members.actions[name] = getattr(attr, "_action_fn", attr)
            elif not name.startswith("_"):
                members.fields[name] = attr
    return members


def fill_defaults(obj) -> None:
    """Deep-copy class-level field defaults the instance does not override."""
    state = vars(obj)
    for name, default in resolve_members(type(obj)).fields.items():
        if name not in state:
            state[name] = copy.deepcopy(default)
