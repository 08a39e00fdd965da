"""Dependency collector — the heart of propstore.

Uses contextvars to track which props are read while a computed is being
evaluated or while a render hook (see propstore.reaction) is running.
Every tracked read goes through report_subscribe().
"""

from __future__ import annotations

import contextvars
from contextlib import contextmanager
from typing import TYPE_CHECKING, Callable

from propstore.prop import get_store_prop

if TYPE_CHECKING:
    from propstore._anchor import StoreAdmin
    from propstore.prop import Prop

    ReportDepend = Callable[[Prop, bool], None]

# The computed prop currently being evaluated. Reads register as its edges.
computed_target: contextvars.ContextVar[Prop | None] = contextvars.ContextVar(
    "computed_target", default=None
)

# The render-hook reporter. Called with (prop, is_deep) for every tracked read.
report_depend: contextvars.ContextVar[ReportDepend | None] = contextvars.ContextVar(
    "report_depend", default=None
)


def report_subscribe(
    admin: StoreAdmin, name: str, *, is_keys: bool = False, is_deep: bool = False
) -> Prop:
    """Report a read of `name` to the active computed and render hook."""
    prop = get_store_prop(admin.engine, admin.name, name, is_keys)

    target = computed_target.get()
    if target is not None:
        prop.subscribe_computers.add(target)
        target.computed.dependencies.add(prop)

    reporter = report_depend.get()
    if reporter is not None:
        reporter(prop, is_deep)

    return prop


@contextmanager
def untracked():
    """Suspend both reporters. Reads inside are nobody's dependency."""
    target_token = computed_target.set(None)
    report_token = report_depend.set(None)
    try:
        yield
    finally:
        report_depend.reset(report_token)
        computed_target.reset(target_token)
