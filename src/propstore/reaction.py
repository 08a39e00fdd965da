"""Reactions — side effects triggered by store changes.

A Reaction is the render-hook side of the dependency collector: while
its function runs it is the active reporter, and it subscribes its own
re-run callback into every Prop the function reads. Subscriptions are
rebuilt from scratch on every run.

Two flavors:
- autorun(fn): runs fn immediately, re-runs when anything it read changes.
- reaction(data_fn, effect_fn): tracks data_fn, calls effect_fn with the new
  value only when data_fn's result changes.

Re-runs happen inside the finalize pass, once per pass, wrapped by the
engine's batched_updates.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, TypeVar

from propstore._tracking import computed_target, report_depend, report_subscribe
from propstore.state import StateView

if TYPE_CHECKING:
    from propstore.prop import Prop, Subscriber

T = TypeVar("T")


class Reaction:
    """A reactive side effect that re-runs when its dependencies change."""

    __slots__ = ("_fn", "_subscribed", "_disposed")

    def __init__(self, fn: Callable[[], None]) -> None:
        self._fn = fn
        self._subscribed: list[set[Subscriber]] = []
        self._disposed = False

    def _on_depend(self, prop: Prop, is_deep: bool) -> None:
        subscribers = prop.deep_subscribers if is_deep else prop.subscribers
        subscribers.add(self._run)
        self._subscribed.append(subscribers)

    def _teardown(self) -> None:
        for subscribers in self._subscribed:
            subscribers.discard(self._run)
        self._subscribed.clear()

    def _track(self, fn: Callable[[], T]) -> T:
        self._teardown()
        target_token = computed_target.set(None)
        report_token = report_depend.set(self._on_depend)
        try:
            return fn()
        finally:
            report_depend.reset(report_token)
            computed_target.reset(target_token)

    def _run(self) -> None:
        """Re-evaluate the reaction function, re-tracking dependencies."""
        if self._disposed:
            return
        self._track(self._fn)

    def dispose(self) -> None:
        """Stop this reaction. Removes all of its subscriptions."""
        self._disposed = True
        self._teardown()

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else "active"
        return f"{type(self).__name__}({self._fn.__name__}, {state})"


def _equal(a, b) -> bool:
    if a is b:
        return True
    if isinstance(a, StateView) or isinstance(b, StateView):
        return False
    return a == b


class _DataReaction(Reaction):
    """Internal: reaction(data_fn, effect_fn) implementation."""

    __slots__ = ("_effect_fn", "_last_value", "_initialized")

    def __init__(self, data_fn: Callable, effect_fn: Callable) -> None:
        super().__init__(data_fn)
        self._effect_fn = effect_fn
        self._last_value = None
        self._initialized = False

    def _run(self) -> None:
        if self._disposed:
            return
        new_value = self._track(self._fn)
        if not self._initialized or not _equal(new_value, self._last_value):
            self._last_value = new_value
            self._initialized = True
            # the effect runs untracked: it only reacts to data_fn
            self._effect_fn(new_value)


def autorun(fn: Callable[[], None]) -> Reaction:
    """Run fn immediately, then re-run whenever anything it reads changes.

    Returns the Reaction (call .dispose() to stop).

    Usage:
        log = []
        r = autorun(lambda: log.append(counter.count))
        # log == [0]

        counter.increment()
        # log == [0, 1] once the pass has run

        r.dispose()
    """
    r = Reaction(fn)
    r._run()
    return r


def reaction(
    data_fn: Callable[[], T],
    effect_fn: Callable[[T], None],
    *,
    fire_immediately: bool = False,
) -> Reaction:
    """Track data_fn; call effect_fn when its result changes.

    Results are compared with ==, except store views, which compare by
    identity. Return plain values (or to_json(view)) from data_fn to
    react to changes inside a subtree.

    Usage:
        effects = []
        r = reaction(lambda: cart.total, effects.append)
        # effects == [], the effect does not fire for the initial value

        cart.add("apple", 3)
        # effects == [3]
    """
    r = _DataReaction(data_fn, effect_fn)
    if fire_immediately:
        r._run()
    else:
        r._last_value = r._track(data_fn)
        r._initialized = True
    return r


def observe(view) -> None:
    """Depend on everything under `view`, not only on what is read.

    Call it inside an autorun or reaction data function: the reaction
    re-runs after any change in the subtree, or when the subtree itself
    is replaced.
    """
    if not isinstance(view, StateView):
        raise TypeError(f"{view!r} is not a store view")
    node = view._node
    report_subscribe(node.admin, node.name, is_deep=True)
