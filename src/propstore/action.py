"""Actions and transactions — the sanctioned place for mutations.

Methods of a store class are actions: the store binds them to its inner
(mutable) view and runs them inside a batch, so the finalize pass runs
once after the outermost action returns, never in between.
"""

from __future__ import annotations

import functools
import inspect
from contextlib import contextmanager
from typing import TYPE_CHECKING, Callable, ParamSpec, TypeVar

from propstore._anchor import get_engine, logger
from propstore.scheduler import begin_batch, end_batch

if TYPE_CHECKING:
    from propstore._anchor import Engine

P = ParamSpec("P")
R = TypeVar("R")


def action(fn: Callable[P, R]) -> Callable[P, R]:
    """Decorator: batch all store mutations inside fn.

    On a store class it only marks the method; the store rebinds it.
    Used on a free function it batches on the default engine.

    Usage:
        @action
        def checkout():
            inner = ...
            inner.items.clear()
            inner.total = 0
            # consumers see both changes in one pass
    """
    if inspect.iscoroutinefunction(fn):
        fn._action_fn = fn
        return fn

    @functools.wraps(fn)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        engine = get_engine()
        begin_batch(engine)
        try:
            return fn(*args, **kwargs)
        finally:
            end_batch(engine)

    wrapper._action_fn = fn
    return wrapper


@contextmanager
def transaction(engine: Engine | None = None):
    """Context manager for batching mutations.

    Usage:
        with transaction():
            cart.add_item("apple")
            cart.add_item("pear")
            # one finalize pass, here
    """
    engine = engine or get_engine()
    begin_batch(engine)
    try:
        yield
    finally:
        end_batch(engine)


def bind_action(engine: Engine, path: str, name: str, fn: Callable, target) -> Callable:
    """Bind a class-level action to `target` (an inner view)."""
    if inspect.iscoroutinefunction(fn):

        @functools.wraps(fn)
        async def run_async(*args, **kwargs):
            logger.debug("call action: %s.%s", path, name)
            return await fn(target, *args, **kwargs)

        return run_async

    @functools.wraps(fn)
    def run(*args, **kwargs):
        logger.debug("call action: %s.%s", path, name)
        begin_batch(engine)
        try:
            return fn(target, *args, **kwargs)
        finally:
            end_batch(engine)

    return run
