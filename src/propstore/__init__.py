"""propstore: fine-grained reactive state containers for Python."""

from importlib.metadata import version as _version

__version__ = _version("propstore")

from propstore._anchor import Engine
from propstore.action import action, transaction
from propstore.computed import computed
from propstore.errors import StoreError
from propstore.reaction import Reaction, autorun, observe, reaction
from propstore.scheduler import flush, get_pending_count
from propstore.store import (
    configure_store,
    create_store,
    inner_produce,
    reset_store,
    subscribe_store,
)
from propstore.views import own_keys, to_json
# textual is not auto-imported, it is opt-in

__all__ = [
    "Engine",
    "StoreError",
    "create_store",
    "subscribe_store",
    "inner_produce",
    "reset_store",
    "configure_store",
    "computed",
    "action",
    "transaction",
    "flush",
    "get_pending_count",
    "Reaction",
    "autorun",
    "reaction",
    "observe",
    "own_keys",
    "to_json",
]
