"""Errors raised by propstore.

Protocol violations (writing outside an action, assigning a computed,
declaring a setter, unsupported keys) raise StoreError synchronously at
the violation site. They are never retried or recovered internally.
"""


class StoreError(Exception):
    """Raised when a store is used in a way the engine does not allow."""
