"""
Storage-layer exceptions.

Adapters raise these; services decide whether to retry. Validation and
lookup failures are not exceptions, they are returned as error values by
the components.
"""

from __future__ import annotations


class StoreError(Exception):
    """A storage operation failed."""

    retryable = False


class TransientStoreError(StoreError):
    """The store is temporarily unavailable (lock timeout, connection drop)."""

    retryable = True
