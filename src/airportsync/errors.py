"""Errors raised inside the sync pipeline.

None of these escape the orchestrator: each is converted into a single
failed :class:`~airportsync.core.models.SyncCompleted` event.
"""

from __future__ import annotations

from typing import Optional

from airportsync.core.models import NO_STATUS


class SyncError(Exception):
    """Base exception for all sync pipeline errors."""

    kind = "sync"

    def __init__(self, message: str, *, status_code: int = NO_STATUS) -> None:
        self.status_code = status_code
        super().__init__(message)


class TransportError(SyncError):
    """Raised when no response arrived or the status was not 2xx."""

    kind = "transport"


class DecodeError(SyncError):
    """Raised when the payload is not a valid array of airport objects."""

    kind = "decode"

    def __init__(
        self,
        message: str,
        *,
        index: Optional[int] = None,
        field: Optional[str] = None,
        status_code: int = NO_STATUS,
    ) -> None:
        self.index = index
        self.field = field
        if index is not None:
            where = f"element {index}"
            if field is not None:
                where += f" field {field!r}"
            message = f"{where}: {message}"
        super().__init__(message, status_code=status_code)


class StoreError(SyncError):
    """Raised when the persistent store fails to read or write."""

    kind = "store"


__all__ = ["SyncError", "TransportError", "DecodeError", "StoreError"]
