"""
Error taxonomy for the OpenHAB sync engine.

Every exception carries a SyncErrorKind so callers can branch on the kind
without string matching. Messages are flattened to plain strings only at the
HTTP boundary and in a run's per-item error list.
"""
from enum import Enum
from typing import Optional


class SyncErrorKind(str, Enum):
    TRANSPORT = "transport"
    REMOTE = "remote"
    PARSE = "parse"
    PRECONDITION = "precondition"
    STORE = "store"
    INTERNAL = "internal"


class SyncError(Exception):
    """Base class for all sync engine errors."""

    kind: SyncErrorKind = SyncErrorKind.STORE

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# ── Middleware client errors ──────────────────────────────────────────────────

class TransportError(SyncError):
    """Network-level failure: DNS, refused connection, timeout."""

    kind = SyncErrorKind.TRANSPORT


class RemoteError(SyncError):
    """OpenHAB answered with a non-2xx status."""

    kind = SyncErrorKind.REMOTE

    def __init__(self, status_code: int, message: Optional[str] = None):
        self.status_code = status_code
        super().__init__(message or f"OpenHAB returned status {status_code}")


class ParseError(SyncError):
    """Response body was not the JSON we expected."""

    kind = SyncErrorKind.PARSE


# ── Preconditions ─────────────────────────────────────────────────────────────

class PreconditionError(SyncError):
    """Rejected before any work was done. Never written to the sync log."""

    kind = SyncErrorKind.PRECONDITION


class SyncNotEnabledError(PreconditionError):
    def __init__(self, message: str = "OpenHAB sync is not enabled"):
        super().__init__(message)


class NothingToSyncError(PreconditionError):
    def __init__(self, message: str = "No items configured for sync"):
        super().__init__(message)


class SyncInProgressError(PreconditionError):
    def __init__(self, message: str = "A sync is already running for this configuration"):
        super().__init__(message)


class InvalidEndpointError(PreconditionError):
    """Endpoint URL failed validation (scheme, private host, metadata host)."""


class InvalidItemNameError(PreconditionError):
    def __init__(self, item_name: str):
        self.item_name = item_name
        super().__init__(f"Invalid item name: {item_name}")


class DuplicateMappingError(PreconditionError):
    def __init__(self, item_name: str):
        self.item_name = item_name
        super().__init__(f"Item {item_name} is already mapped")


# ── Store ─────────────────────────────────────────────────────────────────────

class StoreError(SyncError):
    """The relational store could not be read or written."""

    kind = SyncErrorKind.STORE


# ── Unexpected ────────────────────────────────────────────────────────────────

class SyncRunError(SyncError):
    """A run failed outside the per-item loop with a non-taxonomy exception."""

    kind = SyncErrorKind.INTERNAL
