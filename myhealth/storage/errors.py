"""Error types raised by the storage layer."""

from __future__ import annotations


class StorageError(Exception):
    """Base class for all storage errors."""


class EmptyResultError(StorageError):
    """A read matched zero rows."""


class EngineError(StorageError):
    """The underlying SQLite engine failed (I/O, constraint, corruption)."""


class MigrationError(StorageError):
    """A pending schema migration could not be applied."""


class OperationTimeoutError(StorageError):
    """An operation did not finish before its deadline."""


class StoreClosedError(StorageError):
    """The store was used before initialize() or after close()."""


class InvalidBackupError(StorageError):
    """A backup document is malformed."""
