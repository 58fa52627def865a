"""Storage layer - SQLite weight time series, migrations, and backup/restore."""

from myhealth.storage.backup import dump_backup, load_backup
from myhealth.storage.config import StoreOptions
from myhealth.storage.db import WeightStore, open_store
from myhealth.storage.errors import (
    EmptyResultError,
    EngineError,
    InvalidBackupError,
    MigrationError,
    OperationTimeoutError,
    StorageError,
    StoreClosedError,
)
from myhealth.storage.models import Backup, Weight, WeightBackup

__all__ = [
    "WeightStore",
    "open_store",
    "StoreOptions",
    "Backup",
    "Weight",
    "WeightBackup",
    "dump_backup",
    "load_backup",
    "StorageError",
    "EmptyResultError",
    "EngineError",
    "InvalidBackupError",
    "MigrationError",
    "OperationTimeoutError",
    "StoreClosedError",
]
