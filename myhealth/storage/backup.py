"""Backup files: JSON documents, gzip-compressed when the name ends in .gz."""

from __future__ import annotations

import gzip
import json
import logging
from pathlib import Path
from typing import IO

from myhealth.storage.errors import InvalidBackupError
from myhealth.storage.models import Backup

logger = logging.getLogger(__name__)


def _open(path: Path, mode: str) -> IO[str]:
    if path.suffix == ".gz":
        return gzip.open(path, mode + "t", encoding="utf-8")
    return open(path, mode, encoding="utf-8")


def dump_backup(backup: Backup, path: str) -> str:
    """Write backup to path and return the path written."""
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    with _open(file_path, "w") as f:
        json.dump(backup.to_dict(), f)
    logger.info("Wrote backup with %d weight records to %s", len(backup.weight), file_path)
    return str(file_path)


def load_backup(path: str) -> Backup:
    """Read a backup written by dump_backup."""
    file_path = Path(path)
    try:
        with _open(file_path, "r") as f:
            data = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError, gzip.BadGzipFile) as exc:
        raise InvalidBackupError(f"{file_path} is not a valid backup: {exc}") from exc
    return Backup.from_dict(data)
