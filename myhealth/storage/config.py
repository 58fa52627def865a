"""Connection tuning options for the storage layer."""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 1000
DEFAULT_CACHE_SIZE_MB = 64
DEFAULT_BUSY_TIMEOUT_MS = 5000


@dataclass
class StoreOptions:
    """Options applied when the store opens its connection.

    operation_timeout is a per-operation deadline in seconds; None disables it.
    """

    cache_size_mb: int = DEFAULT_CACHE_SIZE_MB
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS
    journal_mode: str = "WAL"
    synchronous: str = "NORMAL"
    batch_size: int = DEFAULT_BATCH_SIZE
    operation_timeout: Optional[float] = None

    def __post_init__(self) -> None:
        if self.batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {self.batch_size}")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> StoreOptions:
        """Build options from a mapping, ignoring unknown keys."""
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning("Ignoring unknown storage options: %s", ", ".join(unknown))
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def from_yaml(cls, config_path: str) -> StoreOptions:
        """Load the `storage:` section of a YAML config file.

        A missing file yields the defaults.
        """
        path = Path(config_path)
        if not path.exists():
            logger.debug("Config %s not found, using default storage options", config_path)
            return cls()
        with open(path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}
        return cls.from_dict(config.get("storage"))
