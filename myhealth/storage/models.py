"""Data models for the myhealth storage layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

from myhealth.storage.errors import InvalidBackupError

SQLITE_MIN_INT = -(2**63)
SQLITE_MAX_INT = 2**63 - 1


@dataclass
class Weight:
    """A single weight measurement of one user."""

    timestamp: int
    value: float

    def to_row(self, user_id: int) -> tuple:
        return (user_id, self.timestamp, self.value)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> Weight:
        return cls(timestamp=row["timestamp"], value=row["value"])


@dataclass
class WeightBackup:
    """A weight measurement as stored in a backup, carrying its owner."""

    user_id: int
    timestamp: int
    value: float

    def to_row(self) -> tuple:
        return (self.user_id, self.timestamp, self.value)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> WeightBackup:
        return cls(user_id=row["userid"], timestamp=row["timestamp"], value=row["value"])

    def to_dict(self) -> Dict[str, Any]:
        return {"userID": self.user_id, "timestamp": self.timestamp, "value": self.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> WeightBackup:
        try:
            user_id = data["userID"]
            timestamp = data["timestamp"]
            value = data["value"]
        except (KeyError, TypeError) as exc:
            raise InvalidBackupError(f"Malformed weight record: {data!r}") from exc

        if not _is_int(user_id) or not _is_int(timestamp):
            raise InvalidBackupError(f"userID and timestamp must be 64-bit integers: {data!r}")
        if not _is_number(value):
            raise InvalidBackupError(f"value must be a number: {data!r}")
        return cls(user_id=user_id, timestamp=timestamp, value=float(value))


@dataclass
class Backup:
    """Point-in-time snapshot of the whole dataset.

    Serialized form:
        {"timestamp": 1700000000,
         "weight": [{"userID": 1, "timestamp": 1000, "value": 94.3}, ...]}
    """

    timestamp: int
    weight: List[WeightBackup] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "weight": [w.to_dict() for w in self.weight],
        }

    @classmethod
    def from_dict(cls, data: Any) -> Backup:
        if not isinstance(data, dict):
            raise InvalidBackupError("Backup document must be a JSON object")
        if "timestamp" not in data:
            raise InvalidBackupError("Backup document has no timestamp")
        timestamp = data["timestamp"]
        if not _is_int(timestamp):
            raise InvalidBackupError(f"Backup timestamp must be an integer: {timestamp!r}")
        records = data.get("weight")
        if records is None:
            records = []
        if not isinstance(records, list):
            raise InvalidBackupError("Backup 'weight' must be a list")
        return cls(
            timestamp=timestamp,
            weight=[WeightBackup.from_dict(r) for r in records],
        )


# --- Helpers ---

def _is_int(val: Any) -> bool:
    """True for ints that fit a SQLite INTEGER."""
    return isinstance(val, int) and not isinstance(val, bool) and SQLITE_MIN_INT <= val <= SQLITE_MAX_INT


def _is_number(val: Any) -> bool:
    return isinstance(val, (int, float)) and not isinstance(val, bool)
