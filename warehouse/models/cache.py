"""Cache metadata models."""

import json
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class CacheEntry:
    """Metadata record stored next to every cached blob."""
    accessed: datetime

    def to_bytes(self) -> bytes:
        return json.dumps({"accessed": self.accessed.isoformat()}).encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes) -> "CacheEntry":
        """Decode a metadata record.

        Raises:
            ValueError: If the record is not valid JSON or lacks a usable timestamp
        """
        try:
            payload = json.loads(data.decode("utf-8"))
        except UnicodeDecodeError as e:
            raise ValueError(f"Metadata is not UTF-8: {e}") from e

        if not isinstance(payload, dict) or not isinstance(payload.get("accessed"), str):
            raise ValueError("Metadata record has no 'accessed' timestamp")

        accessed = datetime.fromisoformat(payload["accessed"])
        if accessed.tzinfo is None:
            raise ValueError("Metadata timestamp is not timezone-aware")
        return cls(accessed=accessed)


@dataclass
class SweepResult:
    """Counters collected during one sweep pass."""
    entries_removed: int = 0
    orphans_removed: int = 0
    namespaces_removed: int = 0
    failures: int = 0
