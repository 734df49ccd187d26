"""
inventory/store.py -- Flat-file persistence of "last backup pull" timestamps.

The file is a JSON object keyed by customer id (as a string):

    {"1234": {"last_pulled_at": "2026-10-18T09:30:00+00:00"}}

The whole map is read on every lookup and rewritten on every update. Writes go
to a temporary file in the same directory and are moved into place with
os.replace(), so a process killed mid-write leaves either the old or the new
file, never a truncated one.

There is no lock around the read-modify-write. Concurrent pulls for different
customers touch disjoint keys, but two pulls for the same customer in quick
succession can lose one update. That is accepted: the timestamp is display
only.

Usage:
    store = TimestampStore(Path("data/pull-timestamps.json"))
    ts = store.record(1234)        # ISO-8601 UTC string
    store.load()                   # {"1234": {"last_pulled_at": ts}}
    store.get(1234)                # ts
"""

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger("pullboard.timestamps")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class TimestampStore:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> dict[str, Any]:
        """Return the full map. Missing or corrupt files read as empty."""
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not read %s, treating as empty: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("%s does not contain a JSON object, treating as empty", self.path)
            return {}
        return data

    def get(self, customer_id: Any) -> Optional[str]:
        entry = self.load().get(str(customer_id))
        if isinstance(entry, dict):
            return entry.get("last_pulled_at")
        return None

    def record(self, customer_id: Any, timestamp: Optional[str] = None) -> str:
        """Store a pull for customer_id and return its timestamp.

        A failed write is logged and otherwise ignored; the timestamp is
        still returned so the caller can report the pull.
        """
        timestamp = timestamp or utc_now_iso()
        data = self.load()
        data[str(customer_id)] = {"last_pulled_at": timestamp}
        try:
            self._write(data)
        except OSError:
            logger.exception("Failed to persist pull timestamp for customer %s", customer_id)
        return timestamp

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except BaseException:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise
