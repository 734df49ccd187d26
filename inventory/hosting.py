"""
inventory/hosting.py -- Resident-hosting map: domain -> backing database name.

Customers on resident hosting keep their database outside the standard pool.
Only domains listed here can be pulled. The file is a flat JSON object loaded
once at startup:

    {"acme": "acme_resident_db", "globex": "globex_prod"}

A missing or unreadable file degrades to an empty map. Startup never fails
because of it; every resident-hosting customer simply shows as unavailable.
"""

import json
import logging
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Optional

logger = logging.getLogger("pullboard.hosting")


class ResidentHostingMap(Mapping[str, str]):
    """Read-only, case-insensitive domain -> database mapping."""

    def __init__(self, entries: Optional[Mapping[str, str]] = None) -> None:
        self._entries: dict[str, str] = {}
        for domain, database in (entries or {}).items():
            self._entries[str(domain).strip().lower()] = str(database)

    def __getitem__(self, domain: str) -> str:
        return self._entries[str(domain).strip().lower()]

    def __contains__(self, domain: object) -> bool:
        return isinstance(domain, str) and domain.strip().lower() in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    @classmethod
    def load(cls, path: Path) -> "ResidentHostingMap":
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            logger.warning("Resident hosting map %s not found -- no resident customer can be pulled", path)
            return cls()
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Resident hosting map %s unreadable (%s) -- using an empty map", path, e)
            return cls()
        if not isinstance(data, dict):
            logger.warning("Resident hosting map %s is not a JSON object -- using an empty map", path)
            return cls()
        mapping = cls({k: v for k, v in data.items() if isinstance(v, str) and v})
        logger.info("Resident hosting map loaded (%d domains)", len(mapping))
        return mapping
