"""Upload history persistence.

Keeps the most recent terminal upload outcomes in a small JSON file,
newest first.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Optional

from chunkup.core.config import HISTORY_FILE
from chunkup.models.task import HistoryEntry
from chunkup.uploaders.constants import HISTORY_LIMIT

logger = logging.getLogger(__name__)


class HistoryStore:
    """Capped, most-recent-first list of completed and failed uploads."""

    def __init__(self, path: Optional[Path] = None, limit: int = HISTORY_LIMIT):
        """Initialize history store.

        Args:
            path: JSON file holding the history.
            limit: Maximum number of entries kept.
        """
        self.path = path or HISTORY_FILE
        self.limit = limit
        self._lock = threading.Lock()
        self._entries: list[HistoryEntry] = self._load()

    def _load(self) -> list[HistoryEntry]:
        if not self.path.exists():
            return []
        try:
            with open(self.path) as f:
                data = json.load(f)
            return [HistoryEntry.from_dict(item) for item in data][: self.limit]
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Ignoring unreadable history file %s: %s", self.path, e)
            return []

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump([entry.to_dict() for entry in self._entries], f, indent=2)

    def add(self, entry: HistoryEntry) -> None:
        """Record a terminal outcome, dropping the oldest beyond the limit."""
        with self._lock:
            self._entries.insert(0, entry)
            del self._entries[self.limit :]
            self._save()

    def entries(self, limit: Optional[int] = None) -> list[HistoryEntry]:
        """Return entries, newest first."""
        with self._lock:
            items = list(self._entries)
        return items[:limit] if limit is not None else items

    def clear(self) -> int:
        """Remove all entries.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            count = len(self._entries)
            self._entries = []
            self._save()
        return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
