from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import List

from pydantic import TypeAdapter, ValidationError

from ..core.store import KeyValueStore
from ..vision.schema import HistoryEntry, TradingAnalysis

logger = logging.getLogger(__name__)

_ENTRIES = TypeAdapter(List[HistoryEntry])


def _utc_timestamp() -> str:
    # 2024-05-05T12:00:00.123Z
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _new_entry_id() -> str:
    return uuid.uuid4().hex


class HistoryLog:
    """Newest-first analysis log persisted as one JSON array under `key`."""

    def __init__(self, store: KeyValueStore, *, key: str = "analysisHistory", limit: int = 50) -> None:
        self.store = store
        self.key = key
        self.limit = limit

    def load(self) -> List[HistoryEntry]:
        raw = self.store.get(self.key)
        if not raw:
            return []
        try:
            return _ENTRIES.validate_json(raw)
        except ValidationError as exc:
            logger.error("Failed to load analysis history from %r: %s", self.key, exc)
            return []

    def save(self, entries: List[HistoryEntry]) -> None:
        payload = [e.as_payload() for e in entries[: self.limit]]
        self.store.set(self.key, json.dumps(payload, ensure_ascii=False, separators=(",", ":")))

    def add(self, analysis: TradingAnalysis) -> HistoryEntry:
        entry = HistoryEntry.capture(analysis, entry_id=_new_entry_id(), timestamp=_utc_timestamp())
        entries = [entry] + self.load()
        self.save(entries)
        return entry

    def get(self, entry_id: str) -> HistoryEntry:
        for entry in self.load():
            if entry.id == entry_id:
                return entry
        raise KeyError(entry_id)

    def clear(self) -> None:
        self.store.delete(self.key)
