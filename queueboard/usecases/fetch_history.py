"""Use case: read the newest history log entries for the history panel."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

from queueboard.domain.entities import HistoryLogEntry
from queueboard.domain.ports import StorePort
from queueboard.usecases.error_mapping import map_api_error


@dataclass
class FetchHistory:
    store: StorePort
    limit: int = 100

    def __call__(self) -> List[HistoryLogEntry]:
        """Return the newest history entries, newest first."""
        try:
            entries = self.store.list_history(self.limit)
        except Exception as exc:
            raise map_api_error(exc, default_code="HISTORY_FAILED") from exc
        return list(entries)[: self.limit]
