from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Optional

from db.store import LocalStore
from models.sync import ChangeType, PendingChange

logger = logging.getLogger(__name__)


class PendingChangeLedger:
    """Durable queue of verse mutations waiting for server confirmation.

    Entries are removed only through mark_changes_as_synced(). Store failures
    propagate as StoreUnavailableError; a failed write is never reported as
    queued.
    """

    def __init__(self, store: LocalStore, clock: Callable[[], float] = time.time):
        self._store = store
        self._clock = clock

    def add_pending_change(
        self,
        change_type: ChangeType,
        verse_reference: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> PendingChange:
        timestamp = self._clock()
        change_id = self._store.add_pending_change(change_type, verse_reference, payload or {}, timestamp)
        logger.debug("Queued %s for %s (id=%s)", change_type.value, verse_reference, change_id)
        return PendingChange(
            id=change_id,
            type=change_type,
            verse_reference=verse_reference,
            payload=payload or {},
            timestamp=timestamp,
            synced=False,
        )

    def get_pending_changes(self) -> List[PendingChange]:
        return self._store.get_pending_changes()

    def get_unsynced_changes(self) -> List[PendingChange]:
        return [change for change in self.get_pending_changes() if not change.synced]

    def unsynced_count(self) -> int:
        return len(self.get_unsynced_changes())

    def has_unsaved_changes(self) -> bool:
        return self.unsynced_count() > 0

    def mark_changes_as_synced(self, change_ids: Iterable[int]) -> None:
        ids = list(change_ids)
        self._store.delete_pending_changes(ids)
        if ids:
            logger.debug("Removed %d synced change(s)", len(ids))
