from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set

from db.store import LocalStore
from models.sync import ChangeType, PendingChange
from models.verse import Verse, VerseCreate, VerseStatus
from services.ledger import PendingChangeLedger
from utils.api import ApiResult, ProgressApiClient
from utils.auth import AuthSession
from utils.errors import ConflictError, NotFoundError, is_auth_error, is_conflict_error
from utils.scheduler import Scheduler

logger = logging.getLogger(__name__)

VERSES_NAMESPACE = "verses"
DUPLICATE_VERSE_MESSAGE = "A verse with this reference already exists. Please delete it first."
LOAD_WARNING = (
    "We're having trouble loading your verses. "
    "This is usually temporary, your saved verses are shown for now."
)


@dataclass
class SyncReport:
    synced: int = 0
    remaining: int = 0
    conflicts: List[str] = field(default_factory=list)
    error: Optional[str] = None
    skipped: bool = False


class VerseService:
    """Verse list with optimistic local mutations backed by the pending-change ledger."""

    def __init__(
        self,
        api: ProgressApiClient,
        store: LocalStore,
        ledger: PendingChangeLedger,
        auth: AuthSession,
        scheduler: Scheduler,
        on_auth_failure: Optional[Callable[[str], None]] = None,
        on_added: Optional[Callable[[Verse], None]] = None,
    ):
        self._api = api
        self._store = store
        self._ledger = ledger
        self._auth = auth
        self._scheduler = scheduler
        self._on_auth_failure = on_auth_failure
        self._on_added = on_added
        self.is_syncing = False
        self._verses: Dict[str, Verse] = {
            item["reference"]: Verse(**item)
            for item in store.get(VERSES_NAMESPACE, "items", []) or []
        }

    def _persist(self) -> None:
        self._store.put(
            VERSES_NAMESPACE,
            "items",
            [verse.model_dump(mode="json") for verse in self._verses.values()],
        )

    def list_verses(self) -> List[Verse]:
        return list(self._verses.values())

    def get(self, reference: str) -> Verse:
        verse = self._verses.get(reference)
        if verse is None:
            raise NotFoundError(f"Verse not found: {reference}")
        return verse

    @property
    def updating_references(self) -> Set[str]:
        """Verses whose status change has not reached the server yet."""
        return {
            change.verse_reference
            for change in self._ledger.get_unsynced_changes()
            if change.type == ChangeType.STATUS_UPDATE
        }

    @staticmethod
    def _apply_change(verses: Dict[str, Verse], change: PendingChange) -> None:
        if change.type == ChangeType.ADD_VERSE:
            verses[change.verse_reference] = Verse(**change.payload)
        elif change.type == ChangeType.STATUS_UPDATE:
            verse = verses.get(change.verse_reference)
            if verse is not None:
                verses[change.verse_reference] = verse.model_copy(
                    update={"status": VerseStatus(change.payload["status"]), "last_reviewed": change.timestamp}
                )
        elif change.type == ChangeType.DELETE_VERSE:
            verses.pop(change.verse_reference, None)

    async def load_verses(self) -> Optional[str]:
        """Refresh from the server; returns a warning when the cached list had to be used."""
        result = await self._api.get_verses()
        if not result.ok:
            logger.warning("Error loading verses: %s", result.error)
            if is_auth_error(result.error) and self._on_auth_failure is not None:
                self._on_auth_failure(result.error)
            return LOAD_WARNING
        verses = {verse.reference: verse for verse in result.data}
        for change in self._ledger.get_unsynced_changes():
            self._apply_change(verses, change)
        self._verses = verses
        self._persist()
        logger.debug("Loaded %d verses", len(verses))
        return None

    def add_verse(self, data: VerseCreate) -> Verse:
        if data.reference in self._verses:
            raise ConflictError(DUPLICATE_VERSE_MESSAGE)
        verse = Verse(
            reference=data.reference,
            text=data.text,
            translation=data.translation,
            status=data.status,
            last_reviewed=self._scheduler.now(),
        )
        # Ledger first: if the store is down nothing changes locally.
        self._ledger.add_pending_change(ChangeType.ADD_VERSE, verse.reference, verse.model_dump(mode="json"))
        self._verses[verse.reference] = verse
        self._persist()
        self.request_sync()
        if self._on_added is not None:
            self._on_added(verse)
        return verse

    def update_status(self, reference: str, status: VerseStatus, silent: bool = False) -> Verse:
        verse = self.get(reference)
        if verse.status == status:
            return verse
        self._ledger.add_pending_change(ChangeType.STATUS_UPDATE, reference, {"status": status.value})
        verse = verse.model_copy(update={"status": status, "last_reviewed": self._scheduler.now()})
        self._verses[reference] = verse
        self._persist()
        if not silent:
            logger.info("Status of %s changed to %s", reference, status.value)
        self.request_sync()
        return verse

    def delete_verse(self, reference: str) -> None:
        self.get(reference)
        self._ledger.add_pending_change(ChangeType.DELETE_VERSE, reference)
        self._verses.pop(reference, None)
        self._persist()
        self.request_sync()

    def request_sync(self) -> None:
        self._scheduler.spawn(self.sync_pending_changes)

    async def _push(self, change: PendingChange) -> ApiResult:
        if change.type == ChangeType.ADD_VERSE:
            payload = change.payload
            return await self._api.add_verse(
                VerseCreate(
                    reference=payload["reference"],
                    text=payload["text"],
                    translation=payload.get("translation", "NIV"),
                    status=payload.get("status", VerseStatus.NOT_STARTED),
                )
            )
        if change.type == ChangeType.STATUS_UPDATE:
            return await self._api.update_verse(change.verse_reference, {"status": change.payload["status"]})
        return await self._api.delete_verse(change.verse_reference)

    async def sync_pending_changes(self) -> SyncReport:
        """Push unsynced changes in ledger order, stopping at the first transient failure."""
        report = SyncReport()
        if not self._auth.is_authenticated or self.is_syncing:
            report.skipped = True
            report.remaining = self._ledger.unsynced_count()
            return report
        self.is_syncing = True
        try:
            for change in self._ledger.get_unsynced_changes():
                result = await self._push(change)
                if result.ok or (change.type == ChangeType.DELETE_VERSE and result.status_code == 404):
                    self._ledger.mark_changes_as_synced([change.id])
                    report.synced += 1
                    continue
                if is_auth_error(result.error) or result.status_code == 401:
                    report.error = result.error
                    if self._on_auth_failure is not None:
                        self._on_auth_failure(result.error)
                    break
                if change.type == ChangeType.ADD_VERSE and is_conflict_error(result.error, result.status_code):
                    # The server already holds this reference; retrying cannot succeed.
                    self._ledger.mark_changes_as_synced([change.id])
                    report.conflicts.append(f"{change.verse_reference}: {DUPLICATE_VERSE_MESSAGE}")
                    continue
                if result.status_code == 404:
                    self._ledger.mark_changes_as_synced([change.id])
                    report.conflicts.append(f"{change.verse_reference}: verse no longer exists on the server")
                    continue
                report.error = result.error
                logger.warning("Pending change %s for %s not synced: %s", change.id, change.verse_reference, result.error)
                break
        finally:
            self.is_syncing = False
        report.remaining = self._ledger.unsynced_count()
        return report
