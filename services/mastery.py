from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from db.store import LocalStore
from models.progress import MasteryProgress, VerseAttempt
from utils.api import ProgressApiClient
from utils.errors import is_auth_error
from utils.mastery import DEFAULT_MASTERY_RULES, evaluate_mastery
from utils.scheduler import Scheduler

logger = logging.getLogger(__name__)

MASTERY_NAMESPACE = "mastery"
ATTEMPTS_NAMESPACE = "mastery_attempts"
CACHE_SECONDS = 300


@dataclass
class AttemptOutcome:
    ok: bool
    message: Optional[str] = None
    error: Optional[str] = None
    progress: Optional[MasteryProgress] = None


class MasteryService:
    """Server mastery progress with a short-lived local cache."""

    def __init__(
        self,
        api: ProgressApiClient,
        store: LocalStore,
        scheduler: Scheduler,
        cache_seconds: int = CACHE_SECONDS,
        rules: Optional[dict] = None,
        on_auth_failure: Optional[Callable[[str], None]] = None,
    ):
        self._api = api
        self._store = store
        self._scheduler = scheduler
        self.cache_seconds = cache_seconds
        self.rules = rules or DEFAULT_MASTERY_RULES.copy()
        self._on_auth_failure = on_auth_failure
        self.last_error: Optional[str] = None

    def cached(self, reference: str) -> Optional[MasteryProgress]:
        entry = self._store.get(MASTERY_NAMESPACE, reference)
        if not entry:
            return None
        if self._scheduler.now() - entry["fetched_at"] >= self.cache_seconds:
            return None
        return MasteryProgress(**entry["progress"])

    def invalidate(self, reference: str) -> None:
        self._store.delete(MASTERY_NAMESPACE, reference)

    def local_attempts(self, reference: str) -> List[VerseAttempt]:
        return [VerseAttempt(**item) for item in self._store.get(ATTEMPTS_NAMESPACE, reference, []) or []]

    def record_local_attempt(self, attempt: VerseAttempt) -> None:
        attempts = self._store.get(ATTEMPTS_NAMESPACE, attempt.verse_reference, []) or []
        attempts.append(attempt.model_dump())
        self._store.put(ATTEMPTS_NAMESPACE, attempt.verse_reference, attempts)

    def provisional_progress(self, reference: str) -> MasteryProgress:
        progress = evaluate_mastery(reference, self.local_attempts(reference), self.rules)
        progress.provisional = True
        return progress

    async def get_progress(self, reference: str, force: bool = False) -> MasteryProgress:
        """Cached server progress, or an offline estimate when the server cannot be reached."""
        if not force:
            cached = self.cached(reference)
            if cached is not None:
                return cached
        result = await self._api.get_mastery_progress(reference)
        if not result.ok:
            self.last_error = result.error
            logger.warning("Error fetching mastery progress for %s: %s", reference, result.error)
            if is_auth_error(result.error) and self._on_auth_failure is not None:
                self._on_auth_failure(result.error)
            return self.provisional_progress(reference)
        self.last_error = None
        progress: MasteryProgress = result.data
        self._store.put(
            MASTERY_NAMESPACE,
            reference,
            {"fetched_at": self._scheduler.now(), "progress": progress.model_dump()},
        )
        return progress

    async def submit_attempt(self, attempt: VerseAttempt) -> AttemptOutcome:
        result = await self._api.record_verse_attempt(attempt)
        if not result.ok:
            logger.warning("Mastery attempt for %s failed: %s", attempt.verse_reference, result.error)
            if is_auth_error(result.error) and self._on_auth_failure is not None:
                self._on_auth_failure(result.error)
            return AttemptOutcome(ok=False, error=result.error)
        self.record_local_attempt(attempt)
        self.invalidate(attempt.verse_reference)
        progress = await self.get_progress(attempt.verse_reference, force=True)
        body = result.data if isinstance(result.data, dict) else {}
        return AttemptOutcome(ok=True, message=body.get("message"), progress=progress)
