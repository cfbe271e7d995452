from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

from db.store import LocalStore
from models.progress import WordProgressEvent
from utils.api import ApiResult, ProgressApiClient
from utils.auth import AuthSession
from utils.errors import is_auth_error
from utils.scheduler import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

DEBOUNCE_SECONDS = 1.0
BATCH_SIZE = 10


class WordProgressDispatcher:
    """Debounced, batched uploader for first-attempt word events.

    One instance per session. Bursts of enqueue() calls collapse into one
    flush; a failed flush leaves the whole queue in place for the next
    debounce cycle.
    """

    def __init__(
        self,
        api: ProgressApiClient,
        store: LocalStore,
        auth: AuthSession,
        scheduler: Scheduler,
        debounce_seconds: float = DEBOUNCE_SECONDS,
        batch_size: int = BATCH_SIZE,
        retry_after_failure: float = 0.0,
        on_auth_failure: Optional[Callable[[str], None]] = None,
    ):
        self._api = api
        self._store = store
        self._auth = auth
        self._scheduler = scheduler
        self.debounce_seconds = debounce_seconds
        self.batch_size = max(1, batch_size)
        self.retry_after_failure = retry_after_failure
        self._on_auth_failure = on_auth_failure
        self._queue: List[WordProgressEvent] = []
        self._timer: Optional[TimerHandle] = None
        self.is_syncing = False
        self.last_error: Optional[str] = None

    @property
    def queue(self) -> List[WordProgressEvent]:
        return list(self._queue)

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    def is_recorded(self, verse_reference: str, word_index: int) -> bool:
        return self._store.is_word_recorded(verse_reference, word_index)

    def enqueue(self, event: WordProgressEvent) -> None:
        # Recording first: a store failure must not leave an event that can be emitted twice.
        self._store.mark_word_recorded(event.verse_reference, event.word_index, event.timestamp)
        self._queue.append(event)
        self._restart_timer(self.debounce_seconds)

    def _restart_timer(self, delay: float) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self._scheduler.call_later(delay, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        self._scheduler.spawn(self.flush)

    async def flush(self) -> bool:
        """Send every queued event. Returns True only when the queue was delivered."""
        if not self._auth.is_authenticated or not self._queue or self.is_syncing:
            return False
        self.is_syncing = True
        snapshot = list(self._queue)
        try:
            for start in range(0, len(snapshot), self.batch_size):
                batch = snapshot[start:start + self.batch_size]
                results = await asyncio.gather(
                    *(self._api.record_word_progress(event) for event in batch),
                    return_exceptions=True,
                )
                errors = [self._error_of(result) for result in results]
                errors = [error for error in errors if error]
                if errors:
                    self._handle_failure(errors, len(snapshot))
                    return False
            # Events enqueued while the sync was in flight stay queued.
            del self._queue[:len(snapshot)]
            self.last_error = None
            logger.debug("Synced %d word progress event(s)", len(snapshot))
            return True
        finally:
            self.is_syncing = False

    @staticmethod
    def _error_of(result) -> Optional[str]:
        if isinstance(result, BaseException):
            return str(result) or result.__class__.__name__
        if isinstance(result, ApiResult):
            return result.error
        return None

    def _handle_failure(self, errors: List[str], queued: int) -> None:
        self.last_error = errors[0]
        logger.warning(
            "Word progress sync failed (%d error(s)), keeping %d queued event(s): %s",
            len(errors), queued, errors[0],
        )
        auth_errors = [error for error in errors if is_auth_error(error)]
        if auth_errors and self._on_auth_failure is not None:
            self._on_auth_failure(auth_errors[0])
            return
        if self.retry_after_failure > 0:
            self._restart_timer(self.retry_after_failure)

    def close(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
