from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from db.store import LocalStore
from models.gamification import AchievementRecord

logger = logging.getLogger(__name__)

ACHIEVEMENT_NAMESPACE = "achievement"
PENDING_KEY = "social_share_pending"

MIN_STREAK_FOR_SHARING = 50
# Short verses trigger the share prompt regardless of streak.
MAX_VERSE_LENGTH_FOR_AUTO_SHARING = 10


class AchievementTracker:
    """Keeps the single outstanding "share your achievement" record."""

    def __init__(
        self,
        store: LocalStore,
        best_streak: Callable[[], int],
        clock: Callable[[], float] = time.time,
        min_streak: int = MIN_STREAK_FOR_SHARING,
        max_verse_words: int = MAX_VERSE_LENGTH_FOR_AUTO_SHARING,
    ):
        self._store = store
        self._best_streak = best_streak
        self._clock = clock
        self.min_streak = min_streak
        self.max_verse_words = max_verse_words

    def qualifies_for_streak(self, streak: int) -> bool:
        return streak >= self.min_streak

    def qualifies_for_completion(self, streak: int, verse_word_count: int) -> bool:
        if verse_word_count <= self.max_verse_words:
            return True
        return self.qualifies_for_streak(streak)

    def record_streak(self, streak: int) -> Optional[AchievementRecord]:
        if not self.qualifies_for_streak(streak):
            return None
        return self._save(streak)

    def record_verse_completion(self, streak: int, verse_word_count: int) -> Optional[AchievementRecord]:
        if not self.qualifies_for_completion(streak, verse_word_count):
            return None
        return self._save(streak)

    def _save(self, streak: int) -> AchievementRecord:
        record = AchievementRecord(
            streak=max(streak, self._best_streak()),
            achieved_at=self._clock(),
        )
        self._store.put(ACHIEVEMENT_NAMESPACE, PENDING_KEY, record.model_dump())
        logger.info("Achievement saved for sharing (streak %d)", record.streak)
        return record

    def get_pending(self) -> Optional[AchievementRecord]:
        data = self._store.get(ACHIEVEMENT_NAMESPACE, PENDING_KEY)
        if not data:
            return None
        return AchievementRecord(**data)

    def has_unshared(self) -> bool:
        record = self.get_pending()
        return record is not None and not record.shared

    def mark_shared(self) -> Optional[AchievementRecord]:
        record = self.get_pending()
        if record is None:
            return None
        record.shared = True
        record.share_count += 1
        self._store.put(ACHIEVEMENT_NAMESPACE, PENDING_KEY, record.model_dump())
        return record

    def consume(self) -> Optional[AchievementRecord]:
        """Return the pending record and clear it, so the share UI sees it once."""
        record = self.get_pending()
        if record is not None:
            self._store.delete(ACHIEVEMENT_NAMESPACE, PENDING_KEY)
        return record
