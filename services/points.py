from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from db.store import LocalStore
from models.gamification import GamificationStats, PointEvent, VerseStreak
from utils.api import ProgressApiClient
from utils.auth import AuthSession
from utils.errors import is_auth_error
from utils.scheduler import Scheduler

logger = logging.getLogger(__name__)

STATS_NAMESPACE = "stats"
REFRESH_INTERVAL_SECONDS = 5.0
CATCH_UP_EVENT = "word_guess_streak_sync"
VERSE_ADDED_DAILY_LIMIT = 3
SECONDS_PER_DAY = 86400

# Point system constants, mirrored from the server so local totals can move first.
POINTS = {
    "VERSE_ADDED": 10,
    "WORD_CORRECT": 1,
    "STREAK_MULTIPLIER": 0.5,
    "MASTERY_ACHIEVED": 500,
}


def word_points(streak: int) -> int:
    """Points for a correct first attempt while on a guess streak."""
    return POINTS["WORD_CORRECT"] + int(max(streak, 0) * POINTS["STREAK_MULTIPLIER"])


def merge_verse_streaks(
    local: Dict[str, VerseStreak],
    server: List[VerseStreak],
    live_reference: Optional[str] = None,
) -> Dict[str, VerseStreak]:
    """Merge by reference: longest never decreases, last_guess_date comes from the server.

    Verses the server does not know yet are kept. The live verse keeps its
    local current streak.
    """
    merged = {reference: streak.model_copy() for reference, streak in local.items()}
    for remote in server:
        existing = local.get(remote.verse_reference)
        if existing is None:
            merged[remote.verse_reference] = remote.model_copy()
            continue
        current = existing.current_guess_streak if remote.verse_reference == live_reference else remote.current_guess_streak
        merged[remote.verse_reference] = VerseStreak(
            verse_reference=remote.verse_reference,
            current_guess_streak=current,
            longest_guess_streak=max(existing.longest_guess_streak, remote.longest_guess_streak),
            last_guess_date=remote.last_guess_date,
        )
    return merged


def reconcile_longest(local: int, server: int) -> int:
    return local if local > server else server


class PointsReconciler:
    """Optimistic points and streak state, reconciled with server totals."""

    def __init__(
        self,
        api: ProgressApiClient,
        store: LocalStore,
        auth: AuthSession,
        scheduler: Scheduler,
        refresh_interval: float = REFRESH_INTERVAL_SECONDS,
        on_auth_failure: Optional[Callable[[str], None]] = None,
    ):
        self._api = api
        self._store = store
        self._auth = auth
        self._scheduler = scheduler
        self.refresh_interval = refresh_interval
        self._on_auth_failure = on_auth_failure
        self._last_refresh: Optional[float] = None

        self.points: int = int(store.get(STATS_NAMESPACE, "points", 0) or 0)
        self.longest_word_guess_streak: int = int(store.get(STATS_NAMESPACE, "longest_word_guess_streak", 0) or 0)
        self.verse_streaks: Dict[str, VerseStreak] = {
            item["verse_reference"]: VerseStreak(**item)
            for item in store.get(STATS_NAMESPACE, "verse_streaks", []) or []
        }
        self.current_verse_reference: Optional[str] = None
        self.current_verse_streak: int = 0

    def _persist(self) -> None:
        self._store.put(STATS_NAMESPACE, "points", self.points)
        self._store.put(STATS_NAMESPACE, "longest_word_guess_streak", self.longest_word_guess_streak)
        self._store.put(
            STATS_NAMESPACE,
            "verse_streaks",
            [streak.model_dump() for streak in self.verse_streaks.values()],
        )

    # Optimistic updates

    def add_points(self, delta: int) -> int:
        self.points += delta
        self._persist()
        self.request_refresh()
        return self.points

    def award_verse_added(self) -> int:
        """Optimistic award for a new verse, capped per UTC day the way the server caps it."""
        day = str(int(self._scheduler.now() // SECONDS_PER_DAY))
        awarded_today = self._store.get(STATS_NAMESPACE, "verses_added", {}) or {}
        count = int(awarded_today.get(day, 0))
        if count >= VERSE_ADDED_DAILY_LIMIT:
            return 0
        self._store.put(STATS_NAMESPACE, "verses_added", {day: count + 1})
        self.add_points(POINTS["VERSE_ADDED"])
        return POINTS["VERSE_ADDED"]

    def _verse_streak(self, reference: str) -> VerseStreak:
        streak = self.verse_streaks.get(reference)
        if streak is None:
            streak = VerseStreak(verse_reference=reference)
            self.verse_streaks[reference] = streak
        return streak

    def set_current_verse(self, reference: str) -> int:
        """Switch the live verse, picking up its last known current streak."""
        self.current_verse_reference = reference
        known = self.verse_streaks.get(reference)
        self.current_verse_streak = known.current_guess_streak if known else 0
        return self.current_verse_streak

    def begin_verse_session(self, reference: str) -> None:
        self.current_verse_reference = reference
        self.reset_streak(reference)

    def reset_streak(self, reference: str) -> None:
        if reference == self.current_verse_reference:
            self.current_verse_streak = 0
        self._verse_streak(reference).current_guess_streak = 0
        self._persist()

    def record_correct_guess(self, reference: str, first_attempt: bool, scoring: bool = True) -> int:
        """Extend the live streak; returns the points awarded for this guess."""
        if reference != self.current_verse_reference:
            self.set_current_verse(reference)
        self.current_verse_streak += 1
        streak = self._verse_streak(reference)
        streak.current_guess_streak = self.current_verse_streak
        streak.longest_guess_streak = max(streak.longest_guess_streak, self.current_verse_streak)
        streak.last_guess_date = self._scheduler.now()
        self.longest_word_guess_streak = max(self.longest_word_guess_streak, self.current_verse_streak)
        awarded = word_points(self.current_verse_streak) if first_attempt and scoring else 0
        self.points += awarded
        self._persist()
        if awarded:
            self.request_refresh()
        return awarded

    def record_wrong_guess(self, reference: str) -> None:
        if reference != self.current_verse_reference:
            self.set_current_verse(reference)
        self.reset_streak(reference)

    # Server reconciliation

    def request_refresh(self) -> None:
        self._scheduler.spawn(self.refresh_points)

    def apply_server_stats(self, stats: GamificationStats) -> None:
        """Fold authoritative totals into local state in one synchronous step."""
        self.points = stats.total_points
        self.verse_streaks = merge_verse_streaks(
            self.verse_streaks, stats.verse_streaks, self.current_verse_reference
        )
        self.longest_word_guess_streak = reconcile_longest(
            self.longest_word_guess_streak, stats.longest_word_guess_streak
        )
        self._persist()

    async def _fetch_stats(self) -> Optional[GamificationStats]:
        self._last_refresh = self._scheduler.now()
        result = await self._api.get_stats()
        if not result.ok:
            logger.warning("Error fetching points: %s", result.error)
            if is_auth_error(result.error) and self._on_auth_failure is not None:
                self._on_auth_failure(result.error)
            return None
        return result.data

    async def refresh_points(self, force: bool = False) -> bool:
        """Pull server totals, at most once per refresh interval unless forced."""
        if not self._auth.is_authenticated:
            return False
        now = self._scheduler.now()
        if not force and self._last_refresh is not None and now - self._last_refresh < self.refresh_interval:
            return False
        stats = await self._fetch_stats()
        if stats is None:
            return False
        self.apply_server_stats(stats)
        return True

    async def sync_longest_streak(self) -> bool:
        """Push a zero-point catch-up event when the local longest streak is ahead of the server."""
        if not self._auth.is_authenticated:
            return False
        stats = await self._fetch_stats()
        if stats is None:
            return False
        local_longest = self.longest_word_guess_streak
        self.apply_server_stats(stats)
        if local_longest <= stats.longest_word_guess_streak:
            return False
        logger.info(
            "Local longest word guess streak %d ahead of server %d, sending catch-up",
            local_longest, stats.longest_word_guess_streak,
        )
        result = await self._api.record_point_event(
            PointEvent(
                event_type=CATCH_UP_EVENT,
                points=0,
                metadata={"longest_word_guess_streak": local_longest},
                created_at=self._scheduler.now(),
            )
        )
        if not result.ok:
            logger.warning("Catch-up streak event failed: %s", result.error)
            return False
        return True

    def snapshot(self) -> dict:
        return {
            "points": self.points,
            "longest_word_guess_streak": self.longest_word_guess_streak,
            "current_verse_reference": self.current_verse_reference,
            "current_verse_streak": self.current_verse_streak,
            "verse_streaks": [streak.model_dump() for streak in self.verse_streaks.values()],
        }
