"""Wires one session's worth of services together.

Everything the routes touch hangs off an AppContext that main.py stores on
app.state, so tests can build as many isolated contexts as they like.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from db.store import LocalStore
from services.achievements import AchievementTracker
from services.dispatcher import WordProgressDispatcher
from services.guardian import SessionGuardian
from services.ledger import PendingChangeLedger
from services.mastery import MasteryService
from services.points import PointsReconciler
from services.practice import PracticeService
from services.verses import VerseService
from utils.api import ProgressApiClient
from utils.auth import AuthSession
from utils.mastery import rules_from_config
from utils.scheduler import AsyncioScheduler, Scheduler

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    config: dict
    store: LocalStore
    auth: AuthSession
    api: ProgressApiClient
    scheduler: Scheduler
    ledger: PendingChangeLedger
    dispatcher: WordProgressDispatcher
    points: PointsReconciler
    achievements: AchievementTracker
    mastery: MasteryService
    verses: VerseService
    practice: PracticeService
    guardian: SessionGuardian
    has_unsaved_changes: bool = False

    async def flush_all(self) -> None:
        """Push queued word events and pending verse changes."""
        await self.dispatcher.flush()
        await self.verses.sync_pending_changes()

    def poll_unsaved_changes(self) -> bool:
        self.has_unsaved_changes = self.ledger.has_unsaved_changes()
        return self.has_unsaved_changes


def build_context(
    config: dict,
    store: Optional[LocalStore] = None,
    scheduler: Optional[Scheduler] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AppContext:
    store = store or LocalStore()
    scheduler = scheduler or AsyncioScheduler()
    sync_cfg = config.get("sync", {})
    session_cfg = config.get("session", {})
    achievements_cfg = config.get("achievements", {})

    auth = AuthSession(store)

    def handle_auth_failure(error: Optional[str]) -> None:
        if auth.is_authenticated:
            logger.warning("Authentication failed, signing out: %s", error)
            auth.sign_out(error)

    api = ProgressApiClient(
        config["api"]["base_url"],
        auth,
        timeout=config["api"].get("timeout", 10),
        transport=transport,
    )
    ledger = PendingChangeLedger(store, clock=scheduler.now)
    dispatcher = WordProgressDispatcher(
        api,
        store,
        auth,
        scheduler,
        debounce_seconds=sync_cfg.get("debounce_ms", 1000) / 1000,
        batch_size=sync_cfg.get("batch_size", 10),
        retry_after_failure=sync_cfg.get("retry_after_failure_seconds", 0),
        on_auth_failure=handle_auth_failure,
    )
    points = PointsReconciler(
        api,
        store,
        auth,
        scheduler,
        refresh_interval=sync_cfg.get("points_refresh_ms", 5000) / 1000,
        on_auth_failure=handle_auth_failure,
    )
    achievements = AchievementTracker(
        store,
        best_streak=lambda: points.longest_word_guess_streak,
        clock=scheduler.now,
        min_streak=achievements_cfg.get("min_streak", 50),
        max_verse_words=achievements_cfg.get("max_verse_words", 10),
    )
    mastery = MasteryService(
        api,
        store,
        scheduler,
        cache_seconds=config.get("mastery", {}).get("cache_seconds", 300),
        rules=rules_from_config(config),
        on_auth_failure=handle_auth_failure,
    )
    verses = VerseService(
        api,
        store,
        ledger,
        auth,
        scheduler,
        on_auth_failure=handle_auth_failure,
        on_added=lambda verse: points.award_verse_added(),
    )
    practice = PracticeService(store, verses, dispatcher, points, achievements, mastery, scheduler)

    context = AppContext(
        config=config,
        store=store,
        auth=auth,
        api=api,
        scheduler=scheduler,
        ledger=ledger,
        dispatcher=dispatcher,
        points=points,
        achievements=achievements,
        mastery=mastery,
        verses=verses,
        practice=practice,
        guardian=None,
    )
    context.guardian = SessionGuardian(
        auth,
        scheduler,
        flush=context.flush_all,
        timeout_seconds=session_cfg.get("timeout_minutes", 180) * 60,
        warning_seconds=session_cfg.get("warning_seconds", 120),
    )

    def on_sign_out(reason: Optional[str]) -> None:
        dispatcher.close()
        practice.clear_sessions()

    auth.add_sign_out_listener(on_sign_out)
    context.poll_unsaved_changes()
    return context
