from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from utils.auth import SESSION_EXPIRED_MESSAGE, AuthSession
from utils.scheduler import Scheduler

logger = logging.getLogger(__name__)

TIMEOUT_SECONDS = 3 * 60 * 60
WARNING_SECONDS = 2 * 60
FLUSH_TIMEOUT_SECONDS = 5.0


def format_countdown(seconds: float) -> str:
    seconds = max(0, int(seconds))
    return f"{seconds // 60}:{seconds % 60:02d}"


class SessionGuardian:
    """Inactivity timeout with a countdown warning and forced expiration.

    Fed by notify_activity() from whatever input layer exists; tick() is
    called once per second by the service loop.
    """

    def __init__(
        self,
        auth: AuthSession,
        scheduler: Scheduler,
        flush: Callable[[], Awaitable[object]],
        timeout_seconds: float = TIMEOUT_SECONDS,
        warning_seconds: float = WARNING_SECONDS,
        flush_timeout: float = FLUSH_TIMEOUT_SECONDS,
    ):
        self._auth = auth
        self._scheduler = scheduler
        self._flush = flush
        self.timeout_seconds = timeout_seconds
        self.warning_seconds = warning_seconds
        self.flush_timeout = flush_timeout
        self.last_activity = scheduler.now()
        self.warning_visible = False
        self.expired = False
        self.message: Optional[str] = None
        self._expiring = False

    def notify_activity(self) -> None:
        self.last_activity = self._scheduler.now()

    def remaining(self) -> float:
        return self.timeout_seconds - (self._scheduler.now() - self.last_activity)

    async def tick(self) -> None:
        if not self._auth.is_authenticated:
            self.warning_visible = False
            return
        remaining = self.remaining()
        if remaining <= 0:
            await self.expire()
        elif remaining <= self.warning_seconds:
            if not self.warning_visible:
                logger.info("Session expires in %s", format_countdown(remaining))
            self.warning_visible = True
        else:
            self.warning_visible = False

    def continue_session(self) -> None:
        self.notify_activity()
        self.warning_visible = False

    async def _flush_best_effort(self) -> None:
        try:
            await asyncio.wait_for(self._flush(), timeout=self.flush_timeout)
        except asyncio.TimeoutError:
            logger.warning("Flush before sign-out timed out")
        except Exception as exc:
            logger.error("Flush before sign-out failed: %s", exc)

    async def expire(self) -> None:
        """Forced expiration: flush what we can, then clear the session regardless."""
        if self._expiring:
            return
        self._expiring = True
        try:
            logger.info("Session expired after inactivity")
            await self._flush_best_effort()
            self._auth.sign_out(SESSION_EXPIRED_MESSAGE)
            self.expired = True
            self.message = SESSION_EXPIRED_MESSAGE
            self.warning_visible = False
        finally:
            self._expiring = False

    async def sign_out_now(self) -> None:
        await self._flush_best_effort()
        self._auth.sign_out("Signed out")
        self.warning_visible = False
        self.message = None

    def reset(self) -> None:
        """Start a fresh session window, e.g. after signing in."""
        self.notify_activity()
        self.expired = False
        self.message = None
        self.warning_visible = False

    def status(self) -> dict:
        remaining = max(0.0, self.remaining()) if self._auth.is_authenticated else None
        warning = None
        if self.warning_visible and remaining is not None:
            warning = {
                "remaining_seconds": int(remaining),
                "message": f"Your session will expire in {format_countdown(remaining)}. Would you like to continue?",
                "actions": ["continue", "sign_out"],
            }
        return {
            "authenticated": self._auth.is_authenticated,
            "remaining_seconds": int(remaining) if remaining is not None else None,
            "warning": warning,
            "expired": self.expired,
            "message": self.message or self._auth.sign_out_reason,
        }
