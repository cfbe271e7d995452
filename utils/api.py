from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from models.gamification import GamificationStats, PointEvent, VerseStreak
from models.progress import MasteryProgress, VerseAttempt, WordProgressEvent
from models.verse import Verse, VerseCreate, VerseStatus
from utils.auth import AuthSession

logger = logging.getLogger(__name__)

NO_TOKEN_ERROR = "No session token found"


@dataclass
class ApiResult:
    """Normalized outcome of one API call: data on success, error otherwise."""

    data: Any = None
    error: Optional[str] = None
    status_code: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def to_millis(timestamp: Optional[float]) -> Optional[int]:
    if timestamp is None:
        return None
    return int(timestamp * 1000)


def parse_timestamp(value: Any) -> Optional[float]:
    """Accept epoch milliseconds, epoch seconds or ISO strings from the server."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        # Anything past year 5138 in seconds is really milliseconds.
        return value / 1000 if value > 1e11 else float(value)
    try:
        return datetime.fromisoformat(str(value)).timestamp()
    except ValueError:
        return None


def _pick(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def parse_verse(data: Dict[str, Any]) -> Verse:
    status = _pick(data, "status", default=VerseStatus.NOT_STARTED.value)
    try:
        status = VerseStatus(status)
    except ValueError:
        status = VerseStatus.NOT_STARTED
    return Verse(
        reference=data["reference"],
        text=data["text"],
        translation=_pick(data, "translation", default="NIV"),
        status=status,
        last_reviewed=parse_timestamp(_pick(data, "lastReviewed", "last_reviewed", "created_at")),
    )


def parse_mastery(verse_reference: str, data: Dict[str, Any]) -> MasteryProgress:
    return MasteryProgress(
        verse_reference=_pick(data, "verse_reference", "verseReference", default=verse_reference),
        total_attempts=int(_pick(data, "total_attempts", "totalAttempts", default=0)),
        overall_accuracy=float(_pick(data, "overall_accuracy", "overallAccuracy", default=0.0)),
        consecutive_perfect=int(_pick(data, "consecutive_perfect", "consecutivePerfect", default=0)),
        is_mastered=bool(_pick(data, "is_mastered", "isMastered", default=False)),
        mastery_date=parse_timestamp(_pick(data, "mastery_date", "masteryDate")),
    )


def parse_stats(data: Dict[str, Any]) -> GamificationStats:
    streaks = [
        VerseStreak(
            verse_reference=item["verse_reference"],
            current_guess_streak=int(item.get("current_guess_streak") or 0),
            longest_guess_streak=int(item.get("longest_guess_streak") or 0),
            last_guess_date=parse_timestamp(item.get("last_guess_date")),
        )
        for item in data.get("verse_streaks") or []
    ]
    return GamificationStats(
        total_points=int(data.get("total_points") or 0),
        current_streak=int(data.get("current_streak") or 0),
        longest_streak=int(data.get("longest_streak") or 0),
        verses_mastered=int(data.get("verses_mastered") or 0),
        longest_word_guess_streak=int(data.get("longest_word_guess_streak") or 0),
        verse_streaks=streaks,
    )


def _handle_response(response: httpx.Response) -> ApiResult:
    if not response.is_success:
        try:
            body = response.json()
            error = body.get("error") if isinstance(body, dict) else None
        except ValueError:
            error = None
        error = error or response.text or f"HTTP {response.status_code}"
        logger.warning("API %s %s failed (%s): %s", response.request.method, response.request.url.path, response.status_code, error)
        return ApiResult(error=error, status_code=response.status_code)
    if response.status_code == 204 or not response.content:
        return ApiResult(status_code=response.status_code)
    try:
        return ApiResult(data=response.json(), status_code=response.status_code)
    except ValueError:
        return ApiResult(error="Invalid JSON response", status_code=response.status_code)


class ProgressApiClient:
    """Client for the remote Verse/Progress REST API."""

    def __init__(
        self,
        base_url: str,
        auth: AuthSession,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._auth = auth
        self._transport = transport

    async def _request(self, method: str, path: str, json: Any = None) -> ApiResult:
        if not self._auth.is_authenticated:
            return ApiResult(error=NO_TOKEN_ERROR, status_code=401)
        headers = self._auth.authorization_header()
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.request(method, path, json=json, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("API %s %s network error: %s", method, path, exc)
            return ApiResult(error=f"Network error: {exc}")
        return _handle_response(response)

    # Verses

    async def get_verses(self) -> ApiResult:
        result = await self._request("GET", "/verses")
        if result.ok:
            result.data = [parse_verse(item) for item in result.data or []]
        return result

    async def add_verse(self, verse: VerseCreate) -> ApiResult:
        return await self._request("POST", "/verses", json=verse.model_dump(mode="json"))

    async def update_verse(self, reference: str, updates: Dict[str, Any]) -> ApiResult:
        return await self._request("PUT", f"/verses/{quote(reference, safe='')}", json=updates)

    async def delete_verse(self, reference: str) -> ApiResult:
        return await self._request("DELETE", f"/verses/{quote(reference, safe='')}")

    # Progress

    async def record_word_progress(self, event: WordProgressEvent) -> ApiResult:
        return await self._request(
            "POST",
            "/progress/word",
            json={
                "verse_reference": event.verse_reference,
                "word_index": event.word_index,
                "word": event.word,
                "is_correct": event.is_correct,
                "timestamp": to_millis(event.timestamp),
            },
        )

    async def record_verse_attempt(self, attempt: VerseAttempt) -> ApiResult:
        return await self._request(
            "POST",
            "/progress/verse",
            json={
                "verse_reference": attempt.verse_reference,
                "words_correct": attempt.words_correct,
                "total_words": attempt.total_words,
                "timestamp": to_millis(attempt.timestamp),
            },
        )

    async def get_mastery_progress(self, reference: str) -> ApiResult:
        result = await self._request("GET", f"/progress/mastery/{quote(reference, safe='')}")
        if result.ok:
            result.data = parse_mastery(reference, result.data or {})
        return result

    # Gamification

    async def get_stats(self) -> ApiResult:
        result = await self._request("GET", "/gamification/stats")
        if result.ok:
            result.data = parse_stats(result.data or {})
        return result

    async def record_point_event(self, event: PointEvent) -> ApiResult:
        body: Dict[str, Any] = {"event_type": event.event_type, "points": event.points}
        if event.metadata is not None:
            body["metadata"] = event.metadata
        if event.created_at is not None:
            body["created_at"] = to_millis(event.created_at)
        return await self._request("POST", "/gamification/points", json=body)
