import asyncio
import json
from typing import Dict, List, Optional

import httpx
import pytest

from db.store import LocalStore
from models.progress import VerseAttempt
from services.context import build_context
from utils.mastery import evaluate_mastery
from utils.scheduler import ManualScheduler

TOKEN = "test-token"
BASE_URL = "http://progress.test/api"


def make_config(**sections) -> dict:
    config = {
        "api": {"base_url": BASE_URL, "timeout": 5.0},
        "sync": {
            "debounce_ms": 1000,
            "batch_size": 10,
            "points_refresh_ms": 5000,
            "pending_poll_seconds": 5,
            "retry_after_failure_seconds": 0.0,
        },
        "mastery": {
            "cache_seconds": 300,
            "min_attempts": 5,
            "min_accuracy": 0.95,
            "required_perfect": 3,
            "min_perfect_spacing_hours": 24,
        },
        "session": {"timeout_minutes": 180, "warning_seconds": 120, "tick_seconds": 1},
        "achievements": {"min_streak": 50, "max_verse_words": 10},
        "logging": {"level": "INFO", "mask_sensitive_data": True},
    }
    for name, values in sections.items():
        config[name].update(values)
    return config


class FakeProgressServer:
    """In-memory stand-in for the Verse/Progress API, served through httpx.MockTransport."""

    def __init__(self):
        self.verses: Dict[str, dict] = {}
        self.word_events: List[dict] = []
        self.attempts: Dict[str, List[VerseAttempt]] = {}
        self.point_events: List[dict] = []
        self.stats = {
            "total_points": 0,
            "current_streak": 0,
            "longest_streak": 0,
            "verses_mastered": 0,
            "longest_word_guess_streak": 0,
            "verse_streaks": [],
        }
        self.requests: List[httpx.Request] = []
        self.offline = False
        self.expired = False
        # Fail word progress posts once this many have been accepted.
        self.fail_word_after: Optional[int] = None

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def add_verse(self, reference: str, text: str, status: str = "not_started") -> None:
        self.verses[reference] = {
            "reference": reference,
            "text": text,
            "translation": "NIV",
            "status": status,
            "lastReviewed": None,
        }

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.offline:
            raise httpx.ConnectError("server unreachable", request=request)
        if self.expired or request.headers.get("Authorization") != f"Bearer {TOKEN}":
            return httpx.Response(401, json={"error": "Invalid or expired session"})
        path = request.url.path.removeprefix("/api")
        body = json.loads(request.content) if request.content else {}
        method = request.method

        if path == "/verses" and method == "GET":
            return httpx.Response(200, json=list(self.verses.values()))
        if path == "/verses" and method == "POST":
            if body["reference"] in self.verses:
                return httpx.Response(409, json={"error": "Verse already exists"})
            self.add_verse(body["reference"], body["text"], body.get("status", "not_started"))
            self.stats["total_points"] += 10
            return httpx.Response(201, json=self.verses[body["reference"]])
        if path.startswith("/verses/"):
            reference = path[len("/verses/"):]
            if reference not in self.verses:
                return httpx.Response(404, json={"error": "Verse not found"})
            if method == "PUT":
                self.verses[reference].update(body)
                return httpx.Response(200, json=self.verses[reference])
            if method == "DELETE":
                del self.verses[reference]
                return httpx.Response(204)

        if path == "/progress/word" and method == "POST":
            if self.fail_word_after is not None and len(self.word_events) >= self.fail_word_after:
                return httpx.Response(500, json={"error": "Internal server error"})
            self.word_events.append(body)
            return httpx.Response(200, json={"success": True})
        if path == "/progress/verse" and method == "POST":
            attempt = VerseAttempt(
                verse_reference=body["verse_reference"],
                words_correct=body["words_correct"],
                total_words=body["total_words"],
                timestamp=body["timestamp"] / 1000,
            )
            self.attempts.setdefault(attempt.verse_reference, []).append(attempt)
            return httpx.Response(200, json={"isCorrect": attempt.is_perfect, "message": "Attempt recorded"})
        if path.startswith("/progress/mastery/") and method == "GET":
            reference = path[len("/progress/mastery/"):]
            progress = evaluate_mastery(reference, self.attempts.get(reference, []))
            data = progress.model_dump(exclude={"provisional"})
            if data["mastery_date"] is not None:
                data["mastery_date"] = int(data["mastery_date"] * 1000)
            return httpx.Response(200, json=data)

        if path == "/gamification/stats" and method == "GET":
            return httpx.Response(200, json=self.stats)
        if path == "/gamification/points" and method == "POST":
            self.point_events.append(body)
            self.stats["total_points"] += body.get("points", 0)
            longest = (body.get("metadata") or {}).get("longest_word_guess_streak")
            if longest is not None:
                self.stats["longest_word_guess_streak"] = max(self.stats["longest_word_guess_streak"], longest)
            return httpx.Response(200, json={"success": True})

        return httpx.Response(404, json={"error": f"No route for {method} {path}"})


@pytest.fixture
def server():
    return FakeProgressServer()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def store(tmp_path):
    return LocalStore(tmp_path / "versecoach.db")


@pytest.fixture
def context(store, scheduler, server):
    ctx = build_context(make_config(), store=store, scheduler=scheduler, transport=server.transport())
    ctx.auth.sign_in(TOKEN, "ada@example.com")
    return ctx


def load_verse(context, server, reference: str, text: str, status: str = "not_started"):
    """Put a verse on the fake server and pull it into the local verse list."""
    server.add_verse(reference, text, status)
    warning = asyncio.run(context.verses.load_verses())
    assert warning is None
    return context.verses.get(reference)
