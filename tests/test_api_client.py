import asyncio

from conftest import BASE_URL
from db.store import LocalStore
from utils.api import ProgressApiClient, parse_mastery, parse_timestamp, parse_verse, to_millis
from utils.auth import AuthSession


def test_timestamps_accept_millis_seconds_and_iso():
    assert parse_timestamp(1_700_000_000_000) == 1_700_000_000.0
    assert parse_timestamp(1_700_000_000) == 1_700_000_000.0
    assert parse_timestamp("2024-01-01T00:00:00+00:00") == 1_704_067_200.0
    assert parse_timestamp("yesterday") is None
    assert to_millis(1.5) == 1500


def test_parse_accepts_camel_case_fields():
    verse = parse_verse({"reference": "John 3:16", "text": "For God", "status": "mastered", "lastReviewed": 1_000_000_000_000})
    progress = parse_mastery("John 3:16", {"totalAttempts": 6, "overallAccuracy": 0.97, "isMastered": True})

    assert verse.status.value == "mastered"
    assert verse.last_reviewed == 1_000_000_000.0
    assert progress.total_attempts == 6
    assert progress.is_mastered


def test_missing_token_short_circuits(tmp_path, server):
    auth = AuthSession(LocalStore(tmp_path / "versecoach.db"))
    api = ProgressApiClient(BASE_URL, auth, transport=server.transport())

    result = asyncio.run(api.get_verses())

    assert result.error == "No session token found"
    assert result.status_code == 401
    assert server.requests == []


def test_error_body_is_normalized(context, server):
    result = asyncio.run(context.api.delete_verse("Jude 1:24"))

    assert not result.ok
    assert result.error == "Verse not found"
    assert result.status_code == 404


def test_reference_is_url_encoded(context, server):
    server.add_verse("1 John 1:9", "If we confess our sins")

    result = asyncio.run(context.api.update_verse("1 John 1:9", {"status": "in_progress"}))

    assert result.ok
    assert server.requests[-1].url.path == "/api/verses/1 John 1:9"
    assert server.verses["1 John 1:9"]["status"] == "in_progress"
