import asyncio

from fastapi.testclient import TestClient

from conftest import TOKEN, load_verse
from main import app


def _client(monkeypatch, context) -> TestClient:
    monkeypatch.setattr(app.state, "context", context, raising=False)
    return TestClient(app)


def test_practice_flow_over_http(context, server, scheduler, monkeypatch):
    load_verse(context, server, "John 11:35", "Jesus wept")
    client = _client(monkeypatch, context)

    response = client.post("/practice/John 11:35/start")
    assert response.status_code == 200
    assert response.json()["state"] == "active"

    response = client.post("/practice/John 11:35/guess", json={"text": "Jesus"})
    body = response.json()
    assert body["is_correct"] is True
    assert body["revealed_text"] == ["Jesus", None]
    assert body["points_awarded"] == 1

    response = client.post("/practice/John 11:35/hint")
    assert response.json()["state"] == "completed"

    response = client.post("/practice/flush")
    assert response.json() == {"delivered": True, "pending": 0, "error": None}
    assert [e["word_index"] for e in server.word_events] == [0, 1]


def test_errors_map_to_status_codes(context, server, monkeypatch):
    load_verse(context, server, "John 3:16", "For God so loved the world")
    client = _client(monkeypatch, context)

    assert client.post("/practice/John 3:16/guess", json={"text": "For"}).status_code == 409
    assert client.post("/practice/Genesis 1:1/start").status_code == 404
    client.post("/practice/John 3:16/start")
    assert client.post("/practice/John 3:16/guess", json={"text": " "}).status_code == 400
    response = client.post("/practice/John 3:16/paste", json={"text": "For God"})
    assert response.status_code == 400
    assert "Pasting multiple words" in response.json()["detail"]
    assert client.post("/practice/John 3:16/paste", json={"text": "For"}).json()["allowed"] is True

    response = client.post("/verses/", json={"reference": "John 3:16", "text": "again"})
    assert response.status_code == 409


def test_verse_routes_queue_changes(context, server, scheduler, monkeypatch):
    client = _client(monkeypatch, context)

    response = client.post("/verses/", json={"reference": "Micah 6:8", "text": "Act justly"})
    assert response.status_code == 201
    assert response.json()["is_updating"] is False

    response = client.put("/verses/Micah 6:8/status", json={"status": "in_progress"})
    assert response.json()["is_updating"] is True

    pending = client.get("/verses/pending").json()
    assert pending["has_unsaved_changes"] is True
    assert [c["type"] for c in pending["changes"]] == ["ADD_VERSE", "STATUS_UPDATE"]

    report = client.post("/verses/sync").json()
    assert report["synced"] == 2
    assert server.verses["Micah 6:8"]["status"] == "in_progress"
    assert client.get("/verses/pending").json()["count"] == 0


def test_session_routes(context, server, scheduler, monkeypatch):
    client = _client(monkeypatch, context)

    status = client.get("/session/status").json()
    assert status["authenticated"] is True
    assert status["email"] == "ada@example.com"

    scheduler.advance(3 * 3600 - 30)
    asyncio.run(context.guardian.tick())
    assert client.get("/session/status").json()["warning"]["remaining_seconds"] == 30
    assert client.post("/session/continue").json()["warning"] is None

    response = client.post("/session/sign-out")
    assert response.json()["authenticated"] is False
    assert client.get("/verses/").status_code == 401

    response = client.post("/session/sign-in", json={"token": TOKEN})
    assert response.json()["authenticated"] is True
    assert client.post("/session/sign-in", json={"token": "  "}).status_code == 400


def test_stats_and_achievement_routes(context, server, monkeypatch):
    client = _client(monkeypatch, context)
    server.stats["total_points"] = 42

    assert client.post("/stats/refresh").json()["points"] == 42
    assert client.get("/stats/achievement").json() == {"achievement": None}
    assert client.post("/stats/achievement/share").status_code == 404

    context.achievements.record_streak(55)
    stats = client.get("/stats/").json()
    assert stats["has_unshared_achievement"] is True
    assert client.post("/stats/achievement/share").json()["achievement"]["share_count"] == 1
    assert client.delete("/stats/achievement").json()["achievement"]["streak"] == 55
    assert client.get("/stats/achievement").json() == {"achievement": None}

    server.offline = True
    offline_refresh = client.post("/stats/refresh")
    assert offline_refresh.status_code == 503
