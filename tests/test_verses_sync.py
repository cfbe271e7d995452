import asyncio

import pytest

from conftest import load_verse
from models.sync import ChangeType
from models.verse import VerseCreate, VerseStatus
from services.verses import DUPLICATE_VERSE_MESSAGE, LOAD_WARNING
from utils.errors import ConflictError, NotFoundError, StoreUnavailableError


def test_add_verse_is_optimistic_and_synced_later(context, server, scheduler):
    verse = context.verses.add_verse(VerseCreate(reference="Micah 6:8", text="He has shown you, O mortal, what is good"))

    assert verse.status == VerseStatus.NOT_STARTED
    assert [v.reference for v in context.verses.list_verses()] == ["Micah 6:8"]
    assert server.verses == {}
    assert context.points.points == 10

    asyncio.run(scheduler.run_spawned())

    assert "Micah 6:8" in server.verses
    assert context.ledger.get_pending_changes() == []
    assert context.points.points == 10


def test_duplicate_reference_is_a_conflict(context, server):
    load_verse(context, server, "John 3:16", "For God so loved the world")

    with pytest.raises(ConflictError) as excinfo:
        context.verses.add_verse(VerseCreate(reference="John 3:16", text="duplicate"))

    assert str(excinfo.value) == DUPLICATE_VERSE_MESSAGE
    assert context.ledger.get_pending_changes() == []


def test_changes_stay_queued_while_offline(context, server, scheduler):
    load_verse(context, server, "John 3:16", "For God so loved the world")
    server.offline = True

    context.verses.update_status("John 3:16", VerseStatus.IN_PROGRESS)
    context.verses.delete_verse("John 3:16")
    asyncio.run(scheduler.run_spawned())

    changes = context.ledger.get_unsynced_changes()
    assert [c.type for c in changes] == [ChangeType.STATUS_UPDATE, ChangeType.DELETE_VERSE]
    assert context.poll_unsaved_changes() is True

    server.offline = False
    report = asyncio.run(context.verses.sync_pending_changes())

    assert report.synced == 2
    assert report.remaining == 0
    assert "John 3:16" not in server.verses


def test_server_conflict_on_add_is_reported_and_dropped(context, server):
    server.add_verse("Psalm 23:1", "The Lord is my shepherd")
    context.verses.add_verse(VerseCreate(reference="Psalm 23:1", text="The Lord is my shepherd"))

    report = asyncio.run(context.verses.sync_pending_changes())

    assert report.conflicts == [f"Psalm 23:1: {DUPLICATE_VERSE_MESSAGE}"]
    assert context.ledger.get_pending_changes() == []


def test_auth_failure_stops_sync_and_signs_out(context, server):
    load_verse(context, server, "John 3:16", "For God so loved the world")
    context.verses.update_status("John 3:16", VerseStatus.MASTERED)
    server.expired = True

    report = asyncio.run(context.verses.sync_pending_changes())

    assert report.synced == 0
    assert report.remaining == 1
    assert not context.auth.is_authenticated


def test_load_reapplies_pending_changes_and_falls_back_to_cache(context, server):
    load_verse(context, server, "John 3:16", "For God so loved the world")
    server.offline = True
    context.verses.update_status("John 3:16", VerseStatus.IN_PROGRESS)

    assert asyncio.run(context.verses.load_verses()) == LOAD_WARNING
    assert context.verses.get("John 3:16").status == VerseStatus.IN_PROGRESS

    server.offline = False
    assert asyncio.run(context.verses.load_verses()) is None
    # The server still says not_started, the queued change wins locally.
    assert context.verses.get("John 3:16").status == VerseStatus.IN_PROGRESS


def test_store_failure_leaves_verse_unchanged(context, server, monkeypatch):
    load_verse(context, server, "John 3:16", "For God so loved the world")

    def unavailable(*args, **kwargs):
        raise StoreUnavailableError("Local store unavailable: disk I/O error")

    monkeypatch.setattr(context.store, "add_pending_change", unavailable)

    with pytest.raises(StoreUnavailableError):
        context.verses.update_status("John 3:16", VerseStatus.MASTERED)
    assert context.verses.get("John 3:16").status == VerseStatus.NOT_STARTED


def test_unknown_verse(context):
    with pytest.raises(NotFoundError):
        context.verses.update_status("Obadiah 1:1", VerseStatus.MASTERED)


def test_blank_verse_is_rejected_before_ledger():
    with pytest.raises(ValueError):
        VerseCreate(reference="  ", text="text")
