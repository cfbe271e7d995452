import asyncio

from models.progress import WordProgressEvent
from services.dispatcher import WordProgressDispatcher


def _event(index: int, reference: str = "Psalm 119:11", correct: bool = True) -> WordProgressEvent:
    return WordProgressEvent(
        verse_reference=reference,
        word_index=index,
        word=f"word{index}",
        is_correct=correct,
        timestamp=1_700_000_000.0 + index,
    )


def test_enqueue_marks_word_recorded_before_sending(context, server):
    dispatcher = context.dispatcher

    dispatcher.enqueue(_event(0))

    assert dispatcher.is_recorded("Psalm 119:11", 0)
    assert dispatcher.pending_count == 1
    assert server.word_events == []


def test_debounce_collapses_bursts_into_one_flush(context, scheduler, server):
    dispatcher = context.dispatcher
    dispatcher.enqueue(_event(0))
    scheduler.advance(0.6)
    dispatcher.enqueue(_event(1))
    scheduler.advance(0.6)

    # The second enqueue restarted the timer, so nothing fired yet.
    assert scheduler.spawned == []
    assert scheduler.pending_timers == 1

    scheduler.advance(0.5)
    assert len(scheduler.spawned) == 1
    asyncio.run(scheduler.run_spawned())

    assert [e["word_index"] for e in server.word_events] == [0, 1]
    assert dispatcher.pending_count == 0


def test_word_event_body_uses_millisecond_timestamps(context, scheduler, server):
    context.dispatcher.enqueue(_event(3, correct=False))
    asyncio.run(context.dispatcher.flush())

    assert server.word_events == [
        {
            "verse_reference": "Psalm 119:11",
            "word_index": 3,
            "word": "word3",
            "is_correct": False,
            "timestamp": 1_700_000_003_000,
        }
    ]
    assert server.requests[0].headers["Authorization"] == "Bearer test-token"


def test_failed_batch_keeps_whole_queue_for_next_cycle(context, scheduler, server):
    dispatcher = context.dispatcher
    server.fail_word_after = 10
    for index in range(12):
        dispatcher.enqueue(_event(index))

    delivered = asyncio.run(dispatcher.flush())

    assert delivered is False
    assert dispatcher.pending_count == 12
    assert len(server.word_events) == 10
    assert dispatcher.last_error == "Internal server error"
    # No independent retry timer was armed.
    assert scheduler.pending_timers == 1
    scheduler.advance(1.0)
    asyncio.run(scheduler.run_spawned())
    assert dispatcher.pending_count == 12

    server.fail_word_after = None
    server.word_events.clear()
    dispatcher.enqueue(_event(12))
    scheduler.advance(1.0)
    asyncio.run(scheduler.run_spawned())

    assert dispatcher.pending_count == 0
    assert sorted(e["word_index"] for e in server.word_events) == list(range(13))


def test_network_failure_keeps_queue(context, server):
    server.offline = True
    context.dispatcher.enqueue(_event(0))

    assert asyncio.run(context.dispatcher.flush()) is False
    assert context.dispatcher.pending_count == 1
    assert context.dispatcher.last_error.startswith("Network error")


def test_flush_skipped_while_sync_in_flight(context, server):
    dispatcher = context.dispatcher
    dispatcher.enqueue(_event(0))
    dispatcher.is_syncing = True

    assert asyncio.run(dispatcher.flush()) is False
    assert server.word_events == []
    assert dispatcher.pending_count == 1


def test_flush_skipped_when_signed_out(context, server):
    context.dispatcher.enqueue(_event(0))
    context.auth.sign_out()

    assert asyncio.run(context.dispatcher.flush()) is False
    assert server.requests == []


def test_auth_failure_signs_out_and_keeps_queue(context, server):
    server.expired = True
    context.dispatcher.enqueue(_event(0))

    asyncio.run(context.dispatcher.flush())

    assert not context.auth.is_authenticated
    assert context.auth.sign_out_reason == "Invalid or expired session"
    assert context.dispatcher.pending_count == 1


def test_events_enqueued_during_flush_are_kept(context, monkeypatch):
    dispatcher = context.dispatcher
    dispatcher.enqueue(_event(0))
    original = context.api.record_word_progress

    async def record_and_enqueue(event):
        if event.word_index == 0:
            dispatcher.enqueue(_event(1))
        return await original(event)

    monkeypatch.setattr(context.api, "record_word_progress", record_and_enqueue)
    asyncio.run(dispatcher.flush())

    assert [e.word_index for e in dispatcher.queue] == [1]


def test_retry_after_failure_rearms_timer_when_configured(store, scheduler, server, context):
    dispatcher = WordProgressDispatcher(
        context.api, store, context.auth, scheduler, retry_after_failure=30.0
    )
    server.offline = True
    dispatcher.enqueue(_event(0))
    scheduler.advance(1.0)
    asyncio.run(scheduler.run_spawned())
    assert dispatcher.pending_count == 1

    server.offline = False
    scheduler.advance(30.0)
    asyncio.run(scheduler.run_spawned())

    assert dispatcher.pending_count == 0
    assert len(server.word_events) == 1
