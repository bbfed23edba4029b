from adas_ops.domain.jobs import DatabaseJobStateStore, JobStateTracker
from adas_ops.domain.records import AuditTrail, DatabaseAuditLog, DatabasePendingWriteQueue, InMemoryRecordStore
from adas_ops.schemas import DocumentKind, NoticeKind, SendResult

from .conftest import FlakyRecordStore


async def test_flags_survive_a_new_tracker(session_factory):
    first = JobStateTracker(DatabaseJobStateStore(session_factory))

    async def ok():
        return SendResult(success=True)

    await first.send_once("12345", NoticeKind.INITIAL, ok)
    await first.set_needs_calibration("12345", True)
    await first.record_document("12345", DocumentKind.ESTIMATE)
    await first.record_document("12345", DocumentKind.POST_SCAN)

    # Simulates a process restart: nothing shared but the database
    restarted = JobStateTracker(DatabaseJobStateStore(session_factory))
    state = await restarted.get_state("12345")

    assert state.initial_notice_sent is True
    assert state.final_notice_sent is False
    assert state.needs_calibration is True
    assert state.documents_present == {DocumentKind.ESTIMATE, DocumentKind.POST_SCAN}
    assert await restarted.should_send_initial_notice("12345") is False


async def test_store_lists_all_states(session_factory):
    store = DatabaseJobStateStore(session_factory)
    tracker = JobStateTracker(store)
    await tracker.get_state("11111")
    await tracker.get_state("22222")

    assert sorted(s.ro_number for s in await store.all()) == ["11111", "22222"]


async def test_audit_events_are_persisted_in_order(session_factory):
    records = InMemoryRecordStore()
    trail = AuditTrail(records, log=DatabaseAuditLog(session_factory))

    await trail.record("12345", "shop_confirmation_sent", "Confirmation sent to jmd@example.com", status="Ready")
    await trail.record("12345", "auto_closed", "Auto-closed after all final documents received.", status="Completed")

    events = await DatabaseAuditLog(session_factory).events("12345")
    assert [e.action for e in events] == ["shop_confirmation_sent", "auto_closed"]
    assert events[0].actor == "adas-ops"
    assert records.rows["12345"]["status"] == "Completed"


async def test_write_queued_by_one_process_is_replayed_by_another(session_factory):
    records = FlakyRecordStore()
    records.fail_writes = True
    api_trail = AuditTrail(records, write_queue=DatabasePendingWriteQueue(session_factory))

    await api_trail.record("12345", "shop_confirmation_sent", "Confirmation sent", status="Ready")

    # A separate queue object over the same table stands in for the worker
    worker_queue = DatabasePendingWriteQueue(session_factory)
    assert await worker_queue.count() == 1

    records.fail_writes = False
    summary = await worker_queue.flush(records)

    assert summary.replayed == 1
    assert await worker_queue.count() == 0
    assert records.rows["12345"]["status"] == "Ready"


async def test_database_queue_counts_attempts_and_drops(session_factory):
    records = FlakyRecordStore()
    records.fail_writes = True
    queue = DatabasePendingWriteQueue(session_factory, max_attempts=3)
    await queue.enqueue("12345", {"status": "Ready"}, "HTTP 503")

    first = await queue.flush(records)
    assert first.requeued == 1
    [pending] = await queue.pending()
    assert pending.attempts == 2
    assert pending.fields == {"status": "Ready"}

    second = await queue.flush(records)
    assert len(second.dropped) == 1
    assert await queue.count() == 0
