"""
RO audit trail
Structured append-only events, rendered into the sheet's notes text
"""

import asyncio
import logging
from typing import Optional, Protocol

from sqlalchemy.orm import Session, sessionmaker

from ...models import RoAuditEventRecord
from ...schemas import AuditEvent, WriteResult
from ...shared.locks import KeyedLock
from ...shared.timezone import local_timestamp
from ...shared.validators import normalize_ro_number
from .base import RecordStore
from .write_queue import WriteQueue

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "adas-ops"


def render_note(event: AuditEvent) -> str:
    """Human-readable note, e.g. '[03/14/2025, 02:05 PM] Confirmation sent to shop@x.com'"""
    return f"[{local_timestamp(event.timestamp)}] {event.detail}"


def render_history(events: list[AuditEvent]) -> str:
    return " | ".join(render_note(e) for e in events)


class AuditLog(Protocol):
    async def append(self, event: AuditEvent) -> None: ...

    async def events(self, ro_number: str) -> list[AuditEvent]: ...


class InMemoryAuditLog:
    def __init__(self):
        self._events: dict[str, list[AuditEvent]] = {}

    async def append(self, event: AuditEvent) -> None:
        self._events.setdefault(event.ro_number, []).append(event)

    async def events(self, ro_number: str) -> list[AuditEvent]:
        return list(self._events.get(normalize_ro_number(ro_number), []))


class DatabaseAuditLog:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    async def append(self, event: AuditEvent) -> None:
        def _insert() -> None:
            db: Session = self._session_factory()
            try:
                db.add(
                    RoAuditEventRecord(
                        ro_number=event.ro_number,
                        timestamp=event.timestamp,
                        actor=event.actor,
                        action=event.action,
                        detail=event.detail,
                    )
                )
                db.commit()
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()

        await asyncio.to_thread(_insert)

    async def events(self, ro_number: str) -> list[AuditEvent]:
        def _load() -> list[AuditEvent]:
            db: Session = self._session_factory()
            try:
                rows = (
                    db.query(RoAuditEventRecord)
                    .filter(RoAuditEventRecord.ro_number == normalize_ro_number(ro_number))
                    .order_by(RoAuditEventRecord.id.asc())
                    .all()
                )
                return [
                    AuditEvent(
                        ro_number=r.ro_number,
                        timestamp=r.timestamp,
                        actor=r.actor,
                        action=r.action,
                        detail=r.detail,
                    )
                    for r in rows
                ]
            finally:
                db.close()

        return await asyncio.to_thread(_load)


class AuditTrail:
    """
    Single write path for RO status changes

    Appends a structured event, then writes status + rendered note to the
    record store. Writes for one RO are serialized. Never raises: a failed
    audit append is logged and the store write still happens; a failed
    store write is logged and, when retryable, queued for replay.
    """

    def __init__(
        self,
        record_store: RecordStore,
        log: Optional[AuditLog] = None,
        write_queue: Optional[WriteQueue] = None,
    ):
        self.record_store = record_store
        self.log = log or InMemoryAuditLog()
        self.write_queue = write_queue
        self._locks = KeyedLock()

    async def record(
        self,
        ro_number: str,
        action: str,
        detail: str,
        status: Optional[str] = None,
        actor: str = SYSTEM_ACTOR,
        queue_on_failure: bool = True,
    ) -> WriteResult:
        key = normalize_ro_number(ro_number)
        event = AuditEvent(ro_number=key, action=action, detail=detail, actor=actor)
        fields = {"notes": render_note(event)}
        if status:
            fields["status"] = status

        async with self._locks.hold(key):
            try:
                await self.log.append(event)
            except Exception as e:
                logger.error(f"❌ Failed to append audit event for RO {key} ({action}): {e}")
            try:
                result = await self.record_store.upsert(key, fields)
            except Exception as e:
                logger.error(f"❌ Record store raised while updating RO {key}: {e}")
                result = WriteResult(success=False, error=str(e), retryable=True)

        if result.success:
            return result
        if not result.retryable:
            logger.error(f"❌ RO {key} update rejected ({action}), not retrying: {result.error}")
            return result

        logger.error(f"❌ Failed to update RO {key} ({action}): {result.error}")
        if queue_on_failure and self.write_queue is not None:
            try:
                await self.write_queue.enqueue(key, fields, result.error)
            except Exception as e:
                logger.error(f"❌ Could not queue write for RO {key}, update lost: {e}")
        return result
