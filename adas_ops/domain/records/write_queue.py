"""
Pending record writes
Status/note writes that failed after a notification already went out are
queued here and replayed by the worker.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from sqlalchemy.orm import Session, sessionmaker

from ...config import MAX_WRITE_RETRIES
from ...models import PendingRecordWrite
from .base import RecordStore

logger = logging.getLogger(__name__)


@dataclass
class PendingWrite:
    ro_number: str
    fields: dict[str, Any]
    attempts: int = 1
    last_error: Optional[str] = None
    id: Optional[int] = None


@dataclass
class FlushSummary:
    replayed: int = 0
    requeued: int = 0
    dropped: list[PendingWrite] = field(default_factory=list)


class WriteQueue(Protocol):
    async def enqueue(self, ro_number: str, fields: dict[str, Any], error: Optional[str] = None) -> None: ...

    async def count(self) -> int: ...

    async def pending(self) -> list[PendingWrite]: ...

    async def flush(self, record_store: RecordStore) -> FlushSummary: ...


async def _replay(item: PendingWrite, record_store: RecordStore) -> tuple[bool, Optional[str], bool]:
    """(success, error, retryable) for one replay attempt"""
    try:
        result = await record_store.upsert(item.ro_number, item.fields)
    except Exception as e:
        return False, str(e), True
    return result.success, result.error, result.retryable


class PendingWriteQueue:
    """Process-local FIFO of record writes awaiting retry"""

    def __init__(self, max_attempts: int = MAX_WRITE_RETRIES):
        self.max_attempts = max_attempts
        self._items: deque[PendingWrite] = deque()

    async def enqueue(self, ro_number: str, fields: dict[str, Any], error: Optional[str] = None) -> None:
        self._items.append(PendingWrite(ro_number=ro_number, fields=dict(fields), last_error=error))
        logger.warning(f"📥 Queued record write for RO {ro_number} (pending: {len(self._items)})")

    async def count(self) -> int:
        return len(self._items)

    async def pending(self) -> list[PendingWrite]:
        return list(self._items)

    async def flush(self, record_store: RecordStore) -> FlushSummary:
        """Replay every queued write once; failures go back on the queue until max_attempts"""
        summary = FlushSummary()
        for _ in range(len(self._items)):
            item = self._items.popleft()
            ok, error, retryable = await _replay(item, record_store)
            if ok:
                summary.replayed += 1
                logger.info(f"✅ Replayed queued write for RO {item.ro_number}")
                continue

            item.attempts += 1
            item.last_error = error
            if not retryable or item.attempts >= self.max_attempts:
                summary.dropped.append(item)
                logger.error(
                    f"❌ Dropping write for RO {item.ro_number} after {item.attempts} attempts: {error}"
                )
            else:
                self._items.append(item)
                summary.requeued += 1
        return summary


class DatabasePendingWriteQueue:
    """
    Pending writes kept in ``pending_record_writes``

    The API and the worker share this table, so a write queued while
    serving a request is replayed by the worker's cron.
    """

    def __init__(self, session_factory: sessionmaker, max_attempts: int = MAX_WRITE_RETRIES):
        self._session_factory = session_factory
        self.max_attempts = max_attempts

    async def enqueue(self, ro_number: str, fields: dict[str, Any], error: Optional[str] = None) -> None:
        def _insert() -> None:
            db: Session = self._session_factory()
            try:
                db.add(PendingRecordWrite(ro_number=ro_number, fields=dict(fields), last_error=error))
                db.commit()
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()

        await asyncio.to_thread(_insert)
        logger.warning(f"📥 Queued record write for RO {ro_number}")

    async def count(self) -> int:
        def _count() -> int:
            db: Session = self._session_factory()
            try:
                return db.query(PendingRecordWrite).count()
            finally:
                db.close()

        return await asyncio.to_thread(_count)

    async def pending(self) -> list[PendingWrite]:
        def _load() -> list[PendingWrite]:
            db: Session = self._session_factory()
            try:
                rows = db.query(PendingRecordWrite).order_by(PendingRecordWrite.id.asc()).all()
                return [
                    PendingWrite(
                        id=r.id,
                        ro_number=r.ro_number,
                        fields=dict(r.fields or {}),
                        attempts=r.attempts,
                        last_error=r.last_error,
                    )
                    for r in rows
                ]
            finally:
                db.close()

        return await asyncio.to_thread(_load)

    async def _settle(self, item: PendingWrite, ok: bool, error: Optional[str], retryable: bool) -> bool:
        """Delete a replayed or exhausted row, otherwise bump its attempts; True when dropped"""

        def _update() -> bool:
            db: Session = self._session_factory()
            try:
                record = db.get(PendingRecordWrite, item.id)
                if record is None:
                    return False
                dropped = False
                if ok:
                    db.delete(record)
                else:
                    record.attempts = item.attempts
                    record.last_error = error
                    if not retryable or item.attempts >= self.max_attempts:
                        db.delete(record)
                        dropped = True
                db.commit()
                return dropped
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()

        return await asyncio.to_thread(_update)

    async def flush(self, record_store: RecordStore) -> FlushSummary:
        summary = FlushSummary()
        for item in await self.pending():
            ok, error, retryable = await _replay(item, record_store)
            if not ok:
                item.attempts += 1
                item.last_error = error
            dropped = await self._settle(item, ok, error, retryable)
            if ok:
                summary.replayed += 1
                logger.info(f"✅ Replayed queued write for RO {item.ro_number}")
            elif dropped:
                summary.dropped.append(item)
                logger.error(
                    f"❌ Dropping write for RO {item.ro_number} after {item.attempts} attempts: {error}"
                )
            else:
                summary.requeued += 1
        return summary
