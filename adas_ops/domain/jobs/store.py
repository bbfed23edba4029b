"""Job state stores - key-value persistence of JobState by RO number"""

import asyncio
import logging
from typing import Optional, Protocol

from sqlalchemy.orm import Session, sessionmaker

from ...models import JobStateRecord
from ...schemas import DocumentKind, JobState

logger = logging.getLogger(__name__)


class JobStateStore(Protocol):
    async def load(self, ro_number: str) -> Optional[JobState]: ...

    async def save(self, state: JobState) -> None: ...

    async def all(self) -> list[JobState]: ...


class InMemoryJobStateStore:
    """Process-local store; state is lost on restart"""

    def __init__(self):
        self._states: dict[str, JobState] = {}

    async def load(self, ro_number: str) -> Optional[JobState]:
        state = self._states.get(ro_number)
        return state.model_copy(deep=True) if state else None

    async def save(self, state: JobState) -> None:
        self._states[state.ro_number] = state.model_copy(deep=True)

    async def all(self) -> list[JobState]:
        return [s.model_copy(deep=True) for s in self._states.values()]


class DatabaseJobStateStore:
    """
    SQLAlchemy-backed store so notice flags survive restarts

    Session work runs in a worker thread so a slow query on one RO does not
    stall the event loop for every other RO.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    async def load(self, ro_number: str) -> Optional[JobState]:
        def _load() -> Optional[JobState]:
            db: Session = self._session_factory()
            try:
                record = db.get(JobStateRecord, ro_number)
                return self._to_state(record) if record else None
            finally:
                db.close()

        return await asyncio.to_thread(_load)

    async def save(self, state: JobState) -> None:
        def _save() -> None:
            db: Session = self._session_factory()
            try:
                record = db.get(JobStateRecord, state.ro_number)
                if record is None:
                    record = JobStateRecord(ro_number=state.ro_number)
                    db.add(record)
                record.initial_notice_sent = state.initial_notice_sent
                record.final_notice_sent = state.final_notice_sent
                record.needs_calibration = state.needs_calibration
                record.documents = sorted(kind.value for kind in state.documents_present)
                db.commit()
            except Exception as e:
                logger.error(f"❌ Failed to persist job state for RO {state.ro_number}: {e}")
                db.rollback()
                raise
            finally:
                db.close()

        await asyncio.to_thread(_save)

    async def all(self) -> list[JobState]:
        def _load_all() -> list[JobState]:
            db: Session = self._session_factory()
            try:
                records = db.query(JobStateRecord).order_by(JobStateRecord.ro_number.asc()).all()
                return [self._to_state(r) for r in records]
            finally:
                db.close()

        return await asyncio.to_thread(_load_all)

    @staticmethod
    def _to_state(record: JobStateRecord) -> JobState:
        return JobState(
            ro_number=record.ro_number,
            initial_notice_sent=bool(record.initial_notice_sent),
            final_notice_sent=bool(record.final_notice_sent),
            needs_calibration=record.needs_calibration,
            documents_present={DocumentKind(d) for d in (record.documents or [])},
            created_at=record.created_at,
            updated_at=record.updated_at,
        )
