"""
Job state tracker
Per-RO notice flags and document arrival, guarding notification idempotency
"""

import logging
from typing import Any, Awaitable, Callable, Optional

from ...schemas import DocumentKind, DocumentStatus, JobState, NoticeKind
from ...shared.locks import KeyedLock
from ...shared.timezone import utc_now
from ...shared.validators import normalize_ro_number
from .store import InMemoryJobStateStore, JobStateStore

logger = logging.getLogger(__name__)

# REPORT counts as the estimate-equivalent: a report is only ever run from an estimate
ESTIMATE_EQUIVALENTS = frozenset({DocumentKind.ESTIMATE, DocumentKind.REPORT})
FINAL_DOCUMENTS = frozenset({DocumentKind.REPORT, DocumentKind.POST_SCAN, DocumentKind.INVOICE})


def _flag_name(kind: NoticeKind) -> str:
    return "initial_notice_sent" if kind == NoticeKind.INITIAL else "final_notice_sent"


class JobStateTracker:
    """
    Tracks, per RO, which notices went out and which documents arrived

    Both notice flags are monotonic: they flip false -> true only after a
    confirmed delivery and are never reset. All reads and writes for an RO
    are serialized through a per-RO lock so that check-then-send sequences
    cannot interleave.
    """

    def __init__(self, store: Optional[JobStateStore] = None):
        self.store = store or InMemoryJobStateStore()
        self._locks = KeyedLock()

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    async def _load_or_create(self, ro_number: str) -> JobState:
        state = await self.store.load(ro_number)
        if state is None:
            now = utc_now()
            state = JobState(ro_number=ro_number, created_at=now, updated_at=now)
            await self.store.save(state)
            logger.debug(f"🆕 Created job state for RO {ro_number}")
        return state

    async def _save(self, state: JobState) -> None:
        state.updated_at = utc_now()
        await self.store.save(state)

    async def get_state(self, ro_number: str) -> JobState:
        key = normalize_ro_number(ro_number)
        async with self._locks.hold(key):
            return await self._load_or_create(key)

    async def list_states(self) -> list[JobState]:
        """Every tracked RO, for the jobs overview"""
        return await self.store.all()

    # ------------------------------------------------------------------
    # Initial notice
    # ------------------------------------------------------------------

    async def should_send_initial_notice(self, ro_number: str) -> bool:
        state = await self.get_state(ro_number)
        return not state.initial_notice_sent

    async def mark_initial_notice_sent(self, ro_number: str) -> None:
        await self._set_flag(ro_number, NoticeKind.INITIAL)

    async def set_needs_calibration(self, ro_number: str, needs_calibration: bool) -> None:
        key = normalize_ro_number(ro_number)
        async with self._locks.hold(key):
            state = await self._load_or_create(key)
            state.needs_calibration = needs_calibration
            await self._save(state)

    # ------------------------------------------------------------------
    # Documents and final notice
    # ------------------------------------------------------------------

    async def record_document(self, ro_number: str, kind: DocumentKind) -> DocumentStatus:
        key = normalize_ro_number(ro_number)
        async with self._locks.hold(key):
            state = await self._load_or_create(key)
            if kind not in state.documents_present:
                state.documents_present.add(kind)
                await self._save(state)
                logger.info(f"📄 Recorded {kind.value} for RO {key}")
            return self._document_status(state)

    async def get_document_status(self, ro_number: str) -> DocumentStatus:
        state = await self.get_state(ro_number)
        return self._document_status(state)

    async def should_send_final_notice(self, ro_number: str) -> bool:
        state = await self.get_state(ro_number)
        return self._document_status(state).all_final_docs_present and not state.final_notice_sent

    async def mark_final_notice_sent(self, ro_number: str) -> None:
        await self._set_flag(ro_number, NoticeKind.FINAL)

    @staticmethod
    def _document_status(state: JobState) -> DocumentStatus:
        present = set(state.documents_present)
        complete = bool(present & ESTIMATE_EQUIVALENTS) and FINAL_DOCUMENTS <= present
        return DocumentStatus(all_final_docs_present=complete, present=present)

    # ------------------------------------------------------------------
    # Idempotent send guard
    # ------------------------------------------------------------------

    async def _set_flag(self, ro_number: str, kind: NoticeKind) -> None:
        key = normalize_ro_number(ro_number)
        async with self._locks.hold(key):
            state = await self._load_or_create(key)
            if not getattr(state, _flag_name(kind)):
                setattr(state, _flag_name(kind), True)
                await self._save(state)
                logger.info(f"✅ Marked {_flag_name(kind)} for RO {key}")

    async def send_once(
        self,
        ro_number: str,
        kind: NoticeKind,
        send: Callable[[], Awaitable[Any]],
    ) -> tuple[bool, Any]:
        """
        Run ``send`` unless the ``kind`` notice already went out for this RO

        The flag check, the send and the flag update happen under the RO lock.
        The flag is set only when the send result reports ``success``; a
        failed send leaves the RO eligible for a retry.

        Returns:
            (attempted, result) - ``(False, None)`` when already sent
        """
        key = normalize_ro_number(ro_number)
        flag = _flag_name(kind)
        async with self._locks.hold(key):
            state = await self._load_or_create(key)
            if getattr(state, flag):
                logger.info(f"⏭️ {flag} already set for RO {key}, skipping send")
                return False, None

            result = await send()

            if getattr(result, "success", False):
                setattr(state, flag, True)
                await self._save(state)
                logger.info(f"✅ Marked {flag} for RO {key}")
            else:
                logger.warning(f"⚠️ {kind.value} notice for RO {key} not delivered; flag left unset")
            return True, result
