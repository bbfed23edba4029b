"""
Service container
Wires stores, notifier and domain services from configuration
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import sessionmaker

from .background import ArqJobQueue, JobQueue
from .config import BACKGROUND_JOBS_ENABLED, GAS_WEBHOOK_URL, JOB_STATE_BACKEND, STRICT_VERIFICATION
from .domain.jobs import DatabaseJobStateStore, InMemoryJobStateStore, JobStateTracker
from .domain.notices import NoticeService
from .domain.records import (
    AppsScriptRecordStore,
    AuditTrail,
    DatabaseAuditLog,
    DatabasePendingWriteQueue,
    InMemoryAuditLog,
    InMemoryRecordStore,
    PendingWriteQueue,
    RecordStore,
    WriteQueue,
)
from .domain.records.audit import AuditLog
from .domain.routing import RoutingDispatcher
from .notifications import EmailNotifier, Notifier

logger = logging.getLogger(__name__)


@dataclass
class Container:
    record_store: RecordStore
    notifier: Notifier
    tracker: JobStateTracker
    write_queue: WriteQueue
    audit_log: AuditLog
    audit_trail: AuditTrail
    dispatcher: RoutingDispatcher
    notices: NoticeService
    job_queue: Optional[JobQueue] = None


def build_container(
    job_state_backend: str = JOB_STATE_BACKEND,
    record_store: Optional[RecordStore] = None,
    notifier: Optional[Notifier] = None,
    session_factory: Optional[sessionmaker] = None,
    strict: bool = STRICT_VERIFICATION,
    job_queue: Optional[JobQueue] = None,
    background_jobs: bool = BACKGROUND_JOBS_ENABLED,
) -> Container:
    """
    Build every service once per process

    Collaborators passed in explicitly win over configuration, which is how
    tests swap in in-memory stores and a recording notifier. With the
    database backend, job state, audit events and pending record writes all
    live in the database so the API and the worker see the same data.
    """
    if record_store is None:
        if GAS_WEBHOOK_URL:
            record_store = AppsScriptRecordStore()
        else:
            logger.warning("⚠️ GAS_WEBHOOK_URL not set - using in-memory record store")
            record_store = InMemoryRecordStore()

    if notifier is None:
        notifier = EmailNotifier()

    if job_state_backend == "database":
        if session_factory is None:
            from .database import SessionLocal, init_db

            init_db()
            session_factory = SessionLocal
        job_store = DatabaseJobStateStore(session_factory)
        audit_log = DatabaseAuditLog(session_factory)
        write_queue = DatabasePendingWriteQueue(session_factory)
        logger.info("✅ Job state persisted to database")
    else:
        job_store = InMemoryJobStateStore()
        audit_log = InMemoryAuditLog()
        write_queue = PendingWriteQueue()
        logger.warning("⚠️ Job state kept in memory - notice flags are lost on restart")

    if job_queue is None and background_jobs:
        job_queue = ArqJobQueue()
        logger.info("✅ Background jobs queued on the ARQ worker")

    tracker = JobStateTracker(job_store)
    audit_trail = AuditTrail(record_store, log=audit_log, write_queue=write_queue)

    return Container(
        record_store=record_store,
        notifier=notifier,
        tracker=tracker,
        write_queue=write_queue,
        audit_log=audit_log,
        audit_trail=audit_trail,
        dispatcher=RoutingDispatcher(
            tracker, notifier, record_store, audit_trail=audit_trail, strict=strict
        ),
        notices=NoticeService(tracker, notifier, record_store, audit_trail=audit_trail),
        job_queue=job_queue,
    )
