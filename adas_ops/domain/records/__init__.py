"""Records domain - RO row store, shop directory and audit trail"""

from .apps_script import AppsScriptRecordStore
from .audit import AuditEvent, AuditTrail, DatabaseAuditLog, InMemoryAuditLog, render_history, render_note
from .base import InMemoryRecordStore, RecordStore, append_note
from .shops import match_shop
from .write_queue import DatabasePendingWriteQueue, PendingWriteQueue, WriteQueue

__all__ = [
    "AppsScriptRecordStore",
    "AuditEvent",
    "AuditTrail",
    "DatabaseAuditLog",
    "DatabasePendingWriteQueue",
    "InMemoryAuditLog",
    "InMemoryRecordStore",
    "PendingWriteQueue",
    "RecordStore",
    "WriteQueue",
    "append_note",
    "match_shop",
    "render_history",
    "render_note",
]
