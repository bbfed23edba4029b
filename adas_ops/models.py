"""
Job State Models
Durable per-RO notice flags, document arrival, the RO audit trail and pending record writes
"""

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from .database import Base


class JobStateRecord(Base):
    """Which lifecycle notices have fired and which documents arrived for an RO"""

    __tablename__ = "job_states"

    ro_number = Column(String(16), primary_key=True)

    # Notice flags - only ever flipped false -> true
    initial_notice_sent = Column(Boolean, default=False, nullable=False)
    final_notice_sent = Column(Boolean, default=False, nullable=False)
    needs_calibration = Column(Boolean, nullable=True)

    # List of DocumentKind values received so far
    documents = Column(JSON, default=list, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class RoAuditEventRecord(Base):
    """Append-only audit trail entry for an RO"""

    __tablename__ = "ro_audit_events"

    id = Column(Integer, primary_key=True, index=True)
    ro_number = Column(String(16), nullable=False, index=True)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    actor = Column(String(100), nullable=False)
    action = Column(String(50), nullable=False)
    detail = Column(Text, nullable=False, default="")


class PendingRecordWrite(Base):
    """Record-store write that failed after its notification went out, awaiting replay"""

    __tablename__ = "pending_record_writes"

    id = Column(Integer, primary_key=True, index=True)
    ro_number = Column(String(16), nullable=False, index=True)
    fields = Column(JSON, nullable=False)
    attempts = Column(Integer, nullable=False, default=1)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
