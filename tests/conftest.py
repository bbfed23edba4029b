import pytest
from sqlalchemy.orm import sessionmaker

from adas_ops.database import create_db_engine, init_db
from adas_ops.domain.jobs import JobStateTracker
from adas_ops.domain.notices import NoticeService
from adas_ops.domain.records import AuditTrail, InMemoryRecordStore, PendingWriteQueue
from adas_ops.domain.routing import RoutingDispatcher
from adas_ops.schemas import OutboundMessage, SendResult, ShopContact, WriteResult


class RecordingNotifier:
    """Notifier fake that keeps every message it was asked to send"""

    def __init__(self, succeed: bool = True, error: str = "SMTP send failed: connection refused"):
        self.succeed = succeed
        self.error = error
        self.sent: list[OutboundMessage] = []

    async def send(self, message: OutboundMessage) -> SendResult:
        self.sent.append(message)
        if not self.succeed:
            return SendResult(success=False, error=self.error)
        return SendResult(success=True, message_id=f"<msg-{len(self.sent)}@test>")


class FlakyRecordStore(InMemoryRecordStore):
    """In-memory store whose writes can be switched to fail"""

    def __init__(self, shops=None):
        super().__init__(shops)
        self.fail_writes = False
        self.write_attempts = 0

    async def upsert(self, ro_number, fields):
        self.write_attempts += 1
        if self.fail_writes:
            return WriteResult(success=False, error="HTTP 503", retryable=True)
        return await super().upsert(ro_number, fields)


class BrokenAuditLog:
    """Audit log whose appends always fail, like a locked database"""

    async def append(self, event):
        raise RuntimeError("database is locked")

    async def events(self, ro_number):
        return []


class RecordingJobQueue:
    """Job queue fake that keeps every enqueued call"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.jobs: list[tuple] = []
        self.closed = False

    async def enqueue(self, function, *args):
        if self.fail:
            raise ConnectionError("redis unavailable")
        self.jobs.append((function, *args))
        return f"job-{len(self.jobs)}"

    async def close(self):
        self.closed = True


JMD = ShopContact(name="JMD", email="jmd@example.com", billing_cc="billing@jmd.example.com")
COLLISION_PRO = ShopContact(name="Collision Pro Miami", email="front@collisionpro.example.com")


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def record_store():
    return FlakyRecordStore(shops=[JMD, COLLISION_PRO])


@pytest.fixture
def tracker():
    return JobStateTracker()


@pytest.fixture
def write_queue():
    return PendingWriteQueue(max_attempts=3)


@pytest.fixture
def audit_trail(record_store, write_queue):
    return AuditTrail(record_store, write_queue=write_queue)


@pytest.fixture
def dispatcher(tracker, notifier, record_store, audit_trail):
    return RoutingDispatcher(tracker, notifier, record_store, audit_trail=audit_trail, strict=False)


@pytest.fixture
def notices(tracker, notifier, record_store, audit_trail):
    return NoticeService(tracker, notifier, record_store, audit_trail=audit_trail)


@pytest.fixture
def session_factory(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'adas_ops_test.db'}")
    init_db(engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()
