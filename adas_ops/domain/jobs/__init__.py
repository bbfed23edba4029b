"""Jobs domain - per-RO notice flags and document tracking"""

from .store import DatabaseJobStateStore, InMemoryJobStateStore, JobStateStore
from .tracker import JobStateTracker

__all__ = ["DatabaseJobStateStore", "InMemoryJobStateStore", "JobStateStore", "JobStateTracker"]
