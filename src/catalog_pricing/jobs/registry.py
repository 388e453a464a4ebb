"""
In-memory reprice job registry.

Holds every job for a retention window, enforces that at most one job is
pending or running, and evicts finished jobs in a background sweep.
"""
import copy
import logging
import secrets
import string
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Iterator, Optional

from ..errors import JobAlreadyRunningError
from .models import JobStatus, RepriceJob, utcnow

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_job_id() -> str:
    return "reprice_" + "".join(secrets.choice(_ID_ALPHABET) for _ in range(12))


class JobRegistry:
    """Thread-safe job table. Readers always get copies."""

    def __init__(self, retention_seconds: float = 3600.0):
        self.retention = timedelta(seconds=retention_seconds)
        self._jobs: dict[str, RepriceJob] = {}
        self._lock = threading.RLock()
        self._stop = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

    def active_job(self) -> Optional[RepriceJob]:
        with self._lock:
            for job in self._jobs.values():
                if job.status.is_active:
                    return copy.deepcopy(job)
        return None

    def create_exclusive(self, triggered_by: Optional[str] = None) -> RepriceJob:
        """Create a pending job, or raise if one is already pending or running."""
        with self._lock:
            for job in self._jobs.values():
                if job.status.is_active:
                    raise JobAlreadyRunningError(job.job_id)
            job = RepriceJob(job_id=new_job_id(), triggered_by=triggered_by)
            self._jobs[job.job_id] = job
            return copy.deepcopy(job)

    @contextmanager
    def mutate(self, job_id: str) -> Iterator[RepriceJob]:
        """Lock the registry and yield the live job for in-place updates."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise KeyError(job_id)
            yield job

    def get(self, job_id: str) -> Optional[RepriceJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            return copy.deepcopy(job) if job else None

    def list(self, limit: int = 10) -> list[RepriceJob]:
        """Most recent first, by start time (creation time for jobs not yet started)."""
        with self._lock:
            jobs = [copy.deepcopy(j) for j in self._jobs.values()]
        jobs.sort(key=lambda j: j.started_at or j.created_at, reverse=True)
        return jobs[:max(limit, 0)]

    def evict_expired(self, now: Optional[datetime] = None) -> int:
        """Drop finished jobs older than the retention window. Returns the count removed."""
        now = now or utcnow()
        cutoff = now - self.retention
        with self._lock:
            expired = [
                job_id for job_id, job in self._jobs.items()
                if job.status.is_terminal and (job.completed_at or job.created_at) < cutoff
            ]
            for job_id in expired:
                del self._jobs[job_id]
        if expired:
            logger.info(f"Evicted {len(expired)} expired reprice jobs")
        return len(expired)

    def start_sweeper(self, interval_seconds: float = 900.0) -> None:
        if self._sweeper and self._sweeper.is_alive():
            return
        self._stop.clear()

        def sweep():
            while not self._stop.wait(interval_seconds):
                self.evict_expired()

        self._sweeper = threading.Thread(target=sweep, name="reprice-job-sweeper", daemon=True)
        self._sweeper.start()

    def stop_sweeper(self) -> None:
        self._stop.set()
        if self._sweeper:
            self._sweeper.join(timeout=5)
            self._sweeper = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)
