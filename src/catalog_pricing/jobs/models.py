"""
Reprice job models.
"""
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_active(self) -> bool:
        return self in (JobStatus.PENDING, JobStatus.RUNNING)

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


SYSTEM_SKU = "SYSTEM"


@dataclass
class RowError:
    """One failed row (or SYSTEM for a job-level failure)."""
    sku: str
    error: str


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RepriceJob:
    """Progress and outcome of one batch repricing run."""
    job_id: str
    status: JobStatus = JobStatus.PENDING
    triggered_by: Optional[str] = None
    total: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: list[RowError] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        return (self.succeeded / self.processed * 100) if self.processed else 0.0

    def to_dict(self) -> dict:
        data = asdict(self)
        data['status'] = self.status.value
        for key in ('created_at', 'started_at', 'completed_at'):
            value = data[key]
            data[key] = value.isoformat() if value else None
        return data
