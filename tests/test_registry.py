import re
import time
from datetime import timedelta

import pytest

from catalog_pricing.errors import JobAlreadyRunningError
from catalog_pricing.jobs.models import JobStatus, utcnow
from catalog_pricing.jobs.registry import JobRegistry, new_job_id


def finish(registry, job_id, status=JobStatus.COMPLETED, age=timedelta(0)):
    with registry.mutate(job_id) as job:
        job.status = status
        job.completed_at = utcnow() - age


def test_job_id_format():
    assert re.fullmatch(r"reprice_[a-z0-9]{12}", new_job_id())


class TestExclusivity:

    def test_second_job_rejected_while_pending(self):
        registry = JobRegistry()
        first = registry.create_exclusive("manual")
        with pytest.raises(JobAlreadyRunningError, match=first.job_id):
            registry.create_exclusive("manual")
        assert len(registry) == 1

    def test_second_job_rejected_while_running(self):
        registry = JobRegistry()
        first = registry.create_exclusive()
        with registry.mutate(first.job_id) as job:
            job.status = JobStatus.RUNNING
        with pytest.raises(JobAlreadyRunningError):
            registry.create_exclusive()
        assert registry.active_job().job_id == first.job_id

    def test_new_job_after_completion(self):
        registry = JobRegistry()
        first = registry.create_exclusive()
        finish(registry, first.job_id, JobStatus.FAILED)
        second = registry.create_exclusive()
        assert second.job_id != first.job_id
        assert len(registry) == 2


class TestReads:

    def test_get_returns_copy(self):
        registry = JobRegistry()
        job = registry.create_exclusive()
        snapshot = registry.get(job.job_id)
        snapshot.status = JobStatus.FAILED
        snapshot.errors.append(None)
        fresh = registry.get(job.job_id)
        assert fresh.status == JobStatus.PENDING
        assert fresh.errors == []

    def test_get_unknown(self):
        assert JobRegistry().get("reprice_missing") is None

    def test_list_most_recent_first(self):
        registry = JobRegistry()
        ids = []
        for offset in (3, 1, 2):
            job = registry.create_exclusive()
            with registry.mutate(job.job_id) as live:
                live.started_at = utcnow() - timedelta(minutes=offset)
            finish(registry, job.job_id)
            ids.append(job.job_id)

        listed = [j.job_id for j in registry.list()]
        assert listed == [ids[1], ids[2], ids[0]]
        assert [j.job_id for j in registry.list(limit=1)] == [ids[1]]

    def test_mutate_unknown_job(self):
        with pytest.raises(KeyError):
            with JobRegistry().mutate("reprice_missing"):
                pass


class TestEviction:

    def test_only_expired_finished_jobs_are_evicted(self):
        registry = JobRegistry(retention_seconds=3600)
        old = registry.create_exclusive()
        finish(registry, old.job_id, age=timedelta(hours=2))
        recent = registry.create_exclusive()
        finish(registry, recent.job_id, age=timedelta(minutes=5))
        running = registry.create_exclusive()
        with registry.mutate(running.job_id) as job:
            job.status = JobStatus.RUNNING
            job.created_at = utcnow() - timedelta(hours=5)

        assert registry.evict_expired() == 1
        assert registry.get(old.job_id) is None
        assert registry.get(recent.job_id) is not None
        assert registry.get(running.job_id) is not None

    def test_eviction_relative_to_now(self):
        registry = JobRegistry(retention_seconds=3600)
        job = registry.create_exclusive()
        finish(registry, job.job_id)
        assert registry.evict_expired(now=utcnow() + timedelta(minutes=30)) == 0
        assert registry.evict_expired(now=utcnow() + timedelta(hours=2)) == 1

    def test_background_sweep(self):
        registry = JobRegistry(retention_seconds=60)
        job = registry.create_exclusive()
        finish(registry, job.job_id, age=timedelta(minutes=5))

        registry.start_sweeper(interval_seconds=0.01)
        try:
            deadline = time.monotonic() + 5
            while len(registry) and time.monotonic() < deadline:
                time.sleep(0.01)
        finally:
            registry.stop_sweeper()
        assert len(registry) == 0
