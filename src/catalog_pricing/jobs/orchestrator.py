"""
Batch Repricing Orchestrator.

Runs one reprice job at a time on a background thread:

1. Read the product table and the full pricing context once
2. Price every row in source order; a failing row keeps its original values
3. Write all rows back in one bulk operation starting at sheet row 2

Row errors are recorded per SKU and never stop the batch. Anything that
prevents the batch as a whole (empty table, bad context, failed write) fails
the job with a single SYSTEM error.
"""
import logging
import threading
import time
from typing import Callable, Optional

from ..config.settings import Settings, get_settings
from ..engine.context import build_context
from ..engine.pricing_engine import PricingEngine, output_fields
from ..errors import PricingError
from ..store.table_store import TableSnapshot, TableStore
from .models import SYSTEM_SKU, JobStatus, RepriceJob, RowError, utcnow
from .registry import JobRegistry

logger = logging.getLogger(__name__)


class RepriceJobError(PricingError):
    """Job-level failure: the batch as a whole cannot proceed."""


class RepriceOrchestrator:
    """
    Starts reprice jobs and tracks them in a JobRegistry.

    `sleep` is injectable so tests run without real pauses.
    """

    def __init__(
        self,
        store: TableStore,
        settings: Optional[Settings] = None,
        registry: Optional[JobRegistry] = None,
        sleep: Callable[[float], None] = time.sleep,
        start_sweeper: bool = True,
    ):
        self.store = store
        self.settings = settings or get_settings()
        if registry is None:
            registry = JobRegistry(self.settings.job_retention_seconds)
        self.registry = registry
        self._sleep = sleep
        self._threads: dict[str, threading.Thread] = {}
        self._threads_lock = threading.Lock()
        if start_sweeper:
            self.registry.start_sweeper(self.settings.sweep_interval_seconds)

    # ── Public API ──────────────────────────────────────────

    def start_job(self, triggered_by: str = "manual") -> str:
        """
        Create a job and start it in the background.

        Raises:
            JobAlreadyRunningError: a job is already pending or running
            RuntimeError: the worker thread could not be started (the job is marked failed)
        """
        job = self.registry.create_exclusive(triggered_by)
        thread = threading.Thread(
            target=self._run_job,
            args=(job.job_id,),
            name=job.job_id,
            daemon=True,
        )
        with self._threads_lock:
            self._prune_threads()
            self._threads[job.job_id] = thread
        try:
            thread.start()
        except Exception as e:
            logger.error(f"Could not start reprice job {job.job_id}: {e}")
            with self._threads_lock:
                self._threads.pop(job.job_id, None)
            self._fail(job.job_id, e)
            raise
        logger.info(f"Reprice job {job.job_id} started (triggered by {triggered_by})")
        return job.job_id

    def get_job_status(self, job_id: str) -> Optional[RepriceJob]:
        return self.registry.get(job_id)

    def list_jobs(self, limit: int = 10) -> list[RepriceJob]:
        return self.registry.list(limit)

    def wait(self, job_id: str, timeout: Optional[float] = None) -> Optional[RepriceJob]:
        """Join the job's thread and return its final snapshot."""
        with self._threads_lock:
            thread = self._threads.get(job_id)
        if thread is not None:
            thread.join(timeout)
            with self._threads_lock:
                self._prune_threads()
        return self.registry.get(job_id)

    def shutdown(self) -> None:
        self.registry.stop_sweeper()

    def __enter__(self) -> 'RepriceOrchestrator':
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()

    # ── Job execution ───────────────────────────────────────

    def _run_job(self, job_id: str) -> None:
        with self.registry.mutate(job_id) as job:
            job.status = JobStatus.RUNNING
            job.started_at = utcnow()

        try:
            updated_rows = self._process(job_id)
            self.store.bulk_overwrite(self.settings.products_table, 2, updated_rows)
        except Exception as e:
            logger.exception(f"Reprice job {job_id} failed: {e}")
            self._fail(job_id, e)
            return

        with self.registry.mutate(job_id) as job:
            job.status = JobStatus.COMPLETED
            job.completed_at = utcnow()
            self._log_summary(job)

    def _fail(self, job_id: str, error: Exception) -> None:
        with self.registry.mutate(job_id) as job:
            job.status = JobStatus.FAILED
            job.completed_at = utcnow()
            job.errors.append(RowError(sku=SYSTEM_SKU, error=f"Fatal error: {error}"))

    def _prune_threads(self) -> None:
        """Forget worker threads that have finished. Caller holds _threads_lock."""
        for job_id, thread in list(self._threads.items()):
            if thread.ident is not None and not thread.is_alive():
                del self._threads[job_id]

    def _load(self) -> tuple[TableSnapshot, PricingEngine]:
        table = self.settings.products_table
        snapshot = self.store.read_all_rows(table)
        if not snapshot.headers:
            raise RepriceJobError(f"{table} sheet is empty or missing headers")
        if not snapshot.rows:
            raise RepriceJobError(f"No products found in {table}")

        context = build_context(
            self.store.read_parameters(),
            self.store.read_partner_tiers(),
            self.store.read_channel_fee_tables(),
            settings=self.settings,
        )
        return snapshot, PricingEngine(context)

    def _process(self, job_id: str) -> list[list[str]]:
        """Price every row; returns the full row set to write back."""
        snapshot, engine = self._load()
        headers = snapshot.headers
        width = len(headers)
        column_index = {name: i for i, name in enumerate(headers)}

        with self.registry.mutate(job_id) as job:
            job.total = len(snapshot.rows)

        updated_rows = []
        for i, raw in enumerate(snapshot.rows):
            original = list(raw) + [""] * (width - len(raw))
            row = dict(zip(headers, original))
            try:
                breakdown = engine.calculate_row(row)
                merged = list(original)
                for column, value in output_fields(breakdown).items():
                    index = column_index.get(column)
                    if index is not None:
                        merged[index] = value
                updated_rows.append(merged)
                outcome = None
            except Exception as e:
                sku = (row.get('SKU') or "").strip() or f"Row {i + 2}"
                logger.error(f"Error repricing {sku}: {e}")
                updated_rows.append(list(raw))
                outcome = RowError(sku=sku, error=str(e))

            with self.registry.mutate(job_id) as job:
                job.processed += 1
                if outcome is None:
                    job.succeeded += 1
                else:
                    job.failed += 1
                    job.errors.append(outcome)

            if self.settings.rows_per_pause and (i + 1) % self.settings.rows_per_pause == 0:
                self._sleep(self.settings.pause_seconds)

        return updated_rows

    def _log_summary(self, job: RepriceJob) -> None:
        logger.info(f"Reprice job {job.job_id} completed")
        logger.info(
            f"  Succeeded: {job.succeeded}/{job.total} ({job.success_rate:.1f}%)"
        )
        logger.info(f"  Failed: {job.failed}")
        if job.errors:
            logger.info("  First 5 errors:")
            for error in job.errors[:5]:
                logger.info(f"    - {error.sku}: {error.error}")
