"""
Storage Reclaimer

Periodic backstop for objects that are never accessed again after they
expire or run out of downloads. Implements:
- Expired / exhausted record eviction in bounded batches
- Orphaned blob detection (bytes with no ledger record)
- Per-record error isolation
- Cleanup reporting
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from oneshot.metrics import (
    reclaim_last_success_timestamp,
    record_orphans_removed,
    record_reclaim_run,
    update_storage_metrics,
)
from oneshot.storage.exceptions import LifecycleError
from oneshot.storage.lifecycle import LifecycleEngine

logger = logging.getLogger(__name__)


@dataclass
class ReclaimResult:
    """
    Reclaimer sweep result
    """
    sweep_name: str
    files_scanned: int = 0
    files_deleted: int = 0
    space_freed_bytes: int = 0
    errors: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def space_freed_mb(self) -> float:
        """Get freed space in MB"""
        return self.space_freed_bytes / (1024 ** 2)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            'sweep_name': self.sweep_name,
            'files_scanned': self.files_scanned,
            'files_deleted': self.files_deleted,
            'space_freed_bytes': self.space_freed_bytes,
            'space_freed_mb': round(self.space_freed_mb, 2),
            'errors': self.errors,
            'duration_seconds': round(self.duration_seconds, 2)
        }


class StorageReclaimer:
    """
    Background reclaimer for the lifecycle engine

    Features:
    - Evicts through the engine's shared eviction primitive
    - Bounded batches so one run never loads the whole ledger
    - Skips (and reports) records that fail instead of aborting
    - Removes unrecorded blobs once they are older than a grace period
    """

    def __init__(
        self,
        engine: LifecycleEngine,
        batch_size: int = 500,
        orphan_grace: timedelta = timedelta(hours=1),
    ):
        """
        Initialize the reclaimer

        Args:
            engine: Lifecycle engine whose store and ledger are reconciled
            batch_size: Ledger page size per batch
            orphan_grace: Minimum age of an unrecorded blob before removal,
                so uploads still being written are left alone
        """
        self.engine = engine
        self.batch_size = batch_size
        self.orphan_grace = orphan_grace

        logger.info(
            f"StorageReclaimer initialized (batch_size={batch_size}, "
            f"orphan_grace={orphan_grace})"
        )

    def sweep_expired(self, now: Optional[datetime] = None) -> ReclaimResult:
        """
        Evict every record that is expired or out of downloads.

        Args:
            now: Reference time (defaults to the engine clock)

        Returns:
            ReclaimResult with operation details
        """
        start = time.monotonic()
        now = now or self.engine.clock()
        result = ReclaimResult(sweep_name="expired")
        failed_ids: List[str] = []

        logger.info(f"Starting expiry sweep (now={now.isoformat()})")

        while True:
            batch = self.engine.ledger.find_expired_or_exhausted(
                now,
                self.engine.policy.max_downloads,
                limit=self.batch_size,
                exclude_ids=failed_ids,
            )
            if not batch:
                break

            for record in batch:
                result.files_scanned += 1
                reason = self.engine.eviction_reason(record, now)
                if reason is None:
                    continue

                try:
                    if self.engine.evict(record, reason, trigger="sweep"):
                        result.files_deleted += 1
                        result.space_freed_bytes += record.file_size or 0
                except (LifecycleError, OSError, SQLAlchemyError) as e:
                    error_msg = f"Failed to evict {record.unique_id}: {e}"
                    logger.error(error_msg, exc_info=True)
                    result.errors.append(error_msg)
                    failed_ids.append(record.unique_id)

            if len(batch) < self.batch_size:
                break

        result.duration_seconds = time.monotonic() - start
        record_reclaim_run("expired", result.duration_seconds, len(result.errors))

        logger.info(
            f"Expiry sweep completed - "
            f"{result.files_deleted}/{result.files_scanned} files deleted, "
            f"{result.space_freed_mb:.2f}MB freed, "
            f"{len(result.errors)} errors, "
            f"{result.duration_seconds:.2f}s"
        )
        return result

    def sweep_orphans(
        self,
        now: Optional[datetime] = None,
        grace: Optional[timedelta] = None,
    ) -> ReclaimResult:
        """
        Remove stored blobs that no ledger record references.

        Args:
            now: Reference time (defaults to the engine clock)
            grace: Override for the orphan grace period

        Returns:
            ReclaimResult with operation details
        """
        start = time.monotonic()
        now = now or self.engine.clock()
        grace = self.orphan_grace if grace is None else grace
        result = ReclaimResult(sweep_name="orphans")

        logger.info(f"Scanning for orphaned blobs (grace={grace})...")

        store = self.engine.store
        batch = []
        try:
            for blob in store.iter_objects():
                result.files_scanned += 1
                if grace > timedelta(0) and blob.age_seconds(now) < grace.total_seconds():
                    continue
                batch.append(blob)
                if len(batch) >= self.batch_size:
                    self._remove_orphans(batch, result)
                    batch = []
            if batch:
                self._remove_orphans(batch, result)
        except (LifecycleError, OSError) as e:
            error_msg = f"Failed to list stored blobs: {e}"
            logger.error(error_msg)
            result.errors.append(error_msg)

        result.duration_seconds = time.monotonic() - start
        record_reclaim_run("orphans", result.duration_seconds, len(result.errors))
        record_orphans_removed(result.files_deleted)

        logger.info(
            f"Orphan sweep completed - {result.files_deleted} orphaned blobs removed "
            f"out of {result.files_scanned} scanned"
        )
        return result

    def _remove_orphans(self, blobs, result: ReclaimResult) -> None:
        store = self.engine.store
        ids = {blob.location: store.unique_id_from_location(blob.location) for blob in blobs}
        known = self.engine.ledger.existing_ids(ids.values())

        for blob in blobs:
            if ids[blob.location] in known:
                continue
            try:
                if store.delete(blob.location):
                    logger.warning(f"Deleted orphaned blob: {blob.location}")
                    result.files_deleted += 1
                    result.space_freed_bytes += blob.size
            except (LifecycleError, OSError) as e:
                error_msg = f"Failed to delete orphaned blob {blob.location}: {e}"
                logger.error(error_msg)
                result.errors.append(error_msg)

    def run(self, ignore_grace: bool = False) -> List[ReclaimResult]:
        """
        Run both sweeps and refresh the storage gauges.

        Args:
            ignore_grace: Remove every unrecorded blob regardless of age. Only
                safe when no upload can be in flight (process startup).

        Returns:
            List of ReclaimResult, one per sweep
        """
        logger.info(f"Starting reclaimer run (ignore_grace={ignore_grace})...")

        results = [
            self.sweep_expired(),
            self.sweep_orphans(grace=timedelta(0) if ignore_grace else None),
        ]

        stats = self.engine.stats()
        update_storage_metrics(stats.total_files, stats.total_size)
        reclaim_last_success_timestamp.set_to_current_time()

        total_files = sum(r.files_deleted for r in results)
        total_space = sum(r.space_freed_bytes for r in results)
        logger.info(
            f"Reclaimer run completed: {total_files} files deleted, "
            f"{total_space / (1024 ** 2):.2f}MB freed, "
            f"{stats.total_files} files remaining",
            extra={"sweeps": [r.to_dict() for r in results]},
        )
        return results

    def run_scheduled(self, ignore_grace: bool = False) -> None:
        """Scheduler entry point; failures are logged, never raised."""
        try:
            results = self.run(ignore_grace=ignore_grace)
        except Exception as e:
            logger.error(f"Reclaimer run failed: {e}", exc_info=True)
            return
        logger.info(self.get_report(results))

    def get_report(self, results: List[ReclaimResult]) -> str:
        """
        Generate human-readable reclaim report

        Args:
            results: List of ReclaimResult objects

        Returns:
            Formatted report string
        """
        report = []
        report.append("=" * 60)
        report.append("STORAGE RECLAIM REPORT")
        report.append("=" * 60)

        total_scanned = sum(r.files_scanned for r in results)
        total_deleted = sum(r.files_deleted for r in results)
        total_space = sum(r.space_freed_bytes for r in results)
        total_errors = sum(len(r.errors) for r in results)

        report.append(f"Total files scanned: {total_scanned}")
        report.append(f"Total files deleted: {total_deleted}")
        report.append(f"Total space freed: {total_space / (1024 ** 2):.2f} MB")
        report.append(f"Total errors: {total_errors}")
        report.append("=" * 60)

        for result in results:
            report.append(f"\nSweep: {result.sweep_name}")
            report.append(f"  Files scanned: {result.files_scanned}")
            report.append(f"  Files deleted: {result.files_deleted}")
            report.append(f"  Space freed: {result.space_freed_mb:.2f} MB")
            report.append(f"  Duration: {result.duration_seconds:.2f}s")

            if result.errors:
                report.append(f"  Errors: {len(result.errors)}")
                for error in result.errors[:5]:  # Show first 5 errors
                    report.append(f"    - {error}")

        return "\n".join(report)
