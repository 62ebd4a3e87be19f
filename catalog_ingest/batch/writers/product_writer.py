"""
Batch writer for enriched product records.

Replaces the catalog with the records of one run, written in fixed-size
batches. Each batch commits on its own so a failing batch never blocks the
ones after it.
"""

import time
from itertools import islice
from typing import Iterable, Iterator

from psycopg import Error as DatabaseError

from catalog_ingest.core.errors import PersistenceError
from catalog_ingest.core.models import BatchResult, EnrichedRecord
from catalog_ingest.observability import metrics
from catalog_ingest.observability.logger import get_logger
from catalog_ingest.warehouse.connection import DatabaseConnectionPool
from catalog_ingest.warehouse.product_repository import ProductRepository

logger = get_logger(__name__)


def iter_batches(records: Iterable[EnrichedRecord], batch_size: int) -> Iterator[list[EnrichedRecord]]:
    """Slice an iterable into lists of at most batch_size without materialising it."""
    iterator = iter(records)
    while True:
        batch = list(islice(iterator, batch_size))
        if not batch:
            return
        yield batch


class BatchProductWriter:
    """
    Writes enriched records to the products table.

    Policy:
    - the catalog is cleared right before the first batch is written, so a
      run without valid records leaves it untouched
    - each batch runs in its own transaction; the fast path is a single
      executemany, and on failure the batch is replayed row by row under
      savepoints so one bad row does not take its siblings down
    - batches run sequentially
    - the query cache is invalidated again once the last batch is written
    """

    def __init__(
        self,
        pool: DatabaseConnectionPool,
        repository: ProductRepository | None = None,
        batch_size: int = 1000,
    ):
        """
        Initialize batch writer.

        Args:
            pool: Database connection pool
            repository: Products repository (built on the pool if omitted)
            batch_size: Records per batch
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.pool = pool
        self.repository = repository or ProductRepository(pool)
        self.batch_size = batch_size

    def write(self, records: Iterable[EnrichedRecord]) -> list[BatchResult]:
        """
        Replace the catalog with the given records.

        Args:
            records: Enriched records (consumed lazily)

        Returns:
            One BatchResult per batch, in order

        Raises:
            PersistenceError: If the catalog could not be cleared
        """
        results: list[BatchResult] = []
        cleared = False

        for index, batch in enumerate(iter_batches(records, self.batch_size), start=1):
            if not cleared:
                self._clear()
                cleared = True
            results.append(self._write_batch(index, batch))

        if cleared:
            # Pages cached while the import was in flight are stale
            self.repository.invalidate_cache()
        else:
            logger.info("No valid records; catalog left unchanged")

        return results

    def _clear(self) -> None:
        try:
            deleted = self.repository.clear()
        except DatabaseError as e:
            metrics.increment_counter(metrics.errors_total, kind="persistence", component="writer")
            raise PersistenceError(f"Failed to clear catalog: {e}") from e
        logger.info("Cleared catalog before import", extra={"deleted": deleted})

    def _write_batch(self, index: int, batch: list[EnrichedRecord]) -> BatchResult:
        rows = [record.to_row() for record in batch]
        started = time.perf_counter()
        inserted = 0
        failure: str | None = None

        try:
            with self.pool.get_connection() as conn:
                try:
                    with conn.transaction():
                        inserted = self.repository.insert_many(conn, rows)
                except DatabaseError as e:
                    logger.warning(
                        "Bulk insert failed, replaying batch row by row",
                        extra={"batch_index": index, "error": str(e)},
                    )
                    inserted, failure = self._replay(conn, rows)
        except (DatabaseError, RuntimeError) as e:
            failure = str(e)

        duration = time.perf_counter() - started
        if failure is None:
            status = "success"
        elif inserted:
            status = "partial"
        else:
            status = "failed"

        metrics.record_batch(len(batch), duration, inserted, status)

        if failure is not None:
            logger.error(
                "Batch write failed",
                extra={
                    "batch_index": index,
                    "batch_size": len(batch),
                    "inserted": inserted,
                    "error": failure,
                },
            )
        else:
            logger.debug(
                "Batch written",
                extra={"batch_index": index, "inserted": inserted},
            )

        return BatchResult(
            batch_index=index,
            batch_size=len(batch),
            inserted_count=inserted,
            duration_ms=round(duration * 1000, 3),
            failure_reason=failure,
        )

    def _replay(self, conn, rows: list[dict]) -> tuple[int, str | None]:
        """
        Insert rows one at a time, each under its own savepoint.

        Returns:
            (inserted count, first failure message or None)
        """
        inserted = 0
        first_failure: str | None = None

        with conn.transaction():
            for row in rows:
                try:
                    with conn.transaction():
                        self.repository.insert_one(conn, row)
                    inserted += 1
                except DatabaseError as e:
                    if first_failure is None:
                        first_failure = f"{row.get('name')!r}: {e}"

        return inserted, first_failure
