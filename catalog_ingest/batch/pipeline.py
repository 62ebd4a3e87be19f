"""
Ingestion pipeline orchestration.

Coordinates the flow: snapshot → parse/validate → enrich → persist

Parsing, enrichment and persistence are chained lazily: rows are pulled
from the file by the batch writer, so only one batch is held in memory.
"""

import time
from typing import Callable, Literal, Optional

from catalog_ingest.batch.readers import CsvSource, ProductCsvReader
from catalog_ingest.batch.writers import BatchProductWriter
from catalog_ingest.core.errors import IngestError
from catalog_ingest.core.models import ProcessingSummary
from catalog_ingest.enrichment.exchange_rates import ExchangeRateService, enrich
from catalog_ingest.observability import metrics
from catalog_ingest.observability.logger import get_logger, log_operation

logger = get_logger(__name__)

Mode = Literal["direct", "queued"]
StageCallback = Callable[[str], None]

STAGE_PARSING = "parsing"
STAGE_ENRICHING = "enriching"
STAGE_PERSISTING = "persisting"


def failed_summary(error: Exception, mode: Mode, duration_ms: float = 0.0) -> ProcessingSummary:
    """Summary recorded for a run that ended with a fatal error."""
    failure = error.to_dict() if isinstance(error, IngestError) else {
        "kind": type(error).__name__,
        "message": str(error),
    }
    return ProcessingSummary(
        mode=mode,
        status="failed",
        failure=failure,
        processing_duration_ms=duration_ms,
    )


class ProductIngestionPipeline:
    """
    Runs one file through parse → enrich → persist.

    Flow:
    1. Open the file as a lazy ParsedStream
    2. Take the run's exchange-rate snapshot (before anything is written,
       so a provider failure leaves the catalog untouched)
    3. Stream records through enrichment into the batch writer, which
       clears the catalog just before its first batch

    Fatal errors (HeaderError, StreamTimeoutError, EnrichmentError,
    PersistenceError) propagate to the caller.
    """

    def __init__(
        self,
        reader: ProductCsvReader,
        rate_service: ExchangeRateService,
        writer: BatchProductWriter,
    ):
        """
        Initialize the pipeline.

        Args:
            reader: Streaming CSV reader
            rate_service: Exchange-rate snapshot provider
            writer: Batch writer for the products table
        """
        self.reader = reader
        self.rate_service = rate_service
        self.writer = writer

    def run(
        self,
        source: CsvSource,
        mode: Mode = "direct",
        on_stage: Optional[StageCallback] = None,
    ) -> ProcessingSummary:
        """
        Process a file.

        Args:
            source: Raw bytes, a file path, or a binary file object
            mode: "direct" or "queued", recorded on the summary
            on_stage: Called with each stage name as the run advances

        Returns:
            ProcessingSummary for the run
        """
        notify = on_stage or (lambda stage: None)
        started = time.perf_counter()
        status = "failed"

        try:
            with log_operation("Ingesting product file", logger=logger, mode=mode):
                notify(STAGE_PARSING)
                stream = self.reader.parse(source)

                notify(STAGE_ENRICHING)
                try:
                    snapshot = self.rate_service.get_snapshot()
                except IngestError:
                    stream.close()
                    raise

                notify(STAGE_PERSISTING)
                batch_results = self.writer.write(enrich(stream, snapshot))
                status = "completed"
        finally:
            duration = time.perf_counter() - started
            metrics.observe_histogram(metrics.run_duration_seconds, duration, mode=mode, status=status)

        summary = ProcessingSummary(
            total_rows=stream.total_rows,
            success_count=stream.success_count,
            errors=[error.to_dict() for error in stream.errors],
            processing_duration_ms=round(duration * 1000, 3),
            inserted_count=sum(result.inserted_count for result in batch_results),
            failed_batches=sum(1 for result in batch_results if result.failed),
            batch_results=batch_results,
            snapshot_as_of=snapshot.as_of,
            mode=mode,
        )

        logger.info(
            "Ingestion run summary",
            extra={
                "mode": mode,
                "total_rows": summary.total_rows,
                "success_count": summary.success_count,
                "error_count": summary.error_count,
                "inserted_count": summary.inserted_count,
                "failed_batches": summary.failed_batches,
                "duration_ms": summary.processing_duration_ms,
            },
        )
        return summary
