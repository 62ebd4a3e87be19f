"""
Upload orchestration with queue fallback.

Uploads are queued for a worker when the broker is reachable and processed
inline otherwise. Either way the same pipeline runs and produces the same
ProcessingSummary.
"""

import threading
import time
from enum import Enum
from pathlib import Path
from typing import Callable, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from catalog_ingest.batch.pipeline import ProductIngestionPipeline, failed_summary
from catalog_ingest.core.errors import IngestError, TransportError
from catalog_ingest.core.models import ProcessingSummary, UploadJob
from catalog_ingest.observability import metrics
from catalog_ingest.observability.logger import get_logger
from catalog_ingest.queue.queue_client import ConnectionState, QueueClient

from .results_store import ResultsStore
from .staging import StagingArea

logger = get_logger(__name__)


class UploadState(str, Enum):
    RECEIVED = "received"
    STAGED = "staged"
    QUEUED = "queued"
    DIRECT = "direct"
    PARSING = "parsing"
    ENRICHING = "enriching"
    PERSISTING = "persisting"
    COMPLETED = "completed"
    FAILED = "failed"


class UploadOutcome(BaseModel):
    """
    What the gateway gets back for an upload.

    Attributes:
        upload_id: Identifier of the upload (the job id when queued)
        mode: "queued" or "direct"
        state: Final state reached by this call
        history: Every state the upload passed through, in order
        job: The published job (queued mode)
        summary: The processing summary (direct mode)
    """

    upload_id: str
    mode: str
    state: UploadState
    history: list[UploadState] = Field(default_factory=list)
    job: Optional[UploadJob] = None
    summary: Optional[ProcessingSummary] = None

    def to_response(self) -> dict:
        """Payload for the HTTP layer."""
        if self.summary is not None:
            return {**self.summary.to_response(), "mode": self.mode, "upload_id": self.upload_id}
        return {"mode": self.mode, "upload_id": self.upload_id, "state": self.state.value}


class UploadOrchestrator:
    """
    Routes uploads through the queue or runs them inline.

    Queued path: stage payload → publish UploadJob → worker runs handle_job.
    Direct path: run the pipeline in the caller when the broker is not
    connected, staging fails, or the publish is refused.
    """

    def __init__(
        self,
        pipeline: ProductIngestionPipeline,
        staging: StagingArea,
        queue: Optional[QueueClient] = None,
        results: Optional[ResultsStore] = None,
        connection_wait_timeout: float = 30.0,
        staged_wait_attempts: int = 5,
        staged_wait_delay: float = 1.0,
        worker_retry_delay: float = 10.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the orchestrator.

        Args:
            pipeline: Parse → enrich → persist pipeline
            staging: Shared staging area for queued payloads
            queue: Broker client; None forces direct processing
            results: Store for queued-run summaries
            connection_wait_timeout: How long to wait for the broker per upload
            staged_wait_attempts: Checks for a staged payload before failing the job
            staged_wait_delay: Base delay between checks (attempt n waits n * delay)
            worker_retry_delay: Pause before the worker retries an unreachable broker
            sleep: Sleep function, replaceable in tests
        """
        self.pipeline = pipeline
        self.staging = staging
        self.queue = queue
        self.results = results
        self.connection_wait_timeout = connection_wait_timeout
        self.staged_wait_attempts = staged_wait_attempts
        self.staged_wait_delay = staged_wait_delay
        self.worker_retry_delay = worker_retry_delay
        self._sleep = sleep

    # =======================
    # SUBMISSION
    # =======================

    def submit_upload(self, payload: bytes, filename: Optional[str] = None) -> UploadOutcome:
        """
        Accept an uploaded payload.

        Returns:
            UploadOutcome in QUEUED state, or COMPLETED with a summary when
            processed inline

        Raises:
            IngestError: If an inline run fails fatally
        """
        upload_id = uuid4().hex
        history = [UploadState.RECEIVED]

        if self._broker_available():
            try:
                ref = self.staging.stage(payload, filename)
            except OSError as e:
                logger.error(
                    "Staging failed, processing upload directly",
                    extra={"upload_id": upload_id, "error": str(e)},
                )
            else:
                history.append(UploadState.STAGED)
                outcome = self._publish(upload_id, ref, history)
                if outcome is not None:
                    return outcome
                self.staging.delete(ref)

        return self._run_direct(upload_id, payload, history)

    def submit_staged(self, path: str | Path) -> UploadOutcome:
        """
        Accept a payload already written to the staging area.

        The staged file is owned by the system from here on: the worker
        removes it after a queued run, and a direct run removes it when done.
        """
        ref = str(path)
        upload_id = uuid4().hex
        history = [UploadState.RECEIVED, UploadState.STAGED]

        if self._broker_available():
            outcome = self._publish(upload_id, ref, history)
            if outcome is not None:
                return outcome

        try:
            with self.staging.open(ref) as f:
                outcome = self._run_direct(upload_id, f, history)
        finally:
            self.staging.delete(ref)
        return outcome

    def _broker_available(self) -> bool:
        if self.queue is None:
            return False
        available = self.queue.wait_for_connection(self.connection_wait_timeout)
        if not available:
            logger.warning(
                "Broker unavailable, falling back to direct processing",
                extra={"queue_state": self.queue.state.value},
            )
        return available

    def _publish(self, upload_id: str, ref: str, history: list[UploadState]) -> Optional[UploadOutcome]:
        job = UploadJob(job_id=upload_id, staged_payload_ref=ref)
        if not self.queue.publish(job):
            logger.warning(
                "Publish refused, falling back to direct processing",
                extra={"upload_id": upload_id},
            )
            return None

        history.append(UploadState.QUEUED)
        metrics.increment_counter(metrics.uploads_total, mode="queued")
        logger.info("Upload queued", extra={"upload_id": upload_id, "ref": ref})
        return UploadOutcome(
            upload_id=upload_id,
            mode="queued",
            state=UploadState.QUEUED,
            history=history,
            job=job,
        )

    def _run_direct(self, upload_id: str, source, history: list[UploadState]) -> UploadOutcome:
        history.append(UploadState.DIRECT)
        metrics.increment_counter(metrics.uploads_total, mode="direct")

        try:
            summary = self.pipeline.run(
                source,
                mode="direct",
                on_stage=lambda stage: history.append(UploadState(stage)),
            )
        except IngestError as e:
            history.append(UploadState.FAILED)
            metrics.increment_counter(metrics.errors_total, kind=e.kind, component="orchestrator")
            logger.error(
                "Direct processing failed",
                extra={"upload_id": upload_id, "error": str(e), "history": [s.value for s in history]},
            )
            raise

        history.append(UploadState.COMPLETED)
        return UploadOutcome(
            upload_id=upload_id,
            mode="direct",
            state=UploadState.COMPLETED,
            history=history,
            summary=summary,
        )

    # =======================
    # WORKER SIDE
    # =======================

    def handle_job(self, job: UploadJob) -> ProcessingSummary:
        """
        Process one queued job.

        A redelivered job whose earlier run already completed is
        acknowledged without running again.

        Raises:
            TransportError: If the staged payload never becomes visible
            IngestError: On any fatal pipeline error (the queue client then
                retries or dead-letters the job)
        """
        completed = self._wait_for_payload(job)
        if completed is not None:
            logger.info(
                "Job already completed, ignoring duplicate delivery",
                extra={"job_id": job.job_id, "retry_count": job.retry_count},
            )
            return completed

        logger.info(
            "Processing queued job",
            extra={"job_id": job.job_id, "retry_count": job.retry_count},
        )
        with self.staging.open(job.staged_payload_ref) as f:
            summary = self.pipeline.run(f, mode="queued")

        self.staging.delete(job.staged_payload_ref)
        if self.results is not None:
            self.results.save(job.job_id, summary)
        return summary

    def handle_dead_letter(self, job: UploadJob, error: Exception) -> None:
        """Clean up after a job that exhausted its retries and record the failure."""
        self.staging.delete(job.staged_payload_ref)
        metrics.increment_counter(
            metrics.errors_total,
            kind=getattr(error, "kind", type(error).__name__),
            component="worker",
        )
        if self.results is None:
            return
        if self._completed_summary(job.job_id) is not None:
            logger.warning(
                "Dead-lettered duplicate of a completed job; keeping its result",
                extra={"job_id": job.job_id, "error": str(error)},
            )
            return
        self.results.save(job.job_id, failed_summary(error, mode="queued"))

    def _completed_summary(self, job_id: str) -> Optional[ProcessingSummary]:
        if self.results is None:
            return None
        summary = self.results.fetch(job_id)
        if summary is not None and summary.status == "completed":
            return summary
        return None

    def _wait_for_payload(self, job: UploadJob) -> Optional[ProcessingSummary]:
        """
        Wait for the staged payload of a job.

        Returns:
            None once the payload is visible, or the stored summary when the
            job already completed (its payload is gone for good)
        """
        ref = job.staged_payload_ref
        for attempt in range(1, self.staged_wait_attempts + 1):
            if self.staging.exists(ref):
                return None
            completed = self._completed_summary(job.job_id)
            if completed is not None:
                return completed
            if attempt < self.staged_wait_attempts:
                logger.warning(
                    "Staged payload not visible yet",
                    extra={"job_id": job.job_id, "ref": ref, "attempt": attempt},
                )
                self._sleep(self.staged_wait_delay * attempt)

        raise TransportError(
            "staged_payload",
            f"Staged payload not found after {self.staged_wait_attempts} attempts: {ref}",
        )

    def run_worker(
        self,
        stop_event: Optional[threading.Event] = None,
        max_idle: Optional[float] = None,
    ) -> int:
        """
        Connect and consume jobs until stopped.

        A broker that stays unreachable past the client's reconnect budget
        does not end the worker: setup is retried every worker_retry_delay
        seconds until stop_event is set, the client is closed, or max_idle
        passes without a delivered message.

        Returns:
            Number of messages handled
        """
        if self.queue is None:
            raise RuntimeError("run_worker requires a queue client")

        handled = 0
        idle_since = time.monotonic()

        while stop_event is None or not stop_event.is_set():
            self.queue.connect()
            if not self.queue.wait_for_connection(self.connection_wait_timeout):
                if self.queue.state == ConnectionState.DISCONNECTED:
                    break
                if max_idle is not None and time.monotonic() - idle_since >= max_idle:
                    logger.error("Worker could not connect to broker")
                    break
                logger.warning(
                    "Broker unavailable, retrying worker setup",
                    extra={"state": self.queue.state.value, "retry_in_seconds": self.worker_retry_delay},
                )
                self._pause(stop_event, self.worker_retry_delay)
                continue

            logger.info("Worker consuming jobs")
            consumed = self.queue.consume(
                self.handle_job,
                stop_event=stop_event,
                max_idle=max_idle,
                on_dead_letter=self.handle_dead_letter,
            )
            handled += consumed
            if consumed:
                idle_since = time.monotonic()

            # Only an exhausted reconnect budget sends the worker back to setup
            if self.queue.state != ConnectionState.GIVEN_UP:
                break

        return handled

    def _pause(self, stop_event: Optional[threading.Event], seconds: float) -> None:
        if stop_event is not None:
            stop_event.wait(seconds)
        else:
            self._sleep(seconds)
