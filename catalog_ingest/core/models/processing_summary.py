"""
ProcessingSummary model: aggregated outcome of one ingestion run.
"""

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field

from .batch_result import BatchResult


class ProcessingSummary(BaseModel):
    """
    Counts, errors and batch outcomes for a completed run.

    Invariant: success_count + len(errors) == total_rows (header excluded).

    Attributes:
        total_rows: Data rows read from the file
        success_count: Rows that passed validation
        errors: Per-row validation errors (line, row, error)
        processing_duration_ms: Wall-clock duration of the run
        inserted_count: Rows written to the catalog
        failed_batches: Batches that reported a failure
        batch_results: Per-batch outcomes
        snapshot_as_of: Timestamp of the exchange-rate snapshot used
        mode: "direct" (inline) or "queued" (consumer)
        status: "completed" or "failed"
        completed_at: When the summary was produced
    """

    total_rows: int = Field(default=0, ge=0)
    success_count: int = Field(default=0, ge=0)
    errors: list[dict[str, Any]] = Field(default_factory=list)
    processing_duration_ms: float = Field(default=0.0, ge=0.0)
    inserted_count: int = Field(default=0, ge=0)
    failed_batches: int = Field(default=0, ge=0)
    batch_results: list[BatchResult] = Field(default_factory=list)
    snapshot_as_of: datetime | None = None
    mode: Literal["direct", "queued"] = "direct"
    status: Literal["completed", "failed"] = "completed"
    failure: dict[str, Any] | None = None
    completed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def to_response(self) -> dict[str, int]:
        """Consolidated shape returned to synchronous callers."""
        return {"processed": self.success_count, "errors": self.error_count}
