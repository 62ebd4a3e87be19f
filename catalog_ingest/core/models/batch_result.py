"""
BatchResult model: the outcome of writing one batch of records.
"""

from pydantic import BaseModel, ConfigDict, Field


class BatchResult(BaseModel):
    """
    Outcome of a single bulk insert.

    A batch with failure_reason set may still have inserted some rows: inserts
    are unordered, so siblings of a bad row are kept.

    Attributes:
        batch_index: 1-based position of the batch within the run
        batch_size: Records submitted in the batch
        inserted_count: Records actually written
        duration_ms: Wall-clock time spent on the batch
        failure_reason: First error encountered, if any
    """

    model_config = ConfigDict(frozen=True)

    batch_index: int = Field(..., ge=1)
    batch_size: int = Field(..., ge=0)
    inserted_count: int = Field(default=0, ge=0)
    duration_ms: float = Field(default=0.0, ge=0.0)
    failure_reason: str | None = None

    @property
    def failed(self) -> bool:
        return self.failure_reason is not None
