"""
UploadJob model representing a queued ingestion request.
"""

import json
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class UploadJob(BaseModel):
    """
    A staged payload waiting to be processed by a queue consumer.

    Created when a payload is queued, owned by the queue client until consumed,
    and destroyed on success or dead-lettered once its retry budget is spent.

    Attributes:
        job_id: Identifier used as the results-store key
        staged_payload_ref: Location of the staged bytes (reachable by the consumer)
        submitted_at: When the job was published
        retry_count: Delivery attempts already consumed by failures
    """

    model_config = ConfigDict(frozen=True)

    job_id: str = Field(default_factory=lambda: uuid4().hex)
    staged_payload_ref: str = Field(..., min_length=1)
    submitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    retry_count: int = Field(default=0, ge=0)

    def with_retry(self, retry_count: int) -> "UploadJob":
        """Copy of this job carrying a new retry counter."""
        return self.model_copy(update={"retry_count": retry_count})

    def to_message(self) -> dict[str, Any]:
        """JSON-safe message body."""
        return self.model_dump(mode="json")

    @classmethod
    def from_message(cls, body: Any) -> "UploadJob":
        """
        Decode a message body.

        Accepts the decoded dict produced by the broker serializer, or raw
        JSON text/bytes.

        Raises:
            ValueError: If the body is not a valid job
        """
        if isinstance(body, (bytes, bytearray)):
            body = body.decode("utf-8")
        if isinstance(body, str):
            body = json.loads(body)
        if not isinstance(body, dict):
            raise ValueError(f"Unexpected message body type: {type(body).__name__}")
        return cls.model_validate(body)
