"""
Error taxonomy for the ingestion pipeline.

Every failure the pipeline reports is one of a closed set of variants derived
from IngestError. Each variant carries the fields specific to its kind so
callers can branch on type instead of parsing messages.
"""

from typing import Any


class IngestError(Exception):
    """Base class for all ingestion errors."""

    kind: str = "ingest"

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": str(self)}


class TransportError(IngestError):
    """Broker unreachable, channel closed, or staged payload not visible."""

    kind = "transport"

    def __init__(self, operation: str, message: str):
        self.operation = operation
        self.message = message
        super().__init__(f"[{operation}] {message}")

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "operation": self.operation, "message": self.message}


class ValidationError(IngestError):
    """
    A single row failed validation.

    Recovered locally: the row is skipped, the error is collected and the
    run continues.
    """

    kind = "validation"

    def __init__(self, line_number: int, raw_row: dict[str, Any] | list[str], reason: str):
        self.line_number = line_number
        self.raw_row = raw_row
        self.reason = reason
        super().__init__(f"line {line_number}: {reason}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "line": self.line_number,
            "row": self.raw_row,
            "error": self.reason,
        }


class HeaderError(ValidationError):
    """The header row does not describe the expected three-column layout."""

    def __init__(self, raw_row: list[str], reason: str):
        super().__init__(0, raw_row, reason)


class EnrichmentError(IngestError):
    """The exchange-rate snapshot could not be obtained. Fatal to the run."""

    kind = "enrichment"

    def __init__(self, message: str, provider_url: str | None = None):
        self.message = message
        self.provider_url = provider_url
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "provider_url": self.provider_url}


class PersistenceError(IngestError):
    """A datastore write failed."""

    kind = "persistence"

    def __init__(self, message: str, batch_index: int | None = None):
        self.message = message
        self.batch_index = batch_index
        super().__init__(message if batch_index is None else f"batch {batch_index}: {message}")

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "batch_index": self.batch_index}


class StreamTimeoutError(IngestError):
    """The parse stream ran past its wall-clock deadline."""

    kind = "timeout"

    def __init__(self, timeout_seconds: float, rows_read: int):
        self.timeout_seconds = timeout_seconds
        self.rows_read = rows_read
        super().__init__(
            f"CSV processing timeout after {timeout_seconds:g}s ({rows_read} rows read)"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "timeout_seconds": self.timeout_seconds,
            "rows_read": self.rows_read,
        }
