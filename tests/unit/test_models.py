"""
Unit tests for Pydantic data models and the error taxonomy.
"""

import json
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError as ModelValidationError

from catalog_ingest.core.errors import (
    EnrichmentError,
    HeaderError,
    IngestError,
    PersistenceError,
    StreamTimeoutError,
    TransportError,
    ValidationError,
)
from catalog_ingest.core.models import (
    BatchResult,
    ParsedRecord,
    ProcessingSummary,
    ProductFilter,
    ProductPage,
    SortSpec,
    UploadJob,
)


class TestUploadJob:
    """Tests for UploadJob model"""

    def test_defaults(self):
        job = UploadJob(staged_payload_ref="/staging/a.csv")

        assert len(job.job_id) == 32
        assert job.retry_count == 0
        assert job.submitted_at.tzinfo is not None

    def test_empty_ref_rejected(self):
        with pytest.raises(ModelValidationError):
            UploadJob(staged_payload_ref="")

    def test_with_retry_keeps_identity(self):
        job = UploadJob(staged_payload_ref="/staging/a.csv")
        retried = job.with_retry(2)

        assert retried.retry_count == 2
        assert retried.job_id == job.job_id
        assert retried.submitted_at == job.submitted_at
        assert job.retry_count == 0

    def test_message_is_json_safe(self):
        job = UploadJob(job_id="abc", staged_payload_ref="/staging/a.csv", retry_count=1)
        message = job.to_message()

        assert json.loads(json.dumps(message))["job_id"] == "abc"
        assert isinstance(message["submitted_at"], str)

    @pytest.mark.parametrize("encode", [
        lambda message: message,
        json.dumps,
        lambda message: json.dumps(message).encode("utf-8"),
    ])
    def test_from_message_accepts_decoded_and_raw(self, encode):
        job = UploadJob(job_id="abc", staged_payload_ref="/staging/a.csv", retry_count=1)

        decoded = UploadJob.from_message(encode(job.to_message()))

        assert decoded.job_id == "abc"
        assert decoded.retry_count == 1

    @pytest.mark.parametrize("body", [["a", "list"], 42, '"text"', {"job_id": "x"}])
    def test_from_message_rejects_invalid(self, body):
        with pytest.raises(ValueError):
            UploadJob.from_message(body)


class TestParsedRecord:
    """Tests for ParsedRecord model"""

    def test_frozen(self):
        record = ParsedRecord(
            name="Milk", price=Decimal("1.00"), expiration_date=date(2030, 1, 1), line_number=1
        )

        with pytest.raises(ModelValidationError):
            record.name = "Bread"

    def test_line_number_is_one_based(self):
        with pytest.raises(ModelValidationError):
            ParsedRecord(
                name="Milk", price=Decimal("1.00"), expiration_date=date(2030, 1, 1), line_number=0
            )


class TestProcessingSummary:
    """Tests for ProcessingSummary model"""

    def test_response_shape(self):
        summary = ProcessingSummary(
            total_rows=3,
            success_count=1,
            errors=[{"line": 2}, {"line": 3}],
        )

        assert summary.error_count == 2
        assert summary.to_response() == {"processed": 1, "errors": 2}

    def test_round_trips_through_json(self):
        summary = ProcessingSummary(
            total_rows=1,
            success_count=1,
            batch_results=[BatchResult(batch_index=1, batch_size=1, inserted_count=1)],
            snapshot_as_of=datetime(2025, 11, 17, tzinfo=timezone.utc),
            mode="queued",
        )

        restored = ProcessingSummary.model_validate(json.loads(summary.model_dump_json()))

        assert restored.batch_results[0].inserted_count == 1
        assert restored.snapshot_as_of == summary.snapshot_as_of
        assert restored.mode == "queued"

    def test_unknown_mode_rejected(self):
        with pytest.raises(ModelValidationError):
            ProcessingSummary(mode="batch")


class TestBatchResult:
    """Tests for BatchResult model"""

    def test_failed_flag(self):
        assert not BatchResult(batch_index=1, batch_size=2, inserted_count=2).failed
        assert BatchResult(batch_index=1, batch_size=2, failure_reason="boom").failed

    def test_index_is_one_based(self):
        with pytest.raises(ModelValidationError):
            BatchResult(batch_index=0, batch_size=1)


class TestQueryModels:
    """Tests for ProductFilter, SortSpec and ProductPage"""

    def test_price_range_checked(self):
        with pytest.raises(ModelValidationError):
            ProductFilter(min_price=Decimal("10"), max_price=Decimal("1"))

    def test_equal_price_bounds_allowed(self):
        assert ProductFilter(min_price=Decimal("5"), max_price=Decimal("5")).max_price == Decimal("5")

    def test_unknown_sort_field_rejected(self):
        with pytest.raises(ModelValidationError) as exc_info:
            SortSpec(field="id; DROP TABLE products")

        assert "Cannot sort by" in str(exc_info.value)

    def test_sort_order_restricted(self):
        with pytest.raises(ModelValidationError):
            SortSpec(field="price", order="sideways")

    @pytest.mark.parametrize("total,limit,pages", [(0, 10, 0), (1, 10, 1), (10, 10, 1), (11, 10, 2)])
    def test_total_pages(self, total, limit, pages):
        assert ProductPage(total=total, limit=limit).total_pages == pages


class TestErrors:
    """Tests for the IngestError taxonomy"""

    def test_all_variants_are_ingest_errors(self):
        errors = [
            TransportError("publish", "channel closed"),
            ValidationError(1, {"name": ""}, "Missing required fields: name"),
            HeaderError(["a", "b"], "Expected 3 columns"),
            EnrichmentError("provider down"),
            PersistenceError("disk full", batch_index=2),
            StreamTimeoutError(300, 10),
        ]

        assert all(isinstance(error, IngestError) for error in errors)
        assert [error.kind for error in errors] == [
            "transport", "validation", "validation", "enrichment", "persistence", "timeout"
        ]

    def test_messages(self):
        assert str(TransportError("publish", "channel closed")) == "[publish] channel closed"
        assert str(PersistenceError("disk full", batch_index=2)) == "batch 2: disk full"
        assert str(StreamTimeoutError(300, 10)) == "CSV processing timeout after 300s (10 rows read)"

    def test_header_error_has_line_zero(self):
        assert HeaderError(["a"], "bad").to_dict()["line"] == 0
