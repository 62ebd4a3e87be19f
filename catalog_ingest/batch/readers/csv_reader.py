"""
Streaming reader for delimited product files.

Rows are pulled one at a time from the byte source, validated and yielded
as ParsedRecord objects, so memory stays bounded however large the file is.
"""

import csv
import io
import time
from pathlib import Path
from typing import BinaryIO, Callable, Iterator, Union

from catalog_ingest.core.errors import HeaderError, StreamTimeoutError, ValidationError
from catalog_ingest.core.models import ParsedRecord
from catalog_ingest.core.rules import PRODUCT_COLUMNS, RowRuleEngine
from catalog_ingest.observability import metrics
from catalog_ingest.observability.logger import get_logger

logger = get_logger(__name__)

CsvSource = Union[bytes, bytearray, str, Path, BinaryIO]

# Substituted for bytes that are not valid UTF-8
REPLACEMENT_CHARACTER = "\ufffd"


def _is_blank(cells: list[str]) -> bool:
    return all(not cell.strip() for cell in cells)


def _is_header(cells: list[str], columns: tuple[str, ...]) -> bool:
    return [cell.strip().lower() for cell in cells[: len(columns)]] == list(columns)


class ParsedStream:
    """
    Single-pass iterator over the valid records of one file.

    Invalid rows are collected in ``errors`` as the stream advances; the
    counters are final once iteration has finished.

    Attributes:
        header: Header cells as read from the file (None until read)
        errors: ValidationErrors collected so far
        total_rows: Data rows read so far (header, blank and repeated
            header lines excluded)
        success_count: Rows that passed validation so far
    """

    def __init__(
        self,
        handle: BinaryIO,
        owns_handle: bool,
        delimiter: str,
        rule_engine: RowRuleEngine,
        timeout_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._handle = handle
        self._owns_handle = owns_handle
        self._delimiter = delimiter
        self._rule_engine = rule_engine
        self._timeout_seconds = timeout_seconds
        self._clock = clock
        self._started = False
        self._finished = False

        self.header: list[str] | None = None
        self.errors: list[ValidationError] = []
        self.total_rows = 0
        self.success_count = 0

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def __iter__(self) -> Iterator[ParsedRecord]:
        if self._started:
            raise RuntimeError("ParsedStream can only be iterated once")
        self._started = True
        return self._records()

    def close(self) -> None:
        """Release the byte source."""
        if not self._handle.closed:
            self._handle.close()

    def _records(self) -> Iterator[ParsedRecord]:
        columns = self._rule_engine.columns
        # Only time spent inside the reader counts towards the deadline;
        # the consumer's work between pulls (enrichment, inserts) does not.
        spent = 0.0
        resumed = self._clock()
        text = io.TextIOWrapper(self._handle, encoding="utf-8-sig", errors="replace", newline="")
        timed_out = False

        try:
            reader = csv.reader(text, delimiter=self._delimiter)

            for cells in self._rows(reader):
                if spent + (self._clock() - resumed) > self._timeout_seconds:
                    timed_out = True
                    metrics.increment_counter(metrics.parse_timeouts_total)
                    raise StreamTimeoutError(self._timeout_seconds, self.total_rows)

                if self.header is None:
                    if isinstance(cells, csv.Error):
                        raise HeaderError([], f"Malformed header: {cells}")
                    if _is_blank(cells):
                        continue
                    self._read_header(cells, columns)
                    continue

                if isinstance(cells, csv.Error):
                    self.total_rows += 1
                    self._reject(ValidationError(self.total_rows, [], f"Malformed row: {cells}"), "format")
                    continue

                if _is_blank(cells) or _is_header(cells, columns):
                    continue

                self.total_rows += 1
                row = {column: cells[i] for i, column in enumerate(columns) if i < len(cells)}

                if any(REPLACEMENT_CHARACTER in cell for cell in cells):
                    self._reject(ValidationError(self.total_rows, row, "Invalid encoding"), "encoding")
                    continue

                try:
                    record = self._rule_engine.validate_row(row, self.total_rows)
                except ValidationError as e:
                    self.errors.append(e)
                    metrics.record_row(valid=False)
                    continue

                self.success_count += 1
                metrics.record_row(valid=True)
                spent += self._clock() - resumed
                yield record
                resumed = self._clock()

            self._finished = True
            logger.info(
                "CSV stream finished",
                extra={
                    "total_rows": self.total_rows,
                    "success_count": self.success_count,
                    "error_count": len(self.errors),
                },
            )
        finally:
            if self._owns_handle or timed_out:
                text.close()
            else:
                # Leave the caller's file object open
                text.detach()

    @staticmethod
    def _rows(reader) -> Iterator[list[str] | csv.Error]:
        """Yield parsed rows, or the csv.Error for a row the reader could not split."""
        while True:
            try:
                row = next(reader)
            except StopIteration:
                return
            except csv.Error as e:
                row = e
            yield row

    def _reject(self, error: ValidationError, rule_type: str) -> None:
        self.errors.append(error)
        metrics.record_validation_failure(rule_type)
        metrics.record_row(valid=False)

    def _read_header(self, cells: list[str], columns: tuple[str, ...]) -> None:
        if len(cells) != len(columns):
            raise HeaderError(
                cells,
                f"Expected {len(columns)} columns ({', '.join(columns)}), got {len(cells)}",
            )
        self.header = cells
        if not _is_header(cells, columns):
            logger.warning(
                "Unexpected header names; columns are read in fixed order",
                extra={"header": cells, "expected": list(columns)},
            )


class ProductCsvReader:
    """
    Opens a product file and returns a lazy ParsedStream over it.

    The file layout is fixed: a header row followed by name, price and
    expiration columns separated by a single non-comma delimiter.
    """

    def __init__(
        self,
        delimiter: str = ";",
        parse_timeout_seconds: float = 300.0,
        rule_engine: RowRuleEngine | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the reader.

        Args:
            delimiter: Single-character field separator (',' is not allowed)
            parse_timeout_seconds: Wall-clock budget for one stream
            rule_engine: Row validator (defaults to the product columns)
            clock: Monotonic clock, replaceable in tests

        Raises:
            ValueError: If the delimiter is invalid
        """
        if len(delimiter) != 1:
            raise ValueError(f"Delimiter must be a single character, got {delimiter!r}")
        if delimiter == ",":
            raise ValueError("Delimiter cannot be ',' because prices use ',' as a thousands separator")
        if parse_timeout_seconds <= 0:
            raise ValueError("parse_timeout_seconds must be positive")

        self.delimiter = delimiter
        self.parse_timeout_seconds = parse_timeout_seconds
        self.rule_engine = rule_engine or RowRuleEngine(PRODUCT_COLUMNS)
        self.clock = clock

    @classmethod
    def from_settings(cls, settings) -> "ProductCsvReader":
        return cls(
            delimiter=settings.csv_delimiter,
            parse_timeout_seconds=settings.parse_timeout_seconds,
        )

    def parse(self, source: CsvSource) -> ParsedStream:
        """
        Open a source for streaming.

        Args:
            source: Raw bytes, a file path, or a binary file object

        Returns:
            ParsedStream (nothing is read until it is iterated)
        """
        if isinstance(source, (bytes, bytearray)):
            handle: BinaryIO = io.BytesIO(bytes(source))
            owns_handle = True
        elif isinstance(source, (str, Path)):
            handle = open(source, "rb")
            owns_handle = True
        elif hasattr(source, "read"):
            handle = source
            owns_handle = False
        else:
            raise TypeError(f"Unsupported CSV source: {type(source).__name__}")

        return ParsedStream(
            handle=handle,
            owns_handle=owns_handle,
            delimiter=self.delimiter,
            rule_engine=self.rule_engine,
            timeout_seconds=self.parse_timeout_seconds,
            clock=self.clock,
        )
