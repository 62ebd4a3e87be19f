"""
Core data models for the catalog ingestion pipeline.

All models use Pydantic for runtime validation and type safety.
"""

from .batch_result import BatchResult
from .exchange_rate_snapshot import ExchangeRateSnapshot
from .parsed_record import EnrichedRecord, ParsedRecord
from .processing_summary import ProcessingSummary
from .product_query import SORTABLE_FIELDS, Product, ProductFilter, ProductPage, SortSpec
from .upload_job import UploadJob

__all__ = [
    "UploadJob",
    "ParsedRecord",
    "EnrichedRecord",
    "ExchangeRateSnapshot",
    "BatchResult",
    "ProcessingSummary",
    "Product",
    "ProductFilter",
    "ProductPage",
    "SortSpec",
    "SORTABLE_FIELDS",
]
