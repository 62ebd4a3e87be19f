"""
Batch ingestion module: streaming reader, batch writer and the pipeline
that chains them.
"""

from .pipeline import ProductIngestionPipeline, failed_summary
from .readers import ParsedStream, ProductCsvReader
from .writers import BatchProductWriter

__all__ = [
    "ProductIngestionPipeline",
    "failed_summary",
    "ProductCsvReader",
    "ParsedStream",
    "BatchProductWriter",
]
