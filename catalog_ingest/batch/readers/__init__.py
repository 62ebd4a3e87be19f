"""
Batch data source readers.
"""

from .csv_reader import CsvSource, ParsedStream, ProductCsvReader

__all__ = [
    "CsvSource",
    "ParsedStream",
    "ProductCsvReader",
]
