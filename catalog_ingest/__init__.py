"""
catalog-ingest: resilient product catalog ingestion.

Streams delimited product files, validates each row, enriches records with an
exchange-rate snapshot and persists them in batches, either inline or through
a message queue with a synchronous fallback.
"""

__version__ = "0.1.0"
