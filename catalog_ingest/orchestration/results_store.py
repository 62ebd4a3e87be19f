"""
Results store for queued uploads.

Workers save the ProcessingSummary of each job so the API layer can report
it later by job id.
"""

from typing import Optional

from catalog_ingest.core.models import ProcessingSummary
from catalog_ingest.observability.logger import get_logger

logger = get_logger(__name__)

KEY_PREFIX = "csv_result:"


class ResultsStore:
    """Stores processing summaries in the cache with a TTL."""

    def __init__(self, cache, ttl_seconds: int = 3600):
        """
        Args:
            cache: RedisCache (or compatible)
            ttl_seconds: How long a result stays readable
        """
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def key(job_id: str) -> str:
        return f"{KEY_PREFIX}{job_id}"

    def save(self, job_id: str, summary: ProcessingSummary) -> bool:
        saved = self.cache.set(
            self.key(job_id), summary.model_dump(mode="json"), ttl=self.ttl_seconds
        )
        if not saved:
            logger.error("Failed to store processing result", extra={"job_id": job_id})
        return saved

    def fetch(self, job_id: str) -> Optional[ProcessingSummary]:
        data = self.cache.get(self.key(job_id))
        if data is None:
            return None
        return ProcessingSummary.model_validate(data)
