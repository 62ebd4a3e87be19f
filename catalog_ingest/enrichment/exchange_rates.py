"""
Exchange-rate snapshot provider.

One snapshot is taken per run and attached, unchanged, to every record of
that run. Snapshots are cached in Redis so concurrent and back-to-back runs
share a single provider call per TTL window.
"""

from datetime import datetime, timezone
from typing import Any, Iterable

import httpx
from pydantic import ValidationError as ModelValidationError

from catalog_ingest.config.settings import DEFAULT_CURRENCIES
from catalog_ingest.core.errors import EnrichmentError
from catalog_ingest.core.models import EnrichedRecord, ExchangeRateSnapshot, ParsedRecord
from catalog_ingest.observability import metrics
from catalog_ingest.observability.logger import get_logger

logger = get_logger(__name__)

CACHE_KEY = "exchange_rates"
DEFAULT_PROVIDER_URL = "https://api.exchangerate-api.com/v4/latest/USD"


def select_currencies(
    rates: dict[str, Any], currencies: Iterable[str] = DEFAULT_CURRENCIES
) -> dict[str, float]:
    """
    Narrow a provider rate table to the allow-listed currencies.

    Missing, non-numeric and non-positive rates are dropped.
    """
    selected: dict[str, float] = {}
    for code in currencies:
        value = rates.get(code)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        if value > 0:
            selected[code] = float(value)
    return selected


def enrich(records: Iterable[ParsedRecord], snapshot: ExchangeRateSnapshot):
    """Bind each parsed record to the run snapshot, lazily."""
    for record in records:
        yield EnrichedRecord(record=record, snapshot=snapshot)


class ExchangeRateService:
    """
    Fetches and caches exchange-rate snapshots.

    Cache failures degrade to a provider call; provider failures raise
    EnrichmentError, which is fatal to the run.
    """

    def __init__(
        self,
        cache=None,
        provider_url: str = DEFAULT_PROVIDER_URL,
        currencies: Iterable[str] = DEFAULT_CURRENCIES,
        ttl_seconds: int = 3600,
        timeout_seconds: float = 10.0,
        http_client: httpx.Client | None = None,
    ):
        """
        Initialize the service.

        Args:
            cache: RedisCache (or compatible) for snapshots; None disables caching
            provider_url: Rate provider endpoint returning {"rates": {...}}
            currencies: Allow-listed currency codes
            ttl_seconds: Cache TTL for a snapshot
            timeout_seconds: HTTP timeout
            http_client: Pre-built httpx client (tests pass one with a MockTransport)
        """
        self.cache = cache
        self.provider_url = provider_url
        self.currencies = tuple(currencies)
        self.ttl_seconds = ttl_seconds
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.Client(timeout=timeout_seconds)

    @classmethod
    def from_settings(cls, settings, cache=None) -> "ExchangeRateService":
        return cls(
            cache=cache,
            provider_url=settings.exchange_rates_url,
            currencies=settings.exchange_rate_currencies,
            ttl_seconds=settings.exchange_rates_ttl_seconds,
            timeout_seconds=settings.exchange_rates_timeout_seconds,
        )

    def select_currencies(self, rates: dict[str, Any]) -> dict[str, float]:
        return select_currencies(rates, self.currencies)

    def get_snapshot(self) -> ExchangeRateSnapshot:
        """
        Return the current snapshot, from cache when possible.

        Raises:
            EnrichmentError: If the provider cannot supply usable rates
        """
        cached = self._read_cache()
        if cached is not None:
            metrics.increment_counter(metrics.exchange_rate_fetches_total, result="cache_hit")
            return cached

        try:
            snapshot = self._fetch()
        except EnrichmentError:
            metrics.increment_counter(metrics.exchange_rate_fetches_total, result="error")
            raise

        metrics.increment_counter(metrics.exchange_rate_fetches_total, result="fetched")
        self._write_cache(snapshot)
        return snapshot

    def close(self) -> None:
        if self._owns_client:
            self.http_client.close()

    def _fetch(self) -> ExchangeRateSnapshot:
        try:
            with metrics.track_duration(metrics.exchange_rate_fetch_duration_seconds):
                response = self.http_client.get(self.provider_url)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            raise EnrichmentError(
                f"Rate provider returned HTTP {e.response.status_code}",
                provider_url=self.provider_url,
            ) from e
        except httpx.HTTPError as e:
            raise EnrichmentError(
                f"Failed to fetch exchange rates: {e}", provider_url=self.provider_url
            ) from e
        except ValueError as e:
            raise EnrichmentError(
                "Rate provider returned a malformed body", provider_url=self.provider_url
            ) from e

        rates = body.get("rates") if isinstance(body, dict) else None
        if not isinstance(rates, dict):
            raise EnrichmentError(
                "Rate provider response has no 'rates' table", provider_url=self.provider_url
            )

        selected = self.select_currencies(rates)
        if not selected:
            raise EnrichmentError(
                "Rate provider returned none of the configured currencies",
                provider_url=self.provider_url,
            )

        snapshot = ExchangeRateSnapshot(
            as_of=datetime.now(timezone.utc),
            base=str(body.get("base", "USD")),
            rates=selected,
        )
        logger.info(
            "Fetched exchange rates",
            extra={"currencies": sorted(selected), "base": snapshot.base},
        )
        return snapshot

    def _read_cache(self) -> ExchangeRateSnapshot | None:
        if self.cache is None:
            return None
        data = self.cache.get(CACHE_KEY)
        if data is None:
            return None
        try:
            return ExchangeRateSnapshot.model_validate(data)
        except ModelValidationError as e:
            logger.warning("Discarding unreadable cached snapshot", extra={"error": str(e)})
            return None

    def _write_cache(self, snapshot: ExchangeRateSnapshot) -> None:
        if self.cache is None:
            return
        if not self.cache.set(CACHE_KEY, snapshot.model_dump(mode="json"), ttl=self.ttl_seconds):
            logger.warning("Could not cache exchange-rate snapshot")
