"""
Unit tests for the exchange-rate snapshot service.

The provider is replaced with an httpx.MockTransport and the cache with the
in-memory double from conftest.
"""

from datetime import date
from decimal import Decimal

import httpx
import pytest

from catalog_ingest.core.errors import EnrichmentError
from catalog_ingest.core.models import ParsedRecord
from catalog_ingest.enrichment.exchange_rates import (
    CACHE_KEY,
    ExchangeRateService,
    enrich,
    select_currencies,
)

PROVIDER_URL = "https://rates.test/latest/USD"

PROVIDER_BODY = {
    "base": "USD",
    "date": "2025-11-17",
    "rates": {"USD": 1, "EUR": 0.92, "GBP": 0.79, "JPY": 151.3, "CAD": 1.4, "AUD": 1.53, "BRL": 5.01, "MXN": 18.2},
}


def make_service(handler, cache=None, **kwargs) -> tuple[ExchangeRateService, list[httpx.Request]]:
    requests: list[httpx.Request] = []

    def recording_handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    client = httpx.Client(transport=httpx.MockTransport(recording_handler))
    service = ExchangeRateService(cache=cache, provider_url=PROVIDER_URL, http_client=client, **kwargs)
    return service, requests


class TestSelectCurrencies:
    """Tests for select_currencies"""

    def test_keeps_allow_listed_codes(self):
        selected = select_currencies(PROVIDER_BODY["rates"], ["EUR", "BRL"])
        assert selected == {"EUR": 0.92, "BRL": 5.01}

    def test_drops_missing_and_invalid_rates(self):
        rates = {"EUR": "0.92", "GBP": 0, "JPY": -1, "CAD": True, "AUD": 1.5}
        assert select_currencies(rates, ["EUR", "GBP", "JPY", "CAD", "AUD", "BRL"]) == {"AUD": 1.5}

    def test_integer_rates_become_floats(self):
        selected = select_currencies({"JPY": 150}, ["JPY"])
        assert selected == {"JPY": 150.0}
        assert isinstance(selected["JPY"], float)


class TestExchangeRateService:
    """Tests for ExchangeRateService.get_snapshot"""

    def test_fetches_and_narrows_rates(self):
        service, requests = make_service(lambda request: httpx.Response(200, json=PROVIDER_BODY))

        snapshot = service.get_snapshot()

        assert len(requests) == 1
        assert str(requests[0].url) == PROVIDER_URL
        assert snapshot.base == "USD"
        assert snapshot.rates == {
            "EUR": 0.92, "GBP": 0.79, "JPY": 151.3, "CAD": 1.4, "AUD": 1.53, "BRL": 5.01
        }
        assert snapshot.as_of.tzinfo is not None

    def test_snapshot_cached_with_ttl(self, memory_cache):
        service, requests = make_service(
            lambda request: httpx.Response(200, json=PROVIDER_BODY),
            cache=memory_cache,
            ttl_seconds=120,
        )

        first = service.get_snapshot()
        second = service.get_snapshot()

        assert len(requests) == 1
        assert second == first
        assert memory_cache.ttls[CACHE_KEY] == 120

    def test_cache_read_failure_falls_back_to_provider(self, memory_cache):
        memory_cache.fail_reads = True
        service, requests = make_service(
            lambda request: httpx.Response(200, json=PROVIDER_BODY), cache=memory_cache
        )

        service.get_snapshot()
        service.get_snapshot()

        assert len(requests) == 2

    def test_cache_write_failure_still_returns_snapshot(self, memory_cache):
        memory_cache.fail_writes = True
        service, _ = make_service(
            lambda request: httpx.Response(200, json=PROVIDER_BODY), cache=memory_cache
        )

        assert service.get_snapshot().rates["EUR"] == 0.92
        assert CACHE_KEY not in memory_cache.data

    def test_unreadable_cache_entry_is_ignored(self, memory_cache):
        memory_cache.set(CACHE_KEY, {"unexpected": True})
        service, requests = make_service(
            lambda request: httpx.Response(200, json=PROVIDER_BODY), cache=memory_cache
        )

        snapshot = service.get_snapshot()

        assert len(requests) == 1
        assert snapshot.rates["GBP"] == 0.79

    def test_http_error_status(self):
        service, _ = make_service(lambda request: httpx.Response(503, text="unavailable"))

        with pytest.raises(EnrichmentError) as exc_info:
            service.get_snapshot()

        assert exc_info.value.message == "Rate provider returned HTTP 503"
        assert exc_info.value.provider_url == PROVIDER_URL

    def test_transport_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        service, _ = make_service(handler)

        with pytest.raises(EnrichmentError) as exc_info:
            service.get_snapshot()

        assert "connection refused" in exc_info.value.message

    def test_malformed_body(self):
        service, _ = make_service(lambda request: httpx.Response(200, text="<html>oops</html>"))

        with pytest.raises(EnrichmentError) as exc_info:
            service.get_snapshot()

        assert exc_info.value.message == "Rate provider returned a malformed body"

    def test_missing_rates_table(self):
        service, _ = make_service(lambda request: httpx.Response(200, json={"base": "USD"}))

        with pytest.raises(EnrichmentError):
            service.get_snapshot()

    def test_no_configured_currency_available(self):
        service, _ = make_service(
            lambda request: httpx.Response(200, json={"rates": {"MXN": 18.2}})
        )

        with pytest.raises(EnrichmentError) as exc_info:
            service.get_snapshot()

        assert exc_info.value.to_dict()["kind"] == "enrichment"

    def test_failure_is_not_cached(self, memory_cache):
        service, _ = make_service(lambda request: httpx.Response(500), cache=memory_cache)

        with pytest.raises(EnrichmentError):
            service.get_snapshot()

        assert memory_cache.data == {}

    def test_custom_currency_list(self):
        service, _ = make_service(
            lambda request: httpx.Response(200, json=PROVIDER_BODY), currencies=["MXN"]
        )

        assert service.get_snapshot().rates == {"MXN": 18.2}


class TestEnrich:
    """Tests for binding records to a snapshot"""

    def test_every_record_shares_the_snapshot(self, snapshot):
        records = [
            ParsedRecord(name=name, price=Decimal("1.00"), expiration_date=date(2030, 1, 1), line_number=i)
            for i, name in enumerate(["Milk", "Bread"], start=1)
        ]

        enriched = list(enrich(records, snapshot))

        assert [e.record.name for e in enriched] == ["Milk", "Bread"]
        assert all(e.snapshot is snapshot for e in enriched)
        assert enriched[0].to_row()["exchange_rates"] == {
            "date": "2025-11-17T10:00:00+00:00",
            "base": "USD",
            "rates": {"EUR": 0.92, "GBP": 0.79, "BRL": 5.01},
        }

    def test_enrich_is_lazy(self, snapshot):
        def records():
            raise AssertionError("consumed too early")
            yield  # pragma: no cover

        enrich(records(), snapshot)
