"""
test_address.py — Center address: resolver fallback, Nominatim adapter,
geocoding cache and the outbound rate limiter in front of it.

Nominatim is never contacted: the adapter is built on httpx.MockTransport.
"""

import asyncio
import time
from unittest.mock import MagicMock

import httpx
import pytest

from heatmap_sync.adapters.nominatim_adapter import NominatimAdapter
from heatmap_sync.core.errors import ReverseGeocodingError
from heatmap_sync.core.throttle import OutboundRateLimiter
from heatmap_sync.models.heatmap import ReverseGeocodingResult
from heatmap_sync.services.address import AddressResolver, format_coordinates
from heatmap_sync.services.geocoding_cache import GeocodingCache, key_for

_NOMINATIM_PAYLOAD = {
    "display_name": "Avenida Juárez, Centro, Cuauhtémoc, Ciudad de México, 06000, México",
    "address": {
        "road": "Avenida Juárez",
        "suburb": "Centro",
        "city": "Ciudad de México",
        "state": "Ciudad de México",
        "postcode": "06000",
        "country": "México",
    },
}


def _nominatim(handler, **kwargs) -> NominatimAdapter:
    return NominatimAdapter(
        base_url="http://nominatim.test",
        user_agent="heatmap-sync-tests",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


# ── AddressResolver ──────────────────────────────────────────────────────────

class TestAddressResolver:

    async def test_successful_lookup(self, geocoder):
        resolver = AddressResolver(geocoder.simple_address)
        address = await resolver.resolve(19.43, -99.13)

        assert address == geocoder.address
        assert resolver.address == geocoder.address
        assert resolver.loading is False

    async def test_failure_falls_back_to_coordinates(self, geocoder):
        geocoder.fail = True
        resolver = AddressResolver(geocoder.simple_address)

        address = await resolver.resolve(19.43, -99.13)

        assert address == "19.4300, -99.1300"
        assert resolver.address == "19.4300, -99.1300"
        assert resolver.loading is False

    async def test_empty_address_falls_back_to_coordinates(self):
        async def blank(lat, lng):
            return ""

        resolver = AddressResolver(blank)
        assert await resolver.resolve(1.5, 2.25) == "1.5000, 2.2500"

    async def test_loading_flag_during_lookup(self):
        release = asyncio.Event()

        async def slow(lat, lng):
            await release.wait()
            return "Somewhere"

        resolver = AddressResolver(slow)
        task = asyncio.create_task(resolver.resolve(0.0, 0.0))
        await asyncio.sleep(0)
        assert resolver.loading is True

        release.set()
        await task
        assert resolver.loading is False

    async def test_newest_lookup_wins(self):
        gates = {"old": asyncio.Event(), "new": asyncio.Event()}

        async def lookup(lat, lng):
            name = "old" if lat == 1.0 else "new"
            await gates[name].wait()
            return name

        resolver = AddressResolver(lookup)
        old = asyncio.create_task(resolver.resolve(1.0, 1.0))
        await asyncio.sleep(0)
        new = asyncio.create_task(resolver.resolve(2.0, 2.0))
        await asyncio.sleep(0)

        gates["new"].set()
        await new
        gates["old"].set()
        await old

        assert resolver.address == "new"
        assert resolver.loading is False

    async def test_change_listener_notified(self, geocoder):
        on_change = MagicMock()
        resolver = AddressResolver(geocoder.simple_address, on_change=on_change)
        await resolver.resolve(19.43, -99.13)
        # loading on, then result
        assert on_change.call_count == 2

    def test_format_coordinates(self):
        assert format_coordinates(19.4326, -99.1332) == "19.4326, -99.1332"
        assert format_coordinates(19.43, -99.13) == "19.4300, -99.1300"


# ── GeocodingCache ───────────────────────────────────────────────────────────

class TestGeocodingCache:

    def test_keys_round_to_four_decimals(self):
        assert key_for(19.432608, -99.133209) == "19.4326_-99.1332"
        assert key_for(19.432608, -99.133209) == key_for(19.432649, -99.133151)

    def test_hit_and_miss_counters(self):
        cache = GeocodingCache()
        result = ReverseGeocodingResult(display_name="Zócalo")

        assert cache.get(19.4326, -99.1332) is None
        cache.set(19.4326, -99.1332, result)
        assert cache.get(19.43261, -99.13319) == result

        metrics = cache.metrics()
        assert metrics["hits"] == 1
        assert metrics["misses"] == 1
        assert metrics["total_entries"] == 1
        assert metrics["hit_rate"] == pytest.approx(50.0)

    def test_entries_expire(self):
        now = [1000.0]
        cache = GeocodingCache(ttl_seconds=60, timer=lambda: now[0])
        cache.set(1.0, 2.0, ReverseGeocodingResult(display_name="x"))

        now[0] += 59
        assert cache.get(1.0, 2.0) is not None
        now[0] += 2
        assert cache.get(1.0, 2.0) is None

    def test_clear(self):
        cache = GeocodingCache()
        cache.set(1.0, 2.0, ReverseGeocodingResult(display_name="x"))
        cache.clear()
        assert len(cache) == 0

    def test_empty_cache_hit_rate_is_zero(self):
        assert GeocodingCache().metrics()["hit_rate"] == 0.0


# ── NominatimAdapter ─────────────────────────────────────────────────────────

class TestNominatimAdapter:

    async def test_request_shape(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=_NOMINATIM_PAYLOAD)

        await _nominatim(handler).reverse(19.4326, -99.1332)

        request = seen[0]
        assert request.url.path == "/reverse"
        assert request.url.params["format"] == "json"
        assert request.url.params["lat"] == "19.4326"
        assert request.url.params["lon"] == "-99.1332"
        assert request.url.params["zoom"] == "18"
        assert request.url.params["addressdetails"] == "1"
        assert request.headers["User-Agent"] == "heatmap-sync-tests"

    async def test_reverse_parses_address_details(self):
        adapter = _nominatim(lambda request: httpx.Response(200, json=_NOMINATIM_PAYLOAD))
        result = await adapter.reverse(19.4326, -99.1332)

        assert result.road == "Avenida Juárez"
        assert result.neighbourhood == "Centro"  # from "suburb"
        assert result.city == "Ciudad de México"
        assert result.postcode == "06000"
        assert result.country == "México"

    async def test_simple_address_joins_parts(self):
        adapter = _nominatim(lambda request: httpx.Response(200, json=_NOMINATIM_PAYLOAD))
        address = await adapter.simple_address(19.4326, -99.1332)
        assert address == "Avenida Juárez, Centro, Ciudad de México, Ciudad de México"

    async def test_simple_address_falls_back_to_display_name(self):
        payload = {"display_name": "Golfo de México", "address": {}}
        adapter = _nominatim(lambda request: httpx.Response(200, json=payload))
        assert await adapter.simple_address(23.0, -93.0) == "Golfo de México"

    async def test_town_used_when_city_missing(self):
        payload = {"display_name": "Tepoztlán", "address": {"town": "Tepoztlán"}}
        adapter = _nominatim(lambda request: httpx.Response(200, json=payload))
        assert (await adapter.reverse(18.98, -99.1)).city == "Tepoztlán"

    async def test_missing_display_name_raises(self):
        adapter = _nominatim(lambda request: httpx.Response(200, json={"error": "Unable to geocode"}))
        with pytest.raises(ReverseGeocodingError, match="No address information"):
            await adapter.reverse(0.0, 0.0)

    async def test_http_error_raises(self):
        adapter = _nominatim(lambda request: httpx.Response(429))
        with pytest.raises(ReverseGeocodingError, match="429"):
            await adapter.reverse(19.4, -99.1)

    async def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ReverseGeocodingError, match="Request failed"):
            await _nominatim(handler).reverse(19.4, -99.1)

    async def test_non_finite_coordinates_rejected(self):
        adapter = _nominatim(lambda request: httpx.Response(200, json=_NOMINATIM_PAYLOAD))
        with pytest.raises(ReverseGeocodingError, match="Invalid coordinates"):
            await adapter.reverse(float("nan"), 0.0)

    async def test_cache_prevents_second_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=_NOMINATIM_PAYLOAD)

        cache = GeocodingCache()
        adapter = _nominatim(handler, cache=cache)

        first = await adapter.reverse(19.43261, -99.13321)
        second = await adapter.reverse(19.43259, -99.13319)

        assert first == second
        assert len(calls) == 1
        assert cache.hits == 1

    async def test_failed_lookup_is_not_cached(self):
        cache = GeocodingCache()
        adapter = _nominatim(lambda request: httpx.Response(500), cache=cache)
        with pytest.raises(ReverseGeocodingError):
            await adapter.reverse(19.4, -99.1)
        assert len(cache) == 0

    async def test_requests_go_through_rate_limiter(self):
        limiter = OutboundRateLimiter("100/second", key="nominatim-test")
        adapter = _nominatim(
            lambda request: httpx.Response(200, json=_NOMINATIM_PAYLOAD), rate_limiter=limiter
        )
        await adapter.reverse(19.4, -99.1)
        await adapter.reverse(19.5, -99.2)
        assert limiter.metrics()["total_processed"] == 2


# ── OutboundRateLimiter ──────────────────────────────────────────────────────

class TestOutboundRateLimiter:

    async def test_run_returns_result_and_counts(self):
        limiter = OutboundRateLimiter("100/second")

        async def work():
            return 42

        assert await limiter.run(work) == 42
        assert limiter.metrics() == {"queue_size": 0, "total_processed": 1, "total_errors": 0}

    async def test_errors_counted_and_propagated(self):
        limiter = OutboundRateLimiter("100/second")

        async def broken():
            raise ReverseGeocodingError("nope")

        with pytest.raises(ReverseGeocodingError):
            await limiter.run(broken)
        assert limiter.metrics()["total_errors"] == 1

    async def test_second_call_waits_for_window(self):
        limiter = OutboundRateLimiter("1/second", key="spacing-test")

        async def work():
            return time.monotonic()

        first = await limiter.run(work)
        second = await limiter.run(work)

        assert second - first >= 0.5
