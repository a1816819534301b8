"""Tests for the rate cache manager freshness and fallback policy."""

import asyncio
from datetime import timedelta

import pytest

from exchange_app.config import RatesConfig
from exchange_app.services.errors import ProviderError, RatesUnavailableError
from exchange_app.services.rate_cache import RateCacheManager


class TestFreshCache:
    """Cached rates inside the freshness window."""

    async def test_fresh_cache_skips_provider(
        self, cache_manager, rate_store, rate_provider, snapshot_factory, now
    ):
        """Rates updated 30 minutes ago are served unchanged without a fetch."""
        rate_store.seed(snapshot_factory({"USD": 1.0, "EUR": 0.91}, now - timedelta(minutes=30)))

        result = await cache_manager.get_exchange_rates()

        assert rate_provider.calls == 0
        assert result.source == "cache"
        assert result.base == "USD"
        assert result.rates == {"USD": 1.0, "EUR": 0.91}
        assert result.timestamp == now - timedelta(minutes=30)

    async def test_freshness_is_judged_by_newest_snapshot(
        self, cache_manager, rate_store, rate_provider, snapshot_factory, now
    ):
        """One recent snapshot keeps the whole set fresh."""
        rate_store.seed(snapshot_factory({"EUR": 0.9}, now - timedelta(hours=5)))
        rate_store.seed(snapshot_factory({"GBP": 0.8}, now - timedelta(minutes=5)))

        result = await cache_manager.get_exchange_rates()

        assert rate_provider.calls == 0
        assert result.rates == {"EUR": 0.9, "GBP": 0.8}
        assert result.timestamp == now - timedelta(minutes=5)

    async def test_custom_freshness_window(
        self, rate_store, rate_provider, snapshot_factory, now
    ):
        """A 10 minute window treats 30 minute old rates as stale."""
        config = RatesConfig(api_key="key", cache_ttl_ms=600_000)
        manager = RateCacheManager(rate_store, rate_provider, config, clock=lambda: now)
        rate_store.seed(snapshot_factory({"EUR": 0.9}, now - timedelta(minutes=30)))

        result = await manager.get_exchange_rates()

        assert rate_provider.calls == 1
        assert result.source == "provider"


class TestRefresh:
    """Missing or stale cache triggers a provider fetch."""

    async def test_empty_cache_fetches_and_stores(
        self, cache_manager, rate_store, rate_provider, sample_rates, now
    ):
        """All supported rates are written back with the provider timestamp."""
        result = await cache_manager.get_exchange_rates()

        assert rate_provider.calls == 1
        assert result.source == "provider"
        assert result.rates == sample_rates
        assert result.timestamp == now
        assert len(rate_store.upserts) == len(sample_rates)
        assert {u[1] for u in rate_store.upserts} == set(sample_rates)
        assert all(u[0] == "USD" and u[3] == now for u in rate_store.upserts)

    async def test_stale_cache_is_refreshed(
        self, cache_manager, rate_store, rate_provider, snapshot_factory, now
    ):
        """Two hour old rates are replaced by the fetched ones."""
        rate_store.seed(snapshot_factory({"EUR": 0.5}, now - timedelta(hours=2)))

        result = await cache_manager.get_exchange_rates()

        assert rate_provider.calls == 1
        assert result.rates["EUR"] == 0.93
        stored = await rate_store.list_rates("USD")
        assert {s.currency: s.rate for s in stored}["EUR"] == 0.93

    async def test_unsupported_currencies_are_filtered(
        self, cache_manager, rate_store, rate_provider
    ):
        """Only whitelisted currencies are returned and stored."""
        rate_provider.rates = {"USD": 1.0, "EUR": 0.93, "BTC": 0.00002, "XAU": 0.0005}

        result = await cache_manager.get_exchange_rates()

        assert result.rates == {"USD": 1.0, "EUR": 0.93}
        assert {u[1] for u in rate_store.upserts} == {"USD", "EUR"}

    async def test_empty_provider_response_is_success(
        self, cache_manager, rate_store, rate_provider, now
    ):
        """A fetch with no supported currencies still succeeds."""
        rate_provider.rates = {"BTC": 0.00002}

        result = await cache_manager.get_exchange_rates()

        assert result.source == "provider"
        assert result.rates == {}
        assert result.timestamp == now
        assert rate_store.upserts == []

    async def test_rates_in_another_base_are_rebased(
        self, cache_manager, rate_store, rate_provider
    ):
        """EUR-based provider rates are converted to USD before storing."""
        rate_provider.base = "EUR"
        rate_provider.rates = {"USD": 1.08, "GBP": 0.85}

        result = await cache_manager.get_exchange_rates()

        assert result.base == "USD"
        assert result.rates == pytest.approx({"USD": 1.0, "GBP": 0.85 / 1.08, "EUR": 1 / 1.08})
        assert {u[0] for u in rate_store.upserts} == {"USD"}

    async def test_configured_base_other_than_provider_base(
        self, rate_store, rate_provider, sample_rates, now
    ):
        """A EUR base is served from cache after one fetch of USD rates."""
        config = RatesConfig(api_key="key", base_currency="EUR")
        manager = RateCacheManager(rate_store, rate_provider, config, clock=lambda: now)

        first = await manager.get_exchange_rates()
        second = await manager.get_exchange_rates()

        assert rate_provider.calls == 1
        assert first.base == "EUR"
        assert first.rates["EUR"] == 1.0
        assert first.rates["USD"] == pytest.approx(1 / sample_rates["EUR"])
        assert first.rates["GBP"] == pytest.approx(sample_rates["GBP"] / sample_rates["EUR"])
        assert second.source == "cache"
        assert second.rates == pytest.approx(first.rates)
        assert {u[0] for u in rate_store.upserts} == {"EUR"}

    async def test_configured_base_stale_fallback(self, rate_store, rate_provider, now):
        """Stale EUR-based rates are found when the provider later fails."""
        config = RatesConfig(api_key="key", base_currency="EUR")
        stale_clock = [now]
        manager = RateCacheManager(rate_store, rate_provider, config, clock=lambda: stale_clock[0])
        await manager.get_exchange_rates()

        stale_clock[0] = now + timedelta(hours=2)
        rate_provider.fail_with()
        result = await manager.get_exchange_rates()

        assert result.source == "stale_cache"
        assert result.base == "EUR"
        assert result.rates["EUR"] == 1.0

    async def test_configured_base_missing_from_provider_rates(self, rate_store, rate_provider):
        """Rates that cannot be rebased count as a provider failure."""
        config = RatesConfig(api_key="key", base_currency="EUR")
        manager = RateCacheManager(rate_store, rate_provider, config)
        rate_provider.rates = {"USD": 1.0, "GBP": 0.79}

        with pytest.raises(RatesUnavailableError) as exc_info:
            await manager.get_exchange_rates()

        assert isinstance(exc_info.value.__cause__, ProviderError)
        assert rate_store.upserts == []

    async def test_upserts_run_concurrently(self, rate_provider, rates_config, now):
        """Every upsert of a batch is in flight before any of them completes."""
        in_flight = 0
        peak = 0
        release = asyncio.Event()

        class SlowStore:
            async def list_rates(self, base_currency):
                return []

            async def upsert(self, base_currency, currency, rate, updated_at):
                nonlocal in_flight, peak
                in_flight += 1
                peak = max(peak, in_flight)
                if peak == 3:
                    release.set()
                await release.wait()
                in_flight -= 1

        rate_provider.rates = {"USD": 1.0, "EUR": 0.93, "GBP": 0.79}
        manager = RateCacheManager(SlowStore(), rate_provider, rates_config, clock=lambda: now)

        await asyncio.wait_for(manager.get_exchange_rates(), timeout=5)

        assert peak == 3

    async def test_write_back_failure_serves_fetched_rates(
        self, cache_manager, rate_store, sample_rates, now
    ):
        """A storage failure while saving fetched rates still answers with them."""
        rate_store.fail_writes = True

        result = await cache_manager.get_exchange_rates()

        assert result.source == "provider"
        assert result.rates == sample_rates
        assert result.timestamp == now

    async def test_write_back_failure_with_stale_cache(
        self, cache_manager, rate_store, snapshot_factory, now
    ):
        """Fresh rates win over stale ones even when they cannot be saved."""
        rate_store.seed(snapshot_factory({"USD": 1.0, "EUR": 0.5}, now - timedelta(hours=2)))
        rate_store.fail_writes = True

        result = await cache_manager.get_exchange_rates()

        assert result.source == "provider"
        assert result.rates["EUR"] == 0.93
        stored = await rate_store.list_rates("USD")
        assert {s.currency: s.rate for s in stored}["EUR"] == 0.5

    async def test_unexpected_write_back_errors_propagate(self, rate_provider, rates_config, now):
        """Only StorageError is tolerated during write-back."""

        class BrokenStore:
            async def list_rates(self, base_currency):
                return []

            async def upsert(self, base_currency, currency, rate, updated_at):
                raise RuntimeError("bug")

        manager = RateCacheManager(BrokenStore(), rate_provider, rates_config, clock=lambda: now)

        with pytest.raises(RuntimeError):
            await manager.get_exchange_rates()


class TestProviderFailure:
    """Fallback policy when the provider fails."""

    async def test_stale_cache_served_when_provider_fails(
        self, cache_manager, rate_store, rate_provider, snapshot_factory, now
    ):
        """Two hour old rates are returned as a degraded answer."""
        updated_at = now - timedelta(hours=2)
        rate_store.seed(snapshot_factory({"USD": 1.0, "EUR": 0.9}, updated_at))
        rate_provider.fail_with("quota exceeded")

        result = await cache_manager.get_exchange_rates()

        assert rate_provider.calls == 1
        assert result.source == "stale_cache"
        assert result.is_degraded
        assert result.rates == {"USD": 1.0, "EUR": 0.9}
        assert result.timestamp == updated_at
        assert rate_store.upserts == []

    async def test_empty_cache_and_provider_failure_raises(
        self, cache_manager, rate_provider
    ):
        """With nothing cached the provider failure is surfaced."""
        rate_provider.fail_with("network unreachable")

        with pytest.raises(RatesUnavailableError) as exc_info:
            await cache_manager.get_exchange_rates()

        assert isinstance(exc_info.value.__cause__, ProviderError)

    async def test_store_read_failure_skips_provider(
        self, cache_manager, rate_store, rate_provider
    ):
        """An unreadable cache fails fast without calling the provider."""
        rate_store.fail_reads = True

        with pytest.raises(RatesUnavailableError):
            await cache_manager.get_exchange_rates()

        assert rate_provider.calls == 0

    async def test_unexpected_provider_errors_propagate(
        self, cache_manager, rate_store, rate_provider, snapshot_factory, now
    ):
        """Only ProviderError is absorbed by the fallback."""
        rate_store.seed(snapshot_factory({"EUR": 0.9}, now - timedelta(hours=2)))
        rate_provider.error = RuntimeError("bug")

        with pytest.raises(RuntimeError):
            await cache_manager.get_exchange_rates()
