"""Exchange rate cache with provider refill and stale fallback."""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from exchange_app.config import RatesConfig
from exchange_app.logging_config import get_logger
from exchange_app.middleware.metrics import record_rates_lookup
from exchange_app.models.exchange import ExchangeRates, ExchangeRateSnapshot
from exchange_app.services.errors import ProviderError, RatesUnavailableError, StorageError
from exchange_app.services.rate_provider import RateProvider
from exchange_app.services.rate_store import RateStore
from exchange_app.tracing_config import add_span_event, get_tracer, set_span_error

logger = get_logger(__name__)
tracer = get_tracer(__name__)


def utc_now() -> datetime:
    """Return the current time in UTC."""
    return datetime.now(UTC)


class RateCacheManager:
    """Answers "what are the current rates?" for the configured base currency.

    Cached rates younger than the freshness window are served as-is. Older or
    missing rates trigger one provider fetch whose results are written back.
    When that fetch fails, previously stored rates are served even if stale;
    rates are never invented.
    """

    def __init__(
        self,
        store: RateStore,
        provider: RateProvider,
        config: RatesConfig,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize the cache manager.

        Args:
            store: Persistent rate snapshots
            provider: Upstream rate source
            config: Base currency, whitelist and freshness window
            clock: Source of the current time
        """
        self.store = store
        self.provider = provider
        self.config = config
        self.clock = clock

    @property
    def freshness_window(self) -> timedelta:
        """How long cached rates are served without asking the provider."""
        return timedelta(milliseconds=self.config.cache_ttl_ms)

    async def get_exchange_rates(self) -> ExchangeRates:
        """Return the current rate set.

        Raises:
            RatesUnavailableError: If the cache cannot be read, or it is empty and the
                provider fails
        """
        base_currency = self.config.base_currency

        with tracer.start_as_current_span("get_exchange_rates") as span:
            span.set_attribute("rates.base_currency", base_currency)

            try:
                cached = await self.store.list_rates(base_currency)
            except StorageError as e:
                set_span_error(str(e))
                record_rates_lookup(source="unavailable")
                raise RatesUnavailableError("Exchange rate cache is unavailable") from e

            span.set_attribute("rates.cached.count", len(cached))

            if cached and self._is_fresh(cached[0]):
                logger.info("Using cached exchange rates", base_currency=base_currency)
                add_span_event("rates_cache_hit")
                record_rates_lookup(source="cache")
                return self._from_snapshots(cached, source="cache")

            try:
                fresh = await self._fetch_and_store()
            except ProviderError as e:
                logger.error("Exchange rate fetch failed", error=str(e))
                if cached:
                    logger.warning(
                        "Serving stale cached exchange rates after failed fetch",
                        base_currency=base_currency,
                        last_updated=cached[0].last_updated.isoformat(),
                    )
                    add_span_event("rates_stale_fallback")
                    record_rates_lookup(source="stale_cache")
                    return self._from_snapshots(cached, source="stale_cache")

                set_span_error(str(e))
                record_rates_lookup(source="unavailable")
                raise RatesUnavailableError("No exchange rates are available") from e

            add_span_event("rates_refreshed", {"rates.count": len(fresh.rates)})
            record_rates_lookup(source="provider")
            return fresh

    def _is_fresh(self, snapshot: ExchangeRateSnapshot) -> bool:
        return self.clock() - snapshot.last_updated < self.freshness_window

    async def _fetch_and_store(self) -> ExchangeRates:
        base_currency = self.config.base_currency
        fetched = await self.provider.fetch_latest(base_currency)
        rates = self._rebase(fetched.base, fetched.rates)

        supported_rates = {
            currency: rate
            for currency, rate in rates.items()
            if currency in self.config.supported_currencies
        }

        results = await asyncio.gather(
            *(
                self.store.upsert(base_currency, currency, rate, fetched.fetched_at)
                for currency, rate in supported_rates.items()
            ),
            return_exceptions=True,
        )
        storage_errors = []
        for result in results:
            if isinstance(result, StorageError):
                storage_errors.append(result)
            elif isinstance(result, BaseException):
                raise result

        # Fetched rates are served even when the write-back fails
        if storage_errors:
            add_span_event("rates_write_back_failed", {"rates.failed.count": len(storage_errors)})
            logger.warning(
                "Failed to store fetched exchange rates",
                base_currency=base_currency,
                failed=len(storage_errors),
                error=str(storage_errors[0]),
            )
        else:
            logger.info(
                "Stored fetched exchange rates",
                base_currency=base_currency,
                stored=len(supported_rates),
            )

        return ExchangeRates(
            base=base_currency,
            rates=supported_rates,
            timestamp=fetched.fetched_at,
            source="provider",
        )

    def _rebase(self, provider_base: str, rates: dict[str, float]) -> dict[str, float]:
        """Express provider rates per one unit of the configured base currency.

        Raises:
            ProviderError: If the configured base is missing from the provider rates
        """
        base_currency = self.config.base_currency
        if provider_base == base_currency:
            return dict(rates)

        base_rate = rates.get(base_currency)
        if base_rate is None:
            raise ProviderError(
                f"Provider rates in {provider_base} do not include base currency {base_currency}"
            )

        rebased = {currency: rate / base_rate for currency, rate in rates.items()}
        rebased.setdefault(provider_base, 1 / base_rate)
        rebased[base_currency] = 1.0
        logger.info(
            "Rebased provider rates",
            provider_base=provider_base,
            base_currency=base_currency,
        )
        return rebased

    def _from_snapshots(self, snapshots: list[ExchangeRateSnapshot], source: str) -> ExchangeRates:
        return ExchangeRates(
            base=self.config.base_currency,
            rates={snapshot.currency: snapshot.rate for snapshot in snapshots},
            timestamp=snapshots[0].last_updated,
            source=source,
        )
