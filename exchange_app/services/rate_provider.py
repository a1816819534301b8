"""Client for the third-party exchange rate API."""

import asyncio
import math
from datetime import UTC, datetime
from typing import Any, Protocol

import aiohttp

from exchange_app.config import RatesConfig
from exchange_app.logging_config import get_logger
from exchange_app.models.exchange import ProviderRates
from exchange_app.services.errors import ProviderError
from exchange_app.tracing_config import get_tracer

logger = get_logger(__name__)
tracer = get_tracer(__name__)


class RateProvider(Protocol):
    """Source of fresh exchange rates."""

    async def fetch_latest(self, base_currency: str) -> ProviderRates: ...


class OpenExchangeRatesProvider:
    """Fetches latest rates from an Open Exchange Rates compatible endpoint.

    The free plan only serves USD-based rates, so the requested base is not sent
    upstream; callers must use the base reported in the response.
    """

    def __init__(self, config: RatesConfig, session: aiohttp.ClientSession | None = None):
        """Initialize the provider.

        Args:
            config: Rates configuration with API key, URL and timeout
            session: Shared HTTP session; a private one is opened per call if omitted
        """
        self.config = config
        self._session = session

    async def fetch_latest(self, base_currency: str) -> ProviderRates:
        """Fetch the latest rates.

        Args:
            base_currency: Base currency the caller would like rates for

        Returns:
            Actual base, currency -> rate mapping and the upstream timestamp

        Raises:
            ProviderError: On missing API key, network failure, bad status or malformed body
        """
        if not self.config.api_key:
            raise ProviderError("Exchange rate API key is not configured")

        with tracer.start_as_current_span("fetch_latest_rates") as span:
            span.set_attribute("rates.provider.url", self.config.provider_url)
            span.set_attribute("rates.base_currency.requested", base_currency)

            logger.info("Fetching exchange rates", url=self.config.provider_url)
            payload = await self._get_json()
            result = self._parse(payload)

            span.set_attribute("rates.base_currency.actual", result.base)
            span.set_attribute("rates.count", len(result.rates))

        if result.base != base_currency:
            logger.warning(
                "Provider returned a different base currency",
                requested_base=base_currency,
                actual_base=result.base,
            )

        logger.info(
            "Fetched exchange rates",
            base_currency=result.base,
            fetched_at=result.fetched_at.isoformat(),
            currencies=len(result.rates),
        )
        return result

    async def _get_json(self) -> Any:
        timeout = aiohttp.ClientTimeout(total=self.config.provider_timeout_seconds)
        params = {"app_id": self.config.api_key}

        try:
            if self._session is not None:
                return await self._request(self._session, params, timeout)
            async with aiohttp.ClientSession() as session:
                return await self._request(session, params, timeout)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProviderError(f"Exchange rate API request failed: {e!r}") from e

    async def _request(
        self, session: aiohttp.ClientSession, params: dict[str, str], timeout: aiohttp.ClientTimeout
    ) -> Any:
        async with session.get(self.config.provider_url, params=params, timeout=timeout) as resp:
            if resp.status in (401, 403):
                raise ProviderError(
                    f"Exchange rate API rejected the credentials (HTTP {resp.status})"
                )
            if resp.status >= 400:
                raise ProviderError(f"Exchange rate API returned HTTP {resp.status}")
            try:
                return await resp.json(content_type=None)
            except ValueError as e:
                raise ProviderError("Exchange rate API returned invalid JSON") from e

    @staticmethod
    def _parse(payload: Any) -> ProviderRates:
        if not isinstance(payload, dict):
            raise ProviderError("Exchange rate API response is not a JSON object")

        base = payload.get("base")
        rates = payload.get("rates")
        timestamp = payload.get("timestamp")

        if not isinstance(base, str) or not base:
            raise ProviderError("Exchange rate API response is missing 'base'")
        if not isinstance(rates, dict):
            raise ProviderError("Exchange rate API response is missing 'rates'")
        if isinstance(timestamp, bool) or not isinstance(timestamp, int | float):
            raise ProviderError("Exchange rate API response is missing 'timestamp'")

        try:
            fetched_at = datetime.fromtimestamp(timestamp, tz=UTC)
        except (OverflowError, OSError, ValueError) as e:
            raise ProviderError(f"Exchange rate API returned an invalid timestamp: {e}") from e

        valid_rates = {}
        for currency, rate in rates.items():
            if isinstance(rate, bool) or not isinstance(rate, int | float):
                continue
            if not math.isfinite(rate) or rate <= 0:
                continue
            valid_rates[str(currency)] = float(rate)

        return ProviderRates(base=base, rates=valid_rates, fetched_at=fetched_at)
