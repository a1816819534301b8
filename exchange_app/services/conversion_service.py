"""Currency conversion via the base currency, recorded as transactions."""

from exchange_app.config import RatesConfig
from exchange_app.logging_config import get_logger
from exchange_app.middleware.metrics import record_currency_conversion
from exchange_app.models.exchange import ConversionResult
from exchange_app.services.errors import (
    ExchangeServiceError,
    RateUnavailableError,
    UnsupportedCurrencyError,
)
from exchange_app.services.rate_cache import RateCacheManager
from exchange_app.services.transaction_recorder import TransactionRecorder
from exchange_app.tracing_config import add_span_event, get_tracer, set_span_error

logger = get_logger(__name__)
tracer = get_tracer(__name__)


def cross_convert(amount: float, from_rate: float, to_rate: float) -> tuple[float, float]:
    """Convert ``amount`` between two currencies quoted against the same base.

    Args:
        amount: Amount in the source currency
        from_rate: Source currency units per base unit
        to_rate: Target currency units per base unit

    Returns:
        Converted amount and the effective target-per-source rate
    """
    value_in_base = amount / from_rate
    converted_amount = value_in_base * to_rate
    exchange_rate = to_rate / from_rate
    return converted_amount, exchange_rate


class ConversionService:
    """Converts amounts between supported currencies and records each conversion."""

    def __init__(
        self,
        rate_cache: RateCacheManager,
        recorder: TransactionRecorder,
        config: RatesConfig,
    ):
        """Initialize the conversion service.

        Args:
            rate_cache: Source of current rates
            recorder: Transaction persistence
            config: Supported currency whitelist
        """
        self.rate_cache = rate_cache
        self.recorder = recorder
        self.config = config

    def get_supported_currencies(self) -> list[str]:
        """Get sorted list of supported currency codes."""
        return sorted(self.config.supported_currencies)

    def validate_currency(self, currency_code: str) -> str:
        """Check ``currency_code`` against the whitelist.

        Raises:
            UnsupportedCurrencyError: If the code is not supported
        """
        if currency_code not in self.config.supported_currencies:
            raise UnsupportedCurrencyError(currency_code, self.get_supported_currencies())
        return currency_code

    def _record_failure(self, from_currency: str, to_currency: str) -> None:
        # Caller-supplied codes outside the whitelist share one label value
        supported = self.config.supported_currencies
        record_currency_conversion(
            from_currency if from_currency in supported else "UNSUPPORTED",
            to_currency if to_currency in supported else "UNSUPPORTED",
            success=False,
        )

    async def convert(
        self, user_id: str, from_currency: str, to_currency: str, amount: float
    ) -> ConversionResult:
        """Convert ``amount`` and record the transaction for ``user_id``.

        Raises:
            UnsupportedCurrencyError: If either currency is not supported
            RatesUnavailableError: If no rates can be obtained
            RateUnavailableError: If either currency is missing from the current rates
            StorageError: If the transaction cannot be recorded
        """
        conversion_logger = logger.bind(
            user_id=user_id,
            from_currency=from_currency,
            to_currency=to_currency,
            amount=amount,
        )

        with tracer.start_as_current_span("convert_currency") as span:
            span.set_attribute("user.id", user_id)
            span.set_attribute("conversion.from_currency", from_currency)
            span.set_attribute("conversion.to_currency", to_currency)
            span.set_attribute("conversion.amount", amount)

            conversion_logger.info(
                f"Converting currency: {amount} {from_currency} -> {to_currency}"
            )

            try:
                self.validate_currency(from_currency)
                self.validate_currency(to_currency)

                rates = await self.rate_cache.get_exchange_rates()

                from_rate = rates.rates.get(from_currency)
                if from_rate is None:
                    raise RateUnavailableError(from_currency)
                to_rate = rates.rates.get(to_currency)
                if to_rate is None:
                    raise RateUnavailableError(to_currency)

                converted_amount, exchange_rate = cross_convert(amount, from_rate, to_rate)

                transaction = await self.recorder.record(
                    user_id=user_id,
                    from_currency=from_currency,
                    to_currency=to_currency,
                    amount=amount,
                    converted_amount=converted_amount,
                    rate=exchange_rate,
                )
            except UnsupportedCurrencyError as e:
                span.set_attribute("conversion.status", "error")
                set_span_error(str(e))
                conversion_logger.warning(f"Currency conversion failed - unsupported currency: {e}")
                self._record_failure(from_currency, to_currency)
                raise
            except ExchangeServiceError as e:
                span.set_attribute("conversion.status", "error")
                set_span_error(str(e))
                conversion_logger.error(f"Currency conversion failed: {e}")
                self._record_failure(from_currency, to_currency)
                raise

            span.set_attribute("conversion.status", "success")
            span.set_attribute("conversion.transaction_id", transaction.id)
            add_span_event(
                "conversion_completed",
                {"converted_amount": converted_amount, "exchange_rate": exchange_rate},
            )

        conversion_logger.info(
            f"Currency conversion completed: {amount} {from_currency} = "
            f"{converted_amount} {to_currency} (rate: {exchange_rate})",
            transaction_id=transaction.id,
            rates_source=rates.source,
        )
        record_currency_conversion(from_currency, to_currency, success=True)

        return ConversionResult(
            id=transaction.id,
            from_currency=from_currency,
            to_currency=to_currency,
            amount=amount,
            converted_amount=converted_amount,
            exchange_rate=exchange_rate,
            timestamp=transaction.created_at,
        )
