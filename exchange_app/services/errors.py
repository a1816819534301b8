"""Exceptions raised by the exchange rate and conversion services."""


class ExchangeServiceError(Exception):
    """Base class for exchange service errors."""


class StorageError(ExchangeServiceError):
    """Raised when the backing database cannot be read or written."""


class ProviderError(ExchangeServiceError):
    """Raised when the third-party rate source fails or returns malformed data."""


class RatesUnavailableError(ExchangeServiceError):
    """Raised when neither fresh nor cached rates can be obtained."""


class UnsupportedCurrencyError(ExchangeServiceError):
    """Raised when a currency code is not in the supported whitelist."""

    def __init__(self, currency_code: str, supported: list[str]):
        self.currency_code = currency_code
        self.supported = supported
        super().__init__(
            f"Currency code '{currency_code}' is not supported. "
            f"Supported currencies: {supported}"
        )


class RateUnavailableError(ExchangeServiceError):
    """Raised when a supported currency is missing from the current rate set."""

    def __init__(self, currency_code: str):
        self.currency_code = currency_code
        super().__init__(f"Exchange rate not available for '{currency_code}'")


class UserNotFoundError(ExchangeServiceError):
    """Raised when an authenticated principal has no user row."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User '{user_id}' not found")
