"""Configuration settings for the Currency Exchange API."""

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SUPPORTED_CURRENCIES = [
    "USD",
    "EUR",
    "GBP",
    "JPY",
    "CAD",
    "AUD",
    "CHF",
    "CNY",
    "INR",
    "NGN",
]


class RatesConfig(BaseModel):
    """Immutable configuration handed to the rate provider, cache manager and converter."""

    model_config = ConfigDict(frozen=True)

    base_currency: str = "USD"
    supported_currencies: frozenset[str] = Field(
        default_factory=lambda: frozenset(DEFAULT_SUPPORTED_CURRENCIES)
    )
    cache_ttl_ms: int = Field(default=3_600_000, gt=0)
    api_key: str | None = None
    provider_url: str = "https://openexchangerates.org/api/latest.json"
    provider_timeout_seconds: float = Field(default=10.0, gt=0)

    @property
    def cache_ttl_seconds(self) -> float:
        """Freshness window in seconds."""
        return self.cache_ttl_ms / 1000


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database Configuration (SQLite for local/tests, PostgreSQL via env var for Docker)
    database_url: str = "sqlite:///currency_exchange.db"

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # JWT Configuration
    jwt_secret_key: str = "dev-secret-key-change-in-production"
    jwt_expires_in_seconds: int | None = 86400

    # Exchange rates
    base_currency: str = "USD"
    supported_currencies: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SUPPORTED_CURRENCIES)
    )
    rates_cache_ttl_ms: int = 3_600_000
    open_exchange_rates_api_key: str | None = None
    open_exchange_rates_url: str = "https://openexchangerates.org/api/latest.json"
    provider_timeout_seconds: float = 10.0

    @field_validator("api_port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate port numbers are in valid range."""
        if not 1 <= v <= 65535:
            msg = "Port must be between 1 and 65535"
            raise ValueError(msg)
        return v

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v:
            msg = "Database URL cannot be empty"
            raise ValueError(msg)
        return v

    @field_validator("jwt_secret_key")
    @classmethod
    def validate_jwt_secret_key(cls, v: str) -> str:
        """Validate JWT secret key."""
        if not v:
            msg = "JWT secret key cannot be empty"
            raise ValueError(msg)
        if len(v) < 16:
            msg = "JWT secret key must be at least 16 characters long"
            raise ValueError(msg)
        return v

    @field_validator("base_currency")
    @classmethod
    def validate_base_currency(cls, v: str) -> str:
        """Normalize the base currency code."""
        v = v.strip().upper()
        if not v:
            msg = "Base currency cannot be empty"
            raise ValueError(msg)
        return v

    @field_validator("supported_currencies")
    @classmethod
    def validate_supported_currencies(cls, v: list[str]) -> list[str]:
        """Normalize supported currency codes and drop blanks and duplicates."""
        normalized = []
        for code in v:
            code = code.strip().upper()
            if code and code not in normalized:
                normalized.append(code)
        if not normalized:
            msg = "At least one supported currency is required"
            raise ValueError(msg)
        return normalized

    @field_validator("rates_cache_ttl_ms")
    @classmethod
    def validate_rates_cache_ttl(cls, v: int) -> int:
        """Validate the cache freshness window."""
        if v <= 0:
            msg = "Rates cache TTL must be positive"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def validate_base_is_supported(self) -> "Settings":
        """The base currency must be one of the supported currencies."""
        if self.base_currency not in self.supported_currencies:
            msg = f"Base currency {self.base_currency} must be listed in supported_currencies"
            raise ValueError(msg)
        return self

    def rates_config(self) -> RatesConfig:
        """Build the explicit rates configuration passed to the services."""
        return RatesConfig(
            base_currency=self.base_currency,
            supported_currencies=frozenset(self.supported_currencies),
            cache_ttl_ms=self.rates_cache_ttl_ms,
            api_key=self.open_exchange_rates_api_key,
            provider_url=self.open_exchange_rates_url,
            provider_timeout_seconds=self.provider_timeout_seconds,
        )


# Global settings instance
settings = Settings()
