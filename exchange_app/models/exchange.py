"""Pydantic models for exchange rates, conversions and transactions."""

from datetime import UTC, datetime
from typing import Literal, NamedTuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

RateSource = Literal["cache", "provider", "stale_cache"]


class ExchangeRateSnapshot(NamedTuple):
    """Stored rate of ``currency`` in units per one ``base_currency``."""

    base_currency: str
    currency: str
    rate: float
    last_updated: datetime


class ProviderRates(NamedTuple):
    """Rates as returned by the upstream provider."""

    base: str
    rates: dict[str, float]
    fetched_at: datetime


class CamelModel(BaseModel):
    """Base model serialized with camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ExchangeRates(BaseModel):
    """Current rate set answered by the rate cache manager."""

    base: str = Field(..., description="Base currency all rates are quoted against")
    rates: dict[str, float] = Field(..., description="Units of currency per one base unit")
    timestamp: datetime = Field(..., description="When the rates were fetched upstream")
    source: RateSource = Field(..., description="Where the rates came from")

    @property
    def is_degraded(self) -> bool:
        """True when stale cached rates were served after a failed fetch."""
        return self.source == "stale_cache"


class ExchangeRatesResponse(BaseModel):
    """Response model for current exchange rates."""

    base: str = Field(..., description="Base currency for all rates")
    rates: dict[str, float] = Field(..., description="Exchange rate per currency code")
    timestamp: datetime = Field(..., description="When the rates were last updated")


class ConvertCurrencyRequest(CamelModel):
    """Request model for currency conversion."""

    from_currency: str = Field(..., min_length=1, description="Source currency code")
    to_currency: str = Field(..., min_length=1, description="Target currency code")
    amount: float = Field(..., ge=0, description="Amount to convert")

    @field_validator("from_currency", "to_currency")
    @classmethod
    def validate_currency_code(cls, v: str) -> str:
        """Currency codes must be non-blank and are upper-cased."""
        v = v.strip().upper()
        if not v:
            msg = "Currency code cannot be blank"
            raise ValueError(msg)
        return v


class ConversionResult(CamelModel):
    """Result of a recorded currency conversion."""

    id: str = Field(..., description="Transaction ID")
    from_currency: str = Field(..., description="Source currency code")
    to_currency: str = Field(..., description="Target currency code")
    amount: float = Field(..., description="Original amount")
    converted_amount: float = Field(..., description="Converted amount")
    exchange_rate: float = Field(..., description="Target units per source unit")
    timestamp: datetime = Field(..., description="When the conversion was recorded")


class TransactionRecord(CamelModel):
    """A stored conversion owned by one user."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: str
    user_id: str
    from_currency: str
    to_currency: str
    amount: float
    converted_amount: float
    rate: float
    created_at: datetime


class ErrorResponse(BaseModel):
    """Error response model."""

    error: dict[str, str | dict[str, str]] = Field(..., description="Error details")

    @classmethod
    def create(
        cls,
        code: str,
        message: str,
        details: dict[str, str] | None = None,
    ) -> "ErrorResponse":
        """Create an error response."""
        error_data: dict[str, str | dict[str, str]] = {
            "code": code,
            "message": message,
            "timestamp": datetime.now(UTC).isoformat(),
        }
        if details:
            error_data["details"] = details
        return cls(error=error_data)
