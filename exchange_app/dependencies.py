"""FastAPI dependencies wiring the exchange services together."""

from fastapi import Depends, Request
from sqlalchemy.orm import Session, sessionmaker

from exchange_app.config import RatesConfig, settings
from exchange_app.database import SessionLocal
from exchange_app.services.conversion_service import ConversionService
from exchange_app.services.rate_cache import RateCacheManager
from exchange_app.services.rate_provider import OpenExchangeRatesProvider
from exchange_app.services.rate_store import SqlRateStore
from exchange_app.services.transaction_recorder import TransactionRecorder


def get_session_factory() -> sessionmaker[Session]:
    """Session factory used by the services."""
    return SessionLocal


def get_rates_config() -> RatesConfig:
    """Rates configuration derived from the application settings."""
    return settings.rates_config()


def get_rate_provider(
    request: Request, config: RatesConfig = Depends(get_rates_config)
) -> OpenExchangeRatesProvider:
    """Provider sharing the HTTP session opened in the application lifespan."""
    http_session = getattr(request.app.state, "http_session", None)
    return OpenExchangeRatesProvider(config, session=http_session)


def get_rate_cache_manager(
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
    provider: OpenExchangeRatesProvider = Depends(get_rate_provider),
    config: RatesConfig = Depends(get_rates_config),
) -> RateCacheManager:
    """Rate cache manager over the SQL rate store."""
    return RateCacheManager(SqlRateStore(session_factory), provider, config)


def get_transaction_recorder(
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
) -> TransactionRecorder:
    """Transaction recorder over the SQL database."""
    return TransactionRecorder(session_factory)


def get_conversion_service(
    rate_cache: RateCacheManager = Depends(get_rate_cache_manager),
    recorder: TransactionRecorder = Depends(get_transaction_recorder),
    config: RatesConfig = Depends(get_rates_config),
) -> ConversionService:
    """Conversion service for one request."""
    return ConversionService(rate_cache, recorder, config)
