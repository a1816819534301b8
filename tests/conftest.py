"""Shared fixtures for the exchange API tests."""

import os
from datetime import UTC, datetime

# In-memory application database; tests bind their own engines under tmp_path
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("OPEN_EXCHANGE_RATES_API_KEY", "test-api-key")

import pytest  # noqa: E402

from exchange_app.config import RatesConfig  # noqa: E402
from exchange_app.database import build_engine, build_session_factory  # noqa: E402
from exchange_app.models.database import Base, User  # noqa: E402
from exchange_app.models.exchange import ExchangeRateSnapshot, ProviderRates  # noqa: E402
from exchange_app.services.errors import ProviderError, StorageError  # noqa: E402
from exchange_app.services.rate_cache import RateCacheManager  # noqa: E402

NOW = datetime(2025, 3, 18, 12, 0, tzinfo=UTC)

SAMPLE_RATES = {
    "USD": 1.0,
    "EUR": 0.93,
    "GBP": 0.79,
    "JPY": 149.5,
    "CAD": 1.36,
    "AUD": 1.52,
    "CHF": 0.88,
    "CNY": 7.23,
    "INR": 83.1,
    "NGN": 1580.0,
}


class InMemoryRateStore:
    """Rate store keeping snapshots in a dict."""

    def __init__(self, snapshots: list[ExchangeRateSnapshot] | None = None):
        self.snapshots = {(s.base_currency, s.currency): s for s in snapshots or []}
        self.fail_reads = False
        self.fail_writes = False
        self.list_calls = 0
        self.upserts: list[tuple[str, str, float, datetime]] = []

    def seed(self, snapshots: list[ExchangeRateSnapshot]) -> None:
        for s in snapshots:
            self.snapshots[(s.base_currency, s.currency)] = s

    async def list_rates(self, base_currency: str) -> list[ExchangeRateSnapshot]:
        self.list_calls += 1
        if self.fail_reads:
            raise StorageError("database is down")
        rows = [s for (base, _), s in self.snapshots.items() if base == base_currency]
        return sorted(rows, key=lambda s: s.last_updated, reverse=True)

    async def upsert(
        self, base_currency: str, currency: str, rate: float, updated_at: datetime
    ) -> None:
        if self.fail_writes:
            raise StorageError("database is read-only")
        self.upserts.append((base_currency, currency, rate, updated_at))
        self.snapshots[(base_currency, currency)] = ExchangeRateSnapshot(
            base_currency, currency, rate, updated_at
        )


class FakeRateProvider:
    """Rate provider returning canned rates or failing on demand."""

    def __init__(self, rates: dict[str, float] | None = None, base: str = "USD"):
        self.rates = dict(SAMPLE_RATES if rates is None else rates)
        self.base = base
        self.fetched_at = NOW
        self.error: Exception | None = None
        self.calls = 0

    async def fetch_latest(self, base_currency: str) -> ProviderRates:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return ProviderRates(base=self.base, rates=dict(self.rates), fetched_at=self.fetched_at)

    def fail_with(self, message: str = "upstream unavailable") -> None:
        self.error = ProviderError(message)


@pytest.fixture
def rates_config():
    """Rates configuration with the default whitelist and a one hour window."""
    return RatesConfig(api_key="test-api-key")


@pytest.fixture
def rate_store():
    """Empty in-memory rate store."""
    return InMemoryRateStore()


@pytest.fixture
def rate_provider():
    """Provider answering with SAMPLE_RATES."""
    return FakeRateProvider()


@pytest.fixture
def snapshot_factory():
    """Build a snapshot list for the given rates and update time."""

    def _make(rates: dict[str, float], updated_at: datetime, base: str = "USD"):
        return [
            ExchangeRateSnapshot(base, currency, rate, updated_at)
            for currency, rate in rates.items()
        ]

    return _make


@pytest.fixture
def db_engine(tmp_path):
    """SQLite engine on a fresh file with all tables created."""
    engine = build_engine(f"sqlite:///{tmp_path}/exchange.db")
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    """Session factory bound to the test engine."""
    return build_session_factory(db_engine)


@pytest.fixture
def user_factory(session_factory):
    """Insert a user row and return its id."""

    def _make(email: str, name: str | None = None) -> str:
        with session_factory() as session:
            user = User(email=email, name=name)
            session.add(user)
            session.commit()
            return user.id

    return _make


@pytest.fixture
def now():
    """Fixed current time used by the cache manager under test."""
    return NOW


@pytest.fixture
def sample_rates():
    """Provider rates for every supported currency."""
    return dict(SAMPLE_RATES)


@pytest.fixture
def cache_manager(rate_store, rate_provider, rates_config, now):
    """Rate cache manager over the in-memory store and fake provider."""
    return RateCacheManager(rate_store, rate_provider, rates_config, clock=lambda: now)
