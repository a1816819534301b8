"""Persistent storage of exchange rate snapshots."""

import asyncio
from datetime import datetime
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from exchange_app.database import as_utc
from exchange_app.logging_config import get_logger
from exchange_app.middleware.metrics import record_database_operation
from exchange_app.models.database import ExchangeRate
from exchange_app.models.exchange import ExchangeRateSnapshot
from exchange_app.services.errors import StorageError

logger = get_logger(__name__)

_UPSERT_DIALECTS = {"sqlite": sqlite_insert, "postgresql": postgresql_insert}


class RateStore(Protocol):
    """Read/write access to cached exchange rates."""

    async def list_rates(self, base_currency: str) -> list[ExchangeRateSnapshot]: ...

    async def upsert(
        self, base_currency: str, currency: str, rate: float, updated_at: datetime
    ) -> None: ...


class SqlRateStore:
    """Rate store backed by the ``exchange_rates`` table.

    Every call opens its own session inside a worker thread, so concurrent
    upserts never share a connection.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        """Initialize the store.

        Args:
            session_factory: Factory producing database sessions
        """
        self.session_factory = session_factory

    async def list_rates(self, base_currency: str) -> list[ExchangeRateSnapshot]:
        """Return all snapshots for ``base_currency``, most recently updated first.

        Raises:
            StorageError: If the database cannot be read
        """
        return await asyncio.to_thread(self._list_sync, base_currency)

    async def upsert(
        self, base_currency: str, currency: str, rate: float, updated_at: datetime
    ) -> None:
        """Insert or replace the snapshot for ``(base_currency, currency)``.

        Raises:
            StorageError: If the database cannot be written
        """
        await asyncio.to_thread(self._upsert_sync, base_currency, currency, rate, updated_at)

    def _list_sync(self, base_currency: str) -> list[ExchangeRateSnapshot]:
        try:
            with self.session_factory() as session:
                rows = session.scalars(
                    select(ExchangeRate)
                    .where(ExchangeRate.base_currency == base_currency)
                    .order_by(ExchangeRate.last_updated.desc(), ExchangeRate.currency)
                ).all()
        except SQLAlchemyError as e:
            record_database_operation(operation="select", table="exchange_rates", success=False)
            logger.error(
                "Failed to read exchange rates", base_currency=base_currency, exc_info=True
            )
            raise StorageError(f"Failed to read exchange rates: {e}") from e

        record_database_operation(operation="select", table="exchange_rates", success=True)
        return [
            ExchangeRateSnapshot(
                base_currency=row.base_currency,
                currency=row.currency,
                rate=row.rate,
                last_updated=as_utc(row.last_updated),
            )
            for row in rows
        ]

    def _upsert_sync(
        self, base_currency: str, currency: str, rate: float, updated_at: datetime
    ) -> None:
        try:
            with self.session_factory() as session:
                insert = _UPSERT_DIALECTS.get(session.get_bind().dialect.name)
                if insert is not None:
                    stmt = insert(ExchangeRate).values(
                        base_currency=base_currency,
                        currency=currency,
                        rate=rate,
                        last_updated=updated_at,
                    )
                    stmt = stmt.on_conflict_do_update(
                        index_elements=["base_currency", "currency"],
                        set_={
                            "rate": stmt.excluded.rate,
                            "last_updated": stmt.excluded.last_updated,
                        },
                    )
                    session.execute(stmt)
                else:
                    self._merge_row(session, base_currency, currency, rate, updated_at)
                session.commit()
        except SQLAlchemyError as e:
            record_database_operation(operation="upsert", table="exchange_rates", success=False)
            logger.error(
                "Failed to store exchange rate",
                base_currency=base_currency,
                currency=currency,
                exc_info=True,
            )
            raise StorageError(f"Failed to store exchange rate for {currency}: {e}") from e

        record_database_operation(operation="upsert", table="exchange_rates", success=True)

    @staticmethod
    def _merge_row(
        session: Session, base_currency: str, currency: str, rate: float, updated_at: datetime
    ) -> None:
        row = session.scalar(
            select(ExchangeRate).where(
                ExchangeRate.base_currency == base_currency,
                ExchangeRate.currency == currency,
            )
        )
        if row is None:
            session.add(
                ExchangeRate(
                    base_currency=base_currency,
                    currency=currency,
                    rate=rate,
                    last_updated=updated_at,
                )
            )
        else:
            row.rate = rate
            row.last_updated = updated_at
