"""Persistence of completed conversions."""

import asyncio

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from exchange_app.database import as_utc
from exchange_app.logging_config import get_logger
from exchange_app.middleware.metrics import record_database_operation
from exchange_app.models.database import Transaction, User
from exchange_app.models.exchange import TransactionRecord
from exchange_app.services.errors import StorageError

logger = get_logger(__name__)


def _to_record(row: Transaction) -> TransactionRecord:
    record = TransactionRecord.model_validate(row)
    return record.model_copy(update={"created_at": as_utc(record.created_at)})


class TransactionRecorder:
    """Writes immutable transaction rows and reads them back per owner."""

    def __init__(self, session_factory: sessionmaker[Session]):
        """Initialize the recorder.

        Args:
            session_factory: Factory producing database sessions
        """
        self.session_factory = session_factory

    async def record(
        self,
        user_id: str,
        from_currency: str,
        to_currency: str,
        amount: float,
        converted_amount: float,
        rate: float,
    ) -> TransactionRecord:
        """Persist a conversion and return it with its assigned id and timestamp.

        Raises:
            StorageError: If the row cannot be written
        """
        return await asyncio.to_thread(
            self._record_sync, user_id, from_currency, to_currency, amount, converted_amount, rate
        )

    async def list_for_user(self, user_id: str) -> list[TransactionRecord]:
        """Return the user's transactions, newest first.

        Raises:
            StorageError: If the table cannot be read
        """
        return await asyncio.to_thread(self._list_sync, user_id)

    async def user_exists(self, user_id: str) -> bool:
        """Check whether a user row exists for ``user_id``.

        Raises:
            StorageError: If the table cannot be read
        """
        return await asyncio.to_thread(self._user_exists_sync, user_id)

    def _record_sync(
        self,
        user_id: str,
        from_currency: str,
        to_currency: str,
        amount: float,
        converted_amount: float,
        rate: float,
    ) -> TransactionRecord:
        transaction = Transaction(
            user_id=user_id,
            from_currency=from_currency,
            to_currency=to_currency,
            amount=amount,
            converted_amount=converted_amount,
            rate=rate,
        )
        try:
            with self.session_factory() as session:
                session.add(transaction)
                session.commit()
                session.refresh(transaction)
                record = _to_record(transaction)
        except SQLAlchemyError as e:
            record_database_operation(operation="insert", table="transactions", success=False)
            logger.error("Failed to record transaction", user_id=user_id, exc_info=True)
            raise StorageError(f"Failed to record transaction: {e}") from e

        record_database_operation(operation="insert", table="transactions", success=True)
        return record

    def _list_sync(self, user_id: str) -> list[TransactionRecord]:
        try:
            with self.session_factory() as session:
                rows = session.scalars(
                    select(Transaction)
                    .where(Transaction.user_id == user_id)
                    .order_by(Transaction.created_at.desc(), Transaction.id.desc())
                ).all()
                records = [_to_record(row) for row in rows]
        except SQLAlchemyError as e:
            record_database_operation(operation="select", table="transactions", success=False)
            raise StorageError(f"Failed to read transactions: {e}") from e

        record_database_operation(operation="select", table="transactions", success=True)
        return records

    def _user_exists_sync(self, user_id: str) -> bool:
        try:
            with self.session_factory() as session:
                return session.get(User, user_id) is not None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read users: {e}") from e
