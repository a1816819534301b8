"""SQLAlchemy database models."""

from datetime import UTC, datetime

import uuid_utils.compat as uuid
from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid7())


def _utcnow() -> datetime:
    return datetime.now(UTC)


class User(Base):
    """Owner of recorded transactions, provisioned by the identity service."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    email = Column(String(255), unique=True, nullable=False)
    name = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    transactions = relationship("Transaction", back_populates="user")

    def __repr__(self) -> str:
        """Return string representation of User."""
        return f"<User(id='{self.id}', email='{self.email}')>"


class Transaction(Base):
    """A completed currency conversion. Rows are never updated."""

    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    from_currency = Column(String(10), nullable=False)
    to_currency = Column(String(10), nullable=False)
    amount = Column(Float, nullable=False)
    converted_amount = Column(Float, nullable=False)
    rate = Column(Float, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    user = relationship("User", back_populates="transactions")

    def __repr__(self) -> str:
        """Return string representation of Transaction."""
        return (
            f"<Transaction("
            f"id='{self.id}', "
            f"user_id='{self.user_id}', "
            f"from_currency='{self.from_currency}', "
            f"to_currency='{self.to_currency}', "
            f"amount={self.amount}"
            f")>"
        )


class ExchangeRate(Base):
    """Cached exchange rate of one currency against a base currency."""

    __tablename__ = "exchange_rates"
    __table_args__ = (
        UniqueConstraint("base_currency", "currency", name="uq_exchange_rates_base_currency"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    base_currency = Column(String(10), nullable=False)
    currency = Column(String(10), nullable=False)
    rate = Column(Float, nullable=False)
    last_updated = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    def __repr__(self) -> str:
        """Return string representation of ExchangeRate."""
        return (
            f"<ExchangeRate("
            f"base_currency='{self.base_currency}', "
            f"currency='{self.currency}', "
            f"rate={self.rate}, "
            f"last_updated={self.last_updated}"
            f")>"
        )
