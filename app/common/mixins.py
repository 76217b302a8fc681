"""
Common mixins and column types for models
"""
from sqlalchemy import Column, DateTime, BigInteger
from sqlalchemy.sql import func
from sqlalchemy.types import TypeDecorator

from app.common.money import Money


class MoneyType(TypeDecorator):
    """Persists Money as an integer number of cents"""

    impl = BigInteger
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, Money):
            value = Money.from_decimal(value)
        return value.cents

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Money.from_cents(int(value))


class TimestampMixin:
    """Mixin for models that need timestamp tracking"""

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
