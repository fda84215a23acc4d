"""Declarative base and shared column mixins"""

from sqlalchemy import Column, DateTime, MetaData
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, declared_attr
from sqlalchemy.sql import func
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable
import enum
import uuid

# Stable constraint names so migrations can address them
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class TimestampedModel:
    """created_at / updated_at maintained by the database"""

    @declared_attr
    def created_at(cls):
        return Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)

    @declared_attr
    def updated_at(cls):
        return Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class UUIDModel:
    """UUID primary key generated client side"""

    @declared_attr
    def id(cls):
        return Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)


def serialize_value(value: Any) -> Any:
    """JSON-safe form of a column value; money stays a string to keep its scale"""
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (uuid.UUID, Decimal)):
        return str(value)
    return value


class SerializableMixin:
    """Column dump for audit payloads and stats responses"""

    def to_dict(self, exclude: Iterable[str] = ()) -> Dict[str, Any]:
        skipped = set(exclude)
        return {
            column.name: serialize_value(getattr(self, column.key))
            for column in self.__table__.columns
            if column.name not in skipped
        }

    def __repr__(self):
        keys = ", ".join(
            f"{column.name}={getattr(self, column.key)!r}" for column in self.__table__.primary_key.columns
        )
        return f"<{self.__class__.__name__}({keys})>"


__all__ = [
    "Base",
    "TimestampedModel",
    "UUIDModel",
    "SerializableMixin",
    "serialize_value",
]
