"""
Base Model Classes and Mixins for Flask-SQLAlchemy

Every replicated table shares the same shape: a UUID primary key, a unique
``mongo_id`` column holding the source document id (exposed on models as
``source_id``), and creation/update timestamps. The target DDL is supplied
externally; these models describe it so the writer can address it, and the
column types fall back to portable variants on SQLite for tests.

Key Components:
- db: the Flask-SQLAlchemy extension instance
- SyncedModel: abstract base with id, source_id, created_at and to_dict()
- UpdatedAtMixin / SoftDeleteMixin: optional audit columns
- Portable column types: TextArray, JsonDocument, pg_enum()
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import JSON, Column, DateTime, Text, Uuid
from sqlalchemy.dialects.postgresql import ARRAY, ENUM, JSONB
from sqlalchemy.orm import class_mapper, declared_attr

db = SQLAlchemy()


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def pg_enum(name: str, values: Iterable[str]) -> ENUM:
    """Reference an enum type that the externally supplied DDL creates."""
    return ENUM(*values, name=name, create_type=False)


TextArray = ARRAY(Text).with_variant(JSON(), 'sqlite')
JsonDocument = JSONB().with_variant(JSON(), 'sqlite')


def EnumArray(name: str, values: Iterable[str]):
    return ARRAY(pg_enum(name, values)).with_variant(JSON(), 'sqlite')


class SyncedModel(db.Model):
    """
    Abstract base for every replicated target table.

    ``source_id`` is the persisted id translation: it is unique, so a source
    document maps to at most one row and lookups by it are index-backed.
    """

    __abstract__ = True

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    @declared_attr
    def source_id(cls):
        return Column('mongo_id', Text, unique=True, nullable=True, index=True)

    @declared_attr
    def created_at(cls):
        return Column(DateTime, default=utcnow, nullable=False)

    def to_dict(self, exclude_fields: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        """
        Convert the row to a JSON-friendly dictionary keyed by attribute name.
        """
        exclude = set(exclude_fields or ())
        result = {}
        for prop in class_mapper(self.__class__).column_attrs:
            if prop.key in exclude:
                continue
            value = getattr(self, prop.key)
            if isinstance(value, uuid.UUID):
                value = str(value)
            elif isinstance(value, datetime):
                value = value.isoformat()
            result[prop.key] = value
        return result

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} id={self.id} source_id={self.source_id}>"


class UpdatedAtMixin:
    """Adds ``updated_at``, refreshed by SQLAlchemy on every UPDATE."""

    @declared_attr
    def updated_at(cls):
        return Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class SoftDeleteMixin:
    """Adds the nullable ``deleted_at`` marker mirrored from the source."""

    @declared_attr
    def deleted_at(cls):
        return Column(DateTime, nullable=True)
