"""SQLAlchemy Core tables generated from entity descriptors.

Column types are derived from the pydantic field annotations; anything
without a scalar SQL mapping (nested models, lists, dicts) is stored as
JSON.  Declared unique-constraint groups become UniqueConstraints so the
database stays the final authority on uniqueness.
"""

from __future__ import annotations

import types
import uuid
from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Union, get_args, get_origin

from pydantic import BaseModel
from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Identity,
    Integer,
    JSON,
    LargeBinary,
    MetaData,
    Numeric,
    Sequence,
    String,
    Table,
    Text,
    Time,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy import Enum as SAEnum
from sqlalchemy.engine import Dialect
from sqlalchemy.types import TypeDecorator, TypeEngine

from crudforge.domain.models.descriptor import EntityDescriptor
from crudforge.domain.models.enums import IdentifierType


class UtcDateTime(TypeDecorator[datetime]):
    """Timezone-aware datetime that always reads back in UTC.

    Engines without a native timestamptz (SQLite) store the wall-clock value
    only; naive values read back are the UTC instant that was written.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


_SCALARS: list[tuple[type, TypeEngine[Any]]] = [
    # bool before int: bool is an int subclass
    (bool, Boolean()),
    (int, BigInteger()),
    (float, Float()),
    (Decimal, Numeric(38, 10)),
    (datetime, UtcDateTime()),  # datetime before date: subclass
    (date, Date()),
    (time, Time()),
    (uuid.UUID, Uuid()),
    (bytes, LargeBinary()),
]


def _unwrap(annotation: Any) -> tuple[Any, bool]:
    """Strip Annotated/Optional; return (inner annotation, nullable)."""
    origin = get_origin(annotation)
    if origin is Annotated:
        return _unwrap(get_args(annotation)[0])
    if origin in (Union, types.UnionType):
        args = [a for a in get_args(annotation) if a is not type(None)]
        nullable = len(args) < len(get_args(annotation))
        if len(args) == 1:
            inner, inner_nullable = _unwrap(args[0])
            return inner, nullable or inner_nullable
        return annotation, nullable
    return annotation, False


def column_type(annotation: Any, unique: bool = False) -> TypeEngine[Any]:
    inner, _ = _unwrap(annotation)
    if get_origin(inner) is Literal:
        return String(255)
    if isinstance(inner, type):
        if issubclass(inner, Enum):
            return SAEnum(
                inner,
                native_enum=False,
                length=255,
                values_callable=lambda members: [m.value for m in members],
            )
        if issubclass(inner, str):
            # indexed columns need a bounded length on most engines
            return String(255) if unique else Text()
        if issubclass(inner, BaseModel):
            return JSON()
        for python_type, sql_type in _SCALARS:
            if issubclass(inner, python_type):
                return sql_type
    return JSON()


def _id_column(descriptor: EntityDescriptor[Any]) -> Column[Any]:
    name = descriptor.id_field
    if descriptor.identifier_type is IdentifierType.LONG_SEQUENCE:
        return Column(
            name,
            BigInteger,
            Sequence(f"{descriptor.name}_{name}_seq"),
            primary_key=True,
            autoincrement=False,
        )
    if descriptor.identifier_type is IdentifierType.LONG_IDENTITY:
        # SQLite only auto-assigns rowids for INTEGER PRIMARY KEY
        return Column(
            name,
            BigInteger().with_variant(Integer(), "sqlite"),
            Identity(),
            primary_key=True,
        )
    return Column(name, String(64), primary_key=True)


def build_table(descriptor: EntityDescriptor[Any], metadata: MetaData) -> Table:
    """Create (or return the already registered) table for ``descriptor``."""
    if descriptor.name in metadata.tables:
        return metadata.tables[descriptor.name]

    unique_fields = {f for c in descriptor.unique_constraints for f in c.fields}
    columns: list[Column[Any]] = [_id_column(descriptor)]
    for field_name in descriptor.data_fields:
        info = descriptor.model.model_fields[field_name]
        _, nullable = _unwrap(info.annotation)
        columns.append(
            Column(
                field_name,
                column_type(info.annotation, unique=field_name in unique_fields),
                nullable=nullable or info.default is None,
            )
        )

    constraints = [
        UniqueConstraint(*c.fields, name=f"uq_{descriptor.name}_{'_'.join(c.fields)}")
        for c in descriptor.unique_constraints
    ]
    return Table(descriptor.name, metadata, *columns, *constraints)


def json_columns(table: Table) -> frozenset[str]:
    return frozenset(c.name for c in table.columns if isinstance(c.type, JSON))
