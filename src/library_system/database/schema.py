"""Declarative table schemas and the generic record validator.

Each table is described by a mapping of field name to ``FieldSpec``. A single
``validate_record`` function checks required fields, primitive types and enum
membership for any table; uniqueness is evaluated by the database against
the other records of the table (see ``unique_fields``).
"""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict

from library_system.exceptions import RecordValidationError
from library_system.models.book import BookCategory, BookStatus
from library_system.models.transaction import TransactionStatus, TransactionType
from library_system.models.user import UserType
from library_system.utils.time_utils import parse_datetime


class FieldType(StrEnum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    ARRAY = "array"
    OBJECT = "object"


class FieldSpec(BaseModel):
    """Rules for a single field of a table."""

    model_config = ConfigDict(frozen=True)

    type: FieldType
    required: bool = False
    enum: tuple[str, ...] | None = None
    unique: bool = False


TableSchema = dict[str, FieldSpec]

USERS = "users"
BOOKS = "books"
TRANSACTIONS = "transactions"


def _values(enum_type: type[StrEnum]) -> tuple[str, ...]:
    return tuple(member.value for member in enum_type)


USER_SCHEMA: TableSchema = {
    "id": FieldSpec(type=FieldType.STRING, required=True, unique=True),
    "name": FieldSpec(type=FieldType.STRING, required=True),
    "email": FieldSpec(type=FieldType.STRING, required=True, unique=True),
    "type": FieldSpec(type=FieldType.STRING, required=True, enum=_values(UserType)),
    "isActive": FieldSpec(type=FieldType.BOOLEAN, required=True),
    "membershipDate": FieldSpec(type=FieldType.DATE, required=True),
    "borrowedBooks": FieldSpec(type=FieldType.ARRAY),
    "createdAt": FieldSpec(type=FieldType.DATE),
    "updatedAt": FieldSpec(type=FieldType.DATE),
}

BOOK_SCHEMA: TableSchema = {
    "id": FieldSpec(type=FieldType.STRING, required=True, unique=True),
    "isbn": FieldSpec(type=FieldType.STRING, required=True, unique=True),
    "title": FieldSpec(type=FieldType.STRING, required=True),
    "author": FieldSpec(type=FieldType.STRING, required=True),
    "category": FieldSpec(type=FieldType.STRING, required=True, enum=_values(BookCategory)),
    "publishedYear": FieldSpec(type=FieldType.NUMBER),
    "publisher": FieldSpec(type=FieldType.STRING),
    "status": FieldSpec(type=FieldType.STRING, required=True, enum=_values(BookStatus)),
    "borrowedBy": FieldSpec(type=FieldType.STRING),
    "borrowDate": FieldSpec(type=FieldType.DATE),
    "dueDate": FieldSpec(type=FieldType.DATE),
    "reservedBy": FieldSpec(type=FieldType.STRING),
    "location": FieldSpec(type=FieldType.STRING),
    "description": FieldSpec(type=FieldType.STRING),
    "totalCopies": FieldSpec(type=FieldType.NUMBER, required=True),
    "availableCopies": FieldSpec(type=FieldType.NUMBER, required=True),
    "createdAt": FieldSpec(type=FieldType.DATE),
    "updatedAt": FieldSpec(type=FieldType.DATE),
}

TRANSACTION_SCHEMA: TableSchema = {
    "id": FieldSpec(type=FieldType.STRING, required=True, unique=True),
    "type": FieldSpec(type=FieldType.STRING, required=True, enum=_values(TransactionType)),
    "userId": FieldSpec(type=FieldType.STRING, required=True),
    "bookId": FieldSpec(type=FieldType.STRING, required=True),
    "status": FieldSpec(type=FieldType.STRING, required=True, enum=_values(TransactionStatus)),
    "timestamp": FieldSpec(type=FieldType.DATE, required=True),
    "borrowDate": FieldSpec(type=FieldType.DATE),
    "dueDate": FieldSpec(type=FieldType.DATE),
    "returnDate": FieldSpec(type=FieldType.DATE),
    "borrowTransactionId": FieldSpec(type=FieldType.STRING),
    "lateFee": FieldSpec(type=FieldType.NUMBER),
    "originalDueDate": FieldSpec(type=FieldType.DATE),
    "renewalCount": FieldSpec(type=FieldType.NUMBER),
    "reason": FieldSpec(type=FieldType.STRING),
    "notes": FieldSpec(type=FieldType.STRING),
}

SCHEMAS: dict[str, TableSchema] = {
    USERS: USER_SCHEMA,
    BOOKS: BOOK_SCHEMA,
    TRANSACTIONS: TRANSACTION_SCHEMA,
}


def get_schema(table: str) -> TableSchema:
    try:
        return SCHEMAS[table]
    except KeyError:
        raise RecordValidationError("table", f"No schema defined for table: {table}") from None


def is_valid_type(value: Any, field_type: FieldType) -> bool:
    """Check ``value`` against a primitive schema type."""
    match field_type:
        case FieldType.STRING:
            return isinstance(value, str)
        case FieldType.NUMBER:
            return isinstance(value, int | float) and not isinstance(value, bool)
        case FieldType.BOOLEAN:
            return isinstance(value, bool)
        case FieldType.DATE:
            return isinstance(value, datetime)
        case FieldType.ARRAY:
            return isinstance(value, list | tuple)
        case FieldType.OBJECT:
            return isinstance(value, dict)
    return True


def validate_record(table: str, record: dict[str, Any]) -> None:
    """Validate ``record`` against the schema of ``table``.

    Fields not declared in the schema are allowed and not checked.

    Raises:
        RecordValidationError: Naming the first offending field
    """
    for field_name, field_spec in get_schema(table).items():
        value = record.get(field_name)

        if value is None:
            if field_spec.required:
                raise RecordValidationError(field_name, f"Required field missing: {field_name}")
            continue

        if not is_valid_type(value, field_spec.type):
            raise RecordValidationError(field_name, f"Invalid type for field {field_name}. Expected {field_spec.type}")

        if field_spec.enum is not None and value not in field_spec.enum:
            raise RecordValidationError(
                field_name, f"Invalid value for field {field_name}. Must be one of: {', '.join(field_spec.enum)}"
            )


def unique_fields(table: str) -> list[str]:
    """Fields with a uniqueness constraint, excluding the ``id`` key itself."""
    return [name for name, field_spec in get_schema(table).items() if field_spec.unique and name != "id"]


def revive_dates(table: str, record: dict[str, Any]) -> dict[str, Any]:
    """Turn ISO strings back into datetimes for the date fields of ``table``.

    Used when reading snapshots written by a JSON storage backend.
    """
    revived = dict(record)
    for field_name, field_spec in get_schema(table).items():
        if field_spec.type == FieldType.DATE and isinstance(revived.get(field_name), str):
            revived[field_name] = parse_datetime(revived[field_name])
    return revived
