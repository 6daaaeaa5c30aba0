"""Simulated persistence layer for the library system."""

from library_system.database.database import Database
from library_system.database.schema import FieldSpec, FieldType, validate_record
from library_system.database.storage import FileStorage, MemoryStorage, StorageBackend

__all__ = [
    "Database",
    "FieldSpec",
    "FieldType",
    "FileStorage",
    "MemoryStorage",
    "StorageBackend",
    "validate_record",
]
