"""Simulated persistence layer.

``Database`` keeps three in-memory tables (users and books keyed by id, plus a
list of transactions), validates every write against the declarative schemas
in ``library_system.database.schema`` and snapshots the tables to a
``StorageBackend`` on ``save_all`` and ``disconnect``. Each operation sleeps
for a fixed simulated latency scaled by ``latency_scale``.
"""

import asyncio
import copy
from typing import Any

from loguru import logger
from pydantic import TypeAdapter

from library_system.constants import DEFAULT_CONNECTION_STRING
from library_system.database.schema import BOOKS, TRANSACTIONS, USERS, revive_dates, unique_fields, validate_record
from library_system.database.storage import MemoryStorage, StorageBackend
from library_system.exceptions import AlreadyConnectedError, DuplicateRecordError, NotConnectedError
from library_system.utils.time_utils import Clock, utc_now

# Simulated latencies in milliseconds
CONNECT_LATENCY_MS = 100
DISCONNECT_LATENCY_MS = 50
SAVE_LATENCY_MS = 10
LOAD_ALL_LATENCY_MS = 50
SAVE_ALL_LATENCY_MS = 100
FIND_LATENCY_MS = 20
STATS_LATENCY_MS = 10

_SNAPSHOT_ADAPTER = TypeAdapter(dict[str, Any])

_RESOURCE_NAMES = {USERS: "User", BOOKS: "Book", TRANSACTIONS: "Transaction"}

_MISSING = object()


class Database:
    """Connection-gated, schema-validated in-memory tables.

    Every data operation raises ``NotConnectedError`` unless ``connect()`` has
    completed. Records handed in are copied, and records handed out are deep
    copies, so callers never share state with the tables.
    """

    def __init__(
        self,
        connection_string: str = DEFAULT_CONNECTION_STRING,
        *,
        storage: StorageBackend | None = None,
        latency_scale: float = 1.0,
        clock: Clock = utc_now,
    ):
        self._connection_string = connection_string
        self._storage: StorageBackend = storage if storage is not None else MemoryStorage()
        self._latency_scale = latency_scale
        self._clock = clock
        self._is_connected = False
        self._users: dict[str, dict[str, Any]] = {}
        self._books: dict[str, dict[str, Any]] = {}
        self._transactions: list[dict[str, Any]] = []

    @property
    def is_connected(self) -> bool:
        return self._is_connected

    @property
    def connection_string(self) -> str:
        return self._connection_string

    async def _simulate_latency(self, milliseconds: int) -> None:
        await asyncio.sleep(milliseconds / 1000 * self._latency_scale)

    def _ensure_connected(self) -> None:
        if not self._is_connected:
            raise NotConnectedError("Database not connected")

    # Connection lifecycle

    async def connect(self) -> bool:
        """Open the connection and load the last snapshot from storage.

        A snapshot that cannot be read or parsed is logged and ignored; the
        tables then start empty.

        Raises:
            AlreadyConnectedError: If the database is already connected
        """
        if self._is_connected:
            raise AlreadyConnectedError(f"Database {self._connection_string} is already connected")

        logger.debug(f"Connecting to database {self._connection_string}")
        await self._simulate_latency(CONNECT_LATENCY_MS)

        self._users, self._books, self._transactions = {}, {}, []
        self._load_snapshot()
        self._is_connected = True

        logger.info(f"Connected to database {self._connection_string}")
        return True

    async def disconnect(self) -> None:
        """Persist the tables to storage and close the connection.

        Does nothing when the database is not connected.
        """
        if not self._is_connected:
            return

        self._write_snapshot()
        await self._simulate_latency(DISCONNECT_LATENCY_MS)
        self._is_connected = False
        logger.info(f"Disconnected from database {self._connection_string}")

    # Writes

    async def save_user(self, record: dict[str, Any]) -> dict[str, Any]:
        """Insert or update a user record.

        Args:
            record: User snapshot as produced by ``User.to_json``

        Returns:
            A copy of the stored record, with ``createdAt``/``updatedAt`` set

        Raises:
            NotConnectedError: If the database is not connected
            RecordValidationError: If the record does not match the users schema
            DuplicateRecordError: If another user already has the same email
        """
        return await self._save_keyed(USERS, self._users, record)

    async def save_book(self, record: dict[str, Any]) -> dict[str, Any]:
        """Insert or update a book record. ISBNs are unique across books."""
        return await self._save_keyed(BOOKS, self._books, record)

    async def save_transaction(self, record: dict[str, Any]) -> dict[str, Any]:
        """Insert a transaction, or replace the stored one with the same id.

        A ``timestamp`` is set when the record has none.
        """
        self._ensure_connected()

        stored = copy.deepcopy(record)
        if stored.get("timestamp") is None:
            stored["timestamp"] = self._clock()
        validate_record(TRANSACTIONS, stored)

        await self._simulate_latency(SAVE_LATENCY_MS)

        for index, existing in enumerate(self._transactions):
            if existing.get("id") == stored["id"]:
                self._transactions[index] = stored
                break
        else:
            self._transactions.append(stored)

        logger.trace(f"Saved transaction {stored['id']}")
        return copy.deepcopy(stored)

    async def _save_keyed(self, table: str, rows: dict[str, dict[str, Any]], record: dict[str, Any]) -> dict[str, Any]:
        self._ensure_connected()
        validate_record(table, record)

        await self._simulate_latency(SAVE_LATENCY_MS)

        self._check_unique(table, rows, record)

        now = self._clock()
        existing = rows.get(record["id"])
        stored = copy.deepcopy(record)
        stored["createdAt"] = existing.get("createdAt", now) if existing else now
        stored["updatedAt"] = now
        rows[stored["id"]] = stored

        logger.trace(f"Saved {table} record {stored['id']}")
        return copy.deepcopy(stored)

    @staticmethod
    def _check_unique(table: str, rows: dict[str, dict[str, Any]], record: dict[str, Any]) -> None:
        for field_name in unique_fields(table):
            value = record.get(field_name)
            if value is None:
                continue
            for other_id, other in rows.items():
                if other_id != record["id"] and other.get(field_name) == value:
                    raise DuplicateRecordError(_RESOURCE_NAMES[table], field_name, value)

    # Bulk operations

    async def load_all(self) -> dict[str, Any]:
        """Return deep copies of all three tables.

        The result has the shape ``{"users": {id: record}, "books": {id: record},
        "transactions": [record, ...]}``.
        """
        self._ensure_connected()
        await self._simulate_latency(LOAD_ALL_LATENCY_MS)
        return copy.deepcopy({USERS: self._users, BOOKS: self._books, TRANSACTIONS: self._transactions})

    async def save_all(self, data: dict[str, Any]) -> bool:
        """Replace the tables present in ``data`` and persist to storage.

        Records are stored as given, without schema validation, so that a
        ``load_all`` result can always be written back unchanged.
        """
        self._ensure_connected()

        if USERS in data:
            self._users = copy.deepcopy(dict(data[USERS]))
        if BOOKS in data:
            self._books = copy.deepcopy(dict(data[BOOKS]))
        if TRANSACTIONS in data:
            self._transactions = copy.deepcopy(list(data[TRANSACTIONS]))

        self._write_snapshot()
        await self._simulate_latency(SAVE_ALL_LATENCY_MS)
        return True

    # Queries

    async def find_users(self, criteria: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """Users whose fields equal every key/value pair of ``criteria``."""
        self._ensure_connected()
        await self._simulate_latency(FIND_LATENCY_MS)
        return _match_all(self._users.values(), criteria)

    async def find_books(self, criteria: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        self._ensure_connected()
        await self._simulate_latency(FIND_LATENCY_MS)
        return _match_all(self._books.values(), criteria)

    async def find_transactions(self, criteria: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        self._ensure_connected()
        await self._simulate_latency(FIND_LATENCY_MS)
        return _match_all(self._transactions, criteria)

    async def get_stats(self) -> dict[str, Any]:
        self._ensure_connected()
        await self._simulate_latency(STATS_LATENCY_MS)
        return {
            "users": len(self._users),
            "books": len(self._books),
            "transactions": len(self._transactions),
            "isConnected": self._is_connected,
            "connectionString": self._connection_string,
        }

    async def clear_all(self) -> bool:
        """Empty all tables and remove the stored snapshot."""
        self._ensure_connected()
        self._users, self._books, self._transactions = {}, {}, []
        self._storage.remove_item(self._connection_string)
        logger.info(f"Cleared all data from {self._connection_string}")
        return True

    # Snapshot persistence

    def _load_snapshot(self) -> None:
        try:
            raw = self._storage.get_item(self._connection_string)
            if raw is None:
                logger.debug(f"No stored snapshot for {self._connection_string}")
                return
            snapshot = _SNAPSHOT_ADAPTER.validate_json(raw)
            users = {key: revive_dates(USERS, value) for key, value in (snapshot.get(USERS) or {}).items()}
            books = {key: revive_dates(BOOKS, value) for key, value in (snapshot.get(BOOKS) or {}).items()}
            transactions = [revive_dates(TRANSACTIONS, value) for value in snapshot.get(TRANSACTIONS) or []]
        except (OSError, ValueError, AttributeError, TypeError) as e:
            logger.warning(f"Failed to load snapshot for {self._connection_string}, starting empty: {e}")
            return

        self._users, self._books, self._transactions = users, books, transactions
        logger.debug(
            f"Loaded {len(users)} users, {len(books)} books and {len(transactions)} transactions "
            f"from {self._connection_string}"
        )

    def _write_snapshot(self) -> None:
        snapshot = {USERS: self._users, BOOKS: self._books, TRANSACTIONS: self._transactions}
        self._storage.set_item(self._connection_string, _SNAPSHOT_ADAPTER.dump_json(snapshot).decode())


def _match_all(records, criteria: dict[str, Any] | None) -> list[dict[str, Any]]:
    criteria = criteria or {}
    return [
        copy.deepcopy(record)
        for record in records
        if all(record.get(key, _MISSING) == value for key, value in criteria.items())
    ]
