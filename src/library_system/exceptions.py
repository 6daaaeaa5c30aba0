"""Common exceptions for the library system.

Four families are raised by the core: validation errors for malformed
records, state errors for operations that are invalid in the current entity
or system state, not-found errors for unknown identifiers and uniqueness
errors for duplicate ids, emails or ISBNs. All of them derive from
``LibraryError`` so callers can catch the whole family at once.

Event bus errors live in ``library_system.event_bus.core``.
"""


class LibraryError(Exception):
    """Base exception for all library system errors."""


class RecordValidationError(LibraryError):
    """Raised when a record or entity field fails validation.

    The offending field is kept on the exception so callers can report it
    without parsing the message.
    """

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


class InvalidStateError(LibraryError):
    """Raised when an operation is not valid for the current state."""


class BookNotAvailableError(InvalidStateError):
    """Raised when a book cannot be borrowed or reserved right now."""


class BorrowLimitError(InvalidStateError):
    """Raised when a user already holds the maximum number of loans."""


class InactiveUserError(InvalidStateError):
    """Raised when an inactive user attempts to borrow."""


class NotInitializedError(InvalidStateError):
    """Raised when the library facade is used before ``initialize()``."""


class AlreadyInitializedError(InvalidStateError):
    """Raised when ``initialize()`` is called twice."""


class NotConnectedError(InvalidStateError):
    """Raised when the database is used while disconnected."""


class AlreadyConnectedError(InvalidStateError):
    """Raised when ``connect()`` is called on a connected database."""


class ResourceNotFoundError(LibraryError):
    """Raised when a resource doesn't exist.

    Generic exception for any resource that cannot be found by its identifier.
    """

    def __init__(self, resource_type: str, identifier: str):
        self.resource_type = resource_type
        self.identifier = identifier
        super().__init__(f"{resource_type} not found: {identifier}")


class DuplicateRecordError(LibraryError):
    """Raised when a uniqueness constraint would be violated.

    Covers duplicate ids in the facade as well as the table-scoped ``email``
    and ``isbn`` constraints enforced by the database.
    """

    def __init__(self, resource_type: str, field: str, value: str):
        self.resource_type = resource_type
        self.field = field
        self.value = value
        super().__init__(f"{resource_type} with {field} {value} already exists")
