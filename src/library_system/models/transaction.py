"""Borrow and return transaction records."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from library_system.constants import FINE_PER_DAY
from library_system.exceptions import InvalidStateError
from library_system.utils.id_generator import generate_transaction_id
from library_system.utils.time_utils import days_late, utc_now


class TransactionType(StrEnum):
    BORROW = "borrow"
    RETURN = "return"


class TransactionStatus(StrEnum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class Transaction(BaseModel):
    """A borrow or return record produced by the library facade.

    Active borrows can be renewed, cancelled or failed; ``notes`` collects
    timestamped remarks.

    Field names serialize to the camelCase snapshot keys (``userId``,
    ``bookId``, ``lateFee`` ...) via ``to_json``.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        validate_assignment=True,
    )

    id: str = Field(default_factory=generate_transaction_id)
    type: TransactionType
    user_id: str
    book_id: str
    status: TransactionStatus = TransactionStatus.ACTIVE
    borrow_date: datetime | None = None
    due_date: datetime | None = None
    return_date: datetime | None = None
    borrow_transaction_id: str | None = None
    late_fee: float = 0.0
    original_due_date: datetime | None = None
    renewal_count: int = 0
    reason: str | None = None
    notes: str = ""
    timestamp: datetime = Field(default_factory=utc_now)

    @classmethod
    def create_borrow(cls, user_id: str, book_id: str, borrow_date: datetime, due_date: datetime) -> "Transaction":
        return cls(
            type=TransactionType.BORROW,
            user_id=user_id,
            book_id=book_id,
            borrow_date=borrow_date,
            due_date=due_date,
            timestamp=borrow_date,
        )

    @classmethod
    def create_return(
        cls, borrow: "Transaction", return_date: datetime, fine_per_day: float = FINE_PER_DAY
    ) -> "Transaction":
        """Build the completed return record for an active borrow.

        The late fee is ``ceil(days past due) * fine_per_day``, zero when the
        book comes back on or before the due date.

        Raises:
            InvalidStateError: If ``borrow`` is not an active borrow transaction
        """
        if borrow.type != TransactionType.BORROW or borrow.status != TransactionStatus.ACTIVE:
            raise InvalidStateError(f"Transaction {borrow.id} is not an active borrow")

        late_fee = days_late(borrow.due_date, return_date) * fine_per_day if borrow.due_date else 0.0
        return cls(
            type=TransactionType.RETURN,
            user_id=borrow.user_id,
            book_id=borrow.book_id,
            status=TransactionStatus.COMPLETED,
            borrow_date=borrow.borrow_date,
            due_date=borrow.due_date,
            return_date=return_date,
            borrow_transaction_id=borrow.id,
            late_fee=late_fee,
            timestamp=return_date,
        )

    def complete(self) -> None:
        if self.status != TransactionStatus.ACTIVE:
            raise InvalidStateError(f"Transaction {self.id} is not active")
        self.status = TransactionStatus.COMPLETED

    def cancel(self, reason: str) -> None:
        """Cancel the transaction, recording ``reason``.

        Raises:
            InvalidStateError: If the transaction is already completed
        """
        if self.status == TransactionStatus.COMPLETED:
            raise InvalidStateError(f"Cannot cancel completed transaction {self.id}")
        self.status = TransactionStatus.CANCELLED
        self.reason = reason

    def fail(self, reason: str) -> None:
        """Mark an active transaction as failed, recording ``reason``.

        Raises:
            InvalidStateError: If the transaction is not active
        """
        if self.status != TransactionStatus.ACTIVE:
            raise InvalidStateError(f"Only active transactions can be failed: {self.id}")
        self.status = TransactionStatus.FAILED
        self.reason = reason

    def renew(self, new_due_date: datetime, now: datetime | None = None) -> None:
        """Extend the due date of an active borrow.

        The first due date is kept in ``original_due_date``.

        Raises:
            InvalidStateError: If this is not an active borrow, it is already
                overdue, or ``new_due_date`` does not extend the loan
        """
        if self.type != TransactionType.BORROW or self.status != TransactionStatus.ACTIVE:
            raise InvalidStateError(f"Only active borrow transactions can be renewed: {self.id}")
        if self.is_overdue(now):
            raise InvalidStateError(f"Overdue transaction {self.id} cannot be renewed")
        if self.due_date is not None and new_due_date <= self.due_date:
            raise InvalidStateError(f"New due date must be after {self.due_date.isoformat()}")

        if self.original_due_date is None:
            self.original_due_date = self.due_date
        self.due_date = new_due_date
        self.renewal_count += 1

    def add_note(self, note: str, now: datetime | None = None) -> None:
        entry = f"[{(now or utc_now()).isoformat()}] {note}"
        self.notes = f"{self.notes}\n{entry}" if self.notes else entry

    def get_days_overdue(self, now: datetime | None = None) -> int:
        moment = now or utc_now()
        if not self.is_overdue(moment):
            return 0
        return days_late(self.due_date, moment)

    def is_active_borrow_of(self, user_id: str, book_id: str) -> bool:
        return (
            self.type == TransactionType.BORROW
            and self.status == TransactionStatus.ACTIVE
            and self.user_id == user_id
            and self.book_id == book_id
        )

    def is_overdue(self, now: datetime | None = None) -> bool:
        if self.type != TransactionType.BORROW or self.status != TransactionStatus.ACTIVE or self.due_date is None:
            return False
        return (now or utc_now()) > self.due_date

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "Transaction":
        return cls.model_validate(data)
