"""Borrow and attendance log entries."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Mapping, Optional

from .database import format_timestamp, parse_timestamp
from .person import PersonType

ONE_DAY = timedelta(days=1)


class BorrowStatus(str, Enum):
    BORROWED = "Borrowed"
    RETURNED = "Returned"


class AttendanceType(str, Enum):
    IN = "In"
    OUT = "Out"

    @classmethod
    def after(cls, last: Optional["AttendanceType"]) -> "AttendanceType":
        """The entry that must follow ``last``: Out after In, In after anything else."""
        return cls.OUT if last is cls.IN else cls.IN

    @property
    def action(self) -> str:
        return "Check-in" if self is AttendanceType.IN else "Check-out"


def days_overdue(due_date: datetime, now: datetime) -> int:
    """Whole days past due, rounded up; 0 when not yet due."""
    if now <= due_date:
        return 0
    return math.ceil((now - due_date) / ONE_DAY)


@dataclass
class BorrowRecord:
    id: int
    person_id: int
    person_type: PersonType
    book_id: int
    borrow_date: datetime
    due_date: datetime
    return_date: Optional[datetime] = None
    status: BorrowStatus = BorrowStatus.BORROWED

    @property
    def is_open(self) -> bool:
        return self.status is BorrowStatus.BORROWED

    def is_overdue(self, now: datetime) -> bool:
        return self.is_open and self.due_date < now

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.person_id,
            "user_type": self.person_type.value,
            "book_id": self.book_id,
            "borrow_date": format_timestamp(self.borrow_date),
            "due_date": format_timestamp(self.due_date),
            "return_date": format_timestamp(self.return_date) if self.return_date else None,
            "status": self.status.value,
        }

    @staticmethod
    def from_row(row: Mapping[str, Any]) -> "BorrowRecord":
        return BorrowRecord(
            id=row["id"],
            person_id=row["user_id"],
            person_type=PersonType(row["user_type"]),
            book_id=row["book_id"],
            borrow_date=parse_timestamp(row["borrow_date"]),
            due_date=parse_timestamp(row["due_date"]),
            return_date=parse_timestamp(row["return_date"]),
            status=BorrowStatus(row["status"]),
        )


@dataclass
class LoanView:
    """A borrow record joined with the book and borrower it refers to."""

    record: BorrowRecord
    book_name: Optional[str] = None
    book_barcode: Optional[str] = None
    author: Optional[str] = None
    publisher: Optional[str] = None
    user_name: Optional[str] = None
    days_overdue: Optional[int] = None

    def to_dict(self) -> dict:
        data = self.record.to_dict()
        data.update(
            book_name=self.book_name,
            book_barcode=self.book_barcode,
            author=self.author,
            publisher=self.publisher,
            user_name=self.user_name,
        )
        if self.days_overdue is not None:
            data["days_overdue"] = self.days_overdue
        return data


@dataclass
class AttendanceRecord:
    id: int
    person_id: int
    person_type: PersonType
    timestamp: datetime
    type: AttendanceType

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.person_id,
            "user_type": self.person_type.value,
            "timestamp": format_timestamp(self.timestamp),
            "type": self.type.value,
        }

    @staticmethod
    def from_row(row: Mapping[str, Any]) -> "AttendanceRecord":
        return AttendanceRecord(
            id=row["id"],
            person_id=row["user_id"],
            person_type=PersonType(row["user_type"]),
            timestamp=parse_timestamp(row["timestamp"]),
            type=AttendanceType(row["type"]),
        )
