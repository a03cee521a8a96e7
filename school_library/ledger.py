"""Inventory ledger: borrowing, returning and overdue tracking.

Every operation re-reads the current state from the store and commits its
writes inside one ``BEGIN IMMEDIATE`` transaction, so concurrent borrows of
the last copy, or a borrow racing a return, serialize instead of
over-allocating.  For each book the ledger keeps

    available_qty + borrowed_count == quantity,  available_qty >= 0

and ``status`` is always re-derived from ``available_qty``.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Union

from .book import Book
from .config import settings
from .database import format_timestamp, initialize_database, read_connection, transaction, utc_now
from .directory import fetch_person, fetch_person_by_barcode, parse_person_type
from .errors import AlreadyReturnedError, ConflictError, NotFoundError, UnauthorizedError, ValidationError
from .person import Identity, Person, PersonType
from .records import BorrowRecord, BorrowStatus, LoanView, days_overdue
from .validators import BarcodeValidator

logger = logging.getLogger(__name__)

_LOAN_VIEW_SELECT = """
    SELECT bl.*, b.book_name, b.book_barcode, b.author, b.publisher,
           CASE
               WHEN bl.user_type = 'student' THEN s.name
               WHEN bl.user_type = 'teacher' THEN t.name
           END AS user_name
    FROM borrow_logs bl
    LEFT JOIN books b ON bl.book_id = b.id
    LEFT JOIN students s ON bl.user_type = 'student' AND bl.user_id = s.id
    LEFT JOIN teachers t ON bl.user_type = 'teacher' AND bl.user_id = t.id
"""


def _loan_view(row, now: Optional[datetime] = None) -> LoanView:
    record = BorrowRecord.from_row(row)
    return LoanView(
        record=record,
        book_name=row["book_name"],
        book_barcode=row["book_barcode"],
        author=row["author"],
        publisher=row["publisher"],
        user_name=row["user_name"],
        days_overdue=days_overdue(record.due_date, now) if now is not None else None,
    )


@dataclass
class BorrowReceipt:
    borrow_id: int
    due_date: datetime
    book: Book
    person: Person

    def to_dict(self) -> dict:
        return {
            "borrowId": self.borrow_id,
            "dueDate": format_timestamp(self.due_date),
            "book": self.book.to_dict(),
            "user": self.person.to_dict(),
        }


class InventoryLedger:
    def __init__(self, db_file: Optional[str] = None, loan_period_days: Optional[int] = None) -> None:
        self.db_file = db_file
        self.loan_period = timedelta(days=loan_period_days or settings.loan_period_days)
        initialize_database(db_file)

    # ------------------------- Borrowing ------------------------- #
    def borrow(self, book_id: int, actor: Identity, now: Optional[datetime] = None) -> BorrowReceipt:
        """Self-service borrow of ``book_id`` by the acting student or teacher."""
        if actor.person_type is None:
            raise UnauthorizedError("Only students and teachers can borrow books")
        with transaction(self.db_file) as conn:
            now = now or utc_now()
            person = fetch_person(conn, actor.person_type, actor.id)
            if person is None:
                raise NotFoundError("User not found")
            row = conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
            if row is None:
                raise NotFoundError("Book not found")
            return self._lend(conn, Book.from_row(row), person, now)

    def borrow_on_behalf(self, book_barcode: str, person_barcode: Optional[str] = None,
                         student_id: Optional[int] = None, teacher_id: Optional[int] = None,
                         now: Optional[datetime] = None) -> BorrowReceipt:
        """Staffed borrow: lend the book with ``book_barcode`` to the given person.

        The person is resolved by card barcode (students first, then
        teachers) or by explicit student / teacher id.
        """
        book_barcode = BarcodeValidator.require(book_barcode, "Book barcode")
        if not (person_barcode or student_id or teacher_id):
            raise ValidationError("A user barcode, student id or teacher id is required")
        with transaction(self.db_file) as conn:
            now = now or utc_now()
            if person_barcode:
                person = fetch_person_by_barcode(conn, person_barcode)
            elif student_id:
                person = fetch_person(conn, PersonType.STUDENT, student_id)
            else:
                person = fetch_person(conn, PersonType.TEACHER, teacher_id)
            if person is None:
                raise NotFoundError("User not found")
            row = conn.execute("SELECT * FROM books WHERE book_barcode = ?", (book_barcode,)).fetchone()
            if row is None:
                raise NotFoundError("Book not found")
            return self._lend(conn, Book.from_row(row), person, now)

    def _lend(self, conn: sqlite3.Connection, book: Book, person: Person, now: datetime) -> BorrowReceipt:
        if book.available_qty <= 0:
            raise ConflictError("Book is not available")
        existing = conn.execute(
            "SELECT id FROM borrow_logs WHERE user_id = ? AND user_type = ? AND book_id = ? AND status = 'Borrowed'",
            (person.id, person.person_type.value, book.id),
        ).fetchone()
        if existing:
            raise ConflictError("This book is already borrowed by this user")

        due_date = now + self.loan_period
        try:
            cursor = conn.execute(
                "INSERT INTO borrow_logs (user_id, user_type, book_id, borrow_date, due_date, status) "
                "VALUES (?, ?, ?, ?, ?, 'Borrowed')",
                (person.id, person.person_type.value, book.id, format_timestamp(now), format_timestamp(due_date)),
            )
        except sqlite3.IntegrityError as e:
            raise ConflictError("This book is already borrowed by this user") from e
        borrow_id = cursor.lastrowid

        updated = conn.execute(
            """
            UPDATE books
            SET borrowed_count = borrowed_count + 1,
                available_qty = available_qty - 1,
                status = CASE WHEN available_qty - 1 > 0 THEN 'Available' ELSE 'Unavailable' END
            WHERE id = ? AND available_qty > 0
            """,
            (book.id,),
        )
        if updated.rowcount != 1:
            raise ConflictError("Book is not available")

        book = Book.from_row(conn.execute("SELECT * FROM books WHERE id = ?", (book.id,)).fetchone())
        logger.info(
            "Borrow %s: %s %s took book %s, %d/%d left",
            borrow_id, person.person_type.value, person.id, book.id, book.available_qty, book.quantity,
        )
        return BorrowReceipt(borrow_id, due_date, book, person)

    # ------------------------- Returning ------------------------- #
    def return_book(self, borrow_id: int, actor: Identity, now: Optional[datetime] = None) -> BorrowRecord:
        """Close an open loan. Only the borrower or library staff may return it."""
        with transaction(self.db_file) as conn:
            now = now or utc_now()
            row = conn.execute("SELECT * FROM borrow_logs WHERE id = ?", (borrow_id,)).fetchone()
            if row is None:
                raise NotFoundError("Borrow record not found")
            record = BorrowRecord.from_row(row)
            if not (actor.is_privileged or actor.owns(record.person_id, record.person_type)):
                logger.info("Return of %s refused for %s %s", borrow_id, actor.user_type, actor.id)
                raise UnauthorizedError("Only the borrower or library staff can return this book")
            if not record.is_open:
                raise AlreadyReturnedError("Book already returned")

            conn.execute(
                "UPDATE borrow_logs SET status = 'Returned', return_date = ? WHERE id = ? AND status = 'Borrowed'",
                (format_timestamp(now), borrow_id),
            )
            updated = conn.execute(
                """
                UPDATE books
                SET borrowed_count = borrowed_count - 1,
                    available_qty = available_qty + 1,
                    status = CASE WHEN available_qty + 1 > 0 THEN 'Available' ELSE 'Unavailable' END
                WHERE id = ? AND borrowed_count > 0
                """,
                (record.book_id,),
            )
            if updated.rowcount != 1:
                logger.error("Book %s has no borrowed copies to return for loan %s", record.book_id, borrow_id)
                raise ConflictError("Book stock does not match the loan being returned")

        record.status = BorrowStatus.RETURNED
        record.return_date = now
        logger.info("Return %s: book %s back from %s %s", borrow_id, record.book_id,
                    record.person_type.value, record.person_id)
        return record

    # ------------------------- Queries ------------------------- #
    def get_record(self, borrow_id: int) -> BorrowRecord:
        with read_connection(self.db_file) as conn:
            row = conn.execute("SELECT * FROM borrow_logs WHERE id = ?", (borrow_id,)).fetchone()
        if row is None:
            raise NotFoundError("Borrow record not found")
        return BorrowRecord.from_row(row)

    def list_overdue(self, now: Optional[datetime] = None) -> List[LoanView]:
        """Open loans whose due date has passed, most overdue first."""
        now = now or utc_now()
        with read_connection(self.db_file) as conn:
            rows = conn.execute(
                _LOAN_VIEW_SELECT + " WHERE bl.status = 'Borrowed' AND bl.due_date < ? ORDER BY bl.due_date ASC, bl.id ASC",
                (format_timestamp(now),),
            ).fetchall()
        return [_loan_view(r, now) for r in rows]

    def loans_for(self, person_id: int, person_type: Union[str, PersonType]) -> List[LoanView]:
        """Books the person currently has out."""
        person_type = parse_person_type(person_type)
        with read_connection(self.db_file) as conn:
            rows = conn.execute(
                _LOAN_VIEW_SELECT
                + " WHERE bl.user_id = ? AND bl.user_type = ? AND bl.status = 'Borrowed'"
                " ORDER BY bl.borrow_date DESC, bl.id DESC",
                (person_id, person_type.value),
            ).fetchall()
        return [_loan_view(r) for r in rows]

    def history_for(self, person_id: int, person_type: Union[str, PersonType], limit: int = 50) -> List[LoanView]:
        person_type = parse_person_type(person_type)
        with read_connection(self.db_file) as conn:
            rows = conn.execute(
                _LOAN_VIEW_SELECT
                + " WHERE bl.user_id = ? AND bl.user_type = ? ORDER BY bl.borrow_date DESC, bl.id DESC LIMIT ?",
                (person_id, person_type.value, limit),
            ).fetchall()
        return [_loan_view(r) for r in rows]

    def borrow_logs(self, status: Optional[str] = None, person_type: Optional[str] = None) -> List[LoanView]:
        """All loans for the staff log view, newest first."""
        query = _LOAN_VIEW_SELECT + " WHERE 1=1"
        params: list = []
        if status:
            try:
                params.append(BorrowStatus(status).value)
            except ValueError:
                raise ValidationError(f"Unknown borrow status: {status}") from None
            query += " AND bl.status = ?"
        if person_type:
            query += " AND bl.user_type = ?"
            params.append(parse_person_type(person_type).value)
        query += " ORDER BY bl.borrow_date DESC, bl.id DESC"
        with read_connection(self.db_file) as conn:
            rows = conn.execute(query, params).fetchall()
        return [_loan_view(r) for r in rows]
