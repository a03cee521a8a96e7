import logging
import sqlite3
from typing import List, Optional

from .book import Book, BookStatus
from .database import format_timestamp, initialize_database, read_connection, transaction, utc_now
from .errors import ConflictError, NotFoundError, ValidationError
from .validators import BarcodeValidator, TextValidator, require_quantity, require_school_level

logger = logging.getLogger(__name__)

# Columns an administrative edit may touch, keyed by Book attribute.
_EDITABLE = {
    "barcode": "book_barcode",
    "name": "book_name",
    "year": "year",
    "author": "author",
    "publisher": "publisher",
    "isbn": "book_isbn",
    "cover": "book_cover",
}


class BookCatalog:
    """Administrative book records: create, edit, look up and delete titles.

    Stock counts (``borrowed_count``/``available_qty``) are only changed here
    when the total quantity is edited; borrowing and returning go through the
    ledger.
    """

    def __init__(self, db_file: Optional[str] = None) -> None:
        self.db_file = db_file
        initialize_database(db_file)

    # ------------------------- Core operations ------------------------- #
    def add_book(self, barcode: str, name: str, quantity: int = 0, *, school_level: str = "Primary",
                 year: Optional[int] = None, author: Optional[str] = None, publisher: Optional[str] = None,
                 isbn: Optional[str] = None, cover: Optional[str] = None) -> Book:
        """Catalogue a new title with ``quantity`` copies, all available."""
        barcode = BarcodeValidator.require(barcode, "Book barcode")
        name = TextValidator.require_name(name, "Book name")
        quantity = require_quantity(quantity)
        require_school_level(school_level)
        status = BookStatus.for_available(quantity)
        created_at = format_timestamp(utc_now())

        try:
            with transaction(self.db_file) as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO books (book_barcode, book_name, school_level, year, author, publisher,
                                       quantity, borrowed_count, available_qty, status, book_isbn,
                                       book_cover, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?, ?, ?, ?, ?)
                    """,
                    (barcode, name, school_level, year, author, publisher, quantity, quantity,
                     status.value, isbn, cover, created_at),
                )
                book_id = cursor.lastrowid
        except sqlite3.IntegrityError as e:
            raise ConflictError(f"Book barcode {barcode} already exists") from e

        logger.info("Catalogued book %s (%s) with %d copies", book_id, barcode, quantity)
        return Book(book_id, barcode, name, quantity, 0, quantity, status, school_level,
                    year, author, publisher, isbn, cover, created_at)

    def update_book(self, book_id: int, **changes) -> Book:
        """Apply a partial edit. ``quantity`` re-derives availability and status."""
        unknown = set(changes) - set(_EDITABLE) - {"quantity"}
        if unknown:
            raise ValidationError(f"Unknown book fields: {', '.join(sorted(unknown))}")
        if "barcode" in changes:
            changes["barcode"] = BarcodeValidator.require(changes["barcode"], "Book barcode")
        if "name" in changes:
            changes["name"] = TextValidator.require_name(changes["name"], "Book name")

        try:
            with transaction(self.db_file) as conn:
                row = conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
                if row is None:
                    raise NotFoundError("Book not found")

                assignments = []
                params: list = []
                for attr, column in _EDITABLE.items():
                    if attr in changes:
                        assignments.append(f"{column} = ?")
                        params.append(changes[attr])

                if "quantity" in changes:
                    quantity = require_quantity(changes["quantity"])
                    if quantity < row["borrowed_count"]:
                        raise ConflictError(
                            f"Quantity cannot be lower than the {row['borrowed_count']} copies currently borrowed"
                        )
                    available = quantity - row["borrowed_count"]
                    assignments += ["quantity = ?", "available_qty = ?", "status = ?"]
                    params += [quantity, available, BookStatus.for_available(available).value]

                if assignments:
                    conn.execute(f"UPDATE books SET {', '.join(assignments)} WHERE id = ?", (*params, book_id))
                updated = conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
        except sqlite3.IntegrityError as e:
            raise ConflictError("Book barcode already exists") from e

        logger.info("Updated book %s: %s", book_id, ", ".join(sorted(changes)) or "no changes")
        return Book.from_row(updated)

    def delete_book(self, book_id: int) -> None:
        """Remove a title permanently; refused while any copy is on loan."""
        with transaction(self.db_file) as conn:
            row = conn.execute("SELECT id FROM books WHERE id = ?", (book_id,)).fetchone()
            if row is None:
                raise NotFoundError("Book not found")
            open_loans = conn.execute(
                "SELECT COUNT(*) FROM borrow_logs WHERE book_id = ? AND status = 'Borrowed'", (book_id,)
            ).fetchone()[0]
            if open_loans:
                raise ConflictError("Cannot delete book with active borrows")
            conn.execute("DELETE FROM books WHERE id = ?", (book_id,))
        logger.info("Deleted book %s", book_id)

    # ------------------------- Lookups ------------------------- #
    def get_book(self, book_id: int, school_level: Optional[str] = None) -> Book:
        with read_connection(self.db_file) as conn:
            row = conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
        if row is None or (school_level and row["school_level"] != school_level):
            raise NotFoundError("Book not found")
        return Book.from_row(row)

    def find_by_barcode(self, barcode: str, school_level: Optional[str] = None) -> Book:
        barcode = BarcodeValidator.normalize_barcode(barcode)
        with read_connection(self.db_file) as conn:
            row = conn.execute("SELECT * FROM books WHERE book_barcode = ?", (barcode,)).fetchone()
        if row is None or (school_level and row["school_level"] != school_level):
            raise NotFoundError("Book not found")
        return Book.from_row(row)

    def list_books(self, search: Optional[str] = None, status: Optional[str] = None,
                   school_level: Optional[str] = None) -> List[Book]:
        """List titles ordered by name, optionally filtered."""
        query = "SELECT * FROM books WHERE 1=1"
        params: list = []
        if school_level:
            query += " AND school_level = ?"
            params.append(school_level)
        if search:
            term = f"%{search.strip()}%"
            query += " AND (book_name LIKE ? OR author LIKE ? OR book_isbn LIKE ? OR book_barcode LIKE ?)"
            params += [term, term, term, term]
        if status:
            try:
                status = BookStatus(status)
            except ValueError:
                raise ValidationError(f"Unknown book status: {status}") from None
            query += " AND status = ?"
            params.append(status.value)
        query += " ORDER BY book_name COLLATE NOCASE ASC"

        with read_connection(self.db_file) as conn:
            rows = conn.execute(query, params).fetchall()
        return [Book.from_row(r) for r in rows]
