from __future__ import annotations

from enum import Enum
from typing import Any, Mapping


class BookStatus(str, Enum):
    AVAILABLE = "Available"
    UNAVAILABLE = "Unavailable"

    @classmethod
    def for_available(cls, available_qty: int) -> "BookStatus":
        return cls.AVAILABLE if available_qty > 0 else cls.UNAVAILABLE


class Book:
    """A catalogued title and its stock counts."""

    def __init__(self, id: int | None, barcode: str, name: str, quantity: int = 0,
                 borrowed_count: int = 0, available_qty: int | None = None,
                 status: BookStatus | str | None = None, school_level: str = "Primary",
                 year: int | None = None, author: str | None = None, publisher: str | None = None,
                 isbn: str | None = None, cover: str | None = None, created_at: str | None = None) -> None:
        self.id = id
        self.barcode = barcode.strip()
        self.name = name.strip()
        self.quantity = quantity
        self.borrowed_count = borrowed_count
        self.available_qty = quantity - borrowed_count if available_qty is None else available_qty
        self.status = BookStatus(status) if status else BookStatus.for_available(self.available_qty)
        self.school_level = school_level
        self.year = year
        self.author = author
        self.publisher = publisher
        self.isbn = isbn
        self.cover = cover
        self.created_at = created_at

    def __str__(self) -> str:
        return f"{self.name} [{self.barcode}] {self.available_qty}/{self.quantity} available"

    @property
    def is_available(self) -> bool:
        return self.status is BookStatus.AVAILABLE

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "barcode": self.barcode,
            "name": self.name,
            "year": self.year,
            "author": self.author,
            "publisher": self.publisher,
            "isbn": self.isbn,
            "quantity": self.quantity,
            "borrowed_count": self.borrowed_count,
            "available_qty": self.available_qty,
            "status": self.status.value,
            "cover": self.cover,
            "school_level": self.school_level,
            "created_at": self.created_at,
        }

    @staticmethod
    def from_row(row: Mapping[str, Any]) -> "Book":
        return Book(
            id=row["id"],
            barcode=row["book_barcode"],
            name=row["book_name"],
            quantity=row["quantity"],
            borrowed_count=row["borrowed_count"],
            available_qty=row["available_qty"],
            status=row["status"],
            school_level=row["school_level"],
            year=row["year"],
            author=row["author"],
            publisher=row["publisher"],
            isbn=row["book_isbn"],
            cover=row["book_cover"],
            created_at=row["created_at"],
        )


class Ebook:
    """A hosted PDF; ``file_path`` is relative to the configured e-book directory."""

    def __init__(self, id: int | None, title: str, file_path: str,
                 category: str | None = None, created_at: str | None = None) -> None:
        self.id = id
        self.title = title.strip()
        self.file_path = file_path
        self.category = category
        self.created_at = created_at

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "category": self.category,
            "created_at": self.created_at,
        }

    @staticmethod
    def from_row(row: Mapping[str, Any]) -> "Ebook":
        return Ebook(
            id=row["id"],
            title=row["title"],
            file_path=row["file_path"],
            category=row["category"],
            created_at=row["created_at"],
        )
