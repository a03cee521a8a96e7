"""E-book shelf: hosted PDFs and a log of who opened them."""

import logging
import os
from typing import List, Optional

from .book import Ebook
from .config import settings
from .database import format_timestamp, initialize_database, read_connection, transaction, utc_now
from .errors import NotFoundError, UnauthorizedError, ValidationError
from .person import Identity
from .validators import TextValidator

logger = logging.getLogger(__name__)


class EbookShelf:
    def __init__(self, db_file: Optional[str] = None, ebook_dir: Optional[str] = None) -> None:
        self.db_file = db_file
        self.ebook_dir = ebook_dir or settings.ebook_dir
        initialize_database(db_file)

    def path_for(self, ebook: Ebook) -> str:
        return os.path.join(self.ebook_dir, ebook.file_path)

    def add_ebook(self, title: str, file_path: str, category: Optional[str] = None) -> Ebook:
        """Register a PDF already placed under the e-book directory."""
        title = TextValidator.require_name(title, "Title")
        file_path = (file_path or "").strip()
        if not file_path:
            raise ValidationError("File path is required")
        if os.path.isabs(file_path) or ".." in file_path.replace("\\", "/").split("/"):
            raise ValidationError("File path must be relative to the e-book directory")
        if not file_path.lower().endswith(".pdf"):
            raise ValidationError("Only PDF files are allowed")
        category = category.strip() if category else None
        created_at = format_timestamp(utc_now())
        with transaction(self.db_file) as conn:
            cursor = conn.execute(
                "INSERT INTO ebooks (title, file_path, category, created_at) VALUES (?, ?, ?, ?)",
                (title, file_path, category, created_at),
            )
            ebook_id = cursor.lastrowid
        logger.info("Added e-book %s: %s", ebook_id, title)
        return Ebook(ebook_id, title, file_path, category, created_at)

    def list_ebooks(self, category: Optional[str] = None, search: Optional[str] = None) -> List[Ebook]:
        query, params = "SELECT * FROM ebooks WHERE 1=1", []
        if category:
            query += " AND category = ?"
            params.append(category)
        if search:
            query += " AND title LIKE ?"
            params.append(f"%{search.strip()}%")
        query += " ORDER BY created_at DESC, id DESC"
        with read_connection(self.db_file) as conn:
            rows = conn.execute(query, params).fetchall()
        return [Ebook.from_row(r) for r in rows]

    def get_ebook(self, ebook_id: int) -> Ebook:
        with read_connection(self.db_file) as conn:
            row = conn.execute("SELECT * FROM ebooks WHERE id = ?", (ebook_id,)).fetchone()
        if row is None:
            raise NotFoundError("E-book not found")
        return Ebook.from_row(row)

    def delete_ebook(self, ebook_id: int) -> None:
        """Remove the e-book, its read log and the file on disk."""
        with transaction(self.db_file) as conn:
            row = conn.execute("SELECT * FROM ebooks WHERE id = ?", (ebook_id,)).fetchone()
            if row is None:
                raise NotFoundError("E-book not found")
            conn.execute("DELETE FROM ebooks WHERE id = ?", (ebook_id,))
        path = self.path_for(Ebook.from_row(row))
        if os.path.exists(path):
            os.remove(path)
        logger.info("Deleted e-book %s", ebook_id)

    def open_for_reading(self, ebook_id: int, reader: Identity) -> str:
        """Return the PDF path for ``reader`` and log the read."""
        if reader.person_type is None and not reader.is_privileged:
            raise UnauthorizedError("Not allowed to read e-books")
        ebook = self.get_ebook(ebook_id)
        path = self.path_for(ebook)
        if not os.path.isfile(path):
            logger.error("E-book %s file missing at %s", ebook_id, path)
            raise NotFoundError("E-book file not found")
        with transaction(self.db_file) as conn:
            conn.execute(
                "INSERT INTO ebook_read_logs (user_id, user_type, ebook_id, timestamp) VALUES (?, ?, ?, ?)",
                (reader.id, reader.user_type, ebook_id, format_timestamp(utc_now())),
            )
        logger.info("E-book %s opened by %s %s", ebook_id, reader.user_type, reader.id)
        return path

    def read_logs(self, limit: int = 100) -> List[dict]:
        with read_connection(self.db_file) as conn:
            rows = conn.execute(
                """
                SELECT erl.*, e.title,
                       COALESCE(s.name, t.name, u.name) AS user_name
                FROM ebook_read_logs erl
                JOIN ebooks e ON erl.ebook_id = e.id
                LEFT JOIN students s ON erl.user_type = 'student' AND erl.user_id = s.id
                LEFT JOIN teachers t ON erl.user_type = 'teacher' AND erl.user_id = t.id
                LEFT JOIN users u ON erl.user_type = 'admin' AND erl.user_id = u.id
                ORDER BY erl.timestamp DESC, erl.id DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [
            {
                "id": r["id"],
                "ebook_id": r["ebook_id"],
                "title": r["title"],
                "user_id": r["user_id"],
                "user_type": r["user_type"],
                "user_name": r["user_name"],
                "timestamp": r["timestamp"],
            }
            for r in rows
        ]
