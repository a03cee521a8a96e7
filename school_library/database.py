import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

from .config import settings

logger = logging.getLogger(__name__)

# Default database file; components take an explicit db_file and fall back to this.
DATABASE_FILE = settings.db_file

SCHOOL_LEVELS = ("Primary", "Secondary")


def resolve_db_file(db_file: Optional[str] = None) -> str:
    return db_file or DATABASE_FILE


def get_db_connection(db_file: Optional[str] = None) -> sqlite3.Connection:
    """Open a connection to the SQLite store.

    Connections run in autocommit mode; multi-statement writes go through
    ``transaction()`` which manages BEGIN/COMMIT explicitly.
    """
    conn = sqlite3.connect(resolve_db_file(db_file), timeout=30, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def transaction(db_file: Optional[str] = None) -> Iterator[sqlite3.Connection]:
    """Run one logical operation as a single write transaction.

    BEGIN IMMEDIATE takes the database write lock before the first read, so
    concurrent read-then-write operations are serialized.
    """
    conn = get_db_connection(db_file)
    try:
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")
    finally:
        conn.close()


@contextmanager
def read_connection(db_file: Optional[str] = None) -> Iterator[sqlite3.Connection]:
    conn = get_db_connection(db_file)
    try:
        yield conn
    finally:
        conn.close()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Fixed-width ISO-8601 UTC text, so string order matches time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def create_tables(db_file: Optional[str] = None) -> None:
    """Create the tables and indexes if they do not exist yet."""
    conn = get_db_connection(db_file)
    try:
        conn.execute("PRAGMA journal_mode=WAL")
        cursor = conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                role TEXT NOT NULL CHECK(role IN ('Admin', 'Librarian')),
                school_level TEXT NOT NULL CHECK(school_level IN ('Primary', 'Secondary')),
                username TEXT UNIQUE NOT NULL,
                password_hash TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS students (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                class TEXT NOT NULL,
                school_level TEXT NOT NULL CHECK(school_level IN ('Primary', 'Secondary')),
                barcode TEXT UNIQUE NOT NULL,
                password_hash TEXT NOT NULL,
                photo TEXT,
                created_at TEXT NOT NULL
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS teachers (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                school_level TEXT NOT NULL CHECK(school_level IN ('Primary', 'Secondary')),
                barcode TEXT UNIQUE NOT NULL,
                password_hash TEXT NOT NULL,
                photo TEXT,
                created_at TEXT NOT NULL
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS books (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                book_barcode TEXT UNIQUE NOT NULL,
                book_name TEXT NOT NULL,
                school_level TEXT NOT NULL CHECK(school_level IN ('Primary', 'Secondary')),
                year INTEGER,
                author TEXT,
                publisher TEXT,
                quantity INTEGER NOT NULL DEFAULT 0 CHECK(quantity >= 0),
                borrowed_count INTEGER NOT NULL DEFAULT 0 CHECK(borrowed_count >= 0),
                available_qty INTEGER NOT NULL DEFAULT 0 CHECK(available_qty >= 0),
                status TEXT NOT NULL DEFAULT 'Available' CHECK(status IN ('Available', 'Unavailable')),
                book_isbn TEXT,
                book_cover TEXT,
                created_at TEXT NOT NULL
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS borrow_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                user_type TEXT NOT NULL CHECK(user_type IN ('student', 'teacher')),
                book_id INTEGER NOT NULL,
                borrow_date TEXT NOT NULL,
                due_date TEXT NOT NULL,
                return_date TEXT,
                status TEXT NOT NULL DEFAULT 'Borrowed' CHECK(status IN ('Borrowed', 'Returned'))
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS attendance_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                user_type TEXT NOT NULL CHECK(user_type IN ('student', 'teacher')),
                timestamp TEXT NOT NULL,
                type TEXT NOT NULL CHECK(type IN ('In', 'Out'))
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS ebooks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                file_path TEXT NOT NULL,
                category TEXT,
                created_at TEXT NOT NULL
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS ebook_read_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                user_type TEXT NOT NULL,
                ebook_id INTEGER NOT NULL,
                timestamp TEXT NOT NULL,
                FOREIGN KEY (ebook_id) REFERENCES ebooks(id) ON DELETE CASCADE
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS auth_tokens (
                token TEXT PRIMARY KEY,
                user_id INTEGER NOT NULL,
                user_type TEXT NOT NULL CHECK(user_type IN ('admin', 'student', 'teacher')),
                created_at TEXT NOT NULL,
                expires_at TEXT NOT NULL
            )
        """)

        # At most one open loan per (person, book).
        cursor.execute("""
            CREATE UNIQUE INDEX IF NOT EXISTS idx_borrow_logs_open
            ON borrow_logs(user_id, user_type, book_id) WHERE status = 'Borrowed'
        """)
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_borrow_logs_status_due ON borrow_logs(status, due_date)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_borrow_logs_book ON borrow_logs(book_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_attendance_person ON attendance_logs(user_id, user_type, timestamp)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_school ON books(school_level)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_students_school ON students(school_level)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_teachers_school ON teachers(school_level)")
    finally:
        conn.close()


def initialize_database(db_file: Optional[str] = None) -> None:
    """Create the schema for the given store if needed."""
    create_tables(db_file)
    logger.debug("Database ready at %s", resolve_db_file(db_file))
