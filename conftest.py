from datetime import datetime, timezone

import pytest

from school_library.attendance import AttendanceToggle
from school_library.auth import AuthService
from school_library.catalog import BookCatalog
from school_library.config import settings
from school_library.directory import PersonDirectory
from school_library.ledger import InventoryLedger
from school_library.person import Role


@pytest.fixture(autouse=True)
def fast_hashing(monkeypatch):
    # minimum bcrypt cost keeps account setup quick
    monkeypatch.setattr(settings, "bcrypt_rounds", 4)


@pytest.fixture
def db_file(tmp_path, request):
    # unique database file per test
    return str(tmp_path / f"test_{request.node.originalname}.db")


@pytest.fixture
def now():
    return datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def catalog(db_file):
    return BookCatalog(db_file)


@pytest.fixture
def directory(db_file):
    return PersonDirectory(db_file)


@pytest.fixture
def ledger(db_file):
    return InventoryLedger(db_file)


@pytest.fixture
def attendance(db_file):
    return AttendanceToggle(db_file)


@pytest.fixture
def auth(db_file):
    return AuthService(db_file)


@pytest.fixture
def book(catalog):
    return catalog.add_book("BK_P001", "Primary Science Vol 1", 5, year=2023, author="Author A",
                            publisher="Pub A", isbn="978-P-1")


@pytest.fixture
def student(directory):
    return directory.register_student("Ada Lovelace", "P1-A", "STU_P1", "student123")


@pytest.fixture
def other_student(directory):
    return directory.register_student("Grace Hopper", "P1-B", "STU_P2", "student123")


@pytest.fixture
def teacher(directory):
    return directory.register_teacher("Alan Turing", "TCH_P1", "teacher123")


@pytest.fixture
def admin(directory):
    return directory.register_admin("Primary Admin", "admin_primary", "admin123", Role.ADMIN)
