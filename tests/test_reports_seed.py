from datetime import timedelta

from school_library.auth import AuthService
from school_library.catalog import BookCatalog
from school_library.config import settings
from school_library.person import Identity
from school_library.reports import library_stats
from school_library.seed import seed_demo_data


def test_stats_count_loans_and_presence(db_file, catalog, ledger, attendance, book, student, teacher, now):
    catalog.add_book("BK_P002", "Fun with Math", 2)
    ledger.borrow(book.id, Identity.of(student), now=now)
    ledger.borrow(book.id, Identity.of(teacher), now=now + timedelta(days=10))
    attendance.scan("STU_P1", now=now)
    attendance.scan("TCH_P1", now=now)
    attendance.scan("TCH_P1", now=now + timedelta(hours=1))

    stats = library_stats(db_file, now=now + timedelta(days=15))

    assert stats == {
        "totalTitles": 2,
        "totalCopies": 7,
        "copiesOnLoan": 2,
        "openLoans": 2,
        "overdueLoans": 1,
        "students": 1,
        "teachers": 1,
        "checkedIn": 1,
    }


def test_seed_loads_demo_data_once(db_file):
    assert seed_demo_data(db_file) is True
    assert seed_demo_data(db_file) is False

    books = BookCatalog(db_file).list_books()
    assert len(books) == 4
    assert all(b.available_qty == 5 for b in books)

    auth = AuthService(db_file)
    _, admin = auth.login("admin_secondary", settings.default_admin_password, "admin")
    assert admin.school_level == "Secondary"
    auth.login("STU_P1", "student123", "student")
    auth.login("TCH_S1", "teacher123", "teacher")
