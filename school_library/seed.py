"""Demo accounts and books for a fresh installation."""

import logging
from typing import Optional

from .catalog import BookCatalog
from .config import settings
from .database import read_connection
from .directory import PersonDirectory
from .person import Role

logger = logging.getLogger(__name__)

STUDENT_PASSWORD = "student123"
TEACHER_PASSWORD = "teacher123"

DEMO_ADMINS = [
    ("HBICS Primary Admin", "admin_primary", "Primary"),
    ("HBICS Secondary Admin", "admin_secondary", "Secondary"),
]
DEMO_STUDENTS = [
    ("Primary Student 1", "P1-A", "Primary", "STU_P1"),
    ("Secondary Student 1", "S1-A", "Secondary", "STU_S1"),
]
DEMO_TEACHERS = [
    ("Primary Teacher", "Primary", "TCH_P1"),
    ("Secondary Teacher", "Secondary", "TCH_S1"),
]
DEMO_BOOKS = [
    ("BK_P001", "Primary Science Vol 1", "Primary", 2023, "Author A", "Pub A", 5, "978-P-1"),
    ("BK_P002", "Fun with Math", "Primary", 2022, "Author B", "Pub B", 5, "978-P-2"),
    ("BK_S001", "Advanced Physics", "Secondary", 2023, "Author X", "Pub X", 5, "978-S-1"),
    ("BK_S002", "World History", "Secondary", 2022, "Author Y", "Pub Y", 5, "978-S-2"),
]


def seed_demo_data(db_file: Optional[str] = None, admin_password: Optional[str] = None) -> bool:
    """Populate an empty store with demo data. Returns False if accounts already exist."""
    directory = PersonDirectory(db_file)
    catalog = BookCatalog(db_file)
    with read_connection(db_file) as conn:
        if conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]:
            logger.info("Store already has accounts, skipping demo data")
            return False

    admin_password = admin_password or settings.default_admin_password
    for name, username, level in DEMO_ADMINS:
        directory.register_admin(name, username, admin_password, Role.ADMIN, level)
    for name, class_name, level, barcode in DEMO_STUDENTS:
        directory.register_student(name, class_name, barcode, STUDENT_PASSWORD, level)
    for name, level, barcode in DEMO_TEACHERS:
        directory.register_teacher(name, barcode, TEACHER_PASSWORD, level)
    for barcode, name, level, year, author, publisher, quantity, isbn in DEMO_BOOKS:
        catalog.add_book(barcode, name, quantity, school_level=level, year=year, author=author,
                         publisher=publisher, isbn=isbn)
    logger.info("Seeded %d admins, %d students, %d teachers, %d books",
                len(DEMO_ADMINS), len(DEMO_STUDENTS), len(DEMO_TEACHERS), len(DEMO_BOOKS))
    return True
