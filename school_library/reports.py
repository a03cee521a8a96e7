from datetime import datetime
from typing import Optional

from .database import format_timestamp, read_connection, utc_now


def library_stats(db_file: Optional[str] = None, now: Optional[datetime] = None) -> dict:
    """Dashboard counters for the staff overview."""
    now = now or utc_now()
    with read_connection(db_file) as conn:
        books = conn.execute(
            "SELECT COUNT(*) AS titles, COALESCE(SUM(quantity), 0) AS copies, "
            "COALESCE(SUM(borrowed_count), 0) AS on_loan FROM books"
        ).fetchone()
        open_loans = conn.execute("SELECT COUNT(*) FROM borrow_logs WHERE status = 'Borrowed'").fetchone()[0]
        overdue = conn.execute(
            "SELECT COUNT(*) FROM borrow_logs WHERE status = 'Borrowed' AND due_date < ?",
            (format_timestamp(now),),
        ).fetchone()[0]
        students = conn.execute("SELECT COUNT(*) FROM students").fetchone()[0]
        teachers = conn.execute("SELECT COUNT(*) FROM teachers").fetchone()[0]
        # a person is inside when their latest entry is an In
        checked_in = conn.execute(
            """
            SELECT COUNT(*) FROM attendance_logs al
            WHERE al.type = 'In' AND al.id = (
                SELECT a2.id FROM attendance_logs a2
                WHERE a2.user_id = al.user_id AND a2.user_type = al.user_type
                ORDER BY a2.timestamp DESC, a2.id DESC LIMIT 1
            )
            """
        ).fetchone()[0]
    return {
        "totalTitles": books["titles"],
        "totalCopies": books["copies"],
        "copiesOnLoan": books["on_loan"],
        "openLoans": open_loans,
        "overdueLoans": overdue,
        "students": students,
        "teachers": teachers,
        "checkedIn": checked_in,
    }
