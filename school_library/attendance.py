"""Attendance toggle: barcode check-in/check-out at the library door.

A person's next entry is always the opposite of their last one, so their
log reads In, Out, In, Out...  The read of the last entry and the append
happen in one write transaction; two simultaneous scans of the same card
produce an In followed by an Out, never two Ins.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional, Union

from .database import format_timestamp, initialize_database, read_connection, transaction, utc_now
from .directory import fetch_person, fetch_person_by_barcode, parse_person_type
from .errors import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from .person import Identity, Person, PersonType
from .records import AttendanceRecord, AttendanceType
from .validators import BarcodeValidator, require_school_level

logger = logging.getLogger(__name__)


@dataclass
class ScanResult:
    person: Person
    record: AttendanceRecord

    @property
    def action(self) -> str:
        return self.record.type.action

    def to_dict(self) -> dict:
        entry = self.record.type
        return {
            "message": "Checked in successfully" if entry is AttendanceType.IN else "Checked out successfully",
            "action": entry.value,
            "timestamp": format_timestamp(self.record.timestamp),
            "user": self.person.to_dict(),
        }


def _last_entry(conn: sqlite3.Connection, person_id: int, person_type: PersonType) -> Optional[AttendanceRecord]:
    row = conn.execute(
        "SELECT * FROM attendance_logs WHERE user_id = ? AND user_type = ? ORDER BY timestamp DESC, id DESC LIMIT 1",
        (person_id, person_type.value),
    ).fetchone()
    return AttendanceRecord.from_row(row) if row else None


def _append(conn: sqlite3.Connection, person: Person, entry: AttendanceType, now: datetime) -> AttendanceRecord:
    cursor = conn.execute(
        "INSERT INTO attendance_logs (user_id, user_type, timestamp, type) VALUES (?, ?, ?, ?)",
        (person.id, person.person_type.value, format_timestamp(now), entry.value),
    )
    return AttendanceRecord(cursor.lastrowid, person.id, person.person_type, now, entry)


def _as_date(value: Union[str, date, None], what: str) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value.strftime("%Y-%m-%d")
    try:
        return date.fromisoformat(value).isoformat()
    except ValueError:
        raise ValidationError(f"{what} must be a YYYY-MM-DD date") from None


class AttendanceToggle:
    def __init__(self, db_file: Optional[str] = None) -> None:
        self.db_file = db_file
        initialize_database(db_file)

    def scan(self, barcode: str, now: Optional[datetime] = None) -> ScanResult:
        """Record the next attendance entry for the card ``barcode``."""
        barcode = BarcodeValidator.require(barcode, "Barcode")
        with transaction(self.db_file) as conn:
            now = now or utc_now()
            person = fetch_person_by_barcode(conn, barcode)
            if person is None:
                logger.info("Scan of unknown barcode %s", barcode)
                raise NotFoundError("User not found")
            last = _last_entry(conn, person.id, person.person_type)
            record = _append(conn, person, AttendanceType.after(last.type if last else None), now)
        logger.info("%s: %s %s (%s)", record.type.action, person.person_type.value, person.id, person.name)
        return ScanResult(person, record)

    def check_in(self, actor: Identity, now: Optional[datetime] = None) -> AttendanceRecord:
        return self._set_state(actor, AttendanceType.IN, now)

    def check_out(self, actor: Identity, now: Optional[datetime] = None) -> AttendanceRecord:
        return self._set_state(actor, AttendanceType.OUT, now)

    def _set_state(self, actor: Identity, entry: AttendanceType, now: Optional[datetime]) -> AttendanceRecord:
        if actor.person_type is None:
            raise UnauthorizedError("Only students and teachers have attendance")
        with transaction(self.db_file) as conn:
            now = now or utc_now()
            person = fetch_person(conn, actor.person_type, actor.id)
            if person is None:
                raise NotFoundError("User not found")
            last = _last_entry(conn, person.id, person.person_type)
            if AttendanceType.after(last.type if last else None) is not entry:
                raise ConflictError("Already checked in" if entry is AttendanceType.IN else "Not checked in")
            record = _append(conn, person, entry, now)
        logger.info("%s: %s %s", entry.action, person.person_type.value, person.id)
        return record

    def status(self, person_id: int, person_type: Union[str, PersonType]) -> dict:
        person_type = parse_person_type(person_type)
        with read_connection(self.db_file) as conn:
            last = _last_entry(conn, person_id, person_type)
        return {
            "isCheckedIn": last is not None and last.type is AttendanceType.IN,
            "lastLog": last.to_dict() if last else None,
        }

    def logs(self, start_date: Union[str, date, None] = None, end_date: Union[str, date, None] = None,
             person_type: Optional[str] = None, school_level: Optional[str] = None) -> List[dict]:
        """Attendance entries joined with the person, newest first."""
        query = """
            SELECT al.*,
                   COALESCE(s.name, t.name) AS user_name,
                   COALESCE(s.barcode, t.barcode) AS barcode,
                   COALESCE(s.school_level, t.school_level) AS school_level,
                   s.class AS class_name
            FROM attendance_logs al
            LEFT JOIN students s ON al.user_type = 'student' AND al.user_id = s.id
            LEFT JOIN teachers t ON al.user_type = 'teacher' AND al.user_id = t.id
            WHERE COALESCE(s.name, t.name) IS NOT NULL
        """
        params: list = []
        start = _as_date(start_date, "Start date")
        end = _as_date(end_date, "End date")
        if start:
            query += " AND substr(al.timestamp, 1, 10) >= ?"
            params.append(start)
        if end:
            query += " AND substr(al.timestamp, 1, 10) <= ?"
            params.append(end)
        if person_type:
            query += " AND al.user_type = ?"
            params.append(parse_person_type(person_type).value)
        if school_level:
            query += " AND COALESCE(s.school_level, t.school_level) = ?"
            params.append(require_school_level(school_level))
        query += " ORDER BY al.timestamp DESC, al.id DESC"

        with read_connection(self.db_file) as conn:
            rows = conn.execute(query, params).fetchall()
        entries = []
        for row in rows:
            record = AttendanceRecord.from_row(row)
            data = record.to_dict()
            data.update(
                action=record.type.action,
                user_name=row["user_name"],
                barcode=row["barcode"],
                school_level=row["school_level"],
                class_name=row["class_name"],
            )
            entries.append(data)
        return entries

    def my_logs(self, person_id: int, person_type: Union[str, PersonType], limit: int = 50) -> List[AttendanceRecord]:
        person_type = parse_person_type(person_type)
        with read_connection(self.db_file) as conn:
            rows = conn.execute(
                "SELECT * FROM attendance_logs WHERE user_id = ? AND user_type = ? "
                "ORDER BY timestamp DESC, id DESC LIMIT ?",
                (person_id, person_type.value, limit),
            ).fetchall()
        return [AttendanceRecord.from_row(r) for r in rows]
