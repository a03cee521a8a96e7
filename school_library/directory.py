import logging
import sqlite3
from typing import List, Optional, Union

from .auth import hash_password
from .database import format_timestamp, initialize_database, read_connection, transaction, utc_now
from .errors import ConflictError, NotFoundError, ValidationError
from .person import Admin, Person, PersonType, Role, Student, Teacher, person_from_row
from .validators import BarcodeValidator, TextValidator, require_password, require_school_level

logger = logging.getLogger(__name__)

Account = Union[Person, Admin]


# Helpers shared with the ledger and the attendance toggle, which call them
# inside their own transactions.
def fetch_person(conn: sqlite3.Connection, person_type: PersonType, person_id: int) -> Optional[Person]:
    row = conn.execute(f"SELECT * FROM {person_type.table} WHERE id = ?", (person_id,)).fetchone()
    return person_from_row(person_type, row) if row else None


def fetch_person_by_barcode(conn: sqlite3.Connection, barcode: str) -> Optional[Person]:
    """Students are matched before teachers."""
    barcode = BarcodeValidator.normalize_barcode(barcode)
    for person_type in (PersonType.STUDENT, PersonType.TEACHER):
        row = conn.execute(f"SELECT * FROM {person_type.table} WHERE barcode = ?", (barcode,)).fetchone()
        if row:
            return person_from_row(person_type, row)
    return None


def parse_staff_role(value: Union[str, Role]) -> Role:
    try:
        role = Role(value)
    except ValueError:
        role = None
    if role is None or not role.is_privileged:
        raise ValidationError("Staff role must be Admin or Librarian")
    return role


def parse_person_type(value: Union[str, PersonType]) -> PersonType:
    try:
        return PersonType(value)
    except ValueError:
        raise ValidationError("Invalid user type") from None


class PersonDirectory:
    """Students, teachers and staff accounts."""

    def __init__(self, db_file: Optional[str] = None) -> None:
        self.db_file = db_file
        initialize_database(db_file)

    # ------------------------- Registration ------------------------- #
    def register_student(self, name: str, class_name: str, barcode: str, password: str,
                         school_level: str = "Primary", photo: Optional[str] = None) -> Student:
        name = TextValidator.require_name(name)
        if not class_name or not class_name.strip():
            raise ValidationError("Class is required for students")
        person_id, barcode, created_at = self._insert_person(
            PersonType.STUDENT, name, barcode, password, school_level, photo, class_name=class_name.strip()
        )
        return Student(person_id, name, barcode, school_level, photo, created_at=created_at,
                       class_name=class_name.strip())

    def register_teacher(self, name: str, barcode: str, password: str,
                         school_level: str = "Primary", photo: Optional[str] = None) -> Teacher:
        name = TextValidator.require_name(name)
        person_id, barcode, created_at = self._insert_person(
            PersonType.TEACHER, name, barcode, password, school_level, photo
        )
        return Teacher(person_id, name, barcode, school_level, photo, created_at=created_at)

    def register_admin(self, name: str, username: str, password: str, role: Role = Role.ADMIN,
                       school_level: str = "Primary") -> Admin:
        name = TextValidator.require_name(name)
        username = (username or "").strip()
        if not username:
            raise ValidationError("Username is required for admin users")
        role = parse_staff_role(role)
        require_school_level(school_level)
        password_hash = hash_password(require_password(password))
        created_at = format_timestamp(utc_now())
        try:
            with transaction(self.db_file) as conn:
                cursor = conn.execute(
                    "INSERT INTO users (name, role, school_level, username, password_hash, created_at) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (name, role.value, school_level, username, password_hash, created_at),
                )
                admin_id = cursor.lastrowid
        except sqlite3.IntegrityError as e:
            raise ConflictError("Username already exists") from e
        logger.info("Registered %s account %s (%s)", role.value, admin_id, username)
        return Admin(admin_id, name, username, role, school_level, password_hash, created_at)

    def _insert_person(self, person_type: PersonType, name: str, barcode: str, password: str,
                       school_level: str, photo: Optional[str], class_name: Optional[str] = None):
        barcode = BarcodeValidator.require(barcode)
        require_school_level(school_level)
        password_hash = hash_password(require_password(password))
        created_at = format_timestamp(utc_now())
        columns = ["name", "school_level", "barcode", "password_hash", "photo", "created_at"]
        values = [name, school_level, barcode, password_hash, photo, created_at]
        if person_type is PersonType.STUDENT:
            columns.append("class")
            values.append(class_name)
        try:
            with transaction(self.db_file) as conn:
                cursor = conn.execute(
                    f"INSERT INTO {person_type.table} ({', '.join(columns)}) "
                    f"VALUES ({', '.join('?' for _ in columns)})",
                    values,
                )
                person_id = cursor.lastrowid
        except sqlite3.IntegrityError as e:
            raise ConflictError(f"Barcode {barcode} already exists") from e
        logger.info("Registered %s %s (%s)", person_type.value, person_id, barcode)
        return person_id, barcode, created_at

    # ------------------------- Lookups ------------------------- #
    def get_person(self, person_type: Union[str, PersonType], person_id: int) -> Person:
        person_type = parse_person_type(person_type)
        with read_connection(self.db_file) as conn:
            person = fetch_person(conn, person_type, person_id)
        if person is None:
            raise NotFoundError("User not found")
        return person

    def get_admin(self, admin_id: int) -> Admin:
        with read_connection(self.db_file) as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (admin_id,)).fetchone()
        if row is None:
            raise NotFoundError("User not found")
        return Admin.from_row(row)

    def get_account(self, user_type: str, account_id: int, school_level: Optional[str] = None) -> Account:
        if user_type == "admin":
            account = self.get_admin(account_id)
        else:
            account = self.get_person(user_type, account_id)
        if school_level and account.school_level != school_level:
            raise NotFoundError("User not found")
        return account

    def find_by_barcode(self, barcode: str) -> Person:
        with read_connection(self.db_file) as conn:
            person = fetch_person_by_barcode(conn, barcode)
        if person is None:
            raise NotFoundError("User not found")
        return person

    def list_people(self, user_type: Optional[str] = None, school_level: Optional[str] = None) -> List[Account]:
        """Admins, then students, then teachers, each ordered by name."""
        if user_type and user_type not in ("admin", "student", "teacher"):
            raise ValidationError("Invalid user type")
        where, params = "", []
        if school_level:
            where, params = " WHERE school_level = ?", [school_level]

        people: List[Account] = []
        with read_connection(self.db_file) as conn:
            if not user_type or user_type == "admin":
                rows = conn.execute(f"SELECT * FROM users{where} ORDER BY name", params).fetchall()
                people.extend(Admin.from_row(r) for r in rows)
            for person_type in (PersonType.STUDENT, PersonType.TEACHER):
                if not user_type or user_type == person_type.value:
                    rows = conn.execute(f"SELECT * FROM {person_type.table}{where} ORDER BY name", params).fetchall()
                    people.extend(person_from_row(person_type, r) for r in rows)
        return people

    # ------------------------- Maintenance ------------------------- #
    def update_person(self, user_type: str, account_id: int, **changes) -> Account:
        """Partial update of an account; ``password`` is re-hashed."""
        if user_type == "admin":
            allowed = {"name": "name", "username": "username", "role": "role", "password": "password_hash"}
            table = "users"
        else:
            person_type = parse_person_type(user_type)
            allowed = {"name": "name", "barcode": "barcode", "photo": "photo", "password": "password_hash"}
            if person_type is PersonType.STUDENT:
                allowed["class_name"] = "class"
            table = person_type.table

        unknown = set(changes) - set(allowed)
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

        assignments, params = [], []
        for attr, value in changes.items():
            if attr == "name":
                value = TextValidator.require_name(value)
            elif attr == "barcode":
                value = BarcodeValidator.require(value)
            elif attr == "password":
                value = hash_password(require_password(value))
            elif attr == "role":
                value = parse_staff_role(value).value
            assignments.append(f"{allowed[attr]} = ?")
            params.append(value)

        try:
            with transaction(self.db_file) as conn:
                if conn.execute(f"SELECT id FROM {table} WHERE id = ?", (account_id,)).fetchone() is None:
                    raise NotFoundError("User not found")
                if assignments:
                    conn.execute(f"UPDATE {table} SET {', '.join(assignments)} WHERE id = ?", (*params, account_id))
        except sqlite3.IntegrityError as e:
            raise ConflictError("Username or barcode already exists") from e

        logger.info("Updated %s %s: %s", user_type, account_id, ", ".join(sorted(changes)) or "no changes")
        return self.get_account(user_type, account_id)

    def delete_person(self, user_type: str, account_id: int) -> None:
        """Remove an account; students and teachers with books on loan are kept."""
        with transaction(self.db_file) as conn:
            if user_type == "admin":
                table = "users"
            else:
                table = parse_person_type(user_type).table
            if conn.execute(f"SELECT id FROM {table} WHERE id = ?", (account_id,)).fetchone() is None:
                raise NotFoundError("User not found")
            if user_type != "admin":
                open_loans = conn.execute(
                    "SELECT COUNT(*) FROM borrow_logs WHERE user_id = ? AND user_type = ? AND status = 'Borrowed'",
                    (account_id, user_type),
                ).fetchone()[0]
                if open_loans:
                    raise ConflictError("Cannot delete a user with books still on loan")
            conn.execute(f"DELETE FROM {table} WHERE id = ?", (account_id,))
            conn.execute("DELETE FROM auth_tokens WHERE user_id = ? AND user_type = ?", (account_id, user_type))
        logger.info("Deleted %s %s", user_type, account_id)
