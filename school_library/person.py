"""People known to the library.

Borrowers and attendance subjects are a single tagged type:
``Person = Student | Teacher``.  Both share the identity fields the ledger
and the attendance toggle need (id, name, barcode, person_type), so those
components never branch on the concrete class.  Staff accounts (``Admin``)
live apart and never borrow or check in.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Mapping, Optional, Union


class PersonType(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"

    @property
    def table(self) -> str:
        return "students" if self is PersonType.STUDENT else "teachers"


class Role(str, Enum):
    ADMIN = "Admin"
    LIBRARIAN = "Librarian"
    TEACHER = "Teacher"
    STUDENT = "Student"

    @property
    def is_privileged(self) -> bool:
        return self in (Role.ADMIN, Role.LIBRARIAN)


@dataclass
class Person:
    id: int
    name: str
    barcode: str
    school_level: str = "Primary"
    photo: Optional[str] = None
    password_hash: str = field(default="", repr=False)
    created_at: Optional[str] = None

    person_type: ClassVar[PersonType]
    role: ClassVar[Role]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "barcode": self.barcode,
            "photo": self.photo,
            "school_level": self.school_level,
            "user_type": self.person_type.value,
            "created_at": self.created_at,
        }


@dataclass
class Student(Person):
    class_name: str = ""

    person_type: ClassVar[PersonType] = PersonType.STUDENT
    role: ClassVar[Role] = Role.STUDENT

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["class"] = self.class_name
        return data


@dataclass
class Teacher(Person):
    person_type: ClassVar[PersonType] = PersonType.TEACHER
    role: ClassVar[Role] = Role.TEACHER


Borrower = Union[Student, Teacher]


def person_from_row(person_type: PersonType, row: Mapping[str, Any]) -> Person:
    common = dict(
        id=row["id"],
        name=row["name"],
        barcode=row["barcode"],
        school_level=row["school_level"],
        photo=row["photo"],
        password_hash=row["password_hash"],
        created_at=row["created_at"],
    )
    if person_type is PersonType.STUDENT:
        return Student(class_name=row["class"], **common)
    return Teacher(**common)


@dataclass
class Admin:
    id: int
    name: str
    username: str
    role: Role = Role.ADMIN
    school_level: str = "Primary"
    password_hash: str = field(default="", repr=False)
    created_at: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "username": self.username,
            "role": self.role.value,
            "school_level": self.school_level,
            "user_type": "admin",
            "created_at": self.created_at,
        }

    @staticmethod
    def from_row(row: Mapping[str, Any]) -> "Admin":
        return Admin(
            id=row["id"],
            name=row["name"],
            username=row["username"],
            role=Role(row["role"]),
            school_level=row["school_level"],
            password_hash=row["password_hash"],
            created_at=row["created_at"],
        )


@dataclass(frozen=True)
class Identity:
    """The verified caller handed to the core by the request gateway."""

    id: int
    name: str
    role: Role
    user_type: str  # admin, student or teacher
    school_level: str = "Primary"

    @property
    def is_privileged(self) -> bool:
        return self.role.is_privileged

    @property
    def person_type(self) -> Optional[PersonType]:
        if self.user_type in (PersonType.STUDENT.value, PersonType.TEACHER.value):
            return PersonType(self.user_type)
        return None

    def owns(self, person_id: int, person_type: PersonType | str) -> bool:
        return self.person_type is not None and self.id == person_id and self.person_type == PersonType(person_type)

    @classmethod
    def of(cls, account: Union[Person, Admin]) -> "Identity":
        if isinstance(account, Admin):
            return cls(account.id, account.name, account.role, "admin", account.school_level)
        return cls(account.id, account.name, account.role, account.person_type.value, account.school_level)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role.value,
            "userType": self.user_type,
            "school_level": self.school_level,
        }
