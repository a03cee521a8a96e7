import sqlite3
from datetime import timedelta

import pytest

from school_library.auth import AuthService, hash_password, verify_password
from school_library.config import settings
from school_library.errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from school_library.person import Admin, Identity, PersonType, Role, Student, Teacher


def test_passwords_are_bcrypt_hashed(directory, student):
    stored = directory.get_person("student", student.id).password_hash
    assert stored.startswith("$2")
    assert verify_password("student123", stored)
    assert not verify_password("wrong", stored)
    assert not verify_password("student123", "not-a-hash")


def test_hash_password_honours_rounds():
    assert hash_password("secret1", rounds=5).startswith("$2b$05$")


def test_register_student_and_teacher(directory, student, teacher):
    fetched = directory.get_person("student", student.id)
    assert isinstance(fetched, Student)
    assert fetched.class_name == "P1-A"
    assert fetched.to_dict()["class"] == "P1-A"
    assert "password_hash" not in fetched.to_dict()

    assert isinstance(directory.get_person(PersonType.TEACHER, teacher.id), Teacher)


def test_duplicate_barcode_within_a_table_conflicts(directory, student):
    with pytest.raises(ConflictError):
        directory.register_student("Copy Cat", "P2-A", "STU_P1", "student123")


def test_registration_validation(directory):
    with pytest.raises(ValidationError):
        directory.register_student("No Class", "", "STU_X", "student123")
    with pytest.raises(ValidationError):
        directory.register_teacher("Short Pass", "TCH_X", "123")
    with pytest.raises(ValidationError):
        directory.register_admin("Bad Role", "badrole", "admin123", "Student")


def test_find_by_barcode(directory, student, teacher):
    assert directory.find_by_barcode("TCH_P1").person_type is PersonType.TEACHER
    with pytest.raises(NotFoundError):
        directory.find_by_barcode("UNKNOWN")


def test_list_people(directory, student, teacher, admin):
    directory.register_student("Secondary Kid", "S1-A", "STU_S1", "student123", school_level="Secondary")

    everyone = directory.list_people()
    assert [type(p) for p in everyone] == [Admin, Student, Student, Teacher]
    primary_students = directory.list_people("student", "Primary")
    assert [p.barcode for p in primary_students] == ["STU_P1"]
    with pytest.raises(ValidationError):
        directory.list_people("parent")


def test_update_person(directory, auth, student):
    updated = directory.update_person("student", student.id, name="Ada King", class_name="P2-A",
                                      password="newpass1")
    assert updated.name == "Ada King"
    assert updated.class_name == "P2-A"
    auth.authenticate("STU_P1", "newpass1", "student")

    with pytest.raises(ValidationError):
        directory.update_person("teacher", 1, class_name="P2-A")
    with pytest.raises(NotFoundError):
        directory.update_person("student", 99, name="Nobody")


def test_update_admin_role(directory, admin):
    assert directory.update_person("admin", admin.id, role="Librarian").role is Role.LIBRARIAN
    with pytest.raises(ValidationError):
        directory.update_person("admin", admin.id, role="Teacher")


def test_delete_person_guards_open_loans(directory, ledger, book, student):
    receipt = ledger.borrow(book.id, Identity.of(student))
    with pytest.raises(ConflictError):
        directory.delete_person("student", student.id)

    ledger.return_book(receipt.borrow_id, Identity.of(student))
    directory.delete_person("student", student.id)
    with pytest.raises(NotFoundError):
        directory.get_person("student", student.id)


def test_get_account_respects_school_level(directory, student, admin):
    assert directory.get_account("student", student.id, "Primary").id == student.id
    with pytest.raises(NotFoundError):
        directory.get_account("student", student.id, "Secondary")
    with pytest.raises(NotFoundError):
        directory.get_account("admin", admin.id, "Secondary")



def test_login_and_resolve(auth, student, admin):
    token, identity = auth.login("STU_P1", "student123", "student")
    assert identity == Identity(student.id, "Ada Lovelace", Role.STUDENT, "student", "Primary")
    assert auth.resolve(token) == identity

    _, staff = auth.login("admin_primary", "admin123", "admin")
    assert staff.is_privileged
    assert staff.person_type is None


def test_login_failures(auth, student):
    with pytest.raises(AuthenticationError):
        auth.login("STU_P1", "wrong-pass", "student")
    with pytest.raises(AuthenticationError):
        auth.login("STU_P1", "student123", "teacher")
    with pytest.raises(ValidationError):
        auth.login("STU_P1", "student123", "parent")


def test_logout_revokes_token(auth, student):
    token, _ = auth.login("STU_P1", "student123", "student")
    assert auth.logout(token) is True
    with pytest.raises(AuthenticationError):
        auth.resolve(token)
    assert auth.logout(token) is False


def test_expired_and_missing_tokens(db_file, student):
    short_lived = AuthService(db_file, token_ttl_minutes=1)
    token, _ = short_lived.login("STU_P1", "student123", "student")
    with sqlite3.connect(db_file) as conn:
        conn.execute("UPDATE auth_tokens SET expires_at = '2000-01-01T00:00:00.000000+00:00'")
    with pytest.raises(AuthenticationError):
        short_lived.resolve(token)
    with pytest.raises(AuthenticationError):
        short_lived.resolve(None)


def test_deleting_account_drops_its_tokens(auth, directory, teacher):
    token, _ = auth.login("TCH_P1", "teacher123", "teacher")
    directory.delete_person("teacher", teacher.id)
    with pytest.raises(AuthenticationError):
        auth.resolve(token)


def test_identity_ownership(student, teacher):
    me = Identity.of(student)
    assert me.owns(student.id, "student")
    assert not me.owns(teacher.id, PersonType.TEACHER)
    assert me.to_dict()["userType"] == "student"


def test_token_ttl_defaults_to_settings(db_file):
    assert AuthService(db_file).token_ttl == timedelta(minutes=settings.token_expiration_minutes)
