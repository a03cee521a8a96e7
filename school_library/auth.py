"""Credential hashing, login and bearer tokens.

This is the identity collaborator in front of the core: it turns a bearer
token into a verified ``Identity`` (id, role, user type).  Passwords are
hashed with bcrypt; tokens are random hex strings kept in the
``auth_tokens`` table with an expiry.
"""

from __future__ import annotations

import logging
import secrets
from datetime import timedelta
from typing import Optional, Tuple

import bcrypt

from .config import settings
from .database import format_timestamp, initialize_database, read_connection, transaction, utc_now
from .errors import AuthenticationError, ValidationError
from .person import Admin, Identity, PersonType, person_from_row

logger = logging.getLogger(__name__)

USER_TYPES = ("admin", "student", "teacher")


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    salt = bcrypt.gensalt(rounds or settings.bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False


class AuthService:
    def __init__(self, db_file: Optional[str] = None, token_ttl_minutes: Optional[int] = None) -> None:
        self.db_file = db_file
        self.token_ttl = timedelta(minutes=token_ttl_minutes or settings.token_expiration_minutes)
        initialize_database(db_file)

    def authenticate(self, username: str, password: str, user_type: str) -> Identity:
        """Check credentials; admins log in by username, students and teachers by barcode."""
        if user_type not in USER_TYPES:
            raise ValidationError("Invalid user type")
        username = (username or "").strip()
        with read_connection(self.db_file) as conn:
            if user_type == "admin":
                row = conn.execute("SELECT * FROM users WHERE username = ?", (username,)).fetchone()
                account = Admin.from_row(row) if row else None
            else:
                person_type = PersonType(user_type)
                row = conn.execute(
                    f"SELECT * FROM {person_type.table} WHERE barcode = ?", (username,)
                ).fetchone()
                account = person_from_row(person_type, row) if row else None

        if account is None or not verify_password(password, account.password_hash):
            logger.info("Failed login for %s (%s)", username, user_type)
            raise AuthenticationError("Invalid credentials")
        return Identity.of(account)

    def login(self, username: str, password: str, user_type: str) -> Tuple[str, Identity]:
        """Verify credentials and issue a new bearer token."""
        identity = self.authenticate(username, password, user_type)
        now = utc_now()
        token = secrets.token_hex(32)
        with transaction(self.db_file) as conn:
            conn.execute(
                "INSERT INTO auth_tokens (token, user_id, user_type, created_at, expires_at) VALUES (?, ?, ?, ?, ?)",
                (token, identity.id, identity.user_type, format_timestamp(now), format_timestamp(now + self.token_ttl)),
            )
        logger.info("Login: %s %s (%s)", identity.user_type, identity.id, identity.role.value)
        return token, identity

    def resolve(self, token: Optional[str]) -> Identity:
        """Return the identity behind a token, or raise AuthenticationError."""
        if not token:
            raise AuthenticationError("Authentication required")
        now = format_timestamp(utc_now())
        with read_connection(self.db_file) as conn:
            row = conn.execute(
                "SELECT user_id, user_type FROM auth_tokens WHERE token = ? AND expires_at > ?", (token, now)
            ).fetchone()
            if row is None:
                raise AuthenticationError("Invalid or expired token")
            if row["user_type"] == "admin":
                account_row = conn.execute("SELECT * FROM users WHERE id = ?", (row["user_id"],)).fetchone()
                account = Admin.from_row(account_row) if account_row else None
            else:
                person_type = PersonType(row["user_type"])
                account_row = conn.execute(
                    f"SELECT * FROM {person_type.table} WHERE id = ?", (row["user_id"],)
                ).fetchone()
                account = person_from_row(person_type, account_row) if account_row else None
        if account is None:
            raise AuthenticationError("Account no longer exists")
        return Identity.of(account)

    def logout(self, token: str) -> bool:
        with transaction(self.db_file) as conn:
            cursor = conn.execute("DELETE FROM auth_tokens WHERE token = ?", (token,))
            return cursor.rowcount > 0

    def revoke_all(self, user_id: int, user_type: str) -> int:
        with transaction(self.db_file) as conn:
            cursor = conn.execute(
                "DELETE FROM auth_tokens WHERE user_id = ? AND user_type = ?", (user_id, user_type)
            )
            return cursor.rowcount
