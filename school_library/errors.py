"""Typed failures raised by the library core.

The request gateway maps each class to a transport status; the core itself
never retries and never treats any of these as fatal.
"""


class LibraryError(Exception):
    code = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(LibraryError):
    code = "not_found"


class ConflictError(LibraryError):
    code = "conflict"


class AlreadyReturnedError(ConflictError):
    code = "already_returned"


class UnauthorizedError(LibraryError):
    code = "unauthorized"


class AuthenticationError(LibraryError):
    code = "not_authenticated"


class ValidationError(LibraryError):
    code = "invalid"
