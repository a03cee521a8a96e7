"""FastAPI request gateway for the school library.

Routes authenticate the caller with a bearer token, hand the verified
``Identity`` to the core components and map their typed errors to HTTP
statuses.  Components are built once per store and reached through the
``get_services`` dependency so tests can point the app at their own store.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict, Field

from .attendance import AttendanceToggle
from .auth import AuthService
from .catalog import BookCatalog
from .config import configure_logging, settings
from .database import read_connection
from .directory import PersonDirectory
from .ebooks import EbookShelf
from .errors import (
    AuthenticationError,
    ConflictError,
    LibraryError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from .ledger import InventoryLedger
from .person import Identity, Role
from .reports import library_stats

logger = logging.getLogger(__name__)


class Services:
    """The core components bound to one store."""

    def __init__(self, db_file: Optional[str] = None, ebook_dir: Optional[str] = None) -> None:
        self.db_file = db_file
        self.catalog = BookCatalog(db_file)
        self.directory = PersonDirectory(db_file)
        self.auth = AuthService(db_file)
        self.ledger = InventoryLedger(db_file)
        self.attendance = AttendanceToggle(db_file)
        self.ebooks = EbookShelf(db_file, ebook_dir)


_services: Optional[Services] = None


def get_services() -> Services:
    global _services
    if _services is None:
        _services = Services(settings.db_file)
    return _services


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    get_services()
    logger.info("%s %s started (%s)", settings.app_name, settings.app_version, settings.environment)
    yield


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Errors ---
_ERROR_STATUS = [
    (NotFoundError, 404),
    (ConflictError, 409),
    (UnauthorizedError, 403),
    (AuthenticationError, 401),
    (ValidationError, 400),
]


@app.exception_handler(LibraryError)
async def library_error_handler(request: Request, exc: LibraryError):
    status = next((code for cls, code in _ERROR_STATUS if isinstance(exc, cls)), 400)
    headers = {"WWW-Authenticate": "Bearer"} if status == 401 else None
    return JSONResponse(status_code=status, content={"detail": exc.message, "code": exc.code}, headers=headers)


# --- Security ---
bearer_scheme = HTTPBearer(auto_error=False)


def current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    services: Services = Depends(get_services),
) -> Identity:
    """Dependency resolving the bearer token to the calling identity."""
    return services.auth.resolve(credentials.credentials if credentials else None)


def require_privileged(identity: Identity = Depends(current_identity)) -> Identity:
    if not identity.is_privileged:
        raise UnauthorizedError("Admin access required")
    return identity


# --- Models ---
class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class LoginRequest(_Body):
    username: str
    password: str
    user_type: str = Field(alias="userType")


class RegisterRequest(_Body):
    user_type: str = Field(alias="userType")
    name: str
    password: str
    barcode: Optional[str] = None
    username: Optional[str] = None
    class_name: Optional[str] = Field(default=None, alias="className")
    role: Optional[str] = None
    school_level: Optional[str] = Field(default=None, alias="schoolLevel")
    photo: Optional[str] = None


class UserUpdateRequest(_Body):
    name: Optional[str] = None
    barcode: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    photo: Optional[str] = None
    role: Optional[str] = None
    class_name: Optional[str] = Field(default=None, alias="className")


class BookCreateRequest(_Body):
    barcode: str = Field(alias="bookBarcode")
    name: str = Field(alias="bookName")
    quantity: int = 0
    year: Optional[int] = None
    author: Optional[str] = None
    publisher: Optional[str] = None
    isbn: Optional[str] = Field(default=None, alias="bookIsbn")
    cover: Optional[str] = Field(default=None, alias="bookCover")
    school_level: Optional[str] = Field(default=None, alias="schoolLevel")


class BookUpdateRequest(_Body):
    barcode: Optional[str] = Field(default=None, alias="bookBarcode")
    name: Optional[str] = Field(default=None, alias="bookName")
    quantity: Optional[int] = None
    year: Optional[int] = None
    author: Optional[str] = None
    publisher: Optional[str] = None
    isbn: Optional[str] = Field(default=None, alias="bookIsbn")
    cover: Optional[str] = Field(default=None, alias="bookCover")


class BorrowRequest(_Body):
    book_id: int = Field(alias="bookId")


class AdminBorrowRequest(_Body):
    book_barcode: str = Field(alias="bookBarcode")
    user_barcode: Optional[str] = Field(default=None, alias="userBarcode")
    student_id: Optional[int] = Field(default=None, alias="studentId")
    teacher_id: Optional[int] = Field(default=None, alias="teacherId")


class ScanRequest(_Body):
    barcode: str


class EbookCreateRequest(_Body):
    title: str
    file_path: str = Field(alias="filePath")
    category: Optional[str] = None


# --- Health ---
@app.get("/api/health")
def health(services: Services = Depends(get_services)):
    """Liveness probe with a quick store check."""
    db_ok = True
    try:
        with read_connection(services.db_file) as conn:
            conn.execute("SELECT 1")
    except Exception:
        logger.exception("Health check could not reach the store")
        db_ok = False
    return {
        "status": "ok" if db_ok else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "db": db_ok,
    }


# --- Auth ---
@app.post("/api/auth/login")
def login(payload: LoginRequest, services: Services = Depends(get_services)):
    token, identity = services.auth.login(payload.username, payload.password, payload.user_type)
    return {"token": token, "user": identity.to_dict()}


@app.get("/api/auth/me")
def me(identity: Identity = Depends(current_identity)):
    return {"user": identity.to_dict()}


@app.post("/api/auth/logout")
def logout(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    identity: Identity = Depends(current_identity),
    services: Services = Depends(get_services),
):
    services.auth.logout(credentials.credentials)
    return {"message": "Logged out"}


@app.post("/api/auth/register", status_code=201)
def register(payload: RegisterRequest, identity: Identity = Depends(require_privileged),
             services: Services = Depends(get_services)):
    school_level = payload.school_level or identity.school_level
    if payload.user_type == "student":
        account = services.directory.register_student(
            payload.name, payload.class_name, payload.barcode, payload.password, school_level, payload.photo
        )
    elif payload.user_type == "teacher":
        account = services.directory.register_teacher(
            payload.name, payload.barcode, payload.password, school_level, payload.photo
        )
    elif payload.user_type == "admin":
        account = services.directory.register_admin(
            payload.name, payload.username, payload.password, payload.role or Role.ADMIN, school_level
        )
    else:
        raise ValidationError("Invalid user type")
    return {"message": "User registered successfully", "user": account.to_dict()}


# --- Books ---
@app.get("/api/books")
def list_books(
    search: Optional[str] = None,
    status: Optional[str] = None,
    identity: Identity = Depends(current_identity),
    services: Services = Depends(get_services),
):
    books = services.catalog.list_books(search=search, status=status, school_level=identity.school_level)
    return {"books": [b.to_dict() for b in books]}


@app.get("/api/books/barcode/{barcode}")
def get_book_by_barcode(barcode: str, identity: Identity = Depends(current_identity),
                        services: Services = Depends(get_services)):
    return {"book": services.catalog.find_by_barcode(barcode, identity.school_level).to_dict()}


@app.get("/api/books/{book_id}")
def get_book(book_id: int, identity: Identity = Depends(current_identity),
             services: Services = Depends(get_services)):
    return {"book": services.catalog.get_book(book_id, identity.school_level).to_dict()}


@app.post("/api/books", status_code=201)
def add_book(payload: BookCreateRequest, identity: Identity = Depends(require_privileged),
             services: Services = Depends(get_services)):
    book = services.catalog.add_book(
        payload.barcode,
        payload.name,
        payload.quantity,
        school_level=payload.school_level or identity.school_level,
        year=payload.year,
        author=payload.author,
        publisher=payload.publisher,
        isbn=payload.isbn,
        cover=payload.cover,
    )
    return {"message": "Book added successfully", "book": book.to_dict()}


@app.put("/api/books/{book_id}")
def update_book(book_id: int, payload: BookUpdateRequest, identity: Identity = Depends(require_privileged),
                services: Services = Depends(get_services)):
    book = services.catalog.update_book(book_id, **payload.model_dump(exclude_unset=True))
    return {"message": "Book updated successfully", "book": book.to_dict()}


@app.delete("/api/books/{book_id}")
def delete_book(book_id: int, identity: Identity = Depends(require_privileged),
                services: Services = Depends(get_services)):
    services.catalog.delete_book(book_id)
    return {"message": "Book deleted successfully"}


# --- Users ---
@app.get("/api/users")
def list_users(
    user_type: Optional[str] = Query(default=None, alias="userType"),
    identity: Identity = Depends(require_privileged),
    services: Services = Depends(get_services),
):
    people = services.directory.list_people(user_type, identity.school_level)
    return {"users": [p.to_dict() for p in people]}


@app.get("/api/users/{user_type}/{user_id}")
def get_user(user_type: str, user_id: int, identity: Identity = Depends(require_privileged),
             services: Services = Depends(get_services)):
    return {"user": services.directory.get_account(user_type, user_id, identity.school_level).to_dict()}


@app.put("/api/users/{user_type}/{user_id}")
def update_user(user_type: str, user_id: int, payload: UserUpdateRequest,
                identity: Identity = Depends(require_privileged), services: Services = Depends(get_services)):
    account = services.directory.update_person(user_type, user_id, **payload.model_dump(exclude_unset=True))
    return {"message": "User updated successfully", "user": account.to_dict()}


@app.delete("/api/users/{user_type}/{user_id}")
def delete_user(user_type: str, user_id: int, identity: Identity = Depends(require_privileged),
                services: Services = Depends(get_services)):
    if user_type == identity.user_type and user_id == identity.id:
        raise ConflictError("You cannot delete your own account")
    services.directory.delete_person(user_type, user_id)
    return {"message": "User deleted successfully"}


# --- Borrowing ---
@app.post("/api/borrow", status_code=201)
def borrow_book(payload: BorrowRequest, identity: Identity = Depends(current_identity),
                services: Services = Depends(get_services)):
    receipt = services.ledger.borrow(payload.book_id, identity)
    return {"message": "Book borrowed successfully", **receipt.to_dict()}


@app.post("/api/borrow/admin/borrow", status_code=201)
def admin_borrow(payload: AdminBorrowRequest, identity: Identity = Depends(require_privileged),
                 services: Services = Depends(get_services)):
    receipt = services.ledger.borrow_on_behalf(
        payload.book_barcode,
        person_barcode=payload.user_barcode,
        student_id=payload.student_id,
        teacher_id=payload.teacher_id,
    )
    return {"message": "Book borrowed successfully", **receipt.to_dict()}


@app.post("/api/borrow/{borrow_id}/return")
def return_book(borrow_id: int, identity: Identity = Depends(current_identity),
                services: Services = Depends(get_services)):
    record = services.ledger.return_book(borrow_id, identity)
    return {"message": "Book returned successfully", "record": record.to_dict()}


@app.get("/api/borrow/logs")
def borrow_logs(
    status: Optional[str] = None,
    user_type: Optional[str] = Query(default=None, alias="userType"),
    identity: Identity = Depends(require_privileged),
    services: Services = Depends(get_services),
):
    return {"logs": [v.to_dict() for v in services.ledger.borrow_logs(status, user_type)]}


@app.get("/api/borrow/my-loans")
def my_loans(identity: Identity = Depends(current_identity), services: Services = Depends(get_services)):
    if identity.person_type is None:
        return {"loans": []}
    return {"loans": [v.to_dict() for v in services.ledger.loans_for(identity.id, identity.person_type)]}


@app.get("/api/borrow/my-history")
def my_history(identity: Identity = Depends(current_identity), services: Services = Depends(get_services)):
    if identity.person_type is None:
        return {"history": []}
    return {"history": [v.to_dict() for v in services.ledger.history_for(identity.id, identity.person_type)]}


@app.get("/api/borrow/overdue")
def overdue(identity: Identity = Depends(require_privileged), services: Services = Depends(get_services)):
    return {"overdueBooks": [v.to_dict() for v in services.ledger.list_overdue()]}


# --- Attendance ---
@app.post("/api/attendance/checkin")
def check_in(identity: Identity = Depends(current_identity), services: Services = Depends(get_services)):
    record = services.attendance.check_in(identity)
    return {"message": "Checked in successfully", "log": record.to_dict()}


@app.post("/api/attendance/checkout")
def check_out(identity: Identity = Depends(current_identity), services: Services = Depends(get_services)):
    record = services.attendance.check_out(identity)
    return {"message": "Checked out successfully", "log": record.to_dict()}


@app.get("/api/attendance/status")
def attendance_status(identity: Identity = Depends(current_identity), services: Services = Depends(get_services)):
    if identity.person_type is None:
        return {"isCheckedIn": False, "lastLog": None}
    return services.attendance.status(identity.id, identity.person_type)


@app.post("/api/attendance/scan")
def scan(payload: ScanRequest, identity: Identity = Depends(current_identity),
         services: Services = Depends(get_services)):
    return services.attendance.scan(payload.barcode).to_dict()


@app.get("/api/attendance/logs")
def attendance_logs(
    start_date: Optional[str] = Query(default=None, alias="startDate"),
    end_date: Optional[str] = Query(default=None, alias="endDate"),
    user_type: Optional[str] = Query(default=None, alias="userType"),
    identity: Identity = Depends(require_privileged),
    services: Services = Depends(get_services),
):
    logs = services.attendance.logs(start_date, end_date, user_type, identity.school_level)
    return {"logs": logs}


@app.get("/api/attendance/my-logs")
def my_attendance(identity: Identity = Depends(current_identity), services: Services = Depends(get_services)):
    if identity.person_type is None:
        return {"logs": []}
    return {"logs": [r.to_dict() for r in services.attendance.my_logs(identity.id, identity.person_type)]}


# --- E-books ---
@app.get("/api/ebooks")
def list_ebooks(
    category: Optional[str] = None,
    search: Optional[str] = None,
    identity: Identity = Depends(current_identity),
    services: Services = Depends(get_services),
):
    return {"ebooks": [e.to_dict() for e in services.ebooks.list_ebooks(category, search)]}


@app.get("/api/ebooks/logs/all")
def ebook_read_logs(identity: Identity = Depends(require_privileged), services: Services = Depends(get_services)):
    return {"logs": services.ebooks.read_logs()}


@app.get("/api/ebooks/{ebook_id}")
def get_ebook(ebook_id: int, identity: Identity = Depends(current_identity),
              services: Services = Depends(get_services)):
    return {"ebook": services.ebooks.get_ebook(ebook_id).to_dict()}


@app.post("/api/ebooks", status_code=201)
def add_ebook(payload: EbookCreateRequest, identity: Identity = Depends(require_privileged),
              services: Services = Depends(get_services)):
    ebook = services.ebooks.add_ebook(payload.title, payload.file_path, payload.category)
    return {"message": "E-book added successfully", "ebook": ebook.to_dict()}


@app.delete("/api/ebooks/{ebook_id}")
def delete_ebook(ebook_id: int, identity: Identity = Depends(require_privileged),
                 services: Services = Depends(get_services)):
    services.ebooks.delete_ebook(ebook_id)
    return {"message": "E-book deleted successfully"}


@app.get("/api/ebooks/{ebook_id}/read")
def read_ebook(ebook_id: int, identity: Identity = Depends(current_identity),
               services: Services = Depends(get_services)):
    path = services.ebooks.open_for_reading(ebook_id, identity)
    return FileResponse(path, media_type="application/pdf")


# --- Stats ---
@app.get("/api/stats")
def stats(identity: Identity = Depends(require_privileged), services: Services = Depends(get_services)):
    return library_stats(services.db_file)
