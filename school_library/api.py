"""HTTP API for the borrowing engine.

Write endpoints require the ``X-API-Key`` header. Request rejections come
back as ``{"detail": ..., "code": ...}`` with the status of the raised
:class:`~school_library.errors.LibraryError`.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field

from .config import settings
from .errors import LibraryError
from .library import SchoolLibrary
from .models import RecordStatus

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)

_library: Optional[SchoolLibrary] = None


def get_library() -> SchoolLibrary:
    """Process-wide library; the backend is picked once from settings."""
    global _library
    if _library is None:
        _library = SchoolLibrary()
    return _library


async def _periodic_sweep(interval: int) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            summary = await asyncio.to_thread(get_library().sweep_overdue)
        except Exception:
            # next tick retries; the sweep is idempotent
            logger.exception("Scheduled overdue sweep failed")
        else:
            logger.debug("Scheduled sweep: %s", summary.to_dict())


@asynccontextmanager
async def lifespan(app: FastAPI):
    sweep_task = None
    if settings.sweep_interval_seconds > 0:
        sweep_task = asyncio.create_task(_periodic_sweep(settings.sweep_interval_seconds))
        logger.info("Overdue sweep scheduled every %ds", settings.sweep_interval_seconds)
    try:
        yield
    finally:
        if sweep_task is not None:
            sweep_task.cancel()
            await asyncio.gather(sweep_task, return_exceptions=True)


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LibraryError)
async def library_error_handler(request: Request, exc: LibraryError) -> JSONResponse:
    logger.warning("%s %s rejected: %s (%s)", request.method, request.url.path, exc.message, exc.code)
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


# --- Security ---
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def get_api_key(api_key: Optional[str] = Security(api_key_header)) -> str:
    """Dependency validating the API key."""
    if api_key == settings.api_key:
        return api_key
    raise HTTPException(status_code=403, detail="Could not validate credentials")


# --- Models ---
class BookCreateModel(BaseModel):
    title: str
    author: str
    category: str | None = None
    isbn: str | None = None
    due_period_value: int | None = Field(default=None, ge=1)
    due_period_unit: str | None = Field(default=None, description="hours, days, weeks, months or years")
    copies: int = Field(default=1, ge=0)
    catalog_codes: List[str] | None = Field(default=None, description="Explicit codes; overrides 'copies'")


class CopiesCreateModel(BaseModel):
    count: int = Field(default=1, ge=1)
    catalog_codes: List[str] | None = None


class BookModel(BaseModel):
    id: str
    title: str
    author: str
    category: str | None = None
    isbn: str | None = None
    due_period_value: int
    due_period_unit: str
    created_at: str | None = None
    updated_at: str | None = None


class CopyModel(BaseModel):
    id: str
    book_id: str
    catalog_code: str
    status: str
    created_at: str | None = None
    updated_at: str | None = None


class BookDetailsModel(BookModel):
    total_copies: int
    available_copies: int
    copies: List[CopyModel]


class StudentCreateModel(BaseModel):
    name: str
    admission_number: str | None = None
    student_class: str | None = None
    email: str | None = None
    phone: str | None = None


class StudentModel(BaseModel):
    id: str
    name: str
    admission_number: str | None = None
    student_class: str | None = None
    email: str | None = None
    phone: str | None = None
    blacklisted: bool
    blacklist_until: str | None = None
    blacklist_reason: str | None = None
    unblacklist_reason: str | None = None
    unblacklist_date: str | None = None
    unblacklist_admin_id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class BorrowRequest(BaseModel):
    student_id: str
    book_id: str | None = Field(default=None, description="Lend any available copy of this book")
    copy_id: str | None = Field(default=None, description="Lend this specific copy")
    due_period_value: int | None = None
    due_period_unit: str | None = None


class BorrowRecordModel(BaseModel):
    id: str
    copy_id: str
    student_id: str
    borrow_date: str
    due_date: str
    return_date: str | None = None
    status: str
    book_id: str | None = None
    book_title: str | None = None
    book_author: str | None = None
    catalog_code: str | None = None
    student_name: str | None = None
    student_admission_number: str | None = None
    student_class: str | None = None


class ReturnByCodeRequest(BaseModel):
    catalog_code: str


class UnblacklistRequest(BaseModel):
    reason: str | None = None
    admin_id: str | None = None


class SweepSummaryModel(BaseModel):
    promoted: int
    blacklisted: int
    unblacklisted: int


class AdminActionModel(BaseModel):
    id: str
    admin_id: str
    action_type: str
    target_type: str
    target_id: str
    details: Dict[str, Any]
    created_at: str | None = None


class StatsModel(BaseModel):
    total_books: int
    total_copies: int
    available_copies: int
    borrowed_records: int
    overdue_records: int
    total_students: int
    blacklisted_students: int


# --- Health ---
@app.get("/health")
def health(library: SchoolLibrary = Depends(get_library)):
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "storage_backend": library.store.name,
        "sweep_interval_seconds": settings.sweep_interval_seconds,
    }


# --- Borrowing ---
@app.get("/borrowing", response_model=List[BorrowRecordModel])
def list_borrow_records(
    status: Optional[RecordStatus] = Query(default=None),
    student_id: Optional[str] = Query(default=None),
    library: SchoolLibrary = Depends(get_library),
):
    return [r.to_dict() for r in library.get_borrow_records(status=status, student_id=student_id)]


@app.get("/borrowing/overdue", response_model=List[BorrowRecordModel])
def list_overdue_records(library: SchoolLibrary = Depends(get_library)):
    return [r.to_dict() for r in library.list_overdue()]


@app.post("/borrowing", response_model=BorrowRecordModel, dependencies=[Depends(get_api_key)])
def borrow(payload: BorrowRequest, library: SchoolLibrary = Depends(get_library)):
    if bool(payload.book_id) == bool(payload.copy_id):
        raise HTTPException(status_code=422, detail="Provide exactly one of book_id or copy_id.")
    if payload.copy_id:
        record = library.borrow_copy(
            payload.student_id, payload.copy_id, payload.due_period_value, payload.due_period_unit
        )
    else:
        record = library.borrow(
            payload.student_id, payload.book_id, payload.due_period_value, payload.due_period_unit
        )
    return record.to_dict()


@app.post("/borrowing/sweep", response_model=SweepSummaryModel, dependencies=[Depends(get_api_key)])
def sweep_overdue(library: SchoolLibrary = Depends(get_library)):
    return library.sweep_overdue().to_dict()


@app.post("/borrowing/return-by-code", response_model=BorrowRecordModel, dependencies=[Depends(get_api_key)])
def return_by_code(payload: ReturnByCodeRequest, library: SchoolLibrary = Depends(get_library)):
    return library.return_by_code(payload.catalog_code).to_dict()


@app.api_route(
    "/borrowing/{record_id}/return",
    methods=["POST", "PUT"],
    response_model=BorrowRecordModel,
    dependencies=[Depends(get_api_key)],
)
def return_book(record_id: str, library: SchoolLibrary = Depends(get_library)):
    return library.return_book(record_id).to_dict()


@app.get("/borrowing/{record_id}", response_model=BorrowRecordModel)
def get_borrow_record(record_id: str, library: SchoolLibrary = Depends(get_library)):
    return library.get_record(record_id).to_dict()


# --- Students ---
@app.get("/students", response_model=List[StudentModel])
def list_students(library: SchoolLibrary = Depends(get_library)):
    return [s.to_dict() for s in library.list_students()]


@app.get("/students/blacklisted", response_model=List[StudentModel])
def list_blacklisted_students(library: SchoolLibrary = Depends(get_library)):
    return [s.to_dict() for s in library.list_students(blacklisted=True)]


@app.post("/students", response_model=StudentModel, dependencies=[Depends(get_api_key)])
def add_student(payload: StudentCreateModel, library: SchoolLibrary = Depends(get_library)):
    return library.add_student(**payload.model_dump()).to_dict()


@app.get("/students/{student_id}", response_model=StudentModel)
def get_student(student_id: str, library: SchoolLibrary = Depends(get_library)):
    return library.get_student(student_id).to_dict()


@app.get("/students/{student_id}/borrowing", response_model=List[BorrowRecordModel])
def get_student_records(student_id: str, library: SchoolLibrary = Depends(get_library)):
    library.get_student(student_id)
    return [r.to_dict() for r in library.get_borrow_records(student_id=student_id)]


@app.post("/students/{student_id}/unblacklist", response_model=StudentModel, dependencies=[Depends(get_api_key)])
def unblacklist_student(
    student_id: str, payload: UnblacklistRequest, library: SchoolLibrary = Depends(get_library)
):
    return library.manual_unblacklist(student_id, payload.reason, payload.admin_id).to_dict()


# --- Books ---
@app.get("/books", response_model=List[BookModel])
def list_books(library: SchoolLibrary = Depends(get_library)):
    return [b.to_dict() for b in library.list_books()]


@app.post("/books", response_model=BookDetailsModel, dependencies=[Depends(get_api_key)])
def add_book(payload: BookCreateModel, library: SchoolLibrary = Depends(get_library)):
    book = library.add_book(**payload.model_dump())
    return library.get_book_details(book.id)


@app.get("/books/{book_id}", response_model=BookDetailsModel)
def get_book(book_id: str, library: SchoolLibrary = Depends(get_library)):
    return library.get_book_details(book_id)


@app.post("/books/{book_id}/copies", response_model=List[CopyModel], dependencies=[Depends(get_api_key)])
def add_copies(book_id: str, payload: CopiesCreateModel, library: SchoolLibrary = Depends(get_library)):
    return [c.to_dict() for c in library.add_copies(book_id, payload.count, payload.catalog_codes)]


# --- Admin ---
@app.get("/admin/actions", response_model=List[AdminActionModel], dependencies=[Depends(get_api_key)])
def list_admin_actions(
    limit: int = Query(default=100, ge=1, le=1000), library: SchoolLibrary = Depends(get_library)
):
    return [a.to_dict() for a in library.list_admin_actions(limit=limit)]


@app.get("/stats", response_model=StatsModel)
def stats(library: SchoolLibrary = Depends(get_library)):
    return library.get_statistics()
