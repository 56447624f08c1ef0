from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from .config import Settings, settings as default_settings
from .errors import (
    BookNotFound,
    InvalidDuePeriod,
    InvalidInput,
    RecordNotFound,
    StudentNotFound,
)
from .models import (
    AdminAction,
    Book,
    BorrowRecord,
    Copy,
    CopyStatus,
    DueUnit,
    RecordStatus,
    Student,
    new_id,
    utcnow,
)
from .services import (
    AuditLogWriter,
    AuditSink,
    BlacklistReconciler,
    BorrowTransactionManager,
    CopyAllocator,
    OverdueSweeper,
    SweepSummary,
)
from .stores import LibraryStore, StoreSession, create_store
from .validators import CatalogCodeValidator, TextValidator

logger = logging.getLogger(__name__)


class SchoolLibrary:
    """Wires the store and the borrowing services; offers catalog CRUD and read projections."""

    def __init__(
        self,
        store: Optional[LibraryStore] = None,
        config: Optional[Settings] = None,
        db_file: Optional[str] = None,
        audit: Optional[AuditSink] = None,
    ) -> None:
        self.config = config or default_settings
        self.store = store or create_store(self.config, db_file=db_file)
        self.audit = audit if audit is not None else AuditLogWriter(self.store)
        self.allocator = CopyAllocator()
        self.reconciler = BlacklistReconciler(self.store, audit=self.audit, config=self.config)
        self.sweeper = OverdueSweeper(self.store, reconciler=self.reconciler, config=self.config)
        self.borrowing = BorrowTransactionManager(
            self.store, allocator=self.allocator, sweeper=self.sweeper, config=self.config
        )

    # ------------------------- Catalog ------------------------- #
    def add_book(
        self,
        title: str,
        author: str,
        category: Optional[str] = None,
        isbn: Optional[str] = None,
        due_period_value: Optional[int] = None,
        due_period_unit: Optional[str] = None,
        copies: int = 1,
        catalog_codes: Optional[List[str]] = None,
        now: Optional[datetime] = None,
    ) -> Book:
        """Create a book and its copies. Explicit catalog codes win over ``copies``."""
        title = TextValidator.sanitize_text(title)
        author = TextValidator.sanitize_text(author)
        if not (TextValidator.is_non_empty(title) and TextValidator.is_non_empty(author)):
            raise InvalidInput("Book title and author are required.")
        value = due_period_value if due_period_value is not None else self.config.default_due_period_value
        unit = DueUnit.parse(due_period_unit or self.config.default_due_period_unit)
        if unit is None:
            raise InvalidDuePeriod(f"Unknown due period unit {due_period_unit!r}.")
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise InvalidDuePeriod(f"Due period value must be an integer >= 1, got {value!r}.")
        if copies < 0:
            raise InvalidInput("Number of copies cannot be negative.")
        if isbn and not CatalogCodeValidator.is_valid_isbn(isbn):
            logger.warning("ISBN %r for '%s' fails its checksum; storing it as given", isbn, title)

        now = now or utcnow()
        book = Book(
            id=new_id(),
            title=title,
            author=author,
            category=category,
            isbn=CatalogCodeValidator.normalize(isbn) or None,
            due_period_value=value,
            due_period_unit=unit.value,
            created_at=now,
            updated_at=now,
        )
        with self.store.unit_of_work() as session:
            session.insert_book(book)
            self._insert_copies(session, book.id, copies, catalog_codes, now)
        logger.info("Added book '%s' by %s", book.title, book.author)
        return book

    def add_copies(
        self,
        book_id: str,
        count: int = 1,
        catalog_codes: Optional[List[str]] = None,
        now: Optional[datetime] = None,
    ) -> List[Copy]:
        now = now or utcnow()
        with self.store.unit_of_work() as session:
            if session.get_book(book_id) is None:
                raise BookNotFound(f"Book {book_id} not found.", book_id=book_id)
            return self._insert_copies(session, book_id, count, catalog_codes, now)

    def _insert_copies(
        self,
        session: StoreSession,
        book_id: str,
        count: int,
        catalog_codes: Optional[List[str]],
        now: datetime,
    ) -> List[Copy]:
        if catalog_codes:
            codes = [CatalogCodeValidator.normalize(c) for c in catalog_codes]
            if not all(codes):
                raise InvalidInput("Catalog codes must contain digits.")
        else:
            codes = [self._unused_code(session) for _ in range(count)]
        created = []
        for code in codes:
            copy = Copy(id=new_id(), book_id=book_id, catalog_code=code, status=CopyStatus.AVAILABLE,
                        created_at=now, updated_at=now)
            session.insert_copy(copy)
            created.append(copy)
        return created

    @staticmethod
    def _unused_code(session: StoreSession) -> str:
        while True:
            code = CatalogCodeValidator.generate()
            if session.get_copy_by_code(code) is None:
                return code

    def add_student(
        self,
        name: str,
        admission_number: Optional[str] = None,
        student_class: Optional[str] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Student:
        name = TextValidator.sanitize_text(name)
        if not TextValidator.is_non_empty(name):
            raise InvalidInput("Student name is required.")
        now = now or utcnow()
        student = Student(
            id=new_id(),
            name=name,
            admission_number=(admission_number or "").strip() or None,
            student_class=student_class,
            email=email,
            phone=phone,
            created_at=now,
            updated_at=now,
        )
        with self.store.unit_of_work() as session:
            session.insert_student(student)
        return student

    # ------------------------- Borrowing core ------------------------- #
    def borrow(self, student_id: str, book_id: str, due_period_value: Optional[int] = None,
               due_period_unit: Optional[str] = None, now: Optional[datetime] = None) -> BorrowRecord:
        return self.borrowing.borrow(student_id, book_id, due_period_value, due_period_unit, now=now)

    def borrow_copy(self, student_id: str, copy_id: str, due_period_value: Optional[int] = None,
                    due_period_unit: Optional[str] = None, now: Optional[datetime] = None) -> BorrowRecord:
        return self.borrowing.borrow_copy(student_id, copy_id, due_period_value, due_period_unit, now=now)

    def return_book(self, record_id: str, now: Optional[datetime] = None) -> BorrowRecord:
        return self.borrowing.return_copy(record_id, now=now)

    def return_by_code(self, catalog_code: str, now: Optional[datetime] = None) -> BorrowRecord:
        return self.borrowing.return_by_code(CatalogCodeValidator.normalize(catalog_code), now=now)

    def sweep_overdue(self, now: Optional[datetime] = None) -> SweepSummary:
        return self.sweeper.sweep(now=now)

    def reconcile(self, now: Optional[datetime] = None) -> int:
        return self.reconciler.reconcile(now=now)

    def manual_unblacklist(self, student_id: str, reason: Optional[str], admin_id: Optional[str],
                           now: Optional[datetime] = None) -> Student:
        return self.reconciler.manual_unblacklist(student_id, reason, admin_id, now=now)

    # ------------------------- Read projections ------------------------- #
    def get_book(self, book_id: str) -> Book:
        with self.store.unit_of_work(write=False) as session:
            book = session.get_book(book_id)
        if book is None:
            raise BookNotFound(f"Book {book_id} not found.", book_id=book_id)
        return book

    def get_book_details(self, book_id: str) -> Dict[str, Any]:
        """Book with its copies and availability counts."""
        with self.store.unit_of_work(write=False) as session:
            book = session.get_book(book_id)
            if book is None:
                raise BookNotFound(f"Book {book_id} not found.", book_id=book_id)
            copies = session.list_copies(book_id=book_id)
        available = sum(1 for c in copies if c.status == CopyStatus.AVAILABLE)
        details = book.to_dict()
        details.update(
            total_copies=len(copies),
            available_copies=available,
            copies=[c.to_dict() for c in copies],
        )
        return details

    def list_books(self) -> List[Book]:
        with self.store.unit_of_work(write=False) as session:
            return session.list_books()

    def list_copies(self, book_id: Optional[str] = None) -> List[Copy]:
        with self.store.unit_of_work(write=False) as session:
            return session.list_copies(book_id=book_id)

    def get_copy(self, copy_id: str) -> Optional[Copy]:
        with self.store.unit_of_work(write=False) as session:
            return session.get_copy(copy_id)

    def get_student(self, student_id: str) -> Student:
        with self.store.unit_of_work(write=False) as session:
            student = session.get_student(student_id)
        if student is None:
            raise StudentNotFound(f"Student {student_id} not found.", student_id=student_id)
        return student

    def list_students(self, blacklisted: Optional[bool] = None) -> List[Student]:
        with self.store.unit_of_work(write=False) as session:
            return session.list_students(blacklisted=blacklisted)

    def get_record(self, record_id: str) -> BorrowRecord:
        with self.store.unit_of_work(write=False) as session:
            record = session.get_record(record_id)
        if record is None:
            raise RecordNotFound(f"Borrow record {record_id} not found.", record_id=record_id)
        return record

    def get_borrow_records(
        self, status: Optional[RecordStatus] = None, student_id: Optional[str] = None
    ) -> List[BorrowRecord]:
        with self.store.unit_of_work(write=False) as session:
            return session.list_records(status=status, student_id=student_id)

    def list_overdue(self) -> List[BorrowRecord]:
        return self.get_borrow_records(status=RecordStatus.OVERDUE)

    def list_admin_actions(self, limit: int = 100) -> List[AdminAction]:
        with self.store.unit_of_work(write=False) as session:
            return session.list_admin_actions(limit=limit)

    def get_statistics(self) -> Dict[str, int]:
        with self.store.unit_of_work(write=False) as session:
            books = session.list_books()
            copies = session.list_copies()
            students = session.list_students()
            records = session.list_records()
        return {
            "total_books": len(books),
            "total_copies": len(copies),
            "available_copies": sum(1 for c in copies if c.status == CopyStatus.AVAILABLE),
            "borrowed_records": sum(1 for r in records if r.status == RecordStatus.BORROWED),
            "overdue_records": sum(1 for r in records if r.status == RecordStatus.OVERDUE),
            "total_students": len(students),
            "blacklisted_students": sum(1 for s in students if s.blacklisted),
        }

    def close(self) -> None:
        self.store.close()
