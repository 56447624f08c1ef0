from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from ..config import Settings, settings as default_settings
from ..due_dates import compute_due_date
from ..errors import (
    BookNotFound,
    CopyNotFound,
    HasOverdueBooks,
    RecordNotFound,
    StudentBlacklisted,
    StudentNotFound,
)
from ..models import Book, BorrowRecord, Copy, RecordStatus, Student, new_id, utcnow
from ..stores.base import LibraryStore, StoreSession
from .allocator import CopyAllocator
from .overdue import OverdueSweeper

logger = logging.getLogger(__name__)


class BorrowTransactionManager:
    """Borrow and return, each as a single unit of work.

    Eligibility checks, the copy claim and the record insert of a borrow all
    happen in one transaction; a failure at any point leaves the copy
    available and no record behind.
    """

    def __init__(
        self,
        store: LibraryStore,
        allocator: Optional[CopyAllocator] = None,
        sweeper: Optional[OverdueSweeper] = None,
        config: Optional[Settings] = None,
    ) -> None:
        self.store = store
        self.allocator = allocator or CopyAllocator()
        self.sweeper = sweeper
        self.config = config or default_settings

    # ------------------------------------------------------------------ borrow
    def borrow(
        self,
        student_id: str,
        book_id: str,
        due_period_value: Optional[int] = None,
        due_period_unit: Optional[Any] = None,
        now: Optional[datetime] = None,
    ) -> BorrowRecord:
        """Lend any available copy of ``book_id`` to ``student_id``."""
        now = now or utcnow()
        self._sweep_first(now)
        with self.store.unit_of_work() as session:
            student = self._check_eligibility(session, student_id, now)
            book = session.get_book(book_id)
            if book is None:
                raise BookNotFound(f"Book {book_id} not found.", book_id=book_id)
            copy = self.allocator.allocate(session, book_id, now)
            record = self._create_record(session, student, book, copy, due_period_value, due_period_unit, now)
        logger.info("Copy %s of '%s' lent to %s until %s", copy.catalog_code, book.title, student.name, record.due_date)
        return record

    def borrow_copy(
        self,
        student_id: str,
        copy_id: str,
        due_period_value: Optional[int] = None,
        due_period_unit: Optional[Any] = None,
        now: Optional[datetime] = None,
    ) -> BorrowRecord:
        """Lend one specific copy (scanned at the desk) to ``student_id``."""
        now = now or utcnow()
        self._sweep_first(now)
        with self.store.unit_of_work() as session:
            student = self._check_eligibility(session, student_id, now)
            copy = self.allocator.allocate_copy(session, copy_id, now)
            book = session.get_book(copy.book_id)
            if book is None:
                raise BookNotFound(f"Book {copy.book_id} not found.", book_id=copy.book_id)
            record = self._create_record(session, student, book, copy, due_period_value, due_period_unit, now)
        logger.info("Copy %s of '%s' lent to %s until %s", copy.catalog_code, book.title, student.name, record.due_date)
        return record

    def _sweep_first(self, now: datetime) -> None:
        if self.sweeper is not None and self.config.sweep_before_borrow:
            self.sweeper.sweep(now=now)

    def _check_eligibility(self, session: StoreSession, student_id: str, now: datetime) -> Student:
        # Loans past due that no sweep has promoted yet.
        past_due = session.count_past_due_borrowed(student_id, now)
        if past_due > 0:
            raise HasOverdueBooks(
                "Student has overdue books and cannot borrow until they are returned "
                "and blacklist is cleared by admin.",
                student_id=student_id,
                overdue_count=past_due,
            )

        student = session.get_student(student_id)
        if student is None:
            raise StudentNotFound(f"Student {student_id} not found.", student_id=student_id)

        if student.is_blacklisted_at(now):
            raise StudentBlacklisted(
                "Student is currently blacklisted and cannot borrow books until cleared by admin.",
                student_id=student_id,
                blacklist_until=student.blacklist_until.isoformat() if student.blacklist_until else None,
                reason=student.blacklist_reason,
            )
        return student

    def _create_record(
        self,
        session: StoreSession,
        student: Student,
        book: Book,
        copy: Copy,
        due_period_value: Optional[int],
        due_period_unit: Optional[Any],
        now: datetime,
    ) -> BorrowRecord:
        # Each part of the period falls back to the book's default on its own.
        value = due_period_value if due_period_value is not None else book.due_period_value
        unit = due_period_unit or book.due_period_unit
        record = BorrowRecord(
            id=new_id(),
            copy_id=copy.id,
            student_id=student.id,
            borrow_date=now,
            due_date=compute_due_date(now, value, unit),
            status=RecordStatus.BORROWED,
            book_id=book.id,
            book_title=book.title,
            book_author=book.author,
            catalog_code=copy.catalog_code,
            student_name=student.name,
            student_admission_number=student.admission_number,
            student_class=student.student_class,
            created_at=now,
            updated_at=now,
        )
        session.insert_record(record)
        return record

    # ------------------------------------------------------------------ return
    def return_copy(self, record_id: str, now: Optional[datetime] = None) -> BorrowRecord:
        """Close the loan and put its copy back on the shelf."""
        now = now or utcnow()
        with self.store.unit_of_work() as session:
            record = session.get_record(record_id)
            if record is None:
                raise RecordNotFound(f"Borrow record {record_id} not found.", record_id=record_id)
            self._close(session, record, now)
        return record

    def return_by_code(self, catalog_code: str, now: Optional[datetime] = None) -> BorrowRecord:
        """Quick return: close the open loan of the copy carrying ``catalog_code``."""
        now = now or utcnow()
        with self.store.unit_of_work() as session:
            copy = session.get_copy_by_code(catalog_code)
            if copy is None:
                raise CopyNotFound(f"No copy with catalog code {catalog_code}.", catalog_code=catalog_code)
            record = session.find_open_record_for_copy(copy.id)
            if record is None:
                raise RecordNotFound(
                    f"Copy {catalog_code} has no open borrow record.", catalog_code=catalog_code
                )
            self._close(session, record, now)
        return record

    def _close(self, session: StoreSession, record: BorrowRecord, now: datetime) -> None:
        if record.status is RecordStatus.RETURNED:
            # Repeated return. The copy may already be out on a newer loan,
            # so it is not touched.
            return
        was_overdue = record.status is RecordStatus.OVERDUE
        session.mark_record_returned(record.id, now)
        self.allocator.release(session, record.copy_id, now)
        record.return_date = now
        record.status = RecordStatus.RETURNED
        record.updated_at = now
        logger.info(
            "Borrow record %s returned%s (copy %s)",
            record.id,
            " after being overdue" if was_overdue else "",
            record.catalog_code,
        )
