import threading
from datetime import timedelta

import pytest

from conftest import T0
from school_library.errors import (
    BookNotFound,
    CopyNotFound,
    HasOverdueBooks,
    NoAvailableCopy,
    RecordNotFound,
    StudentBlacklisted,
    StudentNotFound,
)
from school_library.models import CopyStatus, RecordStatus


def test_borrow_creates_record_with_snapshot(lib, student, book):
    record = lib.borrow(student.id, book.id, now=T0)

    assert record.status is RecordStatus.BORROWED
    assert record.borrow_date == T0
    assert record.due_date == T0 + timedelta(hours=24)
    assert record.book_title == "The River and the Source"
    assert record.student_name == "Amina Wanjiru"
    assert record.student_admission_number == "ADM-1001"
    assert lib.get_copy(record.copy_id).status is CopyStatus.BORROWED
    assert lib.get_record(record.id).to_dict() == record.to_dict()


def test_due_period_override_per_part(lib, student):
    book = lib.add_book("Blossoms of the Savannah", "Henry R. Ole Kulet",
                        due_period_value=2, due_period_unit="weeks", copies=2)

    by_default = lib.borrow(student.id, book.id, now=T0)
    assert by_default.due_date == T0 + timedelta(weeks=2)

    other = lib.add_student("Brian Otieno")
    value_only = lib.borrow(other.id, book.id, due_period_value=3, now=T0)
    assert value_only.due_date == T0 + timedelta(weeks=3)


def test_borrow_of_last_copy_fails_for_second_student(lib, student, book):
    lib.borrow(student.id, book.id, now=T0)
    other = lib.add_student("Brian Otieno")

    with pytest.raises(NoAvailableCopy):
        lib.borrow(other.id, book.id, now=T0)

    assert len(lib.get_borrow_records()) == 1


def test_borrow_specific_copy(lib, student):
    book = lib.add_book("Kigogo", "Pauline Kea", catalog_codes=["978-9966-56-123-4"])
    copy = lib.list_copies(book.id)[0]
    assert copy.catalog_code == "9789966561234"

    record = lib.borrow_copy(student.id, copy.id, now=T0)
    assert record.copy_id == copy.id

    other = lib.add_student("Brian Otieno")
    with pytest.raises(NoAvailableCopy):
        lib.borrow_copy(other.id, copy.id, now=T0)
    with pytest.raises(CopyNotFound):
        lib.borrow_copy(other.id, "missing", now=T0)


def test_unknown_student_and_book(lib, student, book):
    with pytest.raises(StudentNotFound):
        lib.borrow("nobody", book.id, now=T0)
    with pytest.raises(BookNotFound):
        lib.borrow(student.id, "no-such-book", now=T0)


def test_failed_borrow_leaves_copy_available(lib, student, book):
    # invalid override is rejected after the copy was claimed
    with pytest.raises(ValueError):
        lib.borrow(student.id, book.id, due_period_value=-2, due_period_unit="days", now=T0)

    assert lib.list_copies(book.id)[0].status is CopyStatus.AVAILABLE
    assert lib.get_borrow_records() == []


def test_past_due_loan_blocks_borrowing_before_any_sweep(lib, student, book):
    lib.config.sweep_before_borrow = False
    second = lib.add_book("Chozi la Heri", "Assumpta Matei")
    lib.borrow(student.id, book.id, now=T0)

    with pytest.raises(HasOverdueBooks) as exc_info:
        lib.borrow(student.id, second.id, now=T0 + timedelta(hours=25))
    assert exc_info.value.context["overdue_count"] == 1


def test_blacklist_blocks_borrowing_until_expiry(lib, student, book):
    for i in range(3):
        lib.borrow(student.id, lib.add_book(f"Book {i}", "Author").id, now=T0)
    lib.sweep_overdue(now=T0 + timedelta(hours=49))
    flagged = lib.get_student(student.id)
    assert flagged.blacklist_until == T0 + timedelta(hours=49, days=21)

    with pytest.raises(StudentBlacklisted):
        lib.borrow(student.id, book.id, now=T0 + timedelta(hours=50))

    # past the expiry the flag no longer blocks
    record = lib.borrow(student.id, book.id, now=flagged.blacklist_until + timedelta(minutes=1))
    assert record.status is RecordStatus.BORROWED


def test_return_releases_copy(lib, student, book):
    record = lib.borrow(student.id, book.id, now=T0)
    returned = lib.return_book(record.id, now=T0 + timedelta(hours=2))

    assert returned.status is RecordStatus.RETURNED
    assert returned.return_date == T0 + timedelta(hours=2)
    assert lib.list_copies(book.id)[0].status is CopyStatus.AVAILABLE

    other = lib.add_student("Brian Otieno")
    again = lib.borrow(other.id, book.id, now=T0 + timedelta(hours=3))
    assert again.copy_id == record.copy_id


def test_repeated_return_keeps_copy_on_new_loan(lib, student, book):
    first = lib.borrow(student.id, book.id, now=T0)
    lib.return_book(first.id, now=T0 + timedelta(hours=1))
    other = lib.add_student("Brian Otieno")
    second = lib.borrow(other.id, book.id, now=T0 + timedelta(hours=2))

    repeat = lib.return_book(first.id, now=T0 + timedelta(hours=3))

    assert repeat.return_date == T0 + timedelta(hours=1)
    assert lib.get_copy(second.copy_id).status is CopyStatus.BORROWED


def test_return_unknown_record(lib):
    with pytest.raises(RecordNotFound):
        lib.return_book("missing")


def test_return_by_code(lib, student):
    book = lib.add_book("Kigogo", "Pauline Kea", catalog_codes=["9789966561234"])
    record = lib.borrow(student.id, book.id, now=T0)

    returned = lib.return_by_code("978-9966561234", now=T0 + timedelta(hours=1))
    assert returned.id == record.id
    assert returned.status is RecordStatus.RETURNED

    with pytest.raises(RecordNotFound):
        lib.return_by_code("9789966561234")
    with pytest.raises(CopyNotFound):
        lib.return_by_code("1111111111111")


def test_borrowing_works_on_both_backends(any_lib):
    student = any_lib.add_student("Cynthia Mutua")
    book = any_lib.add_book("KLB Mathematics Form 2", "KLB", copies=1)

    record = any_lib.borrow(student.id, book.id, now=T0)
    with pytest.raises(NoAvailableCopy):
        any_lib.borrow(any_lib.add_student("Brian Otieno").id, book.id, now=T0)

    any_lib.return_book(record.id, now=T0 + timedelta(hours=1))
    assert any_lib.get_statistics()["available_copies"] == 1


def test_concurrent_borrows_claim_the_copy_once(any_lib):
    book = any_lib.add_book("Kigogo", "Pauline Kea", copies=1)
    students = [any_lib.add_student(f"Student {i}") for i in range(8)]
    barrier = threading.Barrier(len(students))
    records, rejected, unexpected = [], [], []

    def borrow(student_id):
        barrier.wait()
        try:
            records.append(any_lib.borrow(student_id, book.id, now=T0))
        except NoAvailableCopy as e:
            rejected.append(e)
        except Exception as e:
            unexpected.append(e)

    threads = [threading.Thread(target=borrow, args=(s.id,)) for s in students]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert unexpected == []
    assert len(records) == 1
    assert len(rejected) == len(students) - 1
    assert [r.id for r in any_lib.get_borrow_records()] == [records[0].id]
    assert any_lib.list_copies(book.id)[0].status is CopyStatus.BORROWED
