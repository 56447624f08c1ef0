from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from conftest import T0
from school_library.errors import InvalidReason, MissingAdmin, NotBlacklisted, StudentNotFound
from school_library.library import SchoolLibrary
from school_library.services.audit import AuditSink, NullAuditLogWriter


def _blacklist(lib, student):
    for i in range(3):
        lib.borrow(student.id, lib.add_book(f"Book {i}", "Author").id, now=T0)
    lib.sweep_overdue(now=T0 + timedelta(hours=49))
    assert lib.get_student(student.id).blacklisted


def test_manual_unblacklist_clears_and_audits(lib, student):
    _blacklist(lib, student)
    previous = lib.get_student(student.id).blacklist_reason
    now = T0 + timedelta(days=3)

    cleared = lib.manual_unblacklist(student.id, "  Parent came in and paid  ", "admin-7", now=now)

    assert not cleared.blacklisted
    assert cleared.blacklist_until is None
    assert cleared.blacklist_reason is None
    assert cleared.unblacklist_reason == "Parent came in and paid"
    assert cleared.unblacklist_admin_id == "admin-7"
    assert cleared.unblacklist_date == now
    assert lib.get_student(student.id).to_dict() == cleared.to_dict()

    (action,) = lib.list_admin_actions()
    assert action.admin_id == "admin-7"
    assert action.action_type == "unblacklist"
    assert action.target_type == "student"
    assert action.target_id == student.id
    assert action.details["previous_blacklist_reason"] == previous
    assert action.details["unblacklist_reason"] == "Parent came in and paid"


@pytest.mark.parametrize("reason", [None, "", "ok", "   short   "])
def test_short_reason_rejected(lib, student, reason):
    _blacklist(lib, student)
    with pytest.raises(InvalidReason):
        lib.manual_unblacklist(student.id, reason, "admin-7")
    assert lib.get_student(student.id).blacklisted


def test_exactly_minimum_length_reason_accepted(lib, student):
    _blacklist(lib, student)
    assert not lib.manual_unblacklist(student.id, "a" * 10, "admin-7").blacklisted


@pytest.mark.parametrize("admin_id", [None, "", "   "])
def test_missing_admin_rejected(lib, student, admin_id):
    _blacklist(lib, student)
    with pytest.raises(MissingAdmin):
        lib.manual_unblacklist(student.id, "Returned all books today", admin_id)


def test_not_blacklisted_rejected(lib, student):
    with pytest.raises(NotBlacklisted):
        lib.manual_unblacklist(student.id, "Returned all books today", "admin-7")
    assert lib.list_admin_actions() == []


def test_unknown_student(lib):
    with pytest.raises(StudentNotFound):
        lib.manual_unblacklist("nobody", "Returned all books today", "admin-7")


def test_audit_failure_does_not_undo_unblacklist(tmp_path, config):
    audit = MagicMock()
    audit.record.side_effect = RuntimeError("audit table is locked")
    lib = SchoolLibrary(config=config, db_file=str(tmp_path / "audit.db"), audit=audit)
    student = lib.add_student("Brian Otieno")
    _blacklist(lib, student)

    cleared = lib.manual_unblacklist(student.id, "Returned all books today", "admin-7")

    assert not cleared.blacklisted
    assert not lib.get_student(student.id).blacklisted
    audit.record.assert_called_once()


def test_null_audit_writer_records_nothing(tmp_path, config):
    lib = SchoolLibrary(config=config, db_file=str(tmp_path / "null.db"), audit=NullAuditLogWriter())
    student = lib.add_student("Brian Otieno")
    _blacklist(lib, student)

    lib.manual_unblacklist(student.id, "Returned all books today", "admin-7")

    assert lib.list_admin_actions() == []
    assert isinstance(lib.audit, AuditSink)
    assert not hasattr(lib.audit, "store")


def test_reconcile_lifts_only_students_without_overdue(lib, student):
    _blacklist(lib, student)
    other = lib.add_student("Brian Otieno")
    _blacklist(lib, other)

    for r in lib.get_borrow_records(student_id=student.id):
        lib.return_book(r.id, now=T0 + timedelta(hours=50))

    assert lib.reconcile(now=T0 + timedelta(hours=51)) == 1
    assert not lib.get_student(student.id).blacklisted
    assert lib.get_student(other.id).blacklisted
