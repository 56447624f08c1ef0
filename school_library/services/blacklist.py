from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from ..config import Settings, settings as default_settings
from ..errors import InvalidReason, MissingAdmin, NotBlacklisted, StudentNotFound
from ..models import RecordStatus, Student, to_iso, utcnow
from ..stores.base import LibraryStore, StoreSession
from .audit import AuditLogWriter, AuditSink

logger = logging.getLogger(__name__)

SYSTEM_ADMIN_ID = "system"


def auto_unblacklist_reason(previous_reason: Optional[str]) -> str:
    return f"Auto-unblacklisted: All overdue books returned - Previous: {previous_reason or 'No previous reason'}"


class BlacklistReconciler:
    """Lifts blacklists automatically and on an administrator's request."""

    def __init__(
        self,
        store: LibraryStore,
        audit: Optional[AuditSink] = None,
        config: Optional[Settings] = None,
    ) -> None:
        self.store = store
        self.audit = audit if audit is not None else AuditLogWriter(store)
        self.config = config or default_settings

    def reconcile(self, now: Optional[datetime] = None) -> int:
        """Unblacklist every flagged student without overdue records."""
        with self.store.unit_of_work() as session:
            return self.reconcile_session(session, now or utcnow())

    def reconcile_session(self, session: StoreSession, now: datetime) -> int:
        with_overdue = {r.student_id for r in session.list_records(status=RecordStatus.OVERDUE)}
        cleared = 0
        for student in session.list_students(blacklisted=True):
            if student.id in with_overdue:
                continue
            student.clear_blacklist(auto_unblacklist_reason(student.blacklist_reason), SYSTEM_ADMIN_ID, now)
            session.update_student_blacklist(student)
            cleared += 1
        if cleared:
            logger.info("Auto-unblacklisted %d students who returned all overdue books", cleared)
        return cleared

    def manual_unblacklist(
        self,
        student_id: str,
        reason: Optional[str],
        admin_id: Optional[str],
        now: Optional[datetime] = None,
    ) -> Student:
        now = now or utcnow()
        reason = (reason or "").strip()
        min_length = self.config.min_unblacklist_reason_length
        if len(reason) < min_length:
            raise InvalidReason(
                f"Unblacklist reason is required and must be at least {min_length} characters long."
            )
        if not admin_id or not str(admin_id).strip():
            raise MissingAdmin("Admin ID is required for unblacklist operation.")

        with self.store.unit_of_work() as session:
            student = session.get_student(student_id)
            if student is None:
                raise StudentNotFound(f"Student {student_id} not found.", student_id=student_id)
            if not student.blacklisted:
                raise NotBlacklisted(f"Student {student.name} is not currently blacklisted.", student_id=student_id)
            previous_reason = student.blacklist_reason
            student.clear_blacklist(reason, admin_id, now)
            session.update_student_blacklist(student)

        logger.info("Student %s (%s) unblacklisted by admin %s: %s", student.name, student_id, admin_id, reason)

        details = {
            "student_name": student.name,
            "student_admission": student.admission_number,
            "previous_blacklist_reason": previous_reason,
            "unblacklist_reason": reason,
            "unblacklist_date": to_iso(now),
        }
        try:
            self.audit.record(admin_id, "unblacklist", "student", student_id, details, now=now)
        except Exception:
            logger.warning("Failed to log unblacklist action for student %s", student_id, exc_info=True)
        return student
