"""Overdue sweep and severity classification.

A sweep runs in one transaction:

1. promote ``borrowed`` records more than the grace period past due to ``overdue``;
2. classify every not-yet-blacklisted student holding overdue records and
   blacklist them for the tier's duration;
3. reconcile, lifting blacklists of students with nothing overdue left.

Running it again without intervening writes changes nothing.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from ..config import Settings, settings as default_settings
from ..models import BorrowRecord, RecordStatus, SeverityTier, utcnow
from ..stores.base import LibraryStore, StoreSession
from .blacklist import BlacklistReconciler

logger = logging.getLogger(__name__)

HIGH_MIN_COUNT = 3
HIGH_MIN_DAYS = 14
MEDIUM_MIN_COUNT = 2
MEDIUM_MIN_DAYS = 7

TIER_DURATION_DAYS = {
    SeverityTier.HIGH: 21,
    SeverityTier.MEDIUM: 14,
    SeverityTier.LOW: 7,
}


def classify_severity(overdue_count: int, max_days_overdue: int) -> Tuple[SeverityTier, int]:
    """Return ``(tier, blacklist duration in days)``."""
    if overdue_count >= HIGH_MIN_COUNT or max_days_overdue >= HIGH_MIN_DAYS:
        tier = SeverityTier.HIGH
    elif overdue_count >= MEDIUM_MIN_COUNT or max_days_overdue >= MEDIUM_MIN_DAYS:
        tier = SeverityTier.MEDIUM
    else:
        tier = SeverityTier.LOW
    return tier, TIER_DURATION_DAYS[tier]


def days_overdue(record: BorrowRecord, now: datetime) -> int:
    return max(0, (now - record.due_date) // timedelta(days=1))


@dataclass
class SeverityAssessment:
    student_id: str
    student_name: str
    overdue_count: int
    max_days_overdue: int
    tier: SeverityTier
    duration_days: int

    @property
    def reason(self) -> str:
        return (
            f"Automatic blacklist due to overdue books - {self.tier.value} severity "
            f"({self.overdue_count} books, max {self.max_days_overdue} days overdue) - "
            f"{self.duration_days} day suspension"
        )


@dataclass
class SweepSummary:
    promoted: int = 0
    blacklisted: int = 0
    unblacklisted: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class OverdueSweeper:
    def __init__(
        self,
        store: LibraryStore,
        reconciler: Optional[BlacklistReconciler] = None,
        config: Optional[Settings] = None,
    ) -> None:
        self.store = store
        self.config = config or default_settings
        self.reconciler = reconciler or BlacklistReconciler(store, config=self.config)

    @property
    def grace_period(self) -> timedelta:
        return timedelta(hours=self.config.overdue_grace_hours)

    def sweep(self, now: Optional[datetime] = None) -> SweepSummary:
        now = now or utcnow()
        summary = SweepSummary()
        with self.store.unit_of_work() as session:
            summary.promoted = session.promote_overdue(now - self.grace_period, now)
            if summary.promoted:
                logger.info("Marked %d borrow records as overdue", summary.promoted)

            for assessment in self.assess(session, now):
                if self._apply(session, assessment, now):
                    summary.blacklisted += 1

            summary.unblacklisted = self.reconciler.reconcile_session(session, now)
        return summary

    def assess(self, session: StoreSession, now: datetime) -> List[SeverityAssessment]:
        """Severity of every student with overdue records who is not blacklisted yet."""
        by_student: Dict[str, List[BorrowRecord]] = defaultdict(list)
        for record in session.list_records(status=RecordStatus.OVERDUE):
            by_student[record.student_id].append(record)

        assessments = []
        for student_id, records in by_student.items():
            student = session.get_student(student_id)
            # already blacklisted students are not re-escalated
            if student is None or student.blacklisted:
                continue
            max_days = max(days_overdue(r, now) for r in records)
            tier, duration = classify_severity(len(records), max_days)
            assessments.append(
                SeverityAssessment(
                    student_id=student_id,
                    student_name=student.name,
                    overdue_count=len(records),
                    max_days_overdue=max_days,
                    tier=tier,
                    duration_days=duration,
                )
            )
        return assessments

    def _apply(self, session: StoreSession, assessment: SeverityAssessment, now: datetime) -> bool:
        if assessment.tier is SeverityTier.LOW and not self.config.blacklist_low_severity:
            logger.info(
                "Student %s has %d overdue book(s), max %d days; below blacklist threshold",
                assessment.student_name,
                assessment.overdue_count,
                assessment.max_days_overdue,
            )
            return False

        student = session.get_student(assessment.student_id)
        if student is None:
            return False
        student.apply_blacklist(now + timedelta(days=assessment.duration_days), assessment.reason, now)
        session.update_student_blacklist(student)
        logger.info(
            "Blacklisted student %s (%s) for %d days - %s severity",
            student.name,
            student.admission_number,
            assessment.duration_days,
            assessment.tier.value,
        )
        return True
