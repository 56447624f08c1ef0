from __future__ import annotations

import logging
from datetime import timedelta
from typing import Dict

from .library import SchoolLibrary
from .models import utcnow

logger = logging.getLogger(__name__)


def seed_demo_data(library: SchoolLibrary) -> Dict[str, int]:
    # students
    amina = library.add_student("Amina Wanjiru", admission_number="ADM-1001", student_class="Form 2A")
    brian = library.add_student("Brian Otieno", admission_number="ADM-1002", student_class="Form 3B")
    library.add_student("Cynthia Mutua", admission_number="ADM-1003", student_class="Form 1C")

    # books
    river = library.add_book("The River and the Source", "Margaret A. Ogola", category="Literature", copies=2)
    blossoms = library.add_book(
        "Blossoms of the Savannah", "Henry R. Ole Kulet", category="Literature",
        due_period_value=2, due_period_unit="weeks", copies=1,
    )
    library.add_book("KLB Mathematics Form 2", "KLB", category="Mathematics",
                     due_period_value=1, due_period_unit="months", copies=3)

    # one current loan and one long overdue loan
    library.borrow(amina.id, river.id)
    library.borrow(brian.id, blossoms.id, due_period_value=1, due_period_unit="days",
                   now=utcnow() - timedelta(days=20))
    library.sweep_overdue()

    stats = library.get_statistics()
    logger.info("Seeded demo data: %s", stats)
    return stats
