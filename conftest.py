from datetime import datetime, timezone

import pytest

from school_library.config import Settings
from school_library.library import SchoolLibrary

# Fixed instant the time-sensitive tests count from
T0 = datetime(2025, 3, 3, 8, 0, tzinfo=timezone.utc)


def _settings(**overrides) -> Settings:
    values = dict(
        storage_backend="sqlite",
        default_due_period_value=24,
        default_due_period_unit="hours",
        overdue_grace_hours=24,
        blacklist_low_severity=False,
        min_unblacklist_reason_length=10,
        sweep_interval_seconds=0,
        sweep_before_borrow=True,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def config():
    return _settings()


@pytest.fixture
def make_config():
    return _settings


@pytest.fixture
def lib(tmp_path, request, config):
    # One database file per test
    db_file = str(tmp_path / f"test_{request.node.name}.db")
    lib = SchoolLibrary(config=config, db_file=db_file)
    yield lib
    lib.close()


@pytest.fixture(params=["sqlite", "memory"])
def any_lib(tmp_path, request):
    """Same library on each storage backend."""
    config = _settings(storage_backend=request.param)
    lib = SchoolLibrary(config=config, db_file=str(tmp_path / "backend.db"))
    yield lib
    lib.close()


@pytest.fixture
def student(lib):
    return lib.add_student("Amina Wanjiru", admission_number="ADM-1001", student_class="Form 2A")


@pytest.fixture
def book(lib):
    return lib.add_book("The River and the Source", "Margaret A. Ogola", copies=1)
