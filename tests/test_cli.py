import json
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from conftest import T0
from school_library.cli import LibraryManager, app
from school_library.ui_helpers import OUTPUT_MODE_ENV

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_lib(lib, monkeypatch):
    monkeypatch.setattr(LibraryManager, "_instance", lib)
    monkeypatch.setenv(OUTPUT_MODE_ENV, "plain")
    return lib


def test_records_empty():
    result = runner.invoke(app, ["records"])
    assert result.exit_code == 0
    assert "No borrow records." in result.stdout


def test_empty_listings_in_json_mode():
    for command in ("records", "students"):
        result = runner.invoke(app, ["--output", "json", command])
        assert result.exit_code == 0
        assert json.loads(result.stdout.strip().splitlines()[-1]) == []


def test_borrow_and_return(lib, student, book):
    result = runner.invoke(app, ["borrow", student.id, book.id, "--value", "3", "--unit", "days"])
    assert result.exit_code == 0
    assert "Borrowed: The River and the Source" in result.stdout
    record = lib.get_borrow_records()[0]
    assert record.due_date - record.borrow_date == timedelta(days=3)

    result = runner.invoke(app, ["return", record.id])
    assert result.exit_code == 0
    assert "Returned: The River and the Source" in result.stdout


def test_borrow_rejection_exits_non_zero(student):
    result = runner.invoke(app, ["borrow", student.id, "missing"])
    assert result.exit_code == 1
    assert "Error: Book missing not found." in result.stdout


def test_sweep_json_output(lib, student):
    for i in range(3):
        lib.borrow(student.id, lib.add_book(f"Book {i}", "Author").id, now=T0)

    result = runner.invoke(app, ["--output", "json", "sweep"])

    assert result.exit_code == 0
    assert json.loads(result.stdout.strip().splitlines()[-1]) == {"promoted": 3, "blacklisted": 1, "unblacklisted": 0}


def test_unblacklist(lib, student):
    for i in range(3):
        lib.borrow(student.id, lib.add_book(f"Book {i}", "Author").id, now=T0)
    lib.sweep_overdue(now=T0 + timedelta(hours=49))

    result = runner.invoke(app, ["unblacklist", student.id, "--reason", "ok", "--admin", "admin-7"])
    assert result.exit_code == 1
    assert "at least 10 characters" in result.stdout

    result = runner.invoke(
        app, ["unblacklist", student.id, "--reason", "Parent came in and paid", "--admin", "admin-7"]
    )
    assert result.exit_code == 0
    assert "Unblacklisted: Amina Wanjiru" in result.stdout


def test_students_and_records_listing(lib, student, book):
    lib.borrow(student.id, book.id, now=T0)

    result = runner.invoke(app, ["students"])
    assert "Amina Wanjiru (ADM-1001)" in result.stdout

    result = runner.invoke(app, ["records", "--status", "borrowed"])
    assert "borrowed  The River and the Source" in result.stdout

    result = runner.invoke(app, ["records", "--status", "returned"])
    assert "No borrow records." in result.stdout


def test_stats_and_seed():
    result = runner.invoke(app, ["seed"])
    assert result.exit_code == 0
    assert "Demo data loaded." in result.stdout
    assert "Total Books: 3" in result.stdout

    result = runner.invoke(app, ["stats"])
    assert "Students: 3" in result.stdout


@patch("subprocess.run")
@patch("webbrowser.open")
def test_serve_command(mock_webbrowser_open, mock_subprocess_run):
    mock_subprocess_run.return_value = MagicMock(returncode=0)

    result = runner.invoke(app, ["serve", "--port", "9000"])

    assert result.exit_code == 0
    assert "Starting API on http://" in result.stdout
    mock_webbrowser_open.assert_called_once()
    args = mock_subprocess_run.call_args[0][0]
    assert "school_library.api:app" in args
    assert args[args.index("--port") + 1] == "9000"
