import logging
import subprocess
import sys
import webbrowser
from typing import NoReturn, Optional

import typer

from .config import settings
from .errors import LibraryError
from .library import SchoolLibrary
from .models import RecordStatus
from .seed import seed_demo_data
from .ui_helpers import (
    print_records_result,
    print_stats_result,
    print_students_result,
    print_sweep_result,
    set_output_mode,
)


class LibraryManager:
    """Lazily built library shared by all commands of one invocation."""

    _instance: Optional[SchoolLibrary] = None

    @classmethod
    def get_instance(cls) -> SchoolLibrary:
        if cls._instance is None:
            cls._instance = SchoolLibrary()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        if cls._instance is not None:
            cls._instance.close()
        cls._instance = None


def _fail(err: LibraryError) -> NoReturn:
    print(f"Error: {err.message}")
    raise typer.Exit(code=1)


app = typer.Typer(help="School library borrowing engine")


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    )
):
    """Global CLI options."""
    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
    if output:
        set_output_mode(output)


@app.command("serve")
def cli_serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default: API_HOST)"),
    port: Optional[int] = typer.Option(None, "--port", help="Port (default: API_PORT)"),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes"),
    open_browser: bool = typer.Option(True, "--browser/--no-browser", help="Open the API docs"),
):
    """Run the HTTP API with uvicorn."""
    host = host or settings.api_host
    port = int(port or settings.api_port)
    url = f"http://{host}:{port}/docs"
    print(f"Starting API on {url}")
    if open_browser:
        webbrowser.open(url)
    args = [
        sys.executable,
        "-m", "uvicorn",
        "school_library.api:app",
        "--host", host,
        "--port", str(port),
    ]
    if reload:
        args.append("--reload")
    completed = subprocess.run(args)
    if completed.returncode:
        raise typer.Exit(code=completed.returncode)


@app.command("sweep")
def cli_sweep():
    """Promote overdue loans, apply blacklists and lift expired ones."""
    summary = LibraryManager.get_instance().sweep_overdue()
    print_sweep_result(summary.to_dict())


@app.command("borrow")
def cli_borrow(
    student_id: str = typer.Argument(..., help="Student id"),
    book_id: str = typer.Argument(..., help="Book id"),
    value: Optional[int] = typer.Option(None, "--value", help="Due period value override"),
    unit: Optional[str] = typer.Option(None, "--unit", help="hours | days | weeks | months | years"),
):
    """Lend any available copy of a book to a student."""
    try:
        record = LibraryManager.get_instance().borrow(student_id, book_id, value, unit)
    except LibraryError as e:
        _fail(e)
    print(f"Borrowed: {record.book_title} [{record.catalog_code}] to {record.student_name}")
    print(f"Record: {record.id}")
    print(f"Due: {record.due_date.isoformat()}")


@app.command("return")
def cli_return(record_id: str = typer.Argument(..., help="Borrow record id")):
    """Return the copy held under a borrow record."""
    try:
        record = LibraryManager.get_instance().return_book(record_id)
    except LibraryError as e:
        _fail(e)
    print(f"Returned: {record.book_title} [{record.catalog_code}]")


@app.command("unblacklist")
def cli_unblacklist(
    student_id: str = typer.Argument(..., help="Student id"),
    reason: str = typer.Option(..., "--reason", "-r", help="Why the blacklist is lifted"),
    admin: str = typer.Option(..., "--admin", "-a", help="Id of the admin lifting it"),
):
    """Lift a student's blacklist manually."""
    try:
        student = LibraryManager.get_instance().manual_unblacklist(student_id, reason, admin)
    except LibraryError as e:
        _fail(e)
    print(f"Unblacklisted: {student.name}")


@app.command("records")
def cli_records(
    status: Optional[RecordStatus] = typer.Option(None, "--status", "-s", help="borrowed | overdue | returned"),
    student_id: Optional[str] = typer.Option(None, "--student", help="Only this student's records"),
):
    """List borrow records, newest first."""
    records = LibraryManager.get_instance().get_borrow_records(status=status, student_id=student_id)
    print_records_result(records)


@app.command("students")
def cli_students(
    blacklisted: bool = typer.Option(False, "--blacklisted", help="Only blacklisted students"),
):
    """List students."""
    students = LibraryManager.get_instance().list_students(blacklisted=True if blacklisted else None)
    print_students_result(students)


@app.command("stats")
def cli_stats():
    """Show library statistics."""
    print_stats_result(LibraryManager.get_instance().get_statistics())


@app.command("seed")
def cli_seed():
    """Load demo students, books and loans."""
    try:
        stats = seed_demo_data(LibraryManager.get_instance())
    except LibraryError as e:
        _fail(e)
    print("Demo data loaded.")
    print_stats_result(stats)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
