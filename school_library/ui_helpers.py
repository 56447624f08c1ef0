import json
import os
from typing import Any, Dict, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# Controls CLI output: 'plain' (default), 'json' or 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"
OUTPUT_MODES = {"plain", "json", "rich"}

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in OUTPUT_MODES:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _fmt_dt(value: Any) -> str:
    if value is None:
        return "-"
    return value.strftime("%Y-%m-%d %H:%M") if hasattr(value, "strftime") else str(value)


def _status(value: Any) -> str:
    return getattr(value, "value", value) or ""


def print_records_result(records: List[Any]) -> None:
    """Print borrow records in the current output mode.
    - plain: 'id  status  title [code] -> student (due ...)' lines
    - json: list of record dicts
    - rich: table
    """
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps([r.to_dict() for r in records], ensure_ascii=False))
    elif not records:
        print("No borrow records.")
    elif mode == "rich":
        table = Table(title="Borrow Records", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="dim", no_wrap=True)
        table.add_column("Status", style="magenta")
        table.add_column("Book")
        table.add_column("Code", no_wrap=True)
        table.add_column("Student")
        table.add_column("Due", no_wrap=True)
        table.add_column("Returned", no_wrap=True)
        styles = {"overdue": "bold red", "returned": "green"}
        for r in records:
            status = _status(r.status)
            table.add_row(
                r.id,
                f"[{styles.get(status, 'yellow')}]{status}[/]",
                r.book_title or "",
                r.catalog_code or "",
                r.student_name or r.student_id,
                _fmt_dt(r.due_date),
                _fmt_dt(r.return_date),
            )
        _console.print(table)
    else:
        for r in records:
            print(
                f"{r.id}  {_status(r.status)}  {r.book_title} [{r.catalog_code}] -> "
                f"{r.student_name or r.student_id} (due {_fmt_dt(r.due_date)})"
            )


def print_students_result(students: List[Any]) -> None:
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps([s.to_dict() for s in students], ensure_ascii=False))
    elif not students:
        print("No students registered.")
    elif mode == "rich":
        table = Table(title="Students", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="dim", no_wrap=True)
        table.add_column("Name")
        table.add_column("Admission", no_wrap=True)
        table.add_column("Class")
        table.add_column("Blacklisted until", no_wrap=True)
        for s in students:
            until = f"[bold red]{_fmt_dt(s.blacklist_until)}[/]" if s.blacklisted else "-"
            table.add_row(s.id, s.name, s.admission_number or "", s.student_class or "", until)
        _console.print(table)
    else:
        for s in students:
            flag = f"  BLACKLISTED until {_fmt_dt(s.blacklist_until)}" if s.blacklisted else ""
            print(f"{s.id}  {s.name} ({s.admission_number or '-'}){flag}")


def print_sweep_result(summary: Dict[str, int]) -> None:
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps(summary, ensure_ascii=False))
    elif mode == "rich":
        content = (
            f"[bold]Promoted to overdue:[/] {summary.get('promoted', 0)}\n"
            f"[bold]Blacklisted:[/] {summary.get('blacklisted', 0)}\n"
            f"[bold]Unblacklisted:[/] {summary.get('unblacklisted', 0)}"
        )
        _console.print(Panel.fit(content, title="Overdue Sweep", border_style="blue"))
    else:
        print(f"Promoted: {summary.get('promoted', 0)}")
        print(f"Blacklisted: {summary.get('blacklisted', 0)}")
        print(f"Unblacklisted: {summary.get('unblacklisted', 0)}")


def print_stats_result(stats: Dict[str, Any]) -> None:
    """Print library statistics in the current output mode."""
    mode = get_output_mode()

    if not stats:
        print("No statistics available.")
        return

    labels = {
        "total_books": "Total Books",
        "total_copies": "Total Copies",
        "available_copies": "Available Copies",
        "borrowed_records": "Active Loans",
        "overdue_records": "Overdue Loans",
        "total_students": "Students",
        "blacklisted_students": "Blacklisted Students",
    }

    if mode == "json":
        print(json.dumps(stats, ensure_ascii=False))
    elif mode == "rich":
        content = "\n".join(f"[bold]{label}:[/] {stats.get(key, 0)}" for key, label in labels.items())
        _console.print(Panel.fit(content, title="Library Stats", border_style="blue"))
    else:
        for key, label in labels.items():
            print(f"{label}: {stats.get(key, 0)}")
