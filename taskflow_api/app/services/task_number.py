"""Sequential human‑readable task numbers (``Task #0000001``)."""

import sqlite3

TASK_NUMBER_PREFIX = "Task #"
TASK_NUMBER_DIGITS = 7


def format_task_number(number: int) -> str:
    return f"{TASK_NUMBER_PREFIX}{number:0{TASK_NUMBER_DIGITS}d}"


def parse_task_number(value: str) -> int:
    """Return the numeric part of ``Task #NNNNNNN`` (0 if malformed)."""
    if not value or not value.startswith(TASK_NUMBER_PREFIX):
        return 0
    digits = value[len(TASK_NUMBER_PREFIX):]
    return int(digits) if digits.isdigit() else 0


def generate_task_number(cursor: sqlite3.Cursor) -> str:
    """Return the next task number.

    The highest number is read through the caller's cursor, so rows
    inserted earlier in the same transaction are taken into account and
    two tasks created in one transaction never receive the same number.
    Numbers are zero‑padded to a fixed width, so the lexical maximum is
    also the numeric one.
    """
    row = cursor.execute(
        "SELECT task_number FROM tasks WHERE task_number LIKE ? "
        "ORDER BY task_number DESC LIMIT 1",
        (f"{TASK_NUMBER_PREFIX}%",),
    ).fetchone()
    last = parse_task_number(row[0]) if row else 0
    return format_task_number(last + 1)
