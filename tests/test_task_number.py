# tests/test_task_number.py

from __future__ import annotations

import pytest

from taskflow_api.app.core.db import get_connection, transaction
from taskflow_api.app.services.task_number import format_task_number, generate_task_number, parse_task_number

from . import factories


def test_format_pads_to_seven_digits() -> None:
    assert format_task_number(1) == "Task #0000001"
    assert format_task_number(1234567) == "Task #1234567"


@pytest.mark.parametrize(
    "value, expected",
    [("Task #0000042", 42), ("Task #", 0), ("Ticket #0000042", 0), ("Task #12a", 0), ("", 0)],
)
def test_parse(value: str, expected: int) -> None:
    assert parse_task_number(value) == expected


def test_first_number_on_empty_table() -> None:
    conn = get_connection()
    try:
        assert generate_task_number(conn.cursor()) == "Task #0000001"
    finally:
        conn.close()


def test_continues_after_highest_number(workspace: dict) -> None:
    for _ in range(3):
        factories.create_task(workspace, "Existing")

    conn = get_connection()
    try:
        assert generate_task_number(conn.cursor()) == "Task #0000004"
    finally:
        conn.close()


def test_sees_rows_inserted_in_same_transaction(workspace: dict) -> None:
    conn = get_connection()
    try:
        with transaction(conn) as cursor:
            numbers = []
            for name in ("A", "B"):
                number = generate_task_number(cursor)
                cursor.execute(
                    "INSERT INTO tasks (task_number, name, workspace_id) VALUES (?, ?, ?)",
                    (number, name, workspace["id"]),
                )
                numbers.append(number)
    finally:
        conn.close()

    assert numbers == ["Task #0000001", "Task #0000002"]
