"""
SQLite database integration and simple migration system.

This module provides functions for obtaining a database connection
(``get_connection``), a write transaction helper (``transaction``) and
applying migrations on application start (``init_db``).  SQLite is used
as a lightweight embedded database; to switch to another DBMS you would
replace the connection logic and adapt SQL syntax accordingly.

The migration mechanism stores applied migration versions in the
``migrations`` table and executes new migrations in order.
"""

import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from .config import settings

# Seconds a connection waits for a competing writer before failing with
# "database is locked".  Background jobs and request handlers share the
# same file, so short write contention is expected.
BUSY_TIMEOUT_SECONDS = 10


def get_database_path() -> str:
    """Compute the path to the SQLite database file.

    If ``settings.database_url`` is an absolute path, use it directly.
    Otherwise resolve it relative to the project root.
    """
    db_url = settings.database_url
    if os.path.isabs(db_url):
        return db_url
    base_dir = Path(__file__).resolve().parent.parent.parent.parent
    return str((base_dir / db_url).resolve())


def get_connection() -> sqlite3.Connection:
    """Create and return a new SQLite connection.

    Rows are returned as ``sqlite3.Row`` so columns can be accessed by
    name.  Foreign keys are enabled per connection because SQLite turns
    them off by default.
    """
    conn = sqlite3.connect(get_database_path(), timeout=BUSY_TIMEOUT_SECONDS)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def get_cursor() -> Iterator[sqlite3.Cursor]:
    """Context manager that yields a cursor and closes the connection on exit."""
    conn = get_connection()
    try:
        yield conn.cursor()
        conn.commit()
    finally:
        conn.close()


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Cursor]:
    """Run a block inside ``BEGIN IMMEDIATE`` on an existing connection.

    The write lock is taken up front, so two concurrent writers are
    serialized instead of failing at commit time.  The block commits on
    success and rolls back on any exception, which is re‑raised.
    """
    cursor = conn.cursor()
    cursor.execute("BEGIN IMMEDIATE")
    try:
        yield cursor
    except BaseException:
        conn.rollback()
        raise
    else:
        conn.commit()


MIGRATIONS: list[tuple[int, str]] = [
    # Migration 1: users, workspaces and members
    (
        1,
        """
        CREATE TABLE IF NOT EXISTS roles (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE
        );

        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            email TEXT NOT NULL UNIQUE,
            full_name TEXT,
            password TEXT,
            role_id INTEGER NOT NULL DEFAULT 3,
            disabled INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY(role_id) REFERENCES roles(id)
        );

        CREATE TABLE IF NOT EXISTS workspaces (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            created_by INTEGER,
            with_review_stage INTEGER NOT NULL DEFAULT 1,
            kpi_completion_weight INTEGER NOT NULL DEFAULT 30,
            kpi_productivity_weight INTEGER NOT NULL DEFAULT 20,
            kpi_sla_weight INTEGER NOT NULL DEFAULT 20,
            kpi_collaboration_weight INTEGER NOT NULL DEFAULT 15,
            kpi_review_weight INTEGER NOT NULL DEFAULT 15,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY(created_by) REFERENCES users(id)
        );

        CREATE TABLE IF NOT EXISTS members (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            workspace_id INTEGER NOT NULL,
            user_id INTEGER NOT NULL,
            role TEXT NOT NULL DEFAULT 'MEMBER',
            joined_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(workspace_id, user_id),
            FOREIGN KEY(workspace_id) REFERENCES workspaces(id) ON DELETE CASCADE,
            FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
        );
        CREATE INDEX IF NOT EXISTS idx_members_user_id ON members(user_id);
        """,
    ),
    # Migration 2: services (projects) and their checklist templates
    (
        2,
        """
        CREATE TABLE IF NOT EXISTS services (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            workspace_id INTEGER NOT NULL,
            name TEXT NOT NULL,
            is_public INTEGER NOT NULL DEFAULT 0,
            sla_days INTEGER,
            include_weekends INTEGER NOT NULL DEFAULT 0,
            is_routinary INTEGER NOT NULL DEFAULT 0,
            routinary_frequency TEXT,
            routinary_start_date TIMESTAMP,
            routinary_next_run_date TIMESTAMP,
            routinary_last_run_date TIMESTAMP,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY(workspace_id) REFERENCES workspaces(id) ON DELETE CASCADE
        );
        CREATE INDEX IF NOT EXISTS idx_services_routinary
            ON services(is_routinary, routinary_next_run_date);

        CREATE TABLE IF NOT EXISTS checklist_sections (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            service_id INTEGER NOT NULL,
            name TEXT NOT NULL,
            position INTEGER NOT NULL DEFAULT 0,
            FOREIGN KEY(service_id) REFERENCES services(id) ON DELETE CASCADE
        );

        CREATE TABLE IF NOT EXISTS checklist_items (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            section_id INTEGER NOT NULL,
            title TEXT NOT NULL,
            description TEXT,
            position INTEGER NOT NULL DEFAULT 0,
            require_photo INTEGER NOT NULL DEFAULT 0,
            require_remarks INTEGER NOT NULL DEFAULT 0,
            FOREIGN KEY(section_id) REFERENCES checklist_sections(id) ON DELETE CASCADE
        );
        """,
    ),
    # Migration 3: tasks, task messages and task history
    (
        3,
        """
        CREATE TABLE IF NOT EXISTS tasks (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            task_number TEXT NOT NULL UNIQUE,
            name TEXT NOT NULL,
            description TEXT,
            status TEXT NOT NULL DEFAULT 'TODO',
            workspace_id INTEGER NOT NULL,
            service_id INTEGER,
            assignee_id INTEGER,
            reviewer_id INTEGER,
            creator_id INTEGER,
            due_date TIMESTAMP,
            position INTEGER NOT NULL DEFAULT 1000,
            followed_ids TEXT,
            is_confidential INTEGER NOT NULL DEFAULT 0,
            checklist TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY(workspace_id) REFERENCES workspaces(id) ON DELETE CASCADE,
            FOREIGN KEY(service_id) REFERENCES services(id) ON DELETE SET NULL,
            FOREIGN KEY(assignee_id) REFERENCES members(id) ON DELETE SET NULL,
            FOREIGN KEY(reviewer_id) REFERENCES members(id) ON DELETE SET NULL,
            FOREIGN KEY(creator_id) REFERENCES users(id) ON DELETE SET NULL
        );
        CREATE INDEX IF NOT EXISTS idx_tasks_workspace_status ON tasks(workspace_id, status);
        CREATE INDEX IF NOT EXISTS idx_tasks_due_date ON tasks(status, due_date);
        CREATE INDEX IF NOT EXISTS idx_tasks_service_name ON tasks(service_id, name);

        CREATE TABLE IF NOT EXISTS task_messages (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            task_id INTEGER NOT NULL,
            workspace_id INTEGER NOT NULL,
            sender_id INTEGER NOT NULL,
            sender_name TEXT NOT NULL,
            content TEXT NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY(task_id) REFERENCES tasks(id) ON DELETE CASCADE,
            FOREIGN KEY(sender_id) REFERENCES users(id)
        );
        CREATE INDEX IF NOT EXISTS idx_task_messages_task ON task_messages(task_id);

        CREATE TABLE IF NOT EXISTS task_history (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            task_id INTEGER NOT NULL,
            user_id INTEGER,
            action TEXT NOT NULL,
            field TEXT,
            old_value TEXT,
            new_value TEXT,
            details TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY(task_id) REFERENCES tasks(id) ON DELETE CASCADE,
            FOREIGN KEY(user_id) REFERENCES users(id)
        );
        CREATE INDEX IF NOT EXISTS idx_task_history_task ON task_history(task_id);
        """,
    ),
    # Migration 4: notifications and password reset tokens
    (
        4,
        """
        CREATE TABLE IF NOT EXISTS notifications (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            type TEXT NOT NULL,
            title TEXT NOT NULL,
            message TEXT NOT NULL,
            workspace_id INTEGER NOT NULL,
            task_id INTEGER,
            message_id INTEGER,
            mentioned_by INTEGER,
            is_read INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            read_at TIMESTAMP,
            FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE,
            FOREIGN KEY(task_id) REFERENCES tasks(id) ON DELETE CASCADE,
            FOREIGN KEY(message_id) REFERENCES task_messages(id) ON DELETE CASCADE,
            FOREIGN KEY(mentioned_by) REFERENCES users(id) ON DELETE SET NULL
        );
        CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id, is_read);

        CREATE TABLE IF NOT EXISTS password_reset_tokens (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            token_hash TEXT NOT NULL UNIQUE,
            expires_at TIMESTAMP NOT NULL,
            used_at TIMESTAMP,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
        );
        """,
    ),
]


def init_db() -> None:
    """Initialise the database and apply pending migrations.

    Creates the ``migrations`` table if it does not exist, checks the
    current schema version, and applies any new migrations defined in
    ``MIGRATIONS``.  If you add a new migration, append it with an
    incremented version number.
    """
    with get_cursor() as cursor:
        cursor.execute(
            "CREATE TABLE IF NOT EXISTS migrations (version INTEGER PRIMARY KEY)"
        )
        cursor.execute("SELECT MAX(version) as version FROM migrations")
        row = cursor.fetchone()
        current_version = row["version"] if row and row["version"] is not None else 0

        for version, sql in MIGRATIONS:
            if version > current_version:
                cursor.executescript(sql)
                cursor.execute(
                    "INSERT INTO migrations (version) VALUES (?)", (version,)
                )
                current_version = version

        # Default roles: super_admin (1), admin (2) and user (3)
        cursor.execute("INSERT OR IGNORE INTO roles (id, name) VALUES (1, 'super_admin')")
        cursor.execute("INSERT OR IGNORE INTO roles (id, name) VALUES (2, 'admin')")
        cursor.execute("INSERT OR IGNORE INTO roles (id, name) VALUES (3, 'user')")
