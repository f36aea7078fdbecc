"""
storage/db.py

Local persistent store for cases and the case action log.

Schema
------
cases          : generated clinical cases; option lists stored as JSON text
case_actions   : append-only log of user selections, one row per selection

The schema version lives in ``PRAGMA user_version`` and gates a one-time
migration.  The connection may be a plain sqlite3 connection or a libSQL
embedded replica (when replica credentials are configured); rows are mapped
through ``cursor.description`` so both drivers behave the same.

Data operations never raise.  Transient failures (locked / busy / timeout)
are retried with a linear backoff; permanent failures and exhaustion are
logged and reported as ``None`` / ``False`` / ``[]``.  Only :meth:`migrate`
raises, because the store is unusable without its schema.

Usage
-----
    from storage.db import get_store
    store = get_store()
    store.migrate()
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from typing import Any, Callable, Optional, TypeVar

from pydantic import ValidationError

from storage.models import Case, CaseAction
from storage.retry import call_with_retry, linear_wait, message_predicate
from storage.settings import Settings, load_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCHEMA_VERSION = 1

DEFAULT_MAX_ATTEMPTS = 2
DEFAULT_RETRY_DELAY = 0.5  # seconds, multiplied by the attempt index

_is_transient = message_predicate("database is locked", "busy", "timeout")


class MigrationError(RuntimeError):
    """Schema setup failed; the local store cannot be used."""


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_DDL_V1 = (
    """
    CREATE TABLE IF NOT EXISTS cases (
        id             TEXT PRIMARY KEY,
        symptoms       TEXT NOT NULL,
        patient        TEXT NOT NULL,
        test_info      TEXT NOT NULL,      -- JSON array of 4 options
        diagnosis_info TEXT NOT NULL       -- JSON array of 4 options
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS case_actions (
        id         TEXT    PRIMARY KEY,
        case_id    TEXT    NOT NULL REFERENCES cases(id),
        type       TEXT    NOT NULL CHECK(type IN ('test', 'diagnosis')),
        value      TEXT    NOT NULL,
        is_correct INTEGER NOT NULL,
        attempt    INTEGER NOT NULL,
        synced     INTEGER NOT NULL,
        created_at TEXT    NOT NULL        -- ISO-8601 UTC
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_case_actions_case_created
        ON case_actions (case_id, created_at)
    """,
)

_UNUSED_CASES_SQL = """
    SELECT c.*
    FROM cases c
    LEFT JOIN (
        SELECT case_id, COUNT(*) AS correct_count
        FROM case_actions
        WHERE is_correct = 1
        GROUP BY case_id
    ) ca ON ca.case_id = c.id
    WHERE COALESCE(ca.correct_count, 0) < 2
    ORDER BY c.rowid DESC
"""


# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------


def connect(settings: Settings) -> Any:
    """
    Open the local database described by *settings*.

    With replica credentials this is a libSQL embedded replica whose
    connection exposes ``sync()``; otherwise a plain sqlite3 connection.
    """
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)

    if settings.replica_enabled:
        import libsql  # optional dependency, only needed with a replica

        logger.info("Opening embedded replica at %s (remote %s)", settings.db_path, settings.replica_url)
        conn = libsql.connect(
            str(settings.db_path),
            sync_url=settings.replica_url,
            auth_token=settings.replica_auth_token,
        )
    else:
        logger.info("No replica credentials; opening local-only database at %s", settings.db_path)
        # Streamlit reruns scripts on worker threads; access is serialised
        # by the single session loop.
        conn = sqlite3.connect(str(settings.db_path), check_same_thread=False)
        conn.execute("PRAGMA journal_mode=WAL;")

    conn.execute("PRAGMA foreign_keys=ON;")
    return conn


def _rows(cursor: Any) -> list[dict[str, Any]]:
    columns = [d[0] for d in cursor.description or ()]
    return [dict(zip(columns, row)) for row in cursor.fetchall()]


def _options_json(options) -> str:
    return json.dumps([o.to_payload() for o in options], ensure_ascii=False)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class CaseStore:
    """
    Owns the ``cases`` and ``case_actions`` collections.

    Args:
        conn:          Shared DB-API connection (sqlite3 or libSQL).
        max_attempts:  Attempt ceiling for transient failures.
        retry_delay:   Linear backoff unit in seconds.
        replicated:    Whether writes are carried to a remote replica.
        sleep:         Sleep function, injectable for tests.
    """

    def __init__(
        self,
        conn: Any,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        replicated: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.conn = conn
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.replicated = replicated
        self._sleep = sleep

    # -------------------------
    # Schema
    # -------------------------
    def schema_version(self) -> int:
        row = self.conn.execute("PRAGMA user_version").fetchone()
        return int(row[0]) if row else 0

    def migrate(self) -> int:
        """
        Create the schema if needed and return the resulting version.

        Idempotent.  The version marker is written only after every table
        statement has succeeded.

        Raises:
            MigrationError: On any failure.
        """
        try:
            version = self.schema_version()
            if version >= SCHEMA_VERSION:
                logger.info("Database is up to date (version %d)", version)
                return version

            logger.info("Migrating database from version %d to %d", version, SCHEMA_VERSION)
            if version == 0:
                for statement in _DDL_V1:
                    self.conn.execute(statement)
                logger.info("Database tables created")

            self.conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
            self.conn.commit()
        except Exception as exc:
            logger.error("Database migration failed: %s", exc)
            raise MigrationError(f"database migration failed: {exc}") from exc

        logger.info("Database migrated to version %d", SCHEMA_VERSION)
        return SCHEMA_VERSION

    # -------------------------
    # Retry wrapper
    # -------------------------
    def _safe_execute(self, label: str, operation: Callable[[], T]) -> Optional[T]:
        try:
            return call_with_retry(
                operation,
                is_retriable=_is_transient,
                wait=linear_wait(self.retry_delay),
                max_attempts=self.max_attempts,
                sleep=self._sleep,
                label=label,
            )
        except Exception:
            # already logged by call_with_retry
            return None

    def _write(self, sql: str, params: tuple) -> bool:
        try:
            self.conn.execute(sql, params)
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return True

    def _query(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        return _rows(self.conn.execute(sql, params))

    # -------------------------
    # Cases
    # -------------------------
    def insert_case(self, case: Case) -> bool:
        """Persist *case*; returns False if it could not be written."""
        ok = self._safe_execute(
            "insert_case",
            lambda: self._write(
                "INSERT INTO cases (id, symptoms, patient, test_info, diagnosis_info) VALUES (?, ?, ?, ?, ?)",
                (
                    case.id,
                    case.symptoms,
                    case.patient,
                    _options_json(case.test_info),
                    _options_json(case.diagnosis_info),
                ),
            ),
        )
        if ok:
            logger.info("Stored case id=%s", case.id)
        return ok is True

    def get_case_by_id(self, case_id: str) -> Case | None:
        rows = self._safe_execute(
            "get_case_by_id",
            lambda: self._query("SELECT * FROM cases WHERE id = ?", (case_id,)),
        )
        if not rows:
            return None
        return self._row_to_case(rows[0])

    def get_all_cases(self) -> list[Case]:
        """Return every case, most recently created first."""
        rows = self._safe_execute(
            "get_all_cases",
            lambda: self._query("SELECT * FROM cases ORDER BY rowid DESC"),
        )
        return self._rows_to_cases(rows or [])

    def get_unused_cases(self) -> list[Case] | None:
        """
        Return cases with fewer than two correct actions, newest first.

        Two correct actions means both the correct test and the correct
        diagnosis were found, so the case has nothing left to explore.
        ``None`` means the store could not be read, which is different
        from having no unused cases.
        """
        rows = self._safe_execute("get_unused_cases", lambda: self._query(_UNUSED_CASES_SQL))
        if rows is None:
            return None
        return self._rows_to_cases(rows)

    def count_unused_cases(self) -> int | None:
        cases = self.get_unused_cases()
        return None if cases is None else len(cases)

    def _rows_to_cases(self, rows: list[dict[str, Any]]) -> list[Case]:
        cases = [self._row_to_case(r) for r in rows]
        return [c for c in cases if c is not None]

    @staticmethod
    def _row_to_case(row: dict[str, Any]) -> Case | None:
        try:
            return Case.model_validate(row)
        except ValidationError as exc:
            logger.error("Skipping unreadable case row id=%s: %s", row.get("id"), exc)
            return None

    # -------------------------
    # Case actions
    # -------------------------
    def insert_case_action(self, action: CaseAction) -> bool:
        """Append *action* to the log; returns False if it could not be written."""
        ok = self._safe_execute(
            "insert_case_action",
            lambda: self._write(
                """
                INSERT INTO case_actions
                    (id, case_id, type, value, is_correct, attempt, synced, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    action.id,
                    action.case_id,
                    action.type.value,
                    action.value,
                    int(action.is_correct),
                    action.attempt,
                    int(action.synced),
                    action.created_at,
                ),
            ),
        )
        if ok:
            logger.debug(
                "Logged action case=%s type=%s value=%s correct=%s",
                action.case_id, action.type.value, action.value, action.is_correct,
            )
        return ok is True

    def get_case_actions(self, case_id: str) -> list[CaseAction] | None:
        """
        Return the log for *case_id* in creation order.

        ``None`` means the log could not be read, which is different from
        an empty log.
        """
        rows = self._safe_execute(
            "get_case_actions",
            lambda: self._query(
                "SELECT * FROM case_actions WHERE case_id = ? ORDER BY created_at ASC, rowid ASC",
                (case_id,),
            ),
        )
        if rows is None:
            return None
        return [CaseAction(**r) for r in rows]

    def list_case_actions(self) -> list[CaseAction]:
        """Every logged action, newest first."""
        rows = self._safe_execute(
            "list_case_actions",
            lambda: self._query("SELECT * FROM case_actions ORDER BY created_at DESC, rowid DESC"),
        )
        return [CaseAction(**r) for r in rows or []]


# ---------------------------------------------------------------------------
# Module-level singleton (lazy-loaded by the app layer)
# ---------------------------------------------------------------------------
_store: Optional[CaseStore] = None


def get_store(settings: Settings | None = None) -> CaseStore:
    global _store
    if _store is None:
        settings = settings or load_settings()
        _store = CaseStore(connect(settings), replicated=settings.replica_enabled)
    return _store
