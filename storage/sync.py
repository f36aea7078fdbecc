"""
storage/sync.py

Best-effort reconciliation of the local store with its remote replica.

The replica is authoritative and the local database is a cache: a sync
pulls and pushes through the connection's own ``sync()`` primitive and
reports only success or failure.  A failed sync never raises; the store
keeps working in offline mode and the user may retry manually.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from storage.db import CaseStore
from storage.models import ConnectionStatus
from storage.retry import call_with_retry, exponential_wait, message_predicate
from storage.settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_SYNC_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 1.0  # seconds; doubles on each retry

_is_retriable_sync_error = message_predicate(
    "503",
    "service unavailable",
    "unavailable",
    "network",
    "timeout",
    "timed out",
    "connection",
)


class SyncManager:
    """
    Connectivity probe and sync driver for one connection handle.

    Every operation returns its own outcome.  ``status`` only remembers the
    last observed value for display.
    """

    def __init__(
        self,
        conn: Any,
        *,
        base_delay: float = DEFAULT_BASE_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.conn = conn
        self.base_delay = base_delay
        self._sleep = sleep
        self.status = ConnectionStatus.unknown

    @property
    def can_sync(self) -> bool:
        return callable(getattr(self.conn, "sync", None))

    def check_connection(self) -> bool:
        """Round-trip ``SELECT 1``; any failure means offline."""
        try:
            self.conn.execute("SELECT 1").fetchone()
        except Exception as exc:
            logger.warning("Database connection check failed: %s", exc)
            self.status = ConnectionStatus.offline
            return False
        self.status = ConnectionStatus.online
        return True

    def attempt_sync(self) -> bool:
        """Single sync attempt, as triggered by the manual sync button."""
        return self.retry_sync_with_backoff(max_attempts=1)

    def retry_sync_with_backoff(self, max_attempts: int = DEFAULT_SYNC_ATTEMPTS) -> bool:
        """
        Sync, retrying network-like failures after ``2^(n-1) * base_delay``.

        Returns:
            True on success; False on a permanent error, on exhaustion, or
            when the connection has no sync primitive.
        """
        if not self.can_sync:
            logger.info("Connection has no replica; skipping sync")
            return False

        def _sync() -> None:
            self.conn.sync()

        try:
            call_with_retry(
                _sync,
                is_retriable=_is_retriable_sync_error,
                wait=exponential_wait(self.base_delay),
                max_attempts=max_attempts,
                sleep=self._sleep,
                label="database sync",
            )
        except Exception:
            logger.warning("Database sync failed; continuing without sync")
            self.status = ConnectionStatus.offline
            return False

        logger.info("Database sync successful")
        self.status = ConnectionStatus.online
        return True


def initialize_database(
    store: CaseStore,
    sync: SyncManager,
    settings: Settings,
    max_attempts: int = DEFAULT_SYNC_ATTEMPTS,
) -> ConnectionStatus:
    """
    Bring the local database up at startup.

    Syncs first when replica credentials are configured, then migrates
    regardless of the sync outcome.

    Raises:
        storage.db.MigrationError: If the schema cannot be created.
    """
    if settings.replica_enabled:
        synced = sync.retry_sync_with_backoff(max_attempts=max_attempts)
        status = ConnectionStatus.online if synced else ConnectionStatus.offline
        if not synced:
            logger.warning("Continuing with local database only")
    else:
        logger.warning("No replica credentials found, using local database only")
        status = ConnectionStatus.offline

    store.migrate()
    return status
