"""
storage/case_manager.py

Higher-level entry points for the UI layer.

Responsibilities
----------------
- Loading the case list together with a connectivity status.
- Topping up the unused case pool, falling back to whatever is already
  available when the case service fails.
- Manual sync with a status result.
- Opening a case session replayed from the local log.

Nothing here raises for connectivity or service failures; the outcome is
carried in the returned values instead.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from generation.case_service import CaseServiceError
from pipelines.progression import CaseSession
from pipelines.supply import CaseSupplyController, SupplyOutcome
from storage.db import CaseStore
from storage.models import Case, ConnectionStatus
from storage.sync import SyncManager

logger = logging.getLogger(__name__)


@dataclass
class CaseListing:
    status: ConnectionStatus
    cases: list[Case] = field(default_factory=list)
    error: Optional[str] = None


def _status(online: bool) -> ConnectionStatus:
    return ConnectionStatus.online if online else ConnectionStatus.offline


def fetch_cases_with_status(
    store: CaseStore,
    sync: SyncManager,
    supply: CaseSupplyController,
) -> CaseListing:
    """
    Return the unused cases to show, topping up the pool first if needed.

    On a case service failure the listing keeps the cases already
    available plus any the top-up stored before failing, reports
    ``offline`` and carries the error message.  If the local store cannot
    be read no top-up is attempted.
    """
    listing = CaseListing(status=_status(sync.check_connection()))

    unused = store.get_unused_cases()
    if unused is None:
        listing.error = "the local case store could not be read"
        return listing
    listing.cases = unused
    logger.info("Unused cases fetched: %d", len(listing.cases))

    outcome = SupplyOutcome()
    try:
        supply.ensure_supply(unused_count=len(listing.cases), outcome=outcome)
    except CaseServiceError as exc:
        logger.error("Error topping up cases: %s", exc)
        listing.status = ConnectionStatus.offline
        listing.error = str(exc)

    known = {c.id for c in listing.cases}
    listing.cases.extend(c for c in outcome.added if c.id not in known)
    return listing


def handle_manual_sync(sync: SyncManager) -> ConnectionStatus:
    """
    Run one sync attempt on user request.

    Any failure, including a local-only connection, reports offline.
    """
    return _status(sync.attempt_sync())


def open_case_session(store: CaseStore, case_id: str, **kwargs) -> Optional[CaseSession]:
    """Replay *case_id* from the local log into a live session."""
    session = CaseSession.resume(store, case_id, **kwargs)
    if session is not None:
        logger.info(
            "Opened case %s at phase=%s score=%d",
            case_id, session.phase.value, session.score,
        )
    return session
