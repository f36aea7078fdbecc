"""
pipelines/supply.py

Keeps a minimum pool of unused cases in the local store.

Missing cases are first pulled from the service's pool of pre-generated
unused cases; whatever the pool cannot cover, or all of it when the pull
fails, is generated one case at a time.  Generation errors are raised to
the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

from storage.db import CaseStore
from storage.models import Case

logger = logging.getLogger(__name__)

MIN_UNUSED_CASES: int = 3


class CaseSource(Protocol):
    def fetch_unused_cases(self) -> list[Case]: ...

    def generate_case(self, prompt: str | None = None) -> Case: ...


@dataclass
class SupplyOutcome:
    added: list[Case] = field(default_factory=list)
    pulled: int = 0
    generated: int = 0


class CaseSupplyController:
    def __init__(self, store: CaseStore, source: CaseSource, threshold: int = MIN_UNUSED_CASES) -> None:
        self.store = store
        self.source = source
        self.threshold = threshold

    def deficit(self, unused_count: int | None = None) -> int:
        if unused_count is None:
            unused_count = self.store.count_unused_cases()
        if unused_count is None:
            logger.warning("Unused cases could not be counted, skipping top-up")
            return 0
        return self.threshold - unused_count

    def ensure_supply(
        self,
        unused_count: int | None = None,
        outcome: SupplyOutcome | None = None,
    ) -> SupplyOutcome:
        """
        Top up the local pool to ``threshold`` unused cases.

        Args:
            unused_count: Already-known count of local unused cases, to
                          avoid querying the store twice.
            outcome:      Record to fill in as cases are stored.  Pass one
                          in to keep the cases obtained before a failure.

        Returns:
            What was added, and from which source.  Only cases that were
            stored locally are reported.

        Raises:
            generation.case_service.CaseServiceError: If generation fails.
        """
        if outcome is None:
            outcome = SupplyOutcome()
        needed = self.deficit(unused_count)
        if needed <= 0:
            return outcome

        logger.info("Need %d more unused cases", needed)
        remaining = needed
        try:
            remaining = self._pull_from_pool(remaining, outcome)
        except Exception as exc:
            logger.warning("Failed to fetch unused cases, will generate all %d: %s", needed, exc)
            remaining = needed

        while remaining > 0:
            case = self.source.generate_case()
            remaining -= 1
            if not self.store.insert_case(case):
                logger.error("Generated case %s could not be stored locally, dropping it", case.id)
                continue
            outcome.added.append(case)
            outcome.generated += 1

        return outcome

    def _pull_from_pool(self, remaining: int, outcome: SupplyOutcome) -> int:
        for case in self.source.fetch_unused_cases():
            if remaining <= 0:
                break
            if self.store.get_case_by_id(case.id) is not None:
                logger.debug("Pool case %s already stored locally", case.id)
                continue
            if not self.store.insert_case(case):
                logger.warning("Pool case %s could not be stored", case.id)
                continue
            outcome.added.append(case)
            outcome.pulled += 1
            remaining -= 1
        return remaining
