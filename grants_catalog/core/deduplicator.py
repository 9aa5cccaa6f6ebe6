"""
Application deduplication by composite refId.

The indexer can return the same application twice when rounds are
listed more than once in configuration; the merged view keeps the
first occurrence.
"""

from dataclasses import dataclass
from typing import Optional

import structlog

from .models import EnrichedApplication

logger = structlog.get_logger(__name__)


@dataclass
class DeduplicationResult:
    """Result of deduplication check."""
    is_duplicate: bool
    ref_id: str
    action: str = "keep"  # keep, skip


class Deduplicator:
    """refId-indexed deduplicator for enriched applications."""

    def __init__(self):
        self._seen: dict[str, EnrichedApplication] = {}
        self.skipped = 0

    def check(self, enriched: EnrichedApplication) -> DeduplicationResult:
        if enriched.ref_id in self._seen:
            return DeduplicationResult(is_duplicate=True, ref_id=enriched.ref_id, action="skip")
        return DeduplicationResult(is_duplicate=False, ref_id=enriched.ref_id)

    def process(self, enriched: EnrichedApplication) -> Optional[EnrichedApplication]:
        """
        Index the application unless its refId was already seen.

        Returns:
            The application if kept, None if it is a duplicate
        """
        result = self.check(enriched)
        if result.is_duplicate:
            self.skipped += 1
            logger.debug("application_skipped_duplicate", ref_id=result.ref_id)
            return None

        self._seen[enriched.ref_id] = enriched
        return enriched

    def get_all(self) -> list[EnrichedApplication]:
        return list(self._seen.values())

    def clear(self) -> None:
        self._seen.clear()
        self.skipped = 0

    def __len__(self) -> int:
        return len(self._seen)
