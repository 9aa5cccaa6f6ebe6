"""
Read path: joins cached applications with cached features.

Pure cache reads plus in-memory join, dedup and sort. Never touches
the network.
"""

import asyncio
from typing import Optional

import structlog

from .cache import Cache
from .deduplicator import Deduplicator
from .errors import CacheMissError
from .keys import features_key, round_key
from .models import Application, EnrichedApplication, Features, RoundRef
from .normalizer import title_sort_key

logger = structlog.get_logger(__name__)


class ApplicationAssembler:
    """
    Builds the merged, sorted, de-duplicated catalog view.

    Usage:
        assembler = ApplicationAssembler(cache)
        applications = await assembler.get_applications(refs)
    """

    def __init__(self, cache: Cache, strict: bool = True):
        """
        Initialize assembler.

        Args:
            cache: Opened cache shared with the orchestrator
            strict: Raise CacheMissError when a round is missing from the
                    cache. When False the round is skipped with a warning.
        """
        self.cache = cache
        self.strict = strict

    async def _load_round(self, ref: RoundRef) -> list[dict]:
        key = round_key(ref)
        cached = await self.cache.get(key)
        if cached is None:
            if self.strict:
                raise CacheMissError(key)
            logger.warning("round_cache_miss", round=str(ref), key=key)
            return []
        return cached

    async def _enrich(self, application: Application) -> Optional[EnrichedApplication]:
        data = await self.cache.get(features_key(application))
        if data is None:
            return None

        try:
            features = Features.from_dict(data)
        except ValueError as e:
            logger.warning("cached_features_invalid", ref_id=application.ref_id, error=str(e))
            return None

        return EnrichedApplication.build(application, features)

    async def get_applications(self, refs: list[RoundRef]) -> list[EnrichedApplication]:
        """
        Assemble enriched applications for the given rounds.

        Args:
            refs: Rounds to include

        Returns:
            Enriched applications sorted by project title

        Raises:
            CacheMissError: If a round's raw data is absent (strict mode)
        """
        rounds = await asyncio.gather(*(self._load_round(ref) for ref in refs))

        applications = []
        for records in rounds:
            for record in records:
                try:
                    applications.append(Application.from_dict(record))
                except (KeyError, TypeError, ValueError) as e:
                    record_id = record.get("id") if isinstance(record, dict) else None
                    logger.warning("application_invalid", id=record_id, error=str(e))

        enriched = await asyncio.gather(*(self._enrich(app) for app in applications))

        deduplicator = Deduplicator()
        for item in enriched:
            if item is not None:
                deduplicator.process(item)

        result = sorted(deduplicator.get_all(), key=lambda e: title_sort_key(e.title))

        logger.debug(
            "applications_assembled",
            rounds=len(refs),
            applications=len(applications),
            enriched=len(result),
            duplicates=deduplicator.skipped,
        )
        return result
