"""
Refresh orchestrator for the enrichment pipeline.

Coordinates one refresh cycle:
- Concurrent per-round fetches from the indexer
- Persisting each round's applications to the cache
- Rate-limited classification of applications without cached features

and the scheduling loop that repeats the cycle on a fixed delay.
"""

import asyncio
from enum import Enum
from typing import Optional

import structlog

from .config.loader import PipelineConfig
from .core.cache import Cache, SqliteCache, DAY_MS
from .core.errors import GrantsCatalogError
from .core.indexer import IndexerClient
from .core.keys import round_key
from .core.models import Application, RoundRef
from .core.rate_limit import BoundedExecutor, RateLimiter
from .plugins.classifier import FeatureClassifier
from .plugins.llm import LLMProvider, select_provider

logger = structlog.get_logger(__name__)


class CycleState(str, Enum):
    """
    Stage of the current refresh cycle.

    Features are persisted by the classifier as each call completes, so
    feature persistence happens within CLASSIFYING.
    """
    IDLE = "idle"
    FETCHING = "fetching"
    PERSISTING_ROUNDS = "persisting_rounds"
    CLASSIFYING = "classifying"


class RefreshOrchestrator:
    """
    Runs refresh cycles and the scheduling loop.

    Failures are isolated: a failing round is skipped, a failing
    classification yields no features, and a failing cycle is logged
    before the loop re-arms.
    """

    def __init__(
        self,
        cache: Cache,
        indexer: IndexerClient,
        classifier: FeatureClassifier,
        executor: Optional[BoundedExecutor] = None,
        ttl_ms: int = DAY_MS,
    ):
        """
        Initialize orchestrator.

        Args:
            cache: Opened cache shared with the classifier and assembler
            indexer: Entered IndexerClient
            classifier: FeatureClassifier with its shared rate limiter
            executor: Bounded executor for per-round fetches
            ttl_ms: TTL for stored round data in milliseconds
        """
        self.cache = cache
        self.indexer = indexer
        self.classifier = classifier
        self.executor = executor or BoundedExecutor()
        self.ttl_ms = ttl_ms

        self.state = CycleState.IDLE
        self.cycles = 0
        self._stop = asyncio.Event()
        self.stats = self._empty_stats()

    @staticmethod
    def _empty_stats() -> dict:
        return {
            "rounds_fetched": 0,
            "rounds_failed": 0,
            "applications_fetched": 0,
            "applications_invalid": 0,
            "features_cached": 0,
            "features_extracted": 0,
            "features_failed": 0,
        }

    async def run_cycle(self, refs: list[RoundRef]) -> dict:
        """
        Run one refresh cycle.

        Args:
            refs: Rounds to refresh

        Returns:
            Cycle statistics
        """
        self.stats = self._empty_stats()
        logger.info("refresh_started", rounds=len(refs))

        try:
            purged = await self.cache.purge_expired()
            if purged:
                logger.info("expired_entries_purged", count=purged)

            self.state = CycleState.FETCHING
            fetched = await self._fetch_rounds(refs)

            self.state = CycleState.PERSISTING_ROUNDS
            records = await self._persist_rounds(fetched)

            applications = self._parse_applications(records)
            logger.info("applications_fetched", count=len(applications))

            self.state = CycleState.CLASSIFYING
            await self._classify_all(applications)
        finally:
            self.state = CycleState.IDLE
            self.cycles += 1

        logger.info("refresh_complete", **self.stats)
        return self.stats

    async def _fetch_rounds(self, refs: list[RoundRef]) -> list[tuple[RoundRef, list[dict]]]:
        results = await self.executor.map(self.indexer.fetch_applications, refs)

        fetched = []
        for ref, result in zip(refs, results):
            if isinstance(result, BaseException):
                logger.error("round_fetch_failed", round=str(ref), error=str(result))
                self.stats["rounds_failed"] += 1
                continue
            fetched.append((ref, result))
        return fetched

    async def _persist_rounds(self, fetched: list[tuple[RoundRef, list[dict]]]) -> list[dict]:
        records: list[dict] = []
        for ref, round_records in fetched:
            # Overwrites the previous cycle's entry and restarts its TTL.
            await self.cache.set(round_key(ref), round_records, self.ttl_ms)
            logger.debug("round_persisted", round=str(ref), applications=len(round_records))
            self.stats["rounds_fetched"] += 1
            records.extend(round_records)
        return records

    def _parse_applications(self, records: list[dict]) -> list[Application]:
        applications: dict[str, Application] = {}
        for record in records:
            try:
                application = Application.from_dict(record)
            except (KeyError, TypeError, ValueError) as e:
                record_id = record.get("id") if isinstance(record, dict) else None
                logger.warning("application_invalid", id=record_id, error=str(e))
                self.stats["applications_invalid"] += 1
                continue
            applications.setdefault(application.ref_id, application)

        self.stats["applications_fetched"] = len(applications)
        return list(applications.values())

    async def _classify_all(self, applications: list[Application]) -> None:
        total = len(applications)
        progress = 0

        async def classify(application: Application) -> None:
            nonlocal progress
            if await self.classifier.cached_features(application) is not None:
                self.stats["features_cached"] += 1
                progress += 1
                logger.debug("features_cached", progress=progress, total=total)
                return

            features = await self.classifier.classify(application)
            progress += 1
            if features is None:
                self.stats["features_failed"] += 1
                logger.warning(
                    "features_missing",
                    ref_id=application.ref_id,
                    progress=progress,
                    total=total,
                )
            else:
                self.stats["features_extracted"] += 1
                logger.info("features_extracted", progress=progress, total=total)

        results = await asyncio.gather(
            *(classify(app) for app in applications),
            return_exceptions=True,
        )
        for application, result in zip(applications, results):
            if isinstance(result, Exception):
                self.stats["features_failed"] += 1
                logger.error(
                    "classification_errored",
                    ref_id=application.ref_id,
                    error=str(result),
                )

    async def run_forever(self, refs: list[RoundRef], interval: float = 24 * 60 * 60) -> None:
        """
        Run a cycle, wait ``interval`` seconds, repeat until stop() is called.

        The next cycle is scheduled whether or not the previous one failed,
        and only after it has finished.
        """
        logger.info("scheduler_started", rounds=len(refs), interval_seconds=interval)

        while not self._stop.is_set():
            try:
                await self.run_cycle(refs)
                logger.info("refresh_successful", cycle=self.cycles)
            except Exception as e:
                logger.exception("refresh_failed", cycle=self.cycles, error=str(e))

            try:
                await asyncio.wait_for(self._stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

        logger.info("scheduler_stopped", cycles=self.cycles)

    def stop(self) -> None:
        """Stop the scheduling loop at its next wait."""
        self._stop.set()


def build_provider(config: PipelineConfig) -> LLMProvider:
    """
    Select the LLM provider from settings and environment credentials.

    Raises:
        GrantsCatalogError: If no provider has an API key
    """
    provider = select_provider(
        provider=config.settings.provider,
        model=config.settings.model,
    )
    if provider is None:
        raise GrantsCatalogError(
            "No LLM provider available. Set OPENAI_API_KEY or ANTHROPIC_API_KEY."
        )
    return provider


async def run_refresh(
    config: PipelineConfig,
    once: bool = True,
    provider: Optional[LLMProvider] = None,
    cache: Optional[Cache] = None,
) -> Optional[dict]:
    """
    Open the cache and indexer client, then refresh once or forever.

    Args:
        config: Loaded pipeline config
        once: Run a single cycle instead of the scheduling loop
        provider: LLM provider (selected from the environment if not provided)
        cache: Cache to use (SqliteCache at settings.cache_path if not provided)

    Returns:
        Cycle statistics when ``once`` is True
    """
    settings = config.settings
    provider = provider or build_provider(config)
    cache = cache or SqliteCache(settings.cache_path, namespace=settings.cache_namespace)

    async with cache, IndexerClient(
        base_url=settings.indexer_url,
        timeout=settings.request_timeout,
    ) as indexer:
        classifier = FeatureClassifier(
            cache=cache,
            provider=provider,
            limiter=RateLimiter(interval=settings.classifier_interval_seconds),
            ttl_ms=settings.cache_ttl_ms,
        )
        orchestrator = RefreshOrchestrator(
            cache=cache,
            indexer=indexer,
            classifier=classifier,
            executor=BoundedExecutor(max_concurrency=settings.max_concurrent_fetches),
            ttl_ms=settings.cache_ttl_ms,
        )

        if once:
            return await orchestrator.run_cycle(config.rounds)

        try:
            await orchestrator.run_forever(config.rounds, interval=settings.refresh_interval_seconds)
        finally:
            orchestrator.stop()
        return None
