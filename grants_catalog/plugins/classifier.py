"""
Rate-limited feature classification.

One model call per application, serialized across the whole batch by
a shared RateLimiter. Results are cached for 24 hours; failures are
logged and yield None so a single bad response never aborts a cycle.
"""

import json
from typing import Optional

import structlog

from grants_catalog.core.cache import Cache, DAY_MS
from grants_catalog.core.keys import features_key
from grants_catalog.core.models import Application, Features
from grants_catalog.core.rate_limit import RateLimiter

from .llm import LLMProvider, ToolCall, ToolSpec, parse_arguments
from .prompts import (
    FEATURES_SCHEMA,
    SAVE_FEATURES,
    SAVE_FEATURES_DESCRIPTION,
    SYSTEM_PROMPT,
    build_user_prompt,
)

logger = structlog.get_logger(__name__)


SAVE_FEATURES_TOOL = ToolSpec(
    name=SAVE_FEATURES,
    description=SAVE_FEATURES_DESCRIPTION,
    parameters=FEATURES_SCHEMA,
)


def features_from_tool_calls(tool_calls: list[ToolCall]) -> Features:
    """
    Extract Features from the model's tool calls.

    Raises:
        ValueError: Unless there is exactly one save_features call whose
                    arguments decode to a valid Features payload
    """
    calls = [c for c in tool_calls if c.name == SAVE_FEATURES]
    if len(calls) != 1 or len(tool_calls) != 1:
        raise ValueError(f"expected exactly one {SAVE_FEATURES} call, got {len(tool_calls)}")

    try:
        arguments = parse_arguments(calls[0].arguments)
    except json.JSONDecodeError as e:
        raise ValueError(f"arguments are not valid JSON: {e}") from e

    return Features.from_dict(arguments)


class FeatureClassifier:
    """
    Classifies applications into Features through an LLM provider.

    Usage:
        classifier = FeatureClassifier(cache, provider, RateLimiter(interval=1.0))
        features = await classifier.classify(application)
    """

    def __init__(
        self,
        cache: Cache,
        provider: LLMProvider,
        limiter: Optional[RateLimiter] = None,
        ttl_ms: int = DAY_MS,
    ):
        """
        Initialize classifier.

        Args:
            cache: Opened cache shared with the orchestrator and assembler
            provider: LLM provider performing the function call
            limiter: Shared limiter; one call per second if not provided
            ttl_ms: TTL for stored features in milliseconds
        """
        self.cache = cache
        self.provider = provider
        self.limiter = limiter or RateLimiter(interval=1.0)
        self.ttl_ms = ttl_ms

    async def cached_features(self, application: Application) -> Optional[Features]:
        """Return cached Features, or None if absent or unreadable."""
        data = await self.cache.get(features_key(application))
        if data is None:
            return None

        try:
            return Features.from_dict(data)
        except ValueError as e:
            logger.warning(
                "cached_features_invalid",
                ref_id=application.ref_id,
                error=str(e),
            )
            return None

    async def classify(self, application: Application) -> Optional[Features]:
        """
        Return Features for one application, calling the model only on a cache miss.

        Args:
            application: Application to classify

        Returns:
            Features, or None if classification failed
        """
        cached = await self.cached_features(application)
        if cached is not None:
            return cached

        async with self.limiter.lock:
            # Another task may have classified the same application while this one waited.
            cached = await self.cached_features(application)
            if cached is not None:
                return cached

            await self.limiter.throttle()
            return await self._extract(application)

    async def _extract(self, application: Application) -> Optional[Features]:
        logger.info("extracting_features", ref_id=application.ref_id)

        try:
            tool_calls = await self.provider.call_tool(
                system=SYSTEM_PROMPT,
                user=build_user_prompt(application),
                tool=SAVE_FEATURES_TOOL,
            )
        except Exception as e:
            logger.error(
                "classification_failed",
                ref_id=application.ref_id,
                provider=self.provider.name,
                error=str(e),
            )
            return None

        try:
            features = features_from_tool_calls(tool_calls)
        except ValueError as e:
            logger.error(
                "invalid_features",
                ref_id=application.ref_id,
                provider=self.provider.name,
                error=str(e),
            )
            return None

        await self.cache.set(features_key(application), features.to_dict(), self.ttl_ms)

        logger.debug("features_extracted", ref_id=application.ref_id, tags=features.tags)
        return features
