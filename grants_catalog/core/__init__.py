"""
Core layer - stable foundation for the enrichment pipeline.

Components:
- models: RoundRef, Application, Features, EnrichedApplication dataclasses
- cache: TTL key-value cache (SQLite file, in-memory)
- indexer: GraphQL client for the Grants Stack indexer
- rate_limit: Classifier rate limiter and bounded fetch executor
- assembler: Cached read path (join, dedup, sort)
"""

from .models import (
    RoundRef,
    Round,
    Application,
    ProjectMetadata,
    PlainAnswer,
    EncryptedAnswer,
    Features,
    EnrichedApplication,
)
from .errors import GrantsCatalogError, IndexerError, CacheMissError, ConfigError
from .cache import Cache, MemoryCache, SqliteCache, DAY_MS
from .keys import round_key, features_key
from .indexer import IndexerClient
from .rate_limit import RateLimiter, BoundedExecutor
from .normalizer import normalize_title, title_sort_key
from .deduplicator import Deduplicator
from .assembler import ApplicationAssembler

__all__ = [
    "RoundRef",
    "Round",
    "Application",
    "ProjectMetadata",
    "PlainAnswer",
    "EncryptedAnswer",
    "Features",
    "EnrichedApplication",
    "GrantsCatalogError",
    "IndexerError",
    "CacheMissError",
    "ConfigError",
    "Cache",
    "MemoryCache",
    "SqliteCache",
    "DAY_MS",
    "round_key",
    "features_key",
    "IndexerClient",
    "RateLimiter",
    "BoundedExecutor",
    "normalize_title",
    "title_sort_key",
    "Deduplicator",
    "ApplicationAssembler",
]
