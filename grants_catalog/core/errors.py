"""Exception hierarchy for the enrichment pipeline."""


class GrantsCatalogError(Exception):
    """Base class for all pipeline errors."""


class IndexerError(GrantsCatalogError):
    """Fetching applications from the indexer failed."""

    def __init__(self, message: str, round_ref: str = ""):
        super().__init__(message)
        self.round_ref = round_ref


class CacheMissError(GrantsCatalogError):
    """Raw round data is missing from the cache on the read path."""

    def __init__(self, key: str):
        super().__init__(f"Cache miss for {key}")
        self.key = key


class ConfigError(GrantsCatalogError):
    """Configuration file is missing or invalid."""
