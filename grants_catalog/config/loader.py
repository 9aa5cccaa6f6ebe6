"""
Loader for rounds.yml.

Reads the round list and pipeline settings, expanding ${VAR} and
${VAR:-default} placeholders before parsing and falling back to
defaults for settings that are absent or empty.
"""

import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

import structlog
import yaml

from grants_catalog.core.errors import ConfigError
from grants_catalog.core.indexer import DEFAULT_INDEXER_URL
from grants_catalog.core.models import RoundRef

logger = structlog.get_logger(__name__)


def substitute_env_vars(text: str) -> str:
    """
    Substitute environment variables in text.

    Supports formats:
    - ${VAR_NAME} - required, empty string and a warning if missing
    - ${VAR_NAME:-default} - optional with default

    Args:
        text: Text with env var placeholders

    Returns:
        Text with substituted values
    """
    def replace(match):
        var_expr = match.group(1)
        if ":-" in var_expr:
            var_name, default = var_expr.split(":-", 1)
            return os.getenv(var_name) or default
        value = os.getenv(var_expr)
        if value is None:
            logger.warning("env_var_not_set", var=var_expr)
            return ""
        return value

    return re.sub(r"\$\{([^}]+)\}", replace, text)


@dataclass
class PipelineSettings:
    """Tunable settings of the refresh pipeline."""
    indexer_url: str = DEFAULT_INDEXER_URL
    cache_path: str = "cache.db"
    cache_namespace: str = "1"
    cache_ttl_hours: float = 24.0
    refresh_interval_hours: float = 24.0
    classifier_interval_seconds: float = 1.0
    max_concurrent_fetches: int = 9
    request_timeout: float = 30.0
    provider: Optional[str] = None
    model: Optional[str] = None

    @property
    def cache_ttl_ms(self) -> int:
        return int(self.cache_ttl_hours * 60 * 60 * 1000)

    @property
    def refresh_interval_seconds(self) -> float:
        return self.refresh_interval_hours * 60 * 60

    @classmethod
    def from_dict(cls, data: dict) -> "PipelineSettings":
        """
        Build settings from a YAML mapping.

        Raises:
            ConfigError: On unknown keys or invalid values
        """
        known = {f.name: f for f in fields(cls)}
        unknown = set(data) - set(known)
        if unknown:
            raise ConfigError(f"Unknown settings: {', '.join(sorted(unknown))}")

        values = {}
        for name, value in data.items():
            if value in (None, ""):
                continue
            default = known[name].default
            try:
                values[name] = type(default)(value) if default is not None else str(value)
            except (TypeError, ValueError) as e:
                raise ConfigError(f"Invalid value for {name}: {value!r}") from e

        settings = cls(**values)
        if settings.max_concurrent_fetches < 1:
            raise ConfigError("max_concurrent_fetches must be at least 1")
        if settings.classifier_interval_seconds < 0:
            raise ConfigError("classifier_interval_seconds must not be negative")
        return settings


@dataclass
class PipelineConfig:
    """Everything the CLI needs to run the pipeline."""
    settings: PipelineSettings = field(default_factory=PipelineSettings)
    rounds: list[RoundRef] = field(default_factory=list)


class ConfigLoader:
    """
    Reads rounds.yml from a config directory.

    Settings are validated strictly; bad round entries are logged and skipped.
    """

    def __init__(self, config_dir: Optional[str] = None):
        """
        Initialize config loader.

        Args:
            config_dir: Directory holding rounds.yml (the packaged one by default)
        """
        if config_dir:
            self.config_dir = Path(config_dir)
        else:
            self.config_dir = Path(__file__).parent

    def load_file(self, filename: str) -> dict:
        """
        Load YAML config file.

        Args:
            filename: Config file name (relative to config_dir)

        Returns:
            Parsed config dict

        Raises:
            ConfigError: If the file is missing or not valid YAML
        """
        filepath = self.config_dir / filename

        if not filepath.exists():
            raise ConfigError(f"Config file not found: {filepath}")

        logger.info("loading_config", file=str(filepath))

        with open(filepath, "r", encoding="utf-8") as f:
            content = f.read()

        content = substitute_env_vars(content)

        try:
            config = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {filepath}: {e}") from e

        if config is not None and not isinstance(config, dict):
            raise ConfigError(f"Config root must be a mapping: {filepath}")

        return config or {}

    def load_rounds(self, config: dict) -> list[RoundRef]:
        """
        Parse round references, skipping invalid entries and duplicates.

        Args:
            config: Parsed config dict

        Returns:
            Round references in configuration order
        """
        rounds: list[RoundRef] = []
        for round_data in config.get("rounds") or []:
            try:
                ref = RoundRef.from_dict(round_data)
            except (KeyError, TypeError, ValueError) as e:
                logger.error("round_load_failed", round=round_data, error=str(e))
                continue

            if ref in rounds:
                logger.warning("round_duplicated", round=str(ref))
                continue
            rounds.append(ref)

        return rounds

    def load(self, filename: str = "rounds.yml") -> PipelineConfig:
        """
        Load rounds and settings.

        Args:
            filename: Config file name

        Returns:
            PipelineConfig
        """
        config = self.load_file(filename)
        settings = PipelineSettings.from_dict(config.get("settings") or {})
        rounds = self.load_rounds(config)

        if not rounds:
            logger.warning("no_rounds_configured", file=filename)

        logger.info("config_loaded", rounds=len(rounds))
        return PipelineConfig(settings=settings, rounds=rounds)


def load_config(config_path: Optional[str] = None) -> PipelineConfig:
    """
    Convenience function to load the pipeline config.

    Args:
        config_path: Optional path to rounds.yml

    Returns:
        PipelineConfig
    """
    if config_path:
        path = Path(config_path)
        return ConfigLoader(str(path.parent)).load(path.name)
    return ConfigLoader().load()
