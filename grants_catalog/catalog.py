"""
Consumer-facing read interface.

The presentation layer calls ``Catalog.get_applications()`` once per
page load and receives the full sorted list; nothing here touches the
network.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Optional

import structlog

from .core.assembler import ApplicationAssembler
from .core.cache import Cache
from .core.models import EnrichedApplication, RoundRef

logger = structlog.get_logger(__name__)


class Catalog:
    """
    Enriched application catalog bound to the configured rounds.

    Usage:
        catalog = Catalog(cache, config.rounds)
        applications = await catalog.get_applications()
    """

    def __init__(self, cache: Cache, rounds: list[RoundRef], strict: bool = True):
        self.rounds = list(rounds)
        self.assembler = ApplicationAssembler(cache, strict=strict)

    async def get_applications(self) -> list[EnrichedApplication]:
        """Return every enriched application sorted by project title."""
        return await self.assembler.get_applications(self.rounds)

    async def save_json(
        self,
        output_dir: str = "output",
        filename: Optional[str] = None,
    ) -> str:
        """
        Save the catalog to a JSON file.

        Args:
            output_dir: Directory for the output file
            filename: Optional filename (auto-generated if not provided)

        Returns:
            Path to saved file
        """
        applications = await self.get_applications()

        if not filename:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            filename = f"applications_{timestamp}.json"

        directory = Path(output_dir)
        directory.mkdir(parents=True, exist_ok=True)
        filepath = directory / filename

        with open(filepath, "w", encoding="utf-8") as f:
            json.dump([a.to_dict() for a in applications], f, ensure_ascii=False, indent=2)

        logger.info("saved_json", path=str(filepath), applications=len(applications))
        return str(filepath)
