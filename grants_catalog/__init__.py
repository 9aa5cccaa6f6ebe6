"""
Grants Catalog - enrichment pipeline for grant-funded projects.

Architecture:
- core/: Stable foundation (models, cache, indexer client, rate limiting, assembler)
- plugins/: LLM feature classification (OpenAI, Claude)
- config/: YAML-driven round and pipeline settings
- orchestrator: Scheduled refresh cycle
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
