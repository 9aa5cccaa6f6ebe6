"""
CLI entry point for grants-catalog.

Usage:
    python -m grants_catalog --mode daemon
    python -m grants_catalog --mode once --rate-limit-interval 2
    python -m grants_catalog --mode export --output output
"""

import argparse
import asyncio
import logging
import sys

import structlog

# Log level mapping
LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def setup_logging(level: str = "INFO", json_output: bool = False):
    """Configure structured logging."""
    log_level = LOG_LEVELS.get(level.upper(), logging.INFO)

    if json_output:
        processors = [
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Grant project catalog with AI-enriched metadata",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Refresh every 24 hours (background service)
  python -m grants_catalog --mode daemon

  # Run a single refresh cycle
  python -m grants_catalog --mode once

  # Write the enriched catalog to JSON
  python -m grants_catalog --mode export --output output

  # Use custom config file and cache location
  python -m grants_catalog --config /path/to/rounds.yml --cache /data/cache.db
        """,
    )

    parser.add_argument(
        "--mode",
        choices=["daemon", "once", "export"],
        default="daemon",
        help="daemon (refresh on a schedule), once (single refresh) or export (write catalog)",
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to rounds.yml config file",
    )

    parser.add_argument(
        "--cache",
        type=str,
        help="Path to the SQLite cache file (overrides config)",
    )

    parser.add_argument(
        "--output",
        type=str,
        default="output",
        help="Output directory for export (default: output)",
    )

    parser.add_argument(
        "--provider",
        choices=["openai", "claude"],
        help="LLM provider (default: from config, then first with an API key)",
    )

    parser.add_argument(
        "--model",
        type=str,
        help="LLM model name (overrides config)",
    )

    parser.add_argument(
        "--rate-limit-interval",
        type=float,
        help="Minimum seconds between classification calls (overrides config)",
    )

    parser.add_argument(
        "--max-concurrent-fetches",
        type=int,
        help="Maximum concurrent round fetches (overrides config)",
    )

    parser.add_argument(
        "--lenient",
        action="store_true",
        help="Export: skip rounds missing from the cache instead of failing",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs as JSON (for production)",
    )

    parser.add_argument(
        "--version",
        action="store_true",
        help="Show version and exit",
    )

    return parser.parse_args(argv)


def apply_overrides(config, args):
    """Apply CLI flags on top of file settings."""
    settings = config.settings
    if args.cache:
        settings.cache_path = args.cache
    if args.provider:
        settings.provider = args.provider
    if args.model:
        settings.model = args.model
    if args.rate_limit_interval is not None:
        settings.classifier_interval_seconds = args.rate_limit_interval
    if args.max_concurrent_fetches is not None:
        settings.max_concurrent_fetches = args.max_concurrent_fetches
    return config


async def export_catalog(config, output_dir: str, strict: bool = True) -> str:
    """Assemble the catalog from the cache and write it as JSON."""
    from .catalog import Catalog
    from .core.cache import SqliteCache

    settings = config.settings
    async with SqliteCache(settings.cache_path, namespace=settings.cache_namespace) as cache:
        catalog = Catalog(cache, config.rounds, strict=strict)
        return await catalog.save_json(output_dir)


async def main_async(args) -> bool:
    """Async main function."""
    from .config.loader import load_config
    from .orchestrator import run_refresh

    logger = structlog.get_logger(__name__)

    config = apply_overrides(load_config(args.config), args)

    logger.info(
        "starting_grants_catalog",
        mode=args.mode,
        rounds=len(config.rounds),
        cache=config.settings.cache_path,
    )

    if args.mode == "export":
        path = await export_catalog(config, args.output, strict=not args.lenient)
        logger.info("export_complete", path=path)
        return True

    if args.mode == "once":
        stats = await run_refresh(config, once=True)
        return stats["rounds_failed"] == 0

    await run_refresh(config, once=False)
    return True


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)

    # Version check
    if args.version:
        from . import __version__
        print(f"grants-catalog {__version__}")
        sys.exit(0)

    setup_logging(args.log_level, args.json_logs)

    try:
        ok = asyncio.run(main_async(args))
        sys.exit(0 if ok else 1)
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        logger = structlog.get_logger(__name__)
        logger.exception("fatal_error", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
