"""CLI command running one retry sweep.

Usage:
    python -m fishit.cli.retry_sweep [-v]
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace

import structlog

from fishit.bootstrap import build_services
from fishit.core import timezone  # noqa: F401
from fishit.core.config import configure_logging, load_settings
from fishit.core.database import get_engine, setup_db_session
from fishit.services.exceptions import ServiceError
from fishit.uow import create_uow_factory

logger = structlog.get_logger()


def parse_args(argv: list[str] | None = None) -> Namespace:
    parser = ArgumentParser(description="Resume failed and unfinished fish mints once")
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )
    return parser.parse_args(argv)


async def async_main(argv: list[str] | None = None) -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (no item failed), 1 (error), 2 (some items failed)
    """
    args = parse_args(argv)

    try:
        settings = load_settings()
    except ServiceError as e:
        print(str(e), file=sys.stderr)
        return 1

    if args.verbose:
        settings.log_level = "DEBUG"
    configure_logging(settings)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    uow_factory = create_uow_factory(session_factory)

    try:
        services = build_services(settings, uow_factory)
        result = await services.scheduler.sweep()
    except Exception as e:
        logger.error("retry_sweep.fatal_error", error=str(e), exc_info=True)
        return 1
    finally:
        await get_engine(session_factory).dispose()

    logger.info(
        "retry_sweep.complete",
        candidates=result.candidates,
        completed=result.completed,
        failed=result.failed,
    )
    return 2 if result.failed else 0


def main() -> int:
    """Synchronous wrapper for async main."""
    return asyncio.run(async_main())


if __name__ == "__main__":
    sys.exit(main())
