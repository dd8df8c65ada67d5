"""CLI command for re-scanning a block range for FishCaught events.

Every event found is handed to the pipeline entry point, so missing records are
created and unfinished ones processed. Existing completed records are untouched.

Usage:
    python -m fishit.cli.rescan --from-block N [OPTIONS]

Examples:
    # Re-scan from a block up to the current safe head
    python -m fishit.cli.rescan --from-block 12345000

    # Specific block range
    python -m fishit.cli.rescan --from-block 12345000 --to-block 12346000

    # Dry run (fetch and decode only, no pipeline calls)
    python -m fishit.cli.rescan --from-block 12345000 --dry-run

    # Move the watcher checkpoint forward to the end of the range
    python -m fishit.cli.rescan --from-block 12345000 --to-block 12346000 --update-checkpoint
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

DRY_RUN_PREVIEW = 10


def parse_args(argv: list[str] | None = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(description="Re-scan a block range for FishCaught events")

    parser.add_argument("--from-block", type=int, required=True, help="Starting block (inclusive)")
    parser.add_argument(
        "--to-block",
        type=int,
        help="Ending block (inclusive, default: current safe head)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Fetch and decode events without pipeline calls or database writes",
    )
    parser.add_argument(
        "--update-checkpoint",
        action="store_true",
        help="Advance the watcher checkpoint to --to-block after the scan",
    )
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
        Exit code: 0 (success), 1 (error), 2 (some events failed in the pipeline)
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
        watcher = services.watcher

        to_block = args.to_block
        if to_block is None:
            to_block = await watcher.get_safe_head()

        if to_block < args.from_block:
            logger.error("rescan.invalid_range", from_block=args.from_block, to_block=to_block)
            return 1

        logger.info(
            "rescan.start",
            from_block=args.from_block,
            to_block=to_block,
            dry_run=args.dry_run,
        )

        if args.dry_run:
            events = await watcher.fetch_events(args.from_block, to_block)
            for event in events[:DRY_RUN_PREVIEW]:
                logger.info(
                    "rescan.dry_run_event",
                    item_id=event.item_id,
                    owner=event.owner_address,
                    tier=event.tier,
                    zone=event.zone,
                    block_number=event.block_number,
                )
            if len(events) > DRY_RUN_PREVIEW:
                logger.info("rescan.dry_run_truncated", remaining=len(events) - DRY_RUN_PREVIEW)
            logger.info("rescan.dry_run_complete", events_found=len(events))
            return 0

        result = await watcher.scan_range(args.from_block, to_block)

        if args.update_checkpoint:
            checkpoint = await watcher.checkpoints.advance(to_block)
            logger.info("rescan.checkpoint", last_processed_block=checkpoint)

        logger.info(
            "rescan.complete",
            events_found=result.events_found,
            events_failed=result.events_failed,
        )
        return 2 if result.events_failed else 0

    except KeyboardInterrupt:
        logger.warning("rescan.interrupted")
        return 2

    except Exception as e:
        logger.error("rescan.fatal_error", error=str(e), exc_info=True)
        return 1

    finally:
        await get_engine(session_factory).dispose()


def main() -> int:
    """Synchronous wrapper for async main."""
    return asyncio.run(async_main())


if __name__ == "__main__":
    sys.exit(main())
