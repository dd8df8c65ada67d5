"""Construction of the pipeline's service objects.

Shared by the application lifespan and the CLI commands. Every connection is
built here from Settings and passed down explicitly.
"""

from dataclasses import dataclass
from datetime import timedelta

import structlog
from web3 import Web3

from fishit.core.config import Settings
from fishit.services.blockchain.finalizer import ChainFinalizer
from fishit.services.blockchain.watcher import EventWatcher
from fishit.services.exceptions import ConfigurationError, IPFSAuthError, StorageUploadError
from fishit.services.image_generation.factory import build_image_generator
from fishit.services.ipfs.pinata_client import PinataPublisher
from fishit.services.mint_pipeline import MintPipeline
from fishit.workers.retry_scheduler import RetryScheduler

logger = structlog.get_logger()


@dataclass
class Services:
    """Lifetime-scoped service objects of one pipeline process."""

    w3: Web3
    publisher: PinataPublisher
    finalizer: ChainFinalizer
    pipeline: MintPipeline
    watcher: EventWatcher
    scheduler: RetryScheduler


def build_services(settings: Settings, uow_factory) -> Services:
    """Build stage clients, pipeline, watcher and retry scheduler.

    Raises:
        ConfigurationError: If a connection parameter is unusable
    """
    try:
        w3 = Web3(Web3.HTTPProvider(settings.rpc_url))
        finalizer = ChainFinalizer(
            w3=w3,
            contract_address=settings.fish_nft_address,
            signer_private_key=settings.backend_signer_private_key,
            gas_multiplier=settings.gas_multiplier,
            block_confirmations=settings.block_confirmations,
            transaction_timeout=settings.transaction_timeout_seconds,
        )
        image_generator = build_image_generator(settings)
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"Invalid pipeline configuration: {e}") from e

    publisher = PinataPublisher(jwt_token=settings.pinata_jwt, gateway_domain=settings.pinata_gateway)

    pipeline = MintPipeline(
        uow_factory=uow_factory,
        image_generator=image_generator,
        storage_publisher=publisher,
        chain_finalizer=finalizer,
    )

    try:
        watcher = EventWatcher(
            w3=w3,
            uow_factory=uow_factory,
            recorder=pipeline.record_event,
            handler=pipeline.process_event,
            contract_address=settings.fishing_game_address,
            confirmation_lag=settings.confirmation_lag_blocks,
            backfill_blocks=settings.backfill_blocks,
            log_batch_size=settings.log_batch_size,
            max_blocks_per_poll=settings.max_blocks_per_poll,
        )
    except ValueError as e:
        raise ConfigurationError(f"Invalid FISHING_GAME_ADDRESS: {e}") from e

    scheduler = RetryScheduler(
        uow_factory=uow_factory,
        pipeline=pipeline,
        max_retries=settings.max_retry_attempts,
        recency_window=timedelta(hours=settings.retry_window_hours),
        concurrency=settings.max_concurrent_generations,
    )

    return Services(
        w3=w3,
        publisher=publisher,
        finalizer=finalizer,
        pipeline=pipeline,
        watcher=watcher,
        scheduler=scheduler,
    )


async def run_startup_checks(services: Services) -> None:
    """Verify external credentials before the periodic tasks start.

    A rejected Pinata token is fatal. An unauthorized signer or an unreachable
    Pinata API is only logged: items wait in the retry sweep until fixed.

    Raises:
        ConfigurationError: If Pinata rejects the JWT
    """
    try:
        await services.publisher.test_authentication()
    except IPFSAuthError as e:
        raise ConfigurationError(f"Pinata authentication failed: {e}") from e
    except StorageUploadError as e:
        logger.warning("startup.pinata_check_failed", error=str(e))

    await services.finalizer.check_authorization()
