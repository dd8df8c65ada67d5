"""Mint pipeline: drives one fish from FishCaught event to on-chain token URI.

Stages, each committed separately so the mint record is the durability
boundary between them:

    pending → generating → generated → uploading → uploaded → finalizing → completed

process() only runs the stages whose artifacts are missing, so it can be
re-invoked for any item at any time. Invocations for the same item are
serialized by a keyed lock.
"""

import time

import structlog

from fishit.core.locks import KeyedLock
from fishit.models.mint_record import MintRecord, MintStatus
from fishit.services.blockchain.events import FishCaughtEvent
from fishit.services.exceptions import AlreadyDoneError, SequencingConflictError
from fishit.services.interfaces import ChainFinalizer, ImageGenerator, StoragePublisher
from fishit.services.ipfs.metadata import build_metadata_fields

logger = structlog.get_logger()

SEED_MODULUS = 1_000_000


def generation_seed(random_seed: str) -> int:
    """Derive the image generation seed from the on-chain random word."""
    return int(random_seed) % SEED_MODULUS


class MintPipeline:
    """State machine advancing mint records through the stage clients."""

    def __init__(
        self,
        uow_factory,
        image_generator: ImageGenerator,
        storage_publisher: StoragePublisher,
        chain_finalizer: ChainFinalizer,
        locks: KeyedLock | None = None,
    ):
        self.uow_factory = uow_factory
        self.image_generator = image_generator
        self.storage_publisher = storage_publisher
        self.chain_finalizer = chain_finalizer
        self.locks = locks or KeyedLock()

    async def handle_event(self, event: FishCaughtEvent) -> MintRecord:
        """Record the event, then process its item."""
        await self.record_event(event)
        return await self.process_event(event)

    async def record_event(self, event: FishCaughtEvent) -> MintRecord:
        """Create the mint record for an event if it does not exist yet.

        Idempotent per item id. Storage errors propagate to the caller.
        """
        async with await self.uow_factory() as uow:
            record, created = await uow.mint_records.get_or_create(event)

        if created:
            logger.info(
                "pipeline.record.created",
                item_id=event.item_id,
                owner=event.owner_address,
                tier=event.tier,
                zone=event.zone,
                block_number=event.block_number,
            )
        else:
            logger.info("pipeline.record.duplicate", item_id=event.item_id, status=record.status.value)

        return record

    async def process_event(self, event: FishCaughtEvent) -> MintRecord:
        return await self.process(event.item_id)

    async def process(self, item_id: int) -> MintRecord:
        """Run every missing stage for the item.

        Returns:
            The record after processing

        Raises:
            MintRecordNotFoundError: If the item has no record
            ImageGenerationError, StorageUploadError, UnknownFinalizeError: Stage failure
                (already persisted as failed with last_error)
        """
        async with self.locks.lock(item_id):
            return await self._process_locked(item_id)

    async def _process_locked(self, item_id: int) -> MintRecord:
        # Re-read under the lock, another invocation may have advanced the record
        async with await self.uow_factory() as uow:
            record = await uow.mint_records.get(item_id)

        if record.is_completed:
            logger.debug("pipeline.item.skipped", item_id=item_id, reason="completed")
            return record

        start_time = time.time()
        logger.info(
            "pipeline.item.started",
            item_id=item_id,
            status=record.status.value,
            retry_count=record.retry_count,
        )

        if record.needs_generation:
            record = await self._generate(record)

        if record.needs_upload:
            record = await self._upload(record)

        record = await self._finalize(record)

        if record.is_completed:
            logger.info(
                "pipeline.item.completed",
                item_id=item_id,
                finalize_tx=record.finalize_tx_ref,
                duration_seconds=round(time.time() - start_time, 3),
            )
        return record

    async def _generate(self, record: MintRecord) -> MintRecord:
        item_id = record.item_id
        await self._set_status(item_id, MintStatus.GENERATING)
        logger.info("pipeline.stage.started", item_id=item_id, stage="generate", tier=record.tier)

        try:
            seed = generation_seed(record.random_seed)
            image = await self.image_generator.generate(record.tier, record.zone, seed)
        except Exception as e:
            await self._record_failure(item_id, "generate", e)
            raise

        async with await self.uow_factory() as uow:
            record = await uow.mint_records.save_image_artifact(item_id, image)

        logger.info("pipeline.stage.succeeded", item_id=item_id, stage="generate", size_bytes=len(image))
        return record

    async def _upload(self, record: MintRecord) -> MintRecord:
        item_id = record.item_id
        await self._set_status(item_id, MintStatus.UPLOADING)
        logger.info("pipeline.stage.started", item_id=item_id, stage="upload")

        try:
            if not record.image_data:
                raise ValueError(f"Mint record {item_id} has no image to upload")
            refs = await self.storage_publisher.publish(
                record.image_data, build_metadata_fields(record)
            )
        except Exception as e:
            await self._record_failure(item_id, "upload", e)
            raise

        async with await self.uow_factory() as uow:
            record = await uow.mint_records.save_storage_refs(item_id, refs)

        logger.info(
            "pipeline.stage.succeeded",
            item_id=item_id,
            stage="upload",
            metadata_uri=refs.metadata_uri,
        )
        return record

    async def _finalize(self, record: MintRecord) -> MintRecord:
        item_id = record.item_id
        uri = record.storage_metadata_uri
        await self._set_status(item_id, MintStatus.FINALIZING)
        logger.info("pipeline.stage.started", item_id=item_id, stage="finalize", uri=uri)

        try:
            tx_ref = await self.chain_finalizer.finalize(item_id, uri)  # type: ignore[arg-type]
        except AlreadyDoneError as e:
            logger.warning("pipeline.finalize.already_done", item_id=item_id, error=str(e))
            async with await self.uow_factory() as uow:
                return await uow.mint_records.mark_completed(item_id, None)
        except SequencingConflictError as e:
            logger.warning("pipeline.finalize.sequencing_conflict", item_id=item_id, error=str(e))
            async with await self.uow_factory() as uow:
                return await uow.mint_records.update_status(
                    item_id, MintStatus.UPLOADED, error=str(e)
                )
        except Exception as e:
            await self._record_failure(item_id, "finalize", e)
            raise

        async with await self.uow_factory() as uow:
            record = await uow.mint_records.mark_completed(item_id, tx_ref)

        logger.info("pipeline.stage.succeeded", item_id=item_id, stage="finalize", tx_hash=tx_ref)
        return record

    async def _set_status(self, item_id: int, status: MintStatus) -> None:
        async with await self.uow_factory() as uow:
            await uow.mint_records.update_status(item_id, status)

    async def _record_failure(self, item_id: int, stage: str, error: Exception) -> None:
        message = f"{stage}: {type(error).__name__}: {error}"
        async with await self.uow_factory() as uow:
            record = await uow.mint_records.record_failure(item_id, message)

        logger.error(
            "pipeline.stage.failed",
            item_id=item_id,
            stage=stage,
            error=str(error),
            error_type=type(error).__name__,
            retry_count=record.retry_count,
        )
