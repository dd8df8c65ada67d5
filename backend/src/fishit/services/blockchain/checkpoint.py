"""Durable watcher checkpoint."""

import structlog

logger = structlog.get_logger()

FISH_CAUGHT_STREAM = "fish_caught"


class CheckpointStore:
    """Highest block fully scanned by the event watcher.

    The stored value never decreases: advancing to a lower block is ignored.
    """

    def __init__(self, uow_factory, stream: str = FISH_CAUGHT_STREAM):
        self.uow_factory = uow_factory
        self.stream = stream

    async def load(self) -> int | None:
        """Return the persisted checkpoint, or None if the watcher never ran."""
        async with await self.uow_factory() as uow:
            return await uow.checkpoints.get_block(self.stream)

    async def advance(self, block_number: int) -> int:
        """Raise the checkpoint to block_number.

        Returns:
            The checkpoint after the write (unchanged if block_number was lower)
        """
        async with await self.uow_factory() as uow:
            stored = await uow.checkpoints.raise_to(self.stream, block_number)

        if stored > block_number:
            logger.warning("checkpoint.regression_ignored", current=stored, requested=block_number)
        else:
            logger.debug("checkpoint.advanced", stream=self.stream, block_number=stored)
        return stored
