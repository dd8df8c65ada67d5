"""Watcher checkpoint repository."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fishit.core.timezone import utcnow
from fishit.models.watcher_checkpoint import WatcherCheckpoint
from fishit.repositories.dialect import conflict_insert


class WatcherCheckpointRepository:
    """Reads and raises watcher checkpoints.

    The database enforces monotonicity: the upsert only overwrites a lower block.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_block(self, stream: str) -> int | None:
        result = await self.session.execute(
            select(WatcherCheckpoint.block_number).where(WatcherCheckpoint.stream == stream)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def raise_to(self, stream: str, block_number: int) -> int:
        """Store block_number unless the stored checkpoint is already at or above it.

        Returns:
            The stored checkpoint after the upsert
        """
        stmt = conflict_insert(self.session, WatcherCheckpoint).values(
            stream=stream,
            block_number=block_number,
            updated_at=utcnow(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["stream"],
            set_={
                "block_number": stmt.excluded.block_number,
                "updated_at": stmt.excluded.updated_at,
            },
            where=WatcherCheckpoint.block_number < stmt.excluded.block_number,  # type: ignore[arg-type]
        )
        await self.session.execute(stmt)
        await self.session.flush()

        result = await self.session.execute(
            select(WatcherCheckpoint.block_number).where(WatcherCheckpoint.stream == stream)  # type: ignore[arg-type]
        )
        return result.scalar_one()
