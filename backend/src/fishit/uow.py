"""Unit of Work for the mint pipeline.

One UnitOfWork wraps one session and therefore one transaction. Pipeline stages
open a fresh one per persisted step, so a crash never loses a committed stage.
"""

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fishit.repositories.mint_record import MintRecordRepository
from fishit.repositories.watcher_checkpoint import WatcherCheckpointRepository

logger = structlog.get_logger()


class UnitOfWork:
    """Transaction scope exposing the mint record and checkpoint repositories.

    Example:
        async with await uow_factory() as uow:
            await uow.mint_records.update_status(item_id, MintStatus.GENERATING)
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.mint_records = MintRecordRepository(session)
        self.checkpoints = WatcherCheckpointRepository(session)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Commit when the block exits cleanly, otherwise roll back.

        The session is closed in both cases and exceptions propagate.
        """
        try:
            if exc_type is None:
                await self.session.commit()
                logger.debug("transaction.committed")
            else:
                await self.session.rollback()
                logger.info("transaction.rolled_back", exc_type=exc_type.__name__)
        finally:
            await self.session.close()

        return False


def create_uow_factory(session_factory: async_sessionmaker[AsyncSession]):
    """Return an async callable producing a UnitOfWork over a new session.

    Usage:
        uow_factory = create_uow_factory(setup_db_session(db_url))
        async with await uow_factory() as uow:
            record, created = await uow.mint_records.get_or_create(event)
    """

    async def _create_uow() -> UnitOfWork:
        return UnitOfWork(session_factory())

    return _create_uow
