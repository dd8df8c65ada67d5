"""FastAPI dependency injection functions."""

from typing import AsyncGenerator

from fastapi import HTTPException, Request, status

from fishit.uow import UnitOfWork
from fishit.workers.periodic import PeriodicTask


async def get_uow(request: Request) -> AsyncGenerator[UnitOfWork, None]:
    """FastAPI dependency for Unit of Work injection.

    Retrieves the UoW factory from app.state and yields a UoW instance.
    The UoW is automatically committed on successful request completion
    or rolled back if an exception occurs.

    Example:
        @router.get("/api/mints/{item_id}")
        async def get_mint(item_id: int, uow: UnitOfWork = Depends(get_uow)):
            return await uow.mint_records.get(item_id)
    """
    uow_factory = request.app.state.uow_factory
    async with await uow_factory() as uow:
        yield uow


def get_retry_task(request: Request) -> PeriodicTask:
    """Get the retry sweep task from app state.

    Raises:
        HTTPException 503: If the pipeline is not running in this process
    """
    task = getattr(request.app.state, "retry_task", None)
    if task is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Retry sweep is not running in this process",
        )
    return task
