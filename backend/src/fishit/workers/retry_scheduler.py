"""Retry sweep resuming unfinished mint records.

Selects every non-terminal record still within its retry budget and recency
window, oldest first, and re-invokes the pipeline in chunks of bounded width.
"""

import asyncio
from collections import Counter
from dataclasses import dataclass, field
from datetime import timedelta

import structlog

from fishit.services.mint_pipeline import MintPipeline

logger = structlog.get_logger(__name__)


@dataclass
class SweepResult:
    """Outcome of one retry sweep."""

    candidates: int = 0
    completed: int = 0
    failed: int = 0
    status_breakdown: dict[str, int] = field(default_factory=dict)


class RetryScheduler:
    """Periodic resume of failed and interrupted mint records."""

    def __init__(
        self,
        uow_factory,
        pipeline: MintPipeline,
        max_retries: int = 5,
        recency_window: timedelta = timedelta(hours=24),
        concurrency: int = 3,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        self.uow_factory = uow_factory
        self.pipeline = pipeline
        self.max_retries = max_retries
        self.recency_window = recency_window
        self.concurrency = concurrency

    async def sweep(self) -> SweepResult:
        """Process every retry candidate once.

        Item failures are logged and counted. They never abort the sweep.
        """
        async with await self.uow_factory() as uow:
            candidates = await uow.mint_records.select_retry_candidates(
                self.max_retries, self.recency_window
            )

        result = SweepResult(candidates=len(candidates))
        if not candidates:
            logger.debug("retry.sweep.empty")
            return result

        result.status_breakdown = dict(Counter(record.status.value for record in candidates))
        logger.info(
            "retry.sweep.started",
            candidates=len(candidates),
            status_breakdown=result.status_breakdown,
            concurrency=self.concurrency,
        )

        item_ids = [record.item_id for record in candidates]
        for start in range(0, len(item_ids), self.concurrency):
            chunk = item_ids[start : start + self.concurrency]
            outcomes = await asyncio.gather(
                *(self.pipeline.process(item_id) for item_id in chunk),
                return_exceptions=True,
            )

            for item_id, outcome in zip(chunk, outcomes):
                if isinstance(outcome, BaseException):
                    if isinstance(outcome, asyncio.CancelledError):
                        raise outcome
                    result.failed += 1
                    logger.error(
                        "retry.item.failed",
                        item_id=item_id,
                        error=str(outcome),
                        error_type=type(outcome).__name__,
                    )
                elif outcome.is_completed:
                    result.completed += 1

        logger.info(
            "retry.sweep.finished",
            candidates=result.candidates,
            completed=result.completed,
            failed=result.failed,
        )
        return result
