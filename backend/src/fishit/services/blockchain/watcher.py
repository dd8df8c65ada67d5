"""Event watcher for FishCaught events.

Polls the FishingGame contract log with eth_getLogs in bounded block ranges and
records every decoded event before handing it to the pipeline. The checkpoint
advances only after every event of a range has a durable record.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import structlog
from web3 import Web3

from fishit.services.blockchain.checkpoint import CheckpointStore
from fishit.services.blockchain.events import FISH_CAUGHT_TOPIC, FishCaughtEvent, decode_fish_caught
from fishit.services.exceptions import TransientNetworkError

logger = structlog.get_logger()

EventHandler = Callable[[FishCaughtEvent], Awaitable[Any]]


@dataclass
class ScanResult:
    """Outcome of one scanned block range."""

    from_block: int
    to_block: int
    events_found: int = 0
    events_failed: int = 0


class EventWatcher:
    """Checkpointed FishCaught poller."""

    def __init__(
        self,
        w3: Web3,
        uow_factory,
        recorder: EventHandler,
        handler: EventHandler,
        contract_address: str,
        confirmation_lag: int = 5,
        backfill_blocks: int = 1000,
        log_batch_size: int = 1000,
        max_blocks_per_poll: int = 10000,
    ):
        """
        Initialize event watcher.

        Args:
            w3: Web3 instance connected to the chain RPC
            uow_factory: Factory producing UnitOfWork instances (checkpoint storage)
            recorder: Creates the durable record of an event (must be idempotent)
            handler: Pipeline entry point invoked once per recorded event
            contract_address: FishingGame contract address
            confirmation_lag: Blocks behind head considered safe (reorg margin)
            backfill_blocks: Blocks scanned behind the safe head on the very first run
            log_batch_size: Maximum block span of a single eth_getLogs request
            max_blocks_per_poll: Maximum block span scanned by one poll
        """
        self.w3 = w3
        self.recorder = recorder
        self.handler = handler
        self.contract_address = Web3.to_checksum_address(contract_address)
        self.confirmation_lag = confirmation_lag
        self.backfill_blocks = backfill_blocks
        self.log_batch_size = log_batch_size
        self.max_blocks_per_poll = max_blocks_per_poll
        self.checkpoints = CheckpointStore(uow_factory)
        self._checkpoint: int | None = None

    async def get_safe_head(self) -> int:
        """Return chain head minus the confirmation lag.

        Raises:
            TransientNetworkError: If the RPC call fails
        """
        try:
            head = await asyncio.to_thread(lambda: self.w3.eth.block_number)
        except Exception as e:
            raise TransientNetworkError(f"Failed to read block number: {e}") from e
        return max(head - self.confirmation_lag, 0)

    async def poll(self) -> ScanResult | None:
        """Scan the next block range and advance the checkpoint.

        Returns:
            ScanResult for the scanned range, or None if there was nothing new

        Raises:
            TransientNetworkError: If the RPC fails (checkpoint not advanced)
            Exception: Whatever the recorder raised (checkpoint not advanced)
        """
        safe_head = await self.get_safe_head()

        if self._checkpoint is None:
            self._checkpoint = await self.checkpoints.load()
            if self._checkpoint is None:
                self._checkpoint = max(safe_head - self.backfill_blocks, 0)
                logger.info(
                    "watcher.checkpoint.initialized",
                    block_number=self._checkpoint,
                    backfill_blocks=self.backfill_blocks,
                )

        if safe_head <= self._checkpoint:
            logger.debug("watcher.poll.up_to_date", checkpoint=self._checkpoint, safe_head=safe_head)
            return None

        from_block = self._checkpoint + 1
        to_block = min(safe_head, self._checkpoint + self.max_blocks_per_poll)

        try:
            result = await self.scan_range(from_block, to_block)
        except TransientNetworkError:
            logger.warning(
                "watcher.poll.rpc_failed",
                from_block=from_block,
                to_block=to_block,
                checkpoint=self._checkpoint,
            )
            raise

        self._checkpoint = await self.checkpoints.advance(to_block)

        logger.info(
            "watcher.poll.scanned",
            from_block=from_block,
            to_block=to_block,
            events_found=result.events_found,
            events_failed=result.events_failed,
            lag=safe_head - to_block,
        )
        return result

    async def scan_range(self, from_block: int, to_block: int) -> ScanResult:
        """Fetch events in [from_block, to_block], record them, then hand each to the handler.

        Every event is recorded before any is processed. A recorder failure
        aborts the range so the caller does not move the checkpoint past an
        event that has no record. Handler failures are logged and counted.
        They never stop the range: the retry sweep resumes those items.

        Raises:
            TransientNetworkError: If any eth_getLogs request fails
            Exception: Whatever the recorder raised
        """
        events = await self.fetch_events(from_block, to_block)
        result = ScanResult(from_block=from_block, to_block=to_block, events_found=len(events))

        for event in events:
            try:
                await self.recorder(event)
            except Exception as e:
                logger.error(
                    "watcher.event.record_failed",
                    item_id=event.item_id,
                    block_number=event.block_number,
                    from_block=from_block,
                    to_block=to_block,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise

        for event in events:
            try:
                await self.handler(event)
            except Exception as e:
                result.events_failed += 1
                logger.error(
                    "watcher.event.handler_failed",
                    item_id=event.item_id,
                    block_number=event.block_number,
                    error=str(e),
                    error_type=type(e).__name__,
                )

        return result

    async def fetch_events(self, from_block: int, to_block: int) -> list[FishCaughtEvent]:
        """Fetch and decode FishCaught events in [from_block, to_block].

        eth_getLogs is issued in chunks of log_batch_size blocks. Events are
        returned in (block number, log index) order.

        Raises:
            TransientNetworkError: If an RPC request fails
        """
        events: list[FishCaughtEvent] = []
        current_block = from_block

        while current_block <= to_block:
            chunk_end = min(current_block + self.log_batch_size - 1, to_block)

            logger.debug("watcher.eth_getLogs", from_block=current_block, to_block=chunk_end)

            try:
                logs = await asyncio.to_thread(
                    self.w3.eth.get_logs,
                    {
                        "fromBlock": current_block,
                        "toBlock": chunk_end,
                        "address": self.contract_address,
                        "topics": [FISH_CAUGHT_TOPIC],
                    },
                )
            except Exception as e:
                raise TransientNetworkError(
                    f"eth_getLogs failed for blocks {current_block}-{chunk_end}: {e}"
                ) from e

            for log in logs:
                try:
                    events.append(decode_fish_caught(log))
                except (ValueError, KeyError) as e:
                    logger.error(
                        "watcher.event.decode_failed",
                        block_number=log.get("blockNumber"),
                        error=str(e),
                    )

            current_block = chunk_end + 1

        events.sort(key=lambda event: (event.block_number, event.log_index))
        return events
