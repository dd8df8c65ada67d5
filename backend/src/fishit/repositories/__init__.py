"""Repository layer for the mint pipeline.

No base classes - each repository is self-contained and flushes its own writes.
"""

from fishit.repositories.mint_record import MintRecordRepository
from fishit.repositories.watcher_checkpoint import WatcherCheckpointRepository

__all__ = [
    "MintRecordRepository",
    "WatcherCheckpointRepository",
]
