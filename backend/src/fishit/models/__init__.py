"""SQLModel database entities.

All models are imported here to ensure they're registered with SQLModel metadata
before tables are created.
"""

from fishit.models.mint_record import (
    BaitType,
    FishTier,
    FishZone,
    InvalidStateTransition,
    MintRecord,
    MintStatus,
)
from fishit.models.watcher_checkpoint import WatcherCheckpoint

__all__ = [
    "MintRecord",
    "MintStatus",
    "FishTier",
    "FishZone",
    "BaitType",
    "InvalidStateTransition",
    "WatcherCheckpoint",
]
