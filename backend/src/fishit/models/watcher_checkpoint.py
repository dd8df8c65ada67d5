"""WatcherCheckpoint entity - highest fully scanned block of an event stream."""

from datetime import datetime

from sqlalchemy import BigInteger, Column
from sqlmodel import Field, SQLModel

from fishit.core.timezone import UTCDateTime, utcnow


class WatcherCheckpoint(SQLModel, table=True):
    """One row per watched event stream (currently only FishCaught)."""

    __tablename__ = "watcher_checkpoints"  # type: ignore[assignment]

    stream: str = Field(primary_key=True, max_length=64)
    block_number: int = Field(sa_column=Column(BigInteger, nullable=False))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(UTCDateTime, nullable=False))
