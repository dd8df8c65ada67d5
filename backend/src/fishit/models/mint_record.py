"""MintRecord entity - fish NFT with lifecycle status tracking."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, Column, LargeBinary
from sqlmodel import Field, SQLModel

from fishit.core.timezone import UTCDateTime, utcnow


class MintStatus(str, Enum):
    """Mint record lifecycle status."""

    PENDING = "pending"
    GENERATING = "generating"
    GENERATED = "generated"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"


class FishTier(str, Enum):
    """Fish tier, ordered as in the FishingGame contract enum."""

    JUNK = "Junk"
    COMMON = "Common"
    RARE = "Rare"
    EPIC = "Epic"
    LEGENDARY = "Legendary"


class FishZone(str, Enum):
    """Fishing zone, ordered as in the FishingGame contract enum."""

    SHALLOW = "Shallow"
    REEF = "Reef"
    DEEP_SEA = "DeepSea"
    ABYSSAL = "Abyssal"


class BaitType(str, Enum):
    """Bait type, ordered as in the FishingGame contract enum."""

    COMMON = "Common"
    RARE = "Rare"
    EPIC = "Epic"


TERMINAL_STATUSES = frozenset({MintStatus.COMPLETED})

# Every status the retry sweep may pick up
RETRYABLE_STATUSES = tuple(s for s in MintStatus if s not in TERMINAL_STATUSES)

# Allowed transitions. In-progress states may be re-entered after a crash,
# failed re-enters at the stage implied by the persisted artifacts.
ALLOWED_TRANSITIONS: dict[MintStatus, frozenset[MintStatus]] = {
    MintStatus.PENDING: frozenset({MintStatus.GENERATING, MintStatus.FAILED}),
    MintStatus.GENERATING: frozenset(
        {MintStatus.GENERATING, MintStatus.GENERATED, MintStatus.FAILED}
    ),
    MintStatus.GENERATED: frozenset({MintStatus.UPLOADING, MintStatus.FAILED}),
    MintStatus.UPLOADING: frozenset(
        {MintStatus.UPLOADING, MintStatus.UPLOADED, MintStatus.FAILED}
    ),
    MintStatus.UPLOADED: frozenset({MintStatus.FINALIZING, MintStatus.FAILED}),
    MintStatus.FINALIZING: frozenset(
        {
            MintStatus.FINALIZING,
            MintStatus.COMPLETED,
            MintStatus.FAILED,
            MintStatus.UPLOADED,  # release after a sequencing conflict
        }
    ),
    MintStatus.COMPLETED: frozenset(),
    MintStatus.FAILED: frozenset(
        {MintStatus.GENERATING, MintStatus.UPLOADING, MintStatus.FINALIZING}
    ),
}


class InvalidStateTransition(Exception):
    """Raised when attempting an invalid mint record state transition."""

    pass


def validate_transition(current: MintStatus, target: MintStatus) -> None:
    """Reject any transition that is not in the transition table.

    Raises:
        InvalidStateTransition: If target is not reachable from current
    """
    if target not in ALLOWED_TRANSITIONS[current]:
        allowed = ", ".join(sorted(s.value for s in ALLOWED_TRANSITIONS[current])) or "none"
        raise InvalidStateTransition(
            f"Cannot move from {current.value} to {target.value}. Allowed: {allowed}."
        )


class MintRecord(SQLModel, table=True):
    """MintRecord tracks one fish NFT from FishCaught event to setTokenURI."""

    __tablename__ = "fish_mints"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    item_id: int = Field(sa_column=Column(BigInteger, unique=True, index=True, nullable=False))

    # Immutable attributes captured from the FishCaught event
    owner_address: str = Field(max_length=42, index=True)
    tier: str = Field(max_length=20)
    zone: str = Field(max_length=20)
    bait_type: str = Field(max_length=20)
    random_seed: str = Field(max_length=78)  # uint256 as decimal string
    mint_tx_ref: Optional[str] = Field(default=None, max_length=66)
    block_number: Optional[int] = Field(default=None, sa_column=Column(BigInteger))

    status: MintStatus = Field(default=MintStatus.PENDING, index=True)

    # Transient artifact, cleared once uploaded
    image_data: Optional[bytes] = Field(default=None, sa_column=Column(LargeBinary))

    storage_image_ref: Optional[str] = Field(default=None, max_length=255)
    storage_metadata_ref: Optional[str] = Field(default=None, max_length=255)
    storage_metadata_uri: Optional[str] = Field(default=None, max_length=512)

    finalize_tx_ref: Optional[str] = Field(default=None, max_length=66)

    retry_count: int = Field(default=0, ge=0)
    last_error: Optional[str] = Field(default=None, max_length=1000)

    created_at: datetime = Field(
        default_factory=utcnow, sa_column=Column(UTCDateTime, index=True, nullable=False)
    )
    updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(UTCDateTime, nullable=False))
    completed_at: Optional[datetime] = Field(default=None, sa_column=Column(UTCDateTime))

    @property
    def has_image(self) -> bool:
        return self.image_data is not None

    @property
    def needs_generation(self) -> bool:
        """No image artifact and nothing uploaded yet."""
        return self.image_data is None and self.storage_metadata_uri is None

    @property
    def needs_upload(self) -> bool:
        return self.storage_metadata_uri is None

    @property
    def is_completed(self) -> bool:
        return self.status == MintStatus.COMPLETED

    def transition_to(self, status: MintStatus) -> None:
        """Move to a new status through the transition table.

        Raises:
            InvalidStateTransition: If the transition is not allowed
        """
        validate_transition(self.status, status)
        self.status = status
        self.updated_at = utcnow()
