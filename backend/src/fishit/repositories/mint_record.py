"""MintRecord repository for the mint pipeline.

Provides data access methods for MintRecord entities. Every status change goes
through MintRecord.transition_to, so invalid transitions never reach the database.
"""

from datetime import timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fishit.core.timezone import utcnow
from fishit.models.mint_record import RETRYABLE_STATUSES, MintRecord, MintStatus
from fishit.repositories.dialect import conflict_insert
from fishit.services.blockchain.events import FishCaughtEvent
from fishit.services.exceptions import MintRecordNotFoundError
from fishit.services.interfaces import StorageRefs

MAX_ERROR_LENGTH = 1000


class MintRecordRepository:
    """Repository for MintRecord entities (fish_mints table)."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get_by_item_id(self, item_id: int) -> MintRecord | None:
        """Retrieve mint record by on-chain item (token) ID.

        Args:
            item_id: On-chain token ID (unique)

        Returns:
            MintRecord if found, None otherwise
        """
        result = await self.session.execute(
            select(MintRecord)
            .where(MintRecord.item_id == item_id)  # type: ignore[arg-type]
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get(self, item_id: int) -> MintRecord:
        """Retrieve mint record or raise.

        Raises:
            MintRecordNotFoundError: If no record exists for item_id
        """
        record = await self.get_by_item_id(item_id)
        if record is None:
            raise MintRecordNotFoundError(item_id)
        return record

    async def get_or_create(self, event: FishCaughtEvent) -> tuple[MintRecord, bool]:
        """Insert a pending record for the event unless one already exists.

        Uses INSERT ... ON CONFLICT (item_id) DO NOTHING, so observing the same
        FishCaught event any number of times never creates a second row and never
        modifies the existing one.

        Args:
            event: Decoded FishCaught event

        Returns:
            Tuple of (record, created) where created is False for duplicates
        """
        record = MintRecord(
            item_id=event.item_id,
            owner_address=event.owner_address,
            tier=event.tier,
            zone=event.zone,
            bait_type=event.bait_type,
            random_seed=event.random_seed,
            mint_tx_ref=event.mint_tx_ref,
            block_number=event.block_number,
            status=MintStatus.PENDING,
        )
        stmt = (
            conflict_insert(self.session, MintRecord)
            .values(**record.model_dump())
            .on_conflict_do_nothing(index_elements=["item_id"])
        )
        result = await self.session.execute(stmt)
        created = result.rowcount == 1  # type: ignore[attr-defined]

        return await self.get(event.item_id), created

    async def update_status(
        self, item_id: int, status: MintStatus, error: str | None = None
    ) -> MintRecord:
        """Move record to a new status, optionally recording an error message.

        Raises:
            MintRecordNotFoundError: If no record exists
            InvalidStateTransition: If the transition is not allowed
        """
        record = await self.get(item_id)
        record.transition_to(status)
        if error is not None:
            record.last_error = error[:MAX_ERROR_LENGTH]
        return await self._save(record)

    async def save_image_artifact(self, item_id: int, image: bytes) -> MintRecord:
        """Persist generated image bytes and mark record as generated.

        Raises:
            ValueError: If image is empty
        """
        if not image:
            raise ValueError("image cannot be empty")

        record = await self.get(item_id)
        record.transition_to(MintStatus.GENERATED)
        record.image_data = image
        return await self._save(record)

    async def save_storage_refs(self, item_id: int, refs: StorageRefs) -> MintRecord:
        """Persist IPFS references, mark record as uploaded and clear the image bytes.

        Raises:
            ValueError: If any reference is empty
        """
        if not refs.image_ref or not refs.metadata_ref or not refs.metadata_uri:
            raise ValueError("image_ref, metadata_ref and metadata_uri are all required")

        record = await self.get(item_id)
        record.transition_to(MintStatus.UPLOADED)
        record.storage_image_ref = refs.image_ref
        record.storage_metadata_ref = refs.metadata_ref
        record.storage_metadata_uri = refs.metadata_uri
        record.image_data = None  # Space reclamation, the image now lives on IPFS
        return await self._save(record)

    async def mark_completed(self, item_id: int, finalize_tx_ref: str | None) -> MintRecord:
        """Mark record as completed.

        Args:
            item_id: On-chain token ID
            finalize_tx_ref: setTokenURI transaction hash. None when the URI was
                found to be already set on-chain.
        """
        record = await self.get(item_id)
        record.transition_to(MintStatus.COMPLETED)
        if finalize_tx_ref:
            record.finalize_tx_ref = finalize_tx_ref
        record.completed_at = utcnow()
        return await self._save(record)

    async def increment_retry(self, item_id: int) -> int:
        """Increment the retry counter.

        Returns:
            New retry count

        Raises:
            MintRecordNotFoundError: If no record exists
        """
        record = await self.get(item_id)
        record.retry_count += 1
        record.updated_at = utcnow()
        await self._save(record)
        return record.retry_count

    async def record_failure(self, item_id: int, error: str) -> MintRecord:
        """Mark record as failed, store the error and count the attempt.

        Args:
            item_id: On-chain token ID
            error: Error description (truncated to 1000 characters)
        """
        await self.increment_retry(item_id)
        return await self.update_status(item_id, MintStatus.FAILED, error=error)

    async def select_retry_candidates(
        self, max_retries: int, recency_window: timedelta
    ) -> list[MintRecord]:
        """Retrieve records the retry sweep should resume.

        Query explanation:
        - WHERE status IN (every non-terminal status): includes failed and in-progress
        - AND retry_count < max_retries: abandoned records are never selected again
        - AND created_at > now - recency_window: old records are abandoned too
        - ORDER BY created_at ASC: oldest first (FIFO)

        Args:
            max_retries: Retry budget per record
            recency_window: Maximum record age

        Returns:
            List of candidate records, oldest first
        """
        cutoff = utcnow() - recency_window
        result = await self.session.execute(
            select(MintRecord)
            .where(
                MintRecord.status.in_(RETRYABLE_STATUSES),  # type: ignore[attr-defined]
                MintRecord.retry_count < max_retries,  # type: ignore[arg-type]
                MintRecord.created_at > cutoff,  # type: ignore[arg-type]
            )
            .order_by(MintRecord.created_at.asc(), MintRecord.item_id.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def list_by_status(self, status: MintStatus, limit: int = 100) -> list[MintRecord]:
        """Retrieve records by status, newest first."""
        result = await self.session.execute(
            select(MintRecord)
            .where(MintRecord.status == status)  # type: ignore[arg-type]
            .order_by(MintRecord.created_at.desc())  # type: ignore[attr-defined]
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_by_owner(
        self, owner_address: str, limit: int = 10, status: MintStatus | None = None
    ) -> list[MintRecord]:
        """Retrieve an owner's most recent records, optionally only those in one status.

        Owner lookup is case-insensitive (LOWER() comparison).
        """
        query = select(MintRecord).where(
            func.lower(MintRecord.owner_address) == owner_address.lower()
        )
        if status is not None:
            query = query.where(MintRecord.status == status)  # type: ignore[arg-type]
        result = await self.session.execute(
            query.order_by(MintRecord.created_at.desc()).limit(limit)  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def get_stats(self) -> list[dict]:
        """Count records grouped by status and tier.

        Returns:
            List of {"status", "tier", "count"} rows ordered by status, tier
        """
        result = await self.session.execute(
            select(MintRecord.status, MintRecord.tier, func.count())
            .group_by(MintRecord.status, MintRecord.tier)
            .order_by(MintRecord.status, MintRecord.tier)
        )
        return [
            {"status": MintStatus(status).value, "tier": tier, "count": count}
            for status, tier, count in result.all()
        ]

    async def _save(self, record: MintRecord) -> MintRecord:
        self.session.add(record)
        await self.session.flush()
        await self.session.refresh(record)
        return record
