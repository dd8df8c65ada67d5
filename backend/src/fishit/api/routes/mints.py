"""Mint status API endpoints.

Read access to the fish_mints table for the game frontend and operators:
- GET /api/mints/stats - Record counts grouped by status and tier
- GET /api/mints - Records of an owner and/or in a status
- GET /api/mints/{item_id} - Single record
- POST /api/mints/retry - Run the retry sweep now
"""

from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from fishit.api.dependencies import get_retry_task, get_uow
from fishit.models.mint_record import MintRecord, MintStatus
from fishit.uow import UnitOfWork
from fishit.workers.periodic import PeriodicTask

logger = structlog.get_logger()
router = APIRouter(prefix="/api/mints", tags=["mints"])


# Response Models


class MintRecordDTO(BaseModel):
    """Data Transfer Object for mint records in API responses."""

    item_id: int = Field(..., description="On-chain token ID")
    owner_address: str = Field(..., description="Wallet that caught the fish")
    tier: str
    zone: str
    bait_type: str
    status: MintStatus = Field(..., description="Pipeline lifecycle status")
    storage_image_ref: str | None = Field(default=None, description="IPFS CID of the image")
    storage_metadata_uri: str | None = Field(
        default=None, description="Token URI (ipfs://<CID>), null until uploaded"
    )
    mint_tx_ref: str | None = None
    finalize_tx_ref: str | None = Field(
        default=None, description="setTokenURI transaction hash (null if not finalized)"
    )
    retry_count: int
    last_error: str | None = None
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None

    @classmethod
    def from_record(cls, record: MintRecord) -> "MintRecordDTO":
        return cls.model_validate(record, from_attributes=True)


class MintListResponse(BaseModel):
    mints: list[MintRecordDTO]
    count: int


class MintStatsRow(BaseModel):
    status: str
    tier: str
    count: int


class MintStatsResponse(BaseModel):
    """Record counts grouped by status and tier, plus per-status totals."""

    total: int
    by_status: dict[str, int]
    rows: list[MintStatsRow]


class RetryTriggerResponse(BaseModel):
    triggered: bool = Field(
        ..., description="False if a sweep was already in flight and this request was skipped"
    )


# API Endpoints


@router.get("/stats", response_model=MintStatsResponse)
async def get_mint_stats(uow: UnitOfWork = Depends(get_uow)) -> MintStatsResponse:
    """Return record counts grouped by status and tier."""
    rows = await uow.mint_records.get_stats()

    by_status: dict[str, int] = {}
    for row in rows:
        by_status[row["status"]] = by_status.get(row["status"], 0) + row["count"]

    return MintStatsResponse(
        total=sum(by_status.values()),
        by_status=by_status,
        rows=[MintStatsRow(**row) for row in rows],
    )


@router.get("", response_model=MintListResponse)
async def list_mints(
    owner: str | None = Query(default=None, description="Owner wallet address"),
    status_filter: MintStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=10, ge=1, le=100),
    uow: UnitOfWork = Depends(get_uow),
) -> MintListResponse:
    """List an owner's most recent records, or the records in a status.

    At least one of owner and status is required. With both, the owner's
    records are filtered by status.
    """
    if owner is None and status_filter is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Either 'owner' or 'status' query parameter is required",
        )

    if owner is not None:
        records = await uow.mint_records.list_by_owner(owner, limit=limit, status=status_filter)
    else:
        records = await uow.mint_records.list_by_status(status_filter, limit=limit)  # type: ignore[arg-type]

    mints = [MintRecordDTO.from_record(record) for record in records]
    return MintListResponse(mints=mints, count=len(mints))


@router.get("/{item_id}", response_model=MintRecordDTO)
async def get_mint(item_id: int, uow: UnitOfWork = Depends(get_uow)) -> MintRecordDTO:
    """Return a single mint record.

    Raises:
        HTTPException 404: No record for item_id
    """
    record = await uow.mint_records.get_by_item_id(item_id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Mint record {item_id} not found",
        )
    return MintRecordDTO.from_record(record)


@router.post("/retry", response_model=RetryTriggerResponse, status_code=status.HTTP_202_ACCEPTED)
async def trigger_retry_sweep(
    retry_task: PeriodicTask = Depends(get_retry_task),
) -> RetryTriggerResponse:
    """Run the retry sweep now and wait for it to finish."""
    logger.info("api.retry_sweep.triggered")
    triggered = await retry_task.trigger()
    return RetryTriggerResponse(triggered=triggered)
