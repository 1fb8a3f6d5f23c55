"""Live upload and download progress."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from filedeck.api.deps import get_services
from filedeck.errors import UnknownTransfer
from filedeck.schemas.transfers import BatchStats, TransferItem, TransferStats
from filedeck.services import FileServices

router = APIRouter()


@router.get("", response_model=list[TransferItem])
async def list_transfers(services: FileServices = Depends(get_services)):
    return [TransferItem.model_validate(t.to_dict()) for t in services.transfers.list()]


@router.get("/stats", response_model=TransferStats)
async def transfer_stats(services: FileServices = Depends(get_services)):
    return TransferStats.model_validate(services.transfers.stats())


@router.get("/batch/{batch_id}", response_model=BatchStats)
async def batch_stats(batch_id: str, services: FileServices = Depends(get_services)):
    """Aggregate progress of a multi-file upload."""
    return BatchStats.model_validate(services.transfers.batch_stats(batch_id))


@router.get("/{transfer_id}", response_model=TransferItem)
async def get_transfer(transfer_id: str, services: FileServices = Depends(get_services)):
    transfer = services.transfers.get(transfer_id)
    if transfer is None:
        raise UnknownTransfer(transfer_id)
    return TransferItem.model_validate(transfer.to_dict())


@router.delete("/{transfer_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_transfer(transfer_id: str, services: FileServices = Depends(get_services)):
    if not services.transfers.remove(transfer_id):
        raise UnknownTransfer(transfer_id)
