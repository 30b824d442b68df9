from fastapi import APIRouter, Depends, Query
from app.database.supabase_client import get_supabase
from app.modules.transfers.schemas import (
    TransferCreate, TransferListResponse, TransferResponse, TransferStatus,
)
from app.modules.transfers.service import TransferService
from app.core.dependencies import load_membership
from supabase import Client
from typing import Dict, Optional

router = APIRouter(prefix="/groups/{group_id}/transfers", tags=["transfers"])


def get_transfer_service(supabase: Client = Depends(get_supabase)) -> TransferService:
    return TransferService(supabase)


@router.post("", response_model=TransferResponse, status_code=201)
async def create_transfer(
    group_id: str,
    transfer_data: TransferCreate,
    membership: Dict = Depends(load_membership),
    service: TransferService = Depends(get_transfer_service)
):
    """Propose a transfer (or exchange) of one of your assigned tasks"""
    return service.create_transfer(group_id, transfer_data, membership)


@router.get("", response_model=TransferListResponse)
async def list_transfers(
    group_id: str,
    status: Optional[TransferStatus] = None,
    from_me: bool = False,
    to_me: bool = False,
    limit: Optional[int] = Query(None, ge=1, le=200),
    offset: int = Query(0, ge=0),
    membership: Dict = Depends(load_membership),
    service: TransferService = Depends(get_transfer_service)
):
    return service.list_transfers(
        group_id,
        membership,
        status=status,
        from_me=from_me,
        to_me=to_me,
        limit=limit,
        offset=offset
    )


@router.get("/{transfer_id}", response_model=TransferResponse)
async def get_transfer(
    group_id: str,
    transfer_id: str,
    membership: Dict = Depends(load_membership),
    service: TransferService = Depends(get_transfer_service)
):
    return service.get_transfer(group_id, transfer_id)


@router.post("/{transfer_id}/accept", response_model=TransferResponse)
async def accept_transfer(
    group_id: str,
    transfer_id: str,
    membership: Dict = Depends(load_membership),
    service: TransferService = Depends(get_transfer_service)
):
    """Accept a pending transfer addressed to you (or an open offer)"""
    return service.accept_transfer(group_id, transfer_id, membership)


@router.post("/{transfer_id}/refuse", response_model=TransferResponse)
async def refuse_transfer(
    group_id: str,
    transfer_id: str,
    membership: Dict = Depends(load_membership),
    service: TransferService = Depends(get_transfer_service)
):
    return service.refuse_transfer(group_id, transfer_id, membership)


@router.delete("/{transfer_id}", response_model=TransferResponse)
async def cancel_transfer(
    group_id: str,
    transfer_id: str,
    membership: Dict = Depends(load_membership),
    service: TransferService = Depends(get_transfer_service)
):
    """Cancel your own pending transfer"""
    return service.cancel_transfer(group_id, transfer_id, membership)
