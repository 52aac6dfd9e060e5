"""
Supporters API endpoints (read-only; supporters are written through contractors)
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel

from backend.database import get_db
from backend.models.user import User
from backend.models.contractor import Supporter
from backend.api.auth import require_deo
from backend.schemas import Envelope, ok
from backend.services import party_registry

router = APIRouter()


class SupporterResponse(BaseModel):
    id: int
    supporter_nic_number: str
    supporter_name: str
    supporter_contact_number: str
    supporter_address: Optional[str]
    is_active: bool
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    contractor_id: int
    contractor_nic_number: Optional[str]
    contractor_name: Optional[str]


def _build_supporter_response(s: Supporter) -> SupporterResponse:
    c = s.contractor
    return SupporterResponse(
        id=s.id,
        supporter_nic_number=s.supporter_nic_number,
        supporter_name=s.supporter_name,
        supporter_contact_number=s.supporter_contact_number,
        supporter_address=s.supporter_address,
        is_active=s.is_active,
        created_at=s.created_at,
        updated_at=s.updated_at,
        contractor_id=s.contractor_id,
        contractor_nic_number=c.contractor_nic_number if c else None,
        contractor_name=c.full_name if c else None,
    )


@router.get("/", response_model=Envelope[List[SupporterResponse]], response_model_exclude_unset=True)
async def list_supporters(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_deo)
):
    """All supporters with their contractor"""
    supporters = await party_registry.list_supporters(db)
    return ok([_build_supporter_response(s) for s in supporters])


@router.get("/{nic_number}", response_model=Envelope[SupporterResponse], response_model_exclude_unset=True)
async def get_supporter(
    nic_number: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_deo)
):
    supporter = await party_registry.get_supporter(db, nic_number)
    return ok(_build_supporter_response(supporter))
