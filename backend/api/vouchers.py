"""
Voucher API endpoints - DEO submits, assigned VO approves or rejects
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Any, Dict, List, Optional, Union
from datetime import datetime
from pydantic import BaseModel, field_validator

from backend.database import get_db
from backend.models.user import User
from backend.models.voucher import Voucher, VoucherStatus, TERMINAL_STATUSES
from backend.api.auth import require_deo, require_vo, require_officer
from backend.schemas import Envelope, ok
from backend.services import voucher_workflow
from backend.utils.helpers import load_url_data
from backend.utils.validators import normalize_url_data, validate_required_text

router = APIRouter()


# --- Pydantic Schemas ---

class UrlData(BaseModel):
    """Reference to the scanned voucher in external storage"""
    downloadURL: str
    fileName: Optional[str] = None
    filePath: Optional[str] = None
    contentType: Optional[str] = None
    size: Optional[float] = None
    uploadTime: Optional[str] = None

    @field_validator("downloadURL")
    @classmethod
    def _download_url_present(cls, v: str) -> str:
        return validate_required_text(v, "Download URL")


class VoucherCreate(BaseModel):
    url_data: UrlData
    comment: Optional[str] = None

    @field_validator("url_data", mode="before")
    @classmethod
    def _normalize(cls, v):
        return normalize_url_data(v)


class VerifyRequest(BaseModel):
    status: VoucherStatus
    comment: Optional[str] = None

    @field_validator("status")
    @classmethod
    def _terminal_only(cls, v: VoucherStatus) -> VoucherStatus:
        if v not in TERMINAL_STATUSES:
            raise ValueError('Invalid status. Must be "approved" or "rejected"')
        return v


class VoucherResponse(BaseModel):
    id: int
    url_data: Union[Dict[str, Any], str]
    status: VoucherStatus
    comment: Optional[str]
    deo_id: int
    vo_id: int
    deo_username: Optional[str]
    deo_full_name: Optional[str]
    vo_username: Optional[str]
    vo_full_name: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


# --- Helper ---

def _officer_name(user: Optional[User], details) -> Optional[str]:
    if user is None:
        return None
    if details is not None and details.full_name:
        return details.full_name
    return user.full_name


def _build_voucher_response(v: Voucher) -> VoucherResponse:
    return VoucherResponse(
        id=v.id,
        url_data=load_url_data(v.url_data),
        status=v.status,
        comment=v.comment,
        deo_id=v.deo_id,
        vo_id=v.vo_id,
        deo_username=v.deo.username if v.deo else None,
        deo_full_name=_officer_name(v.deo, v.deo.deo_details if v.deo else None),
        vo_username=v.vo.username if v.vo else None,
        vo_full_name=_officer_name(v.vo, v.vo.vo_details if v.vo else None),
        created_at=v.created_at,
        updated_at=v.updated_at,
    )


# --- Endpoints ---

@router.post(
    "/",
    status_code=201,
    response_model=Envelope[VoucherResponse],
    response_model_exclude_unset=True,
)
async def create_voucher(
    data: VoucherCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_deo)
):
    """Submit a voucher to the active Verification Officer"""
    voucher = await voucher_workflow.create_voucher(
        db,
        data.url_data.model_dump(exclude_none=True),
        current_user,
        comment=data.comment,
    )
    return ok(_build_voucher_response(voucher), "Voucher sent to Verification Officer successfully")


@router.get("/", response_model=Envelope[List[VoucherResponse]], response_model_exclude_unset=True)
async def list_vouchers(
    year: Optional[int] = Query(None, ge=1900, le=9999),
    month: Optional[int] = Query(None, ge=1, le=12),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_officer)
):
    """Vouchers created by (DEO) or routed to (VO) the caller"""
    vouchers = await voucher_workflow.list_vouchers(db, current_user, year=year, month=month)
    return ok([_build_voucher_response(v) for v in vouchers])


@router.get("/{voucher_id}", response_model=Envelope[VoucherResponse], response_model_exclude_unset=True)
async def get_voucher(
    voucher_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_officer)
):
    voucher = await voucher_workflow.get_voucher(db, voucher_id, current_user)
    return ok(_build_voucher_response(voucher))


@router.put("/{voucher_id}/verify", response_model=Envelope[VoucherResponse], response_model_exclude_unset=True)
async def verify_voucher(
    voucher_id: int,
    data: VerifyRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_vo)
):
    """Approve or reject a pending voucher routed to the caller"""
    voucher = await voucher_workflow.verify_voucher(
        db, voucher_id, data.status, current_user, comment=data.comment
    )
    return ok(_build_voucher_response(voucher), f"Voucher {data.status.value} successfully")
