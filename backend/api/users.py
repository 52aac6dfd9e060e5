"""
User directory API endpoints - accounts and DEO/VO officer details
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload
from typing import List, Optional, Type, Union
from datetime import datetime
from pydantic import BaseModel, Field, field_validator

from backend.database import get_db, transaction
from backend.models.user import User, UserRole, DEODetails, VODetails
from backend.api.auth import UserResponse, get_current_user, get_password_hash, require_admin
from backend.schemas import Envelope, ok
from backend.services.voucher_workflow import resolve_active_vo
from backend.utils.errors import DuplicateKey, NotFound, PreconditionFailed, ValidationError
from backend.utils.logger import get_logger
from backend.utils.validators import validate_required_text

logger = get_logger(__name__)

router = APIRouter()


# --- Pydantic Schemas ---

class UserUpdate(BaseModel):
    full_name: Optional[str] = None
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None
    password: Optional[str] = Field(None, min_length=6)


class OfficerDetailsWrite(BaseModel):
    full_name: str
    nic_number: Optional[str] = None
    tel_number: Optional[str] = None
    address: Optional[str] = None
    is_active: bool = True

    @field_validator("full_name")
    @classmethod
    def _name_present(cls, v: str) -> str:
        return validate_required_text(v, "Full name")


class OfficerDetailsResponse(BaseModel):
    id: int
    user_id: int
    full_name: str
    nic_number: Optional[str]
    tel_number: Optional[str]
    address: Optional[str]
    is_active: bool
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class UserDirectoryEntry(UserResponse):
    officer_details: Optional[OfficerDetailsResponse] = None


class ActiveOfficerResponse(BaseModel):
    id: int
    username: str
    full_name: Optional[str]
    role: UserRole


# --- Helpers ---

def _build_directory_entry(u: User) -> UserDirectoryEntry:
    details = u.vo_details if u.role == UserRole.VO else u.deo_details
    return UserDirectoryEntry(
        id=u.id,
        username=u.username,
        full_name=u.full_name,
        role=u.role,
        is_active=u.is_active,
        created_at=u.created_at,
        updated_at=u.updated_at,
        officer_details=OfficerDetailsResponse.model_validate(details) if details else None,
    )


async def _upsert_officer_details(
    db: AsyncSession,
    user_id: int,
    role: UserRole,
    model: Type[Union[DEODetails, VODetails]],
    data: OfficerDetailsWrite,
):
    """Create or replace the officer details row of a DEO/VO user"""
    async with transaction(db):
        result = await db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if not user:
            raise NotFound("User not found")
        if user.role != role:
            raise ValidationError(f"User is not a {'Verification Officer' if role == UserRole.VO else 'Data Entry Officer'}")

        result = await db.execute(
            select(model).where(model.user_id == user_id).execution_options(populate_existing=True)
        )
        details = result.scalar_one_or_none()

        if data.nic_number:
            clash = await db.execute(
                select(model.id).where(model.nic_number == data.nic_number, model.user_id != user_id)
            )
            if clash.first() is not None:
                raise DuplicateKey("NIC number already exists")

        if details is None:
            details = model(user_id=user_id, **data.model_dump())
            db.add(details)
        else:
            for key, value in data.model_dump().items():
                setattr(details, key, value)
        await db.flush()

    logger.info(f"{role.value.upper()} details saved for user {user_id}")
    return details


# --- Endpoints ---

@router.get("/", response_model=Envelope[List[UserDirectoryEntry]], response_model_exclude_unset=True)
async def list_users(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """All user accounts with their officer details"""
    result = await db.execute(
        select(User)
        .options(selectinload(User.deo_details), selectinload(User.vo_details))
        .order_by(User.id)
        .execution_options(populate_existing=True)
    )
    return ok([_build_directory_entry(u) for u in result.scalars().all()])


@router.get("/active-vo", response_model=Envelope[ActiveOfficerResponse], response_model_exclude_unset=True)
async def get_active_vo(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """The Verification Officer new vouchers are currently routed to"""
    try:
        vo = await resolve_active_vo(db)
    except PreconditionFailed as e:
        raise NotFound("No active VO found") from e
    return ok(ActiveOfficerResponse(id=vo.id, username=vo.username, full_name=vo.full_name, role=vo.role))


@router.put("/{user_id}", response_model=Envelope[UserResponse], response_model_exclude_unset=True)
async def update_user(
    user_id: int,
    data: UserUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Update a user's name, role, status or password (admin only)"""
    async with transaction(db):
        result = await db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if not user:
            raise NotFound("User not found")

        updates = data.model_dump(exclude_none=True)
        password = updates.pop("password", None)
        if password:
            user.hashed_password = get_password_hash(password)
        for key, value in updates.items():
            setattr(user, key, value)
        await db.flush()

    return ok(UserResponse.model_validate(user), "User updated successfully")


@router.put(
    "/{user_id}/vo-details",
    response_model=Envelope[OfficerDetailsResponse],
    response_model_exclude_unset=True,
)
async def save_vo_details(
    user_id: int,
    data: OfficerDetailsWrite,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    details = await _upsert_officer_details(db, user_id, UserRole.VO, VODetails, data)
    return ok(OfficerDetailsResponse.model_validate(details), "VO details saved successfully")


@router.put(
    "/{user_id}/deo-details",
    response_model=Envelope[OfficerDetailsResponse],
    response_model_exclude_unset=True,
)
async def save_deo_details(
    user_id: int,
    data: OfficerDetailsWrite,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    details = await _upsert_officer_details(db, user_id, UserRole.DEO, DEODetails, data)
    return ok(OfficerDetailsResponse.model_validate(details), "DEO details saved successfully")
