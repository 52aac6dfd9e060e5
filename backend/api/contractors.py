"""
Contractors API endpoints (DEO only)
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from datetime import date, datetime
from pydantic import BaseModel, field_validator, model_validator

from backend.database import get_db
from backend.models.user import User
from backend.models.contractor import Contractor
from backend.api.auth import require_deo
from backend.schemas import Envelope, ok
from backend.services import party_registry
from backend.utils.errors import ValidationError
from backend.utils.validators import validate_required_text

router = APIRouter()


# --- Pydantic Schemas ---

class ContractorResponse(BaseModel):
    id: int
    nic_number: str
    full_name: str
    contact_number: str
    address: str
    agreement_number: Optional[str]
    agreement_start_date: Optional[date]
    agreement_end_date: Optional[date]
    is_active: bool
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    supporter_nic_number: Optional[str]
    supporter_name: Optional[str]
    supporter_contact_number: Optional[str]
    supporter_address: Optional[str]
    supporter_is_active: Optional[bool]
    supporter_created_at: Optional[datetime]
    supporter_updated_at: Optional[datetime]
    has_supporter: bool


class ContractorCreate(BaseModel):
    contractor_nic_number: str
    full_name: str
    contact_number: str
    address: str
    agreement_number: Optional[str] = None
    agreement_start_date: Optional[date] = None
    agreement_end_date: Optional[date] = None
    is_active: bool = True
    has_supporter: bool = False
    supporter_nic_number: Optional[str] = None
    supporter_name: Optional[str] = None
    supporter_contact_number: Optional[str] = None
    supporter_address: Optional[str] = None
    supporter_is_active: bool = True

    @field_validator("contractor_nic_number")
    @classmethod
    def _nic_not_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return validate_required_text(v, "Contractor NIC number")

    @field_validator("full_name", "contact_number", "address")
    @classmethod
    def _required_text(cls, v: str, info) -> str:
        return validate_required_text(v, info.field_name.replace("_", " ").capitalize())

    @field_validator("supporter_nic_number", "supporter_name", "supporter_contact_number")
    @classmethod
    def _supporter_text(cls, v: Optional[str], info) -> Optional[str]:
        # Blank means absent; completeness is checked against has_supporter below
        if v is None or not v.strip():
            return None
        return validate_required_text(v, info.field_name.replace("_", " ").capitalize())

    @field_validator("agreement_start_date", "agreement_end_date", mode="before")
    @classmethod
    def _blank_date_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def _supporter_complete(self):
        if self.has_supporter:
            missing = [
                label for label, value in (
                    ("Supporter NIC number", self.supporter_nic_number),
                    ("Supporter name", self.supporter_name),
                    ("Supporter contact number", self.supporter_contact_number),
                )
                if not value
            ]
            if missing:
                raise ValueError(f"{', '.join(missing)} required when has_supporter is set")
        if (
            self.agreement_start_date and self.agreement_end_date
            and self.agreement_end_date < self.agreement_start_date
        ):
            raise ValueError("Agreement end date must not be before the start date")
        return self


class ContractorUpdate(ContractorCreate):
    # The NIC is the contractor's identity; it comes from the path
    contractor_nic_number: Optional[str] = None


# --- Helper ---

def _build_contractor_response(c: Contractor) -> ContractorResponse:
    s = c.supporter
    return ContractorResponse(
        id=c.id,
        nic_number=c.contractor_nic_number,
        full_name=c.full_name,
        contact_number=c.contact_number,
        address=c.address,
        agreement_number=c.agreement_number,
        agreement_start_date=c.agreement_start_date,
        agreement_end_date=c.agreement_end_date,
        is_active=c.is_active,
        created_at=c.created_at,
        updated_at=c.updated_at,
        supporter_nic_number=s.supporter_nic_number if s else None,
        supporter_name=s.supporter_name if s else None,
        supporter_contact_number=s.supporter_contact_number if s else None,
        supporter_address=s.supporter_address if s else None,
        supporter_is_active=s.is_active if s else None,
        supporter_created_at=s.created_at if s else None,
        supporter_updated_at=s.updated_at if s else None,
        has_supporter=s is not None,
    )


# --- Endpoints ---

@router.get("/", response_model=Envelope[List[ContractorResponse]], response_model_exclude_unset=True)
async def list_contractors(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_deo)
):
    """All contractors with their supporters, newest first"""
    contractors = await party_registry.list_contractors(db)
    return ok([_build_contractor_response(c) for c in contractors])


@router.get("/active", response_model=Envelope[ContractorResponse], response_model_exclude_unset=True)
async def get_active_contractor(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_deo)
):
    """The currently active contractor"""
    contractor = await party_registry.get_active_contractor(db)
    return ok(_build_contractor_response(contractor))


@router.get("/{nic_number}", response_model=Envelope[ContractorResponse], response_model_exclude_unset=True)
async def get_contractor(
    nic_number: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_deo)
):
    contractor = await party_registry.get_contractor(db, nic_number)
    return ok(_build_contractor_response(contractor))


@router.post(
    "/",
    status_code=201,
    response_model=Envelope[ContractorResponse],
    response_model_exclude_unset=True,
)
async def create_contractor(
    data: ContractorCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_deo)
):
    """Create a contractor with an optional supporter"""
    contractor = await party_registry.create_contractor(db, data.model_dump(), current_user)
    return ok(_build_contractor_response(contractor), "Contractor created successfully")


@router.put("/{nic_number}", response_model=Envelope[ContractorResponse], response_model_exclude_unset=True)
async def update_contractor(
    nic_number: str,
    data: ContractorUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_deo)
):
    """Replace a contractor's details and reconcile its supporter"""
    if data.contractor_nic_number and data.contractor_nic_number != nic_number:
        raise ValidationError("Contractor NIC number cannot be changed")

    contractor = await party_registry.update_contractor(db, nic_number, data.model_dump(), current_user)
    return ok(_build_contractor_response(contractor), "Contractor updated successfully")


@router.delete("/{nic_number}")
async def delete_contractor(
    nic_number: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_deo)
):
    """Delete a contractor together with its supporter"""
    await party_registry.delete_contractor(db, nic_number, current_user)
    return ok(message="Contractor deleted successfully")
