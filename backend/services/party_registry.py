"""
Party registry: contractors and their optional supporters.

Owns the rule that at most one contractor is active at a time. The check
and the write run in one transaction (the check takes a row lock where the
backend supports it), and the partial unique index
``uq_contractors_single_active`` rejects whatever slips past a concurrent
check. Supporters are only ever written as part of a contractor write.
"""
from typing import Any, Dict, List, Optional

from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backend.database import transaction
from backend.models.contractor import Contractor, Supporter
from backend.models.user import User
from backend.utils.errors import DuplicateKey, ExclusivityConflict, NotFound
from backend.utils.logger import get_logger

logger = get_logger(__name__)

CONTRACTOR_FIELDS = (
    "full_name",
    "contact_number",
    "address",
    "agreement_number",
    "agreement_start_date",
    "agreement_end_date",
    "is_active",
)

SUPPORTER_FIELDS = (
    "supporter_nic_number",
    "supporter_name",
    "supporter_contact_number",
    "supporter_address",
)

ACTIVE_INDEX_MARKERS = ("uq_contractors_single_active", "contractors.is_active")


def active_contractor_summary(contractor: Optional[Contractor]) -> Optional[Dict[str, Any]]:
    """Identity of the active contractor, as reported in exclusivity conflicts"""
    if contractor is None:
        return None
    return {
        "id": contractor.id,
        "nic_number": contractor.contractor_nic_number,
        "full_name": contractor.full_name,
    }


def _is_exclusivity_violation(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    return any(marker in message for marker in ACTIVE_INDEX_MARKERS)


def _supporter_values(data: Dict[str, Any]) -> Dict[str, Any]:
    values = {field: data.get(field) for field in SUPPORTER_FIELDS}
    values["is_active"] = data.get("supporter_is_active", True)
    return values


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def _contractor_query():
    return (
        select(Contractor)
        .options(selectinload(Contractor.supporter))
        .execution_options(populate_existing=True)
    )


async def _load_contractor(db: AsyncSession, contractor_id: int) -> Contractor:
    result = await db.execute(_contractor_query().where(Contractor.id == contractor_id))
    return result.scalar_one()


async def _find_other_active(db: AsyncSession, exclude_id: Optional[int] = None) -> Optional[Contractor]:
    """Active contractor other than ``exclude_id``, locked for the rest of the transaction"""
    query = select(Contractor).where(Contractor.is_active.is_(True))
    if exclude_id is not None:
        query = query.where(Contractor.id != exclude_id)
    result = await db.execute(query.order_by(Contractor.id).limit(1).with_for_update())
    return result.scalar_one_or_none()


async def _supporter_nic_taken(db: AsyncSession, nic_number: str, exclude_id: Optional[int] = None) -> bool:
    query = select(Supporter.id).where(Supporter.supporter_nic_number == nic_number)
    if exclude_id is not None:
        query = query.where(Supporter.id != exclude_id)
    result = await db.execute(query)
    return result.first() is not None


async def _flush_or_translate(db: AsyncSession, exclude_id: Optional[int] = None):
    """Flush pending writes, turning constraint violations into domain errors"""
    try:
        await db.flush()
    except IntegrityError as e:
        await db.rollback()
        if _is_exclusivity_violation(e):
            # A concurrent activation committed between our check and our write
            active = await _find_other_active(db, exclude_id)
            logger.warning("Concurrent contractor activation rejected by unique index")
            raise ExclusivityConflict(active_contractor_summary(active)) from e
        raise DuplicateKey() from e


async def list_contractors(db: AsyncSession) -> List[Contractor]:
    """All contractors with their supporter, newest first"""
    result = await db.execute(
        _contractor_query().order_by(Contractor.created_at.desc(), Contractor.id.desc())
    )
    return list(result.scalars().all())


async def get_contractor(db: AsyncSession, nic_number: str) -> Contractor:
    result = await db.execute(
        _contractor_query().where(Contractor.contractor_nic_number == nic_number)
    )
    contractor = result.scalar_one_or_none()
    if not contractor:
        raise NotFound("Contractor not found")
    return contractor


async def get_active_contractor(db: AsyncSession) -> Contractor:
    result = await db.execute(
        _contractor_query().where(Contractor.is_active.is_(True)).limit(1)
    )
    contractor = result.scalar_one_or_none()
    if not contractor:
        raise NotFound("No active contractor found")
    return contractor


async def list_supporters(db: AsyncSession) -> List[Supporter]:
    result = await db.execute(
        select(Supporter)
        .options(selectinload(Supporter.contractor))
        .order_by(Supporter.created_at.desc(), Supporter.id.desc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def get_supporter(db: AsyncSession, nic_number: str) -> Supporter:
    result = await db.execute(
        select(Supporter)
        .options(selectinload(Supporter.contractor))
        .where(Supporter.supporter_nic_number == nic_number)
        .execution_options(populate_existing=True)
    )
    supporter = result.scalar_one_or_none()
    if not supporter:
        raise NotFound("Supporter not found")
    return supporter


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

async def create_contractor(db: AsyncSession, data: Dict[str, Any], actor: User) -> Contractor:
    """
    Create a contractor and, when requested, its supporter in one transaction.

    Raises DuplicateKey when either NIC is taken and ExclusivityConflict when
    an active contractor is requested while another one is active. Nothing is
    written in either case.
    """
    actor_name = actor.username
    nic_number = data["contractor_nic_number"]
    wants_active = bool(data.get("is_active", True))

    async with transaction(db):
        existing = await db.execute(
            select(Contractor.id).where(Contractor.contractor_nic_number == nic_number)
        )
        if existing.first() is not None:
            raise DuplicateKey("Contractor with this NIC number already exists")

        if wants_active:
            active = await _find_other_active(db)
            if active:
                logger.info(
                    f"Rejected active contractor {nic_number}: "
                    f"{active.contractor_nic_number} is already active"
                )
                raise ExclusivityConflict(active_contractor_summary(active))

        contractor = Contractor(
            contractor_nic_number=nic_number,
            **{field: data.get(field) for field in CONTRACTOR_FIELDS if field != "is_active"},
            is_active=wants_active,
        )
        db.add(contractor)
        await _flush_or_translate(db)

        if data.get("has_supporter"):
            if await _supporter_nic_taken(db, data["supporter_nic_number"]):
                raise DuplicateKey("Supporter with this NIC number already exists")
            db.add(Supporter(contractor_id=contractor.id, **_supporter_values(data)))
            await _flush_or_translate(db)

        contractor_id = contractor.id

    logger.info(f"Contractor {nic_number} created by {actor_name} (active={wants_active})")
    return await _load_contractor(db, contractor_id)


async def update_contractor(db: AsyncSession, nic_number: str, data: Dict[str, Any], actor: User) -> Contractor:
    """
    Replace a contractor's mutable fields and reconcile its supporter.

    Exclusivity is checked only when the contractor goes from inactive to
    active. Supporter handling by (has_supporter, exists): insert, update in
    place, delete, or nothing, all in the contractor's transaction.
    """
    actor_name = actor.username
    wants_active = bool(data.get("is_active", True))
    wants_supporter = bool(data.get("has_supporter"))

    async with transaction(db):
        contractor = await get_contractor(db, nic_number)
        contractor_id = contractor.id

        if wants_active and not contractor.is_active:
            active = await _find_other_active(db, exclude_id=contractor_id)
            if active:
                logger.info(
                    f"Rejected activation of {nic_number}: "
                    f"{active.contractor_nic_number} is already active"
                )
                raise ExclusivityConflict(active_contractor_summary(active))

        for field in CONTRACTOR_FIELDS:
            if field != "is_active":
                setattr(contractor, field, data.get(field))
        contractor.is_active = wants_active
        await _flush_or_translate(db, exclude_id=contractor_id)

        supporter = contractor.supporter
        if wants_supporter:
            values = _supporter_values(data)
            exclude = supporter.id if supporter else None
            if await _supporter_nic_taken(db, values["supporter_nic_number"], exclude_id=exclude):
                raise DuplicateKey("Supporter with this NIC number already exists")
            if supporter:
                for key, value in values.items():
                    setattr(supporter, key, value)
            else:
                db.add(Supporter(contractor_id=contractor_id, **values))
        elif supporter:
            await db.delete(supporter)

        await _flush_or_translate(db, exclude_id=contractor_id)

    logger.info(f"Contractor {nic_number} updated by {actor_name} (active={wants_active})")
    return await _load_contractor(db, contractor_id)


async def delete_contractor(db: AsyncSession, nic_number: str, actor: User) -> None:
    """Delete a contractor's supporter, then the contractor, in one transaction"""
    actor_name = actor.username

    async with transaction(db):
        result = await db.execute(
            select(Contractor.id).where(Contractor.contractor_nic_number == nic_number)
        )
        contractor_id = result.scalar_one_or_none()
        if contractor_id is None:
            raise NotFound("Contractor not found")

        await db.execute(delete(Supporter).where(Supporter.contractor_id == contractor_id))
        await db.execute(delete(Contractor).where(Contractor.id == contractor_id))

    logger.info(f"Contractor {nic_number} deleted by {actor_name}")
