"""
Voucher workflow: DEO submits, the active VO approves or rejects.

    pending --> approved
    pending --> rejected

Approved and rejected are terminal; a resubmission is a new voucher.
Visibility is scoped by role: a DEO sees the vouchers they created, a VO
sees the vouchers routed to them.
"""
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backend.database import transaction
from backend.models.user import User, UserRole, VODetails
from backend.models.voucher import Voucher, VoucherStatus, TERMINAL_STATUSES
from backend.utils.db_compat import year_equals, month_equals
from backend.utils.errors import (
    Forbidden, InvalidTransition, NotFound, PreconditionFailed, ValidationError,
)
from backend.utils.helpers import dump_url_data
from backend.utils.logger import get_logger
from backend.utils.validators import sanitize_text

logger = get_logger(__name__)


def _voucher_query():
    return (
        select(Voucher)
        .options(
            selectinload(Voucher.deo).selectinload(User.deo_details),
            selectinload(Voucher.vo).selectinload(User.vo_details),
        )
        .execution_options(populate_existing=True)
    )


async def _load_voucher(db: AsyncSession, voucher_id: int) -> Voucher:
    result = await db.execute(_voucher_query().where(Voucher.id == voucher_id))
    return result.scalar_one()


async def resolve_active_vo(db: AsyncSession) -> User:
    """
    The Verification Officer new vouchers are routed to.

    Candidates are active users with role ``vo`` whose VO details are active.
    If several qualify, the lowest user id wins and the condition is logged.
    """
    result = await db.execute(
        select(User)
        .join(VODetails, VODetails.user_id == User.id)
        .where(
            User.role == UserRole.VO,
            User.is_active.is_(True),
            VODetails.is_active.is_(True),
        )
        .order_by(User.id)
    )
    candidates = result.scalars().all()
    if not candidates:
        raise PreconditionFailed("No active Verification Officer found")
    if len(candidates) > 1:
        logger.warning(
            f"{len(candidates)} active Verification Officers found "
            f"(ids {[u.id for u in candidates]}); routing to {candidates[0].id}"
        )
    return candidates[0]


async def create_voucher(
    db: AsyncSession,
    url_data: Dict[str, Any],
    actor: User,
    comment: Optional[str] = None,
) -> Voucher:
    """Persist a pending voucher routed to the currently active VO"""
    actor_id = actor.id

    async with transaction(db):
        vo = await resolve_active_vo(db)
        vo_id = vo.id
        voucher = Voucher(
            url_data=dump_url_data(url_data),
            status=VoucherStatus.PENDING,
            comment=sanitize_text(comment),
            deo_id=actor_id,
            vo_id=vo_id,
        )
        db.add(voucher)
        await db.flush()
        voucher_id = voucher.id

    logger.info(f"Voucher {voucher_id} submitted by user {actor_id}, routed to VO {vo_id}")
    return await _load_voucher(db, voucher_id)


async def list_vouchers(
    db: AsyncSession,
    actor: User,
    year: Optional[int] = None,
    month: Optional[int] = None,
) -> List[Voucher]:
    """Vouchers visible to ``actor``, newest first, optionally by year and/or month"""
    query = _voucher_query()
    if actor.role == UserRole.DEO:
        query = query.where(Voucher.deo_id == actor.id)
    elif actor.role == UserRole.VO:
        query = query.where(Voucher.vo_id == actor.id)
    else:
        raise Forbidden()

    if year is not None:
        query = query.where(year_equals(Voucher.created_at, year))
    if month is not None:
        query = query.where(month_equals(Voucher.created_at, month))

    result = await db.execute(query.order_by(Voucher.created_at.desc(), Voucher.id.desc()))
    return list(result.scalars().all())


async def get_voucher(db: AsyncSession, voucher_id: int, actor: User) -> Voucher:
    result = await db.execute(_voucher_query().where(Voucher.id == voucher_id))
    voucher = result.scalar_one_or_none()
    if not voucher:
        raise NotFound("Voucher not found")

    if actor.role == UserRole.DEO and voucher.deo_id == actor.id:
        return voucher
    if actor.role == UserRole.VO and voucher.vo_id == actor.id:
        return voucher
    raise Forbidden()


async def verify_voucher(
    db: AsyncSession,
    voucher_id: int,
    status: VoucherStatus,
    actor: User,
    comment: Optional[str] = None,
) -> Voucher:
    """
    Move a pending voucher to approved or rejected.

    Only the VO the voucher was routed to may act on it; anyone else gets
    NotFound. A voucher that already left ``pending`` raises
    InvalidTransition and is left untouched.
    """
    if status not in TERMINAL_STATUSES:
        raise ValidationError('Invalid status. Must be "approved" or "rejected"')
    actor_id = actor.id

    async with transaction(db):
        result = await db.execute(
            select(Voucher)
            .where(Voucher.id == voucher_id, Voucher.vo_id == actor_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        voucher = result.scalar_one_or_none()
        if not voucher:
            raise NotFound("Voucher not found or not assigned to you")

        if voucher.status != VoucherStatus.PENDING:
            raise InvalidTransition(f"Voucher has already been {voucher.status.value}")

        voucher.status = status
        voucher.comment = sanitize_text(comment)
        await db.flush()

    logger.info(f"Voucher {voucher_id} {status.value} by VO {actor_id}")
    return await _load_voucher(db, voucher_id)
