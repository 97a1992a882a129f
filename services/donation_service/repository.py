from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from services.auth_service.models import Entity, User

from .models import Donation, DonationStatus
from .schemas import DonationFilters, DonationResponse, DonationWithUser, RecentDonation

# Display name shown to temple staff; never empty.
donor_name = func.coalesce(func.nullif(User.full_name, ""), User.email, "Anonymous")


def _is_set(value: Optional[str]) -> bool:
    return bool(value) and value.strip().lower() != "all"


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _with_user_columns():
    return (
        select(
            Donation,
            donor_name.label("user_name"),
            User.email.label("user_email"),
            Entity.name.label("entity_name"),
        )
        .outerjoin(User, User.id == Donation.user_id)
        .outerjoin(Entity, Entity.id == Donation.entity_id)
    )


def _to_with_user(row) -> DonationWithUser:
    base = DonationResponse.model_validate(row.Donation).model_dump()
    return DonationWithUser(
        **base,
        user_name=row.user_name,
        user_email=row.user_email,
        entity_name=row.entity_name,
    )


def _apply_filters(stmt, filters: DonationFilters):
    # Tenant scope is unconditional
    stmt = stmt.where(Donation.entity_id == filters.entity_id)

    if _is_set(filters.status):
        stmt = stmt.where(func.upper(Donation.status) == filters.status.strip().upper())
    if _is_set(filters.type):
        stmt = stmt.where(func.lower(Donation.donation_type) == filters.type.strip().lower())
    if _is_set(filters.method):
        stmt = stmt.where(func.upper(Donation.method) == filters.method.strip().upper())
    if filters.date_from is not None:
        stmt = stmt.where(Donation.created_at >= filters.date_from)
    if filters.date_to is not None:
        stmt = stmt.where(Donation.created_at <= filters.date_to)
    if filters.min_amount is not None:
        stmt = stmt.where(Donation.amount >= filters.min_amount)
    if filters.max_amount is not None:
        stmt = stmt.where(Donation.amount <= filters.max_amount)
    if filters.search and filters.search.strip():
        pattern = f"%{_escape_like(filters.search.strip())}%"
        stmt = stmt.where(
            or_(
                donor_name.ilike(pattern, escape="\\"),
                User.email.ilike(pattern, escape="\\"),
                Donation.payment_id.ilike(pattern, escape="\\"),
                Donation.order_id.ilike(pattern, escape="\\"),
            )
        )
    return stmt


class DonationRepository:

    @staticmethod
    async def create(db: AsyncSession, donation: Donation) -> Donation:
        db.add(donation)
        try:
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            raise
        await db.refresh(donation)
        return donation

    @staticmethod
    async def get_by_order_id(db: AsyncSession, order_id: str) -> Optional[Donation]:
        result = await db.execute(select(Donation).where(Donation.order_id == order_id))
        return result.scalars().first()

    @staticmethod
    async def get_by_id_with_user(db: AsyncSession, donation_id: int) -> Optional[DonationWithUser]:
        result = await db.execute(_with_user_columns().where(Donation.id == donation_id))
        row = result.first()
        return _to_with_user(row) if row else None

    @staticmethod
    async def update_payment_details_conditional(
        db: AsyncSession,
        order_id: str,
        payment_id: str,
        amount: Decimal,
        method: str,
        status: DonationStatus,
        donated_at: Optional[datetime],
    ) -> bool:
        """
        Moves a PENDING donation to its final state in one statement.
        Returns False when the row was no longer PENDING (another verification won).
        """
        values = {
            "payment_id": payment_id,
            "amount": amount,
            "method": method,
            "status": status.value,
        }
        if donated_at is not None:
            values["donated_at"] = donated_at

        stmt = (
            update(Donation)
            .where(
                Donation.order_id == order_id,
                Donation.status == DonationStatus.PENDING.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await db.execute(stmt)
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            raise
        return result.rowcount == 1

    @staticmethod
    async def list_with_filters(
        db: AsyncSession, filters: DonationFilters
    ) -> Tuple[List[DonationWithUser], int]:
        count_stmt = _apply_filters(
            select(func.count(Donation.id))
            .select_from(Donation)
            .outerjoin(User, User.id == Donation.user_id)
            .outerjoin(Entity, Entity.id == Donation.entity_id),
            filters,
        )
        total = (await db.execute(count_stmt)).scalar_one()

        stmt = _apply_filters(_with_user_columns(), filters).order_by(
            Donation.created_at.desc(), Donation.id.desc()
        )
        if filters.page > 0 and filters.limit > 0:
            stmt = stmt.offset((filters.page - 1) * filters.limit).limit(filters.limit)

        result = await db.execute(stmt)
        return [_to_with_user(row) for row in result.all()], total

    @staticmethod
    async def list_by_user_and_entity(
        db: AsyncSession, user_id: int, entity_id: int
    ) -> List[DonationWithUser]:
        result = await db.execute(
            _with_user_columns()
            .where(Donation.user_id == user_id, Donation.entity_id == entity_id)
            .order_by(Donation.created_at.desc(), Donation.id.desc())
        )
        return [_to_with_user(row) for row in result.all()]

    @staticmethod
    async def list_recent(
        db: AsyncSession, entity_id: int, limit: int, user_id: Optional[int] = None
    ) -> List[RecentDonation]:
        effective_date = func.coalesce(Donation.donated_at, Donation.created_at)
        stmt = (
            select(
                Donation.id,
                Donation.amount,
                Donation.donation_type,
                Donation.method,
                Donation.status,
                effective_date.label("donated_at"),
                donor_name.label("user_name"),
                Entity.name.label("entity_name"),
            )
            .outerjoin(User, User.id == Donation.user_id)
            .outerjoin(Entity, Entity.id == Donation.entity_id)
            .where(Donation.entity_id == entity_id)
        )
        if user_id is not None:
            stmt = stmt.where(Donation.user_id == user_id)
        stmt = stmt.order_by(effective_date.desc(), Donation.id.desc()).limit(limit)

        result = await db.execute(stmt)
        return [RecentDonation.model_validate(dict(row._mapping)) for row in result.all()]
