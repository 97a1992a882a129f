import math
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from services.audit_service.service import AuditService
from shared.config import settings
from shared.config.database import AsyncSessionLocal, get_db
from shared.security import limiter
from shared.security.access import TEMPLE_READ_ROLES, TEMPLE_WRITE_ROLES, AccessContext, Role
from shared.security.dependencies import (
    get_access_context,
    get_client_ip,
    require_roles,
    resolve_entity_id,
)

from .errors import InvalidDonationError
from .gateway import RazorpayGateway
from .schemas import (
    DonationCreate,
    DonationFilters,
    DonationPage,
    VerificationRequest,
    VerifyPaymentRequest,
)
from .service import DonationService

router = APIRouter(tags=["Donations"])
public_router = APIRouter()


@lru_cache
def get_donation_service() -> DonationService:
    """Process-wide service wired from settings. Overridden in tests."""
    gateway = RazorpayGateway(
        key_id=settings.RAZORPAY_KEY_ID,
        key_secret=settings.RAZORPAY_KEY_SECRET,
        base_url=settings.RAZORPAY_BASE_URL,
        timeout=settings.GATEWAY_TIMEOUT_SECONDS,
    )
    return DonationService(
        gateway=gateway,
        audit=AuditService(AsyncSessionLocal),
        key_id=settings.RAZORPAY_KEY_ID,
        key_secret=settings.RAZORPAY_KEY_SECRET,
        currency=settings.DONATION_CURRENCY,
        export_limit=settings.EXPORT_ROW_LIMIT,
    )


def date_range_start(preset: Optional[str], now: datetime) -> Optional[datetime]:
    """Start of a dateRange preset (today, week, month, year)."""
    if not preset:
        return None
    preset = preset.lower()
    if preset == "today":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if preset == "week":
        return now - timedelta(days=7)
    if preset == "month":
        return now - timedelta(days=30)
    if preset == "year":
        return now - timedelta(days=365)
    return None


def _required_entity(request: Request, ctx: AccessContext) -> int:
    entity_id = resolve_entity_id(request, ctx)
    if entity_id is None:
        raise InvalidDonationError("entity id is required")
    return entity_id


async def donation_filters(
    request: Request,
    ctx: AccessContext = Depends(get_access_context),
    status_: Optional[str] = Query(None, alias="status"),
    type_: Optional[str] = Query(None, alias="type"),
    method: Optional[str] = None,
    search: Optional[str] = None,
    date_from: Optional[datetime] = Query(None, alias="from"),
    date_to: Optional[datetime] = Query(None, alias="to"),
    min_amount: Optional[Decimal] = Query(None, alias="min"),
    max_amount: Optional[Decimal] = Query(None, alias="max"),
    date_range: Optional[str] = Query(None, alias="dateRange"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> DonationFilters:
    if date_from is None and date_to is None:
        date_from = date_range_start(date_range, datetime.now(timezone.utc))
    return DonationFilters(
        entity_id=_required_entity(request, ctx),
        status=status_,
        type=type_,
        method=method,
        search=search,
        date_from=date_from,
        date_to=date_to,
        min_amount=min_amount,
        max_amount=max_amount,
        page=page,
        limit=limit,
    )


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "donation", "status": "running"}


@router.post("/", status_code=status.HTTP_201_CREATED, summary="Start a donation")
async def create_donation(
    request: Request,
    payload: DonationCreate,
    ctx: AccessContext = Depends(require_roles(Role.DEVOTEE)),
    db: AsyncSession = Depends(get_db),
    service: DonationService = Depends(get_donation_service),
):
    order = await service.start_donation(
        db,
        user_id=ctx.user_id,
        entity_id=_required_entity(request, ctx),
        amount=payload.amount,
        donation_type=payload.donation_type,
        reference_id=payload.reference_id,
        note=payload.note,
        ip_address=get_client_ip(request),
    )
    return {"success": True, "data": order}


@router.post("/verify", summary="Verify a gateway payment callback")
@limiter.limit(settings.VERIFY_RATE_LIMIT)
async def verify_donation(
    request: Request,                  # slowapi needs the request to key the limit
    payload: VerifyPaymentRequest,
    db: AsyncSession = Depends(get_db),
    service: DonationService = Depends(get_donation_service),
):
    result = await service.verify_and_update_donation(
        db,
        VerificationRequest(
            order_id=payload.order_id,
            payment_id=payload.payment_id,
            signature=payload.signature,
            source_ip=get_client_ip(request),
        ),
    )
    return {"success": True, "data": result}


@router.get("/my", summary="The caller's donations to one temple")
async def my_donations(
    request: Request,
    ctx: AccessContext = Depends(require_roles(Role.DEVOTEE)),
    db: AsyncSession = Depends(get_db),
    service: DonationService = Depends(get_donation_service),
):
    donations = await service.get_donations_by_user_and_entity(
        db, ctx.user_id, _required_entity(request, ctx)
    )
    return {"success": True, "data": donations, "count": len(donations)}


@router.get(
    "/",
    summary="Temple donations with filters",
    dependencies=[Depends(require_roles(*TEMPLE_READ_ROLES))],
)
async def list_donations(
    filters: DonationFilters = Depends(donation_filters),
    ctx: AccessContext = Depends(get_access_context),
    db: AsyncSession = Depends(get_db),
    service: DonationService = Depends(get_donation_service),
):
    items, total = await service.get_donations_with_filters(db, filters, ctx)
    page = DonationPage(
        items=items,
        total=total,
        page=filters.page,
        limit=filters.limit,
        total_pages=math.ceil(total / filters.limit) if filters.limit else 0,
    )
    return {"success": True, "data": page}


@router.get(
    "/export",
    summary="Export temple donations",
    dependencies=[Depends(require_roles(*TEMPLE_WRITE_ROLES))],
)
async def export_donations(
    export_format: str = Query("csv", alias="format"),
    filters: DonationFilters = Depends(donation_filters),
    ctx: AccessContext = Depends(get_access_context),
    db: AsyncSession = Depends(get_db),
    service: DonationService = Depends(get_donation_service),
):
    content, filename = await service.export_donations(db, filters, export_format, ctx)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get(
    "/recent",
    summary="Recent donations (own for devotees, temple-wide for staff)",
)
async def recent_donations(
    request: Request,
    limit: int = Query(10, ge=1, le=100),
    ctx: AccessContext = Depends(
        require_roles(Role.DEVOTEE, *TEMPLE_READ_ROLES)
    ),
    db: AsyncSession = Depends(get_db),
    service: DonationService = Depends(get_donation_service),
):
    entity_id = _required_entity(request, ctx)
    if ctx.has_role(Role.DEVOTEE):
        donations = await service.get_recent_donations_by_user_and_entity(
            db, ctx.user_id, entity_id, limit
        )
    else:
        donations = await service.get_recent_donations_by_entity(db, entity_id, ctx, limit)
    return {"success": True, "data": donations}


@router.get("/{donation_id}/receipt", summary="Receipt for a successful donation")
async def donation_receipt(
    donation_id: int,
    request: Request,
    ctx: AccessContext = Depends(
        require_roles(Role.DEVOTEE, *TEMPLE_READ_ROLES)
    ),
    db: AsyncSession = Depends(get_db),
    service: DonationService = Depends(get_donation_service),
):
    receipt = await service.generate_receipt(
        db,
        donation_id=donation_id,
        requesting_user_id=ctx.user_id,
        access=ctx,
        entity_id=_required_entity(request, ctx),
    )
    return {"success": True, "data": receipt}
