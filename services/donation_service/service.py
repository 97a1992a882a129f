"""
Donation payment lifecycle.

    start_donation            -> gateway order, PENDING row
    verify_and_update_donation -> signature, authoritative fetch, one-shot transition
    generate_receipt / listing / export -> read side, tenant scoped

Every step emits an audit event through the injected sink. The sink is
expected not to raise; `_audit` still guards against one that does.
"""
import time
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import List, Optional, Tuple

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from services.audit_service.service import AuditAction, AuditSink, AuditStatus
from shared.observability import donation_initiated_total, donation_verification_total
from shared.security.access import AccessContext

from .amounts import normalize_amount, to_minor_units
from .errors import (
    AuthorizationDeniedError,
    GatewayError,
    InvalidDonationError,
    ReceiptUnavailableError,
    RecordNotFoundError,
    SignatureInvalidError,
    StoreError,
    UnsupportedAmountFormatError,
    UnsupportedExportFormatError,
)
from .exporter import export_filename, render_csv
from .gateway import GatewayClient
from .models import METHOD_PENDING, METHOD_UNKNOWN, Donation, DonationStatus, DonationType
from .repository import DonationRepository
from .schemas import (
    DonationFilters,
    DonationOrder,
    DonationWithUser,
    Receipt,
    RecentDonation,
    VerificationRequest,
    VerificationResult,
)
from .signature import verify_signature

logger = structlog.get_logger(__name__)

CAPTURED = "captured"
EXPORT_FORMAT_CSV = "csv"


def receipt_number(entity_id: int, donation_id: int) -> str:
    return f"RCP-{entity_id}-{donation_id}"


class DonationService:

    def __init__(
        self,
        gateway: GatewayClient,
        audit: AuditSink,
        key_id: str,
        key_secret: str,
        currency: str = "INR",
        export_limit: int = 10000,
    ):
        self._gateway = gateway
        self._audit_sink = audit
        self._key_id = key_id
        self._key_secret = key_secret
        self._currency = currency
        self._export_limit = export_limit

    async def _audit(
        self,
        user_id: Optional[int],
        entity_id: Optional[int],
        action: AuditAction,
        details: dict,
        ip_address: Optional[str],
        status: AuditStatus,
    ) -> None:
        try:
            await self._audit_sink.log_action(
                user_id, entity_id, action.value, details, ip_address, status.value
            )
        except Exception:
            logger.exception("audit_sink_raised", action=action.value)

    # ------------------------------------------------------------------ start

    async def start_donation(
        self,
        db: AsyncSession,
        user_id: int,
        entity_id: int,
        amount,
        donation_type,
        reference_id: Optional[int] = None,
        note: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> DonationOrder:
        amount = _validated_amount(amount)
        donation_type = _validated_type(donation_type)

        notes = {
            "user_id": str(user_id),
            "entity_id": str(entity_id),
            "donation_type": donation_type.value,
        }
        if reference_id is not None:
            notes["reference_id"] = str(reference_id)

        failure_details = {
            "amount": str(amount),
            "donation_type": donation_type.value,
            "reference_id": reference_id,
        }

        try:
            order = await self._gateway.create_order(to_minor_units(amount), self._currency, notes)
            order_id = order.get("id")
            if not isinstance(order_id, str) or not order_id:
                raise GatewayError("payment gateway returned no order id")
        except GatewayError as exc:
            donation_initiated_total.labels(status="failure").inc()
            await self._audit(
                user_id, entity_id, AuditAction.DONATION_INITIATED,
                {**failure_details, "error": exc.message}, ip_address, AuditStatus.FAILURE,
            )
            raise

        donation = Donation(
            user_id=user_id,
            entity_id=entity_id,
            amount=amount,
            donation_type=donation_type.value,
            order_id=order_id,
            method=METHOD_PENDING,
            status=DonationStatus.PENDING.value,
            reference_id=reference_id,
            note=note,
        )
        try:
            await DonationRepository.create(db, donation)
        except SQLAlchemyError as exc:
            # The gateway order is orphaned; it expires unpaid on the gateway side.
            donation_initiated_total.labels(status="failure").inc()
            logger.error("donation_insert_failed", order_id=order_id, error=str(exc))
            await self._audit(
                user_id, entity_id, AuditAction.DONATION_INITIATED,
                {**failure_details, "order_id": order_id, "error": "failed to save donation record"},
                ip_address, AuditStatus.FAILURE,
            )
            raise StoreError("failed to save donation record") from exc

        donation_initiated_total.labels(status="success").inc()
        logger.info("donation_initiated", order_id=order_id, entity_id=entity_id, user_id=user_id)
        await self._audit(
            user_id, entity_id, AuditAction.DONATION_INITIATED,
            {**failure_details, "order_id": order_id}, ip_address, AuditStatus.SUCCESS,
        )
        return DonationOrder(
            order_id=order_id,
            amount=amount,
            currency=self._currency,
            gateway_key=self._key_id,
        )

    # ----------------------------------------------------------------- verify

    async def verify_and_update_donation(
        self, db: AsyncSession, request: VerificationRequest
    ) -> VerificationResult:
        ip = request.source_ip
        ids = {"order_id": request.order_id, "payment_id": request.payment_id}

        async def reject(reason: str, user_id=None, entity_id=None):
            donation_verification_total.labels(outcome="rejected").inc()
            logger.warning("donation_verification_failed", reason=reason, **ids)
            await self._audit(
                user_id, entity_id, AuditAction.DONATION_VERIFICATION_FAILED,
                {**ids, "reason": reason}, ip, AuditStatus.FAILURE,
            )

        if not verify_signature(self._key_secret, request.order_id, request.payment_id, request.signature):
            await reject("invalid payment signature")
            raise SignatureInvalidError("invalid payment signature")

        try:
            payment = await self._gateway.fetch_payment(request.payment_id)
        except GatewayError:
            await reject("gateway payment fetch failed")
            raise

        gateway_status = payment.get("status")
        if not isinstance(gateway_status, str):
            await reject("invalid payment status format")
            raise GatewayError("invalid payment status format")

        try:
            donation = await DonationRepository.get_by_order_id(db, request.order_id)
        except SQLAlchemyError as exc:
            logger.error("donation_lookup_failed", error=str(exc), **ids)
            raise StoreError("failed to load donation") from exc
        if donation is None:
            await reject("donation record not found")
            raise RecordNotFoundError("donation record not found")

        if donation.status != DonationStatus.PENDING.value:
            return await self._already_processed(donation, request)

        try:
            amount = normalize_amount(payment.get("amount"))
        except UnsupportedAmountFormatError:
            await reject("unsupported amount type", donation.user_id, donation.entity_id)
            raise

        method = payment.get("method")
        if not isinstance(method, str) or not method:
            logger.warning("gateway_payment_method_missing", **ids)
            method = METHOD_UNKNOWN

        captured = gateway_status == CAPTURED
        new_status = DonationStatus.SUCCESS if captured else DonationStatus.FAILED
        donated_at = datetime.now(timezone.utc) if captured else None

        try:
            updated = await DonationRepository.update_payment_details_conditional(
                db,
                order_id=request.order_id,
                payment_id=request.payment_id,
                amount=amount,
                method=method,
                status=new_status,
                donated_at=donated_at,
            )
        except SQLAlchemyError as exc:
            logger.error("donation_update_failed", error=str(exc), **ids)
            await self._audit(
                donation.user_id, donation.entity_id, AuditAction.DONATION_UPDATE_FAILED,
                {**ids, "razorpay_status": gateway_status}, ip, AuditStatus.FAILURE,
            )
            raise StoreError("failed to update donation") from exc

        if not updated:
            # A concurrent verification finished first; report its outcome.
            await db.refresh(donation)
            return await self._already_processed(donation, request)

        outcome_details = {
            **ids,
            "amount": str(amount),
            "donation_type": donation.donation_type,
            "method": method,
            "razorpay_status": gateway_status,
            "reference_id": donation.reference_id,
        }
        if captured:
            donation_verification_total.labels(outcome="success").inc()
            logger.info("donation_succeeded", **ids)
            await self._audit(
                donation.user_id, donation.entity_id, AuditAction.DONATION_SUCCESS,
                outcome_details, ip, AuditStatus.SUCCESS,
            )
        else:
            donation_verification_total.labels(outcome="failed").inc()
            logger.info("donation_failed", razorpay_status=gateway_status, **ids)
            await self._audit(
                donation.user_id, donation.entity_id, AuditAction.DONATION_FAILED,
                outcome_details, ip, AuditStatus.FAILURE,
            )

        return VerificationResult(order_id=request.order_id, status=new_status.value)

    async def _already_processed(
        self, donation: Donation, request: VerificationRequest
    ) -> VerificationResult:
        donation_verification_total.labels(outcome="already_processed").inc()
        logger.info("donation_already_processed", order_id=donation.order_id, status=donation.status)
        await self._audit(
            donation.user_id, donation.entity_id, AuditAction.DONATION_ALREADY_PROCESSED,
            {
                "order_id": donation.order_id,
                "payment_id": request.payment_id,
                "amount": str(donation.amount),
                "status": donation.status,
            },
            request.source_ip, AuditStatus.SUCCESS,
        )
        return VerificationResult(
            order_id=donation.order_id, status=donation.status, already_processed=True
        )

    # ---------------------------------------------------------------- receipt

    async def generate_receipt(
        self,
        db: AsyncSession,
        donation_id: int,
        requesting_user_id: int,
        access: Optional[AccessContext],
        entity_id: Optional[int],
    ) -> Receipt:
        donation = await DonationRepository.get_by_id_with_user(db, donation_id)
        if donation is None:
            raise RecordNotFoundError("donation not found")

        own_donation = (
            donation.user_id == requesting_user_id and donation.entity_id == entity_id
        )
        staff_access = (
            access is not None
            and access.can_read()
            and access.accessible_entity_id() == donation.entity_id
        )
        if not (own_donation or staff_access):
            raise AuthorizationDeniedError("unauthorized to access this donation")

        if donation.status != DonationStatus.SUCCESS.value:
            raise ReceiptUnavailableError("receipt can only be generated for successful donations")

        return Receipt(
            id=donation.id,
            donation_amount=donation.amount,
            donation_type=donation.donation_type,
            donor_name=donation.user_name,
            donor_email=donation.user_email,
            transaction_id=donation.payment_id or donation.order_id,
            donated_at=donation.donated_at or donation.created_at,
            method=donation.method,
            entity_name=donation.entity_name,
            receipt_number=receipt_number(donation.entity_id, donation.id),
            generated_at=datetime.now(timezone.utc),
        )

    # ------------------------------------------------------------------- read

    @staticmethod
    def _ensure_entity_read(filters_entity_id: int, access: AccessContext) -> None:
        if not access.can_read():
            raise AuthorizationDeniedError("read access denied")
        if access.accessible_entity_id() != filters_entity_id:
            raise AuthorizationDeniedError("access denied to requested entity")

    async def get_donations_with_filters(
        self, db: AsyncSession, filters: DonationFilters, access: AccessContext
    ) -> Tuple[List[DonationWithUser], int]:
        self._ensure_entity_read(filters.entity_id, access)
        return await DonationRepository.list_with_filters(db, filters)

    async def export_donations(
        self,
        db: AsyncSession,
        filters: DonationFilters,
        export_format: str,
        access: AccessContext,
    ) -> Tuple[bytes, str]:
        self._ensure_entity_read(filters.entity_id, access)
        if (export_format or "").lower() != EXPORT_FORMAT_CSV:
            raise UnsupportedExportFormatError(f"unsupported export format: {export_format}")

        export_filters = filters.model_copy(update={"page": 1, "limit": self._export_limit})
        rows, _ = await DonationRepository.list_with_filters(db, export_filters)
        logger.info("donations_exported", entity_id=filters.entity_id, rows=len(rows))
        return render_csv(rows), export_filename(int(time.time()))

    async def get_donations_by_user_and_entity(
        self, db: AsyncSession, user_id: int, entity_id: int
    ) -> List[DonationWithUser]:
        return await DonationRepository.list_by_user_and_entity(db, user_id, entity_id)

    async def get_recent_donations_by_user_and_entity(
        self, db: AsyncSession, user_id: int, entity_id: int, limit: int = 10
    ) -> List[RecentDonation]:
        return await DonationRepository.list_recent(db, entity_id, limit, user_id=user_id)

    async def get_recent_donations_by_entity(
        self, db: AsyncSession, entity_id: int, access: AccessContext, limit: int = 10
    ) -> List[RecentDonation]:
        self._ensure_entity_read(entity_id, access)
        return await DonationRepository.list_recent(db, entity_id, limit)


def _validated_amount(amount) -> Decimal:
    if isinstance(amount, bool):
        raise InvalidDonationError("amount must be a number")
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise InvalidDonationError("amount must be a number")
    if not value.is_finite():
        raise InvalidDonationError("amount must be a number")
    value = value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    if value <= 0:
        raise InvalidDonationError("amount must be greater than zero")
    return value


def _validated_type(donation_type) -> DonationType:
    try:
        return DonationType(donation_type)
    except ValueError:
        raise InvalidDonationError(f"invalid donation type: {donation_type}")
