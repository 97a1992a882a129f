from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field

from .models import DonationType


class DonationCreate(BaseModel):
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    donation_type: DonationType = Field(
        validation_alias=AliasChoices("donation_type", "donationType")
    )
    reference_id: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("reference_id", "referenceID")
    )
    note: Optional[str] = Field(default=None, max_length=1000)


class DonationOrder(BaseModel):
    order_id: str
    amount: Decimal
    currency: str
    gateway_key: str


class VerifyPaymentRequest(BaseModel):
    """Accepts both our field names and the ones Razorpay Checkout hands back."""

    order_id: str = Field(validation_alias=AliasChoices("order_id", "razorpay_order_id"))
    payment_id: str = Field(validation_alias=AliasChoices("payment_id", "razorpay_payment_id"))
    signature: str = Field(validation_alias=AliasChoices("signature", "razorpay_signature"))


@dataclass(frozen=True)
class VerificationRequest:
    order_id: str
    payment_id: str
    signature: str
    source_ip: Optional[str] = None


class VerificationResult(BaseModel):
    order_id: str
    status: str
    already_processed: bool = False


class DonationFilters(BaseModel):
    entity_id: int
    status: Optional[str] = None
    type: Optional[str] = None
    method: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    search: Optional[str] = None
    page: int = 1
    limit: int = 20


class DonationResponse(BaseModel):
    id: int
    user_id: int
    entity_id: int
    amount: Decimal
    donation_type: str
    order_id: str
    payment_id: Optional[str] = None
    method: str
    status: str
    reference_id: Optional[int] = None
    note: Optional[str] = None
    donated_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DonationWithUser(DonationResponse):
    user_name: str
    user_email: Optional[str] = None
    entity_name: Optional[str] = None


class DonationPage(BaseModel):
    items: list[DonationWithUser]
    total: int
    page: int
    limit: int
    total_pages: int


class RecentDonation(BaseModel):
    id: int
    amount: Decimal
    donation_type: str
    method: str
    status: str
    donated_at: Optional[datetime] = None
    user_name: str
    entity_name: Optional[str] = None


class Receipt(BaseModel):
    id: int
    donation_amount: Decimal
    donation_type: str
    donor_name: str
    donor_email: Optional[str] = None
    transaction_id: str
    donated_at: Optional[datetime] = None
    method: str
    entity_name: Optional[str] = None
    receipt_number: str
    generated_at: datetime
