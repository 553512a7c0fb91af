from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from src.pricing.schemas import VoucherKind, VoucherCategory, VoucherPurpose

class VoucherCreate(BaseModel):
    kind: VoucherKind
    category: VoucherCategory
    purpose: VoucherPurpose
    code: Optional[str] = Field(None, min_length=3, max_length=50)
    discount_percent: Optional[Decimal] = Field(None, description="DISCOUNT vouchers, defaults to 100")
    balance: Optional[Decimal] = Field(None, description="CREDIT vouchers")
    max_uses: int = Field(1, ge=1, description="PUBLIC codes only; other vouchers are single-use")
    expires_at: Optional[datetime] = None
    applicant_id: Optional[int] = None
    location_id: Optional[int] = None
    notes: Optional[str] = None

class Voucher(BaseModel):
    id: int
    kind: VoucherKind
    category: VoucherCategory
    purpose: VoucherPurpose
    code: Optional[str] = None
    discount_percent: Optional[Decimal] = None
    balance: Optional[Decimal] = None
    max_uses: int
    usage_count: int
    expires_at: Optional[datetime] = None
    is_used: bool
    used_at: Optional[datetime] = None
    applicant_id: Optional[int] = None
    location_id: Optional[int] = None
    source_ticket_id: Optional[int] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class VoucherList(BaseModel):
    vouchers: List[Voucher]
    total: int

class VoucherRefundRequest(BaseModel):
    voucher_id: int
    notes: Optional[str] = None

class VoucherRefund(BaseModel):
    """Cash payout of a compensation voucher"""
    voucher_id: int
    transaction_id: int
    amount: Decimal
    applicant_id: Optional[int] = None
