from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime, date
from decimal import Decimal

from src.ledger.schemas import ApplicantProfile, ExamSchedule
from src.pricing.schemas import ApplicantStatus, TransportSelection

# Requests
class RegistrationRequest(ApplicantProfile):
    """New applicant with one optional discount source and an optional deposit"""
    promo_code: Optional[str] = None
    discount: Optional[Decimal] = Field(None, ge=0, description="Manual discount, ignored when a promo code applies")
    amount_paid: Decimal = Field(Decimal("0"), ge=0)

class PaymentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0)
    notes: Optional[str] = None
    location_id: Optional[int] = None

class ExamScheduleRequest(ExamSchedule):
    applicant_version: Optional[int] = Field(None, description="Version the operator saw when previewing")

class RetakeRequest(ExamSchedule):
    voucher_id: Optional[int] = None
    applicant_version: Optional[int] = None

class StatusUpdate(BaseModel):
    status: ApplicantStatus

# Responses
class ApplicantSummary(BaseModel):
    id: int
    applicant_code: str
    full_name: str
    phone: str
    status: ApplicantStatus
    location_id: Optional[int] = None
    exam_date: Optional[date] = None
    total_amount: Decimal
    amount_paid: Decimal
    remaining_balance: Decimal
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class Applicant(ApplicantSummary):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    whatsapp_number: Optional[str] = None
    passport_number: Optional[str] = None
    national_id: Optional[str] = None
    profession: Optional[str] = None
    notes: Optional[str] = None
    transport_from_id: Optional[int] = None
    transport_selection: TransportSelection
    travel_date: Optional[date] = None
    exam_time: Optional[str] = None
    exam_location: Optional[str] = None
    discount: Decimal
    version: int
    updated_at: Optional[datetime] = None

class ApplicantList(BaseModel):
    applicants: List[ApplicantSummary]
    total: int
    page: int
    per_page: int

class TransactionEntry(BaseModel):
    id: int
    type: str
    amount: Decimal
    category: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    applicant_id: Optional[int] = None
    location_id: Optional[int] = None
    voucher_id: Optional[int] = None
    created_by: Optional[int] = None
    date: Optional[datetime] = None

    class Config:
        from_attributes = True

class ActivityLogEntry(BaseModel):
    id: int
    applicant_id: Optional[int] = None
    staff_user_id: Optional[int] = None
    action: str
    details: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    timestamp: Optional[datetime] = None

    class Config:
        from_attributes = True

class FollowUpStats(BaseModel):
    """Counters for the follow-up desk"""
    pending_payment: int
    missing_ticket: int
    as_of: datetime
