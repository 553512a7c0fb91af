from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import date
from decimal import Decimal

from src.pricing.schemas import RouteSelection, TransportSelection

# Non-monetary data a commit writes alongside the quote
class ApplicantProfile(BaseModel):
    """Personal and service details captured at registration"""
    full_name: str = Field(..., min_length=1, max_length=255)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: str = Field(..., min_length=3, max_length=30)
    whatsapp_number: Optional[str] = None
    passport_number: Optional[str] = None
    national_id: Optional[str] = None
    profession: Optional[str] = None
    notes: Optional[str] = None
    location_id: Optional[int] = None
    transport_from_id: Optional[int] = None
    transport_selection: TransportSelection = TransportSelection.NONE
    travel_date: Optional[date] = None

class ExamSchedule(BaseModel):
    exam_date: date
    exam_time: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$")
    exam_location: Optional[str] = None

class TicketDetails(BaseModel):
    """Route selection plus the operator details printed on the ticket"""
    selection: RouteSelection
    bus_number: Optional[str] = None
    seat_number: Optional[str] = None
    transport_company: Optional[str] = None

class CommitResult(BaseModel):
    """State after a ledger commit"""
    kind: str
    applicant_id: int
    applicant_code: str
    status: str
    total_amount: Decimal
    amount_paid: Decimal
    discount: Decimal
    remaining_balance: Decimal
    balance_delta: Decimal = Decimal("0")
    ticket_id: Optional[int] = None
    ticket_number: Optional[str] = None
    compensation_voucher_id: Optional[int] = None
    transaction_ids: List[int] = []
    consumed_voucher_ids: List[int] = []
