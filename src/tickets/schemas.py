from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from src.ledger.schemas import TicketDetails
from src.pricing.schemas import RouteSelection, TicketStatus, TripType

class TicketIssueRequest(TicketDetails):
    """Route selection, operator details and the credit vouchers to stack on the fare"""
    voucher_ids: List[int] = []
    promo_code: Optional[str] = None
    applicant_version: Optional[int] = None

class TicketChangeRequest(BaseModel):
    """New travel details; no selection means cancel the ticket"""
    selection: Optional[RouteSelection] = None
    bus_number: Optional[str] = None
    seat_number: Optional[str] = None
    transport_company: Optional[str] = None
    applicant_version: Optional[int] = None

class TicketUsageRequest(BaseModel):
    status: TicketStatus
    applicant_version: Optional[int] = None

    @field_validator("status")
    @classmethod
    def usage_status(cls, v):
        if v not in (TicketStatus.USED, TicketStatus.NO_SHOW):
            raise ValueError("Usage status must be USED or NO_SHOW")
        return v

class Ticket(BaseModel):
    id: int
    ticket_number: str
    applicant_id: int
    from_location_id: int
    to_location_id: int
    trip_type: TripType
    departure_at: datetime
    bus_number: Optional[str] = None
    seat_number: Optional[str] = None
    transport_company: Optional[str] = None
    status: TicketStatus
    booked_fare: Optional[Decimal] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class ManifestEntry(BaseModel):
    """One passenger line of a transport manifest"""
    ticket_id: int
    ticket_number: str
    applicant_id: int
    applicant_code: str
    full_name: str
    phone: str
    passport_number: Optional[str] = None
    from_location: Optional[str] = None
    to_location: Optional[str] = None
    departure_at: datetime
    trip_type: TripType
    bus_number: Optional[str] = None
    seat_number: Optional[str] = None
    status: TicketStatus

class Manifest(BaseModel):
    entries: List[ManifestEntry]
    total: int
    filters: dict = Field(default_factory=dict)

class TicketSearchResult(Ticket):
    """Ticket with the passenger it was issued to"""
    applicant_code: str
    full_name: str
    phone: str
