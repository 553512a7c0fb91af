from pydantic import BaseModel, Field, ConfigDict
from typing import Annotated, List, Optional, Literal, Union
from datetime import datetime, date
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum

ZERO = Decimal("0")
CENT = Decimal("0.01")

def money(value) -> Decimal:
    """Normalize a monetary value to two decimal places"""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)

class TripType(str, Enum):
    """Fare basis of a transport booking"""
    ONE_WAY = "ONE_WAY"
    ROUND_TRIP = "ROUND_TRIP"

class TransportSelection(str, Enum):
    """Transport chosen at registration"""
    NONE = "NONE"
    ONE_WAY = "ONE_WAY"
    ROUND_TRIP = "ROUND_TRIP"

class ApplicantStatus(str, Enum):
    """Applicant lifecycle status"""
    NEW_REGISTRATION = "NEW_REGISTRATION"
    SERVICES_CONFIGURED = "SERVICES_CONFIGURED"
    EXAM_SCHEDULED = "EXAM_SCHEDULED"
    ATTENDED_EXAM = "ATTENDED_EXAM"
    PASSED = "PASSED"
    FAILED = "FAILED"
    ABSENT = "ABSENT"

class TicketStatus(str, Enum):
    """Ticket status enumeration"""
    ISSUED = "ISSUED"
    USED = "USED"
    NO_SHOW = "NO_SHOW"
    CANCELLED = "CANCELLED"

class VoucherKind(str, Enum):
    """Percent discount or fixed-balance credit"""
    DISCOUNT = "DISCOUNT"
    CREDIT = "CREDIT"

class VoucherCategory(str, Enum):
    PUBLIC = "PUBLIC"
    PERSONAL = "PERSONAL"
    COMPENSATION = "COMPENSATION"

class VoucherPurpose(str, Enum):
    EXAM = "EXAM"
    EXAM_RETAKE = "EXAM_RETAKE"
    FULL_PROGRAM = "FULL_PROGRAM"
    TRANSPORT = "TRANSPORT"

EXAM_PURPOSES = (VoucherPurpose.EXAM, VoucherPurpose.EXAM_RETAKE, VoucherPurpose.FULL_PROGRAM)

class PolicyCategory(str, Enum):
    CANCELLATION = "CANCELLATION"
    MODIFICATION = "MODIFICATION"
    NO_SHOW = "NO_SHOW"
    ROUTE_CHANGE = "ROUTE_CHANGE"

class PolicyCondition(str, Enum):
    LESS_THAN = "LESS_THAN"
    GREATER_THAN = "GREATER_THAN"

class QuoteKind(str, Enum):
    REGISTRATION = "REGISTRATION"
    EXAM_SCHEDULE = "EXAM_SCHEDULE"
    EXAM_RETAKE = "EXAM_RETAKE"
    TICKET_ISSUANCE = "TICKET_ISSUANCE"
    TICKET_MODIFICATION = "TICKET_MODIFICATION"
    TICKET_CANCELLATION = "TICKET_CANCELLATION"
    TICKET_NO_SHOW = "TICKET_NO_SHOW"

# ================================
# Reference data snapshots
# ================================
class PricingConfig(BaseModel):
    """Pricing constants captured once per request"""
    model_config = ConfigDict(frozen=True)

    registration_price: Decimal = ZERO
    exam_change_fee: Decimal = ZERO
    max_free_changes: int = 1
    use_booked_fare_snapshot: bool = False

class RoutePrice(BaseModel):
    """Priced edge between two locations"""
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    from_location_id: int
    to_location_id: int
    one_way_price: Decimal
    round_trip_price: Decimal

    def price(self, trip_type: TripType) -> Decimal:
        if TripType(trip_type) == TripType.ROUND_TRIP:
            return money(self.round_trip_price)
        return money(self.one_way_price)

class PolicyRule(BaseModel):
    """Cancellation, modification or no-show fee rule"""
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: Optional[int] = None
    name: str
    category: PolicyCategory
    hours_trigger: Optional[float] = None
    condition: Optional[PolicyCondition] = None
    fee_amount: Decimal = ZERO

class PolicyResolution(BaseModel):
    """Outcome of policy resolution for one event"""
    policy_id: Optional[int] = None
    policy_name: str = "default"
    fee: Decimal = ZERO

# Voucher variants
class VoucherBase(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    category: VoucherCategory
    purpose: VoucherPurpose
    code: Optional[str] = None
    max_uses: int = 1
    usage_count: int = 0
    expires_at: Optional[datetime] = None
    is_used: bool = False
    applicant_id: Optional[int] = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at < now

    def is_exhausted(self) -> bool:
        return self.is_used or self.usage_count >= self.max_uses

class DiscountVoucher(VoucherBase):
    """Percent-based voucher used on registration and exam fees"""
    kind: Literal["DISCOUNT"] = "DISCOUNT"
    discount_percent: Decimal = Decimal("100")

class CreditVoucher(VoucherBase):
    """Fixed-balance credit used on ticket fares"""
    kind: Literal["CREDIT"] = "CREDIT"
    balance: Decimal = ZERO

VoucherSnapshot = Annotated[Union[DiscountVoucher, CreditVoucher], Field(discriminator="kind")]

class ApplicantSnapshot(BaseModel):
    """Financial and lifecycle state of an applicant at quote time"""
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    applicant_code: str
    status: ApplicantStatus
    transport_selection: TransportSelection = TransportSelection.NONE
    exam_date: Optional[date] = None
    total_amount: Decimal = ZERO
    amount_paid: Decimal = ZERO
    remaining_balance: Decimal = ZERO
    version: int = 1

class TicketSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    applicant_id: int
    from_location_id: int
    to_location_id: int
    trip_type: TripType
    departure_at: datetime
    status: TicketStatus
    booked_fare: Optional[Decimal] = None

class RouteSelection(BaseModel):
    """Requested travel: location pair, fare basis and departure"""
    from_location_id: int
    to_location_id: int
    trip_type: TripType = TripType.ONE_WAY
    departure_at: datetime

# ================================
# Quotes
# ================================
class Quote(BaseModel):
    """Priced outcome of one operation, ready to be committed"""
    kind: QuoteKind
    applicant_id: Optional[int] = None
    applicant_version: Optional[int] = None
    total: Decimal = ZERO
    balance_delta: Decimal = ZERO
    consumed_voucher_ids: List[int] = []
    currency: str = "YER"
    quoted_at: datetime

class RegistrationQuote(Quote):
    kind: Literal[QuoteKind.REGISTRATION] = QuoteKind.REGISTRATION
    base_price: Decimal
    transport_price: Decimal = ZERO
    gross: Decimal
    discount: Decimal = ZERO
    discount_source: Optional[Literal["PROMO_CODE", "MANUAL"]] = None
    promo_code: Optional[str] = None
    amount_paid: Decimal = ZERO
    remaining: Decimal
    route_id: Optional[int] = None

class ExamScheduleQuote(Quote):
    kind: Literal[QuoteKind.EXAM_SCHEDULE] = QuoteKind.EXAM_SCHEDULE
    is_reschedule: bool = False
    reschedule_count: int = 0
    free_changes_left: int = 0
    fee: Decimal = ZERO

class RetakeQuote(Quote):
    kind: Literal[QuoteKind.EXAM_RETAKE] = QuoteKind.EXAM_RETAKE
    base_fee: Decimal
    discount_percent: Decimal = ZERO
    voucher_id: Optional[int] = None
    fee: Decimal

class TicketIssuanceQuote(Quote):
    kind: Literal[QuoteKind.TICKET_ISSUANCE] = QuoteKind.TICKET_ISSUANCE
    route_id: int
    trip_type: TripType
    fare: Decimal
    voucher_credit: Decimal = ZERO
    payable: Decimal
    prepaid: bool = False

class TicketChangeQuote(Quote):
    """Modification or cancellation of an issued ticket"""
    kind: Literal[QuoteKind.TICKET_MODIFICATION, QuoteKind.TICKET_CANCELLATION]
    ticket_id: int
    hours_until_departure: float
    policy: PolicyResolution
    fee: Decimal = ZERO
    original_fare: Decimal
    new_fare: Optional[Decimal] = None
    price_difference: Decimal = ZERO
    compensation_value: Decimal = ZERO
    new_route_id: Optional[int] = None

class NoShowQuote(Quote):
    kind: Literal[QuoteKind.TICKET_NO_SHOW] = QuoteKind.TICKET_NO_SHOW
    ticket_id: int
    policy: PolicyResolution
    fine: Decimal = ZERO
    fare: Decimal = ZERO
    compensation_value: Decimal = ZERO
