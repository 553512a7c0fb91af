from typing import List, Optional, Sequence
from datetime import datetime
from decimal import Decimal

from src.exceptions import (
    InvalidPromoCode, ExpiredPromoCode, PromoUsageExceeded, RouteNotFound,
    VoucherNotApplicable, VoucherAlreadyUsed, InvalidStatusTransition, TicketNotActive
)
from src.pricing.policy_resolver import hours_until, resolve_policy, resolve_no_show
from src.pricing.schemas import (
    PricingConfig, RoutePrice, PolicyRule, PolicyCategory,
    DiscountVoucher, CreditVoucher, VoucherCategory, EXAM_PURPOSES,
    ApplicantSnapshot, ApplicantStatus, TicketSnapshot, TicketStatus, RouteSelection,
    TransportSelection, TripType, QuoteKind,
    RegistrationQuote, ExamScheduleQuote, RetakeQuote, TicketIssuanceQuote,
    TicketChangeQuote, NoShowQuote, ZERO, money
)

HUNDRED = Decimal("100")

RETAKE_STATUSES = (ApplicantStatus.FAILED, ApplicantStatus.ABSENT)
FIRST_SCHEDULE_STATUSES = (ApplicantStatus.NEW_REGISTRATION, ApplicantStatus.SERVICES_CONFIGURED)

class PricingEngine:
    """
    Side-effect-free pricing of every chargeable operation.

    The engine never reads the database: callers pass the configuration
    snapshot, route prices, policies and voucher snapshots they loaded, and
    get back a quote describing the charge and the state changes to commit.
    """

    def __init__(self, config: PricingConfig, currency: str = "YER"):
        self.config = config
        self.currency = currency

    # Registration
    def quote_registration(
        self,
        transport: TransportSelection,
        route: Optional[RoutePrice],
        now: datetime,
        promo_code: Optional[str] = None,
        promo_voucher: Optional[DiscountVoucher] = None,
        manual_discount: Optional[Decimal] = None,
        amount_paid: Decimal = ZERO
    ) -> RegistrationQuote:
        """Price a new registration: base price, transport and one discount source"""

        base_price = money(self.config.registration_price)
        transport_price = ZERO
        if transport != TransportSelection.NONE:
            if route is None:
                raise RouteNotFound()
            transport_price = route.price(TripType(transport.value))

        gross = base_price + transport_price
        discount = ZERO
        discount_source = None
        consumed = []

        if promo_code:
            voucher = self._validate_promo(promo_code, promo_voucher, now)
            if not isinstance(voucher, DiscountVoucher):
                raise VoucherNotApplicable("Promo code is not a percentage discount")
            discount = money(gross * voucher.discount_percent / HUNDRED)
            discount_source = "PROMO_CODE"
            consumed.append(voucher.id)
        elif manual_discount:
            discount = money(manual_discount)
            discount_source = "MANUAL"

        # Total never goes negative
        discount = max(ZERO, min(discount, gross))
        total = gross - discount
        paid = money(amount_paid or ZERO)

        return RegistrationQuote(
            base_price=base_price,
            transport_price=transport_price,
            gross=gross,
            discount=discount,
            discount_source=discount_source,
            promo_code=promo_code if discount_source == "PROMO_CODE" else None,
            total=total,
            amount_paid=paid,
            remaining=total - paid,
            balance_delta=total,
            route_id=route.id if route and transport != TransportSelection.NONE else None,
            consumed_voucher_ids=consumed,
            currency=self.currency,
            quoted_at=now
        )

    def _validate_promo(self, code: str, voucher, now: datetime):
        if voucher is None or voucher.code != code or voucher.category != VoucherCategory.PUBLIC:
            raise InvalidPromoCode()
        if voucher.is_expired(now):
            raise ExpiredPromoCode()
        if voucher.is_exhausted():
            raise PromoUsageExceeded()
        return voucher

    # Exam scheduling
    def quote_exam_schedule(
        self,
        applicant: ApplicantSnapshot,
        reschedule_count: int,
        now: datetime
    ) -> ExamScheduleQuote:
        """First scheduling is free; reschedules beyond the free allowance pay the change fee"""

        if applicant.status in RETAKE_STATUSES:
            raise InvalidStatusTransition(
                f"Applicant is {applicant.status.value}; schedule a retake instead"
            )

        if applicant.status in FIRST_SCHEDULE_STATUSES:
            is_reschedule = False
        elif applicant.status == ApplicantStatus.EXAM_SCHEDULED:
            is_reschedule = applicant.exam_date is not None
        else:
            raise InvalidStatusTransition(
                f"Cannot schedule an exam from status {applicant.status.value}"
            )

        fee = ZERO
        free_left = max(0, self.config.max_free_changes - reschedule_count)
        if is_reschedule:
            if free_left == 0:
                fee = money(self.config.exam_change_fee)
            else:
                free_left -= 1

        return ExamScheduleQuote(
            applicant_id=applicant.id,
            applicant_version=applicant.version,
            is_reschedule=is_reschedule,
            reschedule_count=reschedule_count,
            free_changes_left=free_left,
            fee=fee,
            total=fee,
            balance_delta=fee,
            currency=self.currency,
            quoted_at=now
        )

    # Exam retake
    def eligible_retake_vouchers(
        self,
        applicant: ApplicantSnapshot,
        vouchers: Sequence,
        now: datetime
    ) -> List[DiscountVoucher]:
        return [
            v for v in vouchers
            if isinstance(v, DiscountVoucher)
            and v.category in (VoucherCategory.PERSONAL, VoucherCategory.COMPENSATION)
            and v.purpose in EXAM_PURPOSES
            and v.applicant_id == applicant.id
            and not v.is_exhausted()
            and not v.is_expired(now)
        ]

    def quote_retake(
        self,
        applicant: ApplicantSnapshot,
        vouchers: Sequence,
        now: datetime,
        voucher_id: Optional[int] = None
    ) -> RetakeQuote:
        """Charge the registration price again, less an exam voucher if one is held"""

        if applicant.status not in RETAKE_STATUSES:
            raise InvalidStatusTransition(
                f"Retake requires FAILED or ABSENT status, applicant is {applicant.status.value}"
            )

        base_fee = money(self.config.registration_price)
        eligible = self.eligible_retake_vouchers(applicant, vouchers, now)

        voucher = None
        if voucher_id is not None:
            voucher = next((v for v in eligible if v.id == voucher_id), None)
            if voucher is None:
                held = next((v for v in vouchers if v.id == voucher_id), None)
                if held is not None and held.is_exhausted():
                    raise VoucherAlreadyUsed()
                raise VoucherNotApplicable("Voucher cannot be used for an exam retake")
        elif eligible:
            voucher = eligible[0]

        percent = voucher.discount_percent if voucher else ZERO
        fee = max(ZERO, money(base_fee * (HUNDRED - percent) / HUNDRED))

        return RetakeQuote(
            applicant_id=applicant.id,
            applicant_version=applicant.version,
            base_fee=base_fee,
            discount_percent=percent,
            voucher_id=voucher.id if voucher else None,
            fee=fee,
            total=fee,
            balance_delta=fee,
            consumed_voucher_ids=[voucher.id] if voucher else [],
            currency=self.currency,
            quoted_at=now
        )

    # Ticket issuance
    def quote_ticket_issuance(
        self,
        applicant: ApplicantSnapshot,
        selection: RouteSelection,
        route: Optional[RoutePrice],
        vouchers: Sequence,
        now: datetime,
        has_active_ticket: bool = False,
        has_previous_tickets: bool = False
    ) -> TicketIssuanceQuote:
        """Fare for the selected route less stacked credit vouchers"""

        if has_active_ticket:
            raise TicketNotActive("Applicant already holds an issued ticket")
        if route is None:
            raise RouteNotFound()

        fare = route.price(selection.trip_type)
        prepaid = applicant.transport_selection != TransportSelection.NONE and not has_previous_tickets
        if prepaid and vouchers:
            raise VoucherNotApplicable("Transport was paid at registration")

        self._check_ticket_vouchers(applicant, vouchers, now)
        credit = sum((money(v.balance) for v in vouchers), ZERO)
        payable = max(ZERO, fare - credit)

        return TicketIssuanceQuote(
            applicant_id=applicant.id,
            applicant_version=applicant.version,
            route_id=route.id,
            trip_type=selection.trip_type,
            fare=fare,
            voucher_credit=credit,
            payable=payable,
            prepaid=prepaid,
            total=payable,
            balance_delta=ZERO if prepaid else payable,
            consumed_voucher_ids=[v.id for v in vouchers],
            currency=self.currency,
            quoted_at=now
        )

    def _check_ticket_vouchers(self, applicant: ApplicantSnapshot, vouchers: Sequence, now: datetime):
        public = [v for v in vouchers if v.category == VoucherCategory.PUBLIC]
        personal = [v for v in vouchers if v.category != VoucherCategory.PUBLIC]
        if len(public) > 1 or len(personal) > 1:
            raise VoucherNotApplicable("At most one promo code and one personal voucher per ticket")

        for voucher in vouchers:
            if not isinstance(voucher, CreditVoucher):
                raise VoucherNotApplicable("Only credit vouchers apply to ticket fares")
            if voucher.category == VoucherCategory.PUBLIC:
                if voucher.is_expired(now):
                    raise ExpiredPromoCode()
                if voucher.is_exhausted():
                    raise PromoUsageExceeded()
                continue
            if voucher.applicant_id != applicant.id:
                raise VoucherNotApplicable("Voucher belongs to another applicant")
            if voucher.is_exhausted():
                raise VoucherAlreadyUsed()
            if voucher.is_expired(now):
                raise VoucherNotApplicable("Voucher has expired")

    # Ticket modification / cancellation
    def _original_fare(self, ticket: TicketSnapshot, original_route: Optional[RoutePrice]) -> Decimal:
        if self.config.use_booked_fare_snapshot and ticket.booked_fare is not None:
            return money(ticket.booked_fare)
        if original_route is None:
            if ticket.booked_fare is not None:
                return money(ticket.booked_fare)
            raise RouteNotFound("Route of the original ticket no longer exists")
        return original_route.price(ticket.trip_type)

    def quote_ticket_modification(
        self,
        applicant: ApplicantSnapshot,
        ticket: TicketSnapshot,
        original_route: Optional[RoutePrice],
        selection: RouteSelection,
        new_route: Optional[RoutePrice],
        policies: Sequence[PolicyRule],
        now: datetime
    ) -> TicketChangeQuote:
        """Modification fee plus the fare difference, charged to the running balance"""

        self._require_issued(ticket)
        if new_route is None:
            raise RouteNotFound()

        hours = hours_until(ticket.departure_at, now)
        policy = resolve_policy(policies, PolicyCategory.MODIFICATION, hours)
        original_fare = self._original_fare(ticket, original_route)
        new_fare = new_route.price(selection.trip_type)
        price_difference = new_fare - original_fare
        total_due = policy.fee + price_difference

        return TicketChangeQuote(
            kind=QuoteKind.TICKET_MODIFICATION,
            applicant_id=applicant.id,
            applicant_version=applicant.version,
            ticket_id=ticket.id,
            hours_until_departure=round(hours, 1),
            policy=policy,
            fee=policy.fee,
            original_fare=original_fare,
            new_fare=new_fare,
            price_difference=price_difference,
            new_route_id=new_route.id,
            total=total_due,
            balance_delta=total_due,
            currency=self.currency,
            quoted_at=now
        )

    def quote_ticket_cancellation(
        self,
        applicant: ApplicantSnapshot,
        ticket: TicketSnapshot,
        original_route: Optional[RoutePrice],
        policies: Sequence[PolicyRule],
        now: datetime
    ) -> TicketChangeQuote:
        """Cancellation fee is withheld from the fare; the rest becomes compensation credit"""

        self._require_issued(ticket)
        hours = hours_until(ticket.departure_at, now)
        policy = resolve_policy(policies, PolicyCategory.CANCELLATION, hours)
        if policy.policy_id is None and hours <= 0:
            no_show = resolve_no_show(policies)
            if no_show.policy_id is not None:
                policy = no_show

        fare = self._original_fare(ticket, original_route)
        compensation = max(ZERO, fare - policy.fee)

        return TicketChangeQuote(
            kind=QuoteKind.TICKET_CANCELLATION,
            applicant_id=applicant.id,
            applicant_version=applicant.version,
            ticket_id=ticket.id,
            hours_until_departure=round(hours, 1),
            policy=policy,
            fee=policy.fee,
            original_fare=fare,
            compensation_value=compensation,
            total=policy.fee,
            balance_delta=ZERO,
            currency=self.currency,
            quoted_at=now
        )

    # No-show
    def quote_no_show(
        self,
        applicant: ApplicantSnapshot,
        ticket: TicketSnapshot,
        route: Optional[RoutePrice],
        policies: Sequence[PolicyRule],
        now: datetime
    ) -> NoShowQuote:
        """Fine from the no-show policy; the unspent fare becomes compensation credit"""

        self._require_issued(ticket)
        policy = resolve_no_show(policies)
        fare = self._original_fare(ticket, route)
        compensation = max(ZERO, fare - policy.fee)

        return NoShowQuote(
            applicant_id=applicant.id,
            applicant_version=applicant.version,
            ticket_id=ticket.id,
            policy=policy,
            fine=policy.fee,
            fare=fare,
            compensation_value=compensation,
            total=policy.fee,
            balance_delta=policy.fee,
            currency=self.currency,
            quoted_at=now
        )

    def _require_issued(self, ticket: TicketSnapshot):
        if ticket.status != TicketStatus.ISSUED:
            raise TicketNotActive(f"Ticket is {ticket.status.value}")
