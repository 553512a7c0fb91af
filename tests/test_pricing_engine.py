from decimal import Decimal
from datetime import datetime, timedelta

import pytest

from src.exceptions import (
    InvalidPromoCode, ExpiredPromoCode, PromoUsageExceeded, RouteNotFound,
    VoucherNotApplicable, InvalidStatusTransition, TicketNotActive
)
from src.pricing.engine import PricingEngine
from src.pricing.schemas import (
    PricingConfig, RoutePrice, PolicyRule, PolicyCategory, PolicyCondition,
    DiscountVoucher, CreditVoucher, ApplicantSnapshot, ApplicantStatus, TicketSnapshot,
    TicketStatus, RouteSelection, TransportSelection, TripType, QuoteKind
)

NOW = datetime(2026, 5, 1, 8, 0)

CONFIG = PricingConfig(
    registration_price=Decimal("16000"),
    exam_change_fee=Decimal("16000"),
    max_free_changes=1,
)

ADEN_SANAA = RoutePrice(id=1, from_location_id=2, to_location_id=1,
                        one_way_price=Decimal("30000"), round_trip_price=Decimal("55000"))
TAIZ_ADEN = RoutePrice(id=2, from_location_id=3, to_location_id=2,
                       one_way_price=Decimal("15000"), round_trip_price=Decimal("28000"))

POLICIES = [
    PolicyRule(id=1, name="Late cancellation", category=PolicyCategory.CANCELLATION,
               hours_trigger=24, condition=PolicyCondition.LESS_THAN, fee_amount=Decimal("10000")),
    PolicyRule(id=2, name="Cancellation 24h+", category=PolicyCategory.CANCELLATION,
               hours_trigger=24, condition=PolicyCondition.GREATER_THAN, fee_amount=Decimal("5000")),
    PolicyRule(id=3, name="Modification 24h+", category=PolicyCategory.MODIFICATION,
               hours_trigger=24, condition=PolicyCondition.GREATER_THAN, fee_amount=Decimal("3000")),
    PolicyRule(id=4, name="No-show fine", category=PolicyCategory.NO_SHOW,
               hours_trigger=0, fee_amount=Decimal("20000")),
]


@pytest.fixture
def engine():
    return PricingEngine(CONFIG)


def applicant(**overrides):
    data = dict(id=7, applicant_code="AB12CD", status=ApplicantStatus.NEW_REGISTRATION, version=3)
    data.update(overrides)
    return ApplicantSnapshot(**data)


def ticket(**overrides):
    data = dict(id=11, applicant_id=7, from_location_id=2, to_location_id=1,
                trip_type=TripType.ONE_WAY, departure_at=NOW + timedelta(hours=30),
                status=TicketStatus.ISSUED, booked_fare=Decimal("30000"))
    data.update(overrides)
    return TicketSnapshot(**data)


def promo(**overrides):
    data = dict(id=50, category="PUBLIC", purpose="EXAM", code="EXAM10",
                max_uses=5, usage_count=0, discount_percent=Decimal("10"))
    data.update(overrides)
    return DiscountVoucher(**data)


def credit(**overrides):
    data = dict(id=60, category="COMPENSATION", purpose="TRANSPORT", applicant_id=7,
                balance=Decimal("10000"))
    data.update(overrides)
    return CreditVoucher(**data)


def departing_in(hours):
    return RouteSelection(from_location_id=2, to_location_id=1, departure_at=NOW + timedelta(hours=hours))


class TestRegistration:
    def test_base_price_plus_transport(self, engine):
        quote = engine.quote_registration(TransportSelection.ROUND_TRIP, TAIZ_ADEN, NOW,
                                          amount_paid=Decimal("5000"))
        assert quote.gross == Decimal("44000")
        assert quote.total == Decimal("44000")
        assert quote.remaining == Decimal("39000")
        assert quote.route_id == TAIZ_ADEN.id
        assert quote.consumed_voucher_ids == []

    def test_no_transport_ignores_route(self, engine):
        quote = engine.quote_registration(TransportSelection.NONE, None, NOW)
        assert quote.total == Decimal("16000")
        assert quote.route_id is None

    def test_transport_without_route_is_rejected(self, engine):
        with pytest.raises(RouteNotFound):
            engine.quote_registration(TransportSelection.ONE_WAY, None, NOW)

    def test_manual_discount_is_clamped_to_gross(self, engine):
        quote = engine.quote_registration(TransportSelection.NONE, None, NOW,
                                          manual_discount=Decimal("50000"))
        assert quote.discount == Decimal("16000")
        assert quote.total == Decimal("0")
        assert quote.discount_source == "MANUAL"

    def test_promo_code_percentage(self, engine):
        quote = engine.quote_registration(TransportSelection.NONE, None, NOW,
                                          promo_code="EXAM10", promo_voucher=promo())
        assert quote.discount == Decimal("1600.00")
        assert quote.total == Decimal("14400.00")
        assert quote.consumed_voucher_ids == [50]

    def test_promo_code_beats_manual_discount(self, engine):
        quote = engine.quote_registration(TransportSelection.NONE, None, NOW,
                                          promo_code="EXAM10", promo_voucher=promo(),
                                          manual_discount=Decimal("9000"))
        assert quote.discount_source == "PROMO_CODE"
        assert quote.discount == Decimal("1600.00")

    def test_unknown_promo_code(self, engine):
        with pytest.raises(InvalidPromoCode):
            engine.quote_registration(TransportSelection.NONE, None, NOW, promo_code="NOPE")

    def test_expired_promo_code(self, engine):
        with pytest.raises(ExpiredPromoCode):
            engine.quote_registration(TransportSelection.NONE, None, NOW, promo_code="EXAM10",
                                      promo_voucher=promo(expires_at=NOW - timedelta(days=1)))

    def test_exhausted_promo_code(self, engine):
        with pytest.raises(PromoUsageExceeded):
            engine.quote_registration(TransportSelection.NONE, None, NOW, promo_code="EXAM10",
                                      promo_voucher=promo(max_uses=2, usage_count=2))

    def test_personal_voucher_is_not_a_promo(self, engine):
        with pytest.raises(InvalidPromoCode):
            engine.quote_registration(TransportSelection.NONE, None, NOW, promo_code="EXAM10",
                                      promo_voucher=promo(category="PERSONAL"))


class TestExamScheduling:
    def test_first_scheduling_is_free(self, engine):
        quote = engine.quote_exam_schedule(applicant(), 0, NOW)
        assert quote.is_reschedule is False
        assert quote.fee == Decimal("0")
        assert quote.applicant_version == 3

    def test_reschedule_within_free_allowance(self, engine):
        scheduled = applicant(status=ApplicantStatus.EXAM_SCHEDULED, exam_date=NOW.date())
        quote = engine.quote_exam_schedule(scheduled, 0, NOW)
        assert quote.is_reschedule is True
        assert quote.fee == Decimal("0")
        assert quote.free_changes_left == 0

    def test_reschedule_after_allowance_pays_change_fee(self, engine):
        scheduled = applicant(status=ApplicantStatus.EXAM_SCHEDULED, exam_date=NOW.date())
        quote = engine.quote_exam_schedule(scheduled, 1, NOW)
        assert quote.fee == Decimal("16000")
        assert quote.balance_delta == Decimal("16000")

    def test_failed_applicant_must_retake(self, engine):
        with pytest.raises(InvalidStatusTransition):
            engine.quote_exam_schedule(applicant(status=ApplicantStatus.FAILED), 0, NOW)


class TestRetake:
    def test_full_voucher_makes_retake_free(self, engine):
        voucher = DiscountVoucher(id=70, category="PERSONAL", purpose="EXAM_RETAKE",
                                  applicant_id=7, discount_percent=Decimal("100"))
        quote = engine.quote_retake(applicant(status=ApplicantStatus.FAILED), [voucher], NOW)
        assert quote.fee == Decimal("0")
        assert quote.consumed_voucher_ids == [70]

    def test_partial_voucher(self, engine):
        voucher = DiscountVoucher(id=71, category="PERSONAL", purpose="EXAM",
                                  applicant_id=7, discount_percent=Decimal("50"))
        quote = engine.quote_retake(applicant(status=ApplicantStatus.ABSENT), [voucher], NOW)
        assert quote.fee == Decimal("8000.00")

    def test_without_voucher_charges_registration_price(self, engine):
        quote = engine.quote_retake(applicant(status=ApplicantStatus.FAILED), [], NOW)
        assert quote.fee == Decimal("16000")
        assert quote.voucher_id is None

    def test_transport_voucher_is_not_eligible(self, engine):
        with pytest.raises(VoucherNotApplicable):
            engine.quote_retake(applicant(status=ApplicantStatus.FAILED), [credit()], NOW, voucher_id=60)

    def test_requires_failed_or_absent(self, engine):
        with pytest.raises(InvalidStatusTransition):
            engine.quote_retake(applicant(status=ApplicantStatus.EXAM_SCHEDULED), [], NOW)


class TestTicketIssuance:
    def test_credit_voucher_reduces_fare(self, engine):
        quote = engine.quote_ticket_issuance(applicant(), departing_in(30), ADEN_SANAA, [credit()], NOW)
        assert quote.fare == Decimal("30000")
        assert quote.voucher_credit == Decimal("10000")
        assert quote.payable == Decimal("20000")
        assert quote.balance_delta == Decimal("20000")
        assert quote.consumed_voucher_ids == [60]

    def test_credit_above_fare_never_goes_negative(self, engine):
        quote = engine.quote_ticket_issuance(applicant(), departing_in(30), ADEN_SANAA,
                                             [credit(balance=Decimal("45000"))], NOW)
        assert quote.payable == Decimal("0")

    def test_first_ticket_is_prepaid_when_transport_was_bought(self, engine):
        holder = applicant(transport_selection=TransportSelection.ONE_WAY)
        quote = engine.quote_ticket_issuance(holder, departing_in(30), ADEN_SANAA, [], NOW)
        assert quote.prepaid is True
        assert quote.balance_delta == Decimal("0")

    def test_later_tickets_are_charged(self, engine):
        holder = applicant(transport_selection=TransportSelection.ONE_WAY)
        quote = engine.quote_ticket_issuance(holder, departing_in(30), ADEN_SANAA, [], NOW,
                                             has_previous_tickets=True)
        assert quote.prepaid is False
        assert quote.balance_delta == Decimal("30000")

    def test_discount_vouchers_do_not_apply_to_fares(self, engine):
        voucher = DiscountVoucher(id=72, category="PERSONAL", purpose="TRANSPORT", applicant_id=7)
        with pytest.raises(VoucherNotApplicable):
            engine.quote_ticket_issuance(applicant(), departing_in(30), ADEN_SANAA, [voucher], NOW)

    def test_two_personal_vouchers_are_rejected(self, engine):
        with pytest.raises(VoucherNotApplicable):
            engine.quote_ticket_issuance(applicant(), departing_in(30), ADEN_SANAA,
                                         [credit(), credit(id=61)], NOW)

    def test_foreign_voucher_is_rejected(self, engine):
        with pytest.raises(VoucherNotApplicable):
            engine.quote_ticket_issuance(applicant(), departing_in(30), ADEN_SANAA,
                                         [credit(applicant_id=99)], NOW)

    def test_active_ticket_blocks_issuance(self, engine):
        with pytest.raises(TicketNotActive):
            engine.quote_ticket_issuance(applicant(), departing_in(30), ADEN_SANAA, [], NOW,
                                         has_active_ticket=True)


class TestTicketChanges:
    def test_cancellation_compensation(self, engine):
        quote = engine.quote_ticket_cancellation(applicant(), ticket(), ADEN_SANAA, POLICIES, NOW)
        assert quote.kind == QuoteKind.TICKET_CANCELLATION
        assert quote.fee == Decimal("5000")
        assert quote.compensation_value == Decimal("25000")
        assert quote.balance_delta == Decimal("0")

    def test_late_cancellation(self, engine):
        quote = engine.quote_ticket_cancellation(applicant(), ticket(departure_at=NOW + timedelta(hours=3)),
                                                 ADEN_SANAA, POLICIES, NOW)
        assert quote.fee == Decimal("10000")
        assert quote.compensation_value == Decimal("20000")

    def test_cancellation_after_departure_falls_back_to_no_show(self, engine):
        policies = [p for p in POLICIES if p.id != 1]
        quote = engine.quote_ticket_cancellation(applicant(), ticket(departure_at=NOW - timedelta(hours=2)),
                                                 ADEN_SANAA, policies, NOW)
        assert quote.policy.policy_id == 4
        assert quote.compensation_value == Decimal("10000")

    def test_modification_charges_fee_and_fare_difference(self, engine):
        selection = RouteSelection(from_location_id=2, to_location_id=1, trip_type=TripType.ROUND_TRIP,
                                   departure_at=NOW + timedelta(hours=40))
        quote = engine.quote_ticket_modification(applicant(), ticket(), ADEN_SANAA, selection,
                                                 ADEN_SANAA, POLICIES, NOW)
        assert quote.fee == Decimal("3000")
        assert quote.price_difference == Decimal("25000")
        assert quote.balance_delta == Decimal("28000")

    def test_cheaper_modification_reduces_balance(self, engine):
        round_trip = ticket(trip_type=TripType.ROUND_TRIP, booked_fare=Decimal("55000"))
        selection = RouteSelection(from_location_id=2, to_location_id=1, trip_type=TripType.ONE_WAY,
                                   departure_at=NOW + timedelta(hours=40))
        quote = engine.quote_ticket_modification(applicant(), round_trip, ADEN_SANAA, selection,
                                                 ADEN_SANAA, POLICIES, NOW)
        assert quote.price_difference == Decimal("-25000")
        assert quote.balance_delta == quote.fee + quote.price_difference == Decimal("-22000")

    def test_retired_route_falls_back_to_booked_fare(self, engine):
        quote = engine.quote_ticket_cancellation(applicant(), ticket(booked_fare=Decimal("28000")),
                                                 None, POLICIES, NOW)
        assert quote.original_fare == Decimal("28000")
        assert quote.compensation_value == Decimal("23000")

    def test_unknown_original_fare(self, engine):
        with pytest.raises(RouteNotFound):
            engine.quote_no_show(applicant(), ticket(booked_fare=None), None, POLICIES, NOW)

    def test_current_route_price_is_the_default_original_fare(self, engine):
        old = ticket(booked_fare=Decimal("25000"))
        quote = engine.quote_ticket_cancellation(applicant(), old, ADEN_SANAA, POLICIES, NOW)
        assert quote.original_fare == Decimal("30000")

    def test_booked_fare_snapshot(self):
        engine = PricingEngine(CONFIG.model_copy(update={"use_booked_fare_snapshot": True}))
        old = ticket(booked_fare=Decimal("25000"))
        quote = engine.quote_ticket_cancellation(applicant(), old, None, POLICIES, NOW)
        assert quote.original_fare == Decimal("25000")
        assert quote.compensation_value == Decimal("20000")

    def test_cancelled_ticket_cannot_change(self, engine):
        with pytest.raises(TicketNotActive):
            engine.quote_ticket_cancellation(applicant(), ticket(status=TicketStatus.CANCELLED),
                                             ADEN_SANAA, POLICIES, NOW)

    def test_no_show_fine_and_compensation(self, engine):
        quote = engine.quote_no_show(applicant(), ticket(), ADEN_SANAA, POLICIES, NOW)
        assert quote.fine == Decimal("20000")
        assert quote.balance_delta == Decimal("20000")
        assert quote.compensation_value == Decimal("10000")
