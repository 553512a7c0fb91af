import re
from decimal import Decimal
from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import update
from sqlalchemy.orm.exc import StaleDataError

from src.exceptions import (
    ConcurrentModification, ConcurrentVoucherRedemption, BalanceInvariantViolation,
    PromoUsageExceeded, VoucherAlreadyUsed, InvalidStatusTransition, TicketNotActive, InvalidAmount,
    RouteNotFound, VoucherNotApplicable
)
from src.config import settings
from src.models import Applicant, Voucher, Transaction, Ticket, ActivityLog, ServiceConfig
from src.applicants.schemas import RegistrationRequest, ExamScheduleRequest, RetakeRequest
from src.applicants.service import ApplicantService
from src.tickets.schemas import TicketIssueRequest, TicketChangeRequest
from src.tickets.service import TicketService
from src.vouchers.schemas import VoucherCreate
from src.vouchers.service import VoucherService
from src.ledger import LedgerReconciler
from src.catalog.service import CatalogService
from src.pricing.schemas import RouteSelection, TicketStatus, ApplicantStatus, TripType


def assert_balanced(applicant):
    assert applicant.remaining_balance == applicant.total_amount - applicant.amount_paid


def selection(catalog, hours=30, trip_type=TripType.ONE_WAY, from_id=None, to_id=None):
    return RouteSelection(
        from_location_id=from_id or catalog.aden,
        to_location_id=to_id or catalog.sanaa,
        trip_type=trip_type,
        departure_at=datetime.now() + timedelta(hours=hours),
    )


def public_promo(db, code="EXAM10", max_uses=2, percent="10"):
    return VoucherService(db).create_voucher(VoucherCreate(
        kind="DISCOUNT", category="PUBLIC", purpose="EXAM",
        code=code, discount_percent=Decimal(percent), max_uses=max_uses,
    ))


def transport_credit(db, applicant_id, balance="10000"):
    return VoucherService(db).create_voucher(VoucherCreate(
        kind="CREDIT", category="COMPENSATION", purpose="TRANSPORT",
        balance=Decimal(balance), applicant_id=applicant_id,
    ))


def failed_applicant(db, register):
    result = register()
    service = ApplicantService(db)
    service.schedule_exam(result.applicant_id, ExamScheduleRequest(exam_date=date(2026, 6, 1)))
    service.change_status(result.applicant_id, ApplicantStatus.ATTENDED_EXAM)
    service.change_status(result.applicant_id, ApplicantStatus.FAILED)
    return result.applicant_id


class TestRegistration:
    def test_deposit_and_transport(self, db, catalog, register):
        result = register(transport_from_id=catalog.taiz, transport_selection="ROUND_TRIP",
                          amount_paid=Decimal("5000"))

        assert result.total_amount == Decimal("44000")
        assert result.amount_paid == Decimal("5000")
        assert result.remaining_balance == Decimal("39000")
        assert re.fullmatch(r"[A-Z0-9]{6}", result.applicant_code)

        applicant = db.get(Applicant, result.applicant_id)
        assert_balanced(applicant)
        assert applicant.whatsapp_number == applicant.phone

        deposit = db.query(Transaction).filter(Transaction.applicant_id == applicant.id).one()
        assert deposit.type == "PAYMENT"
        assert deposit.amount == Decimal("5000")
        assert result.transaction_ids == [deposit.id]

        actions = [log.action for log in db.query(ActivityLog).filter(ActivityLog.applicant_id == applicant.id)]
        assert actions == ["NEW_REGISTRATION"]

    def test_promo_code_is_counted_until_exhausted(self, db, register):
        promo = public_promo(db, max_uses=2)

        first = register(promo_code="EXAM10")
        assert first.total_amount == Decimal("14400")
        register(promo_code="EXAM10", phone="777000111")

        db.expire_all()
        voucher = db.get(Voucher, promo.id)
        assert voucher.usage_count == 2
        assert voucher.is_used is True

        with pytest.raises(PromoUsageExceeded):
            register(promo_code="EXAM10", phone="777000222")

    def test_promo_note_is_appended(self, db, register):
        public_promo(db)
        result = register(promo_code="EXAM10", notes="Walk-in")
        applicant = db.get(Applicant, result.applicant_id)
        assert applicant.notes.startswith("Walk-in | Promo code EXAM10")

    def test_stale_promo_quote_is_rejected(self, db, catalog):
        promo = public_promo(db, max_uses=1)
        service = ApplicantService(db)
        request = RegistrationRequest(full_name="Salem Ali", phone="777555666",
                                      location_id=catalog.aden, promo_code="EXAM10")

        first = service.quote_registration(request)
        second = service.quote_registration(request)

        service.reconciler.commit(first, intent=request)
        with pytest.raises(ConcurrentVoucherRedemption):
            service.reconciler.commit(second, intent=request)

        db.expire_all()
        assert db.get(Voucher, promo.id).usage_count == 1
        assert db.query(Applicant).count() == 1


class TestPayments:
    def test_payment_moves_remaining_to_paid(self, db, register):
        result = register()
        paid = ApplicantService(db).record_payment(result.applicant_id, Decimal("10000"), notes="Cash")

        assert paid.amount_paid == Decimal("10000")
        assert paid.remaining_balance == Decimal("6000")
        assert len(paid.transaction_ids) == 1
        assert_balanced(db.get(Applicant, result.applicant_id))

    def test_non_positive_payment(self, db, register):
        result = register()
        with pytest.raises(InvalidAmount):
            ApplicantService(db).record_payment(result.applicant_id, Decimal("0"))

    def test_broken_invariant_rolls_back(self, db, register):
        result = register()
        db.execute(update(Applicant).where(Applicant.id == result.applicant_id).values(remaining_balance=1))
        db.commit()

        with pytest.raises(BalanceInvariantViolation):
            ApplicantService(db).record_payment(result.applicant_id, Decimal("1000"))

        assert db.query(Transaction).filter(Transaction.applicant_id == result.applicant_id).count() == 0

    def test_transactions_are_immutable(self, db, register):
        result = register(amount_paid=Decimal("2000"))
        payment = db.query(Transaction).filter(Transaction.applicant_id == result.applicant_id).one()

        payment.amount = Decimal("1")
        with pytest.raises(ValueError):
            db.flush()
        db.rollback()


class TestExamScheduling:
    def test_reschedules_beyond_free_allowance_are_charged(self, db, register):
        applicant_id = register().applicant_id
        service = ApplicantService(db)

        first = service.schedule_exam(applicant_id, ExamScheduleRequest(exam_date=date(2026, 6, 1)))
        assert first.status == "EXAM_SCHEDULED"
        assert first.total_amount == Decimal("16000")

        free = service.schedule_exam(applicant_id, ExamScheduleRequest(exam_date=date(2026, 6, 8)))
        assert free.balance_delta == Decimal("0")

        charged = service.schedule_exam(applicant_id, ExamScheduleRequest(exam_date=date(2026, 6, 15)))
        assert charged.balance_delta == Decimal("16000")
        assert charged.total_amount == Decimal("32000")
        assert_balanced(db.get(Applicant, applicant_id))

    def test_stale_quote_is_rejected(self, db, register):
        applicant_id = register().applicant_id
        service = ApplicantService(db)

        quote = service.quote_exam_schedule(applicant_id)
        service.record_payment(applicant_id, Decimal("1000"))

        with pytest.raises(ConcurrentModification):
            service.reconciler.commit(quote, intent=ExamScheduleRequest(exam_date=date(2026, 6, 1)))

        applicant = db.get(Applicant, applicant_id)
        assert applicant.status == "NEW_REGISTRATION"
        assert applicant.amount_paid == Decimal("1000")

    def test_client_version_must_match(self, db, register):
        applicant_id = register().applicant_id
        seen = db.get(Applicant, applicant_id).version
        ApplicantService(db).record_payment(applicant_id, Decimal("1000"))

        with pytest.raises(ConcurrentModification):
            ApplicantService(db).schedule_exam(
                applicant_id, ExamScheduleRequest(exam_date=date(2026, 6, 1), applicant_version=seen)
            )


class TestRetake:
    def test_full_voucher_retake_keeps_balance(self, db, register):
        applicant_id = failed_applicant(db, register)
        voucher = VoucherService(db).create_voucher(VoucherCreate(
            kind="DISCOUNT", category="PERSONAL", purpose="EXAM_RETAKE", applicant_id=applicant_id
        ))
        before = db.get(Applicant, applicant_id).total_amount

        result = ApplicantService(db).schedule_retake(
            applicant_id, RetakeRequest(exam_date=date(2026, 7, 1), voucher_id=voucher.id)
        )

        assert result.total_amount == before
        assert result.status == "EXAM_SCHEDULED"
        assert result.consumed_voucher_ids == [voucher.id]
        db.expire_all()
        assert db.get(Voucher, voucher.id).is_used is True

    def test_single_use_voucher_cannot_be_redeemed_twice(self, db, register):
        applicant_id = failed_applicant(db, register)
        voucher = VoucherService(db).create_voucher(VoucherCreate(
            kind="DISCOUNT", category="PERSONAL", purpose="EXAM_RETAKE", applicant_id=applicant_id
        ))
        service = ApplicantService(db)
        first = service.quote_retake(applicant_id, voucher_id=voucher.id)
        second = service.quote_retake(applicant_id, voucher_id=voucher.id)

        service.reconciler.commit(first, intent=RetakeRequest(exam_date=date(2026, 7, 1)))
        with pytest.raises(ConcurrentVoucherRedemption):
            service.reconciler.commit(second, intent=RetakeRequest(exam_date=date(2026, 7, 2)))

        applicant = db.get(Applicant, applicant_id)
        assert applicant.exam_date == date(2026, 7, 1)
        assert_balanced(applicant)

    def test_retake_without_voucher_charges_registration_price(self, db, register):
        applicant_id = failed_applicant(db, register)
        result = ApplicantService(db).schedule_retake(applicant_id, RetakeRequest(exam_date=date(2026, 7, 1)))
        assert result.balance_delta == Decimal("16000")
        assert result.total_amount == Decimal("32000")


class TestTickets:
    def test_issuance_with_credit_voucher(self, db, catalog, register):
        applicant_id = register().applicant_id
        credit = transport_credit(db, applicant_id)

        result = TicketService(db).issue_ticket(
            applicant_id, TicketIssueRequest(selection=selection(catalog), voucher_ids=[credit.id])
        )

        assert result.balance_delta == Decimal("20000")
        assert result.total_amount == Decimal("36000")
        assert re.fullmatch(r"TKT-\d{6}", result.ticket_number)

        db.expire_all()
        assert db.get(Voucher, credit.id).is_used is True
        ticket = db.get(Ticket, result.ticket_id)
        assert ticket.booked_fare == Decimal("30000")
        assert db.get(Applicant, applicant_id).transport_selection == "ONE_WAY"

    def test_first_ticket_is_prepaid(self, db, catalog, register):
        result = register(transport_from_id=catalog.taiz, transport_selection="ROUND_TRIP")
        issued = TicketService(db).issue_ticket(result.applicant_id, TicketIssueRequest(
            selection=selection(catalog, trip_type=TripType.ROUND_TRIP, from_id=catalog.taiz, to_id=catalog.aden)
        ))
        assert issued.balance_delta == Decimal("0")
        assert issued.total_amount == Decimal("44000")

    def test_one_active_ticket_per_applicant(self, db, catalog, register):
        applicant_id = register().applicant_id
        service = TicketService(db)
        service.issue_ticket(applicant_id, TicketIssueRequest(selection=selection(catalog)))
        with pytest.raises(TicketNotActive):
            service.issue_ticket(applicant_id, TicketIssueRequest(selection=selection(catalog)))

    def test_cancellation_issues_compensation_voucher(self, db, catalog, register):
        applicant_id = register().applicant_id
        service = TicketService(db)
        issued = service.issue_ticket(applicant_id, TicketIssueRequest(selection=selection(catalog)))

        cancelled = service.change_ticket(issued.ticket_id, TicketChangeRequest())

        assert cancelled.total_amount == issued.total_amount
        voucher = db.get(Voucher, cancelled.compensation_voucher_id)
        assert voucher.balance == Decimal("25000")
        assert voucher.is_used is False
        assert voucher.category == "COMPENSATION"
        assert voucher.purpose == "TRANSPORT"
        assert voucher.source_ticket_id == issued.ticket_id
        assert db.get(Ticket, issued.ticket_id).status == "CANCELLED"

        rebooked = service.issue_ticket(applicant_id, TicketIssueRequest(
            selection=selection(catalog), voucher_ids=[voucher.id]
        ))
        assert rebooked.balance_delta == Decimal("5000")

    def test_modification_charges_fee_and_difference(self, db, catalog, register):
        applicant_id = register().applicant_id
        service = TicketService(db)
        issued = service.issue_ticket(applicant_id, TicketIssueRequest(selection=selection(catalog)))

        modified = service.change_ticket(issued.ticket_id, TicketChangeRequest(
            selection=selection(catalog, hours=40, trip_type=TripType.ROUND_TRIP), seat_number="12"
        ))

        assert modified.balance_delta == Decimal("28000")
        ticket = db.get(Ticket, issued.ticket_id)
        assert ticket.trip_type == "ROUND_TRIP"
        assert ticket.booked_fare == Decimal("55000")
        assert ticket.seat_number == "12"
        assert_balanced(db.get(Applicant, applicant_id))

    def test_cheaper_modification_reduces_balance(self, db, catalog, register):
        applicant_id = register().applicant_id
        service = TicketService(db)
        issued = service.issue_ticket(applicant_id, TicketIssueRequest(
            selection=selection(catalog, trip_type=TripType.ROUND_TRIP)
        ))
        assert issued.balance_delta == Decimal("55000")

        quote = service.quote_change(issued.ticket_id, selection(catalog, hours=40))
        assert quote.price_difference == Decimal("-25000")
        assert quote.balance_delta == quote.fee + quote.price_difference

        modified = service.change_ticket(issued.ticket_id, TicketChangeRequest(selection=selection(catalog, hours=40)))
        assert modified.balance_delta == Decimal("-22000")

        db.expire_all()
        applicant = db.get(Applicant, applicant_id)
        assert applicant.total_amount == Decimal("49000")
        assert applicant.remaining_balance == Decimal("49000")
        assert_balanced(applicant)
        assert db.query(Transaction).filter(Transaction.applicant_id == applicant_id).count() == 0

    def test_retired_route_still_prices_issued_tickets(self, db, catalog, register):
        service = TicketService(db)
        first = register().applicant_id
        second = register(phone="733999888").applicant_id
        cancel_me = service.issue_ticket(first, TicketIssueRequest(selection=selection(catalog)))
        miss_me = service.issue_ticket(second, TicketIssueRequest(selection=selection(catalog)))

        CatalogService(db).deactivate_route(catalog.aden_sanaa)

        cancelled = service.change_ticket(cancel_me.ticket_id, TicketChangeRequest())
        assert db.get(Voucher, cancelled.compensation_voucher_id).balance == Decimal("25000")
        assert db.get(Ticket, cancel_me.ticket_id).status == "CANCELLED"

        no_show = service.mark_usage(miss_me.ticket_id, TicketStatus.NO_SHOW)
        assert no_show.balance_delta == Decimal("20000")
        assert db.get(Ticket, miss_me.ticket_id).status == "NO_SHOW"

        with pytest.raises(RouteNotFound):
            service.issue_ticket(first, TicketIssueRequest(selection=selection(catalog)))

    def test_no_show_fine_and_compensation(self, db, catalog, register):
        applicant_id = register().applicant_id
        service = TicketService(db)
        issued = service.issue_ticket(applicant_id, TicketIssueRequest(selection=selection(catalog)))

        result = service.mark_usage(issued.ticket_id, TicketStatus.NO_SHOW)

        assert result.balance_delta == Decimal("20000")
        assert result.total_amount == Decimal("66000")
        assert db.get(Voucher, result.compensation_voucher_id).balance == Decimal("10000")

    def test_used_ticket_cannot_be_cancelled(self, db, catalog, register):
        applicant_id = register().applicant_id
        service = TicketService(db)
        issued = service.issue_ticket(applicant_id, TicketIssueRequest(selection=selection(catalog)))

        used = service.mark_usage(issued.ticket_id, TicketStatus.USED)
        assert used.ticket_id == issued.ticket_id

        with pytest.raises(TicketNotActive):
            service.change_ticket(issued.ticket_id, TicketChangeRequest())


class TestVoucherRefund:
    def test_compensation_refund_is_a_negative_withdrawal(self, db, catalog, register):
        applicant_id = register().applicant_id
        service = TicketService(db)
        issued = service.issue_ticket(applicant_id, TicketIssueRequest(selection=selection(catalog)))
        voucher_id = service.change_ticket(issued.ticket_id, TicketChangeRequest()).compensation_voucher_id

        refund = VoucherService(db).refund_voucher_cash(voucher_id)

        assert refund.amount == Decimal("25000")
        withdrawal = db.get(Transaction, refund.transaction_id)
        assert withdrawal.type == "WITHDRAWAL"
        assert withdrawal.amount == Decimal("-25000")

        with pytest.raises(VoucherAlreadyUsed):
            VoucherService(db).refund_voucher_cash(voucher_id)

    def test_expired_credit_is_not_refunded(self, db, register):
        applicant_id = register().applicant_id
        credit = transport_credit(db, applicant_id)
        db.execute(update(Voucher).where(Voucher.id == credit.id).values(
            expires_at=datetime.now() - timedelta(days=1)
        ))
        db.commit()

        with pytest.raises(VoucherNotApplicable):
            VoucherService(db).refund_voucher_cash(credit.id)
        assert db.query(Transaction).filter(Transaction.voucher_id == credit.id).count() == 0

    def test_lost_update_maps_to_concurrent_modification(self, db, register, monkeypatch):
        applicant_id = register().applicant_id
        credit = transport_credit(db, applicant_id)

        def stale(self, voucher_ids, now):
            raise StaleDataError("voucher row changed")

        monkeypatch.setattr(LedgerReconciler, "_consume_vouchers", stale)
        with pytest.raises(ConcurrentModification):
            VoucherService(db).refund_voucher_cash(credit.id)

        monkeypatch.undo()
        db.expire_all()
        assert db.get(Voucher, credit.id).is_used is False
        assert db.query(Transaction).filter(Transaction.voucher_id == credit.id).count() == 0


class TestStatusChanges:
    def test_direct_transition_rules(self, db, register):
        applicant_id = register().applicant_id
        with pytest.raises(InvalidStatusTransition):
            ApplicantService(db).change_status(applicant_id, ApplicantStatus.PASSED)
        with pytest.raises(InvalidStatusTransition):
            ApplicantService(db).change_status(applicant_id, ApplicantStatus.EXAM_SCHEDULED)

    def test_result_undo_is_admin_only(self, db, register):
        applicant_id = failed_applicant(db, register)
        with pytest.raises(InvalidStatusTransition):
            ApplicantService(db).change_status(applicant_id, ApplicantStatus.ATTENDED_EXAM)

        applicant = ApplicantService(db, is_admin=True).change_status(applicant_id, ApplicantStatus.ATTENDED_EXAM)
        assert applicant.status == "ATTENDED_EXAM"

    def test_reconciler_records_actor(self, db, register, admin):
        applicant_id = register().applicant_id
        LedgerReconciler(db, actor_id=admin.id).record_payment(applicant_id, Decimal("500"))
        log = db.query(ActivityLog).filter(ActivityLog.action == "PAYMENT_ADDED").one()
        assert log.staff_user_id == admin.id


class TestServiceConfig:
    def test_quotes_do_not_write_the_default_config(self, db, catalog):
        db.query(ServiceConfig).delete()
        db.commit()

        quote = ApplicantService(db).quote_registration(RegistrationRequest(
            full_name="Salem Ali", phone="777555666", location_id=catalog.aden
        ))

        assert quote.total == settings.DEFAULT_REGISTRATION_PRICE
        assert not db.new
        assert db.query(ServiceConfig).count() == 0

    def test_default_config_is_installed_once(self, db):
        db.query(ServiceConfig).delete()
        db.commit()

        service = CatalogService(db)
        first = service.ensure_service_config()
        second = service.ensure_service_config()

        assert first.id == second.id == "global"
        assert first.exam_change_fee == settings.DEFAULT_EXAM_CHANGE_FEE
        assert db.query(ServiceConfig).count() == 1
