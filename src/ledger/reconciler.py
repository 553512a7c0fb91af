import logging
import secrets
import string
from typing import Callable, Dict, List, Optional
from datetime import datetime
from decimal import Decimal

from sqlalchemy import update, case
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from src.models import Applicant, Voucher, Transaction, Ticket, ActivityLog
from src.exceptions import (
    ApplicantNotFound, TicketNotFound, VoucherNotFound, VoucherNotApplicable, VoucherAlreadyUsed,
    BalanceInvariantViolation, ConcurrentVoucherRedemption, ConcurrentModification,
    TicketNotActive, InvalidAmount, LedgerError
)
from src.ledger.schemas import ApplicantProfile, ExamSchedule, TicketDetails, CommitResult
from src.ledger.state_machine import assert_applicant_transition, assert_ticket_transition
from src.pricing.schemas import (
    Quote, QuoteKind, RegistrationQuote, ExamScheduleQuote, RetakeQuote, TicketIssuanceQuote,
    TicketChangeQuote, NoShowQuote, ApplicantStatus, TicketStatus, TransportSelection,
    VoucherKind, VoucherCategory, VoucherPurpose, ZERO, money
)

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits

class LedgerReconciler:
    """
    Applies quotes to persisted state, all-or-nothing.

    Each commit runs in a single database transaction: vouchers are consumed
    with a guarded UPDATE, the applicant row is locked and version-checked
    against the quote, balances move by the quoted delta and the
    ``remaining == total - paid`` invariant is verified before anything is
    written. Any failure rolls the whole operation back.
    """

    def __init__(self, db: Session, actor_id: Optional[int] = None):
        self.db = db
        self.actor_id = actor_id
        self._handlers: Dict[QuoteKind, Callable] = {
            QuoteKind.REGISTRATION: self._apply_registration,
            QuoteKind.EXAM_SCHEDULE: self._apply_exam_schedule,
            QuoteKind.EXAM_RETAKE: self._apply_retake,
            QuoteKind.TICKET_ISSUANCE: self._apply_ticket_issuance,
            QuoteKind.TICKET_MODIFICATION: self._apply_ticket_modification,
            QuoteKind.TICKET_CANCELLATION: self._apply_ticket_cancellation,
            QuoteKind.TICKET_NO_SHOW: self._apply_no_show,
        }

    def commit(
        self,
        quote: Quote,
        intent=None,
        applicant_id: Optional[int] = None,
        consumed_voucher_ids: Optional[List[int]] = None
    ) -> CommitResult:
        """Apply a quote atomically"""

        applicant_id = applicant_id if applicant_id is not None else quote.applicant_id
        if consumed_voucher_ids is None:
            consumed_voucher_ids = list(quote.consumed_voucher_ids)
        elif sorted(consumed_voucher_ids) != sorted(quote.consumed_voucher_ids):
            raise VoucherNotApplicable("Vouchers differ from the quoted ones")

        now = datetime.now()
        try:
            self._consume_vouchers(consumed_voucher_ids, now)

            applicant = None
            if quote.kind != QuoteKind.REGISTRATION:
                applicant = self._lock_applicant(applicant_id, quote.applicant_version)
                applicant.updated_at = now

            result = self._handlers[quote.kind](quote, intent, applicant, now)
            self._check_balance(result["applicant"])
            self.db.flush()
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            logger.warning("Commit of %s rejected: applicant %s changed concurrently", quote.kind.value, applicant_id)
            raise ConcurrentModification()
        except LedgerError as e:
            self.db.rollback()
            logger.warning("Commit of %s rejected: %s", quote.kind.value, e.code)
            raise
        except Exception:
            self.db.rollback()
            raise

        applicant = result["applicant"]
        logger.info(
            "Committed %s for applicant %s: balance delta %s, remaining %s",
            quote.kind.value, applicant.applicant_code, quote.balance_delta, applicant.remaining_balance
        )
        return self._result(quote.kind.value, applicant, quote.balance_delta, consumed_voucher_ids, result)

    # Guarded state access
    def _consume_vouchers(self, voucher_ids: List[int], now: datetime):
        """Increment usage only while the voucher is still redeemable"""
        for voucher_id in voucher_ids:
            stmt = (
                update(Voucher)
                .where(
                    Voucher.id == voucher_id,
                    Voucher.is_used == False,  # noqa: E712
                    Voucher.usage_count < Voucher.max_uses
                )
                .values(
                    usage_count=Voucher.usage_count + 1,
                    is_used=case((Voucher.usage_count + 1 >= Voucher.max_uses, True), else_=False),
                    used_at=now,
                    version=Voucher.version + 1
                )
                .execution_options(synchronize_session=False)
            )
            if self.db.execute(stmt).rowcount != 1:
                raise ConcurrentVoucherRedemption(f"Voucher {voucher_id} is no longer redeemable")

    def _lock_applicant(self, applicant_id: Optional[int], expected_version: Optional[int]) -> Applicant:
        applicant = (
            self.db.query(Applicant)
            .filter(Applicant.id == applicant_id)
            .populate_existing()
            .with_for_update()
            .first()
        )
        if applicant is None:
            raise ApplicantNotFound()
        if expected_version is not None and applicant.version != expected_version:
            raise ConcurrentModification()
        return applicant

    def _lock_ticket(self, ticket_id: int, applicant: Applicant) -> Ticket:
        ticket = (
            self.db.query(Ticket)
            .filter(Ticket.id == ticket_id)
            .populate_existing()
            .with_for_update()
            .first()
        )
        if ticket is None or ticket.applicant_id != applicant.id:
            raise TicketNotFound()
        return ticket

    @staticmethod
    def _apply_delta(applicant: Applicant, delta: Decimal):
        if delta:
            applicant.total_amount = money(applicant.total_amount) + delta
            applicant.remaining_balance = money(applicant.remaining_balance) + delta

    @staticmethod
    def _check_balance(applicant: Applicant):
        expected = money(applicant.total_amount) - money(applicant.amount_paid)
        if money(applicant.remaining_balance) != expected:
            raise BalanceInvariantViolation(
                f"Remaining balance {applicant.remaining_balance} != {applicant.total_amount} - {applicant.amount_paid}"
            )

    def _audit(self, action: str, details: str, applicant_id: Optional[int], data: Optional[dict] = None):
        self.db.add(ActivityLog(
            applicant_id=applicant_id,
            staff_user_id=self.actor_id,
            action=action,
            details=details,
            data=data or {}
        ))

    def _generate_applicant_code(self) -> str:
        while True:
            code = "".join(secrets.choice(CODE_ALPHABET) for _ in range(6))
            if not self.db.query(Applicant.id).filter(Applicant.applicant_code == code).first():
                return code

    def _generate_ticket_number(self) -> str:
        while True:
            number = f"TKT-{secrets.randbelow(900000) + 100000}"
            if not self.db.query(Ticket.id).filter(Ticket.ticket_number == number).first():
                return number

    def _compensation_voucher(self, applicant: Applicant, ticket: Ticket, value: Decimal, reason: str) -> Optional[Voucher]:
        if value <= ZERO:
            return None
        voucher = Voucher(
            kind=VoucherKind.CREDIT.value,
            category=VoucherCategory.COMPENSATION.value,
            purpose=VoucherPurpose.TRANSPORT.value,
            balance=value,
            max_uses=1,
            usage_count=0,
            is_used=False,
            applicant_id=applicant.id,
            source_ticket_id=ticket.id,
            notes=f"{reason} - ticket {ticket.ticket_number}"
        )
        self.db.add(voucher)
        self.db.flush()
        return voucher

    # Handlers
    def _apply_registration(self, quote: RegistrationQuote, profile: ApplicantProfile, _, now: datetime) -> dict:
        notes = profile.notes
        if quote.promo_code:
            promo_note = f"Promo code {quote.promo_code} applied: -{quote.discount}"
            notes = f"{notes} | {promo_note}" if notes else promo_note

        applicant = Applicant(
            applicant_code=self._generate_applicant_code(),
            full_name=profile.full_name,
            first_name=profile.first_name,
            last_name=profile.last_name,
            phone=profile.phone,
            whatsapp_number=profile.whatsapp_number or profile.phone,
            passport_number=profile.passport_number,
            national_id=profile.national_id,
            profession=profile.profession,
            notes=notes,
            location_id=profile.location_id,
            transport_from_id=profile.transport_from_id,
            transport_selection=profile.transport_selection.value,
            travel_date=profile.travel_date,
            status=ApplicantStatus.NEW_REGISTRATION.value,
            total_amount=quote.total,
            discount=quote.discount,
            amount_paid=quote.amount_paid,
            remaining_balance=quote.remaining
        )
        self.db.add(applicant)
        self.db.flush()

        transaction_ids = []
        if quote.amount_paid > ZERO:
            payment = Transaction(
                type="PAYMENT",
                amount=quote.amount_paid,
                category="REGISTRATION_DEPOSIT",
                description="Initial deposit at registration",
                applicant_id=applicant.id,
                location_id=profile.location_id,
                created_by=self.actor_id
            )
            self.db.add(payment)
            self.db.flush()
            transaction_ids.append(payment.id)

        self._audit(
            "NEW_REGISTRATION",
            f"Registered {applicant.full_name} ({applicant.applicant_code}), total {quote.total}",
            applicant.id,
            {"discount": str(quote.discount), "discount_source": quote.discount_source}
        )
        return {"applicant": applicant, "transaction_ids": transaction_ids}

    def _write_exam(self, applicant: Applicant, schedule: ExamSchedule):
        applicant.exam_date = schedule.exam_date
        applicant.exam_time = schedule.exam_time
        if schedule.exam_location:
            applicant.exam_location = schedule.exam_location
        applicant.status = ApplicantStatus.EXAM_SCHEDULED.value

    def _apply_exam_schedule(self, quote: ExamScheduleQuote, schedule: ExamSchedule, applicant: Applicant, now: datetime) -> dict:
        assert_applicant_transition(applicant.status, ApplicantStatus.EXAM_SCHEDULED, via_scheduling=True)
        self._apply_delta(applicant, quote.fee)
        self._write_exam(applicant, schedule)
        action = "EXAM_RESCHEDULED" if quote.is_reschedule else "EXAM_SCHEDULED"
        self._audit(action, f"Exam scheduled for {schedule.exam_date}, fee {quote.fee}", applicant.id)
        return {"applicant": applicant}

    def _apply_retake(self, quote: RetakeQuote, schedule: ExamSchedule, applicant: Applicant, now: datetime) -> dict:
        if applicant.status not in (ApplicantStatus.FAILED.value, ApplicantStatus.ABSENT.value):
            raise ConcurrentModification("Applicant status changed since the retake was quoted")
        self._apply_delta(applicant, quote.fee)
        self._write_exam(applicant, schedule)
        self._audit(
            "EXAM_RETAKE_SCHEDULED",
            f"Retake scheduled for {schedule.exam_date}, fee {quote.fee}",
            applicant.id,
            {"voucher_id": quote.voucher_id, "discount_percent": str(quote.discount_percent)}
        )
        return {"applicant": applicant}

    def _apply_ticket_issuance(self, quote: TicketIssuanceQuote, details: TicketDetails, applicant: Applicant, now: datetime) -> dict:
        active = self.db.query(Ticket.id).filter(
            Ticket.applicant_id == applicant.id,
            Ticket.status == TicketStatus.ISSUED.value
        ).first()
        if active:
            raise TicketNotActive("Applicant already holds an issued ticket")

        selection = details.selection
        ticket = Ticket(
            ticket_number=self._generate_ticket_number(),
            applicant_id=applicant.id,
            from_location_id=selection.from_location_id,
            to_location_id=selection.to_location_id,
            trip_type=selection.trip_type.value,
            departure_at=selection.departure_at,
            bus_number=details.bus_number,
            seat_number=details.seat_number,
            transport_company=details.transport_company,
            status=TicketStatus.ISSUED.value,
            booked_fare=quote.fare
        )
        self.db.add(ticket)
        self.db.flush()

        self._apply_delta(applicant, quote.balance_delta)
        if applicant.transport_selection == TransportSelection.NONE.value:
            applicant.transport_selection = selection.trip_type.value

        self._audit(
            "TICKET_ISSUED",
            f"Issued ticket {ticket.ticket_number}: fare {quote.fare}, credit {quote.voucher_credit}, payable {quote.payable}",
            applicant.id,
            {"ticket_id": ticket.id, "prepaid": quote.prepaid, "vouchers": quote.consumed_voucher_ids}
        )
        return {"applicant": applicant, "ticket": ticket}

    def _apply_ticket_modification(self, quote: TicketChangeQuote, details: TicketDetails, applicant: Applicant, now: datetime) -> dict:
        ticket = self._lock_ticket(quote.ticket_id, applicant)
        if ticket.status != TicketStatus.ISSUED.value:
            raise TicketNotActive(f"Ticket is {ticket.status}")

        selection = details.selection
        ticket.from_location_id = selection.from_location_id
        ticket.to_location_id = selection.to_location_id
        ticket.trip_type = selection.trip_type.value
        ticket.departure_at = selection.departure_at
        ticket.booked_fare = quote.new_fare
        if details.bus_number:
            ticket.bus_number = details.bus_number
        if details.seat_number:
            ticket.seat_number = details.seat_number
        if details.transport_company:
            ticket.transport_company = details.transport_company

        self._apply_delta(applicant, quote.balance_delta)
        self._audit(
            "TICKET_MODIFIED",
            f"Fee {quote.fee} + difference {quote.price_difference} = {quote.total}. Policy: {quote.policy.policy_name}",
            applicant.id,
            {"ticket_id": ticket.id, "hours_until_departure": quote.hours_until_departure}
        )
        return {"applicant": applicant, "ticket": ticket}

    def _apply_ticket_cancellation(self, quote: TicketChangeQuote, _, applicant: Applicant, now: datetime) -> dict:
        ticket = self._lock_ticket(quote.ticket_id, applicant)
        assert_ticket_transition(ticket.status, TicketStatus.CANCELLED)
        ticket.status = TicketStatus.CANCELLED.value
        ticket.cancelled_at = now

        voucher = self._compensation_voucher(applicant, ticket, quote.compensation_value, "Ticket cancellation")
        self._audit(
            "TICKET_CANCELLED",
            f"Cancelled with fee {quote.fee}. Compensation voucher: {quote.compensation_value}. Policy: {quote.policy.policy_name}",
            applicant.id,
            {"ticket_id": ticket.id, "voucher_id": voucher.id if voucher else None}
        )
        return {"applicant": applicant, "ticket": ticket, "voucher": voucher}

    def _apply_no_show(self, quote: NoShowQuote, _, applicant: Applicant, now: datetime) -> dict:
        ticket = self._lock_ticket(quote.ticket_id, applicant)
        assert_ticket_transition(ticket.status, TicketStatus.NO_SHOW)
        ticket.status = TicketStatus.NO_SHOW.value

        self._apply_delta(applicant, quote.fine)
        voucher = self._compensation_voucher(applicant, ticket, quote.compensation_value, "Ticket no-show")
        self._audit(
            "TICKET_NO_SHOW",
            f"Marked as no-show. Fine {quote.fine}. Compensation voucher: {quote.compensation_value}. Policy: {quote.policy.policy_name}",
            applicant.id,
            {"ticket_id": ticket.id, "voucher_id": voucher.id if voucher else None}
        )
        return {"applicant": applicant, "ticket": ticket, "voucher": voucher}

    # Non-quoted ledger operations
    def record_payment(
        self,
        applicant_id: int,
        amount: Decimal,
        notes: Optional[str] = None,
        location_id: Optional[int] = None
    ) -> CommitResult:
        """Append a payment and move it from the remaining balance to the paid amount"""

        amount = money(amount)
        if amount <= ZERO:
            raise InvalidAmount()

        try:
            applicant = self._lock_applicant(applicant_id, None)
            payment = Transaction(
                type="PAYMENT",
                amount=amount,
                category="PAYMENT",
                description=notes or "Customer payment",
                notes=notes,
                applicant_id=applicant.id,
                location_id=location_id or applicant.location_id,
                created_by=self.actor_id
            )
            self.db.add(payment)
            applicant.amount_paid = money(applicant.amount_paid) + amount
            applicant.remaining_balance = money(applicant.remaining_balance) - amount
            self._check_balance(applicant)
            self.db.flush()
            self._audit("PAYMENT_ADDED", f"Payment of {amount} recorded", applicant.id, {"transaction_id": payment.id})
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            raise ConcurrentModification()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Recorded payment of %s for applicant %s", amount, applicant.applicant_code)
        return self._result("PAYMENT", applicant, ZERO, [], {"transaction_ids": [payment.id]})

    def refund_voucher_cash(self, voucher_id: int, notes: Optional[str] = None) -> Transaction:
        """Pay out an unused compensation credit in cash"""

        voucher = self.db.query(Voucher).filter(Voucher.id == voucher_id).first()
        if voucher is None:
            raise VoucherNotFound()
        if voucher.category != VoucherCategory.COMPENSATION.value or voucher.kind != VoucherKind.CREDIT.value:
            raise VoucherNotApplicable("Only compensation credit can be refunded in cash")
        if voucher.is_used:
            raise VoucherAlreadyUsed()
        now = datetime.now()
        if voucher.expires_at is not None and voucher.expires_at < now:
            raise VoucherNotApplicable("Voucher has expired")
        amount = money(voucher.balance or ZERO)
        if amount <= ZERO:
            raise InvalidAmount("Voucher has no refundable balance")
        applicant_id = voucher.applicant_id

        try:
            self._consume_vouchers([voucher_id], now)
            withdrawal = Transaction(
                type="WITHDRAWAL",
                amount=-amount,
                category="VOUCHER_REFUND",
                description="Cash refund for voucher",
                notes=f"Refunded voucher #{voucher_id}. {notes or ''}".strip(),
                applicant_id=applicant_id,
                voucher_id=voucher_id,
                created_by=self.actor_id
            )
            self.db.add(withdrawal)
            self.db.flush()
            self._audit("VOUCHER_REFUNDED", f"Voucher #{voucher_id} refunded in cash: {amount}", applicant_id,
                        {"transaction_id": withdrawal.id})
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            raise ConcurrentModification()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(withdrawal)
        logger.info("Refunded voucher %s in cash: %s", voucher_id, amount)
        return withdrawal

    def change_status(self, applicant_id: int, new_status: ApplicantStatus, is_admin: bool = False) -> Applicant:
        """Direct lifecycle change (exam attendance, results, admin undo)"""

        try:
            applicant = self._lock_applicant(applicant_id, None)
            previous = applicant.status
            assert_applicant_transition(previous, new_status, is_admin=is_admin)
            applicant.status = ApplicantStatus(new_status).value
            self._audit(
                f"STATUS_CHANGED_TO_{applicant.status}",
                f"Status updated from {previous} to {applicant.status}",
                applicant.id
            )
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            raise ConcurrentModification()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(applicant)
        return applicant

    def mark_ticket_used(self, ticket_id: int) -> CommitResult:
        """Close a ticket whose trip was completed; no money moves"""
        try:
            ticket = (
                self.db.query(Ticket).filter(Ticket.id == ticket_id)
                .populate_existing().with_for_update().first()
            )
            if ticket is None:
                raise TicketNotFound()
            assert_ticket_transition(ticket.status, TicketStatus.USED)
            ticket.status = TicketStatus.USED.value
            self._audit("TICKET_USED", f"Trip completed on ticket {ticket.ticket_number}", ticket.applicant_id,
                        {"ticket_id": ticket.id})
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(ticket)
        logger.info("Ticket %s marked as used", ticket.ticket_number)
        return self._result("TICKET_USED", ticket.applicant, ZERO, [], {"ticket": ticket})

    def _result(self, kind: str, applicant: Applicant, delta: Decimal, consumed: List[int], extra: dict) -> CommitResult:
        self.db.refresh(applicant)
        ticket = extra.get("ticket")
        voucher = extra.get("voucher")
        return CommitResult(
            kind=kind,
            applicant_id=applicant.id,
            applicant_code=applicant.applicant_code,
            status=applicant.status,
            total_amount=applicant.total_amount,
            amount_paid=applicant.amount_paid,
            discount=applicant.discount,
            remaining_balance=applicant.remaining_balance,
            balance_delta=delta,
            ticket_id=ticket.id if ticket else None,
            ticket_number=ticket.ticket_number if ticket else None,
            compensation_voucher_id=voucher.id if voucher else None,
            transaction_ids=extra.get("transaction_ids", []),
            consumed_voucher_ids=consumed
        )
