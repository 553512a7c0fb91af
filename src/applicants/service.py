import logging
from typing import List, Optional, Tuple
from datetime import datetime, timedelta
from sqlalchemy import or_, exists
from sqlalchemy.orm import Session

from src.config import settings
from src.models import Applicant, Transaction, ActivityLog, Ticket
from src.applicants.schemas import RegistrationRequest, ExamScheduleRequest, RetakeRequest, FollowUpStats
from src.exceptions import ConcurrentModification
from src.ledger import LedgerRepository, LedgerReconciler, CommitResult
from src.pricing import PricingEngine, RegistrationQuote, ExamScheduleQuote, RetakeQuote
from src.pricing.schemas import ApplicantStatus, TransportSelection, TicketStatus

logger = logging.getLogger(__name__)

FOLLOW_UP_DAYS = 3

class ApplicantService:
    """Registration, payments and exam lifecycle of applicants"""

    def __init__(self, db: Session, actor_id: Optional[int] = None, is_admin: bool = False):
        self.db = db
        self.actor_id = actor_id
        self.is_admin = is_admin
        self.repository = LedgerRepository(db)
        self.reconciler = LedgerReconciler(db, actor_id=actor_id)

    def _engine(self) -> PricingEngine:
        return PricingEngine(self.repository.pricing_config(), currency=settings.CURRENCY)

    @staticmethod
    def _check_version(expected: Optional[int], quote_version: Optional[int]):
        if expected is not None and expected != quote_version:
            raise ConcurrentModification()

    # Registration
    def quote_registration(self, request: RegistrationRequest) -> RegistrationQuote:
        """Price a registration without persisting anything"""
        route = None
        if request.transport_selection != TransportSelection.NONE:
            route = self.repository.find_route(request.transport_from_id, request.location_id)

        promo_voucher = self.repository.find_public_voucher(request.promo_code) if request.promo_code else None

        return self._engine().quote_registration(
            transport=request.transport_selection,
            route=route,
            now=datetime.now(),
            promo_code=request.promo_code,
            promo_voucher=promo_voucher,
            manual_discount=request.discount,
            amount_paid=request.amount_paid
        )

    def register(self, request: RegistrationRequest) -> CommitResult:
        quote = self.quote_registration(request)
        return self.reconciler.commit(quote, intent=request)

    # Payments
    def record_payment(self, applicant_id: int, amount, notes: Optional[str] = None,
                       location_id: Optional[int] = None) -> CommitResult:
        return self.reconciler.record_payment(applicant_id, amount, notes=notes, location_id=location_id)

    # Exam scheduling
    def quote_exam_schedule(self, applicant_id: int) -> ExamScheduleQuote:
        applicant = self.repository.applicant_snapshot(applicant_id)
        reschedules = self.repository.count_reschedules(applicant_id)
        return self._engine().quote_exam_schedule(applicant, reschedules, datetime.now())

    def schedule_exam(self, applicant_id: int, request: ExamScheduleRequest) -> CommitResult:
        quote = self.quote_exam_schedule(applicant_id)
        self._check_version(request.applicant_version, quote.applicant_version)
        return self.reconciler.commit(quote, intent=request)

    # Retake
    def quote_retake(self, applicant_id: int, voucher_id: Optional[int] = None) -> RetakeQuote:
        applicant = self.repository.applicant_snapshot(applicant_id)
        vouchers = self.repository.applicant_vouchers(applicant_id)
        return self._engine().quote_retake(applicant, vouchers, datetime.now(), voucher_id=voucher_id)

    def schedule_retake(self, applicant_id: int, request: RetakeRequest) -> CommitResult:
        quote = self.quote_retake(applicant_id, voucher_id=request.voucher_id)
        self._check_version(request.applicant_version, quote.applicant_version)
        return self.reconciler.commit(quote, intent=request)

    # Status
    def change_status(self, applicant_id: int, new_status: ApplicantStatus) -> Applicant:
        applicant = self.reconciler.change_status(applicant_id, new_status, is_admin=self.is_admin)
        logger.info("Applicant %s moved to %s", applicant.applicant_code, applicant.status)
        return applicant

    # Queries
    def get_applicant(self, applicant_id: int) -> Applicant:
        return self.repository.get_applicant(applicant_id)

    def list_applicants(
        self,
        skip: int = 0,
        limit: int = 50,
        status: Optional[ApplicantStatus] = None,
        location_id: Optional[int] = None,
        search: Optional[str] = None
    ) -> Tuple[List[Applicant], int]:
        """List applicants with filters, newest first"""
        query = self.db.query(Applicant)

        if status:
            query = query.filter(Applicant.status == ApplicantStatus(status).value)
        if location_id is not None:
            query = query.filter(Applicant.location_id == location_id)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                Applicant.full_name.ilike(pattern),
                Applicant.phone.ilike(pattern),
                Applicant.whatsapp_number.ilike(pattern),
                Applicant.applicant_code.ilike(pattern),
                Applicant.passport_number.ilike(pattern)
            ))

        total = query.count()
        applicants = query.order_by(Applicant.created_at.desc(), Applicant.id.desc()).offset(skip).limit(limit).all()
        return applicants, total

    def follow_up_stats(self, now: Optional[datetime] = None) -> FollowUpStats:
        """Applicants owing money after the grace period and exams close by without a ticket"""
        now = now or datetime.now()
        window = timedelta(days=FOLLOW_UP_DAYS)

        pending_payment = self.db.query(Applicant).filter(
            Applicant.created_at < now - window,
            Applicant.remaining_balance > 0
        ).count()

        has_ticket = exists().where(
            Ticket.applicant_id == Applicant.id,
            Ticket.status.in_([TicketStatus.ISSUED.value, TicketStatus.USED.value])
        )
        missing_ticket = self.db.query(Applicant).filter(
            Applicant.exam_date >= now.date(),
            Applicant.exam_date <= (now + window).date(),
            ~has_ticket
        ).count()

        return FollowUpStats(pending_payment=pending_payment, missing_ticket=missing_ticket, as_of=now)

    def list_transactions(self, applicant_id: int) -> List[Transaction]:
        self.repository.get_applicant(applicant_id)
        return self.db.query(Transaction).filter(
            Transaction.applicant_id == applicant_id
        ).order_by(Transaction.date.desc(), Transaction.id.desc()).all()

    def activity_log(self, applicant_id: int) -> List[ActivityLog]:
        self.repository.get_applicant(applicant_id)
        return self.db.query(ActivityLog).filter(
            ActivityLog.applicant_id == applicant_id
        ).order_by(ActivityLog.timestamp.desc(), ActivityLog.id.desc()).all()
