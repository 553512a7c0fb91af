import logging
from typing import List, Optional, Tuple
from datetime import datetime, date, time, timedelta
from sqlalchemy import func
from sqlalchemy.orm import Session

from src.models import Transaction, Applicant, ActivityLog, Ticket, Location
from src.accounting.schemas import (
    TransactionCreate, TransactionType, AccountingSummary, DashboardData, DashboardOverview,
    ExamDay, ScheduledExam, TransportDay, TrendPoint, LocationCount, RecentActivity
)
from src.catalog.service import CatalogService
from src.ledger import LedgerReconciler
from src.pricing.schemas import ApplicantStatus, TicketStatus, ZERO, money

logger = logging.getLogger(__name__)

DASHBOARD_EXAM_LIMIT = 20
DASHBOARD_TREND_DAYS = 7
DASHBOARD_ACTIVITY_LIMIT = 5

class AccountingService:
    """Cash book: payments, expenses, withdrawals and period summaries"""

    def __init__(self, db: Session, actor_id: Optional[int] = None):
        self.db = db
        self.actor_id = actor_id

    def record_transaction(self, data: TransactionCreate) -> Transaction:
        """Append a cash book entry; applicant payments also move the applicant balance"""

        if data.type == TransactionType.PAYMENT:
            if data.applicant_id is None:
                raise ValueError("Payments must be linked to an applicant")
            result = LedgerReconciler(self.db, actor_id=self.actor_id).record_payment(
                data.applicant_id, data.amount, notes=data.notes or data.description, location_id=data.location_id
            )
            return self.db.query(Transaction).filter(Transaction.id == result.transaction_ids[0]).first()

        if data.location_id is not None:
            CatalogService(self.db).get_location(data.location_id)

        amount = money(data.amount)
        entry = Transaction(
            type=data.type.value,
            amount=amount,
            category=data.category,
            description=data.description,
            notes=data.notes,
            applicant_id=data.applicant_id,
            location_id=data.location_id,
            created_by=self.actor_id
        )
        try:
            self.db.add(entry)
            self.db.flush()
            self.db.add(ActivityLog(
                applicant_id=data.applicant_id,
                staff_user_id=self.actor_id,
                action=f"TRANSACTION_{data.type.value}",
                details=f"{data.type.value}: {amount} - {data.description or ''}".strip(" -"),
                data={"transaction_id": entry.id}
            ))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(entry)
        logger.info("Recorded %s of %s", entry.type, entry.amount)
        return entry

    def _transactions_query(self, date_from: Optional[datetime], date_to: Optional[datetime],
                            location_id: Optional[int], type: Optional[TransactionType] = None):
        query = self.db.query(Transaction)
        if date_from:
            query = query.filter(Transaction.date >= date_from)
        if date_to:
            query = query.filter(Transaction.date <= date_to)
        if location_id is not None:
            query = query.filter(Transaction.location_id == location_id)
        if type:
            query = query.filter(Transaction.type == TransactionType(type).value)
        return query

    def list_transactions(
        self,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        location_id: Optional[int] = None,
        type: Optional[TransactionType] = None,
        skip: int = 0,
        limit: int = 100
    ) -> Tuple[List[Transaction], int]:
        query = self._transactions_query(date_from, date_to, location_id, type)
        total = query.count()
        transactions = query.order_by(Transaction.date.desc(), Transaction.id.desc()).offset(skip).limit(limit).all()
        return transactions, total

    def summary(
        self,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        location_id: Optional[int] = None
    ) -> AccountingSummary:
        """Income, expenses and withdrawals for the period plus what applicants still owe"""

        transactions = self._transactions_query(date_from, date_to, location_id).all()

        income = ZERO
        expenses = ZERO
        withdrawals = ZERO
        for t in transactions:
            # Refund withdrawals are stored as negative amounts
            amount = abs(money(t.amount))
            if t.type == TransactionType.PAYMENT.value:
                income += amount
            elif t.type == TransactionType.EXPENSE.value:
                expenses += amount
            elif t.type == TransactionType.WITHDRAWAL.value:
                withdrawals += amount

        outstanding_query = self.db.query(func.coalesce(func.sum(Applicant.remaining_balance), 0)).filter(
            Applicant.remaining_balance > 0
        )
        if location_id is not None:
            outstanding_query = outstanding_query.filter(Applicant.location_id == location_id)
        outstanding = money(outstanding_query.scalar() or 0)

        return AccountingSummary(
            date_from=date_from,
            date_to=date_to,
            location_id=location_id,
            income=income,
            expenses=expenses,
            withdrawals=withdrawals,
            net=income - expenses - withdrawals,
            outstanding=outstanding,
            transaction_count=len(transactions)
        )

    def dashboard(self, exam_date: Optional[date] = None, transport_date: Optional[date] = None,
                  now: Optional[datetime] = None) -> DashboardData:
        """Overview counters, exam and transport days, registration trend and recent activity"""

        now = now or datetime.now()
        today = now.date()
        exam_date = exam_date or today + timedelta(days=1)
        transport_date = transport_date or today

        # Overview
        total_applicants = self.db.query(func.count(Applicant.id)).scalar() or 0
        revenue = self.db.query(func.coalesce(func.sum(Applicant.amount_paid), 0)).scalar()
        status_counts = dict(
            self.db.query(Applicant.status, func.count(Applicant.id)).group_by(Applicant.status).all()
        )
        passed = status_counts.get(ApplicantStatus.PASSED.value, 0)
        failed = status_counts.get(ApplicantStatus.FAILED.value, 0)

        # Exams on the selected day
        exams_query = self.db.query(Applicant).filter(Applicant.exam_date == exam_date)
        exams = exams_query.order_by(Applicant.exam_time, Applicant.id).limit(DASHBOARD_EXAM_LIMIT).all()

        # Trips departing on the selected day
        start = datetime.combine(transport_date, time.min)
        end = datetime.combine(transport_date, time.max)
        trips = self.db.query(Ticket).filter(
            Ticket.departure_at >= start,
            Ticket.departure_at <= end,
            Ticket.status != TicketStatus.CANCELLED.value
        ).all()
        routes = {}
        for ticket in trips:
            name = f"{ticket.from_location.name} -> {ticket.to_location.name}"
            routes[name] = routes.get(name, 0) + 1

        # Registrations over the last week
        week_start = datetime.combine(today - timedelta(days=DASHBOARD_TREND_DAYS - 1), time.min)
        created = [
            c.date() for (c,) in self.db.query(Applicant.created_at).filter(Applicant.created_at >= week_start)
            if c is not None
        ]
        trend = []
        for offset in range(DASHBOARD_TREND_DAYS - 1, -1, -1):
            day = today - timedelta(days=offset)
            trend.append(TrendPoint(day=day.strftime("%m/%d"), applicants=created.count(day)))

        # Applicants per exam location
        location_rows = self.db.query(Location.name, func.count(Applicant.id)).join(
            Applicant, Applicant.location_id == Location.id
        ).group_by(Location.id, Location.name).order_by(Location.name).all()

        recent = self.db.query(ActivityLog).order_by(
            ActivityLog.timestamp.desc(), ActivityLog.id.desc()
        ).limit(DASHBOARD_ACTIVITY_LIMIT).all()

        return DashboardData(
            overview=DashboardOverview(
                total_applicants=total_applicants,
                total_revenue=money(revenue or 0),
                passed_count=passed,
                failed_count=failed,
                others_count=total_applicants - passed - failed
            ),
            exam_schedule=ExamDay(
                date=exam_date,
                count=exams_query.count(),
                exams=[ScheduledExam.model_validate(a) for a in exams]
            ),
            transport=TransportDay(
                date=transport_date,
                total_passengers=len(trips),
                active_buses=len({t.bus_number for t in trips if t.bus_number}),
                routes=routes
            ),
            trend=trend,
            locations=[LocationCount(name=name, value=count) for name, count in location_rows if count],
            recent_activity=[
                RecentActivity(
                    id=log.id,
                    action=log.action,
                    details=log.details,
                    applicant_name=log.applicant.full_name if log.applicant else None,
                    staff_name=log.staff_user.full_name if log.staff_user else None,
                    timestamp=log.timestamp
                )
                for log in recent
            ],
            last_updated=now
        )
