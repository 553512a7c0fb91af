import logging
from typing import List, Optional
from datetime import datetime, date, time
from sqlalchemy import or_
from sqlalchemy.orm import Session

from src.config import settings
from src.models import Ticket, Applicant
from src.tickets.schemas import (
    TicketIssueRequest, TicketChangeRequest, ManifestEntry, TicketSearchResult, Ticket as TicketOut
)
from src.exceptions import InvalidPromoCode, VoucherNotFound, ConcurrentModification, TicketNotFound
from src.ledger import LedgerRepository, LedgerReconciler, CommitResult, TicketDetails
from src.pricing import PricingEngine, TicketIssuanceQuote, TicketChangeQuote, NoShowQuote
from src.pricing.schemas import RouteSelection, TicketStatus, PolicyCategory

logger = logging.getLogger(__name__)

CHANGE_POLICY_CATEGORIES = (PolicyCategory.MODIFICATION, PolicyCategory.CANCELLATION, PolicyCategory.NO_SHOW)

class TicketService:
    """Bus ticket issuance, changes, usage and manifests"""

    def __init__(self, db: Session, actor_id: Optional[int] = None):
        self.db = db
        self.actor_id = actor_id
        self.repository = LedgerRepository(db)
        self.reconciler = LedgerReconciler(db, actor_id=actor_id)

    def _engine(self) -> PricingEngine:
        return PricingEngine(self.repository.pricing_config(), currency=settings.CURRENCY)

    @staticmethod
    def _check_version(expected: Optional[int], quote_version: Optional[int]):
        if expected is not None and expected != quote_version:
            raise ConcurrentModification()

    # Issuance
    def _ticket_vouchers(self, voucher_ids: List[int], promo_code: Optional[str]):
        vouchers = self.repository.vouchers_by_ids(voucher_ids)
        if len(vouchers) != len(set(voucher_ids)):
            raise VoucherNotFound()
        if promo_code:
            promo = self.repository.find_public_voucher(promo_code)
            if promo is None:
                raise InvalidPromoCode()
            if promo.id not in voucher_ids:
                vouchers.append(promo)
        return vouchers

    def quote_issuance(self, applicant_id: int, selection: RouteSelection,
                       voucher_ids: Optional[List[int]] = None,
                       promo_code: Optional[str] = None) -> TicketIssuanceQuote:
        applicant = self.repository.applicant_snapshot(applicant_id)
        route = self.repository.find_route(selection.from_location_id, selection.to_location_id)
        vouchers = self._ticket_vouchers(voucher_ids or [], promo_code)

        return self._engine().quote_ticket_issuance(
            applicant,
            selection,
            route,
            vouchers,
            datetime.now(),
            has_active_ticket=self.repository.has_active_ticket(applicant_id),
            has_previous_tickets=self.repository.has_previous_tickets(applicant_id)
        )

    def issue_ticket(self, applicant_id: int, request: TicketIssueRequest) -> CommitResult:
        quote = self.quote_issuance(applicant_id, request.selection, request.voucher_ids, request.promo_code)
        self._check_version(request.applicant_version, quote.applicant_version)
        return self.reconciler.commit(quote, intent=request)

    # Modification / cancellation
    def quote_change(self, ticket_id: int, selection: Optional[RouteSelection] = None) -> TicketChangeQuote:
        """Modification when a new selection is given, cancellation otherwise"""
        ticket = self.repository.ticket_snapshot(ticket_id)
        applicant = self.repository.applicant_snapshot(ticket.applicant_id)
        original_route = self.repository.find_route(
            ticket.from_location_id, ticket.to_location_id, include_inactive=True
        )
        policies = self.repository.active_policies(CHANGE_POLICY_CATEGORIES)
        engine = self._engine()
        now = datetime.now()

        if selection is None:
            return engine.quote_ticket_cancellation(applicant, ticket, original_route, policies, now)

        new_route = self.repository.find_route(selection.from_location_id, selection.to_location_id)
        return engine.quote_ticket_modification(
            applicant, ticket, original_route, selection, new_route, policies, now
        )

    def change_ticket(self, ticket_id: int, request: TicketChangeRequest) -> CommitResult:
        quote = self.quote_change(ticket_id, request.selection)
        self._check_version(request.applicant_version, quote.applicant_version)

        intent = None
        if request.selection is not None:
            intent = TicketDetails(
                selection=request.selection,
                bus_number=request.bus_number,
                seat_number=request.seat_number,
                transport_company=request.transport_company
            )
        return self.reconciler.commit(quote, intent=intent)

    # Usage
    def quote_no_show(self, ticket_id: int) -> NoShowQuote:
        ticket = self.repository.ticket_snapshot(ticket_id)
        applicant = self.repository.applicant_snapshot(ticket.applicant_id)
        route = self.repository.find_route(ticket.from_location_id, ticket.to_location_id, include_inactive=True)
        policies = self.repository.active_policies([PolicyCategory.NO_SHOW])
        return self._engine().quote_no_show(applicant, ticket, route, policies, datetime.now())

    def mark_usage(self, ticket_id: int, status: TicketStatus,
                   applicant_version: Optional[int] = None) -> CommitResult:
        if TicketStatus(status) == TicketStatus.USED:
            return self.reconciler.mark_ticket_used(ticket_id)

        quote = self.quote_no_show(ticket_id)
        self._check_version(applicant_version, quote.applicant_version)
        return self.reconciler.commit(quote)

    # Queries
    def get_ticket(self, ticket_id: int) -> Ticket:
        return self.repository.get_ticket(ticket_id)

    def search(self, q: str) -> TicketSearchResult:
        """Find a ticket by its number or by the applicant code, latest ticket first"""
        q = q.strip().upper()
        row = self.db.query(Ticket, Applicant).join(Applicant, Ticket.applicant_id == Applicant.id).filter(
            or_(Ticket.ticket_number == q, Applicant.applicant_code == q)
        ).order_by(Ticket.id.desc()).first()
        if row is None:
            raise TicketNotFound()

        ticket, applicant = row
        return TicketSearchResult(
            **TicketOut.model_validate(ticket).model_dump(),
            applicant_code=applicant.applicant_code,
            full_name=applicant.full_name,
            phone=applicant.phone
        )

    def applicant_tickets(self, applicant_id: int) -> List[Ticket]:
        self.repository.get_applicant(applicant_id)
        return self.db.query(Ticket).filter(Ticket.applicant_id == applicant_id).order_by(Ticket.id).all()

    def manifest(
        self,
        departure_date: Optional[date] = None,
        status: Optional[TicketStatus] = None,
        from_location_id: Optional[int] = None,
        to_location_id: Optional[int] = None
    ) -> List[ManifestEntry]:
        """Passengers per departure, ordered by departure time and seat"""
        query = self.db.query(Ticket, Applicant).join(Applicant, Ticket.applicant_id == Applicant.id)

        if departure_date:
            start = datetime.combine(departure_date, time.min)
            end = datetime.combine(departure_date, time.max)
            query = query.filter(Ticket.departure_at >= start, Ticket.departure_at <= end)
        if status:
            query = query.filter(Ticket.status == TicketStatus(status).value)
        if from_location_id is not None:
            query = query.filter(Ticket.from_location_id == from_location_id)
        if to_location_id is not None:
            query = query.filter(Ticket.to_location_id == to_location_id)

        entries = []
        for ticket, applicant in query.order_by(Ticket.departure_at, Ticket.seat_number, Ticket.id).all():
            entries.append(ManifestEntry(
                ticket_id=ticket.id,
                ticket_number=ticket.ticket_number,
                applicant_id=applicant.id,
                applicant_code=applicant.applicant_code,
                full_name=applicant.full_name,
                phone=applicant.phone,
                passport_number=applicant.passport_number,
                from_location=ticket.from_location.name if ticket.from_location else None,
                to_location=ticket.to_location.name if ticket.to_location else None,
                departure_at=ticket.departure_at,
                trip_type=ticket.trip_type,
                bus_number=ticket.bus_number,
                seat_number=ticket.seat_number,
                status=ticket.status
            ))
        return entries
