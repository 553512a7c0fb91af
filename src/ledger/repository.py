from typing import Iterable, List, Optional
from sqlalchemy.orm import Session

from src.config import settings
from src.models import (
    ServiceConfig, TransportRoute, CancellationPolicy, Voucher, Applicant, Ticket, ActivityLog
)
from src.pricing.schemas import (
    PricingConfig, RoutePrice, PolicyRule, DiscountVoucher, CreditVoucher,
    ApplicantSnapshot, TicketSnapshot, VoucherCategory, VoucherKind, TicketStatus
)
from src.exceptions import ApplicantNotFound, TicketNotFound

GLOBAL_CONFIG_ID = "global"

def default_service_config() -> ServiceConfig:
    return ServiceConfig(
        id=GLOBAL_CONFIG_ID,
        registration_price=settings.DEFAULT_REGISTRATION_PRICE,
        exam_change_fee=settings.DEFAULT_EXAM_CHANGE_FEE,
        max_free_changes=settings.DEFAULT_MAX_FREE_CHANGES
    )

class LedgerRepository:
    """Read side of the ledger: loads rows and turns them into pricing snapshots"""

    def __init__(self, db: Session):
        self.db = db

    # Configuration
    def get_service_config(self) -> ServiceConfig:
        """Get the global service config; an unsaved settings default when the row is missing"""
        config = self.db.query(ServiceConfig).filter(ServiceConfig.id == GLOBAL_CONFIG_ID).first()
        if config is None:
            config = default_service_config()
        return config

    def pricing_config(self) -> PricingConfig:
        config = self.get_service_config()
        return PricingConfig(
            registration_price=config.registration_price,
            exam_change_fee=config.exam_change_fee,
            max_free_changes=config.max_free_changes,
            use_booked_fare_snapshot=settings.USE_BOOKED_FARE_SNAPSHOT
        )

    # Reference data
    def find_route(self, from_location_id: Optional[int], to_location_id: Optional[int],
                   include_inactive: bool = False) -> Optional[RoutePrice]:
        """Route for a location pair; tickets already issued still price against retired routes"""
        if from_location_id is None or to_location_id is None:
            return None
        query = self.db.query(TransportRoute).filter(
            TransportRoute.from_location_id == from_location_id,
            TransportRoute.to_location_id == to_location_id
        )
        if include_inactive:
            query = query.order_by(TransportRoute.is_active.desc(), TransportRoute.id)
        else:
            query = query.filter(TransportRoute.is_active == True).order_by(TransportRoute.id)  # noqa: E712
        route = query.first()
        return RoutePrice.model_validate(route) if route else None

    def active_policies(self, categories: Optional[Iterable[str]] = None) -> List[PolicyRule]:
        query = self.db.query(CancellationPolicy).filter(CancellationPolicy.is_active == True)  # noqa: E712
        if categories:
            query = query.filter(CancellationPolicy.category.in_([getattr(c, "value", c) for c in categories]))
        return [PolicyRule.model_validate(p) for p in query.order_by(CancellationPolicy.id).all()]

    # Vouchers
    @staticmethod
    def voucher_snapshot(voucher: Voucher):
        if voucher.kind == VoucherKind.DISCOUNT.value:
            return DiscountVoucher.model_validate(voucher)
        return CreditVoucher.model_validate(voucher)

    def find_public_voucher(self, code: str):
        voucher = self.db.query(Voucher).filter(
            Voucher.code == code,
            Voucher.category == VoucherCategory.PUBLIC.value
        ).first()
        return self.voucher_snapshot(voucher) if voucher else None

    def applicant_vouchers(self, applicant_id: int):
        vouchers = self.db.query(Voucher).filter(
            Voucher.applicant_id == applicant_id
        ).order_by(Voucher.id).all()
        return [self.voucher_snapshot(v) for v in vouchers]

    def vouchers_by_ids(self, voucher_ids: Iterable[int]):
        ids = list(voucher_ids)
        if not ids:
            return []
        vouchers = self.db.query(Voucher).filter(Voucher.id.in_(ids)).order_by(Voucher.id).all()
        return [self.voucher_snapshot(v) for v in vouchers]

    # Applicants & tickets
    def get_applicant(self, applicant_id: int) -> Applicant:
        applicant = self.db.query(Applicant).filter(Applicant.id == applicant_id).first()
        if applicant is None:
            raise ApplicantNotFound()
        return applicant

    def applicant_snapshot(self, applicant_id: int) -> ApplicantSnapshot:
        return ApplicantSnapshot.model_validate(self.get_applicant(applicant_id))

    def get_ticket(self, ticket_id: int) -> Ticket:
        ticket = self.db.query(Ticket).filter(Ticket.id == ticket_id).first()
        if ticket is None:
            raise TicketNotFound()
        return ticket

    def ticket_snapshot(self, ticket_id: int) -> TicketSnapshot:
        return TicketSnapshot.model_validate(self.get_ticket(ticket_id))

    def has_active_ticket(self, applicant_id: int) -> bool:
        return self.db.query(Ticket).filter(
            Ticket.applicant_id == applicant_id,
            Ticket.status == TicketStatus.ISSUED.value
        ).first() is not None

    def has_previous_tickets(self, applicant_id: int) -> bool:
        return self.db.query(Ticket).filter(Ticket.applicant_id == applicant_id).first() is not None

    def count_reschedules(self, applicant_id: int) -> int:
        return self.db.query(ActivityLog).filter(
            ActivityLog.applicant_id == applicant_id,
            ActivityLog.action == "EXAM_RESCHEDULED"
        ).count()
