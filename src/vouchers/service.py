import logging
from typing import List, Optional, Tuple
from datetime import datetime
from decimal import Decimal
from sqlalchemy import or_
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from src.models import Voucher
from src.vouchers.schemas import VoucherCreate, VoucherRefund
from src.exceptions import VoucherNotFound, InvalidAmount
from src.ledger import LedgerRepository, LedgerReconciler
from src.pricing.schemas import VoucherKind, VoucherCategory, VoucherPurpose, money

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")

class VoucherService:
    """Issuing, listing and cash refunds of vouchers"""

    def __init__(self, db: Session, actor_id: Optional[int] = None):
        self.db = db
        self.actor_id = actor_id

    def create_voucher(self, data: VoucherCreate) -> Voucher:
        """Create a voucher after checking category and kind rules"""

        if data.category == VoucherCategory.PUBLIC:
            if not data.code:
                raise ValueError("Public vouchers need a promo code")
            if data.applicant_id is not None:
                raise ValueError("Public vouchers cannot belong to an applicant")
            max_uses = data.max_uses
        else:
            if data.applicant_id is None:
                raise ValueError(f"{data.category.value} vouchers need an applicant")
            LedgerRepository(self.db).get_applicant(data.applicant_id)
            max_uses = 1

        discount_percent = None
        balance = None
        if data.kind == VoucherKind.DISCOUNT:
            discount_percent = HUNDRED if data.discount_percent is None else data.discount_percent
            if not (0 < discount_percent <= HUNDRED):
                raise ValueError("Discount percent must be between 0 and 100")
        else:
            if data.balance is None or data.balance <= 0:
                raise InvalidAmount("Credit vouchers need a positive balance")
            balance = money(data.balance)

        voucher = Voucher(
            kind=data.kind.value,
            category=data.category.value,
            purpose=data.purpose.value,
            code=data.code,
            discount_percent=discount_percent,
            balance=balance,
            max_uses=max_uses,
            usage_count=0,
            is_used=False,
            expires_at=data.expires_at,
            applicant_id=data.applicant_id,
            location_id=data.location_id,
            notes=data.notes
        )
        try:
            self.db.add(voucher)
            self.db.commit()
            self.db.refresh(voucher)
        except IntegrityError:
            self.db.rollback()
            raise ValueError(f"Voucher code {data.code} already exists")

        logger.info("Created %s %s voucher %s", voucher.category, voucher.kind, voucher.id)
        return voucher

    def get_voucher(self, voucher_id: int) -> Voucher:
        voucher = self.db.query(Voucher).filter(Voucher.id == voucher_id).first()
        if not voucher:
            raise VoucherNotFound()
        return voucher

    def list_vouchers(
        self,
        applicant_id: Optional[int] = None,
        category: Optional[VoucherCategory] = None,
        purpose: Optional[VoucherPurpose] = None,
        active_only: bool = False,
        skip: int = 0,
        limit: int = 100
    ) -> Tuple[List[Voucher], int]:
        query = self.db.query(Voucher)
        if applicant_id is not None:
            query = query.filter(Voucher.applicant_id == applicant_id)
        if category:
            query = query.filter(Voucher.category == VoucherCategory(category).value)
        if purpose:
            query = query.filter(Voucher.purpose == VoucherPurpose(purpose).value)
        if active_only:
            query = query.filter(
                Voucher.is_used == False,  # noqa: E712
                Voucher.usage_count < Voucher.max_uses,
                or_(Voucher.expires_at.is_(None), Voucher.expires_at >= datetime.now())
            )

        total = query.count()
        vouchers = query.order_by(Voucher.created_at.desc(), Voucher.id.desc()).offset(skip).limit(limit).all()
        return vouchers, total

    def refund_voucher_cash(self, voucher_id: int, notes: Optional[str] = None) -> VoucherRefund:
        withdrawal = LedgerReconciler(self.db, actor_id=self.actor_id).refund_voucher_cash(voucher_id, notes=notes)
        return VoucherRefund(
            voucher_id=voucher_id,
            transaction_id=withdrawal.id,
            amount=-withdrawal.amount,
            applicant_id=withdrawal.applicant_id
        )
