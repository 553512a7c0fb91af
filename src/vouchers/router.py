from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional

from src.database import get_db
from src.errors import http_error
from src.auth.dependencies import require_permission
from src.auth.permissions import Permission
from src.vouchers.schemas import Voucher, VoucherCreate, VoucherList, VoucherRefundRequest, VoucherRefund
from src.vouchers.service import VoucherService
from src.pricing.schemas import VoucherCategory, VoucherPurpose

router = APIRouter()

@router.get("/", response_model=VoucherList)
def list_vouchers(
    applicant_id: Optional[int] = Query(None, description="Filter by owner"),
    category: Optional[VoucherCategory] = Query(None),
    purpose: Optional[VoucherPurpose] = Query(None),
    active_only: bool = Query(False, description="Only unused, unexpired vouchers"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.VIEW_APPLICANTS))
):
    vouchers, total = VoucherService(db).list_vouchers(
        applicant_id=applicant_id, category=category, purpose=purpose,
        active_only=active_only, skip=skip, limit=limit
    )
    return VoucherList(vouchers=[Voucher.model_validate(v) for v in vouchers], total=total)

@router.post("/", response_model=Voucher, status_code=status.HTTP_201_CREATED)
def create_voucher(
    voucher: VoucherCreate,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.MANAGE_PRICING))
):
    """Issue a promo code, personal voucher or compensation credit"""
    try:
        return VoucherService(db, actor_id=current_user.id).create_voucher(voucher)
    except ValueError as e:
        raise http_error(e)

@router.get("/{voucher_id}", response_model=Voucher)
def get_voucher(
    voucher_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.VIEW_APPLICANTS))
):
    try:
        return VoucherService(db).get_voucher(voucher_id)
    except ValueError as e:
        raise http_error(e)

@router.post("/refund", response_model=VoucherRefund)
def refund_voucher(
    request: VoucherRefundRequest,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.MANAGE_TRANSACTIONS))
):
    """Pay out an unused compensation voucher in cash"""
    try:
        return VoucherService(db, actor_id=current_user.id).refund_voucher_cash(request.voucher_id, notes=request.notes)
    except ValueError as e:
        raise http_error(e)
