from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional

from src.database import get_db
from src.errors import http_error
from src.auth.dependencies import require_permission, is_admin
from src.auth.permissions import Permission
from src.applicants.schemas import (
    RegistrationRequest, PaymentCreate, ExamScheduleRequest, RetakeRequest, StatusUpdate,
    Applicant, ApplicantSummary, ApplicantList, TransactionEntry, ActivityLogEntry, FollowUpStats
)
from src.applicants.service import ApplicantService
from src.ledger.schemas import CommitResult
from src.pricing.schemas import ApplicantStatus, RegistrationQuote, ExamScheduleQuote, RetakeQuote

router = APIRouter()

# Registration
@router.post("/quote", response_model=RegistrationQuote)
def quote_registration(
    request: RegistrationRequest,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.CREATE_APPLICANTS))
):
    """Preview the price of a registration"""
    try:
        return ApplicantService(db, actor_id=current_user.id).quote_registration(request)
    except ValueError as e:
        raise http_error(e)

@router.post("/", response_model=CommitResult, status_code=status.HTTP_201_CREATED)
def register_applicant(
    request: RegistrationRequest,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.CREATE_APPLICANTS))
):
    """Register a new applicant"""
    try:
        return ApplicantService(db, actor_id=current_user.id).register(request)
    except ValueError as e:
        raise http_error(e)

@router.get("/", response_model=ApplicantList)
def list_applicants(
    skip: int = Query(0, ge=0, description="Number of applicants to skip"),
    limit: int = Query(50, ge=1, le=200, description="Number of applicants to return"),
    status: Optional[ApplicantStatus] = Query(None, description="Filter by status"),
    location_id: Optional[int] = Query(None, description="Filter by exam location"),
    search: Optional[str] = Query(None, description="Search by name, phone, code or passport"),
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.VIEW_APPLICANTS))
):
    """Get applicants with optional search and filters"""
    applicants, total = ApplicantService(db).list_applicants(
        skip=skip, limit=limit, status=status, location_id=location_id, search=search
    )
    return ApplicantList(
        applicants=[ApplicantSummary.model_validate(a) for a in applicants],
        total=total,
        page=(skip // limit) + 1,
        per_page=limit
    )

@router.get("/stats", response_model=FollowUpStats)
def get_follow_up_stats(
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.VIEW_APPLICANTS))
):
    """Pending payments and upcoming exams without a ticket"""
    return ApplicantService(db).follow_up_stats()

@router.get("/{applicant_id}", response_model=Applicant)
def get_applicant(
    applicant_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.VIEW_APPLICANTS))
):
    try:
        return ApplicantService(db).get_applicant(applicant_id)
    except ValueError as e:
        raise http_error(e)

# Payments
@router.post("/{applicant_id}/payments", response_model=CommitResult, status_code=status.HTTP_201_CREATED)
def record_payment(
    applicant_id: int,
    payment: PaymentCreate,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.MANAGE_TRANSACTIONS))
):
    """Record a customer payment"""
    try:
        return ApplicantService(db, actor_id=current_user.id).record_payment(
            applicant_id, payment.amount, notes=payment.notes, location_id=payment.location_id
        )
    except ValueError as e:
        raise http_error(e)

@router.get("/{applicant_id}/transactions", response_model=List[TransactionEntry])
def list_applicant_transactions(
    applicant_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.VIEW_APPLICANTS))
):
    try:
        return ApplicantService(db).list_transactions(applicant_id)
    except ValueError as e:
        raise http_error(e)

# Exam scheduling
@router.get("/{applicant_id}/exam/quote", response_model=ExamScheduleQuote)
def quote_exam_schedule(
    applicant_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.EDIT_APPLICANTS))
):
    """Preview the fee for scheduling or rescheduling the exam"""
    try:
        return ApplicantService(db).quote_exam_schedule(applicant_id)
    except ValueError as e:
        raise http_error(e)

@router.post("/{applicant_id}/exam", response_model=CommitResult)
def schedule_exam(
    applicant_id: int,
    request: ExamScheduleRequest,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.EDIT_APPLICANTS))
):
    try:
        return ApplicantService(db, actor_id=current_user.id).schedule_exam(applicant_id, request)
    except ValueError as e:
        raise http_error(e)

# Retake
@router.get("/{applicant_id}/retake/quote", response_model=RetakeQuote)
def quote_retake(
    applicant_id: int,
    voucher_id: Optional[int] = Query(None, description="Exam voucher to apply"),
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.EDIT_APPLICANTS))
):
    """Preview the retake fee after any exam voucher"""
    try:
        return ApplicantService(db).quote_retake(applicant_id, voucher_id=voucher_id)
    except ValueError as e:
        raise http_error(e)

@router.post("/{applicant_id}/retake", response_model=CommitResult)
def schedule_retake(
    applicant_id: int,
    request: RetakeRequest,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.EDIT_APPLICANTS))
):
    try:
        return ApplicantService(db, actor_id=current_user.id).schedule_retake(applicant_id, request)
    except ValueError as e:
        raise http_error(e)

# Status
@router.patch("/{applicant_id}/status", response_model=Applicant)
def change_status(
    applicant_id: int,
    update: StatusUpdate,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.EDIT_APPLICANTS))
):
    """Exam attendance, results and admin undo of a result"""
    try:
        service = ApplicantService(db, actor_id=current_user.id, is_admin=is_admin(current_user))
        return service.change_status(applicant_id, update.status)
    except ValueError as e:
        raise http_error(e)

@router.get("/{applicant_id}/activity", response_model=List[ActivityLogEntry])
def get_activity_log(
    applicant_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.VIEW_APPLICANTS))
):
    try:
        return ApplicantService(db).activity_log(applicant_id)
    except ValueError as e:
        raise http_error(e)
