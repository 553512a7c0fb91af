from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from datetime import datetime, date

from src.database import get_db
from src.errors import http_error
from src.auth.dependencies import require_permission
from src.auth.permissions import Permission
from src.accounting.schemas import (
    TransactionCreate, TransactionList, TransactionType, AccountingSummary, DashboardData
)
from src.accounting.service import AccountingService
from src.applicants.schemas import TransactionEntry

router = APIRouter()

@router.post("/transactions", response_model=TransactionEntry, status_code=status.HTTP_201_CREATED)
def record_transaction(
    transaction: TransactionCreate,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.MANAGE_TRANSACTIONS))
):
    """Record a payment, expense or withdrawal"""
    try:
        return AccountingService(db, actor_id=current_user.id).record_transaction(transaction)
    except ValueError as e:
        raise http_error(e)

@router.get("/transactions", response_model=TransactionList)
def list_transactions(
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    location_id: Optional[int] = Query(None),
    type: Optional[TransactionType] = Query(None, description="PAYMENT, EXPENSE or WITHDRAWAL"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.VIEW_ACCOUNTING))
):
    transactions, total = AccountingService(db).list_transactions(
        date_from=date_from, date_to=date_to, location_id=location_id, type=type, skip=skip, limit=limit
    )
    return TransactionList(
        transactions=[TransactionEntry.model_validate(t) for t in transactions],
        total=total,
        page=(skip // limit) + 1,
        per_page=limit
    )

@router.get("/summary", response_model=AccountingSummary)
def get_summary(
    date_from: Optional[datetime] = Query(None, description="Start of the period"),
    date_to: Optional[datetime] = Query(None, description="End of the period"),
    location_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.VIEW_ACCOUNTING))
):
    """Income, expenses, withdrawals, net and outstanding balances"""
    return AccountingService(db).summary(date_from=date_from, date_to=date_to, location_id=location_id)

@router.get("/dashboard", response_model=DashboardData)
def get_dashboard(
    exam_date: Optional[date] = Query(None, description="Exam day to list, tomorrow by default"),
    transport_date: Optional[date] = Query(None, description="Travel day to summarize, today by default"),
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.VIEW_ACCOUNTING))
):
    """Back office dashboard"""
    return AccountingService(db).dashboard(exam_date=exam_date, transport_date=transport_date)
