from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date

from src.database import get_db
from src.errors import http_error
from src.auth.dependencies import require_permission
from src.auth.permissions import Permission
from src.tickets.schemas import (
    TicketIssueRequest, TicketChangeRequest, TicketUsageRequest, Ticket, Manifest, TicketSearchResult
)
from src.tickets.service import TicketService
from src.ledger.schemas import CommitResult
from src.pricing.schemas import TicketStatus, TicketIssuanceQuote, TicketChangeQuote, NoShowQuote

router = APIRouter()

# Issuance
@router.post("/applicant/{applicant_id}/quote", response_model=TicketIssuanceQuote)
def quote_ticket_issuance(
    applicant_id: int,
    request: TicketIssueRequest,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.EDIT_APPLICANTS))
):
    """Preview the fare, stacked voucher credit and payable amount"""
    try:
        return TicketService(db).quote_issuance(
            applicant_id, request.selection, request.voucher_ids, request.promo_code
        )
    except ValueError as e:
        raise http_error(e)

@router.post("/applicant/{applicant_id}", response_model=CommitResult, status_code=status.HTTP_201_CREATED)
def issue_ticket(
    applicant_id: int,
    request: TicketIssueRequest,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.EDIT_APPLICANTS))
):
    """Issue a bus ticket"""
    try:
        return TicketService(db, actor_id=current_user.id).issue_ticket(applicant_id, request)
    except ValueError as e:
        raise http_error(e)

@router.get("/applicant/{applicant_id}", response_model=List[Ticket])
def list_applicant_tickets(
    applicant_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.VIEW_APPLICANTS))
):
    try:
        return TicketService(db).applicant_tickets(applicant_id)
    except ValueError as e:
        raise http_error(e)

@router.get("/search", response_model=TicketSearchResult)
def search_ticket(
    q: str = Query(..., min_length=1, description="Ticket number or applicant code"),
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.VIEW_APPLICANTS))
):
    """Look up a ticket at the boarding desk"""
    try:
        return TicketService(db).search(q)
    except ValueError as e:
        raise http_error(e)

@router.get("/manifest", response_model=Manifest)
def get_manifest(
    departure_date: Optional[date] = Query(None, description="Departure day"),
    status: Optional[TicketStatus] = Query(None, description="Filter by ticket status"),
    from_location_id: Optional[int] = Query(None),
    to_location_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.VIEW_APPLICANTS))
):
    """Transport manifest"""
    entries = TicketService(db).manifest(
        departure_date=departure_date, status=status,
        from_location_id=from_location_id, to_location_id=to_location_id
    )
    filters = {
        "departure_date": departure_date.isoformat() if departure_date else None,
        "status": status.value if status else None,
        "from_location_id": from_location_id,
        "to_location_id": to_location_id
    }
    return Manifest(entries=entries, total=len(entries), filters=filters)

@router.get("/{ticket_id}", response_model=Ticket)
def get_ticket(
    ticket_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.VIEW_APPLICANTS))
):
    try:
        return TicketService(db).get_ticket(ticket_id)
    except ValueError as e:
        raise http_error(e)

# Modification / cancellation
@router.post("/{ticket_id}/change/quote", response_model=TicketChangeQuote)
def quote_ticket_change(
    ticket_id: int,
    request: TicketChangeRequest,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.EDIT_APPLICANTS))
):
    """Preview a modification (new selection) or a cancellation (no selection)"""
    try:
        return TicketService(db).quote_change(ticket_id, request.selection)
    except ValueError as e:
        raise http_error(e)

@router.post("/{ticket_id}/change", response_model=CommitResult)
def change_ticket(
    ticket_id: int,
    request: TicketChangeRequest,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.EDIT_APPLICANTS))
):
    try:
        return TicketService(db, actor_id=current_user.id).change_ticket(ticket_id, request)
    except ValueError as e:
        raise http_error(e)

# Usage
@router.get("/{ticket_id}/no-show/quote", response_model=NoShowQuote)
def quote_no_show(
    ticket_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.EDIT_APPLICANTS))
):
    try:
        return TicketService(db).quote_no_show(ticket_id)
    except ValueError as e:
        raise http_error(e)

@router.post("/{ticket_id}/usage", response_model=CommitResult)
def mark_ticket_usage(
    ticket_id: int,
    request: TicketUsageRequest,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.EDIT_APPLICANTS))
):
    """Mark a ticket as used or as a no-show"""
    try:
        return TicketService(db, actor_id=current_user.id).mark_usage(
            ticket_id, request.status, applicant_version=request.applicant_version
        )
    except ValueError as e:
        raise http_error(e)
