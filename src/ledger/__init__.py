"""
Ledger Module

Stateful side of applicant accounting. The repository turns database rows into
the snapshots the pricing engine consumes; the reconciler applies the resulting
quotes in a single transaction.

Key Components:
- repository.py: Reference data and applicant/ticket/voucher snapshot loading
- reconciler.py: Atomic commit of quotes, payments, voucher refunds and status changes
- state_machine.py: Applicant and ticket status transitions
- schemas.py: Commit intents (profile, exam schedule, ticket details) and commit results

Guarantees:
- remaining_balance == total_amount - amount_paid after every commit
- Vouchers are consumed with a conditional UPDATE, never over their usage cap
- Quotes computed against an older applicant version are rejected as retryable conflicts
"""

from .repository import LedgerRepository
from .reconciler import LedgerReconciler
from .state_machine import assert_applicant_transition, assert_ticket_transition
from .schemas import ApplicantProfile, ExamSchedule, TicketDetails, CommitResult

__all__ = [
    "LedgerRepository",
    "LedgerReconciler",
    "assert_applicant_transition",
    "assert_ticket_transition",
    "ApplicantProfile",
    "ExamSchedule",
    "TicketDetails",
    "CommitResult"
]
