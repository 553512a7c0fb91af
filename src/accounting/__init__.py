"""
Accounting Module

Append-only cash book of the agency. Applicant payments go through the ledger so
that balances stay consistent; expenses and withdrawals are recorded directly.
Summaries report income, expenses, withdrawals, net result and the outstanding
balance still owed by applicants.
"""

from .router import router
from .service import AccountingService

__all__ = [
    "router",
    "AccountingService"
]
