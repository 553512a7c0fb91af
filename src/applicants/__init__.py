"""
Applicants Module

Registration and lifecycle of exam applicants:

- Registration priced from the service config, an optional transport route and one
  discount source (public promo code or manual discount), with an optional deposit
- Customer payments against the running balance
- Exam scheduling and paid rescheduling beyond the free change allowance
- Exam retakes after a failed or missed exam, discounted by exam vouchers
- Status changes along the applicant lifecycle, including admin undo of results
- Transaction history and activity log per applicant

Every chargeable operation has a quote endpoint for preview and a commit endpoint
that re-prices and applies the change through the ledger.
"""

from .router import router
from .service import ApplicantService

__all__ = [
    "router",
    "ApplicantService"
]
