"""
Vouchers Module

Structured discount and credit vouchers:

- PUBLIC promo codes (percentage discount, capped number of uses, optional expiry)
- PERSONAL vouchers issued to one applicant
- COMPENSATION credit created when a ticket is cancelled or missed
- Cash refund of unused compensation credit as an accounting withdrawal
"""

from .router import router
from .service import VoucherService

__all__ = [
    "router",
    "VoucherService"
]
