"""
Error taxonomy shared by the pricing engine, the ledger and the HTTP routers.

Every error carries a stable ``code`` for API clients and the HTTP status the
routers should answer with. Concurrency conflicts are flagged ``retryable``;
the caller may quote again and retry, the ledger itself never retries.
"""

from typing import Optional


class LedgerError(ValueError):
    code = "LEDGER_ERROR"
    status_code = 400
    retryable = False

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = message or self.__class__.__doc__ or self.code

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "retryable": self.retryable}


# Validation errors
class InvalidPromoCode(LedgerError):
    """Promo code does not match any public voucher"""
    code = "INVALID_PROMO_CODE"

class ExpiredPromoCode(LedgerError):
    """Promo code has expired"""
    code = "EXPIRED_PROMO_CODE"

class PromoUsageExceeded(LedgerError):
    """Promo code reached its maximum number of uses"""
    code = "PROMO_USAGE_EXCEEDED"

class RouteNotFound(LedgerError):
    """No active transport route between the selected locations"""
    code = "ROUTE_NOT_FOUND"

class VoucherNotApplicable(LedgerError):
    """Voucher cannot be applied to this operation"""
    code = "VOUCHER_NOT_APPLICABLE"

class VoucherAlreadyUsed(LedgerError):
    """Voucher has already been redeemed"""
    code = "VOUCHER_ALREADY_USED"

class InvalidStatusTransition(LedgerError):
    """Status change is not allowed from the current status"""
    code = "INVALID_STATUS_TRANSITION"

class TicketNotActive(LedgerError):
    """Ticket is no longer active"""
    code = "TICKET_NOT_ACTIVE"

class InvalidAmount(LedgerError):
    """Amount must be greater than zero"""
    code = "INVALID_AMOUNT"


# Lookups
class ApplicantNotFound(LedgerError):
    """Applicant not found"""
    code = "APPLICANT_NOT_FOUND"
    status_code = 404

class TicketNotFound(LedgerError):
    """Ticket not found"""
    code = "TICKET_NOT_FOUND"
    status_code = 404

class VoucherNotFound(LedgerError):
    """Voucher not found"""
    code = "VOUCHER_NOT_FOUND"
    status_code = 404

class LocationNotFound(LedgerError):
    """Location not found"""
    code = "LOCATION_NOT_FOUND"
    status_code = 404

class PolicyNotFound(LedgerError):
    """Policy not found"""
    code = "POLICY_NOT_FOUND"
    status_code = 404


# Invariant violations
class BalanceInvariantViolation(LedgerError):
    """Remaining balance does not equal total amount minus amount paid"""
    code = "BALANCE_INVARIANT_VIOLATION"
    status_code = 422


# Concurrency conflicts
class ConcurrentVoucherRedemption(LedgerError):
    """Voucher was redeemed by another operation"""
    code = "CONCURRENT_VOUCHER_REDEMPTION"
    status_code = 409
    retryable = True

class ConcurrentModification(LedgerError):
    """Applicant record changed since the quote was computed"""
    code = "CONCURRENT_MODIFICATION"
    status_code = 409
    retryable = True
