"""
Pricing Module

Pure computation of what every chargeable operation costs. Nothing in this
package touches the database; callers load reference data, pass snapshots in
and receive a quote to present for confirmation and hand to the ledger.

Key Components:
- schemas.py: Value types (config snapshot, route prices, policies, voucher variants) and quotes
- policy_resolver.py: Deterministic cancellation/modification/no-show fee resolution
- engine.py: Registration, exam scheduling and retake, ticket issuance, modification,
  cancellation and no-show pricing
"""

from .engine import PricingEngine
from .policy_resolver import resolve_policy, resolve_no_show, hours_until
from .schemas import (
    PricingConfig, RoutePrice, PolicyRule, PolicyResolution, DiscountVoucher,
    CreditVoucher, ApplicantSnapshot, TicketSnapshot, RouteSelection, Quote,
    RegistrationQuote, ExamScheduleQuote, RetakeQuote, TicketIssuanceQuote,
    TicketChangeQuote, NoShowQuote
)

__all__ = [
    "PricingEngine",
    "resolve_policy",
    "resolve_no_show",
    "hours_until",
    "PricingConfig",
    "RoutePrice",
    "PolicyRule",
    "PolicyResolution",
    "DiscountVoucher",
    "CreditVoucher",
    "ApplicantSnapshot",
    "TicketSnapshot",
    "RouteSelection",
    "Quote",
    "RegistrationQuote",
    "ExamScheduleQuote",
    "RetakeQuote",
    "TicketIssuanceQuote",
    "TicketChangeQuote",
    "NoShowQuote"
]
