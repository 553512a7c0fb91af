"""
Tickets Module

Bus tickets for applicants travelling to their exam:

- Issuance priced from the route table, less stacked credit vouchers; the first
  ticket is prepaid when transport was bought at registration
- Modification (policy fee plus fare difference) and cancellation (policy fee
  withheld, remainder issued as compensation credit)
- Usage marking: completed trips and no-shows (fine plus compensation credit)
- Transport manifests by departure day
"""

from .router import router
from .service import TicketService

__all__ = [
    "router",
    "TicketService"
]
