"""
Pricing Catalog Module

Reference data the pricing engine reads: locations, transport routes with
one-way and round-trip prices, cancellation/modification/no-show fee policies
and the global service configuration (registration price, exam change fee,
free change allowance).

Key Components:
- service.py: CRUD and deactivation for locations, routes and policies; service config
- router.py: FastAPI endpoints under /pricing
- schemas.py: Pydantic models for catalog entities
"""

from .router import router
from .service import CatalogService

__all__ = [
    "router",
    "CatalogService"
]
