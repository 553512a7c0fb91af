from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional

from src.database import get_db
from src.errors import http_error
from src.auth.dependencies import get_current_user, require_permission
from src.auth.permissions import Permission
from src.catalog.schemas import (
    Location, LocationCreate, LocationUpdate, TransportRoute, TransportRouteCreate,
    TransportRouteUpdate, Policy, PolicyCreate, PolicyUpdate, ServiceConfig,
    ServiceConfigUpdate, RouteEndpoints
)
from src.catalog.service import CatalogService
from src.pricing.schemas import PolicyCategory

router = APIRouter()

# Locations
@router.get("/locations", response_model=List[Location])
def list_locations(
    active_only: bool = Query(False, description="Only active locations"),
    db: Session = Depends(get_db),
    current_user = Depends(get_current_user)
):
    return CatalogService(db).list_locations(active_only=active_only)

@router.post("/locations", response_model=Location, status_code=status.HTTP_201_CREATED)
def create_location(
    location: LocationCreate,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.MANAGE_PRICING))
):
    try:
        return CatalogService(db).create_location(location)
    except ValueError as e:
        raise http_error(e)

@router.put("/locations/{location_id}", response_model=Location)
def update_location(
    location_id: int,
    location: LocationUpdate,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.MANAGE_PRICING))
):
    try:
        return CatalogService(db).update_location(location_id, location)
    except ValueError as e:
        raise http_error(e)

@router.delete("/locations/{location_id}", response_model=Location)
def deactivate_location(
    location_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.MANAGE_PRICING))
):
    """Deactivate a location"""
    try:
        return CatalogService(db).deactivate_location(location_id)
    except ValueError as e:
        raise http_error(e)

# Transport routes
@router.get("/routes", response_model=List[TransportRoute])
def list_routes(
    active_only: bool = Query(True, description="Only active routes"),
    from_location_id: Optional[int] = Query(None, description="Filter by origin"),
    db: Session = Depends(get_db),
    current_user = Depends(get_current_user)
):
    return CatalogService(db).list_routes(active_only=active_only, from_location_id=from_location_id)

@router.get("/routes/endpoints", response_model=RouteEndpoints)
def route_endpoints(
    from_location_id: Optional[int] = Query(None, description="Destinations reachable from this origin"),
    db: Session = Depends(get_db),
    current_user = Depends(get_current_user)
):
    """Origins and destinations served by active routes"""
    origins, destinations = CatalogService(db).route_endpoints(from_location_id)
    return RouteEndpoints(
        origins=[Location.model_validate(o) for o in origins],
        destinations=[Location.model_validate(d) for d in destinations]
    )

@router.post("/routes", response_model=TransportRoute, status_code=status.HTTP_201_CREATED)
def create_route(
    route: TransportRouteCreate,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.MANAGE_PRICING))
):
    try:
        return CatalogService(db).create_route(route)
    except ValueError as e:
        raise http_error(e)

@router.put("/routes/{route_id}", response_model=TransportRoute)
def update_route(
    route_id: int,
    route: TransportRouteUpdate,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.MANAGE_PRICING))
):
    try:
        return CatalogService(db).update_route(route_id, route)
    except ValueError as e:
        raise http_error(e)

@router.delete("/routes/{route_id}", response_model=TransportRoute)
def deactivate_route(
    route_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.MANAGE_PRICING))
):
    try:
        return CatalogService(db).deactivate_route(route_id)
    except ValueError as e:
        raise http_error(e)

# Policies
@router.get("/policies", response_model=List[Policy])
def list_policies(
    category: Optional[PolicyCategory] = Query(None, description="Filter by category"),
    active_only: bool = Query(False),
    db: Session = Depends(get_db),
    current_user = Depends(get_current_user)
):
    return CatalogService(db).list_policies(category=category, active_only=active_only)

@router.post("/policies", response_model=Policy, status_code=status.HTTP_201_CREATED)
def create_policy(
    policy: PolicyCreate,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.MANAGE_PRICING))
):
    return CatalogService(db).create_policy(policy)

@router.put("/policies/{policy_id}", response_model=Policy)
def update_policy(
    policy_id: int,
    policy: PolicyUpdate,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.MANAGE_PRICING))
):
    try:
        return CatalogService(db).update_policy(policy_id, policy)
    except ValueError as e:
        raise http_error(e)

@router.delete("/policies/{policy_id}", response_model=Policy)
def deactivate_policy(
    policy_id: int,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.MANAGE_PRICING))
):
    try:
        return CatalogService(db).deactivate_policy(policy_id)
    except ValueError as e:
        raise http_error(e)

# Service config
@router.get("/config", response_model=ServiceConfig)
def get_service_config(
    db: Session = Depends(get_db),
    current_user = Depends(get_current_user)
):
    """Get the global pricing configuration"""
    return CatalogService(db).get_service_config()

@router.patch("/config", response_model=ServiceConfig)
def update_service_config(
    config: ServiceConfigUpdate,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.MANAGE_PRICING))
):
    """Update registration price, exam change fee and free change allowance"""
    return CatalogService(db).update_service_config(config, updated_by=current_user.id)
