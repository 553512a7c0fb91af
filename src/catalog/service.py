import logging
from typing import List, Optional
from decimal import Decimal
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from src.models import Location, TransportRoute, CancellationPolicy, ServiceConfig
from src.catalog.schemas import (
    LocationCreate, LocationUpdate, TransportRouteCreate, TransportRouteUpdate,
    PolicyCreate, PolicyUpdate, ServiceConfigUpdate
)
from src.exceptions import LocationNotFound, RouteNotFound, PolicyNotFound
from src.ledger.repository import LedgerRepository, GLOBAL_CONFIG_ID, default_service_config
from src.pricing.schemas import PolicyCategory

logger = logging.getLogger(__name__)

NO_SHOW_DEFAULT_NAME = "No-show fine"
NO_SHOW_DEFAULT_FEE = Decimal("20000")

class CatalogService:
    """Locations, transport routes, fee policies and the global service config"""

    def __init__(self, db: Session):
        self.db = db

    # Locations
    def list_locations(self, active_only: bool = False) -> List[Location]:
        query = self.db.query(Location)
        if active_only:
            query = query.filter(Location.is_active == True)  # noqa: E712
        return query.order_by(Location.name).all()

    def get_location(self, location_id: int) -> Location:
        location = self.db.query(Location).filter(Location.id == location_id).first()
        if not location:
            raise LocationNotFound()
        return location

    def create_location(self, data: LocationCreate) -> Location:
        location = Location(**data.model_dump(), is_active=True)
        try:
            self.db.add(location)
            self.db.commit()
            self.db.refresh(location)
        except IntegrityError:
            self.db.rollback()
            raise ValueError(f"Location code {data.code} already exists")
        return location

    def update_location(self, location_id: int, data: LocationUpdate) -> Location:
        location = self.get_location(location_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(location, field, value)
        try:
            self.db.commit()
            self.db.refresh(location)
        except IntegrityError:
            self.db.rollback()
            raise ValueError("Location code already exists")
        return location

    def deactivate_location(self, location_id: int) -> Location:
        """Locations are never deleted; tickets and applicants keep referencing them"""
        location = self.get_location(location_id)
        location.is_active = False
        self.db.commit()
        self.db.refresh(location)
        return location

    # Transport routes
    def list_routes(self, active_only: bool = True, from_location_id: Optional[int] = None) -> List[TransportRoute]:
        query = self.db.query(TransportRoute)
        if active_only:
            query = query.filter(TransportRoute.is_active == True)  # noqa: E712
        if from_location_id is not None:
            query = query.filter(TransportRoute.from_location_id == from_location_id)
        return query.order_by(TransportRoute.id).all()

    def get_route(self, route_id: int) -> TransportRoute:
        route = self.db.query(TransportRoute).filter(TransportRoute.id == route_id).first()
        if not route:
            raise RouteNotFound()
        return route

    def create_route(self, data: TransportRouteCreate) -> TransportRoute:
        if data.from_location_id == data.to_location_id:
            raise ValueError("Origin and destination must differ")
        self.get_location(data.from_location_id)
        self.get_location(data.to_location_id)

        existing = LedgerRepository(self.db).find_route(data.from_location_id, data.to_location_id)
        if existing:
            raise ValueError("An active route already exists between these locations")

        route = TransportRoute(**data.model_dump(), is_active=True)
        self.db.add(route)
        self.db.commit()
        self.db.refresh(route)
        logger.info("Created route %s -> %s", route.from_location_id, route.to_location_id)
        return route

    def update_route(self, route_id: int, data: TransportRouteUpdate) -> TransportRoute:
        """Price changes apply to future quotes only"""
        route = self.get_route(route_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(route, field, value)
        self.db.commit()
        self.db.refresh(route)
        return route

    def deactivate_route(self, route_id: int) -> TransportRoute:
        route = self.get_route(route_id)
        route.is_active = False
        self.db.commit()
        self.db.refresh(route)
        return route

    def route_endpoints(self, from_location_id: Optional[int] = None):
        routes = self.list_routes(active_only=True, from_location_id=from_location_id)
        origins = {r.from_location.id: r.from_location for r in routes}
        destinations = {r.to_location.id: r.to_location for r in routes}
        return list(origins.values()), list(destinations.values())

    # Policies
    def list_policies(self, category: Optional[PolicyCategory] = None, active_only: bool = False) -> List[CancellationPolicy]:
        query = self.db.query(CancellationPolicy)
        if category:
            query = query.filter(CancellationPolicy.category == PolicyCategory(category).value)
        if active_only:
            query = query.filter(CancellationPolicy.is_active == True)  # noqa: E712
        return query.order_by(CancellationPolicy.category, CancellationPolicy.hours_trigger).all()

    def get_policy(self, policy_id: int) -> CancellationPolicy:
        policy = self.db.query(CancellationPolicy).filter(CancellationPolicy.id == policy_id).first()
        if not policy:
            raise PolicyNotFound()
        return policy

    def create_policy(self, data: PolicyCreate) -> CancellationPolicy:
        values = data.model_dump()
        values["category"] = data.category.value
        values["condition"] = data.condition.value if data.condition else None
        policy = CancellationPolicy(**values, is_active=True)
        self.db.add(policy)
        self.db.commit()
        self.db.refresh(policy)
        return policy

    def update_policy(self, policy_id: int, data: PolicyUpdate) -> CancellationPolicy:
        policy = self.get_policy(policy_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            if field == "condition" and value is not None:
                value = value.value
            setattr(policy, field, value)
        self.db.commit()
        self.db.refresh(policy)
        return policy

    def deactivate_policy(self, policy_id: int) -> CancellationPolicy:
        policy = self.get_policy(policy_id)
        policy.is_active = False
        self.db.commit()
        self.db.refresh(policy)
        return policy

    def ensure_default_policies(self) -> bool:
        """Install the default no-show fine unless a no-show policy already exists"""
        existing = self.db.query(CancellationPolicy).filter(
            CancellationPolicy.category == PolicyCategory.NO_SHOW.value
        ).first()
        if existing:
            return False

        self.db.add(CancellationPolicy(
            name=NO_SHOW_DEFAULT_NAME,
            category=PolicyCategory.NO_SHOW.value,
            hours_trigger=0,
            fee_amount=NO_SHOW_DEFAULT_FEE,
            description="Applied when the traveller misses the trip",
            is_active=True
        ))
        self.db.commit()
        logger.info("Installed default no-show policy")
        return True

    # Service config
    def get_service_config(self) -> ServiceConfig:
        return LedgerRepository(self.db).get_service_config()

    def ensure_service_config(self) -> ServiceConfig:
        """Persist the settings default unless the global config row exists"""
        config = self.db.query(ServiceConfig).filter(ServiceConfig.id == GLOBAL_CONFIG_ID).first()
        if config is None:
            config = default_service_config()
            self.db.add(config)
            self.db.commit()
            self.db.refresh(config)
            logger.info("Installed default service config")
        return config

    def update_service_config(self, data: ServiceConfigUpdate, updated_by: Optional[int] = None) -> ServiceConfig:
        config = self.ensure_service_config()
        for field, value in data.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(config, field, value)
        config.updated_by = updated_by
        self.db.commit()
        self.db.refresh(config)
        logger.info(
            "Service config updated: registration %s, exam change fee %s, free changes %s",
            config.registration_price, config.exam_change_fee, config.max_free_changes
        )
        return config
