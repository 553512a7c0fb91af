from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime, time
from decimal import Decimal

from src.pricing.schemas import PolicyCategory, PolicyCondition

# Location Schemas
class LocationBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    code: str = Field(..., min_length=1, max_length=20)
    address: Optional[str] = None
    location_url: Optional[str] = None

class LocationCreate(LocationBase):
    pass

class LocationUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    code: Optional[str] = Field(None, min_length=1, max_length=20)
    address: Optional[str] = None
    location_url: Optional[str] = None
    is_active: Optional[bool] = None

class Location(LocationBase):
    id: int
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

# Transport Route Schemas
class TransportRouteBase(BaseModel):
    from_location_id: int
    to_location_id: int
    one_way_price: Decimal = Field(..., ge=0)
    round_trip_price: Decimal = Field(..., ge=0)
    departure_time: Optional[time] = None
    arrival_time: Optional[time] = None

class TransportRouteCreate(TransportRouteBase):
    pass

class TransportRouteUpdate(BaseModel):
    one_way_price: Optional[Decimal] = Field(None, ge=0)
    round_trip_price: Optional[Decimal] = Field(None, ge=0)
    departure_time: Optional[time] = None
    arrival_time: Optional[time] = None
    is_active: Optional[bool] = None

class TransportRoute(TransportRouteBase):
    id: int
    is_active: bool
    from_location_name: Optional[str] = None
    to_location_name: Optional[str] = None

    class Config:
        from_attributes = True

# Cancellation Policy Schemas
class PolicyBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    category: PolicyCategory
    hours_trigger: Optional[float] = Field(None, ge=0)
    condition: Optional[PolicyCondition] = None
    fee_amount: Decimal = Field(Decimal("0"), ge=0)
    description: Optional[str] = None

class PolicyCreate(PolicyBase):
    pass

class PolicyUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    hours_trigger: Optional[float] = Field(None, ge=0)
    condition: Optional[PolicyCondition] = None
    fee_amount: Optional[Decimal] = Field(None, ge=0)
    description: Optional[str] = None
    is_active: Optional[bool] = None

class Policy(PolicyBase):
    id: int
    is_active: bool

    class Config:
        from_attributes = True

# Service Config Schemas
class ServiceConfigUpdate(BaseModel):
    registration_price: Optional[Decimal] = Field(None, ge=0)
    exam_change_fee: Optional[Decimal] = Field(None, ge=0)
    max_free_changes: Optional[int] = Field(None, ge=0)

class ServiceConfig(BaseModel):
    id: str
    registration_price: Decimal
    exam_change_fee: Decimal
    max_free_changes: int
    updated_at: Optional[datetime] = None
    updated_by: Optional[int] = None

    class Config:
        from_attributes = True

class RouteEndpoints(BaseModel):
    """Locations reachable as origins or destinations of active routes"""
    origins: List[Location] = []
    destinations: List[Location] = []

    @field_validator("origins", "destinations")
    @classmethod
    def sort_by_name(cls, v):
        return sorted(v, key=lambda loc: loc.name)
