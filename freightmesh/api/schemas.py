"""Pydantic schemas for API request/response validation."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from freightmesh.core.models.domain import OpportunityStatus, RouteStatus


# Allocation schemas
class AllocateRequest(BaseModel):
    company_id: Optional[str] = None


class RouteResponse(BaseModel):
    route_id: str
    company_id: str
    truck_id: str
    driver_id: Optional[str] = None
    delivery_ids: List[str] = Field(default_factory=list)
    total_packages: int
    total_weight: float
    total_volume: float
    utilization_percent: float
    status: RouteStatus
    estimated_start_time: Optional[datetime] = None
    estimated_end_time: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AllocationResponse(BaseModel):
    success: bool = True
    message: str
    routes: List[RouteResponse] = Field(default_factory=list)
    pending_count: int = 0
    unassigned_delivery_ids: List[str] = Field(default_factory=list)


# Synergy schemas
class DetectRequest(BaseModel):
    truck_id: str
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class OpportunityResponse(BaseModel):
    opportunity_id: str
    route1_id: str
    route2_id: str
    truck1_id: str
    truck2_id: str
    hub_id: Optional[str] = None
    distance_saved_km: float
    center_lat: float
    center_lng: float
    window_start: datetime
    window_end: datetime
    estimated_meet_at: datetime
    acceptance_deadline: datetime
    expires_at: datetime
    route1_available_weight: Optional[float] = None
    route1_available_volume: Optional[float] = None
    route2_required_weight: float
    route2_required_volume: float
    potential_carbon_saved: float
    accepted_by_route1_at: Optional[datetime] = None
    accepted_by_route2_at: Optional[datetime] = None
    status: OpportunityStatus
    assigned_driver_id: Optional[str] = None
    winning_route_id: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class DetectResponse(BaseModel):
    success: bool = True
    found: bool
    opportunity: Optional[OpportunityResponse] = None


class SynergyMatchResponse(BaseModel):
    truck_id: str
    license_plate: str
    distance_km: float
    cargo_weight: float
    cargo_type: Optional[str] = None
    drop_location: str
    constraints: Dict[str, bool]
    high_probability: bool


class SynergySearchResponse(BaseModel):
    success: bool = True
    data: List[SynergyMatchResponse] = Field(default_factory=list)


class MergeRequest(BaseModel):
    searching_truck_id: Optional[str] = None
    candidate_truck_id: Optional[str] = None


class MergeResponse(BaseModel):
    success: bool = True
    message: str
    delivery_id: str
    truck_id: str
    assigned_driver_id: str
    assigned_driver: str


# Backhaul schemas
class BackhaulLoadResponse(BaseModel):
    delivery_id: str
    pickup_location: str
    pickup_lat: float
    pickup_lng: float
    drop_location: str
    cargo_type: Optional[str] = None
    cargo_weight: float
    distance_km: float


class BackhaulResponse(BaseModel):
    success: bool = True
    data: List[BackhaulLoadResponse] = Field(default_factory=list)


# Opportunity lifecycle schemas
class AcceptRequest(BaseModel):
    route_id: str


class HandshakeResponse(BaseModel):
    success: bool = True
    opportunity: OpportunityResponse
    assigned_driver: str
    long_haul_driver_id: str
    short_haul_driver_id: str
    winning_truck_id: Optional[str] = None
    winning_route_id: str
    losing_route_id: str
    transferred_delivery_ids: List[str] = Field(default_factory=list)


class GoodsLineSchema(BaseModel):
    hsn_code: str
    product_name: Optional[str] = None
    quantity: int
    unit: str
    value: str

    model_config = ConfigDict(from_attributes=True)


class ManifestResponse(BaseModel):
    bill_no: str
    document_no: str
    generated_by: str
    generated_at: datetime
    vehicle_no: str
    dispatch_place: str
    delivery_place: str
    total_distance_km: float
    valid_from: datetime
    valid_until: datetime
    transaction_type: str
    goods: List[GoodsLineSchema] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class AbsorptionManifestsResponse(BaseModel):
    success: bool = True
    freed_truck: ManifestResponse
    absorbing_truck: ManifestResponse


# Error schemas
class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    detail: Optional[str] = None
    cause: Optional[Any] = None
    timestamp: datetime = Field(default_factory=datetime.now)


# Health check schema
class HealthResponse(BaseModel):
    status: str
    timestamp: datetime = Field(default_factory=datetime.now)
    version: str = "1.0.0"
    components: Dict[str, str]
