"""Domain models for the FreightMesh allocation and consolidation engine."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple
from enum import Enum


class DeliveryStatus(str, Enum):
    """Delivery lifecycle statuses."""

    PENDING = "pending"
    ALLOCATED = "allocated"
    ACCEPTED = "accepted"
    IN_TRANSIT = "in_transit"
    PICKED_UP = "picked_up"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ABSORPTION_TRANSFERRED = "absorption_transferred"


# Deliveries in these states no longer occupy a truck
CLOSED_DELIVERY_STATUSES = (DeliveryStatus.COMPLETED, DeliveryStatus.CANCELLED)


class RegistrationStatus(str, Enum):
    """Truck registration statuses."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RouteStatus(str, Enum):
    """Route lifecycle statuses."""

    ALLOCATED = "allocated"
    ACTIVE = "active"
    COMPLETED = "completed"
    MERGED = "merged"


class OpportunityStatus(str, Enum):
    """Consolidation opportunity statuses."""

    PENDING = "pending"
    ACCEPTED_BY_ROUTE1 = "accepted_by_route1"
    ACCEPTED_BY_ROUTE2 = "accepted_by_route2"
    BOTH_ACCEPTED = "both_accepted"
    COMPLETED = "completed"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in (OpportunityStatus.COMPLETED, OpportunityStatus.EXPIRED)


# Still awaiting acceptance; BOTH_ACCEPTED waits for the handshake instead
EXPIRABLE_OPPORTUNITY_STATUSES = (
    OpportunityStatus.PENDING,
    OpportunityStatus.ACCEPTED_BY_ROUTE1,
    OpportunityStatus.ACCEPTED_BY_ROUTE2,
)


@dataclass
class Delivery:
    """A single shipment leg."""

    delivery_id: str
    company_id: str

    # Cargo
    cargo_weight: float = 0.0
    cargo_volume: float = 0.0
    cargo_type: Optional[str] = None
    package_count: int = 1
    base_earnings: float = 0.0

    # Timing
    time_window_start: datetime = field(default_factory=datetime.now)

    # Locations
    pickup_location: str = ""
    pickup_lat: Optional[float] = None
    pickup_lng: Optional[float] = None
    drop_location: str = ""
    drop_lat: Optional[float] = None
    drop_lng: Optional[float] = None
    distance_km: float = 0.0

    # Status and ownership (nullable until allocated)
    status: DeliveryStatus = DeliveryStatus.PENDING
    truck_id: Optional[str] = None
    driver_id: Optional[str] = None
    route_id: Optional[str] = None

    # Offered on the marketplace for backhaul
    is_marketplace_load: bool = False

    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class Truck:
    """Truck with capacity, live load and position."""

    truck_id: str
    license_plate: str
    company_id: str
    owner_id: Optional[str] = None  # Owning driver

    # Capacity (None = unbounded)
    max_weight: Optional[float] = None
    max_volume: Optional[float] = None

    # Live load and position, owned by telemetry
    current_weight: float = 0.0
    current_volume: float = 0.0
    current_lat: Optional[float] = None
    current_lng: Optional[float] = None

    is_available: bool = True
    registration_status: RegistrationStatus = RegistrationStatus.PENDING
    co2_per_km: Optional[float] = None
    home_base_hub_id: Optional[str] = None

    created_at: datetime = field(default_factory=datetime.now)

    @property
    def has_position(self) -> bool:
        return self.current_lat is not None and self.current_lng is not None

    def fits(self, weight: float, volume: float) -> bool:
        """Check if a total load stays within capacity."""
        fits_weight = weight <= self.max_weight if self.max_weight else True
        fits_volume = volume <= self.max_volume if self.max_volume else True
        return fits_weight and fits_volume

    def get_residual_capacity(self) -> Tuple[Optional[float], Optional[float]]:
        """Spare weight and volume given the current load (None = unbounded)."""
        weight = (
            self.max_weight - (self.current_weight or 0.0)
            if self.max_weight
            else None
        )
        volume = (
            self.max_volume - (self.current_volume or 0.0)
            if self.max_volume
            else None
        )
        return weight, volume

    def can_absorb(self, weight: float, volume: float) -> bool:
        """Check if spare capacity covers another truck's whole load."""
        spare_weight, spare_volume = self.get_residual_capacity()
        weight_ok = spare_weight is None or spare_weight >= (weight or 0.0)
        volume_ok = spare_volume is None or spare_volume >= (volume or 0.0)
        return weight_ok and volume_ok


@dataclass
class Driver:
    """Driver with cumulative workload."""

    driver_id: str
    name: str
    phone: Optional[str] = None
    home_base_city: Optional[str] = None
    total_distance_km: float = 0.0
    total_hours_worked: float = 0.0

    # Truck the driver is operating in the current context
    truck_id: Optional[str] = None

    @property
    def workload(self) -> float:
        """Workload score. Kilometres and hours are summed as-is."""
        return (self.total_distance_km or 0.0) + (self.total_hours_worked or 0.0)


@dataclass
class Hub:
    """Fixed consolidation meeting point."""

    hub_id: str
    name: str
    latitude: float
    longitude: float
    radius_km: float = 1.0


@dataclass
class Route:
    """Deliveries bound to one truck and driver."""

    route_id: str
    company_id: str
    truck_id: str
    driver_id: Optional[str]

    delivery_ids: List[str] = field(default_factory=list)
    total_packages: int = 0
    total_weight: float = 0.0
    total_volume: float = 0.0
    utilization_percent: float = 0.0

    status: RouteStatus = RouteStatus.ALLOCATED
    estimated_start_time: Optional[datetime] = None
    estimated_end_time: Optional[datetime] = None
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class Opportunity:
    """Detected consolidation between two active routes."""

    opportunity_id: str
    route1_id: str
    route2_id: str
    truck1_id: str
    truck2_id: str
    hub_id: Optional[str]

    # Overlap geometry
    distance_saved_km: float
    center_lat: float
    center_lng: float
    window_start: datetime
    window_end: datetime
    estimated_meet_at: datetime
    acceptance_deadline: datetime
    expires_at: datetime

    # Spare capacity of route1's truck (None = unbounded) vs. load of route2's truck
    route1_available_weight: Optional[float]
    route1_available_volume: Optional[float]
    route2_required_weight: float
    route2_required_volume: float

    potential_carbon_saved: float = 0.0

    accepted_by_route1_at: Optional[datetime] = None
    accepted_by_route2_at: Optional[datetime] = None
    status: OpportunityStatus = OpportunityStatus.PENDING

    assigned_driver_id: Optional[str] = None
    winning_route_id: Optional[str] = None  # Route that absorbed the cargo
    created_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
