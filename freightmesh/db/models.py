"""ORM Models for Database Persistence.

SQLAlchemy ORM models mapping to domain models:
- DriverModel: Drivers and their cumulative workload
- HubModel: Consolidation meeting points
- TruckModel: Fleet trucks with capacity, live load and position
- DeliveryModel: Shipment legs
- RouteModel: Allocation results
- OpportunityModel: Detected consolidations and their acceptance state
- ActiveRouteClaimModel: One row per route held by a non-terminal opportunity

Business identifiers are strings; foreign keys reference them.
"""

from datetime import datetime

from sqlalchemy import (
    Column,
    String,
    Integer,
    Float,
    Boolean,
    DateTime,
    ForeignKey,
    Enum as SQLEnum,
    Index,
)

from .database import Base
from ..core.models.domain import (
    DeliveryStatus,
    RegistrationStatus,
    RouteStatus,
    OpportunityStatus,
)


# ===========================
# Driver & Hub
# ===========================

class DriverModel(Base):
    """Driver model with workload counters."""

    __tablename__ = "drivers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    driver_id = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True, index=True)
    company_id = Column(String(50), nullable=True, index=True)
    home_base_city = Column(String(255), nullable=True)

    # Workload (ranking input for relay assignment)
    total_distance_km = Column(Float, nullable=False, default=0.0)
    total_hours_worked = Column(Float, nullable=False, default=0.0)

    created_at = Column(DateTime, nullable=False, default=datetime.now)


class HubModel(Base):
    """Fixed consolidation hub."""

    __tablename__ = "hubs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    hub_id = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    radius_km = Column(Float, nullable=False, default=1.0)


# ===========================
# Truck
# ===========================

class TruckModel(Base):
    """Truck model for fleet management."""

    __tablename__ = "trucks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    truck_id = Column(String(50), unique=True, nullable=False, index=True)
    license_plate = Column(String(50), nullable=False)
    company_id = Column(String(50), nullable=False, index=True)
    owner_id = Column(String(50), ForeignKey("drivers.driver_id"), nullable=True, index=True)

    # Capacity (NULL = unbounded)
    max_weight = Column(Float, nullable=True)
    max_volume = Column(Float, nullable=True)

    # Live load and position (written by telemetry)
    current_weight = Column(Float, nullable=False, default=0.0)
    current_volume = Column(Float, nullable=False, default=0.0)
    current_lat = Column(Float, nullable=True)
    current_lng = Column(Float, nullable=True)

    # Availability
    is_available = Column(Boolean, nullable=False, default=True)
    registration_status = Column(
        SQLEnum(RegistrationStatus), nullable=False, default=RegistrationStatus.PENDING
    )

    co2_per_km = Column(Float, nullable=True)
    home_base_hub_id = Column(String(50), ForeignKey("hubs.hub_id"), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.now, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    __table_args__ = (
        Index("idx_trucks_company_available", "company_id", "is_available", "registration_status"),
    )


# ===========================
# Delivery
# ===========================

class DeliveryModel(Base):
    """Delivery model for shipment legs."""

    __tablename__ = "deliveries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    delivery_id = Column(String(50), unique=True, nullable=False, index=True)
    company_id = Column(String(50), nullable=False, index=True)

    # Cargo
    cargo_weight = Column(Float, nullable=False, default=0.0)
    cargo_volume = Column(Float, nullable=False, default=0.0)
    cargo_type = Column(String(50), nullable=True)
    package_count = Column(Integer, nullable=False, default=1)
    base_earnings = Column(Float, nullable=False, default=0.0)

    time_window_start = Column(DateTime, nullable=False, index=True)

    # Locations
    pickup_location = Column(String(255), nullable=False, default="")
    pickup_lat = Column(Float, nullable=True)
    pickup_lng = Column(Float, nullable=True)
    drop_location = Column(String(255), nullable=False, default="")
    drop_lat = Column(Float, nullable=True)
    drop_lng = Column(Float, nullable=True)
    distance_km = Column(Float, nullable=False, default=0.0)

    # Status and ownership
    status = Column(SQLEnum(DeliveryStatus), nullable=False, default=DeliveryStatus.PENDING, index=True)
    truck_id = Column(String(50), ForeignKey("trucks.truck_id"), nullable=True, index=True)
    driver_id = Column(String(50), ForeignKey("drivers.driver_id"), nullable=True, index=True)
    route_id = Column(String(50), ForeignKey("routes.route_id"), nullable=True, index=True)

    is_marketplace_load = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    __table_args__ = (
        Index("idx_deliveries_company_status_window", "company_id", "status", "time_window_start"),
        Index("idx_deliveries_truck_status", "truck_id", "status"),
    )


# ===========================
# Route
# ===========================

class RouteModel(Base):
    """Route model for allocation results."""

    __tablename__ = "routes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    route_id = Column(String(50), unique=True, nullable=False, index=True)
    company_id = Column(String(50), nullable=False, index=True)
    truck_id = Column(String(50), ForeignKey("trucks.truck_id"), nullable=False, index=True)
    driver_id = Column(String(50), ForeignKey("drivers.driver_id"), nullable=True, index=True)

    # Aggregates
    total_packages = Column(Integer, nullable=False, default=0)
    total_weight = Column(Float, nullable=False, default=0.0)
    total_volume = Column(Float, nullable=False, default=0.0)
    utilization_percent = Column(Float, nullable=False, default=0.0)

    status = Column(SQLEnum(RouteStatus), nullable=False, default=RouteStatus.ALLOCATED, index=True)
    estimated_start_time = Column(DateTime, nullable=True)
    estimated_end_time = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.now, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    __table_args__ = (
        Index("idx_routes_truck_status", "truck_id", "status"),
    )


# ===========================
# Opportunity
# ===========================

class OpportunityModel(Base):
    """Consolidation opportunity between two active routes."""

    __tablename__ = "opportunities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    opportunity_id = Column(String(50), unique=True, nullable=False, index=True)

    route1_id = Column(String(50), ForeignKey("routes.route_id"), nullable=False, index=True)
    route2_id = Column(String(50), ForeignKey("routes.route_id"), nullable=False, index=True)
    truck1_id = Column(String(50), ForeignKey("trucks.truck_id"), nullable=False)
    truck2_id = Column(String(50), ForeignKey("trucks.truck_id"), nullable=False)
    hub_id = Column(String(50), ForeignKey("hubs.hub_id"), nullable=True)

    # Overlap geometry
    distance_saved_km = Column(Float, nullable=False, default=0.0)
    center_lat = Column(Float, nullable=False)
    center_lng = Column(Float, nullable=False)
    window_start = Column(DateTime, nullable=False)
    window_end = Column(DateTime, nullable=False)
    estimated_meet_at = Column(DateTime, nullable=False)
    acceptance_deadline = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)

    # Capacity figures
    route1_available_weight = Column(Float, nullable=True)
    route1_available_volume = Column(Float, nullable=True)
    route2_required_weight = Column(Float, nullable=False, default=0.0)
    route2_required_volume = Column(Float, nullable=False, default=0.0)

    potential_carbon_saved = Column(Float, nullable=False, default=0.0)

    # Acceptance
    accepted_by_route1_at = Column(DateTime, nullable=True)
    accepted_by_route2_at = Column(DateTime, nullable=True)
    status = Column(
        SQLEnum(OpportunityStatus), nullable=False, default=OpportunityStatus.PENDING, index=True
    )

    assigned_driver_id = Column(String(50), ForeignKey("drivers.driver_id"), nullable=True)
    winning_route_id = Column(String(50), ForeignKey("routes.route_id"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now, index=True)
    completed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_opportunities_status_expires", "status", "expires_at"),
    )


class ActiveRouteClaimModel(Base):
    """Route held by a non-terminal opportunity.

    The primary key on route_id makes a second concurrent claim fail at
    insert time.
    """

    __tablename__ = "active_route_claims"

    route_id = Column(String(50), ForeignKey("routes.route_id"), primary_key=True)
    opportunity_id = Column(
        String(50), ForeignKey("opportunities.opportunity_id"), nullable=False, index=True
    )
    claimed_at = Column(DateTime, nullable=False, default=datetime.now)
