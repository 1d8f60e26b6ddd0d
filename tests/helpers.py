"""Builders for test fleets with sensible defaults."""

from datetime import datetime, timedelta

from freightmesh.core.models.domain import (
    Delivery,
    DeliveryStatus,
    Driver,
    Hub,
    Opportunity,
    OpportunityStatus,
    RegistrationStatus,
    Route,
    RouteStatus,
    Truck,
)

COMPANY = "COMPANY_001"

# Reference point (Mumbai); 0.01 deg latitude is about 1.11 km
BASE_LAT = 19.0760
BASE_LNG = 72.8777


def north_of(km: float, lat: float = BASE_LAT) -> float:
    """Latitude km kilometres due north of lat."""
    return lat + km / 111.195


def make_driver(driver_id: str, distance: float = 0.0, hours: float = 0.0, **kwargs) -> Driver:
    return Driver(
        driver_id=driver_id,
        name=kwargs.pop("name", f"Driver {driver_id}"),
        total_distance_km=distance,
        total_hours_worked=hours,
        **kwargs,
    )


def make_truck(truck_id: str, **kwargs) -> Truck:
    values = dict(
        license_plate=f"MH-{truck_id}",
        company_id=COMPANY,
        registration_status=RegistrationStatus.APPROVED,
    )
    values.update(kwargs)
    return Truck(truck_id=truck_id, **values)


def make_delivery(delivery_id: str, weight: float = 1.0, volume: float = 1.0, order: int = 0, **kwargs) -> Delivery:
    values = dict(
        company_id=COMPANY,
        cargo_weight=weight,
        cargo_volume=volume,
        time_window_start=datetime(2025, 1, 1, 8, 0) + timedelta(hours=order),
        drop_location="Pune",
    )
    values.update(kwargs)
    return Delivery(delivery_id=delivery_id, **values)


def make_route(route_id: str, truck_id: str, driver_id: str, **kwargs) -> Route:
    values = dict(company_id=COMPANY, status=RouteStatus.ACTIVE)
    values.update(kwargs)
    return Route(route_id=route_id, truck_id=truck_id, driver_id=driver_id, **values)


def make_hub(hub_id: str, lat: float = BASE_LAT, lng: float = BASE_LNG) -> Hub:
    return Hub(hub_id=hub_id, name=f"Hub {hub_id}", latitude=lat, longitude=lng)


def make_opportunity(
    opportunity_id: str,
    route1_id: str = "RTE_1",
    route2_id: str = "RTE_2",
    truck1_id: str = "TRK_1",
    truck2_id: str = "TRK_2",
    **kwargs,
) -> Opportunity:
    now = datetime.now()
    values = dict(
        hub_id=None,
        distance_saved_km=2.0,
        center_lat=BASE_LAT,
        center_lng=BASE_LNG,
        window_start=now,
        window_end=now + timedelta(hours=1),
        estimated_meet_at=now + timedelta(minutes=30),
        acceptance_deadline=now + timedelta(minutes=30),
        expires_at=now + timedelta(hours=1),
        route1_available_weight=10.0,
        route1_available_volume=10.0,
        route2_required_weight=5.0,
        route2_required_volume=5.0,
        potential_carbon_saved=1.0,
        status=OpportunityStatus.PENDING,
    )
    values.update(kwargs)
    return Opportunity(
        opportunity_id=opportunity_id,
        route1_id=route1_id,
        route2_id=route2_id,
        truck1_id=truck1_id,
        truck2_id=truck2_id,
        **values,
    )


def two_route_fleet(workload1: float, workload2: float):
    """Two drivers, trucks and active routes; route2 carries two deliveries."""
    return [
        make_driver("DRV_1", distance=workload1),
        make_driver("DRV_2", distance=workload2),
        make_truck("TRK_1", owner_id="DRV_1", max_weight=20.0),
        make_truck("TRK_2", owner_id="DRV_2", max_weight=20.0),
        make_route("RTE_1", "TRK_1", "DRV_1", total_packages=1, total_weight=3.0, total_volume=2.0),
        make_route("RTE_2", "TRK_2", "DRV_2", total_packages=2, total_weight=5.0, total_volume=4.0),
        make_delivery("DEL_1", weight=3.0, volume=2.0, truck_id="TRK_1", driver_id="DRV_1",
                      route_id="RTE_1", status=DeliveryStatus.ALLOCATED),
        make_delivery("DEL_2", weight=2.0, volume=1.0, order=1, truck_id="TRK_2", driver_id="DRV_2",
                      route_id="RTE_2", status=DeliveryStatus.ALLOCATED),
        make_delivery("DEL_3", weight=3.0, volume=3.0, order=2, truck_id="TRK_2", driver_id="DRV_2",
                      route_id="RTE_2", status=DeliveryStatus.IN_TRANSIT),
    ]
