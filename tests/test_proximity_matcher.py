"""Tests for opportunity detection, synergy search and backhaul lookup."""

from datetime import datetime

import pytest

from freightmesh.core.errors import NotFoundError, ValidationError
from freightmesh.core.geo_metrics import haversine_distance
from freightmesh.core.models.domain import DeliveryStatus, OpportunityStatus, RouteStatus
from freightmesh.services.events import OPPORTUNITY_DETECTED, SYNERGY_MATCH

from helpers import (
    BASE_LAT,
    BASE_LNG,
    make_delivery,
    make_driver,
    make_hub,
    make_route,
    make_truck,
    north_of,
)


def absorbing_truck(**kwargs):
    """Truck A: residual capacity 10 t / 10 m3."""
    values = dict(
        owner_id="DRV_A",
        max_weight=20.0,
        max_volume=20.0,
        current_weight=10.0,
        current_volume=10.0,
        current_lat=BASE_LAT,
        current_lng=BASE_LNG,
        co2_per_km=0.8,
        created_at=datetime(2025, 1, 1, 0, 0),
    )
    values.update(kwargs)
    return make_truck("TRK_A", **values)


def candidate_truck(truck_id, km_north, hour=1, **kwargs):
    """Candidate truck carrying 8 t / 4 m3 by default."""
    values = dict(
        owner_id="DRV_B",
        max_weight=20.0,
        current_weight=8.0,
        current_volume=4.0,
        current_lat=north_of(km_north),
        current_lng=BASE_LNG,
        created_at=datetime(2025, 1, 1, hour, 0),
    )
    values.update(kwargs)
    return make_truck(truck_id, **values)


def scenario(candidate_km=3.0, hub_lat=BASE_LAT, **candidate_kwargs):
    """Truck A and one candidate, both on an active route, plus one hub."""
    return [
        make_driver("DRV_A"),
        make_driver("DRV_B"),
        absorbing_truck(),
        candidate_truck("TRK_B", candidate_km, **candidate_kwargs),
        make_route("RTE_A", "TRK_A", "DRV_A"),
        make_route("RTE_B", "TRK_B", "DRV_B"),
        make_hub("HUB_1", lat=hub_lat),
    ]


class TestDetect:
    """Test first-fit opportunity detection."""

    async def test_feasible_pair_creates_pending_opportunity(self, matcher, seed, store, publisher):
        """Test residual 10/10 absorbs load 8/4 within 4 km with a hub nearby."""
        await seed(*scenario())

        opportunity = await matcher.detect("TRK_A", BASE_LAT, BASE_LNG)

        distance = haversine_distance(BASE_LAT, BASE_LNG, north_of(3.0), BASE_LNG)
        assert opportunity is not None
        assert opportunity.status == OpportunityStatus.PENDING
        assert opportunity.route1_id == "RTE_A"
        assert opportunity.route2_id == "RTE_B"
        assert opportunity.hub_id == "HUB_1"
        assert opportunity.potential_carbon_saved == pytest.approx(distance * 0.8)
        assert opportunity.route1_available_weight == 10.0
        assert opportunity.route2_required_weight == 8.0

        minutes = (opportunity.expires_at - opportunity.created_at).total_seconds() / 60
        assert minutes == pytest.approx(60)
        meet = (opportunity.estimated_meet_at - opportunity.created_at).total_seconds() / 60
        assert meet == pytest.approx(30)

        async with store() as s:
            saved = await s.opportunities.get(opportunity.opportunity_id)
            assert await s.opportunities.has_active_claim("RTE_A")
            assert await s.opportunities.has_active_claim("RTE_B")
        assert saved.status == OpportunityStatus.PENDING

        events = publisher.of_topic(OPPORTUNITY_DETECTED)
        assert events == [
            {
                "opportunity_id": opportunity.opportunity_id,
                "truck_a": "TRK_A",
                "truck_b": "TRK_B",
                "hub": "HUB_1",
                "carbon_saved": round(distance * 0.8, 2),
            }
        ]

    async def test_default_co2_factor(self, matcher, seed):
        """Test an unset co2_per_km falls back to 0.5."""
        fleet = scenario()
        fleet[2] = absorbing_truck(co2_per_km=None)
        await seed(*fleet)

        opportunity = await matcher.detect("TRK_A", BASE_LAT, BASE_LNG)

        assert opportunity.potential_carbon_saved == pytest.approx(opportunity.distance_saved_km * 0.5)

    async def test_nothing_within_geofence(self, matcher, seed, publisher):
        """Test trucks 5 km or more away are ignored."""
        await seed(*scenario(candidate_km=5.5))

        assert await matcher.detect("TRK_A", BASE_LAT, BASE_LNG) is None
        assert publisher.events == []

    async def test_no_hub_near_shared_position(self, matcher, seed):
        """Test a feasible pair without a hub within 5 km gives nothing."""
        await seed(*scenario(hub_lat=north_of(50.0)))

        assert await matcher.detect("TRK_A", BASE_LAT, BASE_LNG) is None

    async def test_candidate_load_too_large(self, matcher, seed):
        """Test only the reporting truck can absorb; no symmetric check."""
        await seed(*scenario(current_weight=12.0, max_weight=40.0))

        assert await matcher.detect("TRK_A", BASE_LAT, BASE_LNG) is None

    async def test_volume_must_also_fit(self, matcher, seed):
        """Test residual volume is checked alongside weight."""
        await seed(*scenario(current_volume=11.0))

        assert await matcher.detect("TRK_A", BASE_LAT, BASE_LNG) is None

    async def test_first_fit_not_nearest(self, matcher, seed):
        """Test the first feasible truck in store order wins over a nearer one."""
        await seed(
            *scenario(candidate_km=4.0),
            make_driver("DRV_C"),
            candidate_truck("TRK_C", 1.0, hour=2, owner_id="DRV_C"),
            make_route("RTE_C", "TRK_C", "DRV_C"),
        )

        opportunity = await matcher.detect("TRK_A", BASE_LAT, BASE_LNG)

        assert opportunity.truck2_id == "TRK_B"

    async def test_infeasible_candidate_is_skipped(self, matcher, seed):
        """Test search continues past a candidate it cannot absorb."""
        await seed(
            *scenario(candidate_km=1.0, current_weight=15.0),
            make_driver("DRV_C"),
            candidate_truck("TRK_C", 2.0, hour=2, owner_id="DRV_C"),
            make_route("RTE_C", "TRK_C", "DRV_C"),
        )

        opportunity = await matcher.detect("TRK_A", BASE_LAT, BASE_LNG)

        assert opportunity.truck2_id == "TRK_C"

    async def test_requires_exactly_one_active_route(self, matcher, seed):
        """Test a truck with no active route, or two, is not matched."""
        await seed(*scenario(), make_route("RTE_B2", "TRK_B", "DRV_B"))
        assert await matcher.detect("TRK_A", BASE_LAT, BASE_LNG) is None

    async def test_reporting_truck_without_active_route(self, matcher, seed):
        """Test a truck on an allocated but not started route gets nothing."""
        fleet = scenario()
        fleet[4] = make_route("RTE_A", "TRK_A", "DRV_A", status=RouteStatus.ALLOCATED)
        await seed(*fleet)

        assert await matcher.detect("TRK_A", BASE_LAT, BASE_LNG) is None

    async def test_unknown_truck(self, matcher):
        """Test an unknown truck degrades to no opportunity."""
        assert await matcher.detect("NOPE", BASE_LAT, BASE_LNG) is None

    async def test_route_cannot_join_two_open_opportunities(self, matcher, seed):
        """Test a repeated report does not create a duplicate opportunity."""
        await seed(*scenario())

        first = await matcher.detect("TRK_A", BASE_LAT, BASE_LNG)
        second = await matcher.detect("TRK_A", BASE_LAT, BASE_LNG)
        reverse = await matcher.detect("TRK_B", north_of(3.0), BASE_LNG)

        assert first is not None
        assert second is None
        assert reverse is None

    async def test_publish_failure_keeps_opportunity(self, session_factory, settings, seed, store):
        """Test a failing publisher neither raises nor rolls back."""

        class BrokenPublisher:
            async def publish(self, topic, payload):
                raise RuntimeError("socket closed")

        from freightmesh.core.consolidation import ProximityMatcher

        matcher = ProximityMatcher(session_factory, BrokenPublisher(), settings)
        await seed(*scenario())

        opportunity = await matcher.detect("TRK_A", BASE_LAT, BASE_LNG)

        assert opportunity is not None
        async with store() as s:
            assert await s.opportunities.get(opportunity.opportunity_id) is not None


def synergy_fleet():
    """Searching truck with a 4 t FOOD delivery to Pune and three other trucks."""
    return [
        make_truck("SEARCH", max_weight=10.0, current_lat=BASE_LAT, current_lng=BASE_LNG,
                   created_at=datetime(2025, 1, 1, 0)),
        make_truck("C_GOOD", current_lat=north_of(2.0), current_lng=BASE_LNG,
                   created_at=datetime(2025, 1, 1, 1)),
        make_truck("C_PARTIAL", current_lat=north_of(3.0), current_lng=BASE_LNG,
                   created_at=datetime(2025, 1, 1, 2)),
        make_truck("C_FAR", current_lat=north_of(30.0), current_lng=BASE_LNG,
                   created_at=datetime(2025, 1, 1, 3)),
        make_truck("C_DONE", current_lat=north_of(1.0), current_lng=BASE_LNG,
                   created_at=datetime(2025, 1, 1, 4)),
        make_delivery("D_SEARCH", 4.0, cargo_type="FOOD", drop_location="Pune",
                      truck_id="SEARCH", status=DeliveryStatus.IN_TRANSIT),
        make_delivery("D_GOOD", 5.0, cargo_type="PHARMA", drop_location="Pune",
                      truck_id="C_GOOD", status=DeliveryStatus.ALLOCATED),
        make_delivery("D_PARTIAL", 7.0, cargo_type="CHEMICALS", drop_location="Nashik",
                      truck_id="C_PARTIAL", status=DeliveryStatus.ALLOCATED),
        make_delivery("D_FAR", 1.0, cargo_type="FOOD", drop_location="Pune",
                      truck_id="C_FAR", status=DeliveryStatus.ALLOCATED),
        make_delivery("D_DONE", 1.0, cargo_type="FOOD", drop_location="Pune",
                      truck_id="C_DONE", status=DeliveryStatus.COMPLETED),
    ]


class TestSearchSynergy:
    """Test the advisory four-constraint search."""

    async def test_constraint_breakdown(self, matcher, seed, publisher):
        """Test results are geofence-filtered and flag all-four matches."""
        await seed(*synergy_fleet())

        matches = await matcher.search_synergy("SEARCH")

        assert [m.truck_id for m in matches] == ["C_GOOD", "C_PARTIAL"]

        good, partial = matches
        assert good.constraints == {"geofence": True, "capacity": True, "safety": True, "path": True}
        assert good.high_probability is True
        assert good.distance_km == pytest.approx(2.0, abs=0.01)
        assert good.cargo_type == "PHARMA"

        assert partial.constraints == {"geofence": True, "capacity": False, "safety": False, "path": False}
        assert partial.high_probability is False

        events = publisher.of_topic(SYNERGY_MATCH)
        assert len(events) == 1
        assert events[0]["searching_truck"]["truck_id"] == "SEARCH"
        assert [m["truck_id"] for m in events[0]["matches"]] == ["C_GOOD"]

    async def test_no_event_without_high_probability(self, matcher, seed, publisher):
        """Test nothing is published when no match meets all four constraints."""
        fleet = [obj for obj in synergy_fleet() if getattr(obj, "delivery_id", None) != "D_GOOD"]
        await seed(*fleet)

        matches = await matcher.search_synergy("SEARCH")

        assert [m.truck_id for m in matches] == ["C_PARTIAL"]
        assert publisher.events == []

    async def test_never_writes(self, matcher, seed, store):
        """Test statuses and owners are unchanged after a search."""
        await seed(*synergy_fleet())

        await matcher.search_synergy("SEARCH")

        async with store() as s:
            delivery = await s.deliveries.get("D_GOOD")
        assert delivery.truck_id == "C_GOOD"
        assert delivery.status == DeliveryStatus.ALLOCATED

    async def test_unknown_truck(self, matcher):
        with pytest.raises(NotFoundError):
            await matcher.search_synergy("NOPE")

    async def test_truck_without_open_delivery(self, matcher, seed):
        await seed(make_truck("IDLE", current_lat=BASE_LAT, current_lng=BASE_LNG))

        with pytest.raises(ValidationError):
            await matcher.search_synergy("IDLE")


class TestBackhaulLoads:
    """Test marketplace loads near a returning truck."""

    async def test_nearest_first_within_radius(self, matcher, seed):
        """Test only pending marketplace loads under 20 km, sorted by distance."""
        await seed(
            make_truck("RETURN", current_lat=BASE_LAT, current_lng=BASE_LNG),
            make_delivery("MKT_10", pickup_lat=north_of(10.0), pickup_lng=BASE_LNG, is_marketplace_load=True),
            make_delivery("MKT_2", pickup_lat=north_of(2.0), pickup_lng=BASE_LNG, is_marketplace_load=True),
            make_delivery("MKT_25", pickup_lat=north_of(25.0), pickup_lng=BASE_LNG, is_marketplace_load=True),
            make_delivery("OWN_1", pickup_lat=north_of(1.0), pickup_lng=BASE_LNG),
            make_delivery("MKT_TAKEN", pickup_lat=north_of(1.0), pickup_lng=BASE_LNG,
                          is_marketplace_load=True, status=DeliveryStatus.ALLOCATED),
        )

        loads = await matcher.backhaul_loads("RETURN")

        assert [load.delivery.delivery_id for load in loads] == ["MKT_2", "MKT_10"]
        assert loads[0].distance_km == pytest.approx(2.0, abs=0.01)

    async def test_custom_radius(self, matcher, seed):
        await seed(
            make_truck("RETURN", current_lat=BASE_LAT, current_lng=BASE_LNG),
            make_delivery("MKT_10", pickup_lat=north_of(10.0), pickup_lng=BASE_LNG, is_marketplace_load=True),
        )

        assert await matcher.backhaul_loads("RETURN", radius_km=5.0) == []

    async def test_truck_id_required(self, matcher):
        with pytest.raises(ValidationError):
            await matcher.backhaul_loads(None)

    async def test_truck_without_position(self, matcher, seed):
        await seed(make_truck("NOWHERE"))

        with pytest.raises(NotFoundError):
            await matcher.backhaul_loads("NOWHERE")
