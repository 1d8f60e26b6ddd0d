"""Proximity matching between trucks on the road.

Three entry points:
- `detect`: a truck reports its position; the first nearby truck whose load
  it can absorb, with a hub close to both, becomes a PENDING opportunity.
  First-fit in store order, no ranking by distance.
- `search_synergy`: advisory constraint breakdown against every truck with
  an open delivery. Read-only.
- `backhaul_loads`: marketplace loads near a returning truck. Read-only.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
import logging
import uuid

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .compatibility import are_compatible
from ..errors import NotFoundError, ValidationError
from ..geo_metrics import haversine_distance, midpoint
from ..models.domain import Delivery, Opportunity, OpportunityStatus, Route, Truck
from ...db.repositories import Store, transaction
from ...services.events import (
    EventPublisher,
    OPPORTUNITY_DETECTED,
    SYNERGY_MATCH,
    publish_safely,
)
from ...utils.config import EngineSettings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class SynergyMatch:
    """One candidate truck as seen from the searching truck."""

    truck_id: str
    license_plate: str
    distance_km: float
    cargo_weight: float
    cargo_type: Optional[str]
    drop_location: str
    constraints: Dict[str, bool] = field(default_factory=dict)

    @property
    def high_probability(self) -> bool:
        return bool(self.constraints) and all(self.constraints.values())

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["high_probability"] = self.high_probability
        return data


@dataclass
class BackhaulLoad:
    """Marketplace delivery near a returning truck."""

    delivery: Delivery
    distance_km: float


class ProximityMatcher:
    """Finds consolidation partners for a truck."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        publisher: Optional[EventPublisher] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self.session_factory = session_factory
        self.publisher = publisher
        self.settings = settings or get_settings()

    # ===========================
    # Detection
    # ===========================

    async def detect(self, truck_id: str, lat: float, lng: float) -> Optional[Opportunity]:
        """Create an opportunity for the first feasible nearby truck.

        Returns None when nothing feasible is found and on any failure;
        detection runs on every position report and must not break the
        reporting path.
        """
        try:
            opportunity = await self._detect(truck_id, lat, lng)
        except IntegrityError:
            logger.info(f"Detection for truck {truck_id} lost a route claim race")
            return None
        except Exception:
            logger.exception(f"Opportunity detection failed for truck {truck_id}")
            return None

        if opportunity:
            await publish_safely(
                self.publisher,
                OPPORTUNITY_DETECTED,
                {
                    "opportunity_id": opportunity.opportunity_id,
                    "truck_a": opportunity.truck1_id,
                    "truck_b": opportunity.truck2_id,
                    "hub": opportunity.hub_id,
                    "carbon_saved": round(opportunity.potential_carbon_saved, 2),
                },
            )
        return opportunity

    async def _detect(self, truck_id: str, lat: float, lng: float) -> Optional[Opportunity]:
        settings = self.settings

        async with transaction(self.session_factory) as store:
            truck_a = await store.trucks.get(truck_id)
            if not truck_a:
                logger.warning(f"Detection requested for unknown truck {truck_id}")
                return None

            route_a = await self._single_active_route(store, truck_a.truck_id)
            if not route_a or await store.opportunities.has_active_claim(route_a.route_id):
                return None

            nearby = await store.trucks.find_within(
                lat, lng, settings.detect_geofence_km, exclude_truck_id=truck_a.truck_id
            )

            for truck_b, distance in nearby:
                route_b = await self._single_active_route(store, truck_b.truck_id)
                if not route_b:
                    continue
                if await store.opportunities.has_active_claim(route_b.route_id):
                    continue

                center_lat, center_lng = midpoint(lat, lng, truck_b.current_lat, truck_b.current_lng)
                hub_match = await store.hubs.find_nearest_within(
                    center_lat, center_lng, settings.hub_radius_km
                )
                if not hub_match:
                    logger.debug(f"No hub near {truck_a.truck_id}/{truck_b.truck_id}")
                    continue

                if not truck_a.can_absorb(truck_b.current_weight, truck_b.current_volume):
                    logger.debug(f"Truck {truck_a.truck_id} cannot absorb {truck_b.truck_id}")
                    continue

                hub, _ = hub_match
                opportunity = self._build_opportunity(
                    truck_a, truck_b, route_a, route_b, hub.hub_id, distance, center_lat, center_lng
                )
                await store.opportunities.add(opportunity)
                await store.opportunities.claim_routes(
                    opportunity.opportunity_id, (route_a.route_id, route_b.route_id)
                )

                logger.info(
                    f"Opportunity {opportunity.opportunity_id}: {truck_a.truck_id} absorbs "
                    f"{truck_b.truck_id} at hub {hub.hub_id} ({distance:.2f} km apart)"
                )
                return opportunity

        return None

    async def _single_active_route(self, store: Store, truck_id: str) -> Optional[Route]:
        routes = await store.routes.list_active_for_truck(truck_id)
        return routes[0] if len(routes) == 1 else None

    def _build_opportunity(
        self,
        truck_a: Truck,
        truck_b: Truck,
        route_a: Route,
        route_b: Route,
        hub_id: str,
        distance: float,
        center_lat: float,
        center_lng: float,
    ) -> Opportunity:
        settings = self.settings
        now = datetime.now()
        spare_weight, spare_volume = truck_a.get_residual_capacity()
        co2_per_km = truck_a.co2_per_km if truck_a.co2_per_km is not None else settings.default_co2_per_km
        expires_at = now + timedelta(minutes=settings.opportunity_expiry_minutes)

        return Opportunity(
            opportunity_id=f"OPP_{uuid.uuid4().hex[:8].upper()}",
            route1_id=route_a.route_id,
            route2_id=route_b.route_id,
            truck1_id=truck_a.truck_id,
            truck2_id=truck_b.truck_id,
            hub_id=hub_id,
            distance_saved_km=distance,
            center_lat=center_lat,
            center_lng=center_lng,
            window_start=now,
            window_end=expires_at,
            estimated_meet_at=now + timedelta(minutes=settings.meet_offset_minutes),
            acceptance_deadline=now + timedelta(minutes=settings.acceptance_window_minutes),
            expires_at=expires_at,
            route1_available_weight=spare_weight,
            route1_available_volume=spare_volume,
            route2_required_weight=truck_b.current_weight or 0.0,
            route2_required_volume=truck_b.current_volume or 0.0,
            potential_carbon_saved=distance * co2_per_km,
            status=OpportunityStatus.PENDING,
            created_at=now,
        )

    # ===========================
    # Advisory search
    # ===========================

    async def search_synergy(self, truck_id: str) -> List[SynergyMatch]:
        """Constraint breakdown for every truck within the synergy geofence.

        Raises:
            NotFoundError: truck does not exist
            ValidationError: truck has no open delivery
        """
        async with transaction(self.session_factory) as store:
            searching = await store.trucks.get(truck_id)
            if not searching:
                raise NotFoundError(f"Truck {truck_id} not found")

            own = await store.deliveries.list_open_for_truck(searching.truck_id)
            if not own:
                raise ValidationError(f"Truck {truck_id} has no active delivery")
            active = own[0]

            matches = []
            for candidate in await store.trucks.list_with_open_deliveries(searching.truck_id):
                open_deliveries = await store.deliveries.list_open_for_truck(candidate.truck_id)
                if not open_deliveries:
                    continue
                matches.append(self._evaluate(searching, active, candidate, open_deliveries[0]))

        results = [m for m in matches if m.constraints["geofence"]]
        high = [m for m in results if m.high_probability]

        logger.info(
            f"Synergy search for {truck_id}: {len(results)} in range, {len(high)} high probability"
        )

        if high:
            await publish_safely(
                self.publisher,
                SYNERGY_MATCH,
                {
                    "searching_truck": {
                        "truck_id": searching.truck_id,
                        "license_plate": searching.license_plate,
                    },
                    "matches": [m.to_dict() for m in high],
                },
            )

        return results

    def _evaluate(
        self, searching: Truck, active: Delivery, candidate: Truck, candidate_delivery: Delivery
    ) -> SynergyMatch:
        # Missing positions read as (0, 0)
        distance = haversine_distance(
            searching.current_lat or 0.0,
            searching.current_lng or 0.0,
            candidate.current_lat or 0.0,
            candidate.current_lng or 0.0,
        )

        remaining = (searching.max_weight or 0.0) - (active.cargo_weight or 0.0)

        constraints = {
            "geofence": distance <= self.settings.synergy_geofence_km,
            "capacity": remaining >= (candidate_delivery.cargo_weight or 0.0),
            "safety": are_compatible(active.cargo_type, candidate_delivery.cargo_type),
            "path": active.drop_location == candidate_delivery.drop_location,
        }

        return SynergyMatch(
            truck_id=candidate.truck_id,
            license_plate=candidate.license_plate,
            distance_km=round(distance, 2),
            cargo_weight=candidate_delivery.cargo_weight,
            cargo_type=candidate_delivery.cargo_type,
            drop_location=candidate_delivery.drop_location,
            constraints=constraints,
        )

    # ===========================
    # Backhaul
    # ===========================

    async def backhaul_loads(
        self, truck_id: Optional[str], radius_km: Optional[float] = None
    ) -> List[BackhaulLoad]:
        """Pending marketplace loads near a truck, nearest first.

        Raises:
            ValidationError: truck_id is missing
            NotFoundError: truck or its position is missing
        """
        if not truck_id:
            raise ValidationError("truck_id is required")

        radius = radius_km if radius_km is not None else self.settings.backhaul_radius_km

        async with transaction(self.session_factory) as store:
            truck = await store.trucks.get(truck_id)
            if not truck or not truck.has_position:
                raise NotFoundError("Truck or location not found")

            nearby = await store.deliveries.list_marketplace_near(
                truck.current_lat, truck.current_lng, radius
            )

        nearby.sort(key=lambda pair: pair[1])
        return [BackhaulLoad(delivery=d, distance_km=dist) for d, dist in nearby]
