"""Driver relay rules for merged loads.

Workload score = total_distance_km + total_hours_worked. Kilometres and
hours are added without conversion; the score is a ranking heuristic.

Two independent rules use it:
- `assign_relay` decides long-haul/short-haul drivers for a completed
  opportunity; the long-haul driver keeps their own truck.
- `RelayAssigner.confirm_merge` picks the driver for a merged delivery while
  the cargo always moves onto the searching truck. Which truck and which
  driver are decided separately.
"""

from dataclasses import dataclass
from typing import List, Optional
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..errors import NotFoundError, StateConflictError, ValidationError
from ..models.domain import Driver
from ...db.repositories import transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RelayAssignment:
    """Result of ranking two drivers for a consolidation."""

    long_haul_driver: Driver
    short_haul_driver: Driver
    winning_truck_id: Optional[str]


@dataclass
class MergeResult:
    """Outcome of merging a candidate truck's delivery onto the searching truck."""

    delivery_id: str
    truck_id: str
    assigned_driver_id: str
    assigned_driver_name: str
    message: str = "Consolidation successful"


def assign_relay(driver1: Driver, driver2: Driver) -> RelayAssignment:
    """Pick the long-haul driver; ties go to driver1."""
    if driver1.workload >= driver2.workload:
        long_haul, short_haul = driver1, driver2
    else:
        long_haul, short_haul = driver2, driver1

    return RelayAssignment(
        long_haul_driver=long_haul,
        short_haul_driver=short_haul,
        winning_truck_id=long_haul.truck_id,
    )


def rank_by_workload(drivers: List[Driver]) -> List[Driver]:
    """Drivers by descending workload; input order breaks ties."""
    return sorted(drivers, key=lambda d: d.workload, reverse=True)


class RelayAssigner:
    """Applies the merge rule outside the opportunity flow."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def confirm_merge(
        self, searching_truck_id: Optional[str], candidate_truck_id: Optional[str]
    ) -> MergeResult:
        """Move the candidate truck's open delivery onto the searching truck.

        The delivery is rebound to the searching truck's active route when it
        has exactly one, otherwise it is left without a route. Route
        aggregates on both sides follow the move.

        Raises:
            ValidationError: a truck id is missing or both are the same
            NotFoundError: a truck or owning driver does not exist
            StateConflictError: the candidate has no open delivery
        """
        if not searching_truck_id or not candidate_truck_id:
            raise ValidationError("searching_truck_id and candidate_truck_id are required")
        if searching_truck_id == candidate_truck_id:
            raise ValidationError("A truck cannot merge with itself")

        async with transaction(self.session_factory) as store:
            searching = await store.trucks.get(searching_truck_id)
            candidate = await store.trucks.get(candidate_truck_id)
            if not searching or not candidate:
                raise NotFoundError("Truck(s) not found")

            open_deliveries = await store.deliveries.list_open_for_truck(candidate.truck_id)
            if not open_deliveries:
                raise StateConflictError(
                    f"Truck {candidate.truck_id} has no active delivery to merge"
                )
            delivery = open_deliveries[0]

            drivers = []
            for truck in (searching, candidate):
                driver = await store.drivers.get(truck.owner_id) if truck.owner_id else None
                if not driver:
                    raise NotFoundError(f"Driver for truck {truck.truck_id} not found")
                driver.truck_id = truck.truck_id
                drivers.append(driver)

            optimal = rank_by_workload(drivers)[0]

            # The delivery follows its truck onto the searching truck's active route
            active = await store.routes.list_active_for_truck(searching.truck_id)
            target_route_id = active[0].route_id if len(active) == 1 else None

            await store.deliveries.update_many(
                [delivery.delivery_id],
                driver_id=optimal.driver_id,
                truck_id=searching.truck_id,
                route_id=target_route_id,
            )
            if delivery.route_id != target_route_id:
                weight = delivery.cargo_weight or 0.0
                volume = delivery.cargo_volume or 0.0
                if delivery.route_id:
                    await store.routes.add_load(delivery.route_id, -weight, -volume, -1)
                if target_route_id:
                    await store.routes.add_load(target_route_id, weight, volume, 1)

        logger.info(
            f"Merged delivery {delivery.delivery_id} from {candidate.truck_id} onto "
            f"{searching.truck_id}, driver {optimal.driver_id}"
        )

        return MergeResult(
            delivery_id=delivery.delivery_id,
            truck_id=searching.truck_id,
            assigned_driver_id=optimal.driver_id,
            assigned_driver_name=optimal.name,
        )
