"""Batch allocation of pending deliveries to available trucks.

Single-pass greedy bin packing:
1. Deliveries are queued by time-window start (earliest commitments first)
2. Trucks are filled in store order, each continuing from where the previous
   truck stopped in the queue
3. A truck stops filling at the first delivery that does not fit; there is
   no look-ahead and no reordering
4. Everything allocated in one call is committed in one transaction
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional
import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..errors import CapacityError, StateConflictError, ValidationError
from ..models.domain import Delivery, DeliveryStatus, Route, RouteStatus, Truck
from ...db.repositories import transaction
from ...utils.config import EngineSettings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class Allocation:
    """Deliveries planned onto one truck."""

    truck: Truck
    deliveries: List[Delivery]
    total_weight: float
    total_volume: float

    @property
    def utilization_percent(self) -> float:
        """Informational only; not used for any decision."""
        if not self.truck.max_weight:
            return 0.0
        return self.total_weight / self.truck.max_weight * 100


@dataclass
class AllocationResult:
    """Outcome of one allocation run."""

    routes: List[Route] = field(default_factory=list)
    pending_count: int = 0
    unassigned_delivery_ids: List[str] = field(default_factory=list)
    message: str = ""


def plan_allocation(deliveries: List[Delivery], trucks: List[Truck]) -> List[Allocation]:
    """Pack an ordered delivery queue onto an ordered list of trucks.

    Args:
        deliveries: Pending deliveries, already in time-window order
        trucks: Eligible trucks in store order

    Returns:
        One Allocation per truck that received at least one delivery
    """
    allocations = []
    index = 0

    for truck in trucks:
        if index >= len(deliveries):
            break

        weight = 0.0
        volume = 0.0
        loaded = []

        while index < len(deliveries):
            delivery = deliveries[index]
            next_weight = weight + (delivery.cargo_weight or 0.0)
            next_volume = volume + (delivery.cargo_volume or 0.0)

            if not truck.fits(next_weight, next_volume):
                # Truck full
                break

            loaded.append(delivery)
            weight, volume = next_weight, next_volume
            index += 1

        if loaded:
            allocations.append(
                Allocation(truck=truck, deliveries=loaded, total_weight=weight, total_volume=volume)
            )

    return allocations


class RouteAllocator:
    """Creates routes from pending deliveries for one company at a time."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[EngineSettings] = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or get_settings()

    async def allocate(self, company_id: Optional[str]) -> AllocationResult:
        """Allocate every pending delivery of a company that fits the fleet.

        Raises:
            ValidationError: company_id is missing
            CapacityError: deliveries are pending but no truck is eligible
            StateConflictError: a truck or delivery was taken concurrently
        """
        if not company_id:
            raise ValidationError("company_id is required")

        async with transaction(self.session_factory) as store:
            pending = await store.deliveries.list_pending(company_id)
            if not pending:
                logger.info(f"No pending deliveries for company {company_id}")
                return AllocationResult(message="No pending deliveries to allocate")

            trucks = await store.trucks.list_allocatable(company_id)
            if not trucks:
                raise CapacityError(
                    "No available trucks for allocation",
                    cause=f"{len(pending)} pending deliveries for company {company_id}",
                )

            allocations = plan_allocation(pending, trucks)
            routes = []

            for allocation in allocations:
                route = await self._commit_allocation(store, company_id, allocation)
                routes.append(route)

        assigned = {d.delivery_id for a in allocations for d in a.deliveries}
        unassigned = [d.delivery_id for d in pending if d.delivery_id not in assigned]

        logger.info(
            f"Allocated {len(routes)} routes for company {company_id}: "
            f"{len(assigned)}/{len(pending)} deliveries assigned"
        )

        return AllocationResult(
            routes=routes,
            pending_count=len(pending),
            unassigned_delivery_ids=unassigned,
            message=f"Allocated {len(routes)} routes for {len(pending)} packages",
        )

    async def _commit_allocation(self, store, company_id: str, allocation: Allocation) -> Route:
        """Write one route: claim truck, create route, bind deliveries."""
        truck = allocation.truck

        if not await store.trucks.claim_for_route(truck.truck_id):
            raise StateConflictError(
                f"Truck {truck.truck_id} is no longer available",
                cause="claimed by a concurrent allocation",
            )

        now = datetime.now()
        route = Route(
            route_id=f"RTE_{uuid.uuid4().hex[:8].upper()}",
            company_id=company_id,
            truck_id=truck.truck_id,
            driver_id=truck.owner_id,
            delivery_ids=[d.delivery_id for d in allocation.deliveries],
            total_packages=len(allocation.deliveries),
            total_weight=allocation.total_weight,
            total_volume=allocation.total_volume,
            utilization_percent=allocation.utilization_percent,
            status=RouteStatus.ALLOCATED,
            estimated_start_time=now,
            estimated_end_time=now + timedelta(minutes=self.settings.route_estimated_duration_minutes),
            created_at=now,
        )
        await store.routes.add(route)

        updated = await store.deliveries.update_many(
            route.delivery_ids,
            expected_status=DeliveryStatus.PENDING,
            truck_id=truck.truck_id,
            driver_id=truck.owner_id,
            route_id=route.route_id,
            status=DeliveryStatus.ALLOCATED,
        )
        if updated != len(route.delivery_ids):
            raise StateConflictError(
                f"Deliveries for route {route.route_id} changed during allocation",
                cause=f"expected {len(route.delivery_ids)} pending, updated {updated}",
            )

        logger.info(
            f"Route {route.route_id}: truck {truck.truck_id}, "
            f"{route.total_packages} deliveries, {route.utilization_percent:.1f}% utilization"
        )
        return route
