"""Opportunity acceptance and completion.

State machine:

    PENDING -> ACCEPTED_BY_ROUTE1 | ACCEPTED_BY_ROUTE2 -> BOTH_ACCEPTED -> COMPLETED
    PENDING | ACCEPTED_* -> EXPIRED (expire_overdue)

`accept` is the self-service path each side calls; `handshake` is the
operator-triggered completion and does not wait for BOTH_ACCEPTED. Only
deliveries still open on the losing route change hands; completed and
cancelled drops stay where they were. Every status write is a
compare-and-swap on the status the caller observed.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .relay_assigner import RelayAssignment, assign_relay
from ..errors import InvalidArgumentError, NotFoundError, StateConflictError
from ..models.domain import (
    DeliveryStatus,
    Opportunity,
    OpportunityStatus,
    RouteStatus,
)
from ...db.repositories import transaction
from ...services.events import EventPublisher, OPPORTUNITY_COMPLETED, publish_safely
from ...utils.config import EngineSettings, get_settings

logger = logging.getLogger(__name__)

ROUTE1 = "route1"
ROUTE2 = "route2"


def next_acceptance_status(current: OpportunityStatus, side: str) -> OpportunityStatus:
    """Combine one side's acceptance with the current status.

    Only the other side's prior acceptance promotes to BOTH_ACCEPTED;
    repeating a side's own acceptance keeps its single-side status.
    """
    if side == ROUTE1:
        if current == OpportunityStatus.ACCEPTED_BY_ROUTE2:
            return OpportunityStatus.BOTH_ACCEPTED
        return OpportunityStatus.ACCEPTED_BY_ROUTE1

    if side == ROUTE2:
        if current == OpportunityStatus.ACCEPTED_BY_ROUTE1:
            return OpportunityStatus.BOTH_ACCEPTED
        return OpportunityStatus.ACCEPTED_BY_ROUTE2

    raise ValueError(f"Unknown side: {side}")


@dataclass
class HandshakeResult:
    """Outcome of completing an opportunity."""

    opportunity: Opportunity
    relay: RelayAssignment
    winning_route_id: str
    losing_route_id: str
    transferred_delivery_ids: List[str] = field(default_factory=list)


class OpportunityLedger:
    """Owns opportunity status transitions."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        publisher: Optional[EventPublisher] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self.session_factory = session_factory
        self.publisher = publisher
        self.settings = settings or get_settings()

    async def get(self, opportunity_id: str) -> Opportunity:
        async with transaction(self.session_factory) as store:
            opportunity = await store.opportunities.get(opportunity_id)
        if not opportunity:
            raise NotFoundError(f"Opportunity {opportunity_id} not found")
        return opportunity

    async def accept(self, opportunity_id: str, route_id: str) -> Opportunity:
        """Record one route's acceptance.

        Raises:
            NotFoundError: opportunity does not exist
            StateConflictError: opportunity is terminal, or the status kept
                changing underneath for every attempt
            InvalidArgumentError: route_id is not one of the two routes
        """
        attempts = max(1, self.settings.accept_max_attempts)

        for attempt in range(1, attempts + 1):
            async with transaction(self.session_factory) as store:
                opportunity = await store.opportunities.get(opportunity_id)
                if not opportunity:
                    raise NotFoundError(f"Opportunity {opportunity_id} not found")
                if opportunity.status.is_terminal:
                    raise StateConflictError(
                        f"Opportunity {opportunity_id} is already {opportunity.status.value}"
                    )

                if route_id == opportunity.route1_id:
                    side, stamp = ROUTE1, "accepted_by_route1_at"
                elif route_id == opportunity.route2_id:
                    side, stamp = ROUTE2, "accepted_by_route2_at"
                else:
                    raise InvalidArgumentError(
                        f"Route {route_id} is not part of opportunity {opportunity_id}"
                    )

                observed = opportunity.status
                new_status = next_acceptance_status(observed, side)
                now = datetime.now()

                swapped = await store.opportunities.compare_and_set(
                    opportunity_id, observed, status=new_status, **{stamp: now}
                )

            if swapped:
                opportunity.status = new_status
                setattr(opportunity, stamp, now)
                logger.info(
                    f"Opportunity {opportunity_id}: {side} accepted, "
                    f"{observed.value} -> {new_status.value}"
                )
                return opportunity

            logger.warning(
                f"Opportunity {opportunity_id} changed during acceptance "
                f"(attempt {attempt}/{attempts})"
            )

        raise StateConflictError(
            f"Opportunity {opportunity_id} is being modified concurrently",
            cause=f"status changed on each of {attempts} attempts",
        )

    async def handshake(self, opportunity_id: str) -> HandshakeResult:
        """Complete an opportunity and hand the losing route's cargo over.

        Raises:
            NotFoundError: opportunity, a route or a driver does not exist
            StateConflictError: opportunity is terminal or changed concurrently
        """
        async with transaction(self.session_factory) as store:
            opportunity = await store.opportunities.get(opportunity_id)
            if not opportunity:
                raise NotFoundError(f"Opportunity {opportunity_id} not found")
            if opportunity.status.is_terminal:
                raise StateConflictError(
                    f"Opportunity {opportunity_id} is already {opportunity.status.value}"
                )
            if opportunity.status != OpportunityStatus.BOTH_ACCEPTED:
                logger.warning(
                    f"Completing opportunity {opportunity_id} from {opportunity.status.value}"
                )

            route1 = await store.routes.get(opportunity.route1_id)
            route2 = await store.routes.get(opportunity.route2_id)
            if not route1 or not route2:
                raise NotFoundError(f"Routes for opportunity {opportunity_id} not found")

            drivers = []
            for route in (route1, route2):
                driver = await store.drivers.get(route.driver_id) if route.driver_id else None
                if not driver:
                    raise NotFoundError(f"Driver for route {route.route_id} not found")
                driver.truck_id = route.truck_id
                drivers.append(driver)

            relay = assign_relay(drivers[0], drivers[1])
            if relay.long_haul_driver is drivers[0]:
                winning, losing = route1, route2
            else:
                winning, losing = route2, route1

            now = datetime.now()
            completed = await store.opportunities.compare_and_set(
                opportunity_id,
                opportunity.status,
                status=OpportunityStatus.COMPLETED,
                assigned_driver_id=relay.long_haul_driver.driver_id,
                winning_route_id=winning.route_id,
                completed_at=now,
            )
            if not completed:
                raise StateConflictError(
                    f"Opportunity {opportunity_id} changed during completion"
                )

            moved = await store.deliveries.list_open_for_route(losing.route_id)
            moved_ids = [d.delivery_id for d in moved]
            await store.deliveries.update_many(
                moved_ids,
                truck_id=winning.truck_id,
                driver_id=relay.long_haul_driver.driver_id,
                route_id=winning.route_id,
                status=DeliveryStatus.ABSORPTION_TRANSFERRED,
            )
            await store.routes.add_load(
                winning.route_id,
                sum(d.cargo_weight or 0.0 for d in moved),
                sum(d.cargo_volume or 0.0 for d in moved),
                len(moved),
            )
            await store.routes.set_status(losing.route_id, RouteStatus.MERGED)
            await store.opportunities.release_claims(opportunity_id)

        opportunity.status = OpportunityStatus.COMPLETED
        opportunity.assigned_driver_id = relay.long_haul_driver.driver_id
        opportunity.winning_route_id = winning.route_id
        opportunity.completed_at = now

        logger.info(
            f"Opportunity {opportunity_id} completed: {len(moved_ids)} deliveries "
            f"{losing.route_id} -> {winning.route_id}, driver {relay.long_haul_driver.driver_id}"
        )

        await publish_safely(
            self.publisher,
            OPPORTUNITY_COMPLETED,
            {
                "opportunity_id": opportunity_id,
                "assigned_driver": relay.long_haul_driver.driver_id,
            },
        )

        return HandshakeResult(
            opportunity=opportunity,
            relay=relay,
            winning_route_id=winning.route_id,
            losing_route_id=losing.route_id,
            transferred_delivery_ids=moved_ids,
        )

    async def expire_overdue(self, now: Optional[datetime] = None) -> int:
        """Expire opportunities still awaiting acceptance past their expiry.

        BOTH_ACCEPTED opportunities are left for the operator handshake.
        """
        now = now or datetime.now()
        expired = 0

        async with transaction(self.session_factory) as store:
            for opportunity in await store.opportunities.list_overdue(now):
                swapped = await store.opportunities.compare_and_set(
                    opportunity.opportunity_id,
                    opportunity.status,
                    status=OpportunityStatus.EXPIRED,
                )
                if not swapped:
                    continue
                await store.opportunities.release_claims(opportunity.opportunity_id)
                expired += 1

        if expired:
            logger.info(f"Expired {expired} opportunities")
        return expired
