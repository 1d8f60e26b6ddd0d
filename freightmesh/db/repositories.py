"""Repositories over the async session.

Each repository owns queries for one entity and returns domain dataclasses,
never ORM instances. `transaction()` opens one session and binds every
repository to it, so a service can read, check and write several entities
as a single all-or-nothing unit:

    async with transaction(session_factory) as store:
        truck = await store.trucks.get(truck_id)
        ...
"""

from contextlib import asynccontextmanager
from dataclasses import fields
from datetime import datetime
from typing import AsyncGenerator, Iterable, List, Optional, Tuple, Type, TypeVar
import logging

from sqlalchemy import select, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import (
    DriverModel,
    HubModel,
    TruckModel,
    DeliveryModel,
    RouteModel,
    OpportunityModel,
    ActiveRouteClaimModel,
)
from ..core.geo_metrics import within_radius, nearest
from ..core.models.domain import (
    CLOSED_DELIVERY_STATUSES,
    Delivery,
    DeliveryStatus,
    Driver,
    EXPIRABLE_OPPORTUNITY_STATUSES,
    Hub,
    Opportunity,
    OpportunityStatus,
    RegistrationStatus,
    Route,
    RouteStatus,
    Truck,
)

logger = logging.getLogger(__name__)

D = TypeVar("D")


def _to_domain(model, domain_cls: Type[D]) -> D:
    """Copy matching column values into a domain dataclass."""
    return domain_cls(
        **{f.name: getattr(model, f.name) for f in fields(domain_cls) if hasattr(model, f.name)}
    )


def _to_model(obj, model_cls):
    """Build an ORM instance from the matching attributes of a domain object."""
    values = {
        column.name: getattr(obj, column.name)
        for column in model_cls.__table__.columns
        if column.name != "id" and hasattr(obj, column.name)
    }
    return model_cls(**values)


class _Repository:
    model = None
    domain = None

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, obj):
        """Insert a domain object."""
        self.session.add(_to_model(obj, self.model))
        await self.session.flush()
        return obj


class DriverRepository(_Repository):
    model = DriverModel
    domain = Driver

    async def get(self, driver_id: str) -> Optional[Driver]:
        result = await self.session.execute(
            select(DriverModel).where(DriverModel.driver_id == driver_id)
        )
        model = result.scalar_one_or_none()
        return _to_domain(model, Driver) if model else None


class HubRepository(_Repository):
    model = HubModel
    domain = Hub

    async def get(self, hub_id: str) -> Optional[Hub]:
        result = await self.session.execute(select(HubModel).where(HubModel.hub_id == hub_id))
        model = result.scalar_one_or_none()
        return _to_domain(model, Hub) if model else None

    async def find_nearest_within(
        self, lat: float, lng: float, radius_km: float
    ) -> Optional[Tuple[Hub, float]]:
        """Nearest hub strictly within radius_km of a point."""
        result = await self.session.execute(select(HubModel).order_by(HubModel.id))
        hubs = [_to_domain(m, Hub) for m in result.scalars().all()]
        inside = within_radius(lat, lng, ((h, h.latitude, h.longitude) for h in hubs), radius_km)
        return nearest(inside)


class TruckRepository(_Repository):
    model = TruckModel
    domain = Truck

    async def get(self, truck_id: str) -> Optional[Truck]:
        result = await self.session.execute(
            select(TruckModel).where(TruckModel.truck_id == truck_id)
        )
        model = result.scalar_one_or_none()
        return _to_domain(model, Truck) if model else None

    async def list_allocatable(self, company_id: str) -> List[Truck]:
        """Available, approved trucks of a company in creation order."""
        result = await self.session.execute(
            select(TruckModel)
            .where(
                TruckModel.company_id == company_id,
                TruckModel.is_available.is_(True),
                TruckModel.registration_status == RegistrationStatus.APPROVED,
            )
            .order_by(TruckModel.created_at, TruckModel.id)
            .with_for_update()
        )
        return [_to_domain(m, Truck) for m in result.scalars().all()]

    async def claim_for_route(self, truck_id: str) -> bool:
        """Flip availability off only if the truck is still available."""
        result = await self.session.execute(
            update(TruckModel)
            .where(TruckModel.truck_id == truck_id, TruckModel.is_available.is_(True))
            .values(is_available=False, updated_at=datetime.now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def find_within(
        self,
        lat: float,
        lng: float,
        radius_km: float,
        exclude_truck_id: Optional[str] = None,
    ) -> List[Tuple[Truck, float]]:
        """Trucks with a live position strictly within radius_km, in store order."""
        query = (
            select(TruckModel)
            .where(TruckModel.current_lat.is_not(None), TruckModel.current_lng.is_not(None))
            .order_by(TruckModel.created_at, TruckModel.id)
        )
        if exclude_truck_id:
            query = query.where(TruckModel.truck_id != exclude_truck_id)

        result = await self.session.execute(query)
        trucks = [_to_domain(m, Truck) for m in result.scalars().all()]
        return within_radius(
            lat, lng, ((t, t.current_lat, t.current_lng) for t in trucks), radius_km
        )

    async def list_with_open_deliveries(self, exclude_truck_id: str) -> List[Truck]:
        """Other trucks carrying at least one open delivery."""
        carrying = select(DeliveryModel.truck_id).where(
            DeliveryModel.truck_id.is_not(None),
            DeliveryModel.status.not_in(CLOSED_DELIVERY_STATUSES),
        )
        result = await self.session.execute(
            select(TruckModel)
            .where(TruckModel.truck_id != exclude_truck_id, TruckModel.truck_id.in_(carrying))
            .order_by(TruckModel.created_at, TruckModel.id)
        )
        return [_to_domain(m, Truck) for m in result.scalars().all()]


class DeliveryRepository(_Repository):
    model = DeliveryModel
    domain = Delivery

    async def get(self, delivery_id: str) -> Optional[Delivery]:
        result = await self.session.execute(
            select(DeliveryModel).where(DeliveryModel.delivery_id == delivery_id)
        )
        model = result.scalar_one_or_none()
        return _to_domain(model, Delivery) if model else None

    async def list_pending(self, company_id: str) -> List[Delivery]:
        """Pending deliveries, earliest time window first."""
        result = await self.session.execute(
            select(DeliveryModel)
            .where(
                DeliveryModel.company_id == company_id,
                DeliveryModel.status == DeliveryStatus.PENDING,
            )
            .order_by(DeliveryModel.time_window_start.asc(), DeliveryModel.delivery_id)
        )
        return [_to_domain(m, Delivery) for m in result.scalars().all()]

    async def list_open_for_truck(self, truck_id: str) -> List[Delivery]:
        result = await self.session.execute(
            select(DeliveryModel)
            .where(
                DeliveryModel.truck_id == truck_id,
                DeliveryModel.status.not_in(CLOSED_DELIVERY_STATUSES),
            )
            .order_by(DeliveryModel.time_window_start.asc(), DeliveryModel.delivery_id)
        )
        return [_to_domain(m, Delivery) for m in result.scalars().all()]

    async def list_open_for_route(self, route_id: str) -> List[Delivery]:
        """Deliveries on a route not yet completed or cancelled."""
        result = await self.session.execute(
            select(DeliveryModel)
            .where(
                DeliveryModel.route_id == route_id,
                DeliveryModel.status.not_in(CLOSED_DELIVERY_STATUSES),
            )
            .order_by(DeliveryModel.time_window_start.asc(), DeliveryModel.delivery_id)
        )
        return [_to_domain(m, Delivery) for m in result.scalars().all()]

    async def list_marketplace_near(
        self, lat: float, lng: float, radius_km: float
    ) -> List[Tuple[Delivery, float]]:
        """Pending marketplace loads with pickup strictly within radius_km."""
        result = await self.session.execute(
            select(DeliveryModel)
            .where(
                DeliveryModel.is_marketplace_load.is_(True),
                DeliveryModel.status == DeliveryStatus.PENDING,
                DeliveryModel.pickup_lat.is_not(None),
                DeliveryModel.pickup_lng.is_not(None),
            )
            .order_by(DeliveryModel.id)
        )
        deliveries = [_to_domain(m, Delivery) for m in result.scalars().all()]
        return within_radius(
            lat, lng, ((d, d.pickup_lat, d.pickup_lng) for d in deliveries), radius_km
        )

    async def update_many(
        self,
        delivery_ids: Iterable[str],
        expected_status: Optional[DeliveryStatus] = None,
        **values,
    ) -> int:
        """Bulk update by id set. Returns the number of rows changed."""
        ids = list(delivery_ids)
        if not ids:
            return 0

        query = update(DeliveryModel).where(DeliveryModel.delivery_id.in_(ids))
        if expected_status is not None:
            query = query.where(DeliveryModel.status == expected_status)

        result = await self.session.execute(
            query.values(updated_at=datetime.now(), **values).execution_options(
                synchronize_session=False
            )
        )
        return result.rowcount


class RouteRepository(_Repository):
    model = RouteModel
    domain = Route

    async def get(self, route_id: str) -> Optional[Route]:
        result = await self.session.execute(
            select(RouteModel).where(RouteModel.route_id == route_id)
        )
        model = result.scalar_one_or_none()
        if not model:
            return None

        route = _to_domain(model, Route)
        ids = await self.session.execute(
            select(DeliveryModel.delivery_id)
            .where(DeliveryModel.route_id == route_id)
            .order_by(DeliveryModel.time_window_start.asc(), DeliveryModel.delivery_id)
        )
        route.delivery_ids = list(ids.scalars().all())
        return route

    async def list_active_for_truck(self, truck_id: str) -> List[Route]:
        result = await self.session.execute(
            select(RouteModel)
            .where(RouteModel.truck_id == truck_id, RouteModel.status == RouteStatus.ACTIVE)
            .order_by(RouteModel.created_at, RouteModel.id)
        )
        return [_to_domain(m, Route) for m in result.scalars().all()]

    async def set_status(self, route_id: str, status: RouteStatus) -> None:
        await self.session.execute(
            update(RouteModel)
            .where(RouteModel.route_id == route_id)
            .values(status=status, updated_at=datetime.now())
            .execution_options(synchronize_session=False)
        )

    async def add_load(self, route_id: str, weight: float, volume: float, packages: int) -> None:
        """Shift a route's aggregates; negative amounts remove cargo."""
        await self.session.execute(
            update(RouteModel)
            .where(RouteModel.route_id == route_id)
            .values(
                total_weight=RouteModel.total_weight + weight,
                total_volume=RouteModel.total_volume + volume,
                total_packages=RouteModel.total_packages + packages,
                updated_at=datetime.now(),
            )
            .execution_options(synchronize_session=False)
        )


class OpportunityRepository(_Repository):
    model = OpportunityModel
    domain = Opportunity

    async def get(self, opportunity_id: str) -> Optional[Opportunity]:
        result = await self.session.execute(
            select(OpportunityModel).where(OpportunityModel.opportunity_id == opportunity_id)
        )
        model = result.scalar_one_or_none()
        return _to_domain(model, Opportunity) if model else None

    async def compare_and_set(
        self, opportunity_id: str, expected_status: OpportunityStatus, **values
    ) -> bool:
        """Update only if the status is still the one the caller observed."""
        result = await self.session.execute(
            update(OpportunityModel)
            .where(
                OpportunityModel.opportunity_id == opportunity_id,
                OpportunityModel.status == expected_status,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def has_active_claim(self, route_id: str) -> bool:
        result = await self.session.execute(
            select(func.count())
            .select_from(ActiveRouteClaimModel)
            .where(ActiveRouteClaimModel.route_id == route_id)
        )
        return result.scalar_one() > 0

    async def claim_routes(self, opportunity_id: str, route_ids: Iterable[str]) -> None:
        """Reserve routes for an opportunity.

        Raises IntegrityError when another opportunity already holds one.
        """
        for route_id in route_ids:
            self.session.add(
                ActiveRouteClaimModel(route_id=route_id, opportunity_id=opportunity_id)
            )
        await self.session.flush()

    async def release_claims(self, opportunity_id: str) -> None:
        await self.session.execute(
            delete(ActiveRouteClaimModel)
            .where(ActiveRouteClaimModel.opportunity_id == opportunity_id)
            .execution_options(synchronize_session=False)
        )

    async def list_overdue(self, now: datetime) -> List[Opportunity]:
        """Opportunities still awaiting acceptance past their expiry."""
        result = await self.session.execute(
            select(OpportunityModel)
            .where(
                OpportunityModel.status.in_(EXPIRABLE_OPPORTUNITY_STATUSES),
                OpportunityModel.expires_at <= now,
            )
            .order_by(OpportunityModel.expires_at)
        )
        return [_to_domain(m, Opportunity) for m in result.scalars().all()]


class Store:
    """Repositories bound to one session."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.drivers = DriverRepository(session)
        self.hubs = HubRepository(session)
        self.trucks = TruckRepository(session)
        self.deliveries = DeliveryRepository(session)
        self.routes = RouteRepository(session)
        self.opportunities = OpportunityRepository(session)


@asynccontextmanager
async def transaction(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[Store, None]:
    """Open a transactional store.

    Commits when the block exits normally, rolls back on any exception.
    """
    async with session_factory() as session:
        try:
            yield Store(session)
            await session.commit()
        except Exception:
            await session.rollback()
            raise
