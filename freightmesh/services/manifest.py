"""Transport manifests for completed consolidations.

A manifest lists what one truck carries after a handover, who drives it
and how long the document stays valid. Rendering to a compliance document
(PDF, e-way bill portal upload) belongs to an injected DocumentExporter.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Tuple
import json
import logging
import math
import random
import uuid

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.errors import NotFoundError, StateConflictError
from ..core.models.domain import Delivery, Driver, OpportunityStatus, Truck
from ..db.repositories import transaction
from ..utils.config import EngineSettings, get_settings

logger = logging.getLogger(__name__)

DEFAULT_HSN_CODE = "8708"


def generate_bill_no() -> str:
    """Random 12-digit bill number."""
    return str(random.randint(10**11, 10**12 - 1))


def validity_days(total_distance_km: float, km_per_day: float = 200.0) -> int:
    """One day per km_per_day of distance, never less than one."""
    return max(1, math.ceil((total_distance_km or 0.0) / km_per_day))


@dataclass
class GoodsLine:
    product_name: Optional[str]
    quantity: int
    value: str
    unit: str = "NOS"
    hsn_code: str = DEFAULT_HSN_CODE


@dataclass
class TransportManifest:
    """Everything a compliance document needs for one truck."""

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
    goods: List[GoodsLine] = field(default_factory=list)
    transaction_type: str = "Regular"

    def to_dict(self) -> dict:
        data = asdict(self)
        for key in ("generated_at", "valid_from", "valid_until"):
            data[key] = data[key].isoformat()
        return data


class DocumentExporter(ABC):
    """Turns a manifest into an exportable artifact."""

    @abstractmethod
    def export(self, manifest: TransportManifest) -> bytes:
        pass


class JsonDocumentExporter(DocumentExporter):
    """Exports the manifest as UTF-8 JSON."""

    def export(self, manifest: TransportManifest) -> bytes:
        return json.dumps(manifest.to_dict(), indent=2).encode("utf-8")


class ManifestBuilder:
    """Builds manifests from store state and hands them to the exporter."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        exporter: Optional[DocumentExporter] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self.session_factory = session_factory
        self.exporter = exporter or JsonDocumentExporter()
        self.settings = settings or get_settings()

    def build(
        self,
        driver: Driver,
        truck: Truck,
        deliveries: List[Delivery],
        now: Optional[datetime] = None,
    ) -> TransportManifest:
        """Manifest for one truck carrying the given deliveries."""
        now = now or datetime.now()
        total_distance = sum(d.distance_km or 0.0 for d in deliveries)
        days = validity_days(total_distance, self.settings.km_per_validity_day)

        return TransportManifest(
            bill_no=generate_bill_no(),
            document_no=f"DOC-{uuid.uuid4().hex[:8]}",
            generated_by=driver.name,
            generated_at=now,
            vehicle_no=truck.license_plate,
            dispatch_place=driver.home_base_city or "Origin Hub",
            delivery_place=deliveries[0].drop_location if deliveries else "Final Destination",
            total_distance_km=total_distance,
            valid_from=now,
            valid_until=now + timedelta(days=days),
            goods=[
                GoodsLine(
                    product_name=d.cargo_type,
                    quantity=d.package_count,
                    value=f"{d.base_earnings or 0.0:.2f}",
                )
                for d in deliveries
            ],
        )

    async def absorption_manifests(
        self, opportunity_id: str
    ) -> Tuple[TransportManifest, TransportManifest]:
        """Manifests for the freed truck and the absorbing truck, in that order.

        Raises:
            NotFoundError: opportunity, route, truck or driver is missing
            StateConflictError: opportunity is not completed
        """
        async with transaction(self.session_factory) as store:
            opportunity = await store.opportunities.get(opportunity_id)
            if not opportunity:
                raise NotFoundError(f"Opportunity {opportunity_id} not found")
            if opportunity.status != OpportunityStatus.COMPLETED:
                raise StateConflictError(
                    f"Opportunity {opportunity_id} is {opportunity.status.value}, not completed"
                )

            route1 = await store.routes.get(opportunity.route1_id)
            route2 = await store.routes.get(opportunity.route2_id)
            if not route1 or not route2:
                raise NotFoundError(f"Routes for opportunity {opportunity_id} not found")

            if opportunity.winning_route_id == route2.route_id:
                absorbing, freed = route2, route1
            else:
                absorbing, freed = route1, route2

            manifests = []
            for route in (freed, absorbing):
                truck = await store.trucks.get(route.truck_id)
                driver = await store.drivers.get(route.driver_id) if route.driver_id else None
                if not truck or not driver:
                    raise NotFoundError(f"Truck or driver for route {route.route_id} not found")
                deliveries = await store.deliveries.list_open_for_truck(truck.truck_id)
                manifests.append(self.build(driver, truck, deliveries))

        logger.info(
            f"Built absorption manifests for {opportunity_id}: "
            f"{manifests[0].bill_no} (freed), {manifests[1].bill_no} (absorbing)"
        )
        return manifests[0], manifests[1]

    def export(self, manifest: TransportManifest) -> bytes:
        """Hand a manifest to the document exporter."""
        logger.info(f"Exporting manifest {manifest.bill_no} for {manifest.vehicle_no}")
        return self.exporter.export(manifest)
