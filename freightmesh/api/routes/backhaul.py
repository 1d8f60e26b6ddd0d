"""Backhaul marketplace endpoints."""

from fastapi import APIRouter, Depends
from typing import Optional
import logging

from freightmesh.api.schemas import BackhaulLoadResponse, BackhaulResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def get_app_state():
    """Get application state from main app."""
    from freightmesh.api.main import app_state
    return app_state


@router.get("/backhaul/opportunities", response_model=BackhaulResponse)
async def get_backhaul_opportunities(
    truck_id: Optional[str] = None,
    app_state=Depends(get_app_state),
):
    """Pending marketplace loads near a returning truck, nearest first."""
    loads = await app_state.matcher.backhaul_loads(truck_id)

    return BackhaulResponse(
        data=[
            BackhaulLoadResponse(
                delivery_id=load.delivery.delivery_id,
                pickup_location=load.delivery.pickup_location,
                pickup_lat=load.delivery.pickup_lat,
                pickup_lng=load.delivery.pickup_lng,
                drop_location=load.delivery.drop_location,
                cargo_type=load.delivery.cargo_type,
                cargo_weight=load.delivery.cargo_weight,
                distance_km=round(load.distance_km, 2),
            )
            for load in loads
        ]
    )
