"""Synergy endpoints: opportunity detection, advisory search and truck merge."""

from fastapi import APIRouter, Depends
import logging

from freightmesh.api.schemas import (
    DetectRequest,
    DetectResponse,
    MergeRequest,
    MergeResponse,
    OpportunityResponse,
    SynergyMatchResponse,
    SynergySearchResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def get_app_state():
    """Get application state from main app."""
    from freightmesh.api.main import app_state
    return app_state


@router.post("/synergy/detect", response_model=DetectResponse)
async def detect_opportunity(
    request: DetectRequest,
    app_state=Depends(get_app_state),
):
    """Check a live position report for a consolidation partner.

    Detection never fails the caller: when nothing feasible is found, or
    detection itself errors, the response simply has found=false.
    """
    opportunity = await app_state.matcher.detect(request.truck_id, request.lat, request.lng)

    if not opportunity:
        return DetectResponse(found=False)

    return DetectResponse(
        found=True,
        opportunity=OpportunityResponse.model_validate(opportunity),
    )


@router.get("/synergy/search/{truck_id}", response_model=SynergySearchResponse)
async def search_synergy(
    truck_id: str,
    app_state=Depends(get_app_state),
):
    """Constraint breakdown (geofence, capacity, safety, path) for nearby trucks."""
    matches = await app_state.matcher.search_synergy(truck_id)

    return SynergySearchResponse(
        data=[SynergyMatchResponse(**match.to_dict()) for match in matches]
    )


@router.post("/synergy/merge", response_model=MergeResponse)
async def confirm_merge(
    request: MergeRequest,
    app_state=Depends(get_app_state),
):
    """Move the candidate truck's delivery onto the searching truck."""
    result = await app_state.relay.confirm_merge(
        request.searching_truck_id, request.candidate_truck_id
    )

    return MergeResponse(
        message=result.message,
        delivery_id=result.delivery_id,
        truck_id=result.truck_id,
        assigned_driver_id=result.assigned_driver_id,
        assigned_driver=result.assigned_driver_name,
    )
