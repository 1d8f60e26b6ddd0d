"""Opportunity lifecycle endpoints: lookup, acceptance, handshake, manifests."""

from fastapi import APIRouter, Depends
import logging

from freightmesh.api.schemas import (
    AbsorptionManifestsResponse,
    AcceptRequest,
    HandshakeResponse,
    ManifestResponse,
    OpportunityResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def get_app_state():
    """Get application state from main app."""
    from freightmesh.api.main import app_state
    return app_state


@router.get("/opportunities/{opportunity_id}", response_model=OpportunityResponse)
async def get_opportunity(
    opportunity_id: str,
    app_state=Depends(get_app_state),
):
    """Get opportunity details."""
    opportunity = await app_state.ledger.get(opportunity_id)
    return OpportunityResponse.model_validate(opportunity)


@router.post("/opportunities/{opportunity_id}/accept", response_model=OpportunityResponse)
async def accept_opportunity(
    opportunity_id: str,
    request: AcceptRequest,
    app_state=Depends(get_app_state),
):
    """Record acceptance by one of the opportunity's two routes.

    Accepting after the other route already accepted moves the opportunity
    to both_accepted.
    """
    opportunity = await app_state.ledger.accept(opportunity_id, request.route_id)
    return OpportunityResponse.model_validate(opportunity)


@router.post("/opportunities/{opportunity_id}/handshake", response_model=HandshakeResponse)
async def handshake_opportunity(
    opportunity_id: str,
    app_state=Depends(get_app_state),
):
    """Complete the consolidation and transfer the absorbed route's deliveries."""
    result = await app_state.ledger.handshake(opportunity_id)

    return HandshakeResponse(
        opportunity=OpportunityResponse.model_validate(result.opportunity),
        assigned_driver=result.relay.long_haul_driver.driver_id,
        long_haul_driver_id=result.relay.long_haul_driver.driver_id,
        short_haul_driver_id=result.relay.short_haul_driver.driver_id,
        winning_truck_id=result.relay.winning_truck_id,
        winning_route_id=result.winning_route_id,
        losing_route_id=result.losing_route_id,
        transferred_delivery_ids=result.transferred_delivery_ids,
    )


@router.get(
    "/opportunities/{opportunity_id}/manifests",
    response_model=AbsorptionManifestsResponse,
)
async def get_absorption_manifests(
    opportunity_id: str,
    app_state=Depends(get_app_state),
):
    """Transport manifests for both trucks of a completed opportunity."""
    freed, absorbing = await app_state.manifests.absorption_manifests(opportunity_id)

    return AbsorptionManifestsResponse(
        freed_truck=ManifestResponse.model_validate(freed),
        absorbing_truck=ManifestResponse.model_validate(absorbing),
    )
