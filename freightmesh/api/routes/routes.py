"""Route allocation endpoints."""

from fastapi import APIRouter, Depends
import logging

from freightmesh.api.schemas import AllocateRequest, AllocationResponse, RouteResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def get_app_state():
    """Get application state from main app."""
    from freightmesh.api.main import app_state
    return app_state


@router.post("/routes/allocate", response_model=AllocationResponse)
async def allocate_routes(
    request: AllocateRequest,
    app_state=Depends(get_app_state),
):
    """Allocate a company's pending deliveries to its available trucks.

    Deliveries are taken earliest time window first and packed greedily,
    truck by truck. Deliveries that fit nowhere stay pending.

    Returns:
        Created routes and the ids of deliveries left unassigned
    """
    logger.info(f"Allocation requested for company {request.company_id}")

    result = await app_state.allocator.allocate(request.company_id)

    return AllocationResponse(
        message=result.message,
        routes=[RouteResponse.model_validate(route) for route in result.routes],
        pending_count=result.pending_count,
        unassigned_delivery_ids=result.unassigned_delivery_ids,
    )
