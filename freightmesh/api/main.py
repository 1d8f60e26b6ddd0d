"""FastAPI application for the FreightMesh allocation and consolidation engine.

This API provides endpoints for:
- Allocating pending deliveries to trucks
- Detecting and searching consolidation opportunities
- Accepting and completing opportunities (driver relay)
- Backhaul marketplace loads
- Real-time updates via WebSocket
"""

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import Optional
import logging
import traceback

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from freightmesh.api.schemas import ErrorResponse, HealthResponse
from freightmesh.api.routes import backhaul, opportunities, routes, synergy, websocket
from freightmesh.core.consolidation import (
    OpportunityLedger,
    ProximityMatcher,
    RelayAssigner,
    RouteAllocator,
)
from freightmesh.core.errors import FreightMeshError
from freightmesh.db import database
from freightmesh.services.events import EventPublisher
from freightmesh.services.manifest import ManifestBuilder
from freightmesh.utils.config import EngineSettings, get_settings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# Global application state
class AppState:
    """Centralized application state."""

    def __init__(self):
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self.publisher: Optional[EventPublisher] = None
        self.allocator: Optional[RouteAllocator] = None
        self.matcher: Optional[ProximityMatcher] = None
        self.ledger: Optional[OpportunityLedger] = None
        self.relay: Optional[RelayAssigner] = None
        self.manifests: Optional[ManifestBuilder] = None

    def initialize(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        publisher: Optional[EventPublisher] = None,
        settings: Optional[EngineSettings] = None,
    ):
        """Wire services to a session factory and an event publisher."""
        logger.info("Initializing FreightMesh services...")

        settings = settings or get_settings()
        self.session_factory = session_factory
        self.publisher = publisher
        self.allocator = RouteAllocator(session_factory, settings)
        self.matcher = ProximityMatcher(session_factory, publisher, settings)
        self.ledger = OpportunityLedger(session_factory, publisher, settings)
        self.relay = RelayAssigner(session_factory)
        self.manifests = ManifestBuilder(session_factory, settings=settings)

        logger.info("All services initialized")

    def components(self) -> dict:
        return {
            "allocator": self.allocator,
            "matcher": self.matcher,
            "ledger": self.ledger,
            "relay": self.relay,
            "manifests": self.manifests,
        }

    def shutdown(self):
        """Cleanup on shutdown."""
        logger.info("Shutting down FreightMesh services...")
        self.__init__()


# Create global app state
app_state = AppState()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle."""
    logger.info("Starting FreightMesh API")

    try:
        await database.init_database()
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

    app_state.initialize(database.async_session_factory, websocket.manager)

    yield

    app_state.shutdown()

    logger.info("Closing database connections...")
    await database.close_database()
    logger.info("FreightMesh API shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="FreightMesh API",
    description="Freight allocation and in-transit consolidation engine",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(FreightMeshError)
async def freightmesh_exception_handler(request: Request, exc: FreightMeshError):
    """Map engine errors to their status code and failure body."""
    logger.warning(f"{type(exc).__name__} on {request.url.path}: {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=type(exc).__name__,
            detail=exc.message,
            cause=exc.cause,
        ).model_dump(mode="json"),
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions."""
    logger.error(f"Unhandled exception: {exc}")
    logger.error(traceback.format_exc())

    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error="Internal Server Error",
            detail=str(exc),
        ).model_dump(mode="json"),
    )


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Detailed health check."""
    try:
        components_status = {
            name: "healthy" if component else "unhealthy"
            for name, component in app_state.components().items()
        }

        db_health = await database.check_database_health()
        components_status["database"] = db_health["status"]

        overall_status = "healthy" if all(
            s == "healthy" for s in components_status.values()
        ) else "degraded"

        return HealthResponse(
            status=overall_status,
            components=components_status,
        )

    except Exception as e:
        logger.error(f"Health check failed: {e}")
        raise HTTPException(status_code=503, detail="Service unhealthy")


# Include routers
app.include_router(routes.router, prefix="/api/v1", tags=["Routes"])
app.include_router(synergy.router, prefix="/api/v1", tags=["Synergy"])
app.include_router(opportunities.router, prefix="/api/v1", tags=["Opportunities"])
app.include_router(backhaul.router, prefix="/api/v1", tags=["Backhaul"])
app.include_router(websocket.router, tags=["WebSocket"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "freightmesh.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
