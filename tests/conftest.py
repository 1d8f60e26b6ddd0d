"""Shared fixtures: a fresh SQLite database per test and wired services."""

import pytest

from freightmesh.core.consolidation import (
    OpportunityLedger,
    ProximityMatcher,
    RelayAssigner,
    RouteAllocator,
)
from freightmesh.db import models  # noqa: F401
from freightmesh.db.database import Base, create_database_engine, create_session_factory
from freightmesh.db.repositories import transaction
from freightmesh.services.events import InMemoryEventPublisher
from freightmesh.services.manifest import ManifestBuilder
from freightmesh.utils.config import EngineSettings


@pytest.fixture
async def db_engine(tmp_path):
    """Async engine on a throwaway SQLite file with all tables created."""
    engine = create_database_engine(f"sqlite+aiosqlite:///{tmp_path / 'freightmesh.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def settings():
    """Default thresholds, independent of any config file on disk."""
    return EngineSettings()


@pytest.fixture
def publisher():
    return InMemoryEventPublisher()


@pytest.fixture
def seed(session_factory):
    """Insert domain objects in one transaction, in the order given."""

    async def _seed(*objects):
        async with transaction(session_factory) as store:
            repositories = {
                "Driver": store.drivers,
                "Hub": store.hubs,
                "Truck": store.trucks,
                "Delivery": store.deliveries,
                "Route": store.routes,
                "Opportunity": store.opportunities,
            }
            for obj in objects:
                await repositories[type(obj).__name__].add(obj)
        return objects

    return _seed


@pytest.fixture
def store(session_factory):
    """Read-back helper: `async with store() as s: await s.trucks.get(...)`."""
    return lambda: transaction(session_factory)


@pytest.fixture
def allocator(session_factory, settings):
    return RouteAllocator(session_factory, settings)


@pytest.fixture
def matcher(session_factory, publisher, settings):
    return ProximityMatcher(session_factory, publisher, settings)


@pytest.fixture
def ledger(session_factory, publisher, settings):
    return OpportunityLedger(session_factory, publisher, settings)


@pytest.fixture
def relay(session_factory):
    return RelayAssigner(session_factory)


@pytest.fixture
def manifests(session_factory, settings):
    return ManifestBuilder(session_factory, settings=settings)
