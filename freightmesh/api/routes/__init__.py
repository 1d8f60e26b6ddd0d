"""API routes for the FreightMesh engine."""

from . import backhaul, opportunities, routes, synergy, websocket

__all__ = ["backhaul", "opportunities", "routes", "synergy", "websocket"]
