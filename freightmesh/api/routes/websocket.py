"""WebSocket endpoint for real-time consolidation events."""

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from typing import Any, Dict, Set
import json
import logging
from datetime import datetime

from freightmesh.services.events import ALL_TOPICS, Event, EventPublisher

logger = logging.getLogger(__name__)

router = APIRouter()


class ConnectionManager(EventPublisher):
    """Manage WebSocket connections and fan events out to subscribers."""

    def __init__(self):
        self.active_connections: Dict[str, WebSocket] = {}
        self.subscriptions: Dict[str, Set[str]] = {}

    async def connect(self, websocket: WebSocket, connection_id: str):
        """Accept a new WebSocket connection."""
        await websocket.accept()
        self.active_connections[connection_id] = websocket
        self.subscriptions[connection_id] = set()
        logger.info(f"WebSocket connection established: {connection_id}")

    def disconnect(self, connection_id: str):
        """Remove a WebSocket connection."""
        self.active_connections.pop(connection_id, None)
        self.subscriptions.pop(connection_id, None)
        logger.info(f"WebSocket connection closed: {connection_id}")

    def subscribe(self, connection_id: str, topics: Set[str]):
        if connection_id in self.subscriptions:
            self.subscriptions[connection_id].update(topics)
            logger.info(f"Connection {connection_id} subscribed to: {topics}")

    def unsubscribe(self, connection_id: str, topics: Set[str]):
        if connection_id in self.subscriptions:
            self.subscriptions[connection_id].difference_update(topics)
            logger.info(f"Connection {connection_id} unsubscribed from: {topics}")

    async def send_personal_message(self, message: dict, websocket: WebSocket):
        """Send a message to a specific connection."""
        try:
            await websocket.send_json(message)
        except Exception as e:
            logger.error(f"Error sending message to websocket: {e}")

    async def broadcast(self, message: dict, topic: str):
        """Send a message to every connection subscribed to topic."""
        disconnected = []

        for connection_id, websocket in list(self.active_connections.items()):
            if topic not in self.subscriptions.get(connection_id, set()):
                continue

            try:
                await websocket.send_json(message)
            except WebSocketDisconnect:
                disconnected.append(connection_id)
            except Exception as e:
                logger.error(f"Error broadcasting to websocket: {e}")
                disconnected.append(connection_id)

        for connection_id in disconnected:
            self.disconnect(connection_id)

    async def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        await self.broadcast(Event(topic, payload).to_message(), topic)


# Global connection manager
manager = ConnectionManager()


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """WebSocket endpoint for real-time updates.

    Topics:
    - opportunity.detected: A consolidation opportunity was created
    - opportunity.completed: An opportunity was completed by handshake
    - synergy.match: A synergy search found high-probability matches

    Message format:
    {
        "type": "opportunity.detected",
        "data": {...},
        "timestamp": "2024-01-15T10:30:00"
    }

    Clients are subscribed to every topic on connect and can narrow it:
    {
        "action": "unsubscribe",
        "events": ["synergy.match"]
    }
    """
    connection_id = f"conn_{id(websocket)}"

    await manager.connect(websocket, connection_id)

    try:
        await manager.send_personal_message(
            {
                "type": "connected",
                "connection_id": connection_id,
                "timestamp": datetime.now().isoformat(),
                "available_events": list(ALL_TOPICS),
            },
            websocket,
        )

        manager.subscribe(connection_id, set(ALL_TOPICS))

        while True:
            try:
                data = await websocket.receive_json()
                action = data.get("action")

                if action == "subscribe":
                    events = set(data.get("events", []))
                    manager.subscribe(connection_id, events)
                    await manager.send_personal_message(
                        {
                            "type": "subscription_confirmed",
                            "subscribed_events": sorted(events),
                            "timestamp": datetime.now().isoformat(),
                        },
                        websocket,
                    )

                elif action == "unsubscribe":
                    events = set(data.get("events", []))
                    manager.unsubscribe(connection_id, events)
                    await manager.send_personal_message(
                        {
                            "type": "unsubscription_confirmed",
                            "unsubscribed_events": sorted(events),
                            "timestamp": datetime.now().isoformat(),
                        },
                        websocket,
                    )

                elif action == "ping":
                    await manager.send_personal_message(
                        {"type": "pong", "timestamp": datetime.now().isoformat()},
                        websocket,
                    )

                else:
                    await manager.send_personal_message(
                        {
                            "type": "error",
                            "message": f"Unknown action: {action}",
                            "timestamp": datetime.now().isoformat(),
                        },
                        websocket,
                    )

            except json.JSONDecodeError:
                await manager.send_personal_message(
                    {
                        "type": "error",
                        "message": "Invalid JSON format",
                        "timestamp": datetime.now().isoformat(),
                    },
                    websocket,
                )

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected: {connection_id}")
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
    finally:
        manager.disconnect(connection_id)
