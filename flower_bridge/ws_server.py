"""
WebSocket relay between visual clients and OSC endpoints.

Handles:
- FastAPI WebSocket endpoint at /bridge
- One OSC session per connection, replaced on every config event
- Forwarding client events to OSC and OSC messages to the client
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from .osc_session import BridgeConfig, OSCSession

logger = logging.getLogger(__name__)

# Client -> relay events that carry an OSC packet
FORWARD_EVENTS = ("message", "osc-send")


@dataclass
class BridgeEvent:
    """A named event with a JSON payload, one per WebSocket text frame."""
    event: str
    data: Any = None

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps({"event": self.event, "data": self.data})

    @classmethod
    def from_json(cls, data: str) -> 'BridgeEvent':
        """Deserialize from JSON string."""
        d = json.loads(data)
        if not isinstance(d, dict):
            raise ValueError("event frame must be a JSON object")
        event = d['event']
        if not isinstance(event, str):
            raise ValueError(f"event name must be a string, got {event!r}")
        return cls(event=event, data=d.get('data'))


SessionFactory = Callable[[BridgeConfig, Callable[[List[Any]], None]], OSCSession]


class RelayServer:
    """
    WebSocket relay server.

    Features:
    - Connection-keyed mapping of OSC sessions
    - Teardown of the previous session on reconfiguration
    - Teardown on disconnect
    - Best effort forwarding, no queuing or retry
    """

    def __init__(self, session_factory: Optional[SessionFactory] = None):
        """
        Initialize relay server.

        Args:
            session_factory: Builds an OSC session from a config and an
                inbound message callback (defaults to OSCSession)
        """
        self.session_factory = session_factory or OSCSession

        # Connection id -> resources
        self._connections: Dict[str, WebSocket] = {}
        self._sessions: Dict[str, OSCSession] = {}
        self._pending: Dict[str, Set[asyncio.Future]] = {}
        self._connection_counter = 0

        # Statistics
        self._total_events = 0
        self._invalid_events = 0
        self._forwarded_to_osc = 0
        self._forwarded_to_client = 0

        # FastAPI app
        self.app = FastAPI(title="Flower OSC Bridge")

        # Any origin, for local testing
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        self._setup_routes()

    def _setup_routes(self):
        """Set up FastAPI routes."""

        @self.app.get("/health")
        async def health_check():
            """Health check endpoint."""
            return {"status": "ok", **self.get_stats()}

        @self.app.websocket("/bridge")
        async def websocket_bridge(websocket: WebSocket):
            """WebSocket endpoint for relay events."""
            await self._handle_websocket(websocket)

    async def _handle_websocket(self, websocket: WebSocket) -> None:
        """Handle incoming WebSocket connection."""
        await websocket.accept()

        self._connection_counter += 1
        connection_id = f"client_{self._connection_counter}"
        self._connections[connection_id] = websocket

        logger.info(f"Web client connected: {connection_id} from {websocket.client}")

        try:
            await self._receive_events(websocket, connection_id)
        except WebSocketDisconnect:
            logger.info(f"Web client disconnected: {connection_id}")
        except Exception as e:
            logger.error(f"Error handling client {connection_id}: {e}")
        finally:
            self._connections.pop(connection_id, None)
            await self._teardown(connection_id)

    async def _receive_events(self, websocket: WebSocket, connection_id: str) -> None:
        """Receive and dispatch events from a client."""
        while True:
            data = await websocket.receive_text()
            self._total_events += 1

            try:
                event = BridgeEvent.from_json(data)
            except (json.JSONDecodeError, KeyError, ValueError) as e:
                self._invalid_events += 1
                logger.warning(f"Invalid event from {connection_id}: {e}")
                continue

            if event.event == "config":
                await self._configure(websocket, connection_id, event.data)
            elif event.event in FORWARD_EVENTS:
                self._forward_to_osc(connection_id, event.data)
            else:
                self._invalid_events += 1
                logger.debug(f"Ignoring unknown event '{event.event}' from {connection_id}")

    async def _configure(self, websocket: WebSocket, connection_id: str, payload: Any) -> None:
        """Replace the connection's OSC session with a new one."""
        await self._teardown(connection_id)

        try:
            config = BridgeConfig.from_dict(payload)

            def on_message(packet: List[Any]) -> None:
                self._forward_to_client(websocket, connection_id, packet)

            session = self.session_factory(config, on_message)
            await session.open()
        except Exception as e:
            logger.error(f"error in config for {connection_id}: {e}")
            await self._emit(websocket, BridgeEvent("connected", 0))
            return

        self._sessions[connection_id] = session
        session.send(["/status", f"{connection_id} connected"])
        await self._emit(websocket, BridgeEvent("connected", 1))

    async def _teardown(self, connection_id: str) -> None:
        """Close and forget the connection's OSC session and its pending sends."""
        for task in self._pending.pop(connection_id, set()):
            task.cancel()

        session = self._sessions.pop(connection_id, None)
        if session is None:
            return
        try:
            await session.close()
        except Exception as e:
            logger.warning(f"Error closing session for {connection_id}: {e}")
        logger.info(f"OSC session for {connection_id} torn down")

    def _forward_to_osc(self, connection_id: str, packet: Any) -> None:
        """Send a client packet to the connection's OSC client endpoint."""
        session = self._sessions.get(connection_id)
        if session is None:
            logger.debug(f"No OSC session for {connection_id}, dropping {packet!r}")
            return
        if session.send(packet):
            self._forwarded_to_osc += 1

    def _forward_to_client(self, websocket: WebSocket, connection_id: str, packet: List[Any]) -> None:
        """Schedule delivery of an inbound OSC packet to its client."""
        if connection_id not in self._sessions:
            return
        task = asyncio.ensure_future(self._emit(websocket, BridgeEvent("message", packet)))
        pending = self._pending.setdefault(connection_id, set())
        pending.add(task)
        task.add_done_callback(lambda t: self._forward_done(pending, t))

    def _forward_done(self, pending: Set[asyncio.Future], task: asyncio.Future) -> None:
        pending.discard(task)
        if not task.cancelled() and task.result():
            self._forwarded_to_client += 1

    async def _emit(self, websocket: WebSocket, event: BridgeEvent) -> bool:
        """Send an event to a client, logging failures."""
        try:
            await websocket.send_text(event.to_json())
            return True
        except Exception as e:
            logger.warning(f"Failed to emit '{event.event}': {e}")
            return False

    def get_session(self, connection_id: str) -> Optional[OSCSession]:
        """Get the active OSC session of a connection."""
        return self._sessions.get(connection_id)

    def get_stats(self) -> dict:
        """Get relay statistics."""
        return {
            "connected_clients": len(self._connections),
            "sessions": {cid: s.get_stats() for cid, s in self._sessions.items()},
            "total_events": self._total_events,
            "invalid_events": self._invalid_events,
            "forwarded_to_osc": self._forwarded_to_osc,
            "forwarded_to_client": self._forwarded_to_client,
            "pending_forwards": sum(len(p) for p in self._pending.values()),
        }


def create_app(session_factory: Optional[SessionFactory] = None):
    """
    Create FastAPI application with relay server.

    Args:
        session_factory: Optional OSC session factory

    Returns:
        Tuple of (FastAPI application, RelayServer)
    """
    server = RelayServer(session_factory=session_factory)
    return server.app, server
