"""
WebSocket Client for the OSC bridge.

Handles:
- Async WebSocket connection to the bridge
- Sending the OSC endpoint config on every (re)connect
- Exponential backoff reconnection
- Non-blocking event sending via queue, dropped while disconnected
- Dispatching "connected" and "message" events from the bridge
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from .message import BridgeEnvelope, OscEvent, parse_inbound

logger = logging.getLogger(__name__)


@dataclass
class ConnectionStats:
    """Statistics about WebSocket connection."""
    connected: bool = False
    configured: bool = False
    connect_time: Optional[float] = None
    disconnect_time: Optional[float] = None
    reconnect_attempts: int = 0
    messages_sent: int = 0
    messages_failed: int = 0
    messages_received: int = 0
    last_send_time: Optional[float] = None


class BridgeClient:
    """
    Async WebSocket client for the OSC bridge with automatic reconnection.

    Features:
    - Config event sent first on every connection
    - Exponential backoff on connection failure (1s -> 30s max)
    - Non-blocking event sending via queue
    - Inbound OSC messages delivered to ``on_osc``
    """

    def __init__(
        self,
        server_url: str,
        config: BridgeEnvelope,
        max_backoff_seconds: float = 30.0,
        initial_backoff_seconds: float = 1.0,
        on_osc: Optional[Callable[[OscEvent], None]] = None,
        on_configured: Optional[Callable[[bool], Awaitable[None]]] = None,
    ):
        """
        Initialize bridge client.

        Args:
            server_url: Bridge URL (e.g., ws://127.0.0.1:8081/bridge)
            config: Config envelope sent after connecting
            max_backoff_seconds: Maximum backoff time between reconnect attempts
            initial_backoff_seconds: Initial backoff time
            on_osc: Callback for OSC messages relayed by the bridge
            on_configured: Callback with the bridge's "connected" answer
        """
        self.server_url = server_url
        self.config = config
        self.max_backoff = max_backoff_seconds
        self.initial_backoff = initial_backoff_seconds
        self.on_osc = on_osc
        self.on_configured = on_configured

        # Connection state
        self._ws: Optional[ClientConnection] = None
        self._connected = False
        self._running = False

        # Outgoing envelopes
        self._send_queue: asyncio.Queue = asyncio.Queue(maxsize=100)

        # Statistics
        self.stats = ConnectionStats()

        # Backoff state
        self._current_backoff = initial_backoff_seconds

        # Tasks
        self._connect_task: Optional[asyncio.Task] = None
        self._send_task: Optional[asyncio.Task] = None

    @property
    def connected(self) -> bool:
        """Check if currently connected."""
        return self._connected and self._ws is not None

    @property
    def configured(self) -> bool:
        """Check if the bridge accepted the config."""
        return self.connected and self.stats.configured

    async def start(self) -> None:
        """Start the connection and sender tasks."""
        if self._running:
            return

        self._running = True
        self._connect_task = asyncio.create_task(self._connection_loop())
        self._send_task = asyncio.create_task(self._send_loop())

        logger.info(f"Bridge client started, connecting to {self.server_url}")

    async def stop(self) -> None:
        """Stop the client and close the connection."""
        if not self._running:
            return

        logger.info("Bridge client stopping...")
        self._running = False

        # Signal send loop to exit
        try:
            self._send_queue.put_nowait(None)
        except asyncio.QueueFull:
            pass

        for task in (self._connect_task, self._send_task):
            if task:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        if self._ws:
            await self._ws.close()
            self._ws = None

        self._connected = False
        logger.info("Bridge client stopped")

    def send(self, event: OscEvent) -> bool:
        """
        Queue an OSC event for the bridge.

        Non-blocking. Events are dropped when the queue is full or the
        bridge is not connected.

        Returns:
            True if queued
        """
        if not self.connected:
            self.stats.messages_failed += 1
            logger.debug(f"Not connected, dropping {event.address}")
            return False
        try:
            self._send_queue.put_nowait(BridgeEnvelope.osc_send(event).to_json())
            return True
        except asyncio.QueueFull:
            self.stats.messages_failed += 1
            logger.warning("Send queue full, dropping event")
            return False

    async def _connection_loop(self) -> None:
        """Main connection loop with automatic reconnection."""
        while self._running:
            try:
                await self._connect()
                self._current_backoff = self.initial_backoff
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Connection error: {e}")

            if not self._running:
                break

            logger.info(f"Reconnecting in {self._current_backoff:.1f}s...")
            await asyncio.sleep(self._current_backoff)

            self._current_backoff = min(self._current_backoff * 2, self.max_backoff)
            self.stats.reconnect_attempts += 1

    async def _connect(self) -> None:
        """Connect, send the config, then listen until the connection drops."""
        try:
            logger.info(f"Connecting to {self.server_url}...")
            self._ws = await connect(
                self.server_url,
                ping_interval=20,
                ping_timeout=10,
                close_timeout=5,
            )

            self._connected = True
            self.stats.connected = True
            self.stats.configured = False
            self.stats.connect_time = time.time()
            logger.info("Bridge connected")

            await self._ws.send(self.config.to_json())

            try:
                async for raw in self._ws:
                    await self._handle_incoming(raw)
            except ConnectionClosed:
                pass

        except ConnectionRefusedError:
            logger.error("Connection refused - is the bridge running?")
            raise
        finally:
            self._connected = False
            self.stats.connected = False
            self.stats.configured = False
            self.stats.disconnect_time = time.time()

    async def _handle_incoming(self, raw) -> None:
        """Dispatch one frame from the bridge."""
        self.stats.messages_received += 1
        try:
            envelope = BridgeEnvelope.from_json(raw)
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            logger.warning(f"Invalid frame from bridge: {e}")
            return

        if envelope.event == "connected":
            ok = bool(envelope.data)
            self.stats.configured = ok
            if ok:
                logger.info("Bridge OSC session configured")
            else:
                logger.error("Bridge failed to configure OSC session")
            if self.on_configured:
                await self.on_configured(ok)
        elif envelope.event == "message":
            event = parse_inbound(envelope)
            if event is not None and self.on_osc:
                try:
                    self.on_osc(event)
                except Exception as e:
                    logger.error(f"Error in OSC callback: {e}")
        else:
            logger.debug(f"Ignoring bridge event '{envelope.event}'")

    async def _send_loop(self) -> None:
        """Process outgoing queue."""
        while self._running:
            try:
                message = await self._send_queue.get()

                # None is shutdown signal
                if message is None:
                    break

                if self.connected:
                    try:
                        await self._ws.send(message)
                        self.stats.messages_sent += 1
                        self.stats.last_send_time = time.time()
                    except (ConnectionClosed, WebSocketException) as e:
                        self.stats.messages_failed += 1
                        logger.warning(f"Send failed: {e}")
                else:
                    self.stats.messages_failed += 1

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Send loop error: {e}")

    def get_stats(self) -> dict:
        """Get connection statistics."""
        return {
            "connected": self.connected,
            "configured": self.stats.configured,
            "connect_time": self.stats.connect_time,
            "disconnect_time": self.stats.disconnect_time,
            "reconnect_attempts": self.stats.reconnect_attempts,
            "messages_sent": self.stats.messages_sent,
            "messages_failed": self.stats.messages_failed,
            "messages_received": self.stats.messages_received,
            "last_send_time": self.stats.last_send_time,
            "queue_size": self._send_queue.qsize(),
        }
