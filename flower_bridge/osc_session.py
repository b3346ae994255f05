"""
OSC session for a single relay connection.

Handles:
- Receiving OSC packets on a UDP endpoint (server host:port)
- Sending OSC packets to a UDP endpoint (client host:port)
- Explicit teardown of both endpoints
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from pythonosc.dispatcher import Dispatcher
from pythonosc.osc_message_builder import BuildError, OscMessageBuilder
from pythonosc.osc_server import AsyncIOOSCUDPServer

logger = logging.getLogger(__name__)

DEFAULT_SERVER_HOST = "127.0.0.1"
DEFAULT_SERVER_PORT = 3333
DEFAULT_CLIENT_HOST = "127.0.0.1"
DEFAULT_CLIENT_PORT = 3334


@dataclass
class BridgeConfig:
    """Endpoints of one OSC session."""
    server_host: str = DEFAULT_SERVER_HOST
    server_port: int = DEFAULT_SERVER_PORT
    client_host: str = DEFAULT_CLIENT_HOST
    client_port: int = DEFAULT_CLIENT_PORT

    @classmethod
    def from_dict(cls, obj: Any) -> 'BridgeConfig':
        """
        Parse a ``{server: {host, port}, client: {host, port}}`` payload.

        Missing or empty fields fall back to the defaults.

        Raises:
            ValueError: if the payload or a port has the wrong type
        """
        if obj is None:
            obj = {}
        if not isinstance(obj, dict):
            raise ValueError(f"config must be an object, got {type(obj).__name__}")

        server = obj.get("server") or {}
        client = obj.get("client") or {}
        if not isinstance(server, dict) or not isinstance(client, dict):
            raise ValueError("config 'server' and 'client' must be objects")

        return cls(
            server_host=str(server.get("host") or DEFAULT_SERVER_HOST),
            server_port=_port(server.get("port"), DEFAULT_SERVER_PORT),
            client_host=str(client.get("host") or DEFAULT_CLIENT_HOST),
            client_port=_port(client.get("port"), DEFAULT_CLIENT_PORT),
        )


def _port(value: Any, default: int) -> int:
    if not value:
        return default
    if isinstance(value, bool):
        raise ValueError(f"invalid port: {value!r}")
    try:
        port = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"invalid port: {value!r}")
    if not 0 < port < 65536:
        raise ValueError(f"port out of range: {port}")
    return port


def build_packet(packet: Any) -> bytes:
    """
    Encode ``["/address", arg, ...]`` into an OSC datagram.

    Raises:
        ValueError: if the packet is malformed or an argument can't be encoded
    """
    if not isinstance(packet, (list, tuple)) or not packet:
        raise ValueError(f"expected ['/address', ...], got {packet!r}")

    address = packet[0]
    if not isinstance(address, str) or not address.startswith("/"):
        raise ValueError(f"invalid OSC address: {address!r}")

    builder = OscMessageBuilder(address=address)
    try:
        for arg in packet[1:]:
            builder.add_arg(arg)
        return builder.build().dgram
    except (BuildError, TypeError) as e:
        raise ValueError(f"cannot encode OSC message {address}: {e}")


def to_jsonable(value: Any) -> Any:
    """Convert decoded OSC arguments into JSON-friendly values."""
    if isinstance(value, (bytes, bytearray)):
        return list(value)
    if isinstance(value, tuple):
        return [to_jsonable(v) for v in value]
    if isinstance(value, list):
        return [to_jsonable(v) for v in value]
    return value


class _SendProtocol(asyncio.DatagramProtocol):
    """Client endpoint protocol; reports asynchronous send errors to the session."""

    def __init__(self, session: 'OSCSession'):
        self.session = session

    def error_received(self, exc: Exception) -> None:
        self.session._on_send_error(exc)


async def _close_transport(transport: asyncio.BaseTransport) -> None:
    """Close a datagram transport and wait until its socket is released."""
    sock = transport.get_extra_info("socket")
    transport.close()
    # the event loop closes the socket on a later iteration
    for _ in range(100):
        if sock is None or sock.fileno() == -1:
            return
        await asyncio.sleep(0)
    logger.warning("OSC endpoint socket still open after close")


class OSCSession:
    """
    A pair of OSC endpoints owned by one relay connection.

    Inbound packets are handed to ``on_message`` as
    ``["/address", arg, ...]`` on the event loop thread. Outbound
    packets are encoded with python-osc and written to a connected
    UDP transport, best effort.
    """

    def __init__(
        self,
        config: BridgeConfig,
        on_message: Optional[Callable[[List[Any]], None]] = None,
    ):
        """
        Initialize OSC session.

        Args:
            config: Endpoints to open
            on_message: Callback for every inbound OSC message
        """
        self.config = config
        self.on_message = on_message

        self._server_transport: Optional[asyncio.BaseTransport] = None
        self._client_transport: Optional[asyncio.DatagramTransport] = None
        self._open = False

        # Statistics
        self._messages_sent = 0
        self._messages_received = 0
        self._send_errors = 0
        self._last_send_time: Optional[float] = None

    async def open(self) -> None:
        """
        Open the receive and send endpoints.

        Raises:
            OSError: if either endpoint can't be created; nothing stays open
        """
        loop = asyncio.get_running_loop()

        dispatcher = Dispatcher()
        dispatcher.set_default_handler(self._on_osc, needs_reply_address=True)

        server = AsyncIOOSCUDPServer(
            (self.config.server_host, self.config.server_port),
            dispatcher,
            loop,
        )
        self._server_transport, _ = await server.create_serve_endpoint()

        try:
            self._client_transport, _ = await loop.create_datagram_endpoint(
                lambda: _SendProtocol(self),
                remote_addr=(self.config.client_host, self.config.client_port),
            )
        except OSError:
            await _close_transport(self._server_transport)
            self._server_transport = None
            raise

        self._open = True
        logger.info(
            f"OSC server listening on {self.config.server_host}:{self.config.server_port}"
        )
        logger.info(
            f"OSC client sending to {self.config.client_host}:{self.config.client_port}"
        )

    async def close(self) -> None:
        """
        Close both endpoints. Safe to call more than once.

        Returns once the sockets are released, so the same ports can be
        bound again right away.
        """
        for transport in (self._server_transport, self._client_transport):
            if transport is None:
                continue
            try:
                await _close_transport(transport)
            except Exception as e:
                logger.warning(f"Error closing OSC endpoint: {e}")
        self._server_transport = None
        self._client_transport = None
        if self._open:
            logger.info("OSC session closed")
        self._open = False

    def send(self, packet: Any) -> bool:
        """
        Send ``["/address", arg, ...]`` to the client endpoint.

        Returns:
            True if the datagram was handed to the transport
        """
        if not self._open or self._client_transport is None:
            return False

        try:
            dgram = build_packet(packet)
            self._client_transport.sendto(dgram)
        except (ValueError, OSError) as e:
            self._send_errors += 1
            logger.error(f"error sending OSC: {e}")
            return False

        self._messages_sent += 1
        self._last_send_time = time.time()
        logger.debug(f"OSC out: {packet}")
        return True

    def _on_send_error(self, exc: Exception) -> None:
        """Error reported by the socket after a send, e.g. port unreachable."""
        self._send_errors += 1
        logger.error(
            f"error sending OSC to {self.config.client_host}:{self.config.client_port}: {exc}"
        )

    def _on_osc(self, client_address, address: str, *args) -> None:
        """Dispatcher default handler."""
        self._messages_received += 1
        logger.debug(f"OSC in: {address} {args} from {client_address}")

        if self.on_message:
            try:
                self.on_message([address] + [to_jsonable(a) for a in args])
            except Exception as e:
                logger.error(f"Error forwarding OSC message: {e}")

    @property
    def listen_address(self) -> Optional[tuple]:
        """Bound (host, port) of the receive endpoint, once open."""
        if self._server_transport is None:
            return None
        return self._server_transport.get_extra_info("sockname")

    @property
    def is_open(self) -> bool:
        """Check if both endpoints are open."""
        return self._open

    def get_stats(self) -> dict:
        """Get session statistics."""
        return {
            "open": self._open,
            "server": f"{self.config.server_host}:{self.config.server_port}",
            "client": f"{self.config.client_host}:{self.config.client_port}",
            "messages_sent": self._messages_sent,
            "messages_received": self._messages_received,
            "send_errors": self._send_errors,
            "last_send_time": self._last_send_time,
        }
