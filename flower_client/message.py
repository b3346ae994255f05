"""
Message Schema and Validation for relay events.

Defines the JSON envelope exchanged with the OSC bridge and the OSC
events emitted on phase transitions, and validates outgoing events
before transmission.
"""

import json
import logging
import math
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

logger = logging.getLogger(__name__)

# OSC addresses
PINCH_ADDRESS = "/hand/pinch"
FINGERS_ADDRESS = "/hand/fingers"
PHASE_ADDRESS = "/viz/phase"

NUM_PHASES = 4


@dataclass
class OscEvent:
    """
    An OSC message to be relayed.

    Attributes:
        address: OSC address pattern, e.g. "/hand/pinch"
        args: Positional OSC arguments
    """
    address: str
    args: List[Any] = field(default_factory=list)

    def to_packet(self) -> List[Any]:
        """Flatten to ``["/address", arg, ...]``."""
        return [self.address] + list(self.args)

    @classmethod
    def from_packet(cls, packet: Any) -> 'OscEvent':
        """Parse ``["/address", arg, ...]``."""
        if not isinstance(packet, (list, tuple)) or not packet:
            raise ValueError(f"expected ['/address', ...], got {packet!r}")
        if not isinstance(packet[0], str):
            raise ValueError(f"OSC address must be a string, got {packet[0]!r}")
        return cls(address=packet[0], args=list(packet[1:]))


@dataclass
class BridgeEnvelope:
    """
    One WebSocket text frame exchanged with the bridge.

    Attributes:
        event: "config", "osc-send", "message" or "connected"
        data: Event payload
    """
    event: str
    data: Any = None

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps({"event": self.event, "data": self.data})

    @classmethod
    def from_json(cls, data: str) -> 'BridgeEnvelope':
        """Deserialize from JSON string."""
        d = json.loads(data)
        if not isinstance(d, dict):
            raise ValueError("envelope must be a JSON object")
        return cls(event=str(d['event']), data=d.get('data'))

    @classmethod
    def config(
        cls,
        server_host: str,
        server_port: int,
        client_host: str,
        client_port: int,
    ) -> 'BridgeEnvelope':
        """
        Create a config event.

        Args:
            server_host: Host the bridge listens on for OSC
            server_port: Port the bridge listens on for OSC
            client_host: Host the bridge sends OSC to
            client_port: Port the bridge sends OSC to
        """
        return cls("config", {
            "server": {"host": server_host, "port": server_port},
            "client": {"host": client_host, "port": client_port},
        })

    @classmethod
    def osc_send(cls, event: OscEvent) -> 'BridgeEnvelope':
        """Create an osc-send event."""
        return cls("osc-send", event.to_packet())


def transition_events(pinch: float, fingers: int, phase: int) -> List[OscEvent]:
    """The three events emitted on every phase transition, in order."""
    return [
        OscEvent(PINCH_ADDRESS, [float(pinch)]),
        OscEvent(FINGERS_ADDRESS, [int(fingers)]),
        OscEvent(PHASE_ADDRESS, [int(phase)]),
    ]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class EventValidator:
    """
    Validates outgoing OSC events.

    Checks performed:
    1. Address is a non-empty string starting with "/"
    2. Arguments are OSC-encodable scalars
    3. Numeric arguments are finite
    4. Known addresses carry a single value in range
    """

    def __init__(self):
        self._dropped_count: int = 0
        self._validated_count: int = 0

    def validate(self, event: OscEvent) -> Tuple[bool, str]:
        """
        Validate an event.

        Args:
            event: The event to validate

        Returns:
            Tuple of (is_valid, reason_string)
        """
        reason = self._check(event)
        if reason != "ok":
            self._dropped_count += 1
            logger.warning(f"Invalid event {event.address!r}: {reason}")
            return False, reason
        self._validated_count += 1
        return True, "ok"

    def _check(self, event: OscEvent) -> str:
        if not isinstance(event.address, str) or not event.address.startswith("/"):
            return "bad_address"

        for arg in event.args:
            if isinstance(arg, bool) or arg is None:
                continue
            if isinstance(arg, (int, float)):
                if not math.isfinite(arg):
                    return "arg_not_finite"
            elif not isinstance(arg, (str, bytes)):
                return "arg_not_encodable"

        if event.address == PINCH_ADDRESS:
            if len(event.args) != 1 or not _is_number(event.args[0]) or not 0.0 <= event.args[0] <= 1.0:
                return "pinch_out_of_range"
        elif event.address == FINGERS_ADDRESS:
            if len(event.args) != 1 or not isinstance(event.args[0], int) or not 0 <= event.args[0] <= 5:
                return "fingers_out_of_range"
        elif event.address == PHASE_ADDRESS:
            if len(event.args) != 1 or not isinstance(event.args[0], int) or not 0 <= event.args[0] < NUM_PHASES:
                return "phase_out_of_range"

        return "ok"

    def get_stats(self) -> dict:
        """Get validation statistics."""
        total = self._validated_count + self._dropped_count
        return {
            "total_events": total,
            "validated": self._validated_count,
            "dropped": self._dropped_count,
            "drop_rate": self._dropped_count / total if total > 0 else 0.0,
        }


def parse_inbound(envelope: BridgeEnvelope) -> Optional[OscEvent]:
    """Extract the OSC event from an inbound "message" envelope, if any."""
    if envelope.event != "message":
        return None
    try:
        return OscEvent.from_packet(envelope.data)
    except ValueError as e:
        logger.warning(f"Malformed inbound OSC message: {e}")
        return None
