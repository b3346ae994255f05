#!/usr/bin/env python3
"""
Interactive Flower - Main Entry Point

A flower that seeds, grows, blooms and disperses under hand control.
Pinch to grow, open two fingers (or release the pinch) to bloom, open
the whole hand to disperse. Phase changes are sent as OSC events
through the OSC bridge.

Usage:
    python -m flower_client.main --server ws://127.0.0.1:8081/bridge --camera 0
    python -m flower_client.main --offline
"""

import argparse
import asyncio
import logging
import signal
import sys
import time
from typing import List, Optional, Tuple

import cv2

from .gesture import GestureSample
from .landmarks import LandmarkSource
from .latest import LatestValue, read_sample
from .lifecycle import FlowerSession, LifecycleConfig, PhaseTransition
from .message import BridgeEnvelope, EventValidator, OscEvent, transition_events
from .render import new_canvas, render_frame
from .ws_client import BridgeClient

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

WINDOW_NAME = "Interactive Flower"


class FlowerClient:
    """
    Main client that integrates all components:
    - Camera capture and MediaPipe detection (background thread)
    - Gesture smoothing and the phase state machine
    - OpenCV rendering
    - Bridge communication
    """

    def __init__(
        self,
        server_url: Optional[str],
        osc_listen: Tuple[str, int] = ("127.0.0.1", 12000),
        osc_target: Tuple[str, int] = ("127.0.0.1", 8000),
        camera_index: int = 0,
        width: int = 960,
        height: int = 720,
        rate: float = 60.0,
        max_sample_age: float = 0.5,
        show_hud: bool = True,
        lifecycle: Optional[LifecycleConfig] = None,
    ):
        """
        Initialize the flower client.

        Args:
            server_url: Bridge WebSocket URL, or None to run without OSC
            osc_listen: Where the bridge listens for OSC from the external program
            osc_target: Where the bridge sends OSC to
            camera_index: Camera device index
            width: Canvas width
            height: Canvas height
            rate: Render loop rate (Hz)
            max_sample_age: Gesture samples older than this count as no hand
            show_hud: Draw the debug line
            lifecycle: State machine thresholds
        """
        self.server_url = server_url
        self.osc_listen = osc_listen
        self.osc_target = osc_target
        self.rate = rate
        self.max_sample_age = max_sample_age
        self.show_hud = show_hud

        # Components
        self.cell: LatestValue[GestureSample] = LatestValue(GestureSample.idle())
        self.source = LandmarkSource(self.cell, camera_index=camera_index)
        self.session = FlowerSession(lifecycle, origin=(width / 2.0, height / 2.0))
        self.validator = EventValidator()
        self.bridge: Optional[BridgeClient] = None
        self.canvas = new_canvas(width, height)

        # State
        self._running = False
        self._stopped = False
        self._last_osc: Optional[OscEvent] = None
        self._prev_time = time.monotonic()

    async def start(self) -> None:
        """Start the client."""
        logger.info("Starting Interactive Flower...")

        if not self.source.start():
            raise RuntimeError("Failed to initialize camera")

        if self.server_url:
            config = BridgeEnvelope.config(
                server_host=self.osc_listen[0],
                server_port=self.osc_listen[1],
                client_host=self.osc_target[0],
                client_port=self.osc_target[1],
            )
            self.bridge = BridgeClient(
                server_url=self.server_url,
                config=config,
                on_osc=self._on_osc,
                on_configured=self._on_configured,
            )
            await self.bridge.start()
        else:
            logger.info("Running offline, OSC events disabled")

        self._running = True
        self._prev_time = time.monotonic()
        logger.info("Interactive Flower started")

    async def stop(self) -> None:
        """Stop the client and clean up resources."""
        if self._stopped:
            return
        logger.info("Stopping Interactive Flower...")
        self._running = False
        self._stopped = True

        if self.bridge:
            await self.bridge.stop()
            logger.info(f"Bridge stats: {self.bridge.get_stats()}")
            self.bridge = None

        logger.info(f"Detector stats: {self.source.get_stats()}")
        self.source.stop()
        cv2.destroyAllWindows()
        logger.info("Interactive Flower stopped")

    async def run(self) -> None:
        """Main render loop."""
        target_dt = 1.0 / self.rate

        while self._running:
            loop_start = time.monotonic()

            try:
                self._process_frame()
            except Exception as e:
                logger.error(f"Error in render loop: {e}")

            key = cv2.waitKey(1) & 0xFF
            if key in (27, ord('q')):
                logger.info("Quit requested")
                self._running = False
            elif key in (ord('r'), ord('R')):
                self.session.reset()
                logger.info("Session reset")

            elapsed = time.monotonic() - loop_start
            await asyncio.sleep(max(0.0, target_dt - elapsed))

    def _process_frame(self) -> None:
        """Update state and draw one frame."""
        now = time.monotonic()
        dt = now - self._prev_time
        self._prev_time = now

        sample = read_sample(self.cell, self.max_sample_age)
        transition = self.session.update(sample, dt)
        if transition is not None:
            self._emit(transition)

        render_frame(self.canvas, self.session, hud=self.show_hud, status=self._status())
        cv2.imshow(WINDOW_NAME, self.canvas)

    def _emit(self, transition: PhaseTransition) -> None:
        """Validate and send the transition's OSC events."""
        self._send_events(transition.events)

    def _send_events(self, events: List[OscEvent]) -> None:
        if self.bridge is None:
            return
        for event in events:
            valid, _ = self.validator.validate(event)
            if not valid:
                continue
            self.bridge.send(event)

    async def _on_configured(self, ok: bool) -> None:
        """Bring the external program up to date once the bridge is configured."""
        if not ok:
            return
        session = self.session
        self._send_events(
            transition_events(session.pinch_smooth, session.fingers, session.phase)
        )

    def _status(self) -> str:
        parts = [self._bridge_status()]

        detector = self.source.get_stats()
        if detector["stream_problematic"]:
            parts.append("detector: failing")
        elif detector["mediapipe"]["failures"] > 0:
            parts.append(f"detector errors: {detector['mediapipe']['failures']}")
        return "  ".join(parts)

    def _bridge_status(self) -> str:
        if self.bridge is None:
            return "bridge: offline"
        if self.bridge.configured:
            status = "bridge: connected"
        elif self.bridge.connected:
            return "bridge: configuring"
        else:
            return "bridge: disconnected"
        if self._last_osc is not None:
            args = " ".join(str(a) for a in self._last_osc.args)
            status += f"  last osc: {self._last_osc.address} {args}"
        return status

    def _on_osc(self, event: OscEvent) -> None:
        """OSC messages relayed from the external program."""
        logger.debug(f"OSC -> flower: {event.address} {event.args}")
        self._last_osc = event


def host_port(value: str) -> Tuple[str, int]:
    """Parse HOST:PORT for argparse."""
    host, sep, port = value.rpartition(":")
    if not sep or not host:
        raise argparse.ArgumentTypeError(f"expected HOST:PORT, got {value!r}")
    try:
        return host, int(port)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port in {value!r}")


async def main_async(args: argparse.Namespace) -> None:
    """Async main entry point."""
    client = FlowerClient(
        server_url=None if args.offline else args.server,
        osc_listen=args.osc_listen,
        osc_target=args.osc_target,
        camera_index=args.camera,
        width=args.width,
        height=args.height,
        rate=args.rate,
        show_hud=not args.no_hud,
    )

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Shutdown signal received")
        client._running = False

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await client.start()
        await client.run()
    except Exception as e:
        logger.error(f"Client error: {e}")
    finally:
        await client.stop()


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Interactive Flower",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--server",
        type=str,
        default="ws://127.0.0.1:8081/bridge",
        help="OSC bridge WebSocket URL",
    )
    parser.add_argument(
        "--osc-listen",
        type=host_port,
        default=("127.0.0.1", 12000),
        help="HOST:PORT the bridge listens on for OSC from the external program",
    )
    parser.add_argument(
        "--osc-target",
        type=host_port,
        default=("127.0.0.1", 8000),
        help="HOST:PORT the bridge sends OSC events to",
    )
    parser.add_argument(
        "--camera",
        type=int,
        default=0,
        help="Camera device index",
    )
    parser.add_argument(
        "--width",
        type=int,
        default=960,
        help="Canvas width",
    )
    parser.add_argument(
        "--height",
        type=int,
        default=720,
        help="Canvas height",
    )
    parser.add_argument(
        "--rate",
        type=float,
        default=60.0,
        help="Render loop rate (Hz)",
    )
    parser.add_argument(
        "--no-hud",
        action="store_true",
        help="Hide the debug line",
    )
    parser.add_argument(
        "--offline",
        action="store_true",
        help="Run without the OSC bridge",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        asyncio.run(main_async(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
