#!/usr/bin/env python3
"""
Flower OSC Bridge - Main Entry Point

This server relays events between visual clients and OSC software:
- Accepts WebSocket connections at /bridge
- Opens an OSC receive/send endpoint pair per connection on "config"
- Forwards client events to OSC and OSC messages back to the client

Environment Variables:
    BRIDGE_HOST: Bind address (default: 0.0.0.0)
    PORT: Server port (default: 8081)
    LOG_LEVEL: Logging level (default: INFO)

Usage:
    PORT=8081 python -m flower_bridge.main
"""

import asyncio
import logging
import os
import signal
import sys

import uvicorn

from .ws_server import RelayServer

# Configure logging
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def run_server(relay: RelayServer, host: str, port: int) -> None:
    """Run the relay with uvicorn."""
    config = uvicorn.Config(
        relay.app,
        host=host,
        port=port,
        log_level="info",
        access_log=True,
    )
    server = uvicorn.Server(config)
    await server.serve()


async def main_async() -> None:
    """Async main entry point."""
    host = os.environ.get("BRIDGE_HOST", "0.0.0.0")
    try:
        port = int(os.environ.get("PORT", "8081"))
    except ValueError:
        logger.error(f"Invalid PORT: {os.environ.get('PORT')!r}")
        sys.exit(1)

    relay = RelayServer()

    # Setup signal handlers
    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def signal_handler():
        logger.info("Shutdown signal received")
        shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    logger.info(f"Flower OSC Bridge listening on ws://{host}:{port}/bridge")

    try:
        server_task = asyncio.create_task(run_server(relay, host, port))
        shutdown_task = asyncio.create_task(shutdown_event.wait())

        done, pending = await asyncio.wait(
            [server_task, shutdown_task],
            return_when=asyncio.FIRST_COMPLETED,
        )

        # Cancel pending tasks
        for task in pending:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    except Exception as e:
        logger.error(f"Server error: {e}")
    finally:
        logger.info("Flower OSC Bridge stopped")


def main() -> None:
    """Main entry point."""
    try:
        asyncio.run(main_async())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
