#!/usr/bin/env python3
"""
Realtime Store Server

Runs a MemoryStore behind a WebSocket server, plus a background task that
expires leased paths.
"""

import asyncio
import logging
import os
import sys

from .memory import MemoryStore
from .websocket_server import StoreServer

# Configure logging
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

DEFAULT_LEASE_SWEEP_INTERVAL = 1.0  # seconds between lease sweeps


async def run_server(host: str, port: int, sweep_interval: float):
    """
    Run the store server until cancelled.

    Args:
        host: WebSocket host address to bind to
        port: WebSocket port to listen on
        sweep_interval: Seconds between lease expiry sweeps
    """
    store = MemoryStore()
    server = StoreServer(store, host, port)
    await server.start()

    logger.info(f"Store server listening on ws://{host}:{server.port}")

    sweeper_task = asyncio.create_task(lease_sweeper(store, sweep_interval))

    try:
        # Wait indefinitely
        await asyncio.Event().wait()
    except asyncio.CancelledError:
        logger.info("Server shutdown requested")
    finally:
        sweeper_task.cancel()
        try:
            await sweeper_task
        except asyncio.CancelledError:
            pass
        await server.stop()
        logger.info("Store server stopped")


async def lease_sweeper(store: MemoryStore, interval: float):
    """
    Periodic task removing paths whose lease has lapsed.

    Args:
        store: The store engine
        interval: Seconds between sweeps
    """
    logger.info("Starting lease sweeper task")

    while True:
        try:
            await asyncio.sleep(interval)
            store.expire_leases()
        except asyncio.CancelledError:
            logger.info("Lease sweeper task cancelled")
            raise
        except Exception as e:
            logger.error(f"Error in lease sweeper: {e}")


def main():
    """Main entry point for the store server."""
    logger.info("Starting realtime store server...")

    host = os.environ.get("STORE_HOST", "0.0.0.0")
    port = int(os.environ.get("STORE_PORT", "8765"))
    sweep_interval = float(
        os.environ.get("LEASE_SWEEP_INTERVAL", str(DEFAULT_LEASE_SWEEP_INTERVAL))
    )

    try:
        asyncio.run(run_server(host, port, sweep_interval))
    except KeyboardInterrupt:
        logger.info("Shutting down store server...")
        sys.exit(0)


if __name__ == "__main__":
    main()
