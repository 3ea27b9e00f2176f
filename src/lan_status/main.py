"""
LAN Status FastAPI Application.

Pings every machine in the inventory on a schedule and pushes live
status to connected dashboards; the inventory itself is editable over
the API.
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .broadcaster import StatusBroadcaster
from .channel import StatusChannel
from .config import MonitorConfig
from .inventory_store import InventoryStore
from .probe import Pinger, ProbeEngine
from .routes import inventory, status
from .utils import setup_logging

logger = logging.getLogger(__name__)


def build_services(
    config: MonitorConfig,
    pinger: Optional[Pinger] = None,
) -> tuple[InventoryStore, StatusBroadcaster]:
    """Wire store, probe engine, channel and broadcaster together."""
    store = InventoryStore(config.inventory_path)
    engine = ProbeEngine(
        batch_size=config.batch_size,
        timeout_seconds=config.probe_timeout_seconds,
        pinger=pinger,
    )
    broadcaster = StatusBroadcaster(
        store=store,
        engine=engine,
        channel=StatusChannel(),
        interval_seconds=config.broadcast_interval_seconds,
    )
    store.add_listener(broadcaster.on_inventory_changed)
    return store, broadcaster


def _log_banner(config: MonitorConfig) -> None:
    logger.info("=======================================")
    logger.info(f"Environment: {config.environment}")
    logger.info(f"Inventory file: {config.inventory_path}")
    logger.info(f"Port: {config.port}")
    logger.info(
        f"Interval: {config.broadcast_interval_seconds}s | "
        f"Batch size: {config.batch_size} | "
        f"Probe timeout: {config.probe_timeout_seconds}s"
    )
    logger.info("=======================================")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    config: MonitorConfig = app.state.config
    store: InventoryStore = app.state.store
    broadcaster: StatusBroadcaster = app.state.broadcaster

    logger.info("LAN Status starting up...")
    _log_banner(config)

    await asyncio.to_thread(store.load)

    watch_stop = asyncio.Event()
    watch_task = asyncio.create_task(
        store.watch(config.watch_interval_seconds, watch_stop)
    )
    app.state.watch_task = watch_task
    await broadcaster.start()

    logger.info(f"LAN Status ready on port {config.port}")
    yield

    watch_stop.set()
    watch_task.cancel()
    try:
        await watch_task
    except asyncio.CancelledError:
        pass
    await broadcaster.stop()
    logger.info("LAN Status shutting down...")


def create_app(
    config: Optional[MonitorConfig] = None,
    pinger: Optional[Pinger] = None,
) -> FastAPI:
    """Create FastAPI application."""
    config = config or MonitorConfig.from_env()

    app = FastAPI(
        title="LAN Status",
        description="Live reachability dashboard for LAN machines",
        version=__version__,
        lifespan=lifespan,
    )

    store, broadcaster = build_services(config, pinger=pinger)
    app.state.config = config
    app.state.store = store
    app.state.broadcaster = broadcaster

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT"],
        allow_headers=["*"],
    )

    app.include_router(inventory.router, prefix="/api", tags=["inventory"])
    app.include_router(status.router, tags=["status"])

    @app.get("/health")
    async def health():
        latest = broadcaster.latest
        return {
            "status": "healthy",
            "service": "lan-status",
            "machines": len(store.machines),
            "subscribers": broadcaster.channel.subscriber_count,
            "cycles_completed": broadcaster.cycles_completed,
            "cycles_failed": broadcaster.cycles_failed,
            "last_broadcast_ts": latest.ts if latest else None,
        }

    return app


def main():
    """Entry point for lan-status CLI."""
    import argparse

    parser = argparse.ArgumentParser(description="LAN Status monitor")
    parser.add_argument("--config", type=str, help="Path to config file")
    parser.add_argument("--host", type=str, help="Host to bind to")
    parser.add_argument("--port", type=int, help="Port to listen on")
    parser.add_argument("--log-level", type=str, help="Log level")
    args = parser.parse_args()

    if args.config:
        config = MonitorConfig.from_yaml(Path(args.config))
    else:
        config = MonitorConfig.from_env()

    # Override with CLI args
    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port
    if args.log_level:
        config.log_level = args.log_level

    setup_logging(config.log_level)

    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(f"Config error: {error}")
        sys.exit(1)

    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
