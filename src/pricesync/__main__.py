"""PriceSync entry point.

Start the scheduler (default):
    python -m pricesync --config stores.toml

Run one store once and print the outcome:
    python -m pricesync --config stores.toml sync --store main-shop
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from decimal import Decimal
from typing import Optional

from dotenv import load_dotenv

from .clients import SourceFeedClient
from .config import SyncSettings
from .errors import PriceSyncError
from .models import Platform
from .orchestrator import SyncOrchestrator
from .scheduler import SchedulerService
from .stores import JsonFileStatusStore, LoggingAuditSink, TomlConfigStore

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO"):
    """Setup logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def build_orchestrator(
    settings: SyncSettings, config_path: str, status_path: Optional[str] = None
) -> SyncOrchestrator:
    """Wire the feed client and file-backed collaborators together."""
    return SyncOrchestrator(
        feed_client=SourceFeedClient(
            settings.feed, settings.retry, timeout=settings.request_timeout
        ),
        config_store=TomlConfigStore(config_path),
        status_store=JsonFileStatusStore(status_path or settings.status_store_path),
        audit_sink=LoggingAuditSink(),
        client_options={
            Platform.WOOCOMMERCE: {"timeout": settings.request_timeout},
            Platform.SHOPIFY: {
                "timeout": settings.request_timeout,
                "retry": settings.retry,
                "min_request_interval": settings.shopify_min_request_interval,
            },
        },
        price_epsilon=Decimal(str(settings.price_epsilon)),
    )


async def run_scheduler(
    settings: SyncSettings, config_path: str, status_path: str, tick: int
) -> None:
    """Run the scheduler until SIGINT/SIGTERM."""
    orchestrator = build_orchestrator(settings, config_path, status_path)
    service = SchedulerService(
        orchestrator,
        orchestrator.config_store,
        orchestrator.status_store,
        tick_seconds=tick,
    )

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _shutdown_handler():
        logger.info("Shutdown signal received, stopping scheduler...")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _shutdown_handler)

    service.start()
    await stop_event.wait()
    logger.info("Waiting for in-flight sync runs...")
    await service.stop(wait=True)
    await orchestrator.close()
    logger.info("PriceSync stopped.")


async def run_once(
    settings: SyncSettings, config_path: str, status_path: str, store_id: str
) -> int:
    """Sync one store and print its outcome as JSON."""
    orchestrator = build_orchestrator(settings, config_path, status_path)
    try:
        outcome = await orchestrator.sync_store_by_id(store_id)
    finally:
        await orchestrator.close()
    print(outcome.model_dump_json(indent=2))
    return 0 if outcome.status.value != "failed" else 1


def main(argv: Optional[list[str]] = None):
    """CLI entry point."""
    load_dotenv()
    settings = SyncSettings.from_env()

    parser = argparse.ArgumentParser(description="PriceSync: feed-driven store repricing")
    parser.add_argument(
        "--config",
        "-c",
        default=settings.stores_config_path,
        help="TOML file with store definitions (default: STORES_CONFIG_PATH env)",
    )
    parser.add_argument(
        "--status-file",
        default=settings.status_store_path,
        help="JSON file for sync outcomes and product statuses (default: STATUS_STORE_PATH env)",
    )
    parser.add_argument(
        "--log-level",
        default=settings.log_level.upper(),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level",
    )
    parser.add_argument(
        "--tick",
        type=int,
        default=settings.scheduler_tick_seconds,
        help="Seconds between scheduler ticks",
    )

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("run", help="Start the scheduler (default)")
    sync_parser = subparsers.add_parser("sync", help="Sync one store once")
    sync_parser.add_argument("--store", required=True, help="Store id")

    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    if not args.config:
        parser.error("no store configuration: pass --config or set STORES_CONFIG_PATH")

    if args.command == "sync":
        try:
            sys.exit(asyncio.run(run_once(settings, args.config, args.status_file, args.store)))
        except PriceSyncError as e:
            logger.error(str(e))
            sys.exit(1)

    try:
        asyncio.run(run_scheduler(settings, args.config, args.status_file, args.tick))
    except KeyboardInterrupt:
        logger.info("Shutting down...")
        sys.exit(0)


if __name__ == "__main__":
    main()
