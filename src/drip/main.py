#!/usr/bin/env python3
"""DRIP - Dispense gateway for the Nyks chain faucet.

Entry point for the DRIP service.
"""

import asyncio
import logging
import signal
import sys

from drip.api.server import GatewayServer
from drip.cli import build_orchestrator, create_parser, run_cli
from drip.config import DripConfig
from drip.core.errors import StoreUnavailableError
from drip.ledger.store import create_store
from drip.observability.health import HealthServer, LedgerHealthCheck
from drip.observability.logging import configure_logging


def parse_args(argv: list[str] | None = None):
    """Parse command line arguments."""
    return create_parser().parse_args(argv)


async def run_service() -> None:
    """Run the DRIP service (long-running mode).

    Wires up and starts all service components:
    - Ledger store (Redis, or in-memory without REDIS_URL)
    - HealthServer for probes and metrics
    - DispenseOrchestrator with the nyksd executor
    - GatewayServer for dispense requests
    """
    config = DripConfig()
    configure_logging(level=config.log_level, log_format=config.log_format)

    logger = logging.getLogger(__name__)
    logger.info("DRIP starting")
    logger.info("Chain ID: %s, nyksd: %s", config.chain_id, config.nyksd_binary)
    logger.info(
        "Amounts: native=%s, bridged=%s sats, window=%sh",
        config.nyks_amount,
        config.sats_amount,
        config.window_hours,
    )

    try:
        store = create_store(config.redis_url)
    except StoreUnavailableError as e:
        logger.error("Ledger store unavailable at startup: %s", e)
        sys.exit(1)

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def on_shutdown_signal(sig_name: str) -> None:
        logger.info("Received signal %s, initiating shutdown", sig_name)
        shutdown_event.set()

    loop.add_signal_handler(signal.SIGTERM, lambda: on_shutdown_signal("SIGTERM"))
    loop.add_signal_handler(signal.SIGINT, lambda: on_shutdown_signal("SIGINT"))

    health_server = HealthServer(port=config.metrics_port, checks=[LedgerHealthCheck(store)])
    await health_server.start()

    orchestrator = build_orchestrator(config, store)
    if config.relayer_address is None:
        logger.warning("DRIP_RELAYER_ADDRESS not set, relayer minting disabled")

    gateway = GatewayServer(
        orchestrator,
        host=config.http_host,
        port=config.http_port,
        allowed_origins=config.allowed_origins,
    )
    await gateway.start()
    logger.info("DRIP service ready on port %d", config.http_port)

    await shutdown_event.wait()

    logger.info("DRIP shutting down...")
    await gateway.stop()
    await health_server.stop()
    logger.info("DRIP shutdown complete")


def main(argv: list[str] | None = None) -> None:
    """Main entry point for DRIP."""
    args = parse_args(argv)

    if args.command and args.command != "run":
        exit_code = run_cli(args)
        if exit_code >= 0:
            sys.exit(exit_code)
        create_parser().print_help()
        sys.exit(0)

    asyncio.run(run_service())


if __name__ == "__main__":
    main()
