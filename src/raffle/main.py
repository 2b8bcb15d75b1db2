#!/usr/bin/env python3
"""
Raffle Operator Application

Main entry point. Wires the round controller to an in-process VRF coordinator,
runs the upkeep keeper and the local VRF node, and serves the HTTP API.
"""

import asyncio
import signal
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

# Load .env before any raffle module configures logging
load_dotenv(Path.cwd() / ".env")

from eth_account import Account  # noqa: E402
from web3 import Web3  # noqa: E402

from raffle.blockchain.coordinator import VRFCoordinatorMock  # noqa: E402
from raffle.blockchain.ledger import InMemoryLedger  # noqa: E402
from raffle.blockchain.vrf_node import LocalVRFNode  # noqa: E402
from raffle.lottery import build_raffle  # noqa: E402
from raffle.lottery.event_manager import MemoryStore  # noqa: E402
from raffle.lottery.keeper import UpkeepKeeper  # noqa: E402
from raffle.lottery.models import RaffleConfig  # noqa: E402
from raffle.utils.config import get_config_value, load_config, network_settings  # noqa: E402
from raffle.utils.logger import get_logger  # noqa: E402
from raffle.web_server import RaffleWebServer  # noqa: E402

logger = get_logger(__name__)

DEFAULT_SUBSCRIPTION_FUND = Web3.to_wei(30, "ether")  # LINK


class RaffleOperatorApp:
    """Raffle operator application.

    Responsible for initializing and orchestrating the coordinator, the raffle
    round, the keeper, the local VRF node and the FastAPI web server.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config if config is not None else load_config()
        self.store = MemoryStore(
            feed_capacity=int(get_config_value(self.config, "app.live_feed_max_entries", 100)),
            history_capacity=int(get_config_value(self.config, "app.round_history_max", 20)),
        )
        self.coordinator: Optional[VRFCoordinatorMock] = None
        self.ledger: Optional[InMemoryLedger] = None
        self.controller = None
        self.handler = None
        self.keeper: Optional[UpkeepKeeper] = None
        self.vrf_node: Optional[LocalVRFNode] = None
        self.web_server: Optional[RaffleWebServer] = None
        self.running = True

    def _display_config_summary(self, settings: Dict[str, Any]) -> None:
        logger.info("=" * 60)
        logger.info("CONFIGURATION SUMMARY")
        logger.info("=" * 60)
        logger.info(f"Network: {settings.get('name', 'custom')} (chain id {settings['chain_id']})")
        logger.info(f"Entrance fee: {settings.get('entrance_fee_wei') or settings.get('entrance_fee')}")
        logger.info(f"Interval: {settings.get('interval')}s")
        logger.info(f"Keeper check interval: {get_config_value(self.config, 'keeper.check_interval', 5)}s")
        server_config = self.config.get('server', {})
        logger.info(f"Server: {server_config.get('host', '0.0.0.0')}:{server_config.get('port', 6080)}")
        logger.info("=" * 60)

    def initialize(self) -> None:
        """Build every component. Nothing is started yet."""
        settings = network_settings(self.config)
        self._display_config_summary(settings)

        self.coordinator = VRFCoordinatorMock()
        owner = get_config_value(self.config, "vrf.owner") or Account.create().address
        sub_id = self.coordinator.create_subscription(owner)
        fund = int(get_config_value(self.config, "vrf.subscription_fund", DEFAULT_SUBSCRIPTION_FUND))
        self.coordinator.fund_subscription(sub_id, fund)
        if int(settings.get("subscription_id", 0)) not in (0, sub_id):
            logger.warning(f"Configured subscription {settings['subscription_id']} replaced by local subscription {sub_id}")
        settings["subscription_id"] = sub_id

        raffle_config = RaffleConfig.from_config(settings)
        address = settings.get("address") or Account.create().address
        self.ledger = InMemoryLedger()
        self.controller, self.handler = build_raffle(
            raffle_config, self.coordinator, self.ledger, address=address, store=self.store,
        )
        self.coordinator.add_consumer(sub_id, address, self.handler.fulfill_random_words)

        self.keeper = UpkeepKeeper(self.controller, self.config)
        self.vrf_node = LocalVRFNode(
            self.coordinator,
            block_time=float(get_config_value(self.config, "vrf.block_time", 2.0)),
            poll_interval=float(get_config_value(self.config, "vrf.poll_interval", 1.0)),
        )
        self.web_server = RaffleWebServer(self.config, self.controller, self.store, self.keeper)
        logger.info(f"Raffle {address} initialized on subscription {sub_id}")

    async def start(self) -> None:
        """Start services and run until a shutdown signal is received."""
        try:
            self.initialize()
            await self.keeper.start()
            await self.vrf_node.start()

            server_host = self.config.get('server', {}).get('host', '0.0.0.0')
            server_port = int(self.config.get('server', {}).get('port', 6080))
            server_task = asyncio.create_task(self.web_server.start(host=server_host, port=server_port))
            await asyncio.sleep(0.2)
            if server_task.done() and server_task.exception():
                raise server_task.exception()

            while self.running and not server_task.done():
                await asyncio.sleep(1)

            logger.info("Shutdown signal received, stopping application...")
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Stop all services."""
        logger.info("Stopping raffle operator")
        self.running = False
        if self.keeper:
            await self.keeper.stop()
        if self.vrf_node:
            await self.vrf_node.stop()
        if self.web_server:
            await self.web_server.stop()
        self.store.clear_all_data()
        logger.info("Raffle operator stopped")

    def _handle_signal(self, signum, frame):
        logger.info(f"Received signal {signum}, initiating graceful shutdown...")
        self.running = False


async def main():
    """Main entry point for the raffle operator"""
    app = RaffleOperatorApp()

    signal.signal(signal.SIGINT, app._handle_signal)
    signal.signal(signal.SIGTERM, app._handle_signal)

    try:
        await app.start()
    except KeyboardInterrupt:
        logger.info("Raffle operator interrupted by user")
    except Exception as e:
        logger.exception(f"Raffle operator failed: {e}")
        sys.exit(1)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
