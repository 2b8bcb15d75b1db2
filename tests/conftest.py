from __future__ import annotations

from dataclasses import dataclass
from typing import List

import pytest
from web3 import Web3

from raffle.blockchain.coordinator import VRFCoordinatorMock
from raffle.blockchain.ledger import InMemoryLedger
from raffle.lottery import build_raffle
from raffle.lottery.controller import RoundController
from raffle.lottery.event_manager import MemoryStore
from raffle.lottery.models import RaffleConfig
from raffle.lottery.resolution import ResolutionHandler
from raffle.utils.common import ManualClock

ENTRANCE_FEE = 10
INTERVAL = 60
GAS_LANE = "0xd89b2bf150e3b9e13446986e571fb9cab24b13cea0a43ea20a6049a85cc807cc"
RAFFLE_ADDRESS = Web3.to_checksum_address("0x" + "ca" * 20)
OWNER_ADDRESS = Web3.to_checksum_address("0x" + "0f" * 20)


@dataclass
class RaffleFixture:
    controller: RoundController
    handler: ResolutionHandler
    coordinator: VRFCoordinatorMock
    ledger: InMemoryLedger
    store: MemoryStore
    clock: ManualClock
    sub_id: int

    def make_ready(self, players: List[str]) -> None:
        for player in players:
            self.controller.enter(player, ENTRANCE_FEE)
        self.clock.advance(INTERVAL + 1)


@pytest.fixture
def accounts() -> List[str]:
    return [Web3.to_checksum_address("0x" + f"{i:040x}") for i in range(1, 8)]


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def coordinator(clock) -> VRFCoordinatorMock:
    return VRFCoordinatorMock(clock=clock)


@pytest.fixture
def raffle(coordinator, store, clock) -> RaffleFixture:
    sub_id = coordinator.create_subscription(OWNER_ADDRESS)
    coordinator.fund_subscription(sub_id, Web3.to_wei(10, "ether"))
    config = RaffleConfig(
        entrance_fee=ENTRANCE_FEE,
        interval=INTERVAL,
        gas_lane=GAS_LANE,
        subscription_id=sub_id,
        callback_gas_limit=500000,
    )
    ledger = InMemoryLedger()
    controller, handler = build_raffle(
        config, coordinator, ledger, address=RAFFLE_ADDRESS, store=store, clock=clock,
    )
    coordinator.add_consumer(sub_id, RAFFLE_ADDRESS, handler.fulfill_random_words)
    return RaffleFixture(controller, handler, coordinator, ledger, store, clock, sub_id)
