"""Raffle round lifecycle: entries, upkeep and resolution."""

from __future__ import annotations

from typing import Tuple

from raffle.lottery.controller import RoundController
from raffle.lottery.event_manager import MemoryStore
from raffle.lottery.models import RaffleConfig, RoundState
from raffle.lottery.resolution import ResolutionHandler


def build_raffle(
    config: RaffleConfig,
    coordinator,
    payout,
    *,
    address: str,
    store: MemoryStore,
    clock=None,
) -> Tuple[RoundController, ResolutionHandler]:
    """Create a controller and resolution handler sharing one round."""
    controller = RoundController.create(config, coordinator, address=address, store=store, clock=clock)
    handler = ResolutionHandler(controller.round, payout, store=store, clock=clock)
    return controller, handler


__all__ = [
    "MemoryStore",
    "RaffleConfig",
    "ResolutionHandler",
    "RoundController",
    "RoundState",
    "build_raffle",
]
