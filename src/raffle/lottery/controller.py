"""
Round Controller - entries, readiness and round closure
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from raffle.lottery.errors import (
    InsufficientPayment,
    InvalidParticipant,
    RoundClosed,
    UpkeepConditionsNotMet,
)
from raffle.lottery.event_manager import MemoryStore
from raffle.lottery.models import RaffleConfig, RaffleSnapshot, Round, RoundState
from raffle.utils.common import SystemClock, normalize_address, shorten_eth_address
from raffle.utils.logger import get_logger

logger = get_logger(__name__)


class RoundController:
    """Owns the round: accepts entries and hands the round off for randomness.

    ``coordinator`` is anything with a ``request_random_words(key_hash, sub_id,
    request_confirmations, callback_gas_limit, num_words, consumer)`` method
    returning a request id. ``address`` is the consumer address the coordinator
    knows this raffle by.
    """

    def __init__(
        self,
        round_: Round,
        coordinator,
        *,
        address: str,
        store: MemoryStore,
        clock=None,
    ) -> None:
        self._round = round_
        self._coordinator = coordinator
        self._store = store
        self._clock = clock or SystemClock()
        self.address = normalize_address(address)

    @classmethod
    def create(
        cls,
        config: RaffleConfig,
        coordinator,
        *,
        address: str,
        store: MemoryStore,
        clock=None,
    ) -> "RoundController":
        """Start a fresh round anchored at the current time."""
        clock = clock or SystemClock()
        round_ = Round(config=config, last_timestamp=clock.now())
        logger.info(
            "Raffle created: entrance fee %s wei, interval %ss, subscription %s",
            config.entrance_fee, config.interval, config.subscription_id,
        )
        return cls(round_, coordinator, address=address, store=store, clock=clock)

    @property
    def round(self) -> Round:
        return self._round

    # =============== STATE TRANSITIONS ===============

    def enter(self, player: str, amount: int) -> None:
        """Add one entry for ``player`` paying ``amount`` wei.

        Any amount at or above the entrance fee is kept in the pool as paid.
        """
        try:
            player = normalize_address(player)
        except ValueError as exc:
            raise InvalidParticipant(str(exc)) from exc
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise ValueError(f"Payment must be a non-negative integer amount of wei, got {amount!r}")

        r = self._round
        with r.lock:
            if r.state != RoundState.OPEN:
                logger.warning(f"Entry from {shorten_eth_address(player)} rejected: raffle is calculating")
                raise RoundClosed(r.pending_request_id)
            if amount < r.config.entrance_fee:
                logger.warning(f"Entry from {shorten_eth_address(player)} rejected: paid {amount} wei")
                raise InsufficientPayment(amount, r.config.entrance_fee)

            r.players.append(player)
            r.balance += amount
            round_number = r.round_number
            player_count = len(r.players)

        self._store.record_event("RaffleEnter", {
            "player": player,
            "amount": amount,
            "roundNumber": round_number,
            "playerCount": player_count,
        })

    def check_upkeep(self) -> bool:
        """Readiness predicate polled by the keeper. Never mutates state."""
        with self._round.lock:
            return self._is_ready()

    def perform_upkeep(self) -> int:
        """Close the round and request randomness. Returns the request id."""
        r = self._round
        with r.lock:
            if not self._is_ready():
                logger.warning(
                    f"Upkeep rejected: state={r.state.name}, players={len(r.players)}, balance={r.balance}"
                )
                raise UpkeepConditionsNotMet(r.state, len(r.players), r.balance)

            cfg = r.config
            request_id = self._coordinator.request_random_words(
                cfg.gas_lane,
                cfg.subscription_id,
                cfg.request_confirmations,
                cfg.callback_gas_limit,
                cfg.num_words,
                consumer=self.address,
            )
            r.state = RoundState.CALCULATING
            r.pending_request_id = request_id
            round_number = r.round_number
            player_count = len(r.players)

        logger.info(f"Round {round_number} closed with {player_count} players, request {request_id}")
        self._store.record_event("RequestedRaffleWinner", {
            "requestId": request_id,
            "roundNumber": round_number,
        })
        return request_id

    def _is_ready(self) -> bool:
        # Caller holds the round lock.
        r = self._round
        is_open = r.state == RoundState.OPEN
        time_passed = (self._clock.now() - r.last_timestamp) > r.config.interval
        has_players = len(r.players) > 0
        has_balance = r.balance > 0
        return is_open and time_passed and has_players and has_balance

    # =============== STATUS AND INFORMATION METHODS ===============

    def upkeep_diagnostics(self) -> Dict[str, Any]:
        """Each readiness condition on its own, for monitoring."""
        r = self._round
        with r.lock:
            elapsed = self._clock.now() - r.last_timestamp
            return {
                "upkeep_needed": self._is_ready(),
                "is_open": r.state == RoundState.OPEN,
                "time_passed": elapsed > r.config.interval,
                "has_players": len(r.players) > 0,
                "has_balance": r.balance > 0,
                "seconds_elapsed": elapsed,
                "seconds_remaining": max(0, r.config.interval - elapsed + 1),
            }

    def snapshot(self) -> RaffleSnapshot:
        r = self._round
        with r.lock:
            return RaffleSnapshot(
                state=r.state,
                entrance_fee=r.config.entrance_fee,
                interval=r.config.interval,
                player_count=len(r.players),
                balance=r.balance,
                recent_winner=r.recent_winner,
                last_timestamp=r.last_timestamp,
                round_number=r.round_number,
                pending_request_id=r.pending_request_id,
            )

    def get_entrance_fee(self) -> int:
        return self._round.config.entrance_fee

    def get_interval(self) -> int:
        return self._round.config.interval

    def get_raffle_state(self) -> RoundState:
        with self._round.lock:
            return self._round.state

    def get_num_players(self) -> int:
        with self._round.lock:
            return len(self._round.players)

    def get_player(self, index: int) -> str:
        """Player at ``index``; raises IndexError when there is none."""
        with self._round.lock:
            if index < 0 or index >= len(self._round.players):
                raise IndexError(f"No player at index {index}")
            return self._round.players[index]

    def get_players(self) -> List[str]:
        with self._round.lock:
            return list(self._round.players)

    def get_balance(self) -> int:
        with self._round.lock:
            return self._round.balance

    def get_recent_winner(self) -> Optional[str]:
        with self._round.lock:
            return self._round.recent_winner

    def get_last_timestamp(self) -> int:
        with self._round.lock:
            return self._round.last_timestamp

    def get_request_confirmations(self) -> int:
        return self._round.config.request_confirmations

    def get_num_words(self) -> int:
        return self._round.config.num_words

    def get_gas_lane(self) -> str:
        return self._round.config.gas_lane

    def get_subscription_id(self) -> int:
        return self._round.config.subscription_id

    def get_callback_gas_limit(self) -> int:
        return self._round.config.callback_gas_limit
