"""Core data models for the raffle round lifecycle."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import IntEnum
from typing import Any, Dict, List, Optional

from web3 import Web3

REQUEST_CONFIRMATIONS = 3
NUM_WORDS = 1


class RoundState(IntEnum):
    """Raffle states. OPEN accepts entries, CALCULATING waits for randomness."""

    OPEN = 0
    CALCULATING = 1


@dataclass(frozen=True)
class RaffleConfig:
    """Immutable raffle parameters fixed at construction."""

    entrance_fee: int
    interval: int
    gas_lane: str
    subscription_id: int
    callback_gas_limit: int
    request_confirmations: int = REQUEST_CONFIRMATIONS
    num_words: int = NUM_WORDS

    def __post_init__(self) -> None:
        if self.entrance_fee <= 0:
            raise ValueError("entrance_fee must be positive")
        if self.interval < 0:
            raise ValueError("interval must not be negative")
        if self.num_words < 1:
            raise ValueError("num_words must be at least 1")

    @classmethod
    def from_config(cls, settings: Dict[str, Any]) -> "RaffleConfig":
        """Build from a merged network/raffle settings dict.

        ``entrance_fee_wei`` wins over ``entrance_fee``, which is given in ether.
        """
        if settings.get("entrance_fee_wei") is not None:
            fee = int(settings["entrance_fee_wei"])
        else:
            fee = Web3.to_wei(Decimal(str(settings.get("entrance_fee", "0.01"))), "ether")
        return cls(
            entrance_fee=fee,
            interval=int(settings.get("interval", 30)),
            gas_lane=str(settings.get("gas_lane", "0x" + "00" * 32)),
            subscription_id=int(settings.get("subscription_id", 0)),
            callback_gas_limit=int(settings.get("callback_gas_limit", 500000)),
            request_confirmations=int(settings.get("request_confirmations", REQUEST_CONFIRMATIONS)),
            num_words=int(settings.get("num_words", NUM_WORDS)),
        )


@dataclass
class Round:
    """The single, long-lived raffle round. Mutated in place, never replaced.

    ``lock`` serialises every state-changing operation on the round.
    """

    config: RaffleConfig
    last_timestamp: int
    state: RoundState = RoundState.OPEN
    players: List[str] = field(default_factory=list)
    balance: int = 0
    recent_winner: Optional[str] = None
    pending_request_id: Optional[int] = None
    round_number: int = 1
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)


@dataclass
class RaffleSnapshot:
    """Read-only projection of the round for monitoring and UIs."""

    state: RoundState
    entrance_fee: int
    interval: int
    player_count: int
    balance: int
    recent_winner: Optional[str]
    last_timestamp: int
    round_number: int
    pending_request_id: Optional[int]


@dataclass
class RoundSnapshot:
    """Historical record of a resolved round."""

    round_number: int
    winner: str
    prize: int
    participant_count: int
    request_id: int
    random_word: int
    finished_at: int


@dataclass
class LiveFeedItem:
    """Entry pushed to the activity feed."""

    event_type: str
    message: str
    details: Dict[str, Any]
    created_at: datetime = field(default_factory=datetime.utcnow)

    def get_item_id(self) -> str:
        return f"{self.details.get('roundNumber', 0)}-{self.created_at.timestamp()}-{self.event_type}"


@dataclass
class KeeperStatus:
    """Operational metrics for the upkeep loop."""

    is_running: bool = False
    checks: int = 0
    upkeeps_performed: int = 0
    last_check: Optional[datetime] = None
    last_upkeep: Optional[datetime] = None
    last_request_id: Optional[int] = None
    consecutive_failures: int = 0
    last_error: Optional[str] = None

    def record_check(self) -> None:
        self.checks += 1
        self.last_check = datetime.utcnow()

    def record_upkeep(self, request_id: int) -> None:
        self.upkeeps_performed += 1
        self.last_upkeep = datetime.utcnow()
        self.last_request_id = request_id
        self.consecutive_failures = 0
        self.last_error = None

    def record_failure(self, exc: Exception) -> None:
        self.consecutive_failures += 1
        self.last_error = str(exc)
