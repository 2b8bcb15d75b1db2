"""In-memory value ledger used as the raffle's payout gateway."""

from __future__ import annotations

import threading
from typing import Dict, Set

from raffle.utils.common import normalize_address
from raffle.utils.logger import get_logger

logger = get_logger(__name__)


class InMemoryLedger:
    """Account balances in wei.

    Recipients flagged with ``reject_payments`` refuse incoming value, the way
    a contract without a payable fallback does.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._balances: Dict[str, int] = {}
        self._rejecting: Set[str] = set()

    def send_value(self, recipient: str, amount: int) -> bool:
        recipient = normalize_address(recipient)
        if amount < 0:
            raise ValueError("Amount must not be negative")
        with self._lock:
            if recipient in self._rejecting:
                logger.warning(f"{recipient} refused a transfer of {amount} wei")
                return False
            self._balances[recipient] = self._balances.get(recipient, 0) + amount
        logger.info(f"Sent {amount} wei to {recipient}")
        return True

    def balance_of(self, address: str) -> int:
        with self._lock:
            return self._balances.get(normalize_address(address), 0)

    def reject_payments(self, address: str, reject: bool = True) -> None:
        address = normalize_address(address)
        with self._lock:
            if reject:
                self._rejecting.add(address)
            else:
                self._rejecting.discard(address)
