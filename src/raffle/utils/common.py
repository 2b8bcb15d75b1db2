"""Common utility functions for the raffle backend."""

from __future__ import annotations

import threading
import time

from web3 import Web3


def shorten_eth_address(address: str) -> str:
    """Shorten an Ethereum address for display: '0x123456...abcd'.
    Returns the first 6 and last 4 characters, separated by '...'.
    Handles addresses with or without '0x' prefix.
    """
    if not address:
        return ""
    addr = address.lower()
    if addr.startswith("0x"):
        addr = addr[2:]
    # Always add 0x prefix
    if len(addr) < 10:
        return f"0x{addr}"  # too short to shorten, but ensure 0x
    return f"0x{addr[:6]}...{addr[-4:]}"


def normalize_address(address: str) -> str:
    """Return the checksum form of ``address`` or raise ValueError."""
    if not isinstance(address, str) or not Web3.is_address(address):
        raise ValueError(f"Not an Ethereum address: {address!r}")
    return Web3.to_checksum_address(address)


class SystemClock:
    """Wall clock in whole seconds, like a block timestamp."""

    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """Clock that only moves when told to. Used by tests and demos."""

    def __init__(self, start: int = 1_700_000_000) -> None:
        self._now = int(start)
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            return self._now

    def advance(self, seconds: int) -> int:
        with self._lock:
            self._now += int(seconds)
            return self._now
