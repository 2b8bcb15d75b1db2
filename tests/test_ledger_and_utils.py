import pytest

from raffle.blockchain.ledger import InMemoryLedger
from raffle.utils.common import ManualClock, normalize_address, shorten_eth_address

ADDR = "0x" + "ab" * 20


def test_ledger_credits_recipient():
    ledger = InMemoryLedger()
    assert ledger.send_value(ADDR, 5) is True
    assert ledger.send_value(ADDR.upper().replace("0X", "0x"), 7) is True
    assert ledger.balance_of(ADDR) == 12


def test_ledger_rejecting_recipient():
    ledger = InMemoryLedger()
    ledger.reject_payments(ADDR)
    assert ledger.send_value(ADDR, 5) is False
    assert ledger.balance_of(ADDR) == 0


def test_ledger_rejects_negative_amount():
    with pytest.raises(ValueError):
        InMemoryLedger().send_value(ADDR, -1)


def test_normalize_address():
    assert normalize_address(ADDR) == normalize_address(ADDR.upper().replace("0X", "0x"))
    with pytest.raises(ValueError):
        normalize_address("0x1234")


def test_shorten_eth_address():
    assert shorten_eth_address("") == ""
    assert shorten_eth_address("0xabc") == "0xabc"
    assert shorten_eth_address(ADDR) == "0xababab...abab"


def test_manual_clock_only_moves_when_advanced():
    clock = ManualClock(start=100)
    assert clock.now() == 100
    assert clock.advance(61) == 161
    assert clock.now() == 161
