import asyncio
import importlib
import logging
import os

from web3 import Web3

from raffle.lottery.models import RoundState
import raffle.main
import raffle.utils.logger
from raffle.main import RaffleOperatorApp

PLAYER = Web3.to_checksum_address("0x" + "42" * 20)


def make_app(**raffle):
    return RaffleOperatorApp(config={
        "app": {"chain_id": 31337},
        "raffle": raffle,
        "vrf": {"block_time": 0, "subscription_fund": str(Web3.to_wei(5, "ether"))},
        "keeper": {"check_interval": 0.01},
    })


def test_initialize_wires_components():
    app = make_app()
    app.initialize()

    assert app.controller.get_entrance_fee() == Web3.to_wei("0.01", "ether")
    assert app.controller.get_interval() == 30
    sub = app.coordinator.get_subscription(app.controller.get_subscription_id())
    assert sub.balance == Web3.to_wei(5, "ether")
    assert app.controller.address in sub.consumers
    assert app.web_server is not None


def test_full_cycle_through_keeper_and_vrf_node():
    app = make_app(interval=0, entrance_fee_wei=100)
    app.initialize()
    app.controller.enter(PLAYER, 100)
    # backdate the anchor so the interval has elapsed on the wall clock
    app.controller.round.last_timestamp -= 5

    assert app.keeper.poll_once() is not None
    assert app.controller.get_raffle_state() == RoundState.CALCULATING
    assert len(app.vrf_node.fulfill_due()) == 1

    assert app.controller.get_recent_winner() == PLAYER
    assert app.ledger.balance_of(PLAYER) == 100
    assert app.controller.get_raffle_state() == RoundState.OPEN


def test_stop_is_safe_after_initialize():
    app = make_app()
    app.initialize()
    asyncio.run(app.stop())
    assert app.running is False


def test_dotenv_log_level_applies_before_logging_is_configured(tmp_path, monkeypatch):
    (tmp_path / ".env").write_text("LOG_LEVEL=DEBUG\n")
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.setattr(raffle.utils.logger, "_configured", False)
    root = logging.getLogger()
    level, handlers = root.level, list(root.handlers)
    try:
        importlib.reload(raffle.main)
        assert root.level == logging.DEBUG
    finally:
        os.environ.pop("LOG_LEVEL", None)
        root.setLevel(level)
        root.handlers[:] = handlers
