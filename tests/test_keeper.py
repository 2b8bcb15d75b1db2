import asyncio

from raffle.lottery.keeper import UpkeepKeeper
from raffle.lottery.models import RoundState
from tests.conftest import ENTRANCE_FEE, INTERVAL


def test_poll_once_does_nothing_when_not_ready(raffle, accounts):
    keeper = UpkeepKeeper(raffle.controller, {})
    raffle.controller.enter(accounts[0], ENTRANCE_FEE)
    assert keeper.poll_once() is None
    assert keeper.status.checks == 1
    assert keeper.status.upkeeps_performed == 0
    assert raffle.controller.get_raffle_state() == RoundState.OPEN


def test_poll_once_performs_upkeep_when_ready(raffle, accounts):
    keeper = UpkeepKeeper(raffle.controller, {})
    raffle.make_ready([accounts[0]])
    request_id = keeper.poll_once()
    assert request_id is not None
    assert keeper.status.last_request_id == request_id
    assert raffle.controller.get_raffle_state() == RoundState.CALCULATING
    # calculating: nothing more to do until the callback arrives
    assert keeper.poll_once() is None
    assert keeper.status.upkeeps_performed == 1


def test_poll_once_records_coordinator_failures(raffle, accounts):
    keeper = UpkeepKeeper(raffle.controller, {})
    raffle.coordinator.remove_consumer(raffle.sub_id, raffle.controller.address)
    raffle.make_ready([accounts[0]])
    assert keeper.poll_once() is None
    assert keeper.status.consecutive_failures == 1
    assert "not a consumer" in keeper.status.last_error
    assert raffle.controller.get_raffle_state() == RoundState.OPEN


def test_background_loop_closes_round(raffle, accounts):
    keeper = UpkeepKeeper(raffle.controller, {"keeper": {"check_interval": 0.01}})
    raffle.controller.enter(accounts[0], ENTRANCE_FEE)

    async def scenario():
        await keeper.start()
        await asyncio.sleep(0.05)
        assert raffle.controller.get_raffle_state() == RoundState.OPEN
        raffle.clock.advance(INTERVAL + 1)
        await asyncio.sleep(0.05)
        await keeper.stop()

    asyncio.run(scenario())
    assert raffle.controller.get_raffle_state() == RoundState.CALCULATING
    assert keeper.get_status()["status"] == "stopped"
    assert keeper.get_status()["upkeeps_performed"] == 1
