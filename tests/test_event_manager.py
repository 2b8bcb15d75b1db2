from raffle.lottery.event_manager import MemoryStore
from raffle.lottery.models import RoundSnapshot

PLAYER = "0x1234567890abcdef1234567890abcdef12345678"


def make_snapshot(round_number):
    return RoundSnapshot(
        round_number=round_number,
        winner=PLAYER,
        prize=100,
        participant_count=2,
        request_id=round_number,
        random_word=5,
        finished_at=1_700_000_000 + round_number,
    )


def test_record_event_appends_feed_and_notifies():
    store = MemoryStore()
    by_name, feed = [], []
    store.add_listener("RaffleEnter", by_name.append)
    store.add_listener("live_feed", feed.append)

    item = store.record_event("RaffleEnter", {"player": PLAYER, "amount": 10**16})

    assert item.message == "0x123456...5678 entered the raffle for 0.0100 ETH"
    assert by_name == feed
    assert by_name[0]["type"] == "RaffleEnter"
    assert store.get_live_feed() == [item]


def test_messages_for_each_event():
    store = MemoryStore()
    assert store.record_event("RequestedRaffleWinner", {"requestId": 3}).message == "Randomness requested (request 3)"
    picked = store.record_event("WinnerPicked", {"winner": PLAYER, "roundNumber": 2})
    assert picked.message == "Round 2 winner: 0x123456...5678"


def test_failing_listener_does_not_break_emit():
    store = MemoryStore()
    seen = []

    def broken(payload):
        raise RuntimeError("boom")

    store.add_listener("WinnerPicked", broken)
    store.add_listener("WinnerPicked", seen.append)
    store.record_event("WinnerPicked", {"winner": PLAYER})
    assert len(seen) == 1


def test_removed_listener_is_not_called():
    store = MemoryStore()
    seen = []
    store.add_listener("RaffleEnter", seen.append)
    store.remove_listener("RaffleEnter", seen.append)
    store.record_event("RaffleEnter", {"player": PLAYER})
    assert seen == []


def test_history_is_bounded_and_limited():
    store = MemoryStore(history_capacity=3)
    for n in range(1, 6):
        store.add_history_snapshot(make_snapshot(n))
    assert [s.round_number for s in store.get_round_history()] == [3, 4, 5]
    assert [s.round_number for s in store.get_round_history(limit=1)] == [5]


def test_history_update_is_sorted_newest_first():
    store = MemoryStore()
    updates = []
    store.add_listener("history_update", updates.append)
    store.add_history_snapshot(make_snapshot(1))
    store.add_history_snapshot(make_snapshot(2))
    assert [r["roundNumber"] for r in updates[-1]["rounds"]] == [2, 1]


def test_capacity_resizing_keeps_newest():
    store = MemoryStore(feed_capacity=10)
    for n in range(5):
        store.record_event("RequestedRaffleWinner", {"requestId": n})
    store.set_feed_capacity(2)
    assert [i.details["requestId"] for i in store.get_live_feed()] == [3, 4]


def test_history_capacity_resizing_keeps_newest():
    store = MemoryStore(history_capacity=10)
    for n in range(1, 6):
        store.add_history_snapshot(make_snapshot(n))
    store.set_history_capacity(3)
    assert [s.round_number for s in store.get_round_history()] == [3, 4, 5]
    store.add_history_snapshot(make_snapshot(6))
    assert [s.round_number for s in store.get_round_history()] == [4, 5, 6]


def test_clear_all_data():
    store = MemoryStore()
    store.record_event("RaffleEnter", {"player": PLAYER})
    store.add_history_snapshot(make_snapshot(1))
    store.clear_all_data()
    assert store.get_live_feed() == []
    assert store.get_round_history() == []
