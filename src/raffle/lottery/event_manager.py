"""In-memory notification bus and history for the raffle backend."""

from __future__ import annotations

from collections import defaultdict, deque
from threading import Lock
from typing import Any, Callable, Dict, List, Optional

from raffle.lottery.models import LiveFeedItem, RoundSnapshot
from raffle.utils.common import shorten_eth_address
from raffle.utils.logger import get_logger

logger = get_logger(__name__)


class MemoryStore:
    """Volatile storage for raffle notifications, history and live feed."""

    def __init__(self, *, feed_capacity: int = 100, history_capacity: int = 20) -> None:
        self._lock = Lock()
        self._listeners: Dict[str, List[Callable[[dict | None], None]]] = defaultdict(list)
        self._feed_capacity = feed_capacity
        self._history_capacity = history_capacity
        self._live_feed: deque[LiveFeedItem] = deque(maxlen=feed_capacity)
        self._history: deque[RoundSnapshot] = deque(maxlen=history_capacity)

    # ------------------------------------------------------------------
    # Listener management
    # ------------------------------------------------------------------
    def add_listener(self, event_type: str, callback: Callable[[dict | None], None]) -> None:
        with self._lock:
            self._listeners[event_type].append(callback)
        logger.debug(f"[MemoryStore] Adding listener for event_type={event_type}, callback={callback}")

    def remove_listener(self, event_type: str, callback: Callable[[dict | None], None]) -> None:
        with self._lock:
            if callback in self._listeners.get(event_type, []):
                self._listeners[event_type].remove(callback)

    def emit(self, event_type: str, payload: dict | None) -> None:
        """Deliver ``payload`` to every listener of ``event_type``.

        Notifications are sent after a transition has committed, so a broken
        listener is reported and skipped rather than failing the caller.
        """
        with self._lock:
            listeners = list(self._listeners.get(event_type, []))
        for callback in listeners:
            try:
                callback(payload)
            except Exception as exc:  # pragma: no cover
                logger.error("Listener for %s failed: %s", event_type, exc)

    # ------------------------------------------------------------------
    # Raffle notifications
    # ------------------------------------------------------------------
    def record_event(self, name: str, args: Dict[str, Any]) -> LiveFeedItem:
        """Append a notification to the live feed and emit it."""
        feed_item = LiveFeedItem(
            event_type=name,
            message=self._generate_event_message(name, args),
            details=dict(args),
        )
        with self._lock:
            self._live_feed.append(feed_item)
        logger.info("[MemoryStore] %s: %s", name, feed_item.message)

        payload = self._serialize_feed_item(feed_item)
        self.emit(name, payload)
        self.emit("live_feed", payload)
        return feed_item

    def add_history_snapshot(self, snapshot: RoundSnapshot) -> None:
        with self._lock:
            self._history.append(snapshot)
        logger.info(f"[MemoryStore] Added history snapshot: {snapshot}")
        self.emit("history_update", self._serialize_history())

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    def get_round_history(self, limit: Optional[int] = None) -> List[RoundSnapshot]:
        with self._lock:
            items = list(self._history)
        if limit is not None:
            return items[-limit:]
        return items

    def get_live_feed(self, limit: Optional[int] = None) -> List[LiveFeedItem]:
        with self._lock:
            items = list(self._live_feed)
        if limit is not None:
            return items[-limit:]
        return items

    def clear_all_data(self) -> None:
        with self._lock:
            self._history.clear()
            self._live_feed.clear()
        self.emit("history_update", self._serialize_history())
        logger.debug("[MemoryStore] clear_all_data called")

    # ------------------------------------------------------------------
    # Runtime resizing helpers
    # ------------------------------------------------------------------
    def set_feed_capacity(self, capacity: int) -> None:
        """Resize the live feed capacity (max entries)."""
        with self._lock:
            if capacity == self._feed_capacity:
                return
            old_items = list(self._live_feed)
            self._live_feed = deque(old_items[-capacity:], maxlen=capacity)
            self._feed_capacity = capacity
        logger.info(f"[MemoryStore] live feed capacity set to {capacity}")

    def set_history_capacity(self, capacity: int) -> None:
        """Resize the round history capacity (max snapshots)."""
        with self._lock:
            if capacity == self._history_capacity:
                return
            old_items = list(self._history)
            self._history = deque(old_items[-capacity:], maxlen=capacity)
            self._history_capacity = capacity
        logger.info(f"[MemoryStore] history capacity set to {capacity}")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _serialize_feed_item(self, item: LiveFeedItem) -> dict:
        return {
            "id": item.get_item_id(),
            "type": item.event_type,
            "message": item.message,
            "details": item.details,
            "timestamp": item.created_at.isoformat(),
        }

    def _serialize_history(self) -> dict:
        rounds = [
            {
                "roundNumber": snapshot.round_number,
                "winner": snapshot.winner,
                "prizeWei": snapshot.prize,
                "participantCount": snapshot.participant_count,
                "requestId": snapshot.request_id,
                "finishedAt": snapshot.finished_at,
            }
            for snapshot in self.get_round_history()
        ]
        rounds.sort(key=lambda x: x["roundNumber"], reverse=True)
        return {"rounds": rounds}

    def _generate_event_message(self, event_type: str, args: Dict[str, Any]) -> str:
        """Short human-readable summary for the live feed."""
        if event_type == "RaffleEnter":
            player = shorten_eth_address(args.get("player", "")) or "a player"
            amount = args.get("amount")
            if isinstance(amount, int):
                return f"{player} entered the raffle for {amount / 1e18:.4f} ETH"
            return f"{player} entered the raffle"

        if event_type == "RequestedRaffleWinner":
            return f"Randomness requested (request {args.get('requestId')})"

        if event_type == "WinnerPicked":
            winner = shorten_eth_address(args.get("winner", "")) or "unknown"
            rnd = args.get("roundNumber")
            return f"Round {rnd} winner: {winner}" if rnd is not None else f"Winner: {winner}"

        return event_type
