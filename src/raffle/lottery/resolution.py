"""Resolution handler: turns a randomness callback into a paid-out winner."""

from __future__ import annotations

from typing import Sequence

from raffle.lottery.errors import PayoutTransferFailed, UnknownRequest
from raffle.lottery.event_manager import MemoryStore
from raffle.lottery.models import Round, RoundSnapshot, RoundState
from raffle.utils.common import SystemClock
from raffle.utils.logger import get_logger

logger = get_logger(__name__)


class ResolutionHandler:
    """Callback target registered with the randomness coordinator.

    ``payout`` is anything with ``send_value(recipient, amount) -> bool``.
    """

    def __init__(self, round_: Round, payout, *, store: MemoryStore, clock=None) -> None:
        self._round = round_
        self._payout = payout
        self._store = store
        self._clock = clock or SystemClock()

    def fulfill_random_words(self, request_id: int, random_words: Sequence[int]) -> str:
        """Pick the winner for ``request_id``, pay out and reopen the round.

        Either every effect applies or none does: a failed payout raises
        PayoutTransferFailed and the round stays CALCULATING.
        """
        if not random_words:
            raise ValueError("At least one random word is required")

        r = self._round
        with r.lock:
            if r.state != RoundState.CALCULATING or r.pending_request_id != request_id:
                logger.warning(f"Fulfilment for request {request_id} rejected; pending={r.pending_request_id}")
                raise UnknownRequest(request_id)

            random_word = int(random_words[0])
            index = random_word % len(r.players)
            winner = r.players[index]
            prize = r.balance

            if not self._payout.send_value(winner, prize):
                logger.error(f"Payout of {prize} wei to {winner} failed; round {r.round_number} stays calculating")
                raise PayoutTransferFailed(winner, prize)

            finished_at = self._clock.now()
            snapshot = RoundSnapshot(
                round_number=r.round_number,
                winner=winner,
                prize=prize,
                participant_count=len(r.players),
                request_id=request_id,
                random_word=random_word,
                finished_at=finished_at,
            )
            r.recent_winner = winner
            r.players = []
            r.balance = 0
            r.state = RoundState.OPEN
            r.pending_request_id = None
            r.last_timestamp = finished_at
            r.round_number += 1

        logger.info(f"Round {snapshot.round_number} resolved: winner {winner} (index {index}) paid {prize} wei")
        self._store.add_history_snapshot(snapshot)
        self._store.record_event("WinnerPicked", {
            "winner": winner,
            "prize": prize,
            "requestId": request_id,
            "roundNumber": snapshot.round_number,
        })
        return winner
