"""
Local VRF node - answers pending coordinator requests in local runs
"""

from __future__ import annotations

import asyncio
import secrets
from typing import Dict, List, Optional

from raffle.blockchain.coordinator import VRFCoordinatorMock
from raffle.utils.common import SystemClock
from raffle.utils.logger import get_logger

logger = get_logger(__name__)


class LocalVRFNode:
    """Polls the coordinator and fulfils requests once they are confirmed.

    A request counts as confirmed after ``request_confirmations * block_time``
    seconds. A failed delivery leaves the request pending; the same words are
    delivered again on the next poll.
    """

    def __init__(
        self,
        coordinator: VRFCoordinatorMock,
        *,
        block_time: float = 2.0,
        poll_interval: float = 1.0,
        clock=None,
    ) -> None:
        self._coordinator = coordinator
        self._block_time = block_time
        self._poll_interval = poll_interval
        self._clock = clock or SystemClock()
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._drawn: Dict[int, List[int]] = {}

    async def start(self) -> None:
        if self._running:
            logger.warning("VRF node already running")
            return
        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info("Local VRF node started")

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Local VRF node stopped")

    async def _run(self) -> None:
        while self._running:
            self.fulfill_due()
            await asyncio.sleep(self._poll_interval)

    def fulfill_due(self) -> List[int]:
        """Fulfil every confirmed request; returns the ids delivered.

        Words are drawn once per request and re-sent unchanged on later polls,
        so a refused payout keeps the round waiting on the same winner.
        """
        delivered: List[int] = []
        now = self._clock.now()
        pending = self._coordinator.pending_requests()
        live_ids = {request.request_id for request in pending}
        for request_id in list(self._drawn):
            if request_id not in live_ids:
                del self._drawn[request_id]
        for request in pending:
            if now - request.requested_at < request.request_confirmations * self._block_time:
                continue
            words = self._drawn.get(request.request_id)
            if words is None:
                words = [secrets.randbits(256) for _ in range(request.num_words)]
                self._drawn[request.request_id] = words
            try:
                self._coordinator.fulfill_random_words(request.request_id, request.consumer, words)
            except Exception as exc:
                logger.error(f"Fulfilment of request {request.request_id} failed: {exc}")
                continue
            self._drawn.pop(request.request_id, None)
            delivered.append(request.request_id)
        return delivered
