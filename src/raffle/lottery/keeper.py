"""
Upkeep keeper.

Polls the round controller's readiness predicate on a fixed cadence and closes
the round when it holds:
- check_upkeep() false: do nothing
- check_upkeep() true: perform_upkeep(), which requests randomness
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

from raffle.lottery.controller import RoundController
from raffle.lottery.errors import UpkeepConditionsNotMet
from raffle.lottery.models import KeeperStatus
from raffle.utils.logger import get_logger

logger = get_logger(__name__)


class UpkeepKeeper:
    """Automation loop standing in for an external keeper network."""

    def __init__(self, controller: RoundController, config: Dict[str, Any]) -> None:
        self._controller = controller
        self._check_interval = float(config.get("keeper", {}).get("check_interval", 5))
        self._task: Optional[asyncio.Task] = None
        self.status = KeeperStatus()

    async def start(self) -> None:
        if self.status.is_running:
            logger.warning("Keeper already running")
            return
        self.status.is_running = True
        self._task = asyncio.create_task(self._run())
        logger.info(f"Keeper started, checking every {self._check_interval}s")

    async def stop(self) -> None:
        if not self.status.is_running:
            return
        logger.info("Stopping keeper")
        self.status.is_running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Keeper stopped")

    def get_status(self) -> Dict[str, Any]:
        return {
            "status": "running" if self.status.is_running else "stopped",
            "check_interval": self._check_interval,
            "checks": self.status.checks,
            "upkeeps_performed": self.status.upkeeps_performed,
            "last_request_id": self.status.last_request_id,
            "consecutive_failures": self.status.consecutive_failures,
            "last_error": self.status.last_error,
        }

    async def _run(self) -> None:
        while self.status.is_running:
            self.poll_once()
            await asyncio.sleep(self._check_interval)

    def poll_once(self) -> Optional[int]:
        """One keeper tick. Returns the request id when upkeep was performed."""
        self.status.record_check()
        if not self._controller.check_upkeep():
            return None

        try:
            request_id = self._controller.perform_upkeep()
        except UpkeepConditionsNotMet as exc:
            # Lost a race with another caller between check and perform.
            logger.warning(f"Upkeep no longer needed: {exc}")
            return None
        except Exception as exc:
            self.status.record_failure(exc)
            logger.error(f"Upkeep failed: {exc}")
            return None

        self.status.record_upkeep(request_id)
        logger.info(f"Upkeep performed, randomness request {request_id}")
        return request_id
