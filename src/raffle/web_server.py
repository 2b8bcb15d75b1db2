"""FastAPI web server exposing the raffle state and entry endpoint."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Tuple

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from raffle.lottery.controller import RoundController
from raffle.lottery.errors import InsufficientPayment, InvalidParticipant, RoundClosed
from raffle.lottery.event_manager import MemoryStore
from raffle.lottery.keeper import UpkeepKeeper
from raffle.lottery.models import LiveFeedItem, RoundSnapshot
from raffle.utils.logger import get_logger

logger = get_logger(__name__)


class EnterRequest(BaseModel):
    player: str
    amount_wei: int


class RaffleWebServer:
    """HTTP and WebSocket gateway for the raffle."""

    def __init__(
        self,
        config: Dict[str, Any],
        controller: RoundController,
        store: MemoryStore,
        keeper: Optional[UpkeepKeeper] = None,
    ) -> None:
        self.config = config
        self.controller = controller
        self.keeper = keeper
        self._store = store

        self.app = FastAPI(
            title="Raffle Operator API",
            description="Read-only raffle state plus the entry endpoint",
            version="1.0.0",
        )

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._broadcast_queue: Optional[asyncio.Queue[Tuple[str, Dict[str, Any] | None]]] = None
        self._broadcast_task: Optional[asyncio.Task[None]] = None
        self._ws_lock: Optional[asyncio.Lock] = None
        self._listeners_registered = False
        self._websockets: Set[WebSocket] = set()

        self._setup_middleware()
        self._setup_routes()

    # ------------------------------------------------------------------
    # FastAPI scaffolding
    # ------------------------------------------------------------------
    def _setup_middleware(self) -> None:
        origins = self.config.get("server", {}).get("cors_origins", ["*"])
        if isinstance(origins, str):
            origins = [item.strip() for item in origins.split(",") if item.strip()]
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    def _setup_routes(self) -> None:  # noqa: C901 - routing setup intentionally verbose
        # ------------------------------------------------------------------
        # Health & status
        # ------------------------------------------------------------------
        @self.app.get("/api/health")
        async def health_check() -> Dict[str, Any]:
            keeper_state = self.keeper.get_status() if self.keeper else {}
            return {
                "status": "ok",
                "timestamp": datetime.utcnow().isoformat(),
                "components": {
                    "web": True,
                    "keeper": keeper_state.get("status", "unavailable"),
                    "raffle": self.controller.get_raffle_state().name,
                },
            }

        # ------------------------------------------------------------------
        # Raffle state
        # ------------------------------------------------------------------
        @self.app.get("/api/raffle")
        async def get_raffle() -> Dict[str, Any]:
            return self._serialize_raffle()

        @self.app.get("/api/raffle/players")
        async def get_players(limit: int = 200) -> Dict[str, Any]:
            players = self.controller.get_players()
            return {
                "players": players[:limit] if limit > 0 else players,
                "total_players": len(players),
                "timestamp": datetime.utcnow().isoformat(),
            }

        @self.app.get("/api/raffle/players/{index}")
        async def get_player(index: int) -> Dict[str, Any]:
            try:
                player = self.controller.get_player(index)
            except IndexError:
                raise HTTPException(status_code=404, detail=f"No player at index {index}")
            return {"index": index, "player": player}

        @self.app.get("/api/raffle/upkeep")
        async def get_upkeep() -> Dict[str, Any]:
            return self.controller.upkeep_diagnostics()

        @self.app.post("/api/raffle/enter")
        async def enter_raffle(request: EnterRequest) -> Dict[str, Any]:
            try:
                self.controller.enter(request.player, request.amount_wei)
            except (InvalidParticipant, InsufficientPayment) as exc:
                raise HTTPException(status_code=400, detail=str(exc))
            except RoundClosed as exc:
                raise HTTPException(status_code=409, detail=str(exc))
            except ValueError as exc:
                raise HTTPException(status_code=422, detail=str(exc))
            return {"status": "entered", "raffle": self._serialize_raffle()}

        @self.app.get("/api/history")
        async def get_round_history(limit: int = 50) -> Dict[str, Any]:
            limit = max(1, min(limit, 200))
            rounds = [self._serialize_history_round(item) for item in self._store.get_round_history(limit=limit)]
            rounds.reverse()
            return {
                "rounds": rounds,
                "summary": {
                    "total_rounds": len(rounds),
                    "total_paid_wei": sum(r["prize_wei"] for r in rounds),
                },
                "timestamp": datetime.utcnow().isoformat(),
            }

        @self.app.get("/api/activities")
        async def get_live_feed(limit: int = 50) -> Dict[str, Any]:
            limit = max(1, min(limit, 200))
            feed = self._store.get_live_feed(limit=limit)
            return {"activities": [self._serialize_activity(item) for item in reversed(feed)]}

        @self.app.get("/api/config")
        async def get_raffle_config() -> Dict[str, Any]:
            return {
                "config": {
                    "entranceFee": self.controller.get_entrance_fee(),
                    "interval": self.controller.get_interval(),
                    "gasLane": self.controller.get_gas_lane(),
                    "subscriptionId": self.controller.get_subscription_id(),
                    "callbackGasLimit": self.controller.get_callback_gas_limit(),
                    "requestConfirmations": self.controller.get_request_confirmations(),
                    "numWords": self.controller.get_num_words(),
                },
                "raffle_address": self.controller.address,
                "timestamp": datetime.utcnow().isoformat(),
            }

        # ------------------------------------------------------------------
        # WebSocket endpoint
        # ------------------------------------------------------------------
        @self.app.websocket("/ws/raffle")
        async def websocket_endpoint(websocket: WebSocket) -> None:
            await websocket.accept()
            if self._ws_lock is None:
                self._ws_lock = asyncio.Lock()
            async with self._ws_lock:
                self._websockets.add(websocket)
            logger.info("WebSocket client connected (%s total)", len(self._websockets))
            try:
                await websocket.send_json({"type": "snapshot", "payload": self._build_initial_snapshot()})
                while True:
                    try:
                        await websocket.receive_text()
                    except WebSocketDisconnect:
                        break
            finally:
                async with self._ws_lock:
                    self._websockets.discard(websocket)
                logger.info("WebSocket client disconnected (%s remaining)", len(self._websockets))

    # ------------------------------------------------------------------
    # Lifecycle management
    # ------------------------------------------------------------------
    async def start(self, host: str = "0.0.0.0", port: int = 6080) -> None:
        import uvicorn

        logger.info("Starting raffle web server on %s:%s", host, port)
        self._loop = asyncio.get_running_loop()
        if self._broadcast_queue is None:
            self._broadcast_queue = asyncio.Queue()
        if self._ws_lock is None:
            self._ws_lock = asyncio.Lock()
        self._register_store_listeners()
        if self._broadcast_task is None:
            self._broadcast_task = asyncio.create_task(self._broadcast_loop(), name="raffle-web-broadcast")

        config = uvicorn.Config(self.app, host=host, port=port, log_level="info", access_log=True)
        server = uvicorn.Server(config)
        try:
            await server.serve()
        finally:
            logger.info("Raffle web server stopped")

    async def stop(self) -> None:
        logger.info("Stopping raffle web server")
        if self._broadcast_task:
            self._broadcast_task.cancel()
            try:
                await self._broadcast_task
            except asyncio.CancelledError:
                pass
            self._broadcast_task = None
        if self._ws_lock is None:
            self._ws_lock = asyncio.Lock()
        async with self._ws_lock:
            for websocket in list(self._websockets):
                try:
                    await websocket.close(code=1001, reason="Server shutdown")
                except Exception as exc:  # pragma: no cover - socket already gone
                    logger.debug("Error closing websocket: %s", exc)
            self._websockets.clear()

    # ------------------------------------------------------------------
    # Store listeners & broadcasting
    # ------------------------------------------------------------------
    def _register_store_listeners(self) -> None:
        if self._listeners_registered:
            return
        for event in ("live_feed", "history_update"):
            self._store.add_listener(event, lambda payload, evt=event: self._enqueue_broadcast(evt, payload))
        self._listeners_registered = True

    def _enqueue_broadcast(self, event_type: str, payload: Dict[str, Any] | None) -> None:
        if not self._broadcast_queue or not self._loop:
            return
        try:
            self._loop.call_soon_threadsafe(self._broadcast_queue.put_nowait, (event_type, payload))
        except RuntimeError:  # pragma: no cover - loop already closing
            logger.debug("Failed to enqueue broadcast for %s", event_type)

    async def _broadcast_loop(self) -> None:
        assert self._broadcast_queue is not None
        while True:
            try:
                event_type, payload = await self._broadcast_queue.get()
                await self._broadcast_to_clients(event_type, payload)
            except asyncio.CancelledError:
                break
            except Exception as exc:  # pragma: no cover
                logger.exception("Broadcast loop error: %s", exc)

    async def _broadcast_to_clients(self, event_type: str, payload: Dict[str, Any] | None) -> None:
        if self._ws_lock is None:
            self._ws_lock = asyncio.Lock()
        message = {
            "type": event_type,
            "payload": payload,
            "raffle": self._serialize_raffle(),
            "timestamp": datetime.utcnow().isoformat(),
        }
        async with self._ws_lock:
            if not self._websockets:
                return
            to_remove: List[WebSocket] = []
            for websocket in self._websockets:
                try:
                    await websocket.send_json(message)
                except Exception as exc:  # pragma: no cover
                    logger.debug("WebSocket send failed: %s", exc)
                    to_remove.append(websocket)
            for websocket in to_remove:
                self._websockets.discard(websocket)

    def _build_initial_snapshot(self) -> Dict[str, Any]:
        return {
            "raffle": self._serialize_raffle(),
            "players": self.controller.get_players(),
            "history": [self._serialize_history_round(item) for item in self._store.get_round_history(limit=10)],
            "live_feed": [self._serialize_activity(item) for item in reversed(self._store.get_live_feed(limit=20))],
            "keeper": self.keeper.get_status() if self.keeper else {},
        }

    # ------------------------------------------------------------------
    # Serialization helpers
    # ------------------------------------------------------------------
    def _serialize_raffle(self) -> Dict[str, Any]:
        snap = self.controller.snapshot()
        return {
            "state": snap.state.value,
            "state_label": snap.state.name,
            "entrance_fee_wei": snap.entrance_fee,
            "interval": snap.interval,
            "player_count": snap.player_count,
            "balance_wei": snap.balance,
            "recent_winner": snap.recent_winner,
            "last_timestamp": snap.last_timestamp,
            "round_number": snap.round_number,
            "pending_request_id": snap.pending_request_id,
        }

    def _serialize_history_round(self, snapshot: RoundSnapshot) -> Dict[str, Any]:
        return {
            "round_number": snapshot.round_number,
            "winner": snapshot.winner,
            "prize_wei": snapshot.prize,
            "participant_count": snapshot.participant_count,
            "request_id": snapshot.request_id,
            "random_word": str(snapshot.random_word),
            "finished_at": snapshot.finished_at,
        }

    def _serialize_activity(self, item: LiveFeedItem) -> Dict[str, Any]:
        return {
            "activity_id": item.get_item_id(),
            "activity_type": item.event_type,
            "message": item.message,
            "details": item.details,
            "timestamp": item.created_at.isoformat(),
        }
