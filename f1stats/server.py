"""
Dashboard server: JSON endpoints for season data and a websocket for live positions.

Serves:
- Season list and schedule (race weekends)
- Driver standings with cumulative points history
- Tyre compounds per meeting and teammate battles
- Live session cards
- Animated track positions over /ws
"""

import asyncio
import json
from typing import Any, Dict, Optional, Set

import uvicorn
from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect

from .api_client import OpenF1Error
from .cache import to_jsonable
from .openf1 import OpenF1Service
from .schedule import group_into_weekends
from .standings import get_season_points
from .team_battles import get_team_battles
from .tyres import get_season_tyre_data


class DashboardServer:
    """HTTP + WebSocket server for the dashboard front end."""

    def __init__(
        self,
        service: OpenF1Service,
        host: str = "localhost",
        port: int = 8080,
    ):
        self._service = service
        self._host = host
        self._port = port
        self._app = FastAPI(title="f1stats")
        self._connections: Set[WebSocket] = set()
        self._server = None
        self._server_task: Optional[asyncio.Task] = None

        # Latest live session state, pushed by the engine
        self._live_state: Dict[str, Any] = {"session": None, "drivers": [], "time_remaining": ""}

        # Setup routes
        self._setup_routes()

    @property
    def app(self) -> FastAPI:
        return self._app

    def set_live_state(self, session: Any, drivers: Any, time_remaining: str) -> None:
        """Update the live session payload served by /api/live."""
        self._live_state = {
            "session": to_jsonable(session),
            "drivers": to_jsonable(drivers),
            "time_remaining": time_remaining,
        }

    def _setup_routes(self) -> None:
        """Configure FastAPI routes."""
        service = self._service

        async def guarded(coro):
            try:
                return to_jsonable(await coro)
            except OpenF1Error as e:
                raise HTTPException(status_code=502, detail=str(e))

        @self._app.get("/api/seasons")
        async def seasons():
            if service.cache is None:
                return []
            return service.cache.available_seasons()

        @self._app.get("/api/seasons/{year}/schedule")
        async def schedule(year: int):
            try:
                sessions = await service.get_all_sessions(year)
            except OpenF1Error as e:
                raise HTTPException(status_code=502, detail=str(e))
            return to_jsonable(group_into_weekends(sessions))

        @self._app.get("/api/seasons/{year}/standings")
        async def standings(year: int):
            return await guarded(get_season_points(service, year))

        @self._app.get("/api/seasons/{year}/tyres")
        async def tyres(year: int):
            return await guarded(get_season_tyre_data(service, year))

        @self._app.get("/api/seasons/{year}/team-battles")
        async def team_battles(year: int):
            return await guarded(get_team_battles(service, year))

        @self._app.get("/api/live")
        async def live():
            return self._live_state

        @self._app.websocket("/ws")
        async def websocket_endpoint(websocket: WebSocket):
            await websocket.accept()
            self._connections.add(websocket)
            try:
                while True:
                    # Keep connection alive, ignore incoming messages
                    await websocket.receive_text()
            except WebSocketDisconnect:
                self._connections.discard(websocket)

    async def start(self) -> None:
        """Start the dashboard server."""
        config = uvicorn.Config(
            self._app,
            host=self._host,
            port=self._port,
            log_level="warning",
        )
        self._server = uvicorn.Server(config)
        self._server_task = asyncio.create_task(self._server.serve())
        print(f"Dashboard server started at http://{self._host}:{self._port}")

    async def stop(self) -> None:
        """Stop the dashboard server."""
        if self._server:
            self._server.should_exit = True
        if self._server_task:
            self._server_task.cancel()
            try:
                await self._server_task
            except asyncio.CancelledError:
                pass
        # Close all connections
        for ws in list(self._connections):
            try:
                await ws.close()
            except RuntimeError:
                pass
        self._connections.clear()

    async def broadcast_positions(self, frame: dict) -> None:
        """Broadcast a playback frame to all connected clients."""
        await self._broadcast(frame)

    async def _broadcast(self, data: dict) -> None:
        """Send data to all connected WebSocket clients."""
        if not self._connections:
            return

        message = json.dumps(data)
        dead_connections = set()

        for ws in self._connections:
            try:
                await ws.send_text(message)
            except (WebSocketDisconnect, RuntimeError):
                dead_connections.add(ws)

        # Clean up dead connections
        self._connections -= dead_connections
