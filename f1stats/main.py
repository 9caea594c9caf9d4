"""
Main integration for the F1 stats dashboard.

Ties together the OpenF1 client, local cache, live location stream,
track playback and the dashboard server.
"""

import asyncio
import signal
import time
from typing import Awaitable, Callable, List, Optional

from config import Config
from .api_client import OpenF1Client, OpenF1Error
from .auth import TokenProvider
from .cache import DataCache
from .live import LocationStream, build_live_driver_data, format_time_remaining
from .models import Driver, Session
from .openf1 import OpenF1Service
from .playback import TrackPlayback
from .server import DashboardServer


class DashboardEngine:
    """Main engine that keeps the live dashboard fed."""

    def __init__(self, config: Config):
        self._config = config
        self._running = False
        self._stop_event = asyncio.Event()

        # Components (initialized in start())
        self._tokens: Optional[TokenProvider] = None
        self._client: Optional[OpenF1Client] = None
        self._service: Optional[OpenF1Service] = None
        self._playback: Optional[TrackPlayback] = None
        self._stream: Optional[LocationStream] = None
        self._server: Optional[DashboardServer] = None

        # State tracking
        self._session: Optional[Session] = None
        self._drivers: List[Driver] = []

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def playback(self) -> Optional[TrackPlayback]:
        return self._playback

    async def start(self) -> None:
        """Initialize components."""
        print("Initializing F1 dashboard...")
        config = self._config

        self._tokens = TokenProvider(
            username=config.openf1_username,
            password=config.openf1_password,
            api_key=config.openf1_api_key,
            token_url=config.token_url,
            expiry_margin=config.token_expiry_margin_sec,
            timeout=config.request_timeout_sec,
        )
        self._client = OpenF1Client(
            base_url=config.api_url,
            token_provider=self._tokens,
            min_interval=config.request_interval_sec,
            max_retries=config.max_retries,
            max_rate_limit_retries=config.max_rate_limit_retries,
            rate_limit_backoff=config.rate_limit_backoff_sec,
            retry_delay=config.retry_delay_sec,
            timeout=config.request_timeout_sec,
        )
        self._service = OpenF1Service(self._client, DataCache(str(config.data_dir)))
        self._playback = TrackPlayback(
            playback_delay=config.playback_delay_sec,
            trail_length=config.trail_length,
        )

        if config.live_stream_enabled:
            self._stream = LocationStream(
                self._tokens,
                self._playback,
                host=config.mqtt_host,
                port=config.mqtt_port,
                topic=config.mqtt_topic,
            )

        if config.server_enabled:
            self._server = DashboardServer(
                self._service,
                host=config.server_host,
                port=config.server_port,
            )
            await self._server.start()

        print("Components initialized.")

    async def stop(self) -> None:
        """Stop the engine and cleanup resources."""
        self._running = False
        self._stop_event.set()
        print("\nShutting down...")

        if self._stream:
            await self._stream.stop()

        if self._server:
            await self._server.stop()

        # Closes the token provider as well
        if self._client:
            await self._client.close()

        print("Shutdown complete.")

    def request_stop(self) -> None:
        """Ask the run loop to exit; safe to call from a signal handler."""
        self._running = False
        self._stop_event.set()

    async def run(self) -> None:
        """Main run loop."""
        await self.start()
        self._running = True

        try:
            if self._stream and not await self._start_stream():
                print("Live positions unavailable; serving timing data only.")
            await asyncio.gather(
                self._every(1.0 / self._config.tick_rate_hz, self.tick),
                self._every(self._config.lap_poll_interval_sec, self.poll_timing),
                self._every(self._config.session_refresh_interval_sec, self.refresh_session),
            )
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()

    async def _start_stream(self) -> bool:
        try:
            return await self._stream.start()
        except OpenF1Error as e:
            print(f"[Engine] Could not start location stream: {e}")
            return False

    async def _every(self, interval: float, action: Callable[[], Awaitable[None]]) -> None:
        """Run `action` every `interval` seconds until stopped."""
        while self._running:
            try:
                await action()
            except OpenF1Error as e:
                print(f"[Engine] {action.__name__} failed: {e}")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    async def refresh_session(self) -> None:
        """Track the latest session; reset playback when it changes."""
        session = await self._service.get_latest_session()
        if session is None:
            return

        if self._session is None or session.session_key != self._session.session_key:
            print(f"[Engine] Session {session.session_key}: {session.location} {session.session_name}")
            self._session = session
            self._drivers = await self._service.get_drivers(session.session_key)
            self._playback.reset()
            self._playback.set_driver_info({
                d.driver_number: (f"#{d.team_colour or 'FFFFFF'}", d.name_acronym)
                for d in self._drivers
            })
            await self.poll_timing()
        else:
            self._session = session

    async def poll_timing(self) -> None:
        """Refresh lap, stint and pit data and publish the driver cards."""
        if self._session is None:
            return

        key = self._session.session_key
        laps = await self._service.get_latest_lap_data(key)
        stints = await self._service.get_tyre_stints(key)
        pits = await self._service.get_pit_data(key)

        now = time.time()
        cards = build_live_driver_data(self._drivers, laps, stints, pits, now)
        if self._server:
            self._server.set_live_state(
                self._session,
                cards,
                format_time_remaining(self._session.date_end, now),
            )

    async def tick(self) -> None:
        """Advance playback one frame and push it to clients."""
        if not self._playback.drivers:
            return
        frame = self._playback.snapshot()
        if self._server:
            await self._server.broadcast_positions(frame)


async def main():
    """Entry point."""
    config = Config()
    engine = DashboardEngine(config)

    # Setup signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()

    try:
        loop.add_signal_handler(signal.SIGINT, engine.request_stop)
        loop.add_signal_handler(signal.SIGTERM, engine.request_stop)
    except NotImplementedError:
        # Windows doesn't support add_signal_handler
        pass

    try:
        await engine.run()
    except KeyboardInterrupt:
        await engine.stop()


if __name__ == "__main__":
    asyncio.run(main())
