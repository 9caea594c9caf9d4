"""
Live session feed: MQTT location stream and per-driver card data.
"""

import asyncio
import json
import uuid
from dataclasses import dataclass
from typing import List, Optional

import paho.mqtt.client as mqtt

from .auth import TokenProvider
from .models import Driver, Lap, LocationSample, PitStop, TyreStint, parse_timestamp
from .playback import TrackPlayback

DEFAULT_LAP_TIME = 90.0  # seconds
STALE_LAP_SEC = 600.0  # An unfinished lap older than this means the car stopped
PIT_MATCH_WINDOW_SEC = 5.0


@dataclass
class LiveDriverData:
    """Card data for one driver in the live session."""
    driver: int
    position_on_track: float  # 0.0 to 1.0
    gap_to_leader: float  # seconds, best lap vs session best
    color: str
    name: str
    lap: int
    status: str
    best_lap: Optional[float]
    last_lap_time: Optional[float]
    tyre_compound: Optional[str]
    tyre_age: Optional[int]


def _valid_durations(laps: List[Lap]) -> List[float]:
    return [lap.lap_duration for lap in laps if lap.lap_duration is not None and lap.lap_duration > 0]


def build_live_driver_data(
    drivers: List[Driver],
    laps: List[Lap],
    stints: List[TyreStint],
    pits: List[PitStop],
    now: float,
) -> List[LiveDriverData]:
    """
    Estimate each driver's lap progress and status from timing data.

    Args:
        drivers: Session drivers.
        laps: All laps so far.
        stints: All tyre stints so far.
        pits: All pit visits so far.
        now: Current time, epoch seconds.
    """
    all_durations = _valid_durations(laps)
    session_best = min(all_durations) if all_durations else None

    cards = []
    for driver in drivers:
        number = driver.driver_number
        driver_laps = [lap for lap in laps if lap.driver_number == number]
        latest_lap = max(driver_laps, key=lambda lap: lap.lap_number) if driver_laps else None

        durations = _valid_durations(driver_laps)
        best_lap = min(durations) if durations else None

        last_timed = None
        for lap in sorted(driver_laps, key=lambda lap: lap.lap_number, reverse=True):
            if lap.lap_duration is not None:
                last_timed = lap
                break

        driver_stints = [s for s in stints if s.driver_number == number]
        latest_stint = max(driver_stints, key=lambda s: s.stint_number) if driver_stints else None

        progress = 0.0
        status = "In Pits"
        if latest_lap is not None and latest_lap.date_start:
            start = parse_timestamp(latest_lap.date_start)
            elapsed = now - start

            driver_pits = [p for p in pits if p.driver_number == number]
            latest_pit = max(driver_pits, key=lambda p: parse_timestamp(p.date)) if driver_pits else None
            in_pit_lane = (
                latest_pit is not None
                and parse_timestamp(latest_pit.date) > start - PIT_MATCH_WINDOW_SEC
            )

            if latest_lap.lap_duration is None and not in_pit_lane and elapsed < STALE_LAP_SEC:
                status = "Racing"

            if status == "Racing":
                duration = latest_lap.lap_duration or DEFAULT_LAP_TIME
                progress = (elapsed / duration) % 1

        tyre_age = None
        if latest_stint is not None and latest_lap is not None and latest_stint.lap_start is not None:
            tyre_age = latest_lap.lap_number - latest_stint.lap_start + 1

        cards.append(LiveDriverData(
            driver=number,
            position_on_track=progress,
            gap_to_leader=best_lap - session_best if best_lap and session_best else 0.0,
            color=f"#{driver.team_colour or 'FFFFFF'}",
            name=driver.name_acronym,
            lap=latest_lap.lap_number if latest_lap else 0,
            status=status,
            best_lap=best_lap,
            last_lap_time=last_timed.lap_duration if last_timed else None,
            tyre_compound=latest_stint.compound if latest_stint else None,
            tyre_age=tyre_age,
        ))

    return cards


def format_time_remaining(date_end: Optional[str], now: float) -> str:
    """Countdown to session end as HH:MM:SS; empty when the end is unknown."""
    if not date_end:
        return ""
    remaining = int(parse_timestamp(date_end) - now)
    if remaining <= 0:
        return "00:00:00"
    hours, rest = divmod(remaining, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


class LocationStream:
    """Feeds OpenF1 MQTT location messages into a TrackPlayback."""

    def __init__(
        self,
        token_provider: TokenProvider,
        playback: TrackPlayback,
        host: str = "mqtt.openf1.org",
        port: int = 8883,
        topic: str = "v1/location",
        username: str = "f1stats",
    ):
        self._token_provider = token_provider
        self._playback = playback
        self._host = host
        self._port = port
        self._topic = topic
        self._username = username
        self._client: Optional[mqtt.Client] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self.messages_received = 0

    @property
    def is_running(self) -> bool:
        return self._client is not None

    async def start(self) -> bool:
        """
        Connect and subscribe.

        Returns:
            False when no token is available (the stream needs authentication).
        """
        if self._client is not None:
            return True

        token = await self._token_provider.get_token()
        if not token:
            print("[Live] No OpenF1 token available, location stream disabled")
            return False

        self._loop = asyncio.get_running_loop()
        client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=f"f1stats_{uuid.uuid4().hex[:8]}",
            clean_session=True,
        )
        client.username_pw_set(self._username, token)
        if self._port == 8883:
            client.tls_set()
        client.reconnect_delay_set(min_delay=1, max_delay=5)
        client.on_connect = self._on_connect
        client.on_message = self._on_message

        client.connect_async(self._host, self._port)
        client.loop_start()
        self._client = client
        print(f"[Live] Connecting to {self._host}:{self._port}")
        return True

    async def stop(self) -> None:
        """Disconnect and stop the network thread."""
        if self._client is None:
            return
        self._client.disconnect()
        self._client.loop_stop()
        self._client = None

    def _on_connect(self, client, userdata, flags, reason_code, properties) -> None:
        if reason_code.is_failure:
            print(f"[Live] Connection refused: {reason_code}")
            return
        print(f"[Live] Connected, subscribing to {self._topic}")
        client.subscribe(self._topic)

    def _on_message(self, client, userdata, msg) -> None:
        # Runs on the MQTT network thread; hand off to the event loop
        if msg.topic != self._topic or self._loop is None:
            return
        self._loop.call_soon_threadsafe(self.handle_payload, msg.payload)

    def handle_payload(self, payload: bytes) -> Optional[LocationSample]:
        """Decode one location message and feed it to playback."""
        try:
            sample = LocationSample.from_api(json.loads(payload))
        except (ValueError, KeyError, TypeError) as e:
            print(f"[Live] Dropping malformed location message: {e}")
            return None
        self.messages_received += 1
        self._playback.ingest(sample)
        return sample
