"""
OpenF1 endpoint wrappers used by the dashboard.
"""

from typing import List, Optional
from urllib.parse import quote

from .api_client import OpenF1Client, OpenF1Error
from .cache import DataCache
from .models import Driver, Lap, LocationSample, PitStop, Session, SessionResult, TyreStint


def sort_sessions(sessions: List[Session]) -> List[Session]:
    """Sort sessions by start date."""
    return sorted(sessions, key=lambda s: s.start_time)


class OpenF1Service:
    """Typed access to OpenF1 data, backed by the local cache where it helps."""

    def __init__(self, client: OpenF1Client, cache: Optional[DataCache] = None):
        self.client = client
        self.cache = cache

    async def get_all_sessions(self, year: int) -> List[Session]:
        """
        All sessions of a season, sorted by start date.

        Reads the cached schedule first. Both the weekend-grouped format and a
        flat session list are accepted.
        """
        if self.cache is not None:
            cached = self.cache.read("seasons", year)
            if isinstance(cached, list):
                try:
                    if cached and "sessions" in cached[0]:
                        raw = [s for weekend in cached for s in weekend["sessions"]]
                    else:
                        raw = cached
                    return sort_sessions([Session.from_api(s) for s in raw])
                except (AttributeError, KeyError, TypeError, ValueError) as e:
                    print(f"[Cache] Ignoring malformed seasons cache for {year}: {e!r}")
            print(f"[Cache] Local season cache miss for {year}, fetching from API...")

        data = await self.client.fetch(f"/sessions?year={year}")
        return sort_sessions([Session.from_api(s) for s in data])

    async def get_sessions(self, year: int, session_type: str = "Race") -> List[Session]:
        """Sessions of one type for a season, sorted by start date."""
        data = await self.client.fetch(
            f"/sessions?year={year}&session_type={quote(session_type)}"
        )
        return sort_sessions([Session.from_api(s) for s in data])

    async def get_drivers(self, session_key: int) -> List[Driver]:
        data = await self.client.fetch(f"/drivers?session_key={session_key}")
        return [Driver.from_api(d) for d in data]

    async def get_season_drivers(self, year: int) -> List[Driver]:
        """
        Season roster, taken from the last session of the year.

        Returns:
            Drivers, or an empty list if nothing could be fetched.
        """
        if self.cache is not None:
            cached = self.cache.read("drivers", year)
            if isinstance(cached, list):
                return [Driver.from_api(d) for d in cached]

        try:
            sessions = await self.get_all_sessions(year)
            if not sessions:
                return []
            drivers = await self.get_drivers(sessions[-1].session_key)
        except OpenF1Error as e:
            print(f"[API] Failed to fetch season drivers for {year}: {e}")
            return []

        if self.cache is not None:
            self.cache.write("drivers", year, drivers)
        return drivers

    async def get_session_results(self, session_key: int) -> List[SessionResult]:
        """Classification for a session; empty if unavailable."""
        try:
            data = await self.client.fetch(f"/session_result?session_key={session_key}")
        except OpenF1Error as e:
            print(f"[API] Error fetching results for session {session_key}: {e}")
            return []
        return [SessionResult.from_api(r) for r in data]

    async def get_session_top3(self, session_key: int) -> List[SessionResult]:
        results = await self.get_session_results(session_key)
        podium = [r for r in results if r.position is not None and 0 < r.position <= 3]
        return sorted(podium, key=lambda r: r.position)[:3]

    async def get_tyre_stints(self, session_key: int) -> List[TyreStint]:
        try:
            data = await self.client.fetch(f"/stints?session_key={session_key}")
        except OpenF1Error as e:
            print(f"[API] Failed to fetch tyre stints for session {session_key}: {e}")
            return []
        return [TyreStint.from_api(s) for s in data]

    async def get_latest_session(self) -> Optional[Session]:
        """The current (or most recent) session, if any."""
        data = await self.client.fetch("/sessions?session_key=latest")
        if not data:
            return None
        return Session.from_api(data[0])

    async def get_latest_lap_data(self, session_key: int) -> List[Lap]:
        data = await self.client.fetch(f"/laps?session_key={session_key}")
        return [Lap.from_api(lap) for lap in data]

    async def get_pit_data(self, session_key: int) -> List[PitStop]:
        data = await self.client.fetch(f"/pit?session_key={session_key}")
        return [PitStop.from_api(p) for p in data]

    async def get_locations(
        self,
        session_key: int,
        driver_number: int,
        since: Optional[str] = None,
    ) -> List[LocationSample]:
        """Location samples for one driver, optionally only after `since`."""
        endpoint = f"/location?session_key={session_key}&driver_number={driver_number}"
        if since:
            endpoint += f"&date>{quote(since)}"
        data = await self.client.fetch(endpoint)
        return [LocationSample.from_api(row) for row in data]
