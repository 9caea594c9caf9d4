"""
Season schedule: sessions grouped into race weekends.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List

from .cache import DataCache
from .models import EARLIEST, Driver, Session, parse_date
from .openf1 import OpenF1Service, sort_sessions


@dataclass
class RaceWeekend:
    """All sessions of one meeting."""
    meeting_key: int
    meeting_name: str
    location: str
    country_code: str
    date_start: str
    date_end: str
    sessions: List[Session] = field(default_factory=list)


def group_into_weekends(sessions: List[Session]) -> List[RaceWeekend]:
    """
    Group sessions by meeting.

    Each weekend spans the earliest start and latest end of its sessions.
    Sessions are sorted within each weekend and weekends are sorted by start.
    """
    weekends: Dict[int, RaceWeekend] = {}

    for session in sessions:
        weekend = weekends.get(session.meeting_key)
        if weekend is None:
            weekend = RaceWeekend(
                meeting_key=session.meeting_key,
                meeting_name=session.country_name or session.location,
                location=session.location,
                country_code=session.country_code,
                date_start=session.date_start,
                date_end=session.date_end,
            )
            weekends[session.meeting_key] = weekend
        weekend.sessions.append(session)

        if session.start_time < _as_time(weekend.date_start):
            weekend.date_start = session.date_start
        if session.end_time > _as_time(weekend.date_end):
            weekend.date_end = session.date_end

    for weekend in weekends.values():
        weekend.sessions = sort_sessions(weekend.sessions)

    return sorted(weekends.values(), key=lambda w: _as_time(w.date_start))


def _as_time(value: str) -> datetime:
    return parse_date(value) or EARLIEST


async def fetch_season(
    service: OpenF1Service,
    cache: DataCache,
    year: int,
) -> List[RaceWeekend]:
    """
    Fetch a season schedule and roster into the raw cache.

    Returns:
        The season's weekends.
    """
    print(f"Fetching season {year}...")
    data = await service.client.fetch(f"/sessions?year={year}")
    sessions = [Session.from_api(s) for s in data]
    print(f"Found {len(sessions)} sessions.")

    weekends = group_into_weekends(sessions)
    cache.write("seasons", year, weekends)
    print(f"Saved season {year} to raw/seasons/{year}.json")

    if weekends:
        last_session = weekends[-1].sessions[-1]
        print(f"Fetching drivers from session {last_session.session_key}...")
        drivers: List[Driver] = await service.get_drivers(last_session.session_key)
        cache.write("drivers", year, drivers)
        print(f"Saved drivers {year} to raw/drivers/{year}.json")

    return weekends
