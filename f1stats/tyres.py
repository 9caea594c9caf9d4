"""
Tyre compounds used at each meeting of a season.
"""

from typing import Dict, List

from .models import Session, TrackTyreInfo, TyreStint
from .openf1 import OpenF1Service

DRY_COMPOUNDS = ("SOFT", "MEDIUM", "HARD")


def aggregate_tyre_data(
    sessions: List[Session],
    stints_by_session: Dict[int, List[TyreStint]],
) -> List[TrackTyreInfo]:
    """
    Group sessions by meeting and collect the dry compounds run in each race.

    Args:
        sessions: All sessions of the season.
        stints_by_session: Stints keyed by race session key.

    Returns:
        One entry per meeting, sorted by start date.
    """
    meetings: Dict[int, TrackTyreInfo] = {}
    starts = {}
    ends = {}

    for session in sessions:
        meeting = meetings.get(session.meeting_key)
        if meeting is None:
            meeting = TrackTyreInfo(
                meeting_key=session.meeting_key,
                meeting_name=session.country_name or session.location,
                location=session.location,
                country_code=session.country_code,
                date_start=session.date_start,
                date_end=session.date_end,
            )
            meetings[session.meeting_key] = meeting
            starts[session.meeting_key] = session.start_time
            ends[session.meeting_key] = session.end_time

        if session.start_time < starts[session.meeting_key]:
            starts[session.meeting_key] = session.start_time
            meeting.date_start = session.date_start
        if session.end_time > ends[session.meeting_key]:
            ends[session.meeting_key] = session.end_time
            meeting.date_end = session.date_end

        if session.is_race:
            meeting.race_session_key = session.session_key
            for stint in stints_by_session.get(session.session_key, []):
                if stint.compound in DRY_COMPOUNDS and stint.compound not in meeting.compounds:
                    meeting.compounds.append(stint.compound)

    return sorted(meetings.values(), key=lambda m: starts[m.meeting_key])


async def get_season_tyre_data(service: OpenF1Service, year: int) -> List[TrackTyreInfo]:
    """Tyre usage per meeting for a season, cached under `tyres`."""
    cache = service.cache
    if cache is not None:
        cached = cache.read("tyres", year)
        if cached is not None:
            try:
                return [TrackTyreInfo.from_dict(entry) for entry in cached]
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                print(f"[Cache] Ignoring malformed tyres cache for {year}: {e!r}")

    sessions = await service.get_all_sessions(year)
    stints_by_session = {}
    for session in sessions:
        if session.is_race:
            stints_by_session[session.session_key] = await service.get_tyre_stints(session.session_key)

    tyre_data = aggregate_tyre_data(sessions, stints_by_session)

    if cache is not None:
        cache.write("tyres", year, tyre_data)
    return tyre_data
