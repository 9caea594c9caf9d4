"""
Season points aggregation.

Builds per-driver cumulative points histories from race results, one entry per
race in date order, so every driver's series lines up for charting.
"""

from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .models import (
    Driver,
    DriverSeasonStats,
    QualifyingResult,
    RacePoints,
    Session,
    SessionResult,
)
from .openf1 import OpenF1Service

SessionData = Tuple[Session, List[SessionResult]]


def _absence_entry(session: Session, cumulative: float) -> RacePoints:
    """History entry for a driver with no result in a session."""
    return RacePoints(
        meeting_key=session.meeting_key,
        session_key=session.session_key,
        meeting_name=session.country_name,
        date=session.date_start,
        points=0,
        position=0,
        cumulative_points=cumulative,
        is_classified=False,
        status=0,
    )


def _new_driver(driver_number: int, fallback: Dict[int, Driver]) -> DriverSeasonStats:
    """Stats record for a driver missing from the roster."""
    if driver_number in fallback:
        info = replace(fallback[driver_number])
    else:
        info = Driver(driver_number=driver_number)
    return DriverSeasonStats(driver_number=driver_number, driver_info=info)


def aggregate_season_points(
    race_data: Iterable[SessionData],
    quali_data: Iterable[SessionData],
    drivers: List[Driver],
    fallback_drivers: Optional[List[Driver]] = None,
) -> List[DriverSeasonStats]:
    """
    Aggregate race and qualifying results into season standings.

    Args:
        race_data: (session, results) pairs for race sessions.
        quali_data: (session, results) pairs for qualifying sessions.
        drivers: Season roster.
        fallback_drivers: Roster used to fill missing driver metadata.

    Returns:
        Driver stats sorted by total points, highest first.
    """
    fallback = {d.driver_number: d for d in (fallback_drivers or [])}
    stats_map: Dict[int, DriverSeasonStats] = {}

    for driver in drivers:
        info = replace(driver)
        if not info.country_code and driver.driver_number in fallback:
            info.country_code = fallback[driver.driver_number].country_code or ""
        stats_map[driver.driver_number] = DriverSeasonStats(
            driver_number=driver.driver_number,
            driver_info=info,
        )

    cumulative: Dict[int, float] = {}
    processed: List[Session] = []

    for session, results in sorted(race_data, key=lambda pair: pair[0].start_time):
        seen: Set[int] = set()

        for result in results:
            number = result.driver_number
            if number in seen:
                continue
            seen.add(number)

            stats = stats_map.get(number)
            if stats is None:
                stats = _new_driver(number, fallback)
                # Back-fill earlier races so the series stays aligned
                stats.history.extend(_absence_entry(s, 0) for s in processed)
                stats_map[number] = stats

            points = result.points or 0
            total = cumulative.get(number, 0) + points
            cumulative[number] = total
            stats.total_points = total

            stats.history.append(RacePoints(
                meeting_key=session.meeting_key,
                session_key=session.session_key,
                meeting_name=session.country_name,
                date=session.date_start,
                points=points,
                position=result.position or 0,
                cumulative_points=total,
                is_classified=result.position is not None and result.position > 0,
                status=result.status,
            ))

        # Absent drivers keep their previous total
        for number, stats in stats_map.items():
            if number not in seen:
                stats.history.append(_absence_entry(session, cumulative.get(number, 0)))

        processed.append(session)

    for session, results in sorted(quali_data, key=lambda pair: pair[0].start_time):
        for result in results:
            stats = stats_map.get(result.driver_number)
            if stats is not None and result.position:
                stats.qualifying_history.append(QualifyingResult(
                    meeting_key=session.meeting_key,
                    session_key=session.session_key,
                    position=result.position,
                    date=session.date_start,
                ))

    return sorted(stats_map.values(), key=lambda s: s.total_points, reverse=True)


async def get_season_points(service: OpenF1Service, year: int) -> List[DriverSeasonStats]:
    """
    Season standings for a year, served from the cache when present.

    On a miss, fetches every race and qualifying result sequentially,
    aggregates, and writes the cache.
    """
    cache = service.cache
    if cache is not None:
        cached = cache.read("standings", year)
        if cached is not None:
            try:
                return [DriverSeasonStats.from_dict(entry) for entry in cached]
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                print(f"[Cache] Ignoring malformed standings cache for {year}: {e!r}")

    race_sessions = await service.get_sessions(year, "Race")
    quali_sessions = await service.get_sessions(year, "Qualifying")
    if not race_sessions:
        return []
    print(f"[Standings] {year}: {len(race_sessions)} races, {len(quali_sessions)} qualifying sessions")

    drivers = await service.get_drivers(race_sessions[-1].session_key)

    fallback_drivers: List[Driver] = []
    if any(not d.country_code for d in drivers):
        print(f"[Standings] Backfilling driver metadata from {year - 1} roster")
        fallback_drivers = await service.get_season_drivers(year - 1)

    race_data = [(s, await service.get_session_results(s.session_key)) for s in race_sessions]
    quali_data = [(s, await service.get_session_results(s.session_key)) for s in quali_sessions]

    standings = aggregate_season_points(race_data, quali_data, drivers, fallback_drivers)

    if cache is not None:
        cache.write("standings", year, standings)
    return standings
