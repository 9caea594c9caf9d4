"""
Teammate head-to-head statistics.
"""

from typing import Dict, List, Optional

from .models import Driver, Session, SessionResult, TeammateBattle
from .openf1 import OpenF1Service


def _find(results: List[SessionResult], driver_number: int) -> Optional[SessionResult]:
    for result in results:
        if result.driver_number == driver_number:
            return result
    return None


def _finished(result: Optional[SessionResult]) -> bool:
    return result is not None and result.position is not None and result.position > 0


def pair_teammates(drivers: List[Driver]) -> Dict[str, List[Driver]]:
    """Teams with exactly two drivers, keyed by team name."""
    teams: Dict[str, List[Driver]] = {}
    for driver in drivers:
        teams.setdefault(driver.team_name or "", []).append(driver)
    return {name: pair for name, pair in teams.items() if len(pair) == 2}


def compute_team_battles(
    drivers: List[Driver],
    quali_results: Dict[int, List[SessionResult]],
    race_results: Dict[int, List[SessionResult]],
) -> List[TeammateBattle]:
    """
    Compare each pair of teammates across a season.

    Args:
        drivers: Season roster.
        quali_results: Qualifying results keyed by session key.
        race_results: Race results keyed by session key.

    Returns:
        One battle per two-driver team.
    """
    battles = []

    for team_name, (driver1, driver2) in pair_teammates(drivers).items():
        n1, n2 = driver1.driver_number, driver2.driver_number
        quali = {"driver1_wins": 0, "driver2_wins": 0}
        points = {"driver1_points": 0, "driver2_points": 0}
        consistency = {"driver1_dnfs": 0, "driver2_dnfs": 0, "total_races": 0}
        head_to_head = {"driver1_ahead": 0, "driver2_ahead": 0}
        finishes = {n1: [], n2: []}

        for results in quali_results.values():
            r1, r2 = _find(results, n1), _find(results, n2)
            if _finished(r1) and _finished(r2):
                if r1.position < r2.position:
                    quali["driver1_wins"] += 1
                else:
                    quali["driver2_wins"] += 1

        for results in race_results.values():
            consistency["total_races"] += 1
            r1, r2 = _find(results, n1), _find(results, n2)

            for key, number, result in (("1", n1, r1), ("2", n2, r2)):
                if result is None:
                    continue
                points[f"driver{key}_points"] += result.points or 0
                if _finished(result):
                    finishes[number].append(result.position)
                else:
                    consistency[f"driver{key}_dnfs"] += 1

            if _finished(r1) and _finished(r2):
                if r1.position < r2.position:
                    head_to_head["driver1_ahead"] += 1
                else:
                    head_to_head["driver2_ahead"] += 1

        race_pace = {
            "driver1_avg": sum(finishes[n1]) / len(finishes[n1]) if finishes[n1] else 0,
            "driver2_avg": sum(finishes[n2]) / len(finishes[n2]) if finishes[n2] else 0,
        }

        battles.append(TeammateBattle(
            team_name=team_name,
            team_colour=driver1.team_colour,
            driver1=driver1,
            driver2=driver2,
            quali_battle=quali,
            race_pace=race_pace,
            points=points,
            consistency=consistency,
            head_to_head=head_to_head,
            # Not derivable from session results
            fastest_laps={"driver1_count": 0, "driver2_count": 0},
        ))

    return battles


async def get_team_battles(service: OpenF1Service, year: int) -> List[TeammateBattle]:
    """Teammate battles for a season, cached under `team-battles`."""
    cache = service.cache
    if cache is not None:
        cached = cache.read("team-battles", year)
        if cached is not None:
            try:
                return [TeammateBattle.from_dict(entry) for entry in cached]
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                print(f"[Cache] Ignoring malformed team-battles cache for {year}: {e!r}")

    sessions = await service.get_all_sessions(year)
    drivers = await service.get_season_drivers(year)
    if not drivers:
        return []

    quali_sessions: List[Session] = [s for s in sessions if s.is_qualifying]
    race_sessions: List[Session] = [s for s in sessions if s.is_race]
    print(f"Fetching {len(quali_sessions)} qualifying and {len(race_sessions)} race sessions...")

    # Each session is fetched once and shared by every team
    quali_results = {s.session_key: await service.get_session_results(s.session_key) for s in quali_sessions}
    race_results = {s.session_key: await service.get_session_results(s.session_key) for s in race_sessions}

    battles = compute_team_battles(drivers, quali_results, race_results)
    print(f"Battle stats computed for {len(battles)} teams")

    if cache is not None:
        cache.write("team-battles", year, battles)
    return battles
