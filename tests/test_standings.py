"""
Tests for season points aggregation.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from f1stats.cache import DataCache
from f1stats.models import Driver, Session, SessionResult
from f1stats.standings import aggregate_season_points, get_season_points


def make_session(
    session_key: int,
    date_start: str,
    session_type: str = "Race",
    meeting_key: int = None,
    country_name: str = "Bahrain",
) -> Session:
    """Helper to create test sessions."""
    return Session(
        session_key=session_key,
        meeting_key=meeting_key if meeting_key is not None else session_key,
        session_name=session_type,
        session_type=session_type,
        date_start=date_start,
        date_end=date_start,
        country_name=country_name,
    )


def make_result(
    session_key: int,
    driver_number: int,
    position: int = 1,
    points: float = 25,
) -> SessionResult:
    """Helper to create test results."""
    return SessionResult(
        session_key=session_key,
        meeting_key=session_key,
        driver_number=driver_number,
        position=position,
        points=points,
    )


def make_driver(number: int, acronym: str = "", country_code: str = "NED") -> Driver:
    return Driver(driver_number=number, name_acronym=acronym or str(number), country_code=country_code)


def make_service(cache=None) -> MagicMock:
    """Helper to create a mock OpenF1Service."""
    service = MagicMock()
    service.cache = cache
    service.get_sessions = AsyncMock()
    service.get_drivers = AsyncMock()
    service.get_season_drivers = AsyncMock(return_value=[])
    service.get_session_results = AsyncMock()
    return service


R1 = make_session(1, "2024-03-02T15:00:00+00:00")
R2 = make_session(2, "2024-03-09T17:00:00+00:00", country_name="Saudi Arabia")
R3 = make_session(3, "2024-03-24T04:00:00+00:00", country_name="Australia")


class TestAggregateSeasonPoints:
    """Tests for aggregate_season_points()."""

    def test_cumulative_points(self):
        drivers = [make_driver(1), make_driver(16)]
        races = [
            (R1, [make_result(1, 1, 1, 25), make_result(1, 16, 2, 18)]),
            (R2, [make_result(2, 16, 1, 25), make_result(2, 1, 2, 18)]),
        ]

        standings = aggregate_season_points(races, [], drivers)

        by_number = {s.driver_number: s for s in standings}
        assert [h.cumulative_points for h in by_number[1].history] == [25, 43]
        assert [h.cumulative_points for h in by_number[16].history] == [18, 43]
        assert by_number[1].total_points == 43

    def test_sorted_by_total_descending(self):
        drivers = [make_driver(4), make_driver(81)]
        races = [(R1, [make_result(1, 81, 1, 25), make_result(1, 4, 5, 10)])]

        standings = aggregate_season_points(races, [], drivers)

        assert [s.driver_number for s in standings] == [81, 4]

    def test_absent_driver_carries_total_forward(self):
        """Test a missed race adds a zero-point entry with the previous total."""
        drivers = [make_driver(1), make_driver(55)]
        races = [
            (R1, [make_result(1, 1, 1, 25), make_result(1, 55, 3, 15)]),
            (R2, [make_result(2, 1, 1, 25)]),
        ]

        standings = aggregate_season_points(races, [], drivers)

        sainz = next(s for s in standings if s.driver_number == 55)
        missed = sainz.history[1]
        assert missed.points == 0
        assert missed.position == 0
        assert missed.cumulative_points == 15
        assert missed.is_classified is False
        assert missed.session_key == 2

    def test_every_history_has_one_entry_per_race(self):
        """Test series stay aligned, including drivers first seen mid-season."""
        drivers = [make_driver(1), make_driver(44)]
        races = [
            (R1, [make_result(1, 1, 1, 25), make_result(1, 44, 2, 18)]),
            (R2, [make_result(2, 1, 1, 25), make_result(2, 38, 7, 6)]),
            (R3, [make_result(3, 44, 1, 25)]),
        ]

        standings = aggregate_season_points(races, [], drivers)

        assert len(standings) == 3
        for stats in standings:
            assert len(stats.history) == 3
            assert [h.session_key for h in stats.history] == [1, 2, 3]

        bearman = next(s for s in standings if s.driver_number == 38)
        assert [h.cumulative_points for h in bearman.history] == [0, 6, 6]

    def test_cumulative_never_decreases(self):
        drivers = [make_driver(1), make_driver(11)]
        races = [
            (R3, [make_result(3, 11, 1, 25)]),
            (R1, [make_result(1, 1, 1, 25), make_result(1, 11, 10, 1)]),
            (R2, [make_result(2, 1, 15, 0)]),
        ]

        standings = aggregate_season_points(races, [], drivers)

        for stats in standings:
            totals = [h.cumulative_points for h in stats.history]
            assert totals == sorted(totals)
            assert stats.total_points == totals[-1]

    def test_races_processed_in_date_order(self):
        drivers = [make_driver(1)]
        races = [(R2, [make_result(2, 1)]), (R1, [make_result(1, 1)])]

        standings = aggregate_season_points(races, [], drivers)

        assert [h.session_key for h in standings[0].history] == [1, 2]

    def test_duplicate_result_rows_counted_once(self):
        drivers = [make_driver(1)]
        races = [(R1, [make_result(1, 1, 1, 25), make_result(1, 1, 1, 25)])]

        standings = aggregate_season_points(races, [], drivers)

        assert standings[0].total_points == 25
        assert len(standings[0].history) == 1

    def test_missing_points_treated_as_zero(self):
        drivers = [make_driver(1)]
        races = [(R1, [make_result(1, 1, 20, None)])]

        standings = aggregate_season_points(races, [], drivers)

        assert standings[0].total_points == 0

    def test_qualifying_history_recorded(self):
        drivers = [make_driver(1), make_driver(16)]
        quali = make_session(10, "2024-03-01T16:00:00+00:00", session_type="Qualifying")
        quali_data = [(quali, [
            make_result(10, 1, 1, None),
            make_result(10, 16, None, None),
            make_result(10, 99, 2, None),
        ])]

        standings = aggregate_season_points([], quali_data, drivers)

        by_number = {s.driver_number: s for s in standings}
        assert [q.position for q in by_number[1].qualifying_history] == [1]
        assert by_number[16].qualifying_history == []
        assert 99 not in by_number

    def test_fallback_fills_country_code(self):
        drivers = [make_driver(1, country_code=None)]
        fallback = [make_driver(1, country_code="NED"), make_driver(87, "BEA", "GBR")]
        races = [(R1, [make_result(1, 1), make_result(1, 87, 10, 1)])]

        standings = aggregate_season_points(races, [], drivers, fallback)

        by_number = {s.driver_number: s for s in standings}
        assert by_number[1].driver_info.country_code == "NED"
        assert by_number[87].driver_info.name_acronym == "BEA"

    def test_unknown_driver_gets_bare_info(self):
        standings = aggregate_season_points([(R1, [make_result(1, 7)])], [], [])
        assert standings[0].driver_info.driver_number == 7


class TestGetSeasonPoints:
    """Tests for get_season_points()."""

    @pytest.mark.asyncio
    async def test_cache_hit_skips_network(self, tmp_path):
        cache = DataCache(str(tmp_path))
        cache.write("standings", 2024, [{
            "driver_number": 1,
            "driver_info": {"driver_number": 1, "name_acronym": "VER"},
            "history": [{
                "meeting_key": 1, "session_key": 1, "meeting_name": "Bahrain",
                "date": "2024-03-02", "points": 25, "position": 1, "cumulative_points": 25,
            }],
            "qualifying_history": [],
            "total_points": 25,
        }])
        service = make_service(cache)

        standings = await get_season_points(service, 2024)

        assert standings[0].driver_info.name_acronym == "VER"
        assert standings[0].history[0].cumulative_points == 25
        service.get_sessions.assert_not_called()

    @pytest.mark.asyncio
    async def test_malformed_cache_recomputed(self, tmp_path):
        """Test a cached file with the wrong shape is replaced by a fresh aggregate."""
        cache = DataCache(str(tmp_path))
        cache.write("standings", 2024, [{"total_points": 5}])
        service = make_service(cache)
        service.get_sessions.side_effect = [[R1], []]
        service.get_drivers.return_value = [make_driver(1)]
        service.get_session_results.return_value = [make_result(1, 1, 1, 25)]

        standings = await get_season_points(service, 2024)

        assert standings[0].driver_number == 1
        assert standings[0].total_points == 25
        assert cache.read("standings", 2024)[0]["driver_number"] == 1

    @pytest.mark.asyncio
    async def test_no_races_returns_empty(self):
        service = make_service()
        service.get_sessions.side_effect = [[], []]

        assert await get_season_points(service, 2026) == []

    @pytest.mark.asyncio
    async def test_fetches_aggregates_and_caches(self, tmp_path):
        cache = DataCache(str(tmp_path))
        service = make_service(cache)
        service.get_sessions.side_effect = [[R1, R2], []]
        service.get_drivers.return_value = [make_driver(1), make_driver(4)]
        results = {
            1: [make_result(1, 1, 1, 25), make_result(1, 4, 2, 18)],
            2: [make_result(2, 4, 1, 25)],
        }
        service.get_session_results.side_effect = lambda key: results[key]

        standings = await get_season_points(service, 2024)

        assert [s.driver_number for s in standings] == [4, 1]
        service.get_drivers.assert_called_once_with(2)
        service.get_season_drivers.assert_not_called()
        assert cache.read("standings", 2024)[0]["total_points"] == 43

    @pytest.mark.asyncio
    async def test_previous_roster_used_for_missing_metadata(self):
        service = make_service()
        service.get_sessions.side_effect = [[R1], []]
        service.get_drivers.return_value = [make_driver(1, country_code=None)]
        service.get_season_drivers.return_value = [make_driver(1, country_code="NED")]
        service.get_session_results.return_value = [make_result(1, 1)]

        standings = await get_season_points(service, 2025)

        service.get_season_drivers.assert_called_once_with(2024)
        assert standings[0].driver_info.country_code == "NED"
