"""
Tests for OpenF1Service endpoint wrappers.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from f1stats.api_client import OpenF1APIError, OpenF1Client
from f1stats.cache import DataCache
from f1stats.openf1 import OpenF1Service


def make_session_payload(session_key: int, date_start: str, session_type: str = "Race", meeting_key: int = 1) -> dict:
    """Helper to create a raw /sessions row."""
    return {
        "session_key": session_key,
        "meeting_key": meeting_key,
        "session_name": session_type,
        "session_type": session_type,
        "date_start": date_start,
        "date_end": date_start,
        "location": "Monza",
        "country_name": "Italy",
        "country_code": "ITA",
        "year": 2024,
    }


def make_service(cache=None) -> OpenF1Service:
    client = MagicMock()
    client.fetch = AsyncMock()
    return OpenF1Service(client, cache)


class TestSessions:
    """Tests for session lookups."""

    @pytest.mark.asyncio
    async def test_all_sessions_sorted_by_date(self):
        service = make_service()
        service.client.fetch.return_value = [
            make_session_payload(2, "2024-09-01T13:00:00+00:00"),
            make_session_payload(1, "2024-08-30T11:30:00+00:00", "Practice"),
        ]

        sessions = await service.get_all_sessions(2024)

        assert [s.session_key for s in sessions] == [1, 2]
        service.client.fetch.assert_called_once_with("/sessions?year=2024")

    @pytest.mark.asyncio
    async def test_all_sessions_from_weekend_cache(self, tmp_path):
        cache = DataCache(str(tmp_path))
        cache.write("seasons", 2024, [{
            "meeting_key": 1,
            "sessions": [
                make_session_payload(2, "2024-09-01T13:00:00+00:00"),
                make_session_payload(1, "2024-08-30T11:30:00+00:00", "Practice"),
            ],
        }])
        service = make_service(cache)

        sessions = await service.get_all_sessions(2024)

        assert [s.session_key for s in sessions] == [1, 2]
        service.client.fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_all_sessions_from_flat_cache(self, tmp_path):
        cache = DataCache(str(tmp_path))
        cache.write("seasons", 2024, [make_session_payload(5, "2024-09-01T13:00:00+00:00")])
        service = make_service(cache)

        sessions = await service.get_all_sessions(2024)

        assert sessions[0].session_key == 5

    @pytest.mark.asyncio
    async def test_malformed_season_cache_falls_back_to_api(self, tmp_path):
        cache = DataCache(str(tmp_path))
        cache.write("seasons", 2024, [{"meeting_key": 1, "sessions": 5}])
        service = make_service(cache)
        service.client.fetch.return_value = [make_session_payload(7, "2024-09-01T13:00:00+00:00")]

        sessions = await service.get_all_sessions(2024)

        assert sessions[0].session_key == 7
        service.client.fetch.assert_called_once_with("/sessions?year=2024")

    @pytest.mark.asyncio
    async def test_sessions_by_type_quoted(self):
        service = make_service()
        service.client.fetch.return_value = []

        await service.get_sessions(2024, "Sprint Qualifying")

        service.client.fetch.assert_called_once_with(
            "/sessions?year=2024&session_type=Sprint%20Qualifying"
        )

    @pytest.mark.asyncio
    async def test_latest_session(self):
        service = make_service()
        service.client.fetch.return_value = [make_session_payload(9, "2024-09-01T13:00:00+00:00")]

        session = await service.get_latest_session()

        assert session.session_key == 9
        service.client.fetch.assert_called_once_with("/sessions?session_key=latest")

    @pytest.mark.asyncio
    async def test_latest_session_none(self):
        service = make_service()
        service.client.fetch.return_value = []
        assert await service.get_latest_session() is None


class TestSeasonDrivers:
    """Tests for get_season_drivers()."""

    @pytest.mark.asyncio
    async def test_roster_from_last_session(self, tmp_path):
        cache = DataCache(str(tmp_path))
        service = make_service(cache)
        service.client.fetch.side_effect = [
            [
                make_session_payload(1, "2024-08-30T11:30:00+00:00"),
                make_session_payload(2, "2024-09-01T13:00:00+00:00"),
            ],
            [{"driver_number": 16, "name_acronym": "LEC", "country_code": "MON"}],
        ]

        drivers = await service.get_season_drivers(2024)

        assert drivers[0].name_acronym == "LEC"
        assert service.client.fetch.call_args_list[1][0][0] == "/drivers?session_key=2"
        assert cache.read("drivers", 2024)[0]["driver_number"] == 16

    @pytest.mark.asyncio
    async def test_error_returns_empty(self):
        service = make_service()
        service.client.fetch.side_effect = OpenF1APIError(500, "/sessions?year=2024")

        assert await service.get_season_drivers(2024) == []

    @pytest.mark.asyncio
    async def test_cached_roster(self, tmp_path):
        cache = DataCache(str(tmp_path))
        cache.write("drivers", 2023, [{"driver_number": 1, "name_acronym": "VER"}])
        service = make_service(cache)

        drivers = await service.get_season_drivers(2023)

        assert drivers[0].name_acronym == "VER"
        service.client.fetch.assert_not_called()


class TestResults:
    """Tests for result and timing endpoints."""

    @pytest.mark.asyncio
    async def test_results_error_returns_empty(self):
        service = make_service()
        service.client.fetch.side_effect = OpenF1APIError(404, "/session_result")
        assert await service.get_session_results(1) == []

    @pytest.mark.asyncio
    async def test_results_network_failure_returns_empty(self):
        """Test a dropped connection through the real client degrades to no results."""
        client = OpenF1Client(min_interval=0.0, retry_delay=0.0, max_retries=2)
        service = OpenF1Service(client)

        with patch.object(client, "_send", new_callable=AsyncMock) as mock:
            mock.side_effect = aiohttp.ClientConnectionError("connection reset")
            assert await service.get_session_results(9999) == []

        assert mock.call_count == 2
        await client.close()

    @pytest.mark.asyncio
    async def test_top3_sorted(self):
        service = make_service()
        service.client.fetch.return_value = [
            {"session_key": 1, "meeting_key": 1, "driver_number": n, "position": p}
            for n, p in [(4, 2), (81, 4), (16, 1), (55, 3), (1, None)]
        ]

        podium = await service.get_session_top3(1)

        assert [r.driver_number for r in podium] == [16, 4, 55]

    @pytest.mark.asyncio
    async def test_stints_error_returns_empty(self):
        service = make_service()
        service.client.fetch.side_effect = OpenF1APIError(500, "/stints")
        assert await service.get_tyre_stints(1) == []

    @pytest.mark.asyncio
    async def test_locations_since_filter(self):
        service = make_service()
        service.client.fetch.return_value = [
            {"driver_number": 1, "x": 10, "y": -20, "date": "2024-09-01T13:00:00+00:00"},
        ]

        samples = await service.get_locations(9, 1, since="2024-09-01T13:00:00")

        endpoint = service.client.fetch.call_args[0][0]
        assert endpoint == "/location?session_key=9&driver_number=1&date>2024-09-01T13%3A00%3A00"
        assert samples[0].x == 10.0
        assert samples[0].y == -20.0

    @pytest.mark.asyncio
    async def test_laps_and_pits(self):
        service = make_service()
        service.client.fetch.side_effect = [
            [{"session_key": 9, "driver_number": 1, "lap_number": 3, "lap_duration": 81.2}],
            [{"session_key": 9, "driver_number": 1, "date": "2024-09-01T13:30:00+00:00"}],
        ]

        laps = await service.get_latest_lap_data(9)
        pits = await service.get_pit_data(9)

        assert laps[0].lap_duration == 81.2
        assert pits[0].driver_number == 1
