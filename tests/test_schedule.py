"""
Tests for race weekend grouping.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from f1stats.cache import DataCache
from f1stats.models import Driver, Session
from f1stats.schedule import fetch_season, group_into_weekends


def make_session(session_key: int, meeting_key: int, date_start: str, date_end: str, location: str = "Monaco") -> Session:
    """Helper to create test sessions."""
    return Session(
        session_key=session_key,
        meeting_key=meeting_key,
        session_name="Session",
        session_type="Practice",
        date_start=date_start,
        date_end=date_end,
        location=location,
        country_name=location,
        country_code="MON",
    )


MON_FP1 = make_session(1, 10, "2024-05-24T11:30:00+00:00", "2024-05-24T12:30:00+00:00")
MON_RACE = make_session(3, 10, "2024-05-26T13:00:00+00:00", "2024-05-26T15:00:00+00:00")
MON_QUALI = make_session(2, 10, "2024-05-25T14:00:00+00:00", "2024-05-25T15:00:00+00:00")
CAN_FP1 = make_session(4, 11, "2024-06-07T17:30:00+00:00", "2024-06-07T18:30:00+00:00", "Montreal")


class TestGroupIntoWeekends:
    """Tests for group_into_weekends()."""

    def test_groups_by_meeting(self):
        weekends = group_into_weekends([CAN_FP1, MON_RACE, MON_FP1, MON_QUALI])

        assert [w.meeting_key for w in weekends] == [10, 11]
        assert [s.session_key for s in weekends[0].sessions] == [1, 2, 3]

    def test_weekend_spans_sessions(self):
        weekends = group_into_weekends([MON_RACE, MON_QUALI, MON_FP1])

        assert weekends[0].date_start == MON_FP1.date_start
        assert weekends[0].date_end == MON_RACE.date_end

    def test_empty(self):
        assert group_into_weekends([]) == []


class TestFetchSeason:
    """Tests for fetch_season()."""

    @pytest.mark.asyncio
    async def test_writes_schedule_and_roster(self, tmp_path):
        cache = DataCache(str(tmp_path))
        service = MagicMock()
        service.client.fetch = AsyncMock(return_value=[
            {"session_key": 3, "meeting_key": 10, "session_type": "Race", "date_start": MON_RACE.date_start},
            {"session_key": 4, "meeting_key": 11, "session_type": "Practice", "date_start": CAN_FP1.date_start},
        ])
        service.get_drivers = AsyncMock(return_value=[Driver(driver_number=16, name_acronym="LEC")])

        weekends = await fetch_season(service, cache, 2024)

        assert len(weekends) == 2
        service.get_drivers.assert_called_once_with(4)
        assert cache.read("seasons", 2024)[1]["sessions"][0]["session_key"] == 4
        assert cache.read("drivers", 2024)[0]["name_acronym"] == "LEC"
        assert cache.available_seasons() == [2024]
