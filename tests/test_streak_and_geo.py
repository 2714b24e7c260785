from datetime import date, timedelta
from types import SimpleNamespace

import pytest

from conftest import completed_activity
from fitnessvibe.geo import haversine_m, route_statistics
from fitnessvibe.streak import (
    calculate_streak, longest_streak, longest_streak_from_dates, next_milestone, streak_from_dates,
)

TODAY = date(2024, 3, 15)


def days_back(*offsets):
    return [TODAY - timedelta(days=n) for n in offsets]


def test_streak_counts_consecutive_days_ending_today():
    assert streak_from_dates(days_back(0, 1, 2), TODAY) == 3


def test_streak_counts_from_yesterday_when_today_is_empty():
    assert streak_from_dates(days_back(1, 2, 3, 5), TODAY) == 3


def test_streak_broken_by_gap_before_yesterday():
    assert streak_from_dates(days_back(2, 3, 4), TODAY) == 0
    assert streak_from_dates([], TODAY) == 0


def test_streak_ignores_duplicate_days():
    assert streak_from_dates(days_back(0, 0, 1, 1), TODAY) == 2


def test_longest_streak_from_dates():
    assert longest_streak_from_dates(days_back(0, 1, 10, 11, 12, 13, 20)) == 4
    assert longest_streak_from_dates([]) == 0


def test_next_milestone():
    assert next_milestone(0) == 3
    assert next_milestone(3) == 7
    assert next_milestone(99) == 100
    assert next_milestone(100) is None


def test_streak_from_database_ignores_unfinished_activities(user):
    completed_activity(user, days_ago=0)
    completed_activity(user, days_ago=1)
    completed_activity(user, days_ago=2, status="cancelled")
    completed_activity(user, days_ago=4)
    completed_activity(user, days_ago=5)
    completed_activity(user, days_ago=6)
    assert calculate_streak(user.id) == 2
    assert longest_streak(user.id) == 3


def test_haversine():
    assert haversine_m(0, 0, 0, 0) == 0
    assert haversine_m(0, 0, 0, 1) == pytest.approx(111195, rel=0.001)
    assert haversine_m(51.5074, -0.1278, 48.8566, 2.3522) == pytest.approx(343_500, rel=0.01)


def point(lat, lon, elevation=None, speed=None):
    return SimpleNamespace(latitude=lat, longitude=lon, elevation=elevation, speed=speed)


def test_route_statistics_empty():
    stats = route_statistics([])
    assert stats["point_count"] == 0
    assert stats["total_distance_m"] == 0.0
    assert stats["average_speed"] is None
    assert stats["elevation_gain"] is None


def test_route_statistics():
    stats = route_statistics([
        point(0, 0, elevation=100, speed=2.0),
        point(0, 0.01, elevation=120, speed=3.0),
        point(0, 0.02, elevation=110),
        point(0, 0.03, elevation=130, speed=4.0),
    ])
    assert stats["point_count"] == 4
    assert stats["total_distance_m"] == pytest.approx(3335.85, rel=0.001)
    assert stats["average_speed"] == 3.0
    assert stats["max_speed"] == 4.0
    assert stats["min_elevation"] == 100
    assert stats["max_elevation"] == 130
    assert stats["elevation_gain"] == 40.0
