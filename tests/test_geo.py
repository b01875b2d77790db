# tests/test_geo.py
import pytest

from wayfinder.geo import bounds, nearest_point, planar_distance, polyline_length, retry_with_backoff
from wayfinder.logger import Logger

from helpers import loc


def test_planar_distance():
    assert planar_distance(loc(0, 0), loc(3, 4)) == 5.0


def test_nearest_point_prefers_first_on_tie():
    points = [loc(1, 0), loc(-1, 0), loc(0, 2)]
    assert nearest_point(loc(0, 0), points) is points[0]
    assert nearest_point(loc(0, 0), []) is None


def test_polyline_length_in_meters():
    # One degree of latitude is roughly 111 km
    assert polyline_length([loc(0, 0), loc(1, 0)]) == pytest.approx(111_195, rel=1e-3)
    assert polyline_length([loc(0, 0)]) == 0
    assert polyline_length([]) == 0


def test_bounds():
    assert bounds([loc(1, 5), loc(-2, 3), loc(0, 9)]) == ((-2, 3), (1, 9))
    assert bounds([]) is None


def test_retry_with_backoff_returns_first_success():
    attempts = []

    def flaky():
        attempts.append(1)
        return "ok" if len(attempts) == 3 else None

    assert retry_with_backoff(flaky, max_time=5, initial_delay=0.01, max_delay=0.01) == "ok"
    assert len(attempts) == 3


def test_retry_with_backoff_gives_up():
    assert retry_with_backoff(lambda: None, max_time=0.05, initial_delay=0.01) is None


def test_retry_with_backoff_reports_through_logger(capsys):
    seen = []
    logger = Logger(callback=lambda message, data: seen.append((message, data)), echo=False)

    assert retry_with_backoff(lambda: None, max_time=0.05, initial_delay=0.01,
                              description="location fix", logger=logger) is None

    messages = [message for message, data in seen]
    assert messages[0] == "Retrying location fix"
    assert seen[0][1]["attempt"] == 1
    assert messages[-1] == "Gave up on location fix"
    assert seen[-1][1]["attempts"] == len(messages)
    assert capsys.readouterr().out == ""
