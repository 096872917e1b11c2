"""
test_predictions.py — Level projections and upstream flood triggers.

Run with:
    pytest tests/test_predictions.py -v
"""

from __future__ import annotations

from datetime import timedelta

from conftest import T0
from gauge.app.hydro.models import HistoryPoint
from gauge.app.hydro.predictions import (
    UPSTREAM_LINKS,
    hourly_rate,
    project_levels,
    upstream_trigger,
)
from gauge.app.hydro.stations import get_station


def _history(*levels_hours_ago):
    return [HistoryPoint(T0 - timedelta(hours=h), level) for level, h in levels_hours_ago]


class TestProjectLevels:

    def test_rising_projection(self):
        history = _history((2.5, 1), (3.0, 0))
        predictions = project_levels(3.0, history)

        assert [p.lead_hours for p in predictions] == [2, 4, 6]
        assert [p.level for p in predictions] == [4.0, 5.0, 6.0]
        assert [p.confidence for p in predictions] == [0.65, 0.45, 0.3]

    def test_falling_never_below_zero(self):
        history = _history((1.5, 1), (0.5, 0))
        predictions = project_levels(0.5, history)
        assert all(p.level == 0.0 for p in predictions)
        assert predictions[0].confidence == 0.5

    def test_flat_without_history(self):
        predictions = project_levels(2.2, [])
        assert [p.level for p in predictions] == [2.2, 2.2, 2.2]
        assert predictions[0].confidence == 0.8

    def test_payload(self):
        assert project_levels(1.0, [])[0].to_dict() == {"time": "+2h", "level": 1.0, "confidence": 0.8}


class TestHourlyRate:

    def test_uses_two_latest_points(self):
        history = _history((0.0, 3), (1.0, 1), (1.5, 0.5))
        assert hourly_rate(history) == 1.0

    def test_duplicate_timestamps(self):
        history = [HistoryPoint(T0, 1.0), HistoryPoint(T0, 2.0)]
        assert hourly_rate(history) == 0.0


class TestUpstreamTrigger:

    def test_upstream_at_minor(self):
        trigger = upstream_trigger("130207A", {"130212A": 3.2})
        assert trigger is not None
        assert trigger.station_id == "130212A"
        assert trigger.station == get_station("130212A").name
        assert trigger.eta == "2-4 hours"

    def test_upstream_below_minor(self):
        assert upstream_trigger("130207A", {"130212A": 2.9}) is None

    def test_upstream_unknown_level(self):
        assert upstream_trigger("130207A", {}) is None

    def test_station_without_link(self):
        assert upstream_trigger("130212A", {"130207A": 99.0}) is None

    def test_links_reference_registered_gauges(self):
        for downstream, link in UPSTREAM_LINKS.items():
            assert get_station(downstream) is not None
            assert get_station(link.upstream_id) is not None
