"""
test_logging.py — Log formatters and request-scoped context.

Run with:
    pytest tests/test_logging.py -v
"""

from __future__ import annotations

import json
import logging

from gauge.app.core.logging_config import (
    JSONFormatter,
    PrettyFormatter,
    bind_request_context,
    get_request_context,
    reset_request_context,
)


def _make_record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        "gauge.app.sources.bom", logging.WARNING, __file__, 10,
        "bom level failed for %s", ("130207A",), None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:

    def test_extras_and_request_context(self):
        token = bind_request_context(request_id="abc123", endpoint="/api/v1/water-levels")
        try:
            entry = json.loads(JSONFormatter().format(_make_record(provider="bom", station_id="130207A")))
        finally:
            reset_request_context(token)

        assert entry["message"] == "bom level failed for 130207A"
        assert entry["provider"] == "bom"
        assert entry["station_id"] == "130207A"
        assert entry["request"]["request_id"] == "abc123"

    def test_no_context_outside_request(self):
        entry = json.loads(JSONFormatter().format(_make_record()))
        assert "request" not in entry
        assert "provider" not in entry


class TestPrettyFormatter:

    def test_source_tag(self):
        line = PrettyFormatter().format(_make_record(provider="wmip", station_id="130212A"))
        assert "<wmip:130212A>" in line
        assert "bom level failed for 130207A" in line

    def test_request_id_prefix(self):
        token = bind_request_context(request_id="0123456789abcdef")
        try:
            line = PrettyFormatter().format(_make_record())
        finally:
            reset_request_context(token)
        assert "[01234567]" in line
        assert get_request_context() == {}
