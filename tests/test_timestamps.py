"""
test_timestamps.py — WMIP 14-digit AEST codec and ISO-8601 parsing.

Run with:
    pytest tests/test_timestamps.py -v
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from gauge.app.sources.timestamps import (
    AEST,
    decode_wmip,
    encode_wmip,
    local_hour_key,
    parse_iso,
)

NOW = datetime(2024, 1, 15, 1, 0, 0, tzinfo=timezone.utc)


# ═══════════════════════════════════════════════════════════════════════════
# WMIP decode
# ═══════════════════════════════════════════════════════════════════════════

class TestDecodeWmip:

    def test_applies_fixed_plus_ten_offset(self):
        decoded = decode_wmip("20240115103000", now=NOW)
        assert decoded.instant == datetime(2024, 1, 15, 0, 30, tzinfo=timezone.utc)
        assert not decoded.malformed
        assert not decoded.suspect

    def test_accepts_integer_input(self):
        decoded = decode_wmip(20240115103000, now=NOW)
        assert decoded.instant == datetime(2024, 1, 15, 0, 30, tzinfo=timezone.utc)

    def test_midnight_local_is_previous_utc_day(self):
        decoded = decode_wmip("20240115000000", now=NOW)
        assert decoded.instant == datetime(2024, 1, 14, 14, 0, tzinfo=timezone.utc)

    def test_no_daylight_saving_in_summer(self):
        # January is summer; Queensland still uses +10
        decoded = decode_wmip("20240115120000", now=NOW)
        assert decoded.instant.hour == 2

    @pytest.mark.parametrize("raw", ["2024011510300", "202401151030000", "2024O115103000", "", None, "abc"])
    def test_malformed_substitutes_now(self, raw):
        decoded = decode_wmip(raw, now=NOW)
        assert decoded.malformed
        assert decoded.instant == NOW

    def test_impossible_date_substitutes_now(self):
        decoded = decode_wmip("20240231103000", now=NOW)
        assert decoded.malformed
        assert decoded.instant == NOW

    def test_malformed_logs_warning(self, caplog):
        with caplog.at_level("WARNING"):
            decode_wmip("bad", now=NOW)
        assert any("Malformed WMIP timestamp" in r.getMessage() for r in caplog.records)

    def test_old_timestamp_flagged_not_dropped(self):
        decoded = decode_wmip("20231201100000", now=NOW)
        assert decoded.suspect
        assert not decoded.malformed
        assert decoded.instant.year == 2023

    def test_future_timestamp_flagged(self):
        future = encode_wmip(NOW + timedelta(minutes=5))
        decoded = decode_wmip(future, now=NOW)
        assert decoded.suspect

    def test_small_future_skew_tolerated(self):
        near = encode_wmip(NOW + timedelta(seconds=30))
        assert not decode_wmip(near, now=NOW).suspect


# ═══════════════════════════════════════════════════════════════════════════
# WMIP encode
# ═══════════════════════════════════════════════════════════════════════════

class TestEncodeWmip:

    def test_formats_in_aest(self):
        assert encode_wmip(datetime(2024, 1, 15, 0, 30, tzinfo=timezone.utc)) == "20240115103000"

    def test_naive_input_taken_as_utc(self):
        assert encode_wmip(datetime(2024, 1, 15, 0, 30)) == "20240115103000"

    def test_inverse_of_decode(self):
        instant = datetime(2024, 6, 30, 23, 59, 59, tzinfo=timezone.utc)
        assert decode_wmip(encode_wmip(instant), now=instant).instant == instant

    def test_other_offsets_normalised(self):
        instant = datetime(2024, 1, 15, 10, 30, tzinfo=AEST)
        assert encode_wmip(instant) == "20240115103000"


# ═══════════════════════════════════════════════════════════════════════════
# ISO-8601 and hour keys
# ═══════════════════════════════════════════════════════════════════════════

class TestParseIso:

    def test_trailing_z(self):
        assert parse_iso("2024-01-15T00:30:00Z") == datetime(2024, 1, 15, 0, 30, tzinfo=timezone.utc)

    def test_offset_converted_to_utc(self):
        assert parse_iso("2024-01-15T10:30:00+10:00") == datetime(2024, 1, 15, 0, 30, tzinfo=timezone.utc)

    def test_naive_taken_as_utc(self):
        assert parse_iso("2024-01-15T00:30:00").tzinfo == timezone.utc

    @pytest.mark.parametrize("raw", ["", None, "yesterday", "2024-13-45T00:00:00Z"])
    def test_unparseable_returns_none(self, raw):
        assert parse_iso(raw) is None


class TestLocalHourKey:

    def test_brisbane_offset(self):
        instant = datetime(2024, 1, 15, 0, 45, tzinfo=timezone.utc)
        assert local_hour_key(instant, 36000) == "2024-01-15T10:00"

    def test_crosses_local_midnight(self):
        instant = datetime(2024, 1, 15, 14, 10, tzinfo=timezone.utc)
        assert local_hour_key(instant, 36000) == "2024-01-16T00:00"
