"""
tests/test_time_utils.py — Age arithmetic and instant normalization.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from rbi_shared.time_utils import age_at, to_date


class TestAgeAt:
    def test_day_before_birthday(self):
        assert age_at(date(2026, 10, 18), date(1966, 10, 19)) == 59

    def test_on_birthday(self):
        assert age_at(date(2026, 10, 19), date(1966, 10, 19)) == 60

    def test_leap_day_birthday_in_common_year(self):
        assert age_at(date(2027, 2, 28), date(2008, 2, 29)) == 18
        assert age_at(date(2027, 3, 1), date(2008, 2, 29)) == 19

    def test_future_birth_date(self):
        assert age_at(date(2026, 1, 1), date(2027, 1, 1)) == 0


class TestToDate:
    def test_date_passthrough(self):
        assert to_date(date(2026, 10, 18)) == date(2026, 10, 18)

    def test_datetime(self):
        assert to_date(datetime(2026, 10, 18, 23, 0, tzinfo=timezone.utc)) == date(2026, 10, 18)

    def test_iso_strings(self):
        assert to_date("2026-10-18") == date(2026, 10, 18)
        assert to_date("2026-10-18T08:00:00+08:00") == date(2026, 10, 18)
        assert to_date("2026-10-18T08:00:00Z") == date(2026, 10, 18)

    def test_bad_string(self):
        with pytest.raises(ValueError):
            to_date("18/10/2026")
