"""Tests for the now-angle resolver."""
from datetime import datetime

import pytest

from nowring.angle_utils import angular_distance, normalize_deg
from nowring.temporal import (
    SCALE_ORDER,
    TimeScale,
    angle_for,
    day_of_week,
    days_in_year,
    period_of,
    time_anchor,
    weeks_spanned,
)


class TestAngleFor:
    def test_day_noon_points_down(self):
        assert angle_for(TimeScale.DAY, datetime(2024, 1, 10, 12, 0, 0)) == pytest.approx(90.0)

    def test_day_midnight_points_up(self):
        assert angle_for(TimeScale.DAY, datetime(2024, 1, 10, 0, 0, 59)) == pytest.approx(-90.0)

    def test_year_first_day_non_leap(self):
        angle = angle_for(TimeScale.YEAR, datetime(2023, 1, 1))
        assert angle == pytest.approx((1 / 365) * 360 - 90)
        assert angle == pytest.approx(-89.01, abs=0.01)

    def test_year_leap_uses_366_days(self):
        assert days_in_year(2024) == 366
        assert days_in_year(1900) == 365
        assert angle_for(TimeScale.YEAR, datetime(2024, 12, 31)) == pytest.approx(270.0)

    def test_week_starts_on_sunday(self):
        sunday = datetime(2024, 1, 7)
        assert day_of_week(sunday) == 0
        assert angle_for(TimeScale.WEEK, sunday) == pytest.approx(-90.0)
        # Wednesday noon is half way through the week
        assert angle_for(TimeScale.WEEK, datetime(2024, 1, 10, 12)) == pytest.approx(90.0)

    def test_month_uses_month_length(self):
        angle = angle_for(TimeScale.MONTH, datetime(2024, 2, 15))
        assert angle == pytest.approx(14 / 29 * 360 - 90)

    @pytest.mark.parametrize(
        "scale, instant",
        [
            (TimeScale.DAY, datetime(2024, 3, 5, 13, 47)),
            (TimeScale.WEEK, datetime(2024, 3, 5, 13, 47)),
            (TimeScale.MONTH, datetime(2024, 7, 10, 8, 0)),
            (TimeScale.YEAR, datetime(2021, 5, 5)),
        ],
    )
    def test_periodic_over_natural_cycle(self, scale, instant):
        later = instant + period_of(scale, instant)
        assert angular_distance(angle_for(scale, instant), angle_for(scale, later)) < 1e-9


class TestTimeScale:
    def test_parse(self):
        assert TimeScale.parse("WEEK") is TimeScale.WEEK
        assert TimeScale.parse(TimeScale.YEAR) is TimeScale.YEAR

    def test_parse_unknown(self):
        with pytest.raises(ValueError):
            TimeScale.parse("decade")

    def test_ordering(self):
        assert list(SCALE_ORDER) == sorted(SCALE_ORDER)
        assert TimeScale.DAY < TimeScale.YEAR
        assert TimeScale.MONTH >= TimeScale.WEEK


class TestAnchors:
    def test_weeks_spanned(self):
        assert weeks_spanned(2015, 2) == 4
        assert weeks_spanned(2020, 8) == 6

    def test_day_anchor(self):
        anchor = time_anchor(TimeScale.DAY, datetime(2024, 1, 10, 13, 30))
        assert anchor.segment_index == 13
        assert anchor.segment_progress == pytest.approx(0.5)

    def test_month_anchor_clamps_to_last_week(self):
        anchor = time_anchor(TimeScale.MONTH, datetime(2024, 1, 30), weeks_in_month=4)
        assert anchor.segment_index == 3
        assert anchor.segment_progress == pytest.approx(1 / 7)

    def test_year_anchor(self):
        instant = datetime(2024, 3, 16)
        anchor = time_anchor(TimeScale.YEAR, instant)
        assert anchor.segment_index == 2
        assert anchor.segment_progress == pytest.approx(15 / 31)
        assert anchor.angle == angle_for(TimeScale.YEAR, instant)


class TestAngularDistance:
    def test_wraps_around_zero(self):
        assert angular_distance(359.0, 2.0) == pytest.approx(3.0)
        assert angular_distance(2.0, 359.0) == pytest.approx(3.0)

    def test_opposite_angles(self):
        assert angular_distance(0.0, 180.0) == pytest.approx(180.0)

    def test_negative_angles(self):
        assert angular_distance(-1.0, 1.0) == pytest.approx(2.0)
        assert angular_distance(-90.0, 270.0) == pytest.approx(0.0)

    def test_normalize(self):
        assert normalize_deg(-90.0) == pytest.approx(270.0)
        assert normalize_deg(720.0) == 0.0
        assert 0.0 <= normalize_deg(-1e-18) < 360.0
