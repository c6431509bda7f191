"""Tests for the one-tick engine facade."""
import logging
import time
from datetime import datetime

import pytest

from nowring.engine import TimelineEngine
from nowring.temporal import TimeScale

NOON = datetime(2024, 1, 10, 12, 0)


def make_engine(scheduler, params=None, instant=NOON):
    return TimelineEngine(scheduler, params, clock=lambda: instant)


class TestTick:
    def test_collision_spawns_ripples(self, scheduler):
        engine = make_engine(scheduler)
        engine.set_glyphs([{"id": "g", "angle": 92.0, "intensity": 1.0, "category": "mood"}])
        frame = engine.tick()
        assert frame.now_angle == pytest.approx(90.0)
        assert [e.glyph_id for e in frame.events] == ["g"]
        assert [r.slot_index for r in frame.ripples] == [0, 1]
        assert dict(frame.active) == {"g": True}
        assert len(frame.segments) == 24

        again = engine.tick()
        assert again.events == ()
        assert len(again.ripples) == 2

    def test_ripples_expire(self, scheduler):
        engine = make_engine(scheduler)
        engine.set_glyphs([{"id": "g", "angle": 90.0, "intensity": 1.0}])
        engine.tick()
        scheduler.advance(3000)
        assert engine.tick().ripples == ()

    def test_explicit_instant(self, scheduler):
        engine = make_engine(scheduler)
        frame = engine.tick(datetime(2024, 1, 10, 0, 0))
        assert frame.now_angle == pytest.approx(-90.0)
        assert frame.instant == datetime(2024, 1, 10, 0, 0)

    def test_invalid_glyphs_are_skipped(self, scheduler, caplog):
        engine = make_engine(scheduler)
        with caplog.at_level(logging.WARNING, logger="nowring.collision"):
            glyphs = engine.set_glyphs([{"id": "ok", "angle": 1.0}, {"id": "bad", "angle": float("inf")}])
        assert [g.id for g in glyphs] == ["ok"]
        assert len(caplog.records) == 1

    def test_listener_errors_do_not_break_tick(self, scheduler, caplog):
        engine = make_engine(scheduler)
        received = []

        def broken(_event):
            raise RuntimeError("boom")

        engine.add_collision_listener(broken)
        engine.add_collision_listener(received.append)
        engine.set_glyphs([{"id": "g", "angle": 90.0, "intensity": 1.0}])
        with caplog.at_level(logging.ERROR):
            frame = engine.tick()
        assert len(frame.events) == 1
        assert [e.glyph_id for e in received] == ["g"]

    def test_mood_listener(self, scheduler):
        engine = make_engine(scheduler)
        moods = []
        engine.add_mood_listener(lambda label, event: moods.append(label))
        engine.set_glyphs([{"id": "g", "angle": 90.0, "intensity": 1.0, "mood": "calm"}])
        engine.tick()
        assert moods == ["calm"]


class TestScales:
    def test_transition_commits_on_later_tick(self, scheduler):
        engine = make_engine(scheduler)
        assert engine.request_scale("week") is True
        assert engine.request_scale("month") is False
        assert engine.tick().transition.is_transitioning
        scheduler.advance(1600)
        frame = engine.tick()
        assert frame.transition.current_scale is TimeScale.WEEK
        assert not frame.transition.is_transitioning
        # Wednesday noon on the week scale
        assert engine.tick().now_angle == pytest.approx(90.0)

    def test_started_engine_drives_its_own_ticks(self, scheduler):
        engine = make_engine(scheduler)
        engine.start()
        engine.handle_key("y")
        for _ in range(100):
            scheduler.advance(16)
        assert engine.controller.state.current_scale is TimeScale.YEAR
        assert engine.zoom_in() is True

    def test_auto_weeks_follow_calendar(self, scheduler):
        engine = make_engine(scheduler, {"geometry": {"weeksInMonth": 0}}, instant=datetime(2020, 8, 14))
        engine.tick()
        assert len(engine.controller.layout(TimeScale.MONTH)) == 6


class TestParams:
    def test_aliases_reach_components(self, scheduler):
        engine = make_engine(scheduler)
        engine.set_params({"slotCount": 12, "rippleTtlRangeMs": [500, 900], "transitionDurationMs": 400})
        assert engine.detector.slot_count == 12
        assert engine.bus.slot_count == 12
        assert engine.bus.ttl_range_ms == (500.0, 900.0)
        assert engine.controller.duration_ms == 400.0

    def test_mode_switch_rebuilds_detector(self, scheduler):
        engine = make_engine(scheduler)
        first = engine.detector
        engine.set_params({"collision": {"mode": "proximity"}})
        assert engine.detector is not first
        assert engine.detector.mode == "proximity"

    def test_unchanged_payload_keeps_detector(self, scheduler):
        engine = make_engine(scheduler)
        first = engine.detector
        engine.set_params({"collision": {"mode": "slots"}})
        assert engine.detector is first


class TestDispose:
    def test_everything_stops(self, scheduler):
        engine = make_engine(scheduler)
        engine.start()
        engine.set_glyphs([{"id": "g", "angle": 90.0, "intensity": 1.0}])
        engine.tick()
        engine.request_scale("month")
        engine.dispose()
        assert scheduler.pending == 0
        assert scheduler.advance(10000) == 0
        frame = engine.tick()
        assert frame.events == () and frame.ripples == () and frame.segments == ()
        assert engine.request_scale("year") is False
        assert engine.handle_key("w") is False


class TestOwnedClock:
    GLYPHS = [{"id": "g", "angle": 90.0, "intensity": 1.0}]

    def test_tick_delta_drives_transition_and_ripples(self):
        engine = TimelineEngine(clock=lambda: NOON)
        engine.set_glyphs(self.GLYPHS)
        assert len(engine.tick().ripples) == 2
        assert engine.request_scale("week") is True
        for _ in range(200):
            frame = engine.tick(dt_ms=16)
        assert frame.transition.current_scale is TimeScale.WEEK
        assert not frame.transition.is_transitioning
        assert frame.ripples == ()
        assert engine.scheduler.now_ms() == pytest.approx(3200.0)

    def test_wall_clock_drives_default_engine(self):
        engine = TimelineEngine(params={"transitionDurationMs": 50, "rippleTtlRangeMs": [20, 40]}, clock=lambda: NOON)
        engine.set_glyphs(self.GLYPHS)
        first = engine.tick()
        assert first.ripples
        engine.request_scale("week")
        deadline = time.monotonic() + 2.0
        frame = first
        while time.monotonic() < deadline:
            time.sleep(0.005)
            frame = engine.tick()
            if frame.transition.current_scale is TimeScale.WEEK and not frame.ripples:
                break
        assert frame.transition.current_scale is TimeScale.WEEK
        assert frame.ripples == ()
        assert engine.scheduler.now_ms() > 0.0

    def test_external_scheduler_is_left_alone(self, scheduler):
        engine = make_engine(scheduler)
        engine.tick()
        engine.tick()
        assert scheduler.now_ms() == 0.0


class TestRippleProgress:
    def test_progress_follows_scheduler_time(self, scheduler):
        engine = make_engine(scheduler)
        engine.set_glyphs([{"id": "g", "angle": 90.0, "intensity": 1.0}])
        frame = engine.tick()
        primary = frame.ripples[0]
        assert dict(frame.ripple_progress) == {r.id: 0.0 for r in frame.ripples}
        frame = engine.tick(dt_ms=primary.ttl_ms / 2)
        assert frame.ripple_progress[primary.id] == pytest.approx(0.5)
        assert scheduler.now_ms() < primary.expires_at_ms
