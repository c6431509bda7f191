"""Tests for ripple creation and retirement."""
import logging
from collections import Counter

import pytest

from nowring.collision import CollisionEvent
from nowring.ripples import RippleEventBus, ripple_ttl_ms


def make_event(glyph_id="g", *, slot_index=5, intensity=0.75, category="mood", label=None, now_angle=0.0, mode="slots"):
    return CollisionEvent(
        glyph_id=glyph_id,
        category=category,
        intensity=intensity,
        glyph_intensity=1.0,
        angle=now_angle + slot_index * 15.0,
        line_angle=now_angle + slot_index * 15.0,
        now_angle=now_angle,
        slot_index=slot_index,
        position=None,
        timestamp_ms=0.0,
        mode=mode,
        label=label,
    )


class TestTtl:
    def test_range_ends(self):
        assert ripple_ttl_ms("sleep", 1.0) == pytest.approx(2500.0)
        assert ripple_ttl_ms("weather", 0.0) == pytest.approx(1000.0)

    def test_mood_midpoint(self):
        assert ripple_ttl_ms("mood", 0.5) == pytest.approx(1750.0)

    def test_longer_for_higher_intensity(self):
        assert ripple_ttl_ms("mobility", 0.9) > ripple_ttl_ms("mobility", 0.2)

    def test_unknown_category(self):
        assert ripple_ttl_ms("unknown", 1.0) == pytest.approx(1000.0 + 1500.0 / 9.0)

    def test_custom_range(self):
        assert ripple_ttl_ms("sleep", 1.0, (200.0, 400.0)) == pytest.approx(400.0)


class TestPublish:
    def test_primary_and_neighbours(self, scheduler):
        bus = RippleEventBus(scheduler)
        ripples = bus.publish(make_event())
        assert len(ripples) == 3
        primary, *neighbours = ripples
        assert primary.primary and primary.intensity == pytest.approx(0.75)
        assert sorted(r.slot_index for r in neighbours) == [4, 6]
        assert all(r.intensity == pytest.approx(0.225) for r in neighbours)
        assert sorted(r.angle for r in neighbours) == pytest.approx([60.0, 90.0])
        assert bus.ripples == ripples

    def test_neighbours_stay_in_range(self, scheduler):
        bus = RippleEventBus(scheduler, slot_count=24)
        assert [r.slot_index for r in bus.publish(make_event(slot_index=0))] == [0, 1]
        assert [r.slot_index for r in bus.publish(make_event("h", slot_index=23))] == [23, 22]

    def test_weak_neighbours_suppressed(self, scheduler):
        bus = RippleEventBus(scheduler)
        assert len(bus.publish(make_event(intensity=0.15))) == 1

    def test_proximity_hit_has_no_neighbours(self, scheduler):
        bus = RippleEventBus(scheduler)
        ripples = bus.publish(make_event(slot_index=0, intensity=1.0, now_angle=-90.0, mode="proximity"))
        assert [(r.slot_index, r.angle, r.primary) for r in ripples] == [(0, -90.0, True)]
        assert bus.ripples == ripples

    def test_hooks(self, scheduler):
        bus = RippleEventBus(scheduler)
        collisions, moods = [], []
        bus.add_collision_hook(collisions.append)
        bus.add_mood_hook(lambda label, event: moods.append(label))
        bus.publish(make_event(label="calm"))
        bus.publish(make_event("w", category="weather", label="fresh"))
        assert [e.glyph_id for e in collisions] == ["g", "w"]
        assert moods == ["calm"]

    def test_failing_listener_is_logged(self, scheduler, caplog):
        bus = RippleEventBus(scheduler)

        def broken(_ripples):
            raise RuntimeError("boom")

        seen = []
        bus.add_listener(broken)
        bus.add_listener(seen.append)
        with caplog.at_level(logging.ERROR, logger="nowring.ripples"):
            bus.publish(make_event())
        assert len(seen) == 1
        assert any("listener failed" in r.getMessage() for r in caplog.records)


class TestRetirement:
    def test_each_ripple_retired_once_after_ttl(self, scheduler):
        bus = RippleEventBus(scheduler)
        retired = Counter()
        bus.add_retire_listener(lambda r: retired.update([r.id]))
        created = bus.publish(make_event())
        shortest = min(r.ttl_ms for r in created)
        longest = max(r.ttl_ms for r in created)

        scheduler.advance(shortest - 1)
        assert len(bus.ripples) == 3
        step = 16
        while scheduler.now_ms() < longest + step:
            scheduler.advance(step)
        assert bus.ripples == ()
        assert retired == Counter({r.id: 1 for r in created})
        assert scheduler.pending == 0

    def test_dispose_cancels_timers(self, scheduler):
        bus = RippleEventBus(scheduler)
        retired = []
        bus.add_retire_listener(retired.append)
        bus.publish(make_event())
        assert bus.pending_timers == 3
        bus.dispose()
        assert bus.pending_timers == 0
        assert scheduler.pending == 0
        assert scheduler.advance(10000) == 0
        assert retired == []
        assert bus.publish(make_event()) == ()

    def test_cap_retires_oldest_once(self, scheduler):
        bus = RippleEventBus(scheduler, max_ripples=2)
        retired = Counter()
        bus.add_retire_listener(lambda r: retired.update([r.origin_glyph_id]))
        for glyph_id in ("a", "b", "c"):
            bus.publish(make_event(glyph_id, slot_index=0, intensity=0.15))
        assert [r.origin_glyph_id for r in bus.ripples] == ["b", "c"]
        scheduler.advance(10000)
        assert retired == Counter({"a": 1, "b": 1, "c": 1})

    def test_publish_returns_only_live_ripples(self, scheduler):
        bus = RippleEventBus(scheduler, max_ripples=1)
        returned = bus.publish(make_event())
        assert [r.slot_index for r in returned] == [6]
        assert returned == bus.ripples

    def test_retired_at_expiry(self, scheduler):
        bus = RippleEventBus(scheduler)
        retired_at = {}
        bus.add_retire_listener(lambda r: retired_at.setdefault(r.id, scheduler.now_ms()))
        created = bus.publish(make_event())
        primary = created[0]
        assert primary.expires_at_ms == pytest.approx(primary.ttl_ms)
        assert primary.progress(primary.ttl_ms / 2) == pytest.approx(0.5)
        while scheduler.pending:
            scheduler.advance(16)
        for ripple in created:
            assert ripple.expires_at_ms <= retired_at[ripple.id] < ripple.expires_at_ms + 16
            assert ripple.progress(retired_at[ripple.id]) == 1.0

    def test_clear(self, scheduler):
        bus = RippleEventBus(scheduler)
        bus.publish(make_event())
        bus.clear()
        assert bus.ripples == ()
        assert scheduler.pending == 0
